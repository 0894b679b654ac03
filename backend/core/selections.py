"""
selections.py — Persisted analytics filter selection.

The dashboard remembers the last filters used (academic year, term,
sequence, class, active tab, time scope) under a single fixed key. The
blob is flat JSON and restoring it is best-effort: anything unreadable is
logged and treated as "no saved selection".

Storage backends:
- JsonFileStorage — one JSON document holding every key (default)
- MemoryStorage   — dict-backed, for tests
- NullStorage     — persistence disabled
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.log import setup_logger

logger = setup_logger("schoolboard.selections")

SELECTIONS_KEY = "analyticsPageSelections"
SELECTION_FIELDS = ("academicYear", "term", "sequence", "classId", "tab", "scope")
ANALYTICS_TABS = ("school", "class", "subjects", "classes")

DEFAULT_SELECTION = {
    "academicYear": "",
    "term": "",
    "sequence": "",
    "classId": "",
    "tab": "school",
    "scope": "term",
}


# ── Storage backends ────────────────────────────────────────────────

class MemoryStorage:
    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class NullStorage:
    def get_item(self, key: str) -> Optional[str]:
        return None

    def set_item(self, key: str, value: str) -> None:
        pass

    def remove_item(self, key: str) -> None:
        pass


class JsonFileStorage:
    """Key/value strings kept in a single JSON file."""

    def __init__(self, path):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        try:
            data = self._read_all()
        except (OSError, ValueError) as exc:
            logger.warning("Replacing unreadable selection store %s: %s", self.path, exc)
            data = {}
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        try:
            data = self._read_all()
        except (OSError, ValueError) as exc:
            logger.warning("Resetting unreadable selection store %s: %s", self.path, exc)
            data = {}
        data.pop(key, None)
        self._write_all(data)


def storage_from_env():
    """Pick a backend from SELECTIONS_PATH ("off" disables persistence)."""
    raw = os.getenv("SELECTIONS_PATH", "").strip()
    if raw.lower() in {"off", "none", "false", "0"}:
        return NullStorage()
    if not raw:
        raw = str(Path(__file__).resolve().parent.parent / "data" / "selections.json")
    return JsonFileStorage(raw)


# ── Repository ──────────────────────────────────────────────────────

def _clean_selection(raw: Dict[str, Any]) -> Dict[str, str]:
    """Keep known fields only, as strings."""
    return {
        field: str(raw[field])
        for field in SELECTION_FIELDS
        if raw.get(field) not in (None, "")
    }


class SelectionRepository:
    """load() / save() / clear() over a storage backend."""

    def __init__(self, storage=None, key: str = SELECTIONS_KEY):
        self.storage = storage if storage is not None else MemoryStorage()
        self.key = key

    def load(self) -> Optional[Dict[str, str]]:
        try:
            raw = self.storage.get_item(self.key)
            if not raw:
                return None
            if not isinstance(raw, str):
                raise ValueError(f"expected a JSON string, got {type(raw).__name__}")
            data = json.loads(raw)
        except (OSError, ValueError) as exc:
            logger.warning("Error loading saved selections: %s", exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring saved selections of type %s", type(data).__name__)
            return None
        return _clean_selection(data)

    def save(self, selection: Dict[str, Any]) -> Optional[Dict[str, str]]:
        """Persist a selection. Nothing is saved until an academic year is chosen."""
        cleaned = _clean_selection(selection)
        if not cleaned.get("academicYear"):
            return None
        self.storage.set_item(self.key, json.dumps(cleaned))
        return cleaned

    def clear(self) -> None:
        self.storage.remove_item(self.key)


# ── Defaults ────────────────────────────────────────────────────────

def default_option_id(options: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    """Id of the active option (academic year / term), else the first one."""
    if not options:
        return None
    chosen = next((o for o in options if o.get("is_active")), options[0])
    return str(chosen.get("id")) if chosen.get("id") is not None else None


def restore_selection(
    saved: Optional[Dict[str, Any]],
    academic_years: Optional[List[Dict[str, Any]]] = None,
    terms: Optional[List[Dict[str, Any]]] = None,
    sequences: Optional[List[Dict[str, Any]]] = None,
    classes: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, str]:
    """
    Merge a saved selection over the defaults, then fill blank filters from
    the available options (active year and term, first sequence/class).
    """
    selection = {**DEFAULT_SELECTION, **(saved or {})}
    if selection["tab"] not in ANALYTICS_TABS:
        selection["tab"] = DEFAULT_SELECTION["tab"]
    if selection["scope"] not in ("sequence", "term", "year"):
        selection["scope"] = DEFAULT_SELECTION["scope"]

    if not selection["academicYear"]:
        selection["academicYear"] = default_option_id(academic_years) or ""
    if not selection["term"]:
        selection["term"] = default_option_id(terms) or ""
    if not selection["sequence"] and selection["scope"] == "sequence" and sequences:
        selection["sequence"] = str(sequences[0].get("id", ""))
    if not selection["classId"] and selection["tab"] == "class" and classes:
        selection["classId"] = str(classes[0].get("id", ""))
    return selection


def reset_selection(repository: SelectionRepository, academic_years: Optional[List[Dict[str, Any]]] = None) -> Dict[str, str]:
    """Forget the saved selection and return the defaults."""
    repository.clear()
    selection = dict(DEFAULT_SELECTION)
    selection["academicYear"] = default_option_id(academic_years) or ""
    return selection
