"""
periods.py — Reporting-period helpers.

Handles:
- Period-variant normalization (sequence / term / year payloads)
- Per-record breakdown extraction for class comparison rows
- Period id resolution from a filter selection
- Chronological ordering of period labels
- Per-student analytics filter transitions
"""

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

TIME_SCOPES = ("sequence", "term", "year")

# Period type → (breakdown array key, period-name key inside each row, breakdown type)
BREAKDOWN_SOURCES = {
    "sequence": None,
    "term": ("sequence_breakdown", "sequence", "sequence"),
    "year": ("term_breakdown", "term", "term"),
}

# Legacy payloads announce their period with one of these keys instead of period_info.
LEGACY_INFO_KEYS = (
    ("sequence_info", "sequence", "term"),
    ("term_info", "term", "year"),
    ("academic_year_info", "year", None),
)


# ── Helpers ─────────────────────────────────────────────────────────

def _breakdown_rows(rows: Any, period_key: str) -> List[Dict[str, Any]]:
    """Map raw breakdown rows to {subject_name, period_name, avg_score}."""
    if not isinstance(rows, list):
        return []
    entries = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        entries.append({
            "subject_name": row.get("subject_name"),
            "period_name": row.get(period_key, row.get("period_name")),
            "avg_score": row.get("avg_score"),
        })
    return entries


def _tagged_period_info(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return a tagged period_info for either payload shape, or None."""
    period_info = payload.get("period_info")
    if isinstance(period_info, dict) and period_info.get("type") in BREAKDOWN_SOURCES:
        return period_info

    for info_key, period_type, parent_key in LEGACY_INFO_KEYS:
        info = payload.get(info_key)
        if not isinstance(info, dict):
            continue
        tagged = {"type": period_type, "id": info.get("id"), "name": info.get("name")}
        if parent_key:
            tagged["parent"] = info.get(parent_key)
        return tagged
    return None


# ── Normalization ───────────────────────────────────────────────────

def _sequence_variant(payload: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    # A sequence is the finest period; there is nothing to break down into.
    return [], None


def _breakdown_variant(period_type: str) -> Callable:
    rows_key, period_key, breakdown_type = BREAKDOWN_SOURCES[period_type]

    def variant(payload: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        return _breakdown_rows(payload.get(rows_key), period_key), breakdown_type

    return variant


PERIOD_VARIANTS: Dict[str, Callable] = {
    "sequence": _sequence_variant,
    "term": _breakdown_variant("term"),
    "year": _breakdown_variant("year"),
}


def normalize_period_payload(payload: Any) -> Any:
    """
    Convert a period-variant analytics payload to the canonical shape:
    { school_info, period_info, subject_analysis, breakdown, breakdown_type }.

    None stays None and unrecognized shapes are returned unchanged.
    Never raises on malformed input.
    """
    if payload is None:
        return None
    if not isinstance(payload, dict):
        return payload

    period_info = _tagged_period_info(payload)
    if period_info is None:
        return payload

    breakdown, breakdown_type = PERIOD_VARIANTS[period_info["type"]](payload)
    return {
        "school_info": payload.get("school_info"),
        "period_info": period_info,
        "subject_analysis": payload.get("subject_analysis"),
        "breakdown": breakdown,
        "breakdown_type": breakdown_type,
    }


def record_breakdown(record: Dict[str, Any], period_type: Optional[str]) -> List[Dict[str, Any]]:
    """Breakdown entries of a single class record for the given period type."""
    source = BREAKDOWN_SOURCES.get(period_type or "")
    if not source or not isinstance(record, dict):
        return []
    rows_key, period_key, _ = source
    entries = _breakdown_rows(record.get(rows_key), period_key)
    for entry in entries:
        if entry["subject_name"] is None:
            entry["subject_name"] = record.get("class_name")
    return entries


# ── Selection helpers ───────────────────────────────────────────────

SCOPE_SELECTION_KEYS = {
    "sequence": "sequence",
    "term": "term",
    "year": "academicYear",
}


def resolve_period_id(time_scope: str, selection: Dict[str, Any]) -> Optional[str]:
    """Period id the fetch layer should use for the selected time scope."""
    key = SCOPE_SELECTION_KEYS.get(time_scope)
    if key is None:
        return None
    return selection.get(key) or None


def is_period_selected(time_scope: str, selection: Dict[str, Any]) -> bool:
    return resolve_period_id(time_scope, selection) is not None


def period_label(period_info: Optional[Dict[str, Any]]) -> str:
    """Display label such as 'Sequence 2 - Term 1 (2024/2025)'."""
    if not period_info:
        return ""
    label = str(period_info.get("name") or "")
    if period_info.get("term"):
        label += f" - {period_info['term']}"
    if period_info.get("year"):
        label += f" ({period_info['year']})"
    return label


def sort_periods(names: List[str]) -> List[str]:
    """Sort period labels chronologically by their trailing number."""

    def key(name):
        nums = re.findall(r"\d+", str(name))
        return (0, int(nums[-1])) if nums else (1, 0)

    return sorted(names, key=key)


# ── Student analytics filters ───────────────────────────────────────

FILTER_LEVELS = ("year", "term", "sequence")


def default_student_filters() -> Dict[str, Any]:
    return {
        "timeScope": "latest",
        "academicYearId": None,
        "termId": None,
        "sequenceId": None,
    }


def change_student_filter(filters: Dict[str, Any], level: str, value: Optional[str]) -> Dict[str, Any]:
    """
    Apply a year/term/sequence selection to the per-student filters.

    Picking "latest" (or None) clears that level and everything below it;
    the time scope falls back to the deepest level still selected.
    """
    if level not in FILTER_LEVELS:
        raise ValueError(f"Unknown filter level: {level}")

    chosen = None if value in (None, "", "latest") else str(value)
    updated = {**default_student_filters(), **filters}

    if level == "year":
        return {
            "timeScope": "year" if chosen else "latest",
            "academicYearId": chosen,
            "termId": None,
            "sequenceId": None,
        }

    if level == "term":
        updated["termId"] = chosen
        updated["sequenceId"] = None
    else:
        updated["sequenceId"] = chosen

    if updated["sequenceId"]:
        updated["timeScope"] = "sequence"
    elif updated["termId"]:
        updated["timeScope"] = "term"
    elif updated["academicYearId"]:
        updated["timeScope"] = "year"
    else:
        updated["timeScope"] = "latest"
    return updated
