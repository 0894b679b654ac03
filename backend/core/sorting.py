"""
sorting.py — Sort and filter state for analytics tables.

Two kinds of tables exist:
- the school "subjects" tab, where sorting and the subject-name filter are
  sent upstream as query parameters and the server returns the ordered list;
- the per-student subject table, where the whole list is already in memory
  and is sorted here.
"""

import math
from typing import Any, Dict, List, Optional

SORT_DIRECTIONS = ("asc", "desc")
DEFAULT_SORT = {"field": "average_score", "direction": "desc"}

# Fields of the per-student subject table compared as numbers.
NUMERIC_SORT_FIELDS = {"score", "rank", "difference", "class_average", "coefficient"}

SUBJECT_QUERY_DEBOUNCE_SECONDS = 0.5


# ── Header clicks ───────────────────────────────────────────────────

def toggle_sort(state: Optional[Dict[str, Any]], field: str) -> Dict[str, Any]:
    """Same column flips the direction; a new column starts descending."""
    state = state or DEFAULT_SORT
    if state.get("field") == field:
        direction = "asc" if state.get("direction") == "desc" else "desc"
        return {"field": field, "direction": direction}
    return {"field": field, "direction": "desc"}


def sort_indicator(state: Optional[Dict[str, Any]], field: str) -> Optional[str]:
    """Direction arrow to draw on a column header, or None when inactive."""
    if not state or state.get("field") != field:
        return None
    return state.get("direction")


# ── In-memory sort ──────────────────────────────────────────────────

def _numeric_key(value: Any) -> float:
    # Missing values sit past the end when ascending and before the start when descending.
    if value is None:
        return math.inf
    try:
        v = float(value)
    except (TypeError, ValueError):
        return math.inf
    return math.inf if math.isnan(v) else v


def _text_key(value: Any) -> str:
    return str(value if value is not None else "").lower()


def sort_subject_performance(
    subjects: List[Dict[str, Any]],
    field: Optional[str],
    direction: str = "asc",
) -> List[Dict[str, Any]]:
    """Sort the per-student subject rows by one column."""
    if direction not in SORT_DIRECTIONS:
        raise ValueError(f"Unknown sort direction: {direction}")
    subjects = list(subjects or [])
    if not field:
        return subjects

    if field in NUMERIC_SORT_FIELDS:
        key = lambda row: _numeric_key(row.get(field))
    else:
        key = lambda row: _text_key(row.get(field))
    return sorted(subjects, key=key, reverse=(direction == "desc"))


# ── Upstream query state ────────────────────────────────────────────

def subject_query_params(filters: Optional[Dict[str, Any]], sort: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Query parameters for the subjects endpoint, omitting empty values."""
    filters = filters or {}
    sort = sort or {}
    params = {
        "subject_query": (filters.get("subject_query") or "").strip(),
        "sort_by": sort.get("field") or "",
        "sort_direction": sort.get("direction") or "",
    }
    return {k: v for k, v in params.items() if v}


class Debouncer:
    """
    Hold back a rapidly changing value until it has been stable for `delay`
    seconds. Times are passed in explicitly (e.g. time.monotonic()).
    """

    def __init__(self, delay: float = SUBJECT_QUERY_DEBOUNCE_SECONDS, initial: str = ""):
        self.delay = delay
        self._pending = initial
        self._pushed_at: Optional[float] = None
        self._settled = initial

    def push(self, value: str, now: float) -> None:
        self._pending = value
        self._pushed_at = now

    def settled(self, now: float) -> str:
        if self._pushed_at is not None and now - self._pushed_at >= self.delay:
            self._settled = self._pending
            self._pushed_at = None
        return self._settled
