"""
breakdown.py — Subject × period breakdown tables.

Groups flat breakdown entries ({subject_name, period_name, avg_score}) into
the matrix shown by the "breakdown view": one row per subject, one column
per sub-period (sequences within a term, or terms within a year).
"""

from typing import Any, Dict, List

import numpy as np
import pandas as pd

from core.periods import sort_periods

PLACEHOLDER = "-"
COLUMN_ORDERS = ("appearance", "chronological")


def group_by_subject(entries: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group entries by subject_name, keeping first-seen subject and entry order."""
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for entry in entries or []:
        groups.setdefault(entry.get("subject_name"), []).append(entry)
    return groups


def unique_period_names(entries: List[Dict[str, Any]], order: str = "appearance") -> List[str]:
    """
    Distinct period names used as the matrix columns.

    "appearance" keeps first-seen order from the payload; "chronological"
    sorts labels by their trailing number (Sequence 1, Sequence 2, ...).
    """
    if order not in COLUMN_ORDERS:
        raise ValueError(f"Unknown column order: {order}")
    names = list(dict.fromkeys(e.get("period_name") for e in entries or []))
    if order == "chronological":
        return sort_periods(names)
    return names


def _has_score(value: Any) -> bool:
    # 0 is treated as "no score", like an empty cell
    if value is None:
        return False
    try:
        v = float(value)
    except (TypeError, ValueError):
        return False
    return not np.isnan(v) and v != 0


def build_breakdown_matrix(entries: List[Dict[str, Any]], order: str = "appearance") -> Dict[str, Any]:
    """Build {columns, rows} with a placeholder for missing (subject, period) cells."""
    columns = unique_period_names(entries, order=order)
    rows = []
    for subject, period_scores in group_by_subject(entries).items():
        cells = []
        for period in columns:
            score = next(
                (p.get("avg_score") for p in period_scores if p.get("period_name") == period),
                None,
            )
            cells.append({
                "period": period,
                "score": score if _has_score(score) else PLACEHOLDER,
            })
        rows.append({"subject": subject, "cells": cells})
    return {"columns": columns, "rows": rows}


def breakdown_frame(entries: List[Dict[str, Any]], order: str = "appearance") -> pd.DataFrame:
    """Breakdown matrix as a DataFrame (subjects × periods, NaN where missing)."""
    columns = unique_period_names(entries, order=order)
    if not entries:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(entries, columns=["subject_name", "period_name", "avg_score"])
    df["avg_score"] = pd.to_numeric(df["avg_score"], errors="coerce")
    subjects = list(dict.fromkeys(df["subject_name"]))
    pivot = df.pivot_table(
        index="subject_name", columns="period_name",
        values="avg_score", aggfunc="first", dropna=False,
    )
    pivot = pivot.reindex(index=subjects, columns=columns)
    pivot.index.name = "subject"
    pivot.columns.name = None
    return pivot
