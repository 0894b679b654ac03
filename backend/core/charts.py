"""
charts.py — Chart and table projections for the analytics dashboards.

Maps already-aggregated API records onto the series shapes the charting
components expect:
- Class / subject summary bars (top 10 in backend order)
- Class comparison series (average, pass rate, grade distribution)
- Grade distribution pie slices
- Two-point performance trend
- Student performance history line
- Subject summary cards

Scores live on a 0-20 scale and rates on 0-100. Values that fail to parse
are drawn as 0 so every bar stays in place.
"""

from typing import Any, Dict, List, Optional, Tuple

import numpy as np

SCORE_DOMAIN: Tuple[float, float] = (0.0, 20.0)
PERCENT_DOMAIN: Tuple[float, float] = (0.0, 100.0)
PASS_RATE_THRESHOLD = 50
CHART_LIMIT = 10
SORT_METRICS = ("average", "passRate")

GRADE_BUCKETS = [
    ("excellent", "Excellent"),
    ("good", "Good"),
    ("average", "Average"),
    ("belowAvg", "BelowAverage"),
]


# ── Helpers ─────────────────────────────────────────────────────────

def _parse_float(val) -> Optional[float]:
    """Convert to float or return None."""
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else v
    except (TypeError, ValueError):
        return None


def coerce_number(val, default: float = 0.0) -> float:
    """parseFloat-with-fallback: anything unparseable becomes `default`."""
    v = _parse_float(val)
    return default if v is None else v


def clamp(value: float, domain: Tuple[float, float]) -> float:
    low, high = domain
    return max(low, min(high, value))


def _sanitize(obj):
    """Recursively coerce numpy scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


def _records(data: Any, key: str) -> List[Dict[str, Any]]:
    if not isinstance(data, dict):
        return []
    rows = data.get(key)
    if not isinstance(rows, list):
        return []
    return [r for r in rows if isinstance(r, dict)]


def _count_coerced(rows: List[Dict[str, Any]], fields: List[str]) -> int:
    """Number of field values that had to fall back to 0."""
    return sum(
        1 for row in rows for f in fields
        if f in row and row[f] is not None and _parse_float(row[f]) is None
    )


def _sort_by_metric(series: List[Dict[str, Any]], metric: Optional[str]) -> List[Dict[str, Any]]:
    if metric is None:
        return series
    if metric not in SORT_METRICS:
        raise ValueError(f"Unknown sort metric: {metric}")
    return sorted(series, key=lambda row: row[metric], reverse=True)


# ── School overview bars ────────────────────────────────────────────

def project_class_summary(data: Any, limit: int = CHART_LIMIT, metric: Optional[str] = None) -> Dict[str, Any]:
    """Class average / pass-rate bars from school performance `class_summary`."""
    rows = _records(data, "class_summary")[:limit]
    school_average = clamp(coerce_number(data.get("average") if isinstance(data, dict) else None), SCORE_DOMAIN)

    series = [
        {
            "name": row.get("class_name"),
            "average": clamp(coerce_number(row.get("average")), SCORE_DOMAIN),
            "passRate": clamp(coerce_number(row.get("pass_rate")) * 100, PERCENT_DOMAIN),
            "schoolAverage": school_average,
            "isTopClass": bool(row.get("is_top_class")),
        }
        for row in rows
    ]
    return _sanitize({
        "series": _sort_by_metric(series, metric),
        "domains": {"average": list(SCORE_DOMAIN), "passRate": list(PERCENT_DOMAIN)},
        "coerced": _count_coerced(rows, ["average", "pass_rate"]),
    })


def project_subject_summary(data: Any, limit: int = CHART_LIMIT, metric: Optional[str] = None) -> Dict[str, Any]:
    """Subject average / pass-rate bars from school performance `subject_summary`."""
    rows = _records(data, "subject_summary")[:limit]
    series = [
        {
            "name": row.get("subject_name"),
            "average": clamp(coerce_number(row.get("average")), SCORE_DOMAIN),
            "passRate": clamp(coerce_number(row.get("pass_rate")) * 100, PERCENT_DOMAIN),
        }
        for row in rows
    ]
    return _sanitize({
        "series": _sort_by_metric(series, metric),
        "domains": {"average": list(SCORE_DOMAIN), "passRate": list(PERCENT_DOMAIN)},
        "coerced": _count_coerced(rows, ["average", "pass_rate"]),
    })


def project_grade_distribution(data: Any) -> List[Dict[str, Any]]:
    """Pie slices for the school grade distribution, empty buckets removed."""
    distribution = data.get("grade_distribution") if isinstance(data, dict) else None
    if not isinstance(distribution, dict):
        distribution = {}
    slices = [
        {"name": name, "value": coerce_number(distribution.get(key))}
        for name, key in GRADE_BUCKETS
    ]
    return _sanitize([s for s in slices if s["value"] > 0])


def project_trend(data: Any) -> Dict[str, Any]:
    """Previous vs current period averages from `trend_analysis`."""
    trend = data.get("trend_analysis") if isinstance(data, dict) else None
    if not isinstance(trend, dict):
        return {"points": [], "improving": None, "percent_change": None}

    previous_name = trend.get("previous_sequence") or trend.get("previous_term") or "previous"
    points = [
        {
            "name": previous_name,
            "average": coerce_number(trend.get("previous_average")),
            "percentChange": coerce_number(trend.get("percent_change")),
        },
        {
            "name": "current",
            "average": coerce_number(trend.get("current_average")),
            "percentChange": 0.0,
        },
    ]
    averages = [p["average"] for p in points]
    return _sanitize({
        "points": points,
        "improving": points[1]["average"] > points[0]["average"],
        "percent_change": round(abs(points[0]["percentChange"]), 2),
        "domain": [min(0.0, min(averages)), max(averages) * 1.1],
    })


def percent_trend(data: Any, metric: str) -> Optional[float]:
    """Percent change of `metric` against the previous entry in `trends`."""
    if not isinstance(data, dict):
        return None
    trends = data.get("trends")
    if not isinstance(trends, list) or len(trends) < 2 or not isinstance(trends[-2], dict):
        return None
    current = coerce_number(data.get(metric))
    previous = coerce_number(trends[-2].get(metric))
    if previous == 0:
        return None
    return round((current - previous) / previous * 100, 1)


# ── Class comparison tab ────────────────────────────────────────────

def project_class_comparison(data: Any) -> Dict[str, Any]:
    """Series for the class comparison charts and table, best class first."""
    classes = _records(data, "class_comparison")
    if not classes:
        return {"empty": True, "class_count": 0}

    def _avg(cls):
        return coerce_number(cls.get("average_score"))

    ordered = sorted(classes, key=_avg, reverse=True)
    school_average = coerce_number(data.get("school_average"))

    average_series, pass_rate_series, distribution_series, table = [], [], [], []
    for cls in ordered:
        average = clamp(_avg(cls), SCORE_DOMAIN)
        comparison = coerce_number(cls.get("comparison_to_school"))
        pass_rate = clamp(coerce_number(cls.get("pass_rate")), PERCENT_DOMAIN)
        dist = cls.get("grade_distribution") if isinstance(cls.get("grade_distribution"), dict) else {}

        average_series.append({
            "name": cls.get("class_name"),
            "score": average,
            "comparison": round(comparison, 2),
            "aboveSchool": comparison >= 0,
        })
        pass_rate_series.append({
            "name": cls.get("class_name"),
            "rate": pass_rate,
            "passing": pass_rate >= PASS_RATE_THRESHOLD,
        })
        distribution_series.append({
            "name": cls.get("class_name"),
            "excellent": coerce_number(dist.get("excellent")),
            "good": coerce_number(dist.get("good")),
            "average": coerce_number(dist.get("average")),
            "belowAverage": coerce_number(dist.get("below_average")),
            "total": coerce_number(cls.get("student_count")),
        })
        table.append({
            "class_id": cls.get("class_id"),
            "class_name": cls.get("class_name"),
            "student_count": cls.get("student_count"),
            "average_score": average,
            "comparison_to_school": round(comparison, 2),
            "pass_rate": pass_rate,
            "grade_distribution": dist,
        })

    return _sanitize({
        "empty": False,
        "class_count": len(ordered),
        "school_average": school_average,
        "top_performer": table[0],
        "bottom_performer": table[-1],
        "series": {
            "average": average_series,
            "pass_rate": pass_rate_series,
            "distribution": distribution_series,
        },
        "reference_lines": {"average": school_average, "pass_rate": PASS_RATE_THRESHOLD},
        "domains": {"average": list(SCORE_DOMAIN), "pass_rate": list(PERCENT_DOMAIN)},
        "table": table,
        "coerced": _count_coerced(classes, ["average_score", "pass_rate", "comparison_to_school"]),
    })


def grade_distribution_shares(distribution: Optional[Dict[str, Any]], total: Any) -> Dict[str, float]:
    """Each grade bucket as a percentage of the class size."""
    distribution = distribution or {}
    total = coerce_number(total)
    shares = {}
    for key in ("excellent", "good", "average", "below_average"):
        count = coerce_number(distribution.get(key))
        shares[key] = round(count / total * 100, 1) if total > 0 else 0.0
    return shares


# ── Subject tab cards ───────────────────────────────────────────────

def subject_summary_cards(subjects: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Header cards of the subject analysis tab."""
    subjects = [s for s in subjects or [] if isinstance(s, dict)]
    if not subjects:
        return {"total_subjects": 0, "avg_pass_rate": 0.0, "avg_score": 0.0, "best_subject": "-"}

    n = len(subjects)
    return {
        "total_subjects": n,
        "avg_pass_rate": round(sum(coerce_number(s.get("pass_rate")) for s in subjects) / n, 1),
        "avg_score": round(sum(coerce_number(s.get("average_score")) for s in subjects) / n, 1),
        "best_subject": subjects[0].get("subject_name") or "-",
    }


# ── Student analytics ───────────────────────────────────────────────

def student_trend_series(trend_analysis: Any) -> List[Dict[str, Any]]:
    """Pair overall performance history with its period labels."""
    overall = trend_analysis.get("overall") if isinstance(trend_analysis, dict) else None
    if not isinstance(overall, dict):
        return []
    history = overall.get("performance_history")
    labels = overall.get("period_labels")
    if not isinstance(history, list) or not isinstance(labels, list):
        return []
    if not history or len(history) != len(labels):
        return []
    return [
        {"name": label, "value": _parse_float(value)}
        for label, value in zip(labels, history)
    ]


def chart_points(series: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop missing values; a line needs at least two points."""
    points = [p for p in series or [] if p.get("value") is not None]
    return points if len(points) >= 2 else []
