"""
view_models.py — Per-tab view-models for the analytics dashboards.

Each builder runs the same pipeline over a raw upstream payload:
normalize → derive sort/filter state → project for charts and tables.
Builders never raise on malformed payloads; a missing payload yields
{"empty": True}.

Tabs:
- school    school overview header, metric cards, charts, insight cards
- subjects  subject table, summary cards, subject × period breakdown
- classes   class comparison charts and table
- class     single class performance
- student   per-student analytics with in-memory subject sort
"""

from typing import Any, Dict, List, Optional

from core.breakdown import build_breakdown_matrix
from core.charts import (
    _sanitize,
    chart_points,
    coerce_number,
    grade_distribution_shares,
    percent_trend,
    project_class_comparison,
    project_class_summary,
    project_grade_distribution,
    project_subject_summary,
    project_trend,
    student_trend_series,
    subject_summary_cards,
)
from core.insights import build_insight_cards
from core.periods import normalize_period_payload, period_label, record_breakdown
from core.sorting import DEFAULT_SORT, sort_indicator, sort_subject_performance

SUBJECT_SORT_FIELDS = ("average_score", "pass_rate", "total_students", "coefficient")
STUDENT_SORT_FIELDS = ("subject_name", "coefficient", "score", "class_average", "difference", "rank", "status")

PERIOD_FALLBACK_NAMES = {
    "sequence": "Current Sequence",
    "term": "Current Term",
    "year": "Current Year",
}

EMPTY_VIEW = {"empty": True}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


# ── School overview ─────────────────────────────────────────────────

def adapt_school_payload(api_data: Any, time_scope: Optional[str]) -> Optional[Dict[str, Any]]:
    """Reshape the school performance payload into the overview's flat shape."""
    if not isinstance(api_data, dict) or not api_data:
        return None

    info_key = {"sequence": "sequence_info", "term": "term_info", "year": "year_info"}.get(time_scope or "")
    period_info = _dict(api_data.get(info_key)) if info_key else {}
    period_name = period_info.get("name") or PERIOD_FALLBACK_NAMES.get(time_scope or "", "Current Period")

    trend_analysis = api_data.get("trend_analysis")
    trends: List[Dict[str, Any]] = []
    if time_scope == "sequence" and isinstance(trend_analysis, dict):
        trends = [
            {"period_name": trend_analysis.get("previous_sequence") or "Previous",
             "average": coerce_number(trend_analysis.get("previous_average"))},
            {"period_name": "Current",
             "average": coerce_number(trend_analysis.get("current_average"))},
        ]
    elif isinstance(trend_analysis, list):
        for item in trend_analysis:
            item = _dict(item)
            pass_rate = item.get("pass_rate")
            trends.append({
                "period_name": item.get("period_name") or "Period",
                "average": coerce_number(item.get("avg_score")),
                "pass_rate": coerce_number(pass_rate) / 100 if pass_rate else None,
            })

    overall = _dict(api_data.get("overall_performance"))
    distribution = _dict(api_data.get("grade_distribution"))
    insights = _dict(api_data.get("actionable_insights"))
    subjects = [_dict(s) for s in _list(api_data.get("subject_performance"))]
    classes = [_dict(c) for c in _list(api_data.get("class_performance"))]
    top_classes = [_dict(c) for c in _list(api_data.get("top_classes"))]
    top_class_ids = {c.get("class_id") for c in top_classes}

    areas_for_improvement = [
        f"{_dict(c).get('class_name')} has a pass rate of {coerce_number(_dict(c).get('pass_rate')):.1f}%"
        for c in _list(insights.get("underperforming_classes"))[:3]
    ] + [
        f"{_dict(s).get('subject_name')} has a pass rate of {coerce_number(_dict(s).get('pass_rate')):.1f}%"
        for s in _list(insights.get("underperforming_subjects"))[:3]
    ]

    top_subject = subjects[0] if subjects else {}
    top_class = top_classes[0] if top_classes else {}
    strengths = [
        f"Top subject: {top_subject.get('subject_name') or 'N/A'} "
        f"(Avg: {coerce_number(top_subject.get('avg_score')):.1f})",
        f"Top class: {top_class.get('class_name') or 'N/A'} "
        f"(Avg: {coerce_number(top_class.get('avg_score')):.1f})",
    ]

    stats = _dict(api_data.get("statistical_distribution"))
    return {
        "school_name": _dict(api_data.get("school_info")).get("name") or "School Report",
        "period_name": period_name,
        "average": coerce_number(overall.get("average")),
        "pass_rate": coerce_number(overall.get("pass_rate")) / 100,
        "total_students": int(coerce_number(overall.get("total_students"))),
        "total_classes": len(classes),
        "top_score": coerce_number(overall.get("highest_average")),
        "lowest_average": coerce_number(overall.get("lowest_average")),
        "grade_distribution": {
            "Excellent": coerce_number(distribution.get("excellent")),
            "Good": coerce_number(distribution.get("good")),
            "Average": coerce_number(distribution.get("average")),
            "BelowAverage": coerce_number(distribution.get("below_average")),
        },
        "trends": trends,
        "trend_analysis": trend_analysis if isinstance(trend_analysis, dict) else None,
        "subject_summary": [
            {
                "subject_name": s.get("subject_name"),
                "average": s.get("avg_score"),
                "pass_rate": coerce_number(s.get("pass_rate")) / 100,
                "std_dev": s.get("std_dev"),
            }
            for s in subjects
        ],
        "class_summary": [
            {
                "class_name": c.get("class_name"),
                "average": c.get("avg_score"),
                "pass_rate": coerce_number(c.get("pass_rate")) / 100,
                "student_count": c.get("student_count"),
                "std_dev": c.get("std_dev"),
                "is_top_class": c.get("class_id") in top_class_ids,
            }
            for c in classes
        ],
        "top_students": _list(api_data.get("top_students")),
        "top_classes": top_classes,
        "areas_for_improvement": areas_for_improvement,
        "strengths": strengths,
        "std_deviation": coerce_number(stats.get("std_dev")),
        "percentile_25": coerce_number(stats.get("percentile_25")),
        "percentile_50": coerce_number(stats.get("percentile_50")),
        "percentile_75": coerce_number(stats.get("percentile_75")),
        "interquartile_range": coerce_number(stats.get("interquartile_range")),
        "outstanding_classes": _list(insights.get("outstanding_classes")),
        "concerning_classes": _list(insights.get("concerning_classes")),
        "intervention_needed": bool(insights.get("intervention_needed")),
        "demographic_breakdown": api_data.get("demographic_breakdown") or {"sex": [], "age_groups": []},
        "teacher_effectiveness": _list(api_data.get("teacher_effectiveness")),
        "at_risk_students": _list(_dict(api_data.get("predictive_analytics")).get("at_risk_students")),
    }


def build_school_overview_view(
    api_data: Any,
    time_scope: Optional[str] = "term",
    reveals: Optional[Dict[str, int]] = None,
) -> Dict[str, Any]:
    data = adapt_school_payload(api_data, time_scope)
    if data is None:
        return dict(EMPTY_VIEW)

    metrics = {
        "average": {"value": round(data["average"], 2), "trend": percent_trend(data, "average")},
        "pass_rate": {"value": round(data["pass_rate"] * 100, 1), "trend": percent_trend(data, "pass_rate")},
        "total_students": {"value": data["total_students"]},
        "total_classes": {"value": data["total_classes"]},
    }
    return _sanitize({
        "empty": False,
        "header": {
            "school_name": data["school_name"],
            "period_name": data["period_name"],
            "intervention_needed": data["intervention_needed"],
        },
        "metrics": metrics,
        "statistics": {
            key: data[key]
            for key in ("top_score", "lowest_average", "std_deviation", "percentile_25",
                        "percentile_50", "percentile_75", "interquartile_range")
        },
        "charts": {
            "grade_distribution": project_grade_distribution(data),
            "trend": project_trend(data),
            "class_comparison": project_class_summary(data),
            "subject_performance": project_subject_summary(data),
        },
        "insights": build_insight_cards(data, reveals=reveals),
    })


# ── Subject analysis ────────────────────────────────────────────────

def build_subject_analysis_view(
    api_data: Any,
    sort: Optional[Dict[str, Any]] = None,
    subject_query: str = "",
    column_order: str = "appearance",
) -> Dict[str, Any]:
    """
    Subject analysis tab. Rows keep the server's order: sorting and the
    subject-name filter were applied upstream from the same sort state.
    """
    normalized = normalize_period_payload(api_data)
    if not isinstance(normalized, dict) or not normalized:
        return dict(EMPTY_VIEW)

    sort = _dict(sort) or DEFAULT_SORT
    subjects = [s for s in _list(normalized.get("subject_analysis")) if isinstance(s, dict)]
    breakdown = _list(normalized.get("breakdown"))
    period_info = _dict(normalized.get("period_info"))

    return _sanitize({
        "empty": False,
        "school_info": normalized.get("school_info"),
        "period_info": period_info,
        "period_label": period_label(period_info),
        "summary": subject_summary_cards(subjects),
        "sort": {
            "field": sort.get("field"),
            "direction": sort.get("direction"),
            "indicators": {f: sort_indicator(sort, f) for f in SUBJECT_SORT_FIELDS},
        },
        "filters": {"subject_query": subject_query},
        "subjects": subjects,
        "breakdown_type": normalized.get("breakdown_type"),
        "breakdown": build_breakdown_matrix(breakdown, order=column_order) if breakdown else None,
    })


# ── Class comparison ────────────────────────────────────────────────

def build_class_comparison_view(api_data: Any, column_order: str = "appearance") -> Dict[str, Any]:
    projection = project_class_comparison(api_data)
    if projection.get("empty"):
        return projection

    period_info = _dict(api_data.get("period_info"))
    breakdowns = {}
    for cls in _list(api_data.get("class_comparison")):
        entries = record_breakdown(cls, period_info.get("type"))
        if entries:
            breakdowns[str(_dict(cls).get("class_name"))] = build_breakdown_matrix(entries, order=column_order)

    projection.update({
        "school_info": _dict(api_data.get("school_info")),
        "period_info": period_info,
        "period_label": period_label(period_info),
        "class_breakdowns": breakdowns,
    })
    return _sanitize(projection)


# ── Class performance ───────────────────────────────────────────────

def class_period_display(data: Dict[str, Any], time_scope: Optional[str]) -> str:
    sequence_info = _dict(data.get("sequence_info"))
    term_info = _dict(data.get("term_info"))
    year_info = _dict(data.get("year_info"))
    if time_scope == "sequence" and sequence_info:
        parts = [sequence_info.get("name"), sequence_info.get("term"), sequence_info.get("year")]
    elif time_scope == "term" and term_info:
        parts = [term_info.get("name"), term_info.get("year")]
    elif time_scope == "year" and year_info:
        parts = [year_info.get("name")]
    else:
        return "Unknown period"
    return " - ".join(str(p) for p in parts if p)


def build_class_performance_view(api_data: Any, time_scope: Optional[str] = "term") -> Dict[str, Any]:
    if not isinstance(api_data, dict) or not api_data:
        return dict(EMPTY_VIEW)

    overall = _dict(api_data.get("overall_performance"))
    total = overall.get("total_students")
    subjects = sorted(
        (_dict(s) for s in _list(api_data.get("subject_performance"))),
        key=lambda s: coerce_number(s.get("avg_score")),
        reverse=True,
    )
    subject_rows = []
    for s in subjects:
        subject_rows.append({
            **s,
            "distribution_shares": grade_distribution_shares(
                {
                    "excellent": s.get("excellent_count"),
                    "good": s.get("good_count"),
                    "average": s.get("average_count"),
                    "below_average": s.get("below_average_count"),
                },
                total,
            ),
        })

    comparison = coerce_number(overall.get("comparison_to_school"))
    return _sanitize({
        "empty": False,
        "class_info": _dict(api_data.get("class_info")),
        "period_display": class_period_display(api_data, time_scope),
        "overall_performance": overall,
        "above_school": comparison >= 0,
        "grade_distribution": _dict(api_data.get("grade_distribution")),
        "grade_distribution_shares": grade_distribution_shares(_dict(api_data.get("grade_distribution")), total),
        "subject_performance": subject_rows,
        "top_students": _list(api_data.get("top_students")),
        "risk_analysis": _dict(api_data.get("risk_analysis")),
        "largest_performance_gaps": _list(api_data.get("largest_performance_gaps")),
    })


# ── Student analytics ───────────────────────────────────────────────

def build_student_analytics_view(
    api_data: Any,
    sort: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    if not isinstance(api_data, dict) or not api_data.get("period_info"):
        return dict(EMPTY_VIEW)

    sort = _dict(sort)
    subjects = [s for s in _list(api_data.get("subject_performance")) if isinstance(s, dict)]
    sorted_subjects = sort_subject_performance(subjects, sort.get("field"), sort.get("direction") or "asc")
    overall = _dict(api_data.get("overall_performance"))

    rank_text = None
    if overall.get("rank") and overall.get("class_size"):
        rank_text = f"{overall['rank']} / {overall['class_size']}"

    return _sanitize({
        "empty": False,
        "student_info": _dict(api_data.get("student_info")),
        "period_info": _dict(api_data.get("period_info")),
        "overall_performance": overall,
        "rank_text": rank_text,
        "subject_performance": sorted_subjects,
        "sort": {
            "field": sort.get("field"),
            "direction": sort.get("direction"),
            "indicators": {f: sort_indicator(sort, f) for f in STUDENT_SORT_FIELDS},
        },
        "trend_chart": chart_points(student_trend_series(api_data.get("trend_analysis"))),
        "trend_analysis": _dict(api_data.get("trend_analysis")),
        "strengths_weaknesses": _dict(api_data.get("strengths_weaknesses")),
        "progress": api_data.get("progress"),
    })


VIEW_BUILDERS = {
    "school": build_school_overview_view,
    "subjects": build_subject_analysis_view,
    "classes": build_class_comparison_view,
    "class": build_class_performance_view,
    "student": build_student_analytics_view,
}
