"""
Tests for core/view_models.py — per-tab view-model composition.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.view_models import (
    adapt_school_payload,
    build_class_comparison_view,
    build_class_performance_view,
    build_school_overview_view,
    build_student_analytics_view,
    build_subject_analysis_view,
    class_period_display,
)


@pytest.fixture
def school_payload():
    return {
        "school_info": {"name": "Lycée de Bonabéri"},
        "term_info": {"id": 3, "name": "Term 1"},
        "overall_performance": {
            "average": 11.8, "pass_rate": 64.0, "total_students": 420,
            "highest_average": 17.2, "lowest_average": 4.1,
        },
        "grade_distribution": {"excellent": 40, "good": 120, "average": 160, "below_average": 100},
        "subject_performance": [
            {"subject_name": "Math", "avg_score": 13.4, "pass_rate": 72.0, "std_dev": 2.1},
            {"subject_name": "French", "avg_score": 10.2, "pass_rate": 48.0, "std_dev": 3.0},
        ],
        "class_performance": [
            {"class_id": 1, "class_name": "Form 1A", "avg_score": 12.9, "pass_rate": 70.0, "student_count": 40},
            {"class_id": 2, "class_name": "Form 1B", "avg_score": 9.8, "pass_rate": 41.0, "student_count": 38},
        ],
        "top_classes": [{"class_id": 1, "class_name": "Form 1A", "avg_score": 12.9}],
        "trend_analysis": [
            {"period_name": "Term 3", "avg_score": 11.0, "pass_rate": 60.0},
            {"period_name": "Term 1", "avg_score": 11.8, "pass_rate": 64.0},
        ],
        "actionable_insights": {
            "underperforming_classes": [{"class_name": "Form 1B", "pass_rate": 41.0}],
            "underperforming_subjects": [{"subject_name": "French", "pass_rate": 48.0}],
            "concerning_classes": [],
            "intervention_needed": True,
        },
        "predictive_analytics": {"at_risk_students": [f"Student {i}" for i in range(12)]},
    }


@pytest.fixture
def subjects_payload():
    return {
        "school_info": {"name": "Lycée de Bonabéri"},
        "period_info": {"type": "term", "id": 3, "name": "Term 1", "year": "2024/2025"},
        "subject_analysis": [
            {"subject_name": "Math", "average_score": 13.4, "pass_rate": 72.0, "coefficient": 4},
            {"subject_name": "Bio", "average_score": 11.0, "pass_rate": 58.0, "coefficient": 2},
        ],
        "sequence_breakdown": [
            {"subject_name": "Math", "sequence": "S1", "avg_score": 12.0},
            {"subject_name": "Math", "sequence": "S2", "avg_score": 14.0},
            {"subject_name": "Bio", "sequence": "S1", "avg_score": 11.0},
        ],
    }


class TestSchoolOverview:

    def test_adapt_payload(self, school_payload):
        data = adapt_school_payload(school_payload, "term")
        assert data["school_name"] == "Lycée de Bonabéri"
        assert data["period_name"] == "Term 1"
        assert data["pass_rate"] == pytest.approx(0.64)
        assert data["total_classes"] == 2
        assert data["grade_distribution"]["BelowAverage"] == 100
        assert [c["is_top_class"] for c in data["class_summary"]] == [True, False]
        assert data["areas_for_improvement"] == [
            "Form 1B has a pass rate of 41.0%",
            "French has a pass rate of 48.0%",
        ]
        assert data["strengths"][0] == "Top subject: Math (Avg: 13.4)"

    def test_fallback_period_name(self, school_payload):
        del school_payload["term_info"]
        assert adapt_school_payload(school_payload, "term")["period_name"] == "Current Term"

    def test_sequence_trend(self):
        payload = {
            "overall_performance": {"average": 12},
            "trend_analysis": {"previous_sequence": "Sequence 1", "previous_average": 10, "current_average": 12},
        }
        trends = adapt_school_payload(payload, "sequence")["trends"]
        assert [t["period_name"] for t in trends] == ["Sequence 1", "Current"]

    def test_view(self, school_payload):
        view = build_school_overview_view(school_payload, "term")
        assert view["empty"] is False
        assert view["header"]["intervention_needed"] is True
        assert view["metrics"]["pass_rate"]["value"] == 64.0
        assert view["metrics"]["average"]["trend"] == pytest.approx(7.3)
        assert [row["name"] for row in view["charts"]["class_comparison"]["series"]] == ["Form 1A", "Form 1B"]
        assert view["charts"]["class_comparison"]["series"][0]["passRate"] == pytest.approx(70.0)

        cards = {card["key"]: card for card in view["insights"]}
        assert "concerning_classes" not in cards
        assert cards["at_risk_students"]["visible_count"] == 10
        assert cards["at_risk_students"]["has_more"] is True

    def test_view_reveals(self, school_payload):
        view = build_school_overview_view(school_payload, "term", reveals={"at_risk_students": 1})
        cards = {card["key"]: card for card in view["insights"]}
        assert cards["at_risk_students"]["visible_count"] == 12

    @pytest.mark.parametrize("payload", [None, {}, "not a dict"])
    def test_empty(self, payload):
        assert build_school_overview_view(payload) == {"empty": True}


class TestSubjectAnalysis:

    def test_breakdown_and_cards(self, subjects_payload):
        view = build_subject_analysis_view(subjects_payload)
        assert view["breakdown_type"] == "sequence"
        assert view["breakdown"]["columns"] == ["S1", "S2"]
        assert [c["score"] for c in view["breakdown"]["rows"][1]["cells"]] == [11.0, "-"]
        assert view["summary"]["best_subject"] == "Math"
        assert view["period_label"] == "Term 1 (2024/2025)"

    def test_rows_keep_server_order(self, subjects_payload):
        view = build_subject_analysis_view(subjects_payload, sort={"field": "pass_rate", "direction": "asc"})
        assert [s["subject_name"] for s in view["subjects"]] == ["Math", "Bio"]
        assert view["sort"]["indicators"]["pass_rate"] == "asc"
        assert view["sort"]["indicators"]["average_score"] is None

    def test_default_sort(self, subjects_payload):
        view = build_subject_analysis_view(subjects_payload)
        assert view["sort"]["field"] == "average_score"
        assert view["sort"]["direction"] == "desc"

    def test_non_mapping_sort_falls_back_to_default(self, subjects_payload):
        view = build_subject_analysis_view(subjects_payload, sort=["pass_rate"])
        assert view["sort"]["field"] == "average_score"

    def test_sequence_period_has_no_breakdown(self, subjects_payload):
        subjects_payload["period_info"]["type"] = "sequence"
        assert build_subject_analysis_view(subjects_payload)["breakdown"] is None

    def test_empty(self):
        assert build_subject_analysis_view(None) == {"empty": True}


class TestClassComparison:

    def test_per_class_breakdown(self):
        payload = {
            "period_info": {"type": "year", "name": "2024/2025"},
            "school_average": 11.0,
            "class_comparison": [
                {"class_name": "Form 1A", "average_score": 12.0, "pass_rate": 65.0,
                 "term_breakdown": [{"term": "Term 1", "avg_score": 11.5}, {"term": "Term 2", "avg_score": 12.5}]},
            ],
        }
        view = build_class_comparison_view(payload)
        assert view["class_count"] == 1
        assert view["class_breakdowns"]["Form 1A"]["columns"] == ["Term 1", "Term 2"]
        assert view["period_label"] == "2024/2025"

    def test_empty(self):
        assert build_class_comparison_view({"class_comparison": []})["empty"] is True


class TestClassPerformance:

    @pytest.fixture
    def class_payload(self):
        return {
            "class_info": {"id": 4, "name": "Form 2C"},
            "term_info": {"name": "Term 2", "year": "2024/2025"},
            "overall_performance": {"average": 11.2, "total_students": 40, "comparison_to_school": -0.4},
            "grade_distribution": {"excellent": 4, "good": 12, "average": 16, "below_average": 8},
            "subject_performance": [
                {"subject_name": "Bio", "avg_score": 10.1, "excellent_count": 2},
                {"subject_name": "Math", "avg_score": 12.7, "excellent_count": 8},
            ],
        }

    def test_subjects_sorted_by_average(self, class_payload):
        view = build_class_performance_view(class_payload, "term")
        assert [s["subject_name"] for s in view["subject_performance"]] == ["Math", "Bio"]
        assert view["subject_performance"][0]["distribution_shares"]["excellent"] == 20.0

    def test_shares_and_period(self, class_payload):
        view = build_class_performance_view(class_payload, "term")
        assert view["grade_distribution_shares"]["good"] == 30.0
        assert view["period_display"] == "Term 2 - 2024/2025"
        assert view["above_school"] is False

    def test_unknown_period(self):
        assert class_period_display({}, "year") == "Unknown period"


class TestStudentAnalytics:

    @pytest.fixture
    def student_payload(self):
        return {
            "student_info": {"id": 12, "name": "Ngono Marie"},
            "period_info": {"type": "sequence", "name": "Sequence 3"},
            "overall_performance": {"average": 13.1, "rank": 4, "class_size": 42},
            "subject_performance": [
                {"subject_name": "Math", "score": 15.0},
                {"subject_name": "Bio", "score": None},
                {"subject_name": "French", "score": 9.5},
            ],
            "trend_analysis": {"overall": {
                "performance_history": [11.0, 12.2, 13.1],
                "period_labels": ["Sequence 1", "Sequence 2", "Sequence 3"],
            }},
        }

    def test_sorted_subjects(self, student_payload):
        view = build_student_analytics_view(student_payload, sort={"field": "score", "direction": "asc"})
        assert [s["subject_name"] for s in view["subject_performance"]] == ["French", "Math", "Bio"]
        assert view["sort"]["indicators"]["score"] == "asc"

    def test_unsorted_by_default(self, student_payload):
        view = build_student_analytics_view(student_payload)
        assert [s["subject_name"] for s in view["subject_performance"]] == ["Math", "Bio", "French"]

    def test_non_mapping_sort_ignored(self, student_payload):
        view = build_student_analytics_view(student_payload, sort="score")
        assert [s["subject_name"] for s in view["subject_performance"]] == ["Math", "Bio", "French"]
        assert view["sort"]["field"] is None

    def test_rank_and_trend(self, student_payload):
        view = build_student_analytics_view(student_payload)
        assert view["rank_text"] == "4 / 42"
        assert [p["name"] for p in view["trend_chart"]] == ["Sequence 1", "Sequence 2", "Sequence 3"]

    def test_no_period_is_empty(self):
        assert build_student_analytics_view({"student_info": {"id": 1}}) == {"empty": True}
