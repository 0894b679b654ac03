"""
Tests for the HTTP API — analytics, selections and report endpoints.
"""

import os
import sys
import pytest
import httpx
from fastapi.testclient import TestClient
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import routes.analytics as analytics_routes
from core.client import AnalyticsClient, QueryCache
from core.selections import MemoryStorage, SelectionRepository
from main import app
from routes.analytics import get_client
from routes.selections import get_repository

SUBJECTS_PAYLOAD = {
    "school_info": {"name": "Lycée Classique"},
    "period_info": {"type": "term", "id": 3, "name": "Term 1"},
    "subject_analysis": [
        {"subject_name": "Math", "average_score": 13.4, "pass_rate": 72.0},
        {"subject_name": "Bio", "average_score": 11.0, "pass_rate": 58.0},
    ],
    "sequence_breakdown": [
        {"subject_name": "Math", "sequence": "S1", "avg_score": 12.0},
        {"subject_name": "Bio", "sequence": "S2", "avg_score": 11.0},
    ],
}


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def fresh_cache(monkeypatch):
    monkeypatch.setattr(analytics_routes, "QUERY_CACHE", QueryCache())


def use_upstream(handler):
    upstream = AnalyticsClient(base_url="http://records.test/api", token="", transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_client] = lambda: upstream


class TestMeta:

    def test_health(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        assert res.json()["status"] == "ok"

    def test_config(self, client):
        assert "school_name" in client.get("/api/config").json()


class TestPostedViews:

    def test_subjects_view(self, client):
        res = client.post("/api/analytics/subjects/view", json={"data": SUBJECTS_PAYLOAD})
        assert res.status_code == 200
        body = res.json()
        assert body["breakdown"]["columns"] == ["S1", "S2"]
        assert body["summary"]["total_subjects"] == 2

    def test_column_order_option(self, client):
        payload = {**SUBJECTS_PAYLOAD, "sequence_breakdown": [
            {"subject_name": "Math", "sequence": "Sequence 2", "avg_score": 12.0},
            {"subject_name": "Math", "sequence": "Sequence 1", "avg_score": 11.0},
        ]}
        res = client.post(
            "/api/analytics/subjects/view",
            json={"data": payload, "column_order": "chronological"},
        )
        assert res.json()["breakdown"]["columns"] == ["Sequence 1", "Sequence 2"]

    def test_student_sort_option(self, client):
        data = {
            "period_info": {"name": "Sequence 1"},
            "subject_performance": [{"subject_name": "Math", "score": 9}, {"subject_name": "Bio", "score": 14}],
        }
        res = client.post(
            "/api/analytics/student/view",
            json={"data": data, "sort": {"field": "score", "direction": "desc"}},
        )
        assert [s["subject_name"] for s in res.json()["subject_performance"]] == ["Bio", "Math"]

    def test_bad_sort_direction(self, client):
        data = {"period_info": {"name": "Sequence 1"}, "subject_performance": []}
        res = client.post(
            "/api/analytics/student/view",
            json={"data": data, "sort": {"field": "score", "direction": "up"}},
        )
        assert res.status_code == 400

    @pytest.mark.parametrize("tab", ["student", "subjects"])
    def test_sort_must_be_an_object(self, client, tab):
        data = {"period_info": {"name": "Sequence 1"}, "subject_performance": []}
        res = client.post(f"/api/analytics/{tab}/view", json={"data": data, "sort": "score"})
        assert res.status_code == 400
        assert "sort" in res.json()["detail"]

    def test_missing_data(self, client):
        res = client.post("/api/analytics/school/view", json={})
        assert res.status_code == 400
        assert res.json()["detail"] == "No data provided."

    def test_unknown_tab(self, client):
        res = client.post("/api/analytics/weather/view", json={"data": {"a": 1}})
        assert res.status_code == 404


class TestFetchedViews:

    def test_fetch_and_build(self, client):
        seen = []

        def handler(request):
            seen.append(dict(request.url.params))
            return httpx.Response(200, json=SUBJECTS_PAYLOAD)

        use_upstream(handler)
        res = client.get("/api/analytics/subjects", params={
            "time_scope": "term", "period_id": "3", "subject_query": "ma", "sort_by": "pass_rate",
        })
        assert res.status_code == 200
        body = res.json()
        assert body["is_refetching"] is False
        assert body["sort"] == {
            "field": "pass_rate", "direction": "desc",
            "indicators": {"average_score": None, "pass_rate": "desc", "total_students": None, "coefficient": None},
        }
        assert seen[0] == {
            "time_scope": "term", "period_id": "3",
            "subject_query": "ma", "sort_by": "pass_rate", "sort_direction": "desc",
        }

    def test_cached_between_requests(self, client):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=SUBJECTS_PAYLOAD)

        use_upstream(handler)
        params = {"time_scope": "term", "period_id": "3"}
        client.get("/api/analytics/subjects", params=params)
        client.get("/api/analytics/subjects", params=params)
        assert len(calls) == 1

        client.get("/api/analytics/subjects", params={**params, "refresh": "true"})
        assert len(calls) == 2

    def test_not_found_is_empty(self, client):
        use_upstream(lambda request: httpx.Response(404, json={"detail": "Not found."}))
        res = client.get("/api/analytics/school", params={"time_scope": "term", "period_id": "3"})
        assert res.status_code == 200
        assert res.json()["empty"] is True

    def test_upstream_error_panel(self, client):
        use_upstream(lambda request: httpx.Response(403, json={"detail": "Not allowed."}))
        res = client.get("/api/analytics/classes", params={"time_scope": "year", "period_id": "7"})
        assert res.status_code == 403
        error = res.json()["error"]
        assert error["message"] == "Not allowed."
        assert error["retry"] == {"tab": "classes", "time_scope": "year", "period_id": "7"}

    def test_upstream_5xx_is_bad_gateway(self, client):
        use_upstream(lambda request: httpx.Response(500, json={"detail": "Server error."}))
        res = client.get("/api/analytics/school", params={"time_scope": "term"})
        assert res.status_code == 502
        assert res.json()["error"]["status_code"] == 500

    def test_class_requires_id(self, client):
        use_upstream(lambda request: httpx.Response(200, json={}))
        res = client.get("/api/analytics/class", params={"time_scope": "term"})
        assert res.status_code == 400


class TestSelections:

    @pytest.fixture(autouse=True)
    def memory_repository(self):
        repo = SelectionRepository(MemoryStorage())
        app.dependency_overrides[get_repository] = lambda: repo
        return repo

    def test_defaults_when_nothing_saved(self, client):
        body = client.get("/api/selections").json()
        assert body["saved"] is False
        assert body["selection"]["tab"] == "school"

    def test_save_and_load(self, client):
        selection = {"academicYear": "7", "term": "3", "tab": "classes", "scope": "term"}
        res = client.put("/api/selections", json=selection)
        assert res.json()["saved"] is True

        body = client.get("/api/selections").json()
        assert body["saved"] is True
        assert body["selection"]["academicYear"] == "7"
        assert body["selection"]["tab"] == "classes"

    def test_not_saved_without_year(self, client):
        res = client.put("/api/selections", json={"tab": "subjects"})
        assert res.json()["saved"] is False

    def test_unknown_field(self, client):
        res = client.put("/api/selections", json={"academicYear": "7", "colour": "blue"})
        assert res.status_code == 400

    def test_clear(self, client):
        client.put("/api/selections", json={"academicYear": "7"})
        res = client.delete("/api/selections")
        assert res.json()["selection"]["academicYear"] == ""
        assert client.get("/api/selections").json()["saved"] is False


class TestReports:

    def test_subjects_excel(self, client, tmp_path):
        res = client.post("/api/reports/subjects-excel", json={"data": SUBJECTS_PAYLOAD})
        assert res.status_code == 200
        assert res.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        out = tmp_path / "download.xlsx"
        out.write_bytes(res.content)
        assert load_workbook(out).sheetnames == ["Subjects", "Breakdown", "Info"]

    def test_missing_data(self, client):
        res = client.post("/api/reports/subjects-excel", json={})
        assert res.status_code == 400

    def test_bad_column_order(self, client):
        res = client.post("/api/reports/subjects-excel", json={"data": SUBJECTS_PAYLOAD, "column_order": "random"})
        assert res.status_code == 400
