"""Tests for Analytics Service HTTP handler."""
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from zonetrack.shared.database import ConnectionManager, DatabaseConfig
from zonetrack.services.analytics_service import AnalyticsPipeline
from zonetrack.services.analytics_service.handler import app, get_handler, set_handler

YEAR = "2024-2025"


@pytest.fixture
def client():
    """Flask test client."""
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def handler(pipeline):
    set_handler(pipeline)
    yield pipeline
    set_handler(None)


@pytest.fixture
def seeded(handler, school):
    school.add_class("c-1", "11-M1")
    school.add_student("s1", "Amna", "Raza", class_id="c-1")
    school.add_student("s2", "Bushra", "Ali")
    school.add_test("t-p1", "Physics", 25, datetime(2024, 9, 10))
    school.add_result("s1", "t-p1", 20)
    school.add_result("s2", "t-p1", 12)
    return handler


class TestHealthEndpoints:
    """Tests for /health and /ready."""

    def test_health_returns_200(self, client, handler):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json()["service"] == "analytics-service"

    def test_ready_in_memory(self, client, handler):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.get_json()["storage"] == "memory"

    def test_ready_reports_database_failure(self, client, handler):
        manager = MagicMock()
        manager.health_check.return_value = {"status": "error", "healthy": False}

        with patch.object(handler.analytics, "connection_manager", manager):
            response = client.get("/ready")

        assert response.status_code == 503
        assert response.get_json()["status"] == "not_ready"


class TestStorageSelection:
    """Tests for how get_handler picks its storage."""

    @pytest.fixture(autouse=True)
    def fresh_handler(self):
        set_handler(None)
        yield
        set_handler(None)

    def test_secret_arn_selects_postgresql(self):
        config = DatabaseConfig(host="secret-host")
        with patch.dict("os.environ", {"DB_SECRET_ARN": "arn:db"}, clear=True), \
                patch.object(DatabaseConfig, "from_secrets_manager", return_value=config) as load, \
                patch.object(AnalyticsPipeline, "from_env") as build:
            get_handler()

        load.assert_called_once_with("arn:db", region="us-east-1")
        connection_manager = build.call_args.args[0]
        assert isinstance(connection_manager, ConnectionManager)
        assert connection_manager.config.host == "secret-host"

    def test_no_database_settings_selects_memory(self):
        with patch.dict("os.environ", {}, clear=True):
            pipeline = get_handler()

        assert pipeline.analytics.uses_memory


class TestErrorMapping:
    """Tests for status codes."""

    def test_missing_academic_year_is_400(self, client, handler):
        response = client.get("/analytics/overview")

        assert response.status_code == 400
        assert "academic_year" in response.get_json()["error"]

    def test_statistics_not_generated_is_404(self, client, handler):
        response = client.get(f"/analytics/overview?academic_year={YEAR}")

        assert response.status_code == 404
        assert response.get_json()["code"] == "statistics_not_generated"

    def test_unknown_student_is_404(self, client, handler):
        response = client.get(f"/analytics/student/ghost?academic_year={YEAR}")

        assert response.status_code == 404
        assert response.get_json()["code"] == "student_not_found"

    def test_invalid_zone_is_400(self, client, seeded):
        response = client.get(f"/analytics/students?academic_year={YEAR}&zone=purple")

        assert response.status_code == 400

    def test_unsupported_export_format_is_400(self, client, seeded):
        client.post("/analytics/refresh/all", json={"academic_year": YEAR})

        response = client.get(f"/analytics/export/class/c-1?academic_year={YEAR}&format=pdf")

        assert response.status_code == 400
        assert response.get_json()["code"] == "unsupported_format"

    def test_unexpected_error_is_500(self, client, handler):
        with patch.object(handler.query, "get_college_overview", side_effect=RuntimeError("boom")):
            response = client.get(f"/analytics/overview?academic_year={YEAR}")

        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}


class TestRecalculationEndpoints:
    """Tests for calculation and refresh endpoints."""

    def test_calculate_student(self, client, seeded):
        response = client.post(
            "/analytics/calculate/student/s1",
            json={"academic_year": YEAR, "trigger": "new_result"},
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["overall_analytics"]["current_overall_percentage"] == 80.0
        assert data["calculation_history"][-1]["trigger"] == "new_result"

    def test_calculate_all_then_refresh(self, client, seeded):
        calculated = client.post("/analytics/calculate/all", json={"academic_year": YEAR})
        refreshed = client.post("/analytics/refresh/statistics", json={"academic_year": YEAR})

        assert calculated.get_json()["successful"] == 2
        assert refreshed.get_json()["subjects"] == ["Physics"]

    def test_refresh_all(self, client, seeded):
        response = client.post("/analytics/refresh/all", json={"academic_year": YEAR})

        data = response.get_json()
        assert data["validation"]["total"] == 2
        assert data["validation"]["fixed"] == 1
        assert data["student_analytics"]["successful"] == 2
        assert data["statistics"]["overall"]["college_wide_stats"]["total"] == 2


class TestReadEndpoints:
    """Tests for statistics and student reads after a refresh."""

    @pytest.fixture(autouse=True)
    def refreshed(self, client, seeded):
        client.post("/analytics/refresh/all", json={"academic_year": YEAR})

    def test_overview(self, client):
        data = client.get(f"/analytics/overview?academic_year={YEAR}").get_json()

        assert data["college_wide_stats"]["total"] == 2

    def test_campus_and_grade(self, client):
        campus = client.get(f"/analytics/campus/Girls?academic_year={YEAR}")
        grade = client.get(f"/analytics/campus/Girls/grade/11th?academic_year={YEAR}")
        missing = client.get(f"/analytics/campus/Online?academic_year={YEAR}")

        assert campus.get_json()["campus_stats"]["total"] == 2
        assert grade.get_json()["class_breakdown"][0]["class_id"] == "c-1"
        assert missing.status_code == 404

    def test_class_and_subject(self, client):
        class_detail = client.get(f"/analytics/class/c-1?academic_year={YEAR}").get_json()
        subject = client.get(f"/analytics/subject/Physics?academic_year={YEAR}").get_json()
        subjects = client.get(f"/analytics/subjects?academic_year={YEAR}").get_json()

        assert len(class_detail["students"]) == 2
        assert subject["college_wide_stats"]["total"] == 2
        assert subjects["subjects"] == ["Physics"]

    def test_student_search(self, client):
        data = client.get(f"/analytics/students?academic_year={YEAR}&zone=green").get_json()

        assert data["count"] == 1
        assert data["students"][0]["student_id"] == "s1"

    def test_student_views(self, client):
        analytics = client.get(f"/analytics/student/s1?academic_year={YEAR}")
        matrix = client.get(f"/analytics/student/s1/matrix?academic_year={YEAR}")
        graph = client.get(f"/analytics/student/s1/graph?academic_year={YEAR}")

        assert analytics.status_code == 200
        assert matrix.get_json()["performance_matrix"]["current_averages"]["overall"] == 80.0
        assert "overall_timeline" in graph.get_json()

    def test_exports(self, client):
        student = client.get(f"/analytics/export/student/s1?academic_year={YEAR}&format=csv")
        statistics = client.get(f"/analytics/export/statistics?academic_year={YEAR}")

        assert student.get_json()["format"] == "csv"
        assert statistics.get_json()["data"]["college_wide_stats"]["total"] == 2


class TestAssignmentEndpoints:
    """Tests for class assignment and data quality endpoints."""

    def test_assignment_statistics(self, client, seeded):
        data = client.get("/analytics/class-assignment/statistics").get_json()

        assert data == {"total": 2, "assigned": 1, "unassigned": 1, "assignment_rate": 50.0}

    def test_assign_all(self, client, seeded):
        data = client.post("/analytics/class-assignment/assign-all").get_json()

        assert data["assigned"] == 1
        assert seeded.students.find_by_id("s2").class_id == "c-1"

    def test_assign_selected_requires_list(self, client, seeded):
        response = client.post("/analytics/class-assignment/assign-selected", json={})

        assert response.status_code == 400

    def test_assign_selected(self, client, seeded):
        response = client.post(
            "/analytics/class-assignment/assign-selected",
            json={"student_ids": ["s2", "ghost"]},
        )

        data = response.get_json()
        assert data["assigned"] == 1
        assert data["failed"] == 1

    def test_data_quality(self, client, seeded):
        report = client.get("/analytics/data-quality/report").get_json()
        fixed = client.post("/analytics/data-quality/validate-student/s2").get_json()

        assert report["can_auto_fix"] == 1
        assert fixed["success"] is True
        assert fixed["fixes"]["fixed"][0]["issue"] == "NO_CLASS_ASSIGNMENT"
