"""Tests for pipeline wiring and force refresh."""
from datetime import datetime
from unittest.mock import patch

from zonetrack.services.analytics_service import AnalyticsPipeline

YEAR = "2024-2025"


class TestPipelineWiring:
    """Tests for AnalyticsPipeline construction."""

    def test_services_share_repositories(self, pipeline):
        assert pipeline.builder.students is pipeline.students
        assert pipeline.validator.assignment is pipeline.assignment
        assert pipeline.query.analytics is pipeline.aggregation.analytics
        assert pipeline.exporter.query is pipeline.query
        assert pipeline.analytics.uses_memory is True

    def test_from_env(self):
        with patch.dict("os.environ", {
            "ANALYTICS_BATCH_SIZE": "4",
            "ANALYTICS_HISTORY_LIMIT": "6",
            "CLASS_CAPACITY": "30",
        }):
            pipeline = AnalyticsPipeline.from_env()

        assert pipeline.analytics_config.batch_size == 4
        assert pipeline.analytics_config.history_limit == 6
        assert pipeline.assignment_config.class_capacity == 30


class TestForceRefresh:
    """Tests for force_refresh_analytics."""

    def test_phases_run_in_order(self, pipeline, school):
        school.add_class("c-1", "11-M1")
        school.add_student("s1", "Amna")
        school.add_test("t1", "Biology", 40, datetime(2024, 9, 1))
        school.add_result("s1", "t1", 34)

        summary = pipeline.force_refresh_analytics(YEAR)

        assert summary["validation"]["fixed"] == 1
        assert summary["student_analytics"]["successful"] == 1
        assert summary["statistics"]["subjects"] == ["Biology"]
        assert summary["message"] == "All analytics and statistics have been refreshed successfully"

        analytics = pipeline.analytics.find_for_student("s1", YEAR)
        assert analytics.class_id == "c-1"
        overall = pipeline.statistics.find_overall(YEAR)
        assert overall.get_class_stats("Girls", "11th", "c-1").zone_distribution.green == 1

    def test_second_refresh_reproduces_counts(self, pipeline, school):
        school.add_class("c-1", "11-M1")
        for number in range(3):
            school.add_student(f"s{number}", f"Student{number}", class_id="c-1")
            school.add_test(f"t{number}", "Physics", 20)
            school.add_result(f"s{number}", f"t{number}", 12 + number * 3)

        first = pipeline.force_refresh_analytics(YEAR)
        second = pipeline.force_refresh_analytics(YEAR)

        assert (
            second["statistics"]["overall"]["college_wide_stats"]
            == first["statistics"]["overall"]["college_wide_stats"]
        )
        assert second["statistics"]["overall"]["generation"] == 2
