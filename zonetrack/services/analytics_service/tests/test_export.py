"""Tests for JSON and CSV exports."""
from datetime import datetime

import pytest

from zonetrack.shared.models import MatriculationRecord, MatriculationSubject
from zonetrack.services.analytics_service import ExportFormatError
from zonetrack.services.analytics_service.export import (
    CLASS_CSV_HEADER,
    STATISTICS_CSV_HEADER,
    to_csv,
)

YEAR = "2024-2025"


@pytest.fixture
def exporter(pipeline, school):
    school.add_class("c-1", "11-M1")
    school.add_class("c-b", "12-E1", campus="Boys", grade="12th", program="Pre-Engineering")
    school.add_student(
        "s1", "Amna", "Raza", class_id="c-1",
        matric_marks=None,
        matriculation=MatriculationRecord(percentage=77.5, subjects=(
            MatriculationSubject("Physics", percentage=70.0),
            MatriculationSubject("Chemistry", percentage=85.0),
        )),
    )
    school.add_student("s2", "Bushra", "Ali", class_id="c-1")
    school.add_student("s3", "Danish", "Iqbal", class_id="c-b", gender="male",
                       grade="12th", program="Pre-Engineering")
    school.add_test("t-p1", "Physics", 25, datetime(2024, 9, 10), "CT-1")
    school.add_test("t-c1", "Chemistry", 40, datetime(2024, 9, 10), "CT-1")
    school.add_test("t-p2", "Physics", 50, datetime(2024, 10, 15), "CT-2")
    school.add_result("s1", "t-p1", 20)
    school.add_result("s1", "t-c1", 30)
    school.add_result("s1", "t-p2", 40)
    school.add_result("s2", "t-p1", 10)
    school.add_result("s3", "t-p2", 36)
    pipeline.force_refresh_analytics(YEAR)
    return pipeline.exporter


class TestToCsv:
    """Tests for CSV rendering."""

    def test_quotes_and_no_trailing_newline(self):
        text = to_csv([["Name", "Zone"], ["Raza, Amna", "green"]])

        assert text == 'Name,Zone\n"Raza, Amna",green'


class TestClassExport:
    """Tests for export_class_analytics."""

    def test_csv_has_header_and_row_per_student(self, exporter):
        export = exporter.export_class_analytics("c-1", YEAR, "csv")

        lines = export["data"].split("\n")
        assert lines[0] == ",".join(CLASS_CSV_HEADER)
        assert lines[1:] == [
            "Amna Raza,green,78.26,77.5,3",
            "Bushra Ali,red,40.0,80.0,1",
        ]
        assert export["format"] == "csv"
        assert export["filename"] == f"class_analytics_11-M1_{YEAR}.csv"

    def test_json_is_class_detail(self, exporter):
        export = exporter.export_class_analytics("c-1", YEAR)

        assert export["format"] == "json"
        assert len(export["data"]["students"]) == 2
        assert "generated_at" in export

    def test_zero_values_shown_as_na(self, pipeline, school, exporter):
        school.add_student("s9", "Zainab", "Noor", class_id="c-1", matric_marks=None)
        pipeline.builder.calculate_for_student("s9", YEAR)

        lines = exporter.export_class_analytics("c-1", YEAR, "csv")["data"].split("\n")

        assert "Zainab Noor,red,N/A,N/A,0" in lines

    def test_unsupported_format(self, exporter):
        with pytest.raises(ExportFormatError):
            exporter.export_class_analytics("c-1", YEAR, "xlsx")


class TestStudentExport:
    """Tests for export_student_analytics."""

    def test_csv_matrix(self, exporter):
        export = exporter.export_student_analytics("s1", YEAR, "csv")

        assert export["data"].split("\n") == [
            "Test/Exam,Chemistry,Physics,Overall",
            "Matriculation,85.0,70.0,77.5",
            "CT-1 (2024-09-10),75.0,80.0,77.5",
            "CT-2 (2024-10-15),N/A,80.0,80.0",
            "Current Average,75.0,80.0,78.26",
        ]
        assert export["filename"] == f"student_analytics_Amna_Raza_{YEAR}.csv"

    def test_json_bundle(self, exporter):
        data = exporter.export_student_analytics("s1", YEAR)["data"]

        assert data["student_info"]["name"] == "Amna Raza"
        assert data["data_version"] == "1.0"
        assert set(data) >= {"performance_matrix", "graph_data", "generated_at"}


class TestStatisticsExport:
    """Tests for export_zone_statistics."""

    def test_overall_csv(self, exporter):
        export = exporter.export_zone_statistics(YEAR, fmt="csv")

        assert export["data"].split("\n") == [
            ",".join(STATISTICS_CSV_HEADER),
            "College-wide,1,1,0,1,3",
            "Boys Campus,0,1,0,0,1",
            "Girls Campus,1,0,0,1,2",
        ]
        assert export["filename"] == f"zone_statistics_overall_overall_{YEAR}.csv"

    def test_subject_json(self, exporter):
        export = exporter.export_zone_statistics(YEAR, "subject", "Physics")

        assert export["data"]["subject_name"] == "Physics"
        assert export["filename"] == f"zone_statistics_subject_Physics_{YEAR}.json"

    def test_subject_requires_name(self, exporter):
        with pytest.raises(ValueError):
            exporter.export_zone_statistics(YEAR, "subject")

    def test_unknown_statistic_type(self, exporter):
        with pytest.raises(ValueError):
            exporter.export_zone_statistics(YEAR, "weekly")
