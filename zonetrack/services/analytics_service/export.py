"""Report exports for students, classes and zone statistics.

Every export is returned as an envelope:
{"data", "filename", "format", "generated_at"}. JSON exports carry the
nested structure; CSV exports carry flat text whose column order is
relied on by spreadsheet consumers.
"""
import csv
import io
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from zonetrack.shared.models import StatisticType
from .errors import ExportFormatError
from .query import AnalyticsQueryService

logger = logging.getLogger(__name__)

FORMAT_JSON = "json"
FORMAT_CSV = "csv"
SUPPORTED_FORMATS = (FORMAT_JSON, FORMAT_CSV)

CLASS_CSV_HEADER = ["Student Name", "Overall Zone", "Overall %", "Matriculation %", "Total CTs"]
STATISTICS_CSV_HEADER = ["Level", "Green", "Blue", "Yellow", "Red", "Total"]


def _check_format(fmt: str) -> str:
    fmt = (fmt or FORMAT_JSON).lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ExportFormatError(
            f"Unsupported export format: {fmt}. Use one of {', '.join(SUPPORTED_FORMATS)}"
        )
    return fmt


def _or_na(value: Any) -> Any:
    """Missing or zero values are shown as N/A."""
    return value if value else "N/A"


def to_csv(rows: Iterable[List[Any]]) -> str:
    """Render rows as CSV text without a trailing newline."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


def _envelope(data: Any, filename: str, fmt: str) -> Dict[str, Any]:
    return {
        "data": data,
        "filename": filename,
        "format": fmt,
        "generated_at": datetime.utcnow().isoformat(),
    }


def _distribution_row(label: str, stats: Dict[str, int]) -> List[Any]:
    return [
        label,
        stats.get("green", 0),
        stats.get("blue", 0),
        stats.get("yellow", 0),
        stats.get("red", 0),
        stats.get("total", 0),
    ]


def performance_matrix_to_csv(matrix: Dict[str, Any]) -> str:
    """Flatten a performance matrix: baseline, each test, current average."""
    subjects = list(matrix["current_averages"]["subjects"].keys())
    rows = [["Test/Exam"] + subjects + ["Overall"]]

    baseline = matrix["matriculation_baseline"]
    if baseline["overall"] > 0:
        rows.append(
            ["Matriculation"]
            + [_or_na(baseline["subjects"].get(s)) for s in subjects]
            + [baseline["overall"]]
        )

    for test in matrix["class_test_results"]:
        rows.append(
            [test["test_name"]]
            + [_or_na(test["subjects"].get(s, {}).get("percentage")) for s in subjects]
            + [round(test["overall"], 2)]
        )

    averages = matrix["current_averages"]
    rows.append(
        ["Current Average"]
        + [_or_na(averages["subjects"][s]["percentage"]) for s in subjects]
        + [averages["overall"]]
    )
    return to_csv(rows)


class AnalyticsExporter:
    """Builds export envelopes on top of the query service."""

    def __init__(self, query_service: AnalyticsQueryService):
        self.query = query_service

    def export_student_analytics(
        self,
        student_id: str,
        academic_year: str,
        fmt: str = FORMAT_JSON,
    ) -> Dict[str, Any]:
        """Export one student's performance matrix (and graph data for JSON)."""
        fmt = _check_format(fmt)
        student, analytics = self.query.load_student(student_id, academic_year)
        matrix = self.query.build_performance_matrix(student, analytics)

        if fmt == FORMAT_CSV:
            data: Any = performance_matrix_to_csv(matrix)
        else:
            data = {
                "student_info": self.query.student_info(student, analytics),
                "performance_matrix": matrix,
                "graph_data": self.query.build_graph_data(student, analytics, matrix),
                "generated_at": datetime.utcnow().isoformat(),
                "data_version": "1.0",
            }

        logger.info(
            "STUDENT_ANALYTICS_EXPORTED",
            extra={"student_id": student_id, "academic_year": academic_year, "format": fmt}
        )
        return _envelope(
            data,
            f"student_analytics_{student.first_name}_{student.last_name}_{academic_year}.{fmt}",
            fmt,
        )

    def export_class_analytics(
        self,
        class_id: str,
        academic_year: str,
        fmt: str = FORMAT_JSON,
    ) -> Dict[str, Any]:
        """Export a class: one CSV row per student, or the full class detail."""
        fmt = _check_format(fmt)
        class_data = self.query.get_class_statistics(class_id, academic_year)

        if fmt == FORMAT_CSV:
            rows = [CLASS_CSV_HEADER]
            for student in class_data["students"]:
                rows.append([
                    student["student_name"],
                    student["overall_zone"],
                    _or_na(student["overall_percentage"]),
                    _or_na(student["matriculation_percentage"]),
                    student["total_cts"],
                ])
            data: Any = to_csv(rows)
        else:
            data = class_data

        logger.info(
            "CLASS_ANALYTICS_EXPORTED",
            extra={
                "class_id": class_id,
                "academic_year": academic_year,
                "format": fmt,
                "student_count": len(class_data["students"]),
            }
        )
        class_name = class_data["class_info"]["name"]
        return _envelope(data, f"class_analytics_{class_name}_{academic_year}.{fmt}", fmt)

    def export_zone_statistics(
        self,
        academic_year: str,
        statistic_type: str = StatisticType.OVERALL.value,
        subject_name: Optional[str] = None,
        fmt: str = FORMAT_JSON,
    ) -> Dict[str, Any]:
        """Export overall or subject statistics.

        Raises:
            ValueError: If statistic_type is unknown or a subject export has
                no subject_name
        """
        fmt = _check_format(fmt)
        kind = StatisticType(statistic_type)
        if kind == StatisticType.OVERALL:
            stats_data = self.query.get_college_overview(academic_year)
        else:
            if not subject_name:
                raise ValueError("subject_name is required for subject statistics")
            stats_data = self.query.get_subject_statistics(subject_name, academic_year)

        if fmt == FORMAT_CSV:
            rows = [STATISTICS_CSV_HEADER]
            rows.append(_distribution_row("College-wide", stats_data["college_wide_stats"]))
            for campus in stats_data["campus_breakdown"]:
                rows.append(_distribution_row(f"{campus['campus']} Campus", campus["stats"]))
            data: Any = to_csv(rows)
        else:
            data = stats_data

        logger.info(
            "ZONE_STATISTICS_EXPORTED",
            extra={
                "statistic_type": kind.value,
                "subject_name": subject_name,
                "academic_year": academic_year,
                "format": fmt,
            }
        )
        scope = subject_name or "overall"
        return _envelope(
            data,
            f"zone_statistics_{kind.value}_{scope}_{academic_year}.{fmt}",
            fmt,
        )
