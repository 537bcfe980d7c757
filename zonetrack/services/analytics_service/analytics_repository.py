"""Repositories for the two derived stores.

StudentAnalytics is unique on (student_id, academic_year); ZoneStatistics
is unique on (statistic_type, academic_year, subject_name), with an empty
subject name for the overall document. Both are overwritten wholesale on
every save.
"""
import logging
from typing import Any, Dict, List, Optional

from zonetrack.shared.database import (
    BaseRepository,
    ConnectionManager,
    datetime_from_json,
    datetime_to_json,
)
from zonetrack.shared.models import (
    CalculationEntry,
    CalculationTrigger,
    CampusStats,
    ClassStats,
    GradeStats,
    OverallAnalytics,
    StatisticType,
    StudentAnalytics,
    SubjectAnalytics,
    TestResultEntry,
    Zone,
    ZoneDistribution,
    ZoneStatistics,
)

logger = logging.getLogger(__name__)


def _test_result_to_json(entry: TestResultEntry) -> Dict[str, Any]:
    return {
        "test_id": entry.test_id,
        "obtained_marks": entry.obtained_marks,
        "total_marks": entry.total_marks,
        "percentage": entry.percentage,
        "test_date": datetime_to_json(entry.test_date),
        "test_type": entry.test_type,
    }


def _test_result_from_json(data: Dict[str, Any]) -> TestResultEntry:
    return TestResultEntry(
        test_id=data["test_id"],
        obtained_marks=data["obtained_marks"],
        total_marks=data["total_marks"],
        percentage=data.get("percentage"),
        test_date=datetime_from_json(data.get("test_date")),
        test_type=data.get("test_type"),
    )


def student_analytics_to_json(analytics: StudentAnalytics) -> Dict[str, Any]:
    """Serialize a StudentAnalytics value to its stored/JSON shape."""
    overall = analytics.overall_analytics
    return {
        "student_id": analytics.student_id,
        "academic_year": analytics.academic_year,
        "overall_analytics": {
            "matriculation_percentage": overall.matriculation_percentage,
            "current_overall_percentage": overall.current_overall_percentage,
            "overall_zone": overall.overall_zone.value,
            "total_cts_included": overall.total_cts_included,
            "total_marks_obtained": overall.total_marks_obtained,
            "total_max_marks": overall.total_max_marks,
            "last_updated": datetime_to_json(overall.last_updated),
        },
        "subject_analytics": [
            {
                "subject_name": s.subject_name,
                "current_percentage": s.current_percentage,
                "zone": s.zone.value,
                "total_cts_included": s.total_cts_included,
                "total_marks_obtained": s.total_marks_obtained,
                "total_max_marks": s.total_max_marks,
                "test_results": [_test_result_to_json(t) for t in s.test_results],
                "last_updated": datetime_to_json(s.last_updated),
            }
            for s in analytics.subject_analytics
        ],
        "class_id": analytics.class_id,
        "grade": analytics.grade,
        "campus": analytics.campus,
        "program": analytics.program,
        "calculation_history": [
            {
                "calculated_at": datetime_to_json(h.calculated_at),
                "overall_zone": h.overall_zone.value,
                "overall_percentage": h.overall_percentage,
                "total_tests_included": h.total_tests_included,
                "trigger": h.trigger.value,
            }
            for h in analytics.calculation_history
        ],
        "last_calculated": datetime_to_json(analytics.last_calculated),
    }


def student_analytics_from_json(data: Dict[str, Any]) -> StudentAnalytics:
    overall = data["overall_analytics"]
    return StudentAnalytics(
        student_id=data["student_id"],
        academic_year=data["academic_year"],
        overall_analytics=OverallAnalytics(
            matriculation_percentage=overall.get("matriculation_percentage"),
            current_overall_percentage=overall["current_overall_percentage"],
            overall_zone=Zone(overall["overall_zone"]),
            total_cts_included=overall["total_cts_included"],
            total_marks_obtained=overall["total_marks_obtained"],
            total_max_marks=overall["total_max_marks"],
            last_updated=datetime_from_json(overall["last_updated"]),
        ),
        subject_analytics=tuple(
            SubjectAnalytics(
                subject_name=s["subject_name"],
                current_percentage=s["current_percentage"],
                zone=Zone(s["zone"]),
                total_cts_included=s["total_cts_included"],
                total_marks_obtained=s["total_marks_obtained"],
                total_max_marks=s["total_max_marks"],
                test_results=tuple(
                    _test_result_from_json(t) for t in s.get("test_results") or []
                ),
                last_updated=datetime_from_json(s["last_updated"]),
            )
            for s in data.get("subject_analytics") or []
        ),
        class_id=data.get("class_id"),
        grade=data.get("grade"),
        campus=data.get("campus"),
        program=data.get("program"),
        calculation_history=tuple(
            CalculationEntry(
                calculated_at=datetime_from_json(h["calculated_at"]),
                overall_zone=Zone(h["overall_zone"]),
                overall_percentage=h["overall_percentage"],
                total_tests_included=h["total_tests_included"],
                trigger=CalculationTrigger(h.get("trigger", "manual")),
            )
            for h in data.get("calculation_history") or []
        ),
        last_calculated=datetime_from_json(data["last_calculated"]),
    )


def zone_statistics_to_json(statistics: ZoneStatistics) -> Dict[str, Any]:
    """Serialize a ZoneStatistics tree to its stored/JSON shape."""
    return {
        "statistic_type": statistics.statistic_type.value,
        "academic_year": statistics.academic_year,
        "subject_name": statistics.subject_name,
        "campus_stats": [
            {
                "campus": campus.campus,
                "grade_stats": [
                    {
                        "grade": grade.grade,
                        "class_stats": [
                            {
                                "class_id": cls.class_id,
                                "class_name": cls.class_name,
                                "zone_distribution": cls.zone_distribution.to_dict(),
                            }
                            for cls in grade.class_stats
                        ],
                        "grade_zone_distribution": grade.grade_zone_distribution.to_dict(),
                    }
                    for grade in campus.grade_stats
                ],
                "campus_zone_distribution": campus.campus_zone_distribution.to_dict(),
            }
            for campus in statistics.campus_stats
        ],
        "college_wide_stats": statistics.college_wide_stats.to_dict(),
        "last_updated": datetime_to_json(statistics.last_updated),
        "calculation_duration_ms": statistics.calculation_duration_ms,
        "students_processed": statistics.students_processed,
        "students_skipped": statistics.students_skipped,
        "generation": statistics.generation,
    }


def zone_statistics_from_json(data: Dict[str, Any]) -> ZoneStatistics:
    return ZoneStatistics(
        statistic_type=StatisticType(data["statistic_type"]),
        academic_year=data["academic_year"],
        subject_name=data.get("subject_name") or None,
        campus_stats=[
            CampusStats(
                campus=campus["campus"],
                grade_stats=[
                    GradeStats(
                        grade=grade["grade"],
                        class_stats=[
                            ClassStats(
                                class_id=cls.get("class_id"),
                                class_name=cls["class_name"],
                                zone_distribution=ZoneDistribution.from_dict(
                                    cls.get("zone_distribution")
                                ),
                            )
                            for cls in grade.get("class_stats") or []
                        ],
                        grade_zone_distribution=ZoneDistribution.from_dict(
                            grade.get("grade_zone_distribution")
                        ),
                    )
                    for grade in campus.get("grade_stats") or []
                ],
                campus_zone_distribution=ZoneDistribution.from_dict(
                    campus.get("campus_zone_distribution")
                ),
            )
            for campus in data.get("campus_stats") or []
        ],
        college_wide_stats=ZoneDistribution.from_dict(data.get("college_wide_stats")),
        last_updated=datetime_from_json(data["last_updated"]),
        calculation_duration_ms=data.get("calculation_duration_ms", 0),
        students_processed=data.get("students_processed", 0),
        students_skipped=data.get("students_skipped", 0),
        generation=data.get("generation", 1),
    )


class StudentAnalyticsRepository(BaseRepository[StudentAnalytics]):
    """Repository for per-student analytics documents."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(
            connection_manager,
            "student_analytics",
            key_columns=("student_id", "academic_year"),
            index_columns=("class_id", "campus", "grade"),
        )

    def _entity_to_columns(self, entity: StudentAnalytics) -> Dict[str, Any]:
        return {
            "student_id": entity.student_id,
            "academic_year": entity.academic_year,
            "class_id": entity.class_id,
            "campus": entity.campus,
            "grade": entity.grade,
        }

    def _entity_to_document(self, entity: StudentAnalytics) -> Dict[str, Any]:
        return student_analytics_to_json(entity)

    def _document_to_entity(self, document: Dict[str, Any]) -> StudentAnalytics:
        return student_analytics_from_json(document)

    def find_for_student(
        self,
        student_id: str,
        academic_year: str,
    ) -> Optional[StudentAnalytics]:
        return self.find_one(student_id=student_id, academic_year=academic_year)

    def find_for_year(self, academic_year: str, **criteria: Any) -> List[StudentAnalytics]:
        """Every analytics document of a year, ordered by student id."""
        documents = self.find(academic_year=academic_year, **criteria)
        return sorted(documents, key=lambda a: a.student_id)


class ZoneStatisticsRepository(BaseRepository[ZoneStatistics]):
    """Repository for cached zone statistics documents."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(
            connection_manager,
            "zone_statistics",
            key_columns=("statistic_type", "academic_year", "subject_name"),
        )

    def _entity_to_columns(self, entity: ZoneStatistics) -> Dict[str, Any]:
        statistic_type, academic_year, subject_name = entity.key
        return {
            "statistic_type": statistic_type,
            "academic_year": academic_year,
            "subject_name": subject_name,
        }

    def _entity_to_document(self, entity: ZoneStatistics) -> Dict[str, Any]:
        return zone_statistics_to_json(entity)

    def _document_to_entity(self, document: Dict[str, Any]) -> ZoneStatistics:
        return zone_statistics_from_json(document)

    def find_overall(self, academic_year: str) -> Optional[ZoneStatistics]:
        return self.find_one(
            statistic_type=StatisticType.OVERALL.value,
            academic_year=academic_year,
            subject_name="",
        )

    def find_subject(self, subject_name: str, academic_year: str) -> Optional[ZoneStatistics]:
        return self.find_one(
            statistic_type=StatisticType.SUBJECT.value,
            academic_year=academic_year,
            subject_name=subject_name,
        )
