"""Read-only queries over cached statistics and analytics documents.

Statistics-based reads never aggregate on the fly: if the statistics
document for the scope has not been generated they raise
StatisticsNotGeneratedError, and callers trigger a refresh explicitly.
Student search and per-student reads work directly from the analytics
documents.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from zonetrack.shared.database import NotFoundError
from zonetrack.shared.models import (
    SchoolClass,
    StudentAnalytics,
    StudentRecord,
    Zone,
    ZoneDistribution,
    ZoneStatistics,
    classify_zone,
)
from zonetrack.shared.utils import read_subject_baselines
from zonetrack.services.roster_service import (
    ClassNotFoundError,
    ClassRepository,
    StudentNotFoundError,
    StudentRepository,
)
from .aggregation import distinct_subjects
from .analytics_repository import (
    StudentAnalyticsRepository,
    ZoneStatisticsRepository,
    student_analytics_to_json,
)
from .config import AnalyticsConfig
from .errors import AnalyticsNotCalculatedError, StatisticsNotGeneratedError

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _entry_percentage(entry) -> float:
    if entry.percentage is not None:
        return entry.percentage
    if entry.total_marks > 0:
        return round(entry.obtained_marks / entry.total_marks * 100, 2)
    return 0.0


class AnalyticsQueryService:
    """Facade answering dashboard, search and student-detail queries."""

    def __init__(
        self,
        analytics_repository: StudentAnalyticsRepository,
        statistics_repository: ZoneStatisticsRepository,
        student_repository: StudentRepository,
        class_repository: ClassRepository,
        config: Optional[AnalyticsConfig] = None,
    ):
        self.analytics = analytics_repository
        self.statistics = statistics_repository
        self.students = student_repository
        self.classes = class_repository
        self.config = config or AnalyticsConfig()

    # -- statistics -------------------------------------------------------

    def _overall(self, academic_year: str) -> ZoneStatistics:
        statistics = self.statistics.find_overall(academic_year)
        if statistics is None:
            raise StatisticsNotGeneratedError(
                f"Overall statistics not found for {academic_year}. "
                "Please generate statistics first."
            )
        return statistics

    def get_college_overview(self, academic_year: str) -> Dict[str, Any]:
        """College-wide counts with a per-campus breakdown."""
        statistics = self._overall(academic_year)
        return {
            "academic_year": academic_year,
            "college_wide_stats": statistics.college_wide_stats.to_dict(),
            "zone_percentages": statistics.college_wide_percentages(),
            "campus_breakdown": [
                {"campus": c.campus, "stats": c.campus_zone_distribution.to_dict()}
                for c in statistics.campus_stats
            ],
            "students_processed": statistics.students_processed,
            "students_skipped": statistics.students_skipped,
            "generation": statistics.generation,
            "last_updated": _iso(statistics.last_updated),
        }

    def get_campus_statistics(self, campus: str, academic_year: str) -> Dict[str, Any]:
        """Campus counts with a per-grade breakdown.

        Raises:
            StatisticsNotGeneratedError: If aggregation has not run for the year
            NotFoundError: If the campus is not part of the statistics
        """
        statistics = self._overall(academic_year)
        campus_stat = statistics.get_campus_stats(campus)
        if campus_stat is None:
            raise NotFoundError(f"Statistics not found for campus: {campus}")
        return {
            "campus": campus_stat.campus,
            "campus_stats": campus_stat.campus_zone_distribution.to_dict(),
            "grade_breakdown": [
                {
                    "grade": g.grade,
                    "stats": g.grade_zone_distribution.to_dict(),
                    "class_count": len(g.class_stats),
                }
                for g in campus_stat.grade_stats
            ],
            "last_updated": _iso(statistics.last_updated),
        }

    def get_grade_statistics(
        self,
        campus: str,
        grade: str,
        academic_year: str,
    ) -> Dict[str, Any]:
        """Grade counts with a per-class breakdown."""
        statistics = self._overall(academic_year)
        grade_stat = statistics.get_grade_stats(campus, grade)
        if grade_stat is None:
            raise NotFoundError(
                f"Statistics not found for {campus} campus, {grade} grade"
            )
        return {
            "campus": campus,
            "grade": grade_stat.grade,
            "grade_stats": grade_stat.grade_zone_distribution.to_dict(),
            "class_breakdown": [
                {
                    "class_id": c.class_id,
                    "class_name": c.class_name,
                    "stats": c.zone_distribution.to_dict(),
                }
                for c in grade_stat.class_stats
            ],
            "last_updated": _iso(statistics.last_updated),
        }

    def _student_name(self, student: Optional[StudentRecord]) -> str:
        return student.full_name if student is not None else ""

    def get_class_statistics(self, class_id: str, academic_year: str) -> Dict[str, Any]:
        """Class counts plus every student's zones, sorted by name.

        Raises:
            ClassNotFoundError: If the class does not exist
            StatisticsNotGeneratedError: If aggregation has not run for the year
        """
        school_class = self.classes.find_by_id(class_id)
        if school_class is None:
            raise ClassNotFoundError(f"Class not found: {class_id}")

        statistics = self._overall(academic_year)
        class_stat = statistics.get_class_stats(
            school_class.campus, school_class.grade, class_id
        )
        distribution = class_stat.zone_distribution if class_stat else ZoneDistribution()

        students = []
        for analytics in self.analytics.find_for_year(academic_year, class_id=class_id):
            student = self.students.find_by_id(analytics.student_id)
            overall = analytics.overall_analytics
            students.append({
                "student_id": analytics.student_id,
                "student_name": self._student_name(student),
                "email": student.email if student else None,
                "overall_zone": overall.overall_zone.value,
                "overall_percentage": overall.current_overall_percentage,
                "matriculation_percentage": overall.matriculation_percentage,
                "total_cts": overall.total_cts_included,
                "subjects": [
                    {
                        "name": s.subject_name,
                        "zone": s.zone.value,
                        "percentage": s.current_percentage,
                        "total_cts": s.total_cts_included,
                    }
                    for s in analytics.subject_analytics
                ],
            })
        students.sort(key=lambda s: (s["student_name"].lower(), s["student_id"]))

        return {
            "class_info": self._class_info(school_class),
            "statistics": distribution.to_dict(),
            "students": students,
            "last_updated": _iso(statistics.last_updated),
        }

    def get_subject_statistics(self, subject_name: str, academic_year: str) -> Dict[str, Any]:
        """Subject counts with campus and grade breakdowns."""
        statistics = self.statistics.find_subject(subject_name, academic_year)
        if statistics is None:
            raise StatisticsNotGeneratedError(
                f"Subject statistics not found for: {subject_name}"
            )
        return {
            "subject_name": statistics.subject_name,
            "college_wide_stats": statistics.college_wide_stats.to_dict(),
            "campus_breakdown": [
                {
                    "campus": c.campus,
                    "stats": c.campus_zone_distribution.to_dict(),
                    "grade_breakdown": [
                        {"grade": g.grade, "stats": g.grade_zone_distribution.to_dict()}
                        for g in c.grade_stats
                    ],
                }
                for c in statistics.campus_stats
            ],
            "last_updated": _iso(statistics.last_updated),
        }

    def get_available_subjects(self, academic_year: str) -> List[str]:
        return distinct_subjects(self.analytics.find_for_year(academic_year))

    # -- students ---------------------------------------------------------

    @staticmethod
    def _class_info(school_class: Optional[SchoolClass]) -> Dict[str, Any]:
        if school_class is None:
            return {"id": None, "name": None, "campus": None, "grade": None, "program": None}
        return {
            "id": school_class.class_id,
            "name": school_class.name,
            "campus": school_class.campus,
            "grade": school_class.grade,
            "program": school_class.program,
        }

    def get_filtered_students(
        self,
        academic_year: str,
        campus: Optional[str] = None,
        grade: Optional[str] = None,
        class_id: Optional[str] = None,
        zone: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Students matching every given filter, sorted by name.

        With a subject, only students graded in that subject match and
        the zone filter applies to the subject's own zone.

        Raises:
            ValueError: If zone is not a zone name
        """
        wanted_zone = Zone(zone) if zone else None
        criteria = {}
        if campus:
            criteria["campus"] = campus
        if grade:
            criteria["grade"] = grade
        if class_id:
            criteria["class_id"] = class_id

        matches = []
        for analytics in self.analytics.find_for_year(academic_year, **criteria):
            overall = analytics.overall_analytics
            performance = {
                "zone": overall.overall_zone.value,
                "percentage": overall.current_overall_percentage,
                "total_cts": overall.total_cts_included,
            }
            effective_zone = overall.overall_zone

            if subject:
                entry = analytics.subject(subject)
                if entry is None:
                    continue
                effective_zone = entry.zone
                performance = {
                    "zone": entry.zone.value,
                    "percentage": entry.current_percentage,
                    "total_cts": entry.total_cts_included,
                }

            if wanted_zone is not None and effective_zone != wanted_zone:
                continue

            student = self.students.find_by_id(analytics.student_id)
            school_class = (
                self.classes.find_by_id(analytics.class_id) if analytics.class_id else None
            )
            matches.append({
                "student_id": analytics.student_id,
                "student_name": self._student_name(student),
                "email": student.email if student else None,
                "phone_number": student.phone_number if student else None,
                "class_info": self._class_info(school_class),
                "performance": performance,
                "matriculation_percentage": overall.matriculation_percentage,
            })

        matches.sort(key=lambda m: (m["student_name"].lower(), m["student_id"]))
        logger.info(
            "STUDENTS_FILTERED",
            extra={
                "academic_year": academic_year,
                "filters": {**criteria, "zone": zone, "subject": subject},
                "matches": len(matches),
            }
        )
        return matches

    def load_student(
        self,
        student_id: str,
        academic_year: str,
    ) -> Tuple[StudentRecord, StudentAnalytics]:
        """Student record and analytics document.

        Raises:
            StudentNotFoundError: If the student does not exist
            AnalyticsNotCalculatedError: If no analytics exist for the year yet
        """
        student = self.students.find_by_id(student_id)
        if student is None:
            raise StudentNotFoundError(f"Student not found: {student_id}")
        analytics = self.analytics.find_for_student(student_id, academic_year)
        if analytics is None:
            raise AnalyticsNotCalculatedError(
                f"Student analytics not found for {student_id} in {academic_year}"
            )
        return student, analytics

    def student_info(
        self,
        student: StudentRecord,
        analytics: StudentAnalytics,
    ) -> Dict[str, Any]:
        school_class = (
            self.classes.find_by_id(analytics.class_id) if analytics.class_id else None
        )
        return {
            "id": student.student_id,
            "name": student.full_name,
            "first_name": student.first_name,
            "last_name": student.last_name,
            "email": student.email,
            "phone_number": student.phone_number,
            "roll_number": student.roll_number or "N/A",
            "academic_year": analytics.academic_year,
            "class_id": analytics.class_id,
            "class_name": school_class.name if school_class else None,
            "grade": analytics.grade,
            "campus": analytics.campus,
            "program": analytics.program,
        }

    def get_student_analytics(self, student_id: str, academic_year: str) -> Dict[str, Any]:
        """Stored analytics document with student details.

        Raises:
            StudentNotFoundError: If the student does not exist
            AnalyticsNotCalculatedError: If no analytics exist for the year yet
        """
        student, analytics = self.load_student(student_id, academic_year)
        return {
            "student_info": self.student_info(student, analytics),
            "analytics": student_analytics_to_json(analytics),
        }

    def build_performance_matrix(
        self,
        student: StudentRecord,
        analytics: StudentAnalytics,
    ) -> Dict[str, Any]:
        """Baseline vs class tests vs current averages for one student.

        Per-subject baselines are read from the student record here and
        are never stored with the analytics.
        """
        thresholds = self.config.thresholds
        overall = analytics.overall_analytics
        baseline = overall.matriculation_percentage or 0
        subject_baselines = read_subject_baselines(student)

        tests: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for subject in analytics.subject_analytics:
            for entry in subject.test_results:
                if entry.test_date is None:
                    continue
                key = (entry.test_date.date().isoformat(), entry.test_type or "Unknown")
                test = tests.setdefault(key, {
                    "test_name": f"{entry.test_type or 'Test'} ({entry.test_date.date().isoformat()})",
                    "test_date": entry.test_date,
                    "subjects": {},
                    "overall": 0.0,
                    "overall_zone": None,
                })
                percentage = _entry_percentage(entry)
                test["subjects"][subject.subject_name] = {
                    "percentage": percentage,
                    "zone": classify_zone(percentage, thresholds).value,
                }

        class_tests = sorted(tests.values(), key=lambda t: t["test_date"])
        for test in class_tests:
            percentages = [s["percentage"] for s in test["subjects"].values()]
            if percentages:
                test["overall"] = sum(percentages) / len(percentages)
                test["overall_zone"] = classify_zone(test["overall"], thresholds).value
            test["test_date"] = _iso(test["test_date"])

        subject_averages = {
            s.subject_name: {"percentage": s.current_percentage, "zone": s.zone.value}
            for s in analytics.subject_analytics
        }

        subject_trends = {}
        for subject in analytics.subject_analytics:
            matric = subject_baselines.get(subject.subject_name)
            subject_trends[subject.subject_name] = (
                round(subject.current_percentage - matric, 2) if matric else "N/A"
            )

        return {
            "matriculation_baseline": {
                "overall": baseline,
                "subjects": subject_baselines,
            },
            "class_test_results": class_tests,
            "current_averages": {
                "overall": overall.current_overall_percentage,
                "subjects": subject_averages,
            },
            "trend_analysis": {
                "overall": (
                    round(overall.current_overall_percentage - baseline, 2)
                    if baseline > 0 else 0
                ),
                "subjects": subject_trends,
            },
            "zones": {
                "overall": overall.overall_zone.value,
                "subjects": subject_averages,
            },
        }

    def get_performance_matrix(self, student_id: str, academic_year: str) -> Dict[str, Any]:
        student, analytics = self.load_student(student_id, academic_year)
        return {
            "student_info": self.student_info(student, analytics),
            "performance_matrix": self.build_performance_matrix(student, analytics),
            "last_updated": _iso(analytics.last_calculated),
        }

    def build_graph_data(
        self,
        student: StudentRecord,
        analytics: StudentAnalytics,
        matrix: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Timelines for charting: overall per test and per subject."""
        thresholds = self.config.thresholds
        matrix = matrix or self.build_performance_matrix(student, analytics)

        timeline = []
        baseline = matrix["matriculation_baseline"]["overall"]
        if baseline > 0:
            timeline.append({
                "label": "Matriculation",
                "date": None,
                "percentage": baseline,
                "type": "baseline",
                "zone": classify_zone(baseline, thresholds).value,
            })
        for number, test in enumerate(matrix["class_test_results"], start=1):
            timeline.append({
                "label": test["test_name"],
                "date": test["test_date"],
                "percentage": round(test["overall"], 2),
                "type": "classtest",
                "zone": test["overall_zone"],
                "test_number": number,
            })

        subject_timelines = {}
        for subject in analytics.subject_analytics:
            points = []
            for entry in subject.test_results:
                percentage = _entry_percentage(entry)
                date_label = entry.test_date.date().isoformat() if entry.test_date else "undated"
                points.append({
                    "label": f"{entry.test_type or 'Test'} ({date_label})",
                    "date": _iso(entry.test_date),
                    "percentage": percentage,
                    "zone": classify_zone(percentage, thresholds).value,
                })
            subject_timelines[subject.subject_name] = points

        return {
            "overall_timeline": timeline,
            "subject_timelines": subject_timelines,
            "zone_thresholds": thresholds.bands(),
        }

    def get_graph_data(self, student_id: str, academic_year: str) -> Dict[str, Any]:
        student, analytics = self.load_student(student_id, academic_year)
        return self.build_graph_data(student, analytics)
