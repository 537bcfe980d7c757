"""Zone aggregation engine.

Rolls per-student zones up the campus -> grade -> class tree. The tree
skeleton comes from the class repository, so empty classes still show
up with zero counts. Each placed student increments exactly one leaf and
each of its ancestors once, which keeps every parent count equal to the
sum of its children.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from zonetrack.shared.models import (
    UNASSIGNED_CLASS_NAME,
    CampusStats,
    ClassStats,
    GradeStats,
    SchoolClass,
    StatisticType,
    StudentAnalytics,
    Zone,
    ZoneDistribution,
    ZoneStatistics,
)
from zonetrack.services.roster_service import ClassRepository
from .analytics_repository import StudentAnalyticsRepository, ZoneStatisticsRepository
from .config import AnalyticsConfig

logger = logging.getLogger(__name__)

ZoneSelector = Callable[[StudentAnalytics], Optional[Zone]]


def overall_zone(analytics: StudentAnalytics) -> Optional[Zone]:
    return analytics.overall_analytics.overall_zone


def subject_zone(subject_name: str) -> ZoneSelector:
    """Selector reading a subject's own zone (None if the student has none)."""
    def select(analytics: StudentAnalytics) -> Optional[Zone]:
        entry = analytics.subject(subject_name)
        return entry.zone if entry is not None else None
    return select


def distinct_subjects(documents: Iterable[StudentAnalytics]) -> List[str]:
    """Non-blank subject names appearing in any document, sorted."""
    names = set()
    for analytics in documents:
        names.update(n for n in analytics.subject_names if n and n.strip())
    return sorted(names)


def build_skeleton(
    classes: Iterable[SchoolClass],
    campuses: Iterable[str],
    grades: Iterable[str],
) -> List[CampusStats]:
    """Empty campus/grade/class tree over the fixed campus and grade sets."""
    by_placement: Dict[tuple, List[SchoolClass]] = {}
    for school_class in classes:
        by_placement.setdefault((school_class.campus, school_class.grade), []).append(school_class)

    tree = []
    for campus in campuses:
        grade_stats = []
        for grade in grades:
            members = sorted(
                by_placement.get((campus, grade), []),
                key=lambda c: (c.name, c.class_id),
            )
            grade_stats.append(GradeStats(
                grade=grade,
                class_stats=[ClassStats(class_id=c.class_id, class_name=c.name) for c in members],
            ))
        tree.append(CampusStats(campus=campus, grade_stats=grade_stats))
    return tree


@dataclass
class AggregationOutcome:
    """Counts produced by one aggregation pass."""
    campus_stats: List[CampusStats]
    college_wide_stats: ZoneDistribution = field(default_factory=ZoneDistribution)
    processed: int = 0
    skipped: int = 0


def aggregate_zones(
    documents: Iterable[StudentAnalytics],
    select_zone: ZoneSelector,
    skeleton: List[CampusStats],
) -> AggregationOutcome:
    """Count each document's zone into the skeleton.

    Documents without a zone, or whose campus or grade is not part of the
    skeleton, are skipped. A document whose class is not in the skeleton
    is counted under the grade's Unassigned leaf.

    Args:
        documents: Analytics documents to place
        select_zone: Which zone of a document to count
        skeleton: Tree from build_skeleton; mutated in place

    Returns:
        AggregationOutcome wrapping the filled tree
    """
    outcome = AggregationOutcome(campus_stats=skeleton)
    campuses = {c.campus: c for c in skeleton}

    for analytics in documents:
        outcome.processed += 1
        zone = select_zone(analytics)
        campus_stat = campuses.get(analytics.campus)
        grade_stat = campus_stat.find_grade(analytics.grade) if campus_stat else None

        if zone is None or grade_stat is None:
            outcome.skipped += 1
            logger.warning(
                "ANALYTICS_DOCUMENT_SKIPPED",
                extra={
                    "student_id": analytics.student_id,
                    "campus": analytics.campus,
                    "grade": analytics.grade,
                    "has_zone": zone is not None,
                }
            )
            continue

        class_stat = grade_stat.find_class(analytics.class_id) if analytics.class_id else None
        if class_stat is None:
            class_stat = grade_stat.find_class(None)
            if class_stat is None:
                class_stat = ClassStats(class_id=None, class_name=UNASSIGNED_CLASS_NAME)
                grade_stat.class_stats.append(class_stat)

        class_stat.zone_distribution.increment(zone)
        grade_stat.grade_zone_distribution.increment(zone)
        campus_stat.campus_zone_distribution.increment(zone)
        outcome.college_wide_stats.increment(zone)

    return outcome


@dataclass
class StatisticsRefreshResult:
    """What a refresh-all run generated."""
    overall: ZoneStatistics
    subjects: List[ZoneStatistics] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": {
                "students_processed": self.overall.students_processed,
                "students_skipped": self.overall.students_skipped,
                "generation": self.overall.generation,
                "college_wide_stats": self.overall.college_wide_stats.to_dict(),
            },
            "subjects": [s.subject_name for s in self.subjects],
            "message": f"Statistics refreshed for {len(self.subjects)} subjects",
        }


class ZoneAggregationEngine:
    """Regenerates cached zone statistics from analytics documents."""

    def __init__(
        self,
        analytics_repository: StudentAnalyticsRepository,
        statistics_repository: ZoneStatisticsRepository,
        class_repository: ClassRepository,
        config: Optional[AnalyticsConfig] = None,
    ):
        self.analytics = analytics_repository
        self.statistics = statistics_repository
        self.classes = class_repository
        self.config = config or AnalyticsConfig()

    def _generate(
        self,
        statistic_type: StatisticType,
        academic_year: str,
        documents: List[StudentAnalytics],
        select_zone: ZoneSelector,
        prior: Optional[ZoneStatistics],
        subject_name: Optional[str] = None,
    ) -> ZoneStatistics:
        start_time = time.perf_counter()

        skeleton = build_skeleton(
            self.classes.find_sorted(),
            self.config.campuses,
            self.config.grades,
        )
        outcome = aggregate_zones(documents, select_zone, skeleton)

        statistics = ZoneStatistics(
            statistic_type=statistic_type,
            academic_year=academic_year,
            subject_name=subject_name,
            campus_stats=outcome.campus_stats,
            college_wide_stats=outcome.college_wide_stats,
            last_updated=datetime.utcnow(),
            calculation_duration_ms=int((time.perf_counter() - start_time) * 1000),
            students_processed=outcome.processed,
            students_skipped=outcome.skipped,
            generation=prior.generation + 1 if prior is not None else 1,
        )
        saved = self.statistics.save(statistics)

        logger.info(
            "ZONE_STATISTICS_GENERATED",
            extra={
                "statistic_type": statistic_type.value,
                "academic_year": academic_year,
                "subject_name": subject_name,
                "students_processed": outcome.processed,
                "students_skipped": outcome.skipped,
                "generation": statistics.generation,
                "duration_ms": statistics.calculation_duration_ms,
            }
        )
        return saved

    def generate_overall_statistics(self, academic_year: str) -> ZoneStatistics:
        """Regenerate the overall statistics document for a year."""
        return self._generate(
            StatisticType.OVERALL,
            academic_year,
            self.analytics.find_for_year(academic_year),
            overall_zone,
            self.statistics.find_overall(academic_year),
        )

    def generate_subject_statistics(
        self,
        subject_name: str,
        academic_year: str,
    ) -> ZoneStatistics:
        """Regenerate one subject's statistics from each student's subject zone.

        Only students with an entry for the subject are counted.
        """
        documents = [
            a for a in self.analytics.find_for_year(academic_year)
            if a.subject(subject_name) is not None
        ]
        return self._generate(
            StatisticType.SUBJECT,
            academic_year,
            documents,
            subject_zone(subject_name),
            self.statistics.find_subject(subject_name, academic_year),
            subject_name=subject_name,
        )

    def get_all_subjects(self, academic_year: str) -> List[str]:
        """Distinct subject names present in a year's analytics, sorted."""
        return distinct_subjects(self.analytics.find_for_year(academic_year))

    def refresh_all_statistics(self, academic_year: str) -> StatisticsRefreshResult:
        """Regenerate overall statistics, then each subject's, in sequence."""
        overall = self.generate_overall_statistics(academic_year)
        result = StatisticsRefreshResult(overall=overall)
        for subject_name in self.get_all_subjects(academic_year):
            result.subjects.append(
                self.generate_subject_statistics(subject_name, academic_year)
            )

        logger.info(
            "ALL_STATISTICS_REFRESHED",
            extra={
                "academic_year": academic_year,
                "subject_count": len(result.subjects),
            }
        )
        return result
