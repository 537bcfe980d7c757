"""Cached zone statistics tree.

campus -> grade -> class, with a zone distribution at every level and a
college-wide total. Regenerated wholesale by the aggregation engine; one
document per (statistic type, academic year, subject).
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .zones import ZONE_ORDER, ZoneDistribution

UNASSIGNED_CLASS_NAME = "Unassigned"


class StatisticType(Enum):
    """Scope of a statistics document."""
    OVERALL = "overall"
    SUBJECT = "subject"


@dataclass
class ClassStats:
    """Leaf node. class_id is None for the Unassigned bucket."""
    class_id: Optional[str]
    class_name: str
    zone_distribution: ZoneDistribution = field(default_factory=ZoneDistribution)


@dataclass
class GradeStats:
    grade: str
    class_stats: List[ClassStats] = field(default_factory=list)
    grade_zone_distribution: ZoneDistribution = field(default_factory=ZoneDistribution)

    def find_class(self, class_id: Optional[str]) -> Optional[ClassStats]:
        for class_stat in self.class_stats:
            if class_stat.class_id == class_id:
                return class_stat
        return None


@dataclass
class CampusStats:
    campus: str
    grade_stats: List[GradeStats] = field(default_factory=list)
    campus_zone_distribution: ZoneDistribution = field(default_factory=ZoneDistribution)

    def find_grade(self, grade: str) -> Optional[GradeStats]:
        for grade_stat in self.grade_stats:
            if grade_stat.grade == grade:
                return grade_stat
        return None


@dataclass
class ZoneStatistics:
    """Aggregated zone statistics for one scope.

    Attributes:
        statistic_type: overall or subject
        academic_year: Academic year key
        subject_name: Required when statistic_type is SUBJECT
        campus_stats: Nested campus/grade/class breakdown
        college_wide_stats: Institution-level counts
        last_updated: When this document was generated
        calculation_duration_ms: Wall-clock generation time
        students_processed: Analytics documents read for this scope
        students_skipped: Documents that could not be placed in the tree
        generation: Incremented on every regeneration of this scope
    """
    statistic_type: StatisticType
    academic_year: str
    subject_name: Optional[str] = None
    campus_stats: List[CampusStats] = field(default_factory=list)
    college_wide_stats: ZoneDistribution = field(default_factory=ZoneDistribution)
    last_updated: datetime = field(default_factory=datetime.utcnow)
    calculation_duration_ms: int = 0
    students_processed: int = 0
    students_skipped: int = 0
    generation: int = 1

    def __post_init__(self):
        if self.statistic_type == StatisticType.SUBJECT and not self.subject_name:
            raise ValueError("subject_name is required for subject statistics")

    @property
    def key(self) -> Tuple[str, str, str]:
        return (
            self.statistic_type.value,
            self.academic_year,
            self.subject_name or "",
        )

    def get_campus_stats(self, campus: str) -> Optional[CampusStats]:
        for campus_stat in self.campus_stats:
            if campus_stat.campus == campus:
                return campus_stat
        return None

    def get_grade_stats(self, campus: str, grade: str) -> Optional[GradeStats]:
        campus_stat = self.get_campus_stats(campus)
        if campus_stat is None:
            return None
        return campus_stat.find_grade(grade)

    def get_class_stats(
        self,
        campus: str,
        grade: str,
        class_id: Optional[str],
    ) -> Optional[ClassStats]:
        grade_stat = self.get_grade_stats(campus, grade)
        if grade_stat is None:
            return None
        return grade_stat.find_class(class_id)

    def college_wide_percentages(self) -> Dict[str, int]:
        """Rounded share of each zone in the college-wide total."""
        total = self.college_wide_stats.total
        if total == 0:
            return {zone.value: 0 for zone in ZONE_ORDER}
        return {
            zone.value: round(self.college_wide_stats.count(zone) / total * 100)
            for zone in ZONE_ORDER
        }
