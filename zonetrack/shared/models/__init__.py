"""Shared domain models for the zone analytics platform."""
from .zones import (
    Zone,
    ZONE_ORDER,
    ZoneThresholds,
    DEFAULT_THRESHOLDS,
    ZoneDistribution,
    classify_zone,
)
from .records import (
    CAMPUSES,
    CAMPUS_BOYS,
    CAMPUS_GIRLS,
    GRADES,
    GRADE_11,
    GRADE_12,
    CLASS_TEST,
    MatriculationSubject,
    MatriculationRecord,
    StudentRecord,
    SchoolClass,
    TestRecord,
    TestResultRecord,
)
from .analytics import (
    CalculationTrigger,
    TestResultEntry,
    SubjectAnalytics,
    OverallAnalytics,
    CalculationEntry,
    StudentAnalytics,
)
from .statistics import (
    UNASSIGNED_CLASS_NAME,
    StatisticType,
    ClassStats,
    GradeStats,
    CampusStats,
    ZoneStatistics,
)

__all__ = [
    "Zone",
    "ZONE_ORDER",
    "ZoneThresholds",
    "DEFAULT_THRESHOLDS",
    "ZoneDistribution",
    "classify_zone",
    "CAMPUSES",
    "CAMPUS_BOYS",
    "CAMPUS_GIRLS",
    "GRADES",
    "GRADE_11",
    "GRADE_12",
    "CLASS_TEST",
    "MatriculationSubject",
    "MatriculationRecord",
    "StudentRecord",
    "SchoolClass",
    "TestRecord",
    "TestResultRecord",
    "CalculationTrigger",
    "TestResultEntry",
    "SubjectAnalytics",
    "OverallAnalytics",
    "CalculationEntry",
    "StudentAnalytics",
    "UNASSIGNED_CLASS_NAME",
    "StatisticType",
    "ClassStats",
    "GradeStats",
    "CampusStats",
    "ZoneStatistics",
]
