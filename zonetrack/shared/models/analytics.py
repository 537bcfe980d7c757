"""Per-student analytics document.

One StudentAnalytics exists per (student, academic year). It is fully
rebuilt on every recalculation; instances are immutable and a new value
is produced for each run.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .zones import Zone


class CalculationTrigger(Enum):
    """What caused a recalculation."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    NEW_RESULT = "new_result"
    BATCH_UPDATE = "batch_update"


@dataclass(frozen=True)
class TestResultEntry:
    """Normalized class-test result kept for detailed analysis."""
    __test__ = False

    test_id: str
    obtained_marks: float
    total_marks: float
    percentage: Optional[float]
    test_date: Optional[datetime]
    test_type: Optional[str]


@dataclass(frozen=True)
class SubjectAnalytics:
    """Weighted-sum score and zone for one subject."""
    subject_name: str
    current_percentage: float
    zone: Zone
    total_cts_included: int
    total_marks_obtained: float
    total_max_marks: float
    test_results: Tuple[TestResultEntry, ...] = ()
    last_updated: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class OverallAnalytics:
    """Weighted-sum score and zone across every counted class test."""
    matriculation_percentage: Optional[float]
    current_overall_percentage: float
    overall_zone: Zone
    total_cts_included: int
    total_marks_obtained: float
    total_max_marks: float
    last_updated: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class CalculationEntry:
    """One entry of the bounded calculation history."""
    calculated_at: datetime
    overall_zone: Zone
    overall_percentage: float
    total_tests_included: int
    trigger: CalculationTrigger = CalculationTrigger.MANUAL


@dataclass(frozen=True)
class StudentAnalytics:
    """Analytics document for one student and academic year.

    class_id, grade, campus and program are a snapshot of the student's
    placement at calculation time, used to partition aggregations.
    """
    student_id: str
    academic_year: str
    overall_analytics: OverallAnalytics
    subject_analytics: Tuple[SubjectAnalytics, ...] = ()
    class_id: Optional[str] = None
    grade: Optional[str] = None
    campus: Optional[str] = None
    program: Optional[str] = None
    calculation_history: Tuple[CalculationEntry, ...] = ()
    last_calculated: datetime = field(default_factory=datetime.utcnow)

    def subject(self, subject_name: str) -> Optional[SubjectAnalytics]:
        """Find the analytics entry for a subject, if the student has one."""
        for entry in self.subject_analytics:
            if entry.subject_name == subject_name:
                return entry
        return None

    @property
    def subject_names(self) -> Tuple[str, ...]:
        return tuple(entry.subject_name for entry in self.subject_analytics)
