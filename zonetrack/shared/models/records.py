"""Collaborator-owned records consumed by the analytics core.

Students, classes, tests and results are created and edited by the
general administration application. The analytics core only reads the
fields below (and writes a student's class reference plus class roster
membership during auto-assignment).
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

CAMPUS_BOYS = "Boys"
CAMPUS_GIRLS = "Girls"
CAMPUSES = (CAMPUS_BOYS, CAMPUS_GIRLS)

GRADE_11 = "11th"
GRADE_12 = "12th"
GRADES = (GRADE_11, GRADE_12)

# Test category counted toward zone analytics
CLASS_TEST = "Class Test"


@dataclass(frozen=True)
class MatriculationSubject:
    """One subject of a student's matriculation transcript."""
    name: str
    obtained_marks: Optional[float] = None
    total_marks: Optional[float] = None
    percentage: Optional[float] = None

    @property
    def has_marks(self) -> bool:
        return bool(self.obtained_marks or self.total_marks)


@dataclass(frozen=True)
class MatriculationRecord:
    """Structured matriculation data (current student schema)."""
    percentage: Optional[float] = None
    total_marks: Optional[float] = None
    subjects: Tuple[MatriculationSubject, ...] = ()


@dataclass(frozen=True)
class StudentRecord:
    """Student fields the analytics core depends on.

    Admission stage and matriculation baseline exist under more than one
    schema generation; see zonetrack.shared.utils.variants for the readers.
    """
    student_id: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone_number: Optional[str] = None
    roll_number: Optional[str] = None
    gender: Optional[str] = None
    program: Optional[str] = None
    grade: Optional[str] = None
    class_id: Optional[str] = None
    class_name: Optional[str] = None
    enquiry_level: Optional[int] = None
    prospectus_stage: Optional[int] = None
    matric_marks: Optional[float] = None        # Legacy flat baseline
    matric_total: Optional[float] = None        # Legacy flat baseline
    matriculation: Optional[MatriculationRecord] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


@dataclass(frozen=True)
class SchoolClass:
    """A class section with its roster."""
    class_id: str
    name: str
    campus: str
    grade: str
    program: str
    student_ids: Tuple[str, ...] = ()

    @property
    def enrolled_count(self) -> int:
        return len(self.student_ids)


@dataclass(frozen=True)
class TestRecord:
    """A scheduled test. Only CLASS_TEST category counts toward zones."""
    __test__ = False

    test_id: str
    subject: str
    total_marks: Optional[float]
    test_date: Optional[datetime] = None
    test_type: Optional[str] = None
    category: str = CLASS_TEST
    class_id: Optional[str] = None


@dataclass(frozen=True)
class TestResultRecord:
    """A student's result for one test."""
    __test__ = False

    result_id: str
    test_id: str
    student_id: str
    obtained_marks: Optional[float] = None
    percentage: Optional[float] = None
    is_absent: bool = False
    entered_on: datetime = field(default_factory=datetime.utcnow)
