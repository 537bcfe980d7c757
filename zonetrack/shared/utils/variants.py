"""Readers for fields that exist under several schema generations.

Student records carry the admission stage and the matriculation baseline
in more than one shape. Each shape gets a named reader; a FirstOf tries
them in a fixed priority order and returns the first present value
together with the name of the source it came from. Values are never
merged across sources.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from zonetrack.shared.models.records import StudentRecord

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Admission stage value meaning "fully admitted"
FULLY_ADMITTED_STAGE = 5


@dataclass(frozen=True)
class VariantReader(Generic[T]):
    """A named way of reading one value out of a record."""
    name: str
    read: Callable[[Any], Optional[T]]


@dataclass(frozen=True)
class VariantValue(Generic[T]):
    """A value together with the reader that produced it."""
    source: str
    value: T


class FirstOf(Generic[T]):
    """Tries readers in order and keeps the first non-None value."""

    def __init__(self, *readers: VariantReader[T]):
        if not readers:
            raise ValueError("FirstOf needs at least one reader")
        self.readers: Tuple[VariantReader[T], ...] = readers

    def resolve(self, record: Any) -> Optional[VariantValue[T]]:
        """Return the first present value and its source, or None."""
        for reader in self.readers:
            value = reader.read(record)
            if value is not None:
                return VariantValue(source=reader.name, value=value)
        return None

    def value(self, record: Any) -> Optional[T]:
        resolved = self.resolve(record)
        return resolved.value if resolved is not None else None

    def is_present(self, record: Any) -> bool:
        return self.resolve(record) is not None


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _legacy_flat_baseline(student: StudentRecord) -> Optional[float]:
    marks = _to_float(student.matric_marks)
    total = _to_float(student.matric_total)
    if not marks or not total:
        return None
    return round(marks / total * 100, 2)


def _structured_percentage_baseline(student: StudentRecord) -> Optional[float]:
    if student.matriculation is None:
        return None
    return _to_float(student.matriculation.percentage)


def _structured_subjects_baseline(student: StudentRecord) -> Optional[float]:
    if student.matriculation is None:
        return None
    subjects = student.matriculation.subjects
    if not subjects or not any(subject.has_marks for subject in subjects):
        return None
    total_obtained = sum(_to_float(s.obtained_marks) or 0.0 for s in subjects)
    total_maximum = sum(_to_float(s.total_marks) or 0.0 for s in subjects)
    if total_maximum <= 0:
        return None
    return round(total_obtained / total_maximum * 100, 2)


ADMISSION_STAGE: FirstOf[int] = FirstOf(
    VariantReader("enquiry_level", lambda s: s.enquiry_level),
    VariantReader("prospectus_stage", lambda s: s.prospectus_stage),
)

MATRICULATION_BASELINE: FirstOf[float] = FirstOf(
    VariantReader("legacy_flat", _legacy_flat_baseline),
    VariantReader("structured_percentage", _structured_percentage_baseline),
    VariantReader("structured_subjects", _structured_subjects_baseline),
)


def is_admitted(
    student: StudentRecord,
    admitted_stage: int = FULLY_ADMITTED_STAGE,
) -> bool:
    """True when the first present admission-stage field equals admitted_stage."""
    return ADMISSION_STAGE.value(student) == admitted_stage


def read_matriculation_percentage(student: StudentRecord) -> Optional[float]:
    """Baseline percentage from the first available source, clamped to [0, 100].

    Args:
        student: Student record

    Returns:
        Percentage rounded to 2 places, or None when no source is present
    """
    resolved = MATRICULATION_BASELINE.resolve(student)
    if resolved is None:
        return None

    clamped = max(0.0, min(100.0, resolved.value))
    if clamped != resolved.value:
        logger.warning(
            "MATRICULATION_PERCENTAGE_CLAMPED",
            extra={
                "student_id": student.student_id,
                "source": resolved.source,
                "raw_value": resolved.value,
                "clamped_value": clamped,
            }
        )
    return round(clamped, 2)


def read_subject_baselines(student: StudentRecord) -> Dict[str, float]:
    """Per-subject matriculation percentages from the structured transcript.

    Resolved lazily for display only; never persisted with analytics.
    """
    baselines = {}
    if student.matriculation is None:
        return baselines
    for subject in student.matriculation.subjects:
        percentage = _to_float(subject.percentage)
        if percentage is None:
            obtained = _to_float(subject.obtained_marks)
            total = _to_float(subject.total_marks)
            if obtained is not None and total:
                percentage = round(obtained / total * 100, 2)
        if percentage is not None:
            baselines[subject.name] = percentage
    return baselines
