"""Student analytics builder.

Turns a student's class-test results into a StudentAnalytics value:
weighted-sum percentages overall and per subject, each with its zone,
plus the matriculation baseline and a bounded calculation history.

Building is pure (build_student_analytics takes the prior document and
source data and returns a new document); StudentAnalyticsBuilder loads
the inputs, runs prerequisite repair, and persists the result.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from zonetrack.shared.models import (
    CalculationEntry,
    CalculationTrigger,
    OverallAnalytics,
    SchoolClass,
    StudentAnalytics,
    StudentRecord,
    SubjectAnalytics,
    TestRecord,
    TestResultEntry,
    TestResultRecord,
    ZoneThresholds,
    classify_zone,
)
from zonetrack.shared.utils import read_matriculation_percentage
from zonetrack.services.roster_service import (
    ClassRepository,
    PrerequisiteValidator,
    StudentNotFoundError,
    StudentRepository,
)
from .analytics_repository import StudentAnalyticsRepository
from .config import AnalyticsConfig
from .result_repository import TestRepository, TestResultRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedResult:
    """A graded class-test result joined with its test."""
    test_id: str
    subject: str
    obtained_marks: float
    total_marks: float
    percentage: Optional[float]
    test_date: Optional[datetime]
    test_type: Optional[str]

    def to_entry(self) -> TestResultEntry:
        return TestResultEntry(
            test_id=self.test_id,
            obtained_marks=self.obtained_marks,
            total_marks=self.total_marks,
            percentage=self.percentage,
            test_date=self.test_date,
            test_type=self.test_type,
        )


def _finite(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_result(result: TestResultRecord, test: TestRecord) -> NormalizedResult:
    """Join a result with its test and repair missing marks.

    Total marks come from the test. When the test has none, they are
    recovered from the result's percentage and obtained marks. A missing
    percentage is computed from the marks.
    """
    obtained = _finite(result.obtained_marks) or 0.0
    total = _finite(test.total_marks) or 0.0
    percentage = _finite(result.percentage)

    if total == 0 and percentage and percentage > 0 and obtained:
        total = float(round(obtained / (percentage / 100)))

    if percentage is None and total > 0 and obtained >= 0:
        percentage = round(obtained / total * 100, 2)

    return NormalizedResult(
        test_id=test.test_id,
        subject=test.subject,
        obtained_marks=obtained,
        total_marks=total,
        percentage=percentage,
        test_date=test.test_date,
        test_type=test.test_type,
    )


def normalize_results(
    results: Iterable[TestResultRecord],
    tests: Dict[str, TestRecord],
) -> List[NormalizedResult]:
    """Normalize the results whose parent test is known.

    Results pointing at a test missing from `tests` (deleted, or not a
    counted category) are dropped. Absent results are dropped as well.
    """
    normalized = []
    for result in results:
        if result.is_absent:
            continue
        test = tests.get(result.test_id)
        if test is None:
            continue
        normalized.append(normalize_result(result, test))
    return normalized


def weighted_percentage(obtained: float, maximum: float) -> float:
    """Σ obtained / Σ max × 100 rounded to 2 places; 0.0 without marks."""
    if maximum <= 0:
        return 0.0
    return round(obtained / maximum * 100, 2)


def _result_order(result: NormalizedResult) -> Tuple[Any, ...]:
    return (result.test_date or datetime.min, result.test_id)


def build_subject_analytics(
    results: List[NormalizedResult],
    now: datetime,
    thresholds: ZoneThresholds,
) -> Tuple[SubjectAnalytics, ...]:
    """One entry per subject, sorted by subject name.

    Subjects whose max-marks sum is zero are left out.
    """
    by_subject: Dict[str, List[NormalizedResult]] = {}
    for result in results:
        by_subject.setdefault(result.subject, []).append(result)

    subjects = []
    for subject_name in sorted(by_subject):
        subject_results = sorted(by_subject[subject_name], key=_result_order)
        obtained = sum(r.obtained_marks for r in subject_results)
        maximum = sum(r.total_marks for r in subject_results)
        if maximum <= 0:
            continue
        percentage = weighted_percentage(obtained, maximum)
        subjects.append(SubjectAnalytics(
            subject_name=subject_name,
            current_percentage=percentage,
            zone=classify_zone(percentage, thresholds),
            total_cts_included=len(subject_results),
            total_marks_obtained=obtained,
            total_max_marks=maximum,
            test_results=tuple(r.to_entry() for r in subject_results),
            last_updated=now,
        ))
    return tuple(subjects)


def _keep_timestamp(new, prior):
    """Reuse the prior value when only last_updated differs."""
    if prior is None:
        return new
    candidate = replace(new, last_updated=prior.last_updated)
    return prior if candidate == prior else new


def build_student_analytics(
    student: StudentRecord,
    school_class: Optional[SchoolClass],
    results: List[NormalizedResult],
    academic_year: str,
    prior: Optional[StudentAnalytics] = None,
    trigger: CalculationTrigger = CalculationTrigger.MANUAL,
    now: Optional[datetime] = None,
    config: Optional[AnalyticsConfig] = None,
) -> StudentAnalytics:
    """Build a fresh analytics document for one student and year.

    The prior document only contributes its calculation history and the
    last_updated stamps of sections whose values did not change, so
    rebuilding from unchanged data yields identical analytics.

    Args:
        student: Student record (after prerequisite repair)
        school_class: The student's class, if any
        results: Normalized class-test results
        academic_year: Academic year key
        prior: Previously stored document for the same key
        trigger: What caused this calculation
        now: Calculation time
        config: Analytics configuration

    Returns:
        New StudentAnalytics
    """
    config = config or AnalyticsConfig()
    now = now or datetime.utcnow()
    thresholds = config.thresholds

    total_obtained = sum(r.obtained_marks for r in results)
    total_maximum = sum(r.total_marks for r in results)
    overall_percentage = weighted_percentage(total_obtained, total_maximum)

    overall = OverallAnalytics(
        matriculation_percentage=read_matriculation_percentage(student),
        current_overall_percentage=overall_percentage,
        overall_zone=classify_zone(overall_percentage, thresholds),
        total_cts_included=len(results),
        total_marks_obtained=total_obtained,
        total_max_marks=total_maximum,
        last_updated=now,
    )

    subjects = build_subject_analytics(results, now, thresholds)

    prior_history: Tuple[CalculationEntry, ...] = ()
    if prior is not None:
        overall = _keep_timestamp(overall, prior.overall_analytics)
        subjects = tuple(
            _keep_timestamp(subject, prior.subject(subject.subject_name))
            for subject in subjects
        )
        prior_history = prior.calculation_history

    entry = CalculationEntry(
        calculated_at=now,
        overall_zone=overall.overall_zone,
        overall_percentage=overall.current_overall_percentage,
        total_tests_included=len(results),
        trigger=trigger,
    )
    history = (prior_history + (entry,))[-config.history_limit:]

    if school_class is not None:
        grade = school_class.grade or student.grade
        campus = school_class.campus
        program = school_class.program or student.program
    else:
        grade, campus, program = student.grade, None, student.program

    return StudentAnalytics(
        student_id=student.student_id,
        academic_year=academic_year,
        overall_analytics=overall,
        subject_analytics=subjects,
        class_id=student.class_id,
        grade=grade,
        campus=campus,
        program=program,
        calculation_history=history,
        last_calculated=now,
    )


@dataclass
class BatchCalculationResult:
    """Tally of a calculate-all run."""
    successful: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successful": self.successful,
            "failed": self.failed,
            "errors": list(self.errors),
        }


class StudentAnalyticsBuilder:
    """Calculates and stores analytics for students.

    Dependencies are injected so tests can run on in-memory repositories.
    """

    def __init__(
        self,
        student_repository: StudentRepository,
        class_repository: ClassRepository,
        test_repository: TestRepository,
        result_repository: TestResultRepository,
        analytics_repository: StudentAnalyticsRepository,
        validator: PrerequisiteValidator,
        config: Optional[AnalyticsConfig] = None,
    ):
        self.students = student_repository
        self.classes = class_repository
        self.tests = test_repository
        self.results = result_repository
        self.analytics = analytics_repository
        self.validator = validator
        self.config = config or AnalyticsConfig()

        logger.info(
            "ANALYTICS_BUILDER_INITIALIZED",
            extra={
                "batch_size": self.config.batch_size,
                "history_limit": self.config.history_limit,
            }
        )

    def load_results(self, student_id: str) -> List[NormalizedResult]:
        """Graded class-test results for a student, normalized."""
        graded = self.results.find_graded_for_student(student_id)
        tests = self.tests.find_by_ids(
            (r.test_id for r in graded),
            categories=self.config.counted_test_categories,
        )
        return normalize_results(graded, tests)

    def calculate_for_student(
        self,
        student_id: str,
        academic_year: str,
        trigger: CalculationTrigger = CalculationTrigger.MANUAL,
    ) -> StudentAnalytics:
        """Recalculate and save one student's analytics for a year.

        Prerequisite issues that cannot be repaired are logged and the
        calculation continues with the data available.

        Args:
            student_id: Student to calculate
            academic_year: Academic year key
            trigger: What caused this calculation

        Returns:
            Saved StudentAnalytics

        Raises:
            StudentNotFoundError: If the student does not exist
            RepositoryError: If storage fails (nothing is saved)
        """
        fix = self.validator.validate_and_fix(student_id)
        if not fix.success:
            logger.warning(
                "PREREQUISITE_ISSUES_REMAIN",
                extra={
                    "student_id": student_id,
                    "academic_year": academic_year,
                    "issues": [i.value for i in fix.remaining_issues],
                }
            )

        student = self.students.find_by_id(student_id)
        if student is None:
            raise StudentNotFoundError(f"Student not found: {student_id}")

        school_class = None
        if student.class_id:
            school_class = self.classes.find_by_id(student.class_id)

        results = self.load_results(student_id)
        prior = self.analytics.find_for_student(student_id, academic_year)

        analytics = build_student_analytics(
            student,
            school_class,
            results,
            academic_year,
            prior=prior,
            trigger=trigger,
            config=self.config,
        )
        saved = self.analytics.save(analytics)

        logger.info(
            "STUDENT_ANALYTICS_CALCULATED",
            extra={
                "student_id": student_id,
                "academic_year": academic_year,
                "overall_zone": analytics.overall_analytics.overall_zone.value,
                "tests_included": analytics.overall_analytics.total_cts_included,
                "subjects": len(analytics.subject_analytics),
            }
        )
        return saved

    async def calculate_all_student_analytics_async(
        self,
        academic_year: str,
        trigger: CalculationTrigger = CalculationTrigger.BATCH_UPDATE,
    ) -> BatchCalculationResult:
        """Calculate analytics for every admitted student.

        Students are processed in batches of config.batch_size; batches
        run one after another and the students of a batch run
        concurrently. A failing student is recorded and skipped.

        Args:
            academic_year: Academic year key
            trigger: Trigger recorded in each student's history

        Returns:
            BatchCalculationResult
        """
        start_time = time.perf_counter()
        students = self.students.find_admitted(self.validator.config.admitted_stage)
        results = BatchCalculationResult()
        batch_size = max(1, self.config.batch_size)

        logger.info(
            "BATCH_CALCULATION_STARTED",
            extra={"academic_year": academic_year, "student_count": len(students)}
        )

        for offset in range(0, len(students), batch_size):
            batch = students[offset:offset + batch_size]
            tasks = [
                asyncio.to_thread(
                    self.calculate_for_student,
                    student.student_id,
                    academic_year,
                    trigger,
                )
                for student in batch
            ]
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)

            for student, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    results.failed += 1
                    results.errors.append({
                        "student_id": student.student_id,
                        "student_name": student.full_name,
                        "error": str(outcome),
                    })
                    logger.error(
                        "STUDENT_ANALYTICS_FAILED",
                        extra={
                            "student_id": student.student_id,
                            "academic_year": academic_year,
                            "error": str(outcome),
                        }
                    )
                else:
                    results.successful += 1

            logger.info(
                "BATCH_CALCULATION_PROGRESS",
                extra={
                    "processed": min(offset + batch_size, len(students)),
                    "total": len(students),
                }
            )

        logger.info(
            "BATCH_CALCULATION_COMPLETED",
            extra={
                "academic_year": academic_year,
                "successful": results.successful,
                "failed": results.failed,
                "duration_ms": int((time.perf_counter() - start_time) * 1000),
            }
        )
        return results

    def calculate_all_student_analytics(
        self,
        academic_year: str,
        trigger: CalculationTrigger = CalculationTrigger.BATCH_UPDATE,
    ) -> BatchCalculationResult:
        """Synchronous wrapper around calculate_all_student_analytics_async."""
        return asyncio.run(
            self.calculate_all_student_analytics_async(academic_year, trigger)
        )
