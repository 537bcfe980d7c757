"""Prerequisite validation for analytics calculation.

Checks that a student record carries everything the analytics builder
and aggregation engine depend on. A missing class assignment is the
only issue repaired automatically (through the class assignment
resolver); every other issue needs manual data entry.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from zonetrack.shared.models import StudentRecord
from zonetrack.shared.utils import MATRICULATION_BASELINE, is_admitted
from .class_assignment import ClassAssignmentService
from .config import AssignmentConfig
from .roster_repository import StudentRepository

logger = logging.getLogger(__name__)


class PrerequisiteIssue(Enum):
    """Data-quality issue codes."""
    STUDENT_NOT_FOUND = "STUDENT_NOT_FOUND"
    NO_CLASS_ASSIGNMENT = "NO_CLASS_ASSIGNMENT"
    NO_PROGRAM = "NO_PROGRAM"
    NO_GRADE = "NO_GRADE"
    NO_GENDER = "NO_GENDER"
    NOT_ADMITTED = "NOT_ADMITTED"
    NO_MATRICULATION_DATA = "NO_MATRICULATION_DATA"


AUTO_FIXABLE_ISSUES: FrozenSet[PrerequisiteIssue] = frozenset({
    PrerequisiteIssue.NO_CLASS_ASSIGNMENT,
})


def check_student(
    student: StudentRecord,
    admitted_stage: int,
) -> Tuple[PrerequisiteIssue, ...]:
    """Issues present on a student record, in a fixed order."""
    issues = []
    if not student.class_id:
        issues.append(PrerequisiteIssue.NO_CLASS_ASSIGNMENT)
    if not student.program:
        issues.append(PrerequisiteIssue.NO_PROGRAM)
    if not student.grade:
        issues.append(PrerequisiteIssue.NO_GRADE)
    if not student.gender:
        issues.append(PrerequisiteIssue.NO_GENDER)
    if not is_admitted(student, admitted_stage):
        issues.append(PrerequisiteIssue.NOT_ADMITTED)
    if not MATRICULATION_BASELINE.is_present(student):
        issues.append(PrerequisiteIssue.NO_MATRICULATION_DATA)
    return tuple(issues)


def _codes(issues: Iterable[PrerequisiteIssue]) -> List[str]:
    return [issue.value for issue in issues]


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating one student."""
    student_id: str
    issues: Tuple[PrerequisiteIssue, ...]
    student: Optional[StudentRecord] = None

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def can_auto_fix(self) -> bool:
        """True iff every issue is one the resolver can repair."""
        return all(issue in AUTO_FIXABLE_ISSUES for issue in self.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "is_valid": self.is_valid,
            "issues": _codes(self.issues),
            "can_auto_fix": self.can_auto_fix,
        }


@dataclass(frozen=True)
class FixResult:
    """Outcome of validate-and-fix for one student."""
    success: bool
    message: str
    student_id: str
    original_issues: Tuple[PrerequisiteIssue, ...] = ()
    remaining_issues: Tuple[PrerequisiteIssue, ...] = ()
    fixed: Tuple[Dict[str, str], ...] = ()
    failed: Tuple[Dict[str, str], ...] = ()

    @property
    def requires_manual_fix(self) -> List[PrerequisiteIssue]:
        return [i for i in self.remaining_issues if i not in AUTO_FIXABLE_ISSUES]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "student_id": self.student_id,
            "original_issues": _codes(self.original_issues),
            "remaining_issues": _codes(self.remaining_issues),
            "requires_manual_fix": _codes(self.requires_manual_fix),
            "fixes": {"fixed": list(self.fixed), "failed": list(self.failed)},
        }


@dataclass
class BatchValidationResult:
    """Tally of a batch validate-and-fix run."""
    total: int = 0
    valid: int = 0
    fixed: int = 0
    failed: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "valid": self.valid,
            "fixed": self.fixed,
            "failed": self.failed,
            "details": list(self.details),
        }


class PrerequisiteValidator:
    """Validates student records and repairs what can be repaired."""

    def __init__(
        self,
        student_repository: StudentRepository,
        assignment_service: ClassAssignmentService,
        config: Optional[AssignmentConfig] = None,
    ):
        self.students = student_repository
        self.assignment = assignment_service
        self.config = config or assignment_service.config

    def validate(self, student_id: str) -> ValidationResult:
        """Validate one student.

        A missing student is reported as the STUDENT_NOT_FOUND issue,
        which is never auto-fixable.
        """
        student = self.students.find_by_id(student_id)
        if student is None:
            return ValidationResult(
                student_id=student_id,
                issues=(PrerequisiteIssue.STUDENT_NOT_FOUND,),
            )
        return ValidationResult(
            student_id=student_id,
            issues=check_student(student, self.config.admitted_stage),
            student=student,
        )

    def _auto_fix(
        self,
        student_id: str,
        issues: Tuple[PrerequisiteIssue, ...],
    ) -> Tuple[List[Dict[str, str]], List[Dict[str, str]]]:
        fixed, failed = [], []
        for issue in issues:
            if issue != PrerequisiteIssue.NO_CLASS_ASSIGNMENT:
                failed.append({
                    "issue": issue.value,
                    "reason": "No auto-fix available for this issue",
                })
                continue
            try:
                result = self.assignment.auto_assign_class(student_id)
            except Exception as e:
                failed.append({"issue": issue.value, "reason": str(e)})
                continue
            if result.success:
                fixed.append({
                    "issue": issue.value,
                    "solution": f"Assigned to class: {result.class_name}",
                })
            else:
                failed.append({"issue": issue.value, "reason": result.message})
        return fixed, failed

    def validate_and_fix(self, student_id: str) -> FixResult:
        """Validate a student and auto-fix when every issue is fixable.

        When any issue needs manual entry nothing is written and the full
        issue list is returned.

        Args:
            student_id: Student to check

        Returns:
            FixResult; success is True when no issues remain
        """
        validation = self.validate(student_id)

        if validation.is_valid:
            return FixResult(
                success=True,
                message="Student data is valid for analytics calculation",
                student_id=student_id,
            )

        if not validation.can_auto_fix:
            logger.warning(
                "PREREQUISITES_NEED_MANUAL_FIX",
                extra={
                    "student_id": student_id,
                    "issues": _codes(validation.issues),
                }
            )
            return FixResult(
                success=False,
                message="Student data has issues that cannot be auto-fixed",
                student_id=student_id,
                original_issues=validation.issues,
                remaining_issues=validation.issues,
            )

        fixed, failed = self._auto_fix(student_id, validation.issues)
        revalidation = self.validate(student_id)

        logger.info(
            "PREREQUISITES_AUTO_FIXED",
            extra={
                "student_id": student_id,
                "fixed": len(fixed),
                "remaining_issues": _codes(revalidation.issues),
            }
        )
        return FixResult(
            success=revalidation.is_valid,
            message=(
                "Student data validated and fixed successfully"
                if revalidation.is_valid
                else "Some issues remain after auto-fix attempts"
            ),
            student_id=student_id,
            original_issues=validation.issues,
            remaining_issues=revalidation.issues,
            fixed=tuple(fixed),
            failed=tuple(failed),
        )

    def batch_validate_and_fix(self, student_ids: List[str]) -> BatchValidationResult:
        """Validate and fix students one after another.

        Returns:
            BatchValidationResult with one detail entry per student
        """
        results = BatchValidationResult(total=len(student_ids))
        for student_id in student_ids:
            try:
                result = self.validate_and_fix(student_id)
            except Exception as e:
                logger.error(
                    "PREREQUISITE_CHECK_FAILED",
                    extra={"student_id": student_id, "error": str(e)}
                )
                results.failed += 1
                results.details.append({
                    "success": False,
                    "student_id": student_id,
                    "error": str(e),
                })
                continue

            results.details.append(result.to_dict())
            if not result.success:
                results.failed += 1
            elif result.fixed:
                results.fixed += 1
            else:
                results.valid += 1

        logger.info(
            "BATCH_PREREQUISITES_CHECKED",
            extra={
                "total": results.total,
                "valid": results.valid,
                "fixed": results.fixed,
                "failed": results.failed,
            }
        )
        return results

    def get_data_quality_report(
        self,
        students: Optional[List[StudentRecord]] = None,
    ) -> Dict[str, Any]:
        """Summarize data quality over admitted students.

        Args:
            students: Records to report on; all admitted students if None

        Returns:
            Counts per issue code, readiness counts, and a data quality
            score (share of ready students in percent)
        """
        if students is None:
            students = self.students.find_admitted(self.config.admitted_stage)

        issue_counts = {
            issue.value: 0
            for issue in PrerequisiteIssue
            if issue != PrerequisiteIssue.STUDENT_NOT_FOUND
        }
        ready = auto_fixable = manual = 0

        for student in students:
            validation = ValidationResult(
                student_id=student.student_id,
                issues=check_student(student, self.config.admitted_stage),
                student=student,
            )
            if validation.is_valid:
                ready += 1
                continue
            for issue in validation.issues:
                issue_counts[issue.value] += 1
            if validation.can_auto_fix:
                auto_fixable += 1
            else:
                manual += 1

        total = len(students)
        return {
            "total_students": total,
            "issues": issue_counts,
            "ready_for_analytics": ready,
            "can_auto_fix": auto_fixable,
            "needs_manual_fix": manual,
            "data_quality_score": round(ready / total * 100, 2) if total else 0.0,
        }
