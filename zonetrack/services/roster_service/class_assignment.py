"""Class assignment resolver.

Suggests a class for an admitted student from their grade, program and
campus, and writes the assignment to both the student record and the
class roster.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from zonetrack.shared.models import CAMPUS_BOYS, CAMPUS_GIRLS, SchoolClass, StudentRecord
from .config import AssignmentConfig
from .roster_repository import (
    ClassRepository,
    StudentNotFoundError,
    StudentRepository,
)

logger = logging.getLogger(__name__)


def determine_campus(gender: Optional[str]) -> str:
    """Girls for "female" (any case), Boys for everything else."""
    if gender is not None and gender.lower() == "female":
        return CAMPUS_GIRLS
    return CAMPUS_BOYS


@dataclass(frozen=True)
class AssignmentResult:
    """Outcome of assigning one student."""
    success: bool
    message: str
    class_id: Optional[str] = None
    class_name: Optional[str] = None
    already_assigned: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result = {"success": self.success, "message": self.message}
        if self.class_id is not None:
            result["class_id"] = self.class_id
        if self.class_name is not None:
            result["class_name"] = self.class_name
        return result


@dataclass
class BatchAssignmentResult:
    """Tally of a batch assignment run."""
    assigned: int = 0
    failed: int = 0
    already_assigned: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assigned": self.assigned,
            "failed": self.failed,
            "already_assigned": self.already_assigned,
            "errors": list(self.errors),
        }


class ClassAssignmentService:
    """Resolves and writes class assignments for admitted students."""

    def __init__(
        self,
        student_repository: StudentRepository,
        class_repository: ClassRepository,
        config: Optional[AssignmentConfig] = None,
    ):
        self.students = student_repository
        self.classes = class_repository
        self.config = config or AssignmentConfig()
        self._assignment_lock = threading.Lock()

    def suggest_class(self, student: StudentRecord) -> Optional[SchoolClass]:
        """Pick the least-full class matching the student's placement.

        Only classes whose roster is below the capacity ceiling are
        considered; ties go to the lowest class id.

        Args:
            student: Student to place

        Returns:
            Suggested class, or None if nothing matches or all are full
        """
        campus = determine_campus(student.gender)
        candidates = self.classes.find(
            grade=student.grade,
            program=student.program,
            campus=campus,
        )
        open_classes = [
            c for c in candidates
            if c.enrolled_count < self.config.class_capacity
        ]

        if not open_classes:
            logger.warning(
                "NO_CLASS_WITH_CAPACITY",
                extra={
                    "student_id": student.student_id,
                    "grade": student.grade,
                    "program": student.program,
                    "campus": campus,
                    "candidates": len(candidates),
                }
            )
            return None

        return min(open_classes, key=lambda c: (c.enrolled_count, c.class_id))

    def auto_assign_class(self, student_id: str) -> AssignmentResult:
        """Assign a student to the suggested class.

        The student's class reference is written first, then the class
        roster. If the roster write fails the student's previous class
        reference is restored before the failure is reported.

        Assignments made through one service run one at a time, so
        concurrent callers see each other's roster counts when picking
        a class. The roster append itself is atomic and re-checks the
        capacity ceiling for writers in other processes.

        Args:
            student_id: Student to assign

        Returns:
            AssignmentResult

        Raises:
            StudentNotFoundError: If the student does not exist
        """
        with self._assignment_lock:
            return self._assign(student_id)

    def _assign(self, student_id: str) -> AssignmentResult:
        student = self.students.find_by_id(student_id)
        if student is None:
            raise StudentNotFoundError(f"Student not found: {student_id}")

        if student.class_id:
            return AssignmentResult(
                success=True,
                message="Student already has a class assignment",
                class_id=student.class_id,
                class_name=student.class_name,
                already_assigned=True,
            )

        suggested = self.suggest_class(student)
        if suggested is None:
            return AssignmentResult(
                success=False,
                message="No suitable class found for student",
            )

        self.students.set_class(student_id, suggested.class_id, suggested.name)
        try:
            self.classes.add_student(
                suggested.class_id, student_id, capacity=self.config.class_capacity
            )
        except Exception as e:
            try:
                self.students.set_class(student_id, student.class_id, student.class_name)
            except Exception as restore_error:
                logger.error(
                    "CLASS_ASSIGNMENT_COMPENSATION_FAILED",
                    extra={
                        "student_id": student_id,
                        "class_id": suggested.class_id,
                        "error": str(restore_error),
                    }
                )
                raise
            logger.error(
                "CLASS_ROSTER_UPDATE_FAILED",
                extra={
                    "student_id": student_id,
                    "class_id": suggested.class_id,
                    "error": str(e),
                }
            )
            return AssignmentResult(
                success=False,
                message=f"Failed to add student to class {suggested.name}: {e}",
            )

        logger.info(
            "CLASS_AUTO_ASSIGNED",
            extra={
                "student_id": student_id,
                "class_id": suggested.class_id,
                "class_name": suggested.name,
            }
        )
        return AssignmentResult(
            success=True,
            message=f"Student assigned to class {suggested.name}",
            class_id=suggested.class_id,
            class_name=suggested.name,
        )

    def _assign_each(
        self,
        student_ids: List[str],
        names: Dict[str, str],
    ) -> BatchAssignmentResult:
        results = BatchAssignmentResult()
        for student_id in student_ids:
            try:
                result = self.auto_assign_class(student_id)
                reason = result.message
            except Exception as e:
                result = None
                reason = str(e)

            if result is not None and result.success:
                if result.already_assigned:
                    results.already_assigned += 1
                else:
                    results.assigned += 1
                continue

            results.failed += 1
            error = {"student_id": student_id, "reason": reason}
            if student_id in names:
                error["student_name"] = names[student_id]
            results.errors.append(error)
        return results

    def assign_all_unassigned_students(self) -> BatchAssignmentResult:
        """Assign every admitted student that has no class.

        Returns:
            BatchAssignmentResult; one student's failure never stops the run
        """
        unassigned = self.students.find_unassigned_admitted(self.config.admitted_stage)
        names = {s.student_id: s.full_name for s in unassigned}

        logger.info(
            "CLASS_ASSIGNMENT_STARTED",
            extra={"unassigned_count": len(unassigned)}
        )

        results = self._assign_each([s.student_id for s in unassigned], names)

        logger.info(
            "CLASS_ASSIGNMENT_COMPLETED",
            extra={
                "assigned": results.assigned,
                "failed": results.failed,
                "already_assigned": results.already_assigned,
            }
        )
        return results

    def assign_selected_students(self, student_ids: List[str]) -> BatchAssignmentResult:
        """Assign the given students, tallying outcomes per student."""
        results = self._assign_each(list(student_ids), {})
        logger.info(
            "SELECTED_CLASS_ASSIGNMENT_COMPLETED",
            extra={
                "requested": len(student_ids),
                "assigned": results.assigned,
                "failed": results.failed,
                "already_assigned": results.already_assigned,
            }
        )
        return results

    def get_assignment_statistics(self) -> Dict[str, Any]:
        """Assigned vs unassigned counts among admitted students."""
        admitted = self.students.find_admitted(self.config.admitted_stage)
        total = len(admitted)
        assigned = sum(1 for s in admitted if s.class_id)
        return {
            "total": total,
            "assigned": assigned,
            "unassigned": total - assigned,
            "assignment_rate": round(assigned / total * 100, 2) if total else 0.0,
        }
