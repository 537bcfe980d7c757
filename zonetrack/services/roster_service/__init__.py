"""Roster Service: prerequisite checks and class auto-assignment.

Reads collaborator-owned student and class records and repairs the one
data-quality issue that can be fixed without manual entry: a missing
class assignment.

Key responsibilities:
- Validate student records before analytics calculation
- Suggest and write class assignments within the capacity ceiling
- Report data quality and assignment coverage
"""

from .config import AssignmentConfig
from .roster_repository import (
    StudentRepository,
    ClassRepository,
    StudentNotFoundError,
    ClassNotFoundError,
    ClassFullError,
)
from .class_assignment import (
    ClassAssignmentService,
    AssignmentResult,
    BatchAssignmentResult,
    determine_campus,
)
from .prerequisites import (
    PrerequisiteValidator,
    PrerequisiteIssue,
    ValidationResult,
    FixResult,
    BatchValidationResult,
    check_student,
)

__all__ = [
    "AssignmentConfig",
    "StudentRepository",
    "ClassRepository",
    "StudentNotFoundError",
    "ClassNotFoundError",
    "ClassFullError",
    "ClassAssignmentService",
    "AssignmentResult",
    "BatchAssignmentResult",
    "determine_campus",
    "PrerequisiteValidator",
    "PrerequisiteIssue",
    "ValidationResult",
    "FixResult",
    "BatchValidationResult",
    "check_student",
]
