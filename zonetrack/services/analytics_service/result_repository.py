"""Read side of tests and test results.

Tests and results are entered through the examination screens of the
administration application; analytics only reads them. save() is kept
for seeding and for the administration side.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from zonetrack.shared.database import (
    BaseRepository,
    ConnectionManager,
    datetime_from_json,
    datetime_to_json,
)
from zonetrack.shared.models import CLASS_TEST, TestRecord, TestResultRecord

logger = logging.getLogger(__name__)


class TestRepository(BaseRepository[TestRecord]):
    """Repository for scheduled tests."""

    __test__ = False  # not a pytest class

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(
            connection_manager,
            "tests",
            key_columns=("test_id",),
            index_columns=("subject", "category", "class_id"),
        )

    def _entity_to_columns(self, entity: TestRecord) -> Dict[str, Any]:
        return {
            "test_id": entity.test_id,
            "subject": entity.subject,
            "category": entity.category,
            "class_id": entity.class_id,
        }

    def _entity_to_document(self, entity: TestRecord) -> Dict[str, Any]:
        return {
            "test_id": entity.test_id,
            "subject": entity.subject,
            "total_marks": entity.total_marks,
            "test_date": datetime_to_json(entity.test_date),
            "test_type": entity.test_type,
            "category": entity.category,
            "class_id": entity.class_id,
        }

    def _document_to_entity(self, document: Dict[str, Any]) -> TestRecord:
        return TestRecord(
            test_id=document["test_id"],
            subject=document["subject"],
            total_marks=document.get("total_marks"),
            test_date=datetime_from_json(document.get("test_date")),
            test_type=document.get("test_type"),
            category=document.get("category") or CLASS_TEST,
            class_id=document.get("class_id"),
        )

    def find_by_ids(
        self,
        test_ids: Iterable[str],
        categories: Optional[Iterable[str]] = None,
    ) -> Dict[str, TestRecord]:
        """Tests by id, optionally restricted to some categories.

        Ids with no matching test are absent from the result.
        """
        allowed = set(categories) if categories is not None else None
        return {
            test.test_id: test
            for test in self.find_in("test_id", test_ids)
            if allowed is None or test.category in allowed
        }


class TestResultRepository(BaseRepository[TestResultRecord]):
    """Repository for per-student test results."""

    __test__ = False

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(
            connection_manager,
            "test_results",
            key_columns=("result_id",),
            index_columns=("student_id", "test_id", "is_absent"),
        )

    def _entity_to_columns(self, entity: TestResultRecord) -> Dict[str, Any]:
        return {
            "result_id": entity.result_id,
            "student_id": entity.student_id,
            "test_id": entity.test_id,
            "is_absent": entity.is_absent,
        }

    def _entity_to_document(self, entity: TestResultRecord) -> Dict[str, Any]:
        return {
            "result_id": entity.result_id,
            "test_id": entity.test_id,
            "student_id": entity.student_id,
            "obtained_marks": entity.obtained_marks,
            "percentage": entity.percentage,
            "is_absent": entity.is_absent,
            "entered_on": datetime_to_json(entity.entered_on),
        }

    def _document_to_entity(self, document: Dict[str, Any]) -> TestResultRecord:
        kwargs = {}
        entered_on = datetime_from_json(document.get("entered_on"))
        if entered_on is not None:
            kwargs["entered_on"] = entered_on
        return TestResultRecord(
            result_id=document["result_id"],
            test_id=document["test_id"],
            student_id=document["student_id"],
            obtained_marks=document.get("obtained_marks"),
            percentage=document.get("percentage"),
            is_absent=bool(document.get("is_absent", False)),
            **kwargs,
        )

    def find_graded_for_student(self, student_id: str) -> List[TestResultRecord]:
        """Non-absent results for a student, oldest entry first."""
        results = self.find(student_id=student_id, is_absent=False)
        return sorted(results, key=lambda r: (r.entered_on, r.result_id))
