"""Student and class repositories.

Students and classes are owned by the administration application; the
analytics core reads them and, during class auto-assignment, writes a
student's class reference and class roster membership.
"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from zonetrack.shared.database import (
    BaseRepository,
    ConnectionManager,
    NotFoundError,
    RepositoryError,
)
from zonetrack.shared.models import (
    MatriculationRecord,
    MatriculationSubject,
    SchoolClass,
    StudentRecord,
)

logger = logging.getLogger(__name__)


class StudentNotFoundError(NotFoundError):
    """Student record does not exist."""
    code = "student_not_found"


class ClassNotFoundError(NotFoundError):
    """Class record does not exist."""
    code = "class_not_found"


class ClassFullError(RepositoryError):
    """Class roster has reached the capacity ceiling."""
    code = "class_full"


class StudentRepository(BaseRepository[StudentRecord]):
    """Repository for student records."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(
            connection_manager,
            "students",
            key_columns=("student_id",),
            index_columns=("class_id", "enquiry_level", "prospectus_stage"),
        )

    def _entity_to_columns(self, entity: StudentRecord) -> Dict[str, Any]:
        return {
            "student_id": entity.student_id,
            "class_id": entity.class_id,
            "enquiry_level": entity.enquiry_level,
            "prospectus_stage": entity.prospectus_stage,
        }

    def _entity_to_document(self, entity: StudentRecord) -> Dict[str, Any]:
        matriculation = None
        if entity.matriculation is not None:
            matriculation = {
                "percentage": entity.matriculation.percentage,
                "total_marks": entity.matriculation.total_marks,
                "subjects": [
                    {
                        "name": s.name,
                        "obtained_marks": s.obtained_marks,
                        "total_marks": s.total_marks,
                        "percentage": s.percentage,
                    }
                    for s in entity.matriculation.subjects
                ],
            }
        return {
            "student_id": entity.student_id,
            "first_name": entity.first_name,
            "last_name": entity.last_name,
            "email": entity.email,
            "phone_number": entity.phone_number,
            "roll_number": entity.roll_number,
            "gender": entity.gender,
            "program": entity.program,
            "grade": entity.grade,
            "class_id": entity.class_id,
            "class_name": entity.class_name,
            "enquiry_level": entity.enquiry_level,
            "prospectus_stage": entity.prospectus_stage,
            "matric_marks": entity.matric_marks,
            "matric_total": entity.matric_total,
            "matriculation": matriculation,
        }

    def _document_to_entity(self, document: Dict[str, Any]) -> StudentRecord:
        matriculation = None
        if document.get("matriculation"):
            m = document["matriculation"]
            matriculation = MatriculationRecord(
                percentage=m.get("percentage"),
                total_marks=m.get("total_marks"),
                subjects=tuple(
                    MatriculationSubject(
                        name=s["name"],
                        obtained_marks=s.get("obtained_marks"),
                        total_marks=s.get("total_marks"),
                        percentage=s.get("percentage"),
                    )
                    for s in m.get("subjects") or []
                ),
            )
        return StudentRecord(
            student_id=document["student_id"],
            first_name=document.get("first_name") or "",
            last_name=document.get("last_name") or "",
            email=document.get("email"),
            phone_number=document.get("phone_number"),
            roll_number=document.get("roll_number"),
            gender=document.get("gender"),
            program=document.get("program"),
            grade=document.get("grade"),
            class_id=document.get("class_id"),
            class_name=document.get("class_name"),
            enquiry_level=document.get("enquiry_level"),
            prospectus_stage=document.get("prospectus_stage"),
            matric_marks=document.get("matric_marks"),
            matric_total=document.get("matric_total"),
            matriculation=matriculation,
        )

    def find_by_id(self, student_id: str) -> Optional[StudentRecord]:
        return self.find_one(student_id=student_id)

    def find_admitted(self, admitted_stage: int) -> List[StudentRecord]:
        """Students whose first present admission-stage field equals admitted_stage.

        enquiry_level is consulted first; prospectus_stage only counts
        when enquiry_level is absent.
        """
        current = self.find(enquiry_level=admitted_stage)
        legacy = self.find(enquiry_level=None, prospectus_stage=admitted_stage)
        return current + legacy

    def find_unassigned_admitted(self, admitted_stage: int) -> List[StudentRecord]:
        return [s for s in self.find_admitted(admitted_stage) if not s.class_id]

    def set_class(
        self,
        student_id: str,
        class_id: Optional[str],
        class_name: Optional[str],
    ) -> StudentRecord:
        """Point a student at a class (or clear the reference with None).

        Raises:
            StudentNotFoundError: If the student does not exist
        """
        student = self.find_by_id(student_id)
        if student is None:
            raise StudentNotFoundError(f"Student not found: {student_id}")
        return self.save(replace(student, class_id=class_id, class_name=class_name))


class ClassRepository(BaseRepository[SchoolClass]):
    """Repository for class sections and their rosters."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(
            connection_manager,
            "classes",
            key_columns=("class_id",),
            index_columns=("campus", "grade", "program"),
        )

    def _entity_to_columns(self, entity: SchoolClass) -> Dict[str, Any]:
        return {
            "class_id": entity.class_id,
            "campus": entity.campus,
            "grade": entity.grade,
            "program": entity.program,
        }

    def _entity_to_document(self, entity: SchoolClass) -> Dict[str, Any]:
        return {
            "class_id": entity.class_id,
            "name": entity.name,
            "campus": entity.campus,
            "grade": entity.grade,
            "program": entity.program,
            "student_ids": list(entity.student_ids),
        }

    def _document_to_entity(self, document: Dict[str, Any]) -> SchoolClass:
        return SchoolClass(
            class_id=document["class_id"],
            name=document["name"],
            campus=document["campus"],
            grade=document["grade"],
            program=document["program"],
            student_ids=tuple(document.get("student_ids") or ()),
        )

    def find_by_id(self, class_id: str) -> Optional[SchoolClass]:
        return self.find_one(class_id=class_id)

    def find_sorted(self, **criteria: Any) -> List[SchoolClass]:
        """Classes ordered by campus, grade, then name."""
        return sorted(
            self.find(**criteria),
            key=lambda c: (c.campus, c.grade, c.name, c.class_id),
        )

    def add_student(
        self,
        class_id: str,
        student_id: str,
        capacity: Optional[int] = None,
    ) -> SchoolClass:
        """Append a student to a roster in one atomic step.

        Adding an existing member is a no-op. Concurrent appends to the
        same class never overwrite each other.

        Args:
            class_id: Class to join
            student_id: Student to add
            capacity: Roster size that must not be reached before the append

        Raises:
            ClassNotFoundError: If the class does not exist
            ClassFullError: If the roster already holds capacity students
        """
        if self.uses_memory:
            return self._add_student_in_memory(class_id, student_id, capacity)

        capacity_clause = ""
        params: List[Any] = [student_id, class_id, student_id]
        if capacity is not None:
            capacity_clause = (
                "AND jsonb_array_length(COALESCE(document->'student_ids', '[]'::jsonb)) < %s"
            )
            params.append(capacity)

        query = f"""
            UPDATE {self.table_name}
            SET document = jsonb_set(
                document, '{{student_ids}}',
                COALESCE(document->'student_ids', '[]'::jsonb) || to_jsonb(%s::text)
            )
            WHERE class_id = %s
              AND NOT COALESCE(document->'student_ids', '[]'::jsonb) ? %s
              {capacity_clause}
            RETURNING document
        """
        updated = self._update_returning(query, params)
        if updated is not None:
            return updated

        school_class = self.find_by_id(class_id)
        if school_class is None:
            raise ClassNotFoundError(f"Class not found: {class_id}")
        if student_id in school_class.student_ids:
            return school_class
        raise ClassFullError(f"Class {school_class.name} is at capacity ({capacity})")

    def _add_student_in_memory(
        self,
        class_id: str,
        student_id: str,
        capacity: Optional[int],
    ) -> SchoolClass:
        def append(school_class: SchoolClass) -> SchoolClass:
            if student_id in school_class.student_ids:
                return school_class
            if capacity is not None and school_class.enrolled_count >= capacity:
                raise ClassFullError(
                    f"Class {school_class.name} is at capacity ({capacity})"
                )
            return replace(school_class, student_ids=school_class.student_ids + (student_id,))

        updated = self._update_in_memory((class_id,), append)
        if updated is None:
            raise ClassNotFoundError(f"Class not found: {class_id}")
        return updated
