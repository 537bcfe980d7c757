"""Tests for class assignment resolver."""
from unittest.mock import patch

import pytest

from zonetrack.shared.models import SchoolClass, StudentRecord
from zonetrack.services.roster_service import (
    AssignmentConfig,
    ClassAssignmentService,
    ClassRepository,
    StudentNotFoundError,
    StudentRepository,
    determine_campus,
)


def _roster(count, prefix):
    return tuple(f"{prefix}-{i}" for i in range(count))


def _student(student_id, **overrides):
    fields = {
        "first_name": "Ayesha",
        "last_name": student_id,
        "gender": "female",
        "grade": "11th",
        "program": "Pre-Medical",
        "enquiry_level": 5,
    }
    fields.update(overrides)
    return StudentRecord(student_id=student_id, **fields)


@pytest.fixture
def students():
    return StudentRepository()


@pytest.fixture
def classes():
    return ClassRepository()


@pytest.fixture
def service(students, classes):
    return ClassAssignmentService(students, classes, AssignmentConfig(class_capacity=40))


class TestDetermineCampus:
    """Tests for gender to campus mapping."""

    @pytest.mark.parametrize("gender,campus", [
        ("female", "Girls"),
        ("Female", "Girls"),
        ("FEMALE", "Girls"),
        ("male", "Boys"),
        ("other", "Boys"),
        (None, "Boys"),
    ])
    def test_mapping(self, gender, campus):
        assert determine_campus(gender) == campus


class TestSuggestClass:
    """Tests for suggest_class."""

    def test_picks_least_full_class(self, service, classes):
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical", _roster(25, "a")))
        classes.save(SchoolClass("c-b", "11-B", "Girls", "11th", "Pre-Medical", _roster(10, "b")))

        suggested = service.suggest_class(_student("s1"))

        assert suggested.class_id == "c-b"

    def test_full_class_never_suggested(self, service, classes):
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical", _roster(40, "a")))

        assert service.suggest_class(_student("s1")) is None

    def test_tie_goes_to_lowest_class_id(self, service, classes):
        classes.save(SchoolClass("c-2", "11-B", "Girls", "11th", "Pre-Medical", _roster(5, "b")))
        classes.save(SchoolClass("c-1", "11-A", "Girls", "11th", "Pre-Medical", _roster(5, "a")))

        assert service.suggest_class(_student("s1")).class_id == "c-1"

    def test_only_matching_placement(self, service, classes):
        classes.save(SchoolClass("c-boys", "11-A", "Boys", "11th", "Pre-Medical"))
        classes.save(SchoolClass("c-12", "12-A", "Girls", "12th", "Pre-Medical"))
        classes.save(SchoolClass("c-eng", "11-E", "Girls", "11th", "Pre-Engineering"))

        assert service.suggest_class(_student("s1")) is None


class TestAutoAssignClass:
    """Tests for auto_assign_class."""

    def test_writes_student_and_roster(self, service, students, classes):
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical"))
        students.save(_student("s1"))

        result = service.auto_assign_class("s1")

        assert result.success is True
        assert result.class_id == "c-a"
        assert students.find_by_id("s1").class_id == "c-a"
        assert students.find_by_id("s1").class_name == "11-A"
        assert classes.find_by_id("c-a").student_ids == ("s1",)

    def test_already_assigned_is_noop(self, service, students, classes):
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical"))
        students.save(_student("s1", class_id="c-x", class_name="11-X"))

        result = service.auto_assign_class("s1")

        assert result.success is True
        assert result.already_assigned is True
        assert result.class_id == "c-x"
        assert classes.find_by_id("c-a").student_ids == ()

    def test_no_suitable_class(self, service, students):
        students.save(_student("s1"))

        result = service.auto_assign_class("s1")

        assert result.success is False
        assert students.find_by_id("s1").class_id is None

    def test_unknown_student_raises(self, service):
        with pytest.raises(StudentNotFoundError):
            service.auto_assign_class("missing")

    def test_roster_failure_restores_student(self, service, students, classes):
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical"))
        students.save(_student("s1"))

        with patch.object(classes, "add_student", side_effect=Exception("write conflict")):
            result = service.auto_assign_class("s1")

        assert result.success is False
        assert "write conflict" in result.message
        assert students.find_by_id("s1").class_id is None
        assert classes.find_by_id("c-a").student_ids == ()

    def test_failed_restore_propagates(self, service, students, classes):
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical"))
        students.save(_student("s1"))

        with patch.object(classes, "add_student", side_effect=Exception("write conflict")), \
                patch.object(students, "set_class", side_effect=[None, Exception("db down")]):
            with pytest.raises(Exception, match="db down"):
                service.auto_assign_class("s1")

    def test_roster_filled_after_suggestion(self, students, classes):
        service = ClassAssignmentService(students, classes, AssignmentConfig(class_capacity=1))
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical"))
        students.save(_student("s1"))
        suggest = service.suggest_class

        def suggest_then_fill(student):
            suggested = suggest(student)
            classes.add_student("c-a", "other-writer")
            return suggested

        with patch.object(service, "suggest_class", side_effect=suggest_then_fill):
            result = service.auto_assign_class("s1")

        assert result.success is False
        assert "capacity" in result.message
        assert students.find_by_id("s1").class_id is None
        assert classes.find_by_id("c-a").student_ids == ("other-writer",)


class TestBatchAssignment:
    """Tests for batch assignment and statistics."""

    def test_assign_all_unassigned(self, service, students, classes):
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical"))
        students.save(_student("s1"))
        students.save(_student("s2"))
        students.save(_student("s3", program="Arts"))
        students.save(_student("s4", class_id="c-a", class_name="11-A"))
        students.save(_student("s5", enquiry_level=3))

        result = service.assign_all_unassigned_students()

        assert result.assigned == 2
        assert result.failed == 1
        assert result.errors[0]["student_id"] == "s3"
        assert result.errors[0]["student_name"] == "Ayesha s3"
        assert students.find_by_id("s5").class_id is None

    def test_capacity_respected_during_batch(self, students, classes):
        service = ClassAssignmentService(students, classes, AssignmentConfig(class_capacity=2))
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical"))
        for student_id in ("s1", "s2", "s3"):
            students.save(_student(student_id))

        result = service.assign_all_unassigned_students()

        assert result.assigned == 2
        assert result.failed == 1
        assert classes.find_by_id("c-a").enrolled_count == 2

    def test_assign_selected_counts_unknown_as_failed(self, service, students, classes):
        classes.save(SchoolClass("c-a", "11-A", "Girls", "11th", "Pre-Medical"))
        students.save(_student("s1"))
        students.save(_student("s2", class_id="c-a"))

        result = service.assign_selected_students(["s1", "s2", "ghost"])

        assert result.assigned == 1
        assert result.already_assigned == 1
        assert result.failed == 1
        assert result.errors[0]["student_id"] == "ghost"

    def test_assignment_statistics(self, service, students):
        students.save(_student("s1", class_id="c-a"))
        students.save(_student("s2"))
        students.save(_student("s3", enquiry_level=None, prospectus_stage=5))
        students.save(_student("s4", enquiry_level=2))

        stats = service.get_assignment_statistics()

        assert stats == {
            "total": 3,
            "assigned": 1,
            "unassigned": 2,
            "assignment_rate": 33.33,
        }

    def test_assignment_statistics_empty(self, service):
        assert service.get_assignment_statistics()["assignment_rate"] == 0.0
