"""Tests for roster membership writes."""
import threading
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from zonetrack.shared.models import SchoolClass
from zonetrack.services.roster_service import (
    ClassFullError,
    ClassNotFoundError,
    ClassRepository,
)


def _class_document(student_ids=(), **extra):
    document = {
        "class_id": "c-1",
        "name": "11-M1",
        "campus": "Girls",
        "grade": "11th",
        "program": "Pre-Medical",
        "student_ids": list(student_ids),
    }
    document.update(extra)
    return document


def _connection_manager(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor

    @contextmanager
    def get_connection():
        yield conn

    manager = MagicMock()
    manager.get_connection = get_connection
    return manager, conn


@pytest.fixture
def classes():
    repo = ClassRepository()
    repo.save(SchoolClass("c-1", "11-M1", "Girls", "11th", "Pre-Medical"))
    return repo


class TestAddStudentInMemory:
    """Roster appends against the in-memory store."""

    def test_appends_member(self, classes):
        updated = classes.add_student("c-1", "s1")

        assert updated.student_ids == ("s1",)
        assert classes.find_by_id("c-1").student_ids == ("s1",)

    def test_existing_member_is_noop(self, classes):
        classes.add_student("c-1", "s1")
        classes.add_student("c-1", "s1")

        assert classes.find_by_id("c-1").student_ids == ("s1",)

    def test_full_class_rejected(self, classes):
        classes.add_student("c-1", "s1", capacity=2)
        classes.add_student("c-1", "s2", capacity=2)

        with pytest.raises(ClassFullError):
            classes.add_student("c-1", "s3", capacity=2)

        assert classes.find_by_id("c-1").student_ids == ("s1", "s2")

    def test_existing_member_of_full_class_is_noop(self, classes):
        classes.add_student("c-1", "s1", capacity=1)

        updated = classes.add_student("c-1", "s1", capacity=1)

        assert updated.student_ids == ("s1",)

    def test_unknown_class(self, classes):
        with pytest.raises(ClassNotFoundError):
            classes.add_student("c-missing", "s1")

    def test_parallel_appends_all_land(self, classes):
        student_ids = [f"s{i}" for i in range(20)]
        threads = [
            threading.Thread(target=classes.add_student, args=("c-1", s))
            for s in student_ids
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(classes.find_by_id("c-1").student_ids) == sorted(student_ids)


class TestAddStudentPostgres:
    """Roster appends issue one conditional UPDATE."""

    def test_single_update_with_capacity(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = (_class_document(["s1"]),)
        manager, conn = _connection_manager(cursor)
        repo = ClassRepository(manager)

        updated = repo.add_student("c-1", "s1", capacity=40)

        query, params = cursor.execute.call_args[0]
        assert query.strip().startswith("UPDATE classes")
        assert "jsonb_set" in query
        assert "jsonb_array_length" in query
        assert params == ["s1", "c-1", "s1", 40]
        assert updated.student_ids == ("s1",)
        conn.commit.assert_called_once()

    def test_no_capacity_clause_without_capacity(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = (_class_document(["s1"]),)
        manager, _ = _connection_manager(cursor)
        repo = ClassRepository(manager)

        repo.add_student("c-1", "s1")

        query, params = cursor.execute.call_args[0]
        assert "jsonb_array_length" not in query
        assert params == ["s1", "c-1", "s1"]

    def test_no_row_on_full_class(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = None
        cursor.fetchall.return_value = [(_class_document(["s1", "s2"]),)]
        manager, _ = _connection_manager(cursor)
        repo = ClassRepository(manager)

        with pytest.raises(ClassFullError):
            repo.add_student("c-1", "s3", capacity=2)

    def test_no_row_for_existing_member(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = None
        cursor.fetchall.return_value = [(_class_document(["s1"]),)]
        manager, _ = _connection_manager(cursor)
        repo = ClassRepository(manager)

        updated = repo.add_student("c-1", "s1", capacity=2)

        assert updated.student_ids == ("s1",)

    def test_no_row_for_unknown_class(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = None
        cursor.fetchall.return_value = []
        manager, _ = _connection_manager(cursor)
        repo = ClassRepository(manager)

        with pytest.raises(ClassNotFoundError):
            repo.add_student("c-missing", "s1")


class TestClassDocument:

    def test_legacy_capacity_field_ignored(self):
        repo = ClassRepository()

        school_class = repo._document_to_entity(_class_document(["s1"], max_students=100))

        assert school_class == SchoolClass(
            "c-1", "11-M1", "Girls", "11th", "Pre-Medical", ("s1",)
        )

    def test_document_has_no_capacity_field(self):
        repo = ClassRepository()
        school_class = SchoolClass("c-1", "11-M1", "Girls", "11th", "Pre-Medical")

        assert "max_students" not in repo._entity_to_document(school_class)
