"""Fixtures for analytics service tests: an in-memory pipeline and seed data."""
import itertools
from datetime import datetime
from typing import Optional

import pytest

from zonetrack.shared.models import (
    CLASS_TEST,
    SchoolClass,
    StudentRecord,
    TestRecord,
    TestResultRecord,
)
from zonetrack.services.analytics_service import AnalyticsConfig, AnalyticsPipeline


class SchoolData:
    """Writes collaborator-owned records into a pipeline's repositories."""

    def __init__(self, pipeline: AnalyticsPipeline):
        self.pipeline = pipeline
        self._result_ids = itertools.count(1)

    def add_class(self, class_id, name, campus="Girls", grade="11th", program="Pre-Medical"):
        school_class = SchoolClass(class_id, name, campus, grade, program)
        self.pipeline.classes.save(school_class)
        return school_class

    def add_student(
        self,
        student_id,
        first_name,
        last_name="Student",
        class_id: Optional[str] = None,
        **fields,
    ):
        fields.setdefault("gender", "female")
        fields.setdefault("grade", "11th")
        fields.setdefault("program", "Pre-Medical")
        fields.setdefault("enquiry_level", 5)
        fields.setdefault("matric_marks", 880)
        fields.setdefault("matric_total", 1100)

        class_name = None
        if class_id is not None:
            class_name = self.pipeline.classes.find_by_id(class_id).name
            self.pipeline.classes.add_student(class_id, student_id)

        student = StudentRecord(
            student_id=student_id,
            first_name=first_name,
            last_name=last_name,
            email=f"{student_id}@example.edu",
            class_id=class_id,
            class_name=class_name,
            **fields,
        )
        self.pipeline.students.save(student)
        return student

    def add_test(
        self,
        test_id,
        subject,
        total_marks,
        test_date=None,
        test_type="CT-1",
        category=CLASS_TEST,
    ):
        test = TestRecord(
            test_id=test_id,
            subject=subject,
            total_marks=total_marks,
            test_date=test_date or datetime(2024, 10, 1),
            test_type=test_type,
            category=category,
        )
        self.pipeline.tests.save(test)
        return test

    def add_result(self, student_id, test_id, obtained_marks, percentage=None, is_absent=False):
        result = TestResultRecord(
            result_id=f"r-{next(self._result_ids)}",
            test_id=test_id,
            student_id=student_id,
            obtained_marks=obtained_marks,
            percentage=percentage,
            is_absent=is_absent,
        )
        self.pipeline.results.save(result)
        return result


@pytest.fixture
def pipeline():
    """Fresh in-memory pipeline for each test."""
    return AnalyticsPipeline(analytics_config=AnalyticsConfig(batch_size=2))


@pytest.fixture
def school(pipeline):
    return SchoolData(pipeline)
