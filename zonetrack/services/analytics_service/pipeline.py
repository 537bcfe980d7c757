"""Wiring of the analytics services and the force-refresh pipeline.

The recompute phases run strictly in order (validate/fix, per-student
calculation, aggregation) so a refresh produces a statistics snapshot
of one consistent population.
"""
import logging
import time
from typing import Any, Dict, Optional

from zonetrack.shared.database import ConnectionManager
from zonetrack.services.roster_service import (
    AssignmentConfig,
    ClassAssignmentService,
    ClassRepository,
    PrerequisiteValidator,
    StudentRepository,
)
from .aggregation import ZoneAggregationEngine
from .analytics_repository import StudentAnalyticsRepository, ZoneStatisticsRepository
from .builder import StudentAnalyticsBuilder
from .config import AnalyticsConfig
from .export import AnalyticsExporter
from .query import AnalyticsQueryService
from .result_repository import TestRepository, TestResultRepository

logger = logging.getLogger(__name__)


class AnalyticsPipeline:
    """All analytics services over one set of repositories.

    Args:
        connection_manager: Database connection manager, None for in-memory
        analytics_config: Analytics configuration
        assignment_config: Class assignment configuration
    """

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager] = None,
        analytics_config: Optional[AnalyticsConfig] = None,
        assignment_config: Optional[AssignmentConfig] = None,
    ):
        self.analytics_config = analytics_config or AnalyticsConfig()
        self.assignment_config = assignment_config or AssignmentConfig()

        self.students = StudentRepository(connection_manager)
        self.classes = ClassRepository(connection_manager)
        self.tests = TestRepository(connection_manager)
        self.results = TestResultRepository(connection_manager)
        self.analytics = StudentAnalyticsRepository(connection_manager)
        self.statistics = ZoneStatisticsRepository(connection_manager)

        self.assignment = ClassAssignmentService(
            self.students, self.classes, self.assignment_config
        )
        self.validator = PrerequisiteValidator(
            self.students, self.assignment, self.assignment_config
        )
        self.builder = StudentAnalyticsBuilder(
            self.students,
            self.classes,
            self.tests,
            self.results,
            self.analytics,
            self.validator,
            self.analytics_config,
        )
        self.aggregation = ZoneAggregationEngine(
            self.analytics, self.statistics, self.classes, self.analytics_config
        )
        self.query = AnalyticsQueryService(
            self.analytics,
            self.statistics,
            self.students,
            self.classes,
            self.analytics_config,
        )
        self.exporter = AnalyticsExporter(self.query)

    @classmethod
    def from_env(
        cls,
        connection_manager: Optional[ConnectionManager] = None,
    ) -> "AnalyticsPipeline":
        return cls(
            connection_manager,
            AnalyticsConfig.from_env(),
            AssignmentConfig.from_env(),
        )

    def validate_all(self) -> Dict[str, Any]:
        """Validate and fix every admitted student."""
        admitted = self.students.find_admitted(self.assignment_config.admitted_stage)
        return self.validator.batch_validate_and_fix(
            [s.student_id for s in admitted]
        ).to_dict()

    def force_refresh_analytics(self, academic_year: str) -> Dict[str, Any]:
        """Recompute everything for a year.

        Runs batch validate/fix over admitted students, recalculates
        every student's analytics, then regenerates all statistics.

        Args:
            academic_year: Academic year key

        Returns:
            Summaries of the three phases
        """
        start_time = time.perf_counter()
        logger.info("FORCE_REFRESH_STARTED", extra={"academic_year": academic_year})

        validation = self.validate_all()
        calculation = self.builder.calculate_all_student_analytics(academic_year)
        statistics = self.aggregation.refresh_all_statistics(academic_year)

        logger.info(
            "FORCE_REFRESH_COMPLETED",
            extra={
                "academic_year": academic_year,
                "validated": validation["total"],
                "calculated": calculation.successful,
                "failed": calculation.failed,
                "subjects": len(statistics.subjects),
                "duration_ms": int((time.perf_counter() - start_time) * 1000),
            }
        )
        return {
            "validation": validation,
            "student_analytics": calculation.to_dict(),
            "statistics": statistics.to_dict(),
            "message": "All analytics and statistics have been refreshed successfully",
        }
