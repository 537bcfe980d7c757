"""Analytics Service: zone analytics for class-test performance.

Builds per-student analytics from class-test results, classifies each
score into a zone, and rolls zones up the campus -> grade -> class tree
into cached statistics documents.

This service provides:
- Per-student weighted-sum analytics with bounded calculation history
- Batched recalculation of every admitted student
- Overall and per-subject zone statistics with a generation stamp
- Dashboard queries, student search and JSON/CSV exports

Endpoints: see handler.py
"""

from .config import AnalyticsConfig
from .errors import (
    AnalyticsNotCalculatedError,
    StatisticsNotGeneratedError,
    ExportFormatError,
)
from .analytics_repository import (
    StudentAnalyticsRepository,
    ZoneStatisticsRepository,
)
from .result_repository import TestRepository, TestResultRepository
from .builder import (
    StudentAnalyticsBuilder,
    BatchCalculationResult,
    NormalizedResult,
    build_student_analytics,
    normalize_results,
)
from .aggregation import (
    ZoneAggregationEngine,
    StatisticsRefreshResult,
    aggregate_zones,
    build_skeleton,
)
from .query import AnalyticsQueryService
from .export import AnalyticsExporter
from .pipeline import AnalyticsPipeline

__all__ = [
    "AnalyticsConfig",
    "AnalyticsNotCalculatedError",
    "StatisticsNotGeneratedError",
    "ExportFormatError",
    "StudentAnalyticsRepository",
    "ZoneStatisticsRepository",
    "TestRepository",
    "TestResultRepository",
    "StudentAnalyticsBuilder",
    "BatchCalculationResult",
    "NormalizedResult",
    "build_student_analytics",
    "normalize_results",
    "ZoneAggregationEngine",
    "StatisticsRefreshResult",
    "aggregate_zones",
    "build_skeleton",
    "AnalyticsQueryService",
    "AnalyticsExporter",
    "AnalyticsPipeline",
]
