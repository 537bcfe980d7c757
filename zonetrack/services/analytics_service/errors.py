"""Analytics Service exceptions.

"Not ready" conditions (no analytics document, statistics never
generated) are distinct from "does not exist" conditions so callers can
tell a missing entity from data that needs a recompute.
"""
from zonetrack.shared.database import NotFoundError
from zonetrack.services.roster_service import ClassNotFoundError, StudentNotFoundError


class AnalyticsNotCalculatedError(NotFoundError):
    """No analytics document exists yet for the student and year."""
    code = "analytics_not_calculated"


class StatisticsNotGeneratedError(NotFoundError):
    """Aggregation has not been run for the requested scope."""
    code = "statistics_not_generated"


class ExportFormatError(ValueError):
    """Unsupported export format."""
    code = "unsupported_format"


__all__ = [
    "StudentNotFoundError",
    "ClassNotFoundError",
    "AnalyticsNotCalculatedError",
    "StatisticsNotGeneratedError",
    "ExportFormatError",
]
