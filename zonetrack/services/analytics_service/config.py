"""Analytics Service configuration."""
import os
from dataclasses import dataclass, field
from typing import FrozenSet, Tuple

from zonetrack.shared.models import (
    CAMPUSES,
    CLASS_TEST,
    DEFAULT_THRESHOLDS,
    GRADES,
    ZoneThresholds,
)


@dataclass(frozen=True)
class AnalyticsConfig:
    """Configuration for analytics calculation and aggregation."""

    # Students calculated concurrently per batch
    batch_size: int = 10

    # Calculation history entries kept per student and year
    history_limit: int = 10

    # Test categories counted toward zones
    counted_test_categories: FrozenSet[str] = frozenset({CLASS_TEST})

    # Fixed skeleton of the statistics tree
    campuses: Tuple[str, ...] = CAMPUSES
    grades: Tuple[str, ...] = GRADES

    thresholds: ZoneThresholds = field(default=DEFAULT_THRESHOLDS)

    @classmethod
    def from_env(cls) -> "AnalyticsConfig":
        """Create config from environment variables.

        Environment variables:
            ANALYTICS_BATCH_SIZE: Concurrent calculations per batch (default 10)
            ANALYTICS_HISTORY_LIMIT: History entries kept (default 10)
        """
        return cls(
            batch_size=int(os.getenv("ANALYTICS_BATCH_SIZE", "10")),
            history_limit=int(os.getenv("ANALYTICS_HISTORY_LIMIT", "10")),
        )
