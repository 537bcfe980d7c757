"""Roster Service configuration."""
import os
from dataclasses import dataclass

from zonetrack.shared.utils import FULLY_ADMITTED_STAGE


@dataclass(frozen=True)
class AssignmentConfig:
    """Configuration for class auto-assignment."""

    # Classes at or above this roster size are never suggested
    class_capacity: int = 40

    # Admission-stage value meaning "fully admitted"
    admitted_stage: int = FULLY_ADMITTED_STAGE

    @classmethod
    def from_env(cls) -> "AssignmentConfig":
        """Create config from environment variables.

        Environment variables:
            CLASS_CAPACITY: Roster size ceiling for suggestions (default 40)
        """
        return cls(class_capacity=int(os.getenv("CLASS_CAPACITY", "40")))
