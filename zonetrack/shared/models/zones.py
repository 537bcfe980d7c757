"""Performance zone model.

A zone is an ordinal tier derived from a percentage score:
green > blue > yellow > red. Zones are never stored independently of
the percentage they were derived from.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class Zone(Enum):
    """Four-tier performance classification."""
    GREEN = "green"     # 76% and above
    BLUE = "blue"       # 71% up to 76%
    YELLOW = "yellow"   # 66% up to 71%
    RED = "red"         # Below 66%, also the default for missing scores

    @property
    def rank(self) -> int:
        """Ordinal rank, higher is better (red=0 ... green=3)."""
        return _ZONE_RANKS[self]


_ZONE_RANKS = {
    Zone.RED: 0,
    Zone.YELLOW: 1,
    Zone.BLUE: 2,
    Zone.GREEN: 3,
}

# Display order used by every distribution and export
ZONE_ORDER = (Zone.GREEN, Zone.BLUE, Zone.YELLOW, Zone.RED)


@dataclass(frozen=True)
class ZoneThresholds:
    """Lower bounds (inclusive) of each zone above red."""
    green_min: float = 76.0
    blue_min: float = 71.0
    yellow_min: float = 66.0

    def bands(self) -> Dict[str, Dict[str, float]]:
        """Display bands used by graph payloads."""
        return {
            Zone.GREEN.value: {"min": self.green_min, "max": 100.0},
            Zone.BLUE.value: {"min": self.blue_min, "max": self.green_min - 1},
            Zone.YELLOW.value: {"min": self.yellow_min, "max": self.blue_min - 1},
            Zone.RED.value: {"min": 0.0, "max": self.yellow_min - 1},
        }


DEFAULT_THRESHOLDS = ZoneThresholds()


def classify_zone(
    percentage: Optional[float],
    thresholds: ZoneThresholds = DEFAULT_THRESHOLDS,
) -> Zone:
    """Map a percentage to its zone.

    Total over the real line: out-of-range values fall into red or green
    by the same comparisons, and missing/NaN input is red.

    Args:
        percentage: Score in percent
        thresholds: Zone lower bounds

    Returns:
        Zone for the score
    """
    if percentage is None:
        return Zone.RED
    value = float(percentage)
    if math.isnan(value):
        return Zone.RED
    if value >= thresholds.green_min:
        return Zone.GREEN
    if value >= thresholds.blue_min:
        return Zone.BLUE
    if value >= thresholds.yellow_min:
        return Zone.YELLOW
    return Zone.RED


@dataclass
class ZoneDistribution:
    """Zone membership counts for one node of the statistics tree."""
    green: int = 0
    blue: int = 0
    yellow: int = 0
    red: int = 0
    total: int = 0

    def increment(self, zone: Zone) -> None:
        setattr(self, zone.value, getattr(self, zone.value) + 1)
        self.total += 1

    def count(self, zone: Zone) -> int:
        return getattr(self, zone.value)

    def to_dict(self) -> Dict[str, int]:
        return {
            "green": self.green,
            "blue": self.blue,
            "yellow": self.yellow,
            "red": self.red,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, int]]) -> "ZoneDistribution":
        data = data or {}
        return cls(
            green=int(data.get("green", 0)),
            blue=int(data.get("blue", 0)),
            yellow=int(data.get("yellow", 0)),
            red=int(data.get("red", 0)),
            total=int(data.get("total", 0)),
        )
