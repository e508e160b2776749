# ultrasonic_pi/levels.py

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .thresholds import ThresholdSet


class Level(str, Enum):
    DANGER = "DANGER"
    ALERT = "ALERT"
    WARNING = "WARNING"
    NORMAL = "NORMAL"
    SAFE = "SAFE"

    @property
    def severity(self) -> int:
        """0 for DANGER up to 4 for SAFE."""
        return _ORDER.index(self)


_ORDER = [Level.DANGER, Level.ALERT, Level.WARNING, Level.NORMAL, Level.SAFE]


def classify(distance: float, thresholds: "ThresholdSet") -> Level:
    # Tightest bound first, so a value sitting on a boundary lands in the stricter level.
    if distance <= thresholds.danger:
        return Level.DANGER
    if distance <= thresholds.alert:
        return Level.ALERT
    if distance <= thresholds.warning:
        return Level.WARNING
    if distance <= thresholds.normal:
        return Level.NORMAL
    return Level.SAFE
