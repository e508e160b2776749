# ultrasonic_pi/system_state.py

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .levels import Level
from .thresholds import ThresholdSet


def now_iso() -> str:
    return datetime.now().isoformat(timespec="milliseconds")


class Mode(str, Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class Authority(str, Enum):
    """Who may drive the relay, highest priority first."""

    OVERRIDE = "OVERRIDE"
    MANUAL = "MANUAL"
    AUTO = "AUTO"


class WriteResult(str, Enum):
    WRITTEN = "WRITTEN"
    FAILED = "FAILED"
    SUPPRESSED = "SUPPRESSED"


@dataclass(frozen=True)
class Override:
    on: bool
    reason: str
    timestamp: str

    def to_dict(self) -> dict:
        return {"direction": "ON" if self.on else "OFF", "reason": self.reason, "timestamp": self.timestamp}


@dataclass
class SystemState:
    thresholds: ThresholdSet = field(default_factory=ThresholdSet)
    mode: Mode = Mode.AUTO
    override: Optional[Override] = None

    # Level from the most recent successful classification
    level: Optional[Level] = None
    # Level the pattern controller last acted on (edge detection)
    last_level: Optional[Level] = None
    pattern: Optional[str] = None

    # Actuator: last confirmed value, and a value written but not confirmed
    actuator_on: Optional[bool] = None
    actuator_pending: Optional[bool] = None

    last_distance: Optional[float] = None
    debug_distance: Optional[float] = None

    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "override": self.override.to_dict() if self.override else None,
            "level": self.level.value if self.level else None,
            "last_level": self.last_level.value if self.last_level else None,
            "pattern": self.pattern,
            "actuator_on": self.actuator_on,
            "actuator_pending": self.actuator_pending,
            "distance": self.last_distance,
            "debug_distance": self.debug_distance,
            "thresholds": self.thresholds.to_dict(),
            "thresholds_ordered": self.thresholds.is_ordered(),
        }
