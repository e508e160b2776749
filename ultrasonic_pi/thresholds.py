# ultrasonic_pi/thresholds.py

import dataclasses
import json
import logging
import math
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from typing import TYPE_CHECKING, Dict, Optional

from . import config

if TYPE_CHECKING:
    from .system_state import SystemState

log = logging.getLogger(__name__)

FIELDS = ("normal", "warning", "alert", "danger")


@dataclass(frozen=True)
class ThresholdSet:
    """Distance bounds in meters, expected danger < alert < warning < normal."""

    normal: float = 8.0
    warning: float = 5.0
    alert: float = 3.0
    danger: float = 2.0

    def is_ordered(self) -> bool:
        return self.danger < self.alert < self.warning < self.normal

    def replace(self, name: str, value: float) -> "ThresholdSet":
        if name not in FIELDS:
            raise KeyError(name)
        return dataclasses.replace(self, **{name: float(value)})

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ThresholdSet":
        defaults = cls()
        values = {}
        for f in fields(cls):
            raw = data.get(f.name, getattr(defaults, f.name))
            try:
                value = float(raw)
            except (TypeError, ValueError):
                value = None
            if value is None or not in_range(value):
                log.warning(f"[THRESHOLDS] Ignoring invalid {f.name}={raw!r}, using default")
                value = getattr(defaults, f.name)
            values[f.name] = value
        return cls(**values)


def parse_value(payload: str) -> Optional[float]:
    """Parse a threshold payload; None when it is not a usable distance."""
    try:
        value = float(payload.strip())
    except (AttributeError, ValueError):
        return None
    return value if in_range(value) else None


def in_range(value: float) -> bool:
    return math.isfinite(value) and config.THRESHOLD_MIN_M <= value <= config.THRESHOLD_MAX_M


class ThresholdFile:
    """JSON file holding the four thresholds. Writes are atomic (temp file + rename)."""

    def __init__(self, path: str):
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def load(self) -> ThresholdSet:
        if not os.path.exists(self._path):
            log.info(f"[THRESHOLDS] {self._path} not found, using defaults")
            return ThresholdSet()
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            log.warning(f"[THRESHOLDS] Cannot read {self._path}: {e}; using defaults")
            return ThresholdSet()
        if not isinstance(data, dict):
            log.warning(f"[THRESHOLDS] {self._path} is not a JSON object; using defaults")
            return ThresholdSet()
        return ThresholdSet.from_dict(data)

    def save(self, thresholds: ThresholdSet) -> None:
        directory = os.path.dirname(os.path.abspath(self._path))
        fd, tmp_path = tempfile.mkstemp(prefix=".thresholds-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(thresholds.to_dict(), fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class ThresholdStore:
    def __init__(self, state: "SystemState", persistence: ThresholdFile):
        self._state = state
        self._persistence = persistence

    def load(self) -> ThresholdSet:
        thresholds = self._persistence.load()
        with self._state.lock:
            self._state.thresholds = thresholds
        if not thresholds.is_ordered():
            log.warning(f"[THRESHOLDS] Loaded thresholds are not strictly descending: {thresholds.to_dict()}")
        return thresholds

    def snapshot(self) -> ThresholdSet:
        with self._state.lock:
            return self._state.thresholds

    def update(self, name: str, value: float) -> ThresholdSet:
        with self._state.lock:
            updated = self._state.thresholds.replace(name, value)
            self._state.thresholds = updated

        log.info(f"[THRESHOLDS] {name} set to {value}")
        if not updated.is_ordered():
            log.warning(
                "[THRESHOLDS] Thresholds are not strictly descending "
                f"(danger < alert < warning < normal): {updated.to_dict()}"
            )

        try:
            self._persistence.save(updated)
        except OSError as e:
            log.error(f"[THRESHOLDS] Persist to {self._persistence.path} failed: {e}")
        return updated
