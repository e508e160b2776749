# ultrasonic_pi/patterns.py

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from . import config
from .levels import Level
from .system_state import SystemState, WriteResult

log = logging.getLogger(__name__)


class Pattern(str, Enum):
    OFF = "OFF"
    PULSE_WARNING = "PULSE_WARNING"
    PULSE_ALERT = "PULSE_ALERT"
    STEADY_DANGER = "STEADY_DANGER"


PATTERN_FOR_LEVEL = {
    Level.SAFE: Pattern.OFF,
    Level.NORMAL: Pattern.OFF,
    Level.WARNING: Pattern.PULSE_WARNING,
    Level.ALERT: Pattern.PULSE_ALERT,
    Level.DANGER: Pattern.STEADY_DANGER,
}


@dataclass(frozen=True)
class PatternTiming:
    unit_sec: float = 0.1
    on: int = 10
    gap: int = 5
    warning_cooldown: int = 50
    alert_cooldown: int = 20

    @classmethod
    def from_config(cls) -> "PatternTiming":
        return cls(
            unit_sec=config.PATTERN_UNIT_SEC,
            on=config.PATTERN_ON,
            gap=config.PATTERN_GAP,
            warning_cooldown=config.PATTERN_WARNING_COOLDOWN,
            alert_cooldown=config.PATTERN_ALERT_COOLDOWN,
        )

    def phases(self, pattern: Pattern) -> List[Tuple[bool, float]]:
        """One cycle of (relay_on, seconds) for a pulsing pattern."""
        if pattern is Pattern.PULSE_WARNING:
            cooldown = self.warning_cooldown
        elif pattern is Pattern.PULSE_ALERT:
            cooldown = self.alert_cooldown
        else:
            raise ValueError(f"{pattern.value} is not a pulsing pattern")
        u = self.unit_sec
        return [(True, self.on * u), (False, self.gap * u), (True, self.on * u), (False, cooldown * u)]

    @property
    def retry_sec(self) -> float:
        return self.on * self.unit_sec


# write(relay_on, cancelled) -> WriteResult, gated by the arbiter
WriteFn = Callable[[bool, threading.Event], WriteResult]


class PatternController:
    """Runs at most one siren pattern thread, switching only when the level changes.

    Each task gets its own cancel event. Every sleep phase waits on that event,
    so cancelling interrupts the current phase instead of waiting for the cycle
    to finish.
    """

    def __init__(self, state: SystemState, write: WriteFn, timing: Optional[PatternTiming] = None):
        self._state = state
        self._write = write
        self._timing = timing or PatternTiming()

        self._lock = threading.Lock()
        self._cancel: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._transitions = 0

    @property
    def transitions(self) -> int:
        with self._lock:
            return self._transitions

    @property
    def last_level(self) -> Optional[Level]:
        with self._state.lock:
            return self._state.last_level

    def observe(self, level: Level) -> bool:
        """Act on `level` if it differs from the last acted level. Returns True if a task was started."""
        with self._state.lock:
            previous = self._state.last_level
        if previous is level:
            return False

        self._start(PATTERN_FOR_LEVEL[level])
        with self._state.lock:
            self._state.last_level = level

        if previous is None:
            log.info(f"[AUTO] Level seeded at {level.value}")
        else:
            with self._lock:
                self._transitions += 1
            log.info(f"[AUTO] Level {previous.value} -> {level.value}")
        return True

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()
        with self._state.lock:
            self._state.pattern = None

    def reset(self) -> None:
        """Cancel and forget the last level, so the next observation starts from scratch."""
        self.cancel()
        with self._state.lock:
            self._state.last_level = None

    def _cancel_locked(self) -> None:
        if self._cancel is not None:
            self._cancel.set()
        self._cancel = None
        self._thread = None

    def _start(self, pattern: Pattern) -> None:
        cancel = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(pattern, cancel),
            name=f"PATTERN_{pattern.value}",
            daemon=True,
        )
        with self._lock:
            self._cancel_locked()
            self._cancel = cancel
            self._thread = thread
        with self._state.lock:
            self._state.pattern = pattern.value
        thread.start()

    def _run(self, pattern: Pattern, cancel: threading.Event) -> None:
        try:
            if pattern is Pattern.OFF:
                self._hold(False, cancel)
            elif pattern is Pattern.STEADY_DANGER:
                self._hold(True, cancel)
            else:
                self._cycle(self._timing.phases(pattern), cancel)
        except Exception:
            log.exception(f"[PATTERN] {pattern.value} task crashed")

    def _hold(self, on: bool, cancel: threading.Event) -> None:
        while True:
            result = self._write(on, cancel)
            if result is not WriteResult.FAILED:
                return
            if cancel.wait(self._timing.retry_sec):
                return

    def _cycle(self, phases: List[Tuple[bool, float]], cancel: threading.Event) -> None:
        while not cancel.is_set():
            for on, seconds in phases:
                # A failed write is already logged; the next phase retries.
                if self._write(on, cancel) is WriteResult.SUPPRESSED:
                    return
                if cancel.wait(seconds):
                    return
