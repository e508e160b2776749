# ultrasonic_pi/arbiter.py

import logging
import threading
import time
from typing import Optional, Protocol

from .levels import Level
from .patterns import PatternController, PatternTiming
from .relay import ActuatorError
from .system_state import Authority, Mode, Override, SystemState, WriteResult, now_iso

log = logging.getLogger(__name__)


class Actuator(Protocol):
    def set(self, on: bool) -> None: ...


def _onoff(on: bool) -> str:
    return "ON" if on else "OFF"


class Arbiter:
    """Decides who may drive the relay: override, then MANUAL mode, then the AUTO pattern.

    All relay writes go through write(), serialised by one write lock. Mode and
    override changes take the same lock, so a write that was allowed before a
    change has finished before the change returns.
    """

    def __init__(self, state: SystemState, actuator: Actuator, timing: Optional[PatternTiming] = None):
        self._state = state
        self._actuator = actuator
        self._write_lock = threading.Lock()
        self.patterns = PatternController(state, self._write_pattern, timing)

    def holder(self) -> Authority:
        with self._state.lock:
            return self._holder_locked()

    def status(self) -> dict:
        with self._state.lock:
            status = self._state.to_dict()
            status["holder"] = self._holder_locked().value
        return status

    def write(self, authority: Authority, on: bool, cancelled: Optional[threading.Event] = None) -> WriteResult:
        with self._write_lock:
            if cancelled is not None and cancelled.is_set():
                return WriteResult.SUPPRESSED
            with self._state.lock:
                holder = self._holder_locked()
            if holder is not authority:
                log.debug(f"[ARBITER] {authority.value} write {_onoff(on)} suppressed, {holder.value} holds the relay")
                return WriteResult.SUPPRESSED
            return self._drive(on, authority.value)

    def set_mode(self, mode: Mode) -> bool:
        with self._write_lock:
            with self._state.lock:
                if self._state.mode is mode:
                    return False
                self._state.mode = mode
                override = self._state.override
                level = self._state.level

            log.info(f"[MODE] {mode.value}")
            if mode is Mode.MANUAL:
                self.patterns.cancel()
            else:
                self.patterns.reset()
                if override is None and level is not None:
                    self.patterns.observe(level)
        return True

    def set_override(self, on: bool, reason: str) -> Override:
        override = Override(on=on, reason=reason, timestamp=now_iso())
        with self._write_lock:
            with self._state.lock:
                self._state.override = override
            self.patterns.cancel()
            log.warning(f"[OVERRIDE] Relay forced {_onoff(on)} ({reason})")
            self._drive(on, "override")
        return override

    def clear_override(self) -> bool:
        with self._write_lock:
            with self._state.lock:
                if self._state.override is None:
                    return False
                self._state.override = None
                mode = self._state.mode
                level = self._state.level

            log.info(f"[OVERRIDE] Cleared, {mode.value} mode resumes")
            if mode is Mode.AUTO:
                self.patterns.reset()
                if level is not None:
                    self.patterns.observe(level)
        return True

    def observe_level(self, level: Level) -> bool:
        """Record the live level; in AUTO without override let the pattern controller act on it."""
        with self._write_lock:
            with self._state.lock:
                self._state.level = level
                gated = self._state.mode is not Mode.AUTO or self._state.override is not None
            if gated:
                return False
            return self.patterns.observe(level)

    def manual(self, on: bool) -> WriteResult:
        result = self.write(Authority.MANUAL, on)
        if result is WriteResult.SUPPRESSED:
            log.warning(f"[MANUAL] Relay {_onoff(on)} ignored, {self.holder().value} holds the relay")
        return result

    def pulse(self, seconds: float) -> bool:
        """Short ON pulse, then restore the previously commanded value."""
        with self._write_lock:
            with self._state.lock:
                if self._state.override is not None:
                    log.warning("[REBOOT] Pulse ignored while override is active")
                    return False
                previous = bool(self._state.actuator_on)

            log.info(f"[REBOOT] Pulsing relay for {seconds}s")
            self._drive(True, "reboot")
            time.sleep(seconds)
            self._drive(previous, "reboot restore")
        return True

    def shutdown(self) -> None:
        with self._write_lock:
            self.patterns.cancel()
            with self._state.lock:
                had_override = self._state.override is not None
                self._state.override = None
        if had_override:
            log.info("[OVERRIDE] Removed on shutdown")

    def _holder_locked(self) -> Authority:
        if self._state.override is not None:
            return Authority.OVERRIDE
        if self._state.mode is Mode.MANUAL:
            return Authority.MANUAL
        return Authority.AUTO

    def _write_pattern(self, on: bool, cancelled: threading.Event) -> WriteResult:
        return self.write(Authority.AUTO, on, cancelled)

    def _drive(self, on: bool, why: str) -> WriteResult:
        try:
            self._actuator.set(on)
        except ActuatorError as e:
            log.error(f"[RELAY] {_onoff(on)} failed ({why}): {e}")
            with self._state.lock:
                self._state.actuator_pending = on
            return WriteResult.FAILED

        with self._state.lock:
            self._state.actuator_on = on
            self._state.actuator_pending = None
        log.debug(f"[RELAY] {_onoff(on)} ({why})")
        return WriteResult.WRITTEN
