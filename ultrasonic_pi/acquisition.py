# ultrasonic_pi/acquisition.py

import logging
import threading
import time
from typing import Callable, Optional, Protocol

from .arbiter import Arbiter
from .distance_sensor import Reading, SensorError
from .levels import Level, classify
from .system_state import SystemState, now_iso

log = logging.getLogger(__name__)

UNIT = "meters"


class DistanceSensor(Protocol):
    def read(self) -> Reading: ...

    def close(self) -> None: ...


class SampleLog:
    """Appends `timestamp,distance` lines to a local CSV file."""

    def __init__(self, path: str):
        self._path = path

    def append(self, timestamp: str, distance: float) -> None:
        try:
            with open(self._path, "a", encoding="utf-8") as fh:
                fh.write(f"{timestamp},{distance}\n")
        except OSError as e:
            log.warning(f"[SAMPLES] Cannot append to {self._path}: {e}")


class AcquisitionLoop:
    def __init__(
        self,
        state: SystemState,
        sensor: DistanceSensor,
        arbiter: Arbiter,
        publish: Callable[[dict], None],
        interval_sec: float,
        device_id: str,
        sample_log: Optional[SampleLog] = None,
    ):
        self._state = state
        self._sensor = sensor
        self._arbiter = arbiter
        self._publish = publish
        self._interval = interval_sec
        self._device_id = device_id
        self._sample_log = sample_log

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="ACQUISITION", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def tick(self) -> Optional[Level]:
        """One sample: classify, let the arbiter act on the level, publish telemetry.

        Returns the level, or None when the sensor could not be read.
        """
        timestamp = now_iso()
        with self._state.lock:
            debug_distance = self._state.debug_distance
            last_distance = self._state.last_distance
            thresholds = self._state.thresholds

        raw = None
        if debug_distance is not None:
            distance, source = debug_distance, "debug"
        else:
            source = "sensor"
            try:
                reading = self._sensor.read()
            except SensorError as e:
                log.error(f"[SENSOR] {e}")
                self._emit(self._telemetry(timestamp, last_distance, None, None, source, valid=False))
                return None
            distance, raw = reading.distance, reading.raw

        level = classify(distance, thresholds)
        with self._state.lock:
            self._state.last_distance = distance
        self._arbiter.observe_level(level)

        if self._sample_log is not None:
            self._sample_log.append(timestamp, distance)
        self._emit(self._telemetry(timestamp, distance, raw, level, source, valid=True))
        log.info(f"[SENSOR] Distance: {distance}m level={level.value} ({source})")
        return level

    def _telemetry(
        self,
        timestamp: str,
        distance: Optional[float],
        raw: Optional[int],
        level: Optional[Level],
        source: str,
        *,
        valid: bool,
    ) -> dict:
        with self._state.lock:
            mode = self._state.mode.value
            override = self._state.override.to_dict() if self._state.override else None
            thresholds = self._state.thresholds.to_dict()

        payload = {
            "distance": distance,
            "unit": UNIT,
            "timestamp": timestamp,
            "sensor_id": self._device_id,
            "level": level.value if level else None,
            "mode": mode,
            "override": override,
            "thresholds": thresholds,
            "valid": valid,
            "source": source,
        }
        if raw is not None:
            payload["raw_value"] = raw
        return payload

    def _emit(self, payload: dict) -> None:
        try:
            self._publish(payload)
        except Exception as e:
            log.warning(f"[SENSOR] Telemetry publish failed: {e}")

    def _run(self) -> None:
        log.info(f"[SENSOR] Measurement interval: {self._interval}s")
        while not self._stop.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except Exception:
                log.exception("[SENSOR] Acquisition tick failed")
            self._stop.wait(max(0.0, self._interval - (time.monotonic() - started)))
