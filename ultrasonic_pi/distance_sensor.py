# ultrasonic_pi/distance_sensor.py

import os
from dataclasses import dataclass
from typing import Optional


class SensorError(Exception):
    pass


@dataclass(frozen=True)
class Reading:
    distance: float  # meters
    raw: Optional[int] = None


class IioDistanceSensor:
    """Analog ultrasonic sensor on a Linux IIO ADC channel (sysfs in_voltageN_raw)."""

    def __init__(self, sensor_dir: str, channel: int = 1, scale: float = 10.0 / 1303.0):
        self._path = os.path.join(sensor_dir, f"in_voltage{channel}_raw")
        self._scale = scale

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> Reading:
        try:
            with open(self._path, "r", encoding="ascii") as fh:
                text = fh.read().strip()
        except OSError as e:
            raise SensorError(f"Failed to read sensor data from {self._path}: {e}") from e
        try:
            raw = int(text)
        except ValueError as e:
            raise SensorError(f"Unexpected value {text!r} in {self._path}") from e
        return Reading(distance=round(raw * self._scale, 3), raw=raw)

    def close(self) -> None:
        # sysfs file is opened per read
        pass


class Mcp3008DistanceSensor:
    def __init__(self, channel: int = 0, scale: float = 10.0 / 1023.0, bus: int = 0, device: int = 0, max_speed_hz: int = 1350000):
        if channel < 0 or channel > 7:
            raise ValueError("MCP3008 channel must be 0..7")

        import spidev

        self._channel = channel
        self._scale = scale
        self._spi = spidev.SpiDev()
        self._spi.open(bus, device)
        self._spi.max_speed_hz = max_speed_hz

    def read(self) -> Reading:
        try:
            adc = self._spi.xfer2([1, (8 + self._channel) << 4, 0])
        except OSError as e:
            raise SensorError(f"MCP3008 channel {self._channel}: {e}") from e
        raw = ((adc[1] & 3) << 8) + adc[2]
        return Reading(distance=round(raw * self._scale, 3), raw=raw)

    def close(self) -> None:
        self._spi.close()
