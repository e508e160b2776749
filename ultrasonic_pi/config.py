# ultrasonic_pi/config.py

import os
from typing import List


# Malformed environment values, reported by validate()
_ENV_PROBLEMS: List[str] = []


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        _ENV_PROBLEMS.append(f"Invalid {name}: {raw!r}, expected a number")
        return default


def _env_int(name: str, default: int) -> int:
    return _env_number(name, default, int)


def _env_float(name: str, default: float) -> float:
    return _env_number(name, default, float)


# MQTT
MQTT_BROKER = os.getenv("MQTT_BROKER", "localhost")
MQTT_PORT = _env_int("MQTT_PORT", 1883)
MQTT_TOPIC = os.getenv("MQTT_TOPIC", "dtonggang/ultrasonic-01").rstrip("/")
MQTT_CLIENT_ID = os.getenv("MQTT_CLIENT_ID", "cm4-1")
MQTT_QOS = _env_int("MQTT_QOS", 2)
MQTT_KEEPALIVE_SEC = _env_int("MQTT_KEEPALIVE_SEC", 60)

# Sensor (Linux IIO ADC)
SENSOR_DIR = os.getenv("SENSOR_DIR", "/sys/bus/iio/devices/iio:device0")
SENSOR_CHANNEL = _env_int("SENSOR_CHANNEL", 1)
SENSOR_SCALE = _env_float("SENSOR_SCALE", 10.0 / 1303.0)  # raw -> meters
MCP3008_CHANNEL = _env_int("MCP3008_CHANNEL", 0)
OUTPUT_FILE = os.getenv("OUTPUT_FILE", "/home/pi/ultrasonic.txt")
MEASUREMENT_INTERVAL = _env_float("MEASUREMENT_INTERVAL", 2.0)

# Thresholds
THRESHOLDS_FILE = os.getenv("THRESHOLDS_FILE", "/home/pi/thresholds.json")
THRESHOLD_MIN_M = 0.0
THRESHOLD_MAX_M = 10.0

# Relay (Modbus RTU coil, same wiring as mbpoll -a 1 -r 2 /dev/ttyAMA4)
RELAY_PORT = os.getenv("RELAY_PORT", "/dev/ttyAMA4")
RELAY_BAUDRATE = _env_int("RELAY_BAUDRATE", 9600)
RELAY_SLAVE = _env_int("RELAY_SLAVE", 1)
RELAY_COIL = _env_int("RELAY_COIL", 1)
RELAY_TIMEOUT_SEC = _env_float("RELAY_TIMEOUT_SEC", 10.0)

# Relay (GPIO, BCM numbering)
RELAY_GPIO_PIN = _env_int("RELAY_GPIO_PIN", 17)
RELAY_GPIO_ACTIVE_LOW = os.getenv("RELAY_GPIO_ACTIVE_LOW", "0") == "1"

# Siren patterns, in time units
PATTERN_UNIT_SEC = _env_float("PATTERN_UNIT_SEC", 0.1)
PATTERN_ON = 10
PATTERN_GAP = 5
PATTERN_WARNING_COOLDOWN = 50
PATTERN_ALERT_COOLDOWN = 20

REBOOT_PULSE_SEC = _env_float("REBOOT_PULSE_SEC", 1.0)

# Local HTTP API
WEB_HOST = os.getenv("WEB_HOST", "0.0.0.0")
WEB_PORT = _env_int("WEB_PORT", 5000)


def validate() -> List[str]:
    problems = list(_ENV_PROBLEMS)
    if not MQTT_BROKER:
        problems.append("MQTT_BROKER not configured")
    if not 1 <= MQTT_PORT <= 65535:
        problems.append(f"Invalid MQTT_PORT: {MQTT_PORT}")
    if MQTT_QOS not in (0, 1, 2):
        problems.append(f"Invalid MQTT_QOS: {MQTT_QOS}")
    if not MQTT_TOPIC:
        problems.append("MQTT_TOPIC not configured")
    if MEASUREMENT_INTERVAL <= 0:
        problems.append(f"Invalid MEASUREMENT_INTERVAL: {MEASUREMENT_INTERVAL}")
    if PATTERN_UNIT_SEC <= 0:
        problems.append(f"Invalid PATTERN_UNIT_SEC: {PATTERN_UNIT_SEC}")
    return problems
