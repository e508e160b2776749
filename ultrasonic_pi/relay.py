# ultrasonic_pi/relay.py

import logging
import threading
from typing import Optional

import serial
from serial import SerialException

log = logging.getLogger(__name__)

WRITE_SINGLE_COIL = 0x05
EXCEPTION_REPLY_LEN = 5


class ActuatorError(Exception):
    pass


def crc16(data: bytes) -> int:
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc


def write_coil_frame(slave: int, coil: int, on: bool) -> bytes:
    body = bytes([slave, WRITE_SINGLE_COIL, (coil >> 8) & 0xFF, coil & 0xFF, 0xFF if on else 0x00, 0x00])
    crc = crc16(body)
    return body + bytes([crc & 0xFF, crc >> 8])


class ModbusRelay:
    """Relay module on an RS-485 Modbus RTU bus (8N1), switched with "write single coil".

    The port is opened on first use and reopened after any serial error.
    """

    def __init__(self, port: str, baudrate: int = 9600, slave: int = 1, coil: int = 1, timeout_sec: float = 10.0):
        self._port = port
        self._baudrate = baudrate
        self._slave = slave
        self._coil = coil
        self._timeout = timeout_sec

        self._ser: Optional[serial.Serial] = None
        self._lock = threading.Lock()

    def set(self, on: bool) -> None:
        frame = write_coil_frame(self._slave, self._coil, on)
        with self._lock:
            try:
                ser = self._ensure_open()
                ser.reset_input_buffer()
                ser.write(frame)
                # Exception replies are 5 bytes, echoes are 8; read the common header first.
                reply = ser.read(EXCEPTION_REPLY_LEN)
                if len(reply) == EXCEPTION_REPLY_LEN and reply[1] != WRITE_SINGLE_COIL | 0x80:
                    reply += ser.read(len(frame) - EXCEPTION_REPLY_LEN)
            except (OSError, SerialException) as e:
                self._close_locked()
                raise ActuatorError(f"{self._port}: {e}") from e

        if len(reply) >= 3 and reply[1] == WRITE_SINGLE_COIL | 0x80:
            raise ActuatorError(f"slave {self._slave} rejected coil write (exception code {reply[2]})")
        if not reply:
            raise ActuatorError(f"no reply from slave {self._slave} within {self._timeout}s")
        if reply != frame:
            raise ActuatorError(f"unexpected reply from slave {self._slave}: {reply.hex()}")

    def close(self) -> None:
        with self._lock:
            self._close_locked()

    def _ensure_open(self) -> serial.Serial:
        if self._ser is None:
            self._ser = serial.Serial(
                self._port,
                self._baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._timeout,
                write_timeout=self._timeout,
            )
            log.info(f"[RELAY] Opened {self._port} @ {self._baudrate}")
        return self._ser

    def _close_locked(self) -> None:
        if self._ser is None:
            return
        try:
            self._ser.close()
        except (OSError, SerialException) as e:
            log.debug(f"[RELAY] Close failed: {e}")
        self._ser = None


class GpioRelay:
    def __init__(self, pin: int, *, active_low: bool = False):
        self._pin = pin
        self._active_low = active_low
        self._gpio = None

    def setup(self) -> None:
        import RPi.GPIO as GPIO

        GPIO.setwarnings(False)
        GPIO.setmode(GPIO.BCM)
        initial = GPIO.HIGH if self._active_low else GPIO.LOW
        GPIO.setup(self._pin, GPIO.OUT, initial=initial)
        self._gpio = GPIO

    def set(self, on: bool) -> None:
        GPIO = self._gpio
        if GPIO is None:
            raise ActuatorError(f"GPIO {self._pin} not set up")
        if self._active_low:
            level = GPIO.LOW if on else GPIO.HIGH
        else:
            level = GPIO.HIGH if on else GPIO.LOW
        try:
            GPIO.output(self._pin, level)
        except RuntimeError as e:
            raise ActuatorError(f"GPIO {self._pin}: {e}") from e

    def close(self) -> None:
        if self._gpio is not None:
            self._gpio.cleanup(self._pin)
            self._gpio = None


class DryRunRelay:
    """Logs relay writes instead of driving hardware."""

    def __init__(self):
        self.on: Optional[bool] = None

    def set(self, on: bool) -> None:
        self.on = on
        log.info(f"[RELAY] (dry run) {'ON' if on else 'OFF'}")

    def close(self) -> None:
        pass
