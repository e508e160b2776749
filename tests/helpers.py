import threading
import time

from ultrasonic_pi.distance_sensor import Reading, SensorError
from ultrasonic_pi.relay import ActuatorError


class FakeRelay:
    def __init__(self):
        self.writes = []
        self.attempts = 0
        self.fail_next = 0
        self._lock = threading.Lock()

    def set(self, on):
        with self._lock:
            self.attempts += 1
            if self.fail_next > 0:
                self.fail_next -= 1
                raise ActuatorError("simulated relay timeout")
            self.writes.append(on)

    def close(self):
        pass


class FakeSensor:
    """Returns queued distances; an Exception instance in the queue is raised as a read failure."""

    def __init__(self, values=()):
        self.values = list(values)
        self.reads = 0
        self.closed = False

    def read(self):
        self.reads += 1
        value = self.values.pop(0)
        if isinstance(value, Exception):
            raise SensorError(str(value))
        return Reading(distance=value, raw=int(value * 130.3))

    def close(self):
        self.closed = True


class FakePublisher:
    def __init__(self):
        self.messages = []

    def __call__(self, payload):
        self.messages.append(payload)


def wait_for(predicate, timeout=2.0, interval=0.005):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
