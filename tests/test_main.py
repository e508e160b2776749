from helpers import FakeSensor
from ultrasonic_pi.acquisition import AcquisitionLoop
from ultrasonic_pi.main import shutdown


class RecordingGateway:
    def __init__(self):
        self.statuses = []
        self.stopped = False

    def publish_status(self, status):
        self.statuses.append(status)

    def stop(self):
        self.stopped = True


class ClosingRelay:
    def __init__(self, relay):
        self._relay = relay
        self.closed = False

    def set(self, on):
        self._relay.set(on)

    def close(self):
        self.closed = True


def test_shutdown_releases_relay_and_sensor(state, arbiter, relay, publisher):
    sensor = FakeSensor([])
    gateway = RecordingGateway()
    closing = ClosingRelay(relay)
    loop = AcquisitionLoop(state, sensor, arbiter, publisher, interval_sec=0.01, device_id="cm4-1")
    arbiter.set_override(True, "drill")

    shutdown(loop, arbiter, gateway, closing, sensor)

    assert sensor.closed
    assert closing.closed
    assert gateway.stopped
    assert gateway.statuses[-1]["override"] is None
