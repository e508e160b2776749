import logging
import re

from helpers import FakeSensor, wait_for
from ultrasonic_pi.acquisition import AcquisitionLoop, SampleLog
from ultrasonic_pi.levels import Level
from ultrasonic_pi.system_state import Mode

TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}$")


def _loop(state, sensor, arbiter, publisher, **kwargs):
    return AcquisitionLoop(state, sensor, arbiter, publisher, interval_sec=0.01, device_id="cm4-1", **kwargs)


def test_scenario_levels_and_transitions(state, arbiter, publisher):
    loop = _loop(state, FakeSensor([9.0, 4.0, 2.5, 1.0]), arbiter, publisher)
    levels = [loop.tick() for _ in range(4)]
    assert levels == [Level.SAFE, Level.WARNING, Level.ALERT, Level.DANGER]
    assert arbiter.patterns.transitions == 3
    assert [m["level"] for m in publisher.messages] == ["SAFE", "WARNING", "ALERT", "DANGER"]


def test_repeated_distance_does_not_restart_pattern(state, arbiter, publisher, relay):
    loop = _loop(state, FakeSensor([1.0, 1.0, 1.0]), arbiter, publisher)
    loop.tick()
    assert wait_for(lambda: relay.writes == [True])
    loop.tick()
    loop.tick()
    assert arbiter.patterns.transitions == 0
    assert relay.writes == [True]


def test_telemetry_payload(state, arbiter, publisher):
    _loop(state, FakeSensor([6.0]), arbiter, publisher).tick()
    payload = publisher.messages[0]
    assert payload["distance"] == 6.0
    assert payload["unit"] == "meters"
    assert TIMESTAMP.match(payload["timestamp"])
    assert payload["sensor_id"] == "cm4-1"
    assert payload["mode"] == "AUTO"
    assert payload["raw_value"] == int(6.0 * 130.3)
    assert payload["thresholds"] == {"normal": 8.0, "warning": 5.0, "alert": 3.0, "danger": 2.0}
    assert payload["valid"] is True
    assert payload["source"] == "sensor"


def test_sensor_failure_publishes_last_known_and_skips_actuation(state, arbiter, publisher, relay, caplog):
    loop = _loop(state, FakeSensor([1.0, IOError("no device")]), arbiter, publisher)
    assert loop.tick() is Level.DANGER
    assert wait_for(lambda: relay.writes == [True])

    with caplog.at_level(logging.ERROR):
        assert loop.tick() is None
    assert "no device" in caplog.text
    stale = publisher.messages[-1]
    assert stale["valid"] is False
    assert stale["distance"] == 1.0
    assert stale["level"] is None
    assert state.level is Level.DANGER
    assert relay.writes == [True]


def test_debug_distance_replaces_sensor(state, arbiter, publisher):
    sensor = FakeSensor([])
    state.debug_distance = 2.5
    assert _loop(state, sensor, arbiter, publisher).tick() is Level.ALERT
    assert sensor.reads == 0
    assert publisher.messages[0]["source"] == "debug"
    assert "raw_value" not in publisher.messages[0]


def test_manual_mode_publishes_without_actuation(state, arbiter, publisher, relay):
    arbiter.set_mode(Mode.MANUAL)
    loop = _loop(state, FakeSensor([1.0, 9.0]), arbiter, publisher)
    loop.tick()
    loop.tick()
    assert len(publisher.messages) == 2
    assert publisher.messages[0]["mode"] == "MANUAL"
    assert relay.writes == []
    assert arbiter.patterns.last_level is None


def test_publish_failure_is_not_fatal(state, arbiter):
    def broken(payload):
        raise ConnectionError("broker gone")

    assert _loop(state, FakeSensor([4.0]), arbiter, broken).tick() is Level.WARNING


def test_sample_log_appends_csv(state, arbiter, publisher, tmp_path):
    path = tmp_path / "ultrasonic.txt"
    loop = _loop(state, FakeSensor([6.0, 2.5]), arbiter, publisher, sample_log=SampleLog(str(path)))
    loop.tick()
    loop.tick()
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    timestamp, distance = lines[1].split(",")
    assert TIMESTAMP.match(timestamp)
    assert float(distance) == 2.5


def test_sample_log_failure_is_logged(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        SampleLog(str(tmp_path / "missing" / "ultrasonic.txt")).append("2025-01-01T00:00:00.000", 1.0)
    assert "Cannot append" in caplog.text


def test_background_thread_ticks_until_stopped(state, arbiter, publisher):
    loop = _loop(state, FakeSensor([9.0] * 1000), arbiter, publisher)
    loop.start()
    try:
        assert wait_for(lambda: len(publisher.messages) >= 3)
    finally:
        loop.stop(timeout=1.0)
    count = len(publisher.messages)
    assert wait_for(lambda: len(publisher.messages) == count, timeout=0.05)
