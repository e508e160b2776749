import pytest

from helpers import FakePublisher, FakeRelay
from ultrasonic_pi.arbiter import Arbiter
from ultrasonic_pi.patterns import PatternTiming
from ultrasonic_pi.system_state import SystemState
from ultrasonic_pi.thresholds import ThresholdFile, ThresholdStore


@pytest.fixture
def timing():
    # ON 0.1s, OFF 0.05s, ON 0.1s, OFF 0.5s (warning) / 0.2s (alert)
    return PatternTiming(unit_sec=0.01, on=10, gap=5, warning_cooldown=50, alert_cooldown=20)


@pytest.fixture
def state():
    return SystemState()


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def arbiter(state, relay, timing):
    arb = Arbiter(state, relay, timing)
    yield arb
    arb.shutdown()


@pytest.fixture
def store(state, tmp_path):
    return ThresholdStore(state, ThresholdFile(str(tmp_path / "thresholds.json")))


@pytest.fixture
def publisher():
    return FakePublisher()
