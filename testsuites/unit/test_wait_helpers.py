import pytest

from testsuites.compose_testing.framework import wait_helpers
from testsuites.compose_testing.framework.readiness import ReadinessTimeoutError
from testsuites.compose_testing.framework.wait_helpers import (
    WaitConfig,
    WaitTimeoutError,
    calculate_next_interval,
    get_wait_config,
    wait_with_backoff,
)


FAST = WaitConfig(initial_interval=0.01, multiplier=1.0, max_interval=0.01, timeout=0.5, jitter=False)


class FakeClock:
    """Monotonic clock that only advances when the code under test sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(wait_helpers.time, "monotonic", fake.monotonic)
    monkeypatch.setattr(wait_helpers.time, "sleep", fake.sleep)
    return fake


def test_returns_result_after_retries():
    attempts = []

    def check():
        attempts.append(1)
        return len(attempts) >= 3, len(attempts)

    assert wait_with_backoff(check, config=FAST) == 3
    assert len(attempts) == 3


def test_exceptions_are_retried():
    attempts = []

    def check():
        attempts.append(1)
        if len(attempts) < 2:
            raise ConnectionRefusedError("not yet")
        return True, "ok"

    assert wait_with_backoff(check, config=FAST) == "ok"


def test_timeout_reports_last_result_and_error(clock):
    def check():
        raise ConnectionRefusedError("refused")

    config = WaitConfig(initial_interval=1.0, multiplier=2.0, max_interval=4.0, timeout=10.0, jitter=False)
    with pytest.raises(WaitTimeoutError) as exc_info:
        wait_with_backoff(check, config=config, description="bolt on localhost:1")

    error = exc_info.value
    assert isinstance(error.last_error, ConnectionRefusedError)
    assert "bolt on localhost:1" in str(error)
    assert clock.sleeps == [1.0, 2.0, 4.0, 3.0]
    assert clock.now == pytest.approx(10.0)


def test_custom_error_class(clock):
    with pytest.raises(ReadinessTimeoutError) as exc_info:
        wait_with_backoff(
            lambda: (False, "starting"),
            config=WaitConfig(initial_interval=1.0, timeout=2.0, jitter=False),
            error_cls=ReadinessTimeoutError,
        )
    assert isinstance(exc_info.value, WaitTimeoutError)
    assert not isinstance(exc_info.value, ConnectionError)
    assert exc_info.value.last_result == "starting"


def test_never_sleeps_past_deadline(clock):
    config = WaitConfig(initial_interval=5.0, timeout=3.0, jitter=False)
    with pytest.raises(WaitTimeoutError):
        wait_with_backoff(lambda: (False, None), config=config)
    assert clock.sleeps == [3.0]


def test_calculate_next_interval_caps_at_max():
    config = WaitConfig(multiplier=2.0, max_interval=5.0, jitter=False)
    assert calculate_next_interval(1.0, config) == 2.0
    assert calculate_next_interval(4.0, config) == 5.0


def test_calculate_next_interval_jitter_bounds():
    config = WaitConfig(multiplier=2.0, max_interval=100.0, jitter=True)
    for _ in range(50):
        assert 1.5 <= calculate_next_interval(1.0, config) <= 2.5


def test_scenarios():
    assert get_wait_config("bolt_ready").timeout == 90.0
    assert get_wait_config("unknown") is get_wait_config("default")
    assert get_wait_config("bolt_ready").with_timeout(5).timeout == 5
    assert get_wait_config("bolt_ready").timeout == 90.0
