"""Tests for the upstream circuit breaker."""

import pytest

from clinical_gateway.domain.guardrails import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpenError
from clinical_gateway.domain.ports import Result


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    config = CircuitBreakerConfig(
        failure_threshold_percent=50.0,
        window_size=10,
        min_calls_before_check=4,
        reset_timeout_seconds=30.0,
    )
    return CircuitBreaker(config, name="test", clock=clock)


def fail(breaker, times=1):
    for _ in range(times):
        breaker.record_result(Result.failure_result(Exception("boom")))


def succeed(breaker, times=1):
    for _ in range(times):
        breaker.record_result(Result.success_result(None))


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    def test_stays_closed_below_min_calls(self, breaker):
        """Failures before the minimum call count never open the circuit."""
        fail(breaker, 3)
        assert not breaker.is_open()

    def test_opens_at_threshold(self, breaker):
        """The circuit opens once the failure rate reaches the threshold."""
        succeed(breaker, 2)
        fail(breaker, 2)

        assert breaker.is_open()
        assert not breaker.allow_request()

    def test_ensure_closed_raises_with_retry_after(self, breaker, clock):
        fail(breaker, 4)
        clock.now += 10

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            breaker.ensure_closed()

        assert exc_info.value.retry_after == pytest.approx(20.0)
        assert exc_info.value.status_code == 503
        assert exc_info.value.code == "UPSTREAM_UNAVAILABLE"

    def test_half_open_trial_success_closes(self, breaker, clock):
        """After the reset timeout one trial call is allowed; success closes the circuit."""
        fail(breaker, 4)
        clock.now += 30

        assert breaker.allow_request()
        assert not breaker.allow_request()

        succeed(breaker)
        assert not breaker.is_open()
        assert breaker.allow_request()

    def test_half_open_trial_failure_reopens(self, breaker, clock):
        fail(breaker, 4)
        clock.now += 30
        assert breaker.allow_request()

        fail(breaker)

        assert breaker.is_open()
        assert not breaker.allow_request()
        assert breaker.retry_after() == pytest.approx(30.0)

    def test_window_is_bounded(self, breaker):
        succeed(breaker, 25)
        stats = breaker.get_statistics()

        assert stats["calls_in_window"] == 10
        assert stats["total_calls"] == 25
        assert stats["failure_rate"] == 0.0

    def test_reset(self, breaker):
        fail(breaker, 4)
        breaker.reset()

        assert not breaker.is_open()
        assert breaker.get_statistics()["total_calls"] == 0
