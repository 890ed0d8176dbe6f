"""Circuit Breaker 테스트"""
import pytest

from leadgen.core.exceptions import BreakerOpen
from leadgen.engine.circuit_breaker import BreakerState, CircuitBreaker, get_breaker


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("places-test", fail_threshold=3, open_duration_sec=30.0, half_open_successes=1, clock=clock)


def _fail(breaker, times):
    for _ in range(times):
        breaker.allow()
        breaker.record_failure()


class TestCircuitBreaker:
    def test_opens_after_threshold(self, breaker):
        _fail(breaker, 2)
        assert breaker.state == BreakerState.CLOSED
        _fail(breaker, 1)
        assert breaker.state == BreakerState.OPEN

        with pytest.raises(BreakerOpen) as exc_info:
            breaker.allow()
        assert exc_info.value.error_code == "BREAKER_OPEN"
        assert exc_info.value.details["retry_after_s"] > 0

    def test_success_resets_consecutive_count(self, breaker):
        _fail(breaker, 2)
        breaker.allow()
        breaker.record_success()
        _fail(breaker, 2)
        assert breaker.state == BreakerState.CLOSED
        assert breaker.consecutive_failures == 2

    def test_exactly_one_probe_after_cooldown(self, breaker, clock):
        _fail(breaker, 3)
        clock.now += 31

        breaker.allow()
        assert breaker.state == BreakerState.HALF_OPEN
        with pytest.raises(BreakerOpen):
            breaker.allow()
        with pytest.raises(BreakerOpen):
            breaker.allow()

        breaker.record_success()
        assert breaker.state == BreakerState.CLOSED
        breaker.allow()

    def test_failed_probe_reopens(self, breaker, clock):
        _fail(breaker, 3)
        clock.now += 31
        breaker.allow()
        breaker.record_failure()

        assert breaker.state == BreakerState.OPEN
        with pytest.raises(BreakerOpen):
            breaker.allow()
        assert breaker.metrics.opens == 2

    def test_release_frees_probe_slot(self, breaker, clock):
        _fail(breaker, 3)
        clock.now += 31
        breaker.allow()
        breaker.release()
        breaker.allow()
        assert breaker.state == BreakerState.HALF_OPEN

    def test_reset(self, breaker):
        _fail(breaker, 3)
        breaker.reset()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.remaining_open_time() == 0.0


def test_registry_returns_same_instance():
    assert get_breaker("places") is get_breaker("places")
    assert get_breaker("places") is not get_breaker("other")


class TestAbandonedHalfOpenCall:
    def test_half_open_call_that_never_reports_expires(self, breaker, clock):
        _fail(breaker, 3)
        clock.now += 31
        breaker.allow()

        clock.now += 10
        with pytest.raises(BreakerOpen):
            breaker.allow()

        clock.now += 30
        breaker.allow()
        breaker.record_success()
        assert breaker.state == BreakerState.CLOSED
