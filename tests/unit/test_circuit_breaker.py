"""
Unit tests for the shared circuit breaker.
"""

import threading

import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerState


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(failure_threshold=5, recovery_timeout=60.0, name="duix_api", clock=clock)

    def trip(self, breaker):
        for _ in range(breaker.failure_threshold):
            breaker.record_result(False)

    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.should_attempt() is True

    def test_opens_at_threshold(self, breaker):
        for _ in range(4):
            breaker.record_result(False)
        assert breaker.state == CircuitBreakerState.CLOSED

        breaker.record_result(False)

        assert breaker.state == CircuitBreakerState.OPEN
        assert breaker.should_attempt() is False

    def test_success_resets_count(self, breaker):
        for _ in range(4):
            breaker.record_result(False)

        breaker.record_result(True)

        assert breaker.failure_count == 0
        breaker.record_result(False)
        assert breaker.state == CircuitBreakerState.CLOSED

    def test_stays_open_until_recovery_timeout(self, breaker, clock):
        self.trip(breaker)

        clock.now += 60.0
        assert breaker.should_attempt() is False

        clock.now += 0.5
        assert breaker.should_attempt() is True
        assert breaker.state == CircuitBreakerState.HALF_OPEN

    def test_half_open_admits_single_trial(self, breaker, clock):
        self.trip(breaker)
        clock.now += 61.0

        assert breaker.should_attempt() is True
        assert breaker.should_attempt() is False
        assert breaker.should_attempt() is False

    def test_half_open_success_closes(self, breaker, clock):
        self.trip(breaker)
        clock.now += 61.0
        breaker.should_attempt()

        breaker.record_result(True)

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.should_attempt() is True

    def test_half_open_failure_reopens(self, breaker, clock):
        self.trip(breaker)
        clock.now += 61.0
        breaker.should_attempt()

        breaker.record_result(False)

        assert breaker.state == CircuitBreakerState.OPEN
        assert breaker.should_attempt() is False
        clock.now += 61.0
        assert breaker.should_attempt() is True

    def test_released_trial_can_be_regranted(self, breaker, clock):
        self.trip(breaker)
        clock.now += 61.0
        assert breaker.should_attempt() is True

        breaker.release_trial()

        assert breaker.state == CircuitBreakerState.HALF_OPEN
        assert breaker.failure_count == 5
        assert breaker.should_attempt() is True
        assert breaker.should_attempt() is False

    def test_abandoned_trial_expires(self, breaker, clock):
        """A trial call that never reports back is replaced after a recovery timeout."""
        self.trip(breaker)
        clock.now += 61.0
        assert breaker.should_attempt() is True

        clock.now += 60.0
        assert breaker.should_attempt() is False

        clock.now += 1.0
        assert breaker.should_attempt() is True
        assert breaker.should_attempt() is False

    def test_get_state(self, breaker):
        breaker.record_result(False)

        state = breaker.get_state()

        assert state["name"] == "duix_api"
        assert state["state"] == "CLOSED"
        assert state["failure_count"] == 1
        assert state["failure_threshold"] == 5
        assert state["recovery_timeout"] == 60.0

    def test_concurrent_failures_are_all_counted(self):
        breaker = CircuitBreaker(failure_threshold=1000, name="threads")

        def fail_many():
            for _ in range(100):
                breaker.record_result(False)

        threads = [threading.Thread(target=fail_many) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert breaker.failure_count == 800
        assert breaker.state == CircuitBreakerState.CLOSED
