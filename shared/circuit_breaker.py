"""
Circuit breaker pattern implementation for resilient service calls.
"""

import threading
import time
from enum import Enum
from typing import Any, Callable, Dict

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"        # Normal operation
    OPEN = "OPEN"            # Failing, requests short-circuited
    HALF_OPEN = "HALF_OPEN"  # One trial call testing recovery


class CircuitBreaker:
    """Circuit breaker guarding one upstream dependency.

    One instance is shared by every request that talks to the dependency, so
    ``should_attempt`` and ``record_result`` run under a lock. Neither method
    awaits, which keeps each transition atomic on the event loop as well.
    """

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 60.0,
                 name: str = "default",
                 clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self.logger = get_logger(f"circuit_breaker.{name}")
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._trial_in_flight = False
        self._trial_started = 0.0

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _can_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt a reset."""
        return (self._clock() - self._last_failure_time) > self.recovery_timeout

    def should_attempt(self) -> bool:
        """Decide whether a call may go out to the dependency."""
        with self._lock:
            if self._state == CircuitBreakerState.CLOSED:
                return True

            if self._state == CircuitBreakerState.OPEN:
                if self._can_attempt_reset():
                    self._state = CircuitBreakerState.HALF_OPEN
                    self._grant_trial()
                    self.logger.info("Circuit breaker transitioning to half-open", name=self.name)
                    return True
                return False

            # HALF_OPEN: the single trial call owns the dependency until it reports back
            # or until it has been outstanding for a full recovery timeout
            if self._trial_in_flight and (self._clock() - self._trial_started) <= self.recovery_timeout:
                return False
            self._grant_trial()
            return True

    def _grant_trial(self) -> None:
        self._trial_in_flight = True
        self._trial_started = self._clock()

    def release_trial(self) -> None:
        """Give up a granted trial call without recording an outcome."""
        with self._lock:
            self._trial_in_flight = False

    def record_result(self, success: bool) -> None:
        """Record the outcome of an attempted call."""
        with self._lock:
            self._trial_in_flight = False

            if success:
                if self._state != CircuitBreakerState.CLOSED:
                    self.logger.info("Circuit breaker reset to CLOSED after successful call", name=self.name)
                self._failure_count = 0
                self._state = CircuitBreakerState.CLOSED
                return

            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._failure_count >= self.failure_threshold:
                if self._state != CircuitBreakerState.OPEN:
                    self.logger.warning(
                        "Circuit breaker opened due to failures",
                        name=self.name,
                        failure_count=self._failure_count,
                        threshold=self.failure_threshold
                    )
                self._state = CircuitBreakerState.OPEN

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "last_failure_time": self._last_failure_time,
                "failure_threshold": self.failure_threshold,
                "recovery_timeout": self.recovery_timeout
            }
