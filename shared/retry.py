"""
Retry policy for resilient outbound calls.
"""

import random
from typing import Callable, Optional


class RetryConfig:
    """Configuration for retry behavior.

    Delays and timeouts are expressed in seconds.
    """

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 10.0,
                 exponential_base: float = 2.0,
                 jitter: float = 1.0,
                 base_timeout: float = 20.0,
                 timeout_step: float = 2.0):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.base_timeout = base_timeout
        self.timeout_step = timeout_step

    @classmethod
    def for_runtime(cls, is_production: bool, **overrides) -> "RetryConfig":
        """Fewer, faster-failing attempts in production; more patience elsewhere."""
        defaults = {
            "max_attempts": 2 if is_production else 3,
            "base_timeout": 15.0 if is_production else 20.0,
        }
        defaults.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**defaults)


def calculate_delay(attempt: int, config: RetryConfig,
                    uniform: Optional[Callable[[float, float], float]] = None) -> float:
    """Backoff before the attempt following ``attempt`` (1-based).

    ``base_delay * exponential_base ** attempt`` plus up to ``jitter`` seconds
    of random spread, capped at ``max_delay``.
    """
    uniform = uniform or random.uniform
    delay = config.base_delay * (config.exponential_base ** attempt)
    if config.jitter:
        delay += uniform(0.0, config.jitter)
    return max(0.0, min(delay, config.max_delay))


def attempt_timeout(attempt: int, config: RetryConfig) -> float:
    """Per-attempt deadline, growing by ``timeout_step`` with every attempt."""
    return config.base_timeout + attempt * config.timeout_step
