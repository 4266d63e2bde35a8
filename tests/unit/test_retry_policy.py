"""
Unit tests for the shared retry policy.
"""

import pytest

from shared.retry import RetryConfig, attempt_timeout, calculate_delay


class TestRetryConfig:
    """Test cases for RetryConfig."""

    def test_production_defaults(self):
        config = RetryConfig.for_runtime(is_production=True)

        assert config.max_attempts == 2
        assert config.base_timeout == 15.0

    def test_development_defaults(self):
        config = RetryConfig.for_runtime(is_production=False)

        assert config.max_attempts == 3
        assert config.base_timeout == 20.0
        assert config.base_delay == 1.0
        assert config.max_delay == 10.0

    def test_overrides(self):
        config = RetryConfig.for_runtime(is_production=True, max_attempts=1, base_timeout=None)

        assert config.max_attempts == 1
        assert config.base_timeout == 15.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)


class TestCalculateDelay:
    """Test cases for backoff delays."""

    @pytest.fixture
    def config(self):
        return RetryConfig()

    @pytest.mark.parametrize("attempt,expected", [
        (1, 2.5),
        (2, 4.5),
        (3, 8.5),
        (4, 10.0),
        (10, 10.0),
    ])
    def test_exponential_with_cap(self, config, attempt, expected):
        assert calculate_delay(attempt, config, uniform=lambda low, high: 0.5) == expected

    def test_jitter_bounds(self, config):
        bounds = []

        def uniform(low, high):
            bounds.append((low, high))
            return high

        assert calculate_delay(1, config, uniform=uniform) == 3.0
        assert bounds == [(0.0, 1.0)]

    def test_random_jitter_in_range(self, config):
        for _ in range(50):
            assert 2.0 <= calculate_delay(1, config) <= 3.0

    def test_no_jitter(self):
        config = RetryConfig(jitter=0.0)

        assert calculate_delay(2, config) == 4.0


class TestAttemptTimeout:

    def test_grows_per_attempt(self):
        config = RetryConfig.for_runtime(is_production=True)

        assert [attempt_timeout(attempt, config) for attempt in (1, 2, 3)] == [17.0, 19.0, 21.0]
