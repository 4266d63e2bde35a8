"""
Unit tests for the sliding window rate limiter.
"""

from unittest.mock import MagicMock

import pytest

from service_avatar_gateway.app.ratelimit.sliding_window import (
    RateLimitMiddleware,
    RateLimitRule,
    SlidingWindowRateLimiter,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestSlidingWindowRateLimiter:
    """Test cases for SlidingWindowRateLimiter."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def rate_limiter(self, clock):
        return SlidingWindowRateLimiter(clock=clock)

    def test_unmatched_path_is_unlimited(self, rate_limiter):
        for _ in range(500):
            assert rate_limiter.check_rate_limit("127.0.0.1", "/health") == {"allowed": True}

    def test_duix_limit(self, rate_limiter):
        """Ten session calls per minute, the eleventh is rejected."""
        for count in range(1, 11):
            result = rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")
            assert result["allowed"] is True
            assert result["current_count"] == count

        result = rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")

        assert result["allowed"] is False
        assert result["rule"] == "duix"
        assert result["message"] == "Too many DUIX API requests"
        assert result["limit"] == 10
        assert result["reset_in_seconds"] == 60

    def test_window_slides(self, rate_limiter, clock):
        for _ in range(10):
            rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")
        assert rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")["allowed"] is False

        clock.now = 61.0

        assert rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")["allowed"] is True

    def test_reset_in_counts_down(self, rate_limiter, clock):
        for _ in range(10):
            rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")

        clock.now = 45.0
        result = rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")

        assert result["reset_in_seconds"] == 15

    def test_test_routes_limit(self, rate_limiter):
        for _ in range(20):
            assert rate_limiter.check_rate_limit("127.0.0.1", "/api/test-latency")["allowed"] is True

        result = rate_limiter.check_rate_limit("127.0.0.1", "/api/test-latency")

        assert result["allowed"] is False
        assert result["rule"] == "test"
        assert result["message"] == "Too many test requests"

    def test_general_api_limit(self, rate_limiter):
        for _ in range(100):
            rate_limiter.check_rate_limit("127.0.0.1", "/api/voices")

        result = rate_limiter.check_rate_limit("127.0.0.1", "/api/avatars")

        assert result["allowed"] is False
        assert result["rule"] == "api"

    def test_clients_are_independent(self, rate_limiter):
        for _ in range(10):
            rate_limiter.check_rate_limit("10.0.0.1", "/api/duix/sign")

        assert rate_limiter.check_rate_limit("10.0.0.1", "/api/duix/sign")["allowed"] is False
        assert rate_limiter.check_rate_limit("10.0.0.2", "/api/duix/sign")["allowed"] is True

    def test_rejected_requests_do_not_consume_budget(self, rate_limiter):
        for _ in range(10):
            rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")
        for _ in range(5):
            rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")

        result = rate_limiter.check_rate_limit("127.0.0.1", "/api/voices")

        assert result["allowed"] is True
        assert result["current_count"] == 11

    def test_reset(self, rate_limiter):
        for _ in range(10):
            rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")

        rate_limiter.reset("127.0.0.1")

        assert rate_limiter.check_rate_limit("127.0.0.1", "/api/duix/sign")["allowed"] is True

    def test_expired_clients_are_forgotten(self, rate_limiter, clock):
        """Memory stays bounded by recently active clients."""
        for index in range(5000):
            rate_limiter.check_rate_limit(f"10.0.{index // 250}.{index % 250}", "/api/duix/sign")
        assert rate_limiter.tracked_keys == 10000

        clock.now = 100_000.0
        rate_limiter.check_rate_limit("192.0.2.1", "/api/duix/sign")

        assert rate_limiter.tracked_keys == 2

    def test_sweep_keeps_live_windows(self, rate_limiter, clock):
        rate_limiter.check_rate_limit("10.0.0.1", "/api/duix/sign")
        clock.now = 850.0
        rate_limiter.check_rate_limit("10.0.0.2", "/api/duix/sign")

        clock.now = 950.0
        rate_limiter.check_rate_limit("10.0.0.3", "/api/duix/sign")

        # 10.0.0.2 keeps its 15 minute window only; 10.0.0.1 is gone
        assert rate_limiter.tracked_keys == 3
        assert rate_limiter.check_rate_limit("10.0.0.2", "/api/voices")["current_count"] == 2

    def test_custom_rules(self, clock):
        rate_limiter = SlidingWindowRateLimiter(
            rules=(RateLimitRule("tight", "/api/", 1, 10, "slow down"),),
            clock=clock,
        )

        assert rate_limiter.check_rate_limit("a", "/api/x")["allowed"] is True
        assert rate_limiter.check_rate_limit("a", "/api/x")["message"] == "slow down"


class TestRateLimitMiddleware:
    """Test cases for RateLimitMiddleware."""

    @pytest.fixture
    def middleware(self):
        return RateLimitMiddleware(SlidingWindowRateLimiter())

    def make_request(self, headers=None, host="127.0.0.1"):
        request = MagicMock()
        request.headers = headers or {}
        request.client.host = host
        request.url.path = "/api/voices"
        return request

    def test_client_id_from_forwarded_for(self, middleware):
        request = self.make_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

        assert middleware._get_client_id(request) == "203.0.113.7"

    def test_client_id_from_real_ip(self, middleware):
        request = self.make_request({"X-Real-IP": "198.51.100.2"})

        assert middleware._get_client_id(request) == "198.51.100.2"

    def test_client_id_from_peer(self, middleware):
        assert middleware._get_client_id(self.make_request()) == "127.0.0.1"

    def test_check_request(self, middleware):
        result = middleware.check_request(self.make_request())

        assert result["allowed"] is True
        assert result["rule"] == "api"
