"""
Rate limiting package for the Avatar Gateway.

Holds the in-memory sliding window limiter that enforces per-client request
budgets on the API routes.
"""

from .sliding_window import DEFAULT_RULES, RateLimitMiddleware, RateLimitRule, SlidingWindowRateLimiter

__all__ = [
    "DEFAULT_RULES",
    "RateLimitMiddleware",
    "RateLimitRule",
    "SlidingWindowRateLimiter",
]
