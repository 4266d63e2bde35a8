"""
In-memory sliding window rate limiter for the Avatar Gateway.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from fastapi import Request

from shared.logging import get_logger


@dataclass(frozen=True)
class RateLimitRule:
    """``limit`` requests per ``window_seconds`` for paths under ``prefix``."""

    name: str
    prefix: str
    limit: int
    window_seconds: float
    message: str


DEFAULT_RULES: Tuple[RateLimitRule, ...] = (
    RateLimitRule("api", "/api/", 100, 15 * 60, "Too many API requests"),
    RateLimitRule("duix", "/api/duix/", 10, 60, "Too many DUIX API requests"),
    RateLimitRule("test", "/api/test-", 20, 5 * 60, "Too many test requests"),
)


class SlidingWindowRateLimiter:
    """Per-client request log trimmed to each rule's window."""

    def __init__(self, rules: Tuple[RateLimitRule, ...] = DEFAULT_RULES,
                 clock: Callable[[], float] = time.monotonic):
        self.rules = rules
        self.logger = get_logger("avatar_gateway.rate_limiter")
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: Dict[Tuple[str, str], Deque[float]] = {}
        self._windows = {rule.name: rule.window_seconds for rule in rules}
        self._sweep_interval = max(self._windows.values(), default=0.0)
        self._last_sweep = clock()

    def matching_rules(self, path: str) -> List[RateLimitRule]:
        return [rule for rule in self.rules if path.startswith(rule.prefix)]

    def check_rate_limit(self, client_id: str, path: str) -> Dict[str, Any]:
        """Record a request and report whether every matching rule allows it."""
        rules = self.matching_rules(path)
        if not rules:
            return {"allowed": True}

        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)

            windows = []
            for rule in rules:
                hits = self._hits.get((client_id, rule.name)) or deque()
                _trim(hits, now - rule.window_seconds)
                windows.append((rule, hits))

            for rule, hits in windows:
                if len(hits) >= rule.limit:
                    for other_rule, other_hits in windows:
                        if not other_hits:
                            self._hits.pop((client_id, other_rule.name), None)
                    reset_in = rule.window_seconds - (now - hits[0])
                    self.logger.warning(
                        "Rate limit exceeded",
                        client_id=client_id,
                        path=path,
                        rule=rule.name,
                        current_count=len(hits),
                        limit=rule.limit
                    )
                    return {
                        "allowed": False,
                        "rule": rule.name,
                        "message": rule.message,
                        "current_count": len(hits),
                        "limit": rule.limit,
                        "reset_in_seconds": max(1, int(reset_in + 0.999)),
                    }

            for rule, hits in windows:
                hits.append(now)
                self._hits[(client_id, rule.name)] = hits

            tightest_rule, tightest_hits = min(windows, key=lambda item: item[0].limit - len(item[1]))
            return {
                "allowed": True,
                "rule": tightest_rule.name,
                "current_count": len(tightest_hits),
                "limit": tightest_rule.limit,
                "remaining": max(0, tightest_rule.limit - len(tightest_hits)),
                "reset_in_seconds": int(tightest_rule.window_seconds),
            }

    def _sweep(self, now: float) -> None:
        """Drop clients whose windows have fully expired."""
        for key in list(self._hits):
            hits = self._hits[key]
            _trim(hits, now - self._windows.get(key[1], 0.0))
            if not hits:
                del self._hits[key]
        self._last_sweep = now

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def reset(self, client_id: Optional[str] = None) -> None:
        with self._lock:
            if client_id is None:
                self._hits.clear()
                return
            for key in [key for key in self._hits if key[0] == client_id]:
                del self._hits[key]


def _trim(hits: Deque[float], cutoff: float) -> None:
    while hits and hits[0] <= cutoff:
        hits.popleft()


class RateLimitMiddleware:
    """Resolves the caller identity for the limiter."""

    def __init__(self, rate_limiter: SlidingWindowRateLimiter):
        self.rate_limiter = rate_limiter

    def check_request(self, request: Request) -> Dict[str, Any]:
        """Check rate limit for request."""
        return self.rate_limiter.check_rate_limit(self._get_client_id(request), request.url.path)

    def _get_client_id(self, request: Request) -> str:
        """Extract client ID from request."""
        forwarded_for = request.headers.get('X-Forwarded-For')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()

        real_ip = request.headers.get('X-Real-IP')
        if real_ip:
            return real_ip

        return request.client.host if request.client else 'unknown'
