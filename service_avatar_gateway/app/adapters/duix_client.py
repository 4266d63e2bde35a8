"""
Client for the hosted avatar (DUIX) API.

Every upstream call goes through ``UpstreamCallExecutor.execute``: the shared
circuit breaker decides whether the call is attempted at all, each attempt
gets a fresh ``upstream-api`` connection profile and a growing deadline, and
network failures or 5xx answers are retried with capped exponential backoff.
When the breaker is open or retries run out the caller receives a fallback
result with the same shape as a real one, never an exception.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker
from shared.errors import UpstreamTransientError, utc_timestamp
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, attempt_timeout, calculate_delay

from .connection_profile import ConnectionProfileBuilder, ProfilePurpose

UPSTREAM_NAME = "duix_api"

DUIX_ENDPOINTS = {
    "concurrent_number": "/duix-openapi-v2/sdk/v2/getconcurrentNumber",
    "concurrent_list": "/duix-openapi-v2/sdk/v2/getconcurrentList",
    "conversation_details": "/duix-openapi-v2/sdk/getConversationById",
    "session_stop": "/duix-openapi-v2/sdk/v2/sessionStop",
}


@dataclass(frozen=True)
class UpstreamOperation:
    """One idempotent upstream HTTP call.

    ``payload`` describes the inbound request that triggered the call and is
    echoed back in fallback results.
    """

    name: str
    method: str
    path: str
    params: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class UpstreamResult:
    """Outcome of ``UpstreamCallExecutor.execute``."""

    status_code: int
    data: Any
    elapsed_ms: int
    circuit_breaker_state: str
    attempts: int
    request: Mapping[str, Any] = field(default_factory=dict)
    fallback: bool = False
    error_info: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=utc_timestamp)

    @property
    def ok(self) -> bool:
        return not self.fallback and self.status_code == 200

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_code": self.status_code,
            "data": self.data,
            "elapsed_ms": self.elapsed_ms,
            "circuit_breaker_state": self.circuit_breaker_state,
            "attempts": self.attempts,
            "request": dict(self.request),
            "fallback_mode": self.fallback,
            "error_info": self.error_info,
            "timestamp": self.timestamp,
        }


def _token_headers(token: str) -> Dict[str, str]:
    return {
        "Token": token,
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def concurrent_number_operation(app_id: str, token: str, payload: Optional[Mapping[str, Any]] = None) -> UpstreamOperation:
    return UpstreamOperation(
        name="concurrent_number",
        method="GET",
        path=DUIX_ENDPOINTS["concurrent_number"],
        params={"appId": app_id},
        headers=_token_headers(token),
        payload=payload or {"appId": app_id},
    )


def concurrent_list_operation(app_id: str, token: str) -> UpstreamOperation:
    return UpstreamOperation(
        name="concurrent_list",
        method="GET",
        path=DUIX_ENDPOINTS["concurrent_list"],
        params={"appId": app_id},
        headers=_token_headers(token),
        payload={"appId": app_id},
    )


def session_stop_operation(session_uuid: str, token: str) -> UpstreamOperation:
    return UpstreamOperation(
        name="session_stop",
        method="GET",
        path=DUIX_ENDPOINTS["session_stop"],
        params={"uuid": session_uuid},
        headers=_token_headers(token),
        payload={"uuid": session_uuid},
    )


def conversation_details_operation(conversation_id: str, token: str) -> UpstreamOperation:
    return UpstreamOperation(
        name="conversation_details",
        method="GET",
        path=DUIX_ENDPOINTS["conversation_details"],
        params={"conversationId": conversation_id},
        headers=_token_headers(token),
        payload={"conversationId": conversation_id},
    )


def _error_code(exc: Exception) -> str:
    if isinstance(exc, UpstreamTransientError):
        return exc.error_code
    if isinstance(exc, httpx.TimeoutException):
        return "ETIMEDOUT"
    if isinstance(exc, httpx.ConnectError):
        return "ECONNREFUSED"
    if isinstance(exc, (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
        return "ECONNRESET"
    return type(exc).__name__


class UpstreamCallExecutor:
    """Performs upstream operations with retry, backoff and circuit breaking."""

    def __init__(
        self,
        base_url: str,
        circuit_breaker: CircuitBreaker,
        profile_builder: ConnectionProfileBuilder,
        retry_config: RetryConfig,
        *,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        uniform: Optional[Callable[[float, float], float]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.circuit_breaker = circuit_breaker
        self.profile_builder = profile_builder
        self.retry_config = retry_config
        self.metrics = metrics
        self.logger = get_logger("avatar_gateway.duix_client")
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._uniform = uniform

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self._clock() - started) * 1000)))

    def _config_for(self, max_retries: Optional[int], base_timeout: Optional[float]) -> RetryConfig:
        config = self.retry_config
        if max_retries is None and base_timeout is None:
            return config
        return RetryConfig(
            max_attempts=max_retries if max_retries is not None else config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            exponential_base=config.exponential_base,
            jitter=config.jitter,
            base_timeout=base_timeout if base_timeout is not None else config.base_timeout,
            timeout_step=config.timeout_step,
        )

    def _record(self, success: bool) -> None:
        self.circuit_breaker.record_result(success)
        if self.metrics:
            self.metrics.record_breaker_state(self.circuit_breaker.name, self.circuit_breaker.state.value)

    async def _send(self, operation: UpstreamOperation, timeout: float) -> httpx.Response:
        profile = self.profile_builder.build_profile(ProfilePurpose.UPSTREAM_API)
        async with profile.create_client(timeout, transport=self._transport) as client:
            return await client.request(
                operation.method,
                f"{self.base_url}{operation.path}",
                params=dict(operation.params),
                headers=dict(operation.headers),
            )

    def _fallback(
        self,
        operation: UpstreamOperation,
        started: float,
        attempts: int,
        reason: str,
        error_info: Optional[Dict[str, Any]] = None,
    ) -> UpstreamResult:
        if self.metrics:
            self.metrics.record_fallback(operation.name, reason)
        return UpstreamResult(
            status_code=503,
            data=None,
            elapsed_ms=self._elapsed_ms(started),
            circuit_breaker_state=self.circuit_breaker.state.value,
            attempts=attempts,
            request=operation.payload,
            fallback=True,
            error_info=error_info,
        )

    async def execute(
        self,
        operation: UpstreamOperation,
        max_retries: Optional[int] = None,
        base_timeout: Optional[float] = None,
    ) -> UpstreamResult:
        """Run ``operation`` against the upstream.

        ``base_timeout`` is in seconds; attempt ``n`` gets
        ``base_timeout + n * timeout_step``. Any status below 500 is final.
        """
        started = self._clock()

        if not self.circuit_breaker.should_attempt():
            self.logger.warning("Circuit breaker OPEN - returning fallback response",
                                operation=operation.name)
            return self._fallback(operation, started, attempts=0, reason="circuit_open")

        config = self._config_for(max_retries, base_timeout)
        try:
            return await self._run_attempts(operation, config, started)
        except asyncio.CancelledError:
            # Caller went away mid-call; free the half-open slot for the next request
            self.circuit_breaker.release_trial()
            raise

    async def _run_attempts(self, operation: UpstreamOperation, config: RetryConfig,
                            started: float) -> UpstreamResult:
        for attempt in range(1, config.max_attempts + 1):
            timeout = attempt_timeout(attempt, config)
            try:
                response = await self._send(operation, timeout)
                if response.status_code >= 500:
                    raise UpstreamTransientError(
                        UPSTREAM_NAME,
                        f"HTTP {response.status_code}",
                        error_code=f"HTTP_{response.status_code}",
                        details={"status_code": response.status_code},
                    )
            except (httpx.TransportError, UpstreamTransientError) as exc:
                error_code = _error_code(exc)
                if self.metrics:
                    self.metrics.record_upstream_attempt(operation.name, "failure")
                self.logger.warning(
                    "Upstream attempt failed",
                    operation=operation.name,
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    timeout=timeout,
                    duration_ms=self._elapsed_ms(started),
                    error=error_code,
                )

                if attempt == config.max_attempts:
                    self._record(False)
                    self.logger.error("Upstream call failed after all attempts",
                                      operation=operation.name, attempts=attempt)
                    return self._fallback(
                        operation,
                        started,
                        attempts=attempt,
                        reason="retries_exhausted",
                        error_info={
                            "error": "DUIX API unavailable",
                            "attempts": attempt,
                            "last_error": error_code,
                            "circuit_breaker_state": self.circuit_breaker.state.value,
                        },
                    )

                delay = calculate_delay(attempt, config, self._uniform)
                await self._sleep(delay)
                continue
            except Exception:
                self._record(False)
                raise

            self._record(True)
            if self.metrics:
                self.metrics.record_upstream_attempt(operation.name, "success")
            elapsed_ms = self._elapsed_ms(started)
            self.logger.info(
                "Upstream call completed",
                operation=operation.name,
                attempt=attempt,
                status_code=response.status_code,
                duration_ms=elapsed_ms,
            )
            return UpstreamResult(
                status_code=response.status_code,
                data=_response_body(response),
                elapsed_ms=elapsed_ms,
                circuit_breaker_state=self.circuit_breaker.state.value,
                attempts=attempt,
                request=operation.payload,
            )

        # max_attempts is validated to be >= 1, so the loop always returns
        raise RuntimeError("retry loop exited without a result")

    async def probe(self, operation: UpstreamOperation, timeout: float) -> httpx.Response:
        """Single attempt with no retry and no breaker accounting.

        Used by health and status checks; transport errors propagate.
        """
        return await self._send(operation, timeout)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
