"""
Avatar Gateway service.

Fronts the hosted avatar conversation API: mints short-lived tokens, proxies
session management calls through the resilient upstream client, echoes
latency measurements and serves the front-end catalogs.
"""

import asyncio
import platform
import sys
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from fastapi import Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.circuit_breaker import CircuitBreaker
from shared.config import ServiceConfig, get_config
from shared.errors import (
    ConfigurationError,
    ForbiddenError,
    RateLimitError,
    UpstreamRejection,
    UpstreamTransientError,
    ValidationError,
    utc_timestamp,
)
from shared.logging import get_logger, set_session_context
from shared.retry import RetryConfig

from service_avatar_gateway.app.adapters.connection_profile import ConnectionProfileBuilder, ProfilePurpose
from service_avatar_gateway.app.adapters.duix_client import (
    UPSTREAM_NAME,
    UpstreamCallExecutor,
    UpstreamResult,
    concurrent_list_operation,
    concurrent_number_operation,
    conversation_details_operation,
    session_stop_operation,
)
from service_avatar_gateway.app.auth.signer import TokenSigner
from service_avatar_gateway.app.domain.catalog import AVATARS, QUESTIONS, VOICES
from service_avatar_gateway.app.domain.conversation import build_conversation
from service_avatar_gateway.app.domain.latency import measure_latency, now_ms
from service_avatar_gateway.app.ratelimit.sliding_window import RateLimitMiddleware, SlidingWindowRateLimiter

SERVICE_NAME = "avatar_gateway"
MEMORY_CEILING_BYTES = 1024 * 1024 * 1024
HEALTHZ_PROBE_TIMEOUT = 5.0
STATUS_PROBE_TIMEOUT = 10.0
DEBUG_PROBE_TIMEOUT = 15.0


class LatencyTestRequest(BaseModel):
    question: Optional[str] = None
    token: Optional[str] = None


class MeasureLatencyRequest(BaseModel):
    clientSendTime: Optional[float] = None
    measurementType: str = "ping"
    sessionId: Optional[str] = None
    userAgent: Optional[str] = None


class CreateConversationRequest(BaseModel):
    appId: Optional[str] = None
    token: Optional[str] = None
    avatarId: Optional[str] = None
    voiceId: Optional[str] = None
    conversationId: Optional[str] = None


class StopSessionRequest(BaseModel):
    uuid: Optional[str] = None
    token: Optional[str] = None


class GatewayService(BaseService):
    """Avatar Gateway service implementation.

    This is the composition root: the circuit breaker, connection profile
    builder and upstream client are built here once and shared by all routes.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(SERVICE_NAME, config or get_config(SERVICE_NAME))
        self._validate_credentials()

        self.clock_ms: Callable[[], int] = now_ms
        self.signer = TokenSigner(
            self.config.duix_app_id,
            self.config.duix_app_key,
            self.config.token_expiry,
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60.0,
            name=UPSTREAM_NAME,
        )
        self.profile_builder = ConnectionProfileBuilder(
            is_production=self.config.is_production,
            relaxed_upstream_tls=self.config.upstream_relaxed_tls,
            region=self.config.region_label,
        )
        self.retry_config = RetryConfig.for_runtime(self.config.is_production)
        self.duix_client = UpstreamCallExecutor(
            self.config.duix_api_url,
            self.circuit_breaker,
            self.profile_builder,
            self.retry_config,
            metrics=self.metrics,
            transport=transport,
            sleep=sleep or asyncio.sleep,
        )
        self._setup_gateway_routes()
        self._setup_catalog_routes()
        self._setup_duix_routes()
        if self.capabilities.debug_endpoints:
            self._setup_debug_routes()
        self._setup_root_route()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _validate_credentials(self) -> None:
        missing = [
            name for name, value in (
                ("DUIX_APP_ID", self.config.duix_app_id),
                ("DUIX_APP_KEY", self.config.duix_app_key),
            ) if not value
        ]
        if not missing:
            return
        if self.config.is_production:
            raise ConfigurationError(
                "Upstream credentials must be set in production",
                details={"missing": missing}
            )
        self.logger.warning(
            "Upstream credentials missing; token minting and status probes are disabled",
            missing=missing
        )

    @property
    def app_id(self) -> str:
        return self.config.duix_app_id

    def _setup_request_guards(self):
        self.rate_limiter = SlidingWindowRateLimiter()
        self.rate_limit_middleware = RateLimitMiddleware(self.rate_limiter)
        if not self.capabilities.rate_limiting:
            self.logger.info("Rate limiting disabled")
            return

        @self.app.middleware("http")
        async def enforce_rate_limit(request: Request, call_next):
            result = self.rate_limit_middleware.check_request(request)
            if result["allowed"]:
                return await call_next(request)

            self.metrics.record_rate_limit_hit(result["rule"])
            response = self._error_response(RateLimitError(
                result["message"],
                details={"limit": result["limit"], "reset_in_seconds": result["reset_in_seconds"]}
            ))
            response.headers["Retry-After"] = str(result["reset_in_seconds"])
            return response

    async def _probe_upstream(self, timeout: float) -> Dict[str, Any]:
        """One signed call to the upstream, outside retry and breaker accounting."""
        token = self.signer.sign()
        response = await self.duix_client.probe(
            concurrent_number_operation(self.app_id, token.token), timeout
        )
        return {"status_code": response.status_code}

    def _setup_gateway_routes(self):
        """Set up health, status and latency routes."""

        @self.app.get("/healthz")
        async def healthz():
            """Detailed health with a best-effort upstream probe."""
            uptime = self._get_uptime()
            memory = self._get_memory_usage()
            checks: Dict[str, Any] = {
                "server": "ok",
                "memory": memory["rss"] < MEMORY_CEILING_BYTES,
                "uptime": uptime > 0,
                "environment": self.config.environment_name,
            }

            try:
                probe = await self._probe_upstream(HEALTHZ_PROBE_TIMEOUT)
                checks["duix_api"] = "ok" if probe["status_code"] == 200 else "degraded"
            except (httpx.HTTPError, ConfigurationError) as exc:
                checks["duix_api"] = "unavailable_hybrid_mode_active"
                checks["duix_error"] = getattr(exc, "code", None) or type(exc).__name__

            healthy = checks["server"] == "ok" and checks["memory"] and checks["uptime"]
            self.metrics.record_health_check("ok" if healthy else "error")
            return JSONResponse(
                status_code=200 if healthy else 503,
                content={
                    "status": "healthy" if healthy else "unhealthy",
                    "timestamp": utc_timestamp(),
                    "checks": checks,
                }
            )

        @self.app.get("/api/status")
        async def api_status():
            """Operational status including a blocking upstream probe."""
            started = time.monotonic()
            try:
                probe = await self._probe_upstream(STATUS_PROBE_TIMEOUT)
                duix_status = "healthy" if probe["status_code"] == 200 else "degraded"
            except ConfigurationError:
                duix_status = "unconfigured"
            except httpx.HTTPError as exc:
                self.logger.info("Status probe failed", error=type(exc).__name__)
                duix_status = "unhealthy"

            return {
                "status": "operational",
                "timestamp": utc_timestamp(),
                "environment": self.config.environment_name,
                "ssl_validation": {
                    purpose.value: self.profile_builder.build_profile(purpose).describe()
                    for purpose in ProfilePurpose
                },
                "duix_api_status": duix_status,
                "circuit_breaker": self.circuit_breaker.get_state(),
                "response_time_ms": int((time.monotonic() - started) * 1000),
                "version": self.version,
                "uptime": self._get_uptime(),
            }

        @self.app.post("/api/measure-latency")
        async def measure_latency_route(body: MeasureLatencyRequest, request: Request):
            """Echo server timestamps against the client's send time."""
            server_receive_time = self.clock_ms()
            if body.clientSendTime is None:
                raise ValidationError(
                    "clientSendTime is required and must be an epoch millisecond number",
                    details={"field": "clientSendTime"}
                )
            set_session_context(body.sessionId)

            measurement = measure_latency(body.clientSendTime, server_receive_time, clock=self.clock_ms)
            self.logger.info(
                "Latency measurement",
                measurement_type=body.measurementType,
                network_latency=measurement.network_latency,
                server_processing_time=measurement.server_processing_time,
                total_round_trip=measurement.total_round_trip,
            )
            return {
                "success": True,
                "timestamp": utc_timestamp(),
                "measurementType": body.measurementType,
                "measurements": measurement.to_dict(),
                "environment": {
                    "ssl": "HTTPS" if request.url.scheme == "https" else "HTTP",
                    "region": self.config.region_label,
                    "pythonVersion": platform.python_version(),
                    "isProduction": self.config.is_production,
                },
                "session": {
                    "id": body.sessionId,
                    "userAgent": body.userAgent or request.headers.get("User-Agent"),
                    "ip": request.client.host if request.client else None,
                },
            }

        @self.app.post("/api/test-latency")
        async def test_latency(body: LatencyTestRequest):
            """Round trip through the upstream with a caller-supplied token."""
            started = self.clock_ms()
            if not body.question:
                raise ValidationError(
                    "Question parameter is required and must be a string",
                    details={"field": "question"}
                )
            if not body.token:
                raise ValidationError(
                    "Token is required - clients must provide JWT tokens",
                    details={"field": "token"}
                )

            result = await self.duix_client.execute(
                concurrent_number_operation(self.app_id, body.token, payload={"question": body.question})
            )
            reply = self._avatar_reply(body.question, result)
            session_id = reply.pop("session_id")
            return {
                "success": True,
                "question": body.question,
                "response": reply,
                "latency": max(0, self.clock_ms() - started),
                "timestamp": utc_timestamp(),
                "session_id": session_id,
            }

    def _avatar_reply(self, question: str, result: UpstreamResult) -> Dict[str, Any]:
        """Shape an upstream result (real or fallback) into the avatar reply."""
        region = self.config.region_label
        if result.fallback:
            return {
                "session_id": f"fallback_session_{self.clock_ms()}",
                "text": (f'[Hybrid Mode] Processing: "{question}" - DUIX service temporarily '
                         f'unavailable, using local processing.'),
                "api_call_successful": False,
                "api_status": result.status_code,
                "fallback_mode": True,
                "request": dict(result.request),
                "response_time_ms": result.elapsed_ms,
                "circuit_breaker_state": result.circuit_breaker_state,
                "error_info": result.error_info,
                "timestamp": result.timestamp,
                "aws_region": region,
            }
        return {
            "session_id": f"duix_session_{self.clock_ms()}",
            "text": f'DUIX Avatar response to: "{question}"',
            "api_call_successful": result.status_code == 200,
            "api_status": result.status_code,
            "fallback_mode": False,
            "concurrent_info": result.data,
            "real_api_response": True,
            "response_time_ms": result.elapsed_ms,
            "circuit_breaker_state": result.circuit_breaker_state,
            "timestamp": result.timestamp,
            "aws_region": region,
        }

    def _session_response(self, result: UpstreamResult) -> JSONResponse:
        """Map a session-management result onto the HTTP response."""
        if result.fallback:
            return JSONResponse(status_code=503, content={
                "success": False,
                "error": "Service temporarily unavailable",
                "hybrid_mode": True,
                "circuit_breaker_state": result.circuit_breaker_state,
                "timestamp": utc_timestamp(),
            })
        if result.ok:
            return JSONResponse(content={
                "success": True,
                "data": result.data,
                "timestamp": utc_timestamp(),
            })
        # Upstream rejection (bad token, unknown session): pass status and body through
        rejection = UpstreamRejection(
            UPSTREAM_NAME,
            result.status_code,
            "DUIX API rejected the request",
            details={"attempts": result.attempts, "elapsed_ms": result.elapsed_ms},
        )
        self.logger.info("Upstream rejected request", status_code=result.status_code)
        self.metrics.record_error(rejection.code)
        body = self._error_body(rejection)
        body["status"] = result.status_code
        body["data"] = result.data
        return JSONResponse(status_code=rejection.status_code, content=body)

    def _setup_duix_routes(self):
        """Set up routes that proxy the upstream session API."""

        @self.app.get("/api/duix/sign")
        async def duix_sign(conversationId: Optional[str] = Query(None)):
            """Development convenience: mint a server-side token."""
            if self.config.is_production:
                raise ForbiddenError(
                    "Token generation endpoint disabled in production",
                    details={"hint": "Clients must generate their own JWT tokens in production"}
                )

            token = self.signer.sign()
            return {
                "success": True,
                "sign": token.token,
                "expiresAt": token.expires_at,
                "conversationId": conversationId or str(self.clock_ms()),
                "warning": "Development only - use client-side token generation in production",
            }

        @self.app.post("/api/duix/create-conversation")
        async def create_conversation(body: CreateConversationRequest):
            if not body.token:
                raise ValidationError(
                    "Token is required for conversation operations",
                    details={"field": "token"}
                )

            if body.conversationId:
                result = await self.duix_client.execute(
                    conversation_details_operation(body.conversationId, body.token),
                    max_retries=1,
                )
                if result.ok and isinstance(result.data, dict) and result.data.get("success"):
                    return {
                        "success": True,
                        "code": "200",
                        "message": "CONVERSATION_EXISTS",
                        "data": result.data.get("data"),
                        "existing_conversation": True,
                        "timestamp": utc_timestamp(),
                    }
                self.logger.info(
                    "Conversation lookup did not find an existing conversation",
                    conversation_id=body.conversationId,
                    status_code=result.status_code,
                    fallback=result.fallback,
                )

            return {
                "success": True,
                "code": "200",
                "message": "HYBRID_CONVERSATION_CREATED",
                "data": build_conversation(body.conversationId, body.avatarId, body.voiceId),
                "hybrid_mode": True,
                "api_compliant_structure": True,
                "circuit_breaker_state": self.circuit_breaker.state.value,
                "aws_region": self.config.region_label,
                "timestamp": utc_timestamp(),
            }

        @self.app.get("/api/duix/concurrent-sessions")
        async def concurrent_sessions(
            token: Optional[str] = Query(None),
            appId: Optional[str] = Query(None),
        ):
            if not token:
                raise ValidationError("Token is required", details={"field": "token"})

            result = await self.duix_client.execute(
                concurrent_list_operation(appId or self.app_id, token)
            )
            return self._session_response(result)

        @self.app.post("/api/duix/stop-session")
        async def stop_session(body: StopSessionRequest):
            if not body.token or not body.uuid:
                raise ValidationError(
                    "Token and session UUID are required",
                    details={"fields": [name for name in ("token", "uuid") if not getattr(body, name)]}
                )

            result = await self.duix_client.execute(session_stop_operation(body.uuid, body.token))
            return self._session_response(result)

    def _setup_catalog_routes(self):
        """Set up static catalog routes."""

        @self.app.get("/api/avatars")
        async def avatars():
            return {
                "success": True,
                "message": "DUIX service avatar characters - Ready for conversation",
                "avatars": AVATARS,
                "timestamp": utc_timestamp(),
            }

        @self.app.get("/api/voices")
        async def voices():
            return {
                "success": True,
                "message": "DUIX service voice models",
                "voices": VOICES,
                "timestamp": utc_timestamp(),
            }

        @self.app.get("/api/questions")
        async def questions():
            return {
                "success": True,
                "message": "Sample questions for avatar testing",
                "questions": QUESTIONS,
                "timestamp": utc_timestamp(),
            }

    def _setup_debug_routes(self):
        """Development-only diagnostics; never registered in production."""

        @self.app.get("/api/debug/test-duix-token")
        async def test_duix_token():
            token = self.signer.sign()
            try:
                response = await self.duix_client.probe(
                    concurrent_number_operation(self.app_id, token.token), DEBUG_PROBE_TIMEOUT
                )
            except httpx.HTTPError as exc:
                raise UpstreamTransientError(UPSTREAM_NAME, "token test failed",
                                             error_code=type(exc).__name__,
                                             details={"error": str(exc)}) from exc

            try:
                data = response.json()
            except ValueError:
                data = response.text
            accepted = response.status_code == 200 and bool(data)
            return {
                "success": accepted,
                "message": "JWT token accepted by DUIX API" if accepted else "JWT token rejected by DUIX API",
                "token_test": {
                    "status": response.status_code,
                    "data": data,
                    "token_length": len(token.token),
                },
                "timestamp": utc_timestamp(),
            }

    def _setup_root_route(self):
        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Avatar Gateway",
                "version": self.version,
            }


def create_app(config: Optional[ServiceConfig] = None, **kwargs) -> Any:
    """Create FastAPI application."""
    service = GatewayService(config, **kwargs)
    return service.app


def main() -> None:
    try:
        service = GatewayService()
    except ConfigurationError as exc:
        get_logger(SERVICE_NAME).critical("Startup aborted", error=exc.message, details=exc.details)
        sys.exit(1)
    service.run()


if __name__ == "__main__":
    main()
