"""
Base service class for Avatar Gateway services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Dict, Any, Optional
import platform
import time
import os

import psutil
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config, resolve_capabilities
from shared.logging import configure_logging, get_logger, set_request_id, get_request_id
from shared.metrics import get_metrics_collector
from shared.errors import GatewayException, InternalError, ValidationError, new_error_id, utc_timestamp


SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class BaseService:
    """Base service class with common functionality."""

    version = "1.0.0"

    def __init__(self, service_name: str, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.config = config or get_config(service_name)
        self.capabilities = resolve_capabilities(self.config)
        self._start_time = time.time()

        # Configure logging
        configure_logging(service_name, self.config.log_level, region=self.config.region_label)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)

        # Create FastAPI app
        self.app = self._create_app()

        # Set up middleware
        self._setup_middleware()

        # Set up routes
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        title = self.service_name.replace("_", " ").title()
        return FastAPI(
            title=f"{title} Service",
            description=f"{title} - gateway for the hosted avatar conversation service",
            version=self.version,
            docs_url="/docs" if self.capabilities.api_docs else None,
            redoc_url="/redoc" if self.capabilities.api_docs else None,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        # CORS middleware
        if self.config.is_production:
            self.app.add_middleware(
                CORSMiddleware,
                allow_origins=self.config.cors_origins,
                allow_credentials=True,
                allow_methods=["GET", "POST"],
                allow_headers=["Content-Type", "Authorization"],
            )
        else:
            self.app.add_middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
            )

        if self.capabilities.security_headers:
            @self.app.middleware("http")
            async def add_security_headers(request: Request, call_next):
                response = await call_next(request)
                for header, value in SECURITY_HEADERS.items():
                    response.headers.setdefault(header, value)
                return response

        self._setup_request_guards()

        # Request timing and correlation middleware
        @self.app.middleware("http")
        async def add_request_context(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()

            response = await call_next(request)

            duration = time.time() - start_time
            self.metrics.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration=duration
            )
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers["X-Request-ID"] = request_id
            return response

    def _setup_request_guards(self):
        """Register middleware that runs inside request correlation and timing."""

    def _error_body(self, exc: GatewayException, error_id: Optional[str] = None) -> Dict[str, Any]:
        """Serialized error envelope; details are withheld in production."""
        body = exc.to_response(
            include_details=not self.config.is_production,
            error_id=error_id or new_error_id(),
            request_id=get_request_id(),
        )
        return body.model_dump(exclude_none=True)

    def _error_response(self, exc: GatewayException, error_id: Optional[str] = None) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=self._error_body(exc, error_id)
        )

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Liveness report; never touches dependencies."""
            self.metrics.record_health_check("ok")
            return {
                "service": self.service_name,
                "status": "healthy",
                "timestamp": utc_timestamp(),
                "environment": self.config.environment_name,
                "version": self.version,
                "uptime": self._get_uptime(),
                "memory": self._get_memory_usage(),
                "aws_region": self.config.aws_region or "not-deployed",
                "python_version": platform.python_version(),
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }

        @self.app.get("/ping", response_class=PlainTextResponse)
        async def ping():
            return "pong"

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.render(),
                media_type=CONTENT_TYPE_LATEST
            )

        # Error handlers
        @self.app.exception_handler(GatewayException)
        async def gateway_exception_handler(request: Request, exc: GatewayException):
            """Handle GatewayException."""
            self.logger.warning(
                "Gateway error",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                path=request.url.path
            )
            self.metrics.record_error(exc.code)
            return self._error_response(exc)

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            """Malformed bodies surface as 400 with field-level detail."""
            fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
            error = ValidationError(
                "Request validation failed",
                details={"fields": fields, "errors": jsonable_encoder(exc.errors())}
            )
            self.metrics.record_error(error.code)
            return self._error_response(error)

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            if exc.status_code == 404:
                return JSONResponse(
                    status_code=404,
                    content={
                        "error": "Not found",
                        "path": request.url.path,
                        "timestamp": utc_timestamp()
                    }
                )
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "success": False,
                    "error": exc.detail,
                    "timestamp": utc_timestamp()
                }
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            error = InternalError(details={"error": str(exc), "type": type(exc).__name__})
            error_id = new_error_id()
            self.logger.error(
                "Unhandled exception",
                error=str(exc),
                error_id=error_id,
                path=request.url.path,
                exc_info=True
            )
            self.metrics.record_error(error.code)
            return self._error_response(error, error_id=error_id)

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def _get_memory_usage(self) -> Dict[str, Any]:
        info = psutil.Process().memory_info()
        return {"rss": info.rss, "vms": info.vms}

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
