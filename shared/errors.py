"""
Shared error handling for the Avatar Gateway.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pydantic import BaseModel


def new_error_id() -> str:
    """Short machine-generated identifier quoted back to callers."""
    return uuid.uuid4().hex[:12]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    error: str
    code: str
    error_id: str
    timestamp: str
    request_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class GatewayException(Exception):
    """Base exception for gateway services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self, *, include_details: bool = True, error_id: Optional[str] = None,
                    request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response.

        Production callers pass ``include_details=False`` so internal detail
        never leaves the process.
        """
        return ErrorResponse(
            error=self.message,
            code=self.code,
            error_id=error_id or new_error_id(),
            timestamp=utc_timestamp(),
            request_id=request_id,
            details=self.details if include_details and self.details else None,
        )


class ConfigurationError(GatewayException):
    """Required credential or setting is missing."""

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ValidationError(GatewayException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ForbiddenError(GatewayException):
    """Operation not permitted in the current runtime."""

    status_code = 403

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__("FORBIDDEN", message, details)


class RateLimitError(GatewayException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)


class UpstreamTransientError(GatewayException):
    """Network failure or 5xx from the upstream; eligible for retry."""

    status_code = 503

    def __init__(self, service: str, message: str = "Upstream unavailable",
                 error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.error_code = error_code or "UPSTREAM_UNAVAILABLE"
        super().__init__("UPSTREAM_TRANSIENT_ERROR", f"{service}: {message}", details)


class UpstreamRejection(GatewayException):
    """Upstream answered below 500 but not with success; never retried."""

    def __init__(self, service: str, status_code: int, message: str = "Upstream rejected request",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_REJECTION", f"{service}: {message}", details, status_code=status_code)


class InternalError(GatewayException):
    """Unexpected failure while handling a request."""

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)
