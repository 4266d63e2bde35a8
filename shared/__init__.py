"""
Shared utilities for the Avatar Gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Backoff and per-attempt timeout policy
- circuit_breaker: Resilient external call protection
- base_service: FastAPI app skeleton with health and error handlers

Do not import from service packages into shared/.
"""
