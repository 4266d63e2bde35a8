"""
Adapters package for the Avatar Gateway Service.

Contains the HTTP client for the hosted avatar API and the connection
profiles it uses. The client encapsulates:

- Endpoint paths and request shapes
- Retry policy and the shared circuit breaker
- Fallback results when the upstream is unavailable

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .connection_profile import ConnectionProfile, ConnectionProfileBuilder, ProfilePurpose
from .duix_client import UpstreamCallExecutor, UpstreamOperation, UpstreamResult

__all__ = [
    "ConnectionProfile",
    "ConnectionProfileBuilder",
    "ProfilePurpose",
    "UpstreamCallExecutor",
    "UpstreamOperation",
    "UpstreamResult",
]
