"""
Outbound connection profiles.

A profile captures how one outbound call talks TLS and how large its
connection pool may grow. Two purposes exist:

- ``generic-secure``: strict certificate and hostname verification.
- ``upstream-api``: the hosted avatar API. Its certificate chain is known to
  fail strict validation, so chain and hostname errors are tolerated while the
  TLS version window and cipher list stay enforced. Operators can make this
  purpose strict with ``UPSTREAM_RELAXED_TLS=false``.

Profiles are immutable and built per call.
"""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Tuple, Union

import httpx

from shared.logging import get_logger


class ProfilePurpose(str, Enum):
    UPSTREAM_API = "upstream-api"
    GENERIC_SECURE = "generic-secure"


STRICT_CIPHERS: Tuple[str, ...] = (
    "ECDHE-RSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES256-SHA384",
    "ECDHE-RSA-AES128-SHA256",
    "AES256-GCM-SHA384",
    "AES128-GCM-SHA256",
)

# Wider list for the upstream, which still negotiates some non-ECDHE suites.
UPSTREAM_CIPHERS: Tuple[str, ...] = STRICT_CIPHERS + (
    "AES256-SHA256",
    "AES128-SHA256",
    "HIGH:!aNULL:!eNULL:!EXPORT:!DES:!RC4:!MD5:!PSK:!SRP:!CAMELLIA",
)


@dataclass(frozen=True)
class ConnectionProfile:
    """Transport settings for a single outbound call."""

    purpose: ProfilePurpose
    verify_certificates: bool
    check_hostname: bool
    minimum_tls: ssl.TLSVersion
    maximum_tls: ssl.TLSVersion
    ciphers: Tuple[str, ...]
    max_connections: int
    max_keepalive_connections: int
    keepalive_expiry: float
    timeout: float
    user_agent: str

    @property
    def trust_mode(self) -> str:
        return "strict" if self.verify_certificates and self.check_hostname else "relaxed"

    @property
    def cipher_string(self) -> str:
        return ":".join(self.ciphers)

    def ssl_context(self) -> ssl.SSLContext:
        """Materialise the TLS settings as a fresh ``SSLContext``."""
        if self.verify_certificates:
            context = ssl.create_default_context()
        else:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = self.check_hostname
        context.verify_mode = ssl.CERT_REQUIRED if self.verify_certificates else ssl.CERT_NONE
        context.minimum_version = self.minimum_tls
        context.maximum_version = self.maximum_tls
        context.set_ciphers(self.cipher_string)
        return context

    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive_connections,
            keepalive_expiry=self.keepalive_expiry,
        )

    def create_client(
        self,
        timeout: Optional[float] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.AsyncClient:
        """Build an ``httpx.AsyncClient`` bound to this profile.

        ``transport`` replaces the network layer entirely (used for stubs).
        """
        client_headers = {"User-Agent": self.user_agent, "Connection": "keep-alive"}
        if headers:
            client_headers.update(headers)
        kwargs = {
            "timeout": httpx.Timeout(timeout if timeout is not None else self.timeout),
            "headers": client_headers,
        }
        if transport is not None:
            kwargs["transport"] = transport
        else:
            kwargs["verify"] = self.ssl_context()
            kwargs["limits"] = self.limits()
        return httpx.AsyncClient(**kwargs)

    def describe(self) -> dict:
        return {
            "purpose": self.purpose.value,
            "trust_mode": self.trust_mode,
            "verify_certificates": self.verify_certificates,
            "check_hostname": self.check_hostname,
            "tls_versions": [self.minimum_tls.name, self.maximum_tls.name],
            "max_connections": self.max_connections,
            "timeout": self.timeout,
        }


class ConnectionProfileBuilder:
    """Selects profile settings by purpose and runtime."""

    def __init__(self, is_production: bool, relaxed_upstream_tls: bool = True, region: Optional[str] = None):
        self.is_production = is_production
        self.relaxed_upstream_tls = relaxed_upstream_tls
        self.region = region or "local"
        self.logger = get_logger("avatar_gateway.connection_profile")

    def build_profile(self, purpose: Union[ProfilePurpose, str]) -> ConnectionProfile:
        purpose = ProfilePurpose(purpose)
        relaxed = purpose is ProfilePurpose.UPSTREAM_API and self.relaxed_upstream_tls

        profile = ConnectionProfile(
            purpose=purpose,
            verify_certificates=not relaxed,
            check_hostname=not relaxed,
            minimum_tls=ssl.TLSVersion.TLSv1_2,
            maximum_tls=ssl.TLSVersion.TLSv1_3,
            ciphers=UPSTREAM_CIPHERS if purpose is ProfilePurpose.UPSTREAM_API else STRICT_CIPHERS,
            max_connections=50 if self.is_production else 10,
            max_keepalive_connections=20 if self.is_production else 5,
            keepalive_expiry=30.0,
            timeout=20.0 if self.is_production else 30.0,
            user_agent=f"AvatarGateway/1.0 ({self.region})",
        )

        if not self.is_production:
            self.logger.debug("Built connection profile", **profile.describe())
        return profile
