"""
Signed token minting for calls to the hosted avatar API.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import jwt

from shared.errors import ConfigurationError
from shared.logging import get_logger

SIGNING_ALGORITHM = "HS256"
DEFAULT_TOKEN_LIFETIME = 1800

logger = get_logger("avatar_gateway.auth.signer")


@dataclass(frozen=True)
class SignedToken:
    """A minted credential together with the claims it carries."""

    token: str
    application_id: str
    issued_at: int
    expires_at: int

    @property
    def lifetime(self) -> int:
        return self.expires_at - self.issued_at

    def claims(self) -> Dict[str, Any]:
        return {"appId": self.application_id, "iat": self.issued_at, "exp": self.expires_at}


def sign(
    application_id: str,
    secret: str,
    lifetime_seconds: int = DEFAULT_TOKEN_LIFETIME,
    *,
    clock: Callable[[], float] = time.time,
) -> SignedToken:
    """Mint an HS256 token embedding ``appId``, ``iat`` and ``exp``.

    Expiry is never checked locally; the upstream rejects stale tokens.
    """
    if not secret:
        raise ConfigurationError("Signing secret is not configured")
    if not application_id:
        raise ConfigurationError("Application id is not configured")
    if lifetime_seconds <= 0:
        raise ValueError("lifetime_seconds must be positive")

    issued_at = int(clock())
    expires_at = issued_at + int(lifetime_seconds)
    payload = {"appId": application_id, "iat": issued_at, "exp": expires_at}

    token = jwt.encode(payload, secret, algorithm=SIGNING_ALGORITHM)
    logger.debug("Minted upstream token", application_id=application_id,
                 issued_at=issued_at, expires_at=expires_at)
    return SignedToken(token=token, application_id=application_id,
                       issued_at=issued_at, expires_at=expires_at)


class TokenSigner:
    """Signs tokens for the configured application identity.

    A fresh token is minted on every call; nothing is cached between requests.
    """

    def __init__(
        self,
        application_id: str,
        secret: str,
        lifetime_seconds: int = DEFAULT_TOKEN_LIFETIME,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.application_id = application_id
        self._secret = secret
        self.lifetime_seconds = lifetime_seconds
        self._clock = clock

    def sign(self, application_id: Optional[str] = None, lifetime_seconds: Optional[int] = None) -> SignedToken:
        return sign(
            application_id or self.application_id,
            self._secret,
            lifetime_seconds or self.lifetime_seconds,
            clock=self._clock,
        )

    def __repr__(self) -> str:
        return f"TokenSigner(application_id={self.application_id!r}, lifetime_seconds={self.lifetime_seconds})"
