"""
Authentication helpers for the Avatar Gateway service.
"""

from .signer import SignedToken, TokenSigner, sign

__all__ = [
    "SignedToken",
    "TokenSigner",
    "sign",
]
