"""
auditflow - Access token inspection.

Tokens are issued and signed by the identity provider; the client never
holds the signing key, so it reads claims without verifying the signature
and only uses them to decide whether a stored token is worth presenting.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import jwt

from .exceptions import TokenDecodeError


def decode_claims(token: str) -> dict[str, Any]:
    """Return the unverified claims of a JWT."""
    try:
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.PyJWTError as e:
        raise TokenDecodeError(f"Malformed access token: {e}") from e


def token_expiry(token: str) -> datetime:
    """
    Return the expiry of a JWT as an aware UTC datetime.

    Raises:
        TokenDecodeError: If the token cannot be decoded or has no ``exp``.
    """
    exp = decode_claims(token).get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        raise TokenDecodeError("Access token has no expiry claim")
    return datetime.fromtimestamp(exp, tz=timezone.utc)


def is_expired(token: str, now: Optional[datetime] = None) -> bool:
    """True if the token's expiry claim is at or before ``now``."""
    now = now or datetime.now(timezone.utc)
    return token_expiry(token) <= now
