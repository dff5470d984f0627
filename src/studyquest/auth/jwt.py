"""JWT verification for bearer tokens issued by the identity service.

Tokens carry the opaque user id in ``sub`` and a ``type`` claim; only
``access`` tokens are accepted by the progression API.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from studyquest.config import get_settings


def create_access_token(user_id: str, *, expires_minutes: int = 60) -> str:
    """Create a short-lived access token (used by tooling and tests)."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: The encoded JWT string.
        expected_type: Expected token type ("access").

    Returns:
        Decoded payload dict.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has the wrong type.
    """
    settings = get_settings()
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "iss"]},
    )
    if payload.get("type") != expected_type:
        msg = f"Expected {expected_type} token, got {payload.get('type')}"
        raise jwt.InvalidTokenError(msg)
    if not str(payload["sub"]).strip():
        msg = "Token subject is empty"
        raise jwt.InvalidTokenError(msg)
    return payload
