from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from config import Settings
from errors import ConfigurationError


def require_secret(settings: Settings) -> str:
    if not settings.JWT_SECRET:
        raise ConfigurationError("JWT_SECRET is not configured")
    return settings.JWT_SECRET


def sign_token(uid: str, email: Optional[str], settings: Settings) -> str:
    secret = require_secret(settings)
    now = datetime.now(timezone.utc)
    claims = {
        "uid": uid,
        "email": email,
        "iat": now,
        "exp": now + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(claims, secret, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, settings: Settings) -> dict[str, Any]:
    """Verify signature and expiry; raises jwt.InvalidTokenError on any failure."""
    secret = require_secret(settings)
    return jwt.decode(
        token,
        secret,
        algorithms=[settings.JWT_ALGORITHM],
        options={"require": ["exp", "uid"]},
    )
