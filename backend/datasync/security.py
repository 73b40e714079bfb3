"""Security utilities for session JWTs.

WHAT:
    Issues and validates the JWT carried in the `access_token` cookie after a
    successful identity login.

WHY:
    The session layer only needs to hand every request a resolved identity.
    A signed cookie keeps the server stateless across instances.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import jwt, JWTError

from .utils.env import get_env, require_env


logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
JWT_SECRET = require_env("JWT_SECRET")
JWT_EXPIRES_MINUTES = int(get_env("JWT_EXPIRES_MINUTES", "10080"))  # 7 days


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    """Create a signed JWT for the given subject (the user's email)."""
    if expires_minutes is None:
        expires_minutes = JWT_EXPIRES_MINUTES
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes)
    to_encode: Dict[str, Any] = {"sub": subject, "iat": int(now.timestamp()), "exp": int(expire.timestamp())}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT, returning its payload.

    Raises jose.JWTError on failure.
    """
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as exc:
        logger.debug("[AUTH] JWT rejected: %s", exc)
        raise
