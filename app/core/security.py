"""
JWT helpers.

- Tokens are issued by the identity provider; this service only needs
  to decode them and read the claims the authorization engine consumes
  (`role_id`, `sub` / `user_id`).
- `create_access_token` exists for development tooling and tests.
- A missing or invalid bearer token is NOT an error here: the caller is
  simply unauthenticated and the authorization layer denies.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ── JWT ──────────────────────────────────────────────────────────────


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode & validate a JWT.  Raises `JWTError` on failure."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


# ── Per-request claim extraction ────────────────────────────────────


async def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any] | None:
    """
    FastAPI dependency — returns the verified claims of the bearer
    token, or None when the request carries no usable token.
    """
    if credentials is None or not credentials.credentials:
        return None
    try:
        return decode_access_token(credentials.credentials)
    except JWTError as exc:
        logger.warning("Rejected bearer token: %s", exc)
        return None
