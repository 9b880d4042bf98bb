from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from arena.core.config import settings

# HTTP Bearer scheme for FastAPI dependencies
bearer_scheme = HTTPBearer(auto_error=False)


def _get_jwt_secret() -> str:
    """Get the JWT secret, generating an ephemeral one for dev if not set.

    WARNING: If not set, an ephemeral secret is generated per-process, which will
    invalidate tokens on restart. Configure settings.jwt_secret in production.
    """
    if settings.jwt_secret:
        return settings.jwt_secret
    secret = secrets.token_urlsafe(32)
    logger.warning(
        "JWT secret not configured. Using ephemeral secret for this process; tokens will invalidate on restart."
    )
    # Cache on settings to keep it stable during process lifetime
    settings.jwt_secret = secret
    return secret


def create_access_token(*, sub: str) -> str:
    """Create a short-lived access JWT.

    Claims:
      - sub: subject (player id as string)
      - exp: expiry
      - iat: issued at
    """
    now = datetime.now(UTC)
    exp = now + timedelta(seconds=settings.access_token_ttl_seconds)
    payload: dict[str, Any] = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token, returning claims or raising.

    Raises jwt.InvalidTokenError (caught by caller) on invalid token.
    """
    return jwt.decode(token, _get_jwt_secret(), algorithms=[settings.jwt_algorithm])


def player_id_from_token(token: str) -> int:
    """Resolve the player id carried by an access token.

    - 401 if the token is expired, invalid or has no usable subject
    """
    try:
        claims = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired") from None
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token") from None

    sub = claims.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    try:
        return int(sub)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid subject") from None


def get_current_player_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> int:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Not authenticated")
    return player_id_from_token(credentials.credentials)


def get_websocket_player_id(token: Annotated[str, Query()]) -> int:
    """Browsers cannot set headers on WebSocket upgrades, so the token rides in the query."""
    return player_id_from_token(token)

