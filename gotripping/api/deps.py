"""
gotripping.api.deps — FastAPI dependency injection
====================================================
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from gotripping.config import GoTrippingConfig, load_config
from gotripping.database.engine import create_db_engine, run_db
from gotripping.database.models import TokenBlocklist, User
from gotripping.errors import AuthError
from gotripping.realtime.gateway import ChatGateway
from gotripping.realtime.rooms import RoomDirectory
from gotripping.services.read_state import ReadStateTracker

_WEAK_SECRETS = frozenset({
    "your-secret-key",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> GoTrippingConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_room_directory() -> RoomDirectory:
    """Process-wide room directory; every socket of this process registers here."""
    return RoomDirectory()


def get_gateway(
    engine: Annotated[Engine, Depends(get_engine)],
    cfg: Annotated[GoTrippingConfig, Depends(get_config)],
    directory: Annotated[RoomDirectory, Depends(get_room_directory)],
) -> ChatGateway:
    return ChatGateway(engine, directory, config=cfg)


def get_read_state(engine: Annotated[Engine, Depends(get_engine)]) -> ReadStateTracker:
    return ReadStateTracker(engine)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity attached to a request or socket."""

    user_id: int
    name: str
    avatar_url: str | None = None
    jti: str | None = None


def bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def authenticate(engine: Engine, token: str | None) -> Principal:
    """Verify *token* and resolve it to a :class:`Principal`.

    Raises :class:`AuthError` when the token is missing, malformed,
    expired, revoked (``jti`` in the blocklist) or names an unknown user.
    """
    if not token:
        raise AuthError("No token provided", code="NO_TOKEN")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthError("Token expired", code="TOKEN_EXPIRED")
    except InvalidTokenError:
        raise AuthError("Invalid token", code="INVALID_TOKEN")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthError("No user ID in token", code="INVALID_TOKEN")

    jti = payload.get("jti")
    with Session(engine) as session:
        if jti and session.scalar(
            select(TokenBlocklist.id).where(TokenBlocklist.jti == jti)
        ) is not None:
            raise AuthError("Token has been invalidated", code="TOKEN_INVALIDATED")
        user = session.get(User, user_id)
        if user is None:
            raise AuthError("User not found", code="USER_NOT_FOUND")
        return Principal(
            user_id=user.id,
            name=user.name,
            avatar_url=user.avatar_url,
            jti=jti,
        )


async def get_current_principal(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> Principal:
    """Validate the bearer JWT and return the caller.  401 via AuthError."""
    return await run_db(authenticate, engine, bearer_token(authorization))
