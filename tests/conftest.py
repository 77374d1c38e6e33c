"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os
import uuid
from datetime import UTC, datetime, timedelta

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of gotripping.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from gotripping.config import GoTrippingConfig  # noqa: E402
from gotripping.database.models import (  # noqa: E402
    Base,
    Community,
    CommunityMember,
    User,
)

_sqlite_compat_registered = False


def _register_sqlite_compat():
    """Map BigInteger → INTEGER so autoincrement works on SQLite (idempotent)."""
    global _sqlite_compat_registered
    if _sqlite_compat_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _sqlite_compat_registered = True


_register_sqlite_compat()


# Helper to run async code without pytest-asyncio
def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Go Tripping tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def test_config() -> GoTrippingConfig:
    return GoTrippingConfig(app_name="Go Tripping Test", max_message_length=200)


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------
def make_user(engine: Engine, name: str, *, avatar_url: str | None = None) -> int:
    with Session(engine) as session:
        user = User(
            name=name,
            email=f"{name.lower()}-{uuid.uuid4().hex[:6]}@example.com",
            avatar_url=avatar_url,
        )
        session.add(user)
        session.commit()
        return user.id


def make_community(engine: Engine, name: str, *members: int) -> int:
    with Session(engine) as session:
        community = Community(name=name, description=f"{name} community")
        session.add(community)
        session.flush()
        for user_id in members:
            session.add(CommunityMember(community_id=community.id, user_id=user_id))
        session.commit()
        return community.id


def add_member(engine: Engine, community_id: int, user_id: int) -> None:
    with Session(engine) as session:
        session.add(CommunityMember(community_id=community_id, user_id=user_id))
        session.commit()


def remove_member(engine: Engine, community_id: int, user_id: int) -> None:
    with Session(engine) as session:
        session.query(CommunityMember).filter_by(
            community_id=community_id, user_id=user_id
        ).delete()
        session.commit()


def make_token(
    user_id: int,
    *,
    jti: str | None = None,
    expires_in: timedelta | None = timedelta(hours=1),
) -> str:
    """Create an HS256 JWT as the account service would."""
    import jwt

    from gotripping.api.deps import JWT_ALGORITHM, JWT_SECRET

    payload: dict = {"sub": str(user_id)}
    if jti is not None:
        payload["jti"] = jti
    if expires_in is not None:
        payload["exp"] = datetime.now(UTC) + expires_in
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth_headers(user_id: int, **kwargs) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}


@pytest.fixture
def app(db_engine: Engine, test_config: GoTrippingConfig):
    """The FastAPI app wired to the in-memory engine and a fresh room directory."""
    from gotripping.api.deps import get_config, get_engine, get_room_directory
    from gotripping.api.main import app as fastapi_app

    get_room_directory.cache_clear()
    fastapi_app.dependency_overrides[get_engine] = lambda: db_engine
    fastapi_app.dependency_overrides[get_config] = lambda: test_config
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()
    get_room_directory.cache_clear()


@pytest.fixture
def client(app):
    """Create a FastAPI TestClient with raise_server_exceptions=False."""
    from fastapi.testclient import TestClient

    return TestClient(app, raise_server_exceptions=False)
