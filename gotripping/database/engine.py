"""
gotripping.database.engine — Engine, transaction scope and the thread bridge
=============================================================================

SQLAlchemy runs synchronously here, while HTTP routes and chat sockets
share one ``asyncio`` loop.  Services are therefore written as plain
functions taking ``engine`` first, and handlers reach them through
:func:`run_db`, which executes them on a worker thread.

Pool sizing comes from the environment so a deployment can tune it
without touching ``config.yaml``:

    ======================  ========  =====================================
    variable                default   meaning
    ======================  ========  =====================================
    ``DB_POOL_SIZE``        5         connections kept open
    ``DB_MAX_OVERFLOW``     10        extra connections allowed under load
    ``DB_POOL_TIMEOUT``     10        seconds to wait for a free connection
    ``DB_POOL_RECYCLE``     3600      seconds before a connection is renewed
    ======================  ========  =====================================

SQLite URLs (local runs, tests) skip the pool options and allow use from
worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import Session

from gotripping.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

POOL_DEFAULTS: dict[str, int] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_recycle": 3600,
}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def pool_options() -> dict[str, int]:
    """``POOL_DEFAULTS`` with any ``DB_*`` environment overrides applied."""
    options = dict(POOL_DEFAULTS)
    for name in options:
        env_name = "DB_" + name.upper()
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        try:
            options[name] = int(raw)
        except ValueError:
            raise RuntimeError(f"{env_name} must be an integer, got {raw!r}") from None
    return options


def create_db_engine(url: str | None = None) -> Engine:
    """Engine for *url*, or for ``$DATABASE_URL`` when no url is given.

    Raises
    ------
    RuntimeError
        If no url is available or a ``DB_*`` pool override is not an integer.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set; copy .env.example to .env and point it "
            "at the chat database."
        )

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        engine = create_engine(parsed, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(parsed, pool_pre_ping=True, **pool_options())

    logger.info(
        "Database engine ready (%s at %s)",
        engine.dialect.name,
        engine.url.host or engine.url.database or "memory",
    )
    return engine


def init_db(engine: Engine) -> None:
    """``create_all`` plus the default-community seed.  Idempotent.

    Production schemas are owned by Alembic; this keeps dev and test
    databases usable without running migrations.
    """
    from gotripping.database.seed import seed_default_communities

    Base.metadata.create_all(engine)
    logger.info("Chat tables present")
    seed_default_communities(engine)


# ---------------------------------------------------------------------------
# Transaction scope
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """One transaction: committed when the block exits, rolled back if it
    raises.  Loaded objects remain readable afterwards."""
    with Session(engine, expire_on_commit=False) as session, session.begin():
        yield session


# ---------------------------------------------------------------------------
# Thread bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], /, *args: P.args, **kwargs: P.kwargs) -> T:
    """Await ``func(*args, **kwargs)`` run on the default thread pool::

        message = await run_db(message_store.send_message, engine, sender_id, ...)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
