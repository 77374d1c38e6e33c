"""
gotripping.database.seed — Default Communities
===============================================

Idempotent: inserts only communities whose name is not already present.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select

from gotripping.database.engine import get_session
from gotripping.database.models import Community

logger = logging.getLogger(__name__)

DEFAULT_COMMUNITIES: tuple[dict[str, str], ...] = (
    {
        "name": "Travel Enthusiasts",
        "description": "A community for people who love to travel and explore new places",
    },
    {
        "name": "Adventure Seekers",
        "description": "For those who seek adventure and outdoor activities",
    },
    {
        "name": "Photography Lovers",
        "description": "Share your travel photos and photography tips",
    },
)


def seed_default_communities(engine: Engine) -> int:
    """Insert missing default communities.  Returns the number inserted."""
    with get_session(engine) as session:
        existing = set(session.scalars(select(Community.name)).all())
        inserted = 0
        for row in DEFAULT_COMMUNITIES:
            if row["name"] in existing:
                continue
            session.add(Community(**row))
            inserted += 1

    if inserted:
        logger.info("Seeded %d default communities.", inserted)
    return inserted
