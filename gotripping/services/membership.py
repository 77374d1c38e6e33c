"""
gotripping.services.membership — Social-Graph Lookups for Chat
===============================================================

Read-only questions the chat core asks of the social graph.  Membership is
never cached: it is re-checked on every community join and every
community send, because it can change between the two.
"""

from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from gotripping.database.models import Community, CommunityMember, User
from gotripping.errors import ForbiddenError, NotFoundError


def user_exists(session: Session, user_id: int) -> bool:
    return session.get(User, user_id) is not None


def community_exists(session: Session, community_id: int) -> bool:
    return session.get(Community, community_id) is not None


def is_member(session: Session, user_id: int, community_id: int) -> bool:
    """True if *user_id* is currently a member of *community_id*."""
    return session.scalar(
        select(CommunityMember.id).where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user_id,
        )
    ) is not None


def check_membership(engine: Engine, user_id: int, community_id: int) -> bool:
    """Engine-level :func:`is_member`, for use through ``run_db``."""
    with Session(engine) as session:
        return is_member(session, user_id, community_id)


def require_member(session: Session, user_id: int, community_id: int) -> None:
    """Raise unless *community_id* exists and *user_id* belongs to it.

    Raises
    ------
    NotFoundError
        The community does not exist.
    ForbiddenError
        The user is not a current member.
    """
    if not community_exists(session, community_id):
        raise NotFoundError("Community not found", code="COMMUNITY_NOT_FOUND")
    if not is_member(session, user_id, community_id):
        raise ForbiddenError("Not a member of the community", code="NOT_A_MEMBER")


def ensure_member(engine: Engine, user_id: int, community_id: int) -> None:
    """Engine-level :func:`require_member`, for use through ``run_db``."""
    with Session(engine) as session:
        require_member(session, user_id, community_id)
