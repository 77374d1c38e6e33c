"""
gotripping.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- user               — Account profile (owned by the account service;
                       read here for existence checks and sender info)
- community          — Travel communities
- community_members  — Membership join table (authorizes community chat)
- message            — Private and community chat messages
- token_blocklist    — Revoked JWT ids (``jti``)

Only ``message`` and ``token_blocklist`` are written by the chat core.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Timezone-aware ``now`` with microsecond resolution.

    Message ordering and the ``before`` cursor depend on this being set
    application-side; ``server_default=func.now()`` is only second-precise
    on some backends.
    """
    return datetime.now(UTC)


def new_message_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Go Tripping ORM models."""


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "user"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    avatar_url: Mapped[str | None] = mapped_column("avatarUrl", String(255), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Communities
# ---------------------------------------------------------------------------
class Community(Base):
    __tablename__ = "community"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    image_url: Mapped[str | None] = mapped_column(String(255), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<Community id={self.id} name={self.name!r}>"


class CommunityMember(Base):
    __tablename__ = "community_members"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("community.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("community_id", "user_id", name="uq_community_members"),
    )

    def __repr__(self) -> str:
        return f"<CommunityMember community={self.community_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# Messages — private (receiver_id) XOR community (community_id)
# ---------------------------------------------------------------------------
class Message(Base):
    """One chat message.

    After insert only ``is_read`` / ``updated_at`` change.  Exactly one of
    ``receiver_id`` and ``community_id`` is set, enforced by
    ``ck_message_single_target``.
    """
    __tablename__ = "message"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_message_id)
    sender_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("user.id", ondelete="CASCADE"), nullable=True
    )
    community_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("community.id", ondelete="CASCADE"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    sender: Mapped[User] = relationship(foreign_keys=[sender_id])

    __table_args__ = (
        CheckConstraint(
            "(receiver_id IS NULL) <> (community_id IS NULL)",
            name="ck_message_single_target",
        ),
        Index("ix_message_pair_time", "sender_id", "receiver_id", "created_at"),
        Index("ix_message_community_time", "community_id", "created_at"),
        Index("ix_message_receiver_unread", "receiver_id", "is_read"),
    )

    def __repr__(self) -> str:
        target = (
            f"receiver={self.receiver_id}"
            if self.receiver_id is not None
            else f"community={self.community_id}"
        )
        return f"<Message id={self.id} sender={self.sender_id} {target}>"


# ---------------------------------------------------------------------------
# TokenBlocklist — revoked JWT ids
# ---------------------------------------------------------------------------
class TokenBlocklist(Base):
    __tablename__ = "token_blocklist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    jti: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<TokenBlocklist jti={self.jti!r}>"
