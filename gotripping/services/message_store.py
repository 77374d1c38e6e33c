"""
gotripping.services.message_store — Chat Message Persistence
=============================================================

Sync service functions (call them through ``run_db`` from async code) that
own every read and write of the ``message`` table.

Invariants kept here:

* A message targets exactly one of ``receiver_id`` / ``community_id``.
* ``content`` is non-empty and never changes after insert; neither do the
  sender or target.  Only ``is_read`` (and ``updated_at``) move.
* Read-state updates touch only unread messages the reader did not send,
  so repeating one is a no-op that returns ``0``.
* History is ordered by ``(created_at, id)``; ``before`` is an exclusive
  cursor, ``before_id`` breaks timestamp ties.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from sqlalchemy import Engine, and_, func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from gotripping.chat.conversation import (
    CommunityConversation,
    Conversation,
    PrivateConversation,
)
from gotripping.chat.events import ChatMessage, as_utc
from gotripping.database.engine import get_session
from gotripping.database.models import Message, utcnow
from gotripping.errors import ForbiddenError, NotFoundError, ValidationError
from gotripping.services import membership

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
MAX_CONTENT_LENGTH = 4000


def _to_record(row: Message, *, include_sender: bool = False) -> ChatMessage:
    sender = row.sender if include_sender else None
    return ChatMessage(
        id=row.id,
        sender_id=row.sender_id,
        receiver_id=row.receiver_id,
        community_id=row.community_id,
        content=row.content,
        is_read=bool(row.is_read),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        sender_name=sender.name if sender is not None else None,
        sender_avatar_url=sender.avatar_url if sender is not None else None,
    )


def _conversation_filter(conversation: Conversation):
    if isinstance(conversation, CommunityConversation):
        return Message.community_id == conversation.community_id
    a, b = conversation.first_id, conversation.second_id
    return or_(
        and_(Message.sender_id == a, Message.receiver_id == b),
        and_(Message.sender_id == b, Message.receiver_id == a),
    )


def _validate_page(limit: int, max_limit: int) -> int:
    if limit < 1:
        raise ValidationError("limit must be a positive integer")
    return min(limit, max_limit)


# ---------------------------------------------------------------------------
# Send
# ---------------------------------------------------------------------------
def send_message(
    engine: Engine,
    sender_id: int,
    *,
    receiver_id: int | None = None,
    community_id: int | None = None,
    content: str | None,
    max_length: int = MAX_CONTENT_LENGTH,
) -> ChatMessage:
    """Validate, authorize and persist one message.

    Raises
    ------
    ValidationError
        Empty/oversized content, or not exactly one of receiver/community.
    NotFoundError
        Receiver or community does not exist.
    ForbiddenError
        Community send by a non-member.
    """
    if (receiver_id is None) == (community_id is None):
        raise ValidationError("Exactly one of receiverId or communityId is required")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Content is required")
    if len(content) > max_length:
        raise ValidationError(f"Content exceeds {max_length} characters")

    with get_session(engine) as session:
        if receiver_id is not None:
            if not membership.user_exists(session, receiver_id):
                raise NotFoundError("Receiver not found", code="USER_NOT_FOUND")
        else:
            membership.require_member(session, sender_id, community_id)

        row = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            community_id=community_id,
            content=content,
            is_read=False,
        )
        session.add(row)
        session.flush()
        record = _to_record(row)

    logger.info(
        "Message %s persisted: sender=%d %s",
        record.id,
        sender_id,
        f"receiver={receiver_id}" if receiver_id is not None else f"community={community_id}",
    )
    return record


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------
def _history_rows(
    session: Session,
    conversation: Conversation,
    *,
    limit: int,
    before: datetime | None,
    before_id: str | None,
    include_sender: bool,
) -> list[Message]:
    stmt = select(Message).where(_conversation_filter(conversation))
    if before is not None:
        before = as_utc(before)
        if before_id is not None:
            stmt = stmt.where(
                or_(
                    Message.created_at < before,
                    and_(Message.created_at == before, Message.id < before_id),
                )
            )
        else:
            stmt = stmt.where(Message.created_at < before)
    if include_sender:
        stmt = stmt.options(joinedload(Message.sender))
    stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
    rows = list(session.scalars(stmt).all())
    rows.reverse()
    return rows


def get_history(
    engine: Engine,
    conversation: Conversation,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    before: datetime | None = None,
    before_id: str | None = None,
    max_limit: int = MAX_PAGE_SIZE,
    include_sender: bool = False,
) -> list[ChatMessage]:
    """Return up to *limit* messages older than the cursor, oldest first.

    Pure query: read state is left untouched.
    """
    limit = _validate_page(limit, max_limit)
    with Session(engine) as session:
        rows = _history_rows(
            session,
            conversation,
            limit=limit,
            before=before,
            before_id=before_id,
            include_sender=include_sender,
        )
        return [_to_record(r, include_sender=include_sender) for r in rows]


def fetch_and_mark_read(
    engine: Engine,
    conversation: PrivateConversation,
    reader_id: int,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    before: datetime | None = None,
    before_id: str | None = None,
    max_limit: int = MAX_PAGE_SIZE,
) -> tuple[list[ChatMessage], int]:
    """History page for *reader_id*, then mark the returned messages that were
    addressed to the reader as read.

    Returns ``(messages, updated_count)``; messages reflect the new state.
    """
    if not conversation.involves(reader_id):
        raise ForbiddenError("Not a participant in this conversation")
    limit = _validate_page(limit, max_limit)

    with get_session(engine) as session:
        rows = _history_rows(
            session,
            conversation,
            limit=limit,
            before=before,
            before_id=before_id,
            include_sender=False,
        )
        records = [_to_record(r) for r in rows]
        unread_ids = [
            m.id
            for m in records
            if m.receiver_id == reader_id and m.sender_id != reader_id and not m.is_read
        ]
        updated = 0
        if unread_ids:
            result = session.execute(
                update(Message)
                .where(Message.id.in_(unread_ids), Message.is_read.is_(False))
                .values(is_read=True, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount or 0

    if unread_ids:
        marked = set(unread_ids)
        records = [replace(m, is_read=True) if m.id in marked else m for m in records]
        logger.debug("History fetch by %d marked %d messages read", reader_id, updated)
    return records, updated


# ---------------------------------------------------------------------------
# Read state
# ---------------------------------------------------------------------------
def _unread_filter(reader_id: int, conversation: Conversation | None):
    """Unread messages that count for *reader_id*; never the reader's own."""
    clauses = [Message.is_read.is_(False), Message.sender_id != reader_id]
    if isinstance(conversation, CommunityConversation):
        clauses.append(Message.community_id == conversation.community_id)
    else:
        clauses.append(Message.receiver_id == reader_id)
        if conversation is not None:
            clauses.append(Message.sender_id == conversation.counterpart_of(reader_id))
    return and_(*clauses)


def mark_read(engine: Engine, reader_id: int, conversation: Conversation) -> int:
    """Flip unread → read for *reader_id* in *conversation*.

    For a private conversation this covers messages the counterpart sent to
    the reader.  For a community it covers every unread message the reader
    did not send; community rows carry one shared ``is_read`` flag.

    Idempotent: returns the number of rows changed, ``0`` when nothing was
    unread.  Never raises for an empty result.
    """
    if isinstance(conversation, PrivateConversation) and not conversation.involves(reader_id):
        raise ForbiddenError("Not a participant in this conversation")

    with get_session(engine) as session:
        result = session.execute(
            update(Message)
            .where(_unread_filter(reader_id, conversation))
            .values(is_read=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount or 0

    if updated:
        logger.debug("Reader %d marked %d messages read", reader_id, updated)
    return updated


def unread_count(engine: Engine, reader_id: int, conversation: Conversation | None = None) -> int:
    """Unread messages for *reader_id*.

    ``conversation=None`` counts every private message addressed to the
    reader; a :class:`PrivateConversation` narrows to one counterpart; a
    :class:`CommunityConversation` counts that community's messages.
    """
    with Session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(Message)
            .where(_unread_filter(reader_id, conversation))
        ) or 0


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def delete_message(engine: Engine, message_id: str, requester_id: int) -> ChatMessage:
    """Delete *message_id* if *requester_id* sent it.  Returns the deleted record.

    Raises
    ------
    NotFoundError
        No such message.
    ForbiddenError
        Requester is not the sender; the message is left in place.
    """
    with get_session(engine) as session:
        row = session.get(Message, message_id)
        if row is None:
            raise NotFoundError("Message not found", code="MESSAGE_NOT_FOUND")
        if row.sender_id != requester_id:
            raise ForbiddenError(
                "Not authorized to delete this message", code="UNAUTHORIZED"
            )
        record = _to_record(row)
        session.delete(row)

    logger.info("Message %s deleted by sender %d", message_id, requester_id)
    return record
