"""
gotripping.chat.events — ChatMessage Record & Wire Payloads
============================================================

:class:`ChatMessage` is the immutable, session-free view of a persisted
``message`` row that flows from the store to the fan-out and the HTTP
layer.  The payload builders here define the socket wire shape::

    {"id", "sender_id", "receiver_id" | "community_id", "content", "created_at"}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from gotripping.chat.conversation import community_room, user_room
from gotripping.constants import (
    EV_RECEIVE_COMMUNITY_MESSAGE,
    EV_RECEIVE_MESSAGE,
    EV_RECEIVE_PRIVATE_MESSAGE,
    EVENT_STYLE_TYPED,
)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True, slots=True)
class ChatMessage:
    id: str
    sender_id: int
    receiver_id: int | None
    community_id: int | None
    content: str
    is_read: bool
    created_at: datetime
    updated_at: datetime
    # Filled for community history only
    sender_name: str | None = None
    sender_avatar_url: str | None = None

    @property
    def is_private(self) -> bool:
        return self.receiver_id is not None

    @property
    def room_key(self) -> str:
        """Room the message is broadcast to."""
        if self.receiver_id is not None:
            return user_room(self.receiver_id)
        return community_room(self.community_id)


# ---------------------------------------------------------------------------
# Socket payloads
# ---------------------------------------------------------------------------
def socket_payload(message: ChatMessage) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": message.id,
        "sender_id": message.sender_id,
    }
    if message.receiver_id is not None:
        payload["receiver_id"] = message.receiver_id
    else:
        payload["community_id"] = message.community_id
    payload["content"] = message.content
    payload["created_at"] = as_utc(message.created_at).isoformat()
    return payload


def broadcast_event_name(message: ChatMessage, style: str) -> str:
    """Event name a receiving endpoint expects, given its handshake style."""
    if style != EVENT_STYLE_TYPED:
        return EV_RECEIVE_MESSAGE
    if message.is_private:
        return EV_RECEIVE_PRIVATE_MESSAGE
    return EV_RECEIVE_COMMUNITY_MESSAGE


def frame(event: str, data: Any) -> dict[str, Any]:
    """Server → client socket frame."""
    return {"event": event, "data": data}
