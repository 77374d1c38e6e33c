"""
gotripping.api.schemas — Inbound models + response shaping
============================================================

The same inbound models validate ``POST`` bodies and socket frame data, so
``receiverId`` / ``receiver_id`` spellings are accepted on both transports.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gotripping.chat.events import ChatMessage, as_utc

# Ids are BIGINT columns.
MAX_ID = 2**63 - 1


class SendMessageIn(BaseModel):
    """Send body: exactly one of ``receiverId`` / ``communityId`` (checked by
    the store, so a missing target is a 400 rather than a 422)."""

    model_config = ConfigDict(populate_by_name=True)

    receiver_id: int | None = Field(default=None, alias="receiverId", ge=1, le=MAX_ID)
    community_id: int | None = Field(default=None, alias="communityId", ge=1, le=MAX_ID)
    content: str | None = None


class SocketFrame(BaseModel):
    """Client → server socket frame."""

    event: str
    data: Any = None


def message_response(message: ChatMessage) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": message.id,
        "content": message.content,
        "senderId": message.sender_id,
        "receiverId": message.receiver_id,
        "communityId": message.community_id,
        "isRead": message.is_read,
        "createdAt": as_utc(message.created_at).isoformat(),
        "updatedAt": as_utc(message.updated_at).isoformat(),
    }
    if message.sender_name is not None:
        body["sender"] = {
            "id": message.sender_id,
            "name": message.sender_name,
            "avatarUrl": message.sender_avatar_url,
        }
    return body
