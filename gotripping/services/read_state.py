"""
gotripping.services.read_state — Read-State Tracker
====================================================

Async facade over the store's read-state functions, used by the HTTP
routes.  Two rules are easy to get wrong and are kept by the store:

* ``mark_read`` is idempotent — a second call in a row returns ``0``.
* A reader's own messages never count toward their unread total.
"""

from __future__ import annotations

from sqlalchemy import Engine

from gotripping.chat.conversation import (
    CommunityConversation,
    Conversation,
    PrivateConversation,
)
from gotripping.database.engine import run_db
from gotripping.services import message_store


class ReadStateTracker:
    """Marks conversations read and counts unread messages for a reader."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def mark_read(self, reader_id: int, conversation: Conversation) -> int:
        return await run_db(message_store.mark_read, self.engine, reader_id, conversation)

    async def mark_private_read(self, reader_id: int, counterpart_id: int) -> int:
        conversation = PrivateConversation.between(reader_id, counterpart_id)
        return await self.mark_read(reader_id, conversation)

    async def mark_community_read(self, reader_id: int, community_id: int) -> int:
        return await self.mark_read(reader_id, CommunityConversation(community_id))

    async def unread_count(
        self, reader_id: int, conversation: Conversation | None = None
    ) -> int:
        return await run_db(
            message_store.unread_count, self.engine, reader_id, conversation
        )
