"""
gotripping.realtime.gateway — The Single Send Path
===================================================

Both transports (``POST /api/chat/send`` and the WebSocket ``send_message``
family of events) hand their sends to :meth:`ChatGateway.send`, which is
the only place that persists a message and fans it out.  One call → one
row → one ``deliver``; there is no second path that could write or
broadcast the same logical send again.

Flow::

    transport (already authenticated)
        → message_store.send_message   (validate, authorize, persist)
        → DeliveryFanout.deliver       (best-effort push to the room)
        → return the persisted ChatMessage to the transport
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine

from gotripping.chat.conversation import user_room
from gotripping.chat.events import ChatMessage
from gotripping.config import GoTrippingConfig
from gotripping.database.engine import run_db
from gotripping.realtime.fanout import DeliveryFanout
from gotripping.realtime.rooms import Endpoint, RoomDirectory
from gotripping.services import membership, message_store

logger = logging.getLogger(__name__)


class ChatGateway:
    """Transport-agnostic entry point for sends and room membership."""

    def __init__(
        self,
        engine: Engine,
        directory: RoomDirectory,
        *,
        config: GoTrippingConfig | None = None,
        fanout: DeliveryFanout | None = None,
    ) -> None:
        self.engine = engine
        self.directory = directory
        self.config = config or GoTrippingConfig()
        self.fanout = fanout or DeliveryFanout(directory)

    # -- send ----------------------------------------------------------------
    async def send(
        self,
        sender_id: int,
        *,
        receiver_id: int | None = None,
        community_id: int | None = None,
        content: str | None,
        origin: Endpoint | None = None,
    ) -> ChatMessage:
        """Persist, then deliver.  Errors from persistence propagate to the
        transport; delivery problems never do."""
        message = await run_db(
            message_store.send_message,
            self.engine,
            sender_id,
            receiver_id=receiver_id,
            community_id=community_id,
            content=content,
            max_length=self.config.max_message_length,
        )
        await self.fanout.deliver(message, origin=origin)
        return message

    # -- rooms ---------------------------------------------------------------
    async def is_member(self, user_id: int, community_id: int) -> bool:
        return await run_db(membership.check_membership, self.engine, user_id, community_id)

    def connect(self, endpoint: Endpoint) -> str:
        """Register a fresh endpoint in its principal's personal room."""
        room_key = user_room(endpoint.principal_id)
        self.directory.register(endpoint, room_key)
        logger.info("User %d connected (endpoint %s)", endpoint.principal_id, endpoint.id)
        return room_key

    async def join(self, endpoint: Endpoint, room_key: str) -> bool:
        return await self.directory.join(endpoint, room_key, authorize=self.is_member)

    def leave(self, endpoint: Endpoint, room_key: str) -> bool:
        return self.directory.leave(endpoint, room_key)

    def disconnect(self, endpoint: Endpoint) -> list[str]:
        rooms = self.directory.disconnect(endpoint)
        logger.info(
            "User %d disconnected (endpoint %s, %d rooms released)",
            endpoint.principal_id, endpoint.id, len(rooms),
        )
        return rooms
