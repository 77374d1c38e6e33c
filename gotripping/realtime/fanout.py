"""
gotripping.realtime.fanout — Delivery Fan-out
==============================================

Pushes one persisted message to every live endpoint in its room.

* Each endpoint in the room snapshot gets exactly one broadcast event per
  :meth:`DeliveryFanout.deliver` call.  Calling ``deliver`` twice for the
  same message delivers twice; the gateway calls it once.
* The originating endpoint (socket sends only) also gets a separate
  ``message_sent`` confirmation, whether or not it is in the room.
* A failed push is logged, the endpoint dropped from the directory and its
  transport closed so the client reconnects.  It never stops delivery to
  the rest and never reaches the sender.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from gotripping.chat.events import ChatMessage, broadcast_event_name, socket_payload
from gotripping.constants import EV_MESSAGE_SENT
from gotripping.errors import TransientDeliveryError
from gotripping.realtime.rooms import Endpoint, RoomDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeliveryReport:
    room_key: str
    delivered: int
    failed: int
    acknowledged: bool


class DeliveryFanout:
    """Best-effort push of persisted messages to online endpoints."""

    def __init__(self, directory: RoomDirectory) -> None:
        self.directory = directory

    async def _push(self, endpoint: Endpoint, event: str, payload: dict) -> bool:
        try:
            await endpoint.send(event, payload)
            return True
        except TransientDeliveryError as exc:
            logger.warning(
                "Delivery of %s to endpoint %s failed: %s", event, endpoint.id, exc.message
            )
        except Exception:
            logger.exception("Unexpected error delivering %s to endpoint %s", event, endpoint.id)
        self.directory.disconnect(endpoint)
        try:
            await endpoint.close()
        except Exception:
            logger.exception("Could not close endpoint %s", endpoint.id)
        return False

    async def deliver(
        self, message: ChatMessage, *, origin: Endpoint | None = None
    ) -> DeliveryReport:
        room_key = message.room_key
        targets = self.directory.endpoints_for(room_key)
        payload = socket_payload(message)

        results = await asyncio.gather(
            *(
                self._push(endpoint, broadcast_event_name(message, endpoint.event_style), payload)
                for endpoint in targets
            )
        )
        delivered = sum(1 for ok in results if ok)

        acknowledged = False
        if origin is not None:
            acknowledged = await self._push(origin, EV_MESSAGE_SENT, payload)

        report = DeliveryReport(
            room_key=room_key,
            delivered=delivered,
            failed=len(results) - delivered,
            acknowledged=acknowledged,
        )
        logger.debug(
            "Message %s → %s: %d delivered, %d failed",
            message.id, room_key, report.delivered, report.failed,
        )
        return report
