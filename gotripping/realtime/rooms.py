"""
gotripping.realtime.rooms — Room Directory
===========================================

Maps room keys (``user_{id}``, ``community_{id}``) to the live endpoints
registered in them.  This is the only shared mutable state of the chat
core, and it is touched from the event loop *and* from worker threads.

Locking:
    Rooms are spread over ``shards`` buckets, each with its own
    :class:`threading.Lock`, so joins in unrelated rooms never contend on a
    single directory-wide lock.  Each :class:`Endpoint` additionally guards
    its own room set.  Lock order is always endpoint → shard.

Lifecycle:
    Registrations live in memory for the life of the process.  A
    disconnect removes the endpoint from every room immediately; there is
    no grace period and no buffering for reconnects.
"""

from __future__ import annotations

import logging
import threading
import uuid
import zlib
from collections.abc import Awaitable, Callable
from typing import Any

from gotripping.chat.conversation import parse_room_key
from gotripping.constants import DEFAULT_ROOM_SHARDS, EVENT_STYLE_GENERIC
from gotripping.errors import ValidationError

logger = logging.getLogger(__name__)

# (principal_id, community_id) -> is the principal a member right now?
MembershipCheck = Callable[[int, int], Awaitable[bool]]


class Endpoint:
    """One live connection able to receive pushed events (a device/session).

    Subclasses implement :meth:`send`.  Several endpoints may belong to the
    same principal; each one is registered and delivered to separately.
    """

    def __init__(
        self,
        principal_id: int,
        *,
        event_style: str = EVENT_STYLE_GENERIC,
        endpoint_id: str | None = None,
    ) -> None:
        self.id = endpoint_id or uuid.uuid4().hex
        self.principal_id = principal_id
        self.event_style = event_style
        self.closed = False
        self._rooms: set[str] = set()
        self._lock = threading.Lock()

    async def send(self, event: str, data: Any) -> None:
        """Push one event.  Raise :class:`TransientDeliveryError` on failure."""
        raise NotImplementedError

    async def close(self) -> None:
        """Tear down the transport after a failed push.  Nothing to do by default."""

    @property
    def rooms(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._rooms)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} principal={self.principal_id}>"


class _Shard:
    __slots__ = ("lock", "rooms")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.rooms: dict[str, set[Endpoint]] = {}


class RoomDirectory:
    """Thread-safe registry of ``room key → endpoints``."""

    def __init__(self, shards: int = DEFAULT_ROOM_SHARDS) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards: tuple[_Shard, ...] = tuple(_Shard() for _ in range(shards))

    def _shard(self, room_key: str) -> _Shard:
        return self._shards[zlib.crc32(room_key.encode("utf-8")) % len(self._shards)]

    # -- join / leave --------------------------------------------------------
    async def join(
        self,
        endpoint: Endpoint,
        room_key: str,
        authorize: MembershipCheck | None = None,
    ) -> bool:
        """Register *endpoint* in *room_key* if its principal may be there.

        ``user_{id}`` is allowed only for the endpoint's own principal.
        ``community_{id}`` asks *authorize* for a live membership answer.
        Refusals return ``False``; the caller reports them to the client.
        """
        try:
            key = parse_room_key(room_key)
        except ValidationError:
            logger.info("Endpoint %s asked for invalid room %r", endpoint.id, room_key)
            return False

        if key.kind == "user":
            if key.target_id != endpoint.principal_id:
                logger.warning(
                    "User %d refused personal room %s", endpoint.principal_id, key
                )
                return False
        else:
            allowed = authorize is not None and await authorize(
                endpoint.principal_id, key.target_id
            )
            if not allowed:
                logger.info(
                    "User %d refused room %s (not a member)", endpoint.principal_id, key
                )
                return False

        return self.register(endpoint, str(key))

    def register(self, endpoint: Endpoint, room_key: str) -> bool:
        """Unchecked registration.  Returns ``False`` if the endpoint is closed."""
        with endpoint._lock:
            if endpoint.closed:
                return False
            shard = self._shard(room_key)
            with shard.lock:
                shard.rooms.setdefault(room_key, set()).add(endpoint)
            endpoint._rooms.add(room_key)
        return True

    def leave(self, endpoint: Endpoint, room_key: str) -> bool:
        """Remove *endpoint* from *room_key*.  Never fails; returns whether it
        was registered there.

        The key is canonicalized the same way :meth:`join` stores it, so
        ``community_07`` leaves ``community_7``.  Invalid keys are a no-op.
        """
        try:
            room_key = str(parse_room_key(room_key))
        except ValidationError:
            return False
        with endpoint._lock:
            was_member = room_key in endpoint._rooms
            endpoint._rooms.discard(room_key)
            self._remove(endpoint, room_key)
        return was_member

    def disconnect(self, endpoint: Endpoint) -> list[str]:
        """Drop *endpoint* from every room and refuse future joins.  Idempotent."""
        with endpoint._lock:
            endpoint.closed = True
            rooms = sorted(endpoint._rooms)
            endpoint._rooms.clear()
        for room_key in rooms:
            self._remove(endpoint, room_key)
        return rooms

    def _remove(self, endpoint: Endpoint, room_key: str) -> None:
        shard = self._shard(room_key)
        with shard.lock:
            members = shard.rooms.get(room_key)
            if members is None:
                return
            members.discard(endpoint)
            if not members:
                del shard.rooms[room_key]

    # -- lookups -------------------------------------------------------------
    def endpoints_for(self, room_key: str) -> frozenset[Endpoint]:
        """Snapshot of endpoints in *room_key* (empty when nobody is online)."""
        shard = self._shard(room_key)
        with shard.lock:
            return frozenset(shard.rooms.get(room_key, ()))

    def stats(self) -> dict[str, int]:
        rooms = 0
        endpoints: set[str] = set()
        for shard in self._shards:
            with shard.lock:
                rooms += len(shard.rooms)
                for members in shard.rooms.values():
                    endpoints.update(e.id for e in members)
        return {"rooms": rooms, "endpoints": len(endpoints)}
