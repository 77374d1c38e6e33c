"""
gotripping.api.routes.socket — Realtime WebSocket transport
=============================================================

One socket = one :class:`WebSocketEndpoint`.  The handshake must carry a
valid token (``?token=`` or an ``Authorization: Bearer`` header); the
socket is closed with policy-violation before ``accept`` otherwise.

Frames are JSON objects ``{"event": ..., "data": ...}`` in both
directions; binary client frames are read as UTF-8.  Client events:

    join_room / join_community_room / join_community
    leave_room / leave_community
    send_message / private_message / community_message

Sends go through :meth:`ChatGateway.send`, exactly like ``POST
/api/chat/send``; the socket never persists or broadcasts on its own.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.types import Message
from starlette.websockets import WebSocketState

from gotripping.api.deps import (
    Principal,
    authenticate,
    bearer_token,
    get_config,
    get_engine,
    get_gateway,
    get_room_directory,
)
from gotripping.api.schemas import SendMessageIn, SocketFrame
from gotripping.chat.conversation import community_room, parse_room_key
from gotripping.chat.events import frame
from gotripping.constants import (
    EV_COMMUNITY_MESSAGE,
    EV_CONNECTED,
    EV_JOIN_COMMUNITY,
    EV_JOIN_COMMUNITY_ROOM,
    EV_JOIN_ROOM,
    EV_JOINED_COMMUNITY,
    EV_JOINED_ROOM,
    EV_LEAVE_COMMUNITY,
    EV_LEAVE_ROOM,
    EV_LEFT_COMMUNITY,
    EV_LEFT_ROOM,
    EV_MESSAGE_ERROR,
    EV_PRIVATE_MESSAGE,
    EV_SEND_MESSAGE,
    EVENT_STYLE_GENERIC,
    EVENT_STYLES,
)
from gotripping.database.engine import run_db
from gotripping.errors import (
    AuthError,
    ChatError,
    ForbiddenError,
    TransientDeliveryError,
    ValidationError,
)
from gotripping.realtime.gateway import ChatGateway
from gotripping.realtime.rooms import Endpoint

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


class WebSocketEndpoint(Endpoint):
    """Endpoint backed by a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket, principal_id: int, **kwargs: Any) -> None:
        super().__init__(principal_id, **kwargs)
        self.websocket = websocket
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, data: Any) -> None:
        # Concurrent fan-outs may target the same socket.
        async with self._send_lock:
            if self.websocket.application_state != WebSocketState.CONNECTED:
                raise TransientDeliveryError("Socket is no longer connected")
            try:
                await self.websocket.send_json(frame(event, data))
            except (RuntimeError, WebSocketDisconnect) as exc:
                raise TransientDeliveryError(f"Socket send failed: {exc}") from exc

    async def close(self) -> None:
        async with self._send_lock:
            if self.websocket.application_state != WebSocketState.CONNECTED:
                return
            try:
                await self.websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            except RuntimeError as exc:
                logger.debug("Socket close for endpoint %s failed: %s", self.id, exc)


# ---------------------------------------------------------------------------
# Per-connection event handling
# ---------------------------------------------------------------------------
def _room_from(data: Any) -> str:
    if isinstance(data, dict):
        data = data.get("room", data.get("roomId"))
    if not isinstance(data, str) or not data:
        raise ValidationError("A room key is required", code="INVALID_ROOM")
    return data


def _canonical_room(raw: str) -> str:
    """``community_07`` -> ``community_7``; invalid keys come back unchanged."""
    try:
        return str(parse_room_key(raw))
    except ValidationError:
        return raw


def _community_room_from(data: Any) -> str:
    if isinstance(data, dict):
        data = data.get("communityId", data.get("community_id"))
    if isinstance(data, str) and data.isdigit():
        data = int(data)
    if isinstance(data, bool) or not isinstance(data, int):
        raise ValidationError("A communityId is required", code="INVALID_ROOM")
    return community_room(data)


class SocketSession:
    """Dispatches the frames of one authenticated connection."""

    def __init__(self, gateway: ChatGateway, endpoint: WebSocketEndpoint) -> None:
        self.gateway = gateway
        self.endpoint = endpoint
        self._handlers = {
            EV_JOIN_ROOM: self._join_room,
            EV_JOIN_COMMUNITY_ROOM: self._join_community,
            EV_JOIN_COMMUNITY: self._join_community,
            EV_LEAVE_ROOM: self._leave_room,
            EV_LEAVE_COMMUNITY: self._leave_community,
            EV_SEND_MESSAGE: self._send_message,
            EV_PRIVATE_MESSAGE: self._private_message,
            EV_COMMUNITY_MESSAGE: self._community_message,
        }

    async def handle(self, raw: str) -> None:
        try:
            incoming = SocketFrame.model_validate(json.loads(raw))
            handler = self._handlers.get(incoming.event)
            if handler is None:
                raise ValidationError(
                    f"Unknown event '{incoming.event}'", code="UNKNOWN_EVENT"
                )
            await handler(incoming.data)
        except (json.JSONDecodeError, PydanticValidationError):
            await self.reply_malformed()
        except TransientDeliveryError:
            raise
        except ChatError as exc:
            await self._error(exc)
        except SQLAlchemyError:
            logger.exception("Persistence failure for user %d", self.endpoint.principal_id)
            await self._error(ChatError("Failed to send message", code="PERSISTENCE_ERROR"))

    async def reply_malformed(self) -> None:
        await self._error(ValidationError("Malformed frame"))

    async def _error(self, exc: ChatError) -> None:
        await self.endpoint.send(EV_MESSAGE_ERROR, exc.to_dict())

    # -- rooms ---------------------------------------------------------------
    async def _join(self, room_key: str) -> str:
        """Join *room_key*; return its canonical form or raise on refusal."""
        key = parse_room_key(room_key)
        if await self.gateway.join(self.endpoint, str(key)):
            return str(key)
        if self.endpoint.closed:
            raise ForbiddenError("Connection is closed", code="ROOM_REFUSED")
        if key.kind == "community":
            raise ForbiddenError("Not a member of the community", code="NOT_A_MEMBER")
        raise ForbiddenError("Cannot join another user's room", code="ROOM_REFUSED")

    async def _join_room(self, data: Any) -> None:
        room_key = await self._join(_room_from(data))
        await self.endpoint.send(EV_JOINED_ROOM, {"room": room_key})

    async def _join_community(self, data: Any) -> None:
        room_key = _community_room_from(data)
        await self._join(room_key)
        await self.endpoint.send(
            EV_JOINED_COMMUNITY, {"communityId": parse_room_key(room_key).target_id}
        )

    async def _leave_room(self, data: Any) -> None:
        room_key = _canonical_room(_room_from(data))
        self.gateway.leave(self.endpoint, room_key)
        await self.endpoint.send(EV_LEFT_ROOM, {"room": room_key})

    async def _leave_community(self, data: Any) -> None:
        room_key = _community_room_from(data)
        self.gateway.leave(self.endpoint, room_key)
        await self.endpoint.send(
            EV_LEFT_COMMUNITY, {"communityId": parse_room_key(room_key).target_id}
        )

    # -- sends ---------------------------------------------------------------
    def _body(self, data: Any) -> SendMessageIn:
        if not isinstance(data, dict):
            raise ValidationError("Message data must be an object")
        return SendMessageIn.model_validate(data)

    async def _send_message(self, data: Any) -> None:
        body = self._body(data)
        await self.gateway.send(
            self.endpoint.principal_id,
            receiver_id=body.receiver_id,
            community_id=body.community_id,
            content=body.content,
            origin=self.endpoint,
        )

    async def _private_message(self, data: Any) -> None:
        body = self._body(data)
        if body.receiver_id is None:
            raise ValidationError("receiverId is required")
        await self.gateway.send(
            self.endpoint.principal_id,
            receiver_id=body.receiver_id,
            content=body.content,
            origin=self.endpoint,
        )

    async def _community_message(self, data: Any) -> None:
        body = self._body(data)
        if body.community_id is None:
            raise ValidationError("communityId is required")
        await self.gateway.send(
            self.endpoint.principal_id,
            community_id=body.community_id,
            content=body.content,
            origin=self.endpoint,
        )


def _frame_text(message: Message) -> str | None:
    """Text of one received frame.  Binary frames are read as UTF-8;
    ``None`` means the frame carried nothing usable."""
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    if message.get("bytes") is not None:
        try:
            return message["bytes"].decode("utf-8")
        except UnicodeDecodeError:
            return None
    return None


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------
@router.websocket("/ws")
async def chat_socket(websocket: WebSocket) -> None:
    # Resolved by hand; app.dependency_overrides still apply.
    overrides = websocket.app.dependency_overrides
    engine = overrides.get(get_engine, get_engine)()
    cfg = overrides.get(get_config, get_config)()
    directory = overrides.get(get_room_directory, get_room_directory)()

    token = websocket.query_params.get("token") or bearer_token(
        websocket.headers.get("authorization")
    )
    try:
        principal: Principal = await run_db(authenticate, engine, token)
    except AuthError as exc:
        logger.info("Socket handshake refused: %s", exc.code)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.code)
        return

    style = websocket.query_params.get("events", EVENT_STYLE_GENERIC)
    if style not in EVENT_STYLES:
        style = EVENT_STYLE_GENERIC

    await websocket.accept()
    gateway = get_gateway(engine, cfg, directory)
    endpoint = WebSocketEndpoint(websocket, principal.user_id, event_style=style)
    session = SocketSession(gateway, endpoint)

    try:
        personal_room = gateway.connect(endpoint)
        await endpoint.send(
            EV_CONNECTED, {"userId": principal.user_id, "rooms": [personal_room]}
        )
        while True:
            raw = _frame_text(await websocket.receive())
            if raw is None:
                await session.reply_malformed()
            else:
                await session.handle(raw)
    except (WebSocketDisconnect, TransientDeliveryError):
        logger.debug("Socket closed for user %d", principal.user_id)
    finally:
        gateway.disconnect(endpoint)
