"""
gotripping.api.routes.chat — Private chat (request/response transport)
========================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from gotripping.api.deps import (
    Principal,
    get_config,
    get_current_principal,
    get_engine,
    get_gateway,
    get_read_state,
)
from gotripping.api.schemas import SendMessageIn, message_response
from gotripping.chat.conversation import PrivateConversation
from gotripping.config import GoTrippingConfig
from gotripping.database.engine import run_db
from gotripping.errors import ForbiddenError
from gotripping.realtime.gateway import ChatGateway
from gotripping.services import message_store
from gotripping.services.read_state import ReadStateTracker

router = APIRouter(prefix="/chat", tags=["chat"])


def _require_self(principal: Principal, user_id: int) -> None:
    if principal.user_id != user_id:
        raise ForbiddenError("Cannot act on another user's messages")


@router.post("/send", status_code=201)
async def send_message(
    body: SendMessageIn,
    principal: Principal = Depends(get_current_principal),
    gateway: ChatGateway = Depends(get_gateway),
):
    """Persist a message, push it to online recipients, return it."""
    message = await gateway.send(
        principal.user_id,
        receiver_id=body.receiver_id,
        community_id=body.community_id,
        content=body.content,
    )
    return message_response(message)


@router.get("/history/{user_id}/{other_user_id}")
async def get_chat_history(
    user_id: int,
    other_user_id: int,
    limit: int | None = None,
    before: datetime | None = None,
    before_id: str | None = Query(default=None, alias="beforeId"),
    mark_read: bool = Query(default=True, alias="markRead"),
    principal: Principal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
    cfg: GoTrippingConfig = Depends(get_config),
):
    """Conversation between two users, oldest → newest.

    Unless ``markRead=false``, returned messages addressed to the caller
    are marked read as part of the fetch.
    """
    conversation = PrivateConversation.between(user_id, other_user_id)
    if not conversation.involves(principal.user_id):
        raise ForbiddenError("Not a participant in this conversation")

    page = {
        "limit": limit if limit is not None else cfg.history_page_size,
        "before": before,
        "before_id": before_id,
        "max_limit": cfg.history_max_page_size,
    }
    if mark_read:
        messages, _ = await run_db(
            message_store.fetch_and_mark_read, engine, conversation, principal.user_id, **page
        )
    else:
        messages = await run_db(message_store.get_history, engine, conversation, **page)
    return [message_response(m) for m in messages]


@router.put("/read/{user_id}/{other_user_id}")
async def mark_as_read(
    user_id: int,
    other_user_id: int,
    principal: Principal = Depends(get_current_principal),
    tracker: ReadStateTracker = Depends(get_read_state),
):
    _require_self(principal, user_id)
    updated = await tracker.mark_private_read(user_id, other_user_id)
    return {"message": "Messages marked as read", "updatedCount": updated}


@router.get("/unread/{user_id}")
async def get_unread_count(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    tracker: ReadStateTracker = Depends(get_read_state),
):
    _require_self(principal, user_id)
    return {"unreadCount": await tracker.unread_count(user_id)}


@router.delete("/message/{message_id}")
async def delete_message(
    message_id: str,
    principal: Principal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    """Delete one of the caller's own messages."""
    await run_db(message_store.delete_message, engine, message_id, principal.user_id)
    return {"message": "Message deleted successfully"}
