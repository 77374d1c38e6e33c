"""
gotripping.api.routes.community_chat — Community chat (request/response)
==========================================================================

Every route re-checks membership; nothing about it is cached between
requests.
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
from gotripping.chat.conversation import CommunityConversation
from gotripping.config import GoTrippingConfig
from gotripping.database.engine import run_db
from gotripping.errors import ForbiddenError
from gotripping.realtime.gateway import ChatGateway
from gotripping.services import membership, message_store
from gotripping.services.read_state import ReadStateTracker

router = APIRouter(prefix="/community-chat", tags=["community-chat"])


@router.get("/{community_id}/messages")
async def get_community_chat_history(
    community_id: int,
    limit: int | None = None,
    before: datetime | None = None,
    before_id: str | None = Query(default=None, alias="beforeId"),
    principal: Principal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
    cfg: GoTrippingConfig = Depends(get_config),
):
    """Community history with sender info, oldest → newest.  Members only."""
    await run_db(membership.ensure_member, engine, principal.user_id, community_id)
    messages = await run_db(
        message_store.get_history,
        engine,
        CommunityConversation(community_id),
        limit=limit if limit is not None else cfg.history_page_size,
        before=before,
        before_id=before_id,
        max_limit=cfg.history_max_page_size,
        include_sender=True,
    )
    return [message_response(m) for m in messages]


@router.post("/message", status_code=201)
async def send_community_message(
    body: SendMessageIn,
    principal: Principal = Depends(get_current_principal),
    gateway: ChatGateway = Depends(get_gateway),
):
    """Send to a community.  ``receiverId`` is ignored here."""
    message = await gateway.send(
        principal.user_id,
        community_id=body.community_id,
        content=body.content,
    )
    return message_response(message)


@router.get("/{community_id}/unread-count/{user_id}")
async def get_community_unread_count(
    community_id: int,
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
    tracker: ReadStateTracker = Depends(get_read_state),
):
    if principal.user_id != user_id:
        raise ForbiddenError("Cannot read another user's unread count")
    await run_db(membership.ensure_member, engine, user_id, community_id)
    count = await tracker.unread_count(user_id, CommunityConversation(community_id))
    return {"unreadCount": count}


@router.post("/{community_id}/mark-read")
async def mark_community_messages_as_read(
    community_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
    tracker: ReadStateTracker = Depends(get_read_state),
):
    await run_db(membership.ensure_member, engine, principal.user_id, community_id)
    updated = await tracker.mark_community_read(principal.user_id, community_id)
    return {"message": "Community messages marked as read", "updatedCount": updated}


@router.delete("/message/{message_id}")
async def delete_community_message(
    message_id: str,
    principal: Principal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    await run_db(message_store.delete_message, engine, message_id, principal.user_id)
    return {"message": "Message deleted successfully"}
