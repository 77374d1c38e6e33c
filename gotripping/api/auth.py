"""
gotripping.api.auth — Principal info + token revocation
=========================================================

Token issuance lives with the account service; this router only reports
who the caller is and revokes the caller's token on logout.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import Engine, select

from gotripping.api.deps import Principal, get_current_principal, get_engine
from gotripping.database.engine import get_session, run_db
from gotripping.database.models import TokenBlocklist

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def revoke_token(engine: Engine, jti: str | None) -> bool:
    """Add *jti* to the blocklist.  Tokens without a ``jti`` cannot be revoked."""
    if not jti:
        return False
    with get_session(engine) as session:
        exists = session.scalar(select(TokenBlocklist.id).where(TokenBlocklist.jti == jti))
        if exists is None:
            session.add(TokenBlocklist(jti=jti))
    return True


@router.get("/me")
async def me(principal: Principal = Depends(get_current_principal)):
    """Return the authenticated user's info."""
    return {
        "id": principal.user_id,
        "name": principal.name,
        "avatarUrl": principal.avatar_url,
    }


@router.post("/logout")
async def logout(
    principal: Principal = Depends(get_current_principal),
    engine=Depends(get_engine),
):
    """Revoke the current token so later requests and sockets are refused."""
    if await run_db(revoke_token, engine, principal.jti):
        logger.info("Token revoked for user %d", principal.user_id)
    return {"message": "Successfully logged out"}
