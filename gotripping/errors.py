"""
gotripping.errors — Chat Error Taxonomy
========================================

Every failure the chat core reports to a caller is a :class:`ChatError`.
The API layer renders them with their ``status_code`` and ``code``; the
socket adapter turns them into ``message_error`` events.

``TransientDeliveryError`` is the exception: it marks one failed push to
one live endpoint and is only ever logged.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for errors surfaced to HTTP and socket callers."""

    status_code: int = 500
    code: str = "CHAT_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


class ValidationError(ChatError):
    """Bad input shape (missing content, both/neither targets, …)."""

    status_code = 400
    code = "INVALID_REQUEST"


class AuthError(ChatError):
    """Missing, invalid, expired or revoked credential."""

    status_code = 401
    code = "INVALID_TOKEN"


class ForbiddenError(ChatError):
    """Authenticated, but not allowed to touch this conversation or message."""

    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(ChatError):
    """Message, user or community does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class TransientDeliveryError(ChatError):
    """A push to a single live endpoint failed.  Logged, never propagated."""

    status_code = 503
    code = "DELIVERY_FAILED"
