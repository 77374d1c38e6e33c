"""
gotripping.chat.conversation — Conversation Identity & Room Keys
=================================================================

A conversation is never stored; it is derived from a message:

* private chat   → the unordered pair ``{sender_id, receiver_id}``
* community chat → ``community_id``

The same identity picks the delivery room (``user_{id}`` /
``community_{id}``) and scopes history and read-state queries.
"""

from __future__ import annotations

from dataclasses import dataclass

from gotripping.constants import COMMUNITY_ROOM_PREFIX, USER_ROOM_PREFIX
from gotripping.errors import ValidationError


@dataclass(frozen=True, slots=True)
class PrivateConversation:
    """Unordered user pair.  Build with :meth:`between` so ``(a, b) == (b, a)``."""

    first_id: int
    second_id: int

    @classmethod
    def between(cls, user_id: int, other_user_id: int) -> PrivateConversation:
        low, high = sorted((int(user_id), int(other_user_id)))
        return cls(first_id=low, second_id=high)

    def involves(self, user_id: int) -> bool:
        return user_id in (self.first_id, self.second_id)

    def counterpart_of(self, user_id: int) -> int:
        """The other participant.  A self-conversation returns *user_id*."""
        if user_id == self.first_id:
            return self.second_id
        if user_id == self.second_id:
            return self.first_id
        raise ValueError(f"user {user_id} is not part of {self}")


@dataclass(frozen=True, slots=True)
class CommunityConversation:
    community_id: int


Conversation = PrivateConversation | CommunityConversation


# ---------------------------------------------------------------------------
# Room keys
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RoomKey:
    """Parsed room key: ``kind`` is ``"user"`` or ``"community"``."""

    kind: str
    target_id: int

    def __str__(self) -> str:
        if self.kind == "user":
            return user_room(self.target_id)
        return community_room(self.target_id)


def user_room(user_id: int) -> str:
    return f"{USER_ROOM_PREFIX}{user_id}"


def community_room(community_id: int) -> str:
    return f"{COMMUNITY_ROOM_PREFIX}{community_id}"


def parse_room_key(raw: str) -> RoomKey:
    """Parse ``user_{id}`` / ``community_{id}``.

    Raises
    ------
    ValidationError
        If *raw* has an unknown prefix or a non-integer id.
    """
    for prefix, kind in ((USER_ROOM_PREFIX, "user"), (COMMUNITY_ROOM_PREFIX, "community")):
        if isinstance(raw, str) and raw.startswith(prefix):
            suffix = raw[len(prefix):]
            if suffix.isdigit():
                return RoomKey(kind=kind, target_id=int(suffix))
            break
    raise ValidationError(f"Invalid room key: {raw!r}")

