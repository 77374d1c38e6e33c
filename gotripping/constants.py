"""
gotripping.constants — Shared Constants
========================================

Single source of truth for room key prefixes and socket event names.
Import from here instead of spelling event strings in routes and services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Room keys
# ---------------------------------------------------------------------------
USER_ROOM_PREFIX = "user_"
COMMUNITY_ROOM_PREFIX = "community_"

# Number of independently locked shards in the room directory
DEFAULT_ROOM_SHARDS = 16


# ---------------------------------------------------------------------------
# Socket events — client → server
# ---------------------------------------------------------------------------
EV_JOIN_ROOM = "join_room"
EV_JOIN_COMMUNITY_ROOM = "join_community_room"
EV_JOIN_COMMUNITY = "join_community"  # legacy alias
EV_LEAVE_ROOM = "leave_room"
EV_LEAVE_COMMUNITY = "leave_community"  # legacy alias
EV_SEND_MESSAGE = "send_message"
EV_PRIVATE_MESSAGE = "private_message"
EV_COMMUNITY_MESSAGE = "community_message"


# ---------------------------------------------------------------------------
# Socket events — server → client
# ---------------------------------------------------------------------------
EV_CONNECTED = "connected"
EV_RECEIVE_MESSAGE = "receive_message"
EV_RECEIVE_PRIVATE_MESSAGE = "receive_private_message"
EV_RECEIVE_COMMUNITY_MESSAGE = "receive_community_message"
EV_MESSAGE_SENT = "message_sent"
EV_MESSAGE_ERROR = "message_error"
EV_JOINED_ROOM = "joined_room"
EV_JOINED_COMMUNITY = "joined_community"
EV_LEFT_ROOM = "left_room"
EV_LEFT_COMMUNITY = "left_community"

# Broadcast naming styles a connection can pick at handshake
EVENT_STYLE_GENERIC = "generic"
EVENT_STYLE_TYPED = "typed"
EVENT_STYLES = frozenset({EVENT_STYLE_GENERIC, EVENT_STYLE_TYPED})
