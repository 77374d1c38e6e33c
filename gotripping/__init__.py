"""
Go Tripping — Chat Core for a Social-Travel Backend
=====================================================
Direct and community chat over HTTP and a persistent WebSocket, with a
single persistence + delivery path shared by both transports.

Package layout::

    gotripping/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Room key + socket event names
    ├── errors.py          # ChatError taxonomy (400/401/403/404 + delivery)
    ├── chat/
    │   ├── conversation.py # Conversation identity + room keys
    │   └── events.py      # ChatMessage record + wire payload builders
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (user, community, message, …)
    │   └── seed.py        # Default communities
    ├── services/
    │   ├── membership.py  # Read-only view of users / communities
    │   ├── message_store.py # Persist / query / mark-read / delete
    │   └── read_state.py  # Idempotent read-state tracker
    ├── realtime/
    │   ├── rooms.py       # Room directory (sharded, thread-safe)
    │   ├── fanout.py      # Best-effort delivery to live endpoints
    │   └── gateway.py     # THE send path used by every transport
    └── api/
        ├── __main__.py    # `python -m gotripping.api`
        ├── main.py        # FastAPI app
        ├── deps.py        # DI singletons + JWT verification
        ├── auth.py        # /auth/me, /auth/logout
        ├── schemas.py     # Inbound models + response shaping
        └── routes/        # Chat, community chat, WebSocket
"""

__version__ = "0.1.0"
