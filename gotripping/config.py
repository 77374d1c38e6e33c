"""
gotripping.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for infrastructure settings (API port, history
paging, message limits).  Secrets (``DATABASE_URL``, ``JWT_SECRET``) stay
in ``.env`` and never land in this file.

Usage::

    from gotripping.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.app_name)              # "Go Tripping"
    print(cfg.history_page_size)     # 50
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GoTrippingConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str = "Go Tripping"

    # Server
    api_port: int = 5002

    # Chat history paging
    history_page_size: int = 50
    history_max_page_size: int = 100

    # Message limits
    max_message_length: int = 4000


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def resolve_config_path() -> Path:
    """Config path from ``GOTRIPPING_CONFIG``, falling back to ``config.yaml``."""
    return Path(os.getenv("GOTRIPPING_CONFIG", DEFAULT_CONFIG_PATH))


def load_config(path: str | Path | None = None) -> GoTrippingConfig:
    """Read *path* and return a :class:`GoTrippingConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$GOTRIPPING_CONFIG`` or ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path) if path is not None else resolve_config_path()
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = GoTrippingConfig()
    return GoTrippingConfig(
        app_name=raw["app_name"],
        api_port=int(raw.get("api_port", defaults.api_port)),
        history_page_size=int(raw.get("history_page_size", defaults.history_page_size)),
        history_max_page_size=int(
            raw.get("history_max_page_size", defaults.history_max_page_size)
        ),
        max_message_length=int(raw.get("max_message_length", defaults.max_message_length)),
    )
