"""
gotripping.api.__main__ — Entry point for ``python -m gotripping.api``
=========================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables + default communities exist.
4. Serve the FastAPI app with uvicorn on ``api_port``.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from dotenv import load_dotenv

from gotripping.config import load_config
from gotripping.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("gotripping")


def main() -> None:
    """Bootstrap and serve the chat API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, KeyError) as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(1)
    logger.info("Loaded config for '%s'", cfg.app_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Serve.  Imported late so JWT_SECRET validation sees the loaded .env.
    from gotripping.api.main import app

    uvicorn.run(app, host="0.0.0.0", port=cfg.api_port, log_config=None)


if __name__ == "__main__":
    main()
