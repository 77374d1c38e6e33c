"""
gotripping.api.main — FastAPI application entry point
========================================================

Run with::

    uvicorn gotripping.api.main:app --reload --port 5002

or ``python -m gotripping.api`` to create tables and use ``config.yaml``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from gotripping import __version__  # noqa: E402
from gotripping.api.auth import router as auth_router  # noqa: E402
from gotripping.api.deps import get_engine, get_room_directory  # noqa: E402
from gotripping.api.routes.chat import router as chat_router  # noqa: E402
from gotripping.api.routes.community_chat import router as community_chat_router  # noqa: E402
from gotripping.api.routes.socket import router as socket_router  # noqa: E402
from gotripping.errors import ChatError  # noqa: E402
from gotripping.realtime.rooms import RoomDirectory  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    logger.info("Go Tripping chat API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Go Tripping chat API shutting down")


app = FastAPI(
    title="Go Tripping Chat API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------
@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Invalid request",
            "code": "INVALID_REQUEST",
            "errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
                for err in exc.errors()
            ],
        },
    )


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
app.include_router(community_chat_router, prefix="/api")
app.include_router(socket_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok", "version": __version__}


@app.get("/api/health/realtime")
def realtime_health(directory: RoomDirectory = Depends(get_room_directory)):
    """Live room and endpoint counts for this process."""
    return directory.stats()
