"""FastAPI application factory.

Lifespan
--------
On startup the app builds a single :class:`~textrag.session.ChatSession`
(shared across all requests via ``request.app.state.session``) and warms the
generation backend up.  On shutdown it cancels in-flight work and releases
the session's in-memory store.

Routers
-------
    /session   load text, chat (SSE streaming), status, reset
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from textrag.api.routers import session as session_router
from textrag.session import ChatSession

logger = logging.getLogger(__name__)


def create_app(session_factory: Optional[Callable[[], ChatSession]] = None) -> FastAPI:
    """Return a fully-configured FastAPI application instance.

    Args:
        session_factory: Builds the shared chat session on startup.
            Defaults to a session over a default :class:`RagPipeline`.
    """
    factory = session_factory or ChatSession

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create and warm the session on startup; close it on shutdown."""
        session = factory()
        app.state.session = session
        if not await session.start():
            logger.warning("Model not ready at startup: %s", session.rag_status)
        try:
            yield
        finally:
            await session.close()

    app = FastAPI(
        title="textrag API",
        description=(
            "Chat with a single text document: load text, which is chunked "
            "and embedded into an in-memory index, then ask questions and "
            "receive the answer as a Server-Sent Events token stream."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(session_router.router, prefix="/session", tags=["session"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn textrag.api.app:app --reload
app = create_app()
