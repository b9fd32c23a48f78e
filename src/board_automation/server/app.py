"""FastAPI app factory.

Endpoints are intentionally thin wrappers over the automation engine.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from board_automation import __version__
from board_automation.engine.service import AutomationService
from board_automation.server.config import ServerSettings
from board_automation.server.router import router

logger = logging.getLogger(__name__)


def create_app(
    settings: ServerSettings | None = None,
    *,
    service: AutomationService | None = None,
) -> FastAPI:
    """Build the app.

    ``service`` lets callers (tests, embedding applications) supply an engine
    wired to their own board repository; by default one is built from settings.
    """

    settings = settings or ServerSettings()
    service = service or AutomationService(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        service.close()
        logger.info("Automation engine stopped")

    app = FastAPI(
        title="Board Automation",
        version=__version__,
        description="REST API over the board-automation workflow engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # Expose settings and the engine for request handlers.
    app.state.settings = settings
    app.state.service = service

    # Minimal dev-friendly CORS so a Vite dev server can call the API.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")
    return app
