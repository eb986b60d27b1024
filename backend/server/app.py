"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Own one ConnectionContext through the app lifespan
- Register routes
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from observability import logger
from session.context import ConnectionContext

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    context: ConnectionContext | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The context is built here but started in the lifespan, so importing
    the app performs no IO.
    """
    config = config or AppConfig.load_from_env()
    logger.configure(config.log_level)
    context = context or ConnectionContext(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await context.init()
        try:
            yield
        finally:
            await context.shutdown()

    app = FastAPI(title="Device Pairing API", lifespan=lifespan)

    app.state.config = config
    app.state.connection = context

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
