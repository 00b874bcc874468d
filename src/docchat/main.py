"""
Document Chat Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Explicit resource lifecycle (one ServiceContainer per app, built in the lifespan)
- Centralized router registration
- Structured error payloads for every known failure
- Test-friendly via create_app()
"""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from .config import settings
from .core.container import ServiceContainer
from .core.errors import (
    DocChatError,
    docchat_exception_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from .core.logging import configure_logging

from .api import (
    chat_routes,
    health_routes,
    history_routes,
    stats_routes,
    upload_routes,
)


logger = logging.getLogger("docchat.app")


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Build the service container on startup and release it on shutdown.
    """
    configure_logging(settings.log_level)
    logger.info("Starting docchat-server")

    container = ServiceContainer(settings)
    await container.init()
    app.state.container = container

    try:
        yield
    finally:
        logger.info("Shutting down docchat-server")
        await container.close()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="docchat-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(DocChatError, docchat_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(upload_routes.router)
    app.include_router(chat_routes.router)
    app.include_router(history_routes.router)
    app.include_router(stats_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
