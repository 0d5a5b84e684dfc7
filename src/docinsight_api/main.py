"""DocInsight FastAPI application entry point."""

from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI

from .app.lifecycles import create_application_lifespan
from .common.exceptions import register_exception_handlers
from .common.logging import setup_logging
from .common.middleware import register_middleware
from .routers import api_router
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)
API_PREFIX = "/api"


def create_app(
    settings: Settings | None = None,
    *,
    worker_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Return a configured FastAPI application.

    ``worker_transport`` replaces the network transport of the remote worker's
    HTTP client (used to stub the processing service).
    """

    settings = settings or get_settings()
    setup_logging(settings)

    lifespan = create_application_lifespan(
        settings=settings,
        worker_transport=worker_transport,
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.ingestion = None
    if settings.jwt_secret_generated:
        logger.warning(
            "DOCINSIGHT_JWT_SECRET not set; generated an ephemeral secret, tokens will not survive restarts.",
            extra={"jwt_secret_generated": True},
        )
    if settings.simulated:
        logger.info("Simulated ingestion worker enabled.", extra={"worker_mode": settings.worker_mode})

    register_middleware(app, settings)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=API_PREFIX)
    return app


__all__ = [
    "API_PREFIX",
    "create_app",
]
