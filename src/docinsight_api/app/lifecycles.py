"""FastAPI lifespan helpers for the DocInsight application."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.routing import Lifespan
from sqlalchemy import text
from sqlalchemy.engine import make_url

from docinsight_api.db import DatabaseConfig, db
from docinsight_api.features.ingestion.runtime import IngestionRuntime
from docinsight_api.settings import Settings

logger = logging.getLogger(__name__)


async def _check_schema() -> None:
    async with db.engine.connect() as conn:
        await conn.execute(text("SELECT 1 FROM alembic_version"))


def create_application_lifespan(
    *,
    settings: Settings,
    worker_transport: httpx.AsyncBaseTransport | None = None,
) -> Lifespan[FastAPI]:
    """Return the FastAPI lifespan handler used by the app factory."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.settings = settings
        safe_url = make_url(settings.database_url).render_as_string(hide_password=True)
        logger.info("db.init.start", extra={"database_url": safe_url})
        db.init(DatabaseConfig.from_settings(settings))
        logger.info("db.init.complete", extra={"database_url": safe_url})

        try:
            # Fail fast if the schema hasn't been migrated.
            try:
                await _check_schema()
            except Exception as exc:
                logger.error(
                    "db.schema.missing",
                    extra={"database_url": safe_url},
                    exc_info=True,
                )
                raise RuntimeError(
                    "Database schema is not initialized. Run `alembic upgrade head` "
                    "before starting the API."
                ) from exc

            runtime = IngestionRuntime(
                settings=settings,
                session_factory=db.sessionmaker,
                transport=worker_transport,
            )
            app.state.ingestion = runtime
            await runtime.start()
            try:
                yield
            finally:
                await runtime.stop()
                app.state.ingestion = None
        finally:
            await db.dispose()

    return lifespan


__all__ = ["create_application_lifespan"]
