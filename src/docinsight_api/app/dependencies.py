"""Service factories used by API routers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docinsight_api.db import get_db_session

if TYPE_CHECKING:
    from docinsight_api.features.ingestion.runtime import IngestionRuntime
    from docinsight_api.features.ingestion.service import IngestionService

SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_ingestion_runtime(request: Request) -> IngestionRuntime:
    runtime = getattr(request.app.state, "ingestion", None)
    if runtime is None:
        raise RuntimeError("Ingestion runtime is not initialized; is the lifespan running?")
    return runtime


def get_ingestion_service(
    session: SessionDep,
    request: Request,
) -> IngestionService:
    return get_ingestion_runtime(request).build_service(session)


__all__ = ["SessionDep", "get_ingestion_runtime", "get_ingestion_service"]
