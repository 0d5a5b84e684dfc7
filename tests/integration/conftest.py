from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import create_engine, delete

from docinsight_api.db import DatabaseConfig, build_sync_url
from docinsight_api.models import Document, IngestionJob, User
from tests.utils import seed_identity_records


@pytest.fixture(autouse=True)
def _clean_tables(_database_url: str) -> Iterator[None]:
    """Start every integration test from empty tables."""

    engine = create_engine(build_sync_url(DatabaseConfig(url=_database_url)))
    try:
        with engine.begin() as conn:
            for model in (IngestionJob, Document, User):
                conn.execute(delete(model))
    finally:
        engine.dispose()
    yield


@pytest_asyncio.fixture()
async def seed_identity(async_client: AsyncClient) -> dict[str, Any]:
    """Users for every role, each owning a document, plus their bearer headers."""

    return await seed_identity_records()
