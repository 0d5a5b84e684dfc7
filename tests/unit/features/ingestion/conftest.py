from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from docinsight_api.db import Base, Database, DatabaseConfig
from docinsight_api.models import Document, User, UserRole
from docinsight_api.settings import Settings
from tests.utils import TEST_JWT_SECRET, FakeWorker, create_document, create_user


@pytest_asyncio.fixture()
async def database() -> AsyncIterator[Database]:
    """Fresh in-memory database with the full schema."""

    database = Database()
    database.init(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield database
    await database.dispose()


@pytest_asyncio.fixture()
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    async with database.sessionmaker() as session:
        yield session


@pytest.fixture()
def worker() -> FakeWorker:
    return FakeWorker()


@pytest.fixture()
def settings() -> Settings:
    return Settings(jwt_secret=TEST_JWT_SECRET, ingestion_max_retries=2)


@pytest_asyncio.fixture()
async def users(session: AsyncSession) -> dict[str, User]:
    seeded = {
        "admin": await create_user(session, role=UserRole.ADMIN),
        "editor": await create_user(session, role=UserRole.EDITOR),
        "viewer": await create_user(session, role=UserRole.VIEWER),
        "other_viewer": await create_user(session, role=UserRole.VIEWER),
    }
    await session.commit()
    return seeded


@pytest_asyncio.fixture()
async def document(session: AsyncSession, users: dict[str, User]) -> Document:
    created = await create_document(session, owner=users["viewer"])
    await session.commit()
    return created
