"""Shared pytest fixtures for DocInsight API tests."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import pytest
import pytest_asyncio
from alembic import command
from alembic.config import Config
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from docinsight_api.db import DatabaseConfig, build_sync_url
from docinsight_api.main import create_app
from docinsight_api.settings import Settings, SimulationStepSettings, reload_settings
from tests.utils import TEST_JWT_SECRET


# Keeps the simulated worker idle for the length of a test unless a test opts in.
_IDLE_SIMULATION = {
    "simulation_min_processing_ms": 60_000,
    "simulation_max_processing_ms": 60_000,
    "simulation_failure_rate": 0.0,
}


@pytest.fixture(scope="session")
def _database_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a file-backed SQLite database URL for the test session."""

    db_path = tmp_path_factory.mktemp("docinsight-db") / "docinsight.sqlite"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture(scope="session", autouse=True)
def _configure_database(_database_url: str) -> Iterator[None]:
    """Apply Alembic migrations against the ephemeral test database."""

    os.environ["DOCINSIGHT_DATABASE_URL"] = _database_url
    os.environ["DOCINSIGHT_JWT_SECRET"] = TEST_JWT_SECRET
    os.environ["DOCINSIGHT_WORKER_MODE"] = "simulated"
    settings = reload_settings()
    assert settings.database_url == _database_url

    config = Config(str(settings.alembic_ini_path))
    config.set_main_option("sqlalchemy.url", build_sync_url(DatabaseConfig(url=_database_url)))
    config.set_main_option("script_location", str(settings.alembic_migrations_dir))
    config.attributes["configure_logger"] = False
    command.upgrade(config, "head")

    yield

    for env_var in (
        "DOCINSIGHT_DATABASE_URL",
        "DOCINSIGHT_JWT_SECRET",
        "DOCINSIGHT_WORKER_MODE",
    ):
        os.environ.pop(env_var, None)
    reload_settings()


@pytest.fixture()
def make_settings(_database_url: str) -> Callable[..., Settings]:
    """Return a factory for settings pointed at the test database."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "database_url": _database_url,
            "jwt_secret": TEST_JWT_SECRET,
            "server_cors_origins": [],
            **_IDLE_SIMULATION,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture()
def fast_simulation() -> dict[str, Any]:
    """Settings overrides that let a simulated job finish within a test."""

    return {
        "simulation_min_processing_ms": 0,
        "simulation_max_processing_ms": 10,
        "simulation_steps": [
            SimulationStepSettings(name="extracting_text", duration_ms=5, percentage=40),
            SimulationStepSettings(name="finalizing", duration_ms=5, percentage=90),
        ],
    }


@pytest.fixture()
def app(make_settings: Callable[..., Settings]) -> FastAPI:
    """Return an application running the idle simulated worker."""

    return create_app(make_settings())


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""

    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client


@pytest.fixture()
def client_factory(
    make_settings: Callable[..., Settings],
) -> Callable[..., Any]:
    """Build a client for an app created with custom settings.

    Usage::

        async with client_factory(worker_mode="remote", ...) as client:
            ...
    """

    @asynccontextmanager
    async def _client(
        *,
        worker_transport: httpx.AsyncBaseTransport | None = None,
        **overrides: Any,
    ) -> AsyncIterator[AsyncClient]:
        application = create_app(make_settings(**overrides), worker_transport=worker_transport)
        async with LifespanManager(application):
            transport = ASGITransport(app=application)
            async with AsyncClient(transport=transport, base_url="http://testserver") as client:
                yield client

    return _client
