"""Database engine + session factory (SQLite via aiosqlite).

Standard behavior:
- One engine per process (created at app startup)
- One session per request (FastAPI dependency)
- Commit on success, rollback on exception
- SQLite: WAL + busy_timeout + foreign keys on every connection
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from docinsight_api.settings import Settings

__all__ = [
    "DatabaseConfig",
    "Database",
    "db",
    "get_db_session",
    "build_sync_url",
    "build_async_url",
]


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Connection settings.

    ``url`` may be the sync form (``sqlite:///./data/db/docinsight.sqlite``)
    or the async form (``sqlite+aiosqlite:///...``); each consumer converts it
    to the driver it needs.
    """

    url: str
    echo: bool = False
    sqlite_journal_mode: str = "WAL"
    sqlite_synchronous: str = "NORMAL"
    sqlite_busy_timeout_ms: int = 30_000

    @classmethod
    def from_settings(cls, settings: Settings) -> DatabaseConfig:
        return cls(
            url=settings.database_url,
            echo=bool(settings.database_echo),
            sqlite_journal_mode=settings.database_sqlite_journal_mode.strip().upper(),
            sqlite_synchronous=settings.database_sqlite_synchronous.strip().upper(),
            sqlite_busy_timeout_ms=int(settings.database_sqlite_busy_timeout_ms),
        )


# ---- URL helpers ------------------------------------------------------------

def _require_sqlite(url: URL) -> None:
    if url.get_backend_name() != "sqlite":
        raise ValueError("Only SQLite databases are supported.")


def _is_sqlite_memory(url: URL) -> bool:
    database = (url.database or "").strip()
    if not database or database == ":memory:":
        return True
    return database.startswith("file:") and (url.query or {}).get("mode") == "memory"


def _ensure_sqlite_parent_dir(url: URL) -> None:
    database = (url.database or "").strip()
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    path = Path(database)
    if not path.is_absolute():
        path = (Path.cwd() / path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)


def build_sync_url(cfg: DatabaseConfig) -> str:
    """Return the *sync* SQLAlchemy URL string (for Alembic)."""
    url = make_url(cfg.url)
    _require_sqlite(url)
    return url.set(drivername="sqlite").render_as_string(hide_password=False)


def build_async_url(cfg: DatabaseConfig) -> str:
    """Return the *async* SQLAlchemy URL string (for runtime)."""
    url = make_url(cfg.url)
    _require_sqlite(url)
    return url.set(drivername="sqlite+aiosqlite").render_as_string(hide_password=False)


def _build_engine_kwargs(url: URL, cfg: DatabaseConfig) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "echo": cfg.echo,
        "connect_args": {
            "check_same_thread": False,
            "timeout": cfg.sqlite_busy_timeout_ms / 1000.0,
        },
    }
    if _is_sqlite_memory(url):
        kwargs["poolclass"] = StaticPool
    return kwargs


# ---- Database object --------------------------------------------------------

class Database:
    """Holds the process-wide engine + sessionmaker.

    Call `init(cfg)` once on startup.
    Call `await dispose()` on shutdown.
    """

    def __init__(self) -> None:
        self._cfg: DatabaseConfig | None = None
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call db.init(...) at startup.")
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database not initialized. Call db.init(...) at startup.")
        return self._sessionmaker

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    def init(self, cfg: DatabaseConfig) -> None:
        """Create engine + sessionmaker (idempotent for identical config)."""
        if self._cfg == cfg and self._engine is not None:
            return

        async_url = build_async_url(cfg)
        url_obj = make_url(async_url)
        _ensure_sqlite_parent_dir(url_obj)

        engine = create_async_engine(async_url, **_build_engine_kwargs(url_obj, cfg))

        journal_mode = cfg.sqlite_journal_mode
        synchronous = cfg.sqlite_synchronous
        busy_ms = int(cfg.sqlite_busy_timeout_ms)
        in_memory = _is_sqlite_memory(url_obj)

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_on_connect(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            try:
                cur.execute("PRAGMA foreign_keys=ON")
                cur.execute(f"PRAGMA busy_timeout={busy_ms}")
                if not in_memory:
                    cur.execute(f"PRAGMA journal_mode={journal_mode}")
                cur.execute(f"PRAGMA synchronous={synchronous}")
            finally:
                cur.close()

        self._cfg = cfg
        self._engine = engine
        self._sessionmaker = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )

    async def dispose(self) -> None:
        """Dispose engine (call on shutdown)."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        self._cfg = None


db = Database()


async def close_session(session: AsyncSession) -> None:
    await asyncio.shield(session.close())



async def get_db_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one AsyncSession per request."""
    session = db.sessionmaker()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await close_session(session)
