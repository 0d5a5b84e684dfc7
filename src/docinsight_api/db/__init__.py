"""DB package exports."""

from .base import NAMING_CONVENTION, Base, TimestampMixin, UUIDPrimaryKeyMixin, metadata
from .database import (
    Database,
    DatabaseConfig,
    build_async_url,
    build_sync_url,
    db,
    get_db_session,
)
from .enums import enum_values
from .types import UTCDateTime, UUIDType

__all__ = [
    "Base",
    "metadata",
    "NAMING_CONVENTION",
    "UUIDPrimaryKeyMixin",
    "TimestampMixin",
    "UUIDType",
    "UTCDateTime",
    "enum_values",
    "Database",
    "DatabaseConfig",
    "db",
    "get_db_session",
    "build_sync_url",
    "build_async_url",
]
