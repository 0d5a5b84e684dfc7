"""Ingestion jobs: one row per processing attempt series for a document."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, Text, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from docinsight_api.db import Base, TimestampMixin, UUIDPrimaryKeyMixin, UUIDType
from docinsight_api.db.enums import enum_values
from docinsight_api.db.types import UTCDateTime


class IngestionJobStatus(str, Enum):
    """Lifecycle states for ingestion jobs."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_JOB_STATUSES: frozenset[IngestionJobStatus] = frozenset(
    {IngestionJobStatus.QUEUED, IngestionJobStatus.PROCESSING}
)
TERMINAL_JOB_STATUSES: frozenset[IngestionJobStatus] = frozenset(
    {IngestionJobStatus.COMPLETED, IngestionJobStatus.FAILED, IngestionJobStatus.CANCELLED}
)

_ACTIVE_WHERE = text("status IN ('queued', 'processing')")


class IngestionJob(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Persistent record of a document ingestion job."""

    __tablename__ = "ingestion_jobs"

    document_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[IngestionJobStatus] = mapped_column(
        SAEnum(
            IngestionJobStatus,
            name="ingestion_job_status",
            native_enum=False,
            length=20,
            values_callable=enum_values,
        ),
        nullable=False,
        default=IngestionJobStatus.QUEUED,
        server_default=IngestionJobStatus.QUEUED.value,
    )
    progress: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    error_message: Mapped[str | None] = mapped_column(Text)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (
        Index("ingestion_jobs_status_idx", "status"),
        Index("ingestion_jobs_document_id_idx", "document_id"),
        Index("ingestion_jobs_created_at_idx", "created_at"),
        Index("ingestion_jobs_status_created_at_idx", "status", "created_at"),
        Index(
            "ingestion_jobs_active_document_key",
            "document_id",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


__all__ = [
    "ACTIVE_JOB_STATUSES",
    "TERMINAL_JOB_STATUSES",
    "IngestionJob",
    "IngestionJobStatus",
]
