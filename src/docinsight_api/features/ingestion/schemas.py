"""Pydantic schemas for ingestion API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_serializer

from docinsight_api.common.schema import BaseSchema
from docinsight_api.common.time import isoformat_z
from docinsight_api.models import IngestionJob, IngestionJobStatus
from docinsight_api.settings import MAX_BULK_DOCUMENTS


class JobProgress(BaseSchema):
    step: str
    percentage: int = Field(ge=0, le=100)


class IngestionJobOut(BaseSchema):
    """Public view of a job; unset optional fields are omitted, never null."""

    id: UUID
    document_id: UUID
    status: IngestionJobStatus
    retry_count: int
    created_at: datetime
    updated_at: datetime
    error_message: str | None = None
    progress: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @field_serializer("created_at", "updated_at", "started_at", "completed_at")
    def _serialize_datetime(self, value: datetime | None) -> str | None:
        return isoformat_z(value) if value is not None else None

    @classmethod
    def from_job(cls, job: IngestionJob) -> IngestionJobOut:
        return cls(
            id=job.id,
            document_id=job.document_id,
            status=job.status,
            retry_count=job.retry_count,
            created_at=job.created_at,
            updated_at=job.updated_at,
            error_message=job.error_message,
            progress=dict(job.progress) if job.progress is not None else None,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class TriggerIngestionRequest(BaseSchema):
    document_id: UUID


class BulkTriggerRequest(BaseSchema):
    document_ids: list[UUID] = Field(min_length=1, max_length=MAX_BULK_DOCUMENTS)


class BulkTriggerError(BaseSchema):
    document_id: UUID
    error: str


class BulkTriggerSummary(BaseSchema):
    total: int
    successful: int
    failed: int


class BulkTriggerResult(BaseSchema):
    results: list[IngestionJobOut]
    errors: list[BulkTriggerError]
    summary: BulkTriggerSummary


class WebhookStatusUpdate(BaseSchema):
    """Worker callback body.

    Every field is optional here so the receiver can check the API key before
    reporting which fields are missing.
    """

    job_id: str | None = None
    status: str | None = None
    progress: dict[str, Any] | None = None
    error_message: str | None = None
    api_key: str | None = None


class OverviewStats(BaseSchema):
    total_jobs: int
    by_status: dict[str, int]
    by_retry_count: dict[str, int]
    recent_jobs: list[IngestionJobOut]


class AdminStats(BaseSchema):
    total_jobs: int
    by_status: dict[str, int]
    recent_jobs: list[IngestionJobOut]
    average_processing_time_ms: float | None = None
    failure_rate: float


__all__ = [
    "AdminStats",
    "BulkTriggerError",
    "BulkTriggerRequest",
    "BulkTriggerResult",
    "BulkTriggerSummary",
    "IngestionJobOut",
    "JobProgress",
    "OverviewStats",
    "TriggerIngestionRequest",
    "WebhookStatusUpdate",
]
