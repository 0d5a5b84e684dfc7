"""Persistence helpers for ingestion jobs."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docinsight_api.common.pagination import Page, paginate_sql
from docinsight_api.common.time import utc_now
from docinsight_api.models import (
    ACTIVE_JOB_STATUSES,
    Document,
    IngestionJob,
    IngestionJobStatus,
)

__all__ = ["IngestionJobsRepository"]

_NEWEST_FIRST = (IngestionJob.created_at.desc(), IngestionJob.id.desc())


class IngestionJobsRepository:
    """Encapsulate read/write operations for ingestion jobs."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, job_id: UUID) -> IngestionJob | None:
        return await self._session.get(IngestionJob, job_id)

    async def get_document(self, document_id: UUID) -> Document | None:
        return await self._session.get(Document, document_id)

    async def get_active_for_document(self, document_id: UUID) -> IngestionJob | None:
        stmt = (
            select(IngestionJob)
            .where(
                IngestionJob.document_id == document_id,
                IngestionJob.status.in_(tuple(ACTIVE_JOB_STATUSES)),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    def _scoped(
        self,
        *,
        owner_id: UUID | None = None,
        status: IngestionJobStatus | None = None,
    ) -> Select:
        stmt: Select = select(IngestionJob)
        if owner_id is not None:
            stmt = stmt.join(Document, Document.id == IngestionJob.document_id).where(
                Document.uploaded_by == owner_id
            )
        if status is not None:
            stmt = stmt.where(IngestionJob.status == status)
        return stmt

    async def list_jobs(
        self,
        *,
        page: int,
        limit: int,
        owner_id: UUID | None = None,
        status: IngestionJobStatus | None = None,
    ) -> Page[IngestionJob]:
        """Return one page of jobs, newest first; ``owner_id`` limits to that uploader's documents."""

        return await paginate_sql(
            self._session,
            self._scoped(owner_id=owner_id, status=status),
            page=page,
            limit=limit,
            order_by=_NEWEST_FIRST,
        )

    async def recent(self, *, limit: int, owner_id: UUID | None = None) -> list[IngestionJob]:
        stmt = self._scoped(owner_id=owner_id).order_by(*_NEWEST_FIRST).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self, *, owner_id: UUID | None = None) -> dict[IngestionJobStatus, int]:
        scoped = self._scoped(owner_id=owner_id).subquery()
        stmt = select(scoped.c.status, func.count()).group_by(scoped.c.status)
        result = await self._session.execute(stmt)
        counts = {status: 0 for status in IngestionJobStatus}
        for status, count in result.all():
            counts[IngestionJobStatus(status)] = int(count)
        return counts

    async def count_by_retry_count(self, *, owner_id: UUID | None = None) -> dict[int, int]:
        scoped = self._scoped(owner_id=owner_id).subquery()
        stmt = (
            select(scoped.c.retry_count, func.count())
            .group_by(scoped.c.retry_count)
            .order_by(scoped.c.retry_count)
        )
        result = await self._session.execute(stmt)
        return {int(retry_count): int(count) for retry_count, count in result.all()}

    async def completed_durations(self) -> list[float]:
        """Return processing times in milliseconds for completed jobs with both timestamps."""

        stmt = select(IngestionJob.started_at, IngestionJob.completed_at).where(
            IngestionJob.status == IngestionJobStatus.COMPLETED,
            IngestionJob.started_at.is_not(None),
            IngestionJob.completed_at.is_not(None),
        )
        result = await self._session.execute(stmt)
        return [
            (completed_at - started_at).total_seconds() * 1000.0
            for started_at, completed_at in result.all()
        ]

    async def mark_started(self, job_id: UUID) -> bool:
        """Move a still-``queued`` job to ``processing``; ``False`` if it already moved on."""

        now = utc_now()
        stmt = (
            update(IngestionJob)
            .where(
                IngestionJob.id == job_id,
                IngestionJob.status == IngestionJobStatus.QUEUED,
            )
            .values(status=IngestionJobStatus.PROCESSING, started_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return bool(result.rowcount)

    async def delete_finished_before(self, cutoff: datetime) -> int:
        """Delete completed/failed jobs whose ``completed_at`` is older than ``cutoff``."""

        stmt = (
            delete(IngestionJob)
            .where(
                IngestionJob.status.in_(
                    (IngestionJobStatus.COMPLETED, IngestionJobStatus.FAILED)
                ),
                IngestionJob.completed_at.is_not(None),
                IngestionJob.completed_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return int(result.rowcount or 0)

