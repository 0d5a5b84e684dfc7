"""Ingestion lifecycle controller coordinating job rows, documents and the worker."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docinsight_api.common.logging import log_context
from docinsight_api.common.pagination import Page
from docinsight_api.common.time import utc_now
from docinsight_api.core.auth import AuthenticatedPrincipal
from docinsight_api.models import (
    Document,
    DocumentStatus,
    IngestionJob,
    IngestionJobStatus,
    UserRole,
)
from docinsight_api.settings import Settings

from .exceptions import (
    AccessDeniedError,
    AlreadyProcessingError,
    DocumentNotFoundError,
    InvalidJobStatusError,
    JobNotFoundError,
    RetryLimitExceededError,
    WorkerDispatchError,
)
from .locks import DocumentLocks
from .repository import IngestionJobsRepository
from .schemas import (
    AdminStats,
    BulkTriggerError,
    BulkTriggerResult,
    BulkTriggerSummary,
    IngestionJobOut,
    OverviewStats,
)
from .workers import DispatchRequest, IngestionWorker

logger = logging.getLogger(__name__)

__all__ = ["ALLOWED_TRANSITIONS", "IngestionService"]

# Status updates reported by a worker (webhook or simulation) or by an admin cancel.
# Retry is the only way out of a terminal status and does not go through this table.
ALLOWED_TRANSITIONS: dict[IngestionJobStatus, frozenset[IngestionJobStatus]] = {
    IngestionJobStatus.QUEUED: frozenset(
        {
            IngestionJobStatus.QUEUED,
            IngestionJobStatus.PROCESSING,
            IngestionJobStatus.COMPLETED,
            IngestionJobStatus.FAILED,
            IngestionJobStatus.CANCELLED,
        }
    ),
    IngestionJobStatus.PROCESSING: frozenset(
        {
            IngestionJobStatus.PROCESSING,
            IngestionJobStatus.COMPLETED,
            IngestionJobStatus.FAILED,
            IngestionJobStatus.CANCELLED,
        }
    ),
    IngestionJobStatus.COMPLETED: frozenset(),
    IngestionJobStatus.FAILED: frozenset(),
    IngestionJobStatus.CANCELLED: frozenset(),
}

CANCELLED_PROGRESS = {"step": "cancelled", "percentage": 0}
CANCELLED_MESSAGE = "Job cancelled by admin"
OVERVIEW_RECENT_JOBS = 5
ADMIN_RECENT_JOBS = 10


def _document_status_for(status: IngestionJobStatus) -> DocumentStatus:
    if status == IngestionJobStatus.COMPLETED:
        return DocumentStatus.COMPLETED
    if status == IngestionJobStatus.FAILED:
        return DocumentStatus.FAILED
    return DocumentStatus.PROCESSING


class IngestionService:
    """Drive ingestion jobs through their lifecycle.

    Responsibilities:
    - create jobs while keeping at most one active job per document
    - dispatch jobs to the configured worker and record dispatch failures
    - apply worker status updates and mirror them onto the document
    - retry failed jobs, cancel active ones, and report listings/statistics

    Mutating operations commit explicitly: a dispatch failure must persist
    even though the caller receives an error.
    """

    def __init__(
        self,
        *,
        session: AsyncSession,
        settings: Settings,
        worker: IngestionWorker,
        locks: DocumentLocks | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._worker = worker
        self._locks = locks or DocumentLocks()
        self._jobs = IngestionJobsRepository(session)

    # ------------------------------------------------------------------ #
    # Trigger / dispatch
    # ------------------------------------------------------------------ #

    async def trigger_ingestion(self, *, user_id: UUID, document_id: UUID) -> IngestionJobOut:
        """Create a queued job for ``document_id`` and hand it to the worker.

        Returns the job as created. Raises :class:`WorkerDispatchError` after
        recording the failure on the job when the worker cannot take it.
        """

        async with self._locks.hold(document_id):
            document = await self._jobs.get_document(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")

            if await self._jobs.get_active_for_document(document_id) is not None:
                raise AlreadyProcessingError("Document is already being processed")

            job = IngestionJob(
                document_id=document_id,
                status=IngestionJobStatus.QUEUED,
                retry_count=0,
            )
            self._session.add(job)
            document.status = DocumentStatus.PROCESSING
            await self._commit_new_active_job(document_id)

        created = IngestionJobOut.from_job(job)
        logger.info(
            "ingestion.trigger.created",
            extra=log_context(job_id=job.id, document_id=document_id, user_id=user_id),
        )

        await self._dispatch(
            job,
            document,
            retry_count=None,
            failure_prefix="Failed to dispatch ingestion job",
        )
        return created

    async def bulk_trigger(
        self,
        *,
        user_id: UUID,
        document_ids: Sequence[UUID],
    ) -> BulkTriggerResult:
        """Trigger each document in order, collecting per-document failures."""

        results: list[IngestionJobOut] = []
        errors: list[BulkTriggerError] = []
        for document_id in document_ids:
            try:
                results.append(
                    await self.trigger_ingestion(user_id=user_id, document_id=document_id)
                )
            except (DocumentNotFoundError, AlreadyProcessingError, WorkerDispatchError) as exc:
                errors.append(BulkTriggerError(document_id=document_id, error=str(exc)))

        logger.info(
            "ingestion.bulk_trigger.complete",
            extra=log_context(
                user_id=user_id,
                total=len(document_ids),
                successful=len(results),
                failed=len(errors),
            ),
        )
        return BulkTriggerResult(
            results=results,
            errors=errors,
            summary=BulkTriggerSummary(
                total=len(document_ids),
                successful=len(results),
                failed=len(errors),
            ),
        )

    async def _commit_new_active_job(self, document_id: UUID) -> None:
        try:
            await self._session.flush()
        except IntegrityError as exc:
            # The unique active-job index caught a concurrent trigger/retry.
            await self._session.rollback()
            raise AlreadyProcessingError("Document is already being processed") from exc
        await self._session.commit()

    async def _dispatch(
        self,
        job: IngestionJob,
        document: Document,
        *,
        retry_count: int | None,
        failure_prefix: str,
    ) -> None:
        request = DispatchRequest(
            document_id=document.id,
            job_id=job.id,
            file_path=document.file_path,
            file_type=document.file_type,
            retry_count=retry_count,
        )
        try:
            await self._worker.dispatch(request)
        except WorkerDispatchError as exc:
            message = f"{failure_prefix}: {exc}"
            await self._session.refresh(job)
            await self._session.refresh(document)
            job.status = IngestionJobStatus.FAILED
            job.error_message = message
            job.completed_at = utc_now()
            document.status = DocumentStatus.FAILED
            await self._session.commit()
            logger.error(
                "ingestion.dispatch.failed",
                extra=log_context(
                    job_id=job.id,
                    document_id=document.id,
                    retry_count=job.retry_count,
                    detail=str(exc),
                ),
            )
            raise WorkerDispatchError(message) from exc

        started = await self._jobs.mark_started(job.id)
        await self._session.commit()
        await self._session.refresh(job)
        logger.info(
            "ingestion.dispatch.success",
            extra=log_context(
                job_id=job.id,
                document_id=document.id,
                retry_count=job.retry_count,
                marked_started=started,
            ),
        )

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_ingestion_status(
        self,
        *,
        job_id: UUID,
        principal: AuthenticatedPrincipal,
    ) -> IngestionJobOut:
        job = await self._require_job(job_id)
        document = await self._jobs.get_document(job.document_id)
        if not principal.can_view_all_documents and (
            document is None or document.uploaded_by != principal.user_id
        ):
            raise AccessDeniedError("Access denied")
        return IngestionJobOut.from_job(job)

    async def list_user_jobs(
        self,
        *,
        principal: AuthenticatedPrincipal,
        page: int,
        limit: int,
    ) -> tuple[Page[IngestionJob], list[IngestionJobOut]]:
        """Viewers see jobs for their own documents; editors and admins see all."""

        result = await self._jobs.list_jobs(
            page=page,
            limit=limit,
            owner_id=self._owner_scope(principal),
        )
        return result, [IngestionJobOut.from_job(job) for job in result.items]

    async def list_all_jobs(
        self,
        *,
        page: int,
        limit: int,
        status: IngestionJobStatus | None = None,
    ) -> tuple[Page[IngestionJob], list[IngestionJobOut]]:
        result = await self._jobs.list_jobs(page=page, limit=limit, status=status)
        return result, [IngestionJobOut.from_job(job) for job in result.items]

    async def get_overview_stats(self, *, principal: AuthenticatedPrincipal) -> OverviewStats:
        owner_id = self._owner_scope(principal)
        by_status = await self._jobs.count_by_status(owner_id=owner_id)
        by_retry = await self._jobs.count_by_retry_count(owner_id=owner_id)
        recent = await self._jobs.recent(limit=OVERVIEW_RECENT_JOBS, owner_id=owner_id)
        return OverviewStats(
            total_jobs=sum(by_status.values()),
            by_status={status.value: count for status, count in by_status.items()},
            by_retry_count={str(retries): count for retries, count in by_retry.items()},
            recent_jobs=[IngestionJobOut.from_job(job) for job in recent],
        )

    async def get_admin_stats(self) -> AdminStats:
        by_status = await self._jobs.count_by_status()
        recent = await self._jobs.recent(limit=ADMIN_RECENT_JOBS)
        durations = await self._jobs.completed_durations()
        total = sum(by_status.values())

        average = round(sum(durations) / len(durations), 2) if durations else None
        failure_rate = (
            round(by_status[IngestionJobStatus.FAILED] / total * 100, 2) if total else 0.0
        )
        return AdminStats(
            total_jobs=total,
            by_status={status.value: count for status, count in by_status.items()},
            recent_jobs=[IngestionJobOut.from_job(job) for job in recent],
            average_processing_time_ms=average,
            failure_rate=failure_rate,
        )

    # ------------------------------------------------------------------ #
    # Retry / status updates / cancel
    # ------------------------------------------------------------------ #

    async def retry_job(
        self,
        *,
        job_id: UUID,
        principal: AuthenticatedPrincipal,
    ) -> IngestionJobOut:
        """Re-queue a failed job and dispatch it again."""

        job = await self._require_job(job_id)
        document = await self._jobs.get_document(job.document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {job.document_id} not found")
        if not principal.is_admin and document.uploaded_by != principal.user_id:
            raise AccessDeniedError("Access denied")
        if job.status != IngestionJobStatus.FAILED:
            raise InvalidJobStatusError("Only failed jobs can be retried")
        max_retries = self._settings.ingestion_max_retries
        if job.retry_count >= max_retries:
            raise RetryLimitExceededError(
                f"Job has reached the maximum of {max_retries} retries"
            )

        async with self._locks.hold(document.id):
            if await self._jobs.get_active_for_document(document.id) is not None:
                raise AlreadyProcessingError("Document is already being processed")
            await self._session.refresh(job)
            if job.status != IngestionJobStatus.FAILED:
                raise InvalidJobStatusError("Only failed jobs can be retried")

            job.status = IngestionJobStatus.QUEUED
            job.error_message = None
            job.progress = None
            job.started_at = None
            job.completed_at = None
            job.retry_count += 1
            document.status = DocumentStatus.PROCESSING
            await self._commit_new_active_job(document.id)

        logger.info(
            "ingestion.retry.queued",
            extra=log_context(
                job_id=job.id,
                document_id=document.id,
                user_id=principal.user_id,
                retry_count=job.retry_count,
            ),
        )
        await self._dispatch(
            job,
            document,
            retry_count=job.retry_count,
            failure_prefix="Retry failed",
        )
        return IngestionJobOut.from_job(job)

    async def update_job_status(
        self,
        *,
        job_id: UUID,
        status: IngestionJobStatus,
        progress: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> IngestionJobOut:
        """Apply a worker-reported status and mirror it onto the document.

        Transitions outside :data:`ALLOWED_TRANSITIONS` raise
        :class:`InvalidJobStatusError`; terminal jobs accept no updates.
        """

        job = await self._require_job(job_id)
        current = IngestionJobStatus(job.status)
        if status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidJobStatusError(
                f"Cannot change job status from {current.value} to {status.value}"
            )

        now = utc_now()
        job.status = status
        job.updated_at = now
        if progress is not None:
            job.progress = dict(progress)
        if error_message:
            job.error_message = error_message
        if status == IngestionJobStatus.PROCESSING and job.started_at is None:
            job.started_at = now
        if status in (IngestionJobStatus.COMPLETED, IngestionJobStatus.FAILED):
            job.completed_at = now

        document = await self._jobs.get_document(job.document_id)
        if document is not None:
            document.status = _document_status_for(status)
            if status == IngestionJobStatus.COMPLETED:
                document.processed_at = now

        await self._session.commit()

        if job.is_terminal:
            self._worker.cancel(job.id)

        logger.info(
            "ingestion.status.updated",
            extra=log_context(
                job_id=job.id,
                document_id=job.document_id,
                previous_status=current.value,
                status=status.value,
                percentage=(progress or {}).get("percentage"),
            ),
        )
        return IngestionJobOut.from_job(job)

    async def cancel_job(self, *, job_id: UUID, principal: AuthenticatedPrincipal) -> IngestionJobOut:
        job = await self._require_job(job_id)
        if job.is_terminal:
            raise InvalidJobStatusError(
                f"Job cannot be cancelled. Current status: {IngestionJobStatus(job.status).value}"
            )
        cancelled = await self.update_job_status(
            job_id=job_id,
            status=IngestionJobStatus.CANCELLED,
            progress=CANCELLED_PROGRESS,
            error_message=CANCELLED_MESSAGE,
        )
        logger.info(
            "ingestion.cancel.success",
            extra=log_context(job_id=job_id, user_id=principal.user_id),
        )
        return cancelled

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    async def cleanup_finished_jobs(self, *, max_age: timedelta, now: datetime | None = None) -> int:
        """Delete completed/failed jobs that finished more than ``max_age`` ago."""

        cutoff = (now or utc_now()) - max_age
        deleted = await self._jobs.delete_finished_before(cutoff)
        await self._session.commit()
        if deleted:
            logger.info(
                "ingestion.cleanup.deleted",
                extra=log_context(deleted=deleted, cutoff=cutoff.isoformat()),
            )
        return deleted

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _require_job(self, job_id: UUID) -> IngestionJob:
        job = await self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError("Ingestion job not found")
        return job

    @staticmethod
    def _owner_scope(principal: AuthenticatedPrincipal) -> UUID | None:
        return principal.user_id if principal.role == UserRole.VIEWER else None
