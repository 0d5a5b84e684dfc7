"""Process-wide ingestion state owned by the application lifespan."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docinsight_api.common.logging import log_context
from docinsight_api.models import IngestionJobStatus
from docinsight_api.settings import Settings

from .exceptions import InvalidJobStatusError, JobNotFoundError, SimulationConfigError
from .locks import DocumentLocks
from .service import IngestionService
from .simulation import SimulationConfig, validate_simulation_config
from .workers import IngestionWorker, RemoteWorker, SimulatedWorker, StatusReporter

logger = logging.getLogger(__name__)

__all__ = ["IngestionRuntime", "build_worker"]


def build_worker(
    settings: Settings,
    *,
    reporter: StatusReporter,
    transport: httpx.AsyncBaseTransport | None = None,
) -> IngestionWorker:
    """Return the worker selected by ``settings.worker_mode``."""

    if settings.simulated:
        config = SimulationConfig.from_settings(settings)
        errors = validate_simulation_config(config)
        if errors:
            raise SimulationConfigError(errors)
        return SimulatedWorker(config=config, reporter=reporter)

    if not settings.worker_service_url or settings.worker_api_key is None:
        raise RuntimeError(
            "Remote worker mode requires worker_service_url and worker_api_key"
        )
    return RemoteWorker(
        base_url=settings.worker_service_url,
        api_key=settings.worker_api_key.get_secret_value(),
        timeout=settings.worker_dispatch_timeout.total_seconds(),
        transport=transport,
    )


class IngestionRuntime:
    """Own the worker, the document lock map and the cleanup loop.

    The simulated worker reports progress through :meth:`report_status`, which
    opens its own session and applies the update with the same rules as the
    status webhook.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.locks = DocumentLocks()
        self._session_factory = session_factory
        self.worker: IngestionWorker = build_worker(
            settings,
            reporter=self.report_status,
            transport=transport,
        )
        self._stop = asyncio.Event()
        self._cleanup_task: asyncio.Task[None] | None = None

    def build_service(self, session: AsyncSession) -> IngestionService:
        return IngestionService(
            session=session,
            settings=self.settings,
            worker=self.worker,
            locks=self.locks,
        )

    async def start(self) -> None:
        logger.info(
            "ingestion.runtime.start",
            extra=log_context(
                worker_mode=self.settings.worker_mode,
                auto_cleanup=self._cleanup_enabled,
            ),
        )
        if self._cleanup_enabled and self._cleanup_task is None:
            self._stop.clear()
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        self._stop.set()
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None
        await self.worker.aclose()
        logger.info("ingestion.runtime.stop")

    async def report_status(
        self,
        job_id: UUID,
        status: IngestionJobStatus,
        progress: dict[str, Any] | None,
        error_message: str | None,
    ) -> bool:
        """Apply a simulated worker update; ``False`` tells the worker to stop."""

        async with self._session_factory() as session:
            service = self.build_service(session)
            try:
                await service.update_job_status(
                    job_id=job_id,
                    status=status,
                    progress=progress,
                    error_message=error_message,
                )
            except (JobNotFoundError, InvalidJobStatusError) as exc:
                await session.rollback()
                logger.info(
                    "ingestion.simulation.report.rejected",
                    extra=log_context(job_id=job_id, status=status.value, detail=str(exc)),
                )
                return False
        return True

    async def cleanup_once(self) -> int:
        config = SimulationConfig.from_settings(self.settings)
        async with self._session_factory() as session:
            service = self.build_service(session)
            return await service.cleanup_finished_jobs(max_age=config.cleanup_max_age)

    @property
    def _cleanup_enabled(self) -> bool:
        return self.settings.simulated and self.settings.simulation_auto_cleanup

    async def _cleanup_loop(self) -> None:
        interval = SimulationConfig.from_settings(self.settings).cleanup_interval.total_seconds()
        while not self._stop.is_set():
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            if self._stop.is_set():
                break
            try:
                await self.cleanup_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("ingestion.cleanup.error")
