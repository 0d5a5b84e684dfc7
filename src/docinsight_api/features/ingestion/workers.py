"""Worker adapters that carry out document processing for ingestion jobs.

The lifecycle controller only talks to :class:`IngestionWorker`. Which variant
backs it is chosen once at startup (``DOCINSIGHT_WORKER_MODE``):

* :class:`RemoteWorker` hands the job to the external processing service over
  HTTP; that service reports back through the status webhook.
* :class:`SimulatedWorker` plays a timed sequence of progress steps in-process
  and reports through a callback that goes through the same status update path.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

import httpx

from docinsight_api.common.logging import log_context
from docinsight_api.models import IngestionJobStatus

from .exceptions import WorkerDispatchError
from .simulation import SimulationConfig

logger = logging.getLogger(__name__)

SIMULATED_FAILURE_MESSAGE = "Simulated processing error"

StatusReporter = Callable[
    [UUID, IngestionJobStatus, dict[str, Any] | None, str | None],
    Awaitable[bool],
]
"""Apply a status update for a job; returns ``False`` when the update was rejected."""


@dataclass(frozen=True, slots=True)
class DispatchRequest:
    document_id: UUID
    job_id: UUID
    file_path: str
    file_type: str
    retry_count: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "document_id": str(self.document_id),
            "job_id": str(self.job_id),
            "file_path": self.file_path,
            "file_type": self.file_type,
        }
        if self.retry_count is not None:
            payload["retry_count"] = self.retry_count
        return payload


class IngestionWorker(Protocol):
    async def dispatch(self, request: DispatchRequest) -> None:
        """Hand ``request`` to the worker or raise :class:`WorkerDispatchError`."""

    def cancel(self, job_id: UUID) -> None:
        """Drop any pending work the worker holds for ``job_id``."""

    async def aclose(self) -> None: ...


class RemoteWorker:
    """POST jobs to the external processing service's ``/ingest`` endpoint."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    async def dispatch(self, request: DispatchRequest) -> None:
        try:
            response = await self._client.post("/ingest", json=request.to_payload())
        except httpx.HTTPError as exc:
            raise WorkerDispatchError(f"{type(exc).__name__}: {exc}") from exc

        if response.is_error:
            detail = f"{response.status_code} {response.reason_phrase}"
            if response.text:
                detail = f"{detail}: {response.text}"
            raise WorkerDispatchError(detail)

        logger.info(
            "ingestion.remote.dispatched",
            extra=log_context(
                job_id=request.job_id,
                document_id=request.document_id,
                status_code=response.status_code,
            ),
        )

    def cancel(self, job_id: UUID) -> None:
        # The remote service offers no cancellation; status is overwritten after the fact.
        return None

    async def aclose(self) -> None:
        await self._client.aclose()


class SimulatedWorker:
    """Timer-driven stand-in for the processing service.

    Each job owns at most one pending :class:`asyncio.Task`. Dispatching a job
    again (retry) cancels the previous task before scheduling the new one.
    """

    def __init__(
        self,
        *,
        config: SimulationConfig,
        reporter: StatusReporter,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._reporter = reporter
        self._rng = rng or random.Random()
        self._tasks: dict[UUID, asyncio.Task[None]] = {}

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def pending_jobs(self) -> int:
        return len(self._tasks)

    def is_pending(self, job_id: UUID) -> bool:
        return job_id in self._tasks

    async def dispatch(self, request: DispatchRequest) -> None:
        delay_ms = self._rng.uniform(self._config.min_processing_ms, self._config.max_processing_ms)
        self.cancel(request.job_id)
        # The run outlives the dispatching request; it must not log under its cid.
        task = asyncio.create_task(
            self._simulate(request.job_id, delay_ms / 1000.0),
            name=f"ingestion-simulation-{request.job_id}",
            context=contextvars.Context(),
        )
        self._tasks[request.job_id] = task
        task.add_done_callback(lambda done, job_id=request.job_id: self._forget(job_id, done))

        logger.info(
            "ingestion.simulation.scheduled",
            extra=log_context(
                job_id=request.job_id,
                document_id=request.document_id,
                delay_ms=round(delay_ms),
                retry_count=request.retry_count,
            ),
        )

    def cancel(self, job_id: UUID) -> None:
        task = self._tasks.get(job_id)
        if task is None or task is asyncio.current_task():
            return
        self._tasks.pop(job_id, None)
        task.cancel()

    async def aclose(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, job_id: UUID, task: asyncio.Task[None]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def _simulate(self, job_id: UUID, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            if not await self._reporter(job_id, IngestionJobStatus.PROCESSING, None, None):
                return

            for step in self._config.steps:
                await asyncio.sleep(step.duration_ms / 1000.0)
                progress = {"step": step.name, "percentage": step.percentage}
                if not await self._reporter(job_id, IngestionJobStatus.PROCESSING, progress, None):
                    return
                logger.debug(
                    "ingestion.simulation.step",
                    extra=log_context(job_id=job_id, step=step.name, percentage=step.percentage),
                )

            if self._rng.random() < self._config.failure_rate:
                await self._reporter(
                    job_id, IngestionJobStatus.FAILED, None, SIMULATED_FAILURE_MESSAGE
                )
                outcome = IngestionJobStatus.FAILED
            else:
                await self._reporter(
                    job_id,
                    IngestionJobStatus.COMPLETED,
                    {"step": "completed", "percentage": 100},
                    None,
                )
                outcome = IngestionJobStatus.COMPLETED
        except Exception:
            logger.exception("ingestion.simulation.error", extra=log_context(job_id=job_id))
            return

        logger.info(
            "ingestion.simulation.finished",
            extra=log_context(job_id=job_id, status=outcome.value),
        )


__all__ = [
    "DispatchRequest",
    "IngestionWorker",
    "RemoteWorker",
    "SIMULATED_FAILURE_MESSAGE",
    "SimulatedWorker",
    "StatusReporter",
]
