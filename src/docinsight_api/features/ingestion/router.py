"""FastAPI router exposing ingestion job APIs."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Security, status
from pydantic import ValidationError

from docinsight_api.app.dependencies import get_ingestion_runtime, get_ingestion_service
from docinsight_api.common.logging import log_context
from docinsight_api.common.responses import ApiResponse, PaginatedResponse
from docinsight_api.core.auth import AuthenticatedPrincipal
from docinsight_api.core.http import require_admin, require_authenticated, require_editor
from docinsight_api.models import IngestionJobStatus
from docinsight_api.settings import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

from .exceptions import (
    AccessDeniedError,
    AlreadyProcessingError,
    DocumentNotFoundError,
    InvalidJobStatusError,
    JobNotFoundError,
    RetryLimitExceededError,
    WorkerDispatchError,
)
from .runtime import IngestionRuntime
from .schemas import (
    AdminStats,
    BulkTriggerRequest,
    BulkTriggerResult,
    IngestionJobOut,
    JobProgress,
    OverviewStats,
    TriggerIngestionRequest,
    WebhookStatusUpdate,
)
from .service import IngestionService

router = APIRouter(prefix="/ingestion", tags=["ingestion"])
service_dependency = Depends(get_ingestion_service)
logger = logging.getLogger(__name__)

JobIdPath = Annotated[UUID, Path(description="Ingestion job identifier")]
PageQuery = Annotated[int, Query(ge=1, description="1-based page number")]
LimitQuery = Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE, description="Page size")]
EditorPrincipal = Annotated[AuthenticatedPrincipal, Security(require_editor)]
AdminPrincipal = Annotated[AuthenticatedPrincipal, Security(require_admin)]
AnyPrincipal = Annotated[AuthenticatedPrincipal, Security(require_authenticated)]


@router.post(
    "/trigger",
    response_model=ApiResponse[IngestionJobOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def trigger_ingestion_endpoint(
    payload: TriggerIngestionRequest,
    principal: EditorPrincipal,
    service: IngestionService = service_dependency,
) -> ApiResponse[IngestionJobOut]:
    """Create an ingestion job for a document and dispatch it to the worker."""

    try:
        job = await service.trigger_ingestion(
            user_id=principal.user_id,
            document_id=payload.document_id,
        )
    except DocumentNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AlreadyProcessingError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except WorkerDispatchError as exc:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    return ApiResponse(data=job, message="Ingestion triggered successfully")


@router.get(
    "/status/{job_id}",
    response_model=ApiResponse[IngestionJobOut],
    response_model_exclude_none=True,
)
async def get_ingestion_status_endpoint(
    job_id: JobIdPath,
    principal: AnyPrincipal,
    service: IngestionService = service_dependency,
) -> ApiResponse[IngestionJobOut]:
    try:
        job = await service.get_ingestion_status(job_id=job_id, principal=principal)
    except JobNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AccessDeniedError as exc:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return ApiResponse(data=job)


@router.get(
    "/jobs",
    response_model=PaginatedResponse[IngestionJobOut],
    response_model_exclude_none=True,
)
async def list_user_jobs_endpoint(
    principal: AnyPrincipal,
    page: PageQuery = 1,
    limit: LimitQuery = DEFAULT_PAGE_SIZE,
    service: IngestionService = service_dependency,
) -> PaginatedResponse[IngestionJobOut]:
    """List jobs visible to the caller, newest first."""

    result, items = await service.list_user_jobs(principal=principal, page=page, limit=limit)
    return PaginatedResponse.from_page(result, items)


@router.get(
    "/jobs/all",
    response_model=PaginatedResponse[IngestionJobOut],
    response_model_exclude_none=True,
)
async def list_all_jobs_endpoint(
    _admin: AdminPrincipal,
    page: PageQuery = 1,
    limit: LimitQuery = DEFAULT_PAGE_SIZE,
    job_status: Annotated[IngestionJobStatus | None, Query(alias="status")] = None,
    service: IngestionService = service_dependency,
) -> PaginatedResponse[IngestionJobOut]:
    """List every job (admin), optionally filtered by status."""

    result, items = await service.list_all_jobs(page=page, limit=limit, status=job_status)
    return PaginatedResponse.from_page(result, items)


@router.post(
    "/jobs/{job_id}/retry",
    response_model=ApiResponse[IngestionJobOut],
    response_model_exclude_none=True,
)
async def retry_job_endpoint(
    job_id: JobIdPath,
    principal: AnyPrincipal,
    service: IngestionService = service_dependency,
) -> ApiResponse[IngestionJobOut]:
    try:
        job = await service.retry_job(job_id=job_id, principal=principal)
    except (JobNotFoundError, DocumentNotFoundError) as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AccessDeniedError as exc:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except (InvalidJobStatusError, RetryLimitExceededError) as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AlreadyProcessingError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except WorkerDispatchError as exc:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return ApiResponse(data=job, message="Job retry initiated successfully")


@router.delete(
    "/jobs/{job_id}",
    response_model=ApiResponse[IngestionJobOut],
    response_model_exclude_none=True,
)
async def cancel_job_endpoint(
    job_id: JobIdPath,
    principal: AdminPrincipal,
    service: IngestionService = service_dependency,
) -> ApiResponse[IngestionJobOut]:
    try:
        job = await service.cancel_job(job_id=job_id, principal=principal)
    except JobNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidJobStatusError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ApiResponse(data=job, message="Job cancelled successfully")


@router.post(
    "/webhook/status-update",
    response_model=ApiResponse[None],
    response_model_exclude_none=True,
)
async def webhook_status_update_endpoint(
    payload: WebhookStatusUpdate,
    runtime: Annotated[IngestionRuntime, Depends(get_ingestion_runtime)],
    service: IngestionService = service_dependency,
) -> ApiResponse[None]:
    """Receive a status report from the processing worker.

    In remote mode the API key is checked before the body is validated.
    """

    settings = runtime.settings
    if not settings.simulated:
        expected = settings.worker_api_key.get_secret_value() if settings.worker_api_key else ""
        if not payload.api_key or not secrets.compare_digest(payload.api_key, expected):
            logger.warning(
                "ingestion.webhook.unauthorized",
                extra=log_context(job_id=payload.job_id),
            )
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

    if not payload.job_id or not payload.status:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail="job_id and status are required",
        )
    try:
        job_id = UUID(payload.job_id)
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Invalid job_id") from exc
    try:
        job_status = IngestionJobStatus(payload.status)
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Invalid status") from exc
    progress = None
    if payload.progress is not None:
        try:
            progress = JobProgress.model_validate(payload.progress).model_dump()
        except ValidationError as exc:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Invalid progress") from exc

    try:
        await service.update_job_status(
            job_id=job_id,
            status=job_status,
            progress=progress,
            error_message=payload.error_message,
        )
    except (JobNotFoundError, InvalidJobStatusError) as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("ingestion.webhook.error", extra=log_context(job_id=job_id))
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update status",
        ) from exc

    return ApiResponse(message="Status updated successfully")


@router.get(
    "/stats/overview",
    response_model=ApiResponse[OverviewStats],
    response_model_exclude_none=True,
)
async def overview_stats_endpoint(
    principal: AnyPrincipal,
    service: IngestionService = service_dependency,
) -> ApiResponse[OverviewStats]:
    return ApiResponse(data=await service.get_overview_stats(principal=principal))


@router.get(
    "/stats/admin",
    response_model=ApiResponse[AdminStats],
    response_model_exclude_none=True,
)
async def admin_stats_endpoint(
    _admin: AdminPrincipal,
    service: IngestionService = service_dependency,
) -> ApiResponse[AdminStats]:
    return ApiResponse(data=await service.get_admin_stats())


@router.post(
    "/bulk/trigger",
    response_model=ApiResponse[BulkTriggerResult],
    response_model_exclude_none=True,
)
async def bulk_trigger_endpoint(
    payload: BulkTriggerRequest,
    principal: AdminPrincipal,
    service: IngestionService = service_dependency,
) -> ApiResponse[BulkTriggerResult]:
    """Trigger ingestion for up to 100 documents; per-document failures are reported, not raised."""

    result = await service.bulk_trigger(
        user_id=principal.user_id,
        document_ids=payload.document_ids,
    )
    summary = result.summary
    return ApiResponse(
        data=result,
        message=f"Bulk trigger completed: {summary.successful} successful, {summary.failed} failed",
    )


__all__ = ["router"]
