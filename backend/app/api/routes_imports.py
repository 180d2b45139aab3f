import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader

from ..schemas.imports import (
    ImportStartRequest,
    ImportStartOut,
    JobStatusOut,
    OperatorRequest,
    ProcessingStatsOut,
)
from ..services.errors import (
    JobNotFoundError,
    JobOwnershipError,
    JobStateError,
    JobValidationError,
)
from ..services.job_manager import JobManager
from ..core.celery_app import celery_app
from ..core.config import get_settings

router = APIRouter(tags=["imports"])

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
logger = logging.getLogger(__name__)


def verify_api_key(api_key: str | None = Security(api_key_header)) -> None:
    """
    X-API-Key check for the operator dashboard and internal callers.
    Dev deployments without API_AUTH_KEY run open; anywhere else a missing key is a misconfiguration.
    """
    settings = get_settings()
    expected = settings.API_AUTH_KEY

    if not expected:
        if settings.ENV == "dev":
            return
        raise HTTPException(status_code=401, detail="API key not configured")

    if not api_key or not secrets.compare_digest(api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_job_manager() -> JobManager:
    return JobManager()


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, JobNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, JobOwnershipError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, JobStateError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _enqueue_job(job_id: str) -> None:
    celery_app.send_task(
        "app.services.orchestrator.process_review_job",
        args=[job_id],
        queue="reviews",
    )


@router.post("/import/start", response_model=ImportStartOut, status_code=202)
def start_import(
    payload: ImportStartRequest,
    manager: JobManager = Depends(get_job_manager),
    _: None = Depends(verify_api_key),
):
    try:
        result = manager.start_job(
            job_id=payload.job_id,
            platform=payload.platform.value,
            url=payload.url,
            full_history=payload.full_history,
        )
    except JobValidationError as e:
        logger.warning("Start import rejected: %s", e, extra={"job_id": payload.job_id})
        raise _to_http(e)

    _enqueue_job(payload.job_id)

    return ImportStartOut(
        job_id=payload.job_id,
        message="Import job started successfully",
        estimated_completion=result["estimated_completion"],
    )


@router.get("/job/{job_id}/status", response_model=JobStatusOut)
def get_job_status(
    job_id: str,
    manager: JobManager = Depends(get_job_manager),
    _: None = Depends(verify_api_key),
):
    try:
        return manager.get_job_status(job_id)
    except JobValidationError as e:
        raise _to_http(e)


@router.post("/job/{job_id}/process", status_code=202)
def process_job(
    job_id: str,
    manager: JobManager = Depends(get_job_manager),
    _: None = Depends(verify_api_key),
):
    """Manual trigger: queue one job for the worker."""
    try:
        manager.get_job_status(job_id)
    except JobValidationError as e:
        raise _to_http(e)

    logger.info("Manually queueing job", extra={"job_id": job_id, "step": "manual_process"})
    _enqueue_job(job_id)
    return {"success": True, "job_id": job_id, "message": "Job queued for processing"}


@router.post("/process/pending", status_code=202)
def process_pending(_: None = Depends(verify_api_key)):
    """Queue a sweep over running/processing jobs (also scheduled by beat)."""
    async_result = celery_app.send_task(
        "app.services.orchestrator.process_pending_jobs",
        queue="reviews",
    )
    return {"success": True, "task_id": getattr(async_result, "id", None)}


@router.post("/job/{job_id}/retry")
def retry_job(
    job_id: str,
    payload: OperatorRequest,
    manager: JobManager = Depends(get_job_manager),
    _: None = Depends(verify_api_key),
):
    try:
        result = manager.retry_job(job_id, payload.operator_id)
    except JobValidationError as e:
        raise _to_http(e)

    _enqueue_job(job_id)
    return result


@router.post("/job/{job_id}/cancel")
def cancel_job(
    job_id: str,
    payload: OperatorRequest,
    manager: JobManager = Depends(get_job_manager),
    _: None = Depends(verify_api_key),
):
    try:
        return manager.cancel_job(job_id, payload.operator_id)
    except JobValidationError as e:
        raise _to_http(e)


@router.get("/jobs", response_model=list[JobStatusOut])
def list_jobs(
    operator_id: str,
    limit: int = 10,
    manager: JobManager = Depends(get_job_manager),
    _: None = Depends(verify_api_key),
):
    return manager.get_job_history(operator_id, limit)


@router.get("/stats", response_model=ProcessingStatsOut)
def get_stats(
    manager: JobManager = Depends(get_job_manager),
    _: None = Depends(verify_api_key),
):
    return manager.get_processing_stats()
