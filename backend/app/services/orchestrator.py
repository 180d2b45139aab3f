from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..core.celery_app import celery_app
from ..models.review_sync_job import ACTIVE_STATUSES, JobStatus, Platform
from .errors import JobCancelled, JobNotFoundError, JobStateError, PollTimeoutError, TaskPending
from .importer import COMPLETE_PROGRESS, SUBMITTED_PROGRESS, BatchImporter, ImportConfig, Sleep
from .job_store import SqlJobStore
from .notifications import NotificationType, Notifier
from .providers import BaseTaskProvider, ResultPages, get_task_provider

logger = logging.getLogger(__name__)

MAX_ERROR_LEN = 500

# Jobs currently driven by this process; a job is never processed twice at once
_ACTIVE_JOBS: set[str] = set()
_ACTIVE_JOBS_LOCK = threading.Lock()


def _claim(job_id: str) -> bool:
    with _ACTIVE_JOBS_LOCK:
        if job_id in _ACTIVE_JOBS:
            return False
        _ACTIVE_JOBS.add(job_id)
        return True


def _release(job_id: str) -> None:
    with _ACTIVE_JOBS_LOCK:
        _ACTIVE_JOBS.discard(job_id)


def _is_claimed(job_id: str) -> bool:
    with _ACTIVE_JOBS_LOCK:
        return job_id in _ACTIVE_JOBS


@dataclass
class JobOutcome:
    job_id: str
    success: bool
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class JobOrchestrator:
    """
    Drives review import jobs through their lifecycle:

        running -> processing (task submitted) -> succeeded | failed

    The provider task id is persisted in the job cursor right after submission,
    so a job picked up again after a crash resumes polling the same task instead
    of submitting a new one.
    """

    def __init__(
        self,
        store: Any = None,
        provider: Optional[BaseTaskProvider] = None,
        notifier: Optional[Notifier] = None,
        config: Optional[ImportConfig] = None,
        importer: Optional[BatchImporter] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store or SqlJobStore()
        self._provider = provider
        self._notifier = notifier or Notifier()
        self._config = config or ImportConfig.from_settings()
        self._sleep = sleep
        self._importer = importer or BatchImporter(
            self._store, self._notifier, self._config, sleep=sleep
        )

    @property
    def provider(self) -> BaseTaskProvider:
        # Built lazily so missing credentials fail the job, not the sweep
        if self._provider is None:
            self._provider = get_task_provider()
        return self._provider

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def process_pending_jobs(self) -> List[JobOutcome]:
        jobs = self._store.list_eligible_jobs(ACTIVE_STATUSES, self._config.max_concurrent_jobs)
        if not jobs:
            logger.info("No pending jobs found", extra={"step": "sweep"})
            return []

        logger.info("Found %s jobs to process", len(jobs), extra={"step": "sweep"})

        outcomes: List[JobOutcome] = []
        for job in jobs:
            if _is_claimed(job.id):
                logger.info("Job already in progress, skipping", extra={"job_id": job.id, "step": "sweep"})
                continue
            try:
                result = await self.process_job(job.id)
                outcomes.append(JobOutcome(job_id=job.id, success=True, result=result))
            except Exception as e:
                logger.error(
                    "Job %s failed: %s",
                    job.id,
                    e,
                    extra={"job_id": job.id, "step": "sweep"},
                )
                outcomes.append(JobOutcome(job_id=job.id, success=False, error=str(e)))
        return outcomes

    # ------------------------------------------------------------------
    # Single job
    # ------------------------------------------------------------------

    async def process_job(self, job_id: str) -> Dict[str, Any]:
        """
        Process one job to a decision. Returns a result summary; on failure the
        job is marked failed, a notification is sent and the error re-raised.
        """
        if not _claim(job_id):
            raise JobStateError(f"Job {job_id} is already being processed")
        try:
            job = self._store.get_job(job_id)
            if not job:
                raise JobNotFoundError(job_id)
            if job.status not in ACTIVE_STATUSES:
                raise JobStateError(
                    f"Job {job_id} is {job.status.value}; only running or processing jobs can be processed"
                )

            logger.info(
                "Processing job",
                extra={"job_id": job.id, "platform": job.platform.value, "step": "start"},
            )
            try:
                return await self._run(job)
            except JobCancelled:
                logger.info("Job was cancelled while in flight", extra={"job_id": job.id, "step": "cancelled"})
                return {"job_id": job.id, "status": JobStatus.CANCELLED.value}
            except Exception as e:
                self._fail(job, e)
                raise
        finally:
            _release(job_id)

    async def _run(self, job: Any) -> Dict[str, Any]:
        platform = Platform(job.platform).value

        task_id = job.task_id
        if not task_id:
            task_id = await self.provider.submit(platform, job.source_business_id, job.full_history)
            job = self._update_active(
                job.id,
                status=JobStatus.PROCESSING,
                cursor={"task_id": task_id, "created_at": datetime.utcnow().isoformat()},
                progress_percentage=max(job.progress_percentage or 0, SUBMITTED_PROGRESS),
            )
            logger.info(
                "Submitted provider task",
                extra={"job_id": job.id, "task_id": task_id, "step": "submit"},
            )
            # The first poll right after submission is always pending
            await self._sleep(self._config.submit_settle_seconds)
        else:
            logger.info(
                "Resuming provider task",
                extra={"job_id": job.id, "task_id": task_id, "step": "resume"},
            )
            if job.status != JobStatus.PROCESSING:
                job = self._update_active(job.id, status=JobStatus.PROCESSING)

        pages = await self._poll(job, task_id, platform)
        items = [item for page in pages for item in page]
        logger.info(
            "Found %s reviews to process",
            len(items),
            extra={"job_id": job.id, "task_id": task_id, "step": "results"},
        )

        self._ensure_not_cancelled(job.id)
        if not items:
            self._complete(job, 0, 0)
            return {"job_id": job.id, "status": JobStatus.SUCCEEDED.value, "reviews_processed": 0, "total_found": 0, "task_id": task_id}

        imported = await self._importer.import_all(job, items)
        self._complete(job, imported, len(items))
        return {
            "job_id": job.id,
            "status": JobStatus.SUCCEEDED.value,
            "reviews_processed": imported,
            "total_found": len(items),
            "task_id": task_id,
        }

    async def _poll(self, job: Any, task_id: str, platform: str) -> ResultPages:
        max_polls = self._config.max_polls

        def _log_pending(retry_state) -> None:
            logger.info(
                "Task still processing, waiting (attempt %s/%s)",
                retry_state.attempt_number,
                max_polls,
                extra={"job_id": job.id, "task_id": task_id, "step": "poll"},
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TaskPending),
            stop=stop_after_attempt(max_polls),
            wait=wait_fixed(self._config.poll_interval_seconds),
            sleep=self._sleep,
            before_sleep=_log_pending,
        )

        pages: ResultPages = []
        try:
            async for attempt in retrying:
                with attempt:
                    self._ensure_not_cancelled(job.id)
                    pages = await self.provider.fetch(task_id, platform)
        except RetryError as e:
            minutes = round(max_polls * self._config.poll_interval_seconds / 60)
            raise PollTimeoutError(
                f"DataForSEO task timed out after {max_polls} polls (~{minutes} minutes)"
            ) from e
        return pages

    def _ensure_not_cancelled(self, job_id: str) -> None:
        current = self._store.get_job(job_id)
        if current is not None and current.status == JobStatus.CANCELLED:
            raise JobCancelled(job_id)

    def _update_active(self, job_id: str, **fields: Any) -> Any:
        # Never writes over a job that was cancelled or finished meanwhile
        updated = self._store.update_job(job_id, expected_statuses=ACTIVE_STATUSES, **fields)
        if updated is None:
            raise JobCancelled(job_id)
        return updated

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _complete(self, job: Any, imported: int, total: int) -> None:
        self._update_active(
            job.id,
            status=JobStatus.SUCCEEDED,
            imported_count=imported,
            total_available=total,
            progress_percentage=COMPLETE_PROGRESS,
            completed_at=datetime.utcnow(),
        )
        self._notifier.notify(
            job.id,
            job.operator_id,
            NotificationType.COMPLETED,
            f"Successfully imported {imported} reviews from {total} found",
        )
        logger.info(
            "Job completed: %s/%s reviews imported",
            imported,
            total,
            extra={"job_id": job.id, "step": "completed"},
        )

    def _fail(self, job: Any, exc: BaseException) -> None:
        message = (str(exc) or type(exc).__name__)[:MAX_ERROR_LEN]
        logger.error(
            "Job failed: %s",
            message,
            exc_info=exc,
            extra={"job_id": job.id, "step": "failed"},
        )
        try:
            updated = self._store.update_job(
                job.id,
                expected_statuses=ACTIVE_STATUSES,
                status=JobStatus.FAILED,
                error=message,
                completed_at=datetime.utcnow(),
            )
        except Exception:
            logger.exception("Failed to record job failure", extra={"job_id": job.id})
        else:
            if updated is None:
                logger.info(
                    "Job already finished, failure not recorded",
                    extra={"job_id": job.id, "step": "failed"},
                )
                return
        self._notifier.notify(
            job.id,
            job.operator_id,
            NotificationType.FAILED,
            f"Import failed: {message}",
        )


# ----------------------------------------------------------------------
# Celery entry points
# ----------------------------------------------------------------------

@celery_app.task(name="app.services.orchestrator.process_pending_jobs", queue="reviews")
def process_pending_jobs() -> List[Dict[str, Any]]:
    outcomes = asyncio.run(JobOrchestrator().process_pending_jobs())
    logger.info(
        "Sweep finished: %s jobs, %s succeeded",
        len(outcomes),
        sum(1 for o in outcomes if o.success),
        extra={"step": "sweep"},
    )
    return [o.to_dict() for o in outcomes]


@celery_app.task(name="app.services.orchestrator.process_review_job", queue="reviews")
def process_review_job(job_id: str) -> Dict[str, Any]:
    try:
        result = asyncio.run(JobOrchestrator().process_job(job_id))
        return JobOutcome(job_id=job_id, success=True, result=result).to_dict()
    except Exception as e:
        # Already recorded on the job; keep the worker alive
        logger.error("Job %s failed: %s", job_id, e, extra={"job_id": job_id, "step": "task"})
        return JobOutcome(job_id=job_id, success=False, error=str(e)).to_dict()
