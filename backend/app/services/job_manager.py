from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

from ..models.review_sync_job import ACTIVE_STATUSES, JobStatus, ReviewSyncJob
from .errors import JobNotFoundError, JobOwnershipError, JobStateError, JobValidationError
from .job_store import SqlJobStore
from .notifications import NotificationType, Notifier

logger = logging.getLogger(__name__)

FULL_HISTORY_ESTIMATE_MINUTES = 15
RECENT_ESTIMATE_MINUTES = 5
STATS_WINDOW_DAYS = 30
CANCELLED_MESSAGE = "Cancelled by user"


def estimated_minutes(full_history: bool) -> int:
    return FULL_HISTORY_ESTIMATE_MINUTES if full_history else RECENT_ESTIMATE_MINUTES


class JobManager:
    """
    Operator-facing job operations: start, status, history, stats, retry, cancel.
    Processing itself belongs to the orchestrator.
    """

    def __init__(self, store: Any = None, notifier: Optional[Notifier] = None) -> None:
        self._store = store or SqlJobStore()
        self._notifier = notifier or Notifier()

    def _require_job(self, job_id: str) -> ReviewSyncJob:
        job = self._store.get_job(job_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def start_job(
        self,
        job_id: str,
        platform: str,
        url: str,
        full_history: bool = True,
    ) -> Dict[str, Any]:
        logger.info(
            "Starting job for %s: %s",
            platform,
            url,
            extra={"job_id": job_id, "platform": platform, "step": "start_job"},
        )
        job = self._require_job(job_id)

        if getattr(job.platform, "value", job.platform) != platform:
            raise JobValidationError(
                f"Job {job_id} was created for {getattr(job.platform, 'value', job.platform)}, not {platform}"
            )
        if job.status in (JobStatus.SUCCEEDED, JobStatus.CANCELLED):
            raise JobStateError(f"Job {job_id} is {job.status.value} and cannot be started")
        if job.status == JobStatus.FAILED:
            raise JobStateError(f"Job {job_id} failed; use retry to restart it")

        if job.status not in ACTIVE_STATUSES:
            job = self._store.update_job(
                job_id,
                status=JobStatus.RUNNING,
                started_at=datetime.utcnow(),
                progress_percentage=0,
            ) or job

        self._notifier.notify(
            job_id,
            job.operator_id,
            NotificationType.STARTED,
            f"Review import started for {job.source_business_name or 'your business'}",
        )

        # The stored flag wins; it was fixed when the job was created
        minutes = estimated_minutes(job.full_history if job.full_history is not None else full_history)
        return {
            "job_id": job_id,
            "status": JobStatus.RUNNING.value,
            "estimated_completion": (datetime.utcnow() + timedelta(minutes=minutes)).isoformat() + "Z",
            "message": "Job started successfully",
        }

    def get_job_status(self, job_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        job = self._require_job(job_id)
        now = now or datetime.utcnow()

        started_at = job.started_at or job.created_at or now
        elapsed_minutes = max(0, int((now - started_at).total_seconds() // 60))

        remaining = None
        if job.status in ACTIVE_STATUSES:
            remaining = max(0, estimated_minutes(job.full_history) - elapsed_minutes)

        reviews_per_minute = None
        if job.imported_count and elapsed_minutes > 0:
            reviews_per_minute = round(job.imported_count / elapsed_minutes)

        return {
            **job_to_dict(job),
            "elapsed_minutes": elapsed_minutes,
            "estimated_time_remaining_minutes": remaining,
            "reviews_per_minute": reviews_per_minute,
        }

    def get_job_history(self, operator_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        safe_limit = max(1, min(limit, 100))
        return [job_to_dict(j) for j in self._store.list_operator_jobs(operator_id, safe_limit)]

    def get_processing_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        cutoff = (now or datetime.utcnow()) - timedelta(days=STATS_WINDOW_DAYS)
        jobs = self._store.list_jobs_created_since(cutoff)

        total_jobs = len(jobs)
        running_jobs = sum(1 for j in jobs if j.status in ACTIVE_STATUSES)
        completed_jobs = sum(1 for j in jobs if j.status == JobStatus.SUCCEEDED)
        failed_jobs = sum(1 for j in jobs if j.status == JobStatus.FAILED)
        total_reviews = sum(j.imported_count or 0 for j in jobs)

        return {
            "total_jobs": total_jobs,
            "running_jobs": running_jobs,
            "completed_jobs": completed_jobs,
            "failed_jobs": failed_jobs,
            "total_reviews_imported": total_reviews,
            "success_rate": round(completed_jobs / total_jobs * 100) if total_jobs else 0,
            "average_reviews_per_job": round(total_reviews / total_jobs) if total_jobs else 0,
        }

    def retry_job(self, job_id: str, operator_id: str) -> Dict[str, Any]:
        """
        Restart a failed job from scratch. Clearing the cursor makes the next
        pickup submit a fresh provider task instead of reusing the old one.
        """
        job = self._require_job(job_id)
        if job.operator_id != operator_id:
            # Same answer as a missing job: do not leak other operators' ids
            raise JobNotFoundError(job_id)
        if job.status != JobStatus.FAILED:
            raise JobStateError("Only failed jobs can be retried")

        self._store.update_job(
            job_id,
            status=JobStatus.RUNNING,
            started_at=datetime.utcnow(),
            completed_at=None,
            progress_percentage=0,
            imported_count=0,
            total_available=0,
            error=None,
            cursor=None,
        )
        self._notifier.notify(job_id, operator_id, NotificationType.STARTED, "Review import restarted")
        logger.info("Job retried", extra={"job_id": job_id, "operator_id": operator_id})

        return {"success": True, "message": "Job restarted successfully"}

    def cancel_job(self, job_id: str, operator_id: str) -> Dict[str, Any]:
        """
        Mark a running job cancelled. The provider task is left alone; the
        orchestrator notices the new status at its next checkpoint.
        """
        job = self._require_job(job_id)
        if job.operator_id != operator_id:
            raise JobOwnershipError("Unauthorized to cancel this job")
        if job.status not in ACTIVE_STATUSES:
            raise JobStateError("Job cannot be cancelled in current status")

        cancelled = self._store.update_job(
            job_id,
            expected_statuses=ACTIVE_STATUSES,
            status=JobStatus.CANCELLED,
            error=CANCELLED_MESSAGE,
            completed_at=datetime.utcnow(),
        )
        if cancelled is None:
            raise JobStateError("Job cannot be cancelled in current status")
        self._notifier.notify(job_id, operator_id, NotificationType.CANCELLED, "Review import was cancelled")
        logger.info("Job cancelled", extra={"job_id": job_id, "operator_id": operator_id})

        return {"success": True, "message": "Job cancelled successfully"}


def job_to_dict(job: ReviewSyncJob) -> Dict[str, Any]:
    return {
        "id": job.id,
        "operator_id": job.operator_id,
        "platform": getattr(job.platform, "value", job.platform),
        "source_business_name": job.source_business_name,
        "status": getattr(job.status, "value", job.status),
        "imported_count": job.imported_count or 0,
        "total_available": job.total_available or 0,
        "progress_percentage": job.progress_percentage or 0,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
        "updated_at": job.updated_at,
        "error": job.error,
        "full_history": job.full_history,
    }
