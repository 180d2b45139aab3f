from __future__ import annotations

from datetime import datetime, timedelta
import logging

from ..core.celery_app import celery_app
from ..core.config import get_settings
from .job_store import SqlJobStore

logger = logging.getLogger(__name__)


@celery_app.task(name="app.services.retention.cleanup_old_jobs")
def cleanup_old_jobs(days_old: int | None = None, store: SqlJobStore | None = None) -> int:
    """
    Periodic task to enforce the job retention policy.

    Deletes succeeded / failed / cancelled jobs completed more than
    JOB_RETENTION_DAYS ago. Imported reviews are kept; they do not depend on
    the job row.
    """
    days = days_old if days_old is not None else get_settings().JOB_RETENTION_DAYS
    store = store or SqlJobStore()
    cutoff = datetime.utcnow() - timedelta(days=days)
    try:
        deleted = store.delete_finished_jobs(cutoff)
    except Exception:
        logger.exception(
            "Error during cleanup_old_jobs",
            extra={"step": "retention"},
        )
        raise

    logger.info(
        "Cleaned up %s old jobs",
        deleted,
        extra={"step": "retention"},
    )
    return deleted
