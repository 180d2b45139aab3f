from celery import Celery
from celery.schedules import crontab

from .config import get_settings
from .logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "review_import",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_routes={
        "app.services.orchestrator.process_pending_jobs": {"queue": "reviews"},
        "app.services.orchestrator.process_review_job": {"queue": "reviews"},
    },
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # One sweep at a time per worker; a sweep already processes jobs sequentially
    worker_concurrency=1,
    worker_prefetch_multiplier=1,
    imports=("app.services.orchestrator", "app.services.retention"),
    beat_schedule={
        "process-pending-review-jobs": {
            "task": "app.services.orchestrator.process_pending_jobs",
            "schedule": settings.IMPORT_SWEEP_INTERVAL_SECONDS,
        },
        # Daily cleanup of finished jobs based on JOB_RETENTION_DAYS
        "cleanup-old-review-jobs": {
            "task": "app.services.retention.cleanup_old_jobs",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)
