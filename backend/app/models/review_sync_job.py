from sqlalchemy import Column, String, JSON, Enum, DateTime, Integer, Boolean, Text
from datetime import datetime
import enum
from ..core.db import Base

class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Platform(str, enum.Enum):
    TRIPADVISOR = "tripadvisor"
    GOOGLE = "google"


ACTIVE_STATUSES = (JobStatus.RUNNING, JobStatus.PROCESSING)
TERMINAL_STATUSES = (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)


class ReviewSyncJob(Base):
    __tablename__ = "review_sync_jobs"

    id = Column(String(64), primary_key=True)  # assigned by the caller
    operator_id = Column(String(64), nullable=False, index=True)
    platform = Column(Enum(Platform, values_callable=lambda e: [m.value for m in e]), nullable=False)
    source_business_id = Column(Text, nullable=False)  # TripAdvisor URL/path or Google keyword
    source_business_name = Column(String(255), nullable=True)
    full_history = Column(Boolean, nullable=False, default=True)

    status = Column(
        Enum(JobStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=JobStatus.QUEUED,
        index=True,
    )
    cursor = Column(JSON, nullable=True)  # {"task_id": ..., "created_at": ...}
    imported_count = Column(Integer, nullable=False, default=0)
    total_available = Column(Integer, nullable=False, default=0)
    progress_percentage = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True, index=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def task_id(self) -> str | None:
        return (self.cursor or {}).get("task_id")
