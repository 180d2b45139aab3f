# backend/app/schemas/imports.py
from datetime import datetime

from pydantic import BaseModel, field_validator

from ..models.review_sync_job import Platform

MAX_JOB_ID_LEN = 64
MAX_URL_LEN = 2048


class ImportStartRequest(BaseModel):
    job_id: str
    platform: Platform
    url: str
    full_history: bool = True

    @field_validator("job_id", "url", mode="before")
    @classmethod
    def _strip(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("job_id")
    @classmethod
    def validate_job_id(cls, v: str) -> str:
        if not v:
            raise ValueError("job_id must not be empty")
        if len(v) > MAX_JOB_ID_LEN:
            raise ValueError(f"job_id must be at most {MAX_JOB_ID_LEN} characters")
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v:
            raise ValueError("url must not be empty")
        if len(v) > MAX_URL_LEN:
            raise ValueError("url is too long")
        return v


class ImportStartOut(BaseModel):
    success: bool = True
    job_id: str
    message: str
    estimated_completion: str


class OperatorRequest(BaseModel):
    operator_id: str

    @field_validator("operator_id")
    @classmethod
    def validate_operator_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("operator_id must not be empty")
        return v


class JobStatusOut(BaseModel):
    id: str
    operator_id: str
    platform: str
    source_business_name: str | None = None
    status: str
    imported_count: int
    total_available: int
    progress_percentage: int
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    error: str | None = None
    full_history: bool
    elapsed_minutes: int | None = None
    estimated_time_remaining_minutes: int | None = None
    reviews_per_minute: int | None = None


class ProcessingStatsOut(BaseModel):
    total_jobs: int
    running_jobs: int
    completed_jobs: int
    failed_jobs: int
    total_reviews_imported: int
    success_rate: int
    average_reviews_per_job: int
