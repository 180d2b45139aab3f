"""
Exception taxonomy for the review import pipeline.

Validation errors are raised before any provider call and never touch the job.
Provider errors and poll timeouts are fatal to a job and end up in its `error`
column. `TaskPending` is the expected "not ready yet" signal of a poll.
"""
from __future__ import annotations


class ReviewImportError(Exception):
    """Base class for all pipeline errors."""


# ---------------------------------------------------------------------------
# Validation (job not created / not modified)
# ---------------------------------------------------------------------------

class JobValidationError(ReviewImportError):
    pass


class JobNotFoundError(JobValidationError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobStateError(JobValidationError):
    pass


class JobOwnershipError(JobValidationError):
    pass


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

class ProviderError(ReviewImportError):
    """The task provider rejected a request or reported a terminal failure."""


class TaskPending(ReviewImportError):
    """The external task is still queued or processing."""

    def __init__(self, task_id: str, status_message: str = "") -> None:
        super().__init__(f"Task {task_id} still processing: {status_message}".rstrip(": "))
        self.task_id = task_id
        self.status_message = status_message


class PollTimeoutError(ReviewImportError):
    """The poll bound was exceeded before the task became ready."""


# ---------------------------------------------------------------------------
# Control flow
# ---------------------------------------------------------------------------

class JobCancelled(ReviewImportError):
    """The job was cancelled, or otherwise left the active states, while in flight."""
