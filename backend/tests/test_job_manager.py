"""
Tests for job_manager.py and retention.py - operator-facing job operations
"""
from datetime import datetime, timedelta

import pytest

from app.models.review_sync_job import JobStatus, Platform
from app.services.errors import (
    JobNotFoundError,
    JobOwnershipError,
    JobStateError,
    JobValidationError,
)
from app.services.job_manager import JobManager, job_to_dict
from app.services.retention import cleanup_old_jobs


@pytest.fixture
def manager(store, notifier):
    return JobManager(store, notifier)


class TestStartJob:
    def test_queued_job_becomes_running(self, manager, store, make_job, notifications):
        job = make_job(status=JobStatus.QUEUED, started_at=None)

        result = manager.start_job(job.id, "tripadvisor", job.source_business_id, True)

        assert result["status"] == "running"
        assert result["estimated_completion"].endswith("Z")
        current = store.get_job(job.id)
        assert current.status == JobStatus.RUNNING
        assert current.started_at is not None
        sent = notifications(job.id)
        assert [n.type for n in sent] == ["started"]
        assert sent[0].message == "Review import started for Sunset Tours"

    def test_estimate_uses_stored_history_flag(self, manager, make_job):
        job = make_job(status=JobStatus.QUEUED, full_history=False)
        before = datetime.utcnow()

        result = manager.start_job(job.id, "tripadvisor", job.source_business_id, True)

        eta = datetime.fromisoformat(result["estimated_completion"].rstrip("Z"))
        assert timedelta(minutes=4) < eta - before < timedelta(minutes=6)

    def test_running_job_is_left_alone(self, manager, store, make_job):
        job = make_job(status=JobStatus.PROCESSING, progress_percentage=40)

        manager.start_job(job.id, "tripadvisor", job.source_business_id)

        current = store.get_job(job.id)
        assert current.status == JobStatus.PROCESSING
        assert current.progress_percentage == 40

    def test_platform_mismatch(self, manager, make_job):
        job = make_job(status=JobStatus.QUEUED)
        with pytest.raises(JobValidationError):
            manager.start_job(job.id, "google", "ChIJ-place")

    @pytest.mark.parametrize("status", [JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED])
    def test_finished_job_cannot_start(self, manager, make_job, status):
        job = make_job(status=status)
        with pytest.raises(JobStateError):
            manager.start_job(job.id, "tripadvisor", job.source_business_id)

    def test_unknown_job(self, manager):
        with pytest.raises(JobNotFoundError, match="Job missing not found"):
            manager.start_job("missing", "tripadvisor", "/x-Reviews-y.html")


class TestJobStatus:
    def test_running_job_metrics(self, manager, make_job):
        started = datetime(2026, 10, 1, 9, 0, 0)
        job = make_job(started_at=started, imported_count=100)

        status = manager.get_job_status(job.id, now=started + timedelta(minutes=10, seconds=30))

        assert status["id"] == job.id
        assert status["status"] == "running"
        assert status["platform"] == "tripadvisor"
        assert status["elapsed_minutes"] == 10
        assert status["estimated_time_remaining_minutes"] == 5
        assert status["reviews_per_minute"] == 10

    def test_finished_job_has_no_remaining_estimate(self, manager, make_job):
        job = make_job(status=JobStatus.SUCCEEDED)
        status = manager.get_job_status(job.id, now=datetime(2026, 10, 1, 12, 0, 0))
        assert status["estimated_time_remaining_minutes"] is None

    def test_remaining_never_negative(self, manager, make_job):
        job = make_job(full_history=False)
        status = manager.get_job_status(job.id, now=datetime(2026, 10, 2))
        assert status["estimated_time_remaining_minutes"] == 0

    def test_no_rate_before_first_minute(self, manager, make_job):
        started = datetime(2026, 10, 1, 9, 0, 0)
        job = make_job(started_at=started, imported_count=50)
        status = manager.get_job_status(job.id, now=started + timedelta(seconds=20))
        assert status["reviews_per_minute"] is None


class TestHistoryAndStats:
    def test_history_is_per_operator_newest_first(self, manager, make_job):
        first = make_job(started_at=datetime(2026, 10, 1))
        second = make_job(started_at=datetime(2026, 10, 2))
        make_job(operator_id="operator-2")

        history = manager.get_job_history("operator-1")

        assert [j["id"] for j in history] == [second.id, first.id]

    def test_history_limit_is_clamped(self, manager, make_job):
        for _ in range(3):
            make_job()
        assert len(manager.get_job_history("operator-1", limit=0)) == 1
        assert len(manager.get_job_history("operator-1", limit=500)) == 3

    def test_stats_over_last_30_days(self, manager, make_job):
        recent = datetime(2026, 10, 10)
        make_job(status=JobStatus.SUCCEEDED, imported_count=120, created_at=recent)
        make_job(status=JobStatus.SUCCEEDED, imported_count=30, created_at=recent)
        make_job(status=JobStatus.FAILED, created_at=recent)
        make_job(status=JobStatus.PROCESSING, imported_count=50, created_at=recent)
        make_job(status=JobStatus.SUCCEEDED, imported_count=999, created_at=datetime(2026, 8, 1))

        stats = manager.get_processing_stats(now=datetime(2026, 10, 19))

        assert stats == {
            "total_jobs": 4,
            "running_jobs": 1,
            "completed_jobs": 2,
            "failed_jobs": 1,
            "total_reviews_imported": 200,
            "success_rate": 50,
            "average_reviews_per_job": 50,
        }

    def test_empty_stats(self, manager):
        stats = manager.get_processing_stats(now=datetime(2026, 10, 19))
        assert stats["total_jobs"] == 0
        assert stats["success_rate"] == 0


class TestRetryJob:
    def test_failed_job_is_reset(self, manager, store, make_job, notifications):
        job = make_job(
            status=JobStatus.FAILED,
            error="DataForSEO task failed: boom",
            cursor={"task_id": "old-task"},
            imported_count=40,
            total_available=80,
            progress_percentage=55,
            completed_at=datetime(2026, 10, 1, 10, 0, 0),
        )

        result = manager.retry_job(job.id, "operator-1")

        assert result["success"] is True
        current = store.get_job(job.id)
        assert current.status == JobStatus.RUNNING
        assert current.error is None
        assert current.cursor is None
        assert current.task_id is None
        assert current.imported_count == 0
        assert current.total_available == 0
        assert current.progress_percentage == 0
        assert current.completed_at is None
        assert [n.message for n in notifications(job.id)] == ["Review import restarted"]

    @pytest.mark.parametrize("status", [JobStatus.RUNNING, JobStatus.SUCCEEDED, JobStatus.CANCELLED])
    def test_only_failed_jobs(self, manager, make_job, status):
        job = make_job(status=status)
        with pytest.raises(JobStateError, match="Only failed jobs can be retried"):
            manager.retry_job(job.id, "operator-1")

    def test_other_operator_sees_not_found(self, manager, make_job):
        job = make_job(status=JobStatus.FAILED)
        with pytest.raises(JobNotFoundError):
            manager.retry_job(job.id, "operator-2")


class TestCancelJob:
    @pytest.mark.parametrize("status", [JobStatus.RUNNING, JobStatus.PROCESSING])
    def test_active_job_is_cancelled(self, manager, store, make_job, notifications, status):
        job = make_job(status=status)

        manager.cancel_job(job.id, "operator-1")

        current = store.get_job(job.id)
        assert current.status == JobStatus.CANCELLED
        assert current.error == "Cancelled by user"
        assert current.completed_at is not None
        assert [n.type for n in notifications(job.id)] == ["cancelled"]

    def test_other_operator_is_rejected(self, manager, store, make_job):
        job = make_job()
        with pytest.raises(JobOwnershipError, match="Unauthorized"):
            manager.cancel_job(job.id, "operator-2")
        assert store.get_job(job.id).status == JobStatus.RUNNING

    @pytest.mark.parametrize("status", [JobStatus.QUEUED, JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED])
    def test_inactive_job_cannot_be_cancelled(self, manager, make_job, status):
        job = make_job(status=status)
        with pytest.raises(JobStateError, match="cannot be cancelled"):
            manager.cancel_job(job.id, "operator-1")


class TestRetention:
    def test_old_finished_jobs_are_deleted(self, store, make_job):
        now = datetime.utcnow()
        old_done = make_job(status=JobStatus.SUCCEEDED, completed_at=now - timedelta(days=40))
        old_failed = make_job(status=JobStatus.FAILED, completed_at=now - timedelta(days=31))
        recent = make_job(status=JobStatus.SUCCEEDED, completed_at=now - timedelta(days=2))
        running = make_job(status=JobStatus.RUNNING)

        deleted = cleanup_old_jobs(days_old=30, store=store)

        assert deleted == 2
        assert store.get_job(old_done.id) is None
        assert store.get_job(old_failed.id) is None
        assert store.get_job(recent.id) is not None
        assert store.get_job(running.id) is not None


def test_job_to_dict_uses_plain_values(make_job):
    job = make_job(platform=Platform.GOOGLE)
    data = job_to_dict(job)
    assert data["platform"] == "google"
    assert data["status"] == "running"
    assert data["imported_count"] == 0
