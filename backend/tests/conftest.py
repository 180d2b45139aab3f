"""
Shared pytest fixtures: an in-memory SQLite database, a job store bound to it,
a notifier, an import config with a short poll bound and a sleep that records
instead of waiting.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DATAFORSEO_USERNAME", "test-login")
os.environ.setdefault("DATAFORSEO_PASSWORD", "test-password")

from datetime import datetime
from typing import List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.db import Base
from app.models.review_sync_job import ReviewSyncJob, JobStatus, Platform
from app.models.external_review import ExternalReview  # noqa: F401
from app.models.job_notification import JobNotification
from app.services.importer import ImportConfig
from app.services.notifications import Notifier

from tests.fixtures.pipeline_doubles import RecordingSleep, RecordingStore


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def store(session_factory):
    return RecordingStore(session_factory)


@pytest.fixture
def notifier(session_factory):
    return Notifier(session_factory)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def config():
    return ImportConfig(
        batch_size=100,
        max_concurrent_jobs=5,
        poll_interval_seconds=30.0,
        max_polls=5,
        submit_settle_seconds=10.0,
        chunk_delay_seconds=0.1,
    )


@pytest.fixture
def make_job(session_factory):
    counter = {"n": 0}

    def _make_job(**overrides) -> ReviewSyncJob:
        counter["n"] += 1
        values = {
            "id": f"job-{counter['n']}",
            "operator_id": "operator-1",
            "platform": Platform.TRIPADVISOR,
            "source_business_id": "/Attraction_Review-g187147-d123-Reviews-Sunset_Tours-Paris.html",
            "source_business_name": "Sunset Tours",
            "full_history": True,
            "status": JobStatus.RUNNING,
            "cursor": None,
            "imported_count": 0,
            "total_available": 0,
            "progress_percentage": 0,
            "created_at": datetime(2026, 10, 1, 9, 0, 0),
            "started_at": datetime(2026, 10, 1, 9, 0, counter["n"]),
        }
        values.update(overrides)
        db = session_factory()
        try:
            job = ReviewSyncJob(**values)
            db.add(job)
            db.commit()
            db.refresh(job)
            db.expunge(job)
            return job
        finally:
            db.close()

    return _make_job


@pytest.fixture
def count_rows(session_factory):
    def _count(model, **filters) -> int:
        db = session_factory()
        try:
            return db.query(model).filter_by(**filters).count()
        finally:
            db.close()

    return _count


@pytest.fixture
def notifications(session_factory):
    def _list(job_id: str) -> List[JobNotification]:
        db = session_factory()
        try:
            return (
                db.query(JobNotification)
                .filter(JobNotification.job_id == job_id)
                .order_by(JobNotification.id.asc())
                .all()
            )
        finally:
            db.close()

    return _list
