from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Sequence
import logging

from sqlalchemy.orm import Session

from ..core.db import SessionLocal
from ..models.review_sync_job import ReviewSyncJob, JobStatus, TERMINAL_STATUSES
from ..models.external_review import ExternalReview

logger = logging.getLogger(__name__)

NATURAL_KEY = ("operator_id", "source", "external_id")


def _dialect_insert(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Review upsert is not supported on {dialect_name}")
    return insert


class SqlJobStore:
    """
    SQLAlchemy-backed job store.

    Every call opens its own short-lived session and returns detached ORM
    objects, so callers never hold a transaction across provider calls.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _detach(db: Session, obj: Any) -> Any:
        if obj is not None:
            db.expunge(obj)
        return obj

    def get_job(self, job_id: str) -> ReviewSyncJob | None:
        db = self._session_factory()
        try:
            job = db.get(ReviewSyncJob, job_id)
            return self._detach(db, job)
        finally:
            db.close()

    def list_eligible_jobs(
        self,
        statuses: Sequence[JobStatus],
        limit: int,
    ) -> List[ReviewSyncJob]:
        db = self._session_factory()
        try:
            jobs = (
                db.query(ReviewSyncJob)
                .filter(ReviewSyncJob.status.in_(list(statuses)))
                .order_by(ReviewSyncJob.started_at.asc(), ReviewSyncJob.created_at.asc())
                .limit(limit)
                .all()
            )
            return [self._detach(db, j) for j in jobs]
        finally:
            db.close()

    def update_job(
        self,
        job_id: str,
        expected_statuses: Sequence[JobStatus] | None = None,
        **fields: Any,
    ) -> ReviewSyncJob | None:
        """
        Apply `fields` to the job and return the refreshed row.

        With `expected_statuses` the write only happens while the job is still
        in one of them; otherwise nothing is written and None is returned.
        """
        db = self._session_factory()
        try:
            job = db.get(ReviewSyncJob, job_id, with_for_update=expected_statuses is not None)
            if not job:
                logger.warning("update_job: job not found", extra={"job_id": job_id})
                return None
            if expected_statuses is not None and job.status not in expected_statuses:
                logger.info(
                    "update_job: job is %s, skipping write",
                    job.status.value,
                    extra={"job_id": job_id},
                )
                db.rollback()
                return None
            for key, value in fields.items():
                setattr(job, key, value)
            job.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(job)
            return self._detach(db, job)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def upsert_reviews(self, records: Iterable[Dict[str, Any]]) -> int:
        """
        Idempotent write keyed on (operator_id, source, external_id).
        Duplicates inside one batch collapse to the last occurrence.
        """
        unique: Dict[tuple, Dict[str, Any]] = {}
        for record in records:
            unique[tuple(record[k] for k in NATURAL_KEY)] = record
        rows = list(unique.values())
        if not rows:
            return 0

        now = datetime.utcnow()
        for row in rows:
            row.setdefault("imported_at", now)

        db = self._session_factory()
        try:
            insert = _dialect_insert(db.get_bind().dialect.name)
            stmt = insert(ExternalReview).values(rows)
            update_cols = {
                col: stmt.excluded[col]
                for col in rows[0].keys()
                if col not in NATURAL_KEY
            }
            stmt = stmt.on_conflict_do_update(
                index_elements=list(NATURAL_KEY),
                set_=update_cols,
            )
            db.execute(stmt)
            db.commit()
            return len(rows)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Listing / maintenance queries used by the job manager and retention
    # ------------------------------------------------------------------

    def list_operator_jobs(self, operator_id: str, limit: int = 10) -> List[ReviewSyncJob]:
        db = self._session_factory()
        try:
            jobs = (
                db.query(ReviewSyncJob)
                .filter(ReviewSyncJob.operator_id == operator_id)
                .order_by(ReviewSyncJob.started_at.desc(), ReviewSyncJob.created_at.desc())
                .limit(limit)
                .all()
            )
            return [self._detach(db, j) for j in jobs]
        finally:
            db.close()

    def list_jobs_created_since(self, cutoff: datetime) -> List[ReviewSyncJob]:
        db = self._session_factory()
        try:
            jobs = db.query(ReviewSyncJob).filter(ReviewSyncJob.created_at >= cutoff).all()
            return [self._detach(db, j) for j in jobs]
        finally:
            db.close()

    def delete_finished_jobs(self, completed_before: datetime) -> int:
        db = self._session_factory()
        try:
            deleted = (
                db.query(ReviewSyncJob)
                .filter(
                    ReviewSyncJob.status.in_(list(TERMINAL_STATUSES)),
                    ReviewSyncJob.completed_at < completed_before,
                )
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
