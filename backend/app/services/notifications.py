# backend/app/services/notifications.py
from __future__ import annotations

from typing import Callable
import enum
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.db import SessionLocal
from ..models.job_notification import JobNotification

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Notifier:
    """
    Best-effort, fire-and-forget lifecycle notifications.
    Failure must NEVER break job processing: notify() returns False instead of raising.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def notify(
        self,
        job_id: str,
        operator_id: str | None,
        type: NotificationType | str,
        message: str,
    ) -> bool:
        type_value = getattr(type, "value", type)
        if not operator_id:
            logger.warning(
                "Skipping %s notification without operator",
                type_value,
                extra={"job_id": job_id},
            )
            return False

        db: Session | None = None
        try:
            db = self._session_factory()
            db.add(
                JobNotification(
                    job_id=job_id,
                    operator_id=operator_id,
                    type=type_value,
                    message=message,
                    created_at=datetime.utcnow(),
                )
            )
            db.commit()
            logger.info(
                "Notification sent: %s - %s",
                type_value,
                message,
                extra={"job_id": job_id, "operator_id": operator_id},
            )
            return True
        except Exception:
            logger.exception("Failed to send job notification", extra={"job_id": job_id})
            if db is not None:
                try:
                    db.rollback()
                except Exception:
                    logger.warning("Notification rollback failed", exc_info=True, extra={"job_id": job_id})
            return False
        finally:
            if db is not None:
                try:
                    db.close()
                except Exception:
                    logger.warning("Notification session close failed", exc_info=True, extra={"job_id": job_id})
