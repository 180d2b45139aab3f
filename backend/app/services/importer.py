from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..core.config import Settings, get_settings
from ..models.review_sync_job import ACTIVE_STATUSES
from .errors import JobCancelled
from .notifications import NotificationType, Notifier
from .review_transform import transform_review

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Progress windows: submission owns 0-10, import 10-95, finalization 95-100
SUBMITTED_PROGRESS = 10
IMPORT_PROGRESS_SPAN = 85
IMPORT_PROGRESS_CEILING = 95
COMPLETE_PROGRESS = 100
PROGRESS_MILESTONE = 25


@dataclass(frozen=True)
class ImportConfig:
    batch_size: int = 100
    max_concurrent_jobs: int = 5
    poll_interval_seconds: float = 30.0
    max_polls: int = 60
    submit_settle_seconds: float = 10.0
    chunk_delay_seconds: float = 0.1

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ImportConfig":
        settings = settings or get_settings()
        return cls(
            batch_size=max(1, settings.IMPORT_BATCH_SIZE),
            max_concurrent_jobs=max(1, settings.IMPORT_MAX_CONCURRENT_JOBS),
            poll_interval_seconds=settings.IMPORT_POLL_INTERVAL_SECONDS,
            max_polls=max(1, settings.IMPORT_MAX_POLLS),
            submit_settle_seconds=settings.IMPORT_SUBMIT_SETTLE_SECONDS,
            chunk_delay_seconds=settings.IMPORT_CHUNK_DELAY_SECONDS,
        )


def import_progress(processed: int, total: int) -> int:
    """Rescale the fraction of items processed into the import window."""
    if total <= 0:
        return IMPORT_PROGRESS_CEILING
    scaled = round(processed / total * IMPORT_PROGRESS_SPAN) + SUBMITTED_PROGRESS
    return min(IMPORT_PROGRESS_CEILING, scaled)


def milestones_crossed(previous: int, current: int) -> List[int]:
    """Every milestone boundary in (previous, current], lowest first."""
    first = previous // PROGRESS_MILESTONE + 1
    last = current // PROGRESS_MILESTONE
    return [n * PROGRESS_MILESTONE for n in range(first, last + 1)]


class BatchImporter:
    """
    Writes raw provider items as canonical reviews in fixed-size chunks.

    - Items without a derivable external id are dropped, the chunk goes on.
    - Each chunk is upserted on the natural key, so re-importing the same task
      result never duplicates rows.
    - Job progress is persisted only after a chunk was written.
    - A failed chunk write is logged and skipped; the import continues.
    - Progress writes only land while the job is active; a cancelled job
      stops the import with JobCancelled.
    """

    def __init__(
        self,
        store: Any,
        notifier: Notifier,
        config: ImportConfig,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._config = config
        self._sleep = sleep

    def _transform_chunk(self, job: Any, chunk: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        for item in chunk:
            try:
                record = transform_review(item, job)
            except Exception:
                logger.warning(
                    "Dropping review that failed to transform",
                    exc_info=True,
                    extra={"job_id": job.id, "step": "import:transform"},
                )
                continue
            if record is not None:
                records.append(record)
        return records

    async def import_all(self, job: Any, raw_items: Sequence[Dict[str, Any]]) -> int:
        total = len(raw_items)
        batch_size = self._config.batch_size
        imported = 0
        # A resumed job keeps the count an earlier attempt already reported
        baseline = job.imported_count or 0
        progress = max(job.progress_percentage or 0, SUBMITTED_PROGRESS)

        for start in range(0, total, batch_size):
            chunk = raw_items[start:start + batch_size]
            chunk_no = start // batch_size + 1
            records = self._transform_chunk(job, chunk)
            dropped = len(chunk) - len(records)

            written = 0
            if records:
                try:
                    written = self._store.upsert_reviews(records)
                except Exception:
                    logger.exception(
                        "Batch write failed (items %s-%s); continuing with next batch",
                        start,
                        start + len(chunk),
                        extra={"job_id": job.id, "step": "import:write"},
                    )
                    await self._sleep(self._config.chunk_delay_seconds)
                    continue

            imported += written
            new_progress = max(progress, import_progress(start + len(chunk), total))
            try:
                updated = self._store.update_job(
                    job.id,
                    expected_statuses=ACTIVE_STATUSES,
                    imported_count=max(baseline, imported),
                    total_available=total,
                    progress_percentage=new_progress,
                )
            except Exception:
                # Rows are already written; the next chunk's write catches up
                logger.exception(
                    "Progress update failed after batch %s; continuing",
                    chunk_no,
                    extra={"job_id": job.id, "step": "import:progress"},
                )
            else:
                if updated is None:
                    raise JobCancelled(job.id)

            for milestone in milestones_crossed(progress, new_progress):
                self._notifier.notify(
                    job.id,
                    job.operator_id,
                    NotificationType.PROGRESS,
                    f"Processing {imported} of {total} reviews ({milestone}% reached)",
                )
            progress = new_progress

            logger.info(
                "Processed batch %s - %s/%s reviews (%s dropped)",
                chunk_no,
                imported,
                total,
                dropped,
                extra={"job_id": job.id, "step": "import:batch"},
            )

            await self._sleep(self._config.chunk_delay_seconds)

        return max(baseline, imported)
