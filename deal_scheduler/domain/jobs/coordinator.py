"""
Post-commit job cancellation

Lifecycle operations write JobCancellation rows in the same transaction
that reverts their scheduled deals. Once that transaction has committed,
the rows are drained here: each reference is decoded and the matching
queue job removed. A job that no longer exists counts as cancelled.
Failures are recorded on the row and retried by the worker cron, never
raised to the caller.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from dateutil import tz
from sqlalchemy.orm import Session

from ...config import OUTBOX_BATCH_SIZE, OUTBOX_MAX_ATTEMPTS
from ...database import SessionLocal
from ...models import JobCancellation
from .queue import decode_job_reference, get_job_queue

logger = logging.getLogger(__name__)


class JobCoordinator:
    """Drains job cancellations against the deferred job queue"""

    def __init__(self, session_factory: Callable[[], Session], queue, max_attempts: int = OUTBOX_MAX_ATTEMPTS):
        self.session_factory = session_factory
        self.queue = queue
        self.max_attempts = max_attempts

    async def run(self, cancellation_ids: Iterable[int]) -> int:
        """
        Execute the cancellations a committed transaction planned.

        Returns:
            Number of cancellations completed
        """
        ids = list(cancellation_ids)
        if not ids:
            return 0

        db = None
        try:
            db = self.session_factory()
            rows = (
                db.query(JobCancellation)
                .filter(JobCancellation.id.in_(ids), JobCancellation.status == "pending")
                .order_by(JobCancellation.id)
                .all()
            )
            return await self._process(db, rows)
        except Exception as e:
            # Rows stay pending for the worker cron
            logger.error(f"❌ Post-commit drain of {len(ids)} cancellation(s) failed: {str(e)}")
            return 0
        finally:
            if db is not None:
                db.close()

    async def drain_pending(self, limit: int = OUTBOX_BATCH_SIZE) -> int:
        """Retry every pending cancellation, oldest first (used by the worker cron)"""
        db = self.session_factory()
        try:
            rows = (
                db.query(JobCancellation)
                .filter(JobCancellation.status == "pending")
                .order_by(JobCancellation.id)
                .limit(limit)
                .all()
            )
            if rows:
                logger.info(f"🔄 Draining {len(rows)} pending job cancellations")
            return await self._process(db, rows)
        finally:
            db.close()

    async def _process(self, db: Session, rows: list[JobCancellation]) -> int:
        completed = 0
        for row in rows:
            error = await self._cancel(row.job_reference)
            row.attempts += 1
            if error is None:
                row.status = "done"
                row.last_error = None
                row.processed_at = datetime.now(tz.UTC)
                completed += 1
            else:
                row.last_error = error
                if row.attempts >= self.max_attempts:
                    row.status = "failed"
                    logger.error(
                        f"❌ Giving up on job {row.job_reference} after {row.attempts} attempts: {error}"
                    )
            try:
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"❌ Failed to record cancellation {row.id}: {str(e)}")
        return completed

    async def _cancel(self, reference: str) -> Optional[str]:
        """Cancel one referenced job. Returns an error message, or None on success."""
        try:
            queue_name, job_id = decode_job_reference(reference)
        except ValueError as e:
            # Nothing can ever be removed for a malformed reference
            logger.warning(f"⚠️ Skipping job reference {reference!r}: {str(e)}")
            return None

        try:
            job = await self.queue.get_job(job_id, queue_name)
            if job is None:
                logger.info(f"Job {reference} already gone")
                return None
            await self.queue.remove_job(job_id, queue_name)
            logger.info(f"✅ Cancelled job {reference}")
            return None
        except Exception as e:
            logger.error(f"❌ Failed to cancel job {reference}: {str(e)}")
            return str(e)


def get_job_coordinator() -> JobCoordinator:
    """Dependency injection for JobCoordinator"""
    return JobCoordinator(SessionLocal, get_job_queue())
