"""
Deferred job queue access (arq / Redis)

Deals store an opaque job reference "<queue>:<job id>" in
`scheduled_job_id`; this module maps it to the arq job it points at.
"""

import asyncio
import logging
from typing import Optional

from arq import create_pool
from arq.connections import ArqRedis
from arq.constants import job_key_prefix
from arq.jobs import Job, JobStatus

from ...config import DEALS_QUEUE_NAME

logger = logging.getLogger(__name__)

# Jobs in these states have not started yet and can still be withdrawn
REMOVABLE_STATUSES = (JobStatus.deferred, JobStatus.queued)


def encode_job_reference(job_id: str, queue_name: str = DEALS_QUEUE_NAME) -> str:
    """Build the reference stored on a deal for a queued send job"""
    return f"{queue_name}:{job_id}"


def decode_job_reference(reference: str) -> tuple[str, str]:
    """
    Split a stored job reference into (queue name, native job id).
    A bare id without a queue prefix belongs to the default deals queue.

    Raises:
        ValueError: for an empty reference
    """
    if not reference or not reference.strip():
        raise ValueError("Empty job reference")

    queue_name, sep, job_id = reference.partition(":")
    if not sep:
        return DEALS_QUEUE_NAME, reference
    if not job_id:
        raise ValueError(f"Job reference has no job id: {reference}")
    return queue_name, job_id


class ArqJobQueue:
    """Job lookup and removal against the arq Redis queues"""

    def __init__(self, pool: Optional[ArqRedis] = None, redis_settings=None):
        self._pool = pool
        self._redis_settings = redis_settings
        self._lock = asyncio.Lock()

    async def _get_pool(self) -> ArqRedis:
        if self._pool is None:
            async with self._lock:
                if self._pool is None:
                    from ...worker import get_redis_settings

                    settings = self._redis_settings or get_redis_settings()
                    self._pool = await asyncio.wait_for(create_pool(settings), timeout=20.0)
                    logger.info("✅ Job queue connection established")
        return self._pool

    async def get_job(self, job_id: str, queue_name: str = DEALS_QUEUE_NAME) -> Optional[Job]:
        """Return the job handle, or None when arq has no record of it"""
        pool = await self._get_pool()
        job = Job(job_id, pool, _queue_name=queue_name)
        status = await asyncio.wait_for(job.status(), timeout=15.0)
        if status == JobStatus.not_found:
            return None
        return job

    async def remove_job(self, job_id: str, queue_name: str = DEALS_QUEUE_NAME) -> bool:
        """
        Withdraw a job that has not started yet.

        Returns:
            True if the job was removed, False if it was already running,
            finished or gone
        """
        pool = await self._get_pool()
        job = Job(job_id, pool, _queue_name=queue_name)
        status = await job.status()
        if status not in REMOVABLE_STATUSES:
            logger.info(f"Job {job_id} is {status.value}, nothing to remove")
            return False

        async with pool.pipeline(transaction=True) as pipe:
            pipe.zrem(queue_name, job_id)
            pipe.delete(job_key_prefix + job_id)
            removed_from_queue, _ = await pipe.execute()

        logger.info(f"🗑️ Removed job {job_id} from queue {queue_name}")
        return bool(removed_from_queue)

    async def close(self):
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


_job_queue: Optional[ArqJobQueue] = None


def get_job_queue() -> ArqJobQueue:
    """Dependency injection for the shared job queue (connects lazily)"""
    global _job_queue
    if _job_queue is None:
        _job_queue = ArqJobQueue()
    return _job_queue
