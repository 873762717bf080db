"""
Redis-backed durable job queue on RQ.

Each priority level is its own RQ queue ("notifications-p10" down to
"notifications-p0"). Workers listen to them highest first, so higher
priorities drain first and every level stays FIFO.

Retries and dead-lettering are RQ's own:
- jobs are enqueued with Retry(max=max_retries - 1), and the worker
  requeues a failed job while it has retries left
- a job that fails its last attempt stays in its queue's FailedJobRegistry
  for manual inspection
- StartedJobRegistry cleanup hands jobs whose worker died mid-run back to
  that same failure handling
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry, SimpleWorker
from rq.command import send_shutdown_command
from rq.job import Job, get_current_job

from core.queue.base import (
    JobQueue, JobHandler, QueueEnvelope, clamp_priority, utc_timestamp, MIN_PRIORITY, MAX_PRIORITY
)
from notification.exceptions import QueueUnavailableError

logger = logging.getLogger(__name__)

# Handler this process runs jobs with; set by RqJobQueue.work
_job_handler: Optional[JobHandler] = None


def _sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            sanitized = parsed._replace(
                netloc=f"{parsed.username or ''}:*@{parsed.hostname}:{parsed.port or 6379}"
            )
            return sanitized.geturl()
        return url
    except ValueError:
        return url


def _attempts(job: Job) -> int:
    """Attempts made so far, counting the one in progress."""
    return job.meta.get('max_attempts', 1) - (job.retries_left or 0)


def _envelope(job: Job) -> QueueEnvelope:
    job_name, data = job.args
    return QueueEnvelope(
        job_name=job_name,
        data=data,
        priority=job.meta.get('priority', 1),
        attempts=_attempts(job),
        job_id=job.id,
        timestamp=job.meta.get('timestamp') or utc_timestamp(),
        last_error=job.meta.get('last_error'),
    )


def run_job(job_name: str, data: Dict[str, Any]) -> None:
    """The function RQ executes for every job enqueued through RqJobQueue."""
    if _job_handler is None:
        raise RuntimeError("No job handler registered in this worker process")

    job = get_current_job()
    envelope = _envelope(job)
    try:
        _job_handler(envelope)
    except Exception as e:
        job.meta['last_error'] = str(e)
        job.save_meta()
        raise


class RqJobQueue(JobQueue):
    """Priority job queue on RQ, one RQ queue per priority level."""

    def __init__(
        self,
        redis_url: str = 'redis://localhost:6379/0',
        name: str = 'notifications',
        max_retries: int = 3,
        job_timeout_seconds: int = 180,
        redis: Optional[Redis] = None
    ):
        super().__init__(name, max_retries)
        self.redis_url = redis_url
        self.job_timeout_seconds = job_timeout_seconds
        self._redis = redis or Redis.from_url(redis_url, socket_connect_timeout=5)
        # Listening order for workers: highest priority first
        self.queues = [
            Queue(self.queue_name(priority), connection=self._redis)
            for priority in range(MAX_PRIORITY, MIN_PRIORITY - 1, -1)
        ]
        self._worker: Optional[SimpleWorker] = None
        logger.info(f"Job queue '{name}' using RQ on Redis at {_sanitize_url(redis_url)}")

    def queue_name(self, priority: int) -> str:
        return f"{self.name}-p{priority}"

    def _queue_for(self, priority: int) -> Queue:
        return self.queues[MAX_PRIORITY - priority]

    def enqueue(self, job_name: str, data: Dict[str, Any], priority: int = 1) -> str:
        priority = clamp_priority(priority)
        try:
            job = self._queue_for(priority).enqueue(
                run_job,
                job_name,
                data,
                job_timeout=self.job_timeout_seconds,
                retry=Retry(max=self.max_retries - 1) if self.max_retries > 1 else None,
                meta={
                    'priority': priority,
                    'max_attempts': self.max_retries,
                    'timestamp': utc_timestamp(),
                },
                description=f"{job_name} (priority {priority})",
            )
        except RedisError as e:
            raise QueueUnavailableError(f"Could not enqueue job: {e}") from e
        logger.debug(f"Job {job.id} queued on {self.queue_name(priority)}")
        return job.id

    def work(self, handler: JobHandler, burst: bool = False) -> None:
        """
        Run an RQ worker over every priority queue in this process.

        SimpleWorker runs jobs in the worker process itself: the dispatcher's
        thread pool and database pool do not survive a fork.
        """
        global _job_handler
        _job_handler = handler

        try:
            self._worker = SimpleWorker(self.queues, connection=self._redis)
            self._worker.work(burst=burst)
        except RedisError as e:
            raise QueueUnavailableError(f"Lost connection to Redis: {e}") from e
        finally:
            self._worker = None

        # RQ's worker returns instead of raising when Redis goes away mid-run
        if not burst and not self.ping():
            raise QueueUnavailableError(f"Redis at {_sanitize_url(self.redis_url)} is unreachable")

    def stop(self) -> None:
        worker = self._worker
        if worker is not None:
            send_shutdown_command(self._redis, worker.name)

    def size(self) -> int:
        return sum(queue.count for queue in self.queues)

    def dead_letters(self, limit: int = 100) -> List[QueueEnvelope]:
        envelopes = []
        for queue in self.queues:
            job_ids = queue.failed_job_registry.get_job_ids(0, limit - 1)
            if not job_ids:
                continue
            for job in Job.fetch_many(job_ids, connection=self._redis):
                if job is not None:
                    envelopes.append(_envelope(job))
        return envelopes[:limit]

    def recover_stale(self) -> int:
        recovered = 0
        for queue in self.queues:
            registry = queue.started_job_registry
            expired = registry.get_expired_job_ids()
            if not expired:
                continue
            registry.cleanup()
            recovered += len(expired)
            logger.warning(f"Recovered {len(expired)} abandoned job(s) on {queue.name}")
        return recovered

    def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except RedisError:
            return False

    def close(self) -> None:
        self._redis.close()
