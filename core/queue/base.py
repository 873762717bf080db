"""Job queue client interface shared by the queue backends."""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

MIN_PRIORITY = 0
MAX_PRIORITY = 10


def clamp_priority(priority: Optional[int]) -> int:
    if priority is None:
        return 1
    return max(MIN_PRIORITY, min(MAX_PRIORITY, int(priority)))


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QueueEnvelope:
    """A job as a consumer sees it: the payload plus delivery bookkeeping."""
    job_name: str
    data: Dict[str, Any]
    priority: int = 1
    attempts: int = 0
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=utc_timestamp)
    last_error: Optional[str] = None


# Runs one job; raising marks the attempt as failed
JobHandler = Callable[[QueueEnvelope], None]


class JobQueue(ABC):
    """
    At-least-once job queue.

    A job leaves the queue only once its handler returns. A handler that
    raises gets the job retried until it has been attempted `max_retries`
    times in total; after that the job is kept aside as a dead letter for
    manual inspection, never dropped. Each consumer holds one job at a time.

    Priority is advisory: higher priorities are preferred, but the only hard
    ordering guarantee is FIFO among equal priorities.
    """

    def __init__(self, name: str = 'notifications', max_retries: int = 3):
        if max_retries < 1:
            raise ValueError("max_retries counts attempts and must be at least 1")
        self.name = name
        self.max_retries = max_retries

    @abstractmethod
    def enqueue(self, job_name: str, data: Dict[str, Any], priority: int = 1) -> str:
        """Durably add a job. Returns its id."""
        pass

    @abstractmethod
    def work(self, handler: JobHandler, burst: bool = False) -> None:
        """
        Consume jobs with `handler` until stopped, or until the queue is
        empty in burst mode. Blocks the calling thread.

        Raises:
            QueueUnavailableError: If the broker connection is lost
        """
        pass

    @abstractmethod
    def size(self) -> int:
        """Jobs waiting to be consumed (excluding running and dead-lettered)."""
        pass

    @abstractmethod
    def dead_letters(self, limit: int = 100) -> List[QueueEnvelope]:
        pass

    def recover_stale(self) -> int:
        """Hand jobs abandoned by crashed consumers back to the retry policy. Returns the count."""
        return 0

    def stop(self) -> None:
        """Ask a running `work` call to return after its current job."""
        pass

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass
