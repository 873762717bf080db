"""In-process job queue, for tests and single-process development."""

import heapq
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.queue.base import JobQueue, JobHandler, QueueEnvelope, clamp_priority

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    """A job handed to a consumer and not yet acknowledged."""
    envelope: QueueEnvelope


class InMemoryJobQueue(JobQueue):
    """
    Heap-backed queue: highest priority first, FIFO within a priority.

    Not durable across restarts; use RqJobQueue for that. Several threads
    may call `work` at once, and each job goes to exactly one of them.
    """

    def __init__(self, name: str = 'notifications', max_retries: int = 3, poll_interval_seconds: float = 0.1):
        super().__init__(name, max_retries)
        self.poll_interval_seconds = poll_interval_seconds
        self._heap = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._in_flight: Dict[str, QueueEnvelope] = {}
        self._dead: List[QueueEnvelope] = []
        self._stopped = threading.Event()

    def enqueue(self, job_name: str, data: Dict[str, Any], priority: int = 1) -> str:
        envelope = QueueEnvelope(job_name=job_name, data=data, priority=clamp_priority(priority))
        self._push(envelope)
        logger.debug(f"Job {envelope.job_id} queued on {self.name} (priority {envelope.priority})")
        return envelope.job_id

    def _push(self, envelope: QueueEnvelope) -> None:
        with self._cond:
            heapq.heappush(self._heap, (-envelope.priority, next(self._seq), envelope))
            self._cond.notify()

    def consume(self, timeout: Optional[float] = None) -> Optional[Delivery]:
        """Take the next job, waiting up to `timeout` seconds. Returns None if nothing arrived."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._heap, timeout=timeout):
                return None
            _, _, envelope = heapq.heappop(self._heap)
            self._in_flight[envelope.job_id] = envelope
            return Delivery(envelope=envelope)

    def ack(self, delivery: Delivery) -> None:
        with self._cond:
            self._in_flight.pop(delivery.envelope.job_id, None)

    def nack(self, delivery: Delivery, requeue: bool, error: Optional[str] = None) -> None:
        """Put the job back on the queue, or with `requeue=False` move it to the dead letters."""
        envelope = delivery.envelope
        envelope.last_error = error
        with self._cond:
            self._in_flight.pop(envelope.job_id, None)
            if not requeue:
                self._dead.append(envelope)
                return
        self._push(envelope)

    def work(self, handler: JobHandler, burst: bool = False) -> None:
        self._stopped.clear()
        while not self._stopped.is_set():
            delivery = self.consume(timeout=self.poll_interval_seconds)
            if delivery is None:
                if burst:
                    return
                continue

            envelope = delivery.envelope
            envelope.attempts += 1
            try:
                handler(envelope)
            except Exception as e:
                self.nack(delivery, requeue=envelope.attempts < self.max_retries, error=str(e))
                continue
            self.ack(delivery)

    def stop(self) -> None:
        self._stopped.set()

    def size(self) -> int:
        with self._cond:
            return len(self._heap)

    def in_flight(self) -> int:
        with self._cond:
            return len(self._in_flight)

    def dead_letters(self, limit: int = 100) -> List[QueueEnvelope]:
        with self._cond:
            return list(self._dead[:limit])
