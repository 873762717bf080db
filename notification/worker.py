#!/usr/bin/env python3
"""
Notification Worker

Consumes notification jobs from the job queue and hands them to the
dispatcher. A job leaves the queue only once dispatch completes; a job
whose processing raises is retried by the queue, and dead-lettered once it
has been attempted max_retries times.

Scale out by running more worker processes against the same queue.

Usage:
    python -m notification.worker
    python -m notification.worker --burst
    python -m notification.worker --verbose
"""

import argparse
import logging
import signal
import sys
import threading
import time
from typing import List, Optional

from core.queue import JobQueue, QueueEnvelope
from notification.dispatcher import NotificationDispatcher
from notification.exceptions import QueueUnavailableError
from notification.jobs import NotificationRequest, JOB_NAME

logger = logging.getLogger(__name__)


class NotificationWorker:
    """Runs the queue's consumer loop with the dispatcher as job handler."""

    def __init__(
        self,
        queue: JobQueue,
        dispatcher: NotificationDispatcher,
        reconnect_delay_seconds: float = 5.0,
        maintenance_interval_seconds: int = 60,
        log_retention_days: int = 90
    ):
        self.queue = queue
        self.dispatcher = dispatcher
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self.maintenance_interval_seconds = maintenance_interval_seconds
        self.log_retention_days = log_retention_days
        self._stop = threading.Event()
        self._last_maintenance = 0.0

    def handle(self, envelope: QueueEnvelope) -> None:
        """
        Process one consumed job.

        Raises:
            Exception: Whatever dispatch raised; the queue retries or dead-letters the job
        """
        self._maybe_run_maintenance()
        try:
            if envelope.job_name != JOB_NAME:
                raise ValueError(f"Unknown job name: {envelope.job_name}")
            request = NotificationRequest.from_dict(envelope.data)
            self.dispatcher.process(request)
        except Exception as e:
            max_retries = self.queue.max_retries
            if envelope.attempts < max_retries:
                logger.warning(
                    f"Job {envelope.job_id} failed (attempt {envelope.attempts}/{max_retries}), "
                    f"will retry: {e}"
                )
            else:
                logger.error(
                    f"Job {envelope.job_id} failed after {max_retries} attempts. "
                    f"Moving to dead letter queue: {e}",
                    exc_info=True
                )
            raise

        logger.debug(f"Job {envelope.job_id} completed")

    def run_maintenance(self) -> None:
        """Hand abandoned jobs back to the retry policy and apply log retention."""
        self._last_maintenance = time.monotonic()
        recovered = self.queue.recover_stale()
        if recovered:
            logger.warning(f"Recovered {recovered} stale job(s)")
        self.dispatcher.log_recorder.purge(self.log_retention_days)

    def _maybe_run_maintenance(self) -> None:
        if time.monotonic() - self._last_maintenance < self.maintenance_interval_seconds:
            return
        try:
            self.run_maintenance()
        except Exception as e:
            logger.error(f"Worker maintenance failed: {e}", exc_info=True)

    def run(self, burst: bool = False) -> None:
        """
        Consume until stopped, or until the queue is empty in burst mode.

        A lost broker connection does not end the worker: it waits
        reconnect_delay_seconds and starts consuming again.
        Blocks the calling thread.
        """
        self._stop.clear()
        logger.info(f"Worker started on queue '{self.queue.name}'")

        while not self._stop.is_set():
            self._maybe_run_maintenance()
            try:
                self.queue.work(self.handle, burst=burst)
            except QueueUnavailableError as e:
                logger.error(f"Queue unavailable, reconnecting in {self.reconnect_delay_seconds}s: {e}")
                self._stop.wait(self.reconnect_delay_seconds)
                continue
            break

        logger.info("Worker stopped")

    def stop(self) -> None:
        """Stop after the job currently being handled finishes."""
        logger.info("Stopping worker...")
        self._stop.set()
        self.queue.stop()


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description='NotifyPro Notification Worker')
    parser.add_argument('--burst', action='store_true', help='Process all and exit')
    parser.add_argument('--config', default=None, help='Path to config.yaml')
    parser.add_argument('--verbose', action='store_true')

    args = parser.parse_args(argv)

    from core.app_context import AppContext
    from core.config_loader import load_config

    config = load_config(args.config) if args.config else load_config()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.logging.level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        context = AppContext.build(config)
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    worker = context.worker
    signal.signal(signal.SIGTERM, lambda signum, frame: worker.stop())

    try:
        worker.run(burst=args.burst or config.worker.burst)
    except KeyboardInterrupt:
        worker.stop()
        logger.info("\nWorker stopped")
    finally:
        context.close()


if __name__ == '__main__':
    main()
