#!/usr/bin/env python3
"""
Integration Test: Notification Queue with Real Redis

Verifies the RQ queue backend end to end: priority order, retry,
dead-lettering into the failed job registry and a full worker run.

Usage:
    REDIS_URL=redis://localhost:6379/1 \
    python -m pytest tests/integration/test_notifications_redis.py -v

Requirements:
    - A reachable Redis server (tests are skipped when REDIS_URL is unset)
"""

import unittest
import uuid
from unittest.mock import Mock

import pytest
from redis import Redis

from core.queue import RqJobQueue
from notification.jobs import JOB_NAME
from notification.worker import NotificationWorker
from tests import REDIS_URL, make_request_data

pytestmark = pytest.mark.redis


@unittest.skipUnless(REDIS_URL, "REDIS_URL not set")
class TestRqJobQueue(unittest.TestCase):

    def setUp(self):
        self.redis = Redis.from_url(REDIS_URL)
        # Unique names so parallel runs never share keys
        self.name = f"test-notifications-{uuid.uuid4().hex[:8]}"
        self.queue = RqJobQueue(redis_url=REDIS_URL, name=self.name, max_retries=3)
        self.job_ids = []

    def tearDown(self):
        keys = list(self.redis.scan_iter(f"rq:*{self.name}*"))
        keys += [f"rq:job:{job_id}" for job_id in self.job_ids]
        if keys:
            self.redis.delete(*keys)
        self.redis.srem("rq:queues", *[f"rq:queue:{queue.name}" for queue in self.queue.queues])
        self.queue.close()
        self.redis.close()

    def enqueue(self, data, priority=1):
        job_id = self.queue.enqueue(JOB_NAME, data, priority=priority)
        self.job_ids.append(job_id)
        return job_id

    def test_connection(self):
        self.assertTrue(self.queue.ping())

    def test_priority_then_fifo(self):
        self.enqueue({"n": "first"}, priority=1)
        self.enqueue({"n": "second"}, priority=1)
        self.enqueue({"n": "urgent"}, priority=10)
        self.assertEqual(self.queue.size(), 3)

        order = []
        self.queue.work(lambda envelope: order.append(envelope.data["n"]), burst=True)

        self.assertEqual(order, ["urgent", "first", "second"])
        self.assertEqual(self.queue.size(), 0)
        self.assertEqual(self.queue.dead_letters(), [])

    def test_retry_then_dead_letter(self):
        job_id = self.enqueue({"n": 1})
        attempts = []

        def handler(envelope):
            attempts.append(envelope.attempts)
            raise RuntimeError("boom")

        self.queue.work(handler, burst=True)

        self.assertEqual(attempts, [1, 2, 3])
        dead = self.queue.dead_letters()
        self.assertEqual(len(dead), 1)
        self.assertEqual(dead[0].job_id, job_id)
        self.assertEqual(dead[0].attempts, 3)
        self.assertEqual(dead[0].last_error, "boom")
        self.assertEqual(self.queue.size(), 0)

    def test_transient_failure_recovers(self):
        self.enqueue({"n": 1})
        attempts = []

        def handler(envelope):
            attempts.append(envelope.attempts)
            if envelope.attempts == 1:
                raise RuntimeError("blip")

        self.queue.work(handler, burst=True)

        self.assertEqual(attempts, [1, 2])
        self.assertEqual(self.queue.dead_letters(), [])

    def test_nothing_is_stale_after_a_clean_run(self):
        self.enqueue({"n": 1})
        self.queue.work(lambda envelope: None, burst=True)

        self.assertEqual(self.queue.recover_stale(), 0)

    def test_worker_dead_letters_after_retries(self):
        dispatcher = Mock()
        dispatcher.process.side_effect = RuntimeError("boom")
        self.enqueue(make_request_data())

        NotificationWorker(self.queue, dispatcher, reconnect_delay_seconds=0).run(burst=True)

        self.assertEqual(dispatcher.process.call_count, 3)
        dead = self.queue.dead_letters()
        self.assertEqual(len(dead), 1)
        self.assertEqual(dead[0].attempts, 3)


if __name__ == '__main__':
    unittest.main()
