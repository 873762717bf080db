"""Queue Module - durable notification job queue clients."""
from core.queue.base import JobQueue, JobHandler, QueueEnvelope, clamp_priority
from core.queue.memory import InMemoryJobQueue, Delivery
from core.queue.rq_queue import RqJobQueue

__all__ = [
    'JobQueue',
    'JobHandler',
    'QueueEnvelope',
    'Delivery',
    'clamp_priority',
    'InMemoryJobQueue',
    'RqJobQueue',
]
