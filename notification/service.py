#!/usr/bin/env python3
"""
Notification Ingestion Service

Entry point for inbound CRM webhooks:
- Normalizes the raw event (skipping unsupported and unassigned ones)
- Computes the broker priority
- Enqueues the job for asynchronous dispatch

Usage:
    from notification.service import NotificationService

    service = NotificationService(queue, normalizer, session_factory)
    result = service.ingest('InboundMessage', payload)
    if result.status == 'queued':
        ...
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import sessionmaker

from core.queue import JobQueue
from database.uow import notification_uow
from notification.filters import matches_priority_keyword
from notification.jobs import NotificationRequest, JOB_NAME, PRIORITY_HIGH, PRIORITY_NORMAL
from notification.normalizer import WebhookNormalizer, is_supported, canonical_event_type

logger = logging.getLogger(__name__)

STATUS_QUEUED = 'queued'
STATUS_UNASSIGNED = 'unassigned'
STATUS_UNSUPPORTED = 'unsupported'
STATUS_FAILED = 'failed'


@dataclass
class IngestResult:
    status: str
    job_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def queued(self) -> bool:
        return self.status == STATUS_QUEUED


class NotificationService:
    """
    Turns webhooks into queued notification jobs.

    Nothing here raises to the caller: every outcome is an IngestResult, so
    the HTTP layer can always acknowledge the webhook.
    """

    def __init__(
        self,
        queue: JobQueue,
        normalizer: WebhookNormalizer,
        session_factory: sessionmaker
    ):
        self.queue = queue
        self.normalizer = normalizer
        self.session_factory = session_factory

    def ingest(self, event_type: Optional[str], raw: Dict[str, Any]) -> IngestResult:
        """
        Normalize and enqueue one webhook event.

        Args:
            event_type: Event type from the route, or None to read it from the body
            raw: The webhook body

        Returns:
            IngestResult with status queued / unassigned / unsupported / failed
        """
        event_type = event_type or raw.get('type')
        if not is_supported(event_type):
            logger.info(f"Ignoring unsupported webhook event type: {event_type}")
            return IngestResult(status=STATUS_UNSUPPORTED, reason=f"unsupported event type: {event_type}")

        try:
            request = self.normalizer.normalize(event_type, raw)
        except Exception as e:
            logger.error(f"Failed to normalize {event_type} webhook: {e}", exc_info=True)
            return IngestResult(status=STATUS_FAILED, reason=str(e))

        if request is None:
            logger.info(f"No assigned user for {canonical_event_type(event_type)} event, skipping notification")
            return IngestResult(status=STATUS_UNASSIGNED, reason='contact has no assigned user')

        try:
            request.priority = self.compute_priority(request)
            job_id = self.queue.enqueue(JOB_NAME, request.to_dict(), priority=request.priority)
        except Exception as e:
            logger.error(f"Failed to enqueue notification for account {request.account_id}: {e}", exc_info=True)
            return IngestResult(status=STATUS_FAILED, reason=str(e))

        logger.info(
            f"Queued notification job {job_id} for user {request.user_id} "
            f"in account {request.account_id} (priority {request.priority})"
        )
        return IngestResult(status=STATUS_QUEUED, job_id=job_id)

    def compute_priority(self, request: NotificationRequest) -> int:
        """
        High priority when the text already matches one of the recipient's priority keywords.

        A failed preference lookup falls back to normal priority so the job still gets queued.
        """
        try:
            with notification_uow(self.session_factory) as repos:
                preferences = repos.preferences.get_effective(request.account_id, request.user_id)
        except Exception as e:
            logger.warning(
                f"Could not load preferences for account {request.account_id}, queuing at normal priority: {e}"
            )
            return PRIORITY_NORMAL
        if preferences is None:
            return PRIORITY_NORMAL
        if matches_priority_keyword(request.message_text, preferences.filters.priority_keywords):
            return PRIORITY_HIGH
        return PRIORITY_NORMAL

    def queue_status(self) -> Dict[str, Any]:
        """Get queue status."""
        try:
            return {
                'status': 'active',
                'queue': self.queue.name,
                'queue_length': self.queue.size(),
                'dead_letter_count': len(self.queue.dead_letters()),
                'connected': self.queue.ping(),
            }
        except Exception as e:
            return {'status': 'error', 'error': str(e)}

    def dead_letters(self, limit: int = 100) -> List[Dict[str, Any]]:
        return [
            {
                'job_id': envelope.job_id,
                'attempts': envelope.attempts,
                'last_error': envelope.last_error,
                'timestamp': envelope.timestamp,
                'data': envelope.data,
            }
            for envelope in self.queue.dead_letters(limit)
        ]
