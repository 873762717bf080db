#!/usr/bin/env python3
"""
Notification Log Recorder

Writes the append-only NotificationLog: one entry per channel attempt, or a
single `channel='none'` entry when the job was filtered before any channel
was tried.

Usage:
    from notification.log_recorder import NotificationLogRecorder

    recorder = NotificationLogRecorder(session_factory)
    recorder.record_filtered(request, decision)
    recorder.record_sent(request, 'slack', is_priority=False)
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from database.uow import notification_uow
from notification.filters import FilterDecision
from notification.jobs import NotificationRequest
from notification.message_builder import preview

logger = logging.getLogger(__name__)


class NotificationLogRecorder:
    """Turns dispatch outcomes into NotificationLog rows, each in its own transaction."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _base_fields(self, request: NotificationRequest) -> dict:
        return {
            'account_id': request.account_id,
            'user_id': request.user_id,
            'contact_id': request.contact_id,
            'conversation_id': request.conversation_id,
            'message_id': request.message_id,
            'message_preview': preview(request.message_text),
        }

    def _write(self, **fields) -> str:
        with notification_uow(self.session_factory) as repos:
            entry = repos.logs.add(**fields)
            return str(entry.id)

    def record_filtered(self, request: NotificationRequest, decision: FilterDecision) -> str:
        """The single entry for a job that no channel was contacted for."""
        return self._write(
            channel='none',
            status='sent',
            was_filtered=True,
            filter_reason=decision.reason.value,
            is_priority=decision.is_priority,
            **self._base_fields(request)
        )

    def record_sent(self, request: NotificationRequest, channel: str, is_priority: bool = False) -> str:
        return self._write(
            channel=channel,
            status='sent',
            is_priority=is_priority,
            **self._base_fields(request)
        )

    def record_failed(
        self,
        request: NotificationRequest,
        channel: str,
        error: Optional[str],
        is_priority: bool = False
    ) -> str:
        return self._write(
            channel=channel,
            status='failed',
            error=(error or 'unknown error')[:1000],
            is_priority=is_priority,
            **self._base_fields(request)
        )

    def purge(self, days: int = 90) -> int:
        """Retention: drop entries older than `days` days."""
        with notification_uow(self.session_factory) as repos:
            return repos.logs.purge_older_than(days)
