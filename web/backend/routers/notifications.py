#!/usr/bin/env python3
"""
Notification endpoints - delivery statistics and queue inspection.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import sessionmaker

from database.uow import notification_uow
from notification.service import NotificationService
from ..dependencies import get_notification_service, get_session_factory
from ..exceptions import NotificationLogNotFoundException
from ..models.responses import (
    NotificationStatsResponse,
    ChannelStat,
    QueueStatusResponse,
    DeadLetterResponse,
    MessageResponse,
)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("/stats", response_model=NotificationStatsResponse)
def get_stats(
    location_id: str = Query(..., alias="locationId", min_length=1),
    days: int = Query(30, ge=1, le=90),
    session_factory: sessionmaker = Depends(get_session_factory)
):
    """Delivery attempts per channel and status over the last `days` days."""
    with notification_uow(session_factory) as repos:
        rows = repos.logs.stats_by_account(location_id, days)

    stats = [ChannelStat(**row) for row in rows]
    return NotificationStatsResponse(
        success=True,
        location_id=location_id,
        days=days,
        total=sum(stat.count for stat in stats),
        stats=stats
    )


@router.post("/{log_id}/clicked", response_model=MessageResponse)
def mark_clicked(
    log_id: str,
    session_factory: sessionmaker = Depends(get_session_factory)
):
    """Record that the user opened a delivered notification."""
    try:
        with notification_uow(session_factory) as repos:
            updated = repos.logs.mark_clicked(log_id)
    except ValueError:
        updated = False
    if not updated:
        raise NotificationLogNotFoundException(f"No delivered notification {log_id}")
    return MessageResponse(success=True, message="Notification marked as clicked")


@router.get("/queue-status", response_model=QueueStatusResponse)
def get_queue_status(
    notification_service: NotificationService = Depends(get_notification_service)
):
    """
    Get the status of the notification queue.

    Shows queue length, dead-letter count and broker connection status.
    """
    status = notification_service.queue_status()
    return QueueStatusResponse(
        success=status.get('status') != 'error',
        status=status.get('status', 'unknown'),
        queue_length=status.get('queue_length', 0),
        dead_letter_count=status.get('dead_letter_count', 0),
        connected=status.get('connected', False),
        error=status.get('error')
    )


@router.get("/dead-letters", response_model=DeadLetterResponse)
def get_dead_letters(
    limit: int = Query(50, ge=1, le=500),
    notification_service: NotificationService = Depends(get_notification_service)
):
    """Jobs that exhausted their retries, for manual inspection."""
    return DeadLetterResponse(success=True, jobs=notification_service.dead_letters(limit))
