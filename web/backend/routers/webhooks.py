#!/usr/bin/env python3
"""
Webhook endpoints - receive CRM events.

Every webhook is acknowledged with 200, even when it is ignored or cannot
be queued, so the CRM never retries a delivery because of us.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from notification.service import NotificationService, STATUS_FAILED
from ..dependencies import get_notification_service
from ..models.responses import WebhookAckResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

STATUS_MESSAGES = {
    'queued': 'Notification queued',
    'unassigned': 'Contact not assigned - no notification',
    'unsupported': 'Event type not handled',
    'failed': 'Notification could not be queued',
}


async def _acknowledge(
    request: Request,
    event_type: Optional[str],
    notification_service: NotificationService
) -> WebhookAckResponse:
    try:
        payload = await request.json()
        if not isinstance(payload, dict):
            raise ValueError("webhook body must be a JSON object")
    except ValueError as e:
        logger.error(f"Webhook error: unreadable body: {e}")
        return WebhookAckResponse(success=False, status='failed', message='Invalid webhook body')

    logger.info(
        f"Webhook received: type={event_type or payload.get('type')}, "
        f"location={payload.get('locationId')}, contact={payload.get('contactId')}"
    )

    try:
        result = await run_in_threadpool(notification_service.ingest, event_type, payload)
    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)
        return WebhookAckResponse(success=False, status='failed', message='Notification could not be queued')

    return WebhookAckResponse(
        success=result.status != STATUS_FAILED,
        status=result.status,
        job_id=result.job_id,
        message=STATUS_MESSAGES.get(result.status, result.reason)
    )


@router.get("/health")
def webhooks_health():
    """Webhook health check."""
    return {
        "status": "healthy",
        "service": "webhooks",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.post("/conversation-unread", response_model=WebhookAckResponse)
def conversation_unread():
    """Acknowledged and otherwise ignored."""
    logger.info("Conversation unread webhook received")
    return WebhookAckResponse(success=True, status='ignored')


@router.post("", response_model=WebhookAckResponse)
async def receive_webhook(
    request: Request,
    notification_service: NotificationService = Depends(get_notification_service)
):
    """Receive a webhook whose event type is given by the body's "type" field."""
    return await _acknowledge(request, None, notification_service)


@router.post("/{event_type}", response_model=WebhookAckResponse)
async def receive_typed_webhook(
    event_type: str,
    request: Request,
    notification_service: NotificationService = Depends(get_notification_service)
):
    """
    Receive a webhook for one event type (e.g. /webhooks/inbound-message).

    Responds as soon as the job is queued; dispatch happens in the worker.
    """
    return await _acknowledge(request, event_type, notification_service)

