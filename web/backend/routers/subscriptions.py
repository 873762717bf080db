#!/usr/bin/env python3
"""
Push subscription endpoints - register browsers and send test notifications.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.app_context import AppContext
from database.uow import notification_uow
from notification.channels import send_test_notification
from notification.exceptions import DeliveryError
from ..dependencies import get_app_context, get_subscription_manager
from ..exceptions import ChannelNotReadyException, NotificationException
from ..models.requests import SubscribeRequest, UnsubscribeRequest, TestNotificationRequest
from ..models.responses import (
    VapidKeyResponse,
    SubscriptionStatusResponse,
    SubscribeResponse,
    MessageResponse,
)
from notification.subscriptions import PushSubscriptionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("/vapid-public-key", response_model=VapidKeyResponse)
def get_vapid_public_key(context: AppContext = Depends(get_app_context)):
    """Public VAPID key the browser needs to create a push subscription."""
    return VapidKeyResponse(success=True, public_key=context.config.channels.push.vapid_public_key)


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    location_id: str = Query(..., alias="locationId", min_length=1),
    user_id: Optional[str] = Query(None, alias="userId"),
    manager: PushSubscriptionManager = Depends(get_subscription_manager)
):
    """Whether the account (or one user) has an active or expired subscription."""
    status = manager.status(location_id, user_id)
    return SubscriptionStatusResponse(success=True, **status)


@router.post("/subscribe", response_model=SubscribeResponse)
def subscribe(
    request: SubscribeRequest,
    manager: PushSubscriptionManager = Depends(get_subscription_manager)
):
    """
    Register this browser as the user's push device.

    Any other device the user had registered in this account stops
    receiving push notifications.
    """
    device_info = dict(request.device_info or {})
    if request.user_agent and 'userAgent' not in device_info:
        device_info['userAgent'] = request.user_agent

    subscription_id = manager.subscribe(
        request.location_id,
        request.user_id,
        request.subscription.endpoint,
        request.subscription.keys.model_dump(),
        device_info
    )
    return SubscribeResponse(
        success=True,
        message="Subscription saved successfully",
        subscription_id=subscription_id
    )


@router.post("/unsubscribe", response_model=MessageResponse)
def unsubscribe(
    request: UnsubscribeRequest,
    manager: PushSubscriptionManager = Depends(get_subscription_manager)
):
    """Stop push notifications to this browser."""
    manager.unsubscribe(request.endpoint)
    return MessageResponse(success=True, message="Unsubscribed successfully")


@router.post("/test", response_model=MessageResponse)
def send_test(
    request: TestNotificationRequest,
    context: AppContext = Depends(get_app_context)
):
    """Send a fixed test notification on one channel."""
    destination = _test_destination(context, request)
    channel = context.channels[request.channel]

    try:
        send_test_notification(channel, destination)
    except DeliveryError as e:
        raise NotificationException(f"Test {request.channel} notification failed: {e}") from e

    logger.info(f"Test {request.channel} notification sent for location {request.location_id}")
    return MessageResponse(success=True, message=f"Test {request.channel} notification sent")


def _test_destination(context: AppContext, request: TestNotificationRequest):
    if request.channel == 'push':
        if not request.user_id:
            raise ChannelNotReadyException("userId is required for a push test")
        subscription = context.subscription_manager.get_active(request.location_id, request.user_id)
        if subscription is None:
            raise ChannelNotReadyException("No active push subscription")
        return subscription.subscription_info()

    with notification_uow(context.session_factory) as repos:
        preferences = repos.preferences.get_effective(request.location_id, request.user_id)

    if request.channel == 'email':
        address = preferences.channels.email.address if preferences else None
        if not address:
            raise ChannelNotReadyException("No email address configured")
        return address

    webhook_url = preferences.channels.slack.webhook_url if preferences else None
    if not webhook_url:
        raise ChannelNotReadyException("No Slack webhook configured")
    return webhook_url
