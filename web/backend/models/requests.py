#!/usr/bin/env python3
"""
Request models for API endpoints.

Field names follow the browser client's camelCase.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, Literal


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class BrowserSubscription(BaseModel):
    """The PushSubscription object produced by the browser."""
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys


class SubscribeRequest(BaseModel):
    """Request to register this browser for push notifications."""
    model_config = ConfigDict(populate_by_name=True)

    location_id: str = Field(..., alias="locationId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    subscription: BrowserSubscription
    device_info: Optional[Dict[str, Any]] = Field(None, alias="deviceInfo")
    user_agent: Optional[str] = Field(None, alias="userAgent")


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)


class TestNotificationRequest(BaseModel):
    """Request to send a test notification on one channel."""
    model_config = ConfigDict(populate_by_name=True)

    location_id: str = Field(..., alias="locationId", min_length=1)
    user_id: Optional[str] = Field(None, alias="userId")
    channel: Literal["push", "email", "slack"]


class SettingsUpdate(BaseModel):
    """Partial update of notification preferences; omitted sections are left as they are."""
    model_config = ConfigDict(populate_by_name=True)

    location_id: str = Field(..., alias="locationId", min_length=1)
    user_id: Optional[str] = Field(None, alias="userId")
    channels: Optional[Dict[str, Any]] = None
    filters: Optional[Dict[str, Any]] = None
    features: Optional[Dict[str, Any]] = None
