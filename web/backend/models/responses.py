#!/usr/bin/env python3
"""
Response models for API endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any


class WebhookAckResponse(BaseModel):
    """Acknowledgment returned to the CRM for every webhook, whatever happened to it."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "status": "queued",
                "job_id": "550e8400-e29b-41d4-a716-446655440000",
                "message": "Notification queued"
            }
        }
    )

    success: bool
    status: Optional[str] = None
    job_id: Optional[str] = None
    message: Optional[str] = None


class VapidKeyResponse(BaseModel):
    success: bool
    public_key: Optional[str] = Field(None, serialization_alias="publicKey")


class SubscriptionStatusResponse(BaseModel):
    """Push subscription state for an account (optionally one user)."""
    success: bool
    has_active_subscription: bool = Field(serialization_alias="hasActiveSubscription")
    has_expired_subscription: bool = Field(serialization_alias="hasExpiredSubscription")
    active_count: int = Field(serialization_alias="activeCount")


class SubscribeResponse(BaseModel):
    success: bool
    message: str
    subscription_id: str = Field(serialization_alias="subscriptionId")


class MessageResponse(BaseModel):
    success: bool
    message: str


class SettingsResponse(BaseModel):
    """Response containing notification preferences."""
    success: bool
    preferences: Dict[str, Any]
    message: Optional[str] = None


class ChannelStat(BaseModel):
    channel: str
    status: str
    count: int


class NotificationStatsResponse(BaseModel):
    """Delivery attempt counts over a trailing window."""
    success: bool
    location_id: str = Field(serialization_alias="locationId")
    days: int
    total: int
    stats: List[ChannelStat]


class QueueStatusResponse(BaseModel):
    """Response with queue status."""
    success: bool
    status: str
    queue_length: int = 0
    dead_letter_count: int = 0
    connected: bool = False
    error: Optional[str] = None


class DeadLetterResponse(BaseModel):
    success: bool
    jobs: List[Dict[str, Any]]
