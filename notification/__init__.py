"""
Notification Module

Multi-channel notification dispatch for CRM events: webhook normalization,
filtering, fan-out to push/email/slack, and push subscription lifecycle.

Usage:
    from notification import decide, NotificationChannelFactory

    # Should this message notify?
    decision = decide(preferences, message_text)

    # Get a channel
    channel = NotificationChannelFactory.get_channel('slack', config.channels)
    channel.send(webhook_url, payload)
"""

from notification.exceptions import (
    NotificationError,
    DeliveryError,
    ChannelTimeoutError,
    ChannelBusyError,
    ChannelNotConfiguredError,
    PushSubscriptionGoneError,
    ContactLookupError,
    QueueUnavailableError,
    InvalidPreferencesError,
)

from notification.filters import (
    FilterDecision,
    FilterReason,
    decide,
)

from notification.channels import (
    NotificationChannel,
    PushChannel,
    EmailChannel,
    SlackChannel,
    NotificationChannelFactory,
    DeliveryResult,
    send_test_notification,
)

from notification.jobs import (
    NotificationRequest,
    Recipient,
    PRIORITY_NORMAL,
    PRIORITY_HIGH,
)

from notification.normalizer import WebhookNormalizer
from notification.preferences import NotificationSettings

__all__ = [
    # Errors
    'NotificationError',
    'DeliveryError',
    'ChannelTimeoutError',
    'ChannelBusyError',
    'ChannelNotConfiguredError',
    'PushSubscriptionGoneError',
    'ContactLookupError',
    'QueueUnavailableError',
    'InvalidPreferencesError',
    # Filtering
    'FilterDecision',
    'FilterReason',
    'decide',
    # Channels
    'NotificationChannel',
    'PushChannel',
    'EmailChannel',
    'SlackChannel',
    'NotificationChannelFactory',
    'DeliveryResult',
    'send_test_notification',
    # Jobs
    'NotificationRequest',
    'Recipient',
    'PRIORITY_NORMAL',
    'PRIORITY_HIGH',
    # Normalization and preferences
    'WebhookNormalizer',
    'NotificationSettings',
]
