#!/usr/bin/env python3
"""
Notification Channels

Each channel wraps one delivery mechanism behind the same contract:

    channel.send(destination, payload) -> DeliveryResult   # or raises DeliveryError

- PushChannel:  Web Push (VAPID) to one browser subscription
- EmailChannel: SMTP with STARTTLS
- SlackChannel: Slack incoming webhook

Usage:
    from notification.channels import NotificationChannelFactory

    channel = NotificationChannelFactory.get_channel('slack', config.channels)
    channel.send(webhook_url, payload)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
import json
import logging
import smtplib
import urllib.parse
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

import requests
from pywebpush import webpush, WebPushException

from core.config_loader import ChannelsConfig, PushConfig, EmailConfig, SlackConfig
from notification.exceptions import (
    DeliveryError,
    ChannelNotConfiguredError,
    PushSubscriptionGoneError,
)
from notification.message_builder import NotificationMessageBuilder, NotificationPayload

logger = logging.getLogger(__name__)


def _mask_email(email: str) -> str:
    """
    Mask email address for safe logging (PII protection).

    Shows only domain, e.g., "***@example.com"
    """
    if '@' not in email:
        return "***"
    local, domain = email.rsplit('@', 1)
    return f"***@{domain}"


def _safe_url(url: str) -> str:
    """Scheme, host and path only, for logging webhook URLs without their secret."""
    parsed = urllib.parse.urlparse(url)
    return f"{parsed.scheme}://{parsed.hostname}"


def _is_valid_webhook_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urllib.parse.urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.hostname)


@dataclass
class DeliveryResult:
    channel: str
    success: bool = True
    detail: Dict[str, Any] = field(default_factory=dict)


class NotificationChannel(ABC):
    """
    Abstract base class for all notification channels.

    All notification channels must implement this interface, so the
    dispatcher can treat them interchangeably.
    """

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Return the channel type identifier."""
        pass

    @abstractmethod
    def send(self, destination: Any, payload: NotificationPayload) -> DeliveryResult:
        """
        Deliver a notification through this channel.

        Args:
            destination: Target (subscription info, email address, webhook URL)
            payload: Channel-independent notification content

        Returns:
            DeliveryResult on success

        Raises:
            DeliveryError: If the notification was not delivered
        """
        pass

    def validate_config(self) -> bool:
        """
        Validate that the channel is properly configured.

        Returns:
            True if configured correctly, False otherwise
        """
        return True


class PushChannel(NotificationChannel):
    """Browser push via the Web Push protocol."""

    def __init__(self, config: Optional[PushConfig] = None, subscription_manager=None, timeout: float = 5.0):
        self.config = config or PushConfig()
        self.subscription_manager = subscription_manager
        self.timeout = timeout

    @property
    def channel_type(self) -> str:
        return 'push'

    def validate_config(self) -> bool:
        return bool(self.config.vapid_subject and self.config.vapid_private_key)

    def send(self, destination: Dict[str, Any], payload: NotificationPayload) -> DeliveryResult:
        if not self.validate_config():
            raise ChannelNotConfiguredError(
                'push', "VAPID keys not configured - set VAPID_SUBJECT, VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY"
            )

        endpoint = destination['endpoint']
        message = NotificationMessageBuilder.build_push_message(payload, self.config.icon, self.config.badge)

        try:
            webpush(
                subscription_info=destination,
                data=json.dumps(message),
                vapid_private_key=self.config.vapid_private_key,
                vapid_claims={'sub': self.config.vapid_subject},
                ttl=self.config.ttl_seconds,
                timeout=self.timeout,
                headers={'Urgency': 'high' if payload.is_priority else 'normal'},
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            if status_code in (404, 410):
                if self.subscription_manager is not None:
                    self.subscription_manager.report_delivery_failure(endpoint, status_code)
                raise PushSubscriptionGoneError(endpoint, status_code) from e
            raise DeliveryError('push', f"Push service error: {e}", status_code) from e
        except requests.RequestException as e:
            raise DeliveryError('push', f"Push request failed: {e}") from e

        if self.subscription_manager is not None:
            self.subscription_manager.record_delivery(endpoint)

        logger.info("Push notification delivered")
        return DeliveryResult(channel='push')


class EmailChannel(NotificationChannel):
    """Email notification channel via SMTP."""

    def __init__(self, config: Optional[EmailConfig] = None, timeout: float = 10.0):
        self.config = config or EmailConfig()
        self.timeout = timeout

    @property
    def channel_type(self) -> str:
        return 'email'

    def validate_config(self) -> bool:
        return all([self.config.smtp_server, self.config.smtp_username, self.config.smtp_password])

    def send(self, destination: str, payload: NotificationPayload) -> DeliveryResult:
        if not self.validate_config():
            raise ChannelNotConfiguredError('email', "Email not configured - SMTP settings not set")

        msg = MIMEMultipart('alternative')
        msg['From'] = f"{self.config.from_name} <{self.config.from_email}>"
        msg['To'] = destination
        msg['Subject'] = NotificationMessageBuilder.build_email_subject(payload)
        msg.attach(MIMEText(payload.body or '', 'plain', 'utf-8'))
        msg.attach(MIMEText(NotificationMessageBuilder.build_email_html(payload), 'html', 'utf-8'))

        try:
            with smtplib.SMTP(self.config.smtp_server, int(self.config.smtp_port), timeout=self.timeout) as server:
                server.starttls()
                server.login(self.config.smtp_username, self.config.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError('email', f"Failed to send email: {e}") from e

        logger.info(f"Email sent to {_mask_email(destination)}")
        return DeliveryResult(channel='email')


class SlackChannel(NotificationChannel):
    """Slack notification channel via incoming webhook."""

    def __init__(self, config: Optional[SlackConfig] = None, timeout: Optional[float] = None):
        self.config = config or SlackConfig()
        self.timeout = self.config.timeout_seconds if timeout is None else min(timeout, self.config.timeout_seconds)

    @property
    def channel_type(self) -> str:
        return 'slack'

    def send(self, destination: str, payload: NotificationPayload) -> DeliveryResult:
        if not _is_valid_webhook_url(destination):
            raise DeliveryError('slack', "Invalid Slack webhook URL")

        message = NotificationMessageBuilder.build_slack_message(payload)

        try:
            response = requests.post(
                destination,
                json=message,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise DeliveryError('slack', f"Slack request failed: {e}") from e

        if response.status_code == 404:
            raise DeliveryError('slack', "Invalid Slack webhook URL", 404)
        if response.status_code >= 400:
            raise DeliveryError(
                'slack', f"Slack API error: {response.status_code} - {response.text[:200]}", response.status_code
            )

        logger.info(f"Slack message sent to {_safe_url(destination)}")
        return DeliveryResult(channel='slack')


class NotificationChannelFactory:
    """
    Factory for creating notification channels.

    New channels can be registered without modifying the factory code.
    """

    # Registry of available channels
    _channels: Dict[str, type] = {
        'push': PushChannel,
        'email': EmailChannel,
        'slack': SlackChannel,
    }

    @classmethod
    def get_channel(
        cls,
        channel_type: str,
        channels_config: Optional[ChannelsConfig] = None,
        **kwargs
    ) -> NotificationChannel:
        """
        Get a notification channel instance by type.

        Args:
            channel_type: Type of channel (push, email, slack)
            channels_config: Channel configuration; the matching section is passed on
            **kwargs: Extra constructor arguments (e.g. subscription_manager for push)

        Raises:
            ValueError: If channel type is not registered
        """
        channel_class = cls._channels.get(channel_type.lower())
        if not channel_class:
            raise ValueError(f"Unknown channel type: {channel_type}. "
                             f"Available: {', '.join(cls._channels.keys())}")

        section = getattr(channels_config, channel_type.lower(), None) if channels_config else None
        if section is not None:
            return channel_class(section, **kwargs)
        return channel_class(**kwargs)

    @classmethod
    def register_channel(cls, channel_type: str, channel_class: type):
        """Register a new notification channel."""
        if not issubclass(channel_class, NotificationChannel):
            raise ValueError("Channel class must extend NotificationChannel")

        cls._channels[channel_type.lower()] = channel_class
        logger.info(f"Registered new channel type: {channel_type}")

    @classmethod
    def list_channels(cls) -> List[str]:
        """List all available channel types."""
        return list(cls._channels.keys())


TEST_PAYLOAD = NotificationPayload(
    title='NotifyPro Test',
    body='This is a test notification. If you see this, notifications are working!',
    contact_name='Test Contact',
    url='https://app.gohighlevel.com',
)


def send_test_notification(channel: NotificationChannel, destination: Any) -> DeliveryResult:
    """Send the fixed test message through `channel`; used by the settings "test" action."""
    return channel.send(destination, TEST_PAYLOAD)
