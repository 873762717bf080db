"""
Notification error taxonomy.

Delivery errors describe "this specific delivery didn't happen" and are
recorded per channel. Anything else raised while processing a job is left
to propagate so the queue's retry/dead-letter policy can act on it.
"""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification errors."""
    pass


class DeliveryError(NotificationError):
    """A channel failed to deliver a notification."""

    def __init__(self, channel: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.channel = channel
        self.status_code = status_code


class ChannelTimeoutError(DeliveryError):
    """A channel send did not complete within its timeout."""

    def __init__(self, channel: str, timeout_seconds: float):
        super().__init__(channel, f"{channel} send timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class ChannelBusyError(DeliveryError):
    """A channel already has as many sends running as it is allowed, so this one was not attempted."""

    def __init__(self, channel: str, max_in_flight: int):
        super().__init__(channel, f"{channel} has {max_in_flight} sends still running past their timeout")
        self.max_in_flight = max_in_flight


class ChannelNotConfiguredError(DeliveryError):
    """A channel is missing the configuration it needs to send."""
    pass


class PushSubscriptionGoneError(DeliveryError):
    """The push service reported the endpoint as gone (410) or unknown (404)."""

    def __init__(self, endpoint: str, status_code: int):
        super().__init__('push', f"Push subscription gone ({status_code})", status_code)
        self.endpoint = endpoint

    @property
    def reason(self) -> str:
        return 'subscription_expired' if self.status_code == 410 else 'endpoint_not_found'


class ContactLookupError(NotificationError):
    """The CRM contact lookup failed."""
    pass


class QueueUnavailableError(NotificationError):
    """The job queue could not accept or hand out work."""
    pass


class InvalidPreferencesError(NotificationError, ValueError):
    """Notification preferences failed validation."""
    pass
