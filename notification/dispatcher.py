#!/usr/bin/env python3
"""
Notification Dispatcher

Processes one NotificationRequest:
1. Loads the effective preferences (user-specific, else account-wide)
2. Runs the filter decision engine
3. Filtered: writes a single `channel='none'` log entry and stops
4. Otherwise fans out to every enabled channel concurrently, each with its
   own timeout, and logs one entry per channel attempt. An enabled push
   channel with no active subscription is logged as failed.

A failed or timed-out channel never affects its siblings. Anything that
prevents processing itself (e.g. the preference lookup) propagates to the
caller so the queue's retry policy can act.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple, Callable

from sqlalchemy.orm import sessionmaker

from database.uow import notification_uow
from notification.channels import NotificationChannel
from notification.exceptions import (
    DeliveryError,
    ChannelTimeoutError,
    ChannelBusyError,
    PushSubscriptionGoneError,
)
from notification.filters import decide, FilterDecision
from notification.jobs import NotificationRequest
from notification.log_recorder import NotificationLogRecorder
from notification.message_builder import (
    NotificationMessageBuilder,
    NotificationPayload,
    DEFAULT_CONVERSATION_URL_TEMPLATE,
)
from notification.preferences import NotificationSettings
from notification.subscriptions import PushSubscriptionManager

logger = logging.getLogger(__name__)

OUTCOME_SENT = 'sent'
OUTCOME_FAILED = 'failed'
OUTCOME_FILTERED = 'filtered'

NO_ACTIVE_SUBSCRIPTION = 'no_active_subscription'


class NotificationDispatcher:
    """Filter, then fan a request out to the enabled channels."""

    def __init__(
        self,
        session_factory: sessionmaker,
        channels: Dict[str, NotificationChannel],
        subscription_manager: PushSubscriptionManager,
        log_recorder: Optional[NotificationLogRecorder] = None,
        channel_timeout: float = 5.0,
        max_in_flight_per_channel: int = 4,
        url_template: str = DEFAULT_CONVERSATION_URL_TEMPLATE,
        clock: Callable[[], Optional[datetime]] = lambda: None
    ):
        self.session_factory = session_factory
        self.channels = channels
        self.subscription_manager = subscription_manager
        self.log_recorder = log_recorder or NotificationLogRecorder(session_factory)
        self.channel_timeout = channel_timeout
        self.max_in_flight_per_channel = max(1, max_in_flight_per_channel)
        self.url_template = url_template
        self._clock = clock
        # Sends that outlive channel_timeout keep their thread until the channel's own I/O
        # timeout fires; the per-channel cap keeps every reserved send from queueing
        self._running: Dict[str, int] = {}
        self._running_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max(len(channels), 1) * self.max_in_flight_per_channel,
            thread_name_prefix='channel-send'
        )

    def load_preferences(self, request: NotificationRequest) -> Optional[NotificationSettings]:
        with notification_uow(self.session_factory) as repos:
            return repos.preferences.get_effective(request.account_id, request.user_id)

    def process(self, request: NotificationRequest) -> Dict[str, str]:
        """
        Dispatch one request.

        Returns:
            Mapping of channel name to outcome ('sent' / 'failed'), or
            {'none': 'filtered'} when no channel was contacted
        """
        preferences = self.load_preferences(request)
        decision = decide(preferences, request.message_text, self._clock())

        if not decision.notify:
            self.log_recorder.record_filtered(request, decision)
            logger.info(
                f"Notification for account {request.account_id} filtered: {decision.reason.value}"
            )
            return {'none': OUTCOME_FILTERED}

        payload = NotificationMessageBuilder.build_payload(request, decision.is_priority, self.url_template)
        targets, unreachable = self._resolve_targets(request, preferences)
        if not targets and not unreachable:
            logger.info(f"No channel enabled for account {request.account_id}, user {request.user_id}")
            return {}

        results = {}
        for name in unreachable:
            results[name] = OUTCOME_FAILED
            self.log_recorder.record_failed(request, name, NO_ACTIVE_SUBSCRIPTION, decision.is_priority)
        if targets:
            results.update(self._fan_out(request, decision, payload, targets))
        return results

    def _resolve_targets(
        self,
        request: NotificationRequest,
        preferences: NotificationSettings
    ) -> Tuple[List[Tuple[str, Any]], List[str]]:
        """
        (channel, destination) pairs for every enabled channel that has somewhere
        to send to, plus the enabled channels that have nowhere to send to.
        """
        channels = preferences.channels
        targets = []
        unreachable = []

        if channels.push.enabled and 'push' in self.channels:
            subscription = self.subscription_manager.get_active(request.account_id, request.user_id)
            if subscription is None:
                logger.warning(
                    f"No active push subscription for user {request.user_id} in account {request.account_id}"
                )
                unreachable.append('push')
            else:
                targets.append(('push', subscription.subscription_info()))

        if channels.email.enabled and channels.email.address and 'email' in self.channels:
            targets.append(('email', channels.email.address))

        if channels.slack.enabled and channels.slack.webhook_url and 'slack' in self.channels:
            targets.append(('slack', channels.slack.webhook_url))

        return targets, unreachable

    def running_sends(self, channel: str) -> int:
        """Sends currently occupying a thread for `channel`, timed-out ones included."""
        with self._running_lock:
            return self._running.get(channel, 0)

    def _reserve(self, channel: str) -> bool:
        with self._running_lock:
            running = self._running.get(channel, 0)
            if running >= self.max_in_flight_per_channel:
                return False
            self._running[channel] = running + 1
            return True

    def _release(self, channel: str) -> None:
        with self._running_lock:
            self._running[channel] -= 1

    def _send(self, name: str, destination: Any, payload: NotificationPayload):
        try:
            return self.channels[name].send(destination, payload)
        finally:
            self._release(name)

    def _fan_out(
        self,
        request: NotificationRequest,
        decision: FilterDecision,
        payload: NotificationPayload,
        targets: List[Tuple[str, Any]]
    ) -> Dict[str, str]:
        deadline = time.monotonic() + self.channel_timeout
        results = {}
        futures = {}
        for name, destination in targets:
            if not self._reserve(name):
                error = ChannelBusyError(name, self.max_in_flight_per_channel)
                results[name] = self._record_failure(request, decision, name, error)
                continue
            futures[name] = self._executor.submit(self._send, name, destination, payload)

        for name, future in futures.items():
            try:
                future.result(timeout=max(deadline - time.monotonic(), 0))
            except FutureTimeoutError:
                if future.cancel():
                    self._release(name)
                error = ChannelTimeoutError(name, self.channel_timeout)
                results[name] = self._record_failure(request, decision, name, error)
            except PushSubscriptionGoneError as e:
                # Already turned into an expired subscription by the push channel
                logger.warning(f"Push subscription gone ({e.status_code}) for user {request.user_id}")
                results[name] = OUTCOME_FAILED
                self.log_recorder.record_failed(request, name, e.reason, decision.is_priority)
            except DeliveryError as e:
                results[name] = self._record_failure(request, decision, name, e)
            except Exception as e:
                logger.exception(f"Unexpected error sending {name} notification")
                results[name] = self._record_failure(request, decision, name, e)
            else:
                results[name] = OUTCOME_SENT
                self.log_recorder.record_sent(request, name, decision.is_priority)

        logger.info(f"Notification processing complete for account {request.account_id}: {results}")
        return results

    def _record_failure(self, request, decision, channel: str, error: Exception) -> str:
        logger.error(f"{channel.capitalize()} notification failed: {error}")
        self.log_recorder.record_failed(request, channel, str(error), decision.is_priority)
        return OUTCOME_FAILED

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
