"""
Push Subscription Manager

Owns the lifecycle of Web Push subscriptions:

    active   --(newer device subscribes)-->  inactive
    active   --(push service 410/404)---->  expired + inactive
    inactive / expired --(subscribe)----->  active

A user has at most one active subscription per account. `subscribe`
deactivates the others and activates the new endpoint in one transaction;
the storage-level partial unique index turns a concurrent subscribe into an
IntegrityError, which is retried so the last writer wins.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from database.models import PushSubscription
from database.uow import notification_uow

logger = logging.getLogger(__name__)

GONE_STATUS_REASONS = {
    410: 'subscription_expired',
    404: 'endpoint_not_found',
}


def _mask_endpoint(endpoint: str) -> str:
    return endpoint[:60] + '...' if endpoint and len(endpoint) > 60 else endpoint


class PushSubscriptionManager:
    """Keeps each user down to a single active push subscription."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def subscribe(
        self,
        account_id: str,
        user_id: str,
        endpoint: str,
        keys: Dict[str, Any],
        device_info: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Make `endpoint` the user's only active subscription.

        Returns:
            The subscription id
        """
        if not account_id or not user_id:
            raise ValueError("account_id and user_id are required to subscribe")
        if not endpoint:
            raise ValueError("endpoint is required to subscribe")

        subscription_id = self._subscribe_once(account_id, user_id, endpoint, keys, device_info)
        logger.info(f"Push subscription {subscription_id} active for user {user_id} in account {account_id}")
        return subscription_id

    @retry(
        retry=retry_if_exception_type(IntegrityError),
        stop=stop_after_attempt(5),
        wait=wait_random(0, 0.1),
        reraise=True
    )
    def _subscribe_once(self, account_id, user_id, endpoint, keys, device_info) -> str:
        with notification_uow(self.session_factory) as repos:
            superseded = repos.subscriptions.deactivate_others(account_id, user_id, endpoint)
            if superseded:
                logger.info(f"Deactivated {superseded} superseded subscription(s) for user {user_id}")
            subscription = repos.subscriptions.upsert_active(account_id, user_id, endpoint, keys, device_info)
            return str(subscription.id)

    def unsubscribe(self, endpoint: str) -> bool:
        """Explicit opt-out from the client. Returns False for an unknown endpoint."""
        with notification_uow(self.session_factory) as repos:
            subscription = repos.subscriptions.deactivate_by_endpoint(endpoint)
        if subscription is None:
            logger.warning(f"Unsubscribe for unknown endpoint {_mask_endpoint(endpoint)}")
            return False
        logger.info(f"Push subscription deactivated: {_mask_endpoint(endpoint)}")
        return True

    def report_delivery_failure(self, endpoint: str, status_code: Optional[int]) -> bool:
        """
        Feed a push delivery failure back into subscription state.

        Only "gone" (410) and "not found" (404) expire the subscription; other
        failures leave it untouched. Returns True if the subscription expired.
        """
        reason = GONE_STATUS_REASONS.get(status_code)
        if reason is None:
            return False

        with notification_uow(self.session_factory) as repos:
            subscription = repos.subscriptions.mark_expired(endpoint, reason)

        if subscription is None:
            return False
        logger.warning(f"Push subscription expired ({status_code}): {_mask_endpoint(endpoint)}")
        return True

    def record_delivery(self, endpoint: str) -> None:
        with notification_uow(self.session_factory) as repos:
            repos.subscriptions.touch(endpoint)

    def get_active(self, account_id: str, user_id: str) -> Optional[PushSubscription]:
        with notification_uow(self.session_factory) as repos:
            return repos.subscriptions.get_active(account_id, user_id)

    def status(self, account_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        with notification_uow(self.session_factory) as repos:
            active_count = repos.subscriptions.count_active(account_id, user_id)
            return {
                'has_active_subscription': active_count > 0,
                'has_expired_subscription': repos.subscriptions.has_expired(account_id, user_id),
                'active_count': active_count,
            }
