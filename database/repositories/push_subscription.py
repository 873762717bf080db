import logging
from typing import Optional, Dict, Any, List

from sqlalchemy import select, update, func

from database.models import PushSubscription, utcnow
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class PushSubscriptionRepository(BaseRepository):

    def get_by_endpoint(self, endpoint: str) -> Optional[PushSubscription]:
        stmt = select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_active(self, account_id: str, user_id: str) -> Optional[PushSubscription]:
        stmt = select(PushSubscription).where(
            PushSubscription.account_id == account_id,
            PushSubscription.user_id == user_id,
            PushSubscription.is_active.is_(True)
        ).order_by(PushSubscription.updated_at.desc()).limit(1)
        return self.db.execute(stmt).scalars().first()

    def list_for_user(self, account_id: str, user_id: str) -> List[PushSubscription]:
        stmt = select(PushSubscription).where(
            PushSubscription.account_id == account_id,
            PushSubscription.user_id == user_id
        ).order_by(PushSubscription.created_at)
        return list(self.db.execute(stmt).scalars().all())

    def count_active(self, account_id: str, user_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(PushSubscription).where(
            PushSubscription.account_id == account_id,
            PushSubscription.is_active.is_(True)
        )
        if user_id is not None:
            stmt = stmt.where(PushSubscription.user_id == user_id)
        return self.db.execute(stmt).scalar_one()

    def has_expired(self, account_id: str, user_id: Optional[str] = None) -> bool:
        stmt = select(func.count()).select_from(PushSubscription).where(
            PushSubscription.account_id == account_id,
            PushSubscription.is_expired.is_(True)
        )
        if user_id is not None:
            stmt = stmt.where(PushSubscription.user_id == user_id)
        return self.db.execute(stmt).scalar_one() > 0

    def deactivate_others(self, account_id: str, user_id: str, keep_endpoint: str) -> int:
        """Deactivate every active subscription for the user except `keep_endpoint`."""
        stmt = (
            update(PushSubscription)
            .where(
                PushSubscription.account_id == account_id,
                PushSubscription.user_id == user_id,
                PushSubscription.is_active.is_(True),
                PushSubscription.endpoint != keep_endpoint
            )
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session='fetch')
        )
        return self.db.execute(stmt).rowcount

    def upsert_active(
        self,
        account_id: str,
        user_id: str,
        endpoint: str,
        keys: Dict[str, Any],
        device_info: Optional[Dict[str, Any]] = None
    ) -> PushSubscription:
        """Insert or update the subscription for `endpoint` as active and not expired."""
        device_info = device_info or {}
        subscription = self.get_by_endpoint(endpoint)
        if subscription is None:
            subscription = PushSubscription(endpoint=endpoint)
            self.db.add(subscription)

        subscription.account_id = account_id
        subscription.user_id = user_id
        subscription.keys = dict(keys or {})
        subscription.browser = device_info.get('browser')
        subscription.os = device_info.get('os')
        subscription.device_id = device_info.get('deviceId') or device_info.get('device_id')
        subscription.user_agent = device_info.get('userAgent') or device_info.get('user_agent')
        subscription.is_active = True
        subscription.is_expired = False
        subscription.expired_at = None
        subscription.expired_reason = None
        subscription.last_used_at = utcnow()

        self.db.flush()
        return subscription

    def deactivate_by_endpoint(self, endpoint: str) -> Optional[PushSubscription]:
        subscription = self.get_by_endpoint(endpoint)
        if subscription is not None:
            subscription.is_active = False
            self.db.flush()
        return subscription

    def mark_expired(self, endpoint: str, reason: str) -> Optional[PushSubscription]:
        subscription = self.get_by_endpoint(endpoint)
        if subscription is not None:
            subscription.is_active = False
            subscription.is_expired = True
            subscription.expired_at = utcnow()
            subscription.expired_reason = reason
            self.db.flush()
        return subscription

    def touch(self, endpoint: str) -> None:
        """Record a successful delivery."""
        stmt = (
            update(PushSubscription)
            .where(PushSubscription.endpoint == endpoint)
            .values(last_used_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
