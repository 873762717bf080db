import uuid

from sqlalchemy import Column, Text, Boolean, TIMESTAMP, Index, Uuid
from sqlalchemy.sql import text as sql_text

from .base import Base, JSONDocument, utcnow


class PushSubscription(Base):
    """
    A browser/device Web Push endpoint for one user.

    At most one subscription per (account_id, user_id) is active at a time.
    The partial unique index backs that up at the storage level; the
    subscription manager keeps it by deactivating the others on subscribe.
    Rows are never hard-deleted.
    """
    __tablename__ = 'push_subscription'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(Text, nullable=False, index=True)
    user_id = Column(Text, nullable=False)

    endpoint = Column(Text, nullable=False, unique=True)
    keys = Column(JSONDocument, nullable=False, default=dict)  # p256dh / auth, opaque here

    # Device fingerprint
    browser = Column(Text)
    os = Column(Text)
    device_id = Column(Text)
    user_agent = Column(Text)

    is_active = Column(Boolean, nullable=False, default=True)
    is_expired = Column(Boolean, nullable=False, default=False)
    expired_at = Column(TIMESTAMP(timezone=True))
    expired_reason = Column(Text)  # subscription_expired / endpoint_not_found

    last_used_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index(
            'uq_push_subscription_active_user',
            'account_id', 'user_id',
            unique=True,
            postgresql_where=sql_text('is_active'),
            sqlite_where=sql_text('is_active = 1'),
        ),
        Index('idx_push_subscription_account_active', 'account_id', 'is_active'),
    )

    @property
    def device_label(self) -> str:
        parts = [p for p in (self.browser, self.os) if p]
        return ' on '.join(parts) if parts else 'unknown device'

    def subscription_info(self) -> dict:
        """The subscription in the shape Web Push libraries expect."""
        return {'endpoint': self.endpoint, 'keys': dict(self.keys or {})}
