import uuid

from sqlalchemy import Column, Text, TIMESTAMP, Index, Uuid, func

from .base import Base, JSONDocument, utcnow


class NotificationPreferenceRecord(Base):
    """
    Stored notification preferences for an account.

    user_id NULL is the account-wide default; a non-null user_id overrides it
    for that user. The three documents are parsed into NotificationSettings
    before use, so missing keys take their defaults.
    """
    __tablename__ = 'notification_preference'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(Text, nullable=False, index=True)
    user_id = Column(Text, nullable=True)

    channels = Column(JSONDocument, nullable=False, default=dict)
    filters = Column(JSONDocument, nullable=False, default=dict)
    features = Column(JSONDocument, nullable=False, default=dict)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # One record per (account, user); NULL user folded to '' so the
        # account-wide record is unique too
        Index(
            'uq_notification_preference_account_user',
            'account_id', func.coalesce(user_id, ''),
            unique=True
        ),
    )
