import uuid

from sqlalchemy import Column, Text, Boolean, TIMESTAMP, Index, Uuid

from .base import Base, utcnow

CHANNELS = ('push', 'email', 'slack', 'none')
STATUSES = ('sent', 'failed', 'clicked')
FILTER_REASONS = ('business_hours', 'no_channels', 'no_preference', 'test_mode', 'priority_keyword')


class NotificationLog(Base):
    """
    Append-only record of one delivery attempt on one channel, or of a job
    that was filtered before any channel was tried (channel 'none').
    """
    __tablename__ = 'notification_log'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(Text, nullable=False)
    user_id = Column(Text)

    contact_id = Column(Text)
    conversation_id = Column(Text)
    message_id = Column(Text)

    channel = Column(Text, nullable=False)  # push / email / slack / none
    status = Column(Text, nullable=False, default='sent')  # sent / failed / clicked
    error = Column(Text)

    is_priority = Column(Boolean, nullable=False, default=False)
    was_filtered = Column(Boolean, nullable=False, default=False)
    filter_reason = Column(Text)

    message_preview = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_notification_log_account_created', 'account_id', 'created_at'),
        Index('idx_notification_log_channel_status', 'channel', 'status'),
        Index('idx_notification_log_created', 'created_at'),
    )
