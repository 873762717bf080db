from .base import Base, JSONDocument, utcnow
from .preference import NotificationPreferenceRecord
from .push_subscription import PushSubscription
from .notification_log import NotificationLog

__all__ = [
    'Base',
    'JSONDocument',
    'utcnow',
    'NotificationPreferenceRecord',
    'PushSubscription',
    'NotificationLog',
]
