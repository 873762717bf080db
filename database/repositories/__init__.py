from database.repositories.base import BaseRepository
from database.repositories.preference import PreferenceRepository
from database.repositories.push_subscription import PushSubscriptionRepository
from database.repositories.notification_log import NotificationLogRepository

__all__ = [
    'BaseRepository',
    'PreferenceRepository',
    'PushSubscriptionRepository',
    'NotificationLogRepository',
]
