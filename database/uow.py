import contextlib
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from database.database import db_session_scope
from database.repositories import (
    PreferenceRepository,
    PushSubscriptionRepository,
    NotificationLogRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class NotificationRepositories:
    """Repositories sharing one Session (and so one transaction)."""
    session: Session
    preferences: PreferenceRepository
    subscriptions: PushSubscriptionRepository
    logs: NotificationLogRepository


@contextlib.contextmanager
def notification_uow(session_factory: sessionmaker):
    """Per-unit-of-work transaction scope.

    Yields NotificationRepositories bound to a fresh Session. Commits on
    success, rolls back on exception, always closes.

    Usage:
        with notification_uow(session_factory) as repos:
            prefs = repos.preferences.get_effective(account_id, user_id)
        # commit happens automatically on successful exit
    """
    with db_session_scope(session_factory) as session:
        yield NotificationRepositories(
            session=session,
            preferences=PreferenceRepository(session),
            subscriptions=PushSubscriptionRepository(session),
            logs=NotificationLogRepository(session),
        )
