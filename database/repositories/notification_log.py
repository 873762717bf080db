import logging
import uuid
from datetime import timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy import select, delete, update, func

from database.models import NotificationLog, utcnow
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class NotificationLogRepository(BaseRepository):

    def add(self, **fields) -> NotificationLog:
        entry = NotificationLog(**fields)
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_recent(self, account_id: str, limit: int = 50) -> List[NotificationLog]:
        stmt = (
            select(NotificationLog)
            .where(NotificationLog.account_id == account_id)
            .order_by(NotificationLog.created_at.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def stats_by_account(self, account_id: str, days: int = 30) -> List[Dict[str, Any]]:
        """Attempt counts grouped by channel and status over the last `days` days."""
        since = utcnow() - timedelta(days=days)
        stmt = (
            select(NotificationLog.channel, NotificationLog.status, func.count().label('count'))
            .where(NotificationLog.account_id == account_id, NotificationLog.created_at >= since)
            .group_by(NotificationLog.channel, NotificationLog.status)
        )
        return [
            {'channel': channel, 'status': status, 'count': count}
            for channel, status, count in self.db.execute(stmt).all()
        ]

    def mark_clicked(self, log_id) -> bool:
        stmt = (
            update(NotificationLog)
            .where(NotificationLog.id == uuid.UUID(str(log_id)), NotificationLog.status == 'sent')
            .values(status='clicked')
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount > 0

    def purge_older_than(self, days: int = 90) -> int:
        cutoff = utcnow() - timedelta(days=days)
        stmt = delete(NotificationLog).where(NotificationLog.created_at < cutoff)
        deleted = self.db.execute(stmt).rowcount
        if deleted:
            logger.info(f"Purged {deleted} notification log entries older than {days} days")
        return deleted
