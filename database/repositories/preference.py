import copy
import logging
from typing import Optional, Dict, Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from database.models import NotificationPreferenceRecord
from database.repositories.base import BaseRepository
from notification.exceptions import InvalidPreferencesError
from notification.preferences import NotificationSettings

logger = logging.getLogger(__name__)


def _deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class PreferenceRepository(BaseRepository):

    @staticmethod
    def to_settings(record: NotificationPreferenceRecord) -> NotificationSettings:
        return NotificationSettings(
            account_id=record.account_id,
            user_id=record.user_id,
            channels=record.channels or {},
            filters=record.filters or {},
            features=record.features or {},
        )

    def get(self, account_id: str, user_id: Optional[str] = None) -> Optional[NotificationPreferenceRecord]:
        stmt = select(NotificationPreferenceRecord).where(NotificationPreferenceRecord.account_id == account_id)
        if user_id is None:
            stmt = stmt.where(NotificationPreferenceRecord.user_id.is_(None))
        else:
            stmt = stmt.where(NotificationPreferenceRecord.user_id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_effective(self, account_id: str, user_id: Optional[str] = None) -> Optional[NotificationSettings]:
        """User-specific preferences if present, else the account-wide record, else None."""
        record = None
        if user_id is not None:
            record = self.get(account_id, user_id)
        if record is None:
            record = self.get(account_id)
        return self.to_settings(record) if record else None

    def get_or_create(self, account_id: str, user_id: Optional[str] = None) -> NotificationPreferenceRecord:
        record = self.get(account_id, user_id)
        if record is not None:
            return record

        defaults = NotificationSettings(account_id=account_id, user_id=user_id).documents()
        record = NotificationPreferenceRecord(account_id=account_id, user_id=user_id, **defaults)
        try:
            with self.db.begin_nested():
                self.db.add(record)
                self.db.flush()
            logger.info(f"Created default notification preferences for account {account_id}")
            return record
        except IntegrityError:
            # Created concurrently by another request
            return self.get(account_id, user_id)

    def update(
        self,
        account_id: str,
        user_id: Optional[str] = None,
        channels: Optional[Dict[str, Any]] = None,
        filters: Optional[Dict[str, Any]] = None,
        features: Optional[Dict[str, Any]] = None
    ) -> NotificationSettings:
        """Merge partial documents into the stored preferences and validate the result."""
        record = self.get_or_create(account_id, user_id)
        current = self.to_settings(record).documents()

        try:
            settings = NotificationSettings(
                account_id=account_id,
                user_id=user_id,
                channels=_deep_merge(current['channels'], channels or {}),
                filters=_deep_merge(current['filters'], filters or {}),
                features=_deep_merge(current['features'], features or {}),
            )
        except ValidationError as e:
            raise InvalidPreferencesError(str(e)) from e

        documents = settings.documents()
        record.channels = documents['channels']
        record.filters = documents['filters']
        record.features = documents['features']
        self.db.flush()
        return settings

    def reset(self, account_id: str, user_id: Optional[str] = None) -> NotificationSettings:
        record = self.get_or_create(account_id, user_id)
        settings = NotificationSettings(account_id=account_id, user_id=user_id)
        documents = settings.documents()
        record.channels = documents['channels']
        record.filters = documents['filters']
        record.features = documents['features']
        self.db.flush()
        return settings
