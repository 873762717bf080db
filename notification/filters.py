"""
Filter decision engine.

Decides whether a message should produce a notification given an account's
preferences. Pure: no I/O, and the clock is an argument so identical inputs
always give identical decisions.

Order of checks:
    1. no preferences          -> skip (no_preference)
    2. no channel enabled      -> skip (no_channels)
    3. test mode               -> skip (test_mode)
    4. priority keyword match  -> notify, priority (bypasses business hours)
    5. outside business hours  -> skip (business_hours)
    6. otherwise               -> notify (business_hours_ok)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timezone
from enum import Enum
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from notification.preferences import NotificationSettings, BusinessHours, WEEKDAYS

logger = logging.getLogger(__name__)


class FilterReason(str, Enum):
    NO_PREFERENCE = "no_preference"
    NO_CHANNELS = "no_channels"
    TEST_MODE = "test_mode"
    PRIORITY_KEYWORD = "priority_keyword"
    BUSINESS_HOURS = "business_hours"
    BUSINESS_HOURS_OK = "business_hours_ok"


@dataclass(frozen=True)
class FilterDecision:
    notify: bool
    reason: FilterReason
    is_priority: bool = False


def matches_priority_keyword(message_text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring match of any keyword against the text."""
    if not message_text:
        return False
    lower_message = message_text.lower()
    return any(k and k.lower() in lower_message for k in keywords)


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


def is_within_business_hours(business_hours: BusinessHours, now: datetime) -> bool:
    """
    Check `now` against the configured days and [start, end] window.

    `end < start` means the window crosses midnight. Comparison is at minute
    granularity, so 17:00:59 is still inside a window ending at 17:00.
    Any error resolving the timezone or parsing the window fails open.
    """
    try:
        local_now = now.astimezone(ZoneInfo(business_hours.timezone))
        current_day = WEEKDAYS[local_now.weekday()]

        if current_day not in business_hours.days:
            return False

        current = time(local_now.hour, local_now.minute)
        start = _parse_hhmm(business_hours.start)
        end = _parse_hhmm(business_hours.end)

        if start <= end:
            return start <= current <= end
        return current >= start or current <= end
    except (KeyError, ValueError) as e:
        logger.error(f"Error checking business hours, allowing notification: {e}")
        return True


def decide(
    preferences: Optional[NotificationSettings],
    message_text: str,
    now: Optional[datetime] = None
) -> FilterDecision:
    """Decide whether to notify for `message_text` under `preferences`."""
    if preferences is None:
        return FilterDecision(notify=False, reason=FilterReason.NO_PREFERENCE)

    if not preferences.has_enabled_channels():
        return FilterDecision(notify=False, reason=FilterReason.NO_CHANNELS)

    if preferences.features.test_mode:
        return FilterDecision(notify=False, reason=FilterReason.TEST_MODE)

    filters = preferences.filters

    if matches_priority_keyword(message_text or '', filters.priority_keywords):
        return FilterDecision(notify=True, reason=FilterReason.PRIORITY_KEYWORD, is_priority=True)

    if filters.business_hours_only:
        if now is None:
            now = datetime.now(timezone.utc)
        if not is_within_business_hours(filters.business_hours, now):
            logger.info("Notification filtered: outside business hours")
            return FilterDecision(notify=False, reason=FilterReason.BUSINESS_HOURS)

    return FilterDecision(notify=True, reason=FilterReason.BUSINESS_HOURS_OK)
