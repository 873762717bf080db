"""
Notification preference settings.

Stored preference documents are parsed into these models so every field has
a value at construction time; nothing downstream has to guess at missing
nested keys.
"""

import re
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator

MAX_PRIORITY_KEYWORDS = 50

WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']

_HHMM = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


class PushChannelSettings(BaseModel):
    enabled: bool = True
    sound: bool = True


class EmailChannelSettings(BaseModel):
    enabled: bool = False
    address: Optional[str] = None


class SlackChannelSettings(BaseModel):
    enabled: bool = False
    webhook_url: Optional[str] = None


class ChannelSettings(BaseModel):
    push: PushChannelSettings = Field(default_factory=PushChannelSettings)
    email: EmailChannelSettings = Field(default_factory=EmailChannelSettings)
    slack: SlackChannelSettings = Field(default_factory=SlackChannelSettings)


class BusinessHours(BaseModel):
    start: str = "09:00"
    end: str = "17:00"
    timezone: str = "America/New_York"
    days: List[str] = Field(default_factory=lambda: WEEKDAYS[:5])

    @field_validator('start', 'end')
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError(f"Expected HH:MM, got {value!r}")
        return value

    @field_validator('days')
    @classmethod
    def _check_days(cls, value: List[str]) -> List[str]:
        days = [d.lower() for d in value]
        unknown = [d for d in days if d not in WEEKDAYS]
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
        return days


class FilterSettings(BaseModel):
    business_hours_only: bool = False
    business_hours: BusinessHours = Field(default_factory=BusinessHours)
    priority_keywords: List[str] = Field(default_factory=list)

    @field_validator('priority_keywords')
    @classmethod
    def _check_keywords(cls, value: List[str]) -> List[str]:
        keywords = [k.strip() for k in value if k and k.strip()]
        if len(keywords) > MAX_PRIORITY_KEYWORDS:
            raise ValueError(f"Maximum {MAX_PRIORITY_KEYWORDS} priority keywords allowed")
        return keywords


class FeatureSettings(BaseModel):
    test_mode: bool = False


class NotificationSettings(BaseModel):
    """Effective notification preferences for one account (optionally one user)."""
    account_id: str
    user_id: Optional[str] = None
    channels: ChannelSettings = Field(default_factory=ChannelSettings)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    features: FeatureSettings = Field(default_factory=FeatureSettings)

    def has_enabled_channels(self) -> bool:
        return (
            self.channels.push.enabled
            or self.channels.email.enabled
            or self.channels.slack.enabled
        )

    def documents(self) -> Dict[str, Dict[str, Any]]:
        """The three stored sub-documents, as plain dicts."""
        return {
            'channels': self.channels.model_dump(),
            'filters': self.filters.model_dump(),
            'features': self.features.model_dump(),
        }
