"""
In-flight notification job payloads.
"""

from dataclasses import dataclass, asdict, field
from typing import Optional, Dict, Any

JOB_NAME = "process-notification"

PRIORITY_NORMAL = 1
PRIORITY_HIGH = 10


@dataclass(frozen=True)
class Recipient:
    """
    Who a notification is for.

    Either a known user id or unassigned; use `Recipient.known(...)` and
    `Recipient.UNASSIGNED` rather than building one by hand.
    """
    user_id: Optional[str] = None

    @classmethod
    def known(cls, user_id: str) -> "Recipient":
        if not user_id:
            raise ValueError("A known recipient needs a user id")
        return cls(user_id=user_id)

    @property
    def is_assigned(self) -> bool:
        return self.user_id is not None


Recipient.UNASSIGNED = Recipient()


@dataclass
class NotificationRequest:
    """A normalized event, ready to be queued and dispatched."""
    account_id: str
    user_id: str
    event_type: str
    message_text: str = ''
    contact_name: str = 'Unknown Contact'
    contact_id: Optional[str] = None
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    task_action: Optional[str] = None  # created / completed / deleted for task events
    priority: int = PRIORITY_NORMAL
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationRequest":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
