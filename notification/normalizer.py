"""
Webhook Normalizer

Maps the CRM's inbound webhook shapes onto a NotificationRequest and
resolves who the notification is for.

Supported events:
    - InboundMessage: recipient is the contact's assigned user (looked up)
    - TaskCreate / TaskComplete / TaskDelete: recipient is the task's assignedTo

Anything else normalizes to None and is reported as unsupported; an event
with no assignee also normalizes to None. Neither case is an error.
"""

import logging
from typing import Optional, Dict, Any, Protocol

from notification.jobs import NotificationRequest, Recipient

logger = logging.getLogger(__name__)

UNKNOWN_CONTACT = 'Unknown Contact'

MESSAGE_EVENTS = {'inboundmessage'}

TASK_ACTIONS = {
    'taskcreate': 'created',
    'taskcomplete': 'completed',
    'taskdelete': 'deleted',
}

MESSAGE_TEXT_FIELDS = ('body', 'message', 'text', 'messageBody')


class ContactDirectory(Protocol):
    """Looks up which user a CRM contact is assigned to."""

    def get_assigned_user(self, account_id: str, contact_id: str) -> Optional[str]:
        ...


def canonical_event_type(event_type: Optional[str]) -> str:
    """'InboundMessage', 'inbound-message' and 'inbound_message' are the same event."""
    return (event_type or '').replace('-', '').replace('_', '').lower()


def is_supported(event_type: Optional[str]) -> bool:
    key = canonical_event_type(event_type)
    return key in MESSAGE_EVENTS or key in TASK_ACTIONS


def extract_message_text(raw: Dict[str, Any]) -> str:
    for field_name in MESSAGE_TEXT_FIELDS:
        value = raw.get(field_name)
        if isinstance(value, str) and value.strip():
            return value
    return ''


def extract_contact_name(raw: Dict[str, Any]) -> str:
    name = raw.get('contactName')
    if name:
        return name

    contact = raw.get('contact') or {}
    if contact.get('name'):
        return contact['name']

    full_name = ' '.join(
        part for part in (contact.get('firstName'), contact.get('lastName')) if part
    ).strip()
    if full_name:
        return full_name

    return raw.get('fullName') or UNKNOWN_CONTACT


class WebhookNormalizer:
    """Turns raw webhook payloads into NotificationRequests."""

    def __init__(self, contact_directory: ContactDirectory):
        self.contact_directory = contact_directory

    def resolve_message_recipient(self, account_id: str, contact_id: Optional[str]) -> Recipient:
        if not contact_id:
            return Recipient.UNASSIGNED
        user_id = self.contact_directory.get_assigned_user(account_id, contact_id)
        return Recipient.known(user_id) if user_id else Recipient.UNASSIGNED

    def normalize(self, event_type: Optional[str], raw: Dict[str, Any]) -> Optional[NotificationRequest]:
        """
        Normalize one webhook payload.

        Args:
            event_type: Event type name; falls back to the payload's "type" field
            raw: Webhook JSON body

        Returns:
            NotificationRequest, or None for unsupported or unassigned events

        Raises:
            ValueError: If a supported event carries no locationId
        """
        event_type = event_type or raw.get('type')
        key = canonical_event_type(event_type)

        if key in MESSAGE_EVENTS:
            return self._normalize_message(event_type, raw)
        if key in TASK_ACTIONS:
            return self._normalize_task(event_type, TASK_ACTIONS[key], raw)

        logger.info(f"Unsupported webhook event type: {event_type}")
        return None

    def _normalize_message(self, event_type: str, raw: Dict[str, Any]) -> Optional[NotificationRequest]:
        account_id = raw.get('locationId')
        if not account_id:
            raise ValueError(f"{event_type} webhook has no locationId")
        contact_id = raw.get('contactId')

        recipient = self.resolve_message_recipient(account_id, contact_id)
        if not recipient.is_assigned:
            logger.warning(
                f"Contact {contact_id} in account {account_id} has no assigned user - notification skipped"
            )
            return None

        return NotificationRequest(
            account_id=account_id,
            user_id=recipient.user_id,
            event_type=event_type,
            message_text=extract_message_text(raw),
            contact_name=extract_contact_name(raw),
            contact_id=contact_id,
            conversation_id=raw.get('conversationId'),
            message_id=raw.get('messageId'),
        )

    def _normalize_task(self, event_type: str, action: str, raw: Dict[str, Any]) -> Optional[NotificationRequest]:
        account_id = raw.get('locationId')
        if not account_id:
            raise ValueError(f"{event_type} webhook has no locationId")
        assigned_to = raw.get('assignedTo')

        if not assigned_to:
            logger.warning(f"Task event {event_type} in account {account_id} has no assignee - notification skipped")
            return None

        title = raw.get('title') or 'Untitled task'
        details = raw.get('body') or raw.get('description') or ''
        message_text = f"Task {action}: {title}"
        if details:
            message_text = f"{message_text}\n{details}"

        return NotificationRequest(
            account_id=account_id,
            user_id=assigned_to,
            event_type=event_type,
            message_text=message_text,
            contact_name=extract_contact_name(raw),
            contact_id=raw.get('contactId'),
            task_action=action,
            extra={'task_id': raw.get('id'), 'due_date': raw.get('dueDate')},
        )
