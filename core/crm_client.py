"""CRM contacts API client used to resolve a contact's assigned user."""

import logging
from typing import Optional

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_fixed,
    retry_if_exception,
    before_sleep_log
)

from core.config_loader import CrmConfig
from notification.exceptions import ContactLookupError

logger = logging.getLogger(__name__)


def _is_retryable_error(exc: Exception) -> bool:
    """
    Determine if an exception is retryable.

    Only retries on timeouts, server errors (5xx) and connection errors
    without a response. Does NOT retry on client errors (4xx).
    """
    if isinstance(exc, requests.Timeout):
        return True

    if isinstance(exc, requests.RequestException):
        response = getattr(exc, 'response', None)
        if response is not None:
            return response.status_code >= 500
        return True

    return False


class CrmContactClient:
    """
    Contact directory backed by the CRM REST API.

    Owns a requests.Session for connection reuse. A contact that does not
    exist resolves to "unassigned" rather than an error.
    """

    def __init__(self, config: Optional[CrmConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or CrmConfig()
        self.base_url = self.config.api_base_url.rstrip('/')
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'Version': self.config.api_version,
        })
        if self.config.access_token:
            self.session.headers['Authorization'] = f"Bearer {self.config.access_token}"

        logger.info(f"CrmContactClient initialized: base_url={self.base_url}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(1),
        retry=retry_if_exception(_is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    def _fetch_contact(self, contact_id: str) -> Optional[dict]:
        response = self.session.get(
            f"{self.base_url}/contacts/{contact_id}",
            timeout=self.config.request_timeout_seconds
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json().get('contact') or {}

    def get_assigned_user(self, account_id: str, contact_id: str) -> Optional[str]:
        """
        Return the id of the user the contact is assigned to, or None.

        Raises:
            ContactLookupError: If the CRM could not be reached or rejected the request
        """
        try:
            contact = self._fetch_contact(contact_id)
        except requests.RequestException as e:
            raise ContactLookupError(f"Failed to look up contact {contact_id} in account {account_id}: {e}") from e

        if contact is None:
            logger.warning(f"Contact {contact_id} not found in account {account_id}")
            return None

        if contact.get('locationId') and contact['locationId'] != account_id:
            logger.warning(f"Contact {contact_id} belongs to a different account than {account_id}")
            return None

        return contact.get('assignedTo') or None
