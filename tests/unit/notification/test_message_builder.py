#!/usr/bin/env python3
"""
Tests for channel message formatting.
"""

import unittest
from datetime import datetime, timezone

from notification.jobs import NotificationRequest
from notification.message_builder import NotificationMessageBuilder, NotificationPayload, preview


def request(**overrides) -> NotificationRequest:
    data = {
        "account_id": "loc-1",
        "user_id": "user-1",
        "event_type": "InboundMessage",
        "message_text": "Hello <b>there</b>",
        "contact_name": "Jane Doe",
        "conversation_id": "conv-1",
    }
    data.update(overrides)
    return NotificationRequest(**data)


class TestPayload(unittest.TestCase):

    def test_message_payload(self):
        payload = NotificationMessageBuilder.build_payload(request(), is_priority=False)

        self.assertEqual(payload.title, "New message from Jane Doe")
        self.assertEqual(payload.body, "Hello <b>there</b>")
        self.assertEqual(
            payload.url, "https://app.gohighlevel.com/v2/location/loc-1/conversations/conv-1"
        )

    def test_task_title(self):
        payload = NotificationMessageBuilder.build_payload(request(task_action="completed"), is_priority=False)
        self.assertEqual(payload.title, "Task completed")

    def test_no_conversation_means_no_url(self):
        payload = NotificationMessageBuilder.build_payload(request(conversation_id=None), is_priority=False)
        self.assertIsNone(payload.url)

    def test_custom_url_template(self):
        payload = NotificationMessageBuilder.build_payload(
            request(), is_priority=False, url_template="https://crm.example/{account_id}/{conversation_id}"
        )
        self.assertEqual(payload.url, "https://crm.example/loc-1/conv-1")

    def test_preview_truncates(self):
        self.assertEqual(len(preview("x" * 500)), 100)
        self.assertEqual(preview(None), "")


class TestChannelFormats(unittest.TestCase):

    def setUp(self):
        self.payload = NotificationPayload(
            title="New message from Jane Doe",
            body="Hello <b>there</b>",
            contact_name="Jane <Doe>",
            url="https://app.example.com/c/1",
            conversation_id="conv-1",
            is_priority=True,
        )

    def test_push_message(self):
        message = NotificationMessageBuilder.build_push_message(self.payload)

        self.assertEqual(message["tag"], "conversation-notification-conv-1")
        self.assertTrue(message["requireInteraction"])
        self.assertEqual(message["data"]["conversationId"], "conv-1")

    def test_slack_message(self):
        now = datetime(2026, 10, 14, 9, 30, tzinfo=timezone.utc)
        message = NotificationMessageBuilder.build_slack_message(self.payload, now=now)

        self.assertEqual(message["text"], "🚨 New message from Jane Doe")
        self.assertIn("2026-10-14 09:30 UTC", message["blocks"][1]["fields"][1]["text"])
        self.assertEqual(message["blocks"][3]["type"], "actions")

    def test_email_html_escapes_content(self):
        html = NotificationMessageBuilder.build_email_html(self.payload)

        self.assertIn("Hello &lt;b&gt;there&lt;/b&gt;", html)
        self.assertIn("Jane &lt;Doe&gt;", html)
        self.assertIn('class="card priority"', html)
        self.assertNotIn("<b>there</b>", html)

    def test_email_subject(self):
        self.assertEqual(
            NotificationMessageBuilder.build_email_subject(self.payload),
            "[Priority] New message from Jane Doe"
        )


if __name__ == '__main__':
    unittest.main()
