#!/usr/bin/env python3
"""
API tests: webhooks, subscriptions, settings and notification stats.

The app runs against an AppContext wired with the in-memory queue, an
in-memory SQLite database and a mocked contact directory.
"""

import unittest
from unittest.mock import Mock

from fastapi.testclient import TestClient

from core.app_context import AppContext
from core.config_loader import AppConfig, QueueConfig
from database.uow import notification_uow
from notification.channels import DeliveryResult
from notification.exceptions import DeliveryError
from tests import make_test_engine, save_preferences
from web.backend.app import create_app
from web.backend.dependencies import get_app_context

KEYS = {"p256dh": "BNc...", "auth": "tBH..."}
SLACK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.engine = make_test_engine()
        self.directory = Mock()
        self.directory.get_assigned_user.return_value = "user-1"
        config = AppConfig(queue=QueueConfig(backend="memory"))
        config.channels.push.vapid_public_key = "BPublicKey"

        self.context = AppContext.build(config, contact_directory=self.directory, engine=self.engine)
        self.app = create_app()
        self.app.dependency_overrides[get_app_context] = lambda: self.context
        self.client = TestClient(self.app)

    def tearDown(self):
        self.app.dependency_overrides.clear()
        self.context.close()

    def subscribe(self, endpoint="https://push.example/ep", user_id="user-1"):
        return self.client.post("/api/subscriptions/subscribe", json={
            "locationId": "loc-1",
            "userId": user_id,
            "subscription": {"endpoint": endpoint, "keys": KEYS},
            "deviceInfo": {"browser": "Chrome", "os": "macOS"},
            "userAgent": "Mozilla/5.0",
        })


class TestHealth(ApiTestCase):

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")

    def test_webhooks_health(self):
        self.assertEqual(self.client.get("/webhooks/health").json()["service"], "webhooks")


class TestWebhooks(ApiTestCase):

    def test_inbound_message_is_queued(self):
        response = self.client.post("/webhooks/inbound-message", json={
            "locationId": "loc-1",
            "contactId": "contact-1",
            "conversationId": "conv-1",
            "body": "Hello",
        })

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["status"], "queued")
        self.assertIsNotNone(data["job_id"])
        self.assertEqual(self.context.queue.size(), 1)

    def test_type_from_body(self):
        response = self.client.post("/webhooks", json={
            "type": "TaskCreate", "locationId": "loc-1", "assignedTo": "user-2", "title": "Call"
        })
        self.assertEqual(response.json()["status"], "queued")

    def test_unassigned_contact_is_acknowledged(self):
        self.directory.get_assigned_user.return_value = None

        response = self.client.post("/webhooks/InboundMessage", json={"locationId": "loc-1", "contactId": "c"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "unassigned")
        self.assertEqual(self.context.queue.size(), 0)

    def test_unsupported_event_is_acknowledged(self):
        response = self.client.post("/webhooks/OutboundMessage", json={"locationId": "loc-1"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "unsupported")

    def test_failures_still_return_200(self):
        self.directory.get_assigned_user.side_effect = RuntimeError("CRM down")

        response = self.client.post("/webhooks/InboundMessage", json={"locationId": "loc-1", "contactId": "c"})

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["success"])
        self.assertEqual(response.json()["status"], "failed")

    def test_malformed_body_still_returns_200(self):
        response = self.client.post(
            "/webhooks/InboundMessage",
            content=b"not json",
            headers={"Content-Type": "application/json"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["success"])

    def test_conversation_unread_is_ignored(self):
        response = self.client.post("/webhooks/conversation-unread", json={"locationId": "loc-1"})
        self.assertEqual(response.json()["status"], "ignored")


class TestSubscriptions(ApiTestCase):

    def test_vapid_public_key(self):
        response = self.client.get("/api/subscriptions/vapid-public-key")
        self.assertEqual(response.json(), {"success": True, "publicKey": "BPublicKey"})

    def test_subscribe_and_status(self):
        response = self.subscribe()

        self.assertEqual(response.status_code, 200)
        self.assertIn("subscriptionId", response.json())

        status = self.client.get("/api/subscriptions/status", params={"locationId": "loc-1", "userId": "user-1"})
        self.assertEqual(status.json(), {
            "success": True,
            "hasActiveSubscription": True,
            "hasExpiredSubscription": False,
            "activeCount": 1,
        })

    def test_second_device_replaces_first(self):
        self.subscribe("https://push.example/laptop")
        self.subscribe("https://push.example/phone")

        active = self.context.subscription_manager.get_active("loc-1", "user-1")
        self.assertEqual(active.endpoint, "https://push.example/phone")
        self.assertEqual(active.device_label, "Chrome on macOS")

    def test_subscribe_requires_user(self):
        response = self.client.post("/api/subscriptions/subscribe", json={
            "locationId": "loc-1",
            "subscription": {"endpoint": "https://push.example/ep", "keys": KEYS},
        })

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["type"], "ValidationError")

    def test_unsubscribe(self):
        self.subscribe()

        response = self.client.post("/api/subscriptions/unsubscribe", json={"endpoint": "https://push.example/ep"})

        self.assertTrue(response.json()["success"])
        self.assertIsNone(self.context.subscription_manager.get_active("loc-1", "user-1"))

    def test_status_requires_location(self):
        self.assertEqual(self.client.get("/api/subscriptions/status").status_code, 400)


class TestTestNotification(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.slack = Mock()
        self.slack.send.return_value = DeliveryResult(channel="slack")
        self.push = Mock()
        self.push.send.return_value = DeliveryResult(channel="push")
        self.context.channels["slack"] = self.slack
        self.context.channels["push"] = self.push

    def test_slack_test_uses_configured_webhook(self):
        save_preferences(self.context.session_factory, channels={"slack": {"enabled": True, "webhook_url": SLACK_URL}})

        response = self.client.post("/api/subscriptions/test", json={"locationId": "loc-1", "channel": "slack"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.slack.send.call_args[0][0], SLACK_URL)

    def test_missing_destination_is_a_client_error(self):
        response = self.client.post("/api/subscriptions/test", json={"locationId": "loc-1", "channel": "email"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["type"], "ChannelNotReadyException")

    def test_push_test_needs_active_subscription(self):
        response = self.client.post(
            "/api/subscriptions/test", json={"locationId": "loc-1", "userId": "user-1", "channel": "push"}
        )
        self.assertEqual(response.status_code, 400)

        self.subscribe()
        response = self.client.post(
            "/api/subscriptions/test", json={"locationId": "loc-1", "userId": "user-1", "channel": "push"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.push.send.call_args[0][0]["endpoint"], "https://push.example/ep")

    def test_delivery_failure_is_reported(self):
        save_preferences(self.context.session_factory, channels={"slack": {"enabled": True, "webhook_url": SLACK_URL}})
        self.slack.send.side_effect = DeliveryError("slack", "Slack API error: 500")

        response = self.client.post("/api/subscriptions/test", json={"locationId": "loc-1", "channel": "slack"})

        self.assertEqual(response.status_code, 502)
        self.assertFalse(response.json()["success"])

    def test_unknown_channel_is_rejected(self):
        response = self.client.post("/api/subscriptions/test", json={"locationId": "loc-1", "channel": "fax"})
        self.assertEqual(response.status_code, 400)


class TestSettings(ApiTestCase):

    def test_get_creates_defaults(self):
        response = self.client.get("/api/settings", params={"locationId": "loc-1"})

        self.assertEqual(response.status_code, 200)
        preferences = response.json()["preferences"]
        self.assertTrue(preferences["channels"]["push"]["enabled"])
        self.assertFalse(preferences["filters"]["business_hours_only"])

    def test_partial_update(self):
        response = self.client.post("/api/settings", json={
            "locationId": "loc-1",
            "filters": {"business_hours_only": True, "priority_keywords": ["urgent"]},
        })

        self.assertEqual(response.status_code, 200)
        preferences = response.json()["preferences"]
        self.assertTrue(preferences["filters"]["business_hours_only"])
        self.assertEqual(preferences["filters"]["priority_keywords"], ["urgent"])
        self.assertTrue(preferences["channels"]["push"]["enabled"])

    def test_invalid_update_is_rejected(self):
        response = self.client.post("/api/settings", json={
            "locationId": "loc-1",
            "filters": {"business_hours": {"days": ["someday"]}},
        })

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["type"], "InvalidSettingsException")

    def test_reset(self):
        self.client.post("/api/settings", json={"locationId": "loc-1", "features": {"test_mode": True}})

        response = self.client.delete("/api/settings", params={"locationId": "loc-1"})

        self.assertEqual(response.json()["message"], "Preferences reset to defaults")
        self.assertFalse(response.json()["preferences"]["features"]["test_mode"])


class TestNotificationStats(ApiTestCase):

    def add_log(self, **fields):
        fields.setdefault("account_id", "loc-1")
        fields.setdefault("channel", "push")
        fields.setdefault("status", "sent")
        with notification_uow(self.context.session_factory) as repos:
            return str(repos.logs.add(**fields).id)

    def test_stats(self):
        self.add_log()
        self.add_log(status="failed")
        self.add_log(channel="slack")

        response = self.client.get("/api/notifications/stats", params={"locationId": "loc-1", "days": 7})

        data = response.json()
        self.assertEqual(data["locationId"], "loc-1")
        self.assertEqual(data["total"], 3)
        self.assertEqual(len(data["stats"]), 3)

    def test_stats_window_is_bounded(self):
        response = self.client.get("/api/notifications/stats", params={"locationId": "loc-1", "days": 365})
        self.assertEqual(response.status_code, 400)

    def test_mark_clicked(self):
        log_id = self.add_log()

        self.assertEqual(self.client.post(f"/api/notifications/{log_id}/clicked").status_code, 200)
        self.assertEqual(self.client.post(f"/api/notifications/{log_id}/clicked").status_code, 404)

    def test_mark_clicked_unknown_id(self):
        self.assertEqual(self.client.post("/api/notifications/not-a-uuid/clicked").status_code, 404)

    def test_queue_status(self):
        self.client.post("/webhooks/InboundMessage", json={"locationId": "loc-1", "contactId": "c", "body": "hi"})

        data = self.client.get("/api/notifications/queue-status").json()

        self.assertTrue(data["success"])
        self.assertEqual(data["queue_length"], 1)
        self.assertTrue(data["connected"])

    def test_dead_letters(self):
        data = self.client.get("/api/notifications/dead-letters").json()
        self.assertEqual(data, {"success": True, "jobs": []})


if __name__ == '__main__':
    unittest.main()
