"""
Tests for the push subscription lifecycle and the single-active-device invariant.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from database.models import PushSubscription
from database.repositories.push_subscription import PushSubscriptionRepository
from database.uow import notification_uow
from notification.subscriptions import PushSubscriptionManager

KEYS = {"p256dh": "BNc...", "auth": "tBH..."}


@pytest.fixture
def manager(session_factory):
    return PushSubscriptionManager(session_factory)


def _subscriptions(session_factory, account_id="loc-1", user_id="user-1"):
    with notification_uow(session_factory) as repos:
        return repos.subscriptions.list_for_user(account_id, user_id)


class TestSingleActiveDevice:

    def test_last_subscribe_wins(self, manager, session_factory):
        for i in range(4):
            manager.subscribe("loc-1", "user-1", f"https://push.example/ep-{i}", KEYS, {"browser": "Chrome"})

        subs = _subscriptions(session_factory)
        active = [s for s in subs if s.is_active]
        assert len(subs) == 4
        assert len(active) == 1
        assert active[0].endpoint == "https://push.example/ep-3"

    def test_other_users_are_untouched(self, manager):
        manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)
        manager.subscribe("loc-1", "user-2", "https://push.example/b", KEYS)

        assert manager.get_active("loc-1", "user-1").endpoint == "https://push.example/a"
        assert manager.get_active("loc-1", "user-2").endpoint == "https://push.example/b"

    def test_resubscribing_same_endpoint_is_idempotent(self, manager, session_factory):
        first = manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)
        second = manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)

        assert first == second
        assert len(_subscriptions(session_factory)) == 1

    def test_device_info_is_recorded(self, manager):
        manager.subscribe(
            "loc-1", "user-1", "https://push.example/a", KEYS,
            {"browser": "Firefox", "os": "Linux", "deviceId": "dev-1", "userAgent": "Mozilla/5.0"}
        )
        active = manager.get_active("loc-1", "user-1")
        assert active.device_id == "dev-1"
        assert active.device_label == "Firefox on Linux"

    def test_storage_rejects_two_active_rows(self, session_factory):
        with pytest.raises(IntegrityError):
            with notification_uow(session_factory) as repos:
                repos.session.add_all([
                    PushSubscription(account_id="loc-1", user_id="user-1", endpoint="e1", keys=KEYS, is_active=True),
                    PushSubscription(account_id="loc-1", user_id="user-1", endpoint="e2", keys=KEYS, is_active=True),
                ])
                repos.session.flush()

    def test_inactive_rows_do_not_conflict(self, session_factory):
        with notification_uow(session_factory) as repos:
            repos.session.add_all([
                PushSubscription(account_id="loc-1", user_id="user-1", endpoint="e1", keys=KEYS, is_active=False),
                PushSubscription(account_id="loc-1", user_id="user-1", endpoint="e2", keys=KEYS, is_active=False),
                PushSubscription(account_id="loc-1", user_id="user-1", endpoint="e3", keys=KEYS, is_active=True),
            ])

        assert len(_subscriptions(session_factory)) == 3

    def test_concurrent_subscribe_is_retried_until_one_device_remains(self, manager, session_factory, monkeypatch):
        manager.subscribe("loc-1", "user-1", "https://push.example/laptop", KEYS)

        real_deactivate = PushSubscriptionRepository.deactivate_others
        calls = []

        def deactivate_before_competitor_commits(repo, account_id, user_id, keep_endpoint):
            # First pass runs before the laptop row is visible, so it deactivates nothing
            calls.append(keep_endpoint)
            if len(calls) == 1:
                return 0
            return real_deactivate(repo, account_id, user_id, keep_endpoint)

        monkeypatch.setattr(PushSubscriptionRepository, "deactivate_others", deactivate_before_competitor_commits)

        manager.subscribe("loc-1", "user-1", "https://push.example/phone", KEYS)

        assert calls == ["https://push.example/phone", "https://push.example/phone"]
        active = [s for s in _subscriptions(session_factory) if s.is_active]
        assert [s.endpoint for s in active] == ["https://push.example/phone"]

    def test_persistent_conflict_gives_up(self, manager, session_factory, monkeypatch):
        manager.subscribe("loc-1", "user-1", "https://push.example/laptop", KEYS)
        calls = []

        def never_deactivates(repo, account_id, user_id, keep_endpoint):
            calls.append(keep_endpoint)
            return 0

        monkeypatch.setattr(PushSubscriptionRepository, "deactivate_others", never_deactivates)

        with pytest.raises(IntegrityError):
            manager.subscribe("loc-1", "user-1", "https://push.example/phone", KEYS)

        assert len(calls) == 5
        active = [s for s in _subscriptions(session_factory) if s.is_active]
        assert [s.endpoint for s in active] == ["https://push.example/laptop"]

    def test_subscribe_requires_user(self, manager):
        with pytest.raises(ValueError):
            manager.subscribe("loc-1", "", "https://push.example/a", KEYS)


class TestExpiry:

    def test_gone_marks_expired_and_inactive(self, manager):
        manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)

        assert manager.report_delivery_failure("https://push.example/a", 410) is True

        assert manager.get_active("loc-1", "user-1") is None
        status = manager.status("loc-1", "user-1")
        assert status == {
            "has_active_subscription": False,
            "has_expired_subscription": True,
            "active_count": 0,
        }

    def test_not_found_reason_is_distinct(self, manager, session_factory):
        manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)
        manager.report_delivery_failure("https://push.example/a", 404)

        sub = _subscriptions(session_factory)[0]
        assert sub.is_expired
        assert sub.expired_reason == "endpoint_not_found"

    def test_other_failures_leave_subscription_alone(self, manager):
        manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)

        assert manager.report_delivery_failure("https://push.example/a", 500) is False
        assert manager.get_active("loc-1", "user-1") is not None

    def test_resubscribe_clears_expired(self, manager, session_factory):
        manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)
        manager.report_delivery_failure("https://push.example/a", 410)

        manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)

        sub = _subscriptions(session_factory)[0]
        assert sub.is_active
        assert not sub.is_expired
        assert sub.expired_at is None
        assert sub.expired_reason is None

    def test_unknown_endpoint(self, manager):
        assert manager.report_delivery_failure("https://push.example/missing", 410) is False
        assert manager.unsubscribe("https://push.example/missing") is False


class TestUnsubscribe:

    def test_unsubscribe_deactivates(self, manager):
        manager.subscribe("loc-1", "user-1", "https://push.example/a", KEYS)

        assert manager.unsubscribe("https://push.example/a") is True
        assert manager.get_active("loc-1", "user-1") is None
        assert manager.status("loc-1")["has_expired_subscription"] is False
