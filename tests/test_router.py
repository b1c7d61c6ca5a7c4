"""
Tests for the platform event router.
"""

import pytest

from core.event_bus import PLATFORM_EVENT
from core.router import PlatformEventRouter

TIMESTAMP = "2024-05-01T20:00:00Z"


class FakeManager:
    """Records which entry point each routed event reached."""

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def handle_notification(self, kind, platform, data):
        if self.fail:
            raise RuntimeError("manager exploded")
        self.calls.append(("notification", kind, platform, data))
        return {"success": True, "notificationType": kind}

    async def handle_chat_message(self, platform, data):
        self.calls.append(("chat", platform, data))
        return {"success": True}

    async def handle_stream_status(self, platform, data):
        self.calls.append(("status", platform, data))
        return {"success": True, "status": data["status"]}


@pytest.fixture
def manager():
    return FakeManager()


@pytest.fixture
def router(bus, manager):
    return PlatformEventRouter(bus, manager)


class TestConstruction:
    def test_requires_bus_and_manager(self, bus, manager):
        with pytest.raises(RuntimeError):
            PlatformEventRouter(None, manager)
        with pytest.raises(RuntimeError):
            PlatformEventRouter(bus, None)

    def test_start_is_idempotent(self, bus, router):
        router.start()
        router.start()
        assert router.is_subscribed
        assert bus.handler_count(PLATFORM_EVENT) == 1

        router.dispose()
        assert not router.is_subscribed
        assert bus.handler_count(PLATFORM_EVENT) == 0


class TestDispatch:
    async def test_notification_kinds_reach_handle_notification(self, router, manager):
        result = await router.route_event(
            {"platform": "TikTok", "type": "follow", "data": {"username": " alice "}}
        )
        assert result["success"] is True
        assert manager.calls == [("notification", "follow", "tiktok", {"username": "alice"})]
        assert router.stats["routed"] == 1

    async def test_chat_and_status_use_their_own_entry_points(self, router, manager):
        await router.route_event(
            {"platform": "twitch", "type": "chat-message", "data": {"username": "bob", "message": "hi"}}
        )
        await router.route_event({"platform": "youtube", "type": "stream-status", "data": {"status": "live"}})
        assert [call[0] for call in manager.calls] == ["chat", "status"]

    async def test_nested_user_and_message_are_flattened(self, router, manager):
        await router.route_event(
            {
                "platform": "twitch",
                "type": "chat-message",
                "data": {"user": {"displayName": "Bob", "id": 9}, "message": {"text": "yo"}},
            }
        )
        _, _, data = manager.calls[0]
        assert data["username"] == "Bob"
        assert data["userId"] == 9
        assert data["message"] == "yo"
        assert "user" not in data

    async def test_events_published_on_bus_are_routed(self, bus, router, manager):
        router.start()
        await bus.publish(PLATFORM_EVENT, {"platform": "twitch", "type": "follow", "data": {"username": "c"}})
        assert manager.calls[0][1] == "follow"


class TestRejections:
    async def test_paid_alias(self, router, manager):
        result = await router.route_event({"platform": "twitch", "type": "subscription", "data": {"username": "a"}})
        assert result["error"] == "Unsupported paid alias event type: subscription"
        assert manager.calls == []

    async def test_unknown_type(self, router):
        result = await router.route_event({"platform": "twitch", "type": "hug", "data": {}})
        assert result["error"] == "Unknown platform event type: hug"

    async def test_unknown_platform(self, router):
        result = await router.route_event({"platform": "kick", "type": "follow", "data": {"username": "a"}})
        assert result["success"] is False
        assert router.stats["rejected"] == 1

    async def test_missing_fields_are_listed(self, router):
        result = await router.route_event(
            {"platform": "tiktok", "type": "gift", "data": {"username": "a", "giftType": "Rose", "timestamp": TIMESTAMP}}
        )
        assert result["missingFields"] == ["giftCount", "amount", "currency"]
        assert result["error"] == "Missing required field(s) for gift: giftCount, amount, currency"
        assert result["platform"] == "tiktok"

    async def test_raid_viewer_count_must_be_integer(self, router):
        result = await router.route_event(
            {"platform": "twitch", "type": "raid", "data": {"username": "a", "viewerCount": "lots"}}
        )
        assert result["error"].startswith("Invalid viewerCount for raid")

    async def test_monetization_needs_timestamp(self, router):
        result = await router.route_event(
            {
                "platform": "tiktok",
                "type": "gift",
                "data": {"username": "a", "giftType": "Rose", "giftCount": 1, "amount": 1, "currency": "coins"},
            }
        )
        assert result["error"] == "gift event requires a valid timestamp"
        assert result["missingFields"] == ["timestamp"]

    async def test_error_payload_only_needs_username(self, router, manager):
        result = await router.route_event(
            {
                "platform": "youtube",
                "type": "gift",
                "data": {"username": "a", "isError": True, "timestamp": TIMESTAMP},
            }
        )
        assert result["success"] is True
        assert manager.calls[0][1] == "gift"

    async def test_non_dict_event(self, router):
        result = await router.route_event("follow")
        assert result["success"] is False


class TestHandlerFailure:
    async def test_handler_exception_becomes_result(self, bus):
        router = PlatformEventRouter(bus, FakeManager(fail=True))
        router.start()

        result = await router.route_event({"platform": "tiktok", "type": "follow", "data": {"username": "a"}})
        assert result["error"] == "Handler failed: manager exploded"
        assert router.stats["failed"] == 1
        assert router.is_subscribed
