"""
Tests for the notification manager, including the end-to-end flows from
platform payload to display queue.
"""

import pytest

from core.goals import GoalTracker
from core.notification_manager import NotificationManager
from services.overlay.display_queue import DisplayQueue
from services.users.tracking import UserTrackingService
from services.vfx.commands import VFXCommandService
from shared.notifications.events import EventType, get_priority

TS = "2024-05-01T20:00:00Z"


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class StubSpamDetector:
    """Detector double that answers with a fixed verdict and counts calls."""

    def __init__(self, should_show):
        self.should_show = should_show
        self.calls = []

    def handle_donation_spam(self, user_id, username, unit_amount, gift_type, gift_count, platform):
        self.calls.append((user_id, username, unit_amount, gift_type, gift_count, platform))
        return {"shouldShow": self.should_show, "aggregatedMessage": None}


@pytest.fixture
def goals_config(make_config):
    return make_config(goals={"enabled": True})


@pytest.fixture
def goals(goals_config):
    tracker = GoalTracker(goals_config)
    tracker.initialize()
    return tracker


def make_manager(config, queue, **kwargs):
    return NotificationManager(config, queue, **kwargs)


class TestEndToEnd:
    async def test_tiktok_donation_updates_goal_and_queue(self, goals_config, goals, recording_queue):
        manager = make_manager(goals_config, recording_queue, goal_tracker=goals)

        result = await manager.handle_notification(
            "gift",
            "tiktok",
            {
                "username": "Alice",
                "userId": "u1",
                "giftType": "Rose",
                "giftCount": 5,
                "amount": 50,
                "currency": "coins",
                "timestamp": TS,
            },
        )

        assert result["success"] is True
        assert result["goal"]["newTotal"] == 50
        assert result["goal"]["formatted"] == "0050/1000 coins"
        assert result["goal"]["percentage"] == 5
        assert len(recording_queue.items) == 1
        item = recording_queue.items[0]
        assert item.priority == get_priority(EventType.GIFT)
        assert item.data["goalUpdate"] == "0050/1000 coins"

    async def test_youtube_super_chat_copy(self, config, recording_queue):
        manager = make_manager(config, recording_queue)

        await manager.handle_notification(
            "gift",
            "youtube",
            {
                "username": "SuperChatFan",
                "amount": 25,
                "currency": "USD",
                "giftType": "Super Chat",
                "giftCount": 1,
                "message": "Great stream!",
                "timestamp": TS,
            },
        )

        data = recording_queue.items[0].data
        for text in (data["displayMessage"], data["logMessage"]):
            assert "SuperChatFan" in text
            assert "Super Chat" in text
            assert "25" in text

    async def test_twitch_tier_one_resub(self, config, recording_queue):
        manager = make_manager(config, recording_queue)

        await manager.handle_notification(
            "paypiggy",
            "twitch",
            {"username": "test_user_13", "tier": "1000", "months": 3, "isRenewal": True, "timestamp": TS},
        )

        display = recording_queue.items[0].data["displayMessage"]
        assert display == "test_user_13 renewed subscription for 3 months!"
        assert "Tier" not in display

    async def test_raid_preempts_pending_chat(self, config, actuator):
        queue = DisplayQueue(actuator, config, auto_process=False)
        manager = make_manager(config, queue)

        await manager.handle_chat_message("twitch", {"username": "Viewer", "message": "hi"})
        await manager.handle_notification("raid", "twitch", {"username": "Raider", "viewerCount": 5})
        await queue.process_queue()

        shown = [args[1] for name, args in actuator.calls if name == "update_text_source"]
        assert shown[0] == "Incoming raid from Raider with 5 viewers!"
        assert "Viewer" in shown[1]

    async def test_spam_detection_short_circuits(self, config, recording_queue):
        spam = StubSpamDetector(should_show=False)
        manager = make_manager(config, recording_queue, spam_detector=spam)

        result = await manager.handle_notification(
            "gift",
            "tiktok",
            {"username": "a", "giftType": "Rose", "giftCount": 1, "amount": 1, "currency": "coins", "timestamp": TS},
        )

        assert result == {
            "success": False,
            "suppressed": True,
            "reason": "spam_detection",
            "notificationType": "gift",
            "platform": "tiktok",
        }
        assert len(spam.calls) == 1
        assert recording_queue.items == []


class TestGating:
    async def test_disabled_kind(self, make_config, recording_queue):
        manager = make_manager(make_config(twitch={"followsEnabled": False}), recording_queue)
        result = await manager.handle_notification("follow", "twitch", {"username": "a"})
        assert result["disabled"] is True
        assert result["error"] == "Notifications disabled"

    async def test_duplicate_ids_dropped(self, config, recording_queue):
        manager = make_manager(config, recording_queue)
        first = await manager.handle_notification("follow", "tiktok", {"username": "a", "id": "evt-1"})
        second = await manager.handle_notification("follow", "tiktok", {"username": "a", "id": "evt-1"})
        assert first["success"] is True
        assert second["reason"] == "duplicate"
        assert len(recording_queue.items) == 1

    async def test_zero_fiat_amount_filtered(self, config, recording_queue):
        manager = make_manager(config, recording_queue)
        result = await manager.handle_notification(
            "gift",
            "youtube",
            {"username": "a", "giftType": "Super Chat", "giftCount": 1, "amount": 0, "currency": "USD", "timestamp": TS},
        )
        assert result["filtered"] is True
        assert result["reason"] == "Zero amount not displayed"

    @pytest.mark.parametrize(
        "kind, platform, data, error",
        [
            ("follow", 42, {"username": "a"}, "Invalid platform type"),
            ("follow", "tiktok", "nope", "Invalid notification data"),
            ("subscription", "twitch", {"username": "a"}, "Unsupported paid alias"),
            ("hug", "twitch", {"username": "a"}, "Unknown notification type"),
            ("chat-message", "twitch", {"username": "a"}, "Unknown notification type"),
            ("follow", "tiktok", {"username": "{x}"}, "Missing username"),
        ],
    )
    async def test_rejections(self, config, recording_queue, kind, platform, data, error):
        manager = make_manager(config, recording_queue)
        result = await manager.handle_notification(kind, platform, data)
        assert result["success"] is False
        assert result["error"] == error
        assert recording_queue.items == []

    async def test_build_failure_is_reported(self, config, recording_queue):
        manager = make_manager(config, recording_queue)
        result = await manager.handle_notification("raid", "twitch", {"username": "a"})
        assert result["error"].startswith("Notification build failed")

    async def test_queue_full_is_reported(self, config, actuator):
        queue = DisplayQueue(actuator, config, auto_process=False, max_queue_size=1)
        manager = make_manager(config, queue)
        await manager.handle_notification("follow", "tiktok", {"username": "a"})
        result = await manager.handle_notification("follow", "tiktok", {"username": "b"})
        assert result["error"].startswith("Display queue error")


class TestSuppression:
    async def test_user_suppressed_after_limit(self, config, recording_queue):
        clock = FakeClock()
        manager = make_manager(config, recording_queue, clock=clock)

        for _ in range(5):
            result = await manager.handle_notification("follow", "tiktok", {"username": "a", "userId": "u1"})
            assert result["success"] is True

        blocked = await manager.handle_notification("follow", "tiktok", {"username": "a", "userId": "u1"})
        assert blocked["reason"] == "user_suppression"

        other = await manager.handle_notification("follow", "tiktok", {"username": "b", "userId": "u2"})
        assert other["success"] is True

    async def test_suppression_expires(self, config, recording_queue):
        clock = FakeClock()
        manager = make_manager(config, recording_queue, clock=clock)
        for _ in range(6):
            await manager.handle_notification("follow", "tiktok", {"username": "a", "userId": "u1"})

        clock.advance(301)
        manager.cleanup_suppression_data()
        result = await manager.handle_notification("follow", "tiktok", {"username": "a", "userId": "u1"})
        assert result["success"] is True

    async def test_suppression_disabled(self, make_config, recording_queue):
        manager = make_manager(make_config(general={"userSuppressionEnabled": False}), recording_queue)
        for _ in range(8):
            result = await manager.handle_notification("follow", "tiktok", {"username": "a", "userId": "u1"})
        assert result["success"] is True

    def test_cleanup_task_not_started_in_test_mode(self, config, recording_queue):
        manager = make_manager(config, recording_queue)
        assert manager.start_cleanup_task() is None


class TestGreetingsAndGoals:
    async def test_greeting_requires_first_message_source(self, config, recording_queue):
        manager = make_manager(config, recording_queue)
        result = await manager.handle_notification("greeting", "tiktok", {"username": "a", "userId": "u1"})
        assert result["error"].startswith("First message check failed")

    async def test_greeting_only_for_first_message(self, config, recording_queue):
        manager = make_manager(config, recording_queue, user_tracking=UserTrackingService())
        first = await manager.handle_notification("greeting", "tiktok", {"username": "a", "userId": "u1"})
        again = await manager.handle_notification("greeting", "tiktok", {"username": "a", "userId": "u1"})
        assert first["success"] is True
        assert again["reason"] == "not_first_message"

    async def test_goals_untouched_when_disabled(self, config, recording_queue):
        goals = GoalTracker(config)
        goals.initialize()
        manager = make_manager(config, recording_queue, goal_tracker=goals)

        result = await manager.handle_notification(
            "gift",
            "twitch",
            {"username": "a", "giftType": "bits", "giftCount": 1, "amount": 100, "currency": "bits", "timestamp": TS},
        )
        assert result["goal"] is None
        assert goals.get_goal_state("twitch")["current"] == 0

    async def test_gifted_subs_count_as_equivalents(self, goals_config, goals, recording_queue):
        manager = make_manager(goals_config, recording_queue, goal_tracker=goals)
        result = await manager.handle_notification(
            "giftpaypiggy", "twitch", {"username": "a", "giftCount": 2, "tier": "1000", "timestamp": TS}
        )
        assert result["goal"]["newTotal"] == 700

    async def test_aggregated_gift_skips_spam_and_uses_goal_amount(self, goals_config, goals, recording_queue):
        spam = StubSpamDetector(should_show=False)
        manager = make_manager(goals_config, recording_queue, goal_tracker=goals, spam_detector=spam)

        result = await manager.handle_notification(
            "gift",
            "tiktok",
            {
                "username": "a",
                "userId": "u1",
                "giftType": "Rose",
                "giftCount": 4,
                "amount": 4,
                "currency": "coins",
                "isAggregated": True,
                "goalAmount": 2,
                "timestamp": TS,
            },
        )

        assert result["success"] is True
        assert spam.calls == []
        assert result["goal"]["newTotal"] == 2

    async def test_stream_start_resets_goals_when_configured(self, make_config, recording_queue):
        config = make_config(goals={"enabled": True, "resetOnStreamStart": True})
        goals = GoalTracker(config)
        goals.initialize()
        goals.add_donation("youtube", 3)
        manager = make_manager(config, recording_queue, goal_tracker=goals)

        result = await manager.handle_stream_status("youtube", {"status": "live"})
        assert result["isLive"] is True
        assert result["goalsReset"] is True
        assert goals.get_goal_state("youtube")["current"] == 0

    async def test_stream_offline_keeps_goals(self, goals_config, goals, recording_queue):
        goals.add_donation("youtube", 3)
        manager = make_manager(goals_config, recording_queue, goal_tracker=goals)
        result = await manager.handle_stream_status("youtube", {"status": "offline"})
        assert result["goalsReset"] is False
        assert goals.get_goal_state("youtube")["current"] == 3


class TestChat:
    async def test_first_chat_queues_greeting(self, config, recording_queue):
        manager = make_manager(config, recording_queue, user_tracking=UserTrackingService())

        first = await manager.handle_chat_message("twitch", {"username": "alice", "userId": "7", "message": "hi"})
        second = await manager.handle_chat_message("twitch", {"username": "alice", "userId": "7", "message": "again"})

        assert first["chat"]["success"] is True
        assert first["greeting"]["success"] is True
        assert second["greeting"] is None
        kinds = [item.type for item in recording_queue.items]
        assert kinds == [EventType.CHAT_MESSAGE, EventType.GREETING, EventType.CHAT_MESSAGE]

    async def test_command_trigger_becomes_command_notification(self, make_config, recording_queue, bus, actuator):
        config = make_config(vfx={"commands": {"greetings": {"command": "!hello", "filename": "greeting.webm"}}})
        vfx = VFXCommandService(config, bus=bus, actuator=actuator)
        manager = make_manager(config, recording_queue, vfx_service=vfx)

        result = await manager.handle_chat_message("twitch", {"username": "alice", "message": "!HELLO everyone"})

        assert result["command"]["success"] is True
        assert result["command"]["vfxConfig"]["filename"] == "greeting.webm"
        command_item = recording_queue.items[-1]
        assert command_item.type is EventType.COMMAND
        assert command_item.data["displayMessage"] == "alice used command !hello"

    async def test_empty_chat_not_queued(self, config, recording_queue):
        manager = make_manager(config, recording_queue)
        result = await manager.handle_chat_message("twitch", {"username": "alice", "message": "   "})
        assert result["success"] is False
        assert recording_queue.items == []

    async def test_chat_requires_username(self, config, recording_queue):
        manager = make_manager(config, recording_queue)
        result = await manager.handle_chat_message("twitch", {"message": "hi"})
        assert result == {"success": False, "error": "Missing username"}
