"""
Runtime wiring tests: platform payloads published on the bus end up on the
overlay.
"""

import asyncio

import pytest

from core.app import build_runtime, start_runtime, stop_runtime
from core.event_bus import PLATFORM_EVENT, VFX_COMMAND_RECEIVED
from services.twitch.api.chat import TwitchChatClient
from services.twitch.auth.manager import TwitchAuthManager
from services.twitch.workers.chat_worker import TwitchChatWorker
from services.youtube.api.chat import YouTubeChatClient
from services.youtube.workers.chat_worker import YouTubeChatWorker

TS = "2024-05-01T20:00:00Z"

RESUB_LINE = (
    "@display-name=Carol;id=n-1;msg-id=resub;msg-param-cumulative-months=3;msg-param-sub-plan=1000;user-id=9 "
    ":tmi.twitch.tv USERNOTICE #streamer :great stream"
)

SUPER_CHAT = {
    "id": "sc1",
    "snippet": {
        "type": "superChatEvent",
        "publishedAt": TS,
        "superChatDetails": {"amountMicros": "5000000", "currency": "USD", "userComment": "hi"},
    },
    "authorDetails": {"displayName": "viewer", "channelId": "UCviewer"},
}


@pytest.fixture
def runtime(make_config, actuator):
    config = make_config(
        displayQueue={"autoProcess": False},
        goals={"enabled": True},
        vfx={"commands": {"paypiggies": {"command": "!sub", "filename": "sub.webm"}}},
    )
    return build_runtime(config, actuator=actuator)


async def settle(condition, attempts=50):
    for _ in range(attempts):
        if condition():
            return True
        await asyncio.sleep(0)
    return condition()


def displayed(runtime):
    return [item.data["displayMessage"] for item in runtime.display_queue.pending()]


class TestPipeline:
    async def test_bus_event_reaches_queue_and_goal(self, runtime):
        await runtime.bus.publish(
            PLATFORM_EVENT,
            {
                "platform": "tiktok",
                "type": "gift",
                "data": {
                    "username": "Alice",
                    "userId": "u1",
                    "giftType": "Lion",
                    "giftCount": 1,
                    "amount": 500,
                    "currency": "coins",
                    "timestamp": TS,
                },
            },
        )

        assert displayed(runtime) == ["Alice sent 1x Lion gift (500 coins)"]
        assert runtime.goals.get_goal_state("tiktok")["formatted"] == "0500/1000 coins"
        assert runtime.router.stats["routed"] == 1

    async def test_twitch_resub_through_worker(self, runtime):
        worker = TwitchChatWorker(bus=runtime.bus, auth=TwitchAuthManager({}), channel="streamer")
        await worker.handle_message(TwitchChatClient.parse_line(RESUB_LINE))

        [item] = runtime.display_queue.pending()
        assert item.data["displayMessage"] == "Carol renewed subscription for 3 months!"
        assert item.vfx_config["filename"] == "sub.webm"
        assert runtime.goals.get_goal_state("twitch")["current"] == 350

    async def test_youtube_super_chat_through_worker(self, runtime):
        worker = YouTubeChatWorker(bus=runtime.bus, api_key="key", live_chat_id="chat-1")
        message = YouTubeChatClient(api_key="key", live_chat_id="chat-1")._normalize_message(SUPER_CHAT)
        await worker.handle_message(message)

        [item] = runtime.display_queue.pending()
        assert item.data["displayMessage"] == "viewer sent a $5.00 Super Chat: hi"
        assert item.data["goalUpdate"] == "$5.00/$1.00 USD"

    async def test_paid_alias_is_rejected(self, runtime):
        await runtime.bus.publish(
            PLATFORM_EVENT, {"platform": "twitch", "type": "subscription", "data": {"username": "a"}}
        )
        assert runtime.display_queue.get_queue_length() == 0
        assert runtime.router.stats["rejected"] == 1

    async def test_spam_is_aggregated_back_through_the_bus(self, runtime):
        def gift():
            return {
                "platform": "tiktok",
                "type": "gift",
                "data": {
                    "username": "bob",
                    "userId": "u9",
                    "giftType": "Rose",
                    "giftCount": 1,
                    "amount": 1,
                    "currency": "coins",
                    "timestamp": TS,
                },
            }

        for _ in range(3):
            await runtime.bus.publish(PLATFORM_EVENT, gift())
        assert runtime.display_queue.get_queue_length() == 2

        runtime.spam.process_aggregated_donation("u9")
        assert await settle(lambda: runtime.display_queue.get_queue_length() == 3)

        aggregated = runtime.display_queue.pending()[-1]
        assert "3" in aggregated.data["displayMessage"]
        assert runtime.goals.get_goal_state("tiktok")["current"] == 3
        runtime.spam.destroy()

    async def test_played_notification_triggers_vfx(self, runtime, actuator):
        commands = []
        runtime.bus.subscribe(VFX_COMMAND_RECEIVED, commands.append)
        await runtime.bus.publish(
            PLATFORM_EVENT,
            {
                "platform": "twitch",
                "type": "paypiggy",
                "data": {"username": "Carol", "tier": "1000", "timestamp": TS},
            },
        )
        await runtime.display_queue.process_queue()

        assert commands[0]["commandKey"] == "paypiggies"
        assert ("play_media", ("vfx-media", "sub.webm", "media/vfx/sub.webm")) in actuator.calls
        assert runtime.vfx.stats["successfulCommands"] == 1


class TestLifecycle:
    async def test_start_and_stop_without_platforms(self, runtime):
        start_runtime(runtime)
        assert runtime.scheduler.task_names() == ["spam:cleanup"]
        assert runtime.scheduler.platforms_started == []

        await stop_runtime(runtime)
        assert runtime.scheduler.task_names() == []
        assert runtime.bus.handler_count(PLATFORM_EVENT) == 0
        assert runtime.bus.handler_count(VFX_COMMAND_RECEIVED) == 0

    async def test_platforms_need_credentials(self, make_config, actuator, monkeypatch):
        monkeypatch.delenv("TWITCH_CHANNEL", raising=False)
        monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)
        config = make_config(twitch={"enabled": True}, youtube={"enabled": True})
        runtime = build_runtime(config, actuator=actuator)

        start_runtime(runtime)
        assert runtime.scheduler.platforms_started == []
        await stop_runtime(runtime)

    async def test_twitch_worker_started_and_stopped(self, make_config, actuator, monkeypatch):
        monkeypatch.setenv("TWITCH_CHANNEL", "streamer")
        monkeypatch.delenv("TWITCH_CLIENT_ID", raising=False)
        config = make_config(twitch={"enabled": True})
        runtime = build_runtime(config, actuator=actuator)

        start_runtime(runtime)
        assert runtime.scheduler.platforms_started == ["twitch"]
        await asyncio.sleep(0)

        await asyncio.wait_for(stop_runtime(runtime), timeout=2.0)
        assert runtime.scheduler.task_names() == []
