"""
Tests for the in-process event bus.
"""

import asyncio

from core.event_bus import VFX_EFFECT_COMPLETED, EventBus


class TestPublish:
    async def test_sync_and_async_handlers_in_order(self):
        bus = EventBus()
        seen = []

        def first(payload):
            seen.append(("sync", payload["n"]))

        async def second(payload):
            seen.append(("async", payload["n"]))

        bus.subscribe("topic", first)
        bus.subscribe("topic", second)

        delivered = await bus.publish("topic", {"n": 1})
        assert delivered == 2
        assert seen == [("sync", 1), ("async", 1)]

    async def test_failing_handler_does_not_stop_delivery(self):
        bus = EventBus()
        seen = []

        def broken(payload):
            raise ValueError("boom")

        bus.subscribe("topic", broken)
        bus.subscribe("topic", seen.append)

        await bus.publish("topic", {"ok": True})
        assert seen == [{"ok": True}]

    async def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe("topic", seen.append)
        unsubscribe()
        unsubscribe()

        assert await bus.publish("topic", {}) == 0
        assert bus.handler_count("topic") == 0
        assert seen == []


class TestWaitFor:
    async def test_reply_published_by_trigger_is_seen(self):
        bus = EventBus()

        async def trigger():
            await bus.publish(VFX_EFFECT_COMPLETED, {"correlationId": "other"})
            await bus.publish(VFX_EFFECT_COMPLETED, {"correlationId": "abc", "success": True})

        result = await bus.wait_for(
            VFX_EFFECT_COMPLETED,
            lambda p: p.get("correlationId") == "abc",
            timeout=1.0,
            trigger=trigger,
        )
        assert result == {"correlationId": "abc", "success": True}
        assert bus.handler_count(VFX_EFFECT_COMPLETED) == 0

    async def test_timeout_returns_none(self):
        bus = EventBus()
        result = await bus.wait_for("never", lambda p: True, timeout=0.01)
        assert result is None
        assert bus.handler_count("never") == 0

    async def test_reply_from_another_task(self):
        bus = EventBus()

        async def reply_later():
            await asyncio.sleep(0)
            await bus.publish("done", {"id": 7})

        task = asyncio.ensure_future(reply_later())
        result = await bus.wait_for("done", lambda p: p["id"] == 7, timeout=1.0)
        await task
        assert result == {"id": 7}

    async def test_timeout_covers_a_hung_trigger(self):
        bus = EventBus()
        hung = asyncio.Event()
        cancelled = []

        async def trigger():
            try:
                await hung.wait()
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        result = await asyncio.wait_for(
            bus.wait_for("done", lambda p: True, timeout=0.05, trigger=trigger),
            timeout=2.0,
        )
        assert result is None
        assert cancelled == [True]
        assert bus.handler_count("done") == 0
