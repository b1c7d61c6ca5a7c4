"""
Display queue: the single owner of the overlay.

Items are played one at a time in priority order. Each notification runs
text update -> goal text -> effects (VFX and TTS) -> display window -> clear,
and runs to completion before the next item starts. Once the queue drains,
the most recent chat line stays on the overlay until a notification needs
the screen.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.event_bus import VFX_COMMAND_RECEIVED, VFX_EFFECT_COMPLETED, EventBus
from services.overlay.actuator import OverlayActuator
from services.overlay.tts import create_tts_stages, estimate_display_ms
from shared.logging.logger import get_logger
from shared.notifications.errors import OverlayTransient, QueueFullError
from shared.notifications.events import CONCURRENT_EFFECT_TYPES, DisplayQueueItem

log = get_logger("services.overlay.display_queue")

DEFAULT_VFX_TIMEOUT_MS = 10000
DEFAULT_GIFT_VFX_DELAY_MS = 2000


class DisplayQueue:
    """
    Priority scheduler for overlay notifications.

    Responsibilities:
    - Order pending items by priority (highest first, FIFO on ties)
    - Keep at most one pending chat item
    - Sequence text, VFX and TTS for each item against the actuator
    - Log actuator failures per item and keep going
    """

    def __init__(
        self,
        actuator: OverlayActuator,
        config,
        *,
        bus: Optional[EventBus] = None,
        auto_process: Optional[bool] = None,
        max_queue_size: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if actuator is None:
            raise RuntimeError("DisplayQueue requires an overlay actuator")
        if config is None:
            raise RuntimeError("DisplayQueue requires config")

        self._actuator = actuator
        self._config = config
        self._bus = bus
        self._sleep = sleep

        self.auto_process = (
            auto_process
            if auto_process is not None
            else config.get_boolean("displayQueue", "autoProcess", True)
        )
        self.max_queue_size = int(
            max_queue_size
            if max_queue_size is not None
            else config.get_number("displayQueue", "maxQueueSize", 100)
        )

        self._queue: List[DisplayQueueItem] = []
        self._current: Optional[DisplayQueueItem] = None
        self._processing = False
        self._stopping = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._task: Optional[asyncio.Task] = None
        self._item_task: Optional[asyncio.Task] = None

        self._last_chat: Optional[DisplayQueueItem] = None
        self._chat_lingering = False

    # ------------------------------------------------------------------
    # Queue API
    # ------------------------------------------------------------------

    def add_item(self, item: DisplayQueueItem) -> int:
        """Insert `item` by priority. Returns its position in the pending list."""
        if not isinstance(item, DisplayQueueItem):
            raise TypeError("DisplayQueue.add_item expects a DisplayQueueItem")

        if item.is_chat:
            dropped = len(self._queue)
            self._queue = [queued for queued in self._queue if not queued.is_chat]
            dropped -= len(self._queue)
            if dropped:
                log.debug(f"[DisplayQueue] replaced {dropped} pending chat item(s)")

        if len(self._queue) >= self.max_queue_size:
            raise QueueFullError(f"Queue at capacity ({self.max_queue_size})")

        position = len(self._queue)
        for index, queued in enumerate(self._queue):
            if item.priority > queued.priority:
                position = index
                break
        self._queue.insert(position, item)
        if item.is_chat:
            self._last_chat = item

        log.debug(
            f"[DisplayQueue] added {item.type.value} (priority {item.priority}) "
            f"at {position}; length={len(self._queue)}"
        )

        if self.auto_process and not self._processing:
            self._ensure_task()

        return position

    def _ensure_task(self) -> None:
        if self._task is not None and not self._task.done():
            return
        try:
            self._task = asyncio.get_running_loop().create_task(self.process_queue())
        except RuntimeError:
            log.warning("[DisplayQueue] no running loop; items will wait for process_queue()")

    async def process_queue(self) -> None:
        if self._processing:
            return

        self._processing = True
        self._stopping = False
        self._idle.clear()
        log.debug("[DisplayQueue] processing started")
        try:
            while self._queue and not self._stopping:
                item = self._queue.pop(0)
                self._current = item
                self._item_task = asyncio.ensure_future(self._play(item))
                try:
                    await self._item_task
                except asyncio.CancelledError:
                    if not self._stopping:
                        raise
                    log.debug(f"[DisplayQueue] {item.type.value} aborted by stop()")
                except Exception as e:
                    log.error(f"[DisplayQueue] error processing {item.type.value}: {e}")
                    await self._hide(item)
                finally:
                    self._item_task = None
                    if not self._stopping:
                        self._current = None

            if not self._stopping:
                await self._show_lingering_chat()
        finally:
            self._processing = False
            self._idle.set()
            log.debug("[DisplayQueue] processing complete")

    async def stop(self) -> None:
        """
        Abort the item on screen, drop everything pending and clear the
        overlay. Works whether the loop runs as the auto-process task or is
        awaited directly by a caller.
        """
        self._stopping = True
        self._queue.clear()
        current = self._current
        task = self._task
        self._task = None

        if self._item_task is not None and not self._item_task.done():
            self._item_task.cancel()
        if self._processing:
            await self._idle.wait()
        elif task is not None and not task.done():
            task.cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

        if current is not None:
            await self._hide(current)
        if self._chat_lingering and self._last_chat is not None:
            await self._hide(self._last_chat)

        self._current = None
        self._last_chat = None
        self._chat_lingering = False
        log.info("[DisplayQueue] processing stopped and queue cleared")

    def clear_queue(self) -> None:
        """Drop pending items. The item on screen keeps playing."""
        self._queue.clear()

    def is_tts_enabled(self) -> bool:
        return self._config.is_tts_enabled()

    def get_queue_length(self) -> int:
        return len(self._queue)

    def get_current_display(self) -> Optional[DisplayQueueItem]:
        return self._current

    def pending(self) -> List[DisplayQueueItem]:
        return list(self._queue)

    # ------------------------------------------------------------------
    # Actuator helpers
    # ------------------------------------------------------------------

    async def _call(self, method: str, *args: Any) -> None:
        try:
            await getattr(self._actuator, method)(*args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise OverlayTransient(f"{method} failed: {e}") from e

    def _overlay(self, key: str, default: str) -> str:
        return self._config.get_string("overlay", key, default)

    def _sources_for(self, item: DisplayQueueItem):
        if item.is_chat:
            return (
                self._overlay("chatMsgScene", "chat-message-scene"),
                self._overlay("chatMsgTxt", "chat-message-text"),
            )
        return (
            self._overlay("notificationScene", "notification-scene"),
            self._overlay("notificationTxt", "notification-text"),
        )

    async def _hide(self, item: DisplayQueueItem) -> None:
        scene, source = self._sources_for(item)
        try:
            await self._call("clear_text_source", source)
            await self._call("set_source_visibility", scene, source, False)
        except OverlayTransient as e:
            log.warning(f"[DisplayQueue] failed to hide {item.type.value}: {e}")

    async def _delay_ms(self, ms: float) -> None:
        if ms and ms > 0:
            await self._sleep(ms / 1000)

    # ------------------------------------------------------------------
    # Per-item sequence
    # ------------------------------------------------------------------

    async def _play(self, item: DisplayQueueItem) -> None:
        scene, source = self._sources_for(item)
        text = item.data.get("displayMessage")
        if not text:
            raise OverlayTransient(f"{item.type.value} item has no displayMessage")

        log.debug(f"[DisplayQueue] showing {item.type.value} from {item.data.get('username')}")

        if self._chat_lingering:
            self._chat_lingering = False
            if not item.is_chat and self._last_chat is not None:
                await self._hide(self._last_chat)

        await self._call("update_text_source", source, text)
        await self._call("set_source_visibility", scene, source, True)

        if item.is_chat:
            duration = self._config.get_number("timing", "chatMessageDurationMs", 4500)
            await self._delay_ms(duration)
            if not self._queue:
                self._chat_lingering = True
                await self._delay_ms(self._config.get_number("timing", "transitionDelayMs", 200))
                return
        else:
            await self._update_goal(item)
            stages = create_tts_stages(item.data)
            if item.type in CONCURRENT_EFFECT_TYPES:
                await self._concurrent_effects(item, stages)
            else:
                await self._sequential_effects(item, stages)
            await self._delay_ms(self._duration_for(stages))

        await self._hide(item)
        await self._delay_ms(self._config.get_number("timing", "transitionDelayMs", 200))

    async def _show_lingering_chat(self) -> None:
        chat = self._last_chat
        if chat is None or self._chat_lingering or not chat.data.get("displayMessage"):
            return
        scene, source = self._sources_for(chat)
        try:
            await self._call("update_text_source", source, chat.data.get("displayMessage"))
            await self._call("set_source_visibility", scene, source, True)
        except OverlayTransient as e:
            log.warning(f"[DisplayQueue] failed to restore last chat line: {e}")
            return
        self._chat_lingering = True
        log.debug("[DisplayQueue] queue empty; last chat line restored")

    def _duration_for(self, stages: List[Dict[str, Any]]) -> float:
        configured = self._config.get_number("timing", "notificationDurationMs", None)
        if configured is not None:
            return configured
        return estimate_display_ms(stages)

    async def _update_goal(self, item: DisplayQueueItem) -> None:
        goal_text = item.data.get("goalUpdate")
        if not goal_text:
            return
        source = self._config.get_string("goals", f"{item.platform}GoalSource", "")
        if not source:
            return
        try:
            await self._call("update_text_source", source, goal_text)
        except OverlayTransient as e:
            log.warning(f"[DisplayQueue] goal text update failed for {item.platform}: {e}")

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    async def _speak_stages(self, item: DisplayQueueItem, stages: List[Dict[str, Any]]) -> None:
        if item.is_chat or not self.is_tts_enabled():
            return
        for stage in stages:
            await self._delay_ms(stage.get("delay", 0))
            await self._speak(item, stage)

    async def _speak(self, item: DisplayQueueItem, stage: Dict[str, Any]) -> None:
        tts_source = self._overlay("ttsTxt", "tts-text")
        await self._call("clear_text_source", tts_source)
        await self._call("update_text_source", tts_source, stage["text"])
        await self._call("speak", stage["text"], {"type": item.type.value, "stage": stage["type"]})

    def _vfx_payload(self, item: DisplayQueueItem, correlation_id: str) -> Dict[str, Any]:
        vfx = item.vfx_config or {}
        return {
            "command": vfx.get("command"),
            "commandKey": vfx.get("commandKey"),
            "filename": vfx.get("filename"),
            "mediaSource": vfx.get("mediaSource"),
            "username": item.data.get("username"),
            "userId": item.data.get("userId"),
            "platform": item.platform,
            "notificationType": item.type.value,
            "correlationId": correlation_id,
            "source": "display-queue",
            "vfxConfig": dict(vfx),
        }

    async def _sequential_effects(self, item: DisplayQueueItem, stages: List[Dict[str, Any]]) -> None:
        if item.vfx_config and self._bus is not None:
            correlation_id = str(uuid.uuid4())
            payload = self._vfx_payload(item, correlation_id)
            timeout_ms = self._config.get_number("displayQueue", "vfxTimeoutMs", DEFAULT_VFX_TIMEOUT_MS)

            completed = await self._bus.wait_for(
                VFX_EFFECT_COMPLETED,
                lambda p: p.get("correlationId") == correlation_id,
                timeout_ms / 1000,
                trigger=lambda: self._bus.publish(VFX_COMMAND_RECEIVED, payload),
            )
            if completed is None:
                log.warning(
                    f"[DisplayQueue] VFX {payload['commandKey']} did not complete within {timeout_ms}ms; continuing"
                )
        elif item.vfx_config:
            log.debug("[DisplayQueue] no event bus; skipping VFX emit")

        await self._speak_stages(item, stages)

    async def _concurrent_effects(self, item: DisplayQueueItem, stages: List[Dict[str, Any]]) -> None:
        jobs = [self._play_gift_media()]

        if self.is_tts_enabled():
            for stage in stages:
                jobs.append(self._speak_stage_after_delay(item, stage))

        if item.vfx_config and self._bus is not None:
            jobs.append(self._emit_gift_vfx(item))

        results = await asyncio.gather(*jobs, return_exceptions=True)
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                log.warning(f"[DisplayQueue] {item.type.value} effect failed: {result}")

    async def _speak_stage_after_delay(self, item: DisplayQueueItem, stage: Dict[str, Any]) -> None:
        await self._delay_ms(stage.get("delay", 0))
        await self._speak(item, stage)

    async def _play_gift_media(self) -> None:
        video = self._config.get_string("gifts", "giftVideoSource", "")
        audio = self._config.get_string("gifts", "giftAudioSource", "")
        if not video or not audio:
            log.debug("[DisplayQueue] gift media sources not configured; skipping")
            return
        await asyncio.gather(
            self._call("play_media", video),
            self._call("play_media", audio),
        )

    async def _emit_gift_vfx(self, item: DisplayQueueItem) -> None:
        await self._delay_ms(self._config.get_number("gifts", "giftVfxDelayMs", DEFAULT_GIFT_VFX_DELAY_MS))
        payload = self._vfx_payload(item, str(uuid.uuid4()))
        await self._bus.publish(VFX_COMMAND_RECEIVED, payload)


__all__ = ["DisplayQueue"]
