from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from shared.logging.logger import get_logger

log = get_logger("core.event_bus")

PLATFORM_EVENT = "platform:event"
VFX_COMMAND_RECEIVED = "vfx:command-received"
VFX_EFFECT_COMPLETED = "vfx:effect-completed"

Handler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class EventBus:
    """
    In-process pub/sub over named topics.

    Handlers run in subscription order on the event loop; sync and async
    handlers are both accepted. A failing handler is logged and does not stop
    delivery to the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(topic, []).append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def handler_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

    async def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        handlers = list(self._handlers.get(topic, []))
        if not handlers:
            log.debug(f"[bus] no subscribers for '{topic}'")
            return 0

        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error(f"[bus] handler for '{topic}' failed: {e}")

        return len(handlers)

    async def wait_for(
        self,
        topic: str,
        predicate: Callable[[Dict[str, Any]], bool],
        timeout: float,
        *,
        trigger: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Wait for the next payload on `topic` matching `predicate`.

        `trigger` runs after the subscription is registered, so a reply
        published synchronously by the trigger is not missed. The timeout
        covers the trigger too: a trigger still running when it expires is
        cancelled. Returns None on timeout.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _on_event(payload: Dict[str, Any]) -> None:
            if not future.done() and predicate(payload):
                future.set_result(payload)

        async def _trigger_then_wait() -> Dict[str, Any]:
            if trigger is not None:
                await trigger()
            return await future

        unsubscribe = self.subscribe(topic, _on_event)
        try:
            return await asyncio.wait_for(_trigger_then_wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            unsubscribe()

    def clear(self) -> None:
        self._handlers.clear()


__all__ = [
    "PLATFORM_EVENT",
    "VFX_COMMAND_RECEIVED",
    "VFX_EFFECT_COMPLETED",
    "EventBus",
]
