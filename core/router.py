"""
Platform event router.

Adapters publish `{"platform", "type", "data"}` on `platform:event`; the
router checks the payload carries what the kind needs and hands it to the
notification manager. A bad event is logged and answered with a failure
result. It never tears down the subscription.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple

from core.event_bus import PLATFORM_EVENT, EventBus
from shared.logging.logger import get_logger
from shared.notifications.events import (
    MONETIZATION_TYPES,
    PAID_ALIASES,
    EventType,
    normalize_platform,
    parse_timestamp,
)
from shared.notifications.errors import InvalidInput

log = get_logger("core.router")


# Payload fields each kind must carry before the manager sees it.
REQUIRED_FIELDS: Dict[EventType, Tuple[str, ...]] = {
    EventType.CHAT_MESSAGE: ("username", "message"),
    EventType.FOLLOW: ("username",),
    EventType.SHARE: ("username",),
    EventType.RAID: ("username", "viewerCount"),
    EventType.GIFT: ("username", "giftType", "giftCount", "amount", "currency"),
    EventType.ENVELOPE: ("username", "amount", "currency"),
    EventType.PAYPIGGY: ("username",),
    EventType.GIFTPAYPIGGY: ("username", "giftCount"),
    EventType.REDEMPTION: ("username", "rewardTitle"),
    EventType.GREETING: ("username",),
    EventType.FAREWELL: ("username",),
    EventType.COMMAND: ("username", "command", "commandName"),
    EventType.STREAM_STATUS: ("status",),
}

# Error payloads only need to say who and what failed.
_ERROR_REQUIRED = ("username",)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _flatten(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize platform-specific shapes into flat canonical fields."""
    flat = dict(data)

    message = flat.get("message")
    if isinstance(message, dict):
        flat["message"] = message.get("text")

    user = flat.get("user")
    if isinstance(user, dict):
        flat.setdefault("username", user.get("username") or user.get("displayName"))
        flat.setdefault("userId", user.get("userId") or user.get("id"))
        flat.pop("user", None)

    if isinstance(flat.get("username"), str):
        flat["username"] = flat["username"].strip()

    return flat


class PlatformEventRouter:
    """
    Bridges the event bus to the notification manager.

    - chat-message -> manager.handle_chat_message(platform, data)
    - stream-status -> manager.handle_stream_status(platform, data)
    - everything else -> manager.handle_notification(type, platform, data)
    """

    def __init__(self, bus: EventBus, manager, *, config=None):
        if bus is None:
            raise RuntimeError("PlatformEventRouter requires an event bus")
        if manager is None:
            raise RuntimeError("PlatformEventRouter requires a notification manager")

        self._bus = bus
        self._manager = manager
        self._config = config
        self._unsubscribe: Optional[Callable[[], None]] = None

        self.stats = {
            "routed": 0,
            "rejected": 0,
            "failed": 0,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self._bus.subscribe(PLATFORM_EVENT, self._on_platform_event)
        log.info(f"[router] subscribed to {PLATFORM_EVENT}")

    def dispose(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        log.info("[router] disposed")

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    async def _on_platform_event(self, event: Dict[str, Any]) -> None:
        await self.route_event(event)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _reject(self, error: str, **extra: Any) -> Dict[str, Any]:
        self.stats["rejected"] += 1
        log.warning(f"[router] {error}")
        result = {"success": False, "error": error}
        result.update(extra)
        return result

    def validate(self, event_type: EventType, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return a failure result when `data` lacks what `event_type` needs."""
        required = _ERROR_REQUIRED if data.get("isError") is True else REQUIRED_FIELDS[event_type]
        missing = [name for name in required if _is_missing(data.get(name))]
        if missing:
            return self._reject(
                f"Missing required field(s) for {event_type.value}: {', '.join(missing)}",
                notificationType=event_type.value,
                missingFields=missing,
            )

        if event_type is EventType.RAID and data.get("isError") is not True:
            count = data.get("viewerCount")
            if isinstance(count, bool) or not isinstance(count, int) or count < 0:
                return self._reject(
                    f"Invalid viewerCount for raid: {count!r}",
                    notificationType=event_type.value,
                    missingFields=[],
                )

        if event_type in MONETIZATION_TYPES and parse_timestamp(data.get("timestamp")) is None:
            return self._reject(
                f"{event_type.value} event requires a valid timestamp",
                notificationType=event_type.value,
                missingFields=["timestamp"],
            )

        return None

    async def route_event(self, event: Any) -> Dict[str, Any]:
        if not isinstance(event, dict):
            return self._reject("Platform event must be an object")

        raw_type = event.get("type")
        data = event.get("data")

        try:
            platform = normalize_platform(event.get("platform"))
        except InvalidInput as e:
            return self._reject(str(e))

        if isinstance(raw_type, str) and raw_type.strip().lower() in PAID_ALIASES:
            return self._reject(
                f"Unsupported paid alias event type: {raw_type}",
                notificationType=raw_type,
                platform=platform,
            )

        event_type = EventType.from_value(raw_type)
        if event_type is None:
            return self._reject(f"Unknown platform event type: {raw_type}", platform=platform)

        if not isinstance(data, dict):
            return self._reject(
                f"{event_type.value} event from {platform} has no data",
                notificationType=event_type.value,
                platform=platform,
            )

        data = _flatten(data)
        failure = self.validate(event_type, data)
        if failure is not None:
            failure["platform"] = platform
            return failure

        try:
            if event_type is EventType.CHAT_MESSAGE:
                result = await self._manager.handle_chat_message(platform, data)
            elif event_type is EventType.STREAM_STATUS:
                result = await self._manager.handle_stream_status(platform, data)
            else:
                result = await self._manager.handle_notification(event_type.value, platform, data)
        except Exception as e:
            self.stats["failed"] += 1
            log.exception(f"[router] {platform} {event_type.value} handler failed: {e}")
            return {
                "success": False,
                "error": f"Handler failed: {e}",
                "notificationType": event_type.value,
                "platform": platform,
            }

        self.stats["routed"] += 1
        return result if isinstance(result, dict) else {"success": True}


__all__ = [
    "REQUIRED_FIELDS",
    "PlatformEventRouter",
]
