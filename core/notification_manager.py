"""
Notification manager.

The decision point for every routed event: configuration gate, dedupe,
spam and per-user suppression, first-message check, VFX lookup, build,
goal update and enqueue. Platform-originated problems come back as result
dicts; only programming errors (missing priority mapping) raise.
"""

from __future__ import annotations

import asyncio
import inspect
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from shared.logging.logger import get_logger
from shared.notifications.builder import NotificationBuilder
from shared.notifications.errors import InvalidInput, NotificationError, QueueFullError
from shared.notifications.events import (
    MONETIZATION_TYPES,
    NOTIFICATION_CONFIGS,
    PAID_ALIASES,
    DisplayQueueItem,
    EventType,
    create_canonical_event,
    get_priority,
    normalize_platform,
)
from shared.notifications.sanitize import sanitize_string_value

log = get_logger("core.notification_manager")

_COUNTED_CURRENCIES = {"coins", "bits"}


@dataclass
class SuppressionRecord:
    notifications: List[float] = field(default_factory=list)
    suppressed_until: Optional[float] = None


@dataclass
class SuppressionConfig:
    enabled: bool = True
    max_notifications_per_user: int = 5
    suppression_window_ms: float = 60000
    suppression_duration_ms: float = 300000
    cleanup_interval_ms: float = 300000

    @classmethod
    def from_config(cls, config) -> "SuppressionConfig":
        return cls(
            enabled=config.get_boolean("general", "userSuppressionEnabled", True),
            max_notifications_per_user=int(config.get_number("general", "maxNotificationsPerUser", 5)),
            suppression_window_ms=config.get_number("general", "suppressionWindowMs", 60000),
            suppression_duration_ms=config.get_number("general", "suppressionDurationMs", 300000),
            cleanup_interval_ms=config.get_number("general", "suppressionCleanupIntervalMs", 300000),
        )


class NotificationManager:
    """
    Routes canonical events into the display queue.

    Owns the per-user suppression map and the dedupe map. Collaborators
    (goal tracker, spam detector, user tracking, VFX service) are optional
    except where a kind needs one: greetings without an explicit
    `isFirstMessage` flag require user tracking.
    """

    def __init__(
        self,
        config,
        display_queue,
        *,
        goal_tracker=None,
        spam_detector=None,
        user_tracking=None,
        vfx_service=None,
        builder: Optional[NotificationBuilder] = None,
        test_mode: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if config is None:
            raise RuntimeError("NotificationManager requires config")
        if display_queue is None:
            raise RuntimeError("NotificationManager requires a display queue")

        self._config = config
        self._queue = display_queue
        self._goals = goal_tracker
        self._spam = spam_detector
        self._users = user_tracking
        self._vfx = vfx_service
        self._builder = builder or NotificationBuilder()
        self._clock = clock

        self.test_mode = test_mode if test_mode is not None else config.is_test_mode()
        self.suppression = SuppressionConfig.from_config(config)
        self.dedupe_ttl_ms = config.get_number("general", "dedupeTtlMs", 60000)

        self._suppression: Dict[str, SuppressionRecord] = {}
        self._seen_ids: Dict[str, float] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def _now_ms(self) -> float:
        return self._clock() * 1000

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    def _is_enabled(self, setting_key: Optional[str], platform: str) -> bool:
        if setting_key is None:
            return True
        try:
            return bool(self._config.are_notifications_enabled(setting_key, platform))
        except Exception as e:
            log.warning(f"[{platform}] enabled check for {setting_key} failed ({e}); treating as disabled")
            return False

    def _is_duplicate(self, event_id: Any) -> bool:
        if event_id in (None, ""):
            return False

        now = self._now_ms()
        expired = [k for k, seen in self._seen_ids.items() if now - seen > self.dedupe_ttl_ms]
        for key in expired:
            del self._seen_ids[key]

        key = str(event_id)
        if key in self._seen_ids:
            return True
        self._seen_ids[key] = now
        return False

    # ------------------------------------------------------------------
    # Per-user suppression
    # ------------------------------------------------------------------

    def is_user_suppressed(self, user_id: str) -> bool:
        if not self.suppression.enabled:
            return False

        record = self._suppression.get(user_id)
        if record is None:
            return False

        now = self._now_ms()
        if record.suppressed_until is not None and now < record.suppressed_until:
            return True

        window_start = now - self.suppression.suppression_window_ms
        recent = [ts for ts in record.notifications if ts > window_start]
        if len(recent) >= self.suppression.max_notifications_per_user:
            record.suppressed_until = now + self.suppression.suppression_duration_ms
            log.debug(
                f"[suppression] {user_id} exceeded {len(recent)}/"
                f"{self.suppression.max_notifications_per_user}; suppressed"
            )
            return True

        return False

    def track_user_notification(self, user_id: str) -> None:
        if not self.suppression.enabled:
            return
        record = self._suppression.setdefault(user_id, SuppressionRecord())
        record.notifications.append(self._now_ms())

    def cleanup_suppression_data(self) -> int:
        now = self._now_ms()
        cutoff = now - self.suppression.suppression_window_ms
        cleaned = 0

        for user_id in list(self._suppression):
            record = self._suppression[user_id]
            before = len(record.notifications)
            record.notifications = [ts for ts in record.notifications if ts > cutoff]

            if record.suppressed_until is not None and now > record.suppressed_until:
                record.suppressed_until = None

            if not record.notifications and record.suppressed_until is None:
                del self._suppression[user_id]
                cleaned += 1
            elif before != len(record.notifications):
                cleaned += 1

        if cleaned:
            log.debug(f"[suppression] cleaned {cleaned} user entries")
        return cleaned

    def start_cleanup_task(self) -> Optional[asyncio.Task]:
        if self.test_mode or not self.suppression.enabled:
            log.debug("[suppression] cleanup sweep not started (test mode or disabled)")
            return None
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return self._cleanup_task

        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
        log.debug(f"[suppression] cleanup sweep every {self.suppression.cleanup_interval_ms}ms")
        return self._cleanup_task

    async def _cleanup_loop(self) -> None:
        interval = max(self.suppression.cleanup_interval_ms, 1000) / 1000
        while True:
            await asyncio.sleep(interval)
            self.cleanup_suppression_data()

    async def stop(self) -> None:
        task = self._cleanup_task
        self._cleanup_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._suppression.clear()
        self._seen_ids.clear()
        log.info("[NotificationManager] stopped")

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    async def _first_message(self, user_id: str, username: str, platform: str) -> bool:
        if self._users is None:
            raise RuntimeError("UserTrackingService not available for first message check")
        result = self._users.is_first_message(user_id, username=username, platform=platform)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def _vfx_config(self, command_key: Optional[str]) -> Optional[Dict[str, Any]]:
        if self._vfx is None or not command_key:
            return None
        try:
            return await self._vfx.get_vfx_config(command_key)
        except Exception as e:
            log.warning(f"[NotificationManager] VFX config lookup for {command_key} failed: {e}")
            return None

    def _spam_check(self, platform: str, data: Dict[str, Any]) -> bool:
        """True when the gift should be shown. Detector failures let it through."""
        try:
            count = float(data.get("giftCount"))
            amount = float(data.get("amount"))
            if not math.isfinite(count) or count <= 0:
                raise ValueError("spam detection requires a valid giftCount")
            if not math.isfinite(amount):
                raise ValueError("spam detection requires a valid amount")

            result = self._spam.handle_donation_spam(
                data.get("userId") or "",
                data.get("username"),
                amount / count,
                data.get("giftType"),
                int(count),
                platform,
            )
            return bool(result.get("shouldShow", True))
        except Exception as e:
            log.warning(f"[{platform}] spam detection failed ({e}); showing gift")
            return True

    def _update_goal(self, event_type: EventType, platform: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self._goals is None or data.get("isError") is True:
            return None
        if not self._config.get_boolean("goals", "enabled", False):
            return None
        if not self._config.get_boolean("goals", f"{platform}GoalEnabled", True):
            log.debug(f"[goals] {platform} goal disabled; skipping")
            return None

        if event_type in (EventType.GIFT, EventType.ENVELOPE):
            amount = data.get("goalAmount") if data.get("isAggregated") is True else data.get("amount")
            if not amount:
                return None
            result = self._goals.add_donation(platform, amount)
        elif event_type is EventType.PAYPIGGY:
            result = self._goals.add_subscription_equivalent(platform)
        elif event_type is EventType.GIFTPAYPIGGY:
            result = self._goals.add_subscription_equivalent(platform, int(data.get("giftCount") or 1))
        else:
            return None

        if not result.get("success"):
            log.warning(f"[goals] {platform} goal update failed: {result.get('error')}")
        return result

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def handle_notification(self, notification_type: Any, platform: Any, data: Any) -> Dict[str, Any]:
        if not isinstance(platform, str):
            log.warning(f"[NotificationManager] invalid platform type: {type(platform).__name__}")
            return {"success": False, "error": "Invalid platform type", "notificationType": notification_type}

        if not isinstance(data, dict):
            log.warning(f"[NotificationManager] {notification_type} from {platform} has invalid data")
            return {"success": False, "error": "Invalid notification data", "notificationType": notification_type, "platform": platform}

        if isinstance(notification_type, str) and notification_type.strip().lower() in PAID_ALIASES:
            log.warning(f"[NotificationManager] unsupported paid alias type: {notification_type}")
            return {"success": False, "error": "Unsupported paid alias", "notificationType": notification_type, "platform": platform}

        event_type = EventType.from_value(notification_type)
        type_config = NOTIFICATION_CONFIGS.get(event_type) if event_type else None
        if type_config is None or event_type in (EventType.CHAT_MESSAGE, EventType.STREAM_STATUS):
            log.warning(f"[NotificationManager] unknown notification type: {notification_type}")
            return {"success": False, "error": "Unknown notification type", "notificationType": notification_type, "platform": platform}

        incoming = data.get("type")
        if incoming and EventType.from_value(incoming) is not event_type:
            log.warning(f"[NotificationManager] type mismatch: {incoming} vs {event_type.value}")
            return {"success": False, "error": "Unknown notification type", "notificationType": event_type.value, "platform": platform}

        try:
            platform = normalize_platform(platform)
        except InvalidInput as e:
            log.warning(f"[NotificationManager] {e}")
            return {"success": False, "error": str(e), "notificationType": event_type.value}

        kind = event_type.value
        data = {k: v for k, v in data.items() if k not in ("type", "platform")}
        is_error = data.get("isError") is True

        if not self._is_enabled(type_config.setting_key, platform):
            log.debug(f"[{platform}] {kind} notifications disabled; skipping {data.get('username')}")
            return {"success": False, "disabled": True, "error": "Notifications disabled", "notificationType": kind, "platform": platform}

        if self._is_duplicate(data.get("id")):
            log.debug(f"[{platform}] duplicate {kind} {data.get('id')} dropped")
            return {"success": False, "suppressed": True, "reason": "duplicate", "notificationType": kind, "platform": platform}

        if event_type is EventType.GIFT and not is_error:
            amount = data.get("amount")
            currency = str(data.get("currency") or "").strip().lower()
            if (
                isinstance(amount, (int, float))
                and not isinstance(amount, bool)
                and amount <= 0
                and currency
                and currency not in _COUNTED_CURRENCIES
            ):
                log.debug(f"[{platform}] zero-amount {kind} from {data.get('username')} filtered")
                return {"success": False, "filtered": True, "reason": "Zero amount not displayed", "notificationType": kind, "platform": platform}

        username = sanitize_string_value(data.get("username")).strip() if isinstance(data.get("username"), str) else ""
        if not username:
            log.warning(f"[{platform}] {kind} notification missing username")
            return {"success": False, "error": "Missing username", "notificationType": kind, "platform": platform}
        data["username"] = username

        if data.get("userId") not in (None, ""):
            data["userId"] = str(data["userId"])
        user_id = data.get("userId") or ""

        if user_id and self.is_user_suppressed(user_id):
            log.debug(f"[{platform}] {kind} suppressed for {username}")
            return {"success": False, "suppressed": True, "reason": "user_suppression", "notificationType": kind, "platform": platform}

        if (
            event_type is EventType.GIFT
            and self._spam is not None
            and data.get("isAggregated") is not True
            and not is_error
            and not self._spam_check(platform, data)
        ):
            log.debug(f"[{platform}] spam gift from {username} suppressed")
            return {"success": False, "suppressed": True, "reason": "spam_detection", "notificationType": kind, "platform": platform}

        is_first_message = None
        if event_type is EventType.GREETING:
            flag = data.get("isFirstMessage")
            try:
                is_first_message = flag if isinstance(flag, bool) else await self._first_message(user_id, username, platform)
            except Exception as e:
                log.error(f"[{platform}] first-message check failed: {e}")
                return {"success": False, "error": f"First message check failed: {e}", "notificationType": kind, "platform": platform}
            if not is_first_message:
                return {"success": False, "suppressed": True, "reason": "not_first_message", "notificationType": kind, "platform": platform}

        if user_id:
            self.track_user_notification(user_id)

        command_key = data.get("commandName") if event_type is EventType.COMMAND else type_config.command_key
        vfx_config = await self._vfx_config(command_key)

        try:
            event = create_canonical_event(platform=platform, type=event_type, data=data)
            notification = self._builder.build(event, vfx_config=vfx_config, is_first_message=is_first_message)
        except NotificationError as e:
            log.error(f"[{platform}] error creating {kind} notification: {e}")
            return {"success": False, "error": f"Notification build failed: {e}", "notificationType": kind, "platform": platform}

        priority = get_priority(event_type)
        item_data = notification.to_dict()

        goal_result = None
        if event_type in MONETIZATION_TYPES:
            try:
                goal_result = self._update_goal(event_type, platform, data)
            except Exception as e:
                log.error(f"[goals] {platform} goal update raised: {e}")
            if goal_result and goal_result.get("success"):
                item_data["goalUpdate"] = goal_result.get("formatted")

        item = DisplayQueueItem(
            type=event_type,
            platform=platform,
            priority=priority,
            data=item_data,
            vfx_config=vfx_config,
        )

        try:
            self._queue.add_item(item)
        except (QueueFullError, TypeError) as e:
            log.error(f"[{platform}] display queue rejected {kind}: {e}")
            return {"success": False, "error": f"Display queue error: {e}", "notificationType": kind, "platform": platform}

        log.info(f"[{platform}] {notification.log_message}")

        return {
            "success": True,
            "queued": True,
            "notificationType": kind,
            "platform": platform,
            "notificationId": notification.id,
            "priority": priority,
            "vfxConfig": vfx_config,
            "goal": goal_result,
        }

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def _enqueue_chat(self, platform: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if not self._is_enabled(NOTIFICATION_CONFIGS[EventType.CHAT_MESSAGE].setting_key, platform):
            return {"success": False, "disabled": True, "error": "Notifications disabled"}

        message = sanitize_string_value(data.get("message")).strip()
        if not message:
            return {"success": False, "error": "Empty chat message"}

        try:
            event = create_canonical_event(
                platform=platform,
                type=EventType.CHAT_MESSAGE,
                data={**data, "message": message},
            )
            notification = self._builder.build(event)
            item = DisplayQueueItem(
                type=EventType.CHAT_MESSAGE,
                platform=platform,
                priority=get_priority(EventType.CHAT_MESSAGE),
                data=notification.to_dict(),
            )
            self._queue.add_item(item)
        except (NotificationError, TypeError) as e:
            log.warning(f"[{platform}] chat message from {data.get('username')} not queued: {e}")
            return {"success": False, "error": str(e)}

        return {"success": True, "queued": True, "notificationId": notification.id}

    async def _detect_command(self, message: str) -> Optional[Dict[str, Any]]:
        if self._vfx is None:
            return None
        trigger = message.strip().split()[0] if message.strip() else ""
        if not trigger.startswith("!"):
            return None
        try:
            return await self._vfx.select_vfx_command(trigger)
        except Exception as e:
            log.warning(f"[NotificationManager] command lookup for {trigger} failed: {e}")
            return None

    async def handle_chat_message(self, platform: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Queue a chat line, then any command or greeting it triggers.

        A message whose first word is a configured VFX trigger becomes a
        `command` notification. A user's first message also produces a
        greeting.
        """
        try:
            platform = normalize_platform(platform)
        except InvalidInput as e:
            return {"success": False, "error": str(e)}

        data = dict(data)
        if data.get("userId") not in (None, ""):
            data["userId"] = str(data["userId"])
        username = data.get("username") if isinstance(data.get("username"), str) else ""
        if not username.strip():
            return {"success": False, "error": "Missing username"}

        is_first = False
        if self._users is not None:
            try:
                is_first = await self._first_message(data.get("userId") or "", username, platform)
            except Exception as e:
                log.warning(f"[{platform}] first-message check failed: {e}")

        chat_result = self._enqueue_chat(platform, data)

        base = {
            "username": username,
            "userId": data.get("userId"),
            "timestamp": data.get("timestamp"),
        }

        command_result = None
        command = await self._detect_command(str(data.get("message") or ""))
        if command is not None:
            command_result = await self.handle_notification(
                EventType.COMMAND.value,
                platform,
                {**base, "command": command["command"], "commandName": command["commandKey"]},
            )

        greeting_result = None
        if is_first:
            greeting_result = await self.handle_notification(
                EventType.GREETING.value,
                platform,
                {**base, "isFirstMessage": True},
            )

        return {
            "success": bool(chat_result.get("success")),
            "chat": chat_result,
            "command": command_result,
            "greeting": greeting_result,
        }

    # ------------------------------------------------------------------
    # Stream status
    # ------------------------------------------------------------------

    async def handle_stream_status(self, platform: str, data: Dict[str, Any]) -> Dict[str, Any]:
        status = str(data.get("status") or "").lower()
        is_live = data.get("isLive") is True or status == "live"
        log.info(f"[{platform}] stream status: {status or 'unknown'} (live={is_live})")

        goals_reset = False
        if (
            is_live
            and self._goals is not None
            and self._config.get_boolean("goals", "resetOnStreamStart", False)
        ):
            self._goals.reset(platform)
            goals_reset = True

        return {
            "success": True,
            "platform": platform,
            "status": status,
            "isLive": is_live,
            "goalsReset": goals_reset,
        }


__all__ = [
    "SuppressionConfig",
    "SuppressionRecord",
    "NotificationManager",
]
