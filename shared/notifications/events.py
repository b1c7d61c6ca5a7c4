"""Canonical event and notification model shared by the router, manager and queue."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from shared.notifications.errors import InvalidInput, ProgrammerError

SUPPORTED_PLATFORMS = {
    "tiktok",
    "twitch",
    "youtube",
}


class EventType(str, Enum):
    CHAT_MESSAGE = "chat-message"
    FOLLOW = "follow"
    SHARE = "share"
    RAID = "raid"
    GIFT = "gift"
    ENVELOPE = "envelope"
    PAYPIGGY = "paypiggy"
    GIFTPAYPIGGY = "giftpaypiggy"
    REDEMPTION = "redemption"
    GREETING = "greeting"
    FAREWELL = "farewell"
    COMMAND = "command"
    STREAM_STATUS = "stream-status"

    @classmethod
    def from_value(cls, value: Any) -> Optional["EventType"]:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if normalized == member.value:
                    return member
        return None


# Legacy names for subscription-like events. Only "paypiggy" is accepted.
PAID_ALIASES = {
    "subscription",
    "resubscription",
    "membership",
    "member",
    "subscribe",
    "superfan",
    "supporter",
    "paid_supporter",
}

MONETIZATION_TYPES = {
    EventType.GIFT,
    EventType.ENVELOPE,
    EventType.PAYPIGGY,
    EventType.GIFTPAYPIGGY,
}

# Effects for these types run concurrently with TTS; everything else waits on VFX.
CONCURRENT_EFFECT_TYPES = {
    EventType.GIFT,
    EventType.ENVELOPE,
}


# ======================================================================
# Static per-type tables
# ======================================================================

@dataclass(frozen=True)
class NotificationTypeConfig:
    setting_key: Optional[str]
    command_key: Optional[str]
    has_special_processing: bool = False


NOTIFICATION_CONFIGS: Dict[EventType, NotificationTypeConfig] = {
    EventType.FOLLOW: NotificationTypeConfig("followsEnabled", "follows"),
    EventType.SHARE: NotificationTypeConfig("sharesEnabled", "shares"),
    EventType.RAID: NotificationTypeConfig("raidsEnabled", "raids"),
    EventType.GIFT: NotificationTypeConfig("giftsEnabled", "gifts", True),
    EventType.ENVELOPE: NotificationTypeConfig("giftsEnabled", "envelopes", True),
    EventType.PAYPIGGY: NotificationTypeConfig("paypiggiesEnabled", "paypiggies", True),
    EventType.GIFTPAYPIGGY: NotificationTypeConfig("giftsEnabled", "giftpaypiggies", True),
    EventType.REDEMPTION: NotificationTypeConfig("redemptionsEnabled", "redemptions"),
    EventType.GREETING: NotificationTypeConfig("greetingsEnabled", "greetings"),
    EventType.FAREWELL: NotificationTypeConfig("farewellsEnabled", "farewells"),
    EventType.COMMAND: NotificationTypeConfig("commandsEnabled", None),
    EventType.CHAT_MESSAGE: NotificationTypeConfig("messagesEnabled", None),
    EventType.STREAM_STATUS: NotificationTypeConfig(None, None),
}

# Larger number = shown first.
PRIORITY_LEVELS: Dict[str, int] = {
    "DEFAULT": 0,
    "CHAT": 1,
    "FOLLOW": 2,
    "MEMBER": 3,
    "GIFT": 4,
    "ENVELOPE": 4,
    "CHEER": 5,
    "RAID": 6,
    "SHARE": 6,
    "REDEMPTION": 7,
    "GIFTPAYPIGGY": 8,
    "COMMAND": 9,
    "GREETING": 10,
    "ADMIN": 11,
}

PRIORITY_MAP: Dict[EventType, int] = {
    EventType.CHAT_MESSAGE: PRIORITY_LEVELS["CHAT"],
    EventType.FOLLOW: PRIORITY_LEVELS["FOLLOW"],
    EventType.PAYPIGGY: PRIORITY_LEVELS["MEMBER"],
    EventType.GIFT: PRIORITY_LEVELS["GIFT"],
    EventType.ENVELOPE: PRIORITY_LEVELS["ENVELOPE"],
    EventType.RAID: PRIORITY_LEVELS["RAID"],
    EventType.SHARE: PRIORITY_LEVELS["SHARE"],
    EventType.REDEMPTION: PRIORITY_LEVELS["REDEMPTION"],
    EventType.GIFTPAYPIGGY: PRIORITY_LEVELS["GIFTPAYPIGGY"],
    EventType.COMMAND: PRIORITY_LEVELS["COMMAND"],
    EventType.GREETING: PRIORITY_LEVELS["GREETING"],
    EventType.FAREWELL: PRIORITY_LEVELS["GREETING"],
    EventType.STREAM_STATUS: PRIORITY_LEVELS["ADMIN"],
}


def get_priority(event_type: Any) -> int:
    resolved = EventType.from_value(event_type)
    if resolved is None or resolved not in PRIORITY_MAP:
        raise ProgrammerError(f"Missing priority mapping for {event_type}")
    return PRIORITY_MAP[resolved]


# ======================================================================
# Helpers
# ======================================================================

def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(ts: Any) -> Optional[str]:
    """
    Normalize a platform timestamp to ISO-8601 UTC.

    Accepts ISO strings, epoch seconds or epoch milliseconds. Returns None
    when the value cannot be parsed.
    """
    if ts is None or ts == "":
        return None

    if isinstance(ts, datetime):
        parsed = ts
    elif isinstance(ts, bool):
        return None
    elif isinstance(ts, (int, float)):
        if not math.isfinite(ts):
            return None
        seconds = ts / 1000.0 if ts > 1e11 else float(ts)
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(ts, str):
        raw = ts.strip()
        if raw.isdigit():
            return parse_timestamp(int(raw))
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_platform(value: Any) -> str:
    platform = (value or "").lower().strip() if isinstance(value, str) else ""
    if platform not in SUPPORTED_PLATFORMS:
        raise InvalidInput(f"Unsupported platform: {value}", field="platform")
    return platform


# ======================================================================
# Data models
# ======================================================================

_CORE_KEYS = {"platform", "type", "username", "userId", "timestamp", "id", "metadata"}


@dataclass
class CanonicalEvent:
    """
    Normalized adapter output.

    Platform-specific payload fields (giftType, viewerCount, tier ...) keep
    their wire names inside `payload`.
    """

    platform: str
    type: EventType
    username: str
    user_id: str = ""
    timestamp: str = field(default_factory=_utc_now_iso)
    id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_monetization(self) -> bool:
        return self.type in MONETIZATION_TYPES

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.payload)
        result.update(
            {
                "platform": self.platform,
                "type": self.type.value,
                "username": self.username,
                "userId": self.user_id,
                "timestamp": self.timestamp,
            }
        )
        if self.id:
            result["id"] = self.id
        if self.metadata is not None:
            result["metadata"] = dict(self.metadata)
        return result


@dataclass
class Notification:
    """Builder output: the canonical event plus rendered copy."""

    type: EventType
    platform: str
    username: str
    display_message: str
    tts_message: str
    log_message: str
    priority: int
    id: str
    user_id: str = ""
    timestamp: str = field(default_factory=_utc_now_iso)
    processed_at: float = field(default_factory=lambda: time.time() * 1000)
    duration_ms: Optional[int] = None
    vfx_config: Optional[Dict[str, Any]] = None
    is_first_message: Optional[bool] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.payload)
        result.update(
            {
                "id": self.id,
                "type": self.type.value,
                "platform": self.platform,
                "username": self.username,
                "userId": self.user_id,
                "timestamp": self.timestamp,
                "processedAt": self.processed_at,
                "displayMessage": self.display_message,
                "ttsMessage": self.tts_message,
                "logMessage": self.log_message,
                "priority": self.priority,
            }
        )
        if self.duration_ms is not None:
            result["durationMs"] = self.duration_ms
        if self.vfx_config is not None:
            result["vfxConfig"] = dict(self.vfx_config)
        if self.is_first_message is not None:
            result["isFirstMessage"] = self.is_first_message
        return result


@dataclass
class DisplayQueueItem:
    type: EventType
    platform: str
    priority: int
    data: Dict[str, Any]
    vfx_config: Optional[Dict[str, Any]] = None
    enqueued_at: float = field(default_factory=time.monotonic)

    @property
    def is_chat(self) -> bool:
        return self.type is EventType.CHAT_MESSAGE


# ======================================================================
# Factory
# ======================================================================

def create_canonical_event(
    *,
    platform: str,
    type: Any,
    data: Dict[str, Any],
) -> CanonicalEvent:
    """
    Build a CanonicalEvent from an adapter payload.

    Raises InvalidInput when the platform, type, username or timestamp are
    unusable. Kind-specific fields are validated by the router.
    """
    resolved_platform = normalize_platform(platform)
    event_type = EventType.from_value(type)
    if event_type is None:
        raise InvalidInput(f"Unknown event type: {type}", field="type")

    if not isinstance(data, dict):
        raise InvalidInput("Event data must be an object", field="data")

    username = data.get("username")
    if event_type is not EventType.STREAM_STATUS:
        if not isinstance(username, str) or not username.strip():
            raise InvalidInput("Missing username", field="username")
        username = username.strip()
    else:
        username = username.strip() if isinstance(username, str) else ""

    raw_ts = data.get("timestamp")
    timestamp = parse_timestamp(raw_ts)
    if timestamp is None:
        if raw_ts not in (None, "") or event_type in MONETIZATION_TYPES:
            raise InvalidInput(
                f"{event_type.value} event requires a valid timestamp",
                field="timestamp",
            )
        timestamp = _utc_now_iso()

    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise InvalidInput("Event metadata must be an object", field="metadata")

    user_id = data.get("userId")
    event_id = data.get("id")

    return CanonicalEvent(
        platform=resolved_platform,
        type=event_type,
        username=username,
        user_id=str(user_id) if user_id not in (None, "") else "",
        timestamp=timestamp,
        id=str(event_id) if event_id not in (None, "") else None,
        payload={k: v for k, v in data.items() if k not in _CORE_KEYS},
        metadata=metadata,
    )


__all__ = [
    "SUPPORTED_PLATFORMS",
    "EventType",
    "PAID_ALIASES",
    "MONETIZATION_TYPES",
    "CONCURRENT_EFFECT_TYPES",
    "NotificationTypeConfig",
    "NOTIFICATION_CONFIGS",
    "PRIORITY_LEVELS",
    "PRIORITY_MAP",
    "get_priority",
    "parse_timestamp",
    "normalize_platform",
    "CanonicalEvent",
    "Notification",
    "DisplayQueueItem",
    "create_canonical_event",
]
