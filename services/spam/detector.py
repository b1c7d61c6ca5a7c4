"""
Low-value donation spam detection.

A user who sends more than `maxIndividualNotifications` low-value gifts within
`spamDetectionWindow` seconds has the extra gifts suppressed; they are rolled
into a single aggregated donation delivered through `on_aggregated_donation`
once the window elapses.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from shared.logging.logger import get_logger

log = get_logger("services.spam")


def _plain_amount(value: float) -> Any:
    return int(value) if float(value).is_integer() else round(value, 2)


@dataclass
class PlatformSpamConfig:
    enabled: bool
    low_value_threshold: float
    window_seconds: float
    max_individual_notifications: int


@dataclass
class _TrackedDonation:
    timestamp: float
    unit_amount: float
    gift_type: str
    gift_count: int


@dataclass
class _UserTracker:
    username: str
    platform: str
    notifications: List[_TrackedDonation] = field(default_factory=list)
    aggregated_count: int = 0
    aggregated_value: float = 0.0
    last_reset: float = 0.0
    timer: Optional[asyncio.TimerHandle] = None


class SpamDetectionConfig:
    """Per-platform thresholds built from the `gifts` config section."""

    def __init__(
        self,
        *,
        low_value_threshold: float = 10,
        enabled: bool = True,
        window_seconds: float = 5,
        max_individual_notifications: int = 2,
    ) -> None:
        self.low_value_threshold = low_value_threshold
        self.enabled = enabled
        self.window_seconds = window_seconds
        self.max_individual_notifications = max_individual_notifications

        shared = PlatformSpamConfig(
            enabled=enabled,
            low_value_threshold=low_value_threshold,
            window_seconds=window_seconds,
            max_individual_notifications=max_individual_notifications,
        )
        self.platforms: Dict[str, PlatformSpamConfig] = {
            "tiktok": shared,
            "twitch": shared,
            # Super Chats are never low-volume spam.
            "youtube": PlatformSpamConfig(
                enabled=False,
                low_value_threshold=1.00,
                window_seconds=window_seconds,
                max_individual_notifications=max_individual_notifications,
            ),
        }

        log.info(
            f"[spam] initialized: enabled={enabled} threshold={low_value_threshold} "
            f"window={window_seconds}s max={max_individual_notifications}"
        )

    @classmethod
    def from_config(cls, config) -> "SpamDetectionConfig":
        return cls(
            low_value_threshold=config.get_number("gifts", "lowValueThreshold", 10),
            enabled=config.get_boolean("gifts", "spamDetectionEnabled", True),
            window_seconds=config.get_number("gifts", "spamDetectionWindow", 5),
            max_individual_notifications=int(config.get_number("gifts", "maxIndividualNotifications", 2)),
        )

    def for_platform(self, platform: str) -> PlatformSpamConfig:
        resolved = self.platforms.get((platform or "").lower())
        if resolved is None:
            log.debug(f"[spam] no platform config for {platform}; using defaults")
            return PlatformSpamConfig(
                enabled=self.enabled,
                low_value_threshold=self.low_value_threshold,
                window_seconds=self.window_seconds,
                max_individual_notifications=self.max_individual_notifications,
            )
        return resolved


class DonationSpamDetector:
    def __init__(
        self,
        config: SpamDetectionConfig,
        *,
        on_aggregated_donation: Optional[Callable[[Dict[str, Any]], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._on_aggregated = on_aggregated_donation
        self._clock = clock
        self._trackers: Dict[str, _UserTracker] = {}
        self._pending: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def is_low_value_donation(self, unit_amount: Any, platform: str) -> bool:
        cfg = self._config.for_platform(platform)
        if not cfg.enabled:
            return False
        if not isinstance(unit_amount, (int, float)) or isinstance(unit_amount, bool):
            log.debug(f"[spam] invalid gift amount: {unit_amount!r}")
            return False
        return unit_amount <= cfg.low_value_threshold

    def handle_donation_spam(
        self,
        user_id: str,
        username: str,
        unit_amount: float,
        gift_type: str,
        gift_count: int,
        platform: str,
    ) -> Dict[str, Any]:
        cfg = self._config.for_platform(platform)

        if not cfg.enabled or not self.is_low_value_donation(unit_amount, platform):
            return {"shouldShow": True, "aggregatedMessage": None}

        now = self._clock()
        key = user_id or username
        tracker = self._trackers.get(key)
        if tracker is None:
            tracker = _UserTracker(username=username, platform=platform, last_reset=now)
            self._trackers[key] = tracker

        tracker.notifications = [
            n for n in tracker.notifications if now - n.timestamp <= cfg.window_seconds
        ]
        tracker.notifications.append(
            _TrackedDonation(
                timestamp=now,
                unit_amount=float(unit_amount),
                gift_type=gift_type,
                gift_count=int(gift_count or 1),
            )
        )

        count = len(tracker.notifications)
        if count <= cfg.max_individual_notifications:
            log.debug(f"[spam] {platform} {username}: {count}/{cfg.max_individual_notifications} in window")
            return {"shouldShow": True, "aggregatedMessage": None}

        tracker.aggregated_count += int(gift_count or 1)
        tracker.aggregated_value += float(unit_amount) * int(gift_count or 1)
        tracker.username = username
        tracker.platform = platform

        if tracker.timer is None:
            tracker.timer = self._schedule_flush(key, cfg.window_seconds)
            log.info(f"[spam] {platform} {username}: aggregating for {cfg.window_seconds}s")

        log.info(f"[spam] {platform} {username}: suppressing notification {count}")
        return {"shouldShow": False, "aggregatedMessage": None}

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def _schedule_flush(self, key: str, delay: float) -> Optional[asyncio.TimerHandle]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("[spam] no running loop; aggregation must be flushed manually")
            return None
        return loop.call_later(delay, self.process_aggregated_donation, key)

    def process_aggregated_donation(self, key: str) -> Dict[str, Any]:
        tracker = self._trackers.get(key)
        if tracker is None or not tracker.notifications:
            return {"shouldShow": False, "aggregatedMessage": None, "totalCoinValue": 0, "totalGiftCount": 0}

        total_value = sum(n.unit_amount * n.gift_count for n in tracker.notifications)
        total_gifts = sum(n.gift_count for n in tracker.notifications)
        gift_types = list(dict.fromkeys(n.gift_type for n in tracker.notifications))
        total_text = _plain_amount(total_value)

        if total_gifts > 1:
            message = f"{tracker.username} sent {total_gifts} gifts worth {total_text} coins ({', '.join(gift_types)})"
        else:
            message = f"{tracker.username} sent {total_gifts} gift worth {total_text} coins ({gift_types[0]})"

        log.info(f"[spam] {tracker.platform} aggregated donation: {message}")

        if self._on_aggregated is not None:
            payload = {
                "userId": key,
                "username": tracker.username,
                "platform": tracker.platform,
                "totalCoins": total_text,
                "totalGifts": total_gifts,
                "giftTypes": gift_types,
                "message": message,
                "suppressedCoins": _plain_amount(tracker.aggregated_value),
            }
            try:
                result = self._on_aggregated(payload)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)
            except Exception as e:
                log.error(f"[spam] aggregated donation callback failed: {e}")

        if tracker.timer is not None:
            tracker.timer.cancel()
            tracker.timer = None
        tracker.notifications = []
        tracker.aggregated_count = 0
        tracker.aggregated_value = 0.0
        tracker.last_reset = self._clock()

        return {
            "shouldShow": True,
            "aggregatedMessage": message,
            "totalCoinValue": total_text,
            "totalGiftCount": total_gifts,
        }

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def cleanup(self, force: bool = False) -> int:
        """Drop trackers idle for twice the window. Returns the number removed."""
        now = self._clock()
        keep_for = 0 if force else self._config.window_seconds * 2
        removed = 0

        for key in list(self._trackers):
            tracker = self._trackers[key]
            tracker.notifications = [
                n for n in tracker.notifications if now - n.timestamp <= keep_for
            ]
            if not tracker.notifications and (force or now - tracker.last_reset > keep_for):
                if tracker.timer is not None:
                    tracker.timer.cancel()
                del self._trackers[key]
                removed += 1

        if removed:
            log.debug(f"[spam] cleanup removed {removed} trackers; {len(self._trackers)} remaining")
        return removed

    def get_statistics(self) -> Dict[str, int]:
        return {
            "trackedUsers": len(self._trackers),
            "totalNotifications": sum(len(t.notifications) for t in self._trackers.values()),
        }

    def destroy(self) -> None:
        self.cleanup(force=True)
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()


def aggregated_gift_event(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Platform event for a flushed aggregation, ready to publish on the bus."""
    platform = payload.get("platform") or "tiktok"
    gift_types = payload.get("giftTypes") or []
    return {
        "platform": platform,
        "type": "gift",
        "data": {
            "username": payload.get("username"),
            "userId": payload.get("userId"),
            "giftType": ", ".join(gift_types) if gift_types else "gifts",
            "giftCount": payload.get("totalGifts") or 1,
            "amount": payload.get("totalCoins"),
            "currency": "bits" if platform == "twitch" else "coins",
            "isAggregated": True,
            "goalAmount": payload.get("suppressedCoins", 0),
            "aggregatedMessage": payload.get("message"),
            "timestamp": time.time() * 1000,
        },
    }


__all__ = [
    "aggregated_gift_event",
    "PlatformSpamConfig",
    "SpamDetectionConfig",
    "DonationSpamDetector",
]
