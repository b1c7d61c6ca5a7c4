"""
Per-platform donation goals.

Each platform keeps a running total against a target in its own unit:
TikTok in coins, YouTube in dollars, Twitch in bits. Totals only grow within
a session unless `reset()` is called; they may overshoot the target.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from shared.logging.logger import get_logger

log = get_logger("core.goals")

SUPPORTED_GOAL_PLATFORMS = ("tiktok", "youtube", "twitch")

_DEFAULT_GOALS = {
    "tiktok": (1000, "coins"),
    "youtube": (1.00, "dollars"),
    "twitch": (100, "bits"),
}

_PAYPIGGY_KEYS = {
    "tiktok": ("tiktokPaypiggyEquivalent", 50),
    "youtube": ("youtubePaypiggyPrice", 4.99),
    "twitch": ("twitchPaypiggyEquivalent", 350),
}


@dataclass
class GoalState:
    current: float
    target: float
    currency: str


def _plain(number: float) -> Any:
    return int(number) if float(number).is_integer() else number


class GoalTracker:
    """
    Owns GoalState for every supported platform.

    Responsibilities:
    - Load targets and currencies from the `goals` config section
    - Accumulate donations and subscription equivalents
    - Render the overlay goal string
    """

    def __init__(self, config=None) -> None:
        self._config = config
        self._goals: Dict[str, GoalState] = self._default_state()

    @staticmethod
    def _default_state() -> Dict[str, GoalState]:
        return {
            platform: GoalState(current=0, target=target, currency=currency)
            for platform, (target, currency) in _DEFAULT_GOALS.items()
        }

    def _invalid_platform(self, platform: Any) -> Dict[str, Any]:
        return {
            "success": False,
            "error": f"Invalid platform: {platform}. Supported platforms: {', '.join(SUPPORTED_GOAL_PLATFORMS)}",
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        self._goals = self._default_state()

        if self._config is None:
            log.warning("[goals] config not available; using defaults")
            return

        for platform, (default_target, default_currency) in _DEFAULT_GOALS.items():
            if not self._config.get_boolean("goals", f"{platform}GoalEnabled", True):
                continue

            target = self._config.get_number("goals", f"{platform}GoalTarget", default_target)
            if not target or target <= 0:
                log.warning(f"[goals] invalid {platform} target {target!r}; using {default_target}")
                target = default_target

            currency = self._config.get_string("goals", f"{platform}GoalCurrency", default_currency)
            self._goals[platform] = GoalState(current=0, target=target, currency=currency)

        summary = ", ".join(
            f"{p}={_plain(s.current)}/{_plain(s.target)} {s.currency}" for p, s in self._goals.items()
        )
        log.debug(f"[goals] initialized: {summary}")

    def reset(self, platform: Optional[str] = None) -> None:
        if platform is None:
            for state in self._goals.values():
                state.current = 0
            log.info("[goals] all goals reset")
            return

        state = self._goals.get(platform.lower())
        if state is not None:
            state.current = 0
            log.info(f"[goals] {platform} goal reset")

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def add_donation(self, platform: Any, amount: Any) -> Dict[str, Any]:
        if not isinstance(platform, str) or platform.lower() not in self._goals:
            return self._invalid_platform(platform)

        key = platform.lower()
        try:
            number = float(amount)
        except (TypeError, ValueError):
            number = math.nan
        if isinstance(amount, bool) or not math.isfinite(number) or number <= 0:
            return {
                "success": False,
                "error": f"Donation amount must be positive number, received: {amount}",
            }

        state = self._goals[key]
        old_current = state.current
        state.current = old_current + number
        new_current = state.current

        log.debug(f"[goals] {key} goal updated: {_plain(old_current)} -> {_plain(new_current)} {state.currency}")

        percentage = round(new_current / state.target * 100, 1) if state.target > 0 else 0
        return {
            "success": True,
            "current": _plain(old_current),
            "newTotal": _plain(new_current),
            "target": _plain(state.target),
            "currency": state.currency,
            "formatted": self.format_display(key),
            "percentage": percentage,
            "goalCompleted": new_current >= state.target,
        }

    def subscription_equivalent(self, platform: str) -> Optional[float]:
        entry = _PAYPIGGY_KEYS.get((platform or "").lower())
        if entry is None:
            return None
        key, default = entry
        if self._config is None:
            return default
        return self._config.get_number("goals", key, default)

    def add_subscription_equivalent(self, platform: Any, count: int = 1) -> Dict[str, Any]:
        if not isinstance(platform, str):
            return self._invalid_platform(platform)

        value = self.subscription_equivalent(platform)
        if value is None:
            return self._invalid_platform(platform)

        log.debug(f"[goals] converting {count} {platform} paypiggy to {_plain(value * count)}")
        result = self.add_donation(platform, value * count)
        if result.get("success"):
            result["paypiggyValue"] = _plain(value)
        return result

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def format_display(
        self,
        platform: str,
        current: Optional[float] = None,
        target: Optional[float] = None,
    ) -> str:
        key = (platform or "").lower()
        state = self._goals.get(key)

        if state is None and (current is None or target is None):
            return "0/0 unknown"

        current_amount = float(current if current is not None else state.current)
        target_amount = float(target if target is not None else state.target)
        currency = state.currency if state else "unknown"

        if key == "youtube":
            return f"${current_amount:.2f}/${target_amount:.2f} USD"

        if key in ("tiktok", "twitch"):
            width = len(str(math.floor(target_amount)))
            padded = str(math.floor(current_amount)).zfill(width)
            return f"{padded}/{_plain(target_amount)} {currency}"

        return f"{_plain(current_amount)}/{_plain(target_amount)} {currency}"

    def get_goal_state(self, platform: str) -> Optional[Dict[str, Any]]:
        key = (platform or "").lower()
        state = self._goals.get(key)
        if state is None:
            return None
        result = asdict(state)
        result["formatted"] = self.format_display(key)
        return result

    def get_all_goal_states(self) -> Dict[str, Optional[Dict[str, Any]]]:
        return {platform: self.get_goal_state(platform) for platform in SUPPORTED_GOAL_PLATFORMS}


__all__ = [
    "SUPPORTED_GOAL_PLATFORMS",
    "GoalState",
    "GoalTracker",
]
