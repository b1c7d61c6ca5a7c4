"""
Configuration loader for notification settings.

Settings live in shared/config/notifications.json and are validated against
schemas/notifications.schema.json. Failures are treated as warnings so the
runtime can continue booting with defaults. Credentials come from the
environment (.env is loaded by core.app).
"""

from __future__ import annotations

import json
import math
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from jsonschema import Draft7Validator

from shared.logging.logger import get_logger

log = get_logger("core.config_loader")


DEFAULTS: Dict[str, Dict[str, Any]] = {
    "general": {
        "messagesEnabled": True,
        "commandsEnabled": True,
        "greetingsEnabled": True,
        "farewellsEnabled": True,
        "followsEnabled": True,
        "sharesEnabled": True,
        "giftsEnabled": True,
        "raidsEnabled": True,
        "paypiggiesEnabled": True,
        "redemptionsEnabled": True,
        "userSuppressionEnabled": True,
        "maxNotificationsPerUser": 5,
        "suppressionWindowMs": 60000,
        "suppressionDurationMs": 300000,
        "suppressionCleanupIntervalMs": 300000,
        "dedupeTtlMs": 60000,
        "ttsEnabled": False,
        "testMode": False,
    },
    "twitch": {
        "enabled": False,
        "validateUrl": "https://id.twitch.tv/oauth2/validate",
        "tokenUrl": "https://id.twitch.tv/oauth2/token",
        "ircHost": "irc.chat.twitch.tv",
        "ircPort": 6697,
        "requestTimeoutMs": 10000,
        "scopes": ["chat:read"],
    },
    "youtube": {
        "enabled": False,
        "apiBase": "https://www.googleapis.com/youtube/v3",
        "pollIntervalSeconds": 5,
        "discoveryIntervalSeconds": 60,
        "requestTimeoutMs": 10000,
    },
    "tiktok": {
        "enabled": False,
    },
    "goals": {
        "enabled": False,
        "resetOnStreamStart": False,
        "goalScene": "goals-scene",
        "tiktokGoalEnabled": True,
        "tiktokGoalTarget": 1000,
        "tiktokGoalCurrency": "coins",
        "tiktokGoalSource": "tiktok-goal-text",
        "tiktokPaypiggyEquivalent": 50,
        "youtubeGoalEnabled": True,
        "youtubeGoalTarget": 1.00,
        "youtubeGoalCurrency": "dollars",
        "youtubeGoalSource": "youtube-goal-text",
        "youtubePaypiggyPrice": 4.99,
        "twitchGoalEnabled": True,
        "twitchGoalTarget": 100,
        "twitchGoalCurrency": "bits",
        "twitchGoalSource": "twitch-goal-text",
        "twitchPaypiggyEquivalent": 350,
    },
    "gifts": {
        "giftVideoSource": "gift-video",
        "giftAudioSource": "gift-audio",
        "giftScene": "gift-scene",
        "giftVfxDelayMs": 2000,
        "lowValueThreshold": 10,
        "spamDetectionEnabled": True,
        "spamDetectionWindow": 5,
        "maxIndividualNotifications": 2,
    },
    "displayQueue": {
        "autoProcess": True,
        "maxQueueSize": 100,
        "vfxTimeoutMs": 10000,
    },
    "timing": {
        "transitionDelayMs": 200,
        "notificationDurationMs": None,
        "chatMessageDurationMs": 4500,
    },
    "overlay": {
        "notificationTxt": "notification-text",
        "notificationScene": "notification-scene",
        "chatMsgTxt": "chat-message-text",
        "chatMsgScene": "chat-message-scene",
        "ttsTxt": "tts-text",
    },
    "vfx": {
        "mediaSource": "vfx-media",
        "directory": "media/vfx",
        "commands": {},
    },
}

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


# ======================================================================
# ConfigService
# ======================================================================

class ConfigService:
    """
    Read-mostly view over the merged configuration.

    Components receive this object through their constructor; nothing reads
    configuration from module globals.
    """

    def __init__(self, data: Optional[Mapping[str, Any]] = None) -> None:
        self._data: Dict[str, Dict[str, Any]] = merge_config(DEFAULTS, data or {})

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_section(self, section: str) -> Dict[str, Any]:
        return deepcopy(self._data.get(section, {}))

    def get(self, section: str, key: str, default: Any = None) -> Any:
        value = self._data.get(section, {}).get(key)
        return default if value is None else value

    def has(self, section: str, key: str) -> bool:
        return self._data.get(section, {}).get(key) is not None

    def get_boolean(self, section: str, key: str, default: bool = False) -> bool:
        value = self._data.get(section, {}).get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        return default

    def get_number(self, section: str, key: str, default: float = 0) -> float:
        value = self._data.get(section, {}).get(key)
        if isinstance(value, bool) or value is None:
            return default
        try:
            number = float(value)
        except (TypeError, ValueError):
            return default
        if not math.isfinite(number):
            return default
        return int(number) if number.is_integer() and not isinstance(value, float) else number

    def get_string(self, section: str, key: str, default: str = "") -> str:
        value = self._data.get(section, {}).get(key)
        if isinstance(value, str) and value.strip():
            return value
        return default

    # ------------------------------------------------------------------
    # Notification switches
    # ------------------------------------------------------------------

    def are_notifications_enabled(self, setting_key: str, platform: Optional[str] = None) -> bool:
        """Platform section overrides `general`; missing keys default to enabled."""
        if platform:
            platform_value = self._data.get(platform, {}).get(setting_key)
            if platform_value is not None:
                return bool(platform_value)

        general_value = self._data.get("general", {}).get(setting_key)
        if general_value is None:
            return True
        return bool(general_value)

    def is_tts_enabled(self) -> bool:
        return self._data.get("general", {}).get("ttsEnabled") is True

    def is_test_mode(self) -> bool:
        return self.get_boolean("general", "testMode", False)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update(self, section: str, values: Mapping[str, Any]) -> None:
        current = self._data.setdefault(section, {})
        current.update(deepcopy(dict(values)))
        log.debug(f"[config] updated section '{section}': {sorted(values)}")

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return deepcopy(self._data)


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Two-level merge: sections from `override` update matching default sections."""
    merged: Dict[str, Any] = deepcopy(dict(base))
    for section, values in override.items():
        if isinstance(values, Mapping) and isinstance(merged.get(section), dict):
            merged[section].update(deepcopy(dict(values)))
        else:
            merged[section] = deepcopy(values)
    return merged


# ======================================================================
# Loader
# ======================================================================

class ConfigLoader:
    """
    Loads and validates the notification settings document.

    Files:
      - shared/config/notifications.json

    Validation:
      - schemas/notifications.schema.json via jsonschema; errors are logged
        as warnings and the document is still applied.
    """

    CONFIG_PATH = Path("shared/config/notifications.json")
    SCHEMA_DIR = Path("schemas")

    def __init__(
        self,
        *,
        config_path: Optional[Path] = None,
        schema_path: Optional[Path] = None,
    ) -> None:
        env_path = os.getenv("STREAMALERTS_CONFIG")
        self._config_path = Path(config_path or env_path or self.CONFIG_PATH)
        self._schema_path = Path(schema_path or self.SCHEMA_DIR / "notifications.schema.json")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_json(self, path: Path, name: str) -> Dict[str, Any]:
        if not path.exists():
            log.warning(f"{name} config not found at {path}; using defaults")
            return {}

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
            log.warning(f"{name} config root is not an object; ignoring")
        except Exception as e:
            log.warning(f"Failed to load {name} config ({e}); using defaults")

        return {}

    def validate(self, payload: Dict[str, Any], name: str = "notifications") -> list[str]:
        if not self._schema_path.exists():
            log.debug(f"Schema for {name} not found at {self._schema_path}; skipping")
            return []

        try:
            schema = json.loads(self._schema_path.read_text(encoding="utf-8"))
        except Exception as e:
            log.warning(f"Failed to load {name} schema ({e}); skipping validation")
            return []

        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))

        messages = []
        for err in errors:
            loc = "/".join(str(p) for p in err.path)
            log.warning(f"{name} config validation warning at '{loc}': {err.message}")
            messages.append(f"{loc}: {err.message}")
        return messages

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self) -> ConfigService:
        payload = self._load_json(self._config_path, "notifications")
        if payload:
            self.validate(payload)
        config = ConfigService(payload)
        log.info(f"[config] loaded notification settings from {self._config_path}")
        return config


def load_twitch_auth_config(config: ConfigService) -> Dict[str, Any]:
    """Twitch credentials from the environment plus endpoint settings from config."""
    return {
        "clientId": os.getenv("TWITCH_CLIENT_ID", ""),
        "clientSecret": os.getenv("TWITCH_CLIENT_SECRET", ""),
        "accessToken": os.getenv("TWITCH_ACCESS_TOKEN", ""),
        "refreshToken": os.getenv("TWITCH_REFRESH_TOKEN", ""),
        "channel": os.getenv("TWITCH_CHANNEL", ""),
        "scopes": list(config.get("twitch", "scopes", [])),
        "validateUrl": config.get_string("twitch", "validateUrl", DEFAULTS["twitch"]["validateUrl"]),
        "tokenUrl": config.get_string("twitch", "tokenUrl", DEFAULTS["twitch"]["tokenUrl"]),
        "requestTimeoutMs": config.get_number("twitch", "requestTimeoutMs", 10000),
    }


def load_youtube_config(config: ConfigService) -> Dict[str, Any]:
    return {
        "apiKey": os.getenv("YOUTUBE_API_KEY", ""),
        "liveChatId": os.getenv("YOUTUBE_LIVE_CHAT_ID", ""),
        "channelId": os.getenv("YOUTUBE_CHANNEL_ID", ""),
        "apiBase": config.get_string("youtube", "apiBase", DEFAULTS["youtube"]["apiBase"]),
        "pollIntervalSeconds": config.get_number("youtube", "pollIntervalSeconds", 5),
        "discoveryIntervalSeconds": config.get_number("youtube", "discoveryIntervalSeconds", 60),
        "requestTimeoutMs": config.get_number("youtube", "requestTimeoutMs", 10000),
    }


__all__ = [
    "DEFAULTS",
    "ConfigService",
    "ConfigLoader",
    "merge_config",
    "load_twitch_auth_config",
    "load_youtube_config",
]
