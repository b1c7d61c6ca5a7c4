from __future__ import annotations

from typing import Any, Dict, List, Mapping

from shared.notifications.strings import is_fiat_currency, sanitize_username_for_tts

MESSAGE_USERNAME_LENGTH = 12

DELAY_SUPERCHAT_MS = 4000
DELAY_PAYPIGGY_MS = 4000
DELAY_BITS_MS = 3000
DELAY_CHAT_MS = 0


def _is_bits(data: Mapping[str, Any]) -> bool:
    return data.get("isBits") is True or str(data.get("currency", "")).lower() == "bits"


def _is_superchat(data: Mapping[str, Any]) -> bool:
    if data.get("isSuperChat") is True:
        return True
    return data.get("platform") == "youtube" and is_fiat_currency(data.get("currency"))


def supports_messages(data: Mapping[str, Any]) -> bool:
    """Whether the viewer's attached message is read out after the primary line."""
    kind = data.get("type")
    if kind == "gift":
        return _is_superchat(data) and not _is_bits(data)
    return kind in ("paypiggy", "chat-message")


def has_valid_message(message: Any) -> bool:
    return isinstance(message, str) and bool(message.strip())


def message_delay_ms(data: Mapping[str, Any]) -> int:
    kind = data.get("type")
    if kind == "chat-message":
        return DELAY_CHAT_MS
    if kind == "paypiggy":
        return DELAY_PAYPIGGY_MS
    if kind == "gift" and _is_bits(data):
        return DELAY_BITS_MS
    return DELAY_SUPERCHAT_MS


def create_message_tts(username: str, message: str) -> str:
    name = sanitize_username_for_tts(username, MESSAGE_USERNAME_LENGTH)
    text = message.strip() if isinstance(message, str) else ""
    return f"{name} says {text}"


def create_tts_stages(data: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """
    Ordered TTS stages for a notification payload.

    Stage shape: {"text", "delay", "type"} with type "primary" or "message".
    """
    stages: List[Dict[str, Any]] = []
    kind = data.get("type")

    primary = data.get("ttsMessage")
    # Chat TTS already carries the message; only the message stage is kept.
    if kind != "chat-message" and has_valid_message(primary):
        stages.append({"text": primary.strip(), "delay": 0, "type": "primary"})

    message = data.get("message")
    if supports_messages(data) and has_valid_message(message):
        stages.append(
            {
                "text": create_message_tts(str(data.get("username") or ""), message),
                "delay": message_delay_ms(data),
                "type": "message",
            }
        )

    return stages


def estimate_display_ms(
    stages: List[Dict[str, Any]],
    *,
    min_ms: int = 2000,
    max_ms: int = 20000,
    tail_ms: int = 1000,
) -> int:
    """Display window long enough for the slowest stage to finish speaking."""
    if not stages:
        return min_ms

    longest = 0
    for stage in stages:
        words = len(str(stage.get("text") or "").split())
        stage_ms = int(stage.get("delay") or 0) + 400 + words * 170
        longest = max(longest, stage_ms)

    return min(max_ms, max(min_ms, longest + tail_ms))


__all__ = [
    "supports_messages",
    "has_valid_message",
    "message_delay_ms",
    "create_message_tts",
    "create_tts_stages",
    "estimate_display_ms",
]
