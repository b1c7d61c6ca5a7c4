from __future__ import annotations

import uuid
from typing import Any, Dict, Optional, Tuple

from shared.logging.logger import get_logger
from shared.notifications import strings
from shared.notifications.errors import BuildFailure, TemplateError
from shared.notifications.events import (
    MONETIZATION_TYPES,
    CanonicalEvent,
    EventType,
    Notification,
    get_priority,
)
from shared.notifications.sanitize import sanitize_string_value
from shared.notifications.templates import has_unresolved_placeholders, interpolate

log = get_logger("notifications.builder")

TTS_SHORT_USERNAME = 12

_ERROR_LABELS = {
    EventType.GIFT: "gift",
    EventType.ENVELOPE: "treasure chest",
    EventType.PAYPIGGY: "subscription",
    EventType.GIFTPAYPIGGY: "subscription",
}


class NotificationBuilder:
    """
    Renders a CanonicalEvent into display, TTS and log copy.

    Responsibilities:
    - Validate the kind-specific fields the templates depend on
    - Compute derived values (formatted counts, currency text, suffixes)
    - Interpolate the template set and verify the rendered output

    The builder is synchronous and holds no state.
    """

    def build(
        self,
        event: CanonicalEvent,
        *,
        vfx_config: Optional[Dict[str, Any]] = None,
        is_first_message: Optional[bool] = None,
    ) -> Notification:
        if event.type is EventType.STREAM_STATUS:
            raise BuildFailure("stream-status events are not displayed", field="type")

        values = self._base_values(event)

        if event.payload.get("isError") is True:
            templates = self._error_templates(event, values)
        else:
            templates = self._templates_for(event, values)

        display, tts, log_message = (
            self._render(templates[0], values),
            self._render(templates[1], values),
            self._render(templates[2], values),
        )

        for label, text in (("display", display), ("tts", tts), ("log", log_message)):
            if not text or not text.strip():
                raise BuildFailure(f"Rendered {label} message is empty")
            if has_unresolved_placeholders(text):
                raise BuildFailure(f"Rendered {label} message has unresolved placeholders")

        notification = Notification(
            type=event.type,
            platform=event.platform,
            username=values["username"],
            display_message=display,
            tts_message=tts,
            log_message=log_message,
            priority=get_priority(event.type),
            id=f"{event.platform}-{event.type.value}-{uuid.uuid4()}",
            user_id=event.user_id,
            timestamp=event.timestamp,
            vfx_config=vfx_config,
            is_first_message=is_first_message,
            payload=dict(event.payload),
        )

        log.debug(f"[builder] {event.platform}/{event.type.value}: {log_message}")
        return notification

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def _base_values(self, event: CanonicalEvent) -> Dict[str, Any]:
        username = sanitize_string_value(event.username).strip()
        if not username:
            raise BuildFailure("Missing username", field="username")

        # Greetings and farewells keep the whole name; everything else is capped.
        if event.type in (EventType.GREETING, EventType.FAREWELL):
            display_name = username
            tts_name = strings.sanitize_username_for_tts(username, len(username))
        else:
            display_name = strings.truncate_username(username)
            tts_name = strings.sanitize_username_for_tts(username)

        return {
            "username": display_name,
            "rawUsername": username,
            "ttsUsername": tts_name,
            "ttsShortUsername": strings.sanitize_username_for_tts(username, TTS_SHORT_USERNAME),
            "platform": event.platform,
        }

    @staticmethod
    def _render(template: str, values: Dict[str, Any]) -> str:
        try:
            return interpolate(template, values)
        except TemplateError as e:
            raise BuildFailure(str(e), field=e.key) from e

    def _templates_for(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        handler = {
            EventType.FOLLOW: self._simple,
            EventType.SHARE: self._simple,
            EventType.GREETING: self._simple,
            EventType.FAREWELL: self._simple,
            EventType.RAID: self._raid,
            EventType.ENVELOPE: self._envelope,
            EventType.COMMAND: self._command,
            EventType.REDEMPTION: self._redemption,
            EventType.CHAT_MESSAGE: self._chat,
            EventType.GIFT: self._gift,
            EventType.PAYPIGGY: self._paypiggy,
            EventType.GIFTPAYPIGGY: self._giftpaypiggy,
        }.get(event.type)

        if handler is None:
            raise BuildFailure(f"No templates for {event.type.value}", field="type")
        return handler(event, values)

    # ------------------------------------------------------------------
    # Per-kind handlers
    # ------------------------------------------------------------------

    def _simple(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        t = strings.NOTIFICATION_TEMPLATES[event.type.value]
        return t["display"], t["tts"], t["log"]

    def _raid(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        viewers = strings.to_number(event.payload.get("viewerCount"))
        if viewers is None:
            raise BuildFailure("Raid notification requires viewerCount", field="viewerCount")

        values["viewerCount"] = int(viewers)
        values["formattedViewerCount"] = strings.format_viewer_count(viewers)

        t = strings.NOTIFICATION_TEMPLATES["raid"]
        return t["display"], t["tts"], t["log"]

    def _envelope(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        t = strings.NOTIFICATION_TEMPLATES["envelope"]
        amount = strings.to_number(event.payload.get("amount"))
        if amount is not None and amount > 0:
            values["formattedCoins"] = strings.format_coins(amount)
            return t["display"], t["tts"], t["logWithCoins"]
        return t["display"], t["tts"], t["log"]

    def _command(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        for key in ("command", "commandName"):
            if not _non_empty(event.payload.get(key)):
                raise BuildFailure(f"Command notification requires {key}", field=key)
        values["command"] = event.payload["command"]
        values["commandName"] = event.payload["commandName"]

        t = strings.NOTIFICATION_TEMPLATES["command"]
        return t["display"], t["tts"], t["log"]

    def _redemption(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        title = event.payload.get("rewardTitle")
        if not _non_empty(title):
            raise BuildFailure("Redemption notification requires rewardTitle", field="rewardTitle")
        values["rewardTitle"] = title

        t = strings.NOTIFICATION_TEMPLATES["redemption"]
        cost = strings.to_number(event.payload.get("rewardCost"))
        if cost is not None and cost > 0:
            values["rewardCost"] = int(cost) if cost.is_integer() else cost
            return t["displayWithCost"], t["tts"], t["logWithCost"]
        return t["display"], t["tts"], t["log"]

    def _chat(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        message = event.payload.get("message")
        if not _non_empty(message):
            raise BuildFailure("Chat notification requires message", field="message")
        values["message"] = message.strip()

        t = strings.NOTIFICATION_TEMPLATES["chat-message"]
        return t["display"], t["tts"], t["log"]

    def _gift(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        payload = event.payload

        gift_type = payload.get("giftType")
        if not _non_empty(gift_type):
            raise BuildFailure("Gift notification requires giftType", field="giftType")
        gift_type = gift_type.strip()

        count = strings.to_number(payload.get("giftCount"))
        if count is None or count <= 0:
            raise BuildFailure("Gift notification requires a positive giftCount", field="giftCount")

        amount = strings.to_number(payload.get("amount"))
        if amount is None or amount <= 0:
            raise BuildFailure("Gift notification requires a positive amount", field="amount")

        currency = strings.normalize_currency(payload.get("currency"))
        if not currency:
            raise BuildFailure("Gift notification requires currency", field="currency")

        count = int(count)
        message = payload.get("message")
        message = message.strip() if isinstance(message, str) else ""

        values.update(
            {
                "giftType": gift_type,
                "giftCount": count,
                "amount": amount,
                "currency": currency,
                "formattedGiftCount": strings.format_gift_count(count, gift_type),
                "formattedGiftCountForDisplay": strings.format_gift_count_for_display(count, gift_type),
                "messageSuffix": f": {message}" if message else "",
                "ttsMessageSuffix": f". {message}" if message else "",
            }
        )

        t = strings.NOTIFICATION_TEMPLATES["gift"]

        if currency == "bits":
            values["formattedBits"] = strings.format_bits_amount(amount)
            values["ttsBits"] = strings.format_bits_amount_for_tts(amount)
            return t["displayBits"], t["ttsBits"], t["logBits"]

        if currency == "coins":
            has_gift_word = "gift" in gift_type.lower()
            values["formattedCoins"] = strings.format_coins(amount)
            values["countPrefix"] = f"{count}x "
            values["giftLabel"] = gift_type if has_gift_word else f"{gift_type} gift"
            values["coinSuffix"] = f" ({values['formattedCoins']})"
            values["ttsCountPrefix"] = "a " if count == 1 else f"{count} "
            values["ttsGiftLabel"] = gift_type if count == 1 or gift_type.endswith("s") else f"{gift_type}s"
            values["ttsCoinSuffix"] = f" for {values['formattedCoins']}"
            return t["displayCoins"], t["ttsCoins"], t["logCoins"]

        values["formattedAmount"] = strings.format_currency(amount, currency)
        values["ttsAmount"] = strings.format_currency_for_tts(amount, currency)
        return t["displayFiat"], t["ttsFiat"], t["logFiat"]

    def _paypiggy(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        payload = event.payload
        tier = payload.get("tier")
        is_superfan = payload.get("isSuperfan") is True or (
            isinstance(tier, str) and tier.lower() == "superfan"
        )

        copy = strings.resolve_paypiggy_copy(event.platform, is_superfan=is_superfan)
        variant = copy["paypiggyVariant"]
        values.update(copy)

        months = strings.to_number(payload.get("months"))
        months = int(months) if months and months > 0 else None
        is_renewal = payload.get("isRenewal") is True or (months or 0) > 1

        if variant == "membership":
            level = payload.get("membershipLevel")
            values["paypiggySuffix"] = strings.format_level_suffix(level)
            values["paypiggyLogSuffix"] = strings.format_level_log_suffix(level)
        elif variant == "subscriber":
            values["paypiggySuffix"] = "" if is_superfan else strings.format_tier_display(tier)
            values["paypiggyLogSuffix"] = strings.format_tier_log_suffix(tier)
        else:
            values["paypiggySuffix"] = ""
            values["paypiggyLogSuffix"] = ""

        values["tierSuffix"] = values["paypiggySuffix"]
        values["formattedMonths"] = strings.format_months(months) if months else ""
        values["renewalMonthsText"] = f" for {values['formattedMonths']}" if months else ""
        values["membershipMonthsText"] = (
            f" for their {strings.format_ordinal(months)} month" if months else ""
        )
        values["logMonthsText"] = f" ({values['formattedMonths']})" if months else ""

        t = strings.PAYPIGGY_TEMPLATES[variant]
        if is_renewal:
            return t["displayResub"], t["ttsResub"], t["logResub"]
        return t["display"], t["tts"], t["log"]

    def _giftpaypiggy(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        count = strings.to_number(event.payload.get("giftCount"))
        if count is None or count <= 0:
            raise BuildFailure("Gifted subscription notification requires giftCount", field="giftCount")
        count = int(count)

        copy = strings.resolve_paypiggy_copy(event.platform)
        values.update(copy)
        values["giftCount"] = count
        values["giftTierSuffix"] = (
            strings.format_tier_display(event.payload.get("tier"))
            if event.platform == "twitch"
            else ""
        )
        values["formattedGiftCount"] = str(count)

        t = strings.NOTIFICATION_TEMPLATES["giftpaypiggy"]
        if count > 1:
            return t["displayMany"], t["ttsMany"], t["logMany"]
        return t["display"], t["tts"], t["log"]

    # ------------------------------------------------------------------
    # Error copy
    # ------------------------------------------------------------------

    def _error_templates(self, event: CanonicalEvent, values: Dict[str, Any]) -> Tuple[str, str, str]:
        values["errorLabel"] = _ERROR_LABELS.get(event.type, "notification")
        t = strings.NOTIFICATION_TEMPLATES["error"]
        display = t["displayPayment"] if event.type in MONETIZATION_TYPES else t["display"]
        return display, t["tts"], t["log"]


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


__all__ = ["NotificationBuilder"]
