from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

MICROS = 1_000_000


def _amount_from_micros(raw: Any) -> Optional[float]:
    try:
        amount = int(raw) / MICROS
    except (TypeError, ValueError):
        return None
    return amount if amount > 0 else None


@dataclass
class YouTubeChatMessage:
    """
    A liveChatMessages resource reduced to what the notification pipeline
    needs. `message_type` is the API's `snippet.type` (textMessageEvent,
    superChatEvent, newSponsorEvent ...); `details` is the matching
    `snippet.<type>Details` object.
    """

    raw: Dict[str, Any]
    live_chat_id: str
    message_id: Optional[str]
    message_type: str
    author_name: str
    text: str

    author_channel_id: Optional[str] = None
    published_at: Optional[datetime] = None
    is_owner: bool = False
    is_moderator: bool = False
    is_member: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def _base(self) -> Dict[str, Any]:
        return {
            "username": self.author_name,
            "userId": self.author_channel_id,
            "id": self.message_id,
            "timestamp": (
                self.published_at.astimezone(timezone.utc).isoformat()
                if self.published_at
                else datetime.now(timezone.utc).isoformat()
            ),
        }

    def _event(self, kind: str, **data: Any) -> Dict[str, Any]:
        payload = self._base()
        payload.update(data)
        return {"platform": "youtube", "type": kind, "data": payload}

    def _paid_event(self, gift_type: str, comment: Optional[str], **extra: Any) -> Dict[str, Any]:
        amount = _amount_from_micros(self.details.get("amountMicros"))
        currency = self.details.get("currency")
        if amount is None or not currency:
            # Amount could not be read; surface an error notification instead of dropping it.
            return self._event("gift", giftType=gift_type, isError=True, **extra)

        return self._event(
            "gift",
            giftType=gift_type,
            giftCount=1,
            amount=amount,
            currency=currency,
            isSuperChat=gift_type == "Super Chat",
            message=comment or None,
            **extra,
        )

    def to_platform_events(self) -> List[Dict[str, Any]]:
        kind = self.message_type
        details = self.details

        if kind == "textMessageEvent":
            return [self._event("chat-message", message=self.text)]

        if kind == "superChatEvent":
            return [self._paid_event("Super Chat", details.get("userComment"))]

        if kind == "superStickerEvent":
            sticker = (details.get("superStickerMetadata") or {}).get("altText")
            return [self._paid_event("Super Sticker", None, sticker=sticker)]

        if kind == "newSponsorEvent":
            return [
                self._event(
                    "paypiggy",
                    membershipLevel=details.get("memberLevelName"),
                    isUpgrade=bool(details.get("isUpgrade")),
                )
            ]

        if kind == "memberMilestoneChatEvent":
            return [
                self._event(
                    "paypiggy",
                    membershipLevel=details.get("memberLevelName"),
                    months=details.get("memberMonth"),
                    isRenewal=True,
                    message=details.get("userComment") or None,
                )
            ]

        if kind == "membershipGiftingEvent":
            return [
                self._event(
                    "giftpaypiggy",
                    giftCount=details.get("giftMembershipsCount") or 1,
                    membershipLevel=details.get("giftMembershipsLevelName"),
                )
            ]

        return []
