from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _int_tag(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class TwitchIrcMessage:
    """
    A parsed PRIVMSG or USERNOTICE line from Twitch IRC.

    `to_platform_events` turns it into the canonical events the router
    accepts: chat, bits, subscriptions, gifted subscriptions and raids.
    """

    raw: str
    command: str
    channel: str
    username: str
    text: str = ""

    tags: Dict[str, str] = field(default_factory=dict)
    message_id: Optional[str] = None
    user_id: Optional[str] = None
    badges: List[str] = field(default_factory=list)
    timestamp: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.tags.get("display-name") or self.username

    @property
    def notice_type(self) -> Optional[str]:
        return self.tags.get("msg-id") if self.command == "USERNOTICE" else None

    @property
    def bits(self) -> Optional[int]:
        return _int_tag(self.tags.get("bits"))

    def _base(self) -> Dict[str, Any]:
        return {
            "username": self.display_name,
            "userId": self.user_id,
            "id": self.message_id,
            "timestamp": (
                self.timestamp.astimezone(timezone.utc).isoformat()
                if self.timestamp
                else datetime.now(timezone.utc).isoformat()
            ),
        }

    def _event(self, kind: str, **data: Any) -> Dict[str, Any]:
        payload = self._base()
        payload.update(data)
        return {"platform": "twitch", "type": kind, "data": payload}

    def to_platform_events(self) -> List[Dict[str, Any]]:
        if self.command == "PRIVMSG":
            bits = self.bits
            if bits:
                return [
                    self._event(
                        "gift",
                        giftType="bit" if bits == 1 else "bits",
                        giftCount=1,
                        amount=bits,
                        currency="bits",
                        isBits=True,
                        message=self.text,
                    )
                ]
            return [self._event("chat-message", message=self.text)]

        notice = self.notice_type
        tags = self.tags

        if notice in ("sub", "resub"):
            months = _int_tag(tags.get("msg-param-cumulative-months"))
            return [
                self._event(
                    "paypiggy",
                    tier=tags.get("msg-param-sub-plan"),
                    months=months,
                    isRenewal=notice == "resub",
                    message=self.text or None,
                )
            ]

        if notice == "subgift":
            # Individual gifts of a mystery gift are already counted by the
            # submysterygift notice that precedes them.
            if tags.get("msg-param-community-gift-id"):
                return []
            return [
                self._event(
                    "giftpaypiggy",
                    giftCount=1,
                    tier=tags.get("msg-param-sub-plan"),
                    recipient=tags.get("msg-param-recipient-display-name"),
                )
            ]

        if notice == "submysterygift":
            return [
                self._event(
                    "giftpaypiggy",
                    giftCount=_int_tag(tags.get("msg-param-mass-gift-count")) or 1,
                    tier=tags.get("msg-param-sub-plan"),
                )
            ]

        if notice == "raid":
            return [
                self._event(
                    "raid",
                    username=tags.get("msg-param-displayName") or self.display_name,
                    viewerCount=_int_tag(tags.get("msg-param-viewerCount")) or 0,
                )
            ]

        return []
