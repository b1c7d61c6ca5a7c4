import asyncio
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, Optional, Tuple

from services.twitch.models.message import TwitchIrcMessage
from shared.logging.logger import get_logger

log = get_logger("twitch.chat")

_TAG_ESCAPES = {
    "s": " ",
    ":": ";",
    "\\": "\\",
    "r": "\r",
    "n": "\n",
}


class TwitchChatClient:
    """
    Read-only Twitch IRC-over-TLS client.

    - Requests tags and commands capabilities so bits, subs and raids arrive
      as tagged PRIVMSG / USERNOTICE lines
    - Answers PING and stops on RECONNECT or remote close
    - Connection lifecycle is owned by the adapter
    """

    HOST = "irc.chat.twitch.tv"
    PORT = 6697

    def __init__(
        self,
        token: str,
        nickname: str,
        channel: str,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ):
        if not token:
            raise RuntimeError("Twitch IRC token is required")
        if not channel:
            raise RuntimeError("Twitch channel is required")

        self.token = self._normalize_token(token)
        self.channel = self._normalize_channel(channel)
        self.nickname = (nickname or self.channel).lower()
        self.host = host or self.HOST
        self.port = int(port or self.PORT)

        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None

        self._connected = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def connect(self) -> None:
        if self._connected:
            log.debug("[twitch] IRC client already connected")
            return

        log.info(f"[twitch] connecting to {self.host}:{self.port} as {self.nickname} (#{self.channel})")
        self.reader, self.writer = await asyncio.open_connection(self.host, self.port, ssl=True)
        await self.login()

    async def login(self) -> None:
        """Authenticate and join. Separate from connect() so tests can supply streams."""
        await self._send_raw(f"PASS {self.token}")
        await self._send_raw(f"NICK {self.nickname}")
        await self._send_raw("CAP REQ :twitch.tv/tags twitch.tv/commands")
        await self._send_raw(f"JOIN #{self.channel}")
        self._connected = True
        log.info(f"[twitch] joined #{self.channel}")

    async def close(self) -> None:
        if not self.writer:
            return

        log.info("[twitch] closing IRC connection")
        try:
            await self._send_raw(f"PART #{self.channel}")
        except Exception as e:
            log.debug(f"[twitch] PART failed during close: {e}")

        try:
            self.writer.close()
            await self.writer.wait_closed()
        except Exception as e:
            log.debug(f"[twitch] error during IRC close ignored: {e}")
        finally:
            self.reader = None
            self.writer = None
            self._connected = False

    # ------------------------------------------------------------------ #
    # Reading
    # ------------------------------------------------------------------ #

    async def iter_messages(self) -> AsyncGenerator[TwitchIrcMessage, None]:
        if not self.reader:
            raise RuntimeError("iter_messages called before connect()")

        while True:
            line = await self.reader.readline()

            if line == b"":
                log.warning("[twitch] IRC connection closed by remote")
                break

            decoded = line.decode("utf-8", errors="ignore").strip()
            if not decoded:
                continue

            if decoded.startswith("PING"):
                await self._handle_ping(decoded)
                continue

            msg = self.parse_line(decoded)
            if msg is None:
                continue
            if msg.command == "RECONNECT":
                log.warning("[twitch] server requested reconnect")
                break
            yield msg

    # ------------------------------------------------------------------ #
    # Parsing
    # ------------------------------------------------------------------ #

    @classmethod
    def parse_line(cls, raw: str) -> Optional[TwitchIrcMessage]:
        """Parse PRIVMSG, USERNOTICE and RECONNECT lines; everything else is None."""
        tags, remainder = cls._split_tags(raw)
        prefix, command, params = cls._split_prefix_and_command(remainder)

        if command == "RECONNECT":
            return TwitchIrcMessage(raw=raw, command=command, channel="", username="")

        if command == "PRIVMSG" and len(params) >= 2:
            channel, text = params[0], params[1]
        elif command == "USERNOTICE" and params:
            channel = params[0]
            text = params[1] if len(params) > 1 else ""
        else:
            return None

        username = cls._parse_username(prefix) or tags.get("login") or tags.get("display-name") or ""

        message = TwitchIrcMessage(
            raw=raw,
            command=command,
            channel=channel.lstrip("#"),
            username=username,
            text=text,
            tags=tags,
            message_id=tags.get("id"),
            user_id=tags.get("user-id"),
            badges=cls._parse_badges(tags.get("badges")),
            timestamp=cls._parse_timestamp(tags.get("tmi-sent-ts")),
        )

        log.debug(f"[twitch] {command} {message.notice_type or ''} from {message.display_name}: {text}")
        return message

    async def _send_raw(self, data: str) -> None:
        if not self.writer:
            raise RuntimeError("IRC writer is not initialized")

        self.writer.write((data + "\r\n").encode("utf-8"))
        await self.writer.drain()

    async def _handle_ping(self, raw: str) -> None:
        payload = raw.split(" ", 1)[-1]
        await self._send_raw(f"PONG {payload}")
        log.debug("[twitch] answered PING")

    @staticmethod
    def _unescape_tag(value: str) -> str:
        out = []
        i = 0
        while i < len(value):
            ch = value[i]
            if ch == "\\" and i + 1 < len(value):
                out.append(_TAG_ESCAPES.get(value[i + 1], value[i + 1]))
                i += 2
                continue
            if ch != "\\":
                out.append(ch)
            i += 1
        return "".join(out)

    @classmethod
    def _split_tags(cls, raw: str) -> Tuple[Dict[str, str], str]:
        if raw.startswith("@") and " " in raw:
            tags_part, remainder = raw.split(" ", 1)
            tags = {}
            for pair in tags_part[1:].split(";"):
                if "=" in pair:
                    k, v = pair.split("=", 1)
                    tags[k] = cls._unescape_tag(v)
            return tags, remainder

        return {}, raw

    @staticmethod
    def _split_prefix_and_command(raw: str) -> Tuple[str, str, Tuple[str, ...]]:
        prefix = ""
        rest = raw
        if raw.startswith(":"):
            if " " in raw:
                prefix, rest = raw[1:].split(" ", 1)
            else:
                prefix = raw[1:]
                rest = ""

        if " :" in rest:
            middle, trailing = rest.split(" :", 1)
            parts = middle.split()
            if not parts:
                return prefix, "", tuple()
            return prefix, parts[0], tuple(parts[1:] + [trailing])

        parts = rest.split()
        if not parts:
            return prefix, "", tuple()
        return prefix, parts[0], tuple(parts[1:])

    @staticmethod
    def _parse_username(prefix: str) -> str:
        # nickname!nickname@nickname.tmi.twitch.tv
        if "!" in prefix:
            return prefix.split("!", 1)[0]
        return ""

    @staticmethod
    def _parse_timestamp(raw_ts: Optional[str]) -> Optional[datetime]:
        if not raw_ts:
            return None
        try:
            return datetime.fromtimestamp(int(raw_ts) / 1000.0, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None

    @staticmethod
    def _parse_badges(raw_badges: Optional[str]) -> list[str]:
        if not raw_badges:
            return []
        return [badge for badge in raw_badges.split(",") if badge]

    @staticmethod
    def _normalize_token(token: str) -> str:
        token = token.strip()
        if not token.startswith("oauth:"):
            return f"oauth:{token}"
        return token

    @staticmethod
    def _normalize_channel(channel: str) -> str:
        return channel.lstrip("#").strip().lower()
