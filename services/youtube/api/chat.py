import asyncio
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional, Set, Tuple

import httpx

from services.youtube.models.message import YouTubeChatMessage
from shared.logging.logger import get_logger

log = get_logger("youtube.chat")

# Error reasons after which polling the same liveChatId can never succeed.
TERMINAL_REASONS = {"liveChatEnded", "liveChatDisabled", "liveChatNotFound", "forbidden"}


class LiveChatEnded(RuntimeError):
    def __init__(self, reason: str):
        super().__init__(f"live chat unavailable: {reason}")
        self.reason = reason


class YouTubeChatClient:
    """
    Polling client for YouTube Live Chat via the Data API v3.

    Responsibilities:
    - Poll liveChat/messages endpoint
    - Respect server-provided polling intervals
    - Deduplicate messages
    - Normalize payloads into YouTubeChatMessage
    - Skip the backlog returned by the first poll
    """

    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def __init__(
        self,
        *,
        api_key: str,
        live_chat_id: str,
        api_base: Optional[str] = None,
        poll_interval: float = 5.0,
        timeout: float = 15.0,
        skip_backlog: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise RuntimeError("YouTube API key is required")
        if not live_chat_id:
            raise RuntimeError("YouTube live_chat_id is required")

        self.api_key = api_key
        self.live_chat_id = live_chat_id
        self.url = f"{(api_base or self.BASE_URL).rstrip('/')}/liveChat/messages"
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.skip_backlog = skip_backlog

        self._client = http_client
        self._page_token: Optional[str] = None
        self._primed = False
        self._stop_event = asyncio.Event()
        self._seen_ids: Set[str] = set()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def iter_messages(self) -> AsyncGenerator[YouTubeChatMessage, None]:
        """
        Poll YouTube live chat and yield normalized messages.

        Uses nextPageToken and pollingIntervalMillis as advised
        by the YouTube Data API. Stops when the chat ends.
        """
        self._stop_event.clear()

        log.info(f"[youtube] starting live chat polling (liveChatId={self.live_chat_id})")

        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self.timeout)

        try:
            while not self._stop_event.is_set():
                try:
                    messages, sleep_seconds = await self.poll_once(client)
                except asyncio.CancelledError:
                    raise
                except LiveChatEnded as e:
                    log.warning(f"[youtube] {e}; polling halted")
                    return
                except (httpx.HTTPError, ValueError) as e:
                    log.warning(f"[youtube] chat poll error: {e}")
                    messages, sleep_seconds = [], self.poll_interval

                for message in messages:
                    yield message

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            if owns_client:
                await client.aclose()
            log.info("[youtube] live chat polling stopped")

    async def close(self) -> None:
        """
        Signal polling loop to stop.
        """
        self._stop_event.set()

    # ------------------------------------------------------------------ #
    # Polling
    # ------------------------------------------------------------------ #

    async def poll_once(self, client: httpx.AsyncClient) -> Tuple[List[YouTubeChatMessage], float]:
        """One liveChat/messages request. Returns (new messages, seconds to wait)."""
        params = {
            "part": "snippet,authorDetails",
            "liveChatId": self.live_chat_id,
            "key": self.api_key,
        }
        if self._page_token:
            params["pageToken"] = self._page_token

        response = await client.get(self.url, params=params)
        if response.status_code in (403, 404):
            reason = self._error_reason(response)
            if reason in TERMINAL_REASONS or response.status_code == 404:
                raise LiveChatEnded(reason or str(response.status_code))
        response.raise_for_status()
        data = response.json()

        self._page_token = data.get("nextPageToken")

        messages: List[YouTubeChatMessage] = []
        items = data.get("items", [])
        for item in items:
            msg_id = item.get("id")
            if not msg_id or msg_id in self._seen_ids:
                continue
            self._seen_ids.add(msg_id)
            messages.append(self._normalize_message(item))

        if self.skip_backlog and not self._primed:
            log.info(f"[youtube] skipped {len(messages)} backlog message(s) from before connect")
            messages = []
        self._primed = True

        # Respect server-recommended polling interval
        interval_ms = data.get("pollingIntervalMillis")
        sleep_seconds = (
            interval_ms / 1000.0
            if isinstance(interval_ms, (int, float))
            else self.poll_interval
        )

        log.debug(f"[youtube] poll complete (messages={len(items)}, new={len(messages)}, sleep={sleep_seconds}s)")
        return messages, sleep_seconds

    @staticmethod
    def _error_reason(response: httpx.Response) -> Optional[str]:
        try:
            errors = response.json().get("error", {}).get("errors") or []
        except ValueError:
            return None
        if errors and isinstance(errors[0], dict):
            return errors[0].get("reason")
        return None

    # ------------------------------------------------------------------ #
    # Normalization helpers
    # ------------------------------------------------------------------ #

    def _normalize_message(self, payload: Dict) -> YouTubeChatMessage:
        """
        Convert a YouTube liveChatMessage resource into a normalized shape.
        """
        snippet = payload.get("snippet", {})
        author_details = payload.get("authorDetails", {})
        message_type = snippet.get("type") or "textMessageEvent"

        # superChatEvent -> superChatDetails, newSponsorEvent -> newSponsorDetails ...
        details_key = message_type[: -len("Event")] + "Details" if message_type.endswith("Event") else ""

        return YouTubeChatMessage(
            raw=payload,
            live_chat_id=snippet.get("liveChatId", self.live_chat_id),
            message_id=payload.get("id"),
            message_type=message_type,
            author_name=author_details.get("displayName") or "unknown",
            author_channel_id=author_details.get("channelId"),
            text=snippet.get("displayMessage") or "",
            published_at=self._parse_published_at(snippet.get("publishedAt")),
            is_owner=bool(author_details.get("isChatOwner")),
            is_moderator=bool(author_details.get("isChatModerator")),
            is_member=bool(author_details.get("isChatSponsor")),
            details=snippet.get(details_key) or {},
        )

    @staticmethod
    def _parse_published_at(raw: Optional[str]) -> Optional[datetime]:
        if not raw:
            return None
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            return ts.astimezone(timezone.utc)
        except ValueError:
            return None


__all__ = ["LiveChatEnded", "YouTubeChatClient"]
