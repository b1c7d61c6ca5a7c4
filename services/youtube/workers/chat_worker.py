import asyncio
from typing import Optional

import httpx

from core.event_bus import PLATFORM_EVENT, EventBus
from services.youtube.api.chat import YouTubeChatClient
from services.youtube.api.livestream import YouTubeLivestreamAPI
from services.youtube.models.message import YouTubeChatMessage
from services.youtube.models.stream import YouTubeLivestream
from shared.logging.logger import get_logger

log = get_logger("youtube.chat_worker")


class YouTubeChatWorker:
    """
    Scheduler-owned YouTube chat worker (polling).

    Responsibilities:
    - Resolve the liveChatId (configured, or discovered from a channel)
    - Own the YouTubeChatClient lifecycle (poll loop, shutdown)
    - Publish canonical events on the bus `platform:event` topic,
      including stream-status when a discovered stream starts or ends
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        api_key: str,
        live_chat_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        api_base: Optional[str] = None,
        poll_interval: float = 5.0,
        discovery_interval: float = 60.0,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if bus is None:
            raise RuntimeError("YouTubeChatWorker requires an event bus")
        if not api_key:
            raise RuntimeError("YouTube api_key is required")
        if not live_chat_id and not channel_id:
            raise RuntimeError("YouTube live_chat_id or channel_id is required")

        self.bus = bus
        self.api_key = api_key
        self.live_chat_id = live_chat_id
        self.channel_id = channel_id
        self.api_base = api_base
        self.poll_interval = poll_interval
        self.discovery_interval = discovery_interval
        self.timeout = timeout

        self._http_client = http_client
        self._livestreams = YouTubeLivestreamAPI(
            api_key=api_key,
            api_base=api_base,
            timeout=timeout,
            http_client=http_client,
        )
        self._client: Optional[YouTubeChatClient] = None
        self.active_stream: Optional[YouTubeLivestream] = None
        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------ #

    async def run(self) -> None:
        log.info("[youtube] chat worker starting")

        try:
            while not self._stop_event.is_set():
                chat_id = self.live_chat_id or await self._discover()
                if chat_id:
                    await self._poll_chat(chat_id)

                    if self.active_stream is not None:
                        await self.bus.publish(PLATFORM_EVENT, self.active_stream.status_event("offline"))
                        self.active_stream = None
                    elif self.live_chat_id:
                        # A configured chat that ended will not come back.
                        break

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.discovery_interval)
                except asyncio.TimeoutError:
                    pass

        except asyncio.CancelledError:
            log.debug("[youtube] chat worker cancelled")
            raise
        finally:
            await self.shutdown()

    async def _discover(self) -> Optional[str]:
        stream = await self._livestreams.get_active_livestream(channel_id=self.channel_id)
        if stream is None:
            log.info(f"[youtube] no active livestream for {self.channel_id}")
            return None

        log.info(f"[youtube] active liveChatId resolved: {stream.live_chat_id} ({stream.title})")
        self.active_stream = stream
        await self.bus.publish(PLATFORM_EVENT, stream.status_event("live"))
        return stream.live_chat_id

    async def _poll_chat(self, live_chat_id: str) -> None:
        self._client = YouTubeChatClient(
            api_key=self.api_key,
            live_chat_id=live_chat_id,
            api_base=self.api_base,
            poll_interval=self.poll_interval,
            timeout=self.timeout,
            http_client=self._http_client,
        )
        try:
            async for message in self._client.iter_messages():
                await self.handle_message(message)
                if self._stop_event.is_set():
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"[youtube] chat worker error: {e}")

    async def shutdown(self) -> None:
        if self._stop_event.is_set():
            return

        self._stop_event.set()
        if self._client is not None:
            await self._client.close()
        log.info("[youtube] chat worker stopped")

    # ------------------------------------------------------------------ #

    async def handle_message(self, message: YouTubeChatMessage) -> int:
        """Publish every canonical event carried by `message`. Returns the count."""
        events = message.to_platform_events()
        if not events:
            log.debug(f"[youtube] ignoring {message.message_type} from {message.author_name}")

        for event in events:
            log.debug(f"[youtube] publishing {event['type']} from {event['data'].get('username')}")
            await self.bus.publish(PLATFORM_EVENT, event)
        return len(events)


__all__ = ["YouTubeChatWorker"]
