import asyncio
from typing import Optional

from core.event_bus import PLATFORM_EVENT, EventBus
from services.twitch.api.chat import TwitchChatClient
from services.twitch.auth.manager import TwitchAuthManager
from services.twitch.models.message import TwitchIrcMessage
from shared.logging.logger import get_logger

log = get_logger("twitch.chat_worker")


class TwitchChatWorker:
    """
    Scheduler-owned Twitch adapter (IRC over TLS).

    Responsibilities:
    - Obtain a valid token from the auth manager before each connection
    - Own the TwitchChatClient lifecycle and reconnect after drops
    - Publish canonical events on the bus `platform:event` topic
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        auth: TwitchAuthManager,
        channel: str,
        nickname: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        reconnect_delay: float = 5.0,
    ):
        if bus is None:
            raise RuntimeError("TwitchChatWorker requires an event bus")
        if auth is None:
            raise RuntimeError("TwitchChatWorker requires a TwitchAuthManager")
        if not channel:
            raise RuntimeError("Twitch channel is required")

        self.bus = bus
        self.auth = auth
        self.channel = channel
        self.nickname = nickname or channel
        self.host = host
        self.port = port
        self.reconnect_delay = reconnect_delay

        self._client: Optional[TwitchChatClient] = None
        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------ #

    async def run(self) -> None:
        log.info(f"[twitch] chat worker starting for #{self.channel}")

        try:
            while not self._stop_event.is_set():
                if not await self.auth.ensure_valid_token():
                    log.error(
                        f"[twitch] no valid token (state={self.auth.get_state().value}, "
                        f"error={self.auth.get_last_error()})"
                    )
                else:
                    await self._run_connection()

                if self._stop_event.is_set():
                    break
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.reconnect_delay)
                except asyncio.TimeoutError:
                    log.info("[twitch] reconnecting")

        except asyncio.CancelledError:
            log.debug("[twitch] chat worker cancelled")
            raise
        finally:
            await self.shutdown()

    async def _run_connection(self) -> None:
        self._client = TwitchChatClient(
            token=self.auth.get_access_token(),
            nickname=self.nickname,
            channel=self.channel,
            host=self.host,
            port=self.port,
        )
        try:
            await self._client.connect()
            async for message in self._client.iter_messages():
                await self.handle_message(message)
                if self._stop_event.is_set():
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"[twitch] chat connection error: {e}")
        finally:
            await self._client.close()

    async def shutdown(self) -> None:
        if self._stop_event.is_set():
            return

        self._stop_event.set()
        if self._client is not None:
            await self._client.close()
        log.info("[twitch] chat worker stopped")

    # ------------------------------------------------------------------ #

    async def handle_message(self, message: TwitchIrcMessage) -> int:
        """Publish every canonical event carried by `message`. Returns the count."""
        events = message.to_platform_events()
        for event in events:
            log.debug(f"[twitch] publishing {event['type']} from {event['data'].get('username')}")
            await self.bus.publish(PLATFORM_EVENT, event)
        return len(events)
