import asyncio
import os
import signal
import sys
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from core.config_loader import ConfigLoader, ConfigService, load_twitch_auth_config, load_youtube_config
from core.event_bus import PLATFORM_EVENT, EventBus
from core.goals import GoalTracker
from core.notification_manager import NotificationManager
from core.router import PlatformEventRouter
from core.scheduler import Scheduler
from services.overlay.actuator import LoggingOverlayActuator, OverlayActuator
from services.overlay.display_queue import DisplayQueue
from services.spam.detector import DonationSpamDetector, SpamDetectionConfig, aggregated_gift_event
from services.twitch.auth.manager import TwitchAuthManager
from services.twitch.workers.chat_worker import TwitchChatWorker
from services.users.tracking import UserTrackingService
from services.vfx.commands import VFXCommandService
from services.youtube.workers.chat_worker import YouTubeChatWorker
from shared.logging.logger import get_logger

log = get_logger("core.app")


@dataclass
class Runtime:
    config: ConfigService
    bus: EventBus
    actuator: OverlayActuator
    display_queue: DisplayQueue
    vfx: VFXCommandService
    goals: GoalTracker
    spam: DonationSpamDetector
    users: UserTrackingService
    manager: NotificationManager
    router: PlatformEventRouter
    scheduler: Scheduler


def build_runtime(config: ConfigService, *, actuator: Optional[OverlayActuator] = None) -> Runtime:
    """
    Wire the notification pipeline. No tasks are started here; call
    `start_runtime` from inside the event loop.
    """
    bus = EventBus()
    actuator = actuator or LoggingOverlayActuator()

    display_queue = DisplayQueue(actuator, config, bus=bus)

    vfx = VFXCommandService(config, bus=bus, actuator=actuator)
    vfx.attach()

    goals = GoalTracker(config)
    goals.initialize()

    async def _publish_aggregated(payload):
        await bus.publish(PLATFORM_EVENT, aggregated_gift_event(payload))

    spam = DonationSpamDetector(
        SpamDetectionConfig.from_config(config),
        on_aggregated_donation=_publish_aggregated,
    )
    users = UserTrackingService()

    manager = NotificationManager(
        config,
        display_queue,
        goal_tracker=goals,
        spam_detector=spam,
        user_tracking=users,
        vfx_service=vfx,
    )

    router = PlatformEventRouter(bus, manager, config=config)
    router.start()

    return Runtime(
        config=config,
        bus=bus,
        actuator=actuator,
        display_queue=display_queue,
        vfx=vfx,
        goals=goals,
        spam=spam,
        users=users,
        manager=manager,
        router=router,
        scheduler=Scheduler(),
    )


def _start_twitch(runtime: Runtime) -> None:
    config = runtime.config
    if not config.get_boolean("twitch", "enabled", False):
        log.info("[BOOT] twitch skipped (disabled in config)")
        return

    auth_config = load_twitch_auth_config(config)
    if not auth_config["channel"]:
        log.warning("[BOOT] twitch enabled but TWITCH_CHANNEL is not set")
        return

    def _tokens_rotated(tokens):
        log.info("[twitch] tokens rotated; update TWITCH_ACCESS_TOKEN / TWITCH_REFRESH_TOKEN to persist them")

    auth = TwitchAuthManager(auth_config, on_tokens_updated=_tokens_rotated)
    worker = TwitchChatWorker(
        bus=runtime.bus,
        auth=auth,
        channel=auth_config["channel"],
        nickname=os.getenv("TWITCH_BOT_NICK") or None,
        host=config.get_string("twitch", "ircHost", "irc.chat.twitch.tv"),
        port=int(config.get_number("twitch", "ircPort", 6697)),
    )
    runtime.scheduler.start_worker("twitch", _TwitchRuntimeWorker(worker, auth))


class _TwitchRuntimeWorker:
    """Couples the chat worker with its auth manager so shutdown releases both."""

    def __init__(self, worker: TwitchChatWorker, auth: TwitchAuthManager):
        self.worker = worker
        self.auth = auth

    async def run(self) -> None:
        try:
            await self.worker.run()
        finally:
            await self.auth.cleanup()

    async def shutdown(self) -> None:
        await self.worker.shutdown()
        await self.auth.cleanup()


def _start_youtube(runtime: Runtime) -> None:
    config = runtime.config
    if not config.get_boolean("youtube", "enabled", False):
        log.info("[BOOT] youtube skipped (disabled in config)")
        return

    yt = load_youtube_config(config)
    if not yt["apiKey"] or not (yt["liveChatId"] or yt["channelId"]):
        log.warning("[BOOT] youtube enabled but YOUTUBE_API_KEY and a chat or channel id are required")
        return

    worker = YouTubeChatWorker(
        bus=runtime.bus,
        api_key=yt["apiKey"],
        live_chat_id=yt["liveChatId"] or None,
        channel_id=yt["channelId"] or None,
        api_base=yt["apiBase"],
        poll_interval=float(yt["pollIntervalSeconds"]),
        discovery_interval=float(yt["discoveryIntervalSeconds"]),
        timeout=float(yt["requestTimeoutMs"]) / 1000,
    )
    runtime.scheduler.start_worker("youtube", worker)


def start_runtime(runtime: Runtime) -> None:
    runtime.scheduler.start_housekeeping(manager=runtime.manager, spam_detector=runtime.spam)

    for starter in (_start_twitch, _start_youtube):
        try:
            starter(runtime)
        except Exception as e:
            log.error(f"[BOOT] failed to start adapter: {e}")

    if runtime.config.get_boolean("tiktok", "enabled", False):
        log.info("[BOOT] tiktok events are accepted from any producer publishing on the bus")


async def stop_runtime(runtime: Runtime) -> None:
    """Tasks first, then collaborators that own timers or subscriptions."""
    try:
        await runtime.scheduler.shutdown()
    except Exception as e:
        log.warning(f"Scheduler shutdown error ignored: {e}")

    runtime.router.dispose()
    runtime.vfx.detach()
    runtime.spam.destroy()
    await runtime.manager.stop()
    await runtime.display_queue.stop()


async def main(stop_event: asyncio.Event):
    # --------------------------------------------------
    # ENV + CONFIG
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")
    log.info("StreamAlerts booting")

    config = ConfigLoader().load()

    # --------------------------------------------------
    # CORE SYSTEMS
    # --------------------------------------------------
    runtime = build_runtime(config)
    start_runtime(runtime)
    log.info(f"[BOOT] running tasks: {runtime.scheduler.task_names()}")

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL
    # --------------------------------------------------
    await stop_event.wait()

    log.info("Shutdown initiated")
    await stop_runtime(runtime)
    log.info("StreamAlerts stopped")


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Windows-safe Ctrl+C handler.
    Uses signal.signal + asyncio.Event to unwind cleanly.
    """

    def _handler(signum, frame):
        try:
            loop.call_soon_threadsafe(stop_event.set)
        except RuntimeError:
            stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except (ValueError, OSError) as e:
        log.debug(f"signal handlers not installed: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run():
    stop_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    _install_signal_handlers(loop, stop_event)

    try:
        loop.run_until_complete(main(stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received; shutdown initiated")
        stop_event.set()

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))

        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()


if __name__ == "__main__":
    run()
    sys.exit(0)
