from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from shared.logging.logger import get_logger

log = get_logger("services.overlay.actuator")


class OverlayActuator(ABC):
    """
    Contract for whatever renders the broadcaster overlay.

    Only the display queue calls these methods. Implementations may raise;
    the queue logs the failure and advances to the next item.
    """

    @abstractmethod
    async def update_text_source(self, source: str, text: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def clear_text_source(self, source: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def set_source_visibility(self, scene: str, source: str, visible: bool) -> None:
        raise NotImplementedError

    @abstractmethod
    async def play_media(
        self,
        media_source: str,
        filename: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def speak(self, text: str, ctx: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError


class LoggingOverlayActuator(OverlayActuator):
    """
    Actuator used when no renderer is attached.

    Every call is logged and recorded in `calls` as (method, args) so a
    headless run still shows what the overlay would have done.
    """

    def __init__(self, *, history_limit: int = 500):
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._history_limit = history_limit

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if len(self.calls) > self._history_limit:
            del self.calls[: len(self.calls) - self._history_limit]

    async def update_text_source(self, source: str, text: str) -> None:
        self._record("update_text_source", source, text)
        log.info(f"[overlay] {source} <- {text}")

    async def clear_text_source(self, source: str) -> None:
        self._record("clear_text_source", source)
        log.debug(f"[overlay] {source} cleared")

    async def set_source_visibility(self, scene: str, source: str, visible: bool) -> None:
        self._record("set_source_visibility", scene, source, visible)
        log.debug(f"[overlay] {scene}/{source} visible={visible}")

    async def play_media(
        self,
        media_source: str,
        filename: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        self._record("play_media", media_source, filename, path)
        log.info(f"[overlay] play {media_source}: {path or filename or '(current)'}")

    async def speak(self, text: str, ctx: Optional[Dict[str, Any]] = None) -> None:
        self._record("speak", text)
        log.info(f"[tts] {text}")


__all__ = [
    "OverlayActuator",
    "LoggingOverlayActuator",
]
