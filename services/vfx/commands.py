"""
VFX command service.

Maps a command key (`follows`, `gifts`, `raids` ...) or a chat trigger
(`!hello`) to a media asset from the `vfx` config section, and plays the
asset when the display queue publishes `VFX_COMMAND_RECEIVED`.
"""

from __future__ import annotations

import random
import time
from pathlib import Path
from typing import Any, Dict, Optional

from core.event_bus import VFX_COMMAND_RECEIVED, VFX_EFFECT_COMPLETED, EventBus
from services.overlay.actuator import OverlayActuator
from shared.logging.logger import get_logger

log = get_logger("services.vfx")


class VFXCommandService:
    def __init__(
        self,
        config,
        *,
        bus: Optional[EventBus] = None,
        actuator: Optional[OverlayActuator] = None,
    ):
        if config is None:
            raise RuntimeError("VFXCommandService requires config")

        self._config = config
        self._bus = bus
        self._actuator = actuator
        self._unsubscribe = None

        self.stats = {
            "totalCommands": 0,
            "successfulCommands": 0,
            "failedCommands": 0,
        }

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _commands(self) -> Dict[str, Any]:
        commands = self._config.get("vfx", "commands", {})
        return commands if isinstance(commands, dict) else {}

    def _resolve(self, command_key: str, entry: Any) -> Optional[Dict[str, Any]]:
        # A key may list several variants; one is picked per call.
        if isinstance(entry, list):
            variants = [e for e in entry if isinstance(e, dict)]
            if not variants:
                return None
            entry = random.choice(variants)

        if not isinstance(entry, dict):
            return None

        command = entry.get("command")
        filename = entry.get("filename")
        if not command or not filename:
            log.warning(f"[vfx] command '{command_key}' is missing command or filename; ignoring")
            return None

        directory = self._config.get_string("vfx", "directory", "media/vfx")
        media_source = entry.get("mediaSource") or self._config.get_string("vfx", "mediaSource", "vfx-media")
        duration = entry.get("durationMs")

        return {
            "commandKey": command_key,
            "command": command,
            "filename": filename,
            "mediaSource": media_source,
            "vfxFilePath": str(Path(directory) / filename),
            "durationMs": int(duration) if isinstance(duration, (int, float)) else None,
        }

    async def get_vfx_config(self, command_key: Optional[str]) -> Optional[Dict[str, Any]]:
        if not command_key:
            return None

        entry = self._commands().get(command_key)
        if entry is None:
            log.debug(f"[vfx] no command configured for key: {command_key}")
            return None
        return self._resolve(command_key, entry)

    async def select_vfx_command(self, trigger: str) -> Optional[Dict[str, Any]]:
        """Find the command whose chat trigger matches the first word of a message."""
        if not trigger:
            return None

        wanted = trigger.strip().lower()
        for key, entry in self._commands().items():
            candidates = entry if isinstance(entry, list) else [entry]
            for candidate in candidates:
                if isinstance(candidate, dict) and str(candidate.get("command", "")).lower() == wanted:
                    return self._resolve(key, candidate)
        return None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def attach(self) -> None:
        if self._bus is None:
            raise RuntimeError("VFXCommandService.attach requires an event bus")
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe(VFX_COMMAND_RECEIVED, self.execute)
            log.debug("[vfx] listening for VFX commands")

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        started = time.monotonic()
        self.stats["totalCommands"] += 1

        vfx_config = payload.get("vfxConfig") or {}
        correlation_id = payload.get("correlationId")
        result: Dict[str, Any] = {"success": False, "error": None}

        try:
            if not vfx_config.get("mediaSource"):
                raise RuntimeError("VFX config requires mediaSource")
            if self._actuator is None:
                raise RuntimeError("No overlay actuator attached")

            await self._actuator.play_media(
                vfx_config["mediaSource"],
                filename=vfx_config.get("filename"),
                path=vfx_config.get("vfxFilePath"),
            )
            result["success"] = True
            self.stats["successfulCommands"] += 1
        except Exception as e:
            self.stats["failedCommands"] += 1
            result["error"] = str(e)
            log.warning(f"[vfx] command {vfx_config.get('commandKey')} failed: {e}")

        if self._bus is not None and correlation_id:
            await self._bus.publish(
                VFX_EFFECT_COMPLETED,
                {
                    "correlationId": correlation_id,
                    "commandKey": vfx_config.get("commandKey"),
                    "success": result["success"],
                    "error": result["error"],
                    "duration": round((time.monotonic() - started) * 1000),
                },
            )

        return result

    def get_status(self) -> Dict[str, Any]:
        return {
            "attached": self._unsubscribe is not None,
            "configuredCommands": sorted(self._commands()),
            "stats": dict(self.stats),
        }


__all__ = ["VFXCommandService"]
