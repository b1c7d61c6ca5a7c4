"""
Tests for VFX command lookup and execution.
"""

import pytest

from core.event_bus import VFX_COMMAND_RECEIVED, VFX_EFFECT_COMPLETED
from services.vfx.commands import VFXCommandService

COMMANDS = {
    "follows": {"command": "!follow", "filename": "follow.webm", "durationMs": 4000},
    "gifts": [
        {"command": "!gift", "filename": "gift-a.webm"},
        {"command": "!gift", "filename": "gift-b.webm"},
    ],
    "broken": {"command": "!broken"},
}


@pytest.fixture
def vfx_config(make_config):
    return make_config(vfx={"commands": COMMANDS, "mediaSource": "vfx-media", "directory": "media/vfx"})


@pytest.fixture
def service(vfx_config, bus, actuator):
    return VFXCommandService(vfx_config, bus=bus, actuator=actuator)


class TestLookup:
    async def test_config_for_key(self, service):
        config = await service.get_vfx_config("follows")
        assert config == {
            "commandKey": "follows",
            "command": "!follow",
            "filename": "follow.webm",
            "mediaSource": "vfx-media",
            "vfxFilePath": "media/vfx/follow.webm",
            "durationMs": 4000,
        }

    async def test_variant_lists_pick_one(self, service):
        config = await service.get_vfx_config("gifts")
        assert config["filename"] in ("gift-a.webm", "gift-b.webm")

    async def test_missing_or_incomplete(self, service):
        assert await service.get_vfx_config("raids") is None
        assert await service.get_vfx_config("broken") is None
        assert await service.get_vfx_config(None) is None

    async def test_select_by_trigger_is_case_insensitive(self, service):
        config = await service.select_vfx_command("!FOLLOW")
        assert config["commandKey"] == "follows"
        assert await service.select_vfx_command("!unknown") is None

    def test_requires_config(self):
        with pytest.raises(RuntimeError):
            VFXCommandService(None)


class TestExecution:
    async def test_execute_plays_media_and_reports_completion(self, service, bus, actuator):
        completions = []
        bus.subscribe(VFX_EFFECT_COMPLETED, completions.append)
        vfx = await service.get_vfx_config("follows")

        result = await service.execute({"vfxConfig": vfx, "correlationId": "c-1"})

        assert result == {"success": True, "error": None}
        assert actuator.calls == [("play_media", ("vfx-media", "follow.webm", "media/vfx/follow.webm"))]
        assert completions[0]["correlationId"] == "c-1"
        assert completions[0]["success"] is True

    async def test_failure_is_counted_and_reported(self, service, bus):
        completions = []
        bus.subscribe(VFX_EFFECT_COMPLETED, completions.append)

        result = await service.execute({"vfxConfig": {"commandKey": "x"}, "correlationId": "c-2"})

        assert result["success"] is False
        assert service.stats == {"totalCommands": 1, "successfulCommands": 0, "failedCommands": 1}
        assert completions[0]["error"] == "VFX config requires mediaSource"

    async def test_no_completion_without_correlation_id(self, service, bus):
        completions = []
        bus.subscribe(VFX_EFFECT_COMPLETED, completions.append)
        await service.execute({"vfxConfig": await service.get_vfx_config("follows")})
        assert completions == []

    async def test_attach_listens_on_bus(self, service, bus, actuator):
        service.attach()
        service.attach()
        assert bus.handler_count(VFX_COMMAND_RECEIVED) == 1

        await bus.publish(VFX_COMMAND_RECEIVED, {"vfxConfig": await service.get_vfx_config("follows")})
        assert len(actuator.calls) == 1
        assert service.get_status()["attached"] is True

        service.detach()
        assert bus.handler_count(VFX_COMMAND_RECEIVED) == 0
        assert service.get_status()["configuredCommands"] == ["broken", "follows", "gifts"]

    def test_attach_requires_bus(self, vfx_config):
        with pytest.raises(RuntimeError):
            VFXCommandService(vfx_config).attach()
