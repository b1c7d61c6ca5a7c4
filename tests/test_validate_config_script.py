"""
Tests for scripts/validate_config.py.
"""

import importlib.util
import json
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "validate_config.py"


@pytest.fixture(scope="module")
def script():
    spec = importlib.util.spec_from_file_location("validate_config", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestValidateConfigScript:
    def test_bundled_config_passes(self, script, capsys):
        assert script.main([]) == 0
        assert "passed" in capsys.readouterr().out

    def test_schema_violation_fails(self, script, tmp_path, capsys):
        path = tmp_path / "notifications.json"
        path.write_text(json.dumps({"youtube": {"pollIntervalSeconds": -1}}), encoding="utf-8")

        assert script.main([str(path)]) == 1
        err = capsys.readouterr().err
        assert "[CONFIG ERROR] youtube/pollIntervalSeconds" in err

    def test_invalid_json_fails(self, script, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        [problem] = script.validate_notifications_config(path)
        assert "invalid JSON" in problem

    def test_missing_file_fails(self, script, tmp_path):
        assert script.main([str(tmp_path / "absent.json")]) == 1
