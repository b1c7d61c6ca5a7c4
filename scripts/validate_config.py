"""
Configuration validation script.

Checks a notifications config file against
schemas/notifications.schema.json without starting the runtime.

Design rules:
- No side effects on import
- No runtime startup
- Validation only (no mutation)

Usage:
    python scripts/validate_config.py [path/to/notifications.json]
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.config_loader import ConfigLoader  # noqa: E402


# ------------------------------------------------------------
# Paths
# ------------------------------------------------------------

CONFIG_PATH = ROOT / "shared" / "config" / "notifications.json"
SCHEMA_PATH = ROOT / "schemas" / "notifications.schema.json"


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------

def _load_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except Exception as e:
        raise ValueError(f"{path.name}: invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: root JSON value must be an object")
    return data


def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


# ------------------------------------------------------------
# Validators
# ------------------------------------------------------------

def validate_notifications_config(path: Path, schema_path: Path = SCHEMA_PATH) -> List[str]:
    """
    Return one "location: message" entry per schema violation.
    A missing file or unreadable JSON is reported as a single entry.
    """
    if not path.exists():
        return [f"{path}: file not found"]

    try:
        data = _load_json(path)
    except ValueError as e:
        return [str(e)]

    loader = ConfigLoader(config_path=path, schema_path=schema_path)
    return loader.validate(data, name=path.stem)


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    path = Path(args[0]) if args else CONFIG_PATH

    problems = validate_notifications_config(path)
    for problem in problems:
        _error(problem)

    if problems:
        print("Configuration validation failed.", file=sys.stderr)
        return 1

    print("Configuration validation passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
