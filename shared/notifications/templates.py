from __future__ import annotations

import re
from typing import Any, Mapping

from shared.notifications.errors import InvalidValue, MissingValue
from shared.notifications.sanitize import OBJECT_PLACEHOLDER, sanitize_data

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")

# Anything matching this in rendered output is an unresolved placeholder.
UNRESOLVED_PATTERN = re.compile(r"\{[A-Za-z_][A-Za-z_0-9]*\}")


def interpolate(template: str, data: Mapping[str, Any]) -> str:
    """
    Resolve every `{name}` placeholder in a single pass.

    Values are reduced and sanitized first, so substituted text is never
    rescanned for placeholders.

    Raises:
    - MissingValue when a referenced key is absent or None
    - InvalidValue when a value reduces to an opaque object
    """
    if not isinstance(template, str) or not template:
        raise TypeError("Template must be a non-empty string")

    safe = sanitize_data(data)

    def _resolve(match: re.Match) -> str:
        key = match.group(1)
        value = safe.get(key)
        if value is None:
            raise MissingValue(f"Missing template value for {key}", key=key)
        if OBJECT_PLACEHOLDER in value:
            raise InvalidValue(f"Invalid template value for {key}", key=key)
        return value

    return PLACEHOLDER_PATTERN.sub(_resolve, template)


def has_unresolved_placeholders(text: str) -> bool:
    return bool(UNRESOLVED_PATTERN.search(text or "")) or OBJECT_PLACEHOLDER in (text or "")


__all__ = [
    "PLACEHOLDER_PATTERN",
    "interpolate",
    "has_unresolved_placeholders",
]
