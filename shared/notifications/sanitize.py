"""
Value reduction for template interpolation.

Every value that reaches a template passes through `reduce_value`, which
collapses arbitrary payload values (strings, numbers, sequences, mappings)
into a single primitive string and strips injection fragments from it.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Set

MAX_VALUE_LENGTH = 1000
MAX_NESTED_DEPTH = 3

# Rendered in place of a mapping with nothing printable inside it.
OBJECT_PLACEHOLDER = "[object Object]"

NAME_KEYS = ("name", "username", "value", "text", "title")
PROTOTYPE_KEYS = {"__proto__", "constructor", "prototype"}

_STRIP_PATTERNS = (
    (re.compile(r"\{[^}]*\}"), ""),
    (re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL), ""),
    (re.compile(r"javascript:", re.IGNORECASE), ""),
    (re.compile(r"data:text/html", re.IGNORECASE), ""),
    (re.compile(r"(['\"])\s*;\s*DROP\s+TABLE", re.IGNORECASE), r"\1"),
    (re.compile(r"UNION\s+SELECT", re.IGNORECASE), ""),
    (re.compile(r"\.\.[/\\]"), ""),
    (re.compile(r"__proto__", re.IGNORECASE), ""),
    (re.compile(r"constructor\.prototype", re.IGNORECASE), ""),
)


def sanitize_string_value(value: Any) -> str:
    """
    Strip template, script, SQL, traversal and prototype fragments.

    Stripping repeats until the string stops changing, so the result is a
    fixed point: sanitizing it again returns it unchanged.
    """
    if value is None:
        return ""

    text = str(value)
    for _ in range(16):
        previous = text
        for pattern, replacement in _STRIP_PATTERNS:
            text = pattern.sub(replacement, text)
        if text == previous:
            break

    if len(text) > MAX_VALUE_LENGTH:
        text = text[:MAX_VALUE_LENGTH]
    return text


def format_number(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def reduce_value(value: Any, *, _seen: Optional[Set[int]] = None) -> str:
    """Reduce an arbitrary payload value to a sanitized primitive string."""
    if value is None:
        return ""

    if isinstance(value, str):
        return sanitize_string_value(value)

    if isinstance(value, (bool, int, float)):
        return sanitize_string_value(format_number(value))

    if isinstance(value, datetime):
        return value.isoformat()

    seen = _seen if _seen is not None else set()

    if isinstance(value, (list, tuple)):
        if id(value) in seen:
            return ""
        seen.add(id(value))
        if not value:
            return ""
        first = reduce_value(value[0], _seen=seen)
        if len(value) == 1:
            return first
        return sanitize_string_value(f"{first} and {len(value) - 1} more")

    if isinstance(value, Mapping):
        if id(value) in seen:
            return ""

        for key in NAME_KEYS:
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return sanitize_string_value(candidate)

        extracted = _extract_nested(value, 0, seen)
        if extracted:
            return sanitize_string_value(extracted)
        return OBJECT_PLACEHOLDER

    return sanitize_string_value(str(value))


def _extract_nested(obj: Mapping, depth: int, seen: Set[int]) -> str:
    if depth > MAX_NESTED_DEPTH or id(obj) in seen:
        return ""
    seen.add(id(obj))

    for key, val in obj.items():
        if key in PROTOTYPE_KEYS:
            continue
        if isinstance(val, str) and val.strip():
            return val
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            rendered = format_number(val)
            if rendered:
                return rendered
        if isinstance(val, Mapping):
            nested = _extract_nested(val, depth + 1, seen)
            if nested:
                return nested
    return ""


def sanitize_data(data: Any) -> Dict[str, Optional[str]]:
    """
    Reduce every value of `data` to a sanitized string.

    None stays None so the template engine can report the key as missing.
    Prototype keys are dropped.
    """
    if not isinstance(data, Mapping):
        return {}

    sanitized: Dict[str, Optional[str]] = {}
    for key, value in data.items():
        if not isinstance(key, str) or key in PROTOTYPE_KEYS:
            continue
        if value is None:
            sanitized[key] = None
        else:
            sanitized[key] = reduce_value(value, _seen={id(data)})
    return sanitized


__all__ = [
    "MAX_VALUE_LENGTH",
    "OBJECT_PLACEHOLDER",
    "sanitize_string_value",
    "format_number",
    "reduce_value",
    "sanitize_data",
]
