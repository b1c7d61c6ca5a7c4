from __future__ import annotations

from typing import Optional


# ======================================================================
# Base
# ======================================================================

class NotificationError(RuntimeError):
    """Base class for notification pipeline failures."""


# ======================================================================
# Input / template errors
# ======================================================================

class InvalidInput(NotificationError, ValueError):
    """A caller-supplied payload is missing a field or has a malformed one."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class TemplateError(NotificationError):
    """Raised when a template cannot be rendered."""

    def __init__(self, message: str, *, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class MissingValue(TemplateError):
    """A placeholder references a key that is absent or None."""


class InvalidValue(TemplateError):
    """A placeholder value would render as an opaque object."""


class BuildFailure(NotificationError):
    """
    The builder could not produce a notification.

    `field` names the offending payload field when one is known.
    """

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


# ======================================================================
# Queue / overlay errors
# ======================================================================

class QueueFullError(NotificationError):
    """Raised by the display queue when max_queue_size is reached."""


class OverlayTransient(NotificationError):
    """An overlay actuator call failed; the queue logs it and moves on."""


class ProgrammerError(NotificationError):
    """A static mapping is missing an entry for a known type."""


__all__ = [
    "NotificationError",
    "InvalidInput",
    "TemplateError",
    "MissingValue",
    "InvalidValue",
    "BuildFailure",
    "QueueFullError",
    "OverlayTransient",
    "ProgrammerError",
]
