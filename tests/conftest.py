"""
Shared fixtures for the notification pipeline tests.
"""

from copy import deepcopy

import pytest

from core.config_loader import ConfigService
from core.event_bus import EventBus
from services.overlay.actuator import LoggingOverlayActuator

# Every delay the display queue would otherwise sleep through is zeroed.
FAST_SETTINGS = {
    "general": {"testMode": True},
    "timing": {
        "transitionDelayMs": 0,
        "notificationDurationMs": 0,
        "chatMessageDurationMs": 0,
    },
    "gifts": {"giftVfxDelayMs": 0},
    "displayQueue": {"vfxTimeoutMs": 200},
}

TIMESTAMP = "2024-05-01T20:00:00Z"


def build_config(**sections):
    data = deepcopy(FAST_SETTINGS)
    for section, values in sections.items():
        data.setdefault(section, {}).update(values)
    return ConfigService(data)


@pytest.fixture
def make_config():
    return build_config


@pytest.fixture
def config():
    return build_config()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def actuator():
    return LoggingOverlayActuator()


class RecordingQueue:
    """Stand-in display queue that keeps every item it is given."""

    def __init__(self):
        self.items = []

    def add_item(self, item):
        self.items.append(item)
        return len(self.items) - 1


@pytest.fixture
def recording_queue():
    return RecordingQueue()
