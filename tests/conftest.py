"""Shared fixtures for Weather Chat tests."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from weather_chat.storage import MemoryStorage
from weather_chat.store import SessionStore


class FakeClock:
    """Deterministic clock: every call advances by ``step``."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


class RecordingSink:
    """Stands in for the store when testing the stream ingestor."""

    def __init__(self):
        self.updates = []

    def update_last_message(self, content):
        self.updates.append(content)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, clock):
    return SessionStore(storage, clock=clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def restore_root_logger():
    """Keep root handler changes from leaking into other tests."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
