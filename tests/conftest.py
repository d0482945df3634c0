"""
Pytest configuration for garden tests.
"""

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from garden.domain.catalog.slot_catalog import SlotCatalog
from garden.domain.placement.placement_engine import PlacementEngine
from garden.domain.streaming.notification import GardenNotification, NotificationEmitter
from garden.infrastructure.config.settings import GardenSettings
from garden.infrastructure.observability.logging import metrics

pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    """Configure pytest with asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )


def first_choice(options):
    """Deterministic stand-in for random.choice"""
    return options[0]


class TickingClock:
    """Returns a later instant on every call"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class FakeMonotonic:
    """Manually advanced monotonic clock"""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingEmitter(NotificationEmitter):
    """Keeps every notification it is asked to emit"""

    def __init__(self, fail_versions=()):
        self.received: List[GardenNotification] = []
        self.fail_versions = set(fail_versions)

    async def emit(self, notification: GardenNotification) -> None:
        if notification.version in self.fail_versions:
            raise RuntimeError(f"consumer rejected version {notification.version}")
        self.received.append(notification)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def catalog():
    return SlotCatalog()


@pytest.fixture
def make_engine(catalog):
    """Factory for engines with deterministic slot choice"""

    def factory(**kwargs) -> PlacementEngine:
        kwargs.setdefault("catalog", catalog)
        kwargs.setdefault("choose", first_choice)
        kwargs.setdefault("clock", TickingClock())
        return PlacementEngine(**kwargs)

    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def settings():
    return GardenSettings(_env_file=None, log_format="console", idle_timeout_seconds=300.0)
