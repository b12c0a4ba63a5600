"""Pytest configuration and shared fakes for tile-prefetch tests."""

import asyncio
import sys
from pathlib import Path

import pytest

# Make the package importable without installing it
root_path = Path(__file__).parent.parent
sys.path.insert(0, str(root_path))

from tile_prefetch.core.observer import QueueObserver  # noqa: E402
from tile_prefetch.core.registry import QueueRegistry  # noqa: E402
from tile_prefetch.models.layers import LayerId  # noqa: E402


async def settle(rounds: int = 20) -> None:
    """Lets pending tasks and callbacks on the event loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class InstantFetcher:
    """Completes every fetch immediately."""

    def __init__(self):
        self.calls: list[str] = []

    async def fetch(self, key: str) -> None:
        self.calls.append(key)


class ControlledFetcher:
    """Holds every fetch open until the test completes it."""

    def __init__(self):
        self.calls: list[str] = []
        self._pending: list[asyncio.Future] = []

    async def fetch(self, key: str) -> None:
        future = asyncio.get_running_loop().create_future()
        self.calls.append(key)
        self._pending.append(future)
        await future

    @property
    def pending(self) -> int:
        return sum(1 for f in self._pending if not f.done())

    def complete_next(self) -> None:
        future = self._pending.pop(0)
        future.set_result(None)


class RecordingObserver(QueueObserver):
    """Records every event as a tuple, in order."""

    def __init__(self):
        self.events: list[tuple] = []

    def on_state_changed(self, layer, state):
        self.events.append(("state", layer, state))

    def on_remaining_changed(self, layer, remaining):
        self.events.append(("remaining", layer, remaining))

    def on_queue_empty(self, layer):
        self.events.append(("empty", layer))

    def on_downloads_active_changed(self, active):
        self.events.append(("active", active))

    def of_kind(self, kind: str, layer: LayerId | None = None) -> list[tuple]:
        return [
            e
            for e in self.events
            if e[0] == kind and (layer is None or e[1] == layer)
        ]

    def remaining(self, layer: LayerId) -> list[int]:
        return [e[2] for e in self.of_kind("remaining", layer)]


def make_registry(
    aerial_keys=(),
    mapnik_keys=(),
    aerial_fetcher=None,
    mapnik_fetcher=None,
    observer=None,
) -> QueueRegistry:
    return QueueRegistry.from_plan(
        {LayerId.AERIAL: list(aerial_keys), LayerId.MAPNIK: list(mapnik_keys)},
        {
            LayerId.AERIAL: aerial_fetcher or InstantFetcher(),
            LayerId.MAPNIK: mapnik_fetcher or InstantFetcher(),
        },
        observer,
    )


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()
