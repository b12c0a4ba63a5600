"""
Owns the aerial and mapnik download queues and the shared count of running queues.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING

from tile_prefetch.exceptions import QueueStateError, TilePrefetchError
from tile_prefetch.models.layers import LayerId

from .download_queue import DownloadQueue
from .key_set import TileKeySet
from .observer import QueueObserver

if TYPE_CHECKING:
    from tile_prefetch.fetch.tile_fetcher import TileFetcher

log = logging.getLogger(__name__)


class QueueRegistry:
    """
    Holds exactly one DownloadQueue per tile layer and counts how many of them are
    running.

    The count is only changed through `increment()` and `decrement()`, which the
    queues call on their own start/stop transitions. Whenever it crosses to or
    from zero the observer is told whether downloads are active, so a controller
    can, for example, block navigation while anything is downloading.
    """

    def __init__(self, observer: QueueObserver | None = None):
        self._observer = observer or QueueObserver()
        self._queues: dict[LayerId, DownloadQueue] = {}
        self._active_count = 0
        self._fetch_ended = asyncio.Event()
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @classmethod
    def from_plan(
        cls,
        plan: Mapping[LayerId, Iterable[str]],
        fetchers: Mapping[LayerId, TileFetcher],
        observer: QueueObserver | None = None,
    ) -> QueueRegistry:
        """
        Builds a registry with one queue per layer.

        Args:
            plan: The tile keys each layer needs, in plan order.
            fetchers: The fetcher that downloads tiles of each layer.
            observer: Receives progress events from all queues.
        """
        missing = [
            layer.value
            for layer in LayerId
            if layer not in plan or layer not in fetchers
        ]
        if missing:
            raise TilePrefetchError(
                f"A plan and a fetcher are required for every layer; missing: "
                f"{', '.join(missing)}."
            )

        registry = cls(observer)
        for layer in LayerId:
            registry._queues[layer] = DownloadQueue(
                layer,
                TileKeySet(plan[layer]),
                fetchers[layer],
                registry,
                registry._observer,
            )
        return registry

    @property
    def active_count(self) -> int:
        """Number of queues that are currently running."""
        return self._active_count

    @property
    def downloads_active(self) -> bool:
        return self._active_count > 0

    @property
    def drained(self) -> bool:
        """True when no queue has keys pending or a fetch in flight."""
        return all(
            q.keys.size() == 0 and not q.in_flight for q in self._queues.values()
        )

    def queue(self, layer: LayerId | str) -> DownloadQueue:
        return self._queues[LayerId.parse(layer)]

    def __iter__(self) -> Iterator[DownloadQueue]:
        return iter(self._queues.values())

    def toggle(self, layer: LayerId | str) -> DownloadQueue:
        """
        Stops the layer's queue if it is running, otherwise starts it.

        Raises:
            UnknownLayerError: If `layer` does not name a tile layer.
        """
        queue = self.queue(layer)
        if queue.running:
            queue.stop()
        else:
            queue.start()
        return queue

    def toggle_threadsafe(self, layer: LayerId | str) -> None:
        """Schedules a toggle on the registry's event loop from another thread."""
        if self._loop is None:
            raise TilePrefetchError(
                "Registry was created outside an event loop; call toggle() instead."
            )
        resolved = LayerId.parse(layer)
        self._loop.call_soon_threadsafe(self.toggle, resolved)

    def increment(self) -> None:
        """Records that one more queue is running. Called by DownloadQueue.start."""
        self._active_count += 1
        log.debug(f"Active download queues: {self._active_count}")
        if self._active_count == 1:
            self._observer.on_downloads_active_changed(True)

    def decrement(self) -> None:
        """Records that a queue stopped. Called by DownloadQueue on stop or exhaustion."""
        if self._active_count == 0:
            raise QueueStateError("Active download count would drop below zero.")
        self._active_count -= 1
        log.debug(f"Active download queues: {self._active_count}")
        if self._active_count == 0:
            self._observer.on_downloads_active_changed(False)

    def report_fetch_ended(self) -> None:
        """Called by DownloadQueue whenever a fetch completes or is cancelled."""
        self._fetch_ended.set()

    def stop_all(self) -> None:
        for queue in self._queues.values():
            queue.stop()

    async def wait_settled(self) -> None:
        """Waits until every queue is idle with no fetch in flight."""
        await asyncio.gather(*(q.wait_settled() for q in self._queues.values()))

    async def wait_drained(self) -> None:
        """
        Waits until every tile of both layers has been fetched.

        Unlike `wait_settled`, this keeps waiting while queues are stopped with
        keys left, so a controller can restart them in the meantime.
        """
        while not self.drained:
            await self._fetch_ended.wait()
            self._fetch_ended.clear()

    async def close(self, cancel_inflight: bool = False) -> None:
        """Stops all queues and waits for their chains to end."""
        await asyncio.gather(
            *(q.close(cancel_inflight) for q in self._queues.values())
        )
        log.debug("All download queues closed.")
