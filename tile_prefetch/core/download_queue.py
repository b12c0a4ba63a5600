"""
A single layer's download queue: pops one tile key at a time and lets each
fetch completion decide whether the next fetch is issued.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING

from tile_prefetch.models.layers import LayerId, QueueState

from .key_set import TileKeySet
from .observer import QueueObserver

if TYPE_CHECKING:
    from tile_prefetch.fetch.tile_fetcher import TileFetcher

    from .registry import QueueRegistry

log = logging.getLogger(__name__)


class DownloadQueue:
    """
    Drains a TileKeySet through a TileFetcher, strictly one fetch at a time.

    The queue is a small state machine. `start()` marks it running and issues the
    first fetch; every completion reports the remaining count and issues the next
    fetch only if the queue is still running. `stop()` never interrupts a fetch
    that is already in flight: the chain ends when that fetch completes.

    All methods must be called from the event loop that runs the fetches.
    """

    def __init__(
        self,
        layer: LayerId,
        keys: TileKeySet,
        fetcher: TileFetcher,
        registry: QueueRegistry,
        observer: QueueObserver | None = None,
    ):
        self.layer = layer
        self.keys = keys
        self._fetcher = fetcher
        self._registry = registry
        self._observer = observer or QueueObserver()
        self._running = False
        self._inflight: asyncio.Task | None = None
        self._settled = asyncio.Event()
        self._settled.set()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def state(self) -> QueueState:
        return QueueState.RUNNING if self._running else QueueState.IDLE

    @property
    def in_flight(self) -> bool:
        """True while a fetch has been issued and has not completed yet."""
        return self._inflight is not None

    def start(self) -> None:
        """Starts draining the queue. Does nothing if it is already running."""
        if self._running:
            return
        self._running = True
        self._settled.clear()
        self._registry.increment()
        log.debug(f"{self.layer.value}: started with {self.keys.size()} tiles pending.")
        self._observer.on_state_changed(self.layer, QueueState.RUNNING)

        if self._inflight is not None:
            # A fetch from before the last stop is still pending; its completion
            # carries on the chain now that the queue is running again.
            return
        self._advance()

    def stop(self) -> None:
        """
        Stops the queue after the fetch in flight, if any, has completed.
        Does nothing if the queue is idle.
        """
        if not self._running:
            return
        self._mark_stopped()
        log.debug(f"{self.layer.value}: stopped with {self.keys.size()} tiles pending.")
        if self._inflight is None:
            self._settled.set()

    async def wait_settled(self) -> None:
        """Waits until the queue is idle and no fetch is in flight."""
        await self._settled.wait()

    async def close(self, cancel_inflight: bool = False) -> None:
        """
        Stops the queue and waits for the chain to end.

        Args:
            cancel_inflight: Cancel a pending fetch instead of waiting for it.
        """
        self.stop()
        task = self._inflight
        if task is not None and cancel_inflight:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self.wait_settled()

    def _mark_stopped(self) -> None:
        self._running = False
        self._registry.decrement()
        self._observer.on_state_changed(self.layer, QueueState.IDLE)

    def _advance(self) -> None:
        """Issues the next fetch, or goes idle if no keys are left."""
        if self.keys.size() == 0:
            log.info(f"[green]✓ {self.layer.value}: all tiles downloaded.[/green]")
            self._mark_stopped()
            self._observer.on_queue_empty(self.layer)
            self._settled.set()
            return

        key = self.keys.pop_last()
        self._inflight = asyncio.create_task(
            self._fetch(key), name=f"fetch-{self.layer.value}-{key}"
        )
        self._inflight.add_done_callback(self._on_fetch_cancelled)

    async def _fetch(self, key: str) -> None:
        try:
            await self._fetcher.fetch(key)
        except Exception as e:
            # Fetchers report their own failures; an exception here is a fetcher
            # bug, and the chain moves on exactly as for any other completion.
            log.error(
                f"[red]✗ {self.layer.value}: fetcher raised for tile {key}: {e}[/red]",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
        self._on_complete()

    def _on_fetch_cancelled(self, task: asyncio.Task) -> None:
        if not task.cancelled() or self._inflight is not task:
            return
        log.debug(f"{self.layer.value}: {task.get_name()} cancelled.")
        self._inflight = None
        # A cancelled fetch ends the chain, even if the queue was restarted
        # while the cancellation was pending.
        if self._running:
            self._mark_stopped()
        self._settled.set()
        self._registry.report_fetch_ended()

    def _on_complete(self) -> None:
        self._inflight = None
        self._observer.on_remaining_changed(self.layer, self.keys.size())
        if self._running:
            self._advance()
        else:
            self._settled.set()
        self._registry.report_fetch_ended()

    def __repr__(self) -> str:
        return (
            f"DownloadQueue(layer={self.layer.value}, state={self.state.value}, "
            f"pending={self.keys.size()}, in_flight={self.in_flight})"
        )
