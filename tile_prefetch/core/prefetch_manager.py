"""
The session coordinator: plans which tiles each layer needs, wires caches and
fetchers to the queue registry, and runs the queues until they settle.
"""

import asyncio
import json
import logging
import time
from collections.abc import Iterable
from pathlib import Path

import aiohttp

from tile_prefetch.fetch.tile_fetcher import HttpTileFetcher
from tile_prefetch.models.config import PrefetchConfig
from tile_prefetch.models.layers import LayerId
from tile_prefetch.models.stats import FetchStats
from tile_prefetch.storage.tile_cache import TileCache
from tile_prefetch.tiles.coverage import plan_tile_keys

from .observer import QueueObserver
from .registry import QueueRegistry

log = logging.getLogger(__name__)


class PrefetchManager:
    """Orchestrates one prefetch session over both tile layers."""

    def __init__(
        self, config: PrefetchConfig, session: aiohttp.ClientSession | None = None
    ):
        self.config = config
        self.start_time = time.monotonic()
        self.caches: dict[LayerId, TileCache] = {}
        self.stats: dict[LayerId, FetchStats] = {}
        self.fetchers: dict[LayerId, HttpTileFetcher] = {}
        self.planned: dict[LayerId, int] = {}

        for layer in LayerId:
            layer_config = config.layer(layer)
            self.caches[layer] = TileCache(
                Path(config.cache_dir),
                layer.value,
                extension=layer_config.extension,
                max_age_days=config.cache_max_age_days,
            )
            self.stats[layer] = FetchStats()
            self.fetchers[layer] = HttpTileFetcher(
                layer_config,
                self.caches[layer],
                self.stats[layer],
                session=session,
                max_connections=config.max_connections,
                user_agent=config.user_agent,
                request_timeout=config.request_timeout,
            )

    def plan(self) -> dict[LayerId, list[str]]:
        """Computes the keys of the tiles each layer still needs."""
        plan = {}
        for layer in LayerId:
            plan[layer] = plan_tile_keys(
                self.config.bbox,
                self.config.zoom_range(layer),
                is_cached=self.caches[layer].contains,
            )
            self.planned[layer] = len(plan[layer])
            log.debug(f"{layer.value}: {len(plan[layer])} tiles needed.")
        return plan

    async def plan_async(self) -> dict[LayerId, list[str]]:
        """Runs `plan` off the event loop; it stats one file per tile."""
        return await asyncio.to_thread(self.plan)

    def create_registry(
        self,
        plan: dict[LayerId, list[str]],
        observer: QueueObserver | None = None,
    ) -> QueueRegistry:
        return QueueRegistry.from_plan(plan, self.fetchers, observer)

    async def run(
        self,
        registry: QueueRegistry,
        layers: Iterable[LayerId],
        quit_event: asyncio.Event | None = None,
    ) -> None:
        """
        Starts the given layers and waits for the session to end.

        Without `quit_event` the session ends when every started queue has run
        out of tiles. With it, the queues can be toggled from elsewhere and the
        session ends when the event is set or no tiles are left anywhere.
        On exit, including cancellation, running queues are stopped and any
        fetch in flight is allowed to complete.
        """
        try:
            for layer in layers:
                registry.toggle(layer)
            if quit_event is None:
                await registry.wait_settled()
            else:
                await self._wait_for_quit(registry, quit_event)
        finally:
            registry.stop_all()
            await registry.wait_settled()

    async def _wait_for_quit(
        self, registry: QueueRegistry, quit_event: asyncio.Event
    ) -> None:
        quit_task = asyncio.create_task(quit_event.wait(), name="wait-quit")
        drained_task = asyncio.create_task(registry.wait_drained(), name="wait-drained")
        try:
            done, _pending = await asyncio.wait(
                {quit_task, drained_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            quit_task.cancel()
            drained_task.cancel()
        if drained_task in done and quit_task not in done:
            log.info("[green]✓ No tiles left to download.[/green]")

    def save_session_stats(self):
        """Appends the current session's stats to a history file."""
        stats_file = Path(self.config.config_path) / "session_history.jsonl"
        try:
            with open(stats_file, "a", encoding="utf-8") as f:
                elapsed_time = time.monotonic() - self.start_time
                session_data = {
                    "timestamp": int(time.time()),
                    "bbox": self.config.bbox.to_string(),
                    "min_zoom": self.config.min_zoom,
                    "max_zoom": self.config.max_zoom,
                    "duration_seconds": round(elapsed_time, 2),
                    "layers": {
                        layer.value: {
                            "planned": self.planned.get(layer, 0),
                            "fetched": stats.fetched,
                            "already_cached": stats.already_cached,
                            "failed": stats.failed,
                            "bytes_downloaded": stats.bytes_downloaded,
                        }
                        for layer, stats in self.stats.items()
                    },
                }
                json.dump(session_data, f)
                f.write("\n")
        except IOError as e:
            log.warning(f"[yellow]Could not save session stats:[/] {e}")
