"""
Downloads single tiles over HTTP into the tile cache.

A fetch always completes: HTTP errors, timeouts and cache write failures are
logged and counted, never raised to the caller.
"""

import asyncio
import logging
from typing import Protocol

import aiohttp

from tile_prefetch.models.config import LayerConfig
from tile_prefetch.models.stats import FetchStats
from tile_prefetch.storage.tile_cache import TileCache
from tile_prefetch.tiles.coverage import build_tile_url

log = logging.getLogger(__name__)

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


class TileFetcher(Protocol):
    """Anything that can download and cache the tile for a key."""

    async def fetch(self, key: str) -> None:
        """Fetches and caches one tile. Completes once, whatever the outcome."""


async def get_connection_pool(
    max_connections: int = 4,
    user_agent: str = "tile-prefetch",
    request_timeout: float = 30.0,
) -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for tile downloads.

    This function ensures that only one connection pool is created for the
    lifetime of the application run; the arguments only apply to its creation.

    Args:
        max_connections: Maximum concurrent connections per tile server.
        user_agent: User-Agent header sent with every request. Public tile
            servers block clients that do not identify themselves.
        request_timeout: Total timeout for one tile request, in seconds.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_connections * 2,  # Total connections, both layers
            limit_per_host=max_connections,
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=request_timeout, sock_connect=15)
        _connection_pool = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )
        log.debug(f"Created tile download pool with limit_per_host={max_connections}")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared tile download pool closed.")


class HttpTileFetcher:
    """Fetches the tiles of one layer from its tile server into its cache."""

    def __init__(
        self,
        layer: LayerConfig,
        cache: TileCache,
        stats: FetchStats | None = None,
        session: aiohttp.ClientSession | None = None,
        max_connections: int = 4,
        user_agent: str = "tile-prefetch",
        request_timeout: float = 30.0,
    ):
        """
        Args:
            layer: URL template and format of the layer.
            cache: Where fetched tiles are stored.
            stats: Counters updated on every fetch.
            session: Session to use instead of the shared connection pool.
        """
        self.layer = layer
        self.cache = cache
        self.stats = stats or FetchStats()
        self._session = session
        self._pool_options = {
            "max_connections": max_connections,
            "user_agent": user_agent,
            "request_timeout": request_timeout,
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_connection_pool(**self._pool_options)

    async def fetch(self, key: str) -> None:
        """Downloads the tile for `key` unless it is already cached."""
        if await asyncio.to_thread(self.cache.contains, key):
            self.stats.already_cached += 1
            log.debug(f"Tile {key} already cached, skipping.")
            return

        url = build_tile_url(self.layer.url_template, key)
        try:
            session = await self._get_session()
            async with session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                data = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.stats.failed += 1
            log.warning(f"[yellow]⚠ Tile {key} could not be downloaded: {e}[/yellow]")
            return

        if not data:
            self.stats.failed += 1
            log.warning(f"[yellow]⚠ Tile {key}: server returned an empty body.[/yellow]")
            return

        try:
            await self.cache.write(key, data)
        except OSError as e:
            self.stats.failed += 1
            log.error(f"[red]✗ Tile {key} could not be written to the cache: {e}[/red]")
            return

        self.stats.record_fetched(len(data))
        log.debug(f"Tile {key} downloaded ({len(data)} bytes).")
