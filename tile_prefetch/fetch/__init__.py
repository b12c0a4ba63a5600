"""
Network Layer.

This package downloads tiles over HTTP and stores them in the tile cache. It is
the only place where network failures are seen; they never reach the queues.
"""

from .tile_fetcher import (
    HttpTileFetcher,
    TileFetcher,
    close_connection_pool,
    get_connection_pool,
)

__all__ = [
    "HttpTileFetcher",
    "TileFetcher",
    "close_connection_pool",
    "get_connection_pool",
]
