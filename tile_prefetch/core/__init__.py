"""
Core prefetch engine.

This package contains the per-layer download queues. A `DownloadQueue` drains
its `TileKeySet` one fetch at a time, and the `QueueRegistry` owns both layer
queues together with the shared count of queues that are currently running.
"""

from .download_queue import DownloadQueue
from .key_set import TileKeySet
from .observer import QueueObserver
from .prefetch_manager import PrefetchManager
from .registry import QueueRegistry

__all__ = [
    "DownloadQueue",
    "PrefetchManager",
    "QueueObserver",
    "QueueRegistry",
    "TileKeySet",
]
