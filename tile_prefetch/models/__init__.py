"""
Data Models Layer.

This package contains the enums, Pydantic models and counters that define the
core data structures used throughout the application.
"""

from .config import BoundingBox, LayerConfig, PrefetchConfig
from .layers import LayerId, QueueState
from .stats import FetchStats

__all__ = [
    "BoundingBox",
    "FetchStats",
    "LayerConfig",
    "LayerId",
    "PrefetchConfig",
    "QueueState",
]
