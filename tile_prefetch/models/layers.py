"""
Identifiers for the tile layers and the states a layer's download queue can be in.
"""

from enum import Enum

from tile_prefetch.exceptions import UnknownLayerError


class LayerId(Enum):
    """The two tile layers that can be prefetched for offline use."""

    AERIAL = "aerial"
    MAPNIK = "mapnik"

    @classmethod
    def parse(cls, value: "LayerId | str") -> "LayerId":
        """Resolves a LayerId from itself or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(layer.value for layer in cls)
            raise UnknownLayerError(
                f"Unknown tile layer '{value}'. Expected one of: {names}."
            ) from None


class QueueState(Enum):
    IDLE = "idle"
    RUNNING = "running"
