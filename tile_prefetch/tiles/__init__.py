"""
Tile Geometry Layer.

This package maps geographic areas to slippy-map tile coordinates and builds
the list of tile keys a layer needs for offline use.
"""

from .coverage import (
    TileCoord,
    build_tile_url,
    lonlat_to_tile,
    plan_tile_keys,
    tiles_in_bbox,
)

__all__ = [
    "TileCoord",
    "build_tile_url",
    "lonlat_to_tile",
    "plan_tile_keys",
    "tiles_in_bbox",
]
