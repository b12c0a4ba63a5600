"""
Computes which tiles cover an area, and the keys the download queues consume.
"""

import logging
import math
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from tile_prefetch.exceptions import InvalidTileKeyError
from tile_prefetch.models.config import BoundingBox

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileCoord:
    """A tile in the XYZ (slippy map) scheme."""

    z: int
    x: int
    y: int

    @property
    def key(self) -> str:
        return f"{self.z},{self.x},{self.y}"

    @property
    def quadkey(self) -> str:
        """The Bing Maps quadkey of this tile; empty at zoom 0."""
        digits = []
        for i in range(self.z, 0, -1):
            digit = 0
            mask = 1 << (i - 1)
            if self.x & mask:
                digit += 1
            if self.y & mask:
                digit += 2
            digits.append(str(digit))
        return "".join(digits)

    @classmethod
    def from_key(cls, key: str) -> "TileCoord":
        """
        Parses a 'z,x,y' tile key.

        Raises:
            InvalidTileKeyError: If the key is malformed or out of range.
        """
        parts = key.split(",")
        if len(parts) != 3:
            raise InvalidTileKeyError(f"Tile key must be 'z,x,y', got '{key}'.")
        try:
            z, x, y = (int(p) for p in parts)
        except ValueError:
            raise InvalidTileKeyError(f"Tile key must be numeric, got '{key}'.") from None
        limit = 1 << z if z >= 0 else 0
        if z < 0 or not (0 <= x < limit and 0 <= y < limit):
            raise InvalidTileKeyError(f"Tile key '{key}' is out of range.")
        return cls(z, x, y)


def lonlat_to_tile(lon: float, lat: float, zoom: int) -> tuple[int, int]:
    """Returns the (x, y) of the tile containing a point at the given zoom."""
    n = 1 << zoom
    lat_rad = math.radians(lat)
    x = int((lon + 180.0) / 360.0 * n)
    y = int((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


def tiles_in_bbox(bbox: BoundingBox, zoom: int) -> Iterator[TileCoord]:
    """Yields every tile at `zoom` that intersects the box, column by column."""
    box = bbox.clamped()
    x_min, y_min = lonlat_to_tile(box.west, box.north, zoom)
    x_max, y_max = lonlat_to_tile(box.east, box.south, zoom)
    for x in range(x_min, x_max + 1):
        for y in range(y_min, y_max + 1):
            yield TileCoord(zoom, x, y)


def plan_tile_keys(
    bbox: BoundingBox,
    zooms: Iterable[int],
    is_cached: Callable[[str], bool] | None = None,
) -> list[str]:
    """
    Lists the keys of all tiles covering the box, lowest zoom first.

    Args:
        bbox: The area to cover.
        zooms: Zoom levels to include.
        is_cached: Optional predicate; keys for which it is true are left out.

    Returns:
        Tile keys in plan order. Queues consume from the end, so the
        highest zoom level is downloaded first.
    """
    keys = []
    skipped = 0
    for zoom in sorted(set(zooms)):
        for tile in tiles_in_bbox(bbox, zoom):
            if is_cached is not None and is_cached(tile.key):
                skipped += 1
                continue
            keys.append(tile.key)
    if skipped:
        log.debug(f"Plan: {skipped} tiles already cached, {len(keys)} needed.")
    return keys


def build_tile_url(template: str, key: str) -> str:
    """Fills a tile URL template's {z}, {x}, {y} and {quadkey} placeholders."""
    tile = TileCoord.from_key(key)
    return (
        template.replace("{z}", str(tile.z))
        .replace("{x}", str(tile.x))
        .replace("{y}", str(tile.y))
        .replace("{quadkey}", tile.quadkey)
    )
