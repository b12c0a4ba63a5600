"""
A file-based tile cache with a maximum age, one directory tree per layer.
"""

import logging
import os
import time
from collections.abc import Iterable
from contextlib import suppress
from pathlib import Path

import aiofiles
import aiofiles.os

from tile_prefetch.tiles.coverage import TileCoord

log = logging.getLogger(__name__)


class TileCache:
    """
    Stores tiles of one layer as `<cache_dir>/<layer>/<z>/<x>/<y>.<ext>`.
    """

    def __init__(
        self,
        cache_dir_path: Path,
        layer_name: str,
        extension: str = "png",
        max_age_days: int = 30,
    ):
        """
        Initializes the tile cache.

        Args:
            cache_dir_path: The root directory shared by all layers.
            layer_name: Name of the layer subdirectory.
            extension: File extension of stored tiles.
            max_age_days: Age in days after which a tile counts as missing.
                0 keeps tiles forever.
        """
        self.root = Path(cache_dir_path).expanduser() / layer_name
        self.root.mkdir(parents=True, exist_ok=True)
        self.extension = extension
        self.max_age_seconds = max_age_days * 86400

    def path_for(self, key: str) -> Path:
        tile = TileCoord.from_key(key)
        return self.root / str(tile.z) / str(tile.x) / f"{tile.y}.{self.extension}"

    def _is_expired(self, path: Path, now: float) -> bool:
        if not self.max_age_seconds:
            return False
        return now - path.stat().st_mtime > self.max_age_seconds

    def contains(self, key: str) -> bool:
        """True if a tile for `key` is stored and has not expired."""
        path = self.path_for(key)
        try:
            return path.is_file() and not self._is_expired(path, time.time())
        except OSError as e:
            log.debug(f"Cache lookup failed for tile '{key}': {e}")
            return False

    def missing(self, keys: Iterable[str]) -> list[str]:
        """Returns the keys that are not cached, in their original order."""
        return [key for key in keys if not self.contains(key)]

    async def write(self, key: str, data: bytes) -> Path:
        """
        Stores a tile. The data goes to a temporary file first and is renamed
        into place, so readers never see a partial tile.
        """
        path = self.path_for(key)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".part")
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(data)
        await aiofiles.os.replace(tmp_path, path)
        return path

    def _tile_files(self):
        return self.root.glob(f"*/*/*.{self.extension}")

    def purge_expired(self) -> int:
        """Removes expired tiles and returns how many were removed."""
        if not self.max_age_seconds:
            return 0
        now = time.time()
        removed = 0
        for tile_file in self._tile_files():
            try:
                if self._is_expired(tile_file, now):
                    tile_file.unlink()
                    removed += 1
            except OSError as e:
                log.warning(f"Failed to remove expired tile {tile_file}: {e}")
        if removed > 0:
            log.debug(f"Cache cleanup: removed {removed} expired tiles from {self.root}.")
        return removed

    def clear(self) -> int:
        """Removes every stored tile and returns how many were removed."""
        removed = 0
        for tile_file in self._tile_files():
            try:
                tile_file.unlink()
                removed += 1
            except OSError as e:
                log.error(f"Failed to remove tile {tile_file}: {e}")
        for dirpath, _dirnames, _filenames in os.walk(self.root, topdown=False):
            if Path(dirpath) != self.root:
                with suppress(OSError):
                    os.rmdir(dirpath)
        return removed
