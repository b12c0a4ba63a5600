"""
Storage Layer.

This package handles all data persistence: the INI configuration file and the
on-disk tile cache that downloaded tiles are written to.
"""

from .config_manager import ConfigManager
from .tile_cache import TileCache

__all__ = ["ConfigManager", "TileCache"]
