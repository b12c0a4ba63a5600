"""
tile-prefetch: downloads map tiles for offline use, one layer queue at a time.
"""

__version__ = "0.3.0"
