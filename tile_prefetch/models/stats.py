"""
Counters for a layer's tile fetches during one prefetch session.
"""

from dataclasses import dataclass


@dataclass
class FetchStats:
    """Tracks what happened to every tile key handed to a fetcher."""

    fetched: int = 0
    already_cached: int = 0
    failed: int = 0
    bytes_downloaded: int = 0

    @property
    def completed(self) -> int:
        """Number of fetch calls that have completed, whatever the outcome."""
        return self.fetched + self.already_cached + self.failed

    def record_fetched(self, size_bytes: int) -> None:
        self.fetched += 1
        self.bytes_downloaded += size_bytes
