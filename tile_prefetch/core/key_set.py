"""
The ordered collection of tile keys a layer still has to download.
"""

from collections.abc import Iterable, Iterator

from tile_prefetch.exceptions import EmptyQueueError


class TileKeySet:
    """
    Pending tile keys in insertion order, consumed strictly from the tail.

    Keys are handed out last-in, first-out: the tiles at the end of a plan are
    downloaded first. No reordering or deduplication takes place.
    """

    def __init__(self, keys: Iterable[str] = ()):
        self._keys: list[str] = list(keys)

    def size(self) -> int:
        """Current number of pending keys."""
        return len(self._keys)

    def peek_last(self) -> str:
        """Returns the key `pop_last` would remove, without removing it."""
        if not self._keys:
            raise EmptyQueueError("Cannot peek into an empty tile key set.")
        return self._keys[-1]

    def pop_last(self) -> str:
        """
        Removes and returns the most recently added remaining key.

        Raises:
            EmptyQueueError: If no keys are pending. Callers check `size()` first.
        """
        if not self._keys:
            raise EmptyQueueError("Cannot pop from an empty tile key set.")
        return self._keys.pop()

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._keys))

    def __repr__(self) -> str:
        return f"TileKeySet(size={len(self._keys)})"
