"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class TilePrefetchError(Exception):
    """Base exception for all application-specific errors."""


class EmptyQueueError(TilePrefetchError):
    """Raised when popping from a tile key set that has no pending keys."""


class QueueStateError(TilePrefetchError):
    """Raised when the active-download counter would become inconsistent."""


class UnknownLayerError(TilePrefetchError):
    """Raised when a toggle names a tile layer the registry does not own."""


class InvalidTileKeyError(TilePrefetchError):
    """Raised when a tile key cannot be parsed as 'z,x,y'."""


class ConfigurationError(TilePrefetchError):
    """Raised for issues related to configuration loading or validation."""
