"""
The event surface through which the prefetch core reports to its controller.
"""

from tile_prefetch.models.layers import LayerId, QueueState


class QueueObserver:
    """
    Receives per-layer progress and the global downloads-active signal.

    Only counts and states are reported; labels, buttons and spinners are up to
    the subclass. All methods are called on the event loop thread and must not
    block. The default implementations do nothing.
    """

    def on_state_changed(self, layer: LayerId, state: QueueState) -> None:
        """A queue was started, stopped or ran out of keys."""

    def on_remaining_changed(self, layer: LayerId, remaining: int) -> None:
        """A fetch completed; `remaining` keys are still pending for the layer."""

    def on_queue_empty(self, layer: LayerId) -> None:
        """The queue ran out of keys and went idle on its own."""

    def on_downloads_active_changed(self, active: bool) -> None:
        """The number of running queues crossed to or from zero."""
