"""
Sink interface for finished kill events.
"""

from abc import ABC, abstractmethod

from ..models import KillEvent


class EventSink(ABC):
    """
    Receives KillEvents from the engine.

    emit() is called at most once per event revision. It must not block for
    long; sinks that talk to slow services queue internally and do the work
    in flush().
    """

    @abstractmethod
    def emit(self, event: KillEvent):
        """Handle one event revision."""
        pass

    def flush(self):
        """Push out anything queued. Default: nothing to do."""

    def close(self):
        """Release resources. Default: flush."""
        self.flush()
