"""
In-memory kill feed.

Keeps the newest events first, in two lists: everything, and only the
events that involve the current player. Updates to an event already in the
feed replace it in place.
"""

import logging
from typing import Callable, List, Optional

from ..models import KillEvent, player_involved
from .base import EventSink

logger = logging.getLogger(__name__)

FeedListener = Callable[[KillEvent, bool], None]


class KillFeed(EventSink):
    """Bounded newest-first kill feed with change listeners."""

    def __init__(self, max_events: int = 100, player: Optional[str] = None):
        self.max_events = max_events
        self.player = player
        self.global_events: List[KillEvent] = []
        self.player_events: List[KillEvent] = []
        self._listeners: List[FeedListener] = []

    def add_listener(self, listener: FeedListener):
        """Register a callback called with (event, is_update) after every change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: FeedListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_player(self, player: Optional[str]):
        """Change the player and rebuild the player-involved list."""
        self.player = player
        self.player_events = [e for e in self.global_events if self._involves_player(e)][:self.max_events]

    def _involves_player(self, event: KillEvent) -> bool:
        if self.player is None:
            return event.is_player_involved
        return player_involved(list(event.killers), list(event.victims), self.player)

    def emit(self, event: KillEvent):
        is_update = self._upsert(self.global_events, event)

        involved = self._involves_player(event)
        if involved:
            self._upsert(self.player_events, event)
        else:
            self.player_events = [e for e in self.player_events if e.id != event.id]

        logger.debug(f"Feed {'updated' if is_update else 'added'} {event.id} (player involved: {involved})")
        for listener in list(self._listeners):
            listener(event, is_update)

    def _upsert(self, events: List[KillEvent], event: KillEvent) -> bool:
        for index, existing in enumerate(events):
            if existing.id == event.id:
                events[index] = event
                return True
        events.insert(0, event)
        del events[self.max_events:]
        return False

    def get(self, event_id: str) -> Optional[KillEvent]:
        for event in self.global_events:
            if event.id == event_id:
                return event
        return None

    def clear(self):
        self.global_events.clear()
        self.player_events.clear()
