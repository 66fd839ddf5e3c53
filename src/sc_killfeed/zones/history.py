"""
Bounded zone history for the local player.

Keeps the last N zone transitions, the last primary zone and the current
star system, and answers the proximity questions the resolver asks when a
zone id alone is not enough.
"""

import logging
from collections import Counter, defaultdict, deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

import numpy as np

from ..models import Coordinates
from .types import (
    PrimaryZone,
    SystemType,
    ZoneClassification,
    ZoneHistoryEntry,
    ZoneResolution,
    ZoneTransition,
)

logger = logging.getLogger(__name__)

# Number of zones reported by statistics()
MOST_VISITED_LIMIT = 10


def distance(a: Optional[Coordinates], b: Optional[Coordinates]) -> Optional[float]:
    """Euclidean distance in metres, or None if either point is missing."""
    if a is None or b is None:
        return None
    return float(np.linalg.norm(np.asarray(a, dtype=float) - np.asarray(b, dtype=float)))


class ZoneHistory:
    """Fixed-size ring of zone transitions."""

    def __init__(self, max_size: int = 10):
        if max_size < 1:
            raise ValueError(f"Zone history size must be at least 1, got {max_size}")
        self.max_size = max_size
        self.entries: Deque[ZoneHistoryEntry] = deque(maxlen=max_size)
        self.current: Optional[ZoneResolution] = None
        self.last_primary: Optional[PrimaryZone] = None
        self.current_system = SystemType.UNKNOWN
        self.last_transition: Optional[ZoneTransition] = None
        self.total_changes = 0

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def last_entry(self) -> Optional[ZoneHistoryEntry]:
        return self.entries[-1] if self.entries else None

    def add(self, resolution: ZoneResolution, timestamp: datetime, source: str,
            coordinates: Optional[Coordinates] = None) -> Optional[ZoneTransition]:
        """
        Record a resolved zone.

        Args:
            resolution: The resolution to record
            timestamp: Log time of the observation
            source: What produced it (event kind, zone transition line, ...)
            coordinates: Position reported with the observation

        Returns:
            The transition, or None if the zone did not change
        """
        zone = resolution.zone
        previous = self.last_entry

        if previous is not None and previous.zone_id == zone.id:
            previous.event_count += 1
            if coordinates is not None:
                previous.coordinates = coordinates
            logger.debug(f"Ignoring repeated zone entry: {zone.display_name}")
            return None

        if previous is not None:
            previous.dwell_time = max(0.0, (timestamp - previous.timestamp).total_seconds())

        entry = ZoneHistoryEntry(
            timestamp=timestamp,
            zone_id=zone.id,
            zone_name=zone.display_name,
            classification=zone.classification,
            system=zone.system,
            source=source,
            zone=zone,
            coordinates=coordinates if coordinates is not None else zone.coordinates,
            event_count=1,
        )

        transition = ZoneTransition(
            from_entry=previous,
            to_entry=entry,
            transition_time=previous.dwell_time if previous else 0.0,
            distance=distance(previous.coordinates, entry.coordinates) if previous else None,
            significant=self._is_significant(previous, entry),
        )

        self.entries.append(entry)
        self.current = resolution
        self.last_transition = transition
        self.total_changes += 1

        if zone.system is not SystemType.UNKNOWN:
            self.current_system = zone.system
        if isinstance(zone, PrimaryZone):
            self.last_primary = zone
        elif resolution.primary is not None:
            self.last_primary = resolution.primary

        origin = f" (from {previous.zone_name})" if previous else " (initial zone)"
        logger.info(f"Zone transition: {entry.zone_name} ({entry.classification.value}, {entry.system.value}){origin}")
        return transition

    @staticmethod
    def _is_significant(previous: Optional[ZoneHistoryEntry], entry: ZoneHistoryEntry) -> bool:
        if previous is None:
            return True
        if previous.system is not entry.system:
            return True
        if previous.classification is not entry.classification:
            return True
        return entry.classification is ZoneClassification.PRIMARY

    def last_primary_zone(self, system: Optional[SystemType] = None) -> Optional[PrimaryZone]:
        """Most recent primary zone, optionally restricted to one system."""
        if self.last_primary is not None and (system is None or self.last_primary.system is system):
            return self.last_primary
        for entry in reversed(self.entries):
            if isinstance(entry.zone, PrimaryZone) and (system is None or entry.system is system):
                return entry.zone
        return None

    def find_nearby_primary(self, coordinates: Coordinates, system: SystemType,
                            radius: float) -> Optional[PrimaryZone]:
        """Newest primary zone in the same system observed within radius of coordinates."""
        candidates = [entry for entry in self.entries
                      if isinstance(entry.zone, PrimaryZone)
                      and entry.system is system
                      and entry.coordinates is not None]
        if not candidates:
            return None

        points = np.array([entry.coordinates for entry in candidates], dtype=float)
        distances = np.linalg.norm(points - np.asarray(coordinates, dtype=float), axis=1)
        for index in range(len(candidates) - 1, -1, -1):
            if distances[index] <= radius:
                return candidates[index].zone
        return None

    def system(self) -> SystemType:
        if self.current is not None and self.current.zone.system is not SystemType.UNKNOWN:
            return self.current.zone.system
        if self.current_system is not SystemType.UNKNOWN:
            return self.current_system
        for entry in reversed(self.entries):
            if entry.system is not SystemType.UNKNOWN:
                return entry.system
        return SystemType.UNKNOWN

    def history(self, classification: Optional[ZoneClassification] = None,
                system: Optional[SystemType] = None, limit: Optional[int] = None) -> List[ZoneHistoryEntry]:
        entries = list(self.entries)
        if classification is not None:
            entries = [e for e in entries if e.classification is classification]
        if system is not None:
            entries = [e for e in entries if e.system is system]
        if limit:
            entries = entries[-limit:]
        return entries

    def statistics(self) -> Dict[str, Any]:
        """
        Summarize the recorded history.

        Returns:
            Dictionary with zone change count, average dwell time in seconds,
            most visited zones and the system/classification distributions
        """
        visits: Dict[str, Dict[str, float]] = defaultdict(lambda: {"visits": 0, "total_time": 0.0})
        systems = Counter({system.value: 0 for system in SystemType})
        classifications = Counter()
        dwell_times = []

        for entry in self.entries:
            visit = visits[entry.zone_name]
            visit["visits"] += 1
            if entry.dwell_time:
                visit["total_time"] += entry.dwell_time
                dwell_times.append(entry.dwell_time)
            systems[entry.system.value] += 1
            classifications[entry.classification.value] += 1

        most_visited = sorted(
            ({"zone": name, **stats} for name, stats in visits.items()),
            key=lambda item: item["visits"],
            reverse=True,
        )[:MOST_VISITED_LIMIT]

        return {
            "total_zone_changes": self.total_changes,
            "average_dwell_time": float(np.mean(dwell_times)) if dwell_times else 0.0,
            "most_visited_zones": most_visited,
            "system_distribution": dict(systems),
            "classification_distribution": dict(classifications),
        }

    def clear(self):
        self.entries.clear()
        self.current = None
        self.last_primary = None
        self.current_system = SystemType.UNKNOWN
        self.last_transition = None
        self.total_changes = 0
        logger.debug("Zone history cleared")
