"""
Zone resolver.

Maps a raw zone id (plus optional coordinates) to a confidence-scored
ZoneResolution. Methods are tried strongest first and the first one that
produces a result wins, whatever the numeric confidence of the others:

1. exact   - the known-zone table (seeded, extendable from a server feed)
2. pattern - naming rules; good results are cached
3. derived - the newest history entry inside the time window and radius
4. fallback - an 'unknown' point of interest with confidence 0
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from ..models import Coordinates
from .classifier import ZoneClassifier, clean_zone_id, known_zones, SYSTEM_DEFAULT_ZONES
from .history import ZoneHistory, distance
from .types import (
    MatchMethod,
    PrimaryZone,
    SecondaryZone,
    SystemType,
    ZoneClassification,
    ZoneInfo,
    ZoneMatchingConfig,
    ZoneResolution,
)

logger = logging.getLogger(__name__)


class ZoneResolver:
    """Resolves zone ids against the known-zone table, naming rules and history."""

    def __init__(self, matching_config: Optional[ZoneMatchingConfig] = None,
                 classifier: Optional[ZoneClassifier] = None):
        self.config = matching_config or ZoneMatchingConfig()
        self.classifier = classifier or ZoneClassifier()
        self.history = ZoneHistory(self.config.history_size)
        self.zones: Dict[str, ZoneInfo] = {}
        self._cache: Dict[str, ZoneResolution] = {}
        self.database_version = "1.0.0"
        self.database_source = "local"
        self.database_updated: Optional[datetime] = None
        self.method_counts = {method: 0 for method in MatchMethod}
        self._seed()

    def _seed(self):
        for zone in known_zones():
            self.zones[zone.id] = zone
        self.database_updated = datetime.now(timezone.utc)
        logger.debug(f"Zone resolver initialized with {len(self.zones)} known zones")

    def resolve(self, zone_id: Optional[str], coordinates: Optional[Coordinates] = None,
                timestamp: Optional[datetime] = None, source: str = "event") -> ZoneResolution:
        """
        Resolve a raw zone id. Never raises for unknown input.

        Args:
            zone_id: Raw zone id from the log; may be empty
            coordinates: Position reported with the event, if any
            timestamp: Log time of the event (defaults to now, UTC)
            source: Label recorded in the zone history

        Returns:
            The resolution; non-fallback results are appended to the history
        """
        timestamp = timestamp or datetime.now(timezone.utc)
        clean_id = clean_zone_id(zone_id)

        resolution = None
        if clean_id:
            resolution = self._lookup(clean_id, coordinates)
        if resolution is None:
            resolution = self._derive(coordinates, timestamp)
        if resolution is None:
            resolution = self._fallback(zone_id or "Unknown")

        resolution.resolved_at = timestamp
        self.method_counts[resolution.match_method] += 1

        if not resolution.fallback_used:
            self.history.add(resolution, timestamp, source, coordinates)

        logger.debug(f"Resolved zone '{zone_id}' -> {resolution.zone.display_name} "
                     f"({resolution.match_method.value}, {resolution.confidence:.2f})")
        return resolution

    def _lookup(self, clean_id: str, coordinates: Optional[Coordinates] = None) -> Optional[ZoneResolution]:
        """Exact, cached or pattern resolution of a cleaned id, without touching the history."""
        zone = self.zones.get(clean_id)
        if zone is not None:
            return ZoneResolution(
                zone=zone,
                confidence=zone.confidence,
                match_method=MatchMethod.EXACT,
                primary=self._primary_for(zone),
            )

        cached = self._cache.get(clean_id)
        if cached is not None:
            return ZoneResolution(
                zone=cached.zone,
                confidence=cached.confidence,
                match_method=cached.match_method,
                primary=cached.primary,
            )

        classification = self.classifier.classify(clean_id)
        if classification is None:
            return None

        if classification is ZoneClassification.PRIMARY:
            zone = self.classifier.build_primary(clean_id, self.config.primary_confidence, coordinates)
            resolution = ZoneResolution(zone=zone, confidence=zone.confidence,
                                        match_method=MatchMethod.PATTERN, primary=zone)
        else:
            zone = self.classifier.build_secondary(clean_id, self.config.secondary_confidence, coordinates)
            primary = self.match_secondary_to_primary(zone)
            if primary is None:
                zone.confidence = self.config.orphan_confidence
            elif zone.primary_zone is None:
                zone.primary_zone = primary.id
                zone.orbiting_body = primary.display_name
            resolution = ZoneResolution(zone=zone, confidence=zone.confidence,
                                        match_method=MatchMethod.PATTERN, primary=primary)

        if resolution.confidence >= self.config.confidence_threshold:
            self._cache[clean_id] = resolution
            logger.debug(f"Cached zone '{clean_id}' with confidence {resolution.confidence}")
        return resolution

    def _primary_for(self, zone: ZoneInfo) -> Optional[PrimaryZone]:
        if isinstance(zone, PrimaryZone):
            return zone
        if isinstance(zone, SecondaryZone) and zone.primary_zone:
            primary = self.zones.get(zone.primary_zone)
            if isinstance(primary, PrimaryZone):
                return primary
        return None

    def _derive(self, coordinates: Optional[Coordinates], timestamp: datetime) -> Optional[ZoneResolution]:
        """Derive a location from the newest history entry inside the time window and radius."""
        entry = self.history.last_entry
        if entry is None:
            return None

        age = (timestamp - entry.timestamp).total_seconds()
        if age < 0 or age > self.config.time_window_s:
            return None
        recency = 1.0 - age / self.config.time_window_s if self.config.time_window_s else 1.0

        proximity = 1.0
        gap = distance(coordinates, entry.coordinates)
        if gap is not None:
            if gap > self.config.proximity_radius:
                return None
            proximity = 1.0 - gap / self.config.proximity_radius if self.config.proximity_radius else 1.0

        confidence = max(0.0, min(1.0, self.config.derived_base_confidence * recency * proximity))
        return ZoneResolution(
            zone=entry.zone,
            confidence=confidence,
            match_method=MatchMethod.DERIVED,
            primary=self._primary_for(entry.zone) or self.history.last_primary_zone(entry.system),
        )

    def _fallback(self, label: str) -> ZoneResolution:
        logger.debug(f"Using fallback zone for '{label}'")
        zone = SecondaryZone(
            id="unknown",
            display_name=label or "Unknown Location",
            classification=ZoneClassification.SECONDARY,
            zone_type="poi",
            system=SystemType.UNKNOWN,
            confidence=0.0,
        )
        return ZoneResolution(zone=zone, confidence=0.0, match_method=MatchMethod.FALLBACK, fallback_used=True)

    def match_secondary_to_primary(self, zone: SecondaryZone) -> Optional[PrimaryZone]:
        """
        Find the primary zone a secondary zone belongs to.

        Tries, in order: the zone's own derived parent, the history's last
        primary zone in the same system, a primary zone seen near the zone's
        coordinates, and finally the system's default primary zone.
        """
        if zone.primary_zone:
            resolution = self._lookup(clean_zone_id(zone.primary_zone))
            if resolution is not None and isinstance(resolution.zone, PrimaryZone):
                logger.debug(f"Direct match: {zone.display_name} -> {resolution.zone.display_name}")
                return resolution.zone

        last_primary = self.history.last_primary_zone(zone.system)
        if last_primary is not None:
            logger.debug(f"History match: {zone.display_name} -> {last_primary.display_name}")
            return last_primary

        if zone.coordinates is not None:
            nearby = self.history.find_nearby_primary(zone.coordinates, zone.system,
                                                      self.config.nearby_primary_radius)
            if nearby is not None:
                logger.debug(f"Coordinate match: {zone.display_name} -> {nearby.display_name}")
                return nearby

        default_id = SYSTEM_DEFAULT_ZONES.get(zone.system)
        if default_id:
            resolution = self._lookup(default_id)
            if resolution is not None and isinstance(resolution.zone, PrimaryZone):
                logger.debug(f"System fallback: {zone.display_name} -> {resolution.zone.display_name}")
                return resolution.zone

        logger.debug(f"Could not match secondary zone {zone.display_name} to any primary zone")
        return None

    def search_zones(self, query: str) -> List[ZoneInfo]:
        """Known and cached zones whose id or display name contains query (case-insensitive)."""
        term = query.lower()
        results = [zone for zone in self._all_zones()
                   if term in zone.display_name.lower() or term in zone.id.lower()]
        return sorted(results, key=lambda z: z.display_name)

    def zones_by_type(self, classification: ZoneClassification,
                      system: Optional[SystemType] = None) -> List[ZoneInfo]:
        results = [zone for zone in self._all_zones()
                   if zone.classification is classification and (system is None or zone.system is system)]
        return sorted(results, key=lambda z: z.display_name)

    def _all_zones(self) -> Iterable[ZoneInfo]:
        seen = dict(self.zones)
        for clean_id, resolution in self._cache.items():
            seen.setdefault(clean_id, resolution.zone)
        return seen.values()

    def update_zone_database(self, zones: Iterable[ZoneInfo], version: str):
        """Merge server-provided zones into the exact-match table."""
        zones = list(zones)
        for zone in zones:
            self.zones[zone.id] = zone
            self._cache.pop(zone.id, None)
        self.database_version = version
        self.database_source = "server"
        self.database_updated = datetime.now(timezone.utc)
        logger.info(f"Zone database updated to version {version} with {len(zones)} zones")

    def database_stats(self) -> Dict[str, Any]:
        by_system = {system.value: 0 for system in SystemType}
        primary = 0
        for zone in self.zones.values():
            by_system[zone.system.value] += 1
            if zone.is_primary:
                primary += 1
        return {
            "total_zones": len(self.zones),
            "primary_zones": primary,
            "secondary_zones": len(self.zones) - primary,
            "cached_zones": len(self._cache),
            "by_system": by_system,
            "version": self.database_version,
            "source": self.database_source,
            "last_updated": self.database_updated.isoformat() if self.database_updated else None,
            "resolutions": {method.value: count for method, count in self.method_counts.items()},
        }

    def reset(self):
        """Forget history and cached pattern results; the known-zone table is kept."""
        self.history.clear()
        self._cache.clear()
        self.method_counts = {method: 0 for method in MatchMethod}
