"""
Zone data model: primary zones (systems, planets, moons, jump points) and
secondary zones (stations, outposts, points of interest).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..models import Coordinates


class ZoneClassification(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SystemType(Enum):
    STANTON = "stanton"
    PYRO = "pyro"
    UNKNOWN = "unknown"


class MatchMethod(Enum):
    """Resolution methods, strongest first."""
    EXACT = "exact"
    PATTERN = "pattern"
    DERIVED = "derived"
    FALLBACK = "fallback"

    @property
    def rank(self) -> int:
        return _METHOD_RANK[self]


_METHOD_RANK = {
    MatchMethod.EXACT: 0,
    MatchMethod.PATTERN: 1,
    MatchMethod.DERIVED: 2,
    MatchMethod.FALLBACK: 3,
}


@dataclass
class ZoneInfo:
    id: str
    display_name: str
    classification: ZoneClassification
    zone_type: str
    system: SystemType
    coordinates: Optional[Coordinates] = None
    confidence: float = 1.0

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Zone confidence must be within [0, 1], got {self.confidence}")

    @property
    def is_primary(self) -> bool:
        return self.classification is ZoneClassification.PRIMARY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "classification": self.classification.value,
            "zone_type": self.zone_type,
            "system": self.system.value,
            "coordinates": list(self.coordinates) if self.coordinates else None,
            "confidence": self.confidence,
        }


@dataclass
class PrimaryZone(ZoneInfo):
    parent: Optional[str] = None
    children: List[str] = field(default_factory=list)
    jurisdiction: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(parent=self.parent, children=list(self.children), jurisdiction=self.jurisdiction)
        return data


@dataclass
class SecondaryZone(ZoneInfo):
    primary_zone: Optional[str] = None
    orbiting_body: Optional[str] = None
    purpose: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(primary_zone=self.primary_zone, orbiting_body=self.orbiting_body, purpose=self.purpose)
        return data


@dataclass
class ZoneResolution:
    """Result of resolving a raw zone id."""
    zone: ZoneInfo
    confidence: float
    match_method: MatchMethod
    fallback_used: bool = False
    primary: Optional[PrimaryZone] = None
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone": self.zone.to_dict(),
            "confidence": self.confidence,
            "match_method": self.match_method.value,
            "fallback_used": self.fallback_used,
            "primary": self.primary.id if self.primary else None,
        }


@dataclass
class ZoneHistoryEntry:
    timestamp: datetime
    zone_id: str
    zone_name: str
    classification: ZoneClassification
    system: SystemType
    source: str
    zone: ZoneInfo
    coordinates: Optional[Coordinates] = None
    dwell_time: float = 0.0
    event_count: int = 0


@dataclass
class ZoneTransition:
    from_entry: Optional[ZoneHistoryEntry]
    to_entry: ZoneHistoryEntry
    transition_time: float
    distance: Optional[float]
    significant: bool


@dataclass
class ZoneMatchingConfig:
    """Tunables for zone resolution; distances in metres, times in seconds."""
    proximity_radius: float = 50000.0
    time_window_s: float = 1800.0
    confidence_threshold: float = 0.6
    primary_confidence: float = 0.8
    secondary_confidence: float = 0.6
    orphan_confidence: float = 0.45
    derived_base_confidence: float = 0.5
    history_size: int = 10
    nearby_primary_radius: float = 100000.0
