"""
Core data model for the kill feed engine.

RawLine and EventCandidate carry a single log line through the classifier;
KillEvent is the immutable record handed to sinks.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple

Coordinates = Tuple[float, float, float]


class EventKind(Enum):
    """Kinds of line the classifier can recognize."""
    PLAYER_DEATH = "player_death"
    VEHICLE_DESTRUCTION = "vehicle_destruction"
    RESPAWN = "respawn"
    INCAP = "incap"
    LOGIN = "login"
    GAME_MODE = "game_mode"
    GAME_VERSION = "game_version"
    SESSION_START = "session_start"
    SYSTEM_QUIT = "system_quit"
    PLAYER_SHIP = "player_ship"
    ZONE_TRANSITION = "zone_transition"


class DeathType(Enum):
    SOFT = "Soft"
    HARD = "Hard"
    COMBAT = "Combat"
    COLLISION = "Collision"
    CRASH = "Crash"
    BLEED_OUT = "BleedOut"
    SUFFOCATION = "Suffocation"
    UNKNOWN = "Unknown"


# Death types that count as a real loss for durable logging
SIGNIFICANT_DEATH_TYPES = frozenset({
    DeathType.HARD,
    DeathType.COMBAT,
    DeathType.COLLISION,
    DeathType.CRASH,
    DeathType.BLEED_OUT,
    DeathType.SUFFOCATION,
})


@dataclass
class RawLine:
    """One decoded log line and the byte offset it started at."""
    text: str
    offset: int = 0
    line_number: int = 0


@dataclass
class EventCandidate:
    """Output of the pattern classifier for a single line."""
    kind: EventKind
    grammar: str
    generation: str
    detection_method: str
    priority: int
    timestamp: datetime
    subject: Optional[str] = None
    fields: Dict[str, Any] = None
    identity_deferred: bool = False
    raw_line: Optional[RawLine] = None

    def __post_init__(self):
        if self.fields is None:
            self.fields = {}

    def get(self, name: str, default: Any = None) -> Any:
        """Return a captured field, treating empty strings as missing."""
        value = self.fields.get(name)
        if value is None or value == "":
            return default
        return value

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if all(self.fields.get(axis) is not None for axis in ("pos_x", "pos_y", "pos_z")):
            return (self.fields["pos_x"], self.fields["pos_y"], self.fields["pos_z"])
        return None


@dataclass(frozen=True)
class KillEvent:
    """
    A finished kill feed event.

    Instances are never mutated once emitted. An update to an already
    emitted event is a new KillEvent with the same id and a higher revision.
    """
    id: str
    timestamp: datetime
    killers: Tuple[str, ...]
    victims: Tuple[str, ...]
    death_type: DeathType
    description: str
    vehicle_type: str = "Player"
    vehicle_model: str = ""
    vehicle_id: str = ""
    location: Any = None
    location_source: str = "none"
    weapon: str = "Unknown"
    damage_type: str = "Unknown"
    game_mode: str = "Unknown"
    game_version: str = ""
    player_ship: str = "Unknown"
    coordinates: Optional[Coordinates] = None
    is_player_involved: bool = False
    detection_method: str = ""
    merged_from: Tuple[str, ...] = ()
    revision: int = 0
    destruction_level: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def location_name(self) -> str:
        if self.location is None:
            return "Unknown"
        return self.location.zone.display_name

    @property
    def is_significant(self) -> bool:
        return self.death_type in SIGNIFICANT_DEATH_TYPES

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain JSON-compatible types (used by the uploader and reports)."""
        data = asdict(self)
        data["timestamp"] = format_timestamp(self.timestamp)
        data["death_type"] = self.death_type.value
        data["killers"] = list(self.killers)
        data["victims"] = list(self.victims)
        data["merged_from"] = list(self.merged_from)
        data["coordinates"] = list(self.coordinates) if self.coordinates else None
        data["location"] = self.location.to_dict() if self.location is not None else None
        return data


def format_timestamp(ts: datetime) -> str:
    """Render a UTC datetime the way Game.log writes it."""
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def player_involved(killers: List[str], victims: List[str], player: Optional[str]) -> bool:
    if not player:
        return False
    return player in killers or player in victims
