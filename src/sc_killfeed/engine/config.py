"""
Engine configuration.

EngineConfig is built from the 'engine' section of a config profile (see
config/profiles/default.json). Unknown keys are ignored; invalid values
raise ConfigurationError.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..parsing.grammars import LEGACY, GEN_4_4
from ..zones.types import ZoneMatchingConfig

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when engine configuration values are invalid."""


DEFAULT_DETECTION_PRIORITY = {
    "actor_death": 100,
    "actor_death_legacy": 90,
    "environment_death": 85,
    "vehicle_destruction": 80,
    "vehicle_destruction_nopos": 70,
    "corpse": 60,
    "corpse_cleanup": 55,
    "actor_death_fallback": 50,
}


@dataclass
class EngineConfig:
    dedup_window_ms: int = 5000
    dedup_bucket_tolerance: int = 1
    correlation_window_s: float = 15.0
    destruction_timeout_s: float = 20.0
    zones: ZoneMatchingConfig = field(default_factory=ZoneMatchingConfig)
    detection_priority: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_DETECTION_PRIORITY))
    generations: Dict[str, bool] = field(default_factory=lambda: {LEGACY: True, GEN_4_4: True})
    disabled_grammars: List[str] = field(default_factory=list)
    player_name: Optional[str] = None
    only_player_involved: bool = False
    duplicate_alert_ratio: float = 3.0
    duplicate_alert_min: int = 20
    max_tracked_events: int = 500

    def __post_init__(self):
        self.validate()

    def validate(self):
        """
        Check value ranges.

        Raises:
            ConfigurationError: If any value is out of range
        """
        if self.dedup_window_ms <= 0:
            raise ConfigurationError(f"dedup_window_ms must be positive, got {self.dedup_window_ms}")
        if self.dedup_bucket_tolerance < 0:
            raise ConfigurationError(f"dedup_bucket_tolerance must be >= 0, got {self.dedup_bucket_tolerance}")
        if self.correlation_window_s <= 0:
            raise ConfigurationError(f"correlation_window_s must be positive, got {self.correlation_window_s}")
        if self.destruction_timeout_s <= 0:
            raise ConfigurationError(f"destruction_timeout_s must be positive, got {self.destruction_timeout_s}")
        if not 0.0 <= self.zones.confidence_threshold <= 1.0:
            raise ConfigurationError(
                f"zones.confidence_threshold must be within [0, 1], got {self.zones.confidence_threshold}")
        if self.zones.proximity_radius <= 0:
            raise ConfigurationError(f"zones.proximity_radius must be positive, got {self.zones.proximity_radius}")
        if self.zones.time_window_s <= 0:
            raise ConfigurationError(f"zones.time_window_s must be positive, got {self.zones.time_window_s}")
        if self.zones.history_size < 1:
            raise ConfigurationError(f"zones.history_size must be at least 1, got {self.zones.history_size}")
        if self.max_tracked_events < 1:
            raise ConfigurationError(f"max_tracked_events must be at least 1, got {self.max_tracked_events}")
        if self.duplicate_alert_ratio <= 0:
            raise ConfigurationError(f"duplicate_alert_ratio must be positive, got {self.duplicate_alert_ratio}")
        unknown_generations = set(self.generations) - {LEGACY, GEN_4_4}
        if unknown_generations:
            raise ConfigurationError(f"Unknown generations: {', '.join(sorted(unknown_generations))}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        """
        Build an EngineConfig from a profile's 'engine' section.

        Args:
            data: Mapping with the keys documented in default.json; missing keys use defaults

        Returns:
            A validated EngineConfig

        Raises:
            ConfigurationError: If a value has the wrong type or is out of range
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Engine configuration must be a mapping, got {type(data).__name__}")

        try:
            zone_data = data.get("zones", {}) or {}
            zones = ZoneMatchingConfig(
                proximity_radius=float(zone_data.get("proximity_radius", 50000)),
                time_window_s=float(zone_data.get("time_window_s", 1800)),
                confidence_threshold=float(zone_data.get("confidence_threshold", 0.6)),
                history_size=int(zone_data.get("history_size", 10)),
            )

            priorities = dict(DEFAULT_DETECTION_PRIORITY)
            priorities.update({str(k): int(v) for k, v in (data.get("detection_priority") or {}).items()})

            generations = {LEGACY: True, GEN_4_4: True}
            generations.update({str(k): bool(v) for k, v in (data.get("generations") or {}).items()})

            return cls(
                dedup_window_ms=int(data.get("dedup_window_ms", 5000)),
                dedup_bucket_tolerance=int(data.get("dedup_bucket_tolerance", 1)),
                correlation_window_s=float(data.get("correlation_window_s", 15)),
                destruction_timeout_s=float(data.get("destruction_timeout_s", 20)),
                zones=zones,
                detection_priority=priorities,
                generations=generations,
                disabled_grammars=list(data.get("disabled_grammars") or []),
                player_name=data.get("player_name") or None,
                only_player_involved=bool(data.get("only_player_involved", False)),
                duplicate_alert_ratio=float(data.get("duplicate_alert_ratio", 3.0)),
                duplicate_alert_min=int(data.get("duplicate_alert_min", 20)),
                max_tracked_events=int(data.get("max_tracked_events", 500)),
            )
        except (TypeError, ValueError, AttributeError) as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"Invalid engine configuration: {e}") from e
