"""
Zone resolution for Star Citizen locations.

This package contains the zone model, the naming-rule classifier, the
bounded zone history and the resolver that combines them.
"""

from .types import (
    MatchMethod,
    PrimaryZone,
    SecondaryZone,
    SystemType,
    ZoneClassification,
    ZoneHistoryEntry,
    ZoneInfo,
    ZoneMatchingConfig,
    ZoneResolution,
)
from .classifier import ZoneClassifier, clean_zone_id
from .history import ZoneHistory
from .resolver import ZoneResolver

__all__ = [
    'MatchMethod',
    'PrimaryZone',
    'SecondaryZone',
    'SystemType',
    'ZoneClassification',
    'ZoneHistoryEntry',
    'ZoneInfo',
    'ZoneMatchingConfig',
    'ZoneResolution',
    'ZoneClassifier',
    'clean_zone_id',
    'ZoneHistory',
    'ZoneResolver',
]
