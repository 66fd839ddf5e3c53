#!/usr/bin/env python3
"""
Tests for zone classification, history and resolution.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from sc_killfeed.zones import (
    MatchMethod,
    PrimaryZone,
    SystemType,
    ZoneClassification,
    ZoneClassifier,
    ZoneHistory,
    ZoneInfo,
    ZoneResolver,
    clean_zone_id,
)
from sc_killfeed.zones.history import distance

T0 = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)


def test_clean_zone_id_strips_instance_suffix_only():
    assert clean_zone_id("Hangar_MedTop_003") == "Hangar_MedTop"
    assert clean_zone_id(" OOC_Stanton_1 ") == "OOC_Stanton_1"
    assert clean_zone_id("OOC_Stanton_2b") == "OOC_Stanton_2b"
    assert clean_zone_id("") == ""
    assert clean_zone_id(None) == ""


def test_classifier_rules():
    classifier = ZoneClassifier()
    assert classifier.classify("OOC_Stanton_4") is ZoneClassification.PRIMARY
    assert classifier.classify("OOC_Pyro_3") is ZoneClassification.PRIMARY
    assert classifier.classify("OOC_Stanton_1_Outpost") is ZoneClassification.SECONDARY
    assert classifier.classify("CRU-L1") is ZoneClassification.SECONDARY
    assert classifier.classify("SomethingWeird") is None

    assert classifier.determine_system("OOC_Pyro_6") is SystemType.PYRO
    assert classifier.determine_system("GrimHex") is SystemType.STANTON
    assert classifier.determine_primary_type("OOC_Stanton_2b") == "moon"
    assert classifier.determine_secondary_type("NewBabbage") == "landing_zone"


def test_moon_display_names():
    classifier = ZoneClassifier()
    assert classifier.display_name("OOC_Stanton_1a") == "Arial"
    assert classifier.display_name("OOC_Stanton_2b") == "Daymar"
    assert classifier.display_name("OOC_Stanton_2c") == "Yela"
    assert classifier.display_name("OOC_Stanton_4c") == "Euterpe"
    assert classifier.display_name("OOC_Stanton_3c") == "ArcCorp C"
    assert classifier.display_name("OOC_Stanton") == "Stanton System"


def test_exact_match():
    resolver = ZoneResolver()
    resolution = resolver.resolve("OOC_Stanton_2b", timestamp=T0)
    assert resolution.match_method is MatchMethod.EXACT
    assert resolution.zone.display_name == "Daymar"
    assert resolution.confidence == 1.0
    assert not resolution.fallback_used
    assert isinstance(resolution.primary, PrimaryZone)


def test_grimhex_belongs_to_yela():
    resolver = ZoneResolver()
    resolution = resolver.resolve("GrimHex", timestamp=T0)
    assert resolution.match_method is MatchMethod.EXACT
    assert resolution.zone.purpose == "Outlaw Base"
    assert resolution.primary.id == "OOC_Stanton_2c"
    assert resolution.primary.display_name == "Yela"


def test_pattern_match_is_cached():
    resolver = ZoneResolver()
    first = resolver.resolve("OOC_Stanton_1_Outpost_001", timestamp=T0)
    assert first.match_method is MatchMethod.PATTERN
    assert first.zone.id == "OOC_Stanton_1_Outpost"
    assert first.zone.zone_type == "outpost"
    assert first.primary.display_name == "Hurston"
    assert first.confidence == pytest.approx(0.6)
    assert resolver.database_stats()["cached_zones"] == 1

    second = resolver.resolve("OOC_Stanton_1_Outpost_002", timestamp=T0)
    assert second.zone.id == first.zone.id
    assert second.match_method is MatchMethod.PATTERN


def test_orphan_secondary_gets_low_confidence_and_is_not_cached():
    resolver = ZoneResolver()
    resolution = resolver.resolve("Foo_Station", timestamp=T0)
    assert resolution.match_method is MatchMethod.PATTERN
    assert resolution.confidence == pytest.approx(0.45)
    assert resolution.primary is None
    assert resolver.database_stats()["cached_zones"] == 0


def test_derived_from_recent_history():
    resolver = ZoneResolver()
    resolver.resolve("OOC_Stanton_2b", coordinates=(0.0, 0.0, 0.0), timestamp=T0)

    resolution = resolver.resolve("SomethingWeird", coordinates=(1000.0, 0.0, 0.0),
                                  timestamp=T0 + timedelta(seconds=60))
    assert resolution.match_method is MatchMethod.DERIVED
    assert resolution.zone.display_name == "Daymar"
    expected = 0.5 * (1 - 60 / 1800) * (1 - 1000 / 50000)
    assert resolution.confidence == pytest.approx(expected)


def test_derived_respects_window_and_radius():
    resolver = ZoneResolver()
    resolver.resolve("OOC_Stanton_2b", coordinates=(0.0, 0.0, 0.0), timestamp=T0)

    too_late = resolver.resolve("SomethingWeird", timestamp=T0 + timedelta(seconds=2000))
    assert too_late.match_method is MatchMethod.FALLBACK

    too_far = resolver.resolve("SomethingWeird", coordinates=(60000.0, 0.0, 0.0),
                               timestamp=T0 + timedelta(seconds=10))
    assert too_far.match_method is MatchMethod.FALLBACK


def test_fallback_never_raises_and_is_not_recorded():
    resolver = ZoneResolver()
    resolution = resolver.resolve("SomethingWeird", timestamp=T0)
    assert resolution.fallback_used
    assert resolution.match_method is MatchMethod.FALLBACK
    assert resolution.confidence == 0.0
    assert resolution.zone.display_name == "SomethingWeird"
    assert len(resolver.history) == 0

    empty = resolver.resolve(None, timestamp=T0)
    assert empty.fallback_used


def test_adding_zone_information_never_downgrades_the_method():
    resolver = ZoneResolver()
    before = resolver.resolve("OOC_Stanton_3c", timestamp=T0)
    assert before.match_method is MatchMethod.PATTERN

    resolver.update_zone_database([
        PrimaryZone(id="OOC_Stanton_3c", display_name="Test Moon", classification=ZoneClassification.PRIMARY,
                    zone_type="moon", system=SystemType.STANTON, confidence=0.5),
        ZoneInfo(id="SomethingWeird", display_name="Weird Place", classification=ZoneClassification.SECONDARY,
                 zone_type="poi", system=SystemType.STANTON, confidence=0.3),
    ], version="2.0.0")

    after = resolver.resolve("OOC_Stanton_3c", timestamp=T0)
    assert after.match_method is MatchMethod.EXACT
    assert after.match_method.rank <= before.match_method.rank
    assert after.zone.display_name == "Test Moon"

    weird = resolver.resolve("SomethingWeird", timestamp=T0)
    assert weird.match_method is MatchMethod.EXACT
    assert weird.confidence == pytest.approx(0.3)
    assert resolver.database_stats()["version"] == "2.0.0"


def test_zone_confidence_is_validated():
    with pytest.raises(ValueError):
        ZoneInfo(id="x", display_name="x", classification=ZoneClassification.PRIMARY,
                 zone_type="system", system=SystemType.UNKNOWN, confidence=1.5)


def test_history_ignores_repeats_and_is_bounded():
    resolver = ZoneResolver()
    resolver.resolve("OOC_Stanton_2b", timestamp=T0)
    resolver.resolve("OOC_Stanton_2b", timestamp=T0 + timedelta(seconds=5))
    assert len(resolver.history) == 1
    assert resolver.history.last_entry.event_count == 2

    history = ZoneHistory(max_size=3)
    zone_resolver = ZoneResolver()
    for index, zone_id in enumerate(["OOC_Stanton_1", "OOC_Stanton_2", "OOC_Stanton_3", "OOC_Stanton_4"]):
        resolution = zone_resolver.resolve(zone_id, timestamp=T0)
        history.add(resolution, T0 + timedelta(seconds=index * 10), "test")
    assert len(history) == 3
    assert history.history()[0].zone_id == "OOC_Stanton_2"
    assert history.history()[0].dwell_time == pytest.approx(10.0)
    assert history.system() is SystemType.STANTON
    assert history.statistics()["total_zone_changes"] == 4


def test_find_nearby_primary():
    resolver = ZoneResolver()
    history = ZoneHistory()
    history.add(resolver.resolve("OOC_Stanton_1", timestamp=T0), T0, "test", coordinates=(0.0, 0.0, 0.0))
    history.add(resolver.resolve("OOC_Stanton_4", timestamp=T0), T0, "test", coordinates=(500000.0, 0.0, 0.0))

    nearby = history.find_nearby_primary((10.0, 0.0, 0.0), SystemType.STANTON, 1000.0)
    assert nearby.id == "OOC_Stanton_1"
    assert history.find_nearby_primary((10.0, 0.0, 0.0), SystemType.PYRO, 1000.0) is None


def test_distance():
    assert distance((0.0, 0.0, 0.0), (3.0, 4.0, 0.0)) == pytest.approx(5.0)
    assert distance(None, (1.0, 2.0, 3.0)) is None


def test_search_and_reset():
    resolver = ZoneResolver()
    assert any(zone.id == "OOC_Stanton_2b" for zone in resolver.search_zones("daymar"))
    pyro = resolver.zones_by_type(ZoneClassification.PRIMARY, SystemType.PYRO)
    assert {zone.id for zone in pyro} >= {"OOC_Pyro", "OOC_Pyro_6"}

    resolver.resolve("OOC_Stanton_1_Outpost_001", timestamp=T0)
    resolver.reset()
    assert len(resolver.history) == 0
    assert resolver.database_stats()["cached_zones"] == 0
    assert "OOC_Stanton_2b" in resolver.zones
