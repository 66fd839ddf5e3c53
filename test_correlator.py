#!/usr/bin/env python3
"""
Tests for the pending-destruction correlator and the cause rules.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from sc_killfeed.engine.correlator import CorrelationState, DestructionCorrelator
from sc_killfeed.engine.rules import destruction_parties, determine_death_type
from sc_killfeed.models import DeathType, EventCandidate, EventKind

T0 = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)


def destruction(vehicle="AEGS_Gladius_123", level=1, driver="Bob", caused_by="Alice",
                damage_type="Combat", at=T0):
    return EventCandidate(
        kind=EventKind.VEHICLE_DESTRUCTION,
        grammar="vehicle_destruction",
        generation="any",
        detection_method="vehicle_destruction",
        priority=80,
        timestamp=at,
        subject=vehicle,
        fields={"vehicle": vehicle, "vehicle_name": vehicle.rsplit("_", 1)[0], "level_from": level - 1,
                "level_to": level, "driver": driver, "caused_by": caused_by, "damage_type": damage_type,
                "zone": "OOC_Stanton_2b"},
    )


def test_destruction_creates_active_entry():
    correlator = DestructionCorrelator()
    transition = correlator.on_destruction(destruction(), T0)
    assert transition.previous is CorrelationState.ABSENT
    assert transition.current is CorrelationState.ACTIVE
    assert transition.pending.destroyers == ["Alice"]
    assert transition.pending.victims == ["Bob"]
    assert correlator.state_of("AEGS_Gladius_123") is CorrelationState.ACTIVE


def test_escalation_mutates_single_entry():
    correlator = DestructionCorrelator()
    first = correlator.on_destruction(destruction(level=1), T0)
    second = correlator.on_destruction(destruction(level=2, at=T0 + timedelta(seconds=1)), T0 + timedelta(seconds=1))
    assert second.escalated
    assert second.pending is first.pending
    assert first.pending.level == 2
    assert len(correlator.pending) == 1
    assert first.pending.detection_methods == ["vehicle_destruction", "vehicle_destruction"]

    repeat = correlator.on_destruction(destruction(level=1, at=T0 + timedelta(seconds=2)), T0 + timedelta(seconds=2))
    assert not repeat.escalated
    assert first.pending.level == 2


def test_death_within_window_resolves():
    correlator = DestructionCorrelator(correlation_window_s=15)
    correlator.on_destruction(destruction(), T0)
    transition = correlator.on_death("Bob", T0 + timedelta(seconds=3), T0 + timedelta(seconds=3))
    assert transition.previous is CorrelationState.ACTIVE
    assert transition.current is CorrelationState.RESOLVED
    assert transition.pending.death.subject == "Bob"
    assert correlator.state_of("AEGS_Gladius_123") is CorrelationState.RESOLVED
    assert not correlator.pending


def test_death_outside_window_does_not_resolve():
    correlator = DestructionCorrelator(correlation_window_s=15, destruction_timeout_s=60)
    correlator.on_destruction(destruction(), T0)
    assert correlator.on_death("Bob", T0 + timedelta(seconds=30), T0 + timedelta(seconds=30)) is None
    assert correlator.state_of("AEGS_Gladius_123") is CorrelationState.ACTIVE


def test_exact_driver_beats_unknown_driver():
    correlator = DestructionCorrelator()
    correlator.on_destruction(destruction(vehicle="ANVL_Arrow_1", driver="unknown"), T0)
    correlator.on_destruction(destruction(vehicle="AEGS_Gladius_123", driver="Bob"), T0)
    transition = correlator.on_death("Bob", T0, T0)
    assert transition.vehicle_id == "AEGS_Gladius_123"

    other = correlator.on_death("Carol", T0, T0)
    assert other.vehicle_id == "ANVL_Arrow_1"
    assert other.pending.driver == "Carol"


def test_remembered_death_links_later_destruction():
    correlator = DestructionCorrelator()
    correlator.remember_death("Bob", T0, "kill_Bob")
    transition = correlator.on_destruction(destruction(at=T0 + timedelta(seconds=2)), T0 + timedelta(seconds=2))
    assert transition.reverse_order
    assert transition.pending.event_id == "kill_Bob"
    assert correlator.remembered_deaths == {}


def test_unknown_driver_takes_newest_remembered_death():
    correlator = DestructionCorrelator(correlation_window_s=15)
    correlator.remember_death("Carol", T0, "kill_Carol")
    correlator.remember_death("Bob", T0 + timedelta(seconds=1), "kill_Bob")
    at = T0 + timedelta(seconds=3)
    transition = correlator.on_destruction(destruction(driver="unknown", at=at), at)

    assert transition.reverse_order
    assert transition.pending.event_id == "kill_Bob"
    assert transition.pending.driver == "Bob"
    assert transition.pending.victims == ["Bob"]
    assert list(correlator.remembered_deaths) == ["carol"]


def test_unknown_driver_ignores_deaths_outside_window():
    correlator = DestructionCorrelator(correlation_window_s=15)
    correlator.remember_death("Bob", T0, "kill_Bob")
    at = T0 + timedelta(seconds=20)
    transition = correlator.on_destruction(destruction(driver="unknown", at=at), at)
    assert transition.current is CorrelationState.ACTIVE


def test_expiry_is_oldest_first():
    correlator = DestructionCorrelator(destruction_timeout_s=20)
    correlator.on_destruction(destruction(vehicle="ANVL_Arrow_1"), T0)
    correlator.on_destruction(destruction(vehicle="AEGS_Gladius_123"), T0 + timedelta(seconds=10))

    assert correlator.expire(T0 + timedelta(seconds=15)) == []
    expired = correlator.expire(T0 + timedelta(seconds=25))
    assert [t.vehicle_id for t in expired] == ["ANVL_Arrow_1"]
    assert expired[0].current is CorrelationState.EXPIRED
    assert list(correlator.pending) == ["AEGS_Gladius_123"]

    flushed = correlator.flush()
    assert [t.vehicle_id for t in flushed] == ["AEGS_Gladius_123"]
    assert correlator.statistics()["expired"] == 2


def test_death_type_rules():
    assert determine_death_type(1, "Combat", "Alice", "Bob") is DeathType.SOFT
    assert determine_death_type(2, "Combat", "Alice", "Bob") is DeathType.HARD
    assert determine_death_type(2, "Collision", "Bob", "Bob") is DeathType.CRASH
    assert determine_death_type(2, "Collision", "Alice", "Bob") is DeathType.COLLISION
    assert determine_death_type(0, "BleedOut", "unknown", "Bob") is DeathType.BLEED_OUT
    assert determine_death_type(0, "SuffocationDamage", "Environment", "Bob") is DeathType.SUFFOCATION
    assert determine_death_type(0, "Bullet", "Alice", "Bob") is DeathType.COMBAT
    assert determine_death_type(0, "Bullet", "unknown", "Bob") is DeathType.UNKNOWN


def test_destruction_parties():
    assert destruction_parties("Alice", "Bob", "Combat", "AEGS_Gladius") == (["Alice"], ["Bob"])
    assert destruction_parties("Alice", "unknown", "Combat", "AEGS_Gladius") == (["Alice"], ["AEGS_Gladius"])
    assert destruction_parties("Bob", "Bob", "Collision", "AEGS_Gladius") == ([], ["Bob"])
    assert destruction_parties("Bob", "unknown", "SelfDestruct", "AEGS_Gladius") == ([], ["Bob"])
