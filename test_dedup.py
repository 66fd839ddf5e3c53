#!/usr/bin/env python3
"""
Tests for candidate deduplication.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from sc_killfeed.engine.config import DEFAULT_DETECTION_PRIORITY
from sc_killfeed.engine.dedup import DedupDecision, Deduplicator

T0 = datetime(2025, 1, 1, 12, 0, 0, 400000, tzinfo=timezone.utc)


def make_dedup(**kwargs):
    return Deduplicator(detection_priority=DEFAULT_DETECTION_PRIORITY, **kwargs)


def test_first_candidate_is_new():
    dedup = make_dedup()
    result = dedup.check("Bob", T0, "actor_death_legacy", T0)
    assert result.decision is DedupDecision.NEW
    assert result.should_process
    assert result.record.priority == 90


def test_same_candidate_twice_is_duplicate():
    dedup = make_dedup()
    dedup.check("Bob", T0, "actor_death_legacy", T0)
    again = dedup.check("Bob", T0, "actor_death_legacy", T0)
    assert again.decision is DedupDecision.DUPLICATE
    assert not again.should_process
    assert dedup.duplicate_count == 1
    assert dedup.processed_count == 1


def test_subject_is_normalized():
    dedup = make_dedup()
    dedup.check(" Bob ", T0, "corpse", T0)
    assert dedup.check("bob", T0, "corpse", T0).decision is DedupDecision.DUPLICATE


def test_higher_priority_upgrades_in_neighbouring_second():
    dedup = make_dedup()
    first = dedup.check("Bob", T0, "actor_death_legacy", T0)
    first.record.event_id = "kill_Bob"

    later = T0 + timedelta(seconds=1)
    upgrade = dedup.check("Bob", later, "actor_death", later)
    assert upgrade.decision is DedupDecision.UPGRADE
    assert upgrade.previous_method == "actor_death_legacy"
    assert upgrade.record.event_id == "kill_Bob"
    assert upgrade.record.detection_method == "actor_death"
    assert dedup.upgrade_count == 1
    assert len(dedup.records) == 1


def test_lower_priority_after_upgrade_is_duplicate():
    dedup = make_dedup()
    dedup.check("Bob", T0, "actor_death", T0)
    assert dedup.check("Bob", T0, "corpse", T0).decision is DedupDecision.DUPLICATE
    assert dedup.check("Bob", T0, "actor_death_legacy", T0).decision is DedupDecision.DUPLICATE


def test_buckets_beyond_tolerance_are_distinct():
    dedup = make_dedup()
    dedup.check("Bob", T0, "actor_death", T0)
    later = T0 + timedelta(seconds=2)
    assert dedup.check("Bob", later, "actor_death", later).decision is DedupDecision.NEW

    strict = make_dedup(bucket_tolerance=0)
    strict.check("Bob", T0, "actor_death", T0)
    later = T0 + timedelta(seconds=1)
    assert strict.check("Bob", later, "actor_death", later).decision is DedupDecision.NEW


def test_records_expire_after_window():
    dedup = make_dedup(window_ms=5000)
    dedup.check("Bob", T0, "actor_death", T0)
    assert dedup.purge(T0 + timedelta(seconds=4)) == 0
    assert dedup.purge(T0 + timedelta(seconds=6)) == 1
    assert dedup.check("Bob", T0, "actor_death", T0 + timedelta(seconds=6)).decision is DedupDecision.NEW


def test_unknown_method_uses_fallback_priority():
    dedup = make_dedup()
    result = dedup.check("Bob", T0, "custom_grammar", T0, fallback_priority=42)
    assert result.record.priority == 42


def test_statistics_and_reset():
    dedup = make_dedup()
    dedup.check("Bob", T0, "actor_death", T0)
    dedup.check("Bob", T0, "actor_death", T0)
    assert dedup.statistics() == {"records": 1, "processed_count": 1, "upgrade_count": 0, "duplicate_count": 1}
    dedup.reset()
    assert dedup.statistics()["records"] == 0
    assert dedup.should_process("Bob", T0, "actor_death", T0)
