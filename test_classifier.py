#!/usr/bin/env python3
"""
Tests for the Game.log grammar table and pattern classifier.
"""

import os
import sys
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from sc_killfeed.models import EventKind, RawLine
from sc_killfeed.parsing import PatternClassifier, build_default_grammars, parse_timestamp, LEGACY, GEN_4_4

DEATH_LEGACY = ("<2025-01-01T12:00:00.000Z> [Notice] <Actor Death> CActor::Kill: 'Bob' [200] in zone "
                "'OOC_Stanton_2b' killed by 'Alice' [100] using 'KLWE_LaserRepeater_S3_123456' "
                "[Class KLWE_LaserRepeater_S3] with damage type 'Bullet'")
DEATH_4_4 = DEATH_LEGACY + " from direction x: 0.1, y: -0.5, z: 0.25 [Team_ActorTech][Actor]"

DESTRUCTION = ("<2025-01-01T12:00:00.000Z> [Notice] <Vehicle Destruction> CVehicle::OnAdvanceDestroyLevel: "
               "Vehicle 'AEGS_Gladius_123456789' [123456789] in zone 'OOC_Stanton_2b' "
               "[pos x: 100.5, y: -200.0, z: 300.25 vel x: 0, y: 0, z: 0] driven by 'Bob' [200] "
               "advanced from destroy level 0 to 1 caused by 'Alice' [100] with 'Combat' "
               "[Team_VehicleFeatures][Vehicle]")


def classify(text, classifier=None):
    classifier = classifier or PatternClassifier()
    return classifier.classify(RawLine(text=text, offset=0, line_number=1))


def test_parse_timestamp():
    assert parse_timestamp("2025-01-01T12:00:00.123Z") == datetime(2025, 1, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)
    assert parse_timestamp("2025-13-01T12:00:00.123Z") is None
    assert parse_timestamp("") is None


def test_line_timestamp_of_unmatched_line():
    classifier = PatternClassifier()
    line = "<2025-01-01T12:02:00.000Z> [Trace] <Streaming> heartbeat"
    assert classify(line, classifier) is None
    assert classifier.line_timestamp(line) == datetime(2025, 1, 1, 12, 2, tzinfo=timezone.utc)
    assert classifier.line_timestamp("no timestamp here") is None


def test_new_generation_death_wins_over_legacy():
    candidate = classify(DEATH_4_4)
    assert candidate.kind is EventKind.PLAYER_DEATH
    assert candidate.grammar == "actor_death"
    assert candidate.generation == GEN_4_4
    assert candidate.subject == "Bob"
    assert candidate.get("killer") == "Alice"
    assert candidate.get("zone") == "OOC_Stanton_2b"
    assert candidate.get("dir_y") == -0.5
    assert candidate.timestamp == datetime(2025, 1, 1, 12, tzinfo=timezone.utc)


def test_legacy_death_line():
    candidate = classify(DEATH_LEGACY)
    assert candidate.grammar == "actor_death_legacy"
    assert candidate.priority == 90
    assert candidate.get("weapon") == "KLWE_LaserRepeater_S3_123456"
    assert candidate.get("damage_type") == "Bullet"


def test_classification_is_deterministic():
    classifier = PatternClassifier()
    first = classify(DEATH_4_4, classifier)
    second = classify(DEATH_4_4, classifier)
    assert first.grammar == second.grammar
    assert first.fields == second.fields
    assert classifier.match_counts["actor_death"] == 2


def test_disabled_generation_falls_back_to_legacy_grammar():
    classifier = PatternClassifier(generations={GEN_4_4: False})
    candidate = classify(DEATH_4_4, classifier)
    assert candidate.grammar == "actor_death_legacy"
    assert classifier.grammar("actor_death") is None


def test_disabled_grammar_is_skipped():
    classifier = PatternClassifier(disabled_grammars=["actor_death", "actor_death_legacy"])
    candidate = classify(DEATH_4_4, classifier)
    assert candidate.grammar == "actor_death_fallback"
    assert candidate.subject == "Bob"


def test_vehicle_destruction_fields():
    candidate = classify(DESTRUCTION)
    assert candidate.kind is EventKind.VEHICLE_DESTRUCTION
    assert candidate.grammar == "vehicle_destruction"
    assert candidate.subject == "AEGS_Gladius_123456789"
    assert candidate.get("level_from") == 0
    assert candidate.get("level_to") == 1
    assert candidate.get("driver") == "Bob"
    assert candidate.get("caused_by") == "Alice"
    assert candidate.coordinates == (100.5, -200.0, 300.25)


def test_destruction_without_position_uses_legacy_grammar():
    line = DESTRUCTION.replace("[pos x: 100.5, y: -200.0, z: 300.25 vel x: 0, y: 0, z: 0] ", "")
    candidate = classify(line)
    assert candidate.grammar == "vehicle_destruction_nopos"
    assert candidate.coordinates is None
    assert candidate.get("level_to") == 1


def test_malformed_timestamp_is_not_a_match():
    line = DEATH_LEGACY.replace("2025-01-01T12:00:00.000Z", "2025-01-01T25:00:00.000Z")
    assert classify(line) is None


def test_unknown_and_blank_lines():
    classifier = PatternClassifier()
    assert classify("<2025-01-01T12:00:00.000Z> [Notice] <Something Else> nothing to see", classifier) is None
    assert classify("", classifier) is None
    assert classifier.lines_unmatched == 1
    assert classifier.lines_seen == 2


def test_corpse_cleanup_defers_identity():
    line = ("<2025-01-01T12:00:05.000Z> [Notice] <[ActorState] Corpse> [ACTOR STATE] "
            "IsCorpseEnabled: Yes, there is no reason to skip corpse cleanup")
    candidate = classify(line)
    assert candidate.grammar == "corpse_cleanup"
    assert candidate.identity_deferred
    assert candidate.subject is None


def test_context_lines():
    login = classify("<2025-01-01T11:59:00.000Z> [Notice] <AccountLoginCharacterStatus_Character> Character: "
                     "createdAt 1 - updatedAt 1 - geid 42 - accountId 7 - name Bob - state STATE_CURRENT")
    assert login.kind is EventKind.LOGIN
    assert login.subject == "Bob"

    mode = classify("<2025-01-01T11:59:01.000Z> [Notice] Loading GameModeRecord='SC_Default' with EGameModeId='2'")
    assert mode.kind is EventKind.GAME_MODE
    assert mode.get("mode") == "PU"

    version = classify("Environment: --system-trace-env-id='pub-sc-alpha-410-9650658' --foo")
    assert version.kind is EventKind.GAME_VERSION
    assert version.get("version") == "410-9650658"
    assert version.timestamp is None

    jump = classify("<2025-01-01T12:10:00.000Z> [Notice] <Jump Drive State Changed> Now Idle for adam "
                    "in zone OOC_Stanton_4 [Team_Navigation]")
    assert jump.kind is EventKind.ZONE_TRANSITION
    assert jump.get("zone") == "OOC_Stanton_4"


def test_duplicate_grammar_names_rejected():
    grammars = build_default_grammars()
    with pytest.raises(ValueError):
        PatternClassifier(grammars=grammars + [grammars[0]])


def test_grammar_generations_are_valid():
    for grammar in build_default_grammars():
        assert grammar.generation in (LEGACY, GEN_4_4, "any")
