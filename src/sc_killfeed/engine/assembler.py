"""
Event assembler.

Composes classifier output, zone resolution and correlation results into
immutable KillEvents. Ids are deterministic for a given log, so a replay
of the same file produces the same ids.
"""

import logging
import re
from collections import OrderedDict
from dataclasses import fields, replace
from typing import Any, Dict, List, Optional, Sequence

from ..models import DeathType, EventCandidate, KillEvent, format_timestamp, player_involved
from ..zones.types import MatchMethod, ZoneResolution
from .correlator import PendingDestruction
from .entities import clean_entity_name, resolve_vehicle_type
from .rules import determine_death_type, is_known, is_self_inflicted
from .session import SessionContext

logger = logging.getLogger(__name__)

_ID_UNSAFE = re.compile(r"[^a-zA-Z0-9_]")

ENVIRONMENT_DEATH_TYPES = frozenset({DeathType.BLEED_OUT, DeathType.SUFFOCATION})

# Fields that always follow the newer revision, even if it is empty
AUTHORITATIVE_FIELDS = frozenset({"death_type", "description", "destruction_level", "detection_method",
                                  "is_player_involved", "killers", "victims"})


def describe(killers: Sequence[str], victims: Sequence[str], vehicle_type: str, vehicle_model: str,
             death_type: DeathType) -> str:
    """
    Build the one-line feed description of an event.

    Args:
        killers: Killer names (may contain 'unknown' or 'Environment')
        victims: Victim names; a single victim equal to the vehicle is a placeholder
        vehicle_type: Resolved vehicle type ('Player', 'NPC' or a ship name)
        vehicle_model: Base vehicle name, or 'Player' for on-foot deaths
        death_type: The event's death type

    Returns:
        A sentence such as "Alice destroyed Bob's AEGS Gladius"
    """
    placeholder = len(victims) == 1 and victims[0] in (vehicle_type, vehicle_model) and vehicle_model != "Player"
    victim_name = (victims[0].replace("_", " ") if placeholder else " + ".join(victims)) or "Unknown"
    valid_killers = [k for k in killers if k and k.lower() != "unknown" and k != "Environment"]
    killer_name = " + ".join(valid_killers) or ("Environment" if "Environment" in killers else "Unknown")
    craft = vehicle_model.replace("_", " ") if vehicle_model and vehicle_model != "Player" else ""

    if death_type is DeathType.SUFFOCATION:
        return f"{victim_name} suffocated"
    if death_type is DeathType.BLEED_OUT:
        return f"{victim_name} bled out"
    if death_type is DeathType.CRASH:
        return f"{victim_name} ({craft}) crashed" if craft and not placeholder else f"{victim_name} crashed"
    if death_type is DeathType.COLLISION:
        if valid_killers:
            if placeholder:
                return f"{killer_name}'s vessel collided with {victim_name}"
            return f"{killer_name} collided with {victim_name}" + (f" ({craft})" if craft else "")
        return f"A collision occurred involving {victim_name}" + (f" ({craft})" if craft and not placeholder else "")
    if death_type is DeathType.SOFT:
        if placeholder:
            return f"{killer_name} disabled {victim_name}"
        return f"{killer_name} disabled {victim_name}" + (f"'s {craft}" if craft else "")
    if death_type in (DeathType.HARD, DeathType.COMBAT):
        if placeholder:
            return f"{killer_name} destroyed {victim_name}"
        return f"{killer_name} destroyed {victim_name}" + (f"'s {craft}" if craft else "")
    if "Environment" in killers:
        return f"{victim_name} succumbed to environmental factors"
    return f"{killer_name} defeated {victim_name}"


def location_source(resolution: Optional[ZoneResolution]) -> str:
    if resolution is None or resolution.fallback_used:
        return "fallback"
    if resolution.match_method is MatchMethod.DERIVED:
        return "history"
    return "event"


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == "" or value.strip().lower() == "unknown"
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


class EventAssembler:
    """Builds KillEvents and hands out collision-free ids."""

    def __init__(self, max_tracked_ids: int = 500):
        self.max_tracked_ids = max_tracked_ids
        self._issued: "OrderedDict[str, None]" = OrderedDict()

    def new_id(self, prefix: str, *parts: Any) -> str:
        """Deterministic id from prefix and parts; repeats get a numeric suffix."""
        base = _ID_UNSAFE.sub("", "_".join([prefix] + [str(p) for p in parts]))
        event_id = base
        suffix = 2
        while event_id in self._issued:
            event_id = f"{base}_{suffix}"
            suffix += 1
        self._issued[event_id] = None
        while len(self._issued) > self.max_tracked_ids:
            self._issued.popitem(last=False)
        return event_id

    def death_id(self, victim: str, candidate: EventCandidate, death_type: DeathType) -> str:
        ts = format_timestamp(candidate.timestamp)
        if death_type in ENVIRONMENT_DEATH_TYPES or candidate.get("killer") == "Environment":
            return self.new_id("env_death", victim, ts)
        return self.new_id("kill", victim, ts)

    def build_death(self, candidate: EventCandidate, event_id: str, resolution: Optional[ZoneResolution],
                    session: SessionContext, revision: int = 0) -> KillEvent:
        """
        Assemble a standalone player death.

        Args:
            candidate: The player_death candidate (subject is the victim)
            event_id: Id from death_id() or the record being upgraded
            resolution: Zone resolution for the candidate
            session: Session context for mode, version, ship and incap causes
            revision: Revision number to stamp

        Returns:
            The KillEvent
        """
        victim = candidate.subject
        killer = candidate.get("killer", "unknown")
        damage_type = candidate.get("damage_type", "Unknown")
        death_type = self.death_type_for(candidate)

        killers = [] if (death_type in ENVIRONMENT_DEATH_TYPES and killer != "Environment") else [killer]
        if not is_known(killer):
            killers = []
        if killer == victim and death_type is not DeathType.COLLISION:
            killers = []

        weapon = clean_entity_name(candidate.get("weapon")) or session.recent_incap_cause(victim, candidate.timestamp)
        weapon = weapon or damage_type

        vehicle_type = resolve_vehicle_type(victim)
        player = session.current_player
        return KillEvent(
            id=event_id,
            timestamp=candidate.timestamp,
            killers=tuple(killers),
            victims=(victim,),
            death_type=death_type,
            description=describe(killers, [victim], vehicle_type, "Player", death_type),
            vehicle_type=vehicle_type,
            vehicle_model="Player",
            vehicle_id="",
            location=resolution,
            location_source=location_source(resolution),
            weapon=weapon or "Unknown",
            damage_type=damage_type,
            game_mode=session.game_mode,
            game_version=session.game_version,
            player_ship=session.player_ship,
            coordinates=candidate.coordinates,
            is_player_involved=player_involved(killers, [victim], player),
            detection_method=candidate.detection_method,
            revision=revision,
            destruction_level=0,
            metadata=self._metadata(candidate, resolution),
        )

    @staticmethod
    def death_type_for(candidate: EventCandidate) -> DeathType:
        return determine_death_type(0, candidate.get("damage_type"), candidate.get("killer", "unknown"),
                                    candidate.subject)

    def vehicle_id_for(self, pending: PendingDestruction) -> str:
        return self.new_id("v_kill", pending.vehicle_id)

    def build_vehicle(self, pending: PendingDestruction, event_id: str, session: SessionContext,
                      revision: int = 0) -> KillEvent:
        """
        Assemble a vehicle event from a resolved or expired pending destruction.

        A correlated death contributes the victim, and the killer and weapon
        when the destruction line itself did not name them.
        """
        killers: List[str] = list(pending.destroyers)
        victims: List[str] = list(pending.victims)
        weapon = pending.damage_type
        damage_type = pending.damage_type
        detection_method = pending.candidate.detection_method if pending.candidate else ""
        merged_from = list(dict.fromkeys(pending.detection_methods))

        death = pending.death
        if death is not None:
            victims = [death.subject]
            if death.candidate is not None:
                death_killer = death.candidate.get("killer")
                if not killers and is_known(death_killer) and death_killer != death.subject \
                        and not is_self_inflicted(pending.caused_by, pending.driver):
                    killers = [death_killer]
                if death.candidate.get("weapon"):
                    weapon = clean_entity_name(death.candidate.get("weapon"))
                merged_from.append(death.candidate.detection_method)

        death_type = determine_death_type(pending.level, pending.damage_type, pending.caused_by, pending.driver)
        vehicle_type = resolve_vehicle_type(pending.vehicle_name)
        player = session.current_player

        metadata = self._metadata(pending.candidate, pending.resolution)
        metadata["correlation"] = pending.state.value
        if death is not None:
            metadata["correlated_death"] = death.subject

        return KillEvent(
            id=event_id,
            timestamp=pending.timestamp,
            killers=tuple(killers),
            victims=tuple(victims),
            death_type=death_type,
            description=describe(killers, victims, vehicle_type, pending.vehicle_name, death_type),
            vehicle_type=vehicle_type,
            vehicle_model=pending.vehicle_name,
            vehicle_id=pending.vehicle_id,
            location=pending.resolution,
            location_source=location_source(pending.resolution),
            weapon=weapon or "Unknown",
            damage_type=damage_type,
            game_mode=session.game_mode,
            game_version=session.game_version,
            player_ship=session.player_ship,
            coordinates=pending.coordinates,
            is_player_involved=player_involved(killers, victims, player),
            detection_method=detection_method,
            merged_from=tuple(dict.fromkeys(merged_from)),
            revision=revision,
            destruction_level=pending.level,
            metadata=metadata,
        )

    @staticmethod
    def _metadata(candidate: Optional[EventCandidate], resolution: Optional[ZoneResolution]) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        if candidate is not None:
            metadata.update(grammar=candidate.grammar, generation=candidate.generation)
            if candidate.get("zone"):
                metadata["original_zone"] = candidate.get("zone")
            if candidate.raw_line is not None:
                metadata["line_number"] = candidate.raw_line.line_number
                metadata["offset"] = candidate.raw_line.offset
        if resolution is not None:
            metadata["zone_confidence"] = resolution.confidence
            metadata["zone_method"] = resolution.match_method.value
        return metadata

    def merge(self, previous: KillEvent, update: KillEvent) -> KillEvent:
        """
        Combine an emitted event with newer information for the same id.

        Newer non-empty values win; an empty or 'Unknown' newer value keeps
        the previous one. merged_from accumulates and revision increments.
        """
        if update.id != previous.id:
            update = replace(update, id=previous.id)

        changes: Dict[str, Any] = {}
        for f in fields(KillEvent):
            if f.name in ("id", "revision", "merged_from", "metadata", "timestamp"):
                continue
            new_value = getattr(update, f.name)
            if f.name not in AUTHORITATIVE_FIELDS and _is_blank(new_value):
                changes[f.name] = getattr(previous, f.name)

        if previous.location is not None and (update.location is None or update.location.fallback_used):
            changes["location"] = previous.location
            changes["location_source"] = previous.location_source

        merged_from = list(previous.merged_from)
        for method in (previous.detection_method,) + tuple(update.merged_from) + (update.detection_method,):
            if method and method not in merged_from:
                merged_from.append(method)

        metadata = dict(previous.metadata)
        metadata.update(update.metadata)

        merged = replace(update, **changes)
        merged = replace(merged, timestamp=previous.timestamp, merged_from=tuple(merged_from),
                         metadata=metadata, revision=previous.revision + 1)
        logger.debug(f"Merged update into {previous.id} (revision {merged.revision})")
        return merged
