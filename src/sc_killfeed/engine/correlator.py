"""
Pending-destruction correlator.

A vehicle destruction is reported in escalating levels (1 = soft death,
2 = hard death) and its occupant's death is usually logged a moment before
or after. Each vehicle runs through a small state machine:

    absent -> active(level) -> resolved | expired

Active entries live in an insertion-ordered table. Escalation moves an
entry to the back, so the front always holds the longest-idle entries and
expiry only has to sweep from the front.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from ..models import Coordinates, EventCandidate
from .rules import destruction_parties

logger = logging.getLogger(__name__)

UNKNOWN_NAMES = frozenset({"", "unknown", "none"})


class CorrelationState(Enum):
    ABSENT = "absent"
    ACTIVE = "active"
    RESOLVED = "resolved"
    EXPIRED = "expired"


@dataclass
class PendingDestruction:
    vehicle_id: str
    vehicle_name: str
    level: int
    timestamp: datetime
    last_update: datetime
    destroyers: List[str] = field(default_factory=list)
    victims: List[str] = field(default_factory=list)
    zone: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    damage_type: str = "Unknown"
    caused_by: str = "unknown"
    driver: str = "unknown"
    state: CorrelationState = CorrelationState.ACTIVE
    candidate: Optional[EventCandidate] = None
    death: Optional["RememberedDeath"] = None
    event_id: Optional[str] = None
    detection_methods: List[str] = field(default_factory=list)
    resolution: Optional[Any] = None

    @property
    def has_known_driver(self) -> bool:
        return self.driver.lower() not in UNKNOWN_NAMES


@dataclass
class RememberedDeath:
    """A death emitted on its own, kept for the correlation window in case its vehicle turns up."""
    subject: str
    timestamp: datetime
    candidate: Optional[EventCandidate] = None
    event_id: Optional[str] = None


@dataclass
class Transition:
    vehicle_id: str
    previous: CorrelationState
    current: CorrelationState
    pending: Optional[PendingDestruction] = None
    death: Optional[RememberedDeath] = None
    escalated: bool = False
    expired: List["Transition"] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous is not self.current or self.escalated

    @property
    def reverse_order(self) -> bool:
        """Resolved against a death that was emitted before the destruction arrived."""
        return (self.previous is CorrelationState.ABSENT
                and self.current is CorrelationState.RESOLVED
                and self.death is not None)


def _same_name(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


class DestructionCorrelator:
    """Links vehicle destructions to occupant deaths within a bounded window."""

    def __init__(self, correlation_window_s: float = 15.0, destruction_timeout_s: float = 20.0):
        self.correlation_window = timedelta(seconds=correlation_window_s)
        self.destruction_timeout = timedelta(seconds=destruction_timeout_s)
        self.pending: "OrderedDict[str, PendingDestruction]" = OrderedDict()
        self.resolved: "OrderedDict[str, PendingDestruction]" = OrderedDict()
        self.remembered_deaths: "OrderedDict[str, RememberedDeath]" = OrderedDict()
        self.stats = {"created": 0, "escalated": 0, "resolved": 0, "reverse_resolved": 0, "expired": 0}

    def on_destruction(self, candidate: EventCandidate, now: datetime) -> Transition:
        """
        Feed a vehicle destruction candidate.

        Args:
            candidate: A vehicle_destruction candidate with level_to >= 1
            now: Current clock time

        Returns:
            The resulting transition; expired entries swept on the way are attached as transition.expired
        """
        expired = self.expire(now)

        vehicle_id = candidate.subject
        level = candidate.get("level_to", 0)
        driver = candidate.get("driver", "unknown")
        caused_by = candidate.get("caused_by", "unknown")
        damage_type = candidate.get("damage_type", "Unknown")

        resolved = self.resolved.get(vehicle_id)
        if resolved is not None:
            transition = Transition(vehicle_id, CorrelationState.RESOLVED, CorrelationState.RESOLVED,
                                    pending=resolved, expired=expired)
            if level > resolved.level:
                self._apply_stage(resolved, candidate, level, now)
                self.resolved.move_to_end(vehicle_id)
                transition.escalated = True
                self.stats["escalated"] += 1
                logger.info(f"Resolved vehicle {vehicle_id} escalated to level {level}")
            return transition

        existing = self.pending.get(vehicle_id)
        if existing is not None:
            transition = Transition(vehicle_id, CorrelationState.ACTIVE, CorrelationState.ACTIVE,
                                    pending=existing, expired=expired)
            if level > existing.level:
                self._apply_stage(existing, candidate, level, now)
                self.pending.move_to_end(vehicle_id)
                transition.escalated = True
                self.stats["escalated"] += 1
                logger.debug(f"Pending destruction {vehicle_id} escalated to level {level}")
            return transition

        pending = PendingDestruction(
            vehicle_id=vehicle_id,
            vehicle_name=candidate.get("vehicle_name", vehicle_id),
            level=level,
            timestamp=candidate.timestamp,
            last_update=now,
            zone=candidate.get("zone"),
            coordinates=candidate.coordinates,
            damage_type=damage_type,
            caused_by=caused_by,
            driver=driver,
            candidate=candidate,
            detection_methods=[candidate.detection_method],
        )
        self._set_parties(pending)
        self.stats["created"] += 1

        death = self._take_remembered_death(driver, candidate.timestamp)
        if death is not None:
            pending.state = CorrelationState.RESOLVED
            pending.death = death
            pending.event_id = death.event_id
            pending.victims = [death.subject]
            if not pending.has_known_driver:
                pending.driver = death.subject
            self._remember_resolved(pending)
            self.stats["resolved"] += 1
            self.stats["reverse_resolved"] += 1
            logger.info(f"Correlated destruction of {vehicle_id} with earlier death of {death.subject}")
            return Transition(vehicle_id, CorrelationState.ABSENT, CorrelationState.RESOLVED,
                              pending=pending, death=death, expired=expired)

        self.pending[vehicle_id] = pending
        logger.debug(f"Pending destruction created for {vehicle_id} at level {level}")
        return Transition(vehicle_id, CorrelationState.ABSENT, CorrelationState.ACTIVE,
                          pending=pending, expired=expired)

    def _apply_stage(self, pending: PendingDestruction, candidate: EventCandidate, level: int, now: datetime):
        pending.level = level
        pending.last_update = now
        pending.candidate = candidate
        pending.damage_type = candidate.get("damage_type", pending.damage_type)
        pending.caused_by = candidate.get("caused_by", pending.caused_by)
        if candidate.get("driver") and candidate.get("driver", "").lower() not in UNKNOWN_NAMES:
            pending.driver = candidate.get("driver")
        if candidate.coordinates is not None:
            pending.coordinates = candidate.coordinates
        if candidate.get("zone"):
            pending.zone = candidate.get("zone")
        pending.detection_methods.append(candidate.detection_method)
        if pending.death is None:
            self._set_parties(pending)

    @staticmethod
    def _set_parties(pending: PendingDestruction):
        pending.destroyers, pending.victims = destruction_parties(
            pending.caused_by, pending.driver, pending.damage_type, pending.vehicle_name)

    def on_death(self, subject: str, timestamp: datetime, now: datetime,
                 candidate: Optional[EventCandidate] = None) -> Optional[Transition]:
        """
        Try to resolve an active destruction with a player death.

        An entry whose driver or victim is the dying player beats an entry
        with an unknown driver; otherwise the first (oldest) match wins.

        Returns:
            The ACTIVE -> RESOLVED transition, or None if no entry matches
        """
        exact = None
        placeholder = None
        for pending in self.pending.values():
            latest = pending.candidate.timestamp if pending.candidate is not None else pending.timestamp
            if min(abs(timestamp - pending.timestamp), abs(timestamp - latest)) > self.correlation_window:
                continue
            if _same_name(subject, pending.driver) or any(_same_name(subject, v) for v in pending.victims):
                exact = pending
                break
            if placeholder is None and not pending.has_known_driver:
                placeholder = pending

        match = exact or placeholder
        if match is None:
            return None

        del self.pending[match.vehicle_id]
        match.state = CorrelationState.RESOLVED
        match.death = RememberedDeath(subject=subject, timestamp=timestamp, candidate=candidate)
        match.victims = [subject]
        if not match.has_known_driver:
            match.driver = subject
        self.remembered_deaths.pop(subject.strip().lower(), None)
        self._remember_resolved(match)
        self.stats["resolved"] += 1
        logger.info(f"Correlated death of {subject} with destruction of {match.vehicle_id} "
                    f"({'driver' if match is exact else 'unknown occupant'} match)")
        return Transition(match.vehicle_id, CorrelationState.ACTIVE, CorrelationState.RESOLVED,
                          pending=match, death=match.death)

    def remember_death(self, subject: str, timestamp: datetime, event_id: str,
                       candidate: Optional[EventCandidate] = None):
        """Keep a standalone death around so a destruction arriving later can be linked to it."""
        self._purge_remembered(timestamp)
        self.remembered_deaths[subject.strip().lower()] = RememberedDeath(
            subject=subject, timestamp=timestamp, candidate=candidate, event_id=event_id)

    def _take_remembered_death(self, driver: str, timestamp: datetime) -> Optional[RememberedDeath]:
        """
        Claim the remembered death a new destruction belongs to.

        A named driver only matches their own death. A destruction with an
        unknown driver takes the newest death inside the correlation window,
        the same way on_death accepts an unknown-driver entry.
        """
        if driver and driver.lower() not in UNKNOWN_NAMES:
            key = driver.strip().lower()
            death = self.remembered_deaths.get(key)
            if death is None or abs(timestamp - death.timestamp) > self.correlation_window:
                return None
        else:
            in_window = [(k, d) for k, d in self.remembered_deaths.items()
                         if abs(timestamp - d.timestamp) <= self.correlation_window]
            if not in_window:
                return None
            key, death = max(in_window, key=lambda item: item[1].timestamp)
        del self.remembered_deaths[key]
        return death

    def _purge_remembered(self, reference: datetime):
        cutoff = reference - self.correlation_window
        stale = [key for key, death in self.remembered_deaths.items() if death.timestamp < cutoff]
        for key in stale:
            del self.remembered_deaths[key]

    def _remember_resolved(self, pending: PendingDestruction):
        self.resolved[pending.vehicle_id] = pending
        self.resolved.move_to_end(pending.vehicle_id)

    def bind_event(self, vehicle_id: str, event_id: str):
        """Record the id under which a resolved vehicle was emitted so escalations update it."""
        pending = self.resolved.get(vehicle_id) or self.pending.get(vehicle_id)
        if pending is not None:
            pending.event_id = event_id

    def expire(self, now: datetime) -> List[Transition]:
        """
        Finalize active entries idle longer than the destruction timeout.

        Returns:
            ACTIVE -> EXPIRED transitions, oldest first
        """
        transitions = []
        while self.pending:
            vehicle_id, pending = next(iter(self.pending.items()))
            if now - pending.last_update <= self.destruction_timeout:
                break
            del self.pending[vehicle_id]
            pending.state = CorrelationState.EXPIRED
            self.stats["expired"] += 1
            transitions.append(Transition(vehicle_id, CorrelationState.ACTIVE, CorrelationState.EXPIRED,
                                          pending=pending))
            logger.debug(f"Pending destruction {vehicle_id} expired at level {pending.level}")

        while self.resolved:
            vehicle_id, pending = next(iter(self.resolved.items()))
            if now - pending.last_update <= self.destruction_timeout:
                break
            del self.resolved[vehicle_id]

        self._purge_remembered(now)
        return transitions

    def flush(self) -> List[Transition]:
        """Finalize every active entry (end of replay)."""
        transitions = []
        for vehicle_id, pending in self.pending.items():
            pending.state = CorrelationState.EXPIRED
            self.stats["expired"] += 1
            transitions.append(Transition(vehicle_id, CorrelationState.ACTIVE, CorrelationState.EXPIRED,
                                          pending=pending))
        self.pending.clear()
        self.resolved.clear()
        self.remembered_deaths.clear()
        return transitions

    def state_of(self, vehicle_id: str) -> CorrelationState:
        if vehicle_id in self.pending:
            return CorrelationState.ACTIVE
        if vehicle_id in self.resolved:
            return CorrelationState.RESOLVED
        return CorrelationState.ABSENT

    def statistics(self) -> Dict[str, int]:
        return {**self.stats, "pending": len(self.pending), "remembered_deaths": len(self.remembered_deaths)}

    def reset(self):
        self.pending.clear()
        self.resolved.clear()
        self.remembered_deaths.clear()
        self.stats = {key: 0 for key in self.stats}
