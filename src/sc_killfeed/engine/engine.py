"""
Kill feed engine.

Owns every table the pipeline needs (dedup records, pending destructions,
remembered deaths, zone history, emitted events) and drives lines through
classifier -> zone resolver / dedup -> correlator -> assembler -> sinks.

Lines are processed one at a time in file order on the caller's thread.
Timeouts are checked against the injected clock on every line; there are
no background timers.
"""

import logging
from collections import Counter, OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..models import EventCandidate, EventKind, KillEvent, RawLine
from ..parsing.classifier import PatternClassifier
from ..sinks.base import EventSink
from ..zones.resolver import ZoneResolver
from .assembler import EventAssembler
from .clock import Clock, LogClock
from .config import EngineConfig
from .correlator import CorrelationState, DestructionCorrelator, PendingDestruction, Transition
from .dedup import DedupDecision, Deduplicator
from .entities import clean_entity_name
from .session import SessionContext

logger = logging.getLogger(__name__)

# Lines between automatic health checks
HEALTH_CHECK_INTERVAL = 1000


class KillFeedEngine:
    """Single-threaded event extraction and correlation engine for one Game.log."""

    def __init__(self, config: Optional[EngineConfig] = None, clock: Optional[Clock] = None,
                 sinks: Optional[Iterable[EventSink]] = None):
        """
        Initialize the engine.

        Args:
            config: Engine configuration (defaults to EngineConfig())
            clock: Time source for window and timeout checks (defaults to LogClock())
            sinks: Sinks receiving every emitted event revision
        """
        self.config = config or EngineConfig()
        self.clock = clock or LogClock()
        self.sinks: List[EventSink] = list(sinks or [])

        self.classifier = PatternClassifier(generations=self.config.generations,
                                            disabled_grammars=self.config.disabled_grammars)
        self.resolver = ZoneResolver(self.config.zones)
        self.dedup = Deduplicator(self.config.dedup_window_ms, self.config.dedup_bucket_tolerance,
                                  self.config.detection_priority)
        self.correlator = DestructionCorrelator(self.config.correlation_window_s,
                                                self.config.destruction_timeout_s)
        self.assembler = EventAssembler(self.config.max_tracked_events)
        self.session = SessionContext(self.config.player_name)

        self.emitted: "OrderedDict[str, KillEvent]" = OrderedDict()
        self._vehicle_events: Dict[str, PendingDestruction] = {}
        self._buffer = ""
        self._offset = 0
        self._line_number = 0
        self.stats = Counter()

        self._handlers: Dict[EventKind, Callable[[EventCandidate, datetime], List[KillEvent]]] = {
            EventKind.PLAYER_DEATH: self._on_player_death,
            EventKind.VEHICLE_DESTRUCTION: self._on_vehicle_destruction,
            EventKind.RESPAWN: self._on_respawn,
            EventKind.INCAP: self._on_incap,
            EventKind.LOGIN: self._on_login,
            EventKind.GAME_MODE: self._on_game_mode,
            EventKind.GAME_VERSION: self._on_game_version,
            EventKind.SESSION_START: self._on_session_start,
            EventKind.SYSTEM_QUIT: self._on_system_quit,
            EventKind.PLAYER_SHIP: self._on_player_ship,
            EventKind.ZONE_TRANSITION: self._on_zone_transition,
        }

        logger.debug(f"Engine initialized with {len(self.classifier.grammars)} grammars and {len(self.sinks)} sinks")

    # --- Sinks ---

    def add_sink(self, sink: EventSink):
        self.sinks.append(sink)

    def remove_sink(self, sink: EventSink):
        if sink in self.sinks:
            self.sinks.remove(sink)

    def _emit(self, event: KillEvent) -> Optional[KillEvent]:
        """Register an event revision and hand it to every sink."""
        self.emitted[event.id] = event
        self.emitted.move_to_end(event.id)
        while len(self.emitted) > self.config.max_tracked_events:
            evicted, _ = self.emitted.popitem(last=False)
            self._vehicle_events.pop(evicted, None)

        if self.config.only_player_involved and not event.is_player_involved:
            self.stats["filtered_not_involved"] += 1
            logger.debug(f"Not emitting {event.id}: current player not involved")
            return None

        self.stats["emitted"] += 1
        if event.revision:
            self.stats["updates"] += 1
        logger.info(f"Kill event {event.id} (rev {event.revision}): {event.description}")

        for sink in self.sinks:
            try:
                sink.emit(event)
            except Exception as e:
                self.stats["sink_errors"] += 1
                logger.error(f"Sink {type(sink).__name__} failed on event {event.id}: {e}")
        return event

    def _emit_update(self, update: KillEvent) -> Optional[KillEvent]:
        previous = self.emitted.get(update.id)
        if previous is None:
            logger.warning(f"Dropping update for {update.id}: event no longer tracked")
            self.stats["dropped_updates"] += 1
            return None
        return self._emit(self.assembler.merge(previous, update))

    # --- Input ---

    def process_line(self, line: Union[str, RawLine]) -> List[KillEvent]:
        """
        Process one log line.

        Args:
            line: Line text or a RawLine carrying its offset

        Returns:
            Event revisions emitted while processing this line
        """
        if isinstance(line, RawLine):
            raw = line
            self._line_number = max(self._line_number, raw.line_number)
        else:
            self._line_number += 1
            raw = RawLine(text=line, offset=self._offset, line_number=self._line_number)
            self._offset += len(line.encode("utf-8")) + 1

        self.stats["lines"] += 1
        candidate = self.classifier.classify(raw)
        if candidate is not None and candidate.timestamp is not None:
            self.clock.observe(candidate.timestamp)
        else:
            # Unmatched lines still move the log clock
            self.clock.observe(self.classifier.line_timestamp(raw.text))

        now = self.clock.now()
        emitted = self._finalize_expired(self.correlator.expire(now))

        if candidate is not None:
            emitted.extend(self._dispatch(candidate, now))

        if self.stats["lines"] % HEALTH_CHECK_INTERVAL == 0:
            self.health_check()

        return [event for event in emitted if event is not None]

    def process_lines(self, lines: Iterable[Union[str, RawLine]]) -> List[KillEvent]:
        emitted = []
        for line in lines:
            emitted.extend(self.process_line(line))
        return emitted

    def process_chunk(self, chunk: str) -> List[KillEvent]:
        """
        Process an arbitrary piece of log text.

        Complete lines are processed; a trailing partial line is buffered
        until the next chunk (or flush()) completes it.
        """
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")

        emitted = []
        for text in lines:
            self._line_number += 1
            raw = RawLine(text=text.rstrip("\r"), offset=self._offset, line_number=self._line_number)
            self._offset += len(text.encode("utf-8")) + 1
            emitted.extend(self.process_line(raw))
        return emitted

    @property
    def offset(self) -> int:
        """Byte offset just past the last complete line processed."""
        return self._offset

    def _dispatch(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        if candidate.identity_deferred and not candidate.subject:
            if not self.session.current_player:
                self.stats["dropped_deferred"] += 1
                logger.info(f"Dropping {candidate.grammar} candidate: no current player known")
                return []
            candidate.subject = self.session.current_player

        handler = self._handlers.get(candidate.kind)
        if handler is None:
            logger.debug(f"No handler for {candidate.kind.value}")
            return []
        self.stats[f"kind_{candidate.kind.value}"] += 1
        return handler(candidate, now)

    # --- Handlers ---

    def _on_player_death(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        victim = candidate.subject
        result = self.dedup.check(victim, candidate.timestamp, candidate.detection_method, now,
                                  candidate.priority)

        if result.decision is DedupDecision.DUPLICATE:
            self.stats["duplicates"] += 1
            return []

        if result.decision is DedupDecision.UPGRADE:
            return [self._upgrade_death(candidate, result.record.event_id, now)]

        resolution = self.resolver.resolve(candidate.get("zone"), candidate.coordinates,
                                           candidate.timestamp, source="player_death")
        if victim == self.session.current_player and not resolution.fallback_used:
            self.session.on_location(resolution.zone.display_name)

        transition = self.correlator.on_death(victim, candidate.timestamp, now, candidate)
        if transition is not None:
            pending = transition.pending
            if pending.resolution is None or pending.resolution.fallback_used:
                pending.resolution = resolution
            event_id = pending.event_id or self.assembler.vehicle_id_for(pending)
            result.record.event_id = event_id
            self.correlator.bind_event(pending.vehicle_id, event_id)
            self._vehicle_events[event_id] = pending
            return [self._emit(self.assembler.build_vehicle(pending, event_id, self.session))]

        event_id = self.assembler.death_id(victim, candidate, self.assembler.death_type_for(candidate))
        result.record.event_id = event_id
        event = self.assembler.build_death(candidate, event_id, resolution, self.session)
        self.correlator.remember_death(victim, candidate.timestamp, event_id, candidate)
        return [self._emit(event)]

    def _upgrade_death(self, candidate: EventCandidate, event_id: Optional[str],
                       now: datetime) -> Optional[KillEvent]:
        """
        Re-emit an event with a better detection of the same death.

        A death not yet tied to a vehicle gets another chance to resolve an
        active destruction; the combined event keeps the death's id.
        """
        if event_id is None:
            return None
        self.stats["upgrades"] += 1

        pending = self._vehicle_events.get(event_id)
        if pending is not None and pending.death is not None:
            pending.death.candidate = candidate
            return self._emit_update(self.assembler.build_vehicle(pending, event_id, self.session))

        previous = self.emitted.get(event_id)
        resolution = self.resolver.resolve(candidate.get("zone"), candidate.coordinates,
                                           candidate.timestamp, source="player_death")

        transition = self.correlator.on_death(candidate.subject, candidate.timestamp, now, candidate)
        if transition is not None:
            pending = transition.pending
            if pending.resolution is None or pending.resolution.fallback_used:
                pending.resolution = resolution
            pending.death.event_id = event_id
            self.correlator.bind_event(pending.vehicle_id, event_id)
            self._vehicle_events[event_id] = pending
            return self._emit_update(self.assembler.build_vehicle(pending, event_id, self.session))

        if previous is not None and resolution.fallback_used:
            resolution = previous.location
        update = self.assembler.build_death(candidate, event_id, resolution, self.session)
        return self._emit_update(update)

    def _on_vehicle_destruction(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        level = candidate.get("level_to", 0)
        if level < 1:
            logger.debug(f"Ignoring destruction level {level} for {candidate.subject}")
            return []

        candidate.fields["vehicle_name"] = clean_entity_name(candidate.subject)
        result = self.dedup.check(f"{candidate.subject}#L{level}", candidate.timestamp,
                                  candidate.detection_method, now, candidate.priority)
        if result.decision is DedupDecision.DUPLICATE:
            self.stats["duplicates"] += 1
            return []

        transition = self.correlator.on_destruction(candidate, now)
        emitted = self._finalize_expired(transition.expired)
        pending = transition.pending

        if transition.previous is CorrelationState.ABSENT:
            pending.resolution = self.resolver.resolve(candidate.get("zone"), candidate.coordinates,
                                                       candidate.timestamp, source="vehicle_destruction")

        if transition.reverse_order:
            event_id = transition.death.event_id
            result.record.event_id = event_id
            self._vehicle_events[event_id] = pending
            built = self.assembler.build_vehicle(pending, event_id, self.session)
            emitted.append(self._emit_update(built) if event_id in self.emitted else self._emit(built))
        elif transition.current is CorrelationState.RESOLVED and transition.escalated and pending.event_id:
            result.record.event_id = pending.event_id
            emitted.append(self._emit_update(self.assembler.build_vehicle(pending, pending.event_id, self.session)))

        return emitted

    def _finalize_expired(self, transitions: List[Transition]) -> List[KillEvent]:
        emitted = []
        for transition in transitions:
            pending = transition.pending
            event_id = self.assembler.vehicle_id_for(pending)
            pending.event_id = event_id
            logger.info(f"Vehicle {pending.vehicle_id} finalized without a correlated death")
            emitted.append(self._emit(self.assembler.build_vehicle(pending, event_id, self.session)))
        return emitted

    def _on_respawn(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        self.session.on_respawn(candidate.subject, candidate.timestamp, candidate.get("spawnpoint"))
        return []

    def _on_incap(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        self.session.on_incap(candidate.subject, candidate.get("causes", ""), candidate.timestamp)
        return []

    def _on_login(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        self.session.on_login(candidate.subject)
        return []

    def _on_game_mode(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        self.session.on_game_mode(candidate.get("mode", "Unknown"))
        return []

    def _on_game_version(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        self.session.on_game_version(candidate.get("version"))
        return []

    def _on_session_start(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        self.session.on_session_start(candidate.timestamp)
        return []

    def _on_system_quit(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        self.session.on_system_quit()
        return []

    def _on_player_ship(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        self.session.on_player_ship(candidate.get("entity"), candidate.subject)
        return []

    def _on_zone_transition(self, candidate: EventCandidate, now: datetime) -> List[KillEvent]:
        resolution = self.resolver.resolve(candidate.get("zone"), None, candidate.timestamp or now,
                                           source="jump_drive")
        if not resolution.fallback_used:
            self.session.on_location(resolution.zone.display_name)
        return []

    # --- Lifecycle ---

    def flush(self) -> List[KillEvent]:
        """
        Finish a replay: process any buffered partial line, then finalize
        every pending destruction as a standalone vehicle event.
        """
        emitted = []
        if self._buffer.strip():
            text, self._buffer = self._buffer, ""
            self._line_number += 1
            raw = RawLine(text=text.rstrip("\r"), offset=self._offset, line_number=self._line_number)
            self._offset += len(text.encode("utf-8"))
            emitted.extend(self.process_line(raw))
        emitted.extend(self._finalize_expired(self.correlator.flush()))
        self.health_check()
        return [event for event in emitted if event is not None]

    def reset(self):
        """Empty all working tables for a rescan from the start of the log."""
        self.dedup.reset()
        self.correlator.reset()
        self.resolver.reset()
        self.session.reset()
        self.classifier.reset_statistics()
        self.assembler = EventAssembler(self.config.max_tracked_events)
        self.emitted.clear()
        self._vehicle_events.clear()
        self._buffer = ""
        self._offset = 0
        self._line_number = 0
        self.stats.clear()
        if isinstance(self.clock, LogClock):
            self.clock.reset()
        logger.info("Engine state reset")

    def health_check(self) -> Dict[str, Any]:
        """
        Check for runaway duplicate suppression.

        Returns:
            Dictionary with 'healthy' and the counts it was based on
        """
        duplicates = self.dedup.duplicate_count
        confirmed = self.dedup.processed_count
        healthy = not (duplicates >= self.config.duplicate_alert_min
                       and duplicates > self.config.duplicate_alert_ratio * confirmed)
        if not healthy:
            logger.warning(f"High duplicate ratio: {duplicates} suppressed vs {confirmed} confirmed detections")
        return {
            "healthy": healthy,
            "duplicates": duplicates,
            "confirmed": confirmed,
            "pending_destructions": len(self.correlator.pending),
            "dedup_records": len(self.dedup.records),
            "tracked_events": len(self.emitted),
        }

    def statistics(self) -> Dict[str, Any]:
        return {
            "engine": dict(self.stats),
            "classifier": self.classifier.statistics(),
            "dedup": self.dedup.statistics(),
            "correlator": self.correlator.statistics(),
            "zones": self.resolver.database_stats(),
            "zone_history": self.resolver.history.statistics(),
            "session": self.session.snapshot(),
        }
