"""
Deduplication of event candidates.

The same real-world death is often written to Game.log several times,
through different grammars and up to a second apart. Candidates are keyed
by normalized subject and one-second bucket; a later candidate for the same
key either upgrades the record (higher detection priority) or is dropped.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DedupKey = Tuple[str, int]


class DedupDecision(Enum):
    NEW = "new"
    UPGRADE = "upgrade"
    DUPLICATE = "duplicate"


@dataclass
class DedupRecord:
    key: DedupKey
    detection_method: str
    priority: int
    recorded_at: datetime
    event_id: Optional[str] = None


@dataclass
class DedupResult:
    decision: DedupDecision
    record: DedupRecord
    previous_method: Optional[str] = None

    @property
    def should_process(self) -> bool:
        return self.decision is not DedupDecision.DUPLICATE


def normalize_subject(subject: Optional[str]) -> str:
    return (subject or "").strip().lower()


class Deduplicator:
    """Keeps at most one record per (subject, second) inside a sliding window."""

    def __init__(self, window_ms: int = 5000, bucket_tolerance: int = 1,
                 detection_priority: Optional[Dict[str, int]] = None):
        """
        Initialize the deduplicator.

        Args:
            window_ms: Records older than this (by clock time) are purged
            bucket_tolerance: Neighbouring one-second buckets that count as the same event
            detection_priority: Priority per detection method; unknown methods use the grammar priority
        """
        self.window = timedelta(milliseconds=window_ms)
        self.bucket_tolerance = bucket_tolerance
        self.detection_priority = dict(detection_priority or {})
        self.records: "OrderedDict[DedupKey, DedupRecord]" = OrderedDict()
        self.processed_count = 0
        self.upgrade_count = 0
        self.duplicate_count = 0

    def priority_of(self, detection_method: str, default: int = 0) -> int:
        return self.detection_priority.get(detection_method, default)

    @staticmethod
    def make_key(subject: Optional[str], timestamp: datetime) -> DedupKey:
        return normalize_subject(subject), int(timestamp.timestamp() // 1)

    def _find(self, key: DedupKey) -> Optional[DedupRecord]:
        subject, bucket = key
        record = self.records.get(key)
        if record is not None:
            return record
        for offset in range(1, self.bucket_tolerance + 1):
            for neighbour in (bucket - offset, bucket + offset):
                record = self.records.get((subject, neighbour))
                if record is not None:
                    return record
        return None

    def purge(self, now: datetime) -> int:
        """Drop records recorded before now - window. Returns the number removed."""
        cutoff = now - self.window
        removed = 0
        while self.records:
            key, record = next(iter(self.records.items()))
            if record.recorded_at >= cutoff:
                break
            del self.records[key]
            removed += 1
        if removed:
            logger.debug(f"Purged {removed} dedup records")
        return removed

    def check(self, subject: Optional[str], timestamp: datetime, detection_method: str,
              now: datetime, fallback_priority: int = 0) -> DedupResult:
        """
        Decide whether a candidate is new, an upgrade, or a duplicate.

        Args:
            subject: Event subject (victim, player, or vehicle#level)
            timestamp: Log timestamp of the candidate
            detection_method: Method (grammar) that produced the candidate
            now: Current clock time, used for record age
            fallback_priority: Priority used when the method has no configured priority

        Returns:
            DedupResult with the decision and the (possibly updated) record
        """
        self.purge(now)

        key = self.make_key(subject, timestamp)
        priority = self.priority_of(detection_method, fallback_priority)
        record = self._find(key)

        if record is None:
            record = DedupRecord(key=key, detection_method=detection_method, priority=priority, recorded_at=now)
            self.records[key] = record
            self.processed_count += 1
            return DedupResult(DedupDecision.NEW, record)

        if priority > record.priority:
            previous = record.detection_method
            record.detection_method = detection_method
            record.priority = priority
            record.recorded_at = now
            self.records.move_to_end(record.key)
            self.processed_count += 1
            self.upgrade_count += 1
            logger.debug(f"Dedup upgrade for '{key[0]}': {previous} -> {detection_method}")
            return DedupResult(DedupDecision.UPGRADE, record, previous_method=previous)

        self.duplicate_count += 1
        logger.debug(f"Suppressed duplicate '{key[0]}' via {detection_method} (kept {record.detection_method})")
        return DedupResult(DedupDecision.DUPLICATE, record)

    def should_process(self, subject: Optional[str], timestamp: datetime, detection_method: str,
                       now: datetime, fallback_priority: int = 0) -> bool:
        return self.check(subject, timestamp, detection_method, now, fallback_priority).should_process

    def statistics(self) -> Dict[str, int]:
        return {
            "records": len(self.records),
            "processed_count": self.processed_count,
            "upgrade_count": self.upgrade_count,
            "duplicate_count": self.duplicate_count,
        }

    def reset(self):
        self.records.clear()
        self.processed_count = 0
        self.upgrade_count = 0
        self.duplicate_count = 0
