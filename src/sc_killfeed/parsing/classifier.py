"""
Pattern classifier: recognizes a Game.log line as one of the known grammars.

The classifier is a pure function of the line and its grammar table. It
never raises for unknown or malformed input; such lines yield None.
"""

import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from ..models import EventCandidate, RawLine
from .grammars import Grammar, build_default_grammars, TIMESTAMP_PREFIX, LEGACY, GEN_4_4

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a Game.log timestamp into an aware UTC datetime, or None if malformed."""
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


class PatternClassifier:
    """
    Ordered grammar table with first-valid-match semantics.

    Grammars are tried in descending priority; grammars with equal priority
    keep their declaration order. A regex hit that fails validation (empty
    required field, malformed timestamp or number) does not stop the loop.
    """

    def __init__(self, grammars: Optional[List[Grammar]] = None,
                 generations: Optional[Dict[str, bool]] = None,
                 disabled_grammars: Optional[Iterable[str]] = None):
        """
        Initialize the classifier.

        Args:
            grammars: Grammar table (defaults to build_default_grammars())
            generations: Enable flags per schema generation, e.g. {"legacy": False}
            disabled_grammars: Grammar names to skip entirely
        """
        all_grammars = grammars if grammars is not None else build_default_grammars()

        names = [g.name for g in all_grammars]
        duplicates = [name for name, count in Counter(names).items() if count > 1]
        if duplicates:
            raise ValueError(f"Duplicate grammar names: {', '.join(sorted(duplicates))}")

        enabled_generations = {LEGACY: True, GEN_4_4: True}
        enabled_generations.update(generations or {})
        disabled = set(disabled_grammars or [])

        unknown = disabled - set(names)
        if unknown:
            logger.warning(f"Ignoring unknown disabled grammars: {', '.join(sorted(unknown))}")

        # sorted() is stable, so equal priorities stay in declaration order
        self.grammars = sorted(
            [g for g in all_grammars
             if g.name not in disabled and enabled_generations.get(g.generation, True)],
            key=lambda g: -g.priority,
        )
        self._timestamp_prefix = re.compile(TIMESTAMP_PREFIX)
        self.match_counts = Counter()
        self.lines_seen = 0
        self.lines_unmatched = 0

        logger.debug(f"Classifier initialized with {len(self.grammars)} of {len(all_grammars)} grammars")

    def grammar(self, name: str) -> Optional[Grammar]:
        for g in self.grammars:
            if g.name == name:
                return g
        return None

    def classify(self, raw_line: RawLine) -> Optional[EventCandidate]:
        """
        Classify a single line.

        Args:
            raw_line: The decoded line

        Returns:
            An EventCandidate for the winning grammar, or None if no grammar matches
        """
        self.lines_seen += 1
        text = raw_line.text.rstrip("\r\n")
        if not text.strip():
            return None

        for grammar in self.grammars:
            match = grammar.pattern.search(text)
            if not match:
                continue

            candidate = self._build_candidate(grammar, match.groupdict(), text, raw_line)
            if candidate is None:
                continue

            self.match_counts[grammar.name] += 1
            return candidate

        self.lines_unmatched += 1
        logger.debug(f"No grammar matched line {raw_line.line_number}")
        return None

    def _build_candidate(self, grammar: Grammar, groups: Dict[str, Any], text: str,
                         raw_line: RawLine) -> Optional[EventCandidate]:
        """Validate a regex hit and turn it into a candidate, or None if it is not usable."""
        timestamp = self._extract_timestamp(groups, text)
        if timestamp is None and grammar.timestamp_required:
            logger.debug(f"Grammar '{grammar.name}' matched without a valid timestamp")
            return None

        fields = {}
        for name, value in groups.items():
            if name == "timestamp":
                continue
            fields[name] = value.strip() if isinstance(value, str) else value

        for name in grammar.required:
            if not fields.get(name):
                logger.debug(f"Grammar '{grammar.name}' missing required field '{name}'")
                return None

        for name, converter in grammar.numeric_fields.items():
            value = fields.get(name)
            if value is None:
                continue
            try:
                fields[name] = converter(value)
            except ValueError:
                logger.debug(f"Grammar '{grammar.name}' has malformed numeric field {name}={value!r}")
                return None

        for name, value in grammar.constants.items():
            fields.setdefault(name, value)

        subject = None
        if grammar.identity_field:
            subject = fields.get(grammar.identity_field)
            if not subject:
                return None

        return EventCandidate(
            kind=grammar.kind,
            grammar=grammar.name,
            generation=grammar.generation,
            detection_method=grammar.detection_method,
            priority=grammar.priority,
            timestamp=timestamp,
            subject=subject,
            fields=fields,
            identity_deferred=grammar.identity_deferred,
            raw_line=raw_line,
        )

    def _extract_timestamp(self, groups: Dict[str, Any], text: str) -> Optional[datetime]:
        if groups.get("timestamp"):
            return parse_timestamp(groups["timestamp"])
        prefix = self._timestamp_prefix.match(text)
        if prefix:
            return parse_timestamp(prefix.group("timestamp"))
        return None

    def line_timestamp(self, text: str) -> Optional[datetime]:
        """Leading <timestamp> of any line, matched by a grammar or not."""
        return self._extract_timestamp({}, text)

    def statistics(self) -> Dict[str, Any]:
        return {
            "lines_seen": self.lines_seen,
            "lines_unmatched": self.lines_unmatched,
            "match_counts": dict(self.match_counts),
        }

    def reset_statistics(self):
        self.match_counts.clear()
        self.lines_seen = 0
        self.lines_unmatched = 0
