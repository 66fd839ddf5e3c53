"""
Injectable clocks.

The engine evaluates every timeout against clock.now() once per line, so
swapping the clock is enough to replay deterministically or to test
window expiry without sleeping.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Clock:
    """Base clock interface. All clocks return aware UTC datetimes."""

    def now(self) -> datetime:
        raise NotImplementedError

    def observe(self, timestamp: Optional[datetime]):
        """Called with every classified line's log timestamp; most clocks ignore it."""


class SystemClock(Clock):
    """Wall clock, for tailing a live log."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime):
        self._now = value

    def advance(self, seconds: float = 0.0, **kwargs):
        self._now += timedelta(seconds=seconds, **kwargs)


class LogClock(Clock):
    """
    Clock driven by the log itself.

    now() is the newest timestamp observed so far, so a replay of an old
    log expires windows exactly as they would have expired live.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start

    def observe(self, timestamp: Optional[datetime]):
        if timestamp is not None and (self._now is None or timestamp > self._now):
            self._now = timestamp

    def now(self) -> datetime:
        if self._now is None:
            return EPOCH
        return self._now

    def reset(self):
        self._now = None
