"""
Kill feed engine.

This package contains the deduplicator, the destruction correlator, the
event assembler, the session context and the engine that drives them.
"""

from .clock import Clock, LogClock, ManualClock, SystemClock
from .config import ConfigurationError, EngineConfig, DEFAULT_DETECTION_PRIORITY
from .dedup import DedupDecision, Deduplicator
from .correlator import CorrelationState, DestructionCorrelator, PendingDestruction, Transition
from .assembler import EventAssembler
from .session import SessionContext
from .engine import KillFeedEngine

__all__ = [
    'Clock',
    'LogClock',
    'ManualClock',
    'SystemClock',
    'ConfigurationError',
    'EngineConfig',
    'DEFAULT_DETECTION_PRIORITY',
    'DedupDecision',
    'Deduplicator',
    'CorrelationState',
    'DestructionCorrelator',
    'PendingDestruction',
    'Transition',
    'EventAssembler',
    'SessionContext',
    'KillFeedEngine',
]
