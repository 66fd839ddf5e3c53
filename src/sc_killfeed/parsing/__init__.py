"""
Game.log line classification.

This package contains the grammar table and the pattern classifier.
"""

from .grammars import Grammar, build_default_grammars, LEGACY, GEN_4_4, ANY
from .classifier import PatternClassifier, parse_timestamp

__all__ = [
    'Grammar',
    'build_default_grammars',
    'PatternClassifier',
    'parse_timestamp',
    'LEGACY',
    'GEN_4_4',
    'ANY',
]
