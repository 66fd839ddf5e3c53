"""
Command line tools for SC Kill Feed.
"""

from .log_replay import LogReader, LogReplayTool

__all__ = ['LogReader', 'LogReplayTool']
