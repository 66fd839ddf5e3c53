"""
Event sinks.

This package contains the sink interface and the bundled sinks: the
in-memory kill feed, the CSV logger, the uploader and the Excel report.
"""

from .base import EventSink
from .feed import KillFeed
from .csv_log import CsvKillLogger, CSV_HEADERS
from .uploader import KillUploader
from .report import KillReportExporter

__all__ = [
    'EventSink',
    'KillFeed',
    'CsvKillLogger',
    'CSV_HEADERS',
    'KillUploader',
    'KillReportExporter',
]
