#!/usr/bin/env python3
"""
SC Kill Feed - Log Replay

Replays a Star Citizen Game.log through the kill feed engine and writes the
resulting kill events to the configured sinks (CSV log, Excel report,
upload server).
"""

import argparse
import logging
import os
from typing import Any, Dict, List, Optional

from config.config import build_engine_config
from sc_killfeed.base import FileBasedTool, KillFeedTool
from sc_killfeed.engine import KillFeedEngine
from sc_killfeed.models import RawLine
from sc_killfeed.sinks import CsvKillLogger, KillFeed, KillReportExporter, KillUploader

logger = logging.getLogger(__name__)


class LogReader:
    """
    Reads complete lines from a growing log file.

    The reader remembers the byte offset just past the last complete line it
    returned. A trailing line without a newline is left for the next read.
    If the file shrinks below the offset (a new session truncated it), the
    reader starts again from the beginning.
    """

    def __init__(self, path: str, offset: int = 0):
        self.path = path
        self.offset = offset
        self.line_number = 0

    def read_new_lines(self) -> List[RawLine]:
        """
        Read every complete line written since the last call.

        Returns:
            RawLines in file order, carrying their byte offsets

        Raises:
            FileNotFoundError: If the log file does not exist
        """
        if not os.path.exists(self.path):
            raise FileNotFoundError(f"Log file not found: {self.path}")

        size = os.path.getsize(self.path)
        if size < self.offset:
            logger.info(f"{self.path} was truncated, reading from the start")
            self.offset = 0
            self.line_number = 0
        if size == self.offset:
            return []

        with open(self.path, "rb") as f:
            f.seek(self.offset)
            data = f.read()

        lines = []
        position = self.offset
        for chunk in data.split(b"\n")[:-1]:
            self.line_number += 1
            text = chunk.decode("utf-8", errors="replace").rstrip("\r")
            lines.append(RawLine(text=text, offset=position, line_number=self.line_number))
            position += len(chunk) + 1

        self.offset = position
        return lines


class LogReplayTool(FileBasedTool):
    """Replays a Game.log file through the engine."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, player: Optional[str] = None):
        """
        Initialize the replay tool.

        Args:
            config: Configuration dictionary from Config class
            player: Player name overriding engine.player_name
        """
        super().__init__(config)
        self.initialize_directories()

        self.engine_config = build_engine_config(self.config, player)

        self.feed = KillFeed(self.get_config('feed.max_events', 100), self.engine_config.player_name)
        self.engine = KillFeedEngine(self.engine_config, sinks=[self.feed])

    def run(self, log_file: Optional[str] = None, csv_output: bool = False,
            excel_output: Optional[str] = None, upload: bool = False) -> Dict[str, Any]:
        """
        Replay a log file.

        Args:
            log_file: Path to Game.log; defaults to general.log_path/Game.log
            csv_output: Append significant kills to the CSV log
            excel_output: Write an Excel report to this path ('' for a timestamped name)
            upload: Upload events to the configured server

        Returns:
            Dictionary with the replay results
        """
        log_path = self.game_log_path(log_file)
        logger.info(f"Replaying {log_path}")

        csv_logger = CsvKillLogger(self.config) if csv_output else None
        uploader = KillUploader(self.config) if upload else None
        exporter = KillReportExporter(self.config) if excel_output is not None else None
        for sink in (csv_logger, uploader, exporter):
            if sink is not None:
                self.engine.add_sink(sink)

        reader = LogReader(log_path)
        lines = reader.read_new_lines()
        emitted = self.engine.process_lines(lines)
        emitted.extend(self.engine.flush())

        result: Dict[str, Any] = {
            "success": True,
            "log_file": log_path,
            "lines": len(lines),
            "revisions_emitted": len(emitted),
            "events": len(self.feed.global_events),
            "player_events": len(self.feed.player_events),
        }

        if csv_logger is not None:
            result["csv_file"] = csv_logger.path
            result["csv_rows"] = csv_logger.rows_written
        if uploader is not None:
            result["upload"] = uploader.flush()
        if exporter is not None:
            result["excel_file"] = exporter.export(excel_output or None)

        health = self.engine.health_check()
        result["healthy"] = health["healthy"]
        logger.info(f"Replay finished: {result['events']} events from {result['lines']} lines")
        return result


def main():
    """
    Main entry point for the log replay command line tool.
    """
    parser = argparse.ArgumentParser(
        description="Replay a Star Citizen Game.log through the kill feed engine.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s /path/to/Game.log
    %(prog)s --csv --excel report.xlsx
    %(prog)s --player MyHandle --upload --profile live

Configuration:
    - general.log_path: Directory containing Game.log
    - general.output_path: Directory for CSV and Excel output
    - engine.*: Deduplication, correlation and zone settings
        """
    )
    parser.add_argument(
        "log_file",
        nargs="?",
        help="Path to Game.log. If not specified, uses the configured log directory."
    )
    parser.add_argument("--csv", action="store_true", help="Append significant kills to the CSV log")
    parser.add_argument("--excel", nargs="?", const="", default=None,
                        help="Write an Excel report (optionally to the given path)")
    parser.add_argument("--upload", action="store_true", help="Upload events to the configured server")

    KillFeedTool.add_standard_arguments(parser)
    args = parser.parse_args()

    try:
        config = LogReplayTool.load_config(args.profile)

        tool = LogReplayTool(config, player=args.player)
        result = tool.run(args.log_file, csv_output=args.csv, excel_output=args.excel, upload=args.upload)

        if args.console:
            logger.info(f"Log replay completed: {result}")
            for event in reversed(tool.feed.global_events):
                logger.info(f"  {event.timestamp.isoformat()} {event.description} @ {event.location_name}")

        return 0 if result["success"] else 1

    except Exception as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    exit(main())
