"""
CSV Kill Logger

Appends significant kill events to a durable CSV log and reads the log back
to count this month's kills.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..base import FileBasedTool
from ..models import KillEvent
from .base import EventSink

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "KillTime", "EnemyPilot", "EnemyShip", "Enlisted", "RecordNumber",
    "OrgAffiliation", "Player", "Weapon", "Ship", "Method", "Mode",
    "GameVersion", "TrackRver", "Logged", "PFP",
]

TRACKR_VERSION = "2.06"

# e.g. "Sun, 31 Mar 2024 21:22:07 UTC"
KILL_TIME_FORMAT = "%a, %d %b %Y %H:%M:%S UTC"


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace(",", "")


class CsvKillLogger(FileBasedTool, EventSink):
    """Event sink that appends one CSV row per significant kill."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, path: Optional[str] = None):
        """
        Initialize the CSV logger.

        Args:
            config: Configuration dictionary ('general' and 'csv' sections are used)
            path: CSV file path; defaults to csv.path, relative to the output directory
        """
        super().__init__(config)
        self.initialize_directories()
        self.path = self.output_file(path or self.get_config('csv.path', 'kill_log.csv'))
        self.significant_only = self.get_config('csv.significant_only', True)
        self.rows_written = 0

    @staticmethod
    def build_row(event: KillEvent) -> Dict[str, str]:
        """Map an event onto the CSV columns."""
        killers = [k for k in event.killers if k != "Environment"]
        row = {
            "KillTime": event.timestamp.astimezone(timezone.utc).strftime(KILL_TIME_FORMAT),
            "EnemyPilot": event.victims[0] if event.victims else "Unknown",
            "EnemyShip": event.vehicle_type or "Unknown",
            "Enlisted": "-",
            "RecordNumber": "-",
            "OrgAffiliation": "-",
            "Player": killers[0] if killers else "Unknown",
            "Weapon": event.weapon or "Unknown",
            "Ship": event.player_ship or "Unknown",
            "Method": event.damage_type or "Unknown",
            "Mode": event.game_mode or "Unknown",
            "GameVersion": event.game_version or "",
            "TrackRver": TRACKR_VERSION,
            "Logged": "",
            "PFP": "",
        }
        return {key: _clean(value) for key, value in row.items()}

    def emit(self, event: KillEvent):
        if event.revision != 0:
            logger.debug(f"Not logging revision {event.revision} of {event.id} to CSV")
            return
        if self.significant_only and not event.is_significant:
            logger.debug(f"Not logging {event.death_type.value} event {event.id} to CSV")
            return

        self.append_csv_row(self.build_row(event), self.path, CSV_HEADERS)
        self.rows_written += 1
        logger.debug(f"Logged {event.id} to {self.path}")

    def load_monthly_tally(self, now: Optional[datetime] = None) -> int:
        """
        Count rows in the CSV log whose KillTime falls in the current UTC month.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            Number of kills logged this month; 0 if the file does not exist
        """
        now = now or datetime.now(timezone.utc)
        if not os.path.exists(self.path):
            logger.info(f"CSV log file not found at {self.path}. Starting tally at 0.")
            return 0

        try:
            rows = self.read_csv(self.path, required_columns=["KillTime"])
        except KeyError as e:
            logger.error(f"Cannot calculate tally: {e}")
            return 0

        tally = 0
        for row in rows:
            value = (row.get("KillTime") or "").strip()
            if not value:
                continue
            try:
                kill_time = datetime.strptime(value, KILL_TIME_FORMAT)
            except ValueError:
                logger.warning(f"Could not parse date from CSV row: {value}")
                continue
            if kill_time.year == now.year and kill_time.month == now.month:
                tally += 1

        logger.info(f"Historic Kill Tally (Current Month): {tally}")
        return tally

    def run(self) -> int:
        return self.load_monthly_tally()
