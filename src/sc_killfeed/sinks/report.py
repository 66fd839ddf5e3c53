"""
Kill Report Exporter

Collects kill events (latest revision per id) and writes them to an Excel
workbook with an events sheet and a summary sheet of counts by death type.
"""

import logging
import os
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

import openpyxl
import pandas as pd

from ..base import FileBasedTool
from ..models import KillEvent, format_timestamp
from .base import EventSink

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "id", "timestamp", "death_type", "killers", "victims", "vehicle_type", "vehicle_model",
    "location", "location_source", "weapon", "damage_type", "game_mode", "game_version",
    "player_ship", "player_involved", "detection_method", "revision", "description",
]

MAX_COLUMN_WIDTH = 60


class KillReportExporter(FileBasedTool, EventSink):
    """Event sink that exports collected events to .xlsx."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(config)
        self.initialize_directories()
        self.events: "OrderedDict[str, KillEvent]" = OrderedDict()

    def emit(self, event: KillEvent):
        self.events[event.id] = event

    @staticmethod
    def event_row(event: KillEvent) -> Dict[str, Any]:
        return {
            "id": event.id,
            "timestamp": format_timestamp(event.timestamp),
            "death_type": event.death_type.value,
            "killers": ", ".join(event.killers),
            "victims": ", ".join(event.victims),
            "vehicle_type": event.vehicle_type,
            "vehicle_model": event.vehicle_model,
            "location": event.location_name,
            "location_source": event.location_source,
            "weapon": event.weapon,
            "damage_type": event.damage_type,
            "game_mode": event.game_mode,
            "game_version": event.game_version,
            "player_ship": event.player_ship,
            "player_involved": event.is_player_involved,
            "detection_method": event.detection_method,
            "revision": event.revision,
            "description": event.description,
        }

    def build_frames(self, events: Optional[Iterable[KillEvent]] = None):
        """
        Build the events and summary DataFrames.

        Args:
            events: Events to report; defaults to everything collected so far

        Returns:
            Tuple of (events DataFrame, summary DataFrame)
        """
        rows: List[Dict[str, Any]] = [self.event_row(e) for e in (events if events is not None else self.events.values())]
        df = pd.DataFrame(rows, columns=REPORT_COLUMNS)

        if df.empty:
            summary = pd.DataFrame(columns=["death_type", "count"])
        else:
            summary = df.groupby("death_type").size().reset_index(name="count")
            summary = summary.sort_values(["count", "death_type"], ascending=[False, True]).reset_index(drop=True)
        return df, summary

    def export(self, output_path: Optional[str] = None, events: Optional[Iterable[KillEvent]] = None) -> str:
        """
        Write the report workbook.

        Args:
            output_path: Target .xlsx path; defaults to a timestamped name in the output directory
            events: Events to report; defaults to everything collected so far

        Returns:
            Absolute path of the written workbook
        """
        output_path = output_path or self.timestamped_name("kill_report", "xlsx")
        excel_path = self.output_file(output_path)
        os.makedirs(os.path.dirname(excel_path), exist_ok=True)

        df, summary = self.build_frames(events)

        with pd.ExcelWriter(excel_path, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name='Events', index=False)
            summary.to_excel(writer, sheet_name='Summary', index=False)

            for sheet_name, frame in (('Events', df), ('Summary', summary)):
                worksheet = writer.sheets[sheet_name]
                for idx, column in enumerate(frame.columns, 1):
                    letter = openpyxl.utils.get_column_letter(idx)
                    values = [str(column)] + [str(v) for v in frame[column].tolist()]
                    width = max(len(v) for v in values) + 2
                    worksheet.column_dimensions[letter].width = min(width, MAX_COLUMN_WIDTH)

        logger.info(f"Exported {len(df)} events to {excel_path}")
        return excel_path

    def run(self, output_path: Optional[str] = None) -> str:
        return self.export(output_path)
