#!/usr/bin/env python3
"""
Tests for the event sinks, the log reader and the replay tool.
"""

import os
import sys
from datetime import datetime, timezone

import pandas as pd
import pytest
import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from sc_killfeed.models import DeathType, KillEvent
from sc_killfeed.sinks import CSV_HEADERS, CsvKillLogger, KillFeed, KillReportExporter, KillUploader
from sc_killfeed.tools import LogReader, LogReplayTool

T0 = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)

DEATH_LINE = ("<2025-01-01T12:00:00.000Z> [Notice] <Actor Death> CActor::Kill: 'Bob' [200] in zone "
              "'OOC_Stanton_2b' killed by 'Alice' [100] using 'KLWE_LaserRepeater_S3_123456' "
              "[Class KLWE_LaserRepeater_S3] with damage type 'Bullet'")


def make_event(event_id="kill_Bob", killers=("Alice",), victims=("Bob",), death_type=DeathType.COMBAT,
               revision=0, timestamp=T0, **kwargs):
    return KillEvent(
        id=event_id,
        timestamp=timestamp,
        killers=tuple(killers),
        victims=tuple(victims),
        death_type=death_type,
        description=f"{' + '.join(killers) or 'Unknown'} defeated {' + '.join(victims)}",
        revision=revision,
        **kwargs,
    )


class FakeResponse:
    def __init__(self, status_code=200, text="ok"):
        self.status_code = status_code
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)


# --- KillFeed ---

def test_feed_adds_newest_first_and_updates_in_place():
    feed = KillFeed(max_events=2, player="Alice")
    changes = []
    feed.add_listener(lambda event, is_update: changes.append((event.id, is_update)))

    feed.emit(make_event("a"))
    feed.emit(make_event("b", killers=("Carol",), victims=("Dave",)))
    feed.emit(make_event("a", revision=1))

    assert [e.id for e in feed.global_events] == ["b", "a"]
    assert feed.get("a").revision == 1
    assert [e.id for e in feed.player_events] == ["a"]
    assert changes == [("a", False), ("b", False), ("a", True)]

    feed.emit(make_event("c", killers=("Carol",), victims=("Dave",)))
    assert [e.id for e in feed.global_events] == ["c", "b"]


def test_feed_recalculates_involvement_on_update():
    feed = KillFeed(player="Alice")
    feed.emit(make_event("a"))
    assert len(feed.player_events) == 1
    feed.emit(make_event("a", killers=("Carol",), revision=1))
    assert feed.player_events == []

    feed.set_player("Carol")
    assert [e.id for e in feed.player_events] == ["a"]


# --- CsvKillLogger ---

def csv_config(tmp_path, **csv):
    return {"general": {"output_path": str(tmp_path), "log_path": str(tmp_path)},
            "csv": {"path": "kills.csv", **csv}}


def test_csv_logger_writes_significant_first_revisions(tmp_path):
    logger_sink = CsvKillLogger(csv_config(tmp_path))
    logger_sink.emit(make_event("a", victims=("Bob, Jr",), weapon="Gun,Big", game_mode="PU"))
    logger_sink.emit(make_event("a", revision=1))
    logger_sink.emit(make_event("b", death_type=DeathType.SOFT))

    rows = logger_sink.read_csv(logger_sink.path)
    assert len(rows) == 1
    assert list(rows[0].keys()) == CSV_HEADERS
    assert rows[0]["EnemyPilot"] == "Bob Jr"
    assert rows[0]["Weapon"] == "GunBig"
    assert rows[0]["Player"] == "Alice"
    assert rows[0]["Mode"] == "PU"
    assert rows[0]["KillTime"] == "Wed, 01 Jan 2025 12:00:00 UTC"
    assert logger_sink.rows_written == 1


def test_tool_paths_follow_configured_directories(tmp_path):
    tool = CsvKillLogger(csv_config(tmp_path))
    assert tool.path == str(tmp_path / "kills.csv")
    assert tool.game_log_path() == str(tmp_path / "Game.log")
    assert tool.game_log_path(str(tmp_path / "other.log")) == str(tmp_path / "other.log")
    assert tool.output_file(str(tmp_path / "abs.csv")) == str(tmp_path / "abs.csv")
    assert tool.timestamped_name("kill_report", "xlsx", T0) == "kill_report_20250101_120000.xlsx"


def test_csv_logger_can_log_everything(tmp_path):
    logger_sink = CsvKillLogger(csv_config(tmp_path, significant_only=False))
    logger_sink.emit(make_event("b", death_type=DeathType.SOFT))
    assert logger_sink.rows_written == 1


def test_monthly_tally(tmp_path):
    logger_sink = CsvKillLogger(csv_config(tmp_path))
    assert logger_sink.load_monthly_tally(now=T0) == 0

    logger_sink.emit(make_event("a"))
    logger_sink.emit(make_event("b", timestamp=datetime(2025, 1, 20, tzinfo=timezone.utc)))
    logger_sink.emit(make_event("c", timestamp=datetime(2024, 12, 31, tzinfo=timezone.utc)))

    assert logger_sink.load_monthly_tally(now=datetime(2025, 1, 25, tzinfo=timezone.utc)) == 2


# --- KillUploader ---

def uploader_config(**upload):
    return {"upload": {"url": "https://kills.example.invalid/api/kills", "token": "secret",
                       "timeout": 5, "max_attempts": 2, **upload}}


def test_uploader_queues_until_flush(monkeypatch):
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return FakeResponse()

    monkeypatch.setattr(requests, "post", fake_post)
    uploader = KillUploader(uploader_config())

    uploader.emit(make_event("a"))
    uploader.emit(make_event("a", revision=1))
    assert calls == []
    assert len(uploader.queue) == 1

    result = uploader.flush()
    assert result == {"sent": 1, "failed": 0, "queued": 0}
    assert calls[0]["headers"] == {"Authorization": "Bearer secret"}
    assert calls[0]["json"]["id"] == "a"
    assert calls[0]["json"]["revision"] == 1
    assert calls[0]["json"]["death_type"] == "Combat"
    assert calls[0]["timeout"] == 5


def test_uploader_retries_then_gives_up(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: FakeResponse(500, "boom"))
    uploader = KillUploader(uploader_config())
    uploader.emit(make_event("a"))

    assert uploader.flush() == {"sent": 0, "failed": 0, "queued": 1}
    assert uploader.flush() == {"sent": 0, "failed": 1, "queued": 0}
    assert uploader.failed_count == 1


def test_uploader_drops_oldest_when_full():
    uploader = KillUploader(uploader_config(max_queue=2))
    for event_id in ("a", "b", "c"):
        uploader.emit(make_event(event_id))
    assert list(uploader.queue) == ["b", "c"]


def test_uploader_without_url_keeps_queue():
    uploader = KillUploader({"upload": {}})
    uploader.emit(make_event("a"))
    assert uploader.flush() == {"sent": 0, "failed": 0, "queued": 1}


# --- KillReportExporter ---

def test_report_export(tmp_path):
    exporter = KillReportExporter({"general": {"output_path": str(tmp_path)}})
    exporter.emit(make_event("a"))
    exporter.emit(make_event("a", revision=1, death_type=DeathType.HARD))
    exporter.emit(make_event("b", death_type=DeathType.HARD))
    exporter.emit(make_event("c", death_type=DeathType.CRASH))

    path = exporter.export("report.xlsx")
    assert os.path.exists(path)

    events = pd.read_excel(path, sheet_name="Events")
    assert list(events["id"]) == ["a", "b", "c"]
    assert list(events["revision"]) == [1, 0, 0]

    summary = pd.read_excel(path, sheet_name="Summary")
    assert dict(zip(summary["death_type"], summary["count"])) == {"Hard": 2, "Crash": 1}


def test_report_with_no_events(tmp_path):
    exporter = KillReportExporter({"general": {"output_path": str(tmp_path)}})
    events, summary = exporter.build_frames()
    assert events.empty
    assert summary.empty


# --- LogReader and replay ---

def test_log_reader_returns_complete_lines_only(tmp_path):
    log = tmp_path / "Game.log"
    log.write_bytes(b"first line\nsecond")
    reader = LogReader(str(log))

    lines = reader.read_new_lines()
    assert [line.text for line in lines] == ["first line"]
    assert reader.offset == len(b"first line\n")

    with open(log, "ab") as f:
        f.write(b" half\r\nthird\n")
    lines = reader.read_new_lines()
    assert [line.text for line in lines] == ["second half", "third"]
    assert lines[0].offset == len(b"first line\n")
    assert lines[1].line_number == 3
    assert reader.read_new_lines() == []


def test_log_reader_restarts_after_truncation(tmp_path):
    log = tmp_path / "Game.log"
    log.write_bytes(b"a long first session line\n")
    reader = LogReader(str(log))
    reader.read_new_lines()

    log.write_bytes(b"new\n")
    assert [line.text for line in reader.read_new_lines()] == ["new"]


def test_log_reader_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        LogReader(str(tmp_path / "missing.log")).read_new_lines()


def test_replay_tool(tmp_path):
    log = tmp_path / "Game.log"
    log.write_text(DEATH_LINE + "\n" + DEATH_LINE + "\n", encoding="utf-8")

    config = {
        "general": {"output_path": str(tmp_path / "out"), "log_path": str(tmp_path)},
        "engine": {"dedup_window_ms": 5000},
        "csv": {"path": "kills.csv"},
    }
    tool = LogReplayTool(config, player="Alice")
    result = tool.run(csv_output=True, excel_output="report.xlsx")

    assert result["success"]
    assert result["log_file"] == str(log)
    assert result["lines"] == 2
    assert result["events"] == 1
    assert result["player_events"] == 1
    assert result["csv_rows"] == 1
    assert os.path.exists(result["excel_file"])
