"""Tests for the log monitor and watch loop."""

import sqlite3
import threading
from pathlib import Path

import pytest

from telegram_logger.alerter import (
    LogMonitor,
    MemoryStore,
    MonitorError,
    Notifier,
    Outcome,
    PositionRecord,
    RunStatus,
    create_monitor,
    watch,
)
from telegram_logger.alerter.position_tracker import CachePositionStore, PositionTracker
from telegram_logger.alerter.scheduler import run_once

LOG = (
    "[2024-01-15 10:00:00] production.ERROR: Something broke\n"
    "#0 trace line\n"
    "\n"
    "[2024-01-15 10:00:01] production.INFO: ignored\n"
)


@pytest.fixture
def monitor(config, store, client) -> LogMonitor:
    tracker = PositionTracker(config.log_path, CachePositionStore(store, config.log_path))
    return LogMonitor(config, tracker, Notifier(config, store, client=client))


class TestMonitorRun:
    """Tests for a single monitor run."""

    def test_missing_file(self, monitor, telegram):
        result = monitor.run()

        assert result.status == RunStatus.MISSING
        assert monitor.tracker.get_position() == PositionRecord()
        assert telegram.requests == []

    def test_sends_new_entries_and_commits(self, monitor, config, telegram):
        config.log_path.write_text(LOG)

        result = monitor.run()

        assert result.status == RunStatus.PROCESSED
        assert [r.outcome for r in result.results] == [Outcome.SENT]
        assert result.position == len(LOG)
        assert monitor.tracker.get_position().position == len(LOG)

        text = telegram.texts[0]
        assert "Something broke\n#0 trace line" in text
        assert '"environment": "production"' in text
        assert "*Time:* `2024-01-15 10:00:00`" in text

    def test_second_run_has_no_new_data(self, monitor, config, telegram):
        config.log_path.write_text(LOG)
        monitor.run()
        saved = monitor.tracker.get_position()

        result = monitor.run()

        assert result.status == RunStatus.NO_NEW_DATA
        assert monitor.tracker.get_position() == saved
        assert len(telegram.requests) == 1

    def test_only_appended_content_is_read(self, monitor, config, telegram):
        config.log_path.write_text(LOG)
        monitor.run()

        with open(config.log_path, "a") as f:
            f.write("[2024-01-15 10:05:00] production.CRITICAL: Disk full\n")

        result = monitor.run()

        assert [e.message for e in result.entries] == ["Disk full"]
        assert len(telegram.requests) == 2

    def test_commits_when_nothing_matches(self, monitor, config, telegram):
        content = "[2024-01-15 10:00:01] production.INFO: all good\n"
        config.log_path.write_text(content)

        result = monitor.run()

        assert result.status == RunStatus.PROCESSED
        assert result.results == []
        assert monitor.tracker.get_position().position == len(content)

    def test_commits_when_all_skipped(self, monitor, config, telegram):
        config.log_path.write_text(LOG + LOG.replace("10:00:00", "10:00:02"))

        result = monitor.run()

        # Same text twice: second is throttled
        assert [r.outcome for r in result.results] == [Outcome.SENT, Outcome.SKIPPED]
        assert result.sent == 1
        assert result.skipped == 1
        assert monitor.tracker.get_position().position == config.log_path.stat().st_size

    def test_transport_failure_still_commits(self, monitor, config, telegram):
        telegram.responses = [{"ok": False}, {"ok": False}]
        config.log_path.write_text(LOG)

        result = monitor.run()

        assert [r.outcome for r in result.results] == [Outcome.SKIPPED]
        assert monitor.tracker.get_position().position == len(LOG)

    def test_store_error_skips_entry_and_commits(self, config, store, client, telegram):
        """A locked cache database costs the entry, not the run."""
        tracker = PositionTracker(config.log_path, CachePositionStore(store, config.log_path))
        monitor = LogMonitor(config, tracker, Notifier(config, LockedStore(), client=client))
        config.log_path.write_text(LOG)

        result = monitor.run()

        assert result.status == RunStatus.PROCESSED
        assert [r.outcome for r in result.results] == [Outcome.SKIPPED]
        assert telegram.requests == []
        assert tracker.get_position().position == len(LOG)

    def test_levels_override(self, monitor, config, telegram):
        config.log_path.write_text(LOG)

        result = monitor.run(levels=["info"])

        assert [e.message for e in result.entries] == ["ignored"]

    def test_dry_run_sends_nothing_but_commits(self, monitor, config, telegram):
        config.log_path.write_text(LOG)

        result = monitor.run(dry_run=True)

        assert [r.outcome for r in result.results] == [Outcome.DRY_RUN]
        assert telegram.requests == []
        assert monitor.tracker.get_position().position == len(LOG)

    def test_reset_only(self, monitor, config, telegram):
        config.log_path.write_text(LOG)
        monitor.tracker.save_position(10, 1)

        result = monitor.run(reset=True)

        assert result.status == RunStatus.RESET
        assert monitor.tracker.get_position() == PositionRecord()
        assert telegram.requests == []

    def test_truncated_file_read_from_start(self, monitor, config, telegram):
        config.log_path.write_text(LOG)
        monitor.tracker.save_position(10_000, None)

        result = monitor.run()

        assert [e.message for e in result.entries] == ["Something broke"]
        assert monitor.tracker.get_position().position == len(LOG)

    def test_inode_change_read_from_start(self, monitor, config, telegram, monkeypatch):
        config.log_path.write_text(LOG)
        monkeypatch.setattr(
            "telegram_logger.alerter.position_tracker.file_inode", lambda p: 2
        )
        monkeypatch.setattr("telegram_logger.alerter.monitor.file_inode", lambda p: 2)
        monitor.tracker.save_position(20, 1)

        result = monitor.run()

        assert [e.message for e in result.entries] == ["Something broke"]
        assert monitor.tracker.get_position() == PositionRecord(len(LOG), 2)

    def test_read_failure_leaves_position(self, monitor, config, monkeypatch):
        config.log_path.write_text(LOG)
        monitor.tracker.save_position(5, None)

        def broken_open(*args, **kwargs):
            raise PermissionError("denied")

        monkeypatch.setattr("telegram_logger.alerter.monitor.open", broken_open, raising=False)

        with pytest.raises(MonitorError) as exc_info:
            monitor.run()

        assert isinstance(exc_info.value.error, PermissionError)
        assert monitor.tracker.get_position() == PositionRecord(5, None)

    def test_invalid_utf8_replaced(self, monitor, config, telegram):
        config.log_path.write_bytes(b"[2024-01-15 10:00:00] production.ERROR: bad \xff byte\n")

        result = monitor.run()

        assert result.entries[0].message == "bad \ufffd byte"


class LockedStore(MemoryStore):
    def has(self, key: str) -> bool:
        raise sqlite3.OperationalError("database is locked")


class TestCreateMonitor:
    """Tests for monitor wiring."""

    def test_defaults_to_config_log_path(self, config, store, client):
        monitor = create_monitor(config, store=store, client=client)
        assert monitor.tracker.log_path == config.log_path

    def test_log_path_override(self, config, store, client, tmp_path: Path):
        other = tmp_path / "other.log"
        monitor = create_monitor(config, log_path=other, store=store, client=client)
        assert monitor.tracker.log_path == other

    def test_file_position_storage(self, config, store, client):
        config.position_storage = "file"
        config.log_path.write_text(LOG)

        create_monitor(config, store=store, client=client).run(dry_run=True)

        assert config.position_file.exists()

    def test_default_store_is_sqlite_cache(self, config, client):
        config.log_path.write_text(LOG)

        create_monitor(config, client=client).run(dry_run=True)

        assert config.cache_path.exists()


class TestWatch:
    """Tests for the watch loop."""

    def test_runs_immediately_and_stops(self, monitor, config, telegram):
        config.log_path.write_text(LOG)
        stop = threading.Event()
        stop.set()

        watch(monitor, interval_seconds=60, stop_event=stop, poll_seconds=0)

        assert len(telegram.requests) == 1

    def test_run_once_swallows_read_errors(self, monitor, config, monkeypatch):
        config.log_path.write_text(LOG)

        def broken_read(*args, **kwargs):
            raise MonitorError(config.log_path, OSError("disk gone"))

        monkeypatch.setattr(monitor, "run", broken_read)

        assert run_once(monitor) is None
