"""Tests for the command-line interface."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from telegram_logger import cli
from telegram_logger.alerter import Notifier, SqliteStore
from telegram_logger.alerter.throttle import throttle_key

LOG = (
    "[2024-01-15 10:00:00] production.ERROR: Something broke\n"
    "#0 trace line\n"
    "[2024-01-15 10:00:01] production.INFO: ignored\n"
)


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Leave the root logger alone; CliRunner swaps stderr per invocation."""
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config without credentials, so nothing is ever sent."""
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
environment: production
monitor:
  log_path: {tmp_path / "laravel.log"}
state_dir: {tmp_path / "state"}
"""
    )
    return path


def invoke(config_file: Path, *args: str):
    return CliRunner().invoke(cli.main, ["--config", str(config_file), *args])


class TestMonitorCommand:
    """Tests for `telegram-logger monitor`."""

    def test_missing_log_file(self, config_file):
        result = invoke(config_file, "monitor")
        assert result.exit_code == 0
        assert "Log file not found" in result.output

    def test_dry_run_prints_entries(self, config_file, tmp_path):
        (tmp_path / "laravel.log").write_text(LOG)

        result = invoke(config_file, "monitor", "--dry-run")

        assert result.exit_code == 0
        assert "Found 1 error(s)." in result.output
        assert "[ERROR] 2024-01-15 10:00:00 (production)" in result.output
        assert "Stack trace: #0 trace line" in result.output

    def test_second_run_no_new_entries(self, config_file, tmp_path):
        (tmp_path / "laravel.log").write_text(LOG)

        invoke(config_file, "monitor", "--dry-run")
        result = invoke(config_file, "monitor", "--dry-run")

        assert result.exit_code == 0
        assert "No new log entries." in result.output

    def test_skipped_without_credentials(self, config_file, tmp_path):
        (tmp_path / "laravel.log").write_text(LOG)

        result = invoke(config_file, "monitor")

        assert result.exit_code == 0
        assert "Skipped (throttled/filtered): Something broke..." in result.output

    def test_levels_and_log_path_options(self, config_file, tmp_path):
        other = tmp_path / "other.log"
        other.write_text(LOG)

        result = invoke(
            config_file, "monitor", "--log-path", str(other), "--levels", "info", "--dry-run"
        )

        assert result.exit_code == 0
        assert "[INFO] 2024-01-15 10:00:01 (production)" in result.output

    def test_reset(self, config_file, tmp_path):
        (tmp_path / "laravel.log").write_text(LOG)
        invoke(config_file, "monitor", "--dry-run")

        result = invoke(config_file, "monitor", "--reset")
        assert result.exit_code == 0
        assert "Position tracker reset." in result.output

        result = invoke(config_file, "monitor", "--dry-run")
        assert "Found 1 error(s)." in result.output

    def test_read_failure_exits_nonzero(self, config_file, tmp_path, monkeypatch):
        (tmp_path / "laravel.log").write_text(LOG)

        def broken_open(*args, **kwargs):
            raise PermissionError("denied")

        monkeypatch.setattr(
            "telegram_logger.alerter.monitor.open", broken_open, raising=False
        )

        result = invoke(config_file, "monitor")

        assert result.exit_code == 1
        assert "Unable to read log file" in result.output


class TestOtherCommands:
    """Tests for send, test and cache commands."""

    def test_send_without_credentials_fails(self, config_file):
        result = invoke(config_file, "send", "hello")
        assert result.exit_code == 1
        assert "Failed to send message" in result.output

    def test_test_without_credentials_fails(self, config_file):
        result = invoke(config_file, "test")
        assert result.exit_code == 1

    @pytest.mark.parametrize("args", [("send", "hello"), ("test",), ("monitor",)])
    def test_http_client_closed(self, config_file, monkeypatch, args):
        closed = []
        monkeypatch.setattr(Notifier, "close", lambda self: closed.append(self))

        invoke(config_file, *args)

        assert len(closed) == 1

    def test_cache_clear(self, config_file, tmp_path):
        store = SqliteStore(tmp_path / "state" / "cache.db")
        store.put(throttle_key("boom"), True, ttl=60)

        result = invoke(config_file, "cache", "clear", "--yes")

        assert result.exit_code == 0
        assert "Cleared 1 cache entries" in result.output
        assert store.has(throttle_key("boom")) is False

    def test_cache_clear_needs_confirmation(self, config_file):
        result = CliRunner().invoke(
            cli.main, ["--config", str(config_file), "cache", "clear"], input="n\n"
        )
        assert result.exit_code == 1
