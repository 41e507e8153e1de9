"""Log monitor that sends new error entries to Telegram.

One call to LogMonitor.run() processes whatever was appended to the log file
since the previous run:

    read position -> read new bytes -> parse -> notify -> commit position

The position is committed after every run that managed to read the file,
even if no entry matched or every notification was skipped. Runs against the
same log path must not overlap.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from telegram_logger.config import Config

from .notifier import Notifier
from .parser import LogEntry, parse
from .position_tracker import PositionTracker, create_position_tracker, file_inode
from .store import KeyValueStore, SqliteStore
from .telegram import TelegramClient

log = structlog.get_logger()


class MonitorError(Exception):
    """The log file exists but could not be opened or read."""

    def __init__(self, path: Path, error: OSError):
        super().__init__(f"Unable to read log file {path}: {error}")
        self.path = path
        self.error = error


class RunStatus(Enum):
    """How a monitor run ended."""

    RESET = "reset"
    MISSING = "missing"  # Log file doesn't exist (yet)
    NO_NEW_DATA = "no_new_data"
    PROCESSED = "processed"


class Outcome(Enum):
    """What happened to one entry."""

    SENT = "sent"
    SKIPPED = "skipped"  # Gated, throttled, not acknowledged or failed
    DRY_RUN = "dry_run"


@dataclass
class EntryResult:
    entry: LogEntry
    outcome: Outcome


@dataclass
class MonitorResult:
    """Result of a single monitor run."""

    status: RunStatus
    log_path: Path
    results: list[EntryResult] = field(default_factory=list)
    position: int | None = None  # Committed position, if any

    @property
    def entries(self) -> list[LogEntry]:
        return [r.entry for r in self.results]

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.SENT)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.SKIPPED)


def entry_message(entry: LogEntry) -> str:
    """Build the notification body: message plus stack trace, if any."""
    if entry.stacktrace:
        return f"{entry.message}\n{entry.stacktrace}"
    return entry.message


class LogMonitor:
    """Monitors a log file for new entries and notifies about them."""

    def __init__(
        self,
        config: Config,
        tracker: PositionTracker,
        notifier: Notifier,
    ):
        """Initialize the monitor.

        Args:
            config: Supplies the default monitored levels
            tracker: Position tracker for the monitored file
            notifier: Sends entries to Telegram
        """
        self.config = config
        self.tracker = tracker
        self.notifier = notifier

    def run(
        self,
        levels: Iterable[str] | None = None,
        dry_run: bool = False,
        reset: bool = False,
    ) -> MonitorResult:
        """Process new content in the log file.

        Args:
            levels: Levels to notify about (default: config.monitor_levels)
            dry_run: Parse without sending; the position is still committed
            reset: Only reset the stored position, then stop

        Returns:
            MonitorResult describing the run

        Raises:
            MonitorError: If the existing log file can't be opened or read
        """
        path = self.tracker.log_path
        wanted = list(levels) if levels is not None else self.config.monitor_levels

        if reset:
            self.tracker.reset()
            log.info("Position tracker reset", path=str(path))
            return MonitorResult(status=RunStatus.RESET, log_path=path)

        if not path.exists():
            log.info("Log file not found", path=str(path))
            return MonitorResult(status=RunStatus.MISSING, log_path=path)

        if self.tracker.was_rotated(path):
            log.info("Log rotation detected, resetting position", path=str(path))
            self.tracker.reset()

        saved = self.tracker.get_position()
        try:
            file_size = path.stat().st_size
        except OSError as e:
            raise MonitorError(path, e) from e

        if saved.position >= file_size:
            log.info("No new log entries", path=str(path), position=saved.position)
            return MonitorResult(status=RunStatus.NO_NEW_DATA, log_path=path)

        content = self._read(path, saved.position, file_size)
        entries = parse(content, wanted)

        if entries:
            log.info("Found log entries", path=str(path), count=len(entries))
        else:
            log.info("No matching log entries found", path=str(path))

        results = [EntryResult(entry, self._process_entry(entry, dry_run)) for entry in entries]

        # Size from before the read: anything appended since is picked up next run
        self.tracker.save_position(file_size, file_inode(path))

        return MonitorResult(
            status=RunStatus.PROCESSED,
            log_path=path,
            results=results,
            position=file_size,
        )

    def _read(self, path: Path, start: int, end: int) -> str:
        """Read bytes [start, end) of the file as text."""
        try:
            with open(path, "rb") as f:
                f.seek(start)
                data = f.read(end - start)
        except OSError as e:
            log.error("Unable to read log file", path=str(path), error=str(e))
            raise MonitorError(path, e) from e

        return data.decode("utf-8", errors="replace")

    def _process_entry(self, entry: LogEntry, dry_run: bool) -> Outcome:
        """Send a single entry unless this is a dry run."""
        if dry_run:
            return Outcome.DRY_RUN

        preview = entry.message[:50]
        try:
            sent = self.notifier.send(
                entry_message(entry),
                entry.level,
                entry.timestamp,
                {"environment": entry.environment},
            )
        except Exception:
            # Store or formatting failures cost this entry, not the run
            log.exception("Notification failed", level=entry.level, message=preview)
            return Outcome.SKIPPED

        if sent:
            log.info("Sent notification", level=entry.level, message=preview)
            return Outcome.SENT

        log.warning("Skipped (throttled/filtered)", level=entry.level, message=preview)
        return Outcome.SKIPPED


def create_monitor(
    config: Config,
    log_path: str | Path | None = None,
    store: KeyValueStore | None = None,
    client: TelegramClient | None = None,
) -> LogMonitor:
    """Wire up a monitor for one log file.

    Args:
        config: Application configuration
        log_path: Log file to monitor (default: config.log_path)
        store: Cache store for throttle markers and cached positions
            (default: SQLite cache under config.state_dir)
        client: Telegram client (default: built from config)
    """
    path = Path(log_path) if log_path is not None else config.log_path
    store = store if store is not None else SqliteStore(config.cache_path)

    return LogMonitor(
        config,
        create_position_tracker(config, path, store),
        Notifier(config, store, client=client),
    )
