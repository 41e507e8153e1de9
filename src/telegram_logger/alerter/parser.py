"""Parser for structured application log lines."""

import re
from collections.abc import Iterable
from dataclasses import dataclass

# Severity vocabulary, lowest first
LEVELS = (
    "DEBUG",
    "INFO",
    "NOTICE",
    "WARNING",
    "ERROR",
    "CRITICAL",
    "ALERT",
    "EMERGENCY",
)

# Matches: [YYYY-MM-DD HH:MM:SS] environment.LEVEL: message
LOG_PATTERN = re.compile(r"^\[(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})\] (\w+)\.(\w+): (.*)$")


@dataclass
class LogEntry:
    """One alert-worthy log record."""

    timestamp: str  # Kept verbatim from the log line
    environment: str
    level: str  # Always upper-cased
    message: str  # First line only
    stacktrace: str = ""  # Trailing continuation lines, trimmed


def _strip_eol(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def is_log_entry_start(line: str) -> bool:
    """Check if a line starts a new log entry."""
    return LOG_PATTERN.match(_strip_eol(line)) is not None


def parse_line(line: str) -> LogEntry | None:
    """Parse a single log line, ignoring any level filter.

    Returns:
        LogEntry with an empty stacktrace, or None if the line doesn't match
    """
    match = LOG_PATTERN.match(_strip_eol(line))
    if match is None:
        return None

    return LogEntry(
        timestamp=match.group(1),
        environment=match.group(2),
        level=match.group(3).upper(),
        message=match.group(4),
    )


def parse(content: str, levels: Iterable[str] = ("ERROR",)) -> list[LogEntry]:
    """Parse log entries from raw content, keeping only the given levels.

    Lines that don't match the log pattern are treated as stack trace
    continuation of the currently open entry. Blank lines are skipped but
    don't close the entry. Continuation lines after a filtered-out entry
    are discarded.

    Args:
        content: Raw log file content
        levels: Levels to keep (case-insensitive), e.g. ["ERROR", "CRITICAL"]

    Returns:
        Entries in input order
    """
    wanted = {level.upper() for level in levels}
    entries: list[LogEntry] = []
    current: LogEntry | None = None
    trace: list[str] = []

    for line in content.split("\n"):
        entry = parse_line(line)

        if entry is not None:
            if current is not None:
                current.stacktrace = "".join(trace).strip()
                entries.append(current)

            # Only open a new entry for levels we care about
            current = entry if entry.level in wanted else None
            trace = []

        elif current is not None and line.strip() != "":
            trace.append(line + "\n")

    if current is not None:
        current.stacktrace = "".join(trace).strip()
        entries.append(current)

    return entries
