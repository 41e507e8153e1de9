"""Telegram alerter for application log files.

Provides log parsing, rotation-safe position tracking, throttling, and
Telegram notifications.
"""

from .handler import TelegramHandler, create_handler, get_telegram_logger, parse_level
from .monitor import (
    LogMonitor,
    MonitorError,
    MonitorResult,
    Outcome,
    RunStatus,
    create_monitor,
)
from .notifier import Notifier, TransportErrorPolicy
from .parser import LEVELS, LogEntry, is_log_entry_start, parse, parse_line
from .position_tracker import PositionRecord, PositionTracker, create_position_tracker
from .scheduler import watch
from .store import KeyValueStore, MemoryStore, SqliteStore
from .telegram import TelegramClient
from .throttle import Throttle

__all__ = [
    # Monitor
    "LogMonitor",
    "MonitorError",
    "MonitorResult",
    "Outcome",
    "RunStatus",
    "create_monitor",
    "watch",
    # Parser
    "LEVELS",
    "LogEntry",
    "parse",
    "parse_line",
    "is_log_entry_start",
    # Position tracking
    "PositionRecord",
    "PositionTracker",
    "create_position_tracker",
    # Notifications
    "Notifier",
    "TransportErrorPolicy",
    "TelegramClient",
    "Throttle",
    # Stores
    "KeyValueStore",
    "MemoryStore",
    "SqliteStore",
    # Logging handler
    "TelegramHandler",
    "create_handler",
    "get_telegram_logger",
    "parse_level",
]
