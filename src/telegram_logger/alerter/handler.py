"""Logging handler that sends records straight to Telegram.

Attach it to an application's logger to get notified without tailing a log
file. Notification failures never propagate into the application: they are
either appended to a local fallback file or dropped, depending on the
transport error policy.

Usage:
    from telegram_logger.alerter import get_telegram_logger
    from telegram_logger.config import Config

    logger = get_telegram_logger(Config.from_env())
    logger.error("Payment failed", extra={"order_id": 42})
"""

import logging
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

from telegram_logger.config import Config

from .notifier import TIME_FORMAT, Notifier, TransportErrorPolicy
from .store import KeyValueStore, MemoryStore
from .telegram import TelegramClient

NOTICE = logging.INFO + 5
logging.addLevelName(NOTICE, "NOTICE")

LEVEL_NAMES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": NOTICE,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}

# Attributes every LogRecord has; anything else came from `extra`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def parse_level(name: str) -> int:
    """Map a level name to a stdlib logging level (default ERROR)."""
    return LEVEL_NAMES.get(name.strip().lower(), logging.ERROR)


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Collect `extra` fields and a summary of any attached exception."""
    context = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}

    if record.exc_info and record.exc_info[1] is not None:
        exc = record.exc_info[1]
        frames = traceback.extract_tb(exc.__traceback__)
        last = frames[-1] if frames else None
        context["exception"] = {
            "class": type(exc).__name__,
            "message": str(exc),
            "file": last.filename if last else None,
            "line": last.lineno if last else None,
        }

    return context


class TelegramHandler(logging.Handler):
    """Sends log records at or above `level` to Telegram."""

    def __init__(
        self,
        notifier: Notifier,
        level: int = logging.ERROR,
        fallback_path: str | Path | None = None,
    ):
        """Initialize the handler.

        Args:
            notifier: Notifier used for every record
            level: Minimum level to send
            fallback_path: File receiving handler failures when the notifier
                policy is FALLBACK_AND_LOG
        """
        super().__init__(level)
        self.notifier = notifier
        self.fallback_path = Path(fallback_path) if fallback_path else None
        self._local = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        # httpx and the notifier itself log through the root logger
        if getattr(self._local, "emitting", False):
            return

        self._local.emitting = True
        try:
            timestamp = datetime.fromtimestamp(record.created).astimezone().strftime(TIME_FORMAT)
            sent = self.notifier.send(
                record.getMessage(),
                record.levelname,
                timestamp,
                record_context(record),
            )
            if not sent and self.notifier.last_error is not None:
                self._handle_failure(record, self.notifier.last_error)
        except Exception as e:
            self._handle_failure(record, str(e), e)
        finally:
            self._local.emitting = False

    def _handle_failure(
        self, record: logging.LogRecord, reason: str, error: Exception | None = None
    ) -> None:
        """Record a failed send without disturbing the application."""
        if self.notifier.policy == TransportErrorPolicy.SILENT_DROP or self.fallback_path is None:
            return

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        entry = f"[{timestamp}] Telegram logger failed: {reason}\n"
        entry += f"Original log: [{record.levelname}] {record.getMessage()}\n"
        if error is not None:
            entry += "Exception trace: " + "".join(traceback.format_exception(error))
        entry += "-" * 80 + "\n"

        try:
            self.fallback_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.fallback_path, "a", encoding="utf-8") as f:
                f.write(entry)
        except OSError:
            # Nowhere left to report to
            pass


def create_handler(
    config: Config,
    store: KeyValueStore | None = None,
    client: TelegramClient | None = None,
    policy: TransportErrorPolicy = TransportErrorPolicy.FALLBACK_AND_LOG,
) -> TelegramHandler:
    """Build a handler from config.

    Args:
        config: Application configuration (config.level sets the minimum level)
        store: Throttle store (default: in-memory)
        client: Telegram client (default: built from config)
        policy: FALLBACK_AND_LOG writes failures to config.fallback_log_path,
            SILENT_DROP discards them
    """
    notifier = Notifier(
        config,
        store if store is not None else MemoryStore(),
        client=client,
        policy=policy,
    )
    return TelegramHandler(
        notifier,
        level=parse_level(config.level),
        fallback_path=config.fallback_log_path,
    )


def get_telegram_logger(config: Config, name: str = "telegram", **kwargs: Any) -> logging.Logger:
    """Get a stdlib logger that sends its records to Telegram."""
    logger = logging.getLogger(name)
    handler = create_handler(config, **kwargs)
    logger.addHandler(handler)
    logger.setLevel(handler.level)
    return logger
