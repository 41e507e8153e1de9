"""Notification formatting and dispatch to Telegram."""

import json
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from telegram_logger.config import Config

from .store import KeyValueStore
from .telegram import TelegramClient
from .throttle import Throttle

log = structlog.get_logger()

MAX_MESSAGE_LENGTH = 3000
MAX_CONTEXT_LENGTH = 500
TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z"

LEVEL_EMOJI = {
    "EMERGENCY": "\U0001f198",  # SOS
    "ALERT": "\U0001f514",  # Bell
    "CRITICAL": "\U0001f534",  # Red circle
    "ERROR": "\U0001f6a8",  # Siren
    "WARNING": "\u26a0\ufe0f",  # Warning sign
    "NOTICE": "\U0001f4dd",  # Memo
    "INFO": "\u2139\ufe0f",  # Information
    "DEBUG": "\U0001f50d",  # Magnifier
}
DEFAULT_EMOJI = LEVEL_EMOJI["ERROR"]


class TransportErrorPolicy(Enum):
    """What to do when Telegram doesn't acknowledge a message."""

    FALLBACK_AND_LOG = "fallback_and_log"  # Retry once as plain text, log failures
    SILENT_DROP = "silent_drop"  # Give up quietly


def level_emoji(level: str) -> str:
    return LEVEL_EMOJI.get(level.upper(), DEFAULT_EMOJI)


def truncate(text: str, max_length: int) -> str:
    """Truncate to max_length characters, ending with '...' when cut."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def escape_markdown(text: str) -> str:
    """Escape backticks so they can't close a code block early."""
    return text.replace("`", "\\`")


def format_context(context: dict[str, Any]) -> str:
    """Render context as pretty-printed JSON, truncated."""
    text = json.dumps(context, indent=4, ensure_ascii=False, default=str)
    return truncate(text, MAX_CONTEXT_LENGTH)


def current_timestamp() -> str:
    return datetime.now().astimezone().strftime(TIME_FORMAT)


class Notifier:
    """Formats log entries and sends them to Telegram.

    A send is skipped, without error, when credentials are missing, the
    current environment isn't in notify_environments, or an identical
    message was sent within the throttle window.
    """

    def __init__(
        self,
        config: Config,
        store: KeyValueStore,
        client: TelegramClient | None = None,
        policy: TransportErrorPolicy = TransportErrorPolicy.FALLBACK_AND_LOG,
        clock: Callable[[], str] = current_timestamp,
    ):
        """Initialize the notifier.

        Args:
            config: Credentials, project/environment labels and throttle window
            store: Store for throttle markers
            client: Telegram client (built from config if omitted)
            policy: Behaviour when a send isn't acknowledged
            clock: Returns the timestamp used when a caller doesn't pass one
        """
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id
        self.project_name = config.project_name
        self.environment = config.environment
        self.notify_environments = list(config.notify_environments)
        self.throttle = Throttle(store, config.throttle)
        self.client = client or TelegramClient(
            config.bot_token, config.chat_id, api_base=config.api_base
        )
        self.policy = policy
        self._clock = clock
        self.last_error: str | None = None  # Description of the last unacknowledged send

    def should_send(self) -> bool:
        """Check credentials and environment gating."""
        if not self.bot_token or not self.chat_id:
            log.debug("Telegram credentials missing, skipping")
            return False

        if self.environment not in self.notify_environments:
            log.debug(
                "Environment not in notify list, skipping",
                environment=self.environment,
                notify_environments=self.notify_environments,
            )
            return False

        return True

    def send(
        self,
        message: str,
        level: str = "ERROR",
        timestamp: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """Send a notification.

        Args:
            message: The log message (with stack trace, if any)
            level: Log level name, e.g. ERROR or CRITICAL
            timestamp: Time of the log entry (defaults to now)
            context: Extra data shown as a JSON block

        Returns:
            True if Telegram acknowledged the message, False otherwise
        """
        self.last_error = None

        if not self.should_send():
            return False

        # Marked before sending: repeat attempts are throttled, not just successes
        if not self.throttle.should_send(message):
            log.debug("Message throttled", seconds=self.throttle.seconds)
            return False

        timestamp = timestamp or self._clock()
        context = context or {}

        response = self.client.send_message(
            self.format_message(message, level, timestamp, context), markdown=True
        )
        if response.get("ok", False):
            return True

        if self.policy == TransportErrorPolicy.SILENT_DROP:
            log.debug("Telegram send failed, dropping", description=response.get("description"))
            self.last_error = response.get("description") or "Unknown error"
            return False

        log.warning(
            "Markdown send failed, retrying as plain text",
            description=response.get("description"),
        )
        response = self.client.send_message(
            self.format_plain_message(message, level, timestamp, context), markdown=False
        )
        if response.get("ok", False):
            return True

        self.last_error = response.get("description") or "Unknown error"
        log.warning("Telegram send failed", description=self.last_error)
        return False

    def close(self) -> None:
        """Release the HTTP connection pool."""
        self.client.close()

    def format_message(
        self, message: str, level: str, timestamp: str, context: dict[str, Any]
    ) -> str:
        """Format the notification as Telegram Markdown."""
        message = truncate(message, MAX_MESSAGE_LENGTH)

        text = f"{level_emoji(level)} *{level.upper()}*\n\n"
        text += f"*Project:* `{escape_markdown(self.project_name)}`\n"
        text += f"*Environment:* `{escape_markdown(self.environment)}`\n"
        text += f"*Time:* `{timestamp}`\n\n"
        text += f"*Message:*\n```\n{escape_markdown(message)}\n```"

        if context:
            context_str = format_context(context)
            if context_str:
                text += f"\n\n*Context:*\n```\n{escape_markdown(context_str)}\n```"

        return text

    def format_plain_message(
        self, message: str, level: str, timestamp: str, context: dict[str, Any]
    ) -> str:
        """Format the notification as plain text (no Markdown)."""
        message = truncate(message, MAX_MESSAGE_LENGTH)

        text = f"{level_emoji(level)} {level.upper()}\n\n"
        text += f"Project: {self.project_name}\n"
        text += f"Environment: {self.environment}\n"
        text += f"Time: {timestamp}\n\n"
        text += f"Message:\n{message}"

        if context:
            context_str = format_context(context)
            if context_str:
                text += f"\n\nContext:\n{context_str}"

        return text
