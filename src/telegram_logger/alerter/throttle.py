"""Throttle for duplicate notification suppression."""

import hashlib

from .store import KeyValueStore

KEY_PREFIX = "telegram_logger_"


def throttle_key(message: str) -> str:
    """Build the throttle key for a message body.

    Only the message text is hashed, so identical text at different levels
    or times shares one key.
    """
    return KEY_PREFIX + hashlib.md5(message.encode("utf-8")).hexdigest()


class Throttle:
    """Suppresses repeat sends of the same message within a time window.

    A marker is stored per message with a ttl of `seconds`. While the marker
    exists the message is throttled. `seconds` <= 0 disables throttling.

    Check and mark are two separate store operations; concurrent callers can
    both pass the check before either marks.
    """

    def __init__(self, store: KeyValueStore, seconds: int):
        self.store = store
        self.seconds = seconds

    @property
    def enabled(self) -> bool:
        return self.seconds > 0

    def is_throttled(self, message: str) -> bool:
        """Check if a marker exists for this message."""
        if not self.enabled:
            return False
        return self.store.has(throttle_key(message))

    def mark(self, message: str) -> None:
        """Record a send attempt for this message."""
        if not self.enabled:
            return
        self.store.put(throttle_key(message), True, ttl=self.seconds)

    def should_send(self, message: str) -> bool:
        """Check the throttle and mark the message if it may be sent.

        Returns:
            True if not throttled (and now marked), False if still in window
        """
        if self.is_throttled(message):
            return False

        self.mark(message)
        return True
