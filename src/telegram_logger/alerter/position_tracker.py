"""Read position tracking for incremental log monitoring.

Stores the byte offset already processed for a log file, together with the
file's inode, so that each monitor run only reads what was appended since the
previous one and can tell when the file was rotated or truncated underneath.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from .store import KeyValueStore

if TYPE_CHECKING:
    from telegram_logger.config import Config

log = structlog.get_logger()

CACHE_KEY_PREFIX = "telegram_log_monitor_position_"


@dataclass
class PositionRecord:
    """Byte offset and file identity for a monitored file."""

    position: int = 0
    inode: int | None = None

    def to_dict(self) -> dict[str, int | None]:
        return {"position": self.position, "inode": self.inode}

    @classmethod
    def from_dict(cls, data: object) -> PositionRecord:
        """Build a record from stored data, falling back to the default."""
        if not isinstance(data, dict):
            return cls()

        position = data.get("position", 0)
        inode = data.get("inode")
        if not isinstance(position, int) or position < 0:
            return cls()
        if inode is not None and not isinstance(inode, int):
            inode = None
        return cls(position=position, inode=inode)


def file_inode(path: str | Path) -> int | None:
    """Get the inode of a file, or None where inodes aren't available."""
    if os.name == "nt":
        return None

    try:
        return os.stat(path).st_ino
    except OSError:
        return None


class PositionStore(Protocol):
    """Storage policy for a single position record."""

    def load(self) -> PositionRecord: ...

    def save(self, record: PositionRecord) -> None: ...

    def clear(self) -> None: ...


class CachePositionStore:
    """Keeps the record in the cache store, keyed by log path. Never expires."""

    def __init__(self, store: KeyValueStore, log_path: str | Path):
        self.store = store
        digest = hashlib.md5(str(log_path).encode("utf-8")).hexdigest()
        self.key = CACHE_KEY_PREFIX + digest

    def load(self) -> PositionRecord:
        return PositionRecord.from_dict(self.store.get(self.key))

    def save(self, record: PositionRecord) -> None:
        self.store.put(self.key, record.to_dict())

    def clear(self) -> None:
        self.store.delete(self.key)


class FilePositionStore:
    """Keeps the record in a single JSON file on durable storage."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> PositionRecord:
        if not self.path.exists():
            return PositionRecord()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            log.debug("Unreadable position file, using default", path=str(self.path))
            return PositionRecord()

        return PositionRecord.from_dict(data)

    def save(self, record: PositionRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(record.to_dict()), encoding="utf-8")

    def clear(self) -> None:
        self.save(PositionRecord())


class PositionTracker:
    """Tracks how far a log file has been read.

    Writers are not synchronized: at most one monitor run per log path
    should be active at a time.
    """

    def __init__(self, log_path: str | Path, store: PositionStore):
        self.log_path = Path(log_path)
        self.store = store

    def get_position(self) -> PositionRecord:
        """Get the last committed record, or the zero default."""
        return self.store.load()

    def save_position(self, position: int, inode: int | None = None) -> None:
        """Persist the record, replacing whatever was stored."""
        self.store.save(PositionRecord(position=position, inode=inode))
        log.debug("Saved position", path=str(self.log_path), position=position, inode=inode)

    def reset(self) -> None:
        """Reset the record to position 0 with no inode."""
        self.store.clear()
        log.debug("Reset position", path=str(self.log_path))

    def was_rotated(self, path: str | Path | None = None) -> bool:
        """Detect if the log file was rotated or truncated.

        Returns:
            True if the file is missing, smaller than the saved position, or
            has a different inode than the saved one (when both are known)
        """
        path = Path(path) if path is not None else self.log_path
        saved = self.get_position()

        try:
            current_size = path.stat().st_size
        except FileNotFoundError:
            return True

        if current_size < saved.position:
            return True

        current_inode = file_inode(path)
        if saved.inode is not None and current_inode is not None and saved.inode != current_inode:
            return True

        return False


def create_position_tracker(
    config: Config, log_path: str | Path, store: KeyValueStore
) -> PositionTracker:
    """Create a tracker using the storage method selected in config.

    Args:
        config: Application configuration (position_storage: "cache" or "file")
        log_path: Monitored log file
        store: Cache store used when position_storage is "cache"
    """
    mode = config.position_storage
    if mode == "cache":
        return PositionTracker(log_path, CachePositionStore(store, log_path))
    if mode == "file":
        return PositionTracker(log_path, FilePositionStore(config.position_file))
    raise ValueError(f"Unknown position storage: {mode!r}. Use 'cache' or 'file'")
