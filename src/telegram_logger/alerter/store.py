"""Key-value stores backing throttle markers and cached positions.

Two implementations share the same small interface:

- MemoryStore: process-local dict, used by tests and embedded handlers that
  don't need state across restarts.
- SqliteStore: a cache database on disk. Survives restarts but is a cache,
  not a durable record; an administrator may clear it at any time.

Values are JSON-serializable. Entries written with a ttl read as absent once
expired and are purged lazily.
"""

import json
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import structlog

log = structlog.get_logger()

_MISSING = object()

CACHE_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    expires_at REAL
);
"""


class KeyValueStore(Protocol):
    """Capability interface for keyed state with optional expiry."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def put(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> int: ...


class MemoryStore:
    """In-memory store with expiry."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    def get(self, key: str, default: Any = None) -> Any:
        item = self._data.get(key)
        if item is None:
            return default

        value, expires_at = item
        if self._expired(expires_at):
            del self._data[key]
            return default
        return value

    def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count


class SqliteStore:
    """Cache store persisted in a SQLite database file."""

    def __init__(self, path: str | Path, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self._clock = clock
        self._ensured = False

    def _connect(self) -> sqlite3.Connection:
        """Open a connection, creating the database and table on first use."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), timeout=5.0)
        if not self._ensured:
            conn.executescript(CACHE_SCHEMA)
            self._ensured = True
            log.debug("Ensured cache table exists", path=str(self.path))
        return conn

    def get(self, key: str, default: Any = None) -> Any:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT value, expires_at FROM cache WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return default

            value, expires_at = row
            if expires_at is not None and expires_at <= self._clock():
                with conn:
                    conn.execute("DELETE FROM cache WHERE key = ?", (key,))
                return default
        finally:
            conn.close()

        try:
            return json.loads(value)
        except ValueError:
            log.warning("Discarding unreadable cache value", key=key)
            return default

    def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO cache (key, value, expires_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        expires_at = excluded.expires_at
                    """,
                    (key, json.dumps(value), expires_at),
                )
        finally:
            conn.close()

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def delete(self, key: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM cache WHERE key = ?", (key,))
        finally:
            conn.close()

    def clear(self) -> int:
        """Remove every entry. Returns the number of rows deleted."""
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute("DELETE FROM cache")
            count = cursor.rowcount
        finally:
            conn.close()

        log.info("Cleared cache", path=str(self.path), entries=count)
        return count

