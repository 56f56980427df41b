# SPDX-License-Identifier: Apache-2.0
"""SQLite-backed translation cache with TTL expiry and size-bounded eviction.

Uses stdlib sqlite3. Eviction removes the oldest entries by insert/update time;
reads do not refresh an entry's position, so the policy approximates LRU.
The connection is shared by all callers in the process; writes are serialized
by SQLite, there is no cross-process coordination.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from deepl_cli.api.errors import ConfigurationError
from deepl_cli.storage.paths import resolve_paths

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1024 * 1024 * 1024  # 1 GiB
DEFAULT_TTL = 30 * 24 * 60 * 60  # 30 days in seconds

# Stored verbatim (not as JSON) so it can never collide with a serialized value.
NONE_SENTINEL = "__deepl_cli_none__"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    timestamp REAL NOT NULL,
    size INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_timestamp ON cache(timestamp);
"""


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache occupancy."""

    entries: int
    total_size: int
    max_size: int
    enabled: bool


def _serialize(value: Any) -> str:
    if value is None:
        return NONE_SENTINEL
    return json.dumps(value, ensure_ascii=False)


def _deserialize(raw: str) -> Any:
    if raw == NONE_SENTINEL:
        return None
    return json.loads(raw)


def _short_key(key: str) -> str:
    return key[:8] + "..." if len(key) > 8 else key


class CacheService:
    """Persistent key/value cache for API results."""

    def __init__(
        self,
        db_path: Path | str | None = None,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize CacheService.

        Args:
            db_path: SQLite file (default: resolved cache path).
            max_size: Upper bound of stored bytes.
            ttl: Entry lifetime in seconds (0 disables expiry).
            clock: Time source returning seconds since the epoch.

        Raises:
            ConfigurationError: If max_size or ttl is negative.
        """
        if max_size < 0:
            raise ConfigurationError("Max size must be 0 or more")
        if ttl < 0:
            raise ConfigurationError("TTL must be positive or 0")

        self._db_path = Path(db_path) if db_path is not None else resolve_paths().cache_file
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._enabled = True
        self._closed = False
        self._current_size = 0

        try:
            self._open()
        except sqlite3.DatabaseError as e:
            logger.warning("Cache database corrupted, recreating: %s", e)
            for suffix in ("", "-wal", "-shm"):
                Path(f"{self._db_path}{suffix}").unlink(missing_ok=True)
            self._open()

    def _open(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        self._conn = sqlite3.connect(str(self._db_path))
        try:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
            row = self._conn.execute("SELECT COALESCE(SUM(size), 0) FROM cache").fetchone()
        except sqlite3.DatabaseError:
            self._conn.close()
            raise
        self._current_size = int(row[0])
        try:
            os.chmod(self._db_path, 0o600)
        except OSError as e:
            logger.debug("Could not restrict cache file permissions: %s", e)

    @property
    def db_path(self) -> Path:
        """Return SQLite file path."""
        return self._db_path

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get(
        self,
        key: str,
        default: Any = None,
        guard: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Look up a value.

        Expired entries are swept first. Entries that fail to deserialize, or
        that the optional guard rejects, are removed and reported as absent.

        Args:
            key: Cache key.
            default: Returned when the key is absent or the cache is disabled.
            guard: Predicate the stored value must satisfy.

        Returns:
            Stored value or default.
        """
        if not self._enabled:
            return default

        self._cleanup_expired()

        row = self._conn.execute(
            "SELECT value, timestamp FROM cache WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default

        raw, timestamp = row
        if self._is_expired(timestamp):
            self.delete(key)
            return default

        try:
            value = _deserialize(raw)
        except ValueError as e:
            logger.warning(
                'Cache corruption detected for key "%s": %s. Removing entry.',
                _short_key(key), e,
            )
            self.delete(key)
            return default

        if guard is not None and not guard(value):
            logger.warning(
                'Cache type mismatch for key "%s". Removing entry.', _short_key(key)
            )
            self.delete(key)
            return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Store a value, evicting the oldest entries if the size bound requires it.

        Args:
            key: Cache key.
            value: JSON-serializable value (None is stored as a sentinel).
        """
        if not self._enabled:
            return

        serialized = _serialize(value)
        size = len(serialized.encode("utf-8"))

        self._cleanup_expired()

        row = self._conn.execute("SELECT size FROM cache WHERE key = ?", (key,)).fetchone()
        replaced_size = int(row[0]) if row else 0

        if size > self._max_size:
            logger.warning(
                'Cache entry "%s" (%d bytes) exceeds max cache size (%d bytes)',
                _short_key(key), size, self._max_size,
            )

        self._evict_if_needed(key, size - replaced_size)

        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO cache (key, value, timestamp, size) VALUES (?, ?, ?, ?)",
                (key, serialized, self._clock(), size),
            )
        self._current_size += size - replaced_size

    def delete(self, key: str) -> None:
        """Remove a single entry if present."""
        with self._conn:
            row = self._conn.execute("SELECT size FROM cache WHERE key = ?", (key,)).fetchone()
            if row is None:
                return
            self._conn.execute("DELETE FROM cache WHERE key = ?", (key,))
        self._current_size -= int(row[0])

    def clear(self) -> None:
        """Remove all entries."""
        with self._conn:
            self._conn.execute("DELETE FROM cache")
        self._current_size = 0

    def stats(self) -> CacheStats:
        """Return entry count, stored bytes, bound and enabled flag."""
        count, total = self._conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(size), 0) FROM cache"
        ).fetchone()
        return CacheStats(
            entries=int(count),
            total_size=int(total),
            max_size=self._max_size,
            enabled=self._enabled,
        )

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def set_max_size(self, max_size: int) -> None:
        """Change the size bound (applies from the next set)."""
        if max_size < 0:
            raise ConfigurationError("Max size must be 0 or more")
        self._max_size = max_size

    def force_cleanup(self) -> None:
        """Sweep expired entries now."""
        self._cleanup_expired()

    def close(self) -> None:
        """Close the database connection (idempotent)."""
        if not self._closed:
            self._conn.close()
            self._closed = True

    def __enter__(self) -> CacheService:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _is_expired(self, timestamp: float) -> bool:
        return self._ttl > 0 and self._clock() - timestamp >= self._ttl

    def _cleanup_expired(self) -> None:
        if self._ttl == 0:
            return
        cutoff = self._clock() - self._ttl
        with self._conn:
            (expired_size,) = self._conn.execute(
                "SELECT COALESCE(SUM(size), 0) FROM cache WHERE timestamp <= ?", (cutoff,)
            ).fetchone()
            if not expired_size:
                return
            self._conn.execute("DELETE FROM cache WHERE timestamp <= ?", (cutoff,))
        self._current_size -= int(expired_size)

    def _evict_if_needed(self, key: str, size_delta: int) -> None:
        overflow = self._current_size + size_delta - self._max_size
        if overflow <= 0:
            return

        to_free = overflow + 1
        freed = 0
        victims: list[tuple[str]] = []
        cursor = self._conn.execute(
            "SELECT key, size FROM cache WHERE key != ? ORDER BY timestamp ASC, rowid ASC",
            (key,),
        )
        for victim_key, victim_size in cursor:
            victims.append((victim_key,))
            freed += int(victim_size)
            if freed >= to_free:
                break
        cursor.close()

        if not victims:
            return
        with self._conn:
            self._conn.executemany("DELETE FROM cache WHERE key = ?", victims)
        self._current_size -= freed
        logger.debug("Evicted %d cache entries (%d bytes)", len(victims), freed)
