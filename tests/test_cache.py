# SPDX-License-Identifier: Apache-2.0
"""Tests for the SQLite translation cache."""

import json
import os
import sqlite3
import sys
from pathlib import Path

import pytest

from deepl_cli.api.errors import ConfigurationError
from deepl_cli.storage.cache import NONE_SENTINEL, CacheService

# json.dumps("x" * 58) is 60 bytes including the quotes
SIXTY_BYTES = "x" * 58


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "cache.db"


class TestCacheBasics:
    """Test get/set/delete."""

    def test_round_trip(self, db_path: Path, clock) -> None:
        """A stored value is returned unchanged."""
        with CacheService(db_path, clock=clock) as cache:
            value = {"text": "Hallo", "detected_source_lang": "en", "n": [1, 2]}
            cache.set("k", value)
            assert cache.get("k") == value

    def test_missing_key_returns_default(self, db_path: Path) -> None:
        """Absent keys return the default."""
        with CacheService(db_path) as cache:
            assert cache.get("missing") is None
            assert cache.get("missing", default="fallback") == "fallback"

    def test_overwrite(self, db_path: Path) -> None:
        """Setting an existing key replaces its value and size."""
        with CacheService(db_path) as cache:
            cache.set("k", "first")
            cache.set("k", "second value")
            assert cache.get("k") == "second value"
            stats = cache.stats()
            assert stats.entries == 1
            assert stats.total_size == len(json.dumps("second value"))

    def test_delete(self, db_path: Path) -> None:
        """delete removes one entry."""
        with CacheService(db_path) as cache:
            cache.set("a", 1)
            cache.set("b", 2)
            cache.delete("a")
            cache.delete("not-there")
            assert cache.get("a") is None
            assert cache.get("b") == 2

    def test_none_value_is_stored(self, db_path: Path) -> None:
        """None is stored as a raw sentinel and read back as None."""
        with CacheService(db_path) as cache:
            cache.set("k", None)
            assert cache.get("k", default="absent") is None

        conn = sqlite3.connect(db_path)
        try:
            (raw,) = conn.execute("SELECT value FROM cache WHERE key = 'k'").fetchone()
        finally:
            conn.close()
        assert raw == NONE_SENTINEL

    def test_persists_across_instances(self, db_path: Path) -> None:
        """Entries survive reopening the database."""
        with CacheService(db_path) as cache:
            cache.set("k", "v")
        with CacheService(db_path) as cache:
            assert cache.get("k") == "v"
            assert cache.stats().total_size == len(json.dumps("v"))


class TestEviction:
    """Test the size bound."""

    def test_oldest_entry_evicted(self, db_path: Path, clock) -> None:
        """Adding a 60 B entry to a full 100 B cache evicts the older entry."""
        with CacheService(db_path, max_size=100, clock=clock) as cache:
            cache.set("a", SIXTY_BYTES)
            clock.advance(1)
            cache.set("b", SIXTY_BYTES)

            assert cache.get("a") is None
            assert cache.get("b") == SIXTY_BYTES
            assert cache.stats().total_size == 60

    def test_size_never_exceeds_bound(self, db_path: Path, clock) -> None:
        """Total stored bytes stay within max_size after every set."""
        with CacheService(db_path, max_size=500, clock=clock) as cache:
            for i in range(50):
                clock.advance(1)
                cache.set(f"key-{i}", "v" * (i % 7 * 10 + 5))
                assert cache.stats().total_size <= 500

    def test_key_being_set_is_not_evicted(self, db_path: Path, clock) -> None:
        """Growing an entry evicts other entries, never the entry itself."""
        with CacheService(db_path, max_size=100, clock=clock) as cache:
            cache.set("a", SIXTY_BYTES)
            clock.advance(1)
            cache.set("b", "y" * 28)  # 30 bytes
            clock.advance(1)
            cache.set("a", "x" * 70)  # 72 bytes

            assert cache.get("b") is None
            assert cache.get("a") == "x" * 70
            assert cache.stats().total_size == 72

    def test_replacing_same_size_does_not_evict(self, db_path: Path, clock) -> None:
        """Rewriting a key with an equal-size value only counts the difference."""
        with CacheService(db_path, max_size=130, clock=clock) as cache:
            cache.set("a", SIXTY_BYTES)
            clock.advance(1)
            cache.set("b", SIXTY_BYTES)
            clock.advance(1)
            cache.set("b", "z" * 58)

            assert cache.get("a") == SIXTY_BYTES
            assert cache.get("b") == "z" * 58

    def test_eviction_order_by_write_time(self, db_path: Path, clock) -> None:
        """Entries are evicted oldest first; reads do not refresh them."""
        with CacheService(db_path, max_size=130, clock=clock) as cache:
            cache.set("a", SIXTY_BYTES)
            clock.advance(1)
            cache.set("b", SIXTY_BYTES)
            clock.advance(1)
            assert cache.get("a") == SIXTY_BYTES
            cache.set("c", SIXTY_BYTES)

            assert cache.get("a") is None
            assert cache.get("b") == SIXTY_BYTES
            assert cache.get("c") == SIXTY_BYTES

    def test_set_max_size(self, db_path: Path, clock) -> None:
        """A lowered bound applies from the next set."""
        with CacheService(db_path, max_size=1000, clock=clock) as cache:
            cache.set("a", SIXTY_BYTES)
            clock.advance(1)
            cache.set("b", SIXTY_BYTES)
            cache.set_max_size(100)
            clock.advance(1)
            cache.set("c", "c")

            assert cache.stats().total_size <= 100
            assert cache.get("c") == "c"


class TestExpiry:
    """Test TTL expiry."""

    def test_entry_expires(self, db_path: Path, clock) -> None:
        """An entry is visible before its TTL and gone at the TTL."""
        with CacheService(db_path, ttl=10, clock=clock) as cache:
            cache.set("k", "v")
            clock.advance(9)
            assert cache.get("k") == "v"
            clock.advance(1)
            assert cache.get("k") is None
            assert cache.stats().entries == 0

    def test_sweep_on_set(self, db_path: Path, clock) -> None:
        """Writing sweeps expired entries."""
        with CacheService(db_path, ttl=10, clock=clock) as cache:
            cache.set("old", "v")
            clock.advance(20)
            cache.set("new", "v")
            stats = cache.stats()
            assert stats.entries == 1
            assert stats.total_size == len(json.dumps("v"))

    def test_zero_ttl_never_expires(self, db_path: Path, clock) -> None:
        """ttl=0 disables expiry."""
        with CacheService(db_path, ttl=0, clock=clock) as cache:
            cache.set("k", "v")
            clock.advance(10 * 365 * 24 * 3600)
            assert cache.get("k") == "v"

    def test_force_cleanup(self, db_path: Path, clock) -> None:
        """force_cleanup sweeps without a get or set."""
        with CacheService(db_path, ttl=5, clock=clock) as cache:
            cache.set("k", "v")
            clock.advance(5)
            cache.force_cleanup()
            assert cache.stats().entries == 0


class TestIntegrity:
    """Test corruption handling and guards."""

    def test_corrupted_entry_removed(self, db_path: Path) -> None:
        """An entry that fails to deserialize is dropped and reported absent."""
        with CacheService(db_path) as cache:
            cache.set("k", "v")
            with cache._conn:
                cache._conn.execute("UPDATE cache SET value = '{not json' WHERE key = 'k'")

            assert cache.get("k", default="absent") == "absent"
            assert cache.stats().entries == 0

    def test_guard_rejects_wrong_shape(self, db_path: Path) -> None:
        """A value rejected by the guard is dropped and reported absent."""
        with CacheService(db_path) as cache:
            cache.set("k", ["not", "a", "dict"])
            assert cache.get("k", guard=lambda v: isinstance(v, dict)) is None
            assert cache.get("k") is None

    def test_guard_accepts(self, db_path: Path) -> None:
        """A value accepted by the guard is returned."""
        with CacheService(db_path) as cache:
            cache.set("k", {"text": "x"})
            assert cache.get("k", guard=lambda v: isinstance(v, dict)) == {"text": "x"}

    def test_corrupted_database_recreated(self, db_path: Path) -> None:
        """A database file that is not SQLite is replaced by a fresh one."""
        db_path.parent.mkdir(parents=True)
        db_path.write_bytes(b"this is definitely not a sqlite database file" * 10)

        with CacheService(db_path) as cache:
            cache.set("k", "v")
            assert cache.get("k") == "v"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_permissions(self, db_path: Path) -> None:
        """The database file is readable by the owner only."""
        with CacheService(db_path):
            pass
        assert os.stat(db_path).st_mode & 0o777 == 0o600


class TestCacheControl:
    """Test enable/disable, clear, stats and close."""

    def test_disabled_cache_is_inert(self, db_path: Path) -> None:
        """A disabled cache stores nothing and returns the default."""
        with CacheService(db_path) as cache:
            cache.set("k", "v")
            cache.disable()
            assert not cache.enabled
            cache.set("other", "v")
            assert cache.get("k", default="absent") == "absent"

            cache.enable()
            assert cache.get("k") == "v"
            assert cache.get("other") is None

    def test_clear(self, db_path: Path) -> None:
        """clear removes every entry."""
        with CacheService(db_path) as cache:
            cache.set("a", 1)
            cache.set("b", 2)
            cache.clear()
            stats = cache.stats()
            assert stats.entries == 0
            assert stats.total_size == 0

    def test_stats(self, db_path: Path) -> None:
        """stats reports entries, bytes, bound and state."""
        with CacheService(db_path, max_size=4096) as cache:
            cache.set("a", "abc")
            stats = cache.stats()
            assert stats.entries == 1
            assert stats.total_size == 5
            assert stats.max_size == 4096
            assert stats.enabled is True

    def test_close_is_idempotent(self, db_path: Path) -> None:
        """Closing twice is harmless."""
        cache = CacheService(db_path)
        cache.close()
        cache.close()

    def test_invalid_configuration(self, db_path: Path) -> None:
        """Negative bounds are configuration errors."""
        with pytest.raises(ConfigurationError, match="Max size must be 0 or more"):
            CacheService(db_path, max_size=-1)
        with pytest.raises(ConfigurationError):
            CacheService(db_path, ttl=-1)

    def test_zero_max_size_accepted(self, db_path: Path) -> None:
        """A zero bound is valid; only negative bounds are rejected."""
        with CacheService(db_path, max_size=0) as cache:
            assert cache.stats().max_size == 0
            with pytest.raises(ConfigurationError, match="Max size must be 0 or more"):
                cache.set_max_size(-5)

    def test_default_location(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without a path the cache lives in DEEPL_CONFIG_DIR."""
        monkeypatch.setenv("DEEPL_CONFIG_DIR", str(tmp_path / "conf"))
        with CacheService() as cache:
            assert cache.db_path == tmp_path / "conf" / "cache.db"
            assert cache.db_path.exists()
