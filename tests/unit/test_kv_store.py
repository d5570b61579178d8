"""Tests for imagegallery.core.kv_store: key-value backends with expiry.

Both backends run through the same behavioural tests.  Backend-specific
tests cover persistence, the expired-entry sweep and error translation.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from imagegallery.core.kv_store import (
    KVQuotaError,
    KVStoreError,
    MemoryKVStore,
    SQLiteKVStore,
    _translate_error,
    create_store,
)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, temp_dir: Path, fake_clock):
    """Yield each backend in turn, sharing the fake clock."""
    if request.param == "memory":
        return MemoryKVStore(clock=fake_clock)
    return SQLiteKVStore(temp_dir / "kv.sqlite3", clock=fake_clock)


class TestGetPut:
    def test_missing_key_returns_none(self, store):
        assert store.get("nope") is None

    def test_put_then_get(self, store):
        store.put("a", "1")
        assert store.get("a") == "1"

    def test_put_replaces_value(self, store):
        store.put("a", "1")
        store.put("a", "2")
        assert store.get("a") == "2"

    def test_non_string_value_rejected(self, store):
        with pytest.raises(KVStoreError):
            store.put("a", 1)

    def test_get_json(self, store):
        store.put("doc", '{"id": "x", "n": [1, 2]}')
        assert store.get_json("doc") == {"id": "x", "n": [1, 2]}

    def test_get_json_missing(self, store):
        assert store.get_json("doc") is None

    def test_get_json_invalid_raises_store_error(self, store):
        store.put("doc", "{not json")
        with pytest.raises(KVStoreError):
            store.get_json("doc")


class TestExpiration:
    def test_key_live_before_ttl(self, store, fake_clock):
        store.put("a", "1", expiration_ttl=60)
        fake_clock.advance(59)
        assert store.get("a") == "1"

    def test_key_gone_after_ttl(self, store, fake_clock):
        store.put("a", "1", expiration_ttl=60)
        fake_clock.advance(60)
        assert store.get("a") is None

    def test_no_ttl_never_expires(self, store, fake_clock):
        store.put("a", "1")
        fake_clock.advance(10 * 365 * 86400)
        assert store.get("a") == "1"

    def test_rewrite_rearms_ttl(self, store, fake_clock):
        store.put("a", "1", expiration_ttl=60)
        fake_clock.advance(50)
        store.put("a", "2", expiration_ttl=60)
        fake_clock.advance(50)
        assert store.get("a") == "2"

    def test_expired_keys_not_listed(self, store, fake_clock):
        store.put("gallery:old", "{}", expiration_ttl=10)
        store.put("gallery:new", "{}", expiration_ttl=100)
        fake_clock.advance(20)
        assert store.list_keys(prefix="gallery:") == ["gallery:new"]


class TestListKeys:
    def test_prefix_filter_and_order(self, store):
        for key in ["gallery:b", "quota:2026-01-15", "gallery:a", "gallery:c"]:
            store.put(key, "x")
        assert store.list_keys(prefix="gallery:") == ["gallery:a", "gallery:b", "gallery:c"]

    def test_limit(self, store):
        for i in range(5):
            store.put(f"gallery:{i}", "x")
        assert store.list_keys(prefix="gallery:", limit=2) == ["gallery:0", "gallery:1"]

    def test_prefix_is_literal(self, store):
        store.put("gallery_x", "x")
        store.put("gallery%y", "x")
        store.put("gallery:z", "x")
        assert store.list_keys(prefix="gallery:") == ["gallery:z"]


class TestCapacity:
    def test_memory_capacity(self, fake_clock):
        store = MemoryKVStore(clock=fake_clock, max_keys=1)
        store.put("a", "1")
        store.put("a", "2")  # overwrite does not need new capacity
        with pytest.raises(KVQuotaError):
            store.put("b", "1")

    def test_sqlite_capacity(self, temp_dir: Path, fake_clock):
        store = SQLiteKVStore(temp_dir / "kv.sqlite3", clock=fake_clock, max_keys=1)
        store.put("a", "1")
        store.put("a", "2")
        with pytest.raises(KVQuotaError):
            store.put("b", "1")

    def test_expired_keys_free_capacity(self, fake_clock):
        store = MemoryKVStore(clock=fake_clock, max_keys=1)
        store.put("a", "1", expiration_ttl=10)
        fake_clock.advance(11)
        store.put("b", "1")
        assert store.get("b") == "1"


class TestMemorySpecifics:
    def test_listing_drops_expired_entries(self, fake_clock):
        store = MemoryKVStore(clock=fake_clock)
        for i in range(100):
            store.put(f"gallery:{i}", "{}", expiration_ttl=10)
        fake_clock.advance(20)

        assert store.list_keys(prefix="gallery:") == []
        assert len(store) == 0

    def test_purge_expired(self, fake_clock):
        store = MemoryKVStore(clock=fake_clock)
        store.put("quota:2026-01-14", "3", expiration_ttl=10)
        store.put("keep", "1", expiration_ttl=100)
        store.put("forever", "1")
        fake_clock.advance(20)

        assert store.purge_expired() == 1
        assert len(store) == 2
        assert store.purge_expired() == 0


class TestSQLiteSpecifics:
    def test_data_persists_across_instances(self, temp_dir: Path, fake_clock):
        path = temp_dir / "kv.sqlite3"
        SQLiteKVStore(path, clock=fake_clock).put("a", "1", expiration_ttl=100)
        assert SQLiteKVStore(path, clock=fake_clock).get("a") == "1"

    def test_purge_expired(self, temp_dir: Path, fake_clock):
        store = SQLiteKVStore(temp_dir / "kv.sqlite3", clock=fake_clock)
        store.put("old", "1", expiration_ttl=10)
        store.put("keep", "1", expiration_ttl=100)
        store.put("forever", "1")
        fake_clock.advance(20)

        assert store.purge_expired() == 1
        with sqlite3.connect(store.db_path) as conn:
            keys = sorted(row[0] for row in conn.execute("SELECT key FROM kv"))
        assert keys == ["forever", "keep"]

    def test_creates_parent_directory(self, temp_dir: Path):
        path = temp_dir / "nested" / "dir" / "kv.sqlite3"
        SQLiteKVStore(path)
        assert path.parent.is_dir()

    def test_disk_full_maps_to_quota_error(self):
        err = _translate_error(sqlite3.OperationalError("database or disk is full"))
        assert isinstance(err, KVQuotaError)

    def test_other_errors_map_to_store_error(self):
        err = _translate_error(sqlite3.OperationalError("database is locked"))
        assert type(err) is KVStoreError


class TestCreateStore:
    def test_memory(self, temp_dir: Path):
        assert isinstance(create_store("memory", temp_dir / "x.db"), MemoryKVStore)

    def test_sqlite(self, temp_dir: Path):
        assert isinstance(create_store("sqlite", temp_dir / "x.db"), SQLiteKVStore)

    def test_unknown_backend(self, temp_dir: Path):
        with pytest.raises(ValueError):
            create_store("redis", temp_dir / "x.db")
