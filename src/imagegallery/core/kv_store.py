"""Key-value storage with per-key expiration.

The gallery service keeps all of its state in a flat string-to-string map
whose entries may carry a time-to-live.  Expired keys are never returned by
``get`` or ``list_keys``; to callers they simply stop existing.
The API runs :meth:`KVStore.purge_expired` periodically for either backend.

Two backends are provided:

- :class:`MemoryKVStore` keeps everything in a dict.  It is used by the test
  suite and by the ``memory`` backend setting.  Expired entries are dropped
  when keys are listed and by :meth:`purge_expired`.
- :class:`SQLiteKVStore` persists to a single SQLite table.  Expiry is
  enforced at read time and dead rows are removed by :meth:`purge_expired`.

Failures are reported as :class:`KVStoreError` so that callers can tell a
broken store apart from a missing key (``None``).  Writes rejected for
capacity reasons raise the :class:`KVQuotaError` subclass.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KVStoreError(Exception):
    """A store operation failed."""


class KVQuotaError(KVStoreError):
    """The store rejected a write because it is over quota or capacity."""


class KVStore(ABC):
    """Interface shared by all key-value backends."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the live value stored under *key*, or ``None``."""

    @abstractmethod
    def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None:
        """Store *value* under *key*, replacing any previous value.

        Args:
            key: Key to write.
            value: String value.
            expiration_ttl: Seconds until the key expires.  ``None`` keeps
                the key until it is overwritten.
        """

    @abstractmethod
    def list_keys(self, *, prefix: str = "", limit: int = 1000) -> list[str]:
        """Return up to *limit* live keys starting with *prefix*, sorted."""

    @abstractmethod
    def purge_expired(self) -> int:
        """Delete expired entries and return how many were removed."""

    def get_json(self, key: str):
        """Return the decoded JSON value under *key*, or ``None``.

        Raises:
            KVStoreError: If the stored value is not valid JSON.
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise KVStoreError(f"Value under {key!r} is not valid JSON: {exc}") from exc


class MemoryKVStore(KVStore):
    """Thread-safe in-process store.

    Args:
        clock: Returns the current time in seconds.  Tests pass a fake clock
            to move past expirations.
        max_keys: Optional capacity; creating a key beyond it raises
            :class:`KVQuotaError`.
    """

    def __init__(self, clock: Clock = time.time, max_keys: int | None = None) -> None:
        self._clock = clock
        self._max_keys = max_keys
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def _is_live(self, expires_at: float | None, now: float) -> bool:
        return expires_at is None or expires_at > now

    def _drop_expired(self, now: float) -> int:
        # Caller holds the lock.
        expired = [key for key, (_, exp) in self._data.items() if not self._is_live(exp, now)]
        for key in expired:
            del self._data[key]
        return len(expired)

    def get(self, key: str) -> str | None:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if not self._is_live(expires_at, self._clock()):
                del self._data[key]
                return None
            return value

    def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None:
        if not isinstance(value, str):
            raise KVStoreError(f"Values must be strings, got {type(value).__name__}")
        with self._lock:
            now = self._clock()
            if self._max_keys is not None and key not in self._data:
                self._drop_expired(now)
                if len(self._data) >= self._max_keys:
                    raise KVQuotaError(f"KV put() limit exceeded: quota of {self._max_keys} keys")
            expires_at = now + expiration_ttl if expiration_ttl is not None else None
            self._data[key] = (value, expires_at)

    def list_keys(self, *, prefix: str = "", limit: int = 1000) -> list[str]:
        with self._lock:
            self._drop_expired(self._clock())
            keys = sorted(key for key in self._data if key.startswith(prefix))
        return keys[:limit]

    def purge_expired(self) -> int:
        """Delete expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            removed = self._drop_expired(self._clock())
        if removed:
            logger.info(f"Purged {removed} expired key(s) from memory")
        return removed

    def __len__(self) -> int:
        """Number of stored entries, including expired ones not yet purged."""
        with self._lock:
            return len(self._data)

    def expiration(self, key: str) -> float | None:
        """Return the absolute expiry time of *key*, or ``None``."""
        with self._lock:
            item = self._data.get(key)
            return item[1] if item else None


class SQLiteKVStore(KVStore):
    """Manage the key-value table in a SQLite database.

    Each operation opens its own connection, so a single instance can be
    shared by the thread pool that fetches listings in parallel.
    """

    def __init__(
        self,
        db_path: Path,
        clock: Clock = time.time,
        max_keys: int | None = None,
    ) -> None:
        """Initialize the store and create the schema if needed.

        Args:
            db_path: Path to SQLite database file
            clock: Returns the current time in seconds
            max_keys: Optional capacity; see :class:`MemoryKVStore`
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._max_keys = max_keys
        self._initialize_db()
        logger.info(f"Initialized key-value store at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=10.0)

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        expires_at REAL
                    )
                    """)

                # The sweep deletes by expiry, so index it
                cursor.execute("""
                    CREATE INDEX IF NOT EXISTS idx_kv_expires_at
                    ON kv(expires_at)
                    """)

                conn.commit()
        except sqlite3.Error as exc:
            raise _translate_error(exc) from exc

    def get(self, key: str) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT value FROM kv
                    WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)
                    """,
                    (key, self._clock()),
                ).fetchone()
        except sqlite3.Error as exc:
            raise _translate_error(exc) from exc
        return row[0] if row else None

    def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None:
        if not isinstance(value, str):
            raise KVStoreError(f"Values must be strings, got {type(value).__name__}")
        now = self._clock()
        expires_at = now + expiration_ttl if expiration_ttl is not None else None

        try:
            with self._connect() as conn:
                if self._max_keys is not None:
                    live = conn.execute(
                        """
                        SELECT COUNT(*) FROM kv
                        WHERE key != ? AND (expires_at IS NULL OR expires_at > ?)
                        """,
                        (key, now),
                    ).fetchone()[0]
                    if live >= self._max_keys:
                        raise KVQuotaError(
                            f"KV put() limit exceeded: quota of {self._max_keys} keys"
                        )

                # Replacing the row also replaces its expiry
                conn.execute(
                    """
                    INSERT OR REPLACE INTO kv (key, value, expires_at)
                    VALUES (?, ?, ?)
                    """,
                    (key, value, expires_at),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise _translate_error(exc) from exc

    def list_keys(self, *, prefix: str = "", limit: int = 1000) -> list[str]:
        # substr() instead of LIKE: LIKE is case-insensitive and has wildcards
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT key FROM kv
                    WHERE substr(key, 1, ?) = ?
                      AND (expires_at IS NULL OR expires_at > ?)
                    ORDER BY key
                    LIMIT ?
                    """,
                    (len(prefix), prefix, self._clock(), limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise _translate_error(exc) from exc
        return [row[0] for row in rows]

    def purge_expired(self) -> int:
        """Delete expired rows.

        Returns:
            Number of rows removed.
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
                    (self._clock(),),
                )
                conn.commit()
                removed = cursor.rowcount
        except sqlite3.Error as exc:
            raise _translate_error(exc) from exc

        if removed:
            logger.info(f"Purged {removed} expired key(s) from {self.db_path}")
        return removed


def _translate_error(exc: sqlite3.Error) -> KVStoreError:
    """Map a sqlite3 error onto the store error hierarchy."""
    message = str(exc)
    if isinstance(exc, sqlite3.OperationalError) and "full" in message.lower():
        return KVQuotaError(f"Storage quota exhausted: {message}")
    return KVStoreError(message)


def create_store(backend: str, db_path: Path, *, max_keys: int | None = None) -> KVStore:
    """Build the store selected by the ``kv_backend`` setting.

    Args:
        backend: ``"sqlite"`` or ``"memory"``.
        db_path: Database file for the SQLite backend.
        max_keys: Optional store capacity.

    Raises:
        ValueError: For an unknown backend name.
    """
    if backend == "sqlite":
        return SQLiteKVStore(db_path, max_keys=max_keys)
    if backend == "memory":
        return MemoryKVStore(max_keys=max_keys)
    raise ValueError(f"Unknown key-value backend: {backend}")
