"""Daily quota accounting for gallery creation.

Every successful first-time creation bumps a counter stored under
``quota:YYYY-MM-DD`` (UTC).  The counter is advisory: it backs the
``/api/quota`` monitoring endpoint and is never consulted to refuse a write.

The increment is a plain read-modify-write against the store.  Concurrent
creations can therefore lose updates and under-count.  Each write also
re-arms the counter's 24 hour expiry, so the window slides with the latest
write instead of ending at UTC midnight.  Both behaviours are long-standing
and kept as they are.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from imagegallery.core.kv_store import Clock, KVStore

logger = logging.getLogger(__name__)

QUOTA_KEY_PREFIX = "quota:"


@dataclass
class QuotaStatus:
    """Snapshot of today's quota usage."""

    date: str
    used: int
    limit: int
    remaining: int
    percentage: str
    warning: bool

    def to_dict(self) -> dict:
        return asdict(self)


class QuotaTracker:
    """Read and increment the per-day creation counter.

    Args:
        store: Backing key-value store.
        limit: Daily creation limit.
        warn_ratio: Fraction of *limit* at which ``warning`` turns on.
        ttl_seconds: Expiry applied on every counter write.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        store: KVStore,
        *,
        limit: int = 1000,
        warn_ratio: float = 0.98,
        ttl_seconds: int = 86400,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self.limit = limit
        self.ttl_seconds = ttl_seconds
        self.warn_at = round(limit * warn_ratio)
        self._clock = clock

    def date_key(self) -> str:
        """Return the current UTC calendar day as ``YYYY-MM-DD``."""
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).strftime("%Y-%m-%d")

    def _read_count(self, key: str) -> int:
        raw = self._store.get(key)
        try:
            return int(raw or 0)
        except ValueError:
            logger.warning(f"Ignoring malformed quota counter {key!r}: {raw!r}")
            return 0

    def increment(self) -> int:
        """Add one to today's counter and return the new value.

        Raises:
            KVStoreError: If the store read or write fails.
        """
        key = QUOTA_KEY_PREFIX + self.date_key()
        count = self._read_count(key) + 1
        self._store.put(key, str(count), expiration_ttl=self.ttl_seconds)
        return count

    def read(self) -> QuotaStatus:
        """Return today's usage against the limit.

        Raises:
            KVStoreError: If the store read fails.
        """
        date = self.date_key()
        used = self._read_count(QUOTA_KEY_PREFIX + date)
        return QuotaStatus(
            date=date,
            used=used,
            limit=self.limit,
            remaining=max(0, self.limit - used),
            percentage=f"{used / self.limit * 100:.1f}",
            warning=used >= self.warn_at,
        )
