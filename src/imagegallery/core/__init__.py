"""Core gallery lifecycle and quota logic.

Architecture Overview
---------------------
1. **Configuration** (config.py): Pydantic Settings, IMAGEGALLERY_ prefix.
2. **Storage** (kv_store.py): key-value store with per-key expiry,
   in-memory and SQLite backends.
3. **Galleries** (gallery_store.py, identifiers.py): idempotent creation,
   lookup and listing of gallery records.
4. **Quota** (quota.py): best-effort daily creation counter.
5. **Layouts** (layout.py): deterministic cover layout per gallery.

Usage Example
-------------
    from imagegallery.core import GalleryStore, MemoryKVStore, QuotaTracker

    store = MemoryKVStore()
    galleries = GalleryStore(store, QuotaTracker(store))
    result = galleries.create(["https://host/a.jpg"], title="Trip")
"""

from imagegallery.core.config import GalleryConfig, config
from imagegallery.core.gallery_store import (
    CreateResult,
    CreateStatus,
    GalleryCheck,
    GalleryRecord,
    GalleryStore,
    ThemeColors,
)
from imagegallery.core.kv_store import (
    KVQuotaError,
    KVStore,
    KVStoreError,
    MemoryKVStore,
    SQLiteKVStore,
)
from imagegallery.core.layout import CoverLayout, Layout, select_layout
from imagegallery.core.quota import QuotaStatus, QuotaTracker

__all__ = [
    "CoverLayout",
    "CreateResult",
    "CreateStatus",
    "GalleryCheck",
    "GalleryConfig",
    "GalleryRecord",
    "GalleryStore",
    "KVQuotaError",
    "KVStore",
    "KVStoreError",
    "Layout",
    "MemoryKVStore",
    "QuotaStatus",
    "QuotaTracker",
    "SQLiteKVStore",
    "ThemeColors",
    "config",
    "select_layout",
]
