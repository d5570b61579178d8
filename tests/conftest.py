"""Shared pytest fixtures for Image Gallery tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from imagegallery.core.config import GalleryConfig
from imagegallery.core.gallery_store import GalleryStore
from imagegallery.core.kv_store import MemoryKVStore
from imagegallery.core.quota import QuotaTracker

# 2026-01-15 12:00:00 UTC
START_TIME = 1_768_478_400.0


class FakeClock:
    """Controllable time source returning seconds since the epoch."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> GalleryConfig:
    """Create a test configuration using the in-memory backend.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        GalleryConfig instance for testing
    """
    return GalleryConfig(
        _env_file=None,
        kv_backend="memory",
        db_path=str(temp_dir / "gallery.sqlite3"),
        admin_token=None,
        public_base_url=None,
        proxy_images=False,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(fake_clock: FakeClock) -> MemoryKVStore:
    return MemoryKVStore(clock=fake_clock)


@pytest.fixture
def quota_tracker(memory_store: MemoryKVStore, fake_clock: FakeClock) -> QuotaTracker:
    return QuotaTracker(memory_store, clock=fake_clock)


@pytest.fixture
def gallery_store(
    memory_store: MemoryKVStore,
    quota_tracker: QuotaTracker,
    fake_clock: FakeClock,
) -> GalleryStore:
    """Gallery store over the in-memory backend with a fake clock."""
    return GalleryStore(memory_store, quota_tracker, clock=fake_clock)


@pytest.fixture
def sample_images() -> list[str]:
    return [
        "https://img.example.com/a.jpg",
        "https://img.example.com/b.jpg",
        "https://img.example.com/c.png",
    ]


@pytest.fixture
def test_client(test_config: GalleryConfig, memory_store: MemoryKVStore, fake_clock: FakeClock):
    """FastAPI TestClient wired to the in-memory store.

    Services are installed on ``app.state`` before the client starts, so the
    application lifespan keeps them instead of building its own.
    """
    from fastapi.testclient import TestClient

    from imagegallery.api.main import app, configure_services

    configure_services(app, test_config, store=memory_store, clock=fake_clock)
    with TestClient(app) as client:
        yield client
