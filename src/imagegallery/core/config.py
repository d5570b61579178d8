"""Configuration management for the Image Gallery service.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the IMAGEGALLERY_
prefix, allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (IMAGEGALLERY_* prefix)
2. .env file in the project root
3. Default values defined in GalleryConfig

Example .env file:
    IMAGEGALLERY_KV_BACKEND=sqlite
    IMAGEGALLERY_DB_PATH=data/gallery.sqlite3
    IMAGEGALLERY_ADMIN_TOKEN=change-me
    IMAGEGALLERY_PUBLIC_BASE_URL=https://gallery.example.com

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from imagegallery.core.config import config

    print(config.gallery_ttl_days)
    print(config.quota_limit)

Retention and Quota
-------------------
- Galleries expire ``gallery_ttl_days`` after creation (30 by default).
- The daily quota counter expires ``quota_ttl_seconds`` after its latest
  write (24 hours by default, re-armed on every increment).
- ``quota_warn_ratio`` of ``quota_limit`` raises the quota warning flag
  (980 of 1000 by default).
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


class GalleryConfig(BaseSettings):
    """Main configuration for the Image Gallery service.

    Values are loaded from environment variables with the IMAGEGALLERY_
    prefix, with fallback to defaults defined here.

    Attributes
    ----------
    Storage:
        kv_backend : Literal["sqlite", "memory"]
            Key-value backend.  ``memory`` loses all data on restart.
        db_path : Path
            SQLite database file used by the ``sqlite`` backend.
        kv_max_keys : int | None
            Optional capacity of the store.  Writes creating new keys beyond
            it are rejected with a quota error.
        sweep_interval_seconds : int
            How often expired rows are purged from the SQLite backend.

    Retention and quota:
        gallery_ttl_days : int
            Lifetime of a gallery record.
        quota_limit : int
            Daily gallery creation limit reported by the quota endpoint.
        quota_warn_ratio : float
            Fraction of ``quota_limit`` at which ``warning`` becomes true.
        quota_ttl_seconds : int
            Sliding expiry of the daily quota counter.

    Galleries:
        default_title, default_author : str
            Placeholders used when a creation request omits them.
        list_default_limit, list_max_limit : int
            Default and hard cap for the explore listing.
        list_max_workers : int
            Parallel record fetches when building a listing.

    HTTP:
        admin_token : str | None
            Bearer token guarding ``/api/quota``.  ``None`` leaves it open.
        public_base_url : str | None
            Origin used in gallery URLs.  Falls back to the request origin.
        proxy_images : bool
            Route gallery images through ``/img`` when rendering pages.
        proxy_timeout_seconds : float
            Upstream timeout of the image proxy.
        server_host, server_port, log_level
            uvicorn settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMAGEGALLERY_",
        case_sensitive=False,
    )

    # Storage
    kv_backend: Literal["sqlite", "memory"] = Field(
        default="sqlite",
        description="Key-value store backend (sqlite or memory)",
    )
    db_path: Path = Field(
        default=Path("data/gallery.sqlite3"),
        description="SQLite database file for the sqlite backend",
    )
    kv_max_keys: int | None = Field(
        default=None,
        description="Optional maximum number of live keys in the store",
        ge=1,
    )
    sweep_interval_seconds: int = Field(
        default=3600,
        description="Interval between purges of expired keys",
        ge=1,
    )

    # Retention and quota
    gallery_ttl_days: int = Field(default=30, ge=1)
    quota_limit: int = Field(
        default=1000,
        description="Daily gallery creation limit",
        ge=1,
    )
    quota_warn_ratio: float = Field(
        default=0.98,
        description="Fraction of the daily limit that triggers the warning flag",
        gt=0.0,
        le=1.0,
    )
    quota_ttl_seconds: int = Field(default=86400, ge=1)

    # Galleries
    default_title: str = Field(default="Gallery")
    default_author: str = Field(default="Unknown")
    list_default_limit: int = Field(default=50, ge=1)
    list_max_limit: int = Field(default=100, ge=1)
    list_max_workers: int = Field(default=16, ge=1, le=128)

    # HTTP
    admin_token: str | None = Field(
        default=None,
        description="Bearer token for /api/quota (unset = no check)",
    )
    public_base_url: str | None = Field(
        default=None,
        description="Public origin used in gallery URLs, e.g. https://gallery.example.com",
    )
    proxy_images: bool = Field(
        default=False,
        description="Serve gallery images through the /img proxy",
    )
    proxy_timeout_seconds: float = Field(default=20.0, gt=0.0)
    templates_dir: Path = Field(
        default=_PACKAGE_DIR / "templates",
        description="Directory holding the Jinja2 page templates",
    )
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8787,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["critical", "error", "warning", "info", "debug"] = Field(
        default="info",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the database directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        if self.kv_backend == "sqlite":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def gallery_ttl_seconds(self) -> int:
        """Gallery lifetime in seconds, as handed to the store."""
        return self.gallery_ttl_days * 24 * 60 * 60


# Global configuration instance, loaded from IMAGEGALLERY_* variables and .env.
config = GalleryConfig()
