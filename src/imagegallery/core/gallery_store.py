"""Gallery record storage on top of the key-value store.

This module owns the gallery lifecycle so that route handlers in
``imagegallery.api.main`` only deal with HTTP concerns.

The lifecycle is deliberately simple:

- a gallery is written once, as one JSON value under ``gallery:<id>``
- it is never updated in place and there is no delete path
- the store's time-to-live removes it 30 days after creation

Creation is idempotent per identifier: when a record already exists under
the requested ``gallery_id`` the existing record wins and nothing is
written.  The existence check and the write are two separate store calls,
so two concurrent requests for the same new identifier can both write and
the later one silently wins (each also counts toward the daily quota).  The
store offers no compare-and-swap, so this race is accepted.

Listings are best-effort snapshots.  Records are fetched independently and
in parallel after the key listing; entries that expire, fail to load or do
not parse in between are dropped from the result instead of failing it.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field, ValidationError

from imagegallery.core.errors import InvalidDataError, QuotaExceededError, ServerError
from imagegallery.core.identifiers import generate_gallery_id
from imagegallery.core.kv_store import Clock, KVQuotaError, KVStore, KVStoreError
from imagegallery.core.quota import QuotaTracker

logger = logging.getLogger(__name__)

GALLERY_KEY_PREFIX = "gallery:"
GALLERY_TTL_SECONDS = 30 * 24 * 60 * 60

# Hex, a bare colour name, or an rgb()/hsl() function of numbers only.
# The values are written into a style attribute.
COLOR_PATTERN = r"^(#[0-9a-fA-F]{3,8}|[a-zA-Z]{1,32}|(rgb|rgba|hsl|hsla)\([0-9.,%\s/]{1,64}\))$"


class ThemeColors(BaseModel):
    """Optional accent colours used when rendering a gallery card."""

    primary: str = Field(pattern=COLOR_PATTERN)
    accent: str = Field(pattern=COLOR_PATTERN)


class GalleryRecord(BaseModel):
    """A stored gallery.

    Attributes:
        id: Gallery identifier, the record's primary key.
        title: Display title.
        author: Display author.
        images: Image URLs in display order.
        created: Creation time in milliseconds since the epoch.
        image_count: Number of images at creation time.
        theme_colors: Optional card colours.
    """

    id: str = Field(..., min_length=1)
    title: str = ""
    author: str = ""
    images: list[str] = Field(default_factory=list)
    created: int = 0
    image_count: int | None = None
    theme_colors: ThemeColors | None = None

    @property
    def count(self) -> int:
        """Cached image count, falling back to the list length."""
        return self.image_count or len(self.images)


class CreateStatus(str, Enum):
    CREATED = "CREATED"
    ALREADY_EXISTS = "ALREADY_EXISTS"


@dataclass
class CreateResult:
    """Outcome of a successful :meth:`GalleryStore.create` call."""

    status: CreateStatus
    gallery_id: str
    record: GalleryRecord


@dataclass
class GalleryCheck:
    """Existence check result; counts are ``None`` when the gallery is absent."""

    exists: bool
    image_count: int | None = None
    created: int | None = None


def gallery_key(gallery_id: str) -> str:
    return f"{GALLERY_KEY_PREFIX}{gallery_id}"


def _validate_images(images) -> list[str]:
    """Return *images* as a list, or raise :class:`InvalidDataError`."""
    if not isinstance(images, (list, tuple)) or len(images) == 0:
        raise InvalidDataError("The image list must not be empty")
    if not all(isinstance(url, str) and url for url in images):
        raise InvalidDataError("Every image must be a non-empty URL string")
    return list(images)


def _is_quota_failure(exc: Exception) -> bool:
    return isinstance(exc, KVQuotaError) or "quota" in str(exc).lower()


class GalleryStore:
    """Create, look up and list gallery records.

    Args:
        store: Backing key-value store.
        quota: Tracker bumped after every first-time creation.
        ttl_seconds: Lifetime of a gallery record.
        default_title: Title used when the request has none.
        default_author: Author used when the request has none.
        default_list_limit: Listing size when none is requested.
        max_list_limit: Hard cap on listing size.
        max_workers: Parallel record fetches in :meth:`list_galleries`.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        store: KVStore,
        quota: QuotaTracker,
        *,
        ttl_seconds: int = GALLERY_TTL_SECONDS,
        default_title: str = "Gallery",
        default_author: str = "Unknown",
        default_list_limit: int = 50,
        max_list_limit: int = 100,
        max_workers: int = 16,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._quota = quota
        self.ttl_seconds = ttl_seconds
        self.default_title = default_title
        self.default_author = default_author
        self.default_list_limit = default_list_limit
        self.max_list_limit = max_list_limit
        self.max_workers = max_workers
        self._clock = clock

    @property
    def ttl_days(self) -> int:
        return self.ttl_seconds // 86400

    def now_ms(self) -> int:
        """Current time in milliseconds, from the store's clock."""
        return int(self._clock() * 1000)

    # -- Creation -----------------------------------------------------------

    def create(
        self,
        images=None,
        *,
        title: str | None = None,
        author: str | None = None,
        gallery_id: str | None = None,
        theme_colors: ThemeColors | dict | None = None,
    ) -> CreateResult:
        """Create a gallery, or return the existing one for *gallery_id*.

        Args:
            images: Image URLs in display order.  Must be non-empty.
            title: Optional title.
            author: Optional author.
            gallery_id: Client-chosen identifier.  A new one is generated
                when omitted.
            theme_colors: Optional ``{primary, accent}`` card colours.

        Returns:
            :class:`CreateResult` with status ``CREATED`` or
            ``ALREADY_EXISTS``.

        Raises:
            InvalidDataError: If *images* is missing, empty or malformed.
                Raised before the store is touched.
            QuotaExceededError: If the store refused the write for quota
                reasons.
            ServerError: For any other store failure.
        """
        images = _validate_images(images)
        if isinstance(theme_colors, dict):
            try:
                theme_colors = ThemeColors.model_validate(theme_colors)
            except ValidationError as exc:
                raise InvalidDataError(f"Invalid theme_colors: {exc}") from exc

        gallery_id = gallery_id or generate_gallery_id(self.now_ms())
        key = gallery_key(gallery_id)

        try:
            existing = self._store.get(key)
        except KVStoreError as exc:
            logger.error(f"Lookup of gallery {gallery_id} failed: {exc}")
            raise ServerError(str(exc)) from exc

        if existing is not None:
            logger.info(f"Gallery {gallery_id} already exists, skipping creation")
            try:
                record = GalleryRecord.model_validate_json(existing)
            except ValidationError:
                # Occupied key with unreadable content: still not overwritten.
                record = GalleryRecord(id=gallery_id, images=images)
            return CreateResult(CreateStatus.ALREADY_EXISTS, gallery_id, record)

        record = GalleryRecord(
            id=gallery_id,
            title=title or self.default_title,
            author=author or self.default_author,
            images=images,
            created=self.now_ms(),
            image_count=len(images),
            theme_colors=theme_colors,
        )
        if theme_colors is not None:
            logger.info(f"Gallery {gallery_id} theme colors: {theme_colors.model_dump()}")

        try:
            self._store.put(key, record.model_dump_json(), expiration_ttl=self.ttl_seconds)
        except Exception as exc:
            logger.error(f"Writing gallery {gallery_id} failed: {exc}")
            if _is_quota_failure(exc):
                raise QuotaExceededError(
                    "Today's gallery creation limit has been reached, please try again tomorrow"
                ) from exc
            raise ServerError(str(exc)) from exc

        try:
            self._quota.increment()
        except Exception as exc:
            logger.warning(f"Quota increment after creating {gallery_id} failed: {exc}")

        logger.info(f"Created gallery {gallery_id} with {record.image_count} image(s)")
        return CreateResult(CreateStatus.CREATED, gallery_id, record)

    # -- Lookup -------------------------------------------------------------

    def get(self, gallery_id: str) -> GalleryRecord | None:
        """Return the gallery, or ``None`` if it does not exist or expired.

        Raises:
            ServerError: If the store fails or the record is unreadable.
        """
        try:
            raw = self._store.get(gallery_key(gallery_id))
        except KVStoreError as exc:
            logger.error(f"Lookup of gallery {gallery_id} failed: {exc}")
            raise ServerError(str(exc)) from exc

        if raw is None:
            return None

        try:
            return GalleryRecord.model_validate_json(raw)
        except ValidationError as exc:
            logger.error(f"Gallery {gallery_id} is unreadable: {exc}")
            raise ServerError(f"Gallery {gallery_id} is corrupt") from exc

    def check(self, gallery_id: str) -> GalleryCheck:
        """Report whether the gallery exists, with its count and creation time."""
        record = self.get(gallery_id)
        if record is None:
            return GalleryCheck(exists=False)
        return GalleryCheck(exists=True, image_count=record.count, created=record.created)

    # -- Listing ------------------------------------------------------------

    def clamp_limit(self, limit: int | None) -> int:
        """Clamp a requested listing size to ``1..max_list_limit``."""
        if not limit or limit < 1:
            return min(self.default_list_limit, self.max_list_limit)
        return min(limit, self.max_list_limit)

    def _fetch_for_listing(self, key: str) -> GalleryRecord | None:
        try:
            data = self._store.get_json(key)
        except KVStoreError as exc:
            logger.warning(f"Skipping {key} in listing: {exc}")
            return None

        if not isinstance(data, dict) or not data.get("id"):
            if data is not None:
                logger.warning(f"Skipping {key} in listing: missing id")
            return None

        try:
            return GalleryRecord.model_validate(data)
        except ValidationError as exc:
            logger.warning(f"Skipping {key} in listing: {exc.error_count()} validation error(s)")
            return None

    def list_galleries(self, limit: int | None = 50) -> list[GalleryRecord]:
        """Return up to *limit* galleries, newest first.

        Args:
            limit: Requested number of galleries, clamped to
                ``1..max_list_limit``.

        Raises:
            ServerError: If the key listing itself fails.  Failures of
                individual records only drop those records.
        """
        limit = self.clamp_limit(limit)
        try:
            keys = self._store.list_keys(prefix=GALLERY_KEY_PREFIX, limit=limit)
        except KVStoreError as exc:
            logger.error(f"Listing galleries failed: {exc}")
            raise ServerError(str(exc)) from exc

        if not keys:
            return []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(keys))) as pool:
            records = list(pool.map(self._fetch_for_listing, keys))

        galleries = [record for record in records if record is not None]
        galleries.sort(key=lambda record: record.created or 0, reverse=True)
        return galleries
