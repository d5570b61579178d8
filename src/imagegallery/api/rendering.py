"""HTML rendering for gallery pages and the explore listing.

Pages are rendered server-side from Jinja2 templates in the package
``templates`` directory.  Autoescaping is on for every template, so titles,
authors and URLs supplied by clients are escaped on output.

The explore page asks :func:`imagegallery.core.layout.select_layout` for the
cover arrangement of each card; the layout name doubles as the CSS class.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, select_autoescape

from imagegallery.core.gallery_store import GalleryRecord
from imagegallery.core.layout import select_layout

_GIF_MARKERS = (".gif", "mmbiz_gif", "wx_fmt=gif")


def format_time_ago(created_ms: int, now_ms: int | None = None) -> str:
    """Return a short relative label such as ``"5 minutes ago"``.

    Anything older than 30 days is shown as a date instead.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    diff = now_ms - created_ms

    minutes = diff // 60_000
    hours = diff // 3_600_000
    days = diff // 86_400_000

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    if days < 30:
        return f"{days} day{'s' if days != 1 else ''} ago"
    return format_date(created_ms)


def format_date(created_ms: int) -> str:
    return datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def has_gif(images: list[str]) -> bool:
    """Whether any image URL looks like an animated GIF."""
    return any(marker in url.lower() for url in images for marker in _GIF_MARKERS)


def proxied(url: str) -> str:
    """Return the ``/img`` proxy path for an external image URL."""
    return f"/img?url={quote(url, safe='')}"


class PageRenderer:
    """Render the service's HTML pages.

    Args:
        templates_dir: Directory containing the page templates.
        proxy_images: Whether image ``src`` attributes point at the
            ``/img`` proxy instead of the original host.
        ttl_days: Retention shown on gallery and not-found pages.
    """

    def __init__(self, templates_dir: Path, *, proxy_images: bool = False, ttl_days: int = 30):
        self.proxy_images = proxy_images
        self.ttl_days = ttl_days
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self._env.globals["ttl_days"] = ttl_days
        self._env.filters["image_src"] = self._image_src
        self._env.filters["date"] = format_date

    def _image_src(self, url: str) -> str:
        return proxied(url) if self.proxy_images else url

    def render_gallery(self, record: GalleryRecord) -> str:
        return self._env.get_template("gallery.html").render(gallery=record)

    def render_not_found(self) -> str:
        return self._env.get_template("not_found.html").render()

    def render_explore(self, records: list[GalleryRecord], now_ms: int | None = None) -> str:
        """Render the explore page with one card per gallery.

        Args:
            records: Galleries in display order.
            now_ms: Reference time for the relative labels.
        """
        cards = []
        for record in records:
            cover = select_layout(record.id, record.count)
            cards.append(
                {
                    "gallery": record,
                    "count": record.count,
                    "layout": cover.layout.value,
                    "cover_images": cover.cover_images(record.images),
                    "has_gif": has_gif(record.images),
                    "time_ago": format_time_ago(record.created, now_ms),
                }
            )
        return self._env.get_template("explore.html").render(cards=cards)

    def render_explore_error(self, message: str) -> str:
        return self._env.get_template("explore_error.html").render(message=message)
