"""Tests for imagegallery.api.rendering: HTML pages and helpers."""

from __future__ import annotations

import pytest

from imagegallery.api.rendering import PageRenderer, format_time_ago, has_gif, proxied
from imagegallery.core.config import GalleryConfig
from imagegallery.core.gallery_store import GalleryRecord, ThemeColors
from imagegallery.core.layout import select_layout

NOW_MS = 1_768_478_400_000


@pytest.fixture
def renderer(test_config: GalleryConfig) -> PageRenderer:
    return PageRenderer(test_config.templates_dir)


def _record(**overrides) -> GalleryRecord:
    data = {
        "id": "abc",
        "title": "Holiday",
        "author": "Ann",
        "images": [f"https://img.example.com/{i}.jpg" for i in range(4)],
        "created": NOW_MS - 3_600_000,
        "image_count": 4,
    }
    data.update(overrides)
    return GalleryRecord(**data)


class TestFormatTimeAgo:
    @pytest.mark.parametrize(
        ("age_ms", "expected"),
        [
            (0, "just now"),
            (59_000, "just now"),
            (60_000, "1 minute ago"),
            (5 * 60_000, "5 minutes ago"),
            (3_600_000, "1 hour ago"),
            (23 * 3_600_000, "23 hours ago"),
            (86_400_000, "1 day ago"),
            (29 * 86_400_000, "29 days ago"),
        ],
    )
    def test_relative_labels(self, age_ms, expected):
        assert format_time_ago(NOW_MS - age_ms, NOW_MS) == expected

    def test_old_dates_shown_as_date(self):
        assert format_time_ago(NOW_MS - 40 * 86_400_000, NOW_MS) == "2025-12-06"


class TestHelpers:
    @pytest.mark.parametrize(
        "url",
        [
            "https://img.example.com/a.GIF",
            "https://mmbiz.qpic.cn/mmbiz_gif/abc/0",
            "https://mmbiz.qpic.cn/x?wx_fmt=gif",
        ],
    )
    def test_has_gif(self, url):
        assert has_gif(["https://img.example.com/a.jpg", url])

    def test_no_gif(self):
        assert not has_gif(["https://img.example.com/a.jpg"])

    def test_proxied_quotes_url(self):
        assert proxied("https://h/a b.jpg?x=1") == "/img?url=https%3A%2F%2Fh%2Fa%20b.jpg%3Fx%3D1"


class TestGalleryPage:
    def test_contains_metadata_and_images(self, renderer: PageRenderer):
        record = _record()
        html = renderer.render_gallery(record)
        assert "Holiday" in html
        assert "Ann" in html
        assert "4 images" in html
        for url in record.images:
            assert url in html

    def test_images_in_order(self, renderer: PageRenderer):
        record = _record(images=["https://h/z.jpg", "https://h/a.jpg"], image_count=2)
        html = renderer.render_gallery(record)
        assert html.index("https://h/z.jpg") < html.index("https://h/a.jpg")

    def test_escapes_user_content(self, renderer: PageRenderer):
        html = renderer.render_gallery(_record(title="<script>alert(1)</script>"))
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html

    def test_proxied_images(self, test_config: GalleryConfig):
        renderer = PageRenderer(test_config.templates_dir, proxy_images=True)
        html = renderer.render_gallery(_record(images=["https://h/a.jpg"], image_count=1))
        assert "/img?url=https%3A%2F%2Fh%2Fa.jpg" in html


class TestNotFoundPage:
    def test_mentions_retention(self, test_config: GalleryConfig):
        html = PageRenderer(test_config.templates_dir, ttl_days=30).render_not_found()
        assert "does not exist or has expired" in html
        assert "30 days" in html


class TestExplorePage:
    def test_cards_use_selected_layout(self, renderer: PageRenderer):
        records = [_record(id=gallery_id) for gallery_id in ["abd", "abe", "abf", "abg", "abc"]]
        html = renderer.render_explore(records, NOW_MS)
        for record in records:
            layout = select_layout(record.id, record.count).layout.value
            assert f'href="/gallery/{record.id}"' in html
            assert f'data-layout="{layout}"' in html

    def test_time_ago_and_count(self, renderer: PageRenderer):
        html = renderer.render_explore([_record()], NOW_MS)
        assert "1 hour ago" in html
        assert "4 images" in html

    def test_theme_colors(self, renderer: PageRenderer):
        record = _record(theme_colors=ThemeColors(primary="#112233", accent="#445566"))
        html = renderer.render_explore([record], NOW_MS)
        assert "gallery-card has-theme" in html
        assert "--theme-primary: #112233" in html
        assert "--theme-accent: #445566" in html

    def test_gif_badge(self, renderer: PageRenderer):
        html = renderer.render_explore([_record(images=["https://h/a.gif"], image_count=1)], NOW_MS)
        assert "<div class=\"gif-badge\">GIF</div>" in html

    def test_empty_listing(self, renderer: PageRenderer):
        assert "No galleries yet." in renderer.render_explore([], NOW_MS)

    def test_hero_cover_shows_one_image(self, renderer: PageRenderer):
        html = renderer.render_explore([_record(id="abg")], NOW_MS)
        assert "https://img.example.com/0.jpg" in html
        assert "https://img.example.com/1.jpg" not in html

    def test_error_page(self, renderer: PageRenderer):
        html = renderer.render_explore_error("store <down>")
        assert "store &lt;down&gt;" in html
