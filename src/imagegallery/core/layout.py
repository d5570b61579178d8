"""Cover layout selection for gallery listings.

The explore page shows one card per gallery.  To keep the page varied
without storing a layout per gallery, the cover arrangement is derived from
the gallery identifier: the same identifier always hashes to the same layout,
on every render and on every server instance.

Layouts
-------
==========  ======  =========================================
Layout      Images  Arrangement
==========  ======  =========================================
single      1       one image (galleries with one image)
split       2       two halves side by side
featured    3       one large image and two small ones
grid        4       2 x 2 grid
hero        1       one wide image
triple      3       three portrait images side by side
==========  ======  =========================================

The hash is the classic ``h = h * 31 + c`` string hash over UTF-16 code
units, wrapped to a signed 32-bit integer after every step.  Changing it
would move existing galleries to different layouts.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum


class Layout(str, Enum):
    SINGLE = "single"
    SPLIT = "split"
    FEATURED = "featured"
    GRID = "grid"
    HERO = "hero"
    TRIPLE = "triple"


# Indexed by abs(hash) % 5 for galleries with three or more images.
HASHED_LAYOUTS: tuple[tuple[Layout, int], ...] = (
    (Layout.SPLIT, 2),
    (Layout.FEATURED, 3),
    (Layout.GRID, 4),
    (Layout.HERO, 1),
    (Layout.TRIPLE, 3),
)


@dataclass(frozen=True)
class CoverLayout:
    """Layout chosen for a gallery card and how many images it shows."""

    layout: Layout
    cover_image_count: int

    def cover_images(self, images: list[str]) -> list[str]:
        """Return the leading images used by the cover."""
        return images[: self.cover_image_count]


def string_hash(value: str) -> int:
    """Return the signed 32-bit ``h * 31 + c`` hash of *value*.

    Characters outside the Basic Multilingual Plane contribute their two
    UTF-16 surrogates, one step each.
    """
    encoded = value.encode("utf-16-le", "surrogatepass")
    units = struct.unpack(f"<{len(encoded) // 2}H", encoded)

    h = 0
    for unit in units:
        h = (h * 31 + unit) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def select_layout(gallery_id: str, image_count: int) -> CoverLayout:
    """Pick the cover layout for a gallery.

    Args:
        gallery_id: Stable gallery identifier.
        image_count: Number of images in the gallery.

    Returns:
        The layout and the number of cover images, never more than
        *image_count*.
    """
    if image_count <= 1:
        return CoverLayout(Layout.SINGLE, max(image_count, 0))
    if image_count == 2:
        return CoverLayout(Layout.SPLIT, 2)

    layout, wanted = HASHED_LAYOUTS[abs(string_hash(gallery_id)) % len(HASHED_LAYOUTS)]
    return CoverLayout(layout, min(wanted, image_count))
