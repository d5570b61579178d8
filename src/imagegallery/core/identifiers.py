"""Compact gallery identifiers.

An identifier is the base-36 millisecond timestamp followed by five random
base-36 digits, e.g. ``"mgxq1k2a7f3z9"``.  Nothing coordinates between
processes, so two requests in the same millisecond can in principle draw the
same suffix; at the expected write volume this is accepted.
"""

from __future__ import annotations

import random
import time

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
SUFFIX_LENGTH = 5


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_gallery_id(now_ms: int | None = None) -> str:
    """Return a new gallery identifier.

    Args:
        now_ms: Timestamp in milliseconds to encode.  Defaults to the
            current time.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(BASE36_DIGITS, k=SUFFIX_LENGTH))
    return f"{to_base36(now_ms)}{suffix}"
