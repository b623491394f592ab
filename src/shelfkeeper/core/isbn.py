"""ISBN shape check."""

from __future__ import annotations

import re

# Optional 978/979 prefix, nine digits, then a digit or the X check character.
_ISBN_RE = re.compile(r"(97(8|9))?\d{9}(\d|X)", re.ASCII)


def is_valid_isbn(value: str) -> bool:
    """Return True if value looks like an ISBN-10 or ISBN-13.

    Only the shape is checked; the check digit is not verified.
    """
    return _ISBN_RE.fullmatch(value) is not None
