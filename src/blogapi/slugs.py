"""Slug derivation for categories and posts."""

import re
import time
import unicodedata
from typing import Optional

_SEPARATORS = re.compile(r"[\s_-]+")
_DISALLOWED = re.compile(r"[^a-z0-9\s_-]")


def slugify(text: str, separator: str = "-") -> str:
    """Return a lowercase ASCII slug for ``text``.

    Accented characters are folded to their ASCII base, ``@`` becomes
    ``at``, other punctuation is dropped and runs of whitespace, hyphens
    and underscores collapse into a single ``separator``.
    """
    ascii_text = (
        unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    )
    ascii_text = ascii_text.replace("@", f"{separator}at{separator}").lower()
    ascii_text = _DISALLOWED.sub("", ascii_text)
    return _SEPARATORS.sub(separator, ascii_text).strip(separator)


def post_slug(title: str, timestamp: Optional[int] = None) -> str:
    """Slug for a post: the slugified title followed by a Unix-seconds suffix."""
    suffix = str(int(time.time()) if timestamp is None else timestamp)
    base = slugify(title)
    return f"{base}-{suffix}" if base else suffix
