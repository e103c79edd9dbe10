"""
Airlane Shared Utilities — common helpers used across the engine.
"""

from __future__ import annotations

import re
import secrets
import string
import unicodedata
from datetime import datetime, timezone
from typing import Optional

_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_DASHES = re.compile(r"[-\s_]+")


def slugify(value: str) -> str:
    """
    Convert a display name to a URL-safe slug.

    Examples:
        slugify("Quarterly Report")  → "quarterly-report"
        slugify("Café  Menu!")       → "cafe-menu"
        slugify("***")               → ""
    """
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    cleaned = _SLUG_STRIP.sub("", normalized).strip().lower()
    return _SLUG_DASHES.sub("-", cleaned).strip("-")


def random_slug(length: int = 8) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
