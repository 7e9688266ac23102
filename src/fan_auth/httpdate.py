"""IMF-fixdate helpers for ``Last-Modified`` / ``If-Modified-Since``.

HTTP dates have one-second resolution, so every value produced or parsed
here is truncated to whole seconds and carried as an aware UTC datetime.
"""
from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Optional


def to_http_precision(moment: datetime) -> datetime:
    """Return *moment* as aware UTC with microseconds dropped."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(microsecond=0)


def format_http_date(moment: datetime) -> str:
    """Format *moment* as e.g. ``Wed, 21 Oct 2015 07:28:00 GMT``."""
    return format_datetime(to_http_precision(moment), usegmt=True)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP date header; ``None`` for a missing or malformed value."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    return to_http_precision(parsed)


__all__ = ["format_http_date", "parse_http_date", "to_http_precision"]
