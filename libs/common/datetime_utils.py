"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def format_date(value: Optional[Union[date, datetime, str]]) -> Optional[str]:
    """Render a date or timestamp as ``YYYY-MM-DD``.

    Timestamps are converted to UTC first; naive timestamps (SQLite hands
    them back that way) are assumed to already be UTC. Strings are parsed as
    ISO-8601 and re-rendered so the output is always canonical.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    return value.isoformat()
