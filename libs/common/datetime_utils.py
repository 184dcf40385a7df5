"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    This replaces the deprecated datetime.utcnow() which returns naive datetimes.
    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC.

    Some backends (SQLite) drop tzinfo on read, so anything loaded from the
    database goes through here before being compared with utc_now().
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def expires_in(seconds: int) -> datetime:
    """Return the UTC instant ``seconds`` from now."""
    return utc_now() + timedelta(seconds=seconds)


def is_expired(expires_at: Optional[datetime]) -> bool:
    return expires_at is not None and ensure_utc(expires_at) <= utc_now()
