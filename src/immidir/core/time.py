"""
Timestamp helpers.

Record timestamps are always timezone-aware UTC so `createdAt`/`updatedAt` compare
safely no matter which clock produced them.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Default store clock."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
