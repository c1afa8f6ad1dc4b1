from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """
    Current UTC time without tzinfo.

    Every DateTime column is written naive-UTC, and SQLite hands values back
    naive, so comparisons (token expiry, idle timeout) stay like-for-like.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(value: Optional[datetime]) -> Optional[str]:
    """'2026-10-19T14:03:00Z' style timestamp for JSON; naive input is UTC."""
    if value is None:
        return None
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return aware.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
