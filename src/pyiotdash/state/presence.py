"""Presence policy: online/offline derived from recency of last activity."""

from __future__ import annotations

from datetime import datetime

from pyiotdash._constants import PRESENCE_TIMEOUT


def is_online(last_seen: datetime | None, now: datetime) -> bool:
    """Return ``True`` iff *last_seen* lies strictly within :data:`PRESENCE_TIMEOUT` of *now*."""
    if last_seen is None:
        return False
    return (now - last_seen) < PRESENCE_TIMEOUT


def format_last_seen(last_seen: datetime | None, now: datetime) -> str:
    """Human-readable age of *last_seen* for device cards."""
    if last_seen is None:
        return "never"
    minutes = int((now - last_seen).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"
    if minutes < 1440:
        return f"{minutes // 60} h ago"
    return last_seen.date().isoformat()
