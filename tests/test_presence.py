from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pyiotdash._constants import PRESENCE_TIMEOUT
from pyiotdash.state.presence import format_last_seen, is_online

_NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def test_timeout_is_five_minutes() -> None:
    assert PRESENCE_TIMEOUT == timedelta(milliseconds=300_000)


def test_online_just_inside_threshold() -> None:
    assert is_online(_NOW - timedelta(milliseconds=299_999), _NOW)


def test_exact_threshold_is_offline() -> None:
    assert not is_online(_NOW - timedelta(milliseconds=300_000), _NOW)


def test_past_threshold_is_offline() -> None:
    assert not is_online(_NOW - timedelta(minutes=10), _NOW)


def test_never_seen_is_offline() -> None:
    assert not is_online(None, _NOW)


def test_future_last_seen_counts_as_online() -> None:
    assert is_online(_NOW + timedelta(seconds=30), _NOW)


def test_format_last_seen_buckets() -> None:
    assert format_last_seen(_NOW - timedelta(seconds=20), _NOW) == "just now"
    assert format_last_seen(_NOW - timedelta(minutes=5), _NOW) == "5 min ago"
    assert format_last_seen(_NOW - timedelta(hours=3, minutes=2), _NOW) == "3 h ago"
    assert format_last_seen(_NOW - timedelta(days=3), _NOW) == "2025-12-29"
    assert format_last_seen(None, _NOW) == "never"
