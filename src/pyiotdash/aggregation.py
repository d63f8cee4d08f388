"""Derived views over the sensor window.

Every function here is pure and recomputes from the reading sequence it is
given; nothing is cached. With the window capped at a few dozen readings a
full pass per read is cheaper than keeping incremental state consistent.

All views key series by :func:`pyiotdash.models.reading.series_key` and
list them in order of first appearance in the sequence, so the chart
legend, value cards and statistics rows line up.
"""

from __future__ import annotations

import statistics
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, tzinfo

from pyiotdash.models.reading import SensorReading
from pyiotdash.models.views import DashboardViews, LatestValue, SeriesStatistics, TimeBucket

DEFAULT_BUCKET_FORMAT = "%H:%M:%S"


def series_keys(readings: Iterable[SensorReading]) -> list[str]:
    """Distinct series keys in first-appearance order."""
    return list(dict.fromkeys(reading.series_key for reading in readings))


def latest_values(readings: Iterable[SensorReading]) -> list[LatestValue]:
    """Latest reading per series.

    The reading with the greatest timestamp wins; on equal timestamps the
    one later in the sequence wins.
    """
    latest: dict[str, SensorReading] = {}
    for reading in readings:
        key = reading.series_key
        current = latest.get(key)
        if current is None or reading.timestamp >= current.timestamp:
            latest[key] = reading
    return [LatestValue(series_key=key, reading=reading) for key, reading in latest.items()]


def bucket_label(timestamp: datetime, *, tz: tzinfo | None = None, fmt: str = DEFAULT_BUCKET_FORMAT) -> str:
    """Second-precision time-of-day label for *timestamp* in *tz* (local time when ``None``)."""
    return timestamp.astimezone(tz).strftime(fmt)


def time_buckets(
    readings: Iterable[SensorReading],
    *,
    tz: tzinfo | None = None,
    fmt: str = DEFAULT_BUCKET_FORMAT,
) -> list[TimeBucket]:
    """Group readings into time-of-day buckets, one value per series per bucket.

    A later reading of the same series in the same bucket overwrites the
    earlier one; values are never averaged. Labels carry no date, so
    readings a day apart share a bucket.
    """
    grouped: dict[str, dict[str, float]] = {}
    for reading in readings:
        label = bucket_label(reading.timestamp, tz=tz, fmt=fmt)
        grouped.setdefault(label, {})[reading.series_key] = reading.value
    return [TimeBucket(time=label, values=values) for label, values in grouped.items()]


def series_statistics(readings: Iterable[SensorReading]) -> list[SeriesStatistics]:
    """Min/max/mean/count per series present in *readings*."""
    values_by_key: dict[str, list[float]] = {}
    for reading in readings:
        values_by_key.setdefault(reading.series_key, []).append(reading.value)

    rows: list[SeriesStatistics] = []
    for key, values in values_by_key.items():
        lo = min(values)
        hi = max(values)
        # fmean can land one ulp outside [lo, hi] for constant series
        avg = min(max(statistics.fmean(values), lo), hi)
        rows.append(SeriesStatistics(series_key=key, min=lo, max=hi, avg=avg, count=len(values)))
    return rows


def build_views(
    readings: Sequence[SensorReading],
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
    fmt: str = DEFAULT_BUCKET_FORMAT,
) -> DashboardViews:
    """Compute every view from one snapshot of the window."""
    return DashboardViews(
        generated_at=now or datetime.now(UTC),
        series_keys=series_keys(readings),
        latest=latest_values(readings),
        buckets=time_buckets(readings, tz=tz, fmt=fmt),
        statistics=series_statistics(readings),
    )
