"""Plain-data views handed to the rendering layer."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from pyiotdash.models._base import DashBaseModel
from pyiotdash.models.reading import SensorReading


class LatestValue(DashBaseModel):
    """Most recent reading of one series."""

    series_key: str
    reading: SensorReading


class TimeBucket(DashBaseModel):
    """Values reported within one display-precision time slot, keyed by series."""

    time: str
    values: dict[str, float] = Field(default_factory=dict)


class SeriesStatistics(DashBaseModel):
    """Summary of one series over the readings currently in the window."""

    series_key: str
    min: float
    max: float
    avg: float
    count: int


class DashboardViews(DashBaseModel):
    """All derived views for one render pass."""

    generated_at: datetime
    series_keys: list[str] = Field(default_factory=list)
    latest: list[LatestValue] = Field(default_factory=list)
    buckets: list[TimeBucket] = Field(default_factory=list)
    statistics: list[SeriesStatistics] = Field(default_factory=list)
