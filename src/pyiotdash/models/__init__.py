"""Data models for telemetry, commands and derived views."""

from pyiotdash.models._base import DashBaseModel, DashTimestamp, parse_timestamp
from pyiotdash.models.command import CommandKind, CommandMessage
from pyiotdash.models.device import Device
from pyiotdash.models.reading import SensorReading, series_key
from pyiotdash.models.views import DashboardViews, LatestValue, SeriesStatistics, TimeBucket

__all__ = [
    "CommandKind",
    "CommandMessage",
    "DashBaseModel",
    "DashTimestamp",
    "DashboardViews",
    "Device",
    "LatestValue",
    "SensorReading",
    "SeriesStatistics",
    "TimeBucket",
    "parse_timestamp",
    "series_key",
]
