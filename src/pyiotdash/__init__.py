"""pyiotdash - Async Python client for live IoT device telemetry over MQTT."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyiotdash")
except PackageNotFoundError:
    __version__ = "0+local"
from pyiotdash.aggregation import build_views, latest_values, series_keys, series_statistics, time_buckets
from pyiotdash.client import DashboardClient
from pyiotdash.commands import CommandDispatcher, TextDispatch
from pyiotdash.config import DashConfig
from pyiotdash.exceptions import (
    ConnectError,
    DecodeError,
    DeviceOfflineError,
    IotDashConfigError,
    IotDashError,
    NotConnectedError,
    PublishError,
    SubscribeError,
    TransportError,
)
from pyiotdash.ingestion import TelemetryPipeline, decode_message
from pyiotdash.models import (
    CommandKind,
    CommandMessage,
    DashboardViews,
    Device,
    LatestValue,
    SensorReading,
    SeriesStatistics,
    TimeBucket,
    series_key,
)
from pyiotdash.state.events import ConnectionState
from pyiotdash.state.presence import format_last_seen, is_online
from pyiotdash.state.registry import DeviceRegistry
from pyiotdash.state.window import SensorWindow

__all__ = [
    "__version__",
    "CommandDispatcher",
    "CommandKind",
    "CommandMessage",
    "ConnectError",
    "ConnectionState",
    "DashConfig",
    "DashboardClient",
    "DashboardViews",
    "DecodeError",
    "Device",
    "DeviceOfflineError",
    "DeviceRegistry",
    "IotDashConfigError",
    "IotDashError",
    "LatestValue",
    "NotConnectedError",
    "PublishError",
    "SensorReading",
    "SensorWindow",
    "SeriesStatistics",
    "SubscribeError",
    "TelemetryPipeline",
    "TextDispatch",
    "TimeBucket",
    "TransportError",
    "build_views",
    "decode_message",
    "format_last_seen",
    "is_online",
    "latest_values",
    "series_key",
    "series_keys",
    "series_statistics",
    "time_buckets",
]
