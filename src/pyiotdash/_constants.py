"""Internal constants shared across the library."""

from datetime import timedelta

DEFAULT_BROKER_URL = "ws://localhost:8083/mqtt"
DEFAULT_FLOW_EDITOR_URL = "http://127.0.0.1:1880/"
CLIENT_ID_PREFIX = "iot-dashboard-"

# ------------------------------------------------------------------
# Topic conventions
# ------------------------------------------------------------------

TOPIC_ROOT = "devices"
DATA_SUFFIX = "data"
STATUS_SUFFIX = "status"
DEFAULT_SUBSCRIPTIONS: tuple[str, ...] = (
    f"{TOPIC_ROOT}/+/{DATA_SUFFIX}",
    f"{TOPIC_ROOT}/+/{STATUS_SUFFIX}",
)
DEFAULT_COMMAND_TOPIC = TOPIC_ROOT + "/{device_id}/command"

# ------------------------------------------------------------------
# Pipeline policy
# ------------------------------------------------------------------

WINDOW_CAPACITY = 50
PRESENCE_TIMEOUT = timedelta(milliseconds=300_000)
UNKNOWN_SENSOR_TYPE = "unknown"
