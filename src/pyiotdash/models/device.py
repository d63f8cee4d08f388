"""Device record held by the registry."""

from __future__ import annotations

from datetime import datetime

from pydantic import ConfigDict, field_validator

from pyiotdash.models._base import DashBaseModel, DashTimestamp
from pyiotdash.state.presence import is_online


class Device(DashBaseModel):
    """Current known state of one field device.

    Unknown payload fields are kept as extras so they survive later merges.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    """Stable device identifier (registry key)."""

    type: str | None = None
    """Sensor kind reported by the device, e.g. ``temperature``."""

    last_seen: DashTimestamp = None
    """Receipt time of the most recent telemetry event for this device."""

    status: str | None = None
    sensor_value: float | None = None
    unit: str | None = None

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        device_id = value.strip()
        if not device_id:
            raise ValueError("id must be non-empty")
        return device_id

    def is_online(self, now: datetime) -> bool:
        """Whether the device has reported within the presence timeout."""
        return is_online(self.last_seen, now)
