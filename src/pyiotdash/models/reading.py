"""Sensor readings buffered by the window."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated

from pydantic import BeforeValidator, field_validator

from pyiotdash.models._base import DashBaseModel, parse_timestamp


def series_key(device_id: str, sensor_type: str) -> str:
    """Composite identity of one sensor series: ``<deviceId>_<type>``."""
    return f"{device_id}_{sensor_type}"


class SensorReading(DashBaseModel):
    """One immutable sensor sample."""

    timestamp: Annotated[datetime, BeforeValidator(parse_timestamp)]
    device_id: str
    type: str
    value: float

    @field_validator("value")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("value must be finite")
        return value

    @property
    def series_key(self) -> str:
        return series_key(self.device_id, self.type)
