"""Base model for telemetry payloads and pipeline records.

Every model inherits from :class:`DashBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase payload keys (``sensorValue``,
  ``lastSeen``) map automatically to snake_case fields.
* Frozen instances, so records handed out by the registry never change.

String fields are stored verbatim. Placeholder handling (``"--"``, NaN)
is a per-field concern of the ingestion layer, not of the models.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce an epoch (seconds **or** milliseconds), ISO string or datetime to aware UTC.

    Naive datetimes are assumed to be UTC. Returns ``None`` for ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    ts = float(value)
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


DashTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces epochs and ISO strings to UTC datetimes."""


def drop_none(values: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is ``None`` from a flat payload dict."""
    return {key: value for key, value in values.items() if value is not None}


class DashBaseModel(BaseModel):
    """Base for pyiotdash models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
