"""Tagged decoding of inbound device messages.

Payload shapes are device-defined and untrusted. :func:`decode_message`
validates every field it uses and either returns a :class:`DecodedEvent`
or raises :class:`DecodeError`; it never returns a half-decoded event.

Topic conventions::

    devices/{deviceId}/data     JSON object {id?, type?, sensorValue?, unit?, status?, ...}
    devices/{deviceId}/status   JSON object with "status", a JSON string, or plain text
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pyiotdash._constants import DATA_SUFFIX, STATUS_SUFFIX, TOPIC_ROOT
from pyiotdash.exceptions import DecodeError
from pyiotdash.ingestion.normalize import (
    is_placeholder,
    prune_patch,
    reject_json_constant,
    safe_float,
    safe_str,
)
from pyiotdash.models._base import DashBaseModel


class EventKind(StrEnum):
    DATA = "data"
    STATUS = "status"


_SUFFIX_KINDS: dict[str, EventKind] = {
    DATA_SUFFIX: EventKind.DATA,
    STATUS_SUFFIX: EventKind.STATUS,
}


class _DataPayload(DashBaseModel):
    """Validated ``devices/+/data`` body. Unknown keys are carried through.

    String fields are kept verbatim: ``"--"`` or ``"nan"`` is a legitimate
    id, type or status. Only ``sensorValue`` treats placeholders as absent.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    type: str | None = None
    sensor_value: float | None = None
    unit: str | None = None
    status: str | None = None

    @field_validator("id", "type", "unit", "status", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, (dict, list)):
            raise ValueError("must be a scalar")
        return value if isinstance(value, str) else str(value)

    @field_validator("sensor_value", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> float | None:
        if is_placeholder(value):
            return None
        parsed = safe_float(value)
        if parsed is None:
            raise ValueError(f"not a finite number: {value!r}")
        return parsed


class _StatusPayload(DashBaseModel):
    id: str | None = None
    status: str

    @field_validator("id", "status", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Any:
        if isinstance(value, (bool, dict, list)):
            raise ValueError("must be a string")
        return safe_str(value)


class DecodedEvent(BaseModel):
    """A validated telemetry event, ready to apply."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    topic: str
    device_id: str
    fields: dict[str, Any] = Field(default_factory=dict, description="Registry patch (snake_case keys)")
    sensor_type: str | None = None
    sensor_value: float | None = None
    raw: Any = None


def parse_device_topic(topic: str) -> tuple[str, EventKind] | None:
    """Split ``devices/{id}/{data|status}`` into ``(id, kind)``; ``None`` for other topics."""
    parts = topic.split("/")
    if len(parts) != 3 or parts[0] != TOPIC_ROOT:
        return None
    device_id, suffix = parts[1].strip(), parts[2]
    kind = _SUFFIX_KINDS.get(suffix)
    if not device_id or kind is None:
        return None
    return device_id, kind


def _load_json(topic: str, payload: bytes) -> Any:
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("payload is not valid UTF-8", topic=topic) from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"payload is not valid JSON: {exc.msg}", topic=topic) from exc
    except (RecursionError, ValueError) as exc:
        raise DecodeError(f"payload cannot be decoded: {exc}", topic=topic) from exc


def _resolve_device_id(topic: str, topic_id: str, payload_id: str | None) -> str:
    if payload_id is None or not payload_id.strip():
        return topic_id
    if payload_id.strip() != topic_id:
        raise DecodeError(
            f"payload id {payload_id!r} does not match topic device {topic_id!r}",
            topic=topic,
        )
    return topic_id


def _decode_data(topic: str, device_id: str, payload: bytes) -> DecodedEvent:
    body = _load_json(topic, payload)
    if not isinstance(body, dict):
        raise DecodeError(f"data payload must be a JSON object, got {type(body).__name__}", topic=topic)
    try:
        model = _DataPayload.model_validate(body)
    except ValidationError as exc:
        raise DecodeError(f"invalid data payload: {exc.error_count()} error(s)", topic=topic) from exc

    device_id = _resolve_device_id(topic, device_id, model.id)
    fields = prune_patch(model.model_dump(exclude={"id"}, exclude_none=True))
    return DecodedEvent(
        kind=EventKind.DATA,
        topic=topic,
        device_id=device_id,
        fields=fields,
        sensor_type=model.type,
        sensor_value=model.sensor_value,
        raw=body,
    )


def _decode_status(topic: str, device_id: str, payload: bytes) -> DecodedEvent:
    try:
        text = payload.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise DecodeError("payload is not valid UTF-8", topic=topic) from exc
    if not text:
        raise DecodeError("status payload is empty", topic=topic)

    try:
        body: Any = json.loads(text, parse_constant=reject_json_constant)
    except RecursionError as exc:
        raise DecodeError("status payload is nested too deeply", topic=topic) from exc
    except ValueError:
        # Plain-text presence, e.g. "online".
        body = text

    if isinstance(body, str):
        body = {"status": body}
    if not isinstance(body, dict):
        raise DecodeError(
            f"status payload must be text or a JSON object, got {type(body).__name__}",
            topic=topic,
        )
    try:
        model = _StatusPayload.model_validate(body)
    except ValidationError as exc:
        raise DecodeError(f"invalid status payload: {exc.error_count()} error(s)", topic=topic) from exc

    device_id = _resolve_device_id(topic, device_id, model.id)
    return DecodedEvent(
        kind=EventKind.STATUS,
        topic=topic,
        device_id=device_id,
        fields={"status": model.status},
        raw=body,
    )


def decode_message(topic: str, payload: bytes) -> DecodedEvent:
    """Decode one inbound message.

    Raises
    ------
    DecodeError
        If the topic is not a device topic or the payload fails validation.
    """
    parsed = parse_device_topic(topic)
    if parsed is None:
        raise DecodeError("not a device telemetry topic", topic=topic)
    device_id, kind = parsed
    try:
        if kind is EventKind.DATA:
            return _decode_data(topic, device_id, payload)
        return _decode_status(topic, device_id, payload)
    except RecursionError as exc:
        raise DecodeError("payload is nested too deeply", topic=topic) from exc
