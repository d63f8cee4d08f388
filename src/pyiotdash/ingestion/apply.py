"""Ingestion application.

Applies decoded telemetry to the device registry and sensor window. Each
message is one atomic unit: everything that can fail (decoding, reading and
device validation) happens before either store is mutated, so a rejected
message leaves both exactly as they were.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import ValidationError

from pyiotdash._constants import UNKNOWN_SENSOR_TYPE
from pyiotdash._redact import redact_for_log
from pyiotdash.exceptions import DecodeError
from pyiotdash.ingestion.decode import DecodedEvent, decode_message, parse_device_topic
from pyiotdash.models.device import Device
from pyiotdash.models.reading import SensorReading
from pyiotdash.state.registry import DeviceRegistry
from pyiotdash.state.window import SensorWindow

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of one applied message."""

    event: DecodedEvent
    device: Device
    reading: SensorReading | None


def reading_from_event(event: DecodedEvent, received_at: datetime) -> SensorReading | None:
    """Window entry for *event*, or ``None`` when it carries no sensor value."""
    if event.sensor_value is None:
        return None
    return SensorReading(
        timestamp=received_at,
        device_id=event.device_id,
        type=event.sensor_type or UNKNOWN_SENSOR_TYPE,
        value=event.sensor_value,
    )


class TelemetryPipeline:
    """Single consumer of inbound device messages.

    Not thread-safe: it relies on the transport delivering messages one at
    a time on the event loop.
    """

    def __init__(self, registry: DeviceRegistry, window: SensorWindow) -> None:
        self._registry = registry
        self._window = window
        self.applied = 0
        self.dropped = 0
        self.ignored = 0

    @property
    def registry(self) -> DeviceRegistry:
        return self._registry

    @property
    def window(self) -> SensorWindow:
        return self._window

    def apply(self, event: DecodedEvent, received_at: datetime) -> ApplyResult:
        """Commit one decoded event to the registry and window.

        Raises
        ------
        pydantic.ValidationError
            If the event cannot form a valid reading or device; neither
            store is modified in that case.
        """
        reading = reading_from_event(event, received_at)
        device = self._registry.upsert(event.device_id, event.fields, observed_at=received_at)
        if reading is not None:
            self._window.append(reading)
        self.applied += 1
        return ApplyResult(event=event, device=device, reading=reading)

    def handle_message(
        self,
        topic: str,
        payload: bytes,
        received_at: datetime | None = None,
    ) -> ApplyResult | None:
        """Decode and apply one message; never raises for bad input.

        Returns ``None`` when the message was not a device topic or was
        dropped as malformed.
        """
        if parse_device_topic(topic) is None:
            self.ignored += 1
            _logger.debug("Ignoring message on non-device topic=%s", topic)
            return None

        received_at = received_at or datetime.now(UTC)
        try:
            event = decode_message(topic, payload)
            result = self.apply(event, received_at)
        except DecodeError as exc:
            self.dropped += 1
            _logger.debug(
                "Dropping malformed message topic=%s error=%s payload=%s",
                topic,
                exc,
                redact_for_log(payload),
            )
            return None
        except ValidationError as exc:
            self.dropped += 1
            _logger.debug(
                "Dropping message rejected by validation topic=%s errors=%s",
                topic,
                exc.error_count(),
            )
            return None

        _logger.debug(
            "Applied %s event device=%s reading=%s",
            result.event.kind,
            result.device.id,
            result.reading.value if result.reading is not None else None,
        )
        return result
