"""Ingestion layer.

Turns raw ``(topic, payload)`` pairs from the transport into validated
telemetry events and applies them to the registry and window.
"""

from pyiotdash.ingestion.apply import ApplyResult, TelemetryPipeline
from pyiotdash.ingestion.decode import DecodedEvent, EventKind, decode_message, parse_device_topic

__all__ = [
    "ApplyResult",
    "DecodedEvent",
    "EventKind",
    "TelemetryPipeline",
    "decode_message",
    "parse_device_topic",
]
