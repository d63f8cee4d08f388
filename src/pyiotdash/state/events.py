"""Transport events.

The MQTT transport turns its connect/message/disconnect/error callbacks into
this small closed set of events and delivers them, one at a time, to a
single dispatch point on the asyncio loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class ConnectionState(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionStateChanged:
    """Session state transition, with the broker/library reason when known."""

    state: ConnectionState
    reason: str = ""
    observed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class MessageReceived:
    """One inbound PUBLISH, stamped with its receipt time."""

    topic: str
    payload: bytes
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))


TransportEvent = ConnectionStateChanged | MessageReceived
