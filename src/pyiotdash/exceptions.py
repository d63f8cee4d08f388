"""Custom exception hierarchy for pyiotdash."""

from __future__ import annotations


class IotDashError(Exception):
    """Base exception for all pyiotdash errors."""


class IotDashConfigError(IotDashError):
    """Invalid or missing configuration."""


class TransportError(IotDashError):
    """MQTT-level failure (connect, subscribe, publish)."""

    def __init__(
        self,
        message: str,
        *,
        reason_code: int | None = None,
        topic: str = "",
    ) -> None:
        self.reason_code = reason_code
        self.topic = topic
        super().__init__(message)


class ConnectError(TransportError):
    """Broker unreachable, connection refused, or CONNACK timed out.

    Not fatal: once a session has been established the transport keeps
    retrying on its own using the configured reconnect period.
    """


class SubscribeError(TransportError):
    """Subscribe or unsubscribe request rejected. Not retried automatically."""


class PublishError(TransportError):
    """Publish request rejected by the client library. Not retried automatically."""


class NotConnectedError(TransportError):
    """Operation attempted while the session is disconnected.

    Raised immediately; operations are never queued for later delivery.
    """


class DecodeError(IotDashError):
    """Inbound payload could not be decoded into a telemetry event."""

    def __init__(self, message: str, *, topic: str = "") -> None:
        self.topic = topic
        super().__init__(message)


class DeviceOfflineError(IotDashError):
    """Command refused because the target device is not currently online."""

    def __init__(self, message: str, *, device_id: str = "") -> None:
        self.device_id = device_id
        super().__init__(message)
