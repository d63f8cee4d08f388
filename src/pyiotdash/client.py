"""High-level async client for live device telemetry over MQTT."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, tzinfo
from typing import Any

from pyiotdash._mqtt import BrokerEndpoint, MqttTransport
from pyiotdash.aggregation import DEFAULT_BUCKET_FORMAT, build_views
from pyiotdash.commands import CommandDispatcher, TextDispatch
from pyiotdash.config import DashConfig
from pyiotdash.exceptions import ConnectError, NotConnectedError
from pyiotdash.ingestion.apply import ApplyResult, TelemetryPipeline
from pyiotdash.models.command import CommandMessage
from pyiotdash.models.device import Device
from pyiotdash.models.reading import SensorReading
from pyiotdash.models.views import DashboardViews
from pyiotdash.state.events import ConnectionState, ConnectionStateChanged, MessageReceived, TransportEvent
from pyiotdash.state.registry import DeviceRegistry
from pyiotdash.state.window import SensorWindow

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DashboardClient:
    """Async client tying the MQTT session to the telemetry pipeline.

    Usage::

        async with DashboardClient(DashConfig.from_env()) as client:
            views = client.views()
            await client.send_command("dev1", "setValue", 25)

    The registry and window can be injected, which is how tests and
    embedding applications share state with the client.
    """

    def __init__(
        self,
        config: DashConfig | None = None,
        *,
        registry: DeviceRegistry | None = None,
        window: SensorWindow | None = None,
        on_device_update: Callable[[Device, SensorReading | None], None] | None = None,
        on_state_change: Callable[[ConnectionState, str], None] | None = None,
        mqtt_client_factory: Callable[[BrokerEndpoint], Any] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or DashConfig()
        self._registry = registry if registry is not None else DeviceRegistry()
        self._window = window if window is not None else SensorWindow(self._config.window_capacity)
        self._pipeline = TelemetryPipeline(self._registry, self._window)
        self._on_device_update = on_device_update
        self._on_state_change = on_state_change
        self._mqtt_client_factory = mqtt_client_factory
        self._clock = clock
        self._transport: MqttTransport | None = None
        self._dispatcher = CommandDispatcher(
            self._config,
            self,
            registry=self._registry,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DashboardClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def config(self) -> DashConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        if self._transport is None:
            return ConnectionState.DISCONNECTED
        return self._transport.state

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_connected

    @property
    def flow_editor_url(self) -> str:
        """Where the external flow editor is hosted. Never read or written here."""
        return self._config.flow_editor_url

    @property
    def pipeline(self) -> TelemetryPipeline:
        return self._pipeline

    async def connect(self) -> None:
        """Connect once; raises :class:`ConnectError` on failure."""
        if self._transport is None:
            self._transport = MqttTransport(
                self._config,
                loop=asyncio.get_running_loop(),
                on_event=self._on_transport_event,
                logger=_logger,
                client_factory=self._mqtt_client_factory,
            )
        await self._transport.connect()

    async def connect_with_retry(self, *, max_attempts: int | None = None) -> None:
        """Keep trying to connect every ``reconnect_period`` seconds.

        Raises the last :class:`ConnectError` once *max_attempts* is
        exhausted; retries forever when it is ``None``.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                await self.connect()
                return
            except ConnectError as exc:
                if max_attempts is not None and attempt >= max_attempts:
                    raise
                _logger.warning(
                    "Connect attempt %s failed: %s; retrying in %ss",
                    attempt,
                    exc,
                    self._config.reconnect_period,
                )
                await asyncio.sleep(self._config.reconnect_period)

    async def disconnect(self) -> None:
        """Disconnect; registry and window keep their contents."""
        transport = self._transport
        self._transport = None
        if transport is not None:
            await transport.disconnect()

    def _require_transport(self, operation: str) -> MqttTransport:
        if self._transport is None:
            raise NotConnectedError(f"Cannot {operation}: not connected")
        return self._transport

    async def subscribe(self, pattern: str, qos: int | None = None) -> None:
        await self._require_transport("subscribe").subscribe(pattern, qos)

    async def unsubscribe(self, pattern: str) -> None:
        await self._require_transport("unsubscribe").unsubscribe(pattern)

    async def publish(
        self,
        topic: str,
        payload: bytes | str,
        *,
        qos: int | None = None,
        retain: bool = False,
    ) -> int:
        return await self._require_transport("publish").publish(topic, payload, qos=qos, retain=retain)

    @property
    def subscriptions(self) -> tuple[str, ...]:
        if self._transport is None:
            return self._config.subscriptions
        return self._transport.subscriptions

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def _on_transport_event(self, event: TransportEvent) -> None:
        """Single dispatch point for everything the transport emits."""
        if isinstance(event, MessageReceived):
            self.handle_message(event.topic, event.payload, event.received_at)
            return
        if isinstance(event, ConnectionStateChanged):
            self._handle_state_change(event)

    def handle_message(
        self,
        topic: str,
        payload: bytes,
        received_at: datetime | None = None,
    ) -> ApplyResult | None:
        """Feed one inbound message through the pipeline and notify listeners."""
        result = self._pipeline.handle_message(topic, payload, received_at or self._clock())
        if result is not None and self._on_device_update is not None:
            try:
                self._on_device_update(result.device, result.reading)
            except Exception:
                _logger.debug("on_device_update callback failed", exc_info=True)
        return result

    def _handle_state_change(self, event: ConnectionStateChanged) -> None:
        _logger.debug("Connection state=%s reason=%s", event.state, event.reason)
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(event.state, event.reason)
        except Exception:
            _logger.debug("on_state_change callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def devices(self) -> list[Device]:
        return self._registry.list()

    def device(self, device_id: str) -> Device | None:
        return self._registry.get(device_id)

    def is_online(self, device_id: str) -> bool:
        device = self._registry.get(device_id)
        return device is not None and device.is_online(self._clock())

    def readings(self) -> tuple[SensorReading, ...]:
        return self._window.as_sequence()

    def views(self, *, tz: tzinfo | None = None, fmt: str = DEFAULT_BUCKET_FORMAT) -> DashboardViews:
        """Recompute all derived views from the current window."""
        return build_views(self._window.as_sequence(), now=self._clock(), tz=tz, fmt=fmt)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_command(
        self,
        device_id: str,
        command: str,
        value: str | int | float | None = None,
    ) -> CommandMessage:
        return await self._dispatcher.send(device_id, command, value)

    async def send_text(self, device_id: str, text: str) -> TextDispatch:
        return await self._dispatcher.send_text(device_id, text)

    async def toggle(self, device_id: str) -> CommandMessage:
        return await self._dispatcher.toggle(device_id)
