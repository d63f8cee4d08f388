"""MQTT transport session: endpoint parsing, topic matching, threaded runtime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, cast
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from pyiotdash._redact import redact_for_log
from pyiotdash.config import DashConfig
from pyiotdash.exceptions import (
    ConnectError,
    IotDashConfigError,
    NotConnectedError,
    PublishError,
    SubscribeError,
)
from pyiotdash.state.events import (
    ConnectionState,
    ConnectionStateChanged,
    MessageReceived,
    TransportEvent,
)

_SCHEMES: dict[str, tuple[str, bool, int]] = {
    # scheme: (paho transport, tls, default port)
    "mqtt": ("tcp", False, 1883),
    "tcp": ("tcp", False, 1883),
    "mqtts": ("tcp", True, 8883),
    "ssl": ("tcp", True, 8883),
    "ws": ("websockets", False, 80),
    "wss": ("websockets", True, 443),
}


@dataclass(frozen=True)
class BrokerEndpoint:
    """Parsed broker connection target."""

    scheme: str
    host: str
    port: int
    path: str
    transport: str
    tls: bool


def parse_endpoint(url: str) -> BrokerEndpoint:
    """Parse a broker URL such as ``ws://localhost:8083/mqtt``.

    A bare ``host[:port]`` is treated as ``mqtt://``.

    Raises
    ------
    IotDashConfigError
        For an unsupported scheme, missing host or invalid port.
    """
    value = url.strip()
    if not value:
        raise IotDashConfigError("Broker URL is empty")
    if "://" not in value:
        value = f"mqtt://{value}"

    parts = urlsplit(value)
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise IotDashConfigError(f"Unsupported broker scheme {scheme!r} in {url!r}")
    if not parts.hostname:
        raise IotDashConfigError(f"Broker URL has no host: {url!r}")
    try:
        explicit_port = parts.port
    except ValueError as exc:
        raise IotDashConfigError(f"Broker URL has an invalid port: {url!r}") from exc

    transport, tls, default_port = _SCHEMES[scheme]
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"
    return BrokerEndpoint(
        scheme=scheme,
        host=parts.hostname,
        port=explicit_port or default_port,
        path=path,
        transport=transport,
        tls=tls,
    )


def topic_matches(pattern: str, topic: str) -> bool:
    """Whether *topic* matches subscription *pattern* (``+`` and ``#`` wildcards)."""
    return bool(mqtt.topic_matches_sub(pattern, topic))


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MqttTransport:
    """Threaded paho-mqtt session that emits transport events onto an asyncio loop.

    paho callbacks run on its network thread and do nothing but hop onto
    the loop with ``call_soon_threadsafe``; every state change and message
    is then handled on the loop, one at a time, in delivery order.

    While disconnected, :meth:`publish`, :meth:`subscribe` and
    :meth:`unsubscribe` raise :class:`NotConnectedError` immediately.
    Registered subscriptions are reissued after every successful
    (re)connect.
    """

    def __init__(
        self,
        config: DashConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        on_event: Callable[[TransportEvent], None],
        logger: logging.Logger | None = None,
        client_factory: Callable[[BrokerEndpoint], Any] | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._on_event = on_event
        self._logger = logger or logging.getLogger(__name__)
        self._client_factory = client_factory or self._create_client
        self._client: Any = None
        self._running = False
        self._state = ConnectionState.DISCONNECTED
        self._subscriptions: dict[str, int] = dict.fromkeys(config.subscriptions, config.qos)
        self._connack: asyncio.Future[None] | None = None
        self._pending_acks: dict[int, asyncio.Future[list[str]]] = {}

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def subscriptions(self) -> tuple[str, ...]:
        """Patterns that will be (re)issued on every connect."""
        return tuple(self._subscriptions)

    # ------------------------------------------------------------------
    # paho client construction and thread-side callbacks
    # ------------------------------------------------------------------

    def _create_client(self, endpoint: BrokerEndpoint) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._config.client_id,
            clean_session=self._config.clean_session,
            protocol=mqtt.MQTTv311,
            transport=endpoint.transport,
        )
        client.enable_logger(self._logger)
        if endpoint.transport == "websockets":
            client.ws_set_options(path=endpoint.path)
        if endpoint.tls:
            client.tls_set()
        if self._config.username is not None:
            client.username_pw_set(self._config.username, self._config.password)
        client.connect_timeout = self._config.connect_timeout
        return client

    def _bind_callbacks(self, client: Any) -> None:
        def on_connect(c: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            if reason_code.is_failure:
                self._loop.call_soon_threadsafe(self._handle_connect_failed, str(reason_code))
                return
            for pattern, qos in list(self._subscriptions.items()):
                self._logger.debug("MQTT subscribing topic=%s qos=%s", pattern, qos)
                c.subscribe(pattern, qos=qos)
            self._loop.call_soon_threadsafe(self._handle_connected, str(reason_code))

        def on_disconnect(
            _c: Any,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._loop.call_soon_threadsafe(self._handle_disconnected, str(reason_code))

        def on_message(_c: Any, _userdata: Any, msg: Any) -> None:
            event = MessageReceived(topic=msg.topic, payload=bytes(msg.payload), received_at=_utcnow())
            self._loop.call_soon_threadsafe(self._deliver_message, event)

        def on_ack(_c: Any, _userdata: Any, mid: int, reason_code_list: Any, _properties: Any) -> None:
            failures = [str(rc) for rc in reason_code_list if rc.is_failure]
            self._loop.call_soon_threadsafe(self._handle_ack, mid, failures)

        client.on_connect = on_connect
        client.on_disconnect = on_disconnect
        client.on_message = on_message
        client.on_subscribe = on_ack
        client.on_unsubscribe = on_ack

    # ------------------------------------------------------------------
    # Loop-side handlers
    # ------------------------------------------------------------------

    def _emit_state(self, state: ConnectionState, reason: str = "") -> None:
        self._state = state
        self._on_event(ConnectionStateChanged(state=state, reason=reason, observed_at=_utcnow()))

    def _handle_connected(self, reason: str) -> None:
        if not self._running:
            return
        self._logger.info("MQTT connected to %s", self._config.broker_url)
        if self._connack is not None and not self._connack.done():
            self._connack.set_result(None)
        self._emit_state(ConnectionState.CONNECTED, reason)

    def _handle_connect_failed(self, reason: str) -> None:
        if not self._running:
            return
        self._logger.warning("MQTT connect failed: %s", reason)
        if self._connack is not None and not self._connack.done():
            self._connack.set_exception(ConnectError(f"Connection refused: {reason}"))
        self._emit_state(ConnectionState.ERROR, reason)

    def _handle_disconnected(self, reason: str) -> None:
        if not self._running:
            return
        self._logger.info("MQTT connection lost: %s; retrying every %ss", reason, self._config.reconnect_period)
        self._fail_pending(NotConnectedError(f"Connection lost: {reason}"))
        self._emit_state(ConnectionState.DISCONNECTED, reason)

    def _handle_ack(self, mid: int, failures: list[str]) -> None:
        waiter = self._pending_acks.pop(mid, None)
        if waiter is None:
            # Resubscribe issued from on_connect; nobody is awaiting it.
            if failures:
                self._logger.warning("MQTT resubscribe rejected mid=%s reasons=%s", mid, failures)
            return
        if not waiter.done():
            waiter.set_result(failures)

    def _deliver_message(self, event: MessageReceived) -> None:
        # Anything still queued on the loop after disconnect() is discarded.
        if not self._running:
            return
        self._on_event(event)

    def _fail_pending(self, exc: Exception) -> None:
        pending = list(self._pending_acks.values())
        self._pending_acks.clear()
        for waiter in pending:
            if not waiter.done():
                waiter.set_exception(exc)

    # ------------------------------------------------------------------
    # Public async API
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the session and wait for the broker to accept it.

        Raises
        ------
        IotDashConfigError
            If the broker URL cannot be parsed.
        ConnectError
            If the broker is unreachable, refuses the connection, or does
            not answer within ``connect_timeout``.
        """
        if self._running:
            return
        endpoint = parse_endpoint(self._config.broker_url)
        self._logger.debug(
            "MQTT connect requested endpoint=%s options=%s",
            endpoint,
            redact_for_log(
                {
                    "client_id": self._config.client_id,
                    "username": self._config.username,
                    "password": self._config.password,
                    "keepalive": self._config.keepalive,
                }
            ),
        )

        client = self._client_factory(endpoint)
        self._bind_callbacks(client)
        client.reconnect_delay_set(
            min_delay=self._config.reconnect_period,
            max_delay=self._config.reconnect_period,
        )

        self._connack = self._loop.create_future()
        self._client = client
        self._running = True
        try:
            await self._loop.run_in_executor(
                None,
                client.connect,
                endpoint.host,
                endpoint.port,
                self._config.keepalive,
            )
        except (OSError, ValueError) as exc:
            self._running = False
            self._client = None
            self._connack = None
            self._emit_state(ConnectionState.ERROR, str(exc))
            raise ConnectError(f"Cannot reach broker {endpoint.host}:{endpoint.port}: {exc}") from exc

        client.loop_start()
        try:
            await asyncio.wait_for(self._connack, timeout=self._config.connect_timeout)
        except (TimeoutError, ConnectError) as exc:
            self._running = False
            self._client = None
            await self._shutdown_client(client)
            if isinstance(exc, ConnectError):
                raise
            self._emit_state(ConnectionState.ERROR, "timeout")
            raise ConnectError(
                f"No CONNACK from {endpoint.host}:{endpoint.port} within {self._config.connect_timeout}s"
            ) from exc
        finally:
            self._connack = None

    async def disconnect(self) -> None:
        """Close the session. No message events are delivered after this returns."""
        client = self._client
        was_running = self._running
        self._running = False
        self._client = None
        self._fail_pending(NotConnectedError("Session closed"))
        if client is None:
            return
        await self._shutdown_client(client)
        if was_running:
            self._emit_state(ConnectionState.DISCONNECTED, "client disconnect")

    async def _shutdown_client(self, client: Any) -> None:
        def _stop() -> None:
            try:
                client.disconnect()
            finally:
                client.loop_stop()

        try:
            await self._loop.run_in_executor(None, _stop)
        except Exception:
            self._logger.debug("MQTT shutdown failed", exc_info=True)
        self._logger.debug("MQTT network loop stopped")

    def _require_client(self, operation: str) -> Any:
        if self._client is None or not self.is_connected:
            raise NotConnectedError(f"Cannot {operation}: not connected")
        return self._client

    async def _await_ack(self, mid: int, operation: str, pattern: str) -> None:
        waiter: asyncio.Future[list[str]] = self._loop.create_future()
        self._pending_acks[mid] = waiter
        try:
            failures = await asyncio.wait_for(waiter, timeout=self._config.connect_timeout)
        except TimeoutError as exc:
            self._pending_acks.pop(mid, None)
            raise SubscribeError(f"No {operation} acknowledgement for {pattern!r}", topic=pattern) from exc
        if failures:
            raise SubscribeError(f"Broker rejected {operation} of {pattern!r}: {failures}", topic=pattern)

    async def subscribe(self, pattern: str, qos: int | None = None) -> None:
        """Subscribe now and on every future reconnect.

        Raises
        ------
        NotConnectedError
            If the session is not connected.
        SubscribeError
            If the request is rejected or not acknowledged in time.
        """
        client = self._require_client("subscribe")
        level = self._config.qos if qos is None else qos
        try:
            result, mid = client.subscribe(pattern, qos=level)
        except ValueError as exc:
            raise SubscribeError(f"Invalid subscription {pattern!r}: {exc}", topic=pattern) from exc
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise SubscribeError(
                f"Subscribe to {pattern!r} failed: {mqtt.error_string(result)}",
                reason_code=result,
                topic=pattern,
            )
        # Registered before awaiting: the SUBACK handler can only run once we yield.
        await self._await_ack(mid, "subscribe", pattern)
        self._subscriptions[pattern] = level
        self._logger.debug("MQTT subscribed topic=%s", pattern)

    async def unsubscribe(self, pattern: str) -> None:
        """Unsubscribe and stop reissuing *pattern* on reconnect."""
        client = self._require_client("unsubscribe")
        try:
            result, mid = client.unsubscribe(pattern)
        except ValueError as exc:
            raise SubscribeError(f"Invalid subscription {pattern!r}: {exc}", topic=pattern) from exc
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise SubscribeError(
                f"Unsubscribe from {pattern!r} failed: {mqtt.error_string(result)}",
                reason_code=result,
                topic=pattern,
            )
        await self._await_ack(mid, "unsubscribe", pattern)
        self._subscriptions.pop(pattern, None)
        self._logger.debug("MQTT unsubscribed topic=%s", pattern)

    async def publish(self, topic: str, payload: bytes | str, *, qos: int | None = None, retain: bool = False) -> int:
        """Publish *payload* to *topic*; returns the message id.

        Raises
        ------
        NotConnectedError
            If the session is not connected.
        PublishError
            If the client library rejects the publish.
        """
        client = self._require_client("publish")
        level = self._config.qos if qos is None else qos
        try:
            info = client.publish(topic, payload, qos=level, retain=retain)
        except ValueError as exc:
            raise PublishError(f"Invalid publish to {topic!r}: {exc}", topic=topic) from exc
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(
                f"Publish to {topic!r} failed: {mqtt.error_string(info.rc)}",
                reason_code=info.rc,
                topic=topic,
            )
        self._logger.debug("MQTT published topic=%s payload=%s", topic, redact_for_log(payload))
        return int(info.mid)
