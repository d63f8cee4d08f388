from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from pyiotdash._mqtt import BrokerEndpoint


class FakeReasonCode:
    def __init__(self, name: str = "Success", *, failure: bool = False) -> None:
        self.is_failure = failure
        self._name = name

    def __str__(self) -> str:
        return self._name


class FakePahoClient:
    """Stands in for ``paho.mqtt.client.Client``; callbacks fire synchronously."""

    def __init__(
        self,
        endpoint: BrokerEndpoint,
        *,
        connack: str | None = "accept",
        connect_error: Exception | None = None,
        rejected: frozenset[str] = frozenset(),
    ) -> None:
        self.endpoint = endpoint
        self.connack = connack
        self.connect_error = connect_error
        self.rejected = rejected
        self.connected_to: tuple[str, int, int] | None = None
        self.reconnect_delay: tuple[float, float] | None = None
        self.loop_running = False
        self.disconnected = False
        self.subscribed: list[tuple[str, int]] = []
        self.unsubscribed: list[str] = []
        self.published: list[tuple[str, Any, int, bool]] = []
        self._mid = 0

    def _next_mid(self) -> int:
        self._mid += 1
        return self._mid

    def reconnect_delay_set(self, min_delay: float = 1, max_delay: float = 120) -> None:
        self.reconnect_delay = (min_delay, max_delay)

    def connect(self, host: str, port: int = 1883, keepalive: int = 60) -> int:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_to = (host, port, keepalive)
        return 0

    def loop_start(self) -> int:
        self.loop_running = True
        if self.connack == "accept":
            self.fire_connect()
        elif self.connack == "refuse":
            self.fire_connect(failure=True)
        return 0

    def loop_stop(self) -> int:
        self.loop_running = False
        return 0

    def disconnect(self) -> int:
        self.disconnected = True
        return 0

    def subscribe(self, topic: str, qos: int = 0) -> tuple[int, int]:
        mid = self._next_mid()
        self.subscribed.append((topic, qos))
        self.on_subscribe(self, None, mid, [FakeReasonCode("Unspecified error", failure=topic in self.rejected)], None)
        return 0, mid

    def unsubscribe(self, topic: str) -> tuple[int, int]:
        mid = self._next_mid()
        self.unsubscribed.append(topic)
        self.on_unsubscribe(self, None, mid, [FakeReasonCode()], None)
        return 0, mid

    def publish(self, topic: str, payload: Any = None, qos: int = 0, retain: bool = False) -> SimpleNamespace:
        self.published.append((topic, payload, qos, retain))
        return SimpleNamespace(rc=0, mid=self._next_mid())

    # -- broker-side simulation -------------------------------------

    def fire_connect(self, *, failure: bool = False) -> None:
        reason = FakeReasonCode("Not authorized", failure=True) if failure else FakeReasonCode()
        self.on_connect(self, None, None, reason, None)

    def fire_disconnect(self) -> None:
        self.on_disconnect(self, None, None, FakeReasonCode("Unspecified error", failure=True), None)

    def fire_message(self, topic: str, payload: bytes) -> None:
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))


class FakeClientFactory:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.clients: list[FakePahoClient] = []

    def __call__(self, endpoint: BrokerEndpoint) -> FakePahoClient:
        client = FakePahoClient(endpoint, **self.kwargs)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakePahoClient:
        return self.clients[-1]


@pytest.fixture
def fake_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def make_factory() -> type[FakeClientFactory]:
    return FakeClientFactory
