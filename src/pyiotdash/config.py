"""Client configuration for pyiotdash."""

from __future__ import annotations

import dataclasses
import os
import secrets
from typing import Any

from pyiotdash._constants import (
    CLIENT_ID_PREFIX,
    DEFAULT_BROKER_URL,
    DEFAULT_COMMAND_TOPIC,
    DEFAULT_FLOW_EDITOR_URL,
    DEFAULT_SUBSCRIPTIONS,
    WINDOW_CAPACITY,
)
from pyiotdash.exceptions import IotDashConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _default_client_id() -> str:
    return f"{CLIENT_ID_PREFIX}{secrets.token_hex(4)}"


@dataclasses.dataclass(frozen=True)
class DashConfig:
    """Client configuration.

    Parameters
    ----------
    broker_url : str
        Broker endpoint as a URL carrying scheme, host, port and sub-path,
        e.g. ``ws://localhost:8083/mqtt`` or ``mqtts://broker:8883``.
    username : str or None
        Optional broker username. Passed through to the transport as-is.
    password : str or None
        Optional broker password.
    client_id : str
        MQTT client identifier. Defaults to ``iot-dashboard-<8 hex>``.
    clean_session : bool
        Request a clean session on connect.
    keepalive : int
        MQTT keepalive in seconds.
    connect_timeout : float
        Seconds to wait for CONNACK before :class:`ConnectError` is raised.
    reconnect_period : float
        Seconds between automatic reconnect attempts after a connection
        has been lost.
    subscriptions : tuple[str, ...]
        Topic patterns subscribed on every successful (re)connect.
    command_topic : str
        Template for the outbound command topic; must contain
        ``{device_id}``.
    qos : int
        QoS used for subscriptions and command publishes.
    window_capacity : int
        Number of most-recent sensor readings kept for visualization.
    flow_editor_url : str
        URL of the separately hosted flow editor. Only exposed by reference.
    """

    broker_url: str = DEFAULT_BROKER_URL
    username: str | None = None
    password: str | None = None
    client_id: str = dataclasses.field(default_factory=_default_client_id)
    clean_session: bool = True
    keepalive: int = 60
    connect_timeout: float = 4.0
    reconnect_period: float = 1.0
    subscriptions: tuple[str, ...] = DEFAULT_SUBSCRIPTIONS
    command_topic: str = DEFAULT_COMMAND_TOPIC
    qos: int = 0
    window_capacity: int = WINDOW_CAPACITY
    flow_editor_url: str = DEFAULT_FLOW_EDITOR_URL

    def __post_init__(self) -> None:
        if not self.broker_url.strip():
            raise IotDashConfigError("broker_url must be non-empty")
        if "{device_id}" not in self.command_topic:
            raise IotDashConfigError(f"command_topic must contain '{{device_id}}', got {self.command_topic!r}")
        if self.qos not in (0, 1, 2):
            raise IotDashConfigError(f"qos must be 0, 1 or 2, got {self.qos}")
        if self.window_capacity < 1:
            raise IotDashConfigError(f"window_capacity must be positive, got {self.window_capacity}")
        if self.connect_timeout <= 0:
            raise IotDashConfigError(f"connect_timeout must be positive, got {self.connect_timeout}")
        if self.reconnect_period <= 0:
            raise IotDashConfigError(f"reconnect_period must be positive, got {self.reconnect_period}")

    def command_topic_for(self, device_id: str) -> str:
        """Outbound command topic for *device_id*."""
        return self.command_topic.format(device_id=device_id)

    @classmethod
    def from_env(cls, **overrides: Any) -> DashConfig:
        """Create configuration from environment variables.

        Reads optional ``IOTDASH_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        DashConfig
            Populated configuration.

        Raises
        ------
        IotDashConfigError
            If a numeric variable cannot be parsed or validation fails.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "IOTDASH_BROKER_URL": "broker_url",
            "IOTDASH_USERNAME": "username",
            "IOTDASH_PASSWORD": "password",
            "IOTDASH_CLIENT_ID": "client_id",
            "IOTDASH_COMMAND_TOPIC": "command_topic",
            "IOTDASH_FLOW_EDITOR_URL": "flow_editor_url",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "IOTDASH_KEEPALIVE": ("keepalive", int),
            "IOTDASH_CONNECT_TIMEOUT": ("connect_timeout", float),
            "IOTDASH_RECONNECT_PERIOD": ("reconnect_period", float),
            "IOTDASH_QOS": ("qos", int),
            "IOTDASH_WINDOW_CAPACITY": ("window_capacity", int),
        }
        for env_key, (field_name, convert) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = convert(val)
            except ValueError as exc:
                raise IotDashConfigError(f"{env_key} is not a valid {convert.__name__}: {val!r}") from exc

        subscriptions_env = env.get("IOTDASH_SUBSCRIPTIONS")
        if subscriptions_env is not None and "subscriptions" not in overrides:
            config_kwargs["subscriptions"] = _env_list(subscriptions_env)

        if "clean_session" not in overrides:
            config_kwargs["clean_session"] = _env_bool(env.get("IOTDASH_CLEAN_SESSION"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
