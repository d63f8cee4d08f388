from __future__ import annotations

import pytest

from pyiotdash.config import DashConfig
from pyiotdash.exceptions import IotDashConfigError

_ENV_KEYS = (
    "IOTDASH_BROKER_URL",
    "IOTDASH_USERNAME",
    "IOTDASH_PASSWORD",
    "IOTDASH_CLIENT_ID",
    "IOTDASH_COMMAND_TOPIC",
    "IOTDASH_FLOW_EDITOR_URL",
    "IOTDASH_KEEPALIVE",
    "IOTDASH_CONNECT_TIMEOUT",
    "IOTDASH_RECONNECT_PERIOD",
    "IOTDASH_QOS",
    "IOTDASH_WINDOW_CAPACITY",
    "IOTDASH_SUBSCRIPTIONS",
    "IOTDASH_CLEAN_SESSION",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    config = DashConfig()

    assert config.broker_url == "ws://localhost:8083/mqtt"
    assert config.subscriptions == ("devices/+/data", "devices/+/status")
    assert config.window_capacity == 50
    assert config.connect_timeout == 4.0
    assert config.reconnect_period == 1.0
    assert config.clean_session is True
    assert config.flow_editor_url == "http://127.0.0.1:1880/"
    assert config.client_id.startswith("iot-dashboard-")
    assert len(config.client_id) == len("iot-dashboard-") + 8


def test_client_ids_are_unique_per_instance() -> None:
    assert DashConfig().client_id != DashConfig().client_id


def test_command_topic_for() -> None:
    assert DashConfig().command_topic_for("dev1") == "devices/dev1/command"
    assert DashConfig(command_topic="cmd/{device_id}").command_topic_for("dev1") == "cmd/dev1"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"broker_url": "  "},
        {"command_topic": "devices/command"},
        {"qos": 3},
        {"window_capacity": 0},
        {"connect_timeout": 0},
        {"reconnect_period": -1},
    ],
)
def test_invalid_values_are_rejected(kwargs: dict) -> None:
    with pytest.raises(IotDashConfigError):
        DashConfig(**kwargs)


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOTDASH_BROKER_URL", "mqtts://broker.example:8883")
    monkeypatch.setenv("IOTDASH_USERNAME", "operator")
    monkeypatch.setenv("IOTDASH_PASSWORD", "pw")
    monkeypatch.setenv("IOTDASH_CLIENT_ID", "wall-panel")
    monkeypatch.setenv("IOTDASH_KEEPALIVE", "30")
    monkeypatch.setenv("IOTDASH_CONNECT_TIMEOUT", "2.5")
    monkeypatch.setenv("IOTDASH_QOS", "1")
    monkeypatch.setenv("IOTDASH_WINDOW_CAPACITY", "200")
    monkeypatch.setenv("IOTDASH_SUBSCRIPTIONS", "devices/+/data, alerts/# ,")
    monkeypatch.setenv("IOTDASH_CLEAN_SESSION", "off")

    config = DashConfig.from_env()

    assert config.broker_url == "mqtts://broker.example:8883"
    assert config.username == "operator"
    assert config.password == "pw"
    assert config.client_id == "wall-panel"
    assert config.keepalive == 30
    assert config.connect_timeout == 2.5
    assert config.qos == 1
    assert config.window_capacity == 200
    assert config.subscriptions == ("devices/+/data", "alerts/#")
    assert config.clean_session is False


def test_from_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOTDASH_BROKER_URL", "mqtt://from-env")
    monkeypatch.setenv("IOTDASH_QOS", "not-a-number")

    config = DashConfig.from_env(broker_url="mqtt://explicit", qos=2)

    assert config.broker_url == "mqtt://explicit"
    assert config.qos == 2


def test_from_env_rejects_bad_numbers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOTDASH_WINDOW_CAPACITY", "fifty")

    with pytest.raises(IotDashConfigError, match="IOTDASH_WINDOW_CAPACITY"):
        DashConfig.from_env()


def test_from_env_unrecognised_bool_keeps_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOTDASH_CLEAN_SESSION", "maybe")

    assert DashConfig.from_env().clean_session is True
