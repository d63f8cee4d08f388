from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta

import pytest

from pyiotdash.ingestion.apply import TelemetryPipeline
from pyiotdash.state.registry import DeviceRegistry
from pyiotdash.state.window import SensorWindow

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _pipeline() -> TelemetryPipeline:
    return TelemetryPipeline(DeviceRegistry(), SensorWindow())


def _json(body: object) -> bytes:
    return json.dumps(body).encode("utf-8")


def test_data_message_updates_registry_and_window() -> None:
    pipeline = _pipeline()

    result = pipeline.handle_message(
        "devices/dev1/data",
        _json({"id": "dev1", "type": "temperature", "sensorValue": 21.5, "unit": "C"}),
        _T0,
    )

    assert result is not None
    device = pipeline.registry.get("dev1")
    assert device is not None
    assert device.last_seen == _T0
    assert device.sensor_value == 21.5
    (reading,) = pipeline.window.as_sequence()
    assert reading.timestamp == _T0
    assert reading.series_key == "dev1_temperature"
    assert reading.value == 21.5


def test_status_message_updates_presence_without_reading() -> None:
    pipeline = _pipeline()
    pipeline.handle_message("devices/dev1/data", _json({"type": "temperature", "sensorValue": 1}), _T0)

    pipeline.handle_message("devices/dev1/status", b"on", _T0 + timedelta(minutes=1))

    device = pipeline.registry.get("dev1")
    assert device is not None
    assert device.status == "on"
    assert device.type == "temperature"
    assert device.last_seen == _T0 + timedelta(minutes=1)
    assert len(pipeline.window) == 1


def test_reading_without_type_is_unknown() -> None:
    pipeline = _pipeline()

    pipeline.handle_message("devices/dev1/data", _json({"sensorValue": 4}), _T0)

    assert pipeline.window.as_sequence()[0].type == "unknown"


def test_malformed_payload_leaves_state_unchanged(caplog) -> None:
    pipeline = _pipeline()
    pipeline.handle_message("devices/dev1/data", _json({"type": "temperature", "sensorValue": 1}), _T0)
    devices_before = pipeline.registry.list()
    window_before = pipeline.window.as_sequence()

    with caplog.at_level(logging.DEBUG, logger="pyiotdash.ingestion.apply"):
        result = pipeline.handle_message("devices/dev2/data", b'{"sensorValue": ', _T0)

    assert result is None
    assert pipeline.registry.list() == devices_before
    assert pipeline.window.as_sequence() == window_before
    assert "dev2" not in pipeline.registry
    assert pipeline.dropped == 1
    assert "Dropping malformed message" in caplog.text


def test_rejected_value_does_not_half_apply() -> None:
    pipeline = _pipeline()

    pipeline.handle_message("devices/dev3/data", _json({"status": "on", "sensorValue": "hot"}), _T0)

    assert "dev3" not in pipeline.registry
    assert len(pipeline.window) == 0


def test_non_device_topics_are_ignored() -> None:
    pipeline = _pipeline()

    assert pipeline.handle_message("home/lights", b"on", _T0) is None

    assert pipeline.ignored == 1
    assert pipeline.dropped == 0
    assert len(pipeline.registry) == 0


def test_out_of_order_delivery_is_not_reordered() -> None:
    pipeline = _pipeline()

    pipeline.handle_message("devices/dev1/data", _json({"sensorValue": 1}), _T0 + timedelta(seconds=10))
    pipeline.handle_message("devices/dev1/data", _json({"sensorValue": 2}), _T0)

    device = pipeline.registry.get("dev1")
    assert device is not None
    assert device.last_seen == _T0
    assert device.sensor_value == 2
    assert [r.value for r in pipeline.window.as_sequence()] == [1, 2]


def test_window_cap_applies_to_pipeline_appends() -> None:
    pipeline = TelemetryPipeline(DeviceRegistry(), SensorWindow(50))

    for i in range(1, 52):
        pipeline.handle_message(
            "devices/dev1/data",
            _json({"type": "temperature", "sensorValue": i}),
            _T0 + timedelta(seconds=i),
        )

    values = [r.value for r in pipeline.window.as_sequence()]
    assert values == [float(i) for i in range(2, 52)]
    assert len(pipeline.registry) == 1
    assert pipeline.applied == 51


@pytest.mark.parametrize("device_id", ["nan", "NaN", "--"])
def test_placeholder_looking_device_ids_are_applied(device_id: str) -> None:
    pipeline = _pipeline()

    result = pipeline.handle_message(
        f"devices/{device_id}/data",
        _json({"type": "temperature", "sensorValue": 1}),
        _T0,
    )

    assert result is not None
    assert device_id in pipeline.registry
    (reading,) = pipeline.window.as_sequence()
    assert reading.series_key == f"{device_id}_temperature"
    assert pipeline.dropped == 0


def test_placeholder_looking_type_keeps_its_series() -> None:
    pipeline = _pipeline()

    pipeline.handle_message("devices/dev1/data", _json({"type": "nan", "sensorValue": 1}), _T0)

    assert pipeline.window.as_sequence()[0].series_key == "dev1_nan"


def test_placeholder_looking_status_overwrites() -> None:
    pipeline = _pipeline()
    pipeline.handle_message("devices/dev1/status", b"on", _T0)

    pipeline.handle_message("devices/dev1/data", _json({"status": "--"}), _T0)

    device = pipeline.registry.get("dev1")
    assert device is not None
    assert device.status == "--"


_DEEPLY_NESTED = b'{"x":' + b"[" * 100_000 + b"]" * 100_000 + b"}"


@pytest.mark.parametrize(
    ("topic", "payload"),
    [
        ("devices/dev2/data", _DEEPLY_NESTED),
        ("devices/dev2/status", _DEEPLY_NESTED),
        ("devices/dev2/status", b"[" * 100_000 + b"]" * 100_000),
        ("devices/dev2/data", b"\x00\x01"),
        ("devices/dev2/data", b"null"),
        ("devices/dev2/data", _json({"sensorValue": [1]})),
        ("devices/dev2/data", _json({"id": "dev3", "sensorValue": 1})),
        ("devices/dev2/status", _json({"status": None})),
        ("devices/dev2/status", _json([])),
    ],
)
def test_malformed_input_is_dropped_without_raising(topic: str, payload: bytes) -> None:
    pipeline = _pipeline()
    pipeline.handle_message("devices/dev1/data", _json({"type": "temperature", "sensorValue": 1}), _T0)
    devices_before = pipeline.registry.list()
    window_before = pipeline.window.as_sequence()

    assert pipeline.handle_message(topic, payload, _T0) is None

    assert pipeline.registry.list() == devices_before
    assert pipeline.window.as_sequence() == window_before
    assert "dev2" not in pipeline.registry
    assert pipeline.dropped == 1
