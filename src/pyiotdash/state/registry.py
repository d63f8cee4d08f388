"""Deterministic in-memory device registry.

Devices are merge-upserted, never deleted. A device that stops reporting
stays listed; its presence degrades via :mod:`pyiotdash.state.presence`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic.alias_generators import to_camel

from pyiotdash.models._base import drop_none
from pyiotdash.models.device import Device

_FIELD_BY_ALIAS: dict[str, str] = {to_camel(name): name for name in Device.model_fields}


def _normalize_patch(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Map camelCase keys onto field names and drop ``None`` values.

    Every other value, placeholder-looking strings included, overwrites
    the stored field. Only absent or ``None`` fields are retained.
    """
    patch: dict[str, Any] = {}
    for key, value in drop_none(dict(fields)).items():
        patch[_FIELD_BY_ALIAS.get(key, key)] = value
    patch.pop("id", None)
    return patch


class DeviceRegistry:
    """Current known state of every device, keyed by id, in first-seen order.

    Given the same sequence of upserts the registry produces the same list.
    """

    def __init__(self) -> None:
        self._devices: dict[str, Device] = {}

    def upsert(
        self,
        device_id: str,
        fields: Mapping[str, Any] | None = None,
        *,
        observed_at: datetime | None = None,
    ) -> Device:
        """Merge *fields* into the record for *device_id*, creating it if absent.

        ``observed_at`` is supplied only for inbound telemetry and overwrites
        ``last_seen``; manual edits leave ``last_seen`` untouched. Validation
        happens before the registry is touched, so a rejected patch leaves
        the previous record in place.

        Raises
        ------
        pydantic.ValidationError
            If the merged record is not a valid :class:`Device`.
        """
        key = device_id.strip()
        patch = _normalize_patch(fields or {})
        if observed_at is not None:
            patch["last_seen"] = observed_at

        existing = self._devices.get(key)
        base: dict[str, Any] = existing.model_dump() if existing is not None else {}
        device = Device.model_validate({**base, **patch, "id": key})

        # Re-assigning an existing key keeps its position.
        self._devices[device.id] = device
        return device

    def get(self, device_id: str) -> Device | None:
        return self._devices.get(device_id.strip())

    def list(self) -> list[Device]:
        """All devices in first-seen order."""
        return list(self._devices.values())

    def online(self, now: datetime) -> list[Device]:
        return [device for device in self._devices.values() if device.is_online(now)]

    def __contains__(self, device_id: object) -> bool:
        return isinstance(device_id, str) and device_id.strip() in self._devices

    def __len__(self) -> int:
        return len(self._devices)
