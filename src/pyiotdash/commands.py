"""Outbound command dispatch."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from pyiotdash.config import DashConfig
from pyiotdash.exceptions import DeviceOfflineError
from pyiotdash.ingestion.normalize import reject_json_constant
from pyiotdash.models.command import CommandKind, CommandMessage
from pyiotdash.state.registry import DeviceRegistry

_logger = logging.getLogger(__name__)


class _Publisher(Protocol):
    async def publish(
        self,
        topic: str,
        payload: bytes | str,
        *,
        qos: int | None = None,
        retain: bool = False,
    ) -> int: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class TextDispatch:
    """Result of :meth:`CommandDispatcher.send_text`.

    ``kind`` tells the caller which path was taken: ``CUSTOM`` when the text
    parsed as JSON, ``MESSAGE`` when it was sent verbatim.
    """

    kind: CommandKind
    message: CommandMessage
    parsed: Any = None

    @property
    def fell_back(self) -> bool:
        return self.kind is CommandKind.MESSAGE


class CommandDispatcher:
    """Builds :class:`CommandMessage` payloads and publishes them to devices.

    Transport errors (:class:`NotConnectedError`, :class:`PublishError`)
    propagate to the caller; nothing is retried or queued.
    """

    def __init__(
        self,
        config: DashConfig,
        publisher: _Publisher,
        *,
        registry: DeviceRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._publisher = publisher
        self._registry = registry
        self._clock = clock

    def build(self, device_id: str, command: str, value: str | int | float | None = None) -> CommandMessage:
        return CommandMessage(device_id=device_id, command=command, value=value, timestamp=self._clock())

    async def send(self, device_id: str, command: str, value: str | int | float | None = None) -> CommandMessage:
        """Publish *command* to the device's command topic and return what was sent."""
        message = self.build(device_id, command, value)
        topic = self._config.command_topic_for(message.device_id)
        _logger.debug("Sending command=%s device=%s topic=%s", message.command, message.device_id, topic)
        await self._publisher.publish(topic, message.to_payload())
        return message

    async def send_text(self, device_id: str, text: str) -> TextDispatch:
        """Send operator-typed text.

        Text that parses as JSON is sent as a ``custom`` command carrying
        its compact re-serialization. Anything else is sent verbatim as a
        ``message`` command, and the returned :class:`TextDispatch` says so.

        Raises
        ------
        ValueError
            If *text* is blank.
        """
        if not text.strip():
            raise ValueError("command text is empty")
        try:
            parsed = json.loads(text, parse_constant=reject_json_constant)
        except (RecursionError, ValueError) as exc:
            _logger.info(
                "Command text for device=%s is not JSON (%s); sending as %s",
                device_id,
                exc.msg if isinstance(exc, json.JSONDecodeError) else exc,
                CommandKind.MESSAGE,
            )
            message = await self.send(device_id, CommandKind.MESSAGE.value, text)
            return TextDispatch(kind=CommandKind.MESSAGE, message=message)

        value = json.dumps(parsed, separators=(",", ":"), ensure_ascii=False)
        message = await self.send(device_id, CommandKind.CUSTOM.value, value)
        return TextDispatch(kind=CommandKind.CUSTOM, message=message, parsed=parsed)

    async def toggle(self, device_id: str) -> CommandMessage:
        """Send ``toggle``; refused for devices the registry does not see online.

        Raises
        ------
        DeviceOfflineError
            If the device is unknown or past the presence timeout.
        """
        if self._registry is not None:
            device = self._registry.get(device_id)
            if device is None or not device.is_online(self._clock()):
                raise DeviceOfflineError(f"Device {device_id!r} is offline", device_id=device_id)
        return await self.send(device_id, CommandKind.TOGGLE.value)
