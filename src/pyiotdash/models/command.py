"""Outbound command payloads."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from pyiotdash.models._base import parse_timestamp


class CommandKind(StrEnum):
    """Command names the dashboard itself emits.

    Devices branch on the command name, so structured operator input
    (``CUSTOM``) and raw-text fallback (``MESSAGE``) must stay distinct.
    """

    CUSTOM = "custom"
    MESSAGE = "message"
    TOGGLE = "toggle"


class CommandMessage(BaseModel):
    """Command addressed to one device. Built on demand, never stored.

    Unlike inbound payloads, operator-supplied values are sent verbatim,
    placeholders included.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    device_id: str
    command: str
    value: str | int | float | None = None
    timestamp: Annotated[datetime, BeforeValidator(parse_timestamp)]

    @field_validator("device_id", "command")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must be non-empty")
        return text

    def to_payload(self) -> bytes:
        """Serialize to the camelCase JSON wire form."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
