"""Bounded FIFO buffer of recent sensor readings."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from pyiotdash._constants import WINDOW_CAPACITY
from pyiotdash.models.reading import SensorReading


class SensorWindow:
    """The most recent ``capacity`` readings, oldest first.

    Eviction is global FIFO: it ignores which series a reading belongs to,
    so a chatty series can push a quiet one out of the window entirely.
    """

    def __init__(self, capacity: int = WINDOW_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._readings: deque[SensorReading] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        maxlen = self._readings.maxlen
        assert maxlen is not None  # noqa: S101
        return maxlen

    def append(self, reading: SensorReading) -> None:
        """Insert at the tail, evicting from the head once over capacity."""
        self._readings.append(reading)

    def as_sequence(self) -> tuple[SensorReading, ...]:
        """Snapshot of the window contents, oldest first."""
        return tuple(self._readings)

    def clear(self) -> None:
        self._readings.clear()

    def __len__(self) -> int:
        return len(self._readings)

    def __iter__(self) -> Iterator[SensorReading]:
        return iter(self.as_sequence())
