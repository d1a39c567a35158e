"""Synthetic water-quality readings for exercising the ingestion path."""
from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Mapping

from .models import SensorReading, TimestampUnit

__all__ = ["ChannelRange", "DEFAULT_RANGES", "ALARM_TRIGGER_VALUES", "SensorSimulator", "alarm_trigger_reading"]


@dataclass(slots=True)
class ChannelRange:
    minimum: float
    maximum: float
    current: float

    def clamp(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))


# V0 pH, V1 flow L/min, V2 COD mg/L, V3 temperature C, V4 NH3-N mg/L, V5 turbidity NTU
DEFAULT_RANGES: Mapping[str, tuple[float, float, float]] = {
    "V0": (0.0, 14.0, 7.1),
    "V1": (0.0, 100.0, 30.0),
    "V2": (0.0, 200.0, 50.0),
    "V3": (-10.0, 60.0, 26.0),
    "V4": (0.0, 20.0, 2.5),
    "V5": (0.0, 100.0, 10.0),
}

# A fixed sample sitting just outside typical alarm thresholds (pH above 8, low flow).
ALARM_TRIGGER_VALUES: Mapping[str, float] = {
    "V0": 8.5,
    "V1": 12.0,
    "V2": 45.8,
    "V3": 28.3,
    "V4": 2.1,
    "V5": 8.7,
}


class SensorSimulator:
    """Random walk of at most 5% per step, clamped to each channel's range."""

    def __init__(
        self,
        ranges: Mapping[str, tuple[float, float, float]] | None = None,
        *,
        rng: random.Random | None = None,
        max_step: float = 0.05,
    ) -> None:
        source = DEFAULT_RANGES if ranges is None else ranges
        self._ranges = {name: ChannelRange(*bounds) for name, bounds in source.items()}
        self._rng = rng or random.Random()
        self._max_step = max_step

    @property
    def current(self) -> dict[str, float]:
        return {name: r.current for name, r in self._ranges.items()}

    def step(self) -> dict[str, float]:
        values: dict[str, float] = {}
        for name, channel in self._ranges.items():
            variation = (self._rng.random() - 0.5) * 2 * self._max_step
            channel.current = channel.clamp(channel.current * (1 + variation))
            values[name] = channel.current
        return values

    def next_reading(self, unit: TimestampUnit | str, *, epoch_seconds: float | None = None) -> SensorReading:
        if epoch_seconds is None:
            epoch_seconds = time.time()
        return SensorReading.capture(self.step(), unit=unit, epoch_seconds=epoch_seconds)


def alarm_trigger_reading(unit: TimestampUnit | str, *, epoch_seconds: float | None = None) -> SensorReading:
    if epoch_seconds is None:
        epoch_seconds = time.time()
    return SensorReading.capture(ALARM_TRIGGER_VALUES, unit=unit, epoch_seconds=epoch_seconds)
