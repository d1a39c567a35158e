"""Per-transport send tallies and structured delivery events.

The core never prints; it emits events to sinks. The default sink logs on
``devicelink.events`` with the event fields passed as ``extra`` so the JSON
formatter writes them as columns.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

__all__ = ["EventSink", "TransportStats", "SendTelemetry", "log_sink"]

EventSink = Callable[[str, Mapping[str, Any]], None]

_events_log = logging.getLogger("devicelink.events")


def log_sink(event: str, payload: Mapping[str, Any]) -> None:
    level = logging.WARNING if payload.get("ok") is False else logging.INFO
    _events_log.log(level, event, extra={"event": event, **payload})


@dataclass(slots=True)
class TransportStats:
    attempts: int = 0
    successes: int = 0

    @property
    def failures(self) -> int:
        return self.attempts - self.successes

    @property
    def success_rate(self) -> int:
        """Whole percent, 0 when nothing was sent."""
        if not self.attempts:
            return 0
        return round(self.successes / self.attempts * 100)


class SendTelemetry:
    def __init__(self, *sinks: EventSink) -> None:
        self._sinks: list[EventSink] = list(sinks) or [log_sink]
        self._stats: Dict[str, TransportStats] = {}

    def emit(self, event: str, **payload: Any) -> None:
        for sink in self._sinks:
            sink(event, payload)

    def record_delivery(self, transport: str, ok: bool, **payload: Any) -> None:
        stats = self._stats.setdefault(transport, TransportStats())
        stats.attempts += 1
        if ok:
            stats.successes += 1
        self.emit("delivery", transport=transport, ok=ok, **payload)

    def stats(self, transport: str) -> TransportStats:
        return self._stats.setdefault(transport, TransportStats())

    @property
    def transports(self) -> list[str]:
        return sorted(self._stats)

