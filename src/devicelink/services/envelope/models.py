"""Value objects describing device credentials, readings and envelopes."""
from __future__ import annotations

import base64
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from devicelink.config.const import IV_BYTES, MIN_ENVELOPE_BYTES
from devicelink.errors import EncodingError

__all__ = [
    "TimestampUnit",
    "DeviceCredential",
    "SensorReading",
    "EncryptedEnvelope",
    "SignedToken",
    "channel_sort_key",
]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


class TimestampUnit(_StrEnum):
    SECONDS = "seconds"
    MILLISECONDS = "milliseconds"

    def from_epoch(self, epoch_seconds: float) -> int:
        if self is TimestampUnit.MILLISECONDS:
            return int(epoch_seconds * 1000)
        return int(epoch_seconds)


_CHANNEL_RE = re.compile(r"^(\D*)(\d*)$")


def channel_sort_key(channel: str) -> tuple[str, int, str]:
    """Natural order for virtual pins: V0, V1, ..., V9, V10."""
    match = _CHANNEL_RE.match(channel)
    if match and match.group(2):
        return (match.group(1), int(match.group(2)), channel)
    return (channel, -1, channel)


@dataclass(frozen=True, slots=True)
class DeviceCredential:
    device_id: str
    current_secret: str
    previous_secret: str | None = None

    def rotated(self, new_secret: str) -> "DeviceCredential":
        """Successor credential after a renewal; never persisted by the sender."""
        return DeviceCredential(
            device_id=self.device_id,
            current_secret=new_secret,
            previous_secret=self.current_secret,
        )

    def __repr__(self) -> str:
        # keep secrets out of logs and tracebacks
        return f"DeviceCredential(device_id={self.device_id!r}, previous_secret={'set' if self.previous_secret else None})"


@dataclass(frozen=True, slots=True)
class SensorReading:
    """One sample of every channel plus the device timestamp.

    Values are rounded to two decimals, matching the firmware's sensor
    functions and keeping the payload size stable.
    """

    channels: Mapping[str, float]
    timestamp: int

    def __post_init__(self) -> None:
        rounded: dict[str, float] = {}
        for name in sorted(self.channels, key=channel_sort_key):
            if name == "timestamp":
                raise EncodingError("'timestamp' is reserved and cannot be used as a channel name")
            value = self.channels[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise EncodingError(f"channel {name!r} must be numeric, got {type(value).__name__}")
            rounded[name] = round(float(value), 2)
        object.__setattr__(self, "channels", MappingProxyType(rounded))
        object.__setattr__(self, "timestamp", int(self.timestamp))

    def __hash__(self) -> int:
        return hash((tuple(self.channels.items()), self.timestamp))

    @classmethod
    def capture(
        cls,
        channels: Mapping[str, float],
        *,
        unit: TimestampUnit | str,
        epoch_seconds: float,
    ) -> "SensorReading":
        return cls(channels=channels, timestamp=TimestampUnit(unit).from_epoch(epoch_seconds))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SensorReading":
        if not isinstance(data, Mapping) or "timestamp" not in data:
            raise EncodingError("decoded payload is not a sensor reading")
        channels = {str(k): v for k, v in data.items() if k != "timestamp"}
        return cls(channels=channels, timestamp=data["timestamp"])

    def as_ordered_dict(self) -> dict[str, Any]:
        """Channels in natural order followed by ``timestamp``."""
        ordered: dict[str, Any] = dict(self.channels)
        ordered["timestamp"] = self.timestamp
        return ordered


@dataclass(frozen=True, slots=True)
class EncryptedEnvelope:
    iv: bytes
    ciphertext: bytes

    @property
    def wire(self) -> str:
        """``base64(iv || ciphertext)``; the IV is never sent separately."""
        return base64.b64encode(self.iv + self.ciphertext).decode("ascii")

    @classmethod
    def from_wire(cls, wire: str) -> "EncryptedEnvelope":
        try:
            combined = base64.b64decode(wire, validate=True)
        except (ValueError, TypeError) as exc:
            raise EncodingError("envelope is not valid base64") from exc
        if len(combined) < MIN_ENVELOPE_BYTES:
            raise EncodingError(f"envelope too short ({len(combined)} bytes, minimum {MIN_ENVELOPE_BYTES})")
        return cls(iv=combined[:IV_BYTES], ciphertext=combined[IV_BYTES:])

    def __str__(self) -> str:
        return self.wire


@dataclass(frozen=True, slots=True)
class SignedToken:
    header: Mapping[str, Any]
    claims: Mapping[str, Any]
    compact: str = field(repr=False)

    @property
    def signature(self) -> str:
        return self.compact.rsplit(".", 1)[-1]

    @property
    def issued_at(self) -> int:
        return int(self.claims["iat"])

    @property
    def expires_at(self) -> int:
        return int(self.claims["exp"])

    def __str__(self) -> str:
        return self.compact
