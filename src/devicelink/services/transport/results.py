from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from devicelink.config.const import AUTH_REJECTION_CODES
from devicelink.services.envelope.models import SignedToken

__all__ = ["DeliveryStatus", "DeliveryResult", "Transport"]


class _StrEnum(str, Enum):
    def __str__(self) -> str:  # pragma: no cover - logging helper
        return str(self.value)


class DeliveryStatus(_StrEnum):
    OK = "ok"
    REJECTED = "rejected"
    TRANSPORT_ERROR = "transport_error"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    """Outcome of handing one token to a binding."""

    status: DeliveryStatus
    transport: str
    status_code: int | None = None
    body: str | None = None
    message: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.OK

    @property
    def auth_rejected(self) -> bool:
        return self.status is DeliveryStatus.REJECTED and self.status_code in AUTH_REJECTION_CODES

    @classmethod
    def success(cls, transport: str, *, status_code: int | None = None, message: str | None = None) -> "DeliveryResult":
        return cls(DeliveryStatus.OK, transport, status_code=status_code, message=message)

    @classmethod
    def rejected(cls, transport: str, *, status_code: int, body: str | None = None) -> "DeliveryResult":
        return cls(DeliveryStatus.REJECTED, transport, status_code=status_code, body=body, message=body)

    @classmethod
    def failed(cls, transport: str, error: Exception) -> "DeliveryResult":
        return cls(DeliveryStatus.TRANSPORT_ERROR, transport, message=str(error), error=error)

    @classmethod
    def timed_out(cls, transport: str, error: Exception) -> "DeliveryResult":
        return cls(DeliveryStatus.TIMEOUT, transport, message=str(error), error=error)

    def describe(self) -> str:
        if self.ok:
            return self.message or "delivered"
        if self.status is DeliveryStatus.REJECTED:
            return f"HTTP {self.status_code}: {self.body or ''}".rstrip(": ")
        return f"{self.status.value}: {self.message}"


class Transport(Protocol):
    name: str

    async def send(self, token: SignedToken | str) -> DeliveryResult:
        ...

    async def aclose(self) -> None:
        ...
