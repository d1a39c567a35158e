"""Exception hierarchy shared by every devicelink component."""

from __future__ import annotations

from typing import Any


class DeviceLinkError(RuntimeError):
    """Base error for the device envelope client."""


class ConfigError(DeviceLinkError):
    """Raised when the configuration file is missing required values."""


class SecretKeyError(DeviceLinkError, ValueError):
    """Raised when a device secret cannot be turned into AES key material."""


class EncodingError(DeviceLinkError, ValueError):
    """Raised when a reading cannot be serialised or an envelope decoded."""


class CredentialNotFoundError(DeviceLinkError, LookupError):
    """Raised when the secret store has no row for a device."""

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(f"no credential stored for device '{device_id}'")


class StoreUnavailableError(DeviceLinkError):
    """Raised when the secret store cannot be reached or read."""


class TransportError(DeviceLinkError):
    """Raised for network-level delivery failures."""


class MqttConnectionError(TransportError, ConnectionError):
    """Raised when the MQTT link is not connected or drops before the ack."""


class PublishError(TransportError):
    """Raised when the broker rejects a publish."""


class PublishTimeoutError(TransportError, TimeoutError):
    """Raised when a publish is neither acknowledged nor failed in time."""


class AuthRejectedError(DeviceLinkError):
    """Raised when the receiver refuses the token (bad signature, expiry, unknown device)."""

    def __init__(self, message: str, *, status_code: int, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RenewalRejectedError(DeviceLinkError):
    """Raised when the renewal endpoint refuses the previous secret."""

    def __init__(self, message: str, *, status_code: int = 0, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class TokenError(DeviceLinkError):
    """Base error for token parsing and verification."""


class TokenFormatError(TokenError):
    """Raised when a token is not three base64url JSON segments."""


class TokenSignatureError(TokenError):
    """Raised when the HMAC signature does not match."""


class TokenExpiredError(TokenError):
    """Raised when ``exp`` lies in the past."""


__all__ = [
    "DeviceLinkError",
    "ConfigError",
    "SecretKeyError",
    "EncodingError",
    "CredentialNotFoundError",
    "StoreUnavailableError",
    "TransportError",
    "MqttConnectionError",
    "PublishError",
    "PublishTimeoutError",
    "AuthRejectedError",
    "RenewalRejectedError",
    "TokenError",
    "TokenFormatError",
    "TokenSignatureError",
    "TokenExpiredError",
]
