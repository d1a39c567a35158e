"""Payload codecs turning sensor readings into transport-ready blobs.

Two interchangeable implementations share the :class:`PayloadCodec`
protocol:

* :class:`AesCbcCodec` - AES-128-CBC with PKCS#7 padding, key taken from the
  first 16 bytes of the hex-decoded device secret, random IV prepended to the
  ciphertext and the whole thing base64 encoded. This is the format the ESP32
  ``AESUtils`` library produces.
* :class:`Base64Codec` - legacy debug mode that only base64-encodes the JSON.
  It provides no confidentiality and must not be used in production.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from typing import Protocol, runtime_checkable

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from devicelink.config.const import AES_BLOCK_BITS, AES_KEY_BYTES, IV_BYTES
from devicelink.errors import EncodingError, SecretKeyError

from .models import EncryptedEnvelope, SensorReading

__all__ = [
    "PayloadCodec",
    "AesCbcCodec",
    "Base64Codec",
    "codec_for",
    "derive_key",
    "serialize_reading",
    "parse_reading",
]

_log = logging.getLogger(__name__)


@runtime_checkable
class PayloadCodec(Protocol):
    name: str
    secure: bool

    def encode(self, reading: SensorReading, secret: str) -> EncryptedEnvelope | str:
        """Return the envelope whose ``str()`` is carried in the token's ``data`` claim."""

    def decode(self, wire: EncryptedEnvelope | str, secret: str) -> SensorReading:
        """Inverse of :meth:`encode`."""


def derive_key(secret: str) -> bytes:
    """Hex-decode ``secret`` and keep the first 16 bytes as the AES-128 key.

    Longer secrets are silently truncated to stay compatible with the
    firmware, which does the same.
    """
    try:
        material = bytes.fromhex(secret.strip())
    except (ValueError, AttributeError) as exc:
        raise SecretKeyError("device secret is not a hex string") from exc
    if len(material) < AES_KEY_BYTES:
        raise SecretKeyError(
            f"device secret decodes to {len(material)} bytes, at least {AES_KEY_BYTES} are required"
        )
    return material[:AES_KEY_BYTES]


def serialize_reading(reading: SensorReading) -> bytes:
    try:
        text = json.dumps(reading.as_ordered_dict(), separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"sensor reading cannot be serialised: {exc}") from exc
    return text.encode("utf-8")


def parse_reading(raw: bytes) -> SensorReading:
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise EncodingError("decoded payload is not JSON") from exc
    return SensorReading.from_mapping(data)


class AesCbcCodec:
    name = "aes"
    secure = True

    def encode(self, reading: SensorReading, secret: str, *, iv: bytes | None = None) -> EncryptedEnvelope:
        """Encrypt ``reading``; ``iv`` may only be fixed by tests."""
        key = derive_key(secret)
        plaintext = serialize_reading(reading)
        if iv is None:
            iv = os.urandom(IV_BYTES)
        elif len(iv) != IV_BYTES:
            raise EncodingError(f"IV must be {IV_BYTES} bytes")

        padder = padding.PKCS7(AES_BLOCK_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return EncryptedEnvelope(iv=iv, ciphertext=ciphertext)

    def decode(self, envelope: EncryptedEnvelope | str, secret: str) -> SensorReading:
        if isinstance(envelope, str):
            envelope = EncryptedEnvelope.from_wire(envelope)
        key = derive_key(secret)
        if len(envelope.ciphertext) % (AES_BLOCK_BITS // 8):
            raise EncodingError("ciphertext length is not a multiple of the AES block size")
        decryptor = Cipher(algorithms.AES(key), modes.CBC(envelope.iv)).decryptor()
        padded = decryptor.update(envelope.ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(AES_BLOCK_BITS).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            # wrong key or corrupted ciphertext
            raise EncodingError("envelope padding is invalid") from exc
        return parse_reading(plaintext)


class Base64Codec:
    """Legacy, NON-SECURE codec: base64 of the JSON, no encryption."""

    name = "base64"
    secure = False

    def __init__(self) -> None:
        _log.warning("base64 payload codec selected: sensor data is NOT encrypted")

    def encode(self, reading: SensorReading, secret: str) -> str:
        return base64.b64encode(serialize_reading(reading)).decode("ascii")

    def decode(self, wire: str, secret: str) -> SensorReading:
        try:
            raw = base64.b64decode(wire, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise EncodingError("payload is not valid base64") from exc
        return parse_reading(raw)


def codec_for(mode: str) -> PayloadCodec:
    normalized = (mode or "").strip().lower()
    if normalized in ("aes", "aes-128-cbc"):
        return AesCbcCodec()
    if normalized == "base64":
        return Base64Codec()
    raise ValueError(f"unknown payload codec '{mode}' (expected 'aes' or 'base64')")
