"""Envelope primitives: readings, AES payload codec and HS256 signer."""
from .models import DeviceCredential, EncryptedEnvelope, SensorReading, SignedToken, TimestampUnit
from .codec import AesCbcCodec, Base64Codec, PayloadCodec, codec_for, derive_key
from .signer import parse_token, sign, verify_token

__all__ = [
    "DeviceCredential",
    "EncryptedEnvelope",
    "SensorReading",
    "SignedToken",
    "TimestampUnit",
    "AesCbcCodec",
    "Base64Codec",
    "PayloadCodec",
    "codec_for",
    "derive_key",
    "parse_token",
    "sign",
    "verify_token",
]
