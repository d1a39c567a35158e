"""HS256 token wrapping the encrypted envelope.

The HMAC key is the device secret *string* encoded as UTF-8, not the
hex-decoded bytes; the ingestion backend verifies with the same convention.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Mapping

from devicelink.config.const import TOKEN_ALGORITHM, TOKEN_TTL_SECONDS, TOKEN_TYPE
from devicelink.errors import (
    SecretKeyError,
    TokenExpiredError,
    TokenFormatError,
    TokenSignatureError,
)

from .models import EncryptedEnvelope, SignedToken

__all__ = ["sign", "parse_token", "verify_token", "b64url_encode", "b64url_decode"]

Clock = Callable[[], float]

_HEADER: Mapping[str, str] = {"alg": TOKEN_ALGORITHM, "typ": TOKEN_TYPE}


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    padding = "=" * ((4 - len(data) % 4) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _compact_json(value: Mapping[str, Any]) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


def _signature(secret: str, signing_input: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_input.encode("utf-8"), hashlib.sha256).digest()
    return b64url_encode(digest)


def sign(
    envelope: EncryptedEnvelope | str,
    device_id: str,
    secret: str,
    *,
    clock: Clock = time.time,
    iat_offset: int = 0,
) -> SignedToken:
    """Wrap ``envelope`` in a token valid for one hour from now.

    ``iat_offset`` shifts the issue time for firmware builds that stamp
    local time instead of UTC.
    """
    if not secret:
        raise SecretKeyError("device secret is empty")
    issued_at = int(clock()) + int(iat_offset)
    claims = {
        "data": str(envelope),
        "sub": device_id,
        "iat": issued_at,
        "exp": issued_at + TOKEN_TTL_SECONDS,
    }
    signing_input = f"{b64url_encode(_compact_json(_HEADER))}.{b64url_encode(_compact_json(claims))}"
    compact = f"{signing_input}.{_signature(secret, signing_input)}"
    return SignedToken(header=dict(_HEADER), claims=claims, compact=compact)


def parse_token(token: str | SignedToken) -> SignedToken:
    """Decode header and claims without checking the signature."""
    compact = str(token).strip()
    parts = compact.split(".")
    if len(parts) != 3 or not all(parts):
        raise TokenFormatError("token must have three non-empty segments")
    try:
        header = json.loads(b64url_decode(parts[0]).decode("utf-8"))
        claims = json.loads(b64url_decode(parts[1]).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise TokenFormatError("token segments are not base64url JSON") from exc
    if not isinstance(header, dict) or not isinstance(claims, dict):
        raise TokenFormatError("token header and claims must be JSON objects")
    return SignedToken(header=header, claims=claims, compact=compact)


def verify_token(token: str | SignedToken, secret: str, *, clock: Clock = time.time) -> SignedToken:
    """Check a token the way the ingestion backend does and return it parsed."""
    parsed = parse_token(token)
    if parsed.header.get("alg") != TOKEN_ALGORITHM:
        raise TokenFormatError(f"unsupported algorithm {parsed.header.get('alg')!r}")
    signing_input = parsed.compact.rsplit(".", 1)[0]
    expected = _signature(secret, signing_input)
    if not hmac.compare_digest(expected.encode("ascii"), parsed.signature.encode("utf-8")):
        raise TokenSignatureError("token signature does not match")
    exp = parsed.claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise TokenFormatError("token has no numeric 'exp' claim")
    if clock() >= exp:
        raise TokenExpiredError("token has expired")
    return parsed
