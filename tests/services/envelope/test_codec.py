from __future__ import annotations

import base64
import hashlib
import hmac
import logging

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from devicelink.errors import EncodingError, SecretKeyError
from devicelink.services.envelope.codec import AesCbcCodec, Base64Codec, codec_for, derive_key
from devicelink.services.envelope.models import EncryptedEnvelope, SensorReading, TimestampUnit
from devicelink.services.envelope.signer import b64url_encode, sign

SECRET = "8358a7b6add3b33daf060be8345f0af4"
FIXED_IV = bytes(range(16))


def _reading() -> SensorReading:
    return SensorReading(
        channels={"V1": 12.0, "V0": 8.5, "V3": 28.3, "V2": 45.8, "V5": 8.7, "V4": 2.1},
        timestamp=1_700_000_000,
    )


def test_round_trip_restores_reading():
    codec = AesCbcCodec()
    reading = _reading()
    envelope = codec.encode(reading, SECRET)
    assert codec.decode(envelope, SECRET) == reading
    assert codec.decode(envelope.wire, SECRET) == reading


def test_fresh_iv_per_call():
    codec = AesCbcCodec()
    first = codec.encode(_reading(), SECRET)
    second = codec.encode(_reading(), SECRET)
    assert len(first.iv) == 16
    assert first.iv != second.iv
    assert first.wire != second.wire


def test_wire_is_iv_followed_by_ciphertext():
    envelope = AesCbcCodec().encode(_reading(), SECRET, iv=FIXED_IV)
    raw = base64.b64decode(envelope.wire)
    assert raw[:16] == FIXED_IV
    assert raw[16:] == envelope.ciphertext
    assert len(envelope.ciphertext) % 16 == 0


def test_ciphertext_matches_reference_aes_cbc():
    envelope = AesCbcCodec().encode(_reading(), SECRET, iv=FIXED_IV)
    plaintext = b'{"V0":8.5,"V1":12.0,"V2":45.8,"V3":28.3,"V4":2.1,"V5":8.7,"timestamp":1700000000}'
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(bytes.fromhex(SECRET)), modes.CBC(FIXED_IV)).encryptor()
    assert envelope.ciphertext == encryptor.update(padded) + encryptor.finalize()


@pytest.mark.parametrize("extra", ["deadbeef", "deadbeefdeadbeefdeadbeefdeadbeef"])
def test_long_secret_is_truncated_to_sixteen_bytes(extra):
    codec = AesCbcCodec()
    long_secret = SECRET + extra
    assert derive_key(long_secret) == bytes.fromhex(SECRET)
    short = codec.encode(_reading(), SECRET, iv=FIXED_IV)
    long = codec.encode(_reading(), long_secret, iv=FIXED_IV)
    assert short.ciphertext == long.ciphertext


@pytest.mark.parametrize("secret", ["abcd", "", "zz" * 16, "8358a7b6add3b33daf060be8345f0a"])
def test_unusable_secret_raises_key_error(secret):
    with pytest.raises(SecretKeyError):
        AesCbcCodec().encode(_reading(), secret)


def test_short_wire_is_rejected():
    wire = base64.b64encode(b"\x00" * 31).decode()
    with pytest.raises(EncodingError):
        AesCbcCodec().decode(wire, SECRET)


def test_non_base64_wire_is_rejected():
    with pytest.raises(EncodingError):
        EncryptedEnvelope.from_wire("not base64 at all!")


def test_wrong_secret_does_not_decode():
    envelope = AesCbcCodec().encode(_reading(), SECRET)
    with pytest.raises(EncodingError):
        AesCbcCodec().decode(envelope, "00112233445566778899aabbccddeeff")


def test_reading_values_rounded_and_naturally_ordered():
    reading = SensorReading(channels={"V10": 1.005, "V2": 3.14159, "V1": 2}, timestamp=5)
    assert list(reading.as_ordered_dict()) == ["V1", "V2", "V10", "timestamp"]
    assert reading.channels["V2"] == 3.14


@pytest.mark.parametrize("channels", [{"timestamp": 1.0}, {"V0": True}, {"V0": "7.1"}])
def test_invalid_reading_rejected(channels):
    with pytest.raises(EncodingError):
        SensorReading(channels=channels, timestamp=1)


def test_reading_is_hashable_and_read_only():
    first = SensorReading(channels={"V1": 2.0, "V0": 1.004}, timestamp=9)
    second = SensorReading(channels={"V0": 1.0, "V1": 2.0}, timestamp=9)
    assert first == second
    assert hash(first) == hash(second)
    assert len({first, second}) == 1
    with pytest.raises(TypeError):
        first.channels["V0"] = 5.0


def test_timestamp_unit_is_applied():
    seconds = SensorReading.capture({"V0": 1.0}, unit=TimestampUnit.SECONDS, epoch_seconds=1700000000.75)
    millis = SensorReading.capture({"V0": 1.0}, unit="milliseconds", epoch_seconds=1700000000.75)
    assert seconds.timestamp == 1700000000
    assert millis.timestamp == 1700000000750


def test_base64_codec_is_flagged_insecure(caplog):
    with caplog.at_level(logging.WARNING, logger="devicelink.services.envelope.codec"):
        codec = Base64Codec()
    assert "NOT encrypted" in caplog.text
    assert codec.secure is False
    wire = codec.encode(_reading(), SECRET)
    assert base64.b64decode(wire).startswith(b'{"V0":8.5')
    assert codec.decode(wire, "ignored") == _reading()


def test_codec_for_selects_implementation():
    assert isinstance(codec_for("aes"), AesCbcCodec)
    assert isinstance(codec_for("BASE64"), Base64Codec)
    with pytest.raises(ValueError):
        codec_for("rot13")


def test_success_path_scenario():
    secret = "0123456789abcdef0123456789abcdef"
    reading = SensorReading(channels={"V0": 7.20, "V1": 25.50}, timestamp=1700000000)
    codec = AesCbcCodec()
    envelope = codec.encode(reading, secret)
    assert codec.decode(envelope, secret) == reading

    token = sign(envelope, "dev-1", secret, clock=lambda: 1700000000)
    signing_input, signature = token.compact.rsplit(".", 1)
    expected = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    assert signature == b64url_encode(expected)
