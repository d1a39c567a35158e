"""Offline round trip through codec, signer and receiver-side checks."""

from __future__ import annotations

import typer

from devicelink.apps.cli.runtime import print_error
from devicelink.errors import DeviceLinkError
from devicelink.services.envelope.codec import AesCbcCodec
from devicelink.services.envelope.models import TimestampUnit
from devicelink.services.envelope.signer import sign, verify_token
from devicelink.services.envelope.simulator import alarm_trigger_reading

SELFTEST_SECRET = "8358a7b6add3b33daf060be8345f0af4"


def selftest(
    secret: str = typer.Option(SELFTEST_SECRET, "--secret", "-s", help="Hex secret to test with."),
    device_id: str = typer.Option("selftest-device", "--device", "-d"),
    timestamp_unit: TimestampUnit = typer.Option(TimestampUnit.SECONDS, "--timestamp-unit", case_sensitive=False),
) -> None:
    """Encrypt, sign, verify and decrypt a reading without any network."""
    codec = AesCbcCodec()
    reading = alarm_trigger_reading(timestamp_unit)
    try:
        envelope = codec.encode(reading, secret)
        typer.echo(f"encrypt: ok ({len(envelope.ciphertext)} byte ciphertext)")
        token = sign(envelope, device_id, secret)
        typer.echo(f"sign:    ok (exp - iat = {token.expires_at - token.issued_at}s)")
        verified = verify_token(token.compact, secret)
        typer.echo("verify:  ok")
        decoded = codec.decode(verified.claims["data"], secret)
    except DeviceLinkError as exc:
        print_error(f"self-test failed: {exc}")
        raise typer.Exit(1)
    if decoded != reading:
        print_error("self-test failed: decrypted reading differs from the original")
        raise typer.Exit(1)
    typer.echo("decrypt: ok")
    typer.secho("Self-test passed.", fg=typer.colors.GREEN)
