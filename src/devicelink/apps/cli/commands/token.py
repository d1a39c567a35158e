"""Token diagnostics: decode, verify and decrypt like the receiver does."""

from __future__ import annotations

import json
from typing import Optional

import typer

from devicelink.apps.cli.runtime import print_error
from devicelink.errors import TokenError
from devicelink.services.envelope.codec import codec_for
from devicelink.services.envelope.signer import parse_token, verify_token

app = typer.Typer(help="Inspect signed device tokens.")


def _dump(value) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


@app.command("inspect")
def cmd_inspect(
    token: str,
    secret: Optional[str] = typer.Option(None, "--secret", "-s", help="Device secret; enables verification and decryption."),
    codec: str = typer.Option("aes", "--codec", help="Payload codec used by the device (aes or base64)."),
) -> None:
    try:
        parsed = parse_token(token)
    except TokenError as exc:
        print_error(f"Malformed token: {exc}")
        raise typer.Exit(1)
    typer.echo("header:")
    typer.echo(_dump(parsed.header))
    typer.echo("claims:")
    typer.echo(_dump(parsed.claims))
    if secret is None:
        return

    try:
        verify_token(parsed, secret)
    except TokenError as exc:
        print_error(f"Verification failed: {exc}")
        raise typer.Exit(1)
    typer.secho("signature: valid", fg=typer.colors.GREEN)

    data = parsed.claims.get("data")
    if not isinstance(data, str):
        print_error("Token has no 'data' claim to decrypt.")
        raise typer.Exit(1)
    try:
        reading = codec_for(codec).decode(data, secret)
    except ValueError as exc:
        print_error(f"Cannot decode payload: {exc}")
        raise typer.Exit(1)
    typer.echo("payload:")
    typer.echo(_dump(reading.as_ordered_dict()))
