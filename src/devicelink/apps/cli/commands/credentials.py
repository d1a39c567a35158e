"""Local credential store provisioning."""

from __future__ import annotations

from typing import Optional

import typer

from devicelink.apps.cli.runtime import CliState, print_error, redact
from devicelink.errors import CredentialNotFoundError, SecretKeyError, StoreUnavailableError
from devicelink.services.envelope.codec import derive_key
from devicelink.services.envelope.models import DeviceCredential

app = typer.Typer(help="Provision and inspect device secrets in the local store.")


@app.command("set")
def cmd_set(
    ctx: typer.Context,
    device_id: str,
    secret: str,
    previous: Optional[str] = typer.Option(None, "--previous", "-p", help="Previous secret, used for renewal."),
    description: Optional[str] = typer.Option(None, "--description", help="Free-form device description."),
) -> None:
    state = ctx.ensure_object(CliState)
    try:
        derive_key(secret)
        if previous:
            derive_key(previous)
    except SecretKeyError as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    try:
        state.store().save_credential(
            DeviceCredential(device_id=device_id, current_secret=secret, previous_secret=previous),
            description=description,
        )
    except StoreUnavailableError as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    typer.secho(f"Credential for {device_id} saved.", fg=typer.colors.GREEN)


@app.command("show")
def cmd_show(
    ctx: typer.Context,
    device_id: str,
    show: bool = typer.Option(False, "--show", help="Print secrets unredacted."),
) -> None:
    state = ctx.ensure_object(CliState)
    try:
        credential = state.store().fetch_credential_sync(device_id)
    except (CredentialNotFoundError, StoreUnavailableError) as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    reveal = (lambda v: v or "-") if show else redact
    typer.echo(f"device:   {credential.device_id}")
    typer.echo(f"current:  {reveal(credential.current_secret)}")
    typer.echo(f"previous: {reveal(credential.previous_secret)}")


@app.command("list")
def cmd_list(ctx: typer.Context) -> None:
    state = ctx.ensure_object(CliState)
    try:
        devices = state.store().list_devices()
    except StoreUnavailableError as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    if not devices:
        typer.echo("No devices stored.")
        return
    for device_id, description in devices:
        typer.echo(f"{device_id}\t{description or ''}".rstrip())
