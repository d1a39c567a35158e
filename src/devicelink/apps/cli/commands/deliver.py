"""Commands that talk to the ingestion backend: send, run, renew."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from typing import List, Optional

import typer

from devicelink.apps.cli.runtime import CliState, print_error, redact
from devicelink.errors import CredentialNotFoundError, DeviceLinkError, RenewalRejectedError, StoreUnavailableError
from devicelink.services.envelope.simulator import alarm_trigger_reading
from devicelink.services.rotation import CycleOutcome
from devicelink.services.sender import ContinuousSender
from devicelink.services.telemetry import SendTelemetry
from devicelink.services.transport.results import Transport

TRANSPORTS = ("http", "mqtt")


def _state(ctx: typer.Context) -> CliState:
    return ctx.ensure_object(CliState)


def _check_transport(name: str) -> str:
    value = name.lower()
    if value not in TRANSPORTS:
        raise typer.BadParameter(f"transport must be one of: {', '.join(TRANSPORTS)}")
    return value


def _print_outcome(device_id: str, transport: str, outcome: CycleOutcome) -> None:
    try:
        outcome.raise_for_failure()
    except DeviceLinkError as exc:
        reason = outcome.reason.value if outcome.reason else "failed"
        print_error(f"{transport.upper()} {device_id}: {reason}: {exc}")
        raise typer.Exit(1)
    detail = outcome.result.describe() if outcome.result else "-"
    suffix = " (after secret renewal)" if outcome.renewed else ""
    typer.secho(f"{transport.upper()} {device_id}: delivered{suffix}: {detail}", fg=typer.colors.GREEN)
    if outcome.renewed:
        typer.echo(f"New secret (not stored): {redact(outcome.credential.current_secret)}")


def print_stats(telemetry: SendTelemetry) -> None:
    typer.echo("Delivery statistics:")
    for name in telemetry.transports:
        stats = telemetry.stats(name)
        typer.echo(
            f"  {name.upper():<5} sent={stats.attempts} ok={stats.successes} "
            f"failed={stats.failures} success_rate={stats.success_rate}%"
        )


async def _send_once(state: CliState, device_id: str, transport_name: str, alarm: bool) -> CycleOutcome:
    http = state.http_client()
    transport: Transport = http if transport_name == "http" else state.mqtt_transport()
    publisher = state.publisher(http)
    reading = alarm_trigger_reading(publisher.timestamp_unit) if alarm else None
    try:
        return await publisher.send_cycle(device_id, transport, reading)
    finally:
        if transport is not http:
            await transport.aclose()
        await http.aclose()


def send(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier in the credential store."),
    transport: str = typer.Option("http", "--transport", "-t", help="http or mqtt."),
    alarm: bool = typer.Option(False, "--alarm", help="Send the fixed alarm-trigger reading."),
) -> None:
    """Run one delivery cycle for a device."""
    transport = _check_transport(transport)
    state = _state(ctx)
    state.settings()
    try:
        outcome = asyncio.run(_send_once(state, device_id, transport, alarm))
    except (CredentialNotFoundError, StoreUnavailableError) as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    _print_outcome(device_id, transport, outcome)


async def _run_until_stopped(sender: ContinuousSender) -> SendTelemetry:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        # not available on Windows event loops
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, sender.stop)
            installed.append(sig)
    try:
        return await sender.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def run(
    ctx: typer.Context,
    device: Optional[List[str]] = typer.Option(None, "--device", "-d", help="Device id; repeatable. Defaults to sender.device_ids."),
    transport: Optional[List[str]] = typer.Option(None, "--transport", "-t", help="Transport; repeatable. Defaults to sender.transports."),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", min=0.1, help="Seconds between cycles."),
    cycles: Optional[int] = typer.Option(None, "--cycles", "-n", min=1, help="Stop after this many cycles."),
) -> None:
    """Send simulated readings continuously until interrupted."""
    state = _state(ctx)
    settings = state.settings()
    device_ids = list(device or settings.sender.device_ids)
    if not device_ids:
        print_error("No devices given; pass --device or set sender.device_ids.")
        raise typer.Exit(2)
    names = [_check_transport(name) for name in (transport or settings.sender.transports)]

    http = state.http_client()
    transports: list[Transport] = [
        http if name == "http" else state.mqtt_transport() for name in dict.fromkeys(names)
    ]
    sender = ContinuousSender(
        state.publisher(http),
        transports,
        device_ids,
        interval=interval or settings.sender.interval,
        max_cycles=cycles,
    )
    typer.echo(
        f"Sending for {', '.join(device_ids)} over {', '.join(t.name for t in transports)} "
        f"every {sender.interval:g}s. Press Ctrl+C to stop."
    )

    async def _run() -> SendTelemetry:
        try:
            return await _run_until_stopped(sender)
        finally:
            # the renewal client still needs closing when HTTP is not a delivery transport
            if http not in transports:
                await http.aclose()

    telemetry = asyncio.run(_run())
    print_stats(telemetry)


def renew(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier in the credential store."),
    show: bool = typer.Option(False, "--show", help="Print the new secret unredacted."),
) -> None:
    """Exchange the stored previous secret for a new one."""
    state = _state(ctx)
    state.settings()

    async def _renew() -> str:
        credential = await state.store().fetch_credential(device_id)
        if not credential.previous_secret:
            raise RenewalRejectedError(f"device '{device_id}' has no previous secret to renew with")
        async with state.http_client() as http:
            return await http.renew_secret(device_id, credential.previous_secret)

    try:
        secret = asyncio.run(_renew())
    except (CredentialNotFoundError, StoreUnavailableError, RenewalRejectedError) as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    typer.secho(f"Secret renewed for {device_id}.", fg=typer.colors.GREEN)
    typer.echo(secret if show else redact(secret))
