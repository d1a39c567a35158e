from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from devicelink.apps.cli.commands import credentials, deliver, selftest, token
from devicelink.apps.cli.runtime import CliState

app = typer.Typer(help="Encrypted, signed sensor payload sender for IoT devices.", no_args_is_help=True)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="DEVICELINK_CONFIG",
        help="YAML configuration file (default: ./devicelink.yaml).",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override logging.level from the config."),
) -> None:
    ctx.obj = CliState(config_path=config, log_level=log_level)


app.command("send")(deliver.send)
app.command("run")(deliver.run)
app.command("renew")(deliver.renew)
app.command("selftest")(selftest.selftest)
app.add_typer(credentials.app, name="credentials")
app.add_typer(token.app, name="token")


if __name__ == "__main__":
    app()
