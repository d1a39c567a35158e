"""Wiring between loaded settings and the service objects used by commands."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import typer

from devicelink.adapters.db.credentials import CredentialStore
from devicelink.config.settings import Settings, load_settings
from devicelink.errors import ConfigError
from devicelink.sdk.core.logging import setup_logging
from devicelink.services.envelope.codec import codec_for
from devicelink.services.sender import DevicePublisher
from devicelink.services.telemetry import SendTelemetry
from devicelink.services.transport.http import HttpIngestClient
from devicelink.services.transport.mqtt import MqttLink, MqttTransport

__all__ = ["CliState", "print_error", "redact"]


def print_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)


def redact(value: str | None) -> str:
    if value is None:
        return "-"
    if len(value) <= 8:
        return "*" * len(value)
    return value[:2] + "*" * (len(value) - 6) + value[-4:]


@dataclass
class CliState:
    config_path: Path | None = None
    log_level: str | None = None
    _settings: Settings | None = field(default=None, repr=False)

    def settings(self) -> Settings:
        """Load the config file once; exit with status 2 when it is unusable."""
        if self._settings is None:
            try:
                self._settings = load_settings(self.config_path)
            except ConfigError as exc:
                print_error(f"Configuration error: {exc}")
                raise typer.Exit(2)
            setup_logging(
                self.log_level or self._settings.logging.level,
                log_file=self._settings.logging.file,
            )
        return self._settings

    def store(self) -> CredentialStore:
        return CredentialStore(self.settings().store.db_path)

    def http_client(self) -> HttpIngestClient:
        server = self.settings().server
        return HttpIngestClient(
            server.base_url,
            timeout=server.timeout,
            send_device_header=server.send_device_header,
        )

    def mqtt_transport(self) -> MqttTransport:
        mqtt = self.settings().mqtt
        link = MqttLink(
            mqtt.host,
            mqtt.port,
            client_id=mqtt.client_id,
            username=mqtt.username,
            password=mqtt.password,
            qos=mqtt.qos,
            publish_timeout=mqtt.publish_timeout,
        )
        return MqttTransport(link, mqtt.topic)

    def publisher(self, renewer: HttpIngestClient, telemetry: SendTelemetry | None = None) -> DevicePublisher:
        settings = self.settings()
        return DevicePublisher(
            store=self.store(),
            codec=codec_for(settings.payload.codec),
            renewer=renewer,
            timestamp_unit=settings.payload.timestamp_unit,
            telemetry=telemetry,
            iat_offset=settings.payload.iat_offset,
        )
