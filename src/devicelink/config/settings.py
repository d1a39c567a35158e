from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from devicelink.config.const import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_DB_PATH,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_MQTT_CLIENT_ID,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_PUBLISH_TIMEOUT,
    DEFAULT_SEND_INTERVAL,
    DEFAULT_SERVER_URL,
)
from devicelink.errors import ConfigError
from devicelink.services.envelope.models import TimestampUnit

__all__ = [
    "ServerSettings",
    "MqttSettings",
    "StoreSettings",
    "PayloadSettings",
    "SenderSettings",
    "LoggingSettings",
    "Settings",
    "load_settings",
    "settings_from_mapping",
    "config_path",
]


@dataclass
class ServerSettings:
    base_url: str = DEFAULT_SERVER_URL
    timeout: float = DEFAULT_HTTP_TIMEOUT
    send_device_header: bool = False


@dataclass
class MqttSettings:
    host: str = DEFAULT_MQTT_HOST
    port: int = DEFAULT_MQTT_PORT
    client_id: str = DEFAULT_MQTT_CLIENT_ID
    topic: str = DEFAULT_MQTT_TOPIC
    username: str | None = None
    password: str | None = None
    qos: int = 1
    publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT


@dataclass
class StoreSettings:
    db_path: str = DEFAULT_DB_PATH


@dataclass
class PayloadSettings:
    # no default: firmware builds disagree on seconds vs milliseconds
    timestamp_unit: TimestampUnit
    codec: str = "aes"
    iat_offset: int = 0


@dataclass
class SenderSettings:
    device_ids: list[str] = field(default_factory=list)
    interval: float = DEFAULT_SEND_INTERVAL
    transports: list[str] = field(default_factory=lambda: ["http", "mqtt"])


@dataclass
class LoggingSettings:
    level: str = "INFO"
    file: str | None = None


@dataclass
class Settings:
    payload: PayloadSettings
    server: ServerSettings = field(default_factory=ServerSettings)
    mqtt: MqttSettings = field(default_factory=MqttSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    sender: SenderSettings = field(default_factory=SenderSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["payload"]["timestamp_unit"] = self.payload.timestamp_unit.value
        if data["mqtt"].get("password"):
            data["mqtt"]["password"] = "***"
        return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


def _number(payload: Mapping[str, Any], key: str, default: float, *, section: str, cast: type = float) -> Any:
    value = payload.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be a number")
    try:
        result = cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}") from exc
    return result


def _string_list(payload: Mapping[str, Any], key: str, default: list[str], *, section: str) -> list[str]:
    value = payload.get(key)
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"{section}.{key} must be a list")
    return [str(item) for item in value]


def _settings_from_dict(settings_cls: type, payload: Mapping[str, Any]):
    if settings_cls is ServerSettings:
        return ServerSettings(
            base_url=str(payload.get("base_url") or DEFAULT_SERVER_URL),
            timeout=_number(payload, "timeout", DEFAULT_HTTP_TIMEOUT, section="server"),
            send_device_header=bool(payload.get("send_device_header", False)),
        )
    if settings_cls is MqttSettings:
        qos = _number(payload, "qos", 1, section="mqtt", cast=int)
        if qos not in (0, 1, 2):
            raise ConfigError("mqtt.qos must be 0, 1 or 2")
        return MqttSettings(
            host=str(payload.get("host") or DEFAULT_MQTT_HOST),
            port=_number(payload, "port", DEFAULT_MQTT_PORT, section="mqtt", cast=int),
            client_id=str(payload.get("client_id") or DEFAULT_MQTT_CLIENT_ID),
            topic=str(payload.get("topic") or DEFAULT_MQTT_TOPIC),
            username=payload.get("username"),
            password=payload.get("password"),
            qos=qos,
            publish_timeout=_number(payload, "publish_timeout", DEFAULT_PUBLISH_TIMEOUT, section="mqtt"),
        )
    if settings_cls is StoreSettings:
        return StoreSettings(db_path=str(payload.get("db_path") or DEFAULT_DB_PATH))
    if settings_cls is PayloadSettings:
        unit = payload.get("timestamp_unit")
        if unit is None:
            raise ConfigError("payload.timestamp_unit is required ('seconds' or 'milliseconds')")
        try:
            timestamp_unit = TimestampUnit(str(unit).lower())
        except ValueError as exc:
            raise ConfigError(f"payload.timestamp_unit must be 'seconds' or 'milliseconds', got {unit!r}") from exc
        codec = str(payload.get("codec") or "aes").lower()
        if codec not in ("aes", "base64"):
            raise ConfigError(f"payload.codec must be 'aes' or 'base64', got {codec!r}")
        return PayloadSettings(
            timestamp_unit=timestamp_unit,
            codec=codec,
            iat_offset=_number(payload, "iat_offset", 0, section="payload", cast=int),
        )
    if settings_cls is SenderSettings:
        transports = _string_list(payload, "transports", ["http", "mqtt"], section="sender")
        unknown = sorted(set(transports) - {"http", "mqtt"})
        if unknown:
            raise ConfigError(f"sender.transports has unknown entries: {', '.join(unknown)}")
        interval = _number(payload, "interval", DEFAULT_SEND_INTERVAL, section="sender")
        if interval <= 0:
            raise ConfigError("sender.interval must be positive")
        return SenderSettings(
            device_ids=_string_list(payload, "device_ids", [], section="sender"),
            interval=interval,
            transports=transports,
        )
    if settings_cls is LoggingSettings:
        return LoggingSettings(level=str(payload.get("level") or "INFO").upper(), file=payload.get("file"))
    raise TypeError(f"Unsupported settings class: {settings_cls!r}")


def _apply_env(settings: Settings, env: Mapping[str, str]) -> None:
    if env.get("DEVICELINK_SERVER_URL"):
        settings.server.base_url = env["DEVICELINK_SERVER_URL"]
    if env.get("DEVICELINK_MQTT_HOST"):
        settings.mqtt.host = env["DEVICELINK_MQTT_HOST"]
    if env.get("DEVICELINK_MQTT_PORT"):
        try:
            settings.mqtt.port = int(env["DEVICELINK_MQTT_PORT"])
        except ValueError as exc:
            raise ConfigError(f"DEVICELINK_MQTT_PORT must be an integer, got {env['DEVICELINK_MQTT_PORT']!r}") from exc
    if env.get("DEVICELINK_DB_PATH"):
        settings.store.db_path = env["DEVICELINK_DB_PATH"]


def config_path(explicit: str | Path | None = None, env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    if explicit:
        return Path(explicit).expanduser()
    if env.get("DEVICELINK_CONFIG"):
        return Path(env["DEVICELINK_CONFIG"]).expanduser()
    return Path(DEFAULT_CONFIG_FILE)


def settings_from_mapping(raw: Mapping[str, Any] | None, env: Mapping[str, str] | None = None) -> Settings:
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise ConfigError("configuration root must be a mapping")
    settings = Settings(
        payload=_settings_from_dict(PayloadSettings, _section(raw, "payload")),
        server=_settings_from_dict(ServerSettings, _section(raw, "server")),
        mqtt=_settings_from_dict(MqttSettings, _section(raw, "mqtt")),
        store=_settings_from_dict(StoreSettings, _section(raw, "store")),
        sender=_settings_from_dict(SenderSettings, _section(raw, "sender")),
        logging=_settings_from_dict(LoggingSettings, _section(raw, "logging")),
    )
    _apply_env(settings, os.environ if env is None else env)
    return settings


def load_settings(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> Settings:
    target = config_path(path, env)
    if not target.exists():
        raise ConfigError(f"configuration file not found: {target}")
    try:
        raw = yaml.safe_load(target.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {target}: {exc}") from exc
    return settings_from_mapping(raw, env)
