from __future__ import annotations

import pytest

from devicelink.config.settings import load_settings, settings_from_mapping
from devicelink.errors import ConfigError
from devicelink.services.envelope.models import TimestampUnit


def _write(tmp_path, text: str):
    path = tmp_path / "devicelink.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_full_file(tmp_path):
    path = _write(
        tmp_path,
        """
server:
  base_url: https://ingest.example.com
  timeout: 5
mqtt:
  host: broker.example.com
  port: 8883
  topic: plant/7/data
  publish_timeout: 2.5
store:
  db_path: /var/lib/devicelink/devices.sqlite
payload:
  timestamp_unit: milliseconds
  iat_offset: 25200
sender:
  device_ids: [dev-1, dev-2]
  interval: 2
  transports: [mqtt]
logging:
  level: debug
""",
    )
    settings = load_settings(path, env={})
    assert settings.server.base_url == "https://ingest.example.com"
    assert settings.server.timeout == 5.0
    assert settings.mqtt.port == 8883
    assert settings.mqtt.topic == "plant/7/data"
    assert settings.mqtt.publish_timeout == 2.5
    assert settings.payload.timestamp_unit is TimestampUnit.MILLISECONDS
    assert settings.payload.iat_offset == 25200
    assert settings.sender.device_ids == ["dev-1", "dev-2"]
    assert settings.sender.transports == ["mqtt"]
    assert settings.logging.level == "DEBUG"


def test_defaults_apply_to_missing_sections():
    settings = settings_from_mapping({"payload": {"timestamp_unit": "seconds"}}, env={})
    assert settings.server.base_url == "http://localhost:7601"
    assert settings.mqtt.topic == "device/data"
    assert settings.mqtt.publish_timeout == 10.0
    assert settings.sender.interval == 5.0
    assert settings.payload.codec == "aes"


def test_timestamp_unit_is_required():
    with pytest.raises(ConfigError, match="timestamp_unit"):
        settings_from_mapping({}, env={})


def test_invalid_timestamp_unit_is_rejected():
    with pytest.raises(ConfigError):
        settings_from_mapping({"payload": {"timestamp_unit": "minutes"}}, env={})


@pytest.mark.parametrize(
    "raw",
    [
        {"payload": {"timestamp_unit": "seconds", "codec": "xor"}},
        {"payload": {"timestamp_unit": "seconds"}, "mqtt": {"port": "not-a-port"}},
        {"payload": {"timestamp_unit": "seconds"}, "sender": {"transports": ["smtp"]}},
        {"payload": {"timestamp_unit": "seconds"}, "sender": {"interval": 0}},
        {"payload": {"timestamp_unit": "seconds"}, "server": ["not", "a", "mapping"]},
    ],
)
def test_invalid_values_raise_config_error(raw):
    with pytest.raises(ConfigError):
        settings_from_mapping(raw, env={})


def test_environment_overrides(tmp_path):
    path = _write(tmp_path, "payload:\n  timestamp_unit: seconds\n")
    env = {
        "DEVICELINK_SERVER_URL": "http://10.0.0.5:7601",
        "DEVICELINK_MQTT_HOST": "10.0.0.6",
        "DEVICELINK_MQTT_PORT": "1884",
        "DEVICELINK_DB_PATH": str(tmp_path / "x.sqlite"),
    }
    settings = load_settings(path, env=env)
    assert settings.server.base_url == "http://10.0.0.5:7601"
    assert settings.mqtt.host == "10.0.0.6"
    assert settings.mqtt.port == 1884
    assert settings.store.db_path == str(tmp_path / "x.sqlite")


def test_config_path_from_environment(tmp_path):
    path = _write(tmp_path, "payload:\n  timestamp_unit: seconds\n")
    settings = load_settings(env={"DEVICELINK_CONFIG": str(path)})
    assert settings.payload.timestamp_unit is TimestampUnit.SECONDS


def test_missing_file_and_bad_yaml(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "nope.yaml", env={})
    with pytest.raises(ConfigError):
        load_settings(_write(tmp_path, "payload: [unclosed\n"), env={})


def test_to_dict_masks_mqtt_password():
    settings = settings_from_mapping(
        {"payload": {"timestamp_unit": "seconds"}, "mqtt": {"password": "hunter2"}}, env={}
    )
    data = settings.to_dict()
    assert data["mqtt"]["password"] == "***"
    assert data["payload"]["timestamp_unit"] == "seconds"
