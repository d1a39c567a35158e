# src/devicelink/config/const.py
from __future__ import annotations

from typing import Final

# Wire-format constants shared with the device firmware. Changing any of
# these breaks interoperability with deployed ESP32 units.
AES_KEY_BYTES: Final[int] = 16
AES_BLOCK_BITS: Final[int] = 128
IV_BYTES: Final[int] = 16
MIN_ENVELOPE_BYTES: Final[int] = 32

TOKEN_ALGORITHM: Final[str] = "HS256"
TOKEN_TYPE: Final[str] = "JWT"
TOKEN_TTL_SECONDS: Final[int] = 3600

# Ingestion API
PAYLOAD_HTTP_PATH: Final[str] = "/payload/http"
RENEW_SECRET_PATH: Final[str] = "/device/renew-secret/{device_id}"
AUTH_REJECTION_CODES: Final[frozenset[int]] = frozenset({401, 403})

# Defaults used when the config file leaves a value out
DEFAULT_SERVER_URL: Final[str] = "http://localhost:7601"
DEFAULT_HTTP_TIMEOUT: Final[float] = 15.0
DEFAULT_MQTT_HOST: Final[str] = "localhost"
DEFAULT_MQTT_PORT: Final[int] = 1883
DEFAULT_MQTT_CLIENT_ID: Final[str] = "devicelink-sender"
DEFAULT_MQTT_TOPIC: Final[str] = "device/data"
DEFAULT_PUBLISH_TIMEOUT: Final[float] = 10.0
DEFAULT_SEND_INTERVAL: Final[float] = 5.0
DEFAULT_DB_PATH: Final[str] = "devicelink.sqlite"
DEFAULT_CONFIG_FILE: Final[str] = "devicelink.yaml"
