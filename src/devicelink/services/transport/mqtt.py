"""MQTT binding: the raw token string is the message payload."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from enum import Enum
from typing import Any, Callable

import aiomqtt
import paho.mqtt.client as paho

from devicelink.config.const import (
    DEFAULT_MQTT_CLIENT_ID,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_PUBLISH_TIMEOUT,
)
from devicelink.errors import MqttConnectionError, PublishError, PublishTimeoutError, TransportError
from devicelink.services.envelope.models import SignedToken

from .results import DeliveryResult

__all__ = ["ConnectionState", "MqttLink", "MqttTransport"]

_log = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]

# publish return codes paho reports once the session is gone
_LINK_LOST_CODES = (paho.MQTT_ERR_NO_CONN, paho.MQTT_ERR_CONN_LOST)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class MqttLink:
    """One long-lived broker connection with an explicit state machine.

    ``client_factory`` receives the ``aiomqtt.Client`` keyword arguments and
    must return an async context manager exposing ``publish``.
    """

    def __init__(
        self,
        host: str = DEFAULT_MQTT_HOST,
        port: int = DEFAULT_MQTT_PORT,
        *,
        client_id: str = DEFAULT_MQTT_CLIENT_ID,
        username: str | None = None,
        password: str | None = None,
        qos: int = 1,
        publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.client_id = client_id
        self.username = username
        self.password = password
        self.qos = qos
        self.publish_timeout = publish_timeout
        self._factory = client_factory or aiomqtt.Client
        self._stack: contextlib.AsyncExitStack | None = None
        self._client: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def connect(self) -> None:
        async with self._lock:
            if self._state is ConnectionState.CONNECTED:
                return
            self._state = ConnectionState.CONNECTING
            stack = contextlib.AsyncExitStack()
            try:
                client = self._factory(
                    hostname=self.host,
                    port=self.port,
                    identifier=self.client_id,
                    username=self.username,
                    password=self.password,
                )
                self._client = await stack.enter_async_context(client)
            except aiomqtt.MqttError as exc:
                self._state = ConnectionState.DISCONNECTED
                await stack.aclose()
                raise MqttConnectionError(f"cannot connect to mqtt://{self.host}:{self.port}: {exc}") from exc
            self._stack = stack
            self._state = ConnectionState.CONNECTED
            _log.info("connected to MQTT broker %s:%s", self.host, self.port)

    async def close(self) -> None:
        stack, self._stack = self._stack, None
        self._client = None
        self._state = ConnectionState.DISCONNECTED
        if stack is None:
            return
        try:
            await stack.aclose()
        except aiomqtt.MqttError as exc:
            _log.debug("error while closing MQTT connection: %s", exc)

    async def publish(self, token: SignedToken | str, topic: str = DEFAULT_MQTT_TOPIC, *, timeout: float | None = None) -> None:
        """Publish and wait for completion, bounded by ``timeout`` seconds.

        On timeout the connection is closed so the next cycle reconnects.
        """
        if self._state is not ConnectionState.CONNECTED or self._client is None:
            raise MqttConnectionError("MQTT link is not connected")
        bound = self.publish_timeout if timeout is None else timeout
        # aiomqtt's own operation timeout is disabled so only ``bound`` applies
        publish = self._client.publish(topic, str(token), qos=self.qos, timeout=math.inf)
        try:
            await asyncio.wait_for(publish, timeout=bound)
        except asyncio.TimeoutError as exc:
            await self.close()
            raise PublishTimeoutError(f"publish to '{topic}' not acknowledged within {bound:g}s") from exc
        except aiomqtt.MqttCodeError as exc:
            if exc.rc in _LINK_LOST_CODES:
                await self.close()
                raise MqttConnectionError(f"MQTT link lost before publish to '{topic}': {exc}") from exc
            raise PublishError(f"broker rejected publish to '{topic}': {exc}") from exc
        except aiomqtt.MqttError as exc:
            await self.close()
            raise MqttConnectionError(f"MQTT link lost during publish: {exc}") from exc


class MqttTransport:
    """Adapts :class:`MqttLink` to the ``send(token) -> DeliveryResult`` shape."""

    name = "mqtt"

    def __init__(self, link: MqttLink, topic: str = DEFAULT_MQTT_TOPIC) -> None:
        self.link = link
        self.topic = topic

    async def send(self, token: SignedToken | str) -> DeliveryResult:
        try:
            if not self.link.connected:
                await self.link.connect()
            await self.link.publish(token, self.topic)
        except PublishTimeoutError as exc:
            _log.warning("MQTT publish timed out: %s", exc)
            return DeliveryResult.timed_out(self.name, exc)
        except TransportError as exc:
            _log.warning("MQTT delivery failed: %s", exc)
            return DeliveryResult.failed(self.name, exc)
        return DeliveryResult.success(self.name, message=f"published to {self.topic}")

    async def aclose(self) -> None:
        await self.link.close()
