"""HTTP binding: bearer-token POST to the ingestion API plus secret renewal."""
from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from devicelink.config.const import (
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_SERVER_URL,
    PAYLOAD_HTTP_PATH,
    RENEW_SECRET_PATH,
)
from devicelink.errors import RenewalRejectedError, TransportError
from devicelink.services.envelope.models import SignedToken

from .results import DeliveryResult

__all__ = ["HttpIngestClient"]

_log = logging.getLogger(__name__)


def _decode_body(response: httpx.Response) -> Any | None:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpIngestClient:
    """Delivers tokens to ``POST /payload/http``; no retries of its own.

    The ``httpx.AsyncClient`` can be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise one is created lazily and owned.
    """

    name = "http"

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        send_device_header: bool = False,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.send_device_header = send_device_header
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpIngestClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def send(self, token: SignedToken | str) -> DeliveryResult:
        compact = str(token)
        headers = {
            "Authorization": f"Bearer {compact}",
            "Content-Type": "application/json",
        }
        if self.send_device_header and isinstance(token, SignedToken):
            headers["X-Device-Id"] = str(token.claims.get("sub", ""))
        url = f"{self.base_url}{PAYLOAD_HTTP_PATH}"
        try:
            response = await self._http().post(url, content=b"{}", headers=headers)
        except httpx.TimeoutException as exc:
            _log.warning("HTTP delivery to %s timed out: %s", url, exc)
            return DeliveryResult.failed(self.name, TransportError(f"POST {url} timed out"))
        except httpx.RequestError as exc:
            _log.warning("HTTP delivery to %s failed: %s", url, exc)
            return DeliveryResult.failed(self.name, TransportError(f"POST {url} failed: {exc}"))

        if response.is_success:
            content = _decode_body(response)
            message = None
            if isinstance(content, Mapping) and isinstance(content.get("message"), str):
                message = content["message"]
            return DeliveryResult.success(self.name, status_code=response.status_code, message=message)

        _log.info("HTTP delivery rejected with %s", response.status_code)
        return DeliveryResult.rejected(self.name, status_code=response.status_code, body=response.text)

    async def renew_secret(self, device_id: str, old_secret: str) -> str:
        """Exchange ``old_secret`` for the device's next secret."""
        path = RENEW_SECRET_PATH.format(device_id=device_id)
        url = f"{self.base_url}{path}"
        try:
            response = await self._http().post(url, json={"old_secret": old_secret})
        except httpx.RequestError as exc:
            raise RenewalRejectedError(f"POST {path} failed: {exc}") from exc

        content = _decode_body(response)
        if not response.is_success:
            message = response.text or f"HTTP {response.status_code}"
            if isinstance(content, Mapping) and isinstance(content.get("message"), str):
                message = content["message"]
            raise RenewalRejectedError(message, status_code=response.status_code, payload=content)

        secret = content.get("secret_key") if isinstance(content, Mapping) else None
        if not isinstance(secret, str) or not secret:
            raise RenewalRejectedError(
                "renewal response did not contain a secret_key",
                status_code=response.status_code,
                payload=content,
            )
        return secret
