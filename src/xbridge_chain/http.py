"""Shared JSON-over-HTTP plumbing for the enclave and solver services."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from xbridge_core.config import ExternalServiceSettings
from xbridge_core.constants import Timeouts
from xbridge_core.exceptions import ExternalServiceError, ExternalServiceTimeoutError
from xbridge_core.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)


def is_network_error(exc: BaseException) -> bool:
    """Connection-level failures only. Timeouts and HTTP responses are final."""
    return isinstance(exc, httpx.TransportError) and not isinstance(exc, httpx.TimeoutException)


class JsonServiceClient:
    """POSTs JSON to a downstream service with a bounded timeout.

    Network-level failures are retried ``config.retries`` times with a fixed
    delay. A timeout aborts the call. A non-2xx response raises
    ``error_class`` carrying the response body.
    """

    service_name = "external"
    error_class: type[ExternalServiceError] = ExternalServiceError

    def __init__(
        self,
        config: ExternalServiceSettings,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._client = http_client or httpx.AsyncClient()
        self._sleep = sleep

    @property
    def available(self) -> bool:
        return bool(self.config.url)

    def _url(self, path: str) -> str:
        return f"{self.config.url.rstrip('/')}{path}"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        return headers

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        if not self.available:
            raise self.error_class(f"{self.service_name} URL not configured")
        url = self._url(path)

        async def send() -> httpx.Response:
            return await self._client.post(
                url, json=body, headers=self._headers(), timeout=self.config.timeout
            )

        retry_config = RetryConfig(
            max_attempts=self.config.retries + 1,
            delay=self.config.retry_delay,
            retry_condition=is_network_error,
        )
        try:
            resp = await retry_async(send, config=retry_config, sleep=self._sleep)
        except httpx.TimeoutException as e:
            raise ExternalServiceTimeoutError(self.service_name, self.config.timeout) from e
        except httpx.TransportError as e:
            raise self.error_class(f"{self.service_name} unreachable: {e}") from e

        if not resp.is_success:
            raise self.error_class(
                f"{self.service_name} request failed: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise self.error_class(
                f"{self.service_name} returned invalid JSON",
                status_code=resp.status_code,
                body=resp.text,
            ) from e

    async def health(self) -> bool:
        """Probe ``GET /health`` with a short timeout."""
        if not self.available:
            return False
        try:
            resp = await self._client.get(self._url("/health"), timeout=Timeouts.HEALTH_PROBE)
        except httpx.HTTPError as e:
            logger.warning("%s health probe failed: %s", self.service_name, e)
            return False
        return resp.is_success

    async def close(self) -> None:
        await self._client.aclose()


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value.lower().startswith("0x") else value


def decode_hex(value: str, field: Optional[str] = None) -> bytes:
    try:
        return bytes.fromhex(strip_hex_prefix(value))
    except ValueError as e:
        raise ValueError(f"Invalid hex in {field or 'value'}: {e}") from e
