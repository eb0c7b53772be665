"""
Base API Client - common HTTP plumbing for structured search providers.

Provides:
- httpx.AsyncClient management with an explicit per-request timeout
- Minimum interval between requests
- Transport errors translated to NetworkFailure
- Injectable sleep so backoff schedules are testable
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx
from typing_extensions import Self

from scholar_harvest.core.async_utils import Sleep
from scholar_harvest.core.exceptions import NetworkFailure

logger = logging.getLogger(__name__)


class BaseAPIClient:
    """
    Base class for external API clients.

    Subclasses set ``_service_name`` and build their own request loops on
    top of ``_get``, which never retries by itself.

    Example:
        class MyClient(BaseAPIClient):
            _service_name = "MyAPI"

            def __init__(self):
                super().__init__(base_url="https://api.example.com", min_interval=0.1)

            async def get_item(self, item_id: str) -> httpx.Response:
                return await self._get(f"/items/{item_id}")
    """

    _service_name: str = "API"

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        min_interval: float = 0.0,
        headers: dict[str, str] | None = None,
        sleep: Sleep = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize base client.

        Args:
            base_url: Base URL for the API (optional, can pass full URLs)
            timeout: Request timeout in seconds
            min_interval: Minimum seconds between requests (rate limiting)
            headers: Default headers for all requests
            sleep: Awaitable sleep used for every deliberate delay
            transport: Optional httpx transport (tests)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._min_interval = min_interval
        self._last_request_time = 0.0
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers=headers or {},
            limits=httpx.Limits(
                max_connections=20,
                max_keepalive_connections=10,
                keepalive_expiry=30.0,
            ),
            transport=transport,
        )

    async def _rate_limit(self) -> None:
        """Enforce minimum interval between requests."""
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self._min_interval:
            await self._sleep(self._min_interval - elapsed)
        self._last_request_time = time.monotonic()

    def _build_url(self, url: str) -> str:
        """Build full URL from path or full URL."""
        if url.startswith(("http://", "https://")):
            return url
        return f"{self._base_url}{url}"

    async def _get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Single GET. Timeouts and transport errors become NetworkFailure."""
        full_url = self._build_url(url)
        await self._rate_limit()
        try:
            return await self._client.get(full_url, params=params, headers=headers or {})
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"{self._service_name}: request timed out", url=full_url) from e
        except httpx.RequestError as e:
            raise NetworkFailure(f"{self._service_name}: request failed: {e}", url=full_url) from e

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
