"""
Network Gateway - the single way the pipeline fetches arbitrary web pages.

Contract:
    response = await gateway.fetch(url)
    response.status, response.content_type, response.body

- Origin status code and content type are forwarded unchanged; 202 is a
  normal pass-through status and is never retried or polled here.
- HTML bodies have known ad/analytics ``<script>`` tags removed.
- Bodies are streamed and capped at ``max_body_bytes``.
- Transport failures and timeouts raise NetworkFailure.
"""

from __future__ import annotations

import codecs
import logging
import re
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup, Tag
from typing_extensions import Self

from scholar_harvest.core.config import DEFAULT_USER_AGENT
from scholar_harvest.core.exceptions import MalformedContent, NetworkFailure

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"

_AD_SCRIPT_HOSTS = ("googleads", "googletagmanager", "google-analytics")
_ANALYTICS_MARKERS = ("gtag", "GoogleAnalyticsObject")
_CHARSET = re.compile(r"charset=([\w.-]+)", re.IGNORECASE)


def _is_tracking_script(script: Tag) -> bool:
    src = (script.get("src") or "").lower()
    if any(host in src for host in _AD_SCRIPT_HOSTS):
        return True
    body = script.string or ""
    return any(marker in body for marker in _ANALYTICS_MARKERS)


def strip_tracking_scripts(html: str) -> str:
    """Remove ad/analytics script tags from an HTML document.

    Documents without such scripts are returned unchanged.
    """
    soup = BeautifulSoup(html, "html.parser")
    tracking = [script for script in soup.find_all("script") if _is_tracking_script(script)]
    if not tracking:
        return html
    for script in tracking:
        script.decompose()
    return str(soup)


@dataclass(frozen=True)
class GatewayResponse:
    """Status, declared content type and raw body of one fetch."""

    status: int
    content_type: str
    body: bytes
    url: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_pdf(self) -> bool:
        """True when the body carries the PDF signature, whatever the header says."""
        return self.body[:4] == PDF_MAGIC

    @property
    def is_html(self) -> bool:
        return "html" in self.content_type.lower()

    @property
    def encoding(self) -> str:
        match = _CHARSET.search(self.content_type)
        if match:
            try:
                return codecs.lookup(match.group(1)).name
            except LookupError:
                pass
        return "utf-8"

    @property
    def text(self) -> str:
        return self.body.decode(self.encoding, errors="replace")


class NetworkGateway:
    """
    Thin async fetcher over one shared httpx.AsyncClient.

    Example:
        async with NetworkGateway() as gateway:
            response = await gateway.fetch("https://example.org/paper")
            if response.ok and not response.is_pdf:
                html = response.text
    """

    CHUNK_SIZE = 8192

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        max_body_bytes: int = 50 * 1024 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._user_agent = user_agent
        self._max_body_bytes = max_body_bytes
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                limits=httpx.Limits(max_connections=10),
                headers={
                    "User-Agent": self._user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/pdf,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.9",
                },
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def fetch(
        self,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> GatewayResponse:
        """Fetch ``url`` and return its status, content type and (sanitized) body."""
        client = self._get_client()
        request_timeout = httpx.Timeout(timeout, connect=min(timeout, 10.0)) if timeout else None

        try:
            async with client.stream(
                "GET",
                url,
                headers=headers or {},
                timeout=request_timeout or client.timeout,
            ) as response:
                chunks: list[bytes] = []
                total_size = 0
                async for chunk in response.aiter_bytes(self.CHUNK_SIZE):
                    total_size += len(chunk)
                    if total_size > self._max_body_bytes:
                        raise MalformedContent(
                            f"Response body exceeds {self._max_body_bytes / 1024 / 1024:.0f}MB: {url}"
                        )
                    chunks.append(chunk)

                status = response.status_code
                content_type = response.headers.get("Content-Type", "")
                final_url = str(response.url)
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"Timed out fetching {url}", url=url) from e
        except httpx.RequestError as e:
            raise NetworkFailure(f"Request failed for {url}: {e}", url=url) from e

        body = b"".join(chunks)
        result = GatewayResponse(status=status, content_type=content_type, body=body, url=final_url)

        if result.is_html and not result.is_pdf:
            cleaned = strip_tracking_scripts(result.text)
            result = GatewayResponse(
                status=status,
                content_type=content_type,
                body=cleaned.encode(result.encoding, errors="replace"),
                url=final_url,
            )

        logger.debug(f"Fetched {url} -> {status} ({content_type or 'no content type'}, {len(result.body)} bytes)")
        return result

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
