"""
Semantic Scholar Integration - primary search provider.

API Documentation: https://api.semanticscholar.org/api-docs/

Paginates ``/paper/search`` in batches with an offset cursor until the
requested count is reached or the API reports no more data.

Failure handling:
- Timeouts / transport errors: retried ``transport_retries`` times with a
  fixed delay (tenacity), then the batch loop stops with what it has.
- HTTP 429: the same batch is retried after ``base × (retry + 1)`` seconds,
  at most ``rate_limit_retries`` times per query. When retries run out with
  nothing collected, the provider breaker trips so every call returns empty
  until its cooldown elapses.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from scholar_harvest.core.async_utils import Sleep
from scholar_harvest.core.config import HarvestSettings
from scholar_harvest.core.exceptions import NetworkFailure
from scholar_harvest.core.resilience import ResilienceState
from scholar_harvest.domain.entities import (
    NO_ABSTRACT_PLACEHOLDER,
    UNKNOWN_YEAR,
    Paper,
    ProviderName,
    SearchFilters,
)

from .base_client import BaseAPIClient

logger = logging.getLogger(__name__)

S2_API_BASE = "https://api.semanticscholar.org/graph/v1"
S2_READER_URL = "https://www.semanticscholar.org/reader/{paper_id}"

DEFAULT_FIELDS = [
    "paperId",
    "title",
    "authors",
    "year",
    "abstract",
    "tldr",
    "url",
    "externalIds",  # Contains DOI
    "venue",
    "openAccessPdf",
]

# Over-fetch per batch so quality-filter rejections do not force an extra page
_BATCH_SLACK = 10


def select_landing_url(record: dict[str, Any]) -> tuple[str, str | None]:
    """
    Pick the landing URL: canonical url > DOI resolver > open-access PDF.

    Returns (landing_url, open_access_pdf_url); the PDF URL is always
    returned separately even when it also became the landing URL.
    """
    open_access = (record.get("openAccessPdf") or {}).get("url") or None
    doi = (record.get("externalIds") or {}).get("DOI")
    doi_link = f"https://doi.org/{doi}" if doi else None
    landing = record.get("url") or doi_link or open_access or ""
    return landing, open_access


def _author_names(record: dict[str, Any]) -> str:
    """Comma-joined author names; entries without a name are skipped."""
    names = [((a or {}).get("name") or "").strip() for a in record.get("authors") or []]
    return ", ".join(name for name in names if name)


class SemanticScholarClient(BaseAPIClient):
    """
    Semantic Scholar Graph API search client.

    Usage:
        client = SemanticScholarClient(resilience=ResilienceState())
        papers = await client.search("graph neural networks", SearchFilters(), 60)
    """

    _service_name = "SemanticScholar"
    provider = ProviderName.SEMANTIC_SCHOLAR

    def __init__(
        self,
        resilience: ResilienceState,
        *,
        api_key: str | None = None,
        base_url: str = S2_API_BASE,
        batch_size: int = 40,
        timeout: float = 15.0,
        transport_retries: int = 2,
        transport_retry_delay: float = 1.0,
        rate_limit_retries: int = 3,
        rate_limit_base_delay: float = 3.0,
        page_delay: float = 2.0,
        require_abstract: bool = True,
        min_abstract_length: int = 50,
        min_title_length: int = 5,
        sleep: Sleep = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            # Keyed access is limited to one request per second
            min_interval=1.0 if api_key else 0.0,
            headers=headers,
            sleep=sleep,
            transport=transport,
        )
        self._resilience = resilience
        self._batch_size = batch_size
        self._transport_retries = transport_retries
        self._transport_retry_delay = transport_retry_delay
        self._rate_limit_retries = rate_limit_retries
        self._rate_limit_base_delay = rate_limit_base_delay
        self._page_delay = page_delay
        self._require_abstract = require_abstract
        self._min_abstract_length = min_abstract_length
        self._min_title_length = min_title_length

    @classmethod
    def from_settings(
        cls,
        settings: HarvestSettings,
        resilience: ResilienceState,
        **kwargs: Any,
    ) -> SemanticScholarClient:
        return cls(
            resilience,
            api_key=settings.semantic_scholar_api_key,
            base_url=settings.semantic_scholar_base_url,
            batch_size=settings.primary_batch_size,
            timeout=settings.primary_timeout,
            transport_retries=settings.primary_transport_retries,
            transport_retry_delay=settings.primary_transport_retry_delay,
            rate_limit_retries=settings.primary_rate_limit_retries,
            rate_limit_base_delay=settings.primary_rate_limit_base_delay,
            page_delay=settings.primary_page_delay,
            require_abstract=settings.require_abstract,
            min_abstract_length=settings.min_abstract_length,
            **kwargs,
        )

    # ── Circuit breaker ──────────────────────────────────────────────────

    @property
    def is_rate_limited(self) -> bool:
        return self._resilience.provider_breaker(self.provider.value).is_open

    def reset_circuit_breaker(self) -> None:
        """Give the next query a fresh chance regardless of earlier trips."""
        self._resilience.reset_provider(self.provider.value)

    # ── Search ───────────────────────────────────────────────────────────

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        target_count: int = 10,
    ) -> list[Paper]:
        """
        Search Semantic Scholar.

        Args:
            query: Search query
            filters: Year range and depth cap
            target_count: Number of accepted papers wanted

        Returns:
            Papers passing the quality filter (possibly empty, never raises
            for transport or rate-limit problems)
        """
        filters = filters or SearchFilters()
        breaker = self._resilience.provider_breaker(self.provider.value)
        if breaker.is_open:
            logger.warning(
                f"{self._service_name}: circuit breaker open ({breaker.remaining():.0f}s left), skipping '{query}'"
            )
            return []

        hard_limit = min(target_count, filters.max_scan_depth)
        papers: list[Paper] = []
        offset = 0
        has_more = True
        rate_limit_retries = 0

        logger.info(f"{self._service_name}: searching '{query}' (target {hard_limit})")

        while len(papers) < hard_limit and has_more:
            remaining = hard_limit - len(papers)
            params = self._build_params(
                query,
                filters,
                offset=offset,
                limit=min(self._batch_size, remaining + _BATCH_SLACK),
            )

            try:
                response = await self._fetch_batch(params)
            except NetworkFailure as e:
                logger.warning(f"{self._service_name}: giving up on batch at offset {offset}: {e}")
                break

            if response.status_code == 429:
                if rate_limit_retries >= self._rate_limit_retries:
                    logger.warning(f"{self._service_name}: rate limit retries exhausted for '{query}'")
                    if papers:
                        return papers
                    breaker.trip()
                    return []
                wait_time = self._rate_limit_base_delay * (rate_limit_retries + 1)
                rate_limit_retries += 1
                logger.warning(
                    f"{self._service_name}: rate limited (429), "
                    f"retry {rate_limit_retries}/{self._rate_limit_retries} in {wait_time:.1f}s"
                )
                await self._sleep(wait_time)
                continue

            if not response.is_success:
                logger.warning(f"{self._service_name}: HTTP {response.status_code} for '{query}', stopping")
                break

            try:
                data = response.json()
            except ValueError:
                logger.warning(f"{self._service_name}: unparsable JSON at offset {offset}, stopping")
                break

            records = data.get("data") or []
            if not records:
                break

            total = data.get("total")
            if total and offset + len(records) >= total:
                has_more = False

            accepted = [self._map_record(r) for r in records if self._passes_quality_filter(r)]
            papers.extend(accepted)
            offset += len(records)
            logger.debug(
                f"{self._service_name}: batch of {len(records)} at offset {offset - len(records)}, "
                f"{len(accepted)} accepted"
            )

            if len(papers) < hard_limit and has_more:
                await self._sleep(self._page_delay)

        return papers[:hard_limit]

    async def _fetch_batch(self, params: dict[str, str]) -> httpx.Response:
        """One batch request, retrying transport failures with a fixed delay."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._transport_retries + 1),
            wait=wait_fixed(self._transport_retry_delay),
            retry=retry_if_exception_type(NetworkFailure),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._get("/paper/search", params=params)
        raise NetworkFailure(f"{self._service_name}: retry loop exited without a response")

    def _build_params(
        self,
        query: str,
        filters: SearchFilters,
        *,
        offset: int,
        limit: int,
    ) -> dict[str, str]:
        params = {
            "query": query,
            "offset": str(offset),
            "limit": str(limit),
            "fields": ",".join(DEFAULT_FIELDS),
        }
        year = filters.year_param()
        if year:
            params["year"] = year
        return params

    # ── Record mapping ───────────────────────────────────────────────────

    def _passes_quality_filter(self, record: dict[str, Any]) -> bool:
        """
        Single quality policy for this provider.

        Title longer than ``min_title_length`` and at least one author; with
        ``require_abstract`` the abstract must also be longer than
        ``min_abstract_length``.
        """
        title = (record.get("title") or "").strip()
        if len(title) <= self._min_title_length:
            return False
        if not _author_names(record):
            return False
        if self._require_abstract:
            abstract = record.get("abstract") or ""
            return len(abstract) > self._min_abstract_length
        return True

    def _map_record(self, record: dict[str, Any]) -> Paper:
        landing, open_access = select_landing_url(record)
        paper_id = record.get("paperId")
        tldr = (record.get("tldr") or {}).get("text")
        year = record.get("year")

        return Paper(
            title=record["title"].strip(),
            authors=_author_names(record),
            year=str(year) if year else UNKNOWN_YEAR,
            url=landing,
            summary=record.get("abstract") or tldr or NO_ABSTRACT_PLACEHOLDER,
            origin_provider=self.provider,
            doi=(record.get("externalIds") or {}).get("DOI"),
            open_access_pdf_url=open_access,
            paper_id=paper_id,
            semantic_reader_url=S2_READER_URL.format(paper_id=paper_id) if paper_id else None,
            venue=record.get("venue") or None,
            tldr=tldr,
        )
