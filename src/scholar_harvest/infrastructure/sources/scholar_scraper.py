"""
Google Scholar scraper - secondary (fallback) search provider.

Fetches rendered result pages through the NetworkGateway and parses the
fixed result blocks with regular expressions:

    <div class="gs_r gs_or gs_scl"> ... </div>
        <h3 class="gs_rt"><a href="URL">TITLE</a></h3>
        <div class="gs_a">Authors - Venue, Year - Publisher</div>
        <div class="gs_rs">Snippet</div>

Missing sub-fields fall back to sentinels; records whose title is missing
or too short are skipped. A page that yields nothing and carries captcha
markers raises Blocked instead of looking like "no results".
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from urllib.parse import urlencode

from scholar_harvest.core.async_utils import Sleep
from scholar_harvest.core.config import HarvestSettings
from scholar_harvest.core.exceptions import Blocked
from scholar_harvest.domain.entities import (
    NO_SUMMARY_PLACEHOLDER,
    UNKNOWN_AUTHORS,
    UNKNOWN_YEAR,
    Paper,
    ProviderName,
)
from scholar_harvest.infrastructure.http.gateway import NetworkGateway

logger = logging.getLogger(__name__)

SCHOLAR_URL = "https://scholar.google.com/scholar"
RESULTS_PER_PAGE = 10

_SCHOLAR_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://scholar.google.com/",
}

_BLOCK_MARKERS = ("captcha", "robot", "unusual traffic")
_BLOCK_STATUSES = frozenset({403, 429})

_ENTRY = re.compile(r'<div class="gs_r gs_or gs_scl"[\s\S]*?</div>\s*</div>\s*</div>')
_TITLE_LINK = re.compile(r'<h3 class="gs_rt"[^>]*>[\s\S]*?<a[^>]*href="([^"]+)"[^>]*>([\s\S]*?)</a>[\s\S]*?</h3>')
_TITLE_PLAIN = re.compile(r'<h3 class="gs_rt"[^>]*>([\s\S]*?)</h3>')
_META = re.compile(r'<div class="gs_a"[^>]*>([\s\S]*?)</div>')
_SNIPPET = re.compile(r'<div class="gs_rs"[^>]*>([\s\S]*?)</div>')
_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")
_TAG = re.compile(r"<[^>]+>")
_MARKER = re.compile(r"\[(?:PDF|HTML|BOOK|B|CITATION|C)\]", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def _clean(fragment: str) -> str:
    text = _TAG.sub("", fragment)
    text = html.unescape(text).replace("\xa0", " ")
    return _WHITESPACE.sub(" ", text).strip()


def parse_result_block(block: str, min_title_length: int = 5) -> Paper | None:
    """Map one result block to a Paper, or None when the title is unusable."""
    url = ""
    title = ""
    link_match = _TITLE_LINK.search(block)
    if link_match:
        url = html.unescape(link_match.group(1))
        title = _clean(_MARKER.sub("", link_match.group(2)))
    else:
        plain_match = _TITLE_PLAIN.search(block)
        if plain_match:
            title = _clean(_MARKER.sub("", plain_match.group(1)))

    if len(title) <= min_title_length:
        return None

    authors = UNKNOWN_AUTHORS
    year = UNKNOWN_YEAR
    meta_match = _META.search(block)
    if meta_match:
        meta_text = _clean(meta_match.group(1))
        first = meta_text.split(" - ")[0].strip()
        if first:
            authors = first
        year_match = _YEAR.search(meta_text)
        if year_match:
            year = year_match.group(0)

    summary = NO_SUMMARY_PLACEHOLDER
    snippet_match = _SNIPPET.search(block)
    if snippet_match:
        summary = _clean(snippet_match.group(1)) or NO_SUMMARY_PLACEHOLDER

    return Paper(
        title=title,
        authors=authors,
        year=year,
        url=url,
        summary=summary,
        origin_provider=ProviderName.GOOGLE_SCHOLAR,
    )


def parse_results_page(page: str, min_title_length: int = 5) -> list[Paper]:
    papers: list[Paper] = []
    for block in _ENTRY.findall(page):
        paper = parse_result_block(block, min_title_length)
        if paper is not None:
            papers.append(paper)
    return papers


def looks_like_captcha(page: str) -> bool:
    lowered = page.lower()
    return any(marker in lowered for marker in _BLOCK_MARKERS)


class GoogleScholarScraper:
    """
    Scraped fallback search.

    Usage:
        scraper = GoogleScholarScraper(gateway)
        papers = await scraper.search("graph neural networks", count=10)
    """

    provider = ProviderName.GOOGLE_SCHOLAR

    def __init__(
        self,
        gateway: NetworkGateway,
        *,
        base_url: str = SCHOLAR_URL,
        max_pages: int = 1,
        page_delay: float = 2.0,
        timeout: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._gateway = gateway
        self._base_url = base_url
        self._max_pages = max(1, max_pages)
        self._page_delay = page_delay
        self._timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: HarvestSettings, gateway: NetworkGateway, **kwargs) -> GoogleScholarScraper:
        return cls(
            gateway,
            base_url=settings.scholar_base_url,
            max_pages=settings.secondary_max_pages,
            page_delay=settings.secondary_page_delay,
            timeout=settings.gateway_timeout,
            **kwargs,
        )

    def _page_url(self, query: str, start: int) -> str:
        params = {"q": query, "hl": "en", "as_sdt": "0,5"}
        if start:
            params["start"] = str(start)
        return f"{self._base_url}?{urlencode(params)}"

    async def search(self, query: str, count: int = 10) -> list[Paper]:
        """
        Scrape up to ``count`` results for ``query``.

        Raises:
            Blocked: HTTP 403/429, or nothing parsed and the page carries
                captcha markers.
            NetworkFailure: the gateway could not reach Scholar.
        """
        papers: list[Paper] = []

        for page_index in range(self._max_pages):
            url = self._page_url(query, page_index * RESULTS_PER_PAGE)
            response = await self._gateway.fetch(url, timeout=self._timeout, headers=_SCHOLAR_HEADERS)

            if response.status in _BLOCK_STATUSES:
                if not papers:
                    raise Blocked(url, f"HTTP {response.status}")
                logger.warning(f"Google Scholar: blocked on page {page_index + 1}, keeping earlier pages")
                break
            if not response.ok:
                logger.warning(f"Google Scholar: HTTP {response.status} for '{query}'")
                break

            page = response.text
            page_papers = parse_results_page(page)
            if not page_papers:
                if not papers and looks_like_captcha(page):
                    raise Blocked(url, "captcha")
                break

            papers.extend(page_papers)
            logger.info(f"Google Scholar: page {page_index + 1} yielded {len(page_papers)} results")

            if len(papers) >= count or len(page_papers) < RESULTS_PER_PAGE:
                break
            if page_index + 1 < self._max_pages:
                await self._sleep(self._page_delay)

        return papers[:count]
