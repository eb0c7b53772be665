"""
Abstract Enrichment Pipeline - recovers a full abstract from a paper's landing page.

Cascade (first satisfying stage wins):

1. Fetch through the gateway; on a bot block retry once via a cache mirror
2. JSON-LD description/abstract            (pure)
3. <meta> description-family tags          (pure)
4. Raw "abstract": "..." in hydration JSON (pure)
5. Known abstract container classes        (pure)
6. LLM verbatim extraction over cleaned HTML

Stages 2-5 are plain functions over the fetched HTML so they can be tested
without a network. The pipeline never raises for a single URL: every failure
degrades to NOT_FOUND.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from bs4 import BeautifulSoup, Comment

from scholar_harvest.core.async_utils import bounded_map
from scholar_harvest.core.exceptions import MalformedContent, NetworkFailure

if TYPE_CHECKING:
    from scholar_harvest.core.config import HarvestSettings
    from scholar_harvest.core.resilience import ResilienceState
    from scholar_harvest.domain.entities import Paper
    from scholar_harvest.infrastructure.http.gateway import NetworkGateway
    from scholar_harvest.infrastructure.llm.client import LLMClient

logger = logging.getLogger(__name__)

NOT_FOUND = "NO_ABSTRACT_FOUND"

MIN_STRUCTURED_LENGTH = 100
MIN_CONTAINER_LENGTH = 50
MIN_SUMMARY_LENGTH = 50
MIN_CACHE_BODY_LENGTH = 2000

CACHE_MIRROR = "http://webcache.googleusercontent.com/search?q=cache:{url}"
CACHE_ERROR_MARKER = "404. That’s an error"

BLOCK_STATUSES = frozenset({202, 401, 403, 429, 504})
BLOCK_MARKERS = (
    "Please contact our support team",
    "Reference number:",
    "Cloudflare Ray ID",
    "challenge-container",
    "JavaScript is disabled",
    "verify that you're not a robot",
)

ABSTRACT_CONTAINER_CLASSES = (
    "tldr-abstract-replacement",
    "paper-detail-page__abstract",
    "abstract-text",
)

LLM_EXTRACTION_PROMPT = """ROLE: HTML Content Extractor.
TASK: Extract the text content of the academic paper abstract from the provided HTML.

CRITICAL INSTRUCTION:
- Look for "tldr-abstract-replacement" or "abstract" class/id.
- EXTRACT THE TEXT CONTENT INSIDE IT.
- Do NOT evaluate if it is "visible" or "dynamic". Just extract the text.
- Ignore "TLDR" summaries. We need the FULL Abstract.
- NEVER OUTPUT CODE. Output ONLY the extracted text.

INPUT HTML (Truncated):
{html}

OUTPUT:
- Just the plain text of the abstract.
- If absolutely nothing found, return "NO_ABSTRACT_FOUND".
"""

_JSON_LD_FIELD = re.compile(r'"(description|abstract)"\s*:\s*"([^"]+)"', re.IGNORECASE)
_RAW_ABSTRACT = re.compile(r'"abstract"\s*:\s*"((?:[^"\\]|\\.)*)"', re.IGNORECASE)
_JSON_ESCAPE = re.compile(r'\\(u[0-9a-fA-F]{4}|["\\/bfnrt])')
_WHITESPACE = re.compile(r"\s+")

_ESCAPES = {'"': '"', "\\": "\\", "/": "/", "b": " ", "f": " ", "n": " ", "r": " ", "t": " "}
_META_DESCRIPTION_KEYS = ("description", "og:description", "twitter:description")


def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# =============================================================================
# Pure extraction stages
# =============================================================================

def _walk_for_abstract(node: Any) -> str | None:
    if isinstance(node, dict):
        for key in ("abstract", "description"):
            value = node.get(key)
            if isinstance(value, str) and len(value.strip()) >= MIN_STRUCTURED_LENGTH:
                return value.strip()
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        found = _walk_for_abstract(child)
        if found:
            return found
    return None


def _is_json_ld(script_type: str | None) -> bool:
    return bool(script_type) and script_type.strip().lower() == "application/ld+json"


def extract_json_ld(html: str) -> str | None:
    """Description or abstract from embedded JSON-LD blocks."""
    for script in _parse(html).find_all("script", attrs={"type": _is_json_ld}):
        block = script.string or ""
        try:
            found = _walk_for_abstract(json.loads(block))
        except ValueError:
            # Malformed JSON-LD is common; fall back to a field scan of the raw text
            match = _JSON_LD_FIELD.search(block)
            found = match.group(2).strip() if match else None
            if found and len(found) < MIN_STRUCTURED_LENGTH:
                found = None
        if found:
            return found
    return None


def extract_meta_description(html: str) -> str | None:
    """description / og:description / twitter:description meta content."""
    for tag in _parse(html).find_all("meta", content=True):
        key = (tag.get("name") or tag.get("property") or "").strip().lower()
        if key not in _META_DESCRIPTION_KEYS:
            continue
        content = _WHITESPACE.sub(" ", tag["content"]).strip()
        if len(content) >= MIN_STRUCTURED_LENGTH:
            return content
    return None


def _unescape_json_string(value: str) -> str:
    def replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if token.startswith("u"):
            return chr(int(token[1:], 16))
        return _ESCAPES[token]

    return _WHITESPACE.sub(" ", _JSON_ESCAPE.sub(replace, value)).strip()


def extract_raw_json_abstract(html: str) -> str | None:
    """First ``"abstract": "..."`` field in any inline JSON blob."""
    match = _RAW_ABSTRACT.search(html)
    if not match:
        return None
    abstract = _unescape_json_string(match.group(1))
    if len(abstract) >= MIN_STRUCTURED_LENGTH and "NO_ABSTRACT" not in abstract:
        return abstract
    return None


def extract_abstract_container(html: str) -> str | None:
    """Text of a known abstract container, skipping TLDR stubs."""
    soup = _parse(html)
    for class_name in ABSTRACT_CONTAINER_CLASSES:
        container = soup.find(class_=class_name)
        if container is None:
            continue
        text = _WHITESPACE.sub(" ", container.get_text(" ")).strip()
        if len(text) > MIN_CONTAINER_LENGTH and "tldr" not in text.lower():
            return text
    return None


EXTRACTION_STAGES: tuple[tuple[str, Callable[[str], str | None]], ...] = (
    ("json-ld", extract_json_ld),
    ("meta", extract_meta_description),
    ("raw-json", extract_raw_json_abstract),
    ("container", extract_abstract_container),
)


def run_extraction_cascade(html: str) -> tuple[str, str] | None:
    """Evaluate the pure stages in order; ``(stage_name, abstract)`` of the first hit."""
    for name, stage in EXTRACTION_STAGES:
        result = stage(html)
        if result:
            return name, result
    return None


def looks_blocked(status: int, html: str) -> bool:
    """Bot-block or async-processing response."""
    if status in BLOCK_STATUSES:
        return True
    return any(marker in html for marker in BLOCK_MARKERS)


def clean_html_for_llm(html: str, limit: int = 20000) -> str:
    soup = _parse(html)
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    return str(soup)[:limit]


def cache_mirror_url(url: str) -> str:
    return CACHE_MIRROR.format(url=quote(url, safe=""))


# =============================================================================
# Pipeline
# =============================================================================

class AbstractEnrichmentPipeline:
    """
    Landing page -> abstract text.

    Usage:
        pipeline = AbstractEnrichmentPipeline(gateway, resilience, llm=None)
        abstract = await pipeline.enrich("https://www.semanticscholar.org/paper/abc")
        if abstract != NOT_FOUND:
            ...
    """

    def __init__(
        self,
        gateway: NetworkGateway,
        resilience: ResilienceState,
        llm: LLMClient | None = None,
        *,
        timeout: float = 15.0,
        llm_html_limit: int = 20000,
        concurrency: int = 3,
    ) -> None:
        self._gateway = gateway
        self._resilience = resilience
        self._llm = llm
        self._timeout = timeout
        self._llm_html_limit = llm_html_limit
        self._concurrency = concurrency
        self._enriched: set[str] = set()

    @classmethod
    def from_settings(
        cls,
        settings: HarvestSettings,
        gateway: NetworkGateway,
        resilience: ResilienceState,
        llm: LLMClient | None = None,
    ) -> AbstractEnrichmentPipeline:
        return cls(
            gateway,
            resilience,
            llm,
            timeout=settings.enrichment_timeout,
            llm_html_limit=settings.llm_html_limit,
            concurrency=settings.enrichment_concurrency,
        )

    async def enrich(self, url: str) -> str:
        """Abstract text for ``url``, or NOT_FOUND."""
        if not url:
            return NOT_FOUND
        if not await self._resilience.claim_fetch(url):
            logger.info(f"Abstract fetch for {url} is cooling down, skipping")
            return NOT_FOUND

        html = await self._fetch_page(url)
        if html is None:
            return NOT_FOUND

        hit = run_extraction_cascade(html)
        if hit is not None:
            stage, abstract = hit
            logger.info(f"Abstract for {url} found via {stage}")
            return abstract

        return await self._extract_with_llm(url, html)

    async def _fetch_page(self, url: str) -> str | None:
        try:
            response = await self._gateway.fetch(url, timeout=self._timeout)
        except (NetworkFailure, MalformedContent) as e:
            logger.warning(f"Abstract fetch failed for {url}: {e}")
            return None

        html = response.text
        if looks_blocked(response.status, html):
            logger.warning(f"Blocked fetching {url} (HTTP {response.status}), trying cache mirror")
            return await self._fetch_cache_mirror(url)
        if not response.ok:
            logger.warning(f"Abstract fetch for {url} returned HTTP {response.status}")
            return None
        return html

    async def _fetch_cache_mirror(self, url: str) -> str | None:
        mirror = cache_mirror_url(url)
        try:
            response = await self._gateway.fetch(mirror, timeout=self._timeout)
        except (NetworkFailure, MalformedContent) as e:
            logger.warning(f"Cache mirror failed for {url}: {e}")
            return None
        if not response.ok:
            return None
        html = response.text
        if len(html) <= MIN_CACHE_BODY_LENGTH or CACHE_ERROR_MARKER in html:
            logger.info(f"Cache mirror for {url} has no usable copy")
            return None
        logger.info(f"Cache mirror hit for {url}")
        return html

    async def _extract_with_llm(self, url: str, html: str) -> str:
        if self._llm is None:
            logger.debug(f"No LLM configured, no abstract for {url}")
            return NOT_FOUND
        prompt = LLM_EXTRACTION_PROMPT.format(html=clean_html_for_llm(html, self._llm_html_limit))
        try:
            answer = await self._llm.complete(prompt)
        except Exception as e:
            logger.warning(f"LLM abstract extraction failed for {url}: {e}")
            return NOT_FOUND
        answer = (answer or "").strip()
        if not answer or NOT_FOUND in answer:
            return NOT_FOUND
        logger.info(f"Abstract for {url} extracted by LLM")
        return answer

    # ── Paper-level helpers ──────────────────────────────────────────────

    async def enrich_paper(self, paper: Paper) -> bool:
        """Overwrite ``paper.summary`` with a recovered abstract; True when it changed."""
        key = paper.identifier
        if key in self._enriched:
            return False
        self._enriched.add(key)

        abstract = await self.enrich(paper.url)
        if abstract == NOT_FOUND or len(abstract) <= MIN_SUMMARY_LENGTH:
            return False
        paper.summary = abstract
        return True

    async def enrich_many(self, papers: list[Paper], concurrency: int | None = None) -> int:
        """Enrich papers concurrently; returns how many summaries changed."""
        results = await bounded_map(papers, self.enrich_paper, concurrency or self._concurrency)
        changed = 0
        for paper, result in zip(papers, results):
            if isinstance(result, Exception):
                logger.warning(f"Enrichment failed for '{paper.title}': {result}")
            elif result:
                changed += 1
        logger.info(f"Enriched {changed}/{len(papers)} papers")
        return changed
