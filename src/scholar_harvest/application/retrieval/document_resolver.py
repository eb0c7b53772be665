"""
DocumentResolver - retrieves the primary source (PDF, else HTML) for a Paper.

Resolution is a bounded depth-first walk over candidate URLs and the PDF
hints discovered in HTML pages. One ResolutionSession per ``resolve`` call
enforces two termination guarantees across the whole walk:

- a hard cap on the number of fetches
- a visited set of normalized URLs (query string and fragment dropped)

Per-path outcomes:
- 202                 -> skip, counted by the host's processing breaker
- 401/403/429/504     -> block the URL (persisted) and skip
- body starts %PDF    -> PDF branch, whatever the declared content type
- corrupt PDF         -> block the URL and skip
- HTML                -> follow PDF hints at depth+1, else keep the page
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from scholar_harvest.core.exceptions import (
    Blocked,
    ExhaustedBudget,
    MalformedContent,
    NetworkFailure,
    ParseError,
    ProcessingPending,
)
from scholar_harvest.domain.entities import Document, DocumentType, Paper

from .html_hints import (
    find_pdf_hints,
    host_matches,
    host_of,
    html_text_excerpt,
    normalize_url,
    prepare_html_document,
)

if TYPE_CHECKING:
    from scholar_harvest.core.config import HarvestSettings
    from scholar_harvest.core.resilience import ResilienceState
    from scholar_harvest.infrastructure.http.gateway import GatewayResponse, NetworkGateway
    from scholar_harvest.infrastructure.pdf.extractor import PdfTextExtractor
    from scholar_harvest.infrastructure.persistence.store import JsonFileStore

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = frozenset({401, 403, 429, 504})


@dataclass
class ResolutionSession:
    """Request budget and visited set shared by one recursive resolution."""

    max_requests: int = 10
    requests: int = 0
    visited: set[str] = field(default_factory=set)

    @property
    def remaining(self) -> int:
        return max(0, self.max_requests - self.requests)

    def visit(self, url: str) -> bool:
        """Mark ``url`` visited; False when it already was."""
        key = normalize_url(url)
        if key in self.visited:
            return False
        self.visited.add(key)
        return True

    def was_visited(self, url: str) -> bool:
        return normalize_url(url) in self.visited

    def consume(self) -> None:
        if self.requests >= self.max_requests:
            raise ExhaustedBudget(f"Request budget of {self.max_requests} exhausted")
        self.requests += 1


class DocumentResolver:
    """
    Paper -> Document.

    Usage:
        resolver = DocumentResolver(gateway, resilience, PdfTextExtractor(), store)
        doc = await resolver.resolve(paper, require_pdf=True)
    """

    def __init__(
        self,
        gateway: NetworkGateway,
        resilience: ResilienceState,
        extractor: PdfTextExtractor,
        store: JsonFileStore | None = None,
        *,
        max_requests: int = 10,
        max_depth: int = 2,
        timeout: float = 8.0,
        min_pdf_bytes: int = 10 * 1024,
        html_text_limit: int = 10000,
        allowed_html_hosts: tuple[str, ...] = ("semanticscholar.org", "arxiv.org"),
    ) -> None:
        self._gateway = gateway
        self._resilience = resilience
        self._extractor = extractor
        self._store = store
        self._max_requests = max_requests
        self._max_depth = max_depth
        self._timeout = timeout
        self._min_pdf_bytes = min_pdf_bytes
        self._html_text_limit = html_text_limit
        self._allowed_html_hosts = allowed_html_hosts

    @classmethod
    def from_settings(
        cls,
        settings: HarvestSettings,
        gateway: NetworkGateway,
        resilience: ResilienceState,
        extractor: PdfTextExtractor,
        store: JsonFileStore | None = None,
    ) -> DocumentResolver:
        return cls(
            gateway,
            resilience,
            extractor,
            store,
            max_requests=settings.resolver_max_requests,
            max_depth=settings.resolver_max_depth,
            timeout=settings.resolver_timeout,
            min_pdf_bytes=settings.min_pdf_bytes,
            html_text_limit=settings.html_text_limit,
            allowed_html_hosts=settings.pdf_html_allowed_hosts,
        )

    @staticmethod
    def candidate_urls(paper: Paper) -> list[str]:
        """Open-access PDF, landing page, reader link; duplicates removed."""
        candidates: list[str] = []
        for url in (paper.open_access_pdf_url, paper.url, paper.semantic_reader_url):
            if url and url not in candidates:
                candidates.append(url)
        return candidates

    async def resolve(
        self,
        paper: Paper,
        *,
        require_pdf: bool = False,
        link_fallback: bool = False,
    ) -> Document | None:
        """
        Retrieve the best available primary source for ``paper``.

        Args:
            paper: Paper with at least one URL
            require_pdf: Reject HTML pages, except from allowed hosts
            link_fallback: Return a LINK document when nothing was retrieved

        Returns:
            The Document, or None. Never raises for network or content
            problems; budget exhaustion ends the walk with what was found.
        """
        session = ResolutionSession(max_requests=self._max_requests)
        document: Document | None = None

        try:
            for url in self.candidate_urls(paper):
                document = await self._attempt(url, 0, session, paper.identifier, require_pdf)
                if document is not None:
                    break
        except ExhaustedBudget as e:
            logger.warning(f"Resolution of '{paper.title}' stopped: {e}")

        logger.info(
            f"Resolved '{paper.title}': {document.type.value if document else 'nothing'} "
            f"after {session.requests} requests"
        )

        if document is not None:
            await self._persist(document)
            return document

        if link_fallback and paper.url:
            return Document(
                paper_id=paper.identifier,
                type=DocumentType.LINK,
                content=paper.url,
                original_url=paper.url,
            )
        return None

    # ── Recursive step ───────────────────────────────────────────────────

    async def _attempt(
        self,
        url: str,
        depth: int,
        session: ResolutionSession,
        paper_id: str,
        require_pdf: bool,
    ) -> Document | None:
        if depth > self._max_depth:
            logger.debug(f"Depth {depth} exceeds {self._max_depth}, skipping {url}")
            return None
        if not session.visit(url):
            return None
        if await self._resilience.is_blocked(url):
            logger.debug(f"Skipping blocked URL {url}")
            return None

        breaker = self._resilience.host_breaker(host_of(url))
        if breaker.is_open:
            logger.info(f"Host {host_of(url)} is still processing ({breaker.remaining():.0f}s), skipping {url}")
            return None

        session.consume()
        try:
            response = await self._gateway.fetch(url, timeout=self._timeout)
            self._check_status(url, response.status)
        except ProcessingPending:
            breaker.record_failure()
            logger.info(f"{url} is still processing (202), not retrying")
            return None
        except Blocked as e:
            await self._resilience.block_url(e.url, e.reason)
            return None
        except (NetworkFailure, MalformedContent) as e:
            logger.warning(f"Fetch failed for {url}: {e}")
            return None
        breaker.record_success()

        if response.is_pdf and response.ok:
            return await self._pdf_document(url, response, paper_id)

        if not response.ok or not response.is_html:
            logger.debug(f"Unusable response from {url}: HTTP {response.status} {response.content_type}")
            return None

        if require_pdf and not host_matches(url, self._allowed_html_hosts):
            logger.debug(f"PDF required and {url} returned HTML")
            return None

        html = response.text
        for hint in find_pdf_hints(html, response.url):
            if session.was_visited(hint):
                continue
            try:
                document = await self._attempt(hint, depth + 1, session, paper_id, require_pdf)
            except ExhaustedBudget:
                logger.info(f"Request budget spent while following hints from {url}, keeping the page")
                break
            if document is not None:
                return document

        return Document(
            paper_id=paper_id,
            type=DocumentType.HTML,
            content=prepare_html_document(html, response.url),
            original_url=url,
            text_content=html_text_excerpt(html, self._html_text_limit),
        )

    @staticmethod
    def _check_status(url: str, status: int) -> None:
        if status == 202:
            raise ProcessingPending(url)
        if status in BLOCKING_STATUSES:
            raise Blocked(url, f"HTTP {status}")

    async def _pdf_document(self, url: str, response: GatewayResponse, paper_id: str) -> Document | None:
        body = response.body
        if len(body) < self._min_pdf_bytes:
            logger.info(f"PDF from {url} is only {len(body)} bytes, likely an error page")
            return None

        try:
            text = await self._extractor.extract_async(body)
        except MalformedContent as e:
            await self._resilience.block_url(url, f"corrupt PDF: {e}")
            return None
        except ParseError as e:
            logger.warning(f"Text extraction failed for {url}, keeping binary: {e}")
            text = ""

        return Document(
            paper_id=paper_id,
            type=DocumentType.PDF,
            content=body,
            original_url=url,
            text_content=text,
        )

    async def _persist(self, document: Document) -> None:
        if self._store is None:
            return
        try:
            await self._store.save_document(document)
        except OSError as e:
            logger.warning(f"Failed to persist document {document.id}: {e}")
