"""
MCP tools for the literature acquisition pipeline.

Tools:
- search_literature: topic -> deduplicated papers (Markdown)
- fetch_abstract: landing page URL -> abstract text
- retrieve_document: paper reference -> primary source summary (JSON)
- list_blocked_urls: persisted block-list (JSON)
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from scholar_harvest.application.enrichment import NOT_FOUND
from scholar_harvest.core.exceptions import ScholarHarvestError
from scholar_harvest.domain.entities import (
    MAX_SCAN_DEPTH,
    NO_ABSTRACT_PLACEHOLDER,
    UNKNOWN_AUTHORS,
    UNKNOWN_YEAR,
    Document,
    DocumentType,
    Paper,
    ProviderName,
    SearchFilters,
)

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP

    from scholar_harvest.application.enrichment import AbstractEnrichmentPipeline
    from scholar_harvest.application.retrieval import DocumentResolver
    from scholar_harvest.application.search import AggregationOrchestrator
    from scholar_harvest.infrastructure.persistence import JsonFileStore

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 1500


def format_papers_markdown(topic: str, papers: list[Paper]) -> str:
    if not papers:
        return f"No papers found for **{topic}**. Try a broader topic or remove year filters."

    lines = [f"📚 Found **{len(papers)}** papers for **{topic}**", ""]
    for index, paper in enumerate(papers, 1):
        lines.append(f"### {index}. {paper.title}")
        meta = f"*{paper.authors}* ({paper.year})"
        if paper.venue:
            meta += f" · {paper.venue}"
        lines.append(meta)
        links = [f"[landing page]({paper.url})"] if paper.url else []
        if paper.open_access_pdf_url:
            links.append(f"[open-access PDF]({paper.open_access_pdf_url})")
        if paper.doi:
            links.append(f"DOI: {paper.doi}")
        if links:
            lines.append(" | ".join(links))
        lines.append("")
        lines.append(paper.summary)
        lines.append("")
    return "\n".join(lines).rstrip()


def document_summary(doc: Document) -> dict[str, Any]:
    summary = doc.metadata()
    text = doc.text_content or ""
    summary["text_content"] = text[:EXCERPT_LENGTH]
    summary["text_truncated"] = len(text) > EXCERPT_LENGTH
    return summary


def register_tools(
    mcp: FastMCP,
    *,
    orchestrator: AggregationOrchestrator,
    enrichment: AbstractEnrichmentPipeline,
    resolver: DocumentResolver,
    store: JsonFileStore,
    max_scan_depth: int = MAX_SCAN_DEPTH,
) -> int:
    """Register the pipeline tools on ``mcp``; returns how many were registered.

    ``max_scan_depth`` caps the ``scan_depth`` a caller can request.
    """

    @mcp.tool()
    async def search_literature(
        topic: str,
        scan_depth: int = 20,
        min_year: int | None = None,
        max_year: int | None = None,
        refine_topic: bool = False,
    ) -> str:
        """
        Collect a deduplicated set of papers for a research topic.

        Runs several query strategies (AI keywords when an LLM is configured,
        extracted keywords, broad and single-word queries, the topic itself)
        against Semantic Scholar, then falls back to Google Scholar if the
        target is still not met.

        Args:
            topic: Free-text research topic, e.g. "Impact of AI on cancer"
            scan_depth: Number of papers wanted (default 20, capped by the server limit)
            min_year: Earliest publication year (inclusive)
            max_year: Latest publication year (inclusive)
            refine_topic: Ask the LLM to sharpen the topic first

        Returns:
            Markdown list of papers with authors, year, links and abstract.
        """
        try:
            filters = SearchFilters(
                min_year=min_year,
                max_year=max_year,
                scan_depth=scan_depth,
                max_scan_depth=max_scan_depth,
            )
            papers = await orchestrator.search(topic, filters, refine_topic=refine_topic)
        except ScholarHarvestError as e:
            logger.warning(f"search_literature failed: {e}")
            return e.to_agent_message()
        return format_papers_markdown(topic, papers)

    @mcp.tool()
    async def fetch_abstract(url: str) -> str:
        """
        Recover the full abstract from a paper's landing page.

        Tries structured data, meta tags, embedded JSON and known abstract
        containers before asking the LLM. The same URL is not refetched
        within 30 seconds.

        Args:
            url: Landing page URL of the paper

        Returns:
            The abstract text, or a not-found message.
        """
        abstract = await enrichment.enrich(url.strip())
        if abstract == NOT_FOUND:
            return f"No abstract could be recovered from {url}."
        return abstract

    @mcp.tool()
    async def retrieve_document(
        title: str,
        url: str,
        open_access_pdf_url: str | None = None,
        doi: str | None = None,
        require_pdf: bool = False,
    ) -> str:
        """
        Retrieve the primary source of a paper: a PDF when available, else
        the landing page HTML.

        Follows citation_pdf_url tags and reader links on the landing page
        within a budget of 10 requests and depth 2. Publisher pages that
        block automated access are remembered and skipped.

        Args:
            title: Paper title
            url: Landing page URL
            open_access_pdf_url: Direct open-access PDF link, tried first
            doi: DOI, used as the document's paper reference
            require_pdf: Reject HTML pages (except arXiv / Semantic Scholar)

        Returns:
            JSON with document type, id, original URL and a text excerpt.
        """
        paper = Paper(
            title=title,
            authors=UNKNOWN_AUTHORS,
            year=UNKNOWN_YEAR,
            url=url.strip(),
            summary=NO_ABSTRACT_PLACEHOLDER,
            origin_provider=ProviderName.SEMANTIC_SCHOLAR,
            doi=doi,
            open_access_pdf_url=open_access_pdf_url,
            paper_id=doi,
        )
        doc = await resolver.resolve(paper, require_pdf=require_pdf, link_fallback=not require_pdf)
        if doc is None:
            return json.dumps({"found": False, "title": title, "url": url}, indent=2)

        result = {"found": doc.type is not DocumentType.LINK, **document_summary(doc)}
        return json.dumps(result, indent=2, ensure_ascii=False)

    @mcp.tool()
    async def list_blocked_urls() -> str:
        """
        List URLs that blocked automated access, with reason and timestamp.

        Returns:
            JSON object keyed by URL.
        """
        blocked = await store.blocked_urls()
        return json.dumps(blocked, indent=2, ensure_ascii=False)

    return 4
