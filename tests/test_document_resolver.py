"""Tests for DocumentResolver and ResolutionSession."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from scholar_harvest.application.retrieval.document_resolver import DocumentResolver, ResolutionSession
from scholar_harvest.core.config import HarvestSettings
from scholar_harvest.core.exceptions import ExhaustedBudget, MalformedContent, NetworkFailure, ParseError
from scholar_harvest.domain.entities import DocumentType

PDF_BODY = b"%PDF-1.4\n" + b"0" * 12_000


@pytest.fixture
def extractor():
    extractor = MagicMock()
    extractor.extract_async = AsyncMock(return_value="extracted pdf text")
    return extractor


@pytest.fixture
def routes(mock_gateway, make_response):
    """Map URL -> response (or exception) served by the mock gateway."""
    table: dict[str, object] = {}

    async def fetch(url, **kwargs):
        item = table.get(url)
        if item is None:
            return make_response(status=404, url=url)
        if isinstance(item, Exception):
            raise item
        return item

    mock_gateway.fetch.side_effect = fetch
    return table


def _html(make_response, url: str, body: str, status: int = 200):
    return make_response(status=status, body=f"<html><head></head><body>{body}</body></html>", url=url)


def _pdf(make_response, url: str, body: bytes = PDF_BODY, content_type: str = "application/pdf"):
    return make_response(body=body, content_type=content_type, url=url)


def _fetched(mock_gateway) -> list[str]:
    return [call.args[0] for call in mock_gateway.fetch.await_args_list]


# ============================================================
# Session
# ============================================================


class TestResolutionSession:
    def test_visit_normalizes(self):
        session = ResolutionSession()
        assert session.visit("https://a.example/paper?utm=1")
        assert not session.visit("https://A.example/paper/#section")
        assert session.was_visited("https://a.example/paper")

    def test_budget(self):
        session = ResolutionSession(max_requests=2)
        session.consume()
        session.consume()
        assert session.remaining == 0
        with pytest.raises(ExhaustedBudget):
            session.consume()


class TestCandidateUrls:
    def test_order_and_dedup(self, make_paper):
        paper = make_paper(
            url="https://landing.example/p",
            open_access_pdf_url="https://arxiv.org/pdf/1.pdf",
            semantic_reader_url="https://landing.example/p",
        )
        assert DocumentResolver.candidate_urls(paper) == ["https://arxiv.org/pdf/1.pdf", "https://landing.example/p"]


# ============================================================
# PDF branch
# ============================================================


class TestPdf:
    async def test_direct_pdf(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        routes["https://arxiv.org/pdf/1.pdf"] = _pdf(make_response, "https://arxiv.org/pdf/1.pdf")
        paper = make_paper(open_access_pdf_url="https://arxiv.org/pdf/1.pdf", paper_id="p1")
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper)

        assert doc.type is DocumentType.PDF
        assert doc.content == PDF_BODY
        assert doc.text_content == "extracted pdf text"
        assert doc.paper_id == "p1"
        assert _fetched(mock_gateway) == ["https://arxiv.org/pdf/1.pdf"]

    async def test_pdf_detected_by_signature(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        routes[paper.url] = _pdf(make_response, paper.url, content_type="text/html; charset=utf-8")
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper)
        assert doc.type is DocumentType.PDF

    async def test_small_pdf_rejected(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        routes[paper.url] = _pdf(make_response, paper.url, body=b"%PDF-1.4 tiny")
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        assert await resolver.resolve(paper) is None
        extractor.extract_async.assert_not_awaited()

    async def test_corrupt_pdf_blocks_url(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        routes[paper.url] = _pdf(make_response, paper.url)
        extractor.extract_async.side_effect = MalformedContent("broken xref")
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        assert await resolver.resolve(paper) is None
        assert await resilience.is_blocked(paper.url)

    async def test_parse_error_keeps_binary(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        routes[paper.url] = _pdf(make_response, paper.url)
        extractor.extract_async.side_effect = ParseError("font table")
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper)
        assert doc.type is DocumentType.PDF
        assert doc.text_content == ""


# ============================================================
# HTML branch
# ============================================================


class TestHtml:
    async def test_follows_citation_hint(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        pdf_url = "https://example.org/files/paper.pdf"
        routes[paper.url] = _html(make_response, paper.url, f'<meta name="citation_pdf_url" content="{pdf_url}">')
        routes[pdf_url] = _pdf(make_response, pdf_url)
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper)

        assert doc.type is DocumentType.PDF
        assert doc.original_url == pdf_url
        assert _fetched(mock_gateway) == [paper.url, pdf_url]

    async def test_keeps_page_when_hints_fail(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        routes[paper.url] = _html(
            make_response,
            paper.url,
            '<script>track()</script><a href="/pdf/1">PDF</a><p>Full text &amp; figures</p>',
        )
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper)

        assert doc.type is DocumentType.HTML
        assert doc.original_url == paper.url
        assert '<base href="https://example.org" target="_blank"/>' in doc.content
        assert "<script" not in doc.content
        assert "Full text & figures" in doc.text_content
        assert "https://example.org/pdf/1" in _fetched(mock_gateway)

    async def test_cycle_terminates(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        a = "https://example.org/a"
        b = "https://example.org/pdf/b"
        routes[a] = _html(make_response, a, '<a href="/pdf/b">next</a>')
        routes[b] = _html(make_response, b, '<meta name="citation_pdf_url" content="https://example.org/a?again=1">')
        resolver = DocumentResolver(mock_gateway, resilience, extractor, max_requests=10)

        doc = await resolver.resolve(make_paper(url=a))

        assert doc is not None
        assert _fetched(mock_gateway) == [a, b]

    async def test_request_budget_keeps_page(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        iframes = "".join(f'<iframe src="https://cdn.example/{i}.pdf"></iframe>' for i in range(6))
        routes[paper.url] = _html(make_response, paper.url, iframes)
        resolver = DocumentResolver(mock_gateway, resilience, extractor, max_requests=3)

        doc = await resolver.resolve(paper)

        assert mock_gateway.fetch.await_count == 3
        assert doc.type is DocumentType.HTML
        assert doc.original_url == paper.url

    async def test_depth_cap(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        a = "https://example.org/a"
        b = "https://example.org/pdf/b"
        c = "https://example.org/pdf/c"
        routes[a] = _html(make_response, a, '<a href="/pdf/b">b</a>')
        routes[b] = _html(make_response, b, '<a href="/pdf/c">c</a>')
        routes[c] = _pdf(make_response, c)
        resolver = DocumentResolver(mock_gateway, resilience, extractor, max_depth=1)

        doc = await resolver.resolve(make_paper(url=a))

        assert c not in _fetched(mock_gateway)
        assert doc.type is DocumentType.HTML
        assert doc.original_url == b

    async def test_require_pdf_rejects_publisher_html(
        self, mock_gateway, make_response, routes, resilience, extractor, make_paper
    ):
        paper = make_paper()
        routes[paper.url] = _html(make_response, paper.url, "<p>landing</p>")
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        assert await resolver.resolve(paper, require_pdf=True) is None

    async def test_require_pdf_allows_listed_host(
        self, mock_gateway, make_response, routes, resilience, extractor, make_paper
    ):
        reader = "https://www.semanticscholar.org/reader/0abc"
        routes[reader] = _html(make_response, reader, "<p>reader view</p>")
        paper = make_paper(url="", semantic_reader_url=reader)
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper, require_pdf=True)
        assert doc.type is DocumentType.HTML


# ============================================================
# Status handling
# ============================================================


class TestStatuses:
    @pytest.mark.parametrize("status", [401, 403, 429, 504])
    async def test_blocking_status(self, mock_gateway, make_response, routes, resilience, extractor, make_paper, status):
        paper = make_paper()
        routes[paper.url] = _html(make_response, paper.url, "denied", status=status)
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        assert await resolver.resolve(paper) is None
        assert resilience.blocked_reason(paper.url) == f"HTTP {status}"

    async def test_blocked_url_not_refetched(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        await resilience.block_url(paper.url, "HTTP 403")
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        assert await resolver.resolve(paper) is None
        mock_gateway.fetch.assert_not_awaited()

    async def test_processing_breaker(self, mock_gateway, make_response, routes, resilience, extractor, make_paper, fake_clock):
        urls = [f"https://slow.example/paper/{i}" for i in range(4)]
        for url in urls:
            routes[url] = make_response(status=202, url=url)
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        for url in urls[:3]:
            assert await resolver.resolve(make_paper(url=url)) is None
        assert mock_gateway.fetch.await_count == 3

        assert await resolver.resolve(make_paper(url=urls[3])) is None
        assert mock_gateway.fetch.await_count == 3
        assert not await resilience.is_blocked(urls[0])

        fake_clock.advance(121)
        await resolver.resolve(make_paper(url=urls[3]))
        assert mock_gateway.fetch.await_count == 4

    async def test_network_failure_tries_next_candidate(
        self, mock_gateway, make_response, routes, resilience, extractor, make_paper
    ):
        paper = make_paper(open_access_pdf_url="https://down.example/1.pdf")
        routes["https://down.example/1.pdf"] = NetworkFailure("timeout")
        routes[paper.url] = _pdf(make_response, paper.url)
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper)
        assert doc.original_url == paper.url


# ============================================================
# Fallback and persistence
# ============================================================


class TestFallbackAndPersistence:
    async def test_link_fallback(self, mock_gateway, routes, resilience, extractor, make_paper):
        paper = make_paper()
        resolver = DocumentResolver(mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper, link_fallback=True)

        assert doc.type is DocumentType.LINK
        assert doc.content == paper.url

    async def test_no_fallback_returns_none(self, mock_gateway, routes, resilience, extractor, make_paper):
        resolver = DocumentResolver(mock_gateway, resilience, extractor)
        assert await resolver.resolve(make_paper()) is None

    async def test_persists_document(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        routes[paper.url] = _pdf(make_response, paper.url)
        store = MagicMock()
        store.save_document = AsyncMock()
        resolver = DocumentResolver(mock_gateway, resilience, extractor, store)

        doc = await resolver.resolve(paper)
        store.save_document.assert_awaited_once_with(doc)

    async def test_link_not_persisted(self, mock_gateway, routes, resilience, extractor, make_paper):
        store = MagicMock()
        store.save_document = AsyncMock()
        resolver = DocumentResolver(mock_gateway, resilience, extractor, store)

        await resolver.resolve(make_paper(), link_fallback=True)
        store.save_document.assert_not_awaited()

    async def test_from_settings(self, mock_gateway, make_response, routes, resilience, extractor, make_paper):
        paper = make_paper()
        routes[paper.url] = _pdf(make_response, paper.url, body=b"%PDF-1.4 small but allowed")
        resolver = DocumentResolver.from_settings(HarvestSettings(min_pdf_bytes=10), mock_gateway, resilience, extractor)

        doc = await resolver.resolve(paper)
        assert doc.type is DocumentType.PDF
