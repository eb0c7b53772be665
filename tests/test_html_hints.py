"""Tests for PDF-hint discovery and HTML preparation helpers."""

from __future__ import annotations

import pytest

from scholar_harvest.application.retrieval.html_hints import (
    find_pdf_hints,
    host_matches,
    host_of,
    html_text_excerpt,
    normalize_url,
    prepare_html_document,
)

BASE = "https://journal.example/article/123"


class TestNormalizeUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://Journal.Example/Article/123?ref=x#top", "https://journal.example/Article/123"),
            ("https://journal.example/article/123/", "https://journal.example/article/123"),
            ("HTTPS://journal.example", "https://journal.example/"),
        ],
    )
    def test_variants(self, url, expected):
        assert normalize_url(url) == expected


class TestHosts:
    def test_host_of_strips_www(self):
        assert host_of("https://www.semanticscholar.org/reader/abc") == "semanticscholar.org"

    def test_subdomain_allowed(self):
        assert host_matches("https://export.arxiv.org/abs/1", ("arxiv.org",))
        assert not host_matches("https://notarxiv.org/abs/1", ("arxiv.org",))


class TestFindPdfHints:
    def test_citation_meta_both_orders(self):
        html = (
            '<meta name="citation_pdf_url" content="https://journal.example/content/123.pdf">'
            '<meta content="/alt/123.pdf" name="citation_pdf_url">'
        )
        assert find_pdf_hints(html, BASE) == [
            "https://journal.example/content/123.pdf",
            "https://journal.example/alt/123.pdf",
        ]

    def test_embed_and_iframe(self):
        html = (
            '<iframe src="//cdn.example/viewer/file.pdf"></iframe>'
            '<iframe src="https://ads.example/banner"></iframe>'
            '<embed src="/article/123/pdf">'
        )
        assert find_pdf_hints(html, BASE) == [
            "https://cdn.example/viewer/file.pdf",
            "https://journal.example/article/123/pdf",
        ]

    def test_same_host_pdf_links_only(self):
        html = (
            '<a href="/pdf/123">Download</a>'
            '<a href="https://other.example/pdf/999">Elsewhere</a>'
        )
        assert find_pdf_hints(html, BASE) == ["https://journal.example/pdf/123"]

    def test_reader_links_last(self):
        html = (
            '<a href="https://www.semanticscholar.org/reader/0a1b2c">Read</a>'
            '<meta name="citation_pdf_url" content="https://journal.example/123.pdf">'
        )
        assert find_pdf_hints(html, BASE) == [
            "https://journal.example/123.pdf",
            "https://www.semanticscholar.org/reader/0a1b2c",
        ]

    def test_deduplicated_and_unescaped(self):
        html = (
            '<meta name="citation_pdf_url" content="https://journal.example/get?id=1&amp;type=pdf">'
            '<meta content="https://journal.example/get?id=1&type=pdf" name="citation_pdf_url">'
        )
        assert find_pdf_hints(html, BASE) == ["https://journal.example/get?id=1&type=pdf"]

    def test_citation_meta_with_leading_attributes(self):
        html = '<meta data-rh="true" id="m1" name="citation_pdf_url" content="/files/123.pdf">'
        assert find_pdf_hints(html, BASE) == ["https://journal.example/files/123.pdf"]

    def test_citation_meta_character_references(self):
        html = "<meta name=\"Citation_PDF_URL\" content=\"https://journal.example/o&#39;brien-2021.pdf\">"
        assert find_pdf_hints(html, BASE) == ["https://journal.example/o'brien-2021.pdf"]

    def test_anchor_with_leading_attributes(self):
        html = '<a class="btn" data-track="pdf" href="/pdf/123">Download</a>'
        assert find_pdf_hints(html, BASE) == ["https://journal.example/pdf/123"]

    def test_nothing(self):
        assert find_pdf_hints("<p>No links here</p>", BASE) == []


class TestPrepareHtmlDocument:
    def test_base_after_head(self):
        html = "<html><head><title>T</title><script>alert(1)</script></head><body>x</body></html>"
        prepared = prepare_html_document(html, "https://journal.example/article/123?x=1")
        assert prepared.startswith('<html><head><base href="https://journal.example" target="_blank"/><title>')
        assert "<script" not in prepared

    def test_no_head(self):
        prepared = prepare_html_document("<p>x</p>", "https://journal.example/a")
        assert prepared == '<base href="https://journal.example" target="_blank"/><p>x</p>'


class TestTextExcerpt:
    def test_strips_and_collapses(self):
        html = "<style>p{}</style><p>Tumour &amp; lesion</p>\n\n<script>x()</script><p>detection</p>"
        assert html_text_excerpt(html) == "Tumour & lesion detection"

    def test_limit(self):
        assert len(html_text_excerpt("<p>" + "a" * 50 + "</p>", limit=20)) == 20
