"""
HTML helpers for document retrieval: PDF-hint discovery, URL normalization
and preparation of an HTML page for later offline rendering.

Pages are parsed with BeautifulSoup's ``html.parser`` so attribute order,
quoting and character references never change what is found.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

_READER_PATH = re.compile(r"semanticscholar\.org/reader/[0-9a-f]+", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def normalize_url(url: str) -> str:
    """Visited-set key: query string and fragment dropped, host lowercased."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def host_of(url: str) -> str:
    host = urlsplit(url).netloc.lower()
    return host[4:] if host.startswith("www.") else host


def host_matches(url: str, allowed_hosts: tuple[str, ...] | list[str]) -> bool:
    """True when the URL's host is one of ``allowed_hosts`` or a subdomain of one."""
    host = host_of(url)
    return any(host == allowed or host.endswith("." + allowed) for allowed in allowed_hosts)


def _absolute(link: str, base_url: str) -> str:
    link = link.strip()
    if link.startswith("//"):
        return "https:" + link
    return urljoin(base_url, link)


def _looks_like_pdf_link(url: str) -> bool:
    path = urlsplit(url).path.lower()
    return path.endswith(".pdf") or "/pdf/" in path or path.endswith("/pdf")


def _is_citation_pdf_meta(name: str | None) -> bool:
    return bool(name) and name.strip().lower() == "citation_pdf_url"


def find_pdf_hints(html: str, base_url: str) -> list[str]:
    """
    Candidate PDF URLs found in ``html``, most authoritative first.

    Order: citation_pdf_url meta tag, iframe/embed sources pointing at a
    PDF, same-host ``/pdf/`` deep links, Semantic Scholar reader links.
    """
    soup = parse_html(html)
    hints: list[str] = []

    def add(link: str) -> None:
        absolute = _absolute(link, base_url)
        if absolute.startswith(("http://", "https://")) and absolute not in hints:
            hints.append(absolute)

    for tag in soup.find_all("meta", attrs={"name": _is_citation_pdf_meta}):
        content = (tag.get("content") or "").strip()
        if content:
            add(content)

    for tag in soup.find_all(["iframe", "embed"], src=True):
        if _looks_like_pdf_link(_absolute(tag["src"], base_url)):
            add(tag["src"])

    hrefs = [anchor["href"] for anchor in soup.find_all("a", href=True)]

    base_host = host_of(base_url)
    for href in hrefs:
        absolute = _absolute(href, base_url)
        if "/pdf/" in urlsplit(absolute).path.lower() and host_of(absolute) == base_host:
            add(href)

    for href in hrefs:
        if _READER_PATH.search(href):
            add(href)

    return hints


def prepare_html_document(html: str, url: str) -> str:
    """Strip scripts and inject a <base> tag so relative links resolve offline."""
    parts = urlsplit(url)
    soup = parse_html(html)
    for script in soup.find_all("script"):
        script.decompose()

    base = soup.new_tag("base", href=f"{parts.scheme}://{parts.netloc}", target="_blank")
    head = soup.find("head")
    if head is not None:
        head.insert(0, base)
    else:
        soup.insert(0, base)
    return str(soup)


def html_text_excerpt(html: str, limit: int = 10000) -> str:
    soup = parse_html(html)
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    return _WHITESPACE.sub(" ", soup.get_text(" ")).strip()[:limit]
