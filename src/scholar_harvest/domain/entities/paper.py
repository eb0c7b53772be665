"""
Paper and search-filter entities.

A Paper is created by a search provider client from one raw provider record.
Its ``summary`` may later be overwritten in place by abstract enrichment;
everything else is fixed at creation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scholar_harvest.core.exceptions import InvalidParameterError

MAX_SCAN_DEPTH = 500
MIN_TITLE_LENGTH = 5

NO_ABSTRACT_PLACEHOLDER = "No abstract available."
NO_SUMMARY_PLACEHOLDER = "No summary available."
UNKNOWN_AUTHORS = "Unknown Authors"
UNKNOWN_YEAR = "N/A"

_WHITESPACE = re.compile(r"\s+")


class ProviderName(Enum):
    """Search backend a Paper originated from."""

    SEMANTIC_SCHOLAR = "semantic_scholar"
    GOOGLE_SCHOLAR = "google_scholar"


def dedup_key(title: str) -> str:
    """Normalized lowercase title used to detect duplicate records."""
    return _WHITESPACE.sub(" ", title).strip().lower()


@dataclass
class Paper:
    """A bibliographic record with metadata and an abstract."""

    title: str
    authors: str
    year: str
    url: str
    summary: str
    origin_provider: ProviderName
    doi: str | None = None
    open_access_pdf_url: str | None = None
    paper_id: str | None = None
    semantic_reader_url: str | None = None
    venue: str | None = None
    tldr: str | None = None

    @property
    def dedup_key(self) -> str:
        return dedup_key(self.title)

    @property
    def identifier(self) -> str:
        """Stable reference used by Documents: provider id, else URL, else title key."""
        return self.paper_id or self.url or self.dedup_key

    @property
    def has_placeholder_summary(self) -> bool:
        return self.summary.strip() in {"", NO_ABSTRACT_PLACEHOLDER, NO_SUMMARY_PLACEHOLDER}

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "authors": self.authors,
            "year": self.year,
            "doi": self.doi,
            "url": self.url,
            "open_access_pdf_url": self.open_access_pdf_url,
            "paper_id": self.paper_id,
            "semantic_reader_url": self.semantic_reader_url,
            "venue": self.venue,
            "tldr": self.tldr,
            "summary": self.summary,
            "origin_provider": self.origin_provider.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Paper:
        return cls(
            title=data["title"],
            authors=data.get("authors", UNKNOWN_AUTHORS),
            year=str(data.get("year", UNKNOWN_YEAR)),
            url=data.get("url", ""),
            summary=data.get("summary", NO_ABSTRACT_PLACEHOLDER),
            origin_provider=ProviderName(data.get("origin_provider", ProviderName.SEMANTIC_SCHOLAR.value)),
            doi=data.get("doi"),
            open_access_pdf_url=data.get("open_access_pdf_url"),
            paper_id=data.get("paper_id"),
            semantic_reader_url=data.get("semantic_reader_url"),
            venue=data.get("venue"),
            tldr=data.get("tldr"),
        )


@dataclass
class SearchFilters:
    """Year range and target corpus size for one aggregation run."""

    min_year: int | None = None
    max_year: int | None = None
    scan_depth: int = 20
    max_scan_depth: int = field(default=MAX_SCAN_DEPTH, repr=False)

    def __post_init__(self) -> None:
        if self.min_year is not None and self.max_year is not None and self.min_year > self.max_year:
            raise InvalidParameterError(
                "min_year",
                self.min_year,
                f"a year not after max_year ({self.max_year})",
            )
        self.scan_depth = max(1, min(int(self.scan_depth), self.max_scan_depth))

    def year_param(self) -> str | None:
        """Inclusive year range in Semantic Scholar syntax."""
        if self.min_year and self.max_year:
            return f"{self.min_year}-{self.max_year}"
        if self.min_year:
            return f"{self.min_year}-"
        if self.max_year:
            return f"-{self.max_year}"
        return None
