"""
Domain Entities

Core business objects for literature acquisition.
"""

from __future__ import annotations

from .document import Document, DocumentType
from .paper import (
    MAX_SCAN_DEPTH,
    NO_ABSTRACT_PLACEHOLDER,
    NO_SUMMARY_PLACEHOLDER,
    UNKNOWN_AUTHORS,
    UNKNOWN_YEAR,
    Paper,
    ProviderName,
    SearchFilters,
    dedup_key,
)

__all__ = [
    "Paper",
    "ProviderName",
    "SearchFilters",
    "dedup_key",
    "MAX_SCAN_DEPTH",
    "NO_ABSTRACT_PLACEHOLDER",
    "NO_SUMMARY_PLACEHOLDER",
    "UNKNOWN_AUTHORS",
    "UNKNOWN_YEAR",
    "Document",
    "DocumentType",
]
