"""Primary-source retrieval."""

from .document_resolver import DocumentResolver, ResolutionSession
from .html_hints import find_pdf_hints, normalize_url

__all__ = ["DocumentResolver", "ResolutionSession", "find_pdf_hints", "normalize_url"]
