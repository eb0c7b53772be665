"""Document-text extraction."""

from .extractor import PdfTextExtractor

__all__ = ["PdfTextExtractor"]
