"""
PDF text extraction with PyMuPDF (fitz).

Two distinguishable failure signals:
- MalformedContent: the file is structurally corrupt (terminal for its URL)
- ParseError: anything else went wrong (caller keeps the binary, no text)
"""

from __future__ import annotations

import asyncio
import logging

import fitz  # PyMuPDF

from scholar_harvest.core.exceptions import MalformedContent, ParseError

logger = logging.getLogger(__name__)


class PdfTextExtractor:
    """
    Page-capped text extraction from in-memory PDF bytes.

    Example:
        extractor = PdfTextExtractor(max_pages=20)
        text = await extractor.extract_async(pdf_bytes)
    """

    def __init__(self, max_pages: int = 20) -> None:
        self._max_pages = max_pages

    def extract(self, data: bytes) -> str:
        """Extract text from the first ``max_pages`` pages."""
        if not data:
            raise MalformedContent("Empty PDF body")

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except fitz.FileDataError as e:
            raise MalformedContent(f"Corrupt PDF: {e}") from e
        except Exception as e:
            raise ParseError(str(e), source="pymupdf") from e

        try:
            text_parts = []
            for index, page in enumerate(doc):
                if index >= self._max_pages:
                    break
                text = page.get_text()
                if text.strip():
                    text_parts.append(text)
        except fitz.FileDataError as e:
            raise MalformedContent(f"Corrupt PDF page data: {e}") from e
        except Exception as e:
            raise ParseError(str(e), source="pymupdf") from e
        finally:
            doc.close()

        logger.debug(f"Extracted {len(text_parts)} text pages (cap {self._max_pages})")
        return "\n\n".join(text_parts)

    async def extract_async(self, data: bytes) -> str:
        """Run ``extract`` in a worker thread."""
        return await asyncio.to_thread(self.extract, data)
