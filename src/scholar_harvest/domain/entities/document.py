"""
Document entity: a retrieved primary source for a Paper.

Created only by the DocumentResolver and never mutated afterwards. The
``paper_id`` is a reference; a Document does not own its Paper.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class DocumentType(Enum):
    PDF = "pdf"
    HTML = "html"
    LINK = "link"


def _new_document_id() -> str:
    return uuid.uuid4().hex[:12]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Document:
    """A PDF body, a sanitized HTML page, or a bare link."""

    paper_id: str
    type: DocumentType
    content: bytes | str
    original_url: str
    text_content: str | None = None
    id: str = field(default_factory=_new_document_id)
    timestamp: datetime = field(default_factory=_utc_now)

    @property
    def size(self) -> int:
        return len(self.content)

    def metadata(self) -> dict[str, Any]:
        """Serializable description without the content body."""
        return {
            "id": self.id,
            "paper_id": self.paper_id,
            "type": self.type.value,
            "original_url": self.original_url,
            "text_content": self.text_content,
            "timestamp": self.timestamp.isoformat(),
            "size": self.size,
        }
