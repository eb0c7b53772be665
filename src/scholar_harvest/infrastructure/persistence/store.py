"""
JsonFileStore - file-backed persistence for papers, documents and the block-list.

Storage model (under ``data_dir``):
- papers.json:              {url: paper}           (papers keyed by URL)
- blocked_urls.json:        {url: {reason, timestamp}}
- documents/{id}.json:      document metadata
- documents/{id}.pdf|.html: document content
- documents/_index.json:    {paper_id: [document ids]}  (secondary index)

All writes go through one asyncio.Lock; file I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from scholar_harvest.domain.entities import Document, DocumentType, Paper

logger = logging.getLogger(__name__)

_CONTENT_SUFFIX = {
    DocumentType.PDF: ".pdf",
    DocumentType.HTML: ".html",
}


class JsonFileStore:
    """File-backed persistence collaborator.

    Args:
        data_dir: Root directory; created if missing.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir).expanduser()
        self._lock = asyncio.Lock()
        self._blocked_cache: dict[str, dict[str, Any]] | None = None

        # Ensure directories exist
        self._documents_dir.mkdir(parents=True, exist_ok=True)

    # ── Paths ────────────────────────────────────────────────────────────

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def _papers_path(self) -> Path:
        return self._data_dir / "papers.json"

    @property
    def _blocked_path(self) -> Path:
        return self._data_dir / "blocked_urls.json"

    @property
    def _documents_dir(self) -> Path:
        return self._data_dir / "documents"

    @property
    def _document_index_path(self) -> Path:
        return self._documents_dir / "_index.json"

    # ── JSON helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Failed to load %s, starting fresh", path)
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _write_json(path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(path)

    # ── Block-list ───────────────────────────────────────────────────────

    async def _blocked(self) -> dict[str, dict[str, Any]]:
        if self._blocked_cache is None:
            self._blocked_cache = await asyncio.to_thread(self._read_json, self._blocked_path)
        return self._blocked_cache

    async def is_blocked(self, url: str) -> bool:
        return url in await self._blocked()

    async def block_url(self, url: str, reason: str) -> None:
        async with self._lock:
            blocked = await self._blocked()
            blocked[url] = {
                "reason": reason,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            await asyncio.to_thread(self._write_json, self._blocked_path, blocked)
        logger.info("Persisted block for %s (%s)", url, reason)

    async def blocked_urls(self) -> dict[str, dict[str, Any]]:
        return dict(await self._blocked())

    # ── Papers ───────────────────────────────────────────────────────────

    async def save_papers(self, papers: list[Paper]) -> int:
        """Upsert papers keyed by URL (title key when a paper has no URL)."""
        async with self._lock:
            stored = await asyncio.to_thread(self._read_json, self._papers_path)
            for paper in papers:
                stored[paper.url or paper.dedup_key] = paper.to_dict()
            await asyncio.to_thread(self._write_json, self._papers_path, stored)
        logger.info("Saved %d papers to %s", len(papers), self._papers_path)
        return len(papers)

    async def load_papers(self) -> list[Paper]:
        stored = await asyncio.to_thread(self._read_json, self._papers_path)
        papers: list[Paper] = []
        for key, data in stored.items():
            try:
                papers.append(Paper.from_dict(data))
            except (KeyError, ValueError):
                logger.warning("Skipping unreadable paper record %s", key)
        return papers

    # ── Documents ────────────────────────────────────────────────────────

    def _write_document(self, doc: Document) -> None:
        suffix = _CONTENT_SUFFIX.get(doc.type)
        metadata = doc.metadata()
        if suffix:
            content_path = self._documents_dir / f"{doc.id}{suffix}"
            if isinstance(doc.content, bytes):
                content_path.write_bytes(doc.content)
            else:
                content_path.write_text(doc.content, encoding="utf-8")
            metadata["content_file"] = content_path.name
        else:
            metadata["content"] = doc.content if isinstance(doc.content, str) else ""
        self._write_json(self._documents_dir / f"{doc.id}.json", metadata)

        index = self._read_json(self._document_index_path)
        ids = index.setdefault(doc.paper_id, [])
        if doc.id not in ids:
            ids.append(doc.id)
        self._write_json(self._document_index_path, index)

    async def save_document(self, doc: Document) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write_document, doc)
        logger.info("Saved %s document %s for paper %s", doc.type.value, doc.id, doc.paper_id)

    def _read_document(self, doc_id: str) -> Document | None:
        meta = self._read_json(self._documents_dir / f"{doc_id}.json")
        if not meta:
            return None
        doc_type = DocumentType(meta["type"])
        content: bytes | str
        content_file = meta.get("content_file")
        if content_file:
            content_path = self._documents_dir / content_file
            if not content_path.exists():
                logger.warning("Document %s is missing its content file", doc_id)
                return None
            content = content_path.read_bytes() if doc_type is DocumentType.PDF else content_path.read_text(encoding="utf-8")
        else:
            content = meta.get("content", "")
        return Document(
            id=meta["id"],
            paper_id=meta["paper_id"],
            type=doc_type,
            content=content,
            original_url=meta["original_url"],
            text_content=meta.get("text_content"),
            timestamp=datetime.fromisoformat(meta["timestamp"]),
        )

    async def get_document(self, doc_id: str) -> Document | None:
        return await asyncio.to_thread(self._read_document, doc_id)

    async def documents_for_paper(self, paper_id: str) -> list[Document]:
        index = await asyncio.to_thread(self._read_json, self._document_index_path)
        docs: list[Document] = []
        for doc_id in index.get(paper_id, []):
            doc = await self.get_document(doc_id)
            if doc is not None:
                docs.append(doc)
        return docs
