"""Memory store interface and an in-process reference implementation."""

from __future__ import annotations

import difflib
import uuid
from dataclasses import dataclass
from typing import Protocol

from memochat.logging import get_logger
from memochat.memory.models import Citation, MemoryRecord, MemoryTags

logger = get_logger(__name__)

# Scope id of documents shared with every chat.
GLOBAL_DOCUMENT_SCOPE = "00000000-0000-0000-0000-000000000000"


class MemoryStore(Protocol):
    """Relevance search and storage over named memory containers."""

    async def search(
        self,
        query: str,
        *,
        min_relevance: float,
        scope_id: str,
        container: str,
        limit: int = -1,
    ) -> list[MemoryRecord]:
        """Records of *container* within *scope_id* scoring at least *min_relevance*, best first."""
        ...

    async def store(self, scope_id: str, container: str, item_id: str, text: str) -> None: ...


@dataclass
class _Entry:
    item_id: str
    text: str
    citation: Citation


class VolatileMemoryStore:
    """
    Memory store held in process memory.

    Relevance is a lexical similarity ratio between query and text, which
    keeps the store dependency-free; production deployments plug an
    embedding-backed store in behind the same interface.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], list[_Entry]] = {}

    @staticmethod
    def score(query: str, text: str) -> float:
        return difflib.SequenceMatcher(None, query.lower(), text.lower()).ratio()

    async def search(
        self,
        query: str,
        *,
        min_relevance: float,
        scope_id: str,
        container: str,
        limit: int = -1,
    ) -> list[MemoryRecord]:
        hits: list[MemoryRecord] = []
        for entry in self._entries.get((container, scope_id), []):
            relevance = self.score(query, entry.text)
            if relevance < min_relevance:
                continue
            hits.append(MemoryRecord(
                text=entry.text,
                relevance=relevance,
                tags=MemoryTags(memory_type=container, chat_id=scope_id),
                citation=entry.citation,
            ))
        hits.sort(key=lambda r: r.relevance, reverse=True)
        return hits if limit < 0 else hits[:limit]

    async def store(self, scope_id: str, container: str, item_id: str, text: str) -> None:
        self._put(scope_id, container, _Entry(item_id=item_id, text=text, citation=Citation()))
        logger.debug("memory_stored", scope_id=scope_id, container=container, item_id=item_id)

    async def import_document(
        self,
        scope_id: str,
        container: str,
        text: str,
        *,
        source_name: str,
        link: str,
        content_type: str = "text/plain",
    ) -> str:
        """Store a document snippet with its citation; returns the new item id."""
        item_id = str(uuid.uuid4())
        self._put(scope_id, container, _Entry(
            item_id=item_id,
            text=text,
            citation=Citation(link=link, source_name=source_name, source_content_type=content_type),
        ))
        return item_id

    def _put(self, scope_id: str, container: str, entry: _Entry) -> None:
        bucket = self._entries.setdefault((container, scope_id), [])
        bucket[:] = [e for e in bucket if e.item_id != entry.item_id]
        bucket.append(entry)

    def count(self, scope_id: str, container: str) -> int:
        return len(self._entries.get((container, scope_id), []))
