"""Relevance-ranked memory retrieval under a token budget."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from memochat.agent.tokens import TokenAccountant, TokenBudget
from memochat.config.schema import PromptsConfig
from memochat.logging import get_logger
from memochat.memory.models import MemoryRecord
from memochat.memory.relevance import relevance_threshold
from memochat.memory.store import GLOBAL_DOCUMENT_SCOPE, MemoryStore
from memochat.session.models import CitationSource

logger = get_logger(__name__)

_MEMORIES_HEADER = "Past memories (format: [memory type] <label>: <details>):\n"
_SNIPPETS_PREAMBLE = (
    "User has also shared some document snippets.\n"
    "Quote the document link in square brackets at the end of each sentence that refers to the snippet in your response.\n"
)


@dataclass(frozen=True)
class _SearchTarget:
    container: str
    scope_id: str
    threshold: float


class MemoryRelevanceRetriever:
    """Searches every memory container of a chat and packs the best hits into prompt text."""

    def __init__(self, store: MemoryStore, prompts: PromptsConfig, tokens: TokenAccountant):
        self.store = store
        self.prompts = prompts
        self.tokens = tokens

    @property
    def container_names(self) -> list[str]:
        return [
            self.prompts.document_memory_name,
            self.prompts.long_term_memory_name,
            self.prompts.working_memory_name,
        ]

    def _targets(self, chat_id: str, memory_balance: float) -> list[_SearchTarget]:
        # Thresholds are resolved up front so a bad balance fails the turn instead of one search.
        targets = [
            _SearchTarget(name, chat_id, relevance_threshold(self.prompts, name, memory_balance))
            for name in self.container_names
        ]
        document = self.prompts.document_memory_name
        targets.append(_SearchTarget(
            document,
            GLOBAL_DOCUMENT_SCOPE,
            relevance_threshold(self.prompts, document, memory_balance),
        ))
        return targets

    async def _search_all(self, query: str, targets: list[_SearchTarget]) -> list[MemoryRecord]:
        results = await asyncio.gather(
            *(
                self.store.search(query, min_relevance=t.threshold, scope_id=t.scope_id, container=t.container)
                for t in targets
            ),
            return_exceptions=True,
        )
        records: list[MemoryRecord] = []
        for target, result in zip(targets, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "memory_search_failed",
                    container=target.container,
                    scope_id=target.scope_id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                continue
            records.extend(result)
        return records

    def pack(
        self,
        records: list[MemoryRecord],
        token_limit: int,
    ) -> tuple[dict[str, list[tuple[str, CitationSource]]], dict[str, CitationSource]]:
        """Greedily take the most relevant records that fit in *token_limit*.

        Returns the accepted records bucketed by container and the citation
        map of accepted document records, keyed by link.
        """
        known = set(self.container_names)
        buckets: dict[str, list[tuple[str, CitationSource]]] = {}
        citations: dict[str, CitationSource] = {}
        budget = TokenBudget(token_limit)

        # sorted() is stable: equal relevance keeps arrival order.
        for record in sorted(records, key=lambda r: r.relevance, reverse=True):
            cost = self.tokens.count(record.text)
            if not budget.fits(cost, strict=True):
                break
            container = record.tags.memory_type
            if container not in known:
                continue

            citation = CitationSource(
                link=record.citation.link,
                source_name=record.citation.source_name,
                source_content_type=record.citation.source_content_type,
                snippet=record.text,
                relevance_score=record.relevance,
            )
            buckets.setdefault(container, []).append((record.text, citation))
            budget.consume(cost, "memories")
            if container == self.prompts.document_memory_name:
                citations.setdefault(record.citation.link, citation)

        return buckets, citations

    def format(self, buckets: dict[str, list[tuple[str, CitationSource]]]) -> str:
        parts: list[str] = []
        for container in self.prompts.memory_map:
            for text, _ in buckets.get(container, []):
                if not parts:
                    parts.append(_MEMORIES_HEADER)
                parts.append(f"[{container}] {text}\n")

        documents = buckets.get(self.prompts.document_memory_name, [])
        if documents:
            parts.append(_SNIPPETS_PREAMBLE)
            for text, citation in documents:
                parts.append(
                    f"Document name: {citation.source_name}\n"
                    f"Document link: {citation.link}\n"
                    f"[CONTENT START]\n{text}\n[CONTENT END]\n"
                )
        return "".join(parts)

    async def query_memories(
        self,
        query: str,
        chat_id: str,
        token_limit: int,
        *,
        memory_balance: float,
    ) -> tuple[str, dict[str, CitationSource]]:
        """Return formatted memory text and the citations it quotes.

        Raises:
            InvalidMemoryBalanceError: *memory_balance* outside [0, 1].
        """
        targets = self._targets(chat_id, memory_balance)
        records = await self._search_all(query, targets)
        if not records:
            return "", {}

        buckets, citations = self.pack(records, token_limit)
        text = self.format(buckets)
        logger.debug(
            "memories_retrieved",
            candidates=len(records),
            accepted=sum(len(v) for v in buckets.values()),
            citations=len(citations),
            token_limit=token_limit,
        )
        return text, citations
