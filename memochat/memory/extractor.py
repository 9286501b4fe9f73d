"""Distill a finished exchange into long-term and working memory items."""

from __future__ import annotations

import uuid

from memochat.agent.prompt_extractor import PromptComponentExtractor
from memochat.agent.turn_context import TurnContext
from memochat.config.schema import PromptsConfig
from memochat.logging import get_logger
from memochat.memory.models import SemanticChatMemory
from memochat.memory.store import MemoryStore

logger = get_logger(__name__)

SEMANTIC_MEMORY_TYPES = ("LongTermMemory", "WorkingMemory")


class MemoryExtractor:
    """Extracts memory items per memory type and stores the ones not already known."""

    def __init__(self, store: MemoryStore, extractor: PromptComponentExtractor, prompts: PromptsConfig):
        self.store = store
        self.extractor = extractor
        self.prompts = prompts

    async def extract(self, context: TurnContext) -> int:
        """Run extraction for every memory type; returns how many items were stored.

        Memory types are independent: a failure in one is logged and the
        next one still runs.
        """
        stored = 0
        for memory_type in SEMANTIC_MEMORY_TYPES:
            container = self.prompts.memory_container_name(memory_type)
            if container is None:
                logger.info("memory_type_unmapped", memory_type=memory_type)
                continue
            try:
                memory = await self._extract_type(memory_type, container, context)
            except ValueError as e:
                logger.info("memory_extraction_skipped", memory_type=memory_type, error=str(e))
                continue
            for item in memory.items:
                if await self._create_memory(container, item.to_formatted_string(), context.chat_id):
                    stored += 1
        logger.info("memory_extraction_done", chat_id=context.chat_id, stored=stored)
        return stored

    async def _extract_type(self, memory_type: str, container: str, context: TurnContext) -> SemanticChatMemory:
        template = self.prompts.memory_map[container]
        extra = {"memory_name": container, "format": self.prompts.memory_format}
        token_limit = (
            self.prompts.completion_token_limit
            - self.prompts.response_token_limit
            - self.extractor.template_overhead(template, context, extra)
        )
        result = await self.extractor.extract(
            f"SystemCognitive_{memory_type}",
            template,
            context,
            token_limit,
            extra_variables=extra,
        )
        if not result.ok:
            raise ValueError("no extraction output")
        return SemanticChatMemory.from_json(result.text)

    async def _create_memory(self, container: str, text: str, chat_id: str) -> bool:
        try:
            existing = await self.store.search(
                text,
                min_relevance=self.prompts.semantic_memory_relevance_upper,
                scope_id=chat_id,
                container=container,
                limit=1,
            )
            if existing:
                logger.debug("memory_duplicate_skipped", container=container)
                return False
            await self.store.store(chat_id, container, str(uuid.uuid4()), text)
            return True
        except Exception as e:
            logger.error("memory_store_failed", container=container, error=str(e), error_type=type(e).__name__)
            return False
