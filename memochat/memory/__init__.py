"""Memory records, stores, retrieval and extraction."""

from memochat.memory.models import Citation, MemoryRecord, MemoryTags, SemanticChatMemory, SemanticChatMemoryItem
from memochat.memory.store import GLOBAL_DOCUMENT_SCOPE, MemoryStore, VolatileMemoryStore

__all__ = [
    "GLOBAL_DOCUMENT_SCOPE",
    "Citation",
    "MemoryRecord",
    "MemoryStore",
    "MemoryTags",
    "SemanticChatMemory",
    "SemanticChatMemoryItem",
    "VolatileMemoryStore",
]
