"""Memory records returned by the store and memory items extracted from chats."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import json_repair


@dataclass(frozen=True)
class Citation:
    """Where a stored memory came from."""

    link: str = ""
    source_name: str = ""
    source_content_type: str = ""


@dataclass(frozen=True)
class MemoryTags:
    memory_type: str | None = None
    chat_id: str | None = None


@dataclass(frozen=True)
class MemoryRecord:
    """One search hit. ``relevance`` is in [0, 1]."""

    text: str
    relevance: float
    tags: MemoryTags = field(default_factory=MemoryTags)
    citation: Citation = field(default_factory=Citation)


@dataclass
class SemanticChatMemoryItem:
    label: str
    details: str

    def to_formatted_string(self) -> str:
        return f"{self.label}: {self.details.strip()}"


@dataclass
class SemanticChatMemory:
    items: list[SemanticChatMemoryItem] = field(default_factory=list)

    @classmethod
    def from_json(cls, text: str) -> "SemanticChatMemory":
        """Parse ``{"items": [{"label": ..., "details": ...}]}`` from model output.

        Raises:
            ValueError: when the payload has no usable ``items`` list.
        """
        data: Any = json_repair.loads(text or "")
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise ValueError("memory payload has no 'items' list")
        items: list[SemanticChatMemoryItem] = []
        for raw in data["items"]:
            if not isinstance(raw, dict):
                continue
            label = raw.get("label")
            details = raw.get("details")
            if not isinstance(label, str) or not isinstance(details, str):
                continue
            items.append(SemanticChatMemoryItem(label=label, details=details))
        return cls(items=items)
