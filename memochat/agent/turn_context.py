"""Typed per-turn state shared by the assembly steps."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

from memochat.session.models import ChatMessageType


@dataclass
class TurnContext:
    """Inputs of one turn plus the token usage each prompt component reported."""

    chat_id: str
    user_id: str
    user_name: str
    message: str
    message_type: ChatMessageType = ChatMessageType.MESSAGE
    knowledge_cutoff: str = ""
    memory_balance: float = 0.5
    token_usage_by_function: dict[str, int] = field(default_factory=dict)
    variables: dict[str, str] = field(default_factory=dict)

    def record_usage(self, key: str, tokens: int) -> None:
        self.token_usage_by_function[key] = self.token_usage_by_function.get(key, 0) + tokens


@dataclass
class PromptPlan:
    """Every component of the final prompt, kept on the bot message for inspection."""

    persona: str = ""
    audience: str = ""
    intent: str = ""
    past_memories: str = ""
    chat_history: str = ""
    messages: list[dict[str, str]] = field(default_factory=list)

    def add(self, role: str, content: str) -> None:
        self.messages.append({"role": role, "content": content})

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "PromptPlan":
        data: dict[str, Any] = json.loads(text)
        return cls(**data)


@dataclass(frozen=True)
class ExtractionResult:
    """Text of one extracted prompt component; empty when extraction failed."""

    text: str = ""
    token_usage: int | None = None

    @property
    def ok(self) -> bool:
        return bool(self.text)
