"""Token counting and per-turn budget tracking."""

from __future__ import annotations

from typing import Any, Iterable, Protocol

from memochat.logging import get_logger

logger = get_logger(__name__)

# Token usage keys reported per prompt component, keyed by the function that produced them.
FUNCTION_KEYS: dict[str, str] = {
    "SystemAudienceExtraction": "audienceExtraction",
    "SystemIntentExtraction": "userIntentExtraction",
    "SystemMetaPrompt": "metaPromptTemplate",
    "SystemCompletion": "responseCompletion",
    "SystemCognitive_WorkingMemory": "workingMemoryExtraction",
    "SystemCognitive_LongTermMemory": "longTermMemoryExtraction",
}

# Lazy-loaded tiktoken encoder shared by every default accountant.
_tiktoken_encoder: Any = None


class Encoder(Protocol):
    def encode(self, text: str) -> list[Any]: ...


def _get_encoder() -> Encoder:
    global _tiktoken_encoder
    if _tiktoken_encoder is None:
        import tiktoken

        _tiktoken_encoder = tiktoken.get_encoding("cl100k_base")
    return _tiktoken_encoder


def function_key(function_name: str) -> str:
    """Return the usage key for *function_name* (``SystemMetaPrompt`` -> ``metaPromptTemplate``)."""
    try:
        return FUNCTION_KEYS[function_name]
    except KeyError:
        raise KeyError(f"Unknown token usage function: {function_name}") from None


def context_variable_name(function_name: str) -> str:
    return f"{function_key(function_name)}TokenUsage"


class TokenAccountant:
    """Counts tokens the way the completion model will see them."""

    def __init__(self, encoder: Encoder | None = None):
        self._encoder = encoder

    def count(self, text: str) -> int:
        encoder = self._encoder or _get_encoder()
        return len(encoder.encode(text))

    def message_cost(self, role: str, content: str) -> int:
        """Token cost of one chat message including its role framing."""
        return self.count(f"role:{role}") + self.count(f"content:{content}\n")

    def messages_cost(self, messages: Iterable[dict[str, Any]]) -> int:
        return sum(self.message_cost(m["role"], m.get("content") or "") for m in messages)


class TokenBudget:
    """Remaining request tokens for a single turn. Never goes below zero."""

    def __init__(self, total: int):
        self.total = max(0, total)
        self._remaining = self.total

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def used(self) -> int:
        return self.total - self._remaining

    def fits(self, cost: int, *, strict: bool = False) -> bool:
        """Whether *cost* can be paid; ``strict`` requires budget left over afterwards."""
        left = self._remaining - cost
        return left > 0 if strict else left >= 0

    def try_consume(self, cost: int, *, strict: bool = False) -> bool:
        if not self.fits(cost, strict=strict):
            return False
        self._remaining -= cost
        return True

    def consume(self, cost: int, component: str = "") -> None:
        """Pay for a mandatory component, clamping at zero when it overdraws."""
        if cost > self._remaining:
            logger.warning(
                "token_budget_exhausted",
                component=component,
                cost=cost,
                remaining=self._remaining,
            )
            self._remaining = 0
            return
        self._remaining -= cost
