"""Minimum relevance thresholds per memory container."""

from __future__ import annotations

from memochat.config.schema import PromptsConfig
from memochat.errors import InvalidMemoryBalanceError, UnknownMemoryContainerError


def relevance_threshold(prompts: PromptsConfig, container: str, memory_balance: float) -> float:
    """Minimum relevance a record of *container* needs to be considered.

    Balance trades long-term for working memory: at 0 long-term memories need
    only the upper bound and working memories the lower; at 1 it is reversed.
    Document memory ignores the balance.

    Raises:
        InvalidMemoryBalanceError: balance outside [0, 1].
        UnknownMemoryContainerError: container is not one of the configured ones.
    """
    if not 0.0 <= memory_balance <= 1.0:
        raise InvalidMemoryBalanceError(memory_balance)

    upper = prompts.semantic_memory_relevance_upper
    lower = prompts.semantic_memory_relevance_lower
    if container == prompts.document_memory_name:
        return prompts.document_memory_min_relevance
    if container == prompts.long_term_memory_name:
        return (lower - upper) * memory_balance + upper
    if container == prompts.working_memory_name:
        return (upper - lower) * memory_balance + lower
    raise UnknownMemoryContainerError(container)
