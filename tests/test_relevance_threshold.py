import pytest

from memochat.config.schema import PromptsConfig
from memochat.errors import InvalidMemoryBalanceError, UnknownMemoryContainerError
from memochat.memory.relevance import relevance_threshold

PROMPTS = PromptsConfig()
LONG = PROMPTS.long_term_memory_name
WORKING = PROMPTS.working_memory_name
DOCUMENT = PROMPTS.document_memory_name


def test_both_thresholds_meet_at_midpoint() -> None:
    assert relevance_threshold(PROMPTS, LONG, 0.5) == pytest.approx(0.75)
    assert relevance_threshold(PROMPTS, WORKING, 0.5) == pytest.approx(0.75)


def test_bounds_at_extremes() -> None:
    assert relevance_threshold(PROMPTS, LONG, 0.0) == pytest.approx(0.9)
    assert relevance_threshold(PROMPTS, LONG, 1.0) == pytest.approx(0.6)
    assert relevance_threshold(PROMPTS, WORKING, 0.0) == pytest.approx(0.6)
    assert relevance_threshold(PROMPTS, WORKING, 1.0) == pytest.approx(0.9)


def test_monotonic_in_balance() -> None:
    balances = [i / 10 for i in range(11)]
    long_term = [relevance_threshold(PROMPTS, LONG, b) for b in balances]
    working = [relevance_threshold(PROMPTS, WORKING, b) for b in balances]
    assert long_term == sorted(long_term, reverse=True)
    assert working == sorted(working)


def test_document_threshold_ignores_balance() -> None:
    assert relevance_threshold(PROMPTS, DOCUMENT, 0.0) == pytest.approx(0.66)
    assert relevance_threshold(PROMPTS, DOCUMENT, 1.0) == pytest.approx(0.66)


@pytest.mark.parametrize("balance", [-0.01, 1.01, 7.0])
def test_balance_outside_unit_interval_is_rejected(balance: float) -> None:
    with pytest.raises(InvalidMemoryBalanceError):
        relevance_threshold(PROMPTS, LONG, balance)


def test_unknown_container_is_rejected() -> None:
    with pytest.raises(UnknownMemoryContainerError):
        relevance_threshold(PROMPTS, "EpisodicMemory", 0.5)
