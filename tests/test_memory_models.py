import pytest

from memochat.memory.models import SemanticChatMemory
from memochat.memory.store import VolatileMemoryStore


def test_parse_items() -> None:
    memory = SemanticChatMemory.from_json('{"items": [{"label": "home", "details": " Lisbon "}]}')
    assert [item.to_formatted_string() for item in memory.items] == ["home: Lisbon"]


def test_parse_repairs_truncated_json() -> None:
    memory = SemanticChatMemory.from_json('{"items": [{"label": "home", "details": "Lisbon"}')
    assert [item.label for item in memory.items] == ["home"]


@pytest.mark.parametrize("payload", ["", "no json here", '{"facts": []}', "[1, 2]"])
def test_parse_rejects_payload_without_items(payload: str) -> None:
    with pytest.raises(ValueError):
        SemanticChatMemory.from_json(payload)


def test_empty_items_is_valid() -> None:
    assert SemanticChatMemory.from_json('{"items": []}').items == []


@pytest.mark.asyncio
async def test_volatile_store_search_filters_and_ranks() -> None:
    store = VolatileMemoryStore()
    await store.store("chat-1", "WorkingMemory", "a", "planning a trip to Porto")
    await store.store("chat-1", "WorkingMemory", "b", "planning a trip to Paris")
    await store.store("chat-1", "WorkingMemory", "c", "likes green tea")
    await store.store("chat-2", "WorkingMemory", "d", "planning a trip to Porto")

    hits = await store.search("planning a trip to Porto", min_relevance=0.8, scope_id="chat-1", container="WorkingMemory")

    assert [h.text for h in hits] == ["planning a trip to Porto", "planning a trip to Paris"]
    assert hits[0].relevance == pytest.approx(1.0)
    assert hits[0].tags.memory_type == "WorkingMemory"
    assert hits[0].tags.chat_id == "chat-1"

    limited = await store.search(
        "planning a trip to Porto", min_relevance=0.8, scope_id="chat-1", container="WorkingMemory", limit=1
    )
    assert len(limited) == 1


@pytest.mark.asyncio
async def test_store_replaces_same_item_id() -> None:
    store = VolatileMemoryStore()
    await store.store("chat-1", "LongTermMemory", "a", "old")
    await store.store("chat-1", "LongTermMemory", "a", "new")
    assert store.count("chat-1", "LongTermMemory") == 1


@pytest.mark.asyncio
async def test_imported_documents_carry_citations() -> None:
    store = VolatileMemoryStore()
    await store.import_document(
        "chat-1", "DocumentMemory", "office closes at six", source_name="handbook.md", link="doc://handbook"
    )

    hits = await store.search("office closes at six", min_relevance=0.9, scope_id="chat-1", container="DocumentMemory")

    assert hits[0].citation.link == "doc://handbook"
    assert hits[0].citation.source_name == "handbook.md"
    assert hits[0].citation.source_content_type == "text/plain"
