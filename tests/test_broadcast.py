import pytest

from memochat.agent.turn_events import bot_status_event
from memochat.channels.broadcast import BroadcastHub, NullBroadcaster


@pytest.mark.asyncio
async def test_events_reach_only_the_chat_group() -> None:
    hub = BroadcastHub()
    seen_a, seen_b = [], []

    async def _a(event):
        seen_a.append(event["state"])

    async def _b(event):
        seen_b.append(event["state"])

    hub.subscribe("chat-a", _a)
    hub.subscribe("chat-b", _b)

    await hub.notify("chat-a", bot_status_event("chat-a", "init"))

    assert seen_a == ["init"]
    assert seen_b == []
    assert hub.delivered == 1


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others() -> None:
    hub = BroadcastHub()
    seen = []

    async def _broken(event):
        raise ConnectionResetError("socket closed")

    async def _ok(event):
        seen.append(event["type"])

    hub.subscribe("chat-1", _broken)
    hub.subscribe("chat-1", _ok)

    await hub.notify("chat-1", bot_status_event("chat-1", "streaming"))

    assert seen == ["bot_status"]
    assert hub.failed == 1
    assert hub.delivered == 1


@pytest.mark.asyncio
async def test_unsubscribe_leaves_the_group() -> None:
    hub = BroadcastHub()
    seen = []

    async def _collect(event):
        seen.append(event)

    unsubscribe = hub.subscribe("chat-1", _collect)
    assert hub.subscriber_count("chat-1") == 1

    unsubscribe()
    await hub.notify("chat-1", bot_status_event("chat-1", "init"))

    assert seen == []
    assert hub.subscriber_count("chat-1") == 0


@pytest.mark.asyncio
async def test_null_broadcaster_accepts_events() -> None:
    assert await NullBroadcaster().notify("chat-1", bot_status_event("chat-1", "init")) is None
