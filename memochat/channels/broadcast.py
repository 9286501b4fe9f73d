"""Fan-out of turn events to the subscribers of a chat."""

from __future__ import annotations

from typing import Callable, Protocol

from memochat.agent.turn_events import TurnEventCallback, TurnEventPayload
from memochat.logging import get_logger

logger = get_logger(__name__)


class Broadcaster(Protocol):
    async def notify(self, chat_id: str, event: TurnEventPayload) -> None:
        """Deliver *event* to the chat's subscribers. Never raises on delivery failure."""
        ...


class NullBroadcaster:
    """Drops every event."""

    async def notify(self, chat_id: str, event: TurnEventPayload) -> None:
        return None


class BroadcastHub:
    """
    In-process chat groups.

    Subscribers join a chat group with a coroutine callback; a callback
    that raises is logged and skipped so one broken subscriber cannot
    stall the turn or the other subscribers.
    """

    def __init__(self) -> None:
        self._groups: dict[str, list[TurnEventCallback]] = {}
        self.delivered = 0
        self.failed = 0

    def subscribe(self, chat_id: str, callback: TurnEventCallback) -> Callable[[], None]:
        """Join *chat_id*'s group; returns a function that leaves it again."""
        self._groups.setdefault(chat_id, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._groups.get(chat_id, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._groups.pop(chat_id, None)

        return _unsubscribe

    def subscriber_count(self, chat_id: str) -> int:
        return len(self._groups.get(chat_id, []))

    async def notify(self, chat_id: str, event: TurnEventPayload) -> None:
        for callback in list(self._groups.get(chat_id, [])):
            try:
                await callback(event)
                self.delivered += 1
            except Exception as e:
                self.failed += 1
                logger.warning(
                    "broadcast_delivery_failed",
                    chat_id=chat_id,
                    event_type=event.get("type"),
                    error=str(e),
                )
