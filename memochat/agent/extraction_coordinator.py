"""Coordinate background memory extraction per chat."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from memochat.logging import get_logger

logger = get_logger(__name__)


class ExtractionCoordinator:
    """Tracks in-flight extraction tasks; at most one runs per chat."""

    def __init__(self) -> None:
        self.in_progress: set[str] = set()
        self.tasks: dict[str, asyncio.Task[Any]] = {}
        self.skipped = 0

    def start_background(
        self,
        chat_id: str,
        work: Callable[[], Awaitable[Any]],
    ) -> asyncio.Task[Any] | None:
        """Start extraction for *chat_id* unless one is already running for it."""
        if chat_id in self.in_progress:
            self.skipped += 1
            logger.info("memory_extraction_already_running", chat_id=chat_id)
            return None

        self.in_progress.add(chat_id)

        async def _runner() -> None:
            try:
                await work()
            except Exception as e:
                logger.error(
                    "memory_extraction_failed",
                    chat_id=chat_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                self.in_progress.discard(chat_id)
                self.tasks.pop(chat_id, None)

        task = asyncio.create_task(_runner())
        self.tasks[chat_id] = task
        return task

    async def cancel_inflight(self, chat_id: str) -> None:
        running = self.tasks.pop(chat_id, None)
        if running and not running.done():
            running.cancel()
            try:
                await running
            except asyncio.CancelledError:
                pass
        self.in_progress.discard(chat_id)

    async def drain(self) -> None:
        """Wait for every in-flight extraction to finish."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks.values()), return_exceptions=True)
            # A task cancelled before it started never reaches its finally block.
            for chat_id, task in list(self.tasks.items()):
                if task.done():
                    self.tasks.pop(chat_id, None)
                    self.in_progress.discard(chat_id)
