"""Chat service: validates the caller, runs a turn and reports one outcome."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Literal

from memochat.agent.extraction_coordinator import ExtractionCoordinator
from memochat.agent.tokens import TokenAccountant
from memochat.agent.turn_assembler import TurnAssembler, TurnAssemblerDeps
from memochat.agent.turn_context import TurnContext
from memochat.agent.turn_events import bot_response_event
from memochat.channels.broadcast import Broadcaster, NullBroadcaster
from memochat.config.schema import Config
from memochat.errors import (
    ChatSessionNotFoundError,
    MemochatError,
    ParticipantNotInChatError,
    TurnTimeoutError,
)
from memochat.logging import bind_turn_context, clear_turn_context, get_logger
from memochat.memory.store import MemoryStore, VolatileMemoryStore
from memochat.providers.base import LLMProvider
from memochat.session.file_store import open_file_stores
from memochat.session.models import ChatMessage, ChatMessageType, ChatParticipant, ChatSession
from memochat.session.stores import (
    ChatMessageStore,
    ChatParticipantStore,
    ChatSessionStore,
    VolatileChatMessageStore,
    VolatileChatParticipantStore,
    VolatileChatSessionStore,
)

logger = get_logger(__name__)

AskStatus = Literal["ok", "not_found", "forbidden", "timeout", "error"]


@dataclass
class AskResult:
    """Terminal outcome of one turn."""

    status: AskStatus
    value: str = ""
    message: ChatMessage | None = None
    token_usage: dict[str, int] = field(default_factory=dict)
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class ChatService:
    def __init__(
        self,
        *,
        config: Config,
        provider: LLMProvider,
        sessions: ChatSessionStore,
        participants: ChatParticipantStore,
        messages: ChatMessageStore,
        memory: MemoryStore,
        broadcaster: Broadcaster | None = None,
        tokens: TokenAccountant | None = None,
        model: str | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.sessions = sessions
        self.participants = participants
        self.messages = messages
        self.memory = memory
        self.broadcaster = broadcaster or NullBroadcaster()
        self.extraction = ExtractionCoordinator()
        self.assembler = TurnAssembler(TurnAssemblerDeps(
            prompts=config.prompts,
            auth=config.auth,
            service=config.service,
            provider=provider,
            tokens=tokens or TokenAccountant(),
            messages=messages,
            memory=memory,
            broadcaster=self.broadcaster,
            extraction=self.extraction,
            model=model or config.provider.model,
            now=now,
        ))

    @classmethod
    def from_config(
        cls,
        config: Config,
        provider: LLMProvider,
        *,
        memory: MemoryStore | None = None,
        broadcaster: Broadcaster | None = None,
        tokens: TokenAccountant | None = None,
    ) -> "ChatService":
        """Build a service with the chat stores *config* selects."""
        if config.chat_store.type == "filesystem":
            sessions, participants, messages = open_file_stores(Path(config.chat_store.directory))
        else:
            sessions = VolatileChatSessionStore()
            participants = VolatileChatParticipantStore()
            messages = VolatileChatMessageStore()
        return cls(
            config=config,
            provider=provider,
            sessions=sessions,
            participants=participants,
            messages=messages,
            memory=memory or VolatileMemoryStore(),
            broadcaster=broadcaster,
            tokens=tokens,
        )

    async def create_chat(
        self,
        title: str,
        user_id: str,
        *,
        system_description: str | None = None,
        memory_balance: float = 0.5,
    ) -> ChatSession:
        """Create a chat owned by *user_id*, seeded with the initial bot greeting."""
        prompts = self.config.prompts
        session = ChatSession(
            title=title,
            system_description=system_description or prompts.system_description,
            memory_balance=memory_balance,
        )
        await self.sessions.create(session)
        await self.participants.create(ChatParticipant(user_id=user_id, chat_id=session.id))
        await self.messages.create(ChatMessage.create_bot_response(session.id, prompts.initial_bot_message, ""))
        logger.info("chat_created", chat_id=session.id, user_id=user_id)
        return session

    async def join_chat(self, user_id: str, chat_id: str) -> None:
        if await self.sessions.find_by_id(chat_id) is None:
            raise ChatSessionNotFoundError(chat_id)
        if not await self.participants.is_user_in_chat(user_id, chat_id):
            await self.participants.create(ChatParticipant(user_id=user_id, chat_id=chat_id))

    async def _run_turn(self, chat_id: str, user_id: str, context: TurnContext) -> AskResult:
        session = await self.sessions.find_by_id(chat_id)
        if session is None:
            raise ChatSessionNotFoundError(chat_id)
        if not await self.participants.is_user_in_chat(user_id, chat_id):
            raise ParticipantNotInChatError(user_id, chat_id)

        context.memory_balance = session.memory_balance
        timeout = self.config.service.timeout_limit_s
        try:
            if timeout:
                result = await asyncio.wait_for(self.assembler.run(session, context), timeout=timeout)
            else:
                result = await self.assembler.run(session, context)
        except asyncio.TimeoutError:
            raise TurnTimeoutError(f"Turn did not complete within {timeout}s") from None

        message = result.bot_message
        return AskResult(
            status="ok",
            value=message.content,
            message=message,
            token_usage=dict(message.token_usage or {}),
        )

    async def ask(
        self,
        chat_id: str,
        user_id: str,
        user_name: str,
        message: str,
        *,
        message_type: str = "message",
        variables: dict[str, str] | None = None,
    ) -> AskResult:
        """Answer *message* in *chat_id* and report how the turn ended."""
        bind_turn_context(chat_id, user_id)
        context = TurnContext(
            chat_id=chat_id,
            user_id=user_id,
            user_name=user_name,
            message=message,
            message_type=ChatMessageType.parse(message_type),
            knowledge_cutoff=self.config.prompts.knowledge_cutoff_date,
            variables=dict(variables or {}),
        )
        try:
            result = await self._run_turn(chat_id, user_id, context)
        except ChatSessionNotFoundError as e:
            logger.warning("ask_rejected", reason="not_found", error=str(e))
            return AskResult(status="not_found", detail=str(e))
        except ParticipantNotInChatError as e:
            logger.warning("ask_rejected", reason="forbidden", error=str(e))
            return AskResult(status="forbidden", detail=str(e))
        except TurnTimeoutError as e:
            logger.warning("ask_timeout", error=str(e))
            return AskResult(status="timeout", detail=str(e))
        except MemochatError as e:
            logger.error("ask_failed", error=str(e), error_type=type(e).__name__)
            return AskResult(status="error", detail=str(e))
        except Exception as e:
            logger.exception("ask_failed_unexpectedly", error_type=type(e).__name__)
            return AskResult(status="error", detail=f"{type(e).__name__}: {e}")
        finally:
            clear_turn_context()

        await self.broadcaster.notify(chat_id, bot_response_event(chat_id, result.value, result.token_usage))
        return result

    async def aclose(self) -> None:
        """Wait for background memory extraction to finish."""
        await self.extraction.drain()
