"""Assemble, stream and finalize one chat turn."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from memochat.agent.chat_history import ChatHistoryBuilder
from memochat.agent.extraction_coordinator import ExtractionCoordinator
from memochat.agent.prompt_extractor import PromptComponentExtractor
from memochat.agent.templates import render_template
from memochat.agent.tokens import TokenAccountant, TokenBudget, function_key
from memochat.agent.turn_context import ExtractionResult, PromptPlan, TurnContext
from memochat.agent.turn_events import (
    EVENT_RECEIVE_MESSAGE,
    EVENT_RECEIVE_MESSAGE_UPDATE,
    STATUS_EXTRACTING_MEMORY,
    TurnState,
    bot_status_event,
    message_event,
)
from memochat.channels.broadcast import Broadcaster
from memochat.config.schema import AuthConfig, PromptsConfig, ServiceConfig
from memochat.errors import ResponseCompletionError
from memochat.logging import get_logger
from memochat.memory.extractor import MemoryExtractor
from memochat.memory.retriever import MemoryRelevanceRetriever
from memochat.memory.store import MemoryStore
from memochat.providers.base import CompletionSettings, LLMProvider
from memochat.session.models import ChatMessage, ChatSession, CitationSource
from memochat.session.stores import ChatMessageStore

logger = get_logger(__name__)

_MEMORY_USAGE_KEYS = (
    function_key("SystemCognitive_LongTermMemory"),
    function_key("SystemCognitive_WorkingMemory"),
)


@dataclass(frozen=True)
class TurnAssemblerDeps:
    """Collaborators shared by every turn."""

    prompts: PromptsConfig
    auth: AuthConfig
    service: ServiceConfig
    provider: LLMProvider
    tokens: TokenAccountant
    messages: ChatMessageStore
    memory: MemoryStore
    broadcaster: Broadcaster
    extraction: ExtractionCoordinator
    model: str | None = None
    now: Callable[[], datetime] = datetime.now


@dataclass
class TurnResult:
    bot_message: ChatMessage
    plan: PromptPlan
    context: TurnContext
    citations: dict[str, CitationSource] = field(default_factory=dict)
    extraction_task: asyncio.Task[Any] | None = None


@dataclass
class _TurnParts:
    """Per-turn collaborators bound to the session's own system description."""

    prompts: PromptsConfig
    history: ChatHistoryBuilder
    extractor: PromptComponentExtractor
    retriever: MemoryRelevanceRetriever
    memory_extractor: MemoryExtractor


class TurnAssembler:
    """
    Drives a turn through its states, strictly in order:

    init -> persona_rendered -> audience_extracted (skipped for the default
    user) -> intent_extracted -> memories_retrieved -> history_filled ->
    streaming -> finalized

    Every prompt component is paid for out of one TokenBudget, so the final
    prompt never exceeds the request limit. Memory extraction starts in the
    background once the response is persisted.
    """

    def __init__(self, deps: TurnAssemblerDeps):
        self.deps = deps

    def _parts(self, session: ChatSession) -> _TurnParts:
        d = self.deps
        prompts = d.prompts.copy_with_description(session.safe_system_description)
        history = ChatHistoryBuilder(d.messages, d.tokens, d.auth, window=d.service.history_window)
        extractor = PromptComponentExtractor(d.provider, prompts, d.tokens, history, model=d.model, now=d.now)
        return _TurnParts(
            prompts=prompts,
            history=history,
            extractor=extractor,
            retriever=MemoryRelevanceRetriever(d.memory, prompts, d.tokens),
            memory_extractor=MemoryExtractor(d.memory, extractor, prompts),
        )

    def response_settings(self, prompts: PromptsConfig) -> CompletionSettings:
        return CompletionSettings(
            max_tokens=prompts.response_token_limit,
            temperature=prompts.response_temperature,
            top_p=prompts.response_top_p,
            presence_penalty=prompts.response_presence_penalty,
            frequency_penalty=prompts.response_frequency_penalty,
        )

    async def _enter(self, context: TurnContext, state: TurnState, budget: TokenBudget | None = None) -> None:
        logger.info("turn_state", state=state, remaining_tokens=budget.remaining if budget else None)
        await self.deps.broadcaster.notify(context.chat_id, bot_status_event(context.chat_id, state))

    async def _notify_message(self, event_type: str, context: TurnContext, message: ChatMessage) -> None:
        await self.deps.broadcaster.notify(
            context.chat_id,
            message_event(event_type, context.chat_id, context.user_id, message.to_dict()),
        )

    async def _extract_component(
        self,
        parts: _TurnParts,
        function_name: str,
        template: str,
        context: TurnContext,
        budget: TokenBudget,
    ) -> ExtractionResult:
        token_limit = budget.remaining - parts.extractor.template_overhead(template, context)
        return await parts.extractor.extract(function_name, template, context, token_limit)

    def _add_system(self, plan: PromptPlan, budget: TokenBudget, content: str, component: str) -> None:
        plan.add("system", content)
        budget.consume(self.deps.tokens.message_cost("system", content), component)

    async def run(self, session: ChatSession, context: TurnContext) -> TurnResult:
        """Run the whole turn for *context* in *session*.

        Raises:
            InvalidMemoryBalanceError: the session's memory balance is outside [0, 1].
            ResponseCompletionError: the streamed completion failed.
        """
        d = self.deps
        parts = self._parts(session)
        prompts = parts.prompts

        budget = TokenBudget(prompts.max_request_token_budget)
        await self._enter(context, "init", budget)
        user_message = ChatMessage(
            chat_id=context.chat_id,
            user_id=context.user_id,
            user_name=context.user_name,
            content=context.message,
            type=context.message_type,
        )
        await d.messages.create(user_message)

        await self._enter(context, "persona_rendered", budget)
        persona = render_template(prompts.system_persona, parts.extractor.variables(context))
        plan = PromptPlan(persona=persona)
        self._add_system(plan, budget, persona, "persona")

        if not d.auth.is_default_user(context.user_id):
            await self._enter(context, "audience_extracted", budget)
            audience = await self._extract_component(
                parts, "SystemAudienceExtraction", prompts.audience_extraction_template, context, budget
            )
            if audience.ok:
                plan.audience = f"List of participants: {audience.text}"
                self._add_system(plan, budget, plan.audience, "audience")

        await self._enter(context, "intent_extracted", budget)
        intent = await self._extract_component(
            parts, "SystemIntentExtraction", prompts.intent_extraction_template, context, budget
        )
        if intent.ok:
            plan.intent = f"User intent: {intent.text}"
            self._add_system(plan, budget, plan.intent, "intent")

        await self._enter(context, "memories_retrieved", budget)
        user_cost = d.tokens.message_cost("user", user_message.to_formatted_string())
        memory_budget = int(max(0, budget.remaining - user_cost) * prompts.memories_response_context_weight)
        memory_text, citations = await parts.retriever.query_memories(
            intent.text or context.message,
            context.chat_id,
            memory_budget,
            memory_balance=context.memory_balance,
        )
        if memory_text.strip():
            plan.past_memories = memory_text
            self._add_system(plan, budget, memory_text, "memories")

        await self._enter(context, "history_filled", budget)
        history = await parts.history.build(context.chat_id, budget.remaining)
        for message in history.messages:
            plan.add(message["role"], message["content"])
        budget.consume(history.cost, "history")
        plan.chat_history = history.text
        context.token_usage_by_function[function_key("SystemMetaPrompt")] = d.tokens.messages_cost(plan.messages)

        await self._enter(context, "streaming", budget)
        bot_message = ChatMessage.create_bot_response(
            context.chat_id, "", plan.to_json(), list(citations.values())
        )
        await d.messages.create(bot_message)
        await self._notify_message(EVENT_RECEIVE_MESSAGE, context, bot_message)
        await self._stream(bot_message, plan, prompts, context)

        await self._enter(context, "finalized", budget)
        usage = dict(context.token_usage_by_function)
        usage[function_key("SystemCompletion")] = d.tokens.count(bot_message.content)
        bot_message.token_usage = usage
        await d.messages.upsert(bot_message)
        await self._notify_message(EVENT_RECEIVE_MESSAGE_UPDATE, context, bot_message)

        task = d.extraction.start_background(
            context.chat_id,
            lambda: self._extract_memories(parts.memory_extractor, context, bot_message.id),
        )
        logger.info(
            "turn_finalized",
            message_id=bot_message.id,
            response_chars=len(bot_message.content),
            token_usage=usage,
            history_messages=len(history.messages),
            citations=len(citations),
        )
        return TurnResult(
            bot_message=bot_message,
            plan=plan,
            context=context,
            citations=citations,
            extraction_task=task,
        )

    async def _stream(
        self,
        bot_message: ChatMessage,
        plan: PromptPlan,
        prompts: PromptsConfig,
        context: TurnContext,
    ) -> None:
        """Append deltas to *bot_message*, persisting every few deltas.

        If the turn is cancelled mid-stream nothing more is written, so the
        stored message keeps the last flushed content.
        """
        d = self.deps
        stream = d.provider.stream_chat(plan.messages, settings=self.response_settings(prompts), model=d.model)
        unflushed = 0
        try:
            async for event in stream:
                if event.get("type") == "text_delta":
                    bot_message.content += event.get("delta", "")
                    unflushed += 1
                    await self._notify_message(EVENT_RECEIVE_MESSAGE_UPDATE, context, bot_message)
                    if unflushed >= d.service.stream_persist_every:
                        await d.messages.upsert(bot_message)
                        unflushed = 0
                elif event.get("type") == "done":
                    response = event.get("response")
                    if response is not None and response.is_error:
                        raise ResponseCompletionError(response.content or "response completion failed")
        except ResponseCompletionError:
            raise
        except Exception as e:
            logger.error("response_stream_failed", message_id=bot_message.id, error=str(e))
            raise ResponseCompletionError(f"Response stream failed: {e}") from e
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _extract_memories(self, memory_extractor: MemoryExtractor, context: TurnContext, message_id: str) -> None:
        d = self.deps
        await d.broadcaster.notify(
            context.chat_id,
            bot_status_event(context.chat_id, "finalized", STATUS_EXTRACTING_MEMORY),
        )
        await memory_extractor.extract(context)

        extraction_usage = {
            key: context.token_usage_by_function[key]
            for key in _MEMORY_USAGE_KEYS
            if key in context.token_usage_by_function
        }
        if not extraction_usage:
            return
        stored = await d.messages.find_by_id(message_id)
        if stored is None:
            return
        stored.token_usage = {**(stored.token_usage or {}), **extraction_usage}
        await d.messages.upsert(stored)
        await self._notify_message(EVENT_RECEIVE_MESSAGE_UPDATE, context, stored)
