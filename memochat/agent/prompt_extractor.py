"""Auxiliary completions that turn chat history into prompt components."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Mapping

from memochat.agent.chat_history import ChatHistoryBuilder
from memochat.agent.templates import render_template
from memochat.agent.tokens import TokenAccountant, context_variable_name, function_key
from memochat.agent.turn_context import ExtractionResult, TurnContext
from memochat.config.schema import PromptsConfig
from memochat.logging import get_logger
from memochat.providers.base import CompletionSettings, LLMProvider

logger = get_logger(__name__)

# The extraction prompts end mid-transcript; stop before the model writes the bot's turn.
_EXTRACTION_STOP_SEQUENCES = ["] bot:"]


def format_current_date(now: datetime) -> str:
    return now.strftime("%A, %B %d, %Y")


class PromptComponentExtractor:
    """
    Runs one non-streaming completion over a template plus trimmed chat history.

    Failures never escape: the caller gets an empty ``ExtractionResult`` and
    the turn carries on without that component.
    """

    def __init__(
        self,
        provider: LLMProvider,
        prompts: PromptsConfig,
        tokens: TokenAccountant,
        history: ChatHistoryBuilder,
        *,
        model: str | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.provider = provider
        self.prompts = prompts
        self.tokens = tokens
        self.history = history
        self.model = model
        self._now = now

    def completion_settings(self) -> CompletionSettings:
        p = self.prompts
        return CompletionSettings(
            max_tokens=p.response_token_limit,
            temperature=p.intent_temperature,
            top_p=p.intent_top_p,
            presence_penalty=p.intent_presence_penalty,
            frequency_penalty=p.intent_frequency_penalty,
            stop=list(_EXTRACTION_STOP_SEQUENCES),
        )

    def variables(self, context: TurnContext, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        variables = {
            **context.variables,
            "chat_id": context.chat_id,
            "user_name": context.user_name,
            "message": context.message,
            "knowledge_cutoff": context.knowledge_cutoff or self.prompts.knowledge_cutoff_date,
            "current_date": format_current_date(self._now()),
        }
        if extra:
            variables.update(extra)
        return variables

    def template_overhead(
        self,
        template: str,
        context: TurnContext,
        extra: Mapping[str, str] | None = None,
    ) -> int:
        """Tokens the template costs before any chat history is inserted."""
        rendered = render_template(template, {**self.variables(context, extra), "chat_history": ""})
        return self.tokens.count(rendered)

    async def extract(
        self,
        function_name: str,
        template: str,
        context: TurnContext,
        token_limit: int,
        *,
        extra_variables: Mapping[str, str] | None = None,
    ) -> ExtractionResult:
        """Render *template* with at most *token_limit* tokens of history and complete it.

        The provider-reported usage is recorded on *context* under the usage
        key of *function_name*.
        """
        try:
            history = await self.history.build(context.chat_id, max(0, token_limit))
            prompt = render_template(
                template,
                {**self.variables(context, extra_variables), "chat_history": history.text},
            )
            response = await self.provider.chat(
                [{"role": "system", "content": prompt}],
                settings=self.completion_settings(),
                model=self.model,
            )
        except Exception as e:
            logger.warning(
                "prompt_extraction_failed",
                function=function_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ExtractionResult()

        if response.is_error:
            logger.warning("prompt_extraction_failed", function=function_name, error=response.content)
            return ExtractionResult()

        usage = response.total_tokens
        if usage is None:
            logger.error("token_usage_unknown", function=function_name)
        else:
            key = function_key(function_name)
            context.record_usage(key, usage)
            context.variables[context_variable_name(function_name)] = str(context.token_usage_by_function[key])

        text = (response.content or "").strip()
        if not text:
            logger.warning("prompt_extraction_empty", function=function_name)
            return ExtractionResult(token_usage=usage)
        return ExtractionResult(text=text, token_usage=usage)
