"""Budgeted chat history for prompts."""

from __future__ import annotations

from dataclasses import dataclass, field

from memochat.agent.tokens import TokenAccountant, TokenBudget
from memochat.config.schema import AuthConfig
from memochat.session.models import AuthorRole, ChatMessage, ChatMessageType
from memochat.session.stores import ChatMessageStore


@dataclass
class AllowedHistory:
    """The most recent messages that fit a token limit, oldest first."""

    messages: list[dict[str, str]] = field(default_factory=list)
    lines: list[str] = field(default_factory=list)
    cost: int = 0

    @property
    def text(self) -> str:
        return "Chat history:\n" + "\n".join(self.lines).strip()


class ChatHistoryBuilder:
    def __init__(
        self,
        messages: ChatMessageStore,
        tokens: TokenAccountant,
        auth: AuthConfig,
        window: int = 100,
    ):
        self.messages = messages
        self.tokens = tokens
        self.auth = auth
        self.window = window

    def _as_prompt_message(self, message: ChatMessage) -> dict[str, str]:
        if message.author_role == AuthorRole.BOT:
            # No timestamp or author preamble so the model answers in plain prose.
            return {"role": "assistant", "content": message.content.strip()}
        if self.auth.is_default_user(message.user_id):
            content = f"[{message.formatted_timestamp}] {message.content}"
        else:
            content = message.to_formatted_string()
        return {"role": "user", "content": content.strip()}

    async def build(self, chat_id: str, token_limit: int) -> AllowedHistory:
        """Walk stored messages newest first and keep each one while it still fits.

        Document messages are skipped. The first message that does not fit
        ends the walk, so the kept messages are always a contiguous recent
        suffix of the conversation.
        """
        newest_first = await self.messages.find_by_chat_id(chat_id, 0, self.window)
        budget = TokenBudget(token_limit)
        accepted: list[tuple[dict[str, str], str]] = []
        for message in newest_first:
            if message.type == ChatMessageType.DOCUMENT:
                continue
            prompt_message = self._as_prompt_message(message)
            message_cost = self.tokens.message_cost(prompt_message["role"], prompt_message["content"])
            if not budget.try_consume(message_cost):
                break
            accepted.append((prompt_message, message.to_formatted_string()))

        accepted.reverse()
        return AllowedHistory(
            messages=[m for m, _ in accepted],
            lines=[line for _, line in accepted],
            cost=budget.used,
        )
