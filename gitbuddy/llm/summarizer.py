"""Summarization capability used by history compression."""

from typing import Protocol

from gitbuddy.llm import LLMProvider, Message, TokenUsage
from gitbuddy.stream import aggregate_stream


class Summarizer(Protocol):
    async def summarize(self, prompt: str) -> str: ...


class ProviderSummarizer:
    """Adapter exposing ``summarize`` over a streaming provider.

    Tokens spent on summaries accumulate until ``take_usage`` hands them to
    the session total.
    """

    def __init__(self, provider: LLMProvider, system_prompt: str = ""):
        self.provider = provider
        self.system_prompt = system_prompt
        self.usage = TokenUsage()

    async def summarize(self, prompt: str) -> str:
        messages: list[Message] = []
        if self.system_prompt:
            messages.append(Message(role="system", content=self.system_prompt))
        messages.append(Message(role="user", content=prompt))
        message, usage = await aggregate_stream(self.provider.stream(messages))
        self.usage.add(usage)
        return message.content.strip()

    def take_usage(self) -> TokenUsage:
        """Return the usage gathered since the last call and reset it."""
        usage, self.usage = self.usage, TokenUsage()
        return usage
