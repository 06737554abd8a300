"""Reassembly of streamed model output into a complete assistant message."""

from dataclasses import dataclass
from typing import AsyncIterator, Callable

from gitbuddy.llm import Message, StreamChunk, TokenUsage, ToolCall, ToolCallFragment


@dataclass
class _PendingCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class StreamAggregator:
    """Merge stream chunks into one assistant message.

    Tool-call fragments are merged by their ``index``, not by arrival order.
    A non-empty ``id`` or ``name`` is recorded and kept; empty fields never
    erase what is already there; argument chunks for one index always
    concatenate. Usage takes the last non-zero value seen for each counter,
    since providers report cumulative totals, usually on the final chunk.
    """

    def __init__(self) -> None:
        self._content: list[str] = []
        self._calls: list[_PendingCall | None] = []
        self._usage = TokenUsage()

    def feed(self, chunk: StreamChunk) -> None:
        if chunk.content:
            self._content.append(chunk.content)
        for fragment in chunk.tool_calls:
            self._merge(fragment)
        if chunk.usage is not None:
            if chunk.usage.prompt_tokens:
                self._usage.prompt_tokens = chunk.usage.prompt_tokens
            if chunk.usage.completion_tokens:
                self._usage.completion_tokens = chunk.usage.completion_tokens
            if chunk.usage.total_tokens:
                self._usage.total_tokens = chunk.usage.total_tokens

    def _merge(self, fragment: ToolCallFragment) -> None:
        index = fragment.index
        if index < 0:
            return
        while len(self._calls) <= index:
            self._calls.append(None)
        pending = self._calls[index]
        if pending is None:
            pending = _PendingCall()
            self._calls[index] = pending
        if fragment.id:
            pending.id = fragment.id
        if fragment.name:
            pending.name = fragment.name
        if fragment.arguments:
            pending.arguments += fragment.arguments

    @property
    def usage(self) -> TokenUsage:
        usage = TokenUsage(
            prompt_tokens=self._usage.prompt_tokens,
            completion_tokens=self._usage.completion_tokens,
            total_tokens=self._usage.total_tokens,
        )
        if not usage.total_tokens:
            usage.total_tokens = usage.prompt_tokens + usage.completion_tokens
        return usage

    def tool_calls(self) -> list[ToolCall]:
        """Completed calls in index order. Slots that never got a name are dropped."""
        calls: list[ToolCall] = []
        for index, pending in enumerate(self._calls):
            if pending is None or not pending.name:
                continue
            calls.append(ToolCall(
                id=pending.id or f"call_{index}",
                name=pending.name,
                arguments=pending.arguments,
            ))
        return calls

    def message(self) -> Message:
        return Message(
            role="assistant",
            content="".join(self._content),
            tool_calls=self.tool_calls(),
        )

    def result(self) -> tuple[Message, TokenUsage]:
        return self.message(), self.usage


async def aggregate_stream(
    stream: AsyncIterator[StreamChunk],
    on_content: Callable[[str], None] | None = None,
) -> tuple[Message, TokenUsage]:
    """Consume a whole stream.

    Errors raised by the stream propagate and the partial result is dropped.

    Args:
        stream: Chunk iterator from ``LLMProvider.stream``
        on_content: Optional callback receiving each content fragment

    Returns:
        The assistant message and the call's token usage
    """
    aggregator = StreamAggregator()
    async for chunk in stream:
        aggregator.feed(chunk)
        if on_content is not None and chunk.content:
            on_content(chunk.content)
    return aggregator.result()
