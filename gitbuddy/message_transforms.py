"""Pure transforms applied to history before it is sent to the model.

Every transform takes a message list and returns a new one. Inputs are never
mutated, so the canonical history kept by the agent loop stays untouched and
each transform can be tested on its own.
"""

from dataclasses import replace
from typing import Callable

from gitbuddy.llm import Message
from gitbuddy.plan import ExecutionPlan, TaskStatus

Transform = Callable[[list[Message]], list[Message]]


def compose(*transforms: Transform) -> Transform:
    """Chain transforms left to right."""

    def run(messages: list[Message]) -> list[Message]:
        result = list(messages)
        for transform in transforms:
            result = transform(result)
        return result

    return run


def add_context_to_system_message(context: str | Callable[[list[Message]], str]) -> Transform:
    """Append text to the first system message.

    ``context`` may be a string or a function of the message list. Histories
    without a leading system message are returned unchanged.
    """

    def run(messages: list[Message]) -> list[Message]:
        if not messages or messages[0].role != "system":
            return list(messages)
        text = context(messages) if callable(context) else context
        if not text:
            return list(messages)
        system = messages[0]
        return [replace(system, content=f"{system.content}\n\n{text}"), *messages[1:]]

    return run


def progress_context(plan: ExecutionPlan | None, iteration: int, max_iterations: int) -> Transform:
    """Tell the model how far along the run is."""

    def render(messages: list[Message]) -> str:
        lines = [
            "## Current Progress",
            "",
            f"- Iteration: {iteration} / {max_iterations}",
            f"- Messages in history: {len(messages)}",
        ]
        if plan is not None:
            lines.append(f"- Phase: {plan.current_phase.value}")
            if plan.tasks:
                counts = plan.counts()
                lines.append(
                    f"- Tasks: {counts[TaskStatus.COMPLETED]} completed, "
                    f"{counts[TaskStatus.IN_PROGRESS]} in progress, "
                    f"{counts[TaskStatus.PENDING]} pending"
                )
                active = plan.in_progress()
                if active:
                    lines.append("")
                    lines.append("Current task(s):")
                    lines.extend(f"  - {task.description}" for task in active)
        return "\n".join(lines)

    return add_context_to_system_message(render)


def truncate_tool_results(max_chars: int = 5000) -> Transform:
    """Cut tool results longer than ``max_chars``."""

    def run(messages: list[Message]) -> list[Message]:
        result = []
        for msg in messages:
            if msg.role == "tool" and len(msg.content) > max_chars:
                remaining = len(msg.content) - max_chars
                content = (
                    f"{msg.content[:max_chars]}\n\n"
                    f"[... {remaining} more characters truncated for brevity ...]"
                )
                result.append(replace(msg, content=content))
            else:
                result.append(msg)
        return result

    return run


def _dedupe_key(msg: Message) -> tuple:
    return (
        msg.role,
        msg.content,
        msg.tool_call_id,
        tuple((call.id, call.name) for call in msg.tool_calls),
    )


def drop_consecutive_duplicates() -> Transform:
    """Drop a message identical to the one right before it."""

    def run(messages: list[Message]) -> list[Message]:
        result: list[Message] = []
        for msg in messages:
            if result and _dedupe_key(result[-1]) == _dedupe_key(msg):
                continue
            result.append(msg)
        return result

    return run


def repair_orphan_tool_messages() -> Transform:
    """Keep tool results paired with the assistant call that produced them.

    A tool message whose call id was not issued by a preceding assistant
    message (for example after compression summarized that assistant turn
    away) is turned into an assistant ``[tool_context:<name>]`` message.
    Assistant tool calls that never received a result are dropped.
    """

    def run(messages: list[Message]) -> list[Message]:
        normalized: list[Message] = []
        pending_ids: set[str] = set()
        pending_idx: int | None = None

        def clear_pending() -> None:
            nonlocal pending_ids, pending_idx
            if pending_idx is not None:
                assistant = normalized[pending_idx]
                answered = [call for call in assistant.tool_calls if call.id not in pending_ids]
                normalized[pending_idx] = replace(assistant, tool_calls=answered)
            pending_ids = set()
            pending_idx = None

        for msg in messages:
            if msg.role == "assistant":
                if pending_ids:
                    clear_pending()
                normalized.append(msg)
                pending_ids = {call.id for call in msg.tool_calls if call.id}
                pending_idx = len(normalized) - 1 if pending_ids else None
                continue

            if msg.role == "tool":
                if msg.tool_call_id and msg.tool_call_id in pending_ids:
                    normalized.append(msg)
                    pending_ids.discard(msg.tool_call_id)
                    if not pending_ids:
                        pending_idx = None
                    continue
                if pending_ids:
                    clear_pending()
                name = msg.tool_name or "tool"
                normalized.append(Message(
                    role="assistant",
                    content=f"[tool_context:{name}] {msg.content}".strip(),
                ))
                continue

            if pending_ids:
                clear_pending()
            normalized.append(msg)

        if pending_ids:
            clear_pending()
        return normalized

    return run
