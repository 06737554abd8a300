"""History compression for long agent runs.

``compress`` keeps the system message, the first user message (the original
task) and the last ``keep_recent`` messages verbatim, and replaces everything
in between with one synthetic summary message. The semantic strategy asks the
model for the summary; if that fails for any reason the heuristic digest is
used instead, which never touches the network and cannot fail.
"""

import json
from typing import Any

from gitbuddy.instructions import InstructionLoader, get_instruction_loader
from gitbuddy.llm import Message
from gitbuddy.llm.summarizer import Summarizer
from gitbuddy.logging import get_logger

log = get_logger(__name__)

SUMMARY_HEADER = "[Previous Session Summary]"
SUMMARY_FOOTER = "[Continuing from here...]"

_TOOL_RESULT_PROMPT_CHARS = 500
_MAX_TOOL_EXAMPLES = 3
_MAX_PATHS = 10
_MAX_LINES_PER_RESULT = 5
_MAX_FINDINGS = 8
_SHORT_RESULT_CHARS = 500
_FINDING_CHARS = 200

_PATH_ARGUMENTS = ("file_path", "directory", "path")
_ERROR_MARKERS = ("error", "Error", "failed", "Failed", ".go:", ".py:", ".js:", ".ts:")
_DEFINITION_PREFIXES = ("func ", "type ", "class ", "def ", "async def ")
_ANALYSIS_KEYWORDS = ("found", "discovered", "issue", "problem", "conclusion", "summary", "root cause")


def split_history(
    history: list[Message], keep_recent: int
) -> tuple[list[Message], list[Message], list[Message]] | None:
    """Split into (anchors, middle, recent), or None when nothing can be compressed."""
    keep_recent = max(0, keep_recent)
    if len(history) <= keep_recent + 2:
        return None
    cut = len(history) - keep_recent
    return history[:2], history[2:cut], history[cut:]


def _truncate(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _parse_arguments(arguments: str) -> dict[str, Any]:
    try:
        value = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def _describe_call(name: str, params: dict[str, Any]) -> str:
    description = name
    pattern = params.get("pattern")
    if isinstance(pattern, str) and pattern:
        description += f" (pattern: {pattern})"
    question = params.get("question")
    if isinstance(question, str) and question:
        description += f" (question: {_truncate(question, 50)})"
    for key in _PATH_ARGUMENTS:
        value = params.get(key)
        if isinstance(value, str) and value:
            description += f" ({key}: {value})"
            break
    return description


def _interesting_lines(content: str) -> list[str]:
    lines: list[str] = []
    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue
        if any(marker in line for marker in _ERROR_MARKERS) or line.startswith(_DEFINITION_PREFIXES):
            lines.append(line)
            if len(lines) >= _MAX_LINES_PER_RESULT:
                break
    return lines


def heuristic_summary(messages: list[Message]) -> str:
    """Deterministic digest of a slice of history.

    Collects per-tool call counts with a few example calls, the files and
    directories the tools touched, error/definition lines from long tool
    results, short tool results, and assistant messages that read like
    analysis.
    """
    tool_calls: dict[str, list[str]] = {}
    paths: list[str] = []
    findings: list[str] = []

    for msg in messages:
        if msg.role == "assistant":
            for call in msg.tool_calls:
                params = _parse_arguments(call.arguments)
                for key in _PATH_ARGUMENTS:
                    value = params.get(key)
                    if isinstance(value, str) and value and value not in paths:
                        paths.append(value)
                tool_calls.setdefault(call.name, []).append(_describe_call(call.name, params))
            if msg.content and any(keyword in msg.content for keyword in _ANALYSIS_KEYWORDS):
                findings.append(_truncate(msg.content, _FINDING_CHARS))
        elif msg.role == "tool":
            content = msg.content
            if len(content) > _SHORT_RESULT_CHARS:
                lines = _interesting_lines(content)
                if lines:
                    findings.append("\n  ".join(lines))
            elif content.strip():
                findings.append(_truncate(content, _FINDING_CHARS))

    out = [
        f"[Note: {len(messages)} earlier messages were compressed for context management]",
        "",
        "=== Summary of Earlier Investigation ===",
        "",
    ]

    if tool_calls:
        out.append("## Tools Used:")
        total = 0
        for name, calls in tool_calls.items():
            out.append(f"- {name}: {len(calls)} calls")
            total += len(calls)
            for example in calls[:_MAX_TOOL_EXAMPLES]:
                out.append(f"  • {example}")
            if len(calls) > _MAX_TOOL_EXAMPLES:
                out.append(f"  ... and {len(calls) - _MAX_TOOL_EXAMPLES} more")
        out.append("")
        out.append(f"Total tool calls: {total}")
        out.append("")

    if paths:
        out.append("## Files/Directories Investigated:")
        out.extend(f"- {path}" for path in paths[:_MAX_PATHS])
        if len(paths) > _MAX_PATHS:
            out.append(f"... and {len(paths) - _MAX_PATHS} more")
        out.append("")

    if findings:
        out.append("## Key Findings & Analysis:")
        for i, finding in enumerate(findings[:_MAX_FINDINGS], start=1):
            out.append(f"{i}. {finding}")
            out.append("")
        if len(findings) > _MAX_FINDINGS:
            out.append(f"... and {len(findings) - _MAX_FINDINGS} more findings")

    out.append("=== End of Summary ===")
    out.append("")
    out.append("Continuing investigation with recent context...")
    return "\n".join(out)


def heuristic_compress(history: list[Message], keep_recent: int) -> tuple[list[Message], str]:
    """Compress without calling the model."""
    parts = split_history(history, keep_recent)
    if parts is None:
        return list(history), ""
    anchors, middle, recent = parts
    summary = heuristic_summary(middle)
    return [*anchors, Message(role="user", content=summary), *recent], summary


def format_history_for_summary(messages: list[Message]) -> str:
    lines: list[str] = []
    for msg in messages:
        if msg.role == "user":
            lines.append(f"USER: {msg.content}")
        elif msg.role == "assistant":
            lines.append(f"ASSISTANT: {msg.content}")
            if msg.tool_calls:
                lines.append("  Tool calls: " + ", ".join(call.name for call in msg.tool_calls))
        elif msg.role == "tool":
            content = msg.content
            if len(content) > _TOOL_RESULT_PROMPT_CHARS:
                content = content[:_TOOL_RESULT_PROMPT_CHARS] + "... (truncated)"
            lines.append(f"TOOL RESULT: {content}")
    return "\n".join(lines)


class HistoryCompressor:
    """Shrink history, preferring a model-written summary."""

    def __init__(
        self,
        summarizer: Summarizer | None = None,
        instructions: InstructionLoader | None = None,
    ):
        self.summarizer = summarizer
        self.instructions = instructions or get_instruction_loader()

    async def _semantic_summary(self, middle: list[Message]) -> str:
        prompt = self.instructions.render(
            "compression_summary_prompt.md",
            history=format_history_for_summary(middle),
        )
        summary = (await self.summarizer.summarize(prompt)).strip()
        if not summary:
            raise ValueError("empty summary generated")
        return summary

    async def compress(self, history: list[Message], keep_recent: int) -> tuple[list[Message], str]:
        """Compress ``history`` keeping anchors and the last ``keep_recent`` messages.

        Returns:
            (new_history, summary_text). The summary is empty when the
            history was already short enough.
        """
        parts = split_history(history, keep_recent)
        if parts is None:
            return list(history), ""
        anchors, middle, recent = parts

        if self.summarizer is not None:
            try:
                summary = await self._semantic_summary(middle)
                content = f"{SUMMARY_HEADER}\n{summary}\n\n{SUMMARY_FOOTER}"
                log.debug(
                    "Compressed history with model summary",
                    compressed=len(middle),
                    kept=len(recent),
                )
                return [*anchors, Message(role="user", content=content), *recent], summary
            except Exception as e:
                log.warning("Compression summarization failed, using fallback", error=str(e))

        new_history, summary = heuristic_compress(history, keep_recent)
        log.debug(
            "Compressed history heuristically",
            before=len(history),
            after=len(new_history),
        )
        return new_history, summary
