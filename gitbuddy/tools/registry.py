"""Tool base class, registry and dispatcher."""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, ClassVar

from pydantic import BaseModel, ValidationError, model_validator

from gitbuddy.exceptions import ToolExecutionError, ToolNotFoundError
from gitbuddy.git import GitExecutor
from gitbuddy.llm import ToolCall, ToolDefinition
from gitbuddy.logging import get_logger
from gitbuddy.plan import ExecutionPlan

log = get_logger(__name__)

FeedbackPrompt = Callable[[str, list[str]], Awaitable[str]]


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    content: str = ""
    error: str | None = None
    data: Any = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self


@dataclass
class ToolContext:
    """Per-run state handed to every tool call.

    The plan is owned by the running agent loop; tools mutate it only
    through its own methods.
    """

    work_dir: Path
    git: GitExecutor | None = None
    plan: ExecutionPlan | None = None
    interactive: bool = False
    ask_user: FeedbackPrompt | None = None


class NoParams(BaseModel):
    """Parameter model for tools that take no arguments."""


class Tool(ABC):
    """Base class for all tools.

    ``params_model`` is the decode step: raw JSON arguments from the model are
    validated into it before ``execute`` runs, and the JSON schema shown to
    the model is derived from it.
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    params_model: ClassVar[type[BaseModel]] = NoParams
    timeout_seconds: float | None = 60.0

    @property
    def parameters(self) -> dict[str, Any]:
        schema = self.params_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def decode(self, arguments: str) -> BaseModel:
        """Parse raw JSON arguments.

        Raises:
            ValueError: malformed JSON, a non-object payload, or failed validation
        """
        text = (arguments or "").strip() or "{}"
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"malformed JSON arguments: {e.msg}") from e
        if not isinstance(data, dict):
            raise ValueError("arguments must be a JSON object")
        try:
            return self.params_model.model_validate(data)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise ValueError(details) from e

    @abstractmethod
    async def execute(self, params: Any, ctx: ToolContext) -> ToolResult:
        """Execute the tool.

        Args:
            params: Decoded ``params_model`` instance
            ctx: Run context

        Returns:
            ToolResult with success status and content
        """
        pass

    def get_definition(self) -> ToolDefinition:
        """Get the tool definition for LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def list_tools(self) -> list[str]:
        return list(self._tools)

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for LLM."""
        return [tool.get_definition() for tool in self._tools.values()]

    async def execute(self, tool: Tool, params: Any, ctx: ToolContext) -> ToolResult:
        """Run a decoded call, enforcing the tool's timeout.

        Raises:
            ToolExecutionError on timeout, failure or an invalid result
        """
        try:
            if tool.timeout_seconds is None:
                result = await tool.execute(params, ctx)
            else:
                result = await asyncio.wait_for(tool.execute(params, ctx), timeout=tool.timeout_seconds)
        except asyncio.TimeoutError:
            raise ToolExecutionError(tool.name, f"Execution timed out after {tool.timeout_seconds:g}s") from None
        except ToolExecutionError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=tool.name, error=str(e))
            raise ToolExecutionError(tool.name, str(e)) from e

        if not isinstance(result, ToolResult):
            raise ToolExecutionError(tool.name, "Tool returned invalid result payload")
        return result


@dataclass
class DispatchResult:
    """Outcome of one dispatched tool call."""

    call_id: str
    tool_name: str
    content: str
    is_terminal: bool = False
    error: str | None = None
    payload: Any = None


class ToolDispatcher:
    """Decode and run tool calls, turning every failure into a tool message.

    Nothing raised by a tool escapes ``dispatch``; the model sees an
    ``Error: ...`` result instead and the loop carries on. Terminal tools end
    the run only when their arguments decode and execution succeeds.
    """

    def __init__(self, registry: ToolRegistry, terminal_tools: tuple[str, ...] = ()):
        self.registry = registry
        self.terminal_tools = tuple(terminal_tools)

    async def dispatch(self, call: ToolCall, ctx: ToolContext) -> DispatchResult:
        if not self.registry.has_tool(call.name):
            error = f"unknown tool: {call.name}"
            log.warning("Unknown tool requested", tool=call.name, call_id=call.id)
            return DispatchResult(call.id, call.name, f"Error: {error}", error=error)

        tool = self.registry.get(call.name)
        try:
            params = tool.decode(call.arguments)
        except ValueError as e:
            error = f"invalid parameters: {e}"
            log.info("Tool arguments rejected", tool=call.name, call_id=call.id, error=str(e))
            return DispatchResult(call.id, call.name, f"Error: {error}", error=error)

        log.info("Executing tool", tool=call.name, call_id=call.id)
        try:
            result = await self.registry.execute(tool, params, ctx)
        except ToolExecutionError as e:
            return DispatchResult(call.id, call.name, f"Error: {e}", error=str(e))

        if not result.success:
            error = result.error or "Tool execution failed"
            log.info("Tool reported failure", tool=call.name, call_id=call.id, error=error)
            return DispatchResult(call.id, call.name, f"Error: {error}", error=error)

        log.debug("Tool executed", tool=call.name, call_id=call.id, chars=len(result.content))
        return DispatchResult(
            call_id=call.id,
            tool_name=call.name,
            content=result.content,
            is_terminal=call.name in self.terminal_tools,
            payload=result.data,
        )

    def select_terminal(self, results: list[DispatchResult]) -> DispatchResult | None:
        """Pick the winning terminal result of one turn.

        Precedence follows the order of ``terminal_tools``; among calls to the
        same tool the earliest wins.
        """
        for name in self.terminal_tools:
            for result in results:
                if result.is_terminal and result.tool_name == name:
                    return result
        return None
