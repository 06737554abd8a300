import asyncio
from pathlib import Path

import pytest
from pydantic import BaseModel, Field

from gitbuddy.exceptions import ToolNotFoundError
from gitbuddy.llm import ToolCall
from gitbuddy.tools.registry import (
    DispatchResult,
    Tool,
    ToolContext,
    ToolDispatcher,
    ToolRegistry,
    ToolResult,
)


class CountParams(BaseModel):
    count: int = Field(ge=1, description="How many")


class CountTool(Tool):
    name = "count"
    description = "Count things"
    params_model = CountParams

    async def execute(self, params: CountParams, ctx: ToolContext) -> ToolResult:
        return ToolResult(success=True, content=f"counted {params.count}", data=params.count)


class BrokenTool(Tool):
    name = "broken"
    description = "Always raises"

    async def execute(self, params, ctx: ToolContext) -> ToolResult:
        raise RuntimeError("disk on fire")


class SlowTool(Tool):
    name = "slow"
    description = "Never finishes in time"
    timeout_seconds = 0.01

    async def execute(self, params, ctx: ToolContext) -> ToolResult:
        await asyncio.sleep(1)
        return ToolResult(success=True, content="late")


class WrongResultTool(Tool):
    name = "wrong"
    description = "Returns a string"

    async def execute(self, params, ctx: ToolContext):
        return "not a result"


class FailingTool(Tool):
    name = "failing"
    description = "Reports failure"

    async def execute(self, params, ctx: ToolContext) -> ToolResult:
        return ToolResult(success=False, content="nothing to do")


def _ctx(tmp_path: Path) -> ToolContext:
    return ToolContext(work_dir=tmp_path)


def _dispatcher(*terminal: str) -> ToolDispatcher:
    registry = ToolRegistry([CountTool(), BrokenTool(), SlowTool(), WrongResultTool(), FailingTool()])
    return ToolDispatcher(registry, terminal)


def test_tool_result_populates_error_from_content_on_failure() -> None:
    result = ToolResult(success=False, content="command failed with exit code 1")

    assert result.error == "command failed with exit code 1"


def test_tool_result_keeps_explicit_error_on_failure() -> None:
    result = ToolResult(success=False, content="stderr output", error="explicit error")

    assert result.error == "explicit error"


def test_registry_lookup_and_definitions():
    registry = ToolRegistry([CountTool()])

    definition = registry.get_definitions()[0]

    assert definition.name == "count"
    assert definition.parameters["properties"]["count"]["minimum"] == 1
    assert "title" not in definition.parameters
    with pytest.raises(ToolNotFoundError):
        registry.get("missing")
    assert registry.list_tools() == ["count"]


def test_no_params_schema_has_empty_properties():
    assert BrokenTool().parameters["properties"] == {}


@pytest.mark.asyncio
async def test_successful_dispatch(tmp_path: Path):
    result = await _dispatcher("count").dispatch(ToolCall("c1", "count", '{"count": 3}'), _ctx(tmp_path))

    assert result == DispatchResult("c1", "count", "counted 3", is_terminal=True, payload=3)


@pytest.mark.asyncio
async def test_empty_arguments_decode_as_empty_object(tmp_path: Path):
    result = await _dispatcher().dispatch(ToolCall("c1", "broken", ""), _ctx(tmp_path))

    assert result.content == "Error: Tool 'broken' failed: disk on fire"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("arguments", "expected"),
    [
        ("{bad", "Error: invalid parameters: malformed JSON arguments"),
        ("[1, 2]", "Error: invalid parameters: arguments must be a JSON object"),
        ('{"count": 0}', "Error: invalid parameters: count:"),
        ("{}", "Error: invalid parameters: count: Field required"),
    ],
)
async def test_decode_failures_become_error_results(tmp_path: Path, arguments, expected):
    result = await _dispatcher("count").dispatch(ToolCall("c1", "count", arguments), _ctx(tmp_path))

    assert result.content.startswith(expected)
    assert result.is_terminal is False
    assert result.error


@pytest.mark.asyncio
async def test_unknown_tool(tmp_path: Path):
    result = await _dispatcher().dispatch(ToolCall("c9", "nope", "{}"), _ctx(tmp_path))

    assert result.content == "Error: unknown tool: nope"
    assert result.call_id == "c9"


@pytest.mark.asyncio
async def test_timeout_and_bad_results_are_contained(tmp_path: Path):
    dispatcher = _dispatcher()

    slow = await dispatcher.dispatch(ToolCall("a", "slow", "{}"), _ctx(tmp_path))
    wrong = await dispatcher.dispatch(ToolCall("b", "wrong", "{}"), _ctx(tmp_path))
    failing = await dispatcher.dispatch(ToolCall("c", "failing", "{}"), _ctx(tmp_path))

    assert slow.content == "Error: Tool 'slow' failed: Execution timed out after 0.01s"
    assert wrong.content == "Error: Tool 'wrong' failed: Tool returned invalid result payload"
    assert failing.content == "Error: nothing to do"


@pytest.mark.asyncio
async def test_failed_terminal_call_is_not_terminal(tmp_path: Path):
    result = await _dispatcher("failing").dispatch(ToolCall("c", "failing", "{}"), _ctx(tmp_path))

    assert result.is_terminal is False


def test_select_terminal_follows_declared_order():
    dispatcher = ToolDispatcher(ToolRegistry(), ("first", "second"))
    results = [
        DispatchResult("1", "other", "x"),
        DispatchResult("2", "second", "x", is_terminal=True, payload="second"),
        DispatchResult("3", "first", "x", is_terminal=True, payload="first-a"),
        DispatchResult("4", "first", "x", is_terminal=True, payload="first-b"),
    ]

    assert dispatcher.select_terminal(results).payload == "first-a"
    assert dispatcher.select_terminal(results[:2]).payload == "second"
    assert dispatcher.select_terminal(results[:1]) is None
