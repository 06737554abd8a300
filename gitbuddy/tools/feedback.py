"""Ask the user to choose between options during a run."""

import json

from pydantic import BaseModel, Field

from gitbuddy.logging import get_logger
from gitbuddy.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)


class RequestFeedbackParams(BaseModel):
    question: str = Field(min_length=1, description="Question to ask the user")
    options: list[str] = Field(min_length=2, description="Choices to offer, at least two")
    context: str = Field(default="", description="Background the user needs to answer")


class RequestFeedbackTool(Tool):
    """Interactive multiple-choice question.

    Waits for the user without a timeout. In non-interactive runs the call
    fails so the model continues on its own judgment.
    """

    name = "request_feedback"
    description = (
        "Ask the user to pick one of several options when the investigation cannot "
        "proceed without a decision. Provide a clear question and at least two options."
    )
    params_model = RequestFeedbackParams
    timeout_seconds = None

    async def execute(self, params: RequestFeedbackParams, ctx: ToolContext) -> ToolResult:
        if not ctx.interactive or ctx.ask_user is None:
            return ToolResult(
                success=False,
                error="User feedback is not available in non-interactive mode. "
                "Proceed with your best judgment.",
            )

        question = params.question.strip()
        if params.context.strip():
            question = f"{params.context.strip()}\n\n{question}"

        answer = (await ctx.ask_user(question, params.options)).strip()
        index = self._match(answer, params.options)
        if index is None:
            return ToolResult(success=False, error=f"Answer does not match any option: {answer!r}")

        log.info("User feedback received", selected=params.options[index])
        payload = {
            "question": params.question,
            "selected_option": params.options[index],
            "selected_index": index,
        }
        return ToolResult(success=True, content=json.dumps(payload, ensure_ascii=False))

    @staticmethod
    def _match(answer: str, options: list[str]) -> int | None:
        """Accept a 1-based number or the option text."""
        if answer.isdigit():
            index = int(answer) - 1
            return index if 0 <= index < len(options) else None
        lowered = answer.lower()
        for i, option in enumerate(options):
            if option.strip().lower() == lowered:
                return i
        return None
