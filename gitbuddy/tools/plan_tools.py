"""Tools that manage the run's execution plan."""

from typing import Literal

from pydantic import BaseModel, Field

from gitbuddy.logging import get_logger
from gitbuddy.plan import PHASE_DESCRIPTIONS, ExecutionPlan, Phase, TaskStatus
from gitbuddy.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)


def _require_plan(ctx: ToolContext) -> ExecutionPlan:
    if ctx.plan is None:
        raise ValueError("no execution plan is active in this session")
    return ctx.plan


def _changes_report(headline: str, changes: list[str], plan: ExecutionPlan) -> str:
    lines = [headline, "", "Changes:"]
    lines.extend(f"- {change}" for change in changes)
    lines.append("")
    lines.append(plan.summary())
    return "\n".join(lines)


class UpdateExecutionPlanParams(BaseModel):
    action: Literal["add", "update", "remove", "show"] = Field(description="Operation to perform")
    task_id: str = Field(default="", description="Task identifier (add, update, remove)")
    description: str = Field(default="", description="Task description (add)")
    status: TaskStatus | None = Field(default=None, description="New status (update)")


class UpdateExecutionPlanTool(Tool):
    """Add, update, remove or show plan tasks."""

    name = "update_execution_plan"
    description = (
        "Manage the investigation plan. 'add' creates a task (task_id, description), "
        "'update' changes a task's status (task_id, status: pending, in_progress, "
        "completed or skipped), 'remove' deletes a task, 'show' prints the plan."
    )
    params_model = UpdateExecutionPlanParams
    timeout_seconds = 10.0

    async def execute(self, params: UpdateExecutionPlanParams, ctx: ToolContext) -> ToolResult:
        try:
            plan = _require_plan(ctx)
            if params.action == "add":
                return self._add(plan, params)
            if params.action == "update":
                return self._update(plan, params)
            if params.action == "remove":
                return self._remove(plan, params)
            return ToolResult(success=True, content=plan.summary())
        except ValueError as e:
            return ToolResult(success=False, error=str(e))

    # ------------------------------------------------------------------

    @staticmethod
    def _add(plan: ExecutionPlan, params: UpdateExecutionPlanParams) -> ToolResult:
        if not params.task_id or not params.description:
            return ToolResult(success=False, error="task_id and description are required for add")
        before = plan.clone()
        plan.add_task(params.task_id, params.description)
        return ToolResult(
            success=True,
            content=_changes_report("Task added.", plan.diff(before), plan),
        )

    @staticmethod
    def _update(plan: ExecutionPlan, params: UpdateExecutionPlanParams) -> ToolResult:
        if not params.task_id or params.status is None:
            return ToolResult(success=False, error="task_id and status are required for update")
        before = plan.clone()
        if not plan.update_task(params.task_id, params.status):
            return ToolResult(
                success=True,
                content=f"Task '{params.task_id}' not found or status unchanged.\n\n{plan.summary()}",
            )
        return ToolResult(
            success=True,
            content=_changes_report("Task status updated.", plan.diff(before), plan),
        )

    @staticmethod
    def _remove(plan: ExecutionPlan, params: UpdateExecutionPlanParams) -> ToolResult:
        if not params.task_id:
            return ToolResult(success=False, error="task_id is required for remove")
        before = plan.clone()
        if not plan.remove_task(params.task_id):
            return ToolResult(
                success=True,
                content=f"Task '{params.task_id}' not found.\n\n{plan.summary()}",
            )
        return ToolResult(
            success=True,
            content=_changes_report("Task removed.", plan.diff(before), plan),
        )


class TransitionPhaseParams(BaseModel):
    phase: Phase = Field(description="Phase to move to")
    reason: str = Field(min_length=1, description="Why the investigation is moving to this phase")


class TransitionPhaseTool(Tool):
    """Move the investigation to another phase."""

    name = "transition_phase"
    description = (
        "Move the investigation to a new phase: problem_definition, impact_analysis, "
        "root_cause_hypothesis, investigation_plan, execution, verification or reporting."
    )
    params_model = TransitionPhaseParams
    timeout_seconds = 10.0

    async def execute(self, params: TransitionPhaseParams, ctx: ToolContext) -> ToolResult:
        try:
            plan = _require_plan(ctx)
        except ValueError as e:
            return ToolResult(success=False, error=str(e))

        previous = plan.current_phase
        if not plan.transition(params.phase, params.reason.strip()):
            return ToolResult(
                success=True,
                content=f"Already in phase '{previous.value}'. {plan.phase_description()}",
            )
        log.info("Phase transition", from_phase=previous.value, to_phase=params.phase.value)
        content = (
            "✨ Phase Transition\n\n"
            f"From: {previous.value}\n"
            f"To: {params.phase.value}\n"
            f"Reason: {params.reason.strip()}\n\n"
            f"{PHASE_DESCRIPTIONS[params.phase]}"
        )
        return ToolResult(success=True, content=content)
