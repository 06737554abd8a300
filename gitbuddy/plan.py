"""Execution plan for debugging sessions.

A plan is an explicit task list plus a fixed, ordered phase state machine.
It is owned by a single agent run and only changes through its own methods;
tools receive it through their ``ToolContext``. ``clone`` and ``diff`` exist
for display and never feed back into control flow.
"""

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Phases and statuses
# ---------------------------------------------------------------------------


class Phase(str, Enum):
    """Debugging phases, in the order they are normally visited."""

    PROBLEM_DEFINITION = "problem_definition"
    IMPACT_ANALYSIS = "impact_analysis"
    ROOT_CAUSE_HYPOTHESIS = "root_cause_hypothesis"
    INVESTIGATION_PLAN = "investigation_plan"
    EXECUTION = "execution"
    VERIFICATION = "verification"
    REPORTING = "reporting"


PHASE_DESCRIPTIONS = {
    Phase.PROBLEM_DEFINITION: "🔍 Problem definition - clarify symptoms, impact and background",
    Phase.IMPACT_ANALYSIS: "📊 Impact analysis - determine scope and severity",
    Phase.ROOT_CAUSE_HYPOTHESIS: "💡 Root cause hypothesis - propose likely causes from the evidence",
    Phase.INVESTIGATION_PLAN: "📋 Investigation plan - lay out concrete checks",
    Phase.EXECUTION: "🔧 Execution - run the plan and collect evidence",
    Phase.VERIFICATION: "✅ Verification - confirm the root cause and the fix",
    Phase.REPORTING: "📝 Reporting - organize findings into a report",
}


class TaskStatus(str, Enum):
    """Supported plan task states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


_FINISHED_STATUSES = {TaskStatus.COMPLETED, TaskStatus.SKIPPED}

_STATUS_ICONS = {
    TaskStatus.PENDING: "⏳",
    TaskStatus.IN_PROGRESS: "🔄",
    TaskStatus.COMPLETED: "✅",
    TaskStatus.SKIPPED: "⏭️",
}


def parse_phase(value: str | Phase) -> Phase:
    """Resolve a phase name; raises ValueError listing the valid names."""
    if isinstance(value, Phase):
        return value
    try:
        return Phase(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(phase.value for phase in Phase)
        raise ValueError(f"invalid phase '{value}', must be one of: {valid}") from None


def parse_status(value: str | TaskStatus) -> TaskStatus:
    """Resolve a task status name; raises ValueError listing the valid names."""
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(status.value for status in TaskStatus)
        raise ValueError(f"invalid status '{value}', must be one of: {valid}") from None


# ---------------------------------------------------------------------------
# Plan records
# ---------------------------------------------------------------------------


@dataclass
class PlanTask:
    """Single task in the plan."""

    id: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: str = field(default_factory=_utcnow_iso)
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanTask":
        return cls(
            id=str(data["id"]),
            description=str(data.get("description", "")),
            status=parse_status(data.get("status", TaskStatus.PENDING.value)),
            created_at=str(data.get("created_at") or _utcnow_iso()),
            completed_at=data.get("completed_at"),
        )


@dataclass
class PhaseTransition:
    """One recorded phase change."""

    from_phase: Phase
    to_phase: Phase
    reason: str
    timestamp: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_phase.value,
            "to": self.to_phase.value,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PhaseTransition":
        return cls(
            from_phase=parse_phase(data["from"]),
            to_phase=parse_phase(data["to"]),
            reason=str(data.get("reason", "")),
            timestamp=str(data.get("timestamp") or _utcnow_iso()),
        )


# ---------------------------------------------------------------------------
# ExecutionPlan
# ---------------------------------------------------------------------------


@dataclass
class ExecutionPlan:
    """Task list and phase state for one debugging run."""

    tasks: list[PlanTask] = field(default_factory=list)
    current_phase: Phase = Phase.PROBLEM_DEFINITION
    phase_history: list[PhaseTransition] = field(default_factory=list)
    last_updated: str = field(default_factory=_utcnow_iso)

    def get_task(self, task_id: str) -> PlanTask | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def add_task(self, task_id: str, description: str) -> PlanTask:
        """Append a pending task. Task ids are unique within a plan."""
        if not task_id:
            raise ValueError("task id is required")
        if self.get_task(task_id) is not None:
            raise ValueError(f"task '{task_id}' already exists")
        task = PlanTask(id=task_id, description=description)
        self.tasks.append(task)
        self.last_updated = _utcnow_iso()
        return task

    def update_task(self, task_id: str, status: str | TaskStatus) -> bool:
        """Set a task's status.

        Returns:
            True only if the task exists and its status actually changed.
            A same-status update leaves the task untouched.
        """
        new_status = parse_status(status)
        task = self.get_task(task_id)
        if task is None or task.status == new_status:
            return False
        task.status = new_status
        if new_status in _FINISHED_STATUSES:
            task.completed_at = _utcnow_iso()
        self.last_updated = _utcnow_iso()
        return True

    def remove_task(self, task_id: str) -> bool:
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                del self.tasks[i]
                self.last_updated = _utcnow_iso()
                return True
        return False

    def transition(self, phase: str | Phase, reason: str) -> bool:
        """Move to ``phase``. Moving to the current phase records nothing."""
        target = parse_phase(phase)
        if target == self.current_phase:
            return False
        now = _utcnow_iso()
        self.phase_history.append(PhaseTransition(
            from_phase=self.current_phase,
            to_phase=target,
            reason=reason,
            timestamp=now,
        ))
        self.current_phase = target
        self.last_updated = now
        return True

    def phase_description(self) -> str:
        return PHASE_DESCRIPTIONS.get(self.current_phase, self.current_phase.value)

    def counts(self) -> dict[TaskStatus, int]:
        result = {status: 0 for status in TaskStatus}
        for task in self.tasks:
            result[task.status] += 1
        return result

    def in_progress(self) -> list[PlanTask]:
        return [task for task in self.tasks if task.status == TaskStatus.IN_PROGRESS]

    def summary(self) -> str:
        """Human-readable phase, task list and progress line."""
        lines = [self.phase_description(), ""]
        if not self.tasks:
            lines.append("No tasks defined yet.")
            return "\n".join(lines)

        lines.append("📋 Current Tasks:")
        for i, task in enumerate(self.tasks, start=1):
            icon = _STATUS_ICONS.get(task.status, "❓")
            lines.append(f"  {i}. {icon} {task.description}")

        counts = self.counts()
        progress = (
            f"Progress: {counts[TaskStatus.COMPLETED]} completed, "
            f"{counts[TaskStatus.IN_PROGRESS]} in progress, "
            f"{counts[TaskStatus.PENDING]} pending"
        )
        if counts[TaskStatus.SKIPPED]:
            progress += f", {counts[TaskStatus.SKIPPED]} skipped"
        lines.append("")
        lines.append(progress)
        return "\n".join(lines)

    def diff(self, old: "ExecutionPlan | None") -> list[str]:
        """Describe what changed relative to an earlier snapshot."""
        if old is None:
            return ["Initial plan created"]

        changes: list[str] = []
        old_by_id = {task.id: task for task in old.tasks}
        new_ids = {task.id for task in self.tasks}

        for task in self.tasks:
            if task.id not in old_by_id:
                changes.append(f"➕ Added: {task.description}")
        for task in old.tasks:
            if task.id not in new_ids:
                changes.append(f"➖ Removed: {task.description}")
        for task in self.tasks:
            before = old_by_id.get(task.id)
            if before is not None and before.status != task.status:
                changes.append(
                    f"🔄 Status changed: {task.description} "
                    f"({before.status.value} → {task.status.value})"
                )
        if old.current_phase != self.current_phase:
            changes.append(f"🧭 Phase: {old.current_phase.value} → {self.current_phase.value}")
        return changes

    def clone(self) -> "ExecutionPlan":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks": [task.to_dict() for task in self.tasks],
            "current_phase": self.current_phase.value,
            "phase_history": [item.to_dict() for item in self.phase_history],
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ExecutionPlan":
        if not data:
            return cls()
        return cls(
            tasks=[PlanTask.from_dict(item) for item in data.get("tasks") or []],
            current_phase=parse_phase(data.get("current_phase", Phase.PROBLEM_DEFINITION.value)),
            phase_history=[PhaseTransition.from_dict(item) for item in data.get("phase_history") or []],
            last_updated=str(data.get("last_updated") or _utcnow_iso()),
        )
