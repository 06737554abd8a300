import pytest

from gitbuddy.plan import ExecutionPlan, Phase, TaskStatus, parse_phase, parse_status


def test_add_update_remove_tasks():
    plan = ExecutionPlan()
    plan.add_task("t1", "Reproduce the crash")
    plan.add_task("t2", "Inspect stack trace")

    assert plan.update_task("t1", "completed") is True
    assert plan.get_task("t1").completed_at is not None
    assert plan.update_task("t1", TaskStatus.COMPLETED) is False
    assert plan.update_task("missing", "completed") is False
    assert plan.remove_task("t2") is True
    assert plan.remove_task("t2") is False
    assert [task.id for task in plan.tasks] == ["t1"]


def test_duplicate_task_id_is_rejected():
    plan = ExecutionPlan()
    plan.add_task("t1", "first")

    with pytest.raises(ValueError, match="already exists"):
        plan.add_task("t1", "second")


def test_invalid_status_and_phase_list_valid_values():
    with pytest.raises(ValueError, match="pending, in_progress, completed, skipped"):
        parse_status("done")
    with pytest.raises(ValueError, match="problem_definition"):
        parse_phase("triage")
    assert parse_phase(" Execution ") is Phase.EXECUTION


def test_transition_records_history_and_ignores_same_phase():
    plan = ExecutionPlan()

    assert plan.transition("impact_analysis", "symptoms are clear") is True
    assert plan.transition(Phase.IMPACT_ANALYSIS, "again") is False
    assert plan.current_phase is Phase.IMPACT_ANALYSIS
    assert len(plan.phase_history) == 1
    assert plan.phase_history[0].from_phase is Phase.PROBLEM_DEFINITION
    assert plan.phase_history[0].reason == "symptoms are clear"


def test_any_phase_can_be_reached_directly():
    plan = ExecutionPlan()

    assert plan.transition("reporting", "trivial issue") is True
    assert plan.transition("problem_definition", "new evidence") is True


def test_summary_lists_tasks_with_progress():
    plan = ExecutionPlan()
    assert "No tasks defined yet." in plan.summary()

    plan.add_task("t1", "Read config")
    plan.add_task("t2", "Check env")
    plan.update_task("t1", "completed")
    plan.update_task("t2", "skipped")

    summary = plan.summary()

    assert "1. ✅ Read config" in summary
    assert "Progress: 1 completed, 0 in progress, 0 pending, 1 skipped" in summary


def test_diff_describes_changes():
    plan = ExecutionPlan()
    assert plan.diff(None) == ["Initial plan created"]

    plan.add_task("t1", "Read config")
    plan.add_task("t2", "Check env")
    before = plan.clone()
    plan.update_task("t1", "in_progress")
    plan.remove_task("t2")
    plan.add_task("t3", "Grep for timeout")
    plan.transition("execution", "plan ready")

    changes = plan.diff(before)

    assert "➕ Added: Grep for timeout" in changes
    assert "➖ Removed: Check env" in changes
    assert "🔄 Status changed: Read config (pending → in_progress)" in changes
    assert "🧭 Phase: problem_definition → execution" in changes
    assert plan.diff(plan.clone()) == []


def test_clone_is_independent():
    plan = ExecutionPlan()
    plan.add_task("t1", "one")
    copy = plan.clone()

    plan.update_task("t1", "completed")

    assert copy.get_task("t1").status is TaskStatus.PENDING


def test_dict_round_trip_preserves_state():
    plan = ExecutionPlan()
    plan.add_task("t1", "one")
    plan.update_task("t1", "in_progress")
    plan.transition("verification", "fix applied")

    restored = ExecutionPlan.from_dict(plan.to_dict())

    assert restored.to_dict() == plan.to_dict()
    assert ExecutionPlan.from_dict(None).tasks == []


def test_same_status_update_changes_nothing():
    plan = ExecutionPlan()
    plan.add_task("t1", "Reproduce the crash")
    plan.update_task("t1", "completed")
    completed_at = plan.get_task("t1").completed_at
    last_updated = plan.last_updated
    snapshot = plan.clone()

    assert plan.update_task("t1", "completed") is False
    assert plan.get_task("t1").completed_at == completed_at
    assert plan.last_updated == last_updated
    assert plan.diff(snapshot) == []
