from rich.console import Console

from gitbuddy.cli import TerminalUI, _format_size
from gitbuddy.llm import TokenUsage
from gitbuddy.plan import ExecutionPlan
from gitbuddy.results import CommitInfo, PRInfo, ReviewIssue, ReviewResult, WorkReport


def _ui() -> TerminalUI:
    return TerminalUI(Console(record=True, width=160, no_color=True))


def _text(ui: TerminalUI) -> str:
    return ui.console.export_text()


def test_streaming_ends_with_newline_before_next_message():
    ui = _ui()
    ui.print_streaming("Looking at ")
    ui.print_streaming("the diff")
    ui.print_info("done")

    assert _text(ui) == "Looking at the diff\ndone\n"


def test_tool_output_is_previewed():
    ui = _ui()
    ui.print_tool_output("read_file", '{"file_path": "a.go"}', "x" * 500)

    out = _text(ui)
    assert "▶ read_file" in out
    assert out.count("x") == 200
    assert out.rstrip().endswith("...")


def test_tool_arguments_with_markup_characters_are_printed_verbatim():
    ui = _ui()
    ui.print_tool_output("grep_file", '{"pattern": "[/x]", "tag": "[bold]"}', "No matches")

    out = _text(ui)
    assert '{"pattern": "[/x]", "tag": "[bold]"}' in out
    assert "No matches" in out


def test_retry_notice_ends_the_streamed_line():
    ui = _ui()
    ui.print_streaming("Looking at ")
    ui.print_retry(2)

    assert _text(ui) == "Looking at \nModel stream interrupted, retrying (attempt 2)\n"


def test_print_tokens():
    ui = _ui()
    ui.print_tokens(TokenUsage(100, 20, 120))

    assert "Tokens: 100 + 20 = 120" in _text(ui)


def test_print_plan_shows_changes():
    ui = _ui()
    plan = ExecutionPlan()
    plan.add_task("t1", "Read the handler")

    ui.print_plan(plan, ["Initial plan created"])

    out = _text(ui)
    assert "Execution Plan" in out
    assert "Read the handler" in out
    assert "- Initial plan created" in out


def test_print_commit_and_review():
    ui = _ui()
    ui.print_commit(CommitInfo(type="fix", scope="db", description="close rows", body="Avoids a leak."))
    ui.print_review(ReviewResult(
        issues=[ReviewIssue(severity="error", category="bug", file="db.go", line=12, title="rows not closed")],
        summary="One real bug.",
    ))

    out = _text(ui)
    assert "fix(db): close rows" in out
    assert "Avoids a leak." in out
    assert "db.go:12" in out
    assert "rows not closed" in out
    assert "One real bug." in out


def test_print_pr_shows_title_and_sections():
    ui = _ui()
    ui.print_pr(PRInfo(title="Fix [retry] loop", summary="Stops double printing.", changes=["end the stream first"]))

    out = _text(ui)
    assert "PR Title" in out
    assert "Fix [retry] loop" in out
    assert "Stops double printing." in out
    assert "end the stream first" in out


def test_print_review_without_issues():
    ui = _ui()
    ui.print_review(ReviewResult(summary="Looks good."))

    out = _text(ui)
    assert "No issues found." in out
    assert "Looks good." in out


def test_print_work_report_renders_markdown():
    ui = _ui()
    ui.print_work_report(WorkReport(title="Weekly Report", period="May", summary="Busy week.", fixes=["nil map"]))

    out = _text(ui)
    assert "Weekly Report" in out
    assert "Bug Fixes" in out
    assert "nil map" in out


def test_format_size():
    assert _format_size(512) == "512 B"
    assert _format_size(2048) == "2.0 KB"
    assert _format_size(3 * 1024 * 1024) == "3.0 MB"
