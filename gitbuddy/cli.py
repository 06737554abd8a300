"""Terminal output for gitbuddy commands."""

import asyncio
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from gitbuddy.config import get_config
from gitbuddy.llm import TokenUsage
from gitbuddy.logging import get_logger
from gitbuddy.plan import ExecutionPlan
from gitbuddy.results import CommitInfo, IssueReport, PRInfo, ReviewResult, WorkReport
from gitbuddy.session import Session, SessionInfo

log = get_logger(__name__)

_SEVERITY_STYLES = {"error": "bold red", "warning": "yellow", "info": "cyan"}
_TOOL_PREVIEW_CHARS = 200


class TerminalUI:
    """Rich-based printer used by the CLI commands and the agent callbacks."""

    def __init__(self, console: Console | None = None):
        self.config = get_config()
        self.console = console or Console(no_color=not self.config.ui.colors, highlight=False)
        self._streaming = False

    # ------------------------------------------------------------------
    # plain messages

    def print_info(self, message: str) -> None:
        self._end_stream()
        self.console.print(f"[dim]{message}[/dim]")

    def print_success(self, message: str) -> None:
        self._end_stream()
        self.console.print(f"[green]✓[/green] {message}")

    def print_warning(self, warning: str) -> None:
        self._end_stream()
        self.console.print(f"[yellow]Warning:[/yellow] {warning}")

    def print_error(self, error: str) -> None:
        self._end_stream()
        self.console.print(f"[bold red]Error:[/bold red] {error}")

    def print_tokens(self, usage: TokenUsage) -> None:
        if not self.config.ui.show_tokens:
            return
        self._end_stream()
        self.console.print(
            f"[dim]Tokens: {usage.prompt_tokens} + {usage.completion_tokens} = {usage.total_tokens}[/dim]"
        )

    # ------------------------------------------------------------------
    # agent callbacks

    def print_streaming(self, chunk: str) -> None:
        """Print a streamed content fragment as it arrives."""
        self._streaming = True
        self.console.print(chunk, end="", markup=False, highlight=False)

    def _end_stream(self) -> None:
        if self._streaming:
            self.console.print()
            self._streaming = False

    def set_status(self, status: str) -> None:
        log.debug("Agent status", status=status)

    def print_tool_output(self, tool_name: str, arguments: str, output: str) -> None:
        self._end_stream()
        preview = output if len(output) <= _TOOL_PREVIEW_CHARS else output[:_TOOL_PREVIEW_CHARS] + "..."
        style = "red" if output.startswith("Error:") else "dim"
        self.console.print(f"[bold blue]▶ {escape(tool_name)}[/bold blue] [dim]{escape(arguments)}[/dim]", markup=True)
        self.console.print(f"  {preview}", style=style, markup=False)

    def print_retry(self, attempt: int) -> None:
        self._end_stream()
        self.console.print(f"[yellow]Model stream interrupted, retrying (attempt {attempt})[/yellow]")

    def print_plan(self, plan: ExecutionPlan, changes: list[str]) -> None:
        self._end_stream()
        body = [plan.phase_description(), "", plan.summary()]
        if changes:
            body += ["", "Changes:", *[f"- {change}" for change in changes]]
        self.console.print(Panel("\n".join(body), title="Execution Plan", border_style="cyan"))

    def print_compression(self, summary: str) -> None:
        self._end_stream()
        self.console.print(Panel(summary, title="History compressed", border_style="dim"))

    async def confirm_continue(self, iteration: int, max_iterations: int) -> bool:
        self._end_stream()
        message = f"Reached {iteration}/{max_iterations} iterations. Continue?"
        return await asyncio.to_thread(Confirm.ask, message, console=self.console, default=False)

    async def ask_user(self, question: str, options: list[str]) -> str:
        """Show numbered options and return the user's answer."""
        self._end_stream()
        self.console.print(Panel(question, title="Question", border_style="magenta"))
        for idx, option in enumerate(options, 1):
            self.console.print(f"  {idx}. {option}")
        choices = [str(idx) for idx in range(1, len(options) + 1)]
        return await asyncio.to_thread(Prompt.ask, "Select an option", console=self.console, choices=choices)

    def confirm(self, message: str, default: bool = False) -> bool:
        return Confirm.ask(message, console=self.console, default=default)

    # ------------------------------------------------------------------
    # results

    def print_commit(self, commit: CommitInfo) -> None:
        self._end_stream()
        self.console.print(Panel(commit.message(), title="Commit Message", border_style="green"))

    def print_pr(self, pr: PRInfo) -> None:
        self._end_stream()
        self.console.print(Panel(escape(pr.title), title="PR Title", border_style="green"))
        self.console.print(Markdown(pr.description()))

    def print_review(self, review: ReviewResult) -> None:
        self._end_stream()
        if review.issues:
            table = Table(title="Review Issues", show_header=True, header_style="bold cyan")
            table.add_column("Severity")
            table.add_column("Category")
            table.add_column("Location", overflow="fold")
            table.add_column("Issue", overflow="fold")
            for issue in review.issues:
                location = f"{issue.file}:{issue.line}" if issue.line else issue.file
                detail = issue.title
                if issue.description:
                    detail += f"\n{issue.description}"
                if issue.suggestion:
                    detail += f"\n→ {issue.suggestion}"
                table.add_row(
                    f"[{_SEVERITY_STYLES[issue.severity]}]{issue.severity}[/]",
                    issue.category,
                    location,
                    detail,
                )
            self.console.print(table)
        else:
            self.print_success("No issues found.")
        self.console.print(Panel(review.summary, title="Summary", border_style="cyan"))

    def print_issue_report(self, report: IssueReport) -> None:
        self._end_stream()
        self.print_success(f"Report {report.issue_id:03d} saved to {report.file_path}")

    def print_work_report(self, report: WorkReport) -> None:
        self._end_stream()
        self.console.print(Markdown(report.to_markdown()))

    def print_text(self, content: str) -> None:
        self._end_stream()
        if content.strip():
            self.console.print(Markdown(content))

    # ------------------------------------------------------------------
    # sessions

    def print_sessions(self, sessions: list[SessionInfo]) -> None:
        if not sessions:
            self.print_info("No saved sessions.")
            return
        table = Table(title="Sessions", show_header=True, header_style="bold cyan")
        table.add_column("ID", overflow="fold")
        table.add_column("Agent")
        table.add_column("Updated")
        table.add_column("Iterations", justify="right")
        table.add_column("Messages", justify="right")
        table.add_column("Size", justify="right")
        for info in sessions:
            table.add_row(
                info.id,
                info.agent_kind,
                info.updated_at,
                str(info.iteration_count),
                str(info.message_count),
                _format_size(info.size_bytes),
            )
        self.console.print(table)

    def print_session(self, session: Session) -> None:
        summary = Table(show_header=False, box=None)
        summary.add_column("Field", style="bold")
        summary.add_column("Value", overflow="fold")
        rows: list[tuple[str, Any]] = [
            ("ID", session.id),
            ("Agent", session.agent_kind),
            ("Created", session.created_at),
            ("Updated", session.updated_at),
            ("Iterations", f"{session.iteration_count}/{session.max_iterations}"),
            ("Messages", len(session.messages)),
            ("Tokens", session.token_usage.total_tokens),
        ]
        rows += [(key, value) for key, value in sorted(session.metadata.items())]
        for key, value in rows:
            summary.add_row(key, str(value))
        self.console.print(summary)
        if session.plan:
            plan = ExecutionPlan.from_dict(session.plan)
            self.console.print(Panel(plan.summary(), title=f"Plan ({plan.current_phase.value})"))


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


# Global UI instance
_ui: TerminalUI | None = None


def get_ui() -> TerminalUI:
    """Get the global UI instance."""
    global _ui
    if _ui is None:
        _ui = TerminalUI()
    return _ui


def set_ui(ui: TerminalUI) -> None:
    """Set the global UI instance."""
    global _ui
    _ui = ui
