"""Command-line entry point for gitbuddy."""

import asyncio
import signal
from pathlib import Path
from typing import Any, Awaitable, Callable

import typer

from gitbuddy import __version__
from gitbuddy.agent import AgentLoop, AgentResult, AgentSpec, LoopState
from gitbuddy.cli import TerminalUI, get_ui
from gitbuddy.config import DEFAULT_CONFIG_PATH, Config, set_config
from gitbuddy.exceptions import GitBuddyError, SessionError
from gitbuddy.flavors import (
    build_commit_spec,
    build_debug_spec,
    build_pr_spec,
    build_report_spec,
    build_review_spec,
)
from gitbuddy.git import GitExecutor
from gitbuddy.llm import get_provider
from gitbuddy.logging import configure_logging, get_logger
from gitbuddy.results import CommitInfo, IssueReport, PRInfo, ReviewResult, WorkReport
from gitbuddy.session import Session, SessionStore, get_session_store, set_session_store

log = get_logger(__name__)

app = typer.Typer(help="gitbuddy - AI assistant for commits, reviews, debugging and reports", no_args_is_help=True)
sessions_app = typer.Typer(help="Manage saved agent sessions", no_args_is_help=True)
app.add_typer(sessions_app, name="sessions")

_state: dict[str, Any] = {}


def _config() -> Config:
    return _state["config"]


@app.callback()
def root(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    language: str = typer.Option("", "-l", "--language", help="Output language code, e.g. en, ko"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Load configuration and set up logging before any command runs."""
    cfg = Config.load(config or None)
    if model:
        cfg.model.model = model
    if provider:
        cfg.model.provider = provider
    if language:
        cfg.ui.language = language
    set_config(cfg)
    configure_logging("DEBUG" if verbose else None)
    set_session_store(SessionStore(cfg.sessions_dir(), cfg.session.max_size_bytes))
    _state["config"] = cfg


def _install_interrupt_handler(cancel_event: asyncio.Event, ui: TerminalUI) -> Callable[[], None]:
    """Ctrl+C sets ``cancel_event``; a second Ctrl+C interrupts immediately."""
    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        cancel_event.set()
        ui.print_warning("Interrupt received, stopping after the current step (Ctrl+C again to abort)")
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        return lambda: None

    def remove() -> None:
        loop.remove_signal_handler(signal.SIGINT)

    return remove


async def _run_agent(
    spec: AgentSpec,
    request: dict[str, Any],
    session: Session | None = None,
    interactive: bool = False,
) -> AgentResult:
    cfg = _config()
    ui = get_ui()
    store = get_session_store()
    cancel_event = asyncio.Event()
    provider = get_provider()
    agent = AgentLoop(
        provider=provider,
        spec=spec,
        config=cfg,
        store=store,
        cancel_event=cancel_event,
        interactive=interactive,
        confirm_continue=ui.confirm_continue,
        ask_user=ui.ask_user,
        content_callback=ui.print_streaming,
        status_callback=ui.set_status,
        tool_output_callback=ui.print_tool_output,
        plan_callback=ui.print_plan,
        compression_callback=ui.print_compression,
        retry_callback=ui.print_retry,
    )
    remove_handler = _install_interrupt_handler(cancel_event, ui)
    try:
        return await agent.run(request, session=session)
    finally:
        remove_handler()
        await provider.close()
        if cfg.session.auto_save and cfg.session.max_sessions > 0:
            store.cleanup_old(cfg.session.max_sessions)


def _report_outcome(result: AgentResult) -> None:
    """Print the non-success outcomes and exit with a matching code."""
    ui = get_ui()
    ui.print_tokens(result.usage)
    if result.status is LoopState.SUCCESS:
        return
    if result.status is LoopState.CANCELLED:
        ui.print_warning(f"Cancelled. Session saved as {result.session.id}")
        raise typer.Exit(code=130)
    if result.status is LoopState.ITERATION_EXCEEDED:
        ui.print_warning(
            f"Iteration limit reached ({result.session.max_iterations}). "
            f"Resume with: gitbuddy {result.session.agent_kind} --resume {result.session.id}"
        )
        raise typer.Exit(code=1)
    ui.print_error(str(result.error or "agent failed"))
    raise typer.Exit(code=1)


def _load_resume(session_id: str, kind: str) -> Session:
    session = get_session_store().load(session_id)
    if session.agent_kind != kind:
        raise SessionError(f"Session {session_id} belongs to the '{session.agent_kind}' agent, not '{kind}'")
    return session


async def _create_commit(git: GitExecutor, commit: CommitInfo, yes: bool) -> bool:
    """Run ``git commit`` with the generated message, asking first unless ``yes``."""
    ui = get_ui()
    if not yes and not await asyncio.to_thread(ui.confirm, "Commit with this message?", True):
        ui.print_info("Commit cancelled.")
        return False
    await git.commit(commit.message())
    ui.print_success("Commit created.")
    return True


def _execute(work: Callable[[], Awaitable[None]]) -> None:
    try:
        asyncio.run(work())
    except GitBuddyError as e:
        get_ui().print_error(str(e))
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        get_ui().print_warning("Aborted")
        raise typer.Exit(code=130) from None


@app.command()
def commit(
    context: str = typer.Option("", "--context", "-x", help="Extra context for the model"),
    work_dir: Path = typer.Option(Path("."), "--dir", "-d", help="Repository directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Commit without asking for confirmation"),
) -> None:
    """Generate a conventional commit message for the staged changes and commit them."""

    async def work() -> None:
        git = GitExecutor(work_dir)
        spec = await build_commit_spec(git, context=context, config=_config())
        result = await _run_agent(spec, {"context": context, "work_dir": str(work_dir)})
        _report_outcome(result)
        payload = result.payload
        if not isinstance(payload, CommitInfo):
            get_ui().print_text(result.content)
            return
        get_ui().print_commit(payload)
        await _create_commit(git, payload, yes)

    _execute(work)


@app.command()
def review(
    context: str = typer.Option("", "--context", "-x", help="Extra context for the reviewer"),
    files: list[str] = typer.Option([], "--file", "-f", help="Files to focus on (repeatable)"),
    severity: str = typer.Option("", "--severity", "-s", help="Minimum severity: info, warning or error"),
    work_dir: Path = typer.Option(Path("."), "--dir", "-d", help="Repository directory"),
    resume: str = typer.Option("", "--resume", help="Resume a saved review session"),
) -> None:
    """Review the staged changes."""
    if severity and severity not in ("info", "warning", "error"):
        raise typer.BadParameter("severity must be info, warning or error")

    async def work() -> None:
        session = _load_resume(resume, "review") if resume else None
        git = GitExecutor(work_dir)
        spec = await build_review_spec(
            git, context=context, files=files, min_severity=severity or None, config=_config()
        )
        request = {"context": context, "files": files, "severity": severity, "work_dir": str(work_dir)}
        result = await _run_agent(spec, request, session=session)
        _report_outcome(result)
        if isinstance(result.payload, ReviewResult):
            get_ui().print_review(result.payload)
        else:
            get_ui().print_text(result.content)

    _execute(work)


@app.command()
def debug(
    problem: str = typer.Argument("", help="Description of the problem to investigate"),
    context: str = typer.Option("", "--context", "-x", help="Extra context"),
    files: list[str] = typer.Option([], "--file", "-f", help="Related files (repeatable)"),
    issues_dir: str = typer.Option("", "--issues-dir", help="Where to write the report"),
    work_dir: Path = typer.Option(Path("."), "--dir", "-d", help="Working directory"),
    interactive: bool = typer.Option(True, "--interactive/--no-interactive", help="Allow questions to the user"),
    max_iterations: int = typer.Option(0, "--max-iterations", help="Override the iteration budget"),
    resume: str = typer.Option("", "--resume", help="Resume a saved debug session"),
) -> None:
    """Investigate a problem and write an issue report."""
    if not problem and not resume:
        raise typer.BadParameter("describe the problem or pass --resume")
    cfg = _config()
    if max_iterations > 0:
        cfg.agent.max_iterations = max_iterations

    async def work() -> None:
        session = _load_resume(resume, "debug") if resume else None
        text = problem or (session.request.get("problem", "") if session else "")
        git = GitExecutor(work_dir)
        spec = build_debug_spec(
            text,
            git,
            context=context,
            files=files,
            issues_dir=issues_dir or None,
            config=cfg,
        )
        request = {"problem": text, "context": context, "files": files, "work_dir": str(work_dir)}
        result = await _run_agent(spec, request, session=session, interactive=interactive)
        _report_outcome(result)
        if isinstance(result.payload, IssueReport):
            get_ui().print_issue_report(result.payload)
        else:
            get_ui().print_text(result.content)

    _execute(work)


@app.command()
def report(
    since: str = typer.Option("1 week ago", "--since", help="Start of the period"),
    until: str = typer.Option("", "--until", help="End of the period"),
    author: str = typer.Option("", "--author", "-a", help="Only this author's commits"),
    context: str = typer.Option("", "--context", "-x", help="Extra context"),
    work_dir: Path = typer.Option(Path("."), "--dir", "-d", help="Repository directory"),
) -> None:
    """Summarize the commits of a period into a development report."""

    async def work() -> None:
        git = GitExecutor(work_dir)
        spec = await build_report_spec(
            git, since=since, until=until, author=author, context=context, config=_config()
        )
        request = {"since": since, "until": until, "author": author, "work_dir": str(work_dir)}
        result = await _run_agent(spec, request)
        _report_outcome(result)
        if isinstance(result.payload, WorkReport):
            get_ui().print_work_report(result.payload)
        else:
            get_ui().print_text(result.content)

    _execute(work)


@app.command()
def pr(
    base: str = typer.Option(..., "--base", "-b", help="Target branch to compare against"),
    head: str = typer.Option("", "--head", help="Source branch (default: current branch)"),
    context: str = typer.Option("", "--context", "-x", help="Extra context for the description"),
    work_dir: Path = typer.Option(Path("."), "--dir", "-d", help="Repository directory"),
) -> None:
    """Generate a pull request title and description."""

    async def work() -> None:
        git = GitExecutor(work_dir)
        spec = await build_pr_spec(git, base=base, head=head, context=context, config=_config())
        request = {"base": base, "head": head, "context": context, "work_dir": str(work_dir)}
        result = await _run_agent(spec, request)
        _report_outcome(result)
        if isinstance(result.payload, PRInfo):
            get_ui().print_pr(result.payload)
        else:
            get_ui().print_text(result.content)

    _execute(work)


@app.command()
def init(
    path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--path", help="Where to write the config file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file"),
) -> None:
    """Write a config file with the default settings."""
    ui = get_ui()
    target = path.expanduser()
    if target.exists() and not force:
        ui.print_error(f"Config file already exists: {target}. Use --force to overwrite.")
        raise typer.Exit(code=1)
    Config().save(target)
    log.info("Config file written", path=str(target))
    ui.print_success(f"Configuration file created: {target}")
    ui.print_info("Next: set model.provider and model.model, and export the provider's API key.")


@sessions_app.command("list")
def sessions_list() -> None:
    """List saved sessions, newest first."""
    get_ui().print_sessions(get_session_store().list())


@sessions_app.command("show")
def sessions_show(session_id: str = typer.Argument(..., help="Session id")) -> None:
    """Show one session's details."""
    try:
        get_ui().print_session(get_session_store().load(session_id))
    except SessionError as e:
        get_ui().print_error(str(e))
        raise typer.Exit(code=1) from None


@sessions_app.command("delete")
def sessions_delete(
    session_id: str = typer.Argument(..., help="Session id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a saved session."""
    ui = get_ui()
    if not yes and not ui.confirm(f"Delete session {session_id}?"):
        raise typer.Exit()
    try:
        get_session_store().delete(session_id)
    except SessionError as e:
        ui.print_error(str(e))
        raise typer.Exit(code=1) from None
    ui.print_success(f"Deleted {session_id}")


@sessions_app.command("clean")
def sessions_clean(
    keep: int = typer.Option(-1, "--keep", "-k", help="Sessions to keep (default: session.max_sessions)"),
) -> None:
    """Delete the oldest sessions beyond the keep limit."""
    limit = keep if keep >= 0 else _config().session.max_sessions
    deleted = get_session_store().cleanup_old(limit)
    get_ui().print_success(f"Removed {deleted} session(s)")


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"gitbuddy v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
