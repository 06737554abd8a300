"""Agent flavors: prompts, tool sets and completion rules per command."""

from pathlib import Path

from gitbuddy.agent import AgentSpec
from gitbuddy.config import Config, get_config
from gitbuddy.exceptions import BranchComparisonError, NoCommitsError, NoStagedChangesError
from gitbuddy.git import GitExecutor, LogOptions
from gitbuddy.instructions import InstructionLoader, get_instruction_loader
from gitbuddy.results import parse_commit_text
from gitbuddy.tools import (
    GitDiffBranchesTool,
    GitDiffCachedTool,
    GitLogRangeTool,
    GitLogTool,
    GitShowTool,
    GitStatusTool,
    GrepDirectoryTool,
    GrepFileTool,
    ListDirectoryTool,
    ListFilesTool,
    ReadFileTool,
    RequestFeedbackTool,
    SubmitCommitTool,
    SubmitIssueReportTool,
    SubmitPRTool,
    SubmitReviewTool,
    SubmitWorkReportTool,
    ToolRegistry,
    TransitionPhaseTool,
    UpdateExecutionPlanTool,
)

LANGUAGE_NAMES = {
    "en": "English",
    "ko": "Korean",
    "ja": "Japanese",
    "zh": "Chinese",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
}

_LOG_FORMAT = "%h|%s|%ad"


def language_name(code: str) -> str:
    """Human name for a language code; unknown codes pass through."""
    return LANGUAGE_NAMES.get((code or "en").strip().lower(), code or "English")


def _context_section(context: str) -> str:
    text = (context or "").strip()
    if not text:
        return ""
    return f"\n## Additional Context\n{text}\n"


def _files_section(files: list[str] | tuple[str, ...], heading: str) -> str:
    if not files:
        return ""
    lines = [f"\n## {heading}"]
    lines.extend(f"- {name}" for name in files)
    return "\n".join(lines) + "\n"


def _investigation_tools(config: Config) -> list:
    return [
        ReadFileTool(),
        ListDirectoryTool(),
        ListFilesTool(),
        GrepFileTool(),
        GrepDirectoryTool(search_timeout=config.debug.grep_timeout),
    ]


async def build_commit_spec(
    git: GitExecutor,
    context: str = "",
    config: Config | None = None,
    instructions: InstructionLoader | None = None,
) -> AgentSpec:
    """Commit message agent.

    Status and staged diff are fetched up front; the model only has to call
    ``submit_commit``. A plain-text conventional commit line is accepted too.

    Raises:
        NoStagedChangesError: nothing is staged
    """
    config = config or get_config()
    instructions = instructions or get_instruction_loader()
    status = await git.status()
    diff = await git.diff_cached()
    if not diff.strip():
        raise NoStagedChangesError()

    return AgentSpec(
        kind="commit",
        system_prompt=instructions.render(
            "commit_system_prompt.md",
            language=language_name(config.ui.language),
            context_section=_context_section(context),
        ),
        user_prompt=instructions.render("commit_user_prompt.md", status=status, diff=diff),
        registry=ToolRegistry([SubmitCommitTool()]),
        terminal_tools=("submit_commit",),
        work_dir=git.work_dir,
        git=git,
        tool_mandatory=True,
        text_fallback=parse_commit_text,
        compression=False,
    )


async def build_review_spec(
    git: GitExecutor,
    context: str = "",
    files: list[str] | None = None,
    min_severity: str | None = None,
    config: Config | None = None,
    instructions: InstructionLoader | None = None,
) -> AgentSpec:
    """Code review agent over the staged changes.

    Raises:
        NoStagedChangesError: nothing is staged
    """
    config = config or get_config()
    instructions = instructions or get_instruction_loader()
    if not (await git.diff_cached()).strip():
        raise NoStagedChangesError()

    severity = min_severity or config.review.min_severity
    registry = ToolRegistry([
        GitStatusTool(),
        GitDiffCachedTool(),
        *_investigation_tools(config),
        SubmitReviewTool(min_severity=severity),
    ])
    return AgentSpec(
        kind="review",
        system_prompt=instructions.render(
            "review_system_prompt.md",
            language=language_name(config.ui.language),
            context_section=_context_section(context),
            files_section=_files_section(files or [], "Focus Files"),
            min_severity=severity,
        ),
        user_prompt=instructions.render("review_user_prompt.md", work_dir=git.work_dir),
        registry=registry,
        terminal_tools=("submit_review",),
        work_dir=git.work_dir,
        git=git,
    )


def build_debug_spec(
    problem: str,
    git: GitExecutor,
    context: str = "",
    files: list[str] | None = None,
    issues_dir: Path | str | None = None,
    config: Config | None = None,
    instructions: InstructionLoader | None = None,
) -> AgentSpec:
    """Long-running debugging agent with a phase plan and a written report."""
    config = config or get_config()
    instructions = instructions or get_instruction_loader()
    registry = ToolRegistry([
        *_investigation_tools(config),
        GitStatusTool(),
        GitDiffCachedTool(),
        GitLogTool(),
        GitShowTool(),
        UpdateExecutionPlanTool(),
        TransitionPhaseTool(),
        RequestFeedbackTool(),
        SubmitIssueReportTool(issues_dir=issues_dir or config.debug.issues_dir),
    ])
    return AgentSpec(
        kind="debug",
        system_prompt=instructions.render(
            "debug_system_prompt.md",
            language=language_name(config.ui.language),
            context_section=_context_section(context),
        ),
        user_prompt=instructions.render(
            "debug_user_prompt.md",
            problem=problem.strip(),
            files_section=_files_section(files or [], "Related Files"),
            work_dir=git.work_dir,
        ),
        registry=registry,
        terminal_tools=("submit_report",),
        work_dir=git.work_dir,
        git=git,
        use_plan=True,
        show_progress=True,
    )


async def build_report_spec(
    git: GitExecutor,
    since: str,
    until: str = "",
    author: str = "",
    context: str = "",
    config: Config | None = None,
    instructions: InstructionLoader | None = None,
) -> AgentSpec:
    """Work report agent over the commits of a period.

    Raises:
        NoCommitsError: the period has no commits
    """
    config = config or get_config()
    instructions = instructions or get_instruction_loader()
    history = await git.log(LogOptions(author=author, since=since, until=until, format=_LOG_FORMAT))
    if not history.strip():
        raise NoCommitsError()

    period = f"{since} to {until}" if until else f"since {since}"
    return AgentSpec(
        kind="report",
        system_prompt=instructions.render(
            "report_system_prompt.md",
            language=language_name(config.ui.language),
            context_section=_context_section(context),
        ),
        user_prompt=instructions.render(
            "report_user_prompt.md",
            period=period,
            author_clause=f" by {author}" if author else "",
            log=history,
        ),
        registry=ToolRegistry([SubmitWorkReportTool(default_author=author)]),
        terminal_tools=("submit_report",),
        work_dir=git.work_dir,
        git=git,
        compression=False,
    )


async def build_pr_spec(
    git: GitExecutor,
    base: str,
    head: str = "",
    context: str = "",
    config: Config | None = None,
    instructions: InstructionLoader | None = None,
) -> AgentSpec:
    """Pull request description agent.

    Compares ``head`` (the current branch by default) with ``base`` and
    includes the commits and the diff in the prompt.

    Raises:
        BranchComparisonError: the branches are the same or do not differ
    """
    config = config or get_config()
    instructions = instructions or get_instruction_loader()
    head = head or await git.current_branch()
    if base == head:
        raise BranchComparisonError(base, head, "base branch cannot be the same as the current branch")
    commits = await git.log_range(base, head)
    diff = await git.diff_branches(base, head)
    if not diff.strip():
        raise BranchComparisonError(base, head, "no differences found")

    return AgentSpec(
        kind="pr",
        system_prompt=instructions.render(
            "pr_system_prompt.md",
            language=language_name(config.ui.language),
            context_section=_context_section(context),
            base=base,
            head=head,
        ),
        user_prompt=instructions.render("pr_user_prompt.md", base=base, head=head, log=commits, diff=diff),
        registry=ToolRegistry([GitLogRangeTool(), GitDiffBranchesTool(), GitStatusTool(), SubmitPRTool()]),
        terminal_tools=("submit_pr",),
        work_dir=git.work_dir,
        git=git,
        compression=False,
    )
