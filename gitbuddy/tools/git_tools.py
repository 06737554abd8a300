"""Read-only git tools."""

from pydantic import BaseModel, Field

from gitbuddy.exceptions import GitError
from gitbuddy.git import GitExecutor, LogOptions
from gitbuddy.tools.registry import NoParams, Tool, ToolContext, ToolResult

_MAX_OUTPUT_CHARS = 60_000


def _git(ctx: ToolContext) -> GitExecutor:
    if ctx.git is None:
        raise GitError(["--version"], -1, "git is not available in this session")
    return ctx.git


def _clip(text: str) -> str:
    if len(text) <= _MAX_OUTPUT_CHARS:
        return text
    return text[:_MAX_OUTPUT_CHARS] + f"\n... output truncated ({len(text)} chars total)"


class GitStatusTool(Tool):
    name = "git_status"
    description = "Show the working tree status (git status)."
    params_model = NoParams

    async def execute(self, params: NoParams, ctx: ToolContext) -> ToolResult:
        try:
            output = await _git(ctx).status()
        except GitError as e:
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=True, content=output or "Working tree clean")


class GitDiffCachedTool(Tool):
    name = "git_diff_cached"
    description = "Show the staged changes (git diff --cached)."
    params_model = NoParams

    async def execute(self, params: NoParams, ctx: ToolContext) -> ToolResult:
        try:
            output = await _git(ctx).diff_cached()
        except GitError as e:
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=True, content=_clip(output) if output else "No staged changes")


class GitLogParams(BaseModel):
    max_count: int = Field(default=20, ge=1, le=500, description="Maximum number of commits")
    author: str = Field(default="", description="Only commits by this author")
    since: str = Field(default="", description="Only commits after this date, e.g. '2 weeks ago'")
    until: str = Field(default="", description="Only commits before this date")


class GitLogTool(Tool):
    name = "git_log"
    description = "Show commit history, optionally filtered by author and date range."
    params_model = GitLogParams

    async def execute(self, params: GitLogParams, ctx: ToolContext) -> ToolResult:
        options = LogOptions(
            author=params.author,
            since=params.since,
            until=params.until,
            count=params.max_count,
            format="%h %ad %an%n    %s",
        )
        try:
            output = await _git(ctx).log(options)
        except GitError as e:
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=True, content=_clip(output) if output else "No commits found")


class GitShowParams(BaseModel):
    ref: str = Field(default="HEAD", description="Commit hash, tag or branch to show")


class GitShowTool(Tool):
    name = "git_show"
    description = "Show a commit's metadata and changed files (git show --stat)."
    params_model = GitShowParams

    async def execute(self, params: GitShowParams, ctx: ToolContext) -> ToolResult:
        ref = params.ref.strip() or "HEAD"
        if ref.startswith("-"):
            return ToolResult(success=False, error=f"invalid ref: {ref}")
        try:
            output = await _git(ctx).show(ref)
        except GitError as e:
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=True, content=_clip(output))


class BranchRangeParams(BaseModel):
    base: str = Field(description="Branch or ref to compare from, e.g. main")
    head: str = Field(default="HEAD", description="Branch or ref to compare to")


def _check_refs(params: BranchRangeParams) -> tuple[str, str] | str:
    base = params.base.strip()
    head = params.head.strip() or "HEAD"
    if not base:
        return "base branch/ref is required"
    for ref in (base, head):
        if ref.startswith("-"):
            return f"invalid ref: {ref}"
    return base, head


class GitLogRangeTool(Tool):
    name = "git_log_range"
    description = (
        "List the commits in head that are not in base (git log base..head). "
        "Shows what a pull request would contain."
    )
    params_model = BranchRangeParams

    async def execute(self, params: BranchRangeParams, ctx: ToolContext) -> ToolResult:
        refs = _check_refs(params)
        if isinstance(refs, str):
            return ToolResult(success=False, error=refs)
        base, head = refs
        try:
            output = await _git(ctx).log_range(base, head)
        except GitError as e:
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=True, content=_clip(output) if output else f"No commits found between {base} and {head}")


class GitDiffBranchesTool(Tool):
    name = "git_diff_branches"
    description = "Show the code changes between two branches or refs (git diff base..head)."
    params_model = BranchRangeParams

    async def execute(self, params: BranchRangeParams, ctx: ToolContext) -> ToolResult:
        refs = _check_refs(params)
        if isinstance(refs, str):
            return ToolResult(success=False, error=refs)
        base, head = refs
        try:
            output = await _git(ctx).diff_branches(base, head)
        except GitError as e:
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=True, content=_clip(output) if output else f"No differences between {base} and {head}")
