from pathlib import Path

import pytest

from gitbuddy.config import Config
from gitbuddy.exceptions import BranchComparisonError, NoCommitsError, NoStagedChangesError
from gitbuddy.flavors import (
    build_commit_spec,
    build_debug_spec,
    build_pr_spec,
    build_report_spec,
    build_review_spec,
    language_name,
)
from gitbuddy.git import GitExecutor, LogOptions
from gitbuddy.instructions import InstructionLoader
from gitbuddy.results import parse_commit_text


class FakeGit(GitExecutor):
    def __init__(self, work_dir: Path, status: str = "", diff: str = "", log: str = "", branch: str = "main"):
        super().__init__(work_dir)
        self._branch = branch
        self._status = status
        self._diff = diff
        self._log = log
        self.log_options: list[LogOptions] = []

    async def status(self) -> str:
        return self._status

    async def diff_cached(self) -> str:
        return self._diff

    async def log(self, options: LogOptions | None = None) -> str:
        self.log_options.append(options)
        return self._log

    async def current_branch(self) -> str:
        return self._branch

    async def log_range(self, base: str, head: str = "HEAD") -> str:
        return self._log

    async def diff_branches(self, base: str, head: str = "HEAD") -> str:
        return self._diff


def _loader(tmp_path: Path) -> InstructionLoader:
    return InstructionLoader(personal_dir=tmp_path / "no-overrides")


def test_language_name_maps_known_codes():
    assert language_name("ko") == "Korean"
    assert language_name("EN") == "English"
    assert language_name("pt") == "pt"
    assert language_name("") == "English"


@pytest.mark.parametrize(
    ("text", "title", "body"),
    [
        ("feat(auth): add token refresh", "feat(auth): add token refresh", ""),
        ("fix: handle nil config\n\nGuard against a missing file.", "fix: handle nil config", "Guard against a missing file."),
        ("```\nREFACTOR(core)!: split loop\n```", "refactor(core): split loop", ""),
        ("Add a README", "feat: Add a README", ""),
    ],
)
def test_parse_commit_text_accepts_conventional_text(text, title, body):
    commit = parse_commit_text(text)

    assert commit is not None
    assert commit.title() == title
    assert commit.body == body


@pytest.mark.parametrize("text", ["", "   ", "oops: not a type", "feat(api):   "])
def test_parse_commit_text_rejects_unusable_text(text):
    assert parse_commit_text(text) is None


@pytest.mark.asyncio
async def test_commit_spec_embeds_status_and_diff(tmp_path: Path):
    git = FakeGit(tmp_path, status="M main.go", diff="+func main() {}")

    spec = await build_commit_spec(git, context="ticket 42", config=Config(), instructions=_loader(tmp_path))

    assert spec.kind == "commit"
    assert spec.registry.list_tools() == ["submit_commit"]
    assert spec.terminal_tools == ("submit_commit",)
    assert spec.text_fallback is parse_commit_text
    assert spec.compression is False
    assert "M main.go" in spec.user_prompt
    assert "+func main() {}" in spec.user_prompt
    assert "## Additional Context\nticket 42" in spec.system_prompt
    assert "English" in spec.system_prompt


@pytest.mark.asyncio
async def test_commit_spec_requires_staged_changes(tmp_path: Path):
    git = FakeGit(tmp_path, status="clean", diff="  \n")

    with pytest.raises(NoStagedChangesError):
        await build_commit_spec(git, config=Config(), instructions=_loader(tmp_path))


@pytest.mark.asyncio
async def test_review_spec_tools_and_severity(tmp_path: Path):
    git = FakeGit(tmp_path, diff="+x")
    config = Config()
    config.review.min_severity = "warning"

    spec = await build_review_spec(
        git, files=["api/handler.go"], config=config, instructions=_loader(tmp_path)
    )

    tools = spec.registry.list_tools()
    assert spec.kind == "review"
    assert spec.terminal_tools == ("submit_review",)
    assert spec.tool_mandatory is True
    assert {"git_status", "git_diff_cached", "read_file", "grep_directory", "submit_review"} <= set(tools)
    assert spec.registry.get("submit_review").min_severity == "warning"
    assert "- api/handler.go" in spec.system_prompt


@pytest.mark.asyncio
async def test_review_severity_argument_overrides_config(tmp_path: Path):
    git = FakeGit(tmp_path, diff="+x")

    spec = await build_review_spec(git, min_severity="error", config=Config(), instructions=_loader(tmp_path))

    assert spec.registry.get("submit_review").min_severity == "error"


def test_debug_spec_uses_plan_and_issue_report(tmp_path: Path):
    git = FakeGit(tmp_path)
    config = Config()
    config.debug.grep_timeout = 3.0

    spec = build_debug_spec(
        "  Login returns 500  ",
        git,
        files=["auth.go"],
        issues_dir=tmp_path / "reports",
        config=config,
        instructions=_loader(tmp_path),
    )

    tools = spec.registry.list_tools()
    assert spec.use_plan is True
    assert spec.show_progress is True
    assert spec.terminal_tools == ("submit_report",)
    for name in ("update_execution_plan", "transition_phase", "request_feedback", "git_log", "git_show"):
        assert name in tools
    assert spec.registry.get("grep_directory").search_timeout == 3.0
    assert spec.registry.get("submit_report").issues_dir == tmp_path / "reports"
    assert "Login returns 500" in spec.user_prompt
    assert "- auth.go" in spec.user_prompt


@pytest.mark.asyncio
async def test_report_spec_prefetches_log(tmp_path: Path):
    git = FakeGit(tmp_path, log="abc123|feat: add x|2024-05-01")
    config = Config()
    config.ui.language = "ko"

    spec = await build_report_spec(
        git, since="2024-05-01", until="2024-05-07", author="dana", config=config, instructions=_loader(tmp_path)
    )

    options = git.log_options[0]
    assert (options.since, options.until, options.author, options.format) == (
        "2024-05-01", "2024-05-07", "dana", "%h|%s|%ad"
    )
    assert spec.registry.list_tools() == ["submit_report"]
    assert spec.registry.get("submit_report").default_author == "dana"
    assert "2024-05-01 to 2024-05-07 by dana" in spec.user_prompt
    assert "abc123|feat: add x" in spec.user_prompt
    assert "Korean" in spec.system_prompt


@pytest.mark.asyncio
async def test_report_spec_without_commits_fails(tmp_path: Path):
    git = FakeGit(tmp_path, log="")

    with pytest.raises(NoCommitsError):
        await build_report_spec(git, since="1 week ago", config=Config(), instructions=_loader(tmp_path))


@pytest.mark.asyncio
async def test_pr_spec_compares_current_branch_with_base(tmp_path: Path):
    git = FakeGit(tmp_path, diff="+func Resume()", log="abc feat: resume sessions", branch="feature/resume")
    cfg = Config()
    cfg.ui.language = "ja"

    spec = await build_pr_spec(git, "main", context="closes #7", config=cfg, instructions=_loader(tmp_path))

    assert spec.kind == "pr"
    assert spec.registry.list_tools() == ["git_log_range", "git_diff_branches", "git_status", "submit_pr"]
    assert spec.terminal_tools == ("submit_pr",)
    assert spec.compression is False
    assert "Japanese" in spec.system_prompt
    assert "closes #7" in spec.system_prompt
    assert "feature/resume into main" in spec.user_prompt
    assert "abc feat: resume sessions" in spec.user_prompt
    assert "+func Resume()" in spec.user_prompt


@pytest.mark.asyncio
async def test_pr_spec_rejects_same_or_identical_branches(tmp_path: Path):
    with pytest.raises(BranchComparisonError, match="cannot be the same"):
        await build_pr_spec(FakeGit(tmp_path, diff="+x"), "main", config=Config(), instructions=_loader(tmp_path))

    with pytest.raises(BranchComparisonError, match="no differences found"):
        await build_pr_spec(FakeGit(tmp_path), "main", head="dev", config=Config(), instructions=_loader(tmp_path))
