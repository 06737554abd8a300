"""Terminal tools that carry an agent's final answer."""

import re
from datetime import date
from pathlib import Path

from pydantic import BaseModel, Field

from gitbuddy.logging import get_logger
from gitbuddy.results import CommitInfo, IssueReport, PRInfo, ReviewIssue, ReviewResult, WorkReport
from gitbuddy.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)

_ISSUE_FILE_RE = re.compile(r"^issue-(\d+)-")
_SLUG_MAX = 50


class SubmitCommitTool(Tool):
    name = "submit_commit"
    description = (
        "Submit the final conventional commit message. Call this exactly once when "
        "the message is ready."
    )
    params_model = CommitInfo
    timeout_seconds = 10.0

    async def execute(self, params: CommitInfo, ctx: ToolContext) -> ToolResult:
        return ToolResult(success=True, content=f"Commit message accepted:\n\n{params.message()}", data=params)


class SubmitReviewParams(BaseModel):
    issues: list[ReviewIssue] = Field(default_factory=list, description="Problems found, empty if none")
    summary: str = Field(min_length=1, description="Overall assessment of the change")


class SubmitReviewTool(Tool):
    """Final review; issues below the configured severity are dropped."""

    name = "submit_review"
    description = "Submit the final code review with all issues found and a summary."
    params_model = SubmitReviewParams
    timeout_seconds = 10.0

    def __init__(self, min_severity: str = "info"):
        self.min_severity = min_severity

    async def execute(self, params: SubmitReviewParams, ctx: ToolContext) -> ToolResult:
        review = ReviewResult(issues=params.issues, summary=params.summary).filtered(self.min_severity)
        counts = review.counts()
        content = (
            f"Review accepted: {counts['error']} error(s), {counts['warning']} warning(s), "
            f"{counts['info']} info."
        )
        return ToolResult(success=True, content=content, data=review)


class SubmitPRTool(Tool):
    name = "submit_pr"
    description = (
        "Submit the pull request title and description. Call this once, after "
        "reading the commits and the diff between the branches."
    )
    params_model = PRInfo
    timeout_seconds = 10.0

    async def execute(self, params: PRInfo, ctx: ToolContext) -> ToolResult:
        return ToolResult(success=True, content=f"PR description accepted: {params.title}", data=params)


def slugify(title: str) -> str:
    """File-name slug: lowercase, hyphen separated, at most 50 characters."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    if len(slug) > _SLUG_MAX:
        slug = slug[:_SLUG_MAX]
        cut = slug.rfind("-")
        if cut > 0:
            slug = slug[:cut]
        slug = slug.strip("-")
    return slug or "report"


def next_issue_id(issues_dir: Path) -> int:
    highest = 0
    if issues_dir.is_dir():
        for entry in issues_dir.iterdir():
            match = _ISSUE_FILE_RE.match(entry.name)
            if match:
                highest = max(highest, int(match.group(1)))
    return highest + 1


class SubmitIssueReportParams(BaseModel):
    title: str = Field(min_length=1, description="Short title of the issue")
    content: str = Field(min_length=1, description="Full report in Markdown")


class SubmitIssueReportTool(Tool):
    """Write the debug report to the issues directory.

    Files are named ``issue-NNN-<slug>-<YYYY-MM-DD>.md`` with NNN one above
    the highest number already present.
    """

    name = "submit_report"
    description = (
        "Submit the final debug report in Markdown. It is saved to the issues "
        "directory and ends the investigation."
    )
    params_model = SubmitIssueReportParams
    timeout_seconds = 30.0

    def __init__(self, issues_dir: Path | str = "./issues", today=date.today):
        self.issues_dir = Path(issues_dir)
        self._today = today

    async def execute(self, params: SubmitIssueReportParams, ctx: ToolContext) -> ToolResult:
        directory = self.issues_dir
        if not directory.is_absolute():
            directory = Path(ctx.work_dir) / directory
        try:
            directory.mkdir(parents=True, exist_ok=True)
            issue_id = next_issue_id(directory)
            day = self._today().isoformat()
            title = params.title.strip()
            path = directory / f"issue-{issue_id:03d}-{slugify(title)}-{day}.md"
            body = params.content.strip()
            if not body.startswith("#"):
                body = f"# {title}\n\n{body}"
            path.write_text(body + "\n", encoding="utf-8")
        except OSError as e:
            log.error("Failed to save report", path=str(directory), error=str(e))
            return ToolResult(success=False, error=f"failed to save report: {e}")

        log.info("Report saved", path=str(path), issue_id=issue_id)
        report = IssueReport(issue_id=issue_id, title=title, content=body, date=day, file_path=str(path))
        content = (
            "✅ Debug report successfully saved!\n\n"
            f"Report ID: {issue_id:03d}\n"
            f"Title: {title}\n"
            f"Date: {day}\n"
            f"File: {path}"
        )
        return ToolResult(success=True, content=content, data=report)


class SubmitWorkReportTool(Tool):
    name = "submit_report"
    description = (
        "Submit the final development report. Group the work into features, fixes, "
        "refactoring and other, and write a short summary."
    )
    params_model = WorkReport
    timeout_seconds = 10.0

    def __init__(self, default_author: str = ""):
        self.default_author = default_author

    async def execute(self, params: WorkReport, ctx: ToolContext) -> ToolResult:
        if not params.author and self.default_author:
            params = params.model_copy(update={"author": self.default_author})
        items = len(params.features) + len(params.fixes) + len(params.refactoring) + len(params.other)
        return ToolResult(success=True, content=f"Report accepted with {items} work item(s).", data=params)
