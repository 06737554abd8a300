"""Structured results produced by the terminal tools."""

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator

COMMIT_TYPES = (
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "chore",
    "build",
    "ci",
    "revert",
)

SEVERITY_ORDER = {"info": 0, "warning": 1, "error": 2}

Severity = Literal["info", "warning", "error"]

_HEADER_RE = re.compile(r"^(?P<type>[A-Za-z]+)(?:\((?P<scope>[^)]*)\))?!?:\s*(?P<description>.+)$")


class CommitInfo(BaseModel):
    """Conventional commit message parts."""

    type: str = Field(description="Commit type: " + ", ".join(COMMIT_TYPES))
    scope: str = Field(default="", description="Optional scope, e.g. auth, api, ui")
    description: str = Field(description="Short subject line, imperative mood, about 50 characters")
    body: str = Field(default="", description="What changed and why")
    footer: str = Field(default="", description="Breaking changes or issue references")

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in COMMIT_TYPES:
            raise ValueError(f"invalid commit type '{value}', must be one of: {', '.join(COMMIT_TYPES)}")
        return value

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("commit description is required")
        return value

    def title(self) -> str:
        if self.scope.strip():
            return f"{self.type}({self.scope.strip()}): {self.description}"
        return f"{self.type}: {self.description}"

    def message(self) -> str:
        parts = [self.title()]
        if self.body.strip():
            parts.append(self.body.strip())
        if self.footer.strip():
            parts.append(self.footer.strip())
        return "\n\n".join(parts)


def parse_commit_text(text: str) -> CommitInfo | None:
    """Recover a commit message from a plain-text answer.

    The first non-empty line (ignoring code fences) is read as
    ``type(scope): description``; later non-empty lines become the body.
    A first line without a colon is taken as a ``feat`` description.
    Returns None when nothing valid can be built.
    """
    lines = [line.rstrip() for line in (text or "").strip().splitlines()]
    lines = [line for line in lines if not line.strip().startswith("```")]
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        return None

    header = lines[0].strip().strip("`").strip()
    body = "\n".join(line for line in lines[1:] if line.strip()).strip()

    match = _HEADER_RE.match(header)
    if match:
        fields = {
            "type": match.group("type"),
            "scope": (match.group("scope") or "").strip(),
            "description": match.group("description"),
        }
    elif ":" not in header:
        fields = {"type": "feat", "scope": "", "description": header}
    else:
        return None

    try:
        return CommitInfo(body=body, **fields)
    except ValueError:
        return None


class ReviewIssue(BaseModel):
    """One problem found in review."""

    severity: Severity = Field(description="error, warning or info")
    category: str = Field(default="suggestion", description="bug, security, performance, style or suggestion")
    file: str = Field(default="", description="File path")
    line: int = Field(default=0, ge=0, description="Line number, 0 if not applicable")
    title: str = Field(description="Short title")
    description: str = Field(default="", description="What is wrong and why it matters")
    suggestion: str = Field(default="", description="How to fix it")


class ReviewResult(BaseModel):
    """Submitted review."""

    issues: list[ReviewIssue] = Field(default_factory=list)
    summary: str = Field(description="Overall assessment of the change")

    def filtered(self, min_severity: str) -> "ReviewResult":
        """Drop issues below ``min_severity``."""
        threshold = SEVERITY_ORDER.get(min_severity, 0)
        kept = [issue for issue in self.issues if SEVERITY_ORDER[issue.severity] >= threshold]
        return ReviewResult(issues=kept, summary=self.summary)

    def counts(self) -> dict[str, int]:
        result = {severity: 0 for severity in SEVERITY_ORDER}
        for issue in self.issues:
            result[issue.severity] += 1
        return result


class IssueReport(BaseModel):
    """Debug report as written to the issues directory."""

    issue_id: int
    title: str
    content: str
    date: str
    file_path: str


class WorkReport(BaseModel):
    """Development report over a period of commits."""

    title: str = Field(description="Report title, e.g. 'Weekly Development Report'")
    period: str = Field(description="Time span covered")
    author: str = Field(default="", description="Whose work is covered")
    summary: str = Field(description="Two or three sentence executive summary")
    features: list[str] = Field(default_factory=list)
    fixes: list[str] = Field(default_factory=list)
    refactoring: list[str] = Field(default_factory=list)
    other: list[str] = Field(default_factory=list)
    highlights: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)

    def to_markdown(self) -> str:
        lines = [f"# {self.title}", "", f"**Period:** {self.period}"]
        if self.author:
            lines.append(f"**Author:** {self.author}")
        lines += ["", "## Summary", "", self.summary.strip()]
        sections = (
            ("Features", self.features),
            ("Bug Fixes", self.fixes),
            ("Refactoring & Improvements", self.refactoring),
            ("Other Work", self.other),
            ("Highlights", self.highlights),
            ("Next Steps", self.next_steps),
        )
        for heading, items in sections:
            if not items:
                continue
            lines += ["", f"## {heading}", ""]
            lines.extend(f"- {item}" for item in items)
        return "\n".join(lines) + "\n"


class PRInfo(BaseModel):
    """Pull request title and description parts."""

    title: str = Field(min_length=1, description="Concise PR title, imperative mood, at most 72 characters")
    summary: str = Field(min_length=1, description="What this PR does in one to three sentences")
    changes: list[str] = Field(default_factory=list, description="Main changes, one per item")
    why: str = Field(default="", description="Why the changes were needed")
    impact: str = Field(default="", description="Areas that may be affected")
    testing_note: str = Field(default="", description="How the change was tested")

    def description(self) -> str:
        """Markdown body with only the sections that have content."""
        sections = [("Summary", self.summary.strip())]
        if self.changes:
            sections.append(("Changes", "\n".join(f"- {change}" for change in self.changes)))
        sections += [
            ("Why", self.why.strip()),
            ("Impact", self.impact.strip()),
            ("Testing", self.testing_note.strip()),
        ]
        return "\n\n".join(f"## {heading}\n\n{body}" for heading, body in sections if body)
