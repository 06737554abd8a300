"""Read-only file system tools: read, list, find and search."""

import asyncio
import fnmatch
import os
import re
import time
from pathlib import Path

from pydantic import BaseModel, Field

from gitbuddy.logging import get_logger
from gitbuddy.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)

DEFAULT_LINES_NO_RANGE = 200
DEFAULT_MAX_LINES_PER_READ = 500
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_RESULTS = 100
DEFAULT_GREP_TIMEOUT = 10.0

EXCLUDED_DIRECTORIES = {
    ".git",
    "node_modules",
    "vendor",
    ".idea",
    ".vscode",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".venv",
    "venv",
    "dist",
    "build",
    "target",
    ".next",
    ".nuxt",
    "coverage",
}


def resolve_in_workdir(ctx: ToolContext, raw: str) -> Path:
    """Resolve ``raw`` against the working directory, refusing paths outside it."""
    base = Path(ctx.work_dir).expanduser().resolve()
    candidate = Path(raw).expanduser()
    resolved = (candidate if candidate.is_absolute() else base / candidate).resolve()
    try:
        resolved.relative_to(base)
    except ValueError:
        raise ValueError(f"path is outside the working directory: {raw}") from None
    return resolved


def _display(ctx: ToolContext, path: Path) -> str:
    base = Path(ctx.work_dir).expanduser().resolve()
    try:
        return str(path.relative_to(base)) or "."
    except ValueError:
        return str(path)


def _is_binary(path: Path) -> bool:
    with open(path, "rb") as f:
        return b"\0" in f.read(8192)


class ReadFileParams(BaseModel):
    file_path: str = Field(description="Path to the file, relative to the working directory")
    start_line: int | None = Field(default=None, ge=1, description="First line to read (1-indexed)")
    end_line: int | None = Field(default=None, ge=1, description="Last line to read (1-indexed, inclusive)")


class ReadFileTool(Tool):
    """Read file contents with line numbers."""

    name = "read_file"
    description = (
        "Read a file with line numbers. Without a range the first "
        f"{DEFAULT_LINES_NO_RANGE} lines are returned; use start_line/end_line for large files."
    )
    params_model = ReadFileParams
    timeout_seconds = 30.0

    def __init__(self, max_lines_per_read: int = DEFAULT_MAX_LINES_PER_READ):
        self.max_lines_per_read = max_lines_per_read

    async def execute(self, params: ReadFileParams, ctx: ToolContext) -> ToolResult:
        try:
            path = resolve_in_workdir(ctx, params.file_path)
            if not path.exists():
                return ToolResult(success=False, error=f"File not found: {params.file_path}")
            if not path.is_file():
                return ToolResult(success=False, error=f"Not a file: {params.file_path}")
            if _is_binary(path):
                return ToolResult(success=False, error=f"Binary file not supported: {params.file_path}")

            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
            total = len(lines)
            start = params.start_line or 1
            if total and start > total:
                return ToolResult(
                    success=False,
                    error=f"start_line {start} exceeds file length ({total} lines)",
                )
            end = params.end_line or (start + DEFAULT_LINES_NO_RANGE - 1)
            if end < start:
                return ToolResult(success=False, error="end_line must not be before start_line")
            truncated = False
            if end - start + 1 > self.max_lines_per_read:
                end = start + self.max_lines_per_read - 1
                truncated = True
            end = min(end, total)

            out = [f"File: {_display(ctx, path)} (lines {start}-{end} of {total})"]
            width = len(str(end)) if end else 1
            for number in range(start, end + 1):
                out.append(f"{number:>{width}} | {lines[number - 1]}")
            if truncated:
                out.append(f"Note: output truncated to {self.max_lines_per_read} lines per read")
            elif end < total:
                out.append(f"... {total - end} more lines; use start_line={end + 1} to continue")
            return ToolResult(success=True, content="\n".join(out))
        except Exception as e:
            log.error("Read failed", path=params.file_path, error=str(e))
            return ToolResult(success=False, error=str(e))


class ListDirectoryParams(BaseModel):
    directory: str = Field(default=".", description="Directory to list, relative to the working directory")
    show_hidden: bool = Field(default=False, description="Include entries starting with a dot")


class ListDirectoryTool(Tool):
    """List directory entries."""

    name = "list_directory"
    description = "List files and subdirectories of a directory."
    params_model = ListDirectoryParams
    timeout_seconds = 30.0

    async def execute(self, params: ListDirectoryParams, ctx: ToolContext) -> ToolResult:
        try:
            path = resolve_in_workdir(ctx, params.directory)
            if not path.is_dir():
                return ToolResult(success=False, error=f"Not a directory: {params.directory}")

            dirs: list[str] = []
            files: list[str] = []
            for entry in sorted(path.iterdir(), key=lambda p: p.name):
                if not params.show_hidden and entry.name.startswith("."):
                    continue
                if entry.is_dir():
                    dirs.append(f"  {entry.name}/")
                else:
                    files.append(f"  {entry.name} ({entry.stat().st_size} bytes)")

            out = [f"Directory: {_display(ctx, path)}"]
            if not dirs and not files:
                out.append("  (empty)")
            out.extend(dirs)
            out.extend(files)
            out.append(f"\n{len(dirs)} directories, {len(files)} files")
            return ToolResult(success=True, content="\n".join(out))
        except Exception as e:
            log.error("List directory failed", path=params.directory, error=str(e))
            return ToolResult(success=False, error=str(e))


def _compile(pattern: str, ignore_case: bool) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE if ignore_case else 0)
    except re.error as e:
        raise ValueError(f"invalid pattern: {e}") from None


def _context_window(context: int, before: int, after: int) -> tuple[int, int]:
    if context:
        return context, context
    return before, after


def _search_lines(
    lines: list[str],
    regex: re.Pattern[str],
    before: int,
    after: int,
    limit: int,
) -> tuple[list[str], int]:
    """Render matching lines with context; returns (rendered, match count)."""
    rendered: list[str] = []
    matches = 0
    last_printed = -1
    for i, line in enumerate(lines):
        if not regex.search(line):
            continue
        matches += 1
        if matches > limit:
            break
        start = max(0, i - before, last_printed + 1)
        if rendered and start > last_printed + 1:
            rendered.append("--")
        for j in range(start, min(len(lines), i + after + 1)):
            marker = ":" if j == i else "-"
            rendered.append(f"{j + 1}{marker} {lines[j]}")
            last_printed = j
    return rendered, min(matches, limit)


class GrepFileParams(BaseModel):
    file_path: str = Field(description="File to search")
    pattern: str = Field(description="Regular expression to search for")
    ignore_case: bool = False
    context: int = Field(default=0, ge=0, le=20, description="Lines of context before and after each match")
    before_context: int = Field(default=0, ge=0, le=20)
    after_context: int = Field(default=0, ge=0, le=20)
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1, le=1000)


class GrepFileTool(Tool):
    """Search inside one file."""

    name = "grep_file"
    description = "Search a single file for a regular expression and show matching lines with optional context."
    params_model = GrepFileParams
    timeout_seconds = 30.0

    async def execute(self, params: GrepFileParams, ctx: ToolContext) -> ToolResult:
        try:
            path = resolve_in_workdir(ctx, params.file_path)
            if not path.is_file():
                return ToolResult(success=False, error=f"File not found: {params.file_path}")
            if path.stat().st_size > DEFAULT_MAX_FILE_SIZE:
                return ToolResult(success=False, error=f"File too large to search: {params.file_path}")
            regex = _compile(params.pattern, params.ignore_case)
            before, after = _context_window(params.context, params.before_context, params.after_context)
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
            rendered, matches = _search_lines(lines, regex, before, after, params.max_results)
            if not matches:
                return ToolResult(success=True, content=f"No matches for '{params.pattern}' in {params.file_path}")
            header = f"{matches} match(es) for '{params.pattern}' in {_display(ctx, path)}:"
            return ToolResult(success=True, content="\n".join([header, *rendered]))
        except Exception as e:
            return ToolResult(success=False, error=str(e))


class GrepDirectoryParams(BaseModel):
    directory: str = Field(default=".", description="Directory to search")
    pattern: str = Field(description="Regular expression to search for")
    recursive: bool = Field(default=False, description="Descend into subdirectories")
    file_pattern: str = Field(default="", description="Glob filter on file names, e.g. '*.py'")
    ignore_case: bool = False
    context: int = Field(default=0, ge=0, le=10)
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1, le=1000)


class GrepDirectoryTool(Tool):
    """Search files under a directory within a time budget.

    The scan stops when ``max_results`` matches are found or the search budget
    runs out, and reports what it found so far.
    """

    name = "grep_directory"
    description = (
        "Search files in a directory for a regular expression. Skips .git, "
        "node_modules, vendor and build output directories."
    )
    params_model = GrepDirectoryParams

    def __init__(self, search_timeout: float = DEFAULT_GREP_TIMEOUT):
        self.search_timeout = search_timeout
        self.timeout_seconds = search_timeout + 5.0

    def _scan(self, root: Path, params: GrepDirectoryParams, ctx: ToolContext) -> tuple[list[str], int, bool]:
        regex = _compile(params.pattern, params.ignore_case)
        deadline = time.monotonic() + self.search_timeout
        rendered: list[str] = []
        total = 0
        timed_out = False

        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRECTORIES)
            if not params.recursive:
                dirnames[:] = []
            for filename in sorted(filenames):
                if time.monotonic() > deadline:
                    timed_out = True
                    return rendered, total, timed_out
                if params.file_pattern and not fnmatch.fnmatch(filename, params.file_pattern):
                    continue
                path = Path(dirpath) / filename
                try:
                    if path.stat().st_size > DEFAULT_MAX_FILE_SIZE or _is_binary(path):
                        continue
                    lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
                except OSError:
                    continue
                hits, count = _search_lines(
                    lines, regex, params.context, params.context, params.max_results - total
                )
                if count:
                    rendered.append(f"{_display(ctx, path)}:")
                    rendered.extend(f"  {line}" for line in hits)
                    total += count
                if total >= params.max_results:
                    return rendered, total, timed_out
        return rendered, total, timed_out

    async def execute(self, params: GrepDirectoryParams, ctx: ToolContext) -> ToolResult:
        try:
            root = resolve_in_workdir(ctx, params.directory)
            if not root.is_dir():
                return ToolResult(success=False, error=f"Not a directory: {params.directory}")
            rendered, total, timed_out = await asyncio.to_thread(self._scan, root, params, ctx)
        except Exception as e:
            return ToolResult(success=False, error=str(e))

        if not total:
            note = " (search budget exhausted)" if timed_out else ""
            return ToolResult(success=True, content=f"No matches for '{params.pattern}'{note}")
        out = [f"{total} match(es) for '{params.pattern}':", *rendered]
        if total >= params.max_results:
            out.append(f"Results limited to {params.max_results}; narrow the search for more.")
        if timed_out:
            out.append(f"Search stopped after {self.search_timeout:g}s; results are partial.")
        return ToolResult(success=True, content="\n".join(out))


def glob_match(pattern: str, rel_path: str) -> bool:
    """Match a slash-separated path against a glob where ``**`` spans directories."""
    return _match_parts(pattern.split("/"), rel_path.split("/"))


def _match_parts(pattern: list[str], parts: list[str]) -> bool:
    if not pattern:
        return not parts
    if pattern[0] == "**":
        return _match_parts(pattern[1:], parts) or (bool(parts) and _match_parts(pattern, parts[1:]))
    if not parts or not fnmatch.fnmatchcase(parts[0], pattern[0]):
        return False
    return _match_parts(pattern[1:], parts[1:])


class ListFilesParams(BaseModel):
    pattern: str = Field(description="Glob such as '*.py', 'test_*.go' or 'src/**/*.ts'")
    path: str = Field(default=".", description="Directory to search from")
    exclude_dirs: list[str] = Field(default_factory=list, description="Extra directory names to skip")
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1, le=1000)


class ListFilesTool(Tool):
    """Find files by name pattern.

    A pattern without a slash is matched against file names; one with a slash
    against the path relative to ``path``.
    """

    name = "list_files"
    description = (
        "Find files whose name or relative path matches a glob pattern. "
        "'*' stays within a directory, '**' crosses directories. Skips .git, "
        "node_modules, vendor and build output directories."
    )
    params_model = ListFilesParams
    timeout_seconds = 30.0

    def _scan(self, root: Path, params: ListFilesParams) -> tuple[list[str], int]:
        excluded = EXCLUDED_DIRECTORIES | set(params.exclude_dirs)
        by_name = "/" not in params.pattern
        matches: list[str] = []
        scanned = 0
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in excluded)
            for filename in sorted(filenames):
                scanned += 1
                rel = (Path(dirpath) / filename).relative_to(root).as_posix()
                hit = fnmatch.fnmatchcase(filename, params.pattern) if by_name else glob_match(params.pattern, rel)
                if hit:
                    matches.append(rel)
                    if len(matches) >= params.max_results:
                        return sorted(matches), scanned
        return sorted(matches), scanned

    async def execute(self, params: ListFilesParams, ctx: ToolContext) -> ToolResult:
        if not params.pattern.strip():
            return ToolResult(success=False, error="pattern is required")
        try:
            root = resolve_in_workdir(ctx, params.path)
            if not root.is_dir():
                return ToolResult(success=False, error=f"Not a directory: {params.path}")
            matches, scanned = await asyncio.to_thread(self._scan, root, params)
        except Exception as e:
            return ToolResult(success=False, error=str(e))

        limited = len(matches) >= params.max_results
        out = [
            f"Pattern: {params.pattern}",
            f"Search path: {_display(ctx, root)}",
            f"Matches: {len(matches)}" + (f" (limited to {params.max_results})" if limited else ""),
            f"Files scanned: {scanned}",
            "",
        ]
        if not matches:
            out.append("No files found matching the pattern.")
        else:
            out.extend(f"  {match}" for match in matches)
        return ToolResult(success=True, content="\n".join(out))
