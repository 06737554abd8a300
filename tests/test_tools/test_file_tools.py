from pathlib import Path

import pytest

from gitbuddy.tools.files import (
    GrepDirectoryParams,
    GrepDirectoryTool,
    GrepFileParams,
    GrepFileTool,
    ListDirectoryParams,
    ListDirectoryTool,
    ListFilesParams,
    ListFilesTool,
    ReadFileParams,
    ReadFileTool,
    glob_match,
)
from gitbuddy.tools.registry import ToolContext


def _ctx(tmp_path: Path) -> ToolContext:
    return ToolContext(work_dir=tmp_path)


@pytest.mark.asyncio
async def test_read_file_returns_numbered_lines(tmp_path: Path):
    (tmp_path / "main.go").write_text("package main\n\nfunc main() {}\n", encoding="utf-8")

    result = await ReadFileTool().execute(ReadFileParams(file_path="main.go"), _ctx(tmp_path))

    assert result.success is True
    assert result.content.splitlines()[0] == "File: main.go (lines 1-3 of 3)"
    assert "3 | func main() {}" in result.content


@pytest.mark.asyncio
async def test_read_file_range_and_continuation_hint(tmp_path: Path):
    (tmp_path / "big.txt").write_text("\n".join(f"line{i}" for i in range(1, 11)), encoding="utf-8")

    result = await ReadFileTool().execute(
        ReadFileParams(file_path="big.txt", start_line=3, end_line=4), _ctx(tmp_path)
    )

    assert " 3 | line3" in result.content or "3 | line3" in result.content
    assert "line5" not in result.content
    assert "use start_line=5 to continue" in result.content


@pytest.mark.asyncio
async def test_read_file_caps_lines_per_read(tmp_path: Path):
    (tmp_path / "big.txt").write_text("\n".join("x" for _ in range(50)), encoding="utf-8")

    result = await ReadFileTool(max_lines_per_read=10).execute(
        ReadFileParams(file_path="big.txt", start_line=1, end_line=50), _ctx(tmp_path)
    )

    assert "(lines 1-10 of 50)" in result.content
    assert "output truncated to 10 lines" in result.content


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("params", "error"),
    [
        (ReadFileParams(file_path="missing.txt"), "File not found"),
        (ReadFileParams(file_path="../outside.txt"), "outside the working directory"),
        (ReadFileParams(file_path="sub"), "Not a file"),
        (ReadFileParams(file_path="blob.bin"), "Binary file not supported"),
        (ReadFileParams(file_path="small.txt", start_line=5), "exceeds file length"),
        (ReadFileParams(file_path="small.txt", start_line=2, end_line=1), "end_line must not be before"),
    ],
)
async def test_read_file_errors(tmp_path: Path, params, error):
    (tmp_path / "sub").mkdir()
    (tmp_path / "blob.bin").write_bytes(b"\x00\x01\x02")
    (tmp_path / "small.txt").write_text("a\nb\n", encoding="utf-8")

    result = await ReadFileTool().execute(params, _ctx(tmp_path))

    assert result.success is False
    assert error in result.error


@pytest.mark.asyncio
async def test_list_directory_hides_dotfiles_by_default(tmp_path: Path):
    (tmp_path / "pkg").mkdir()
    (tmp_path / "a.txt").write_text("hello", encoding="utf-8")
    (tmp_path / ".env").write_text("SECRET=1", encoding="utf-8")

    hidden = await ListDirectoryTool().execute(ListDirectoryParams(), _ctx(tmp_path))
    shown = await ListDirectoryTool().execute(ListDirectoryParams(show_hidden=True), _ctx(tmp_path))

    assert "  pkg/" in hidden.content
    assert "  a.txt (5 bytes)" in hidden.content
    assert ".env" not in hidden.content
    assert ".env" in shown.content
    assert "1 directories, 1 files" in hidden.content


@pytest.mark.asyncio
async def test_grep_file_with_context(tmp_path: Path):
    (tmp_path / "app.py").write_text("a\nb\nTARGET\nc\nd\n", encoding="utf-8")

    result = await GrepFileTool().execute(
        GrepFileParams(file_path="app.py", pattern="target", ignore_case=True, context=1), _ctx(tmp_path)
    )

    assert result.content.splitlines() == [
        "1 match(es) for 'target' in app.py:",
        "2- b",
        "3: TARGET",
        "4- c",
    ]


@pytest.mark.asyncio
async def test_grep_file_invalid_pattern(tmp_path: Path):
    (tmp_path / "app.py").write_text("x\n", encoding="utf-8")

    result = await GrepFileTool().execute(GrepFileParams(file_path="app.py", pattern="("), _ctx(tmp_path))

    assert result.success is False
    assert "invalid pattern" in result.error


@pytest.mark.asyncio
async def test_grep_directory_recursion_and_exclusions(tmp_path: Path):
    (tmp_path / "src").mkdir()
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "top.go").write_text("func Login() {}\n", encoding="utf-8")
    (tmp_path / "src" / "auth.go").write_text("// Login handler\nfunc Login() {}\n", encoding="utf-8")
    (tmp_path / "src" / "notes.md").write_text("Login docs\n", encoding="utf-8")
    (tmp_path / "node_modules" / "dep.go").write_text("Login\n", encoding="utf-8")

    flat = await GrepDirectoryTool().execute(GrepDirectoryParams(pattern="Login"), _ctx(tmp_path))
    deep = await GrepDirectoryTool().execute(
        GrepDirectoryParams(pattern="Login", recursive=True, file_pattern="*.go"), _ctx(tmp_path)
    )

    assert flat.content.startswith("1 match(es)")
    assert "top.go:" in flat.content
    assert deep.content.startswith("3 match(es)")
    assert "src/auth.go:" in deep.content
    assert "notes.md" not in deep.content
    assert "node_modules" not in deep.content


@pytest.mark.asyncio
async def test_grep_directory_limits_results(tmp_path: Path):
    (tmp_path / "many.txt").write_text("hit\n" * 20, encoding="utf-8")

    result = await GrepDirectoryTool().execute(
        GrepDirectoryParams(pattern="hit", max_results=5), _ctx(tmp_path)
    )

    assert result.content.startswith("5 match(es)")
    assert "Results limited to 5" in result.content


@pytest.mark.asyncio
async def test_grep_directory_no_matches(tmp_path: Path):
    (tmp_path / "a.txt").write_text("nothing\n", encoding="utf-8")

    result = await GrepDirectoryTool().execute(GrepDirectoryParams(pattern="absent"), _ctx(tmp_path))

    assert result.content == "No matches for 'absent'"


@pytest.mark.parametrize(
    ("pattern", "path", "expected"),
    [
        ("**/*.go", "main.go", True),
        ("**/*.go", "internal/agent/loop.go", True),
        ("internal/**/*_test.go", "internal/agent/loop_test.go", True),
        ("internal/*.go", "internal/agent/loop.go", False),
        ("cmd/**", "cmd/gitbuddy/main.go", True),
    ],
)
def test_glob_match_handles_double_star(pattern, path, expected):
    assert glob_match(pattern, path) is expected


def _tree(root: Path) -> None:
    for rel in ("main.go", "internal/agent/loop.go", "internal/agent/loop_test.go", "node_modules/x/y.go", "README.md"):
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x\n", encoding="utf-8")


@pytest.mark.asyncio
async def test_list_files_matches_names_and_skips_excluded_dirs(tmp_path: Path):
    _tree(tmp_path)

    result = await ListFilesTool().execute(ListFilesParams(pattern="*.go"), _ctx(tmp_path))

    assert result.success is True
    assert "Matches: 3" in result.content
    assert "  internal/agent/loop.go" in result.content
    assert "  main.go" in result.content
    assert "node_modules" not in result.content


@pytest.mark.asyncio
async def test_list_files_relative_pattern_and_limit(tmp_path: Path):
    _tree(tmp_path)

    nested = await ListFilesTool().execute(ListFilesParams(pattern="internal/**/*_test.go"), _ctx(tmp_path))
    limited = await ListFilesTool().execute(ListFilesParams(pattern="*.go", max_results=1), _ctx(tmp_path))

    assert "Matches: 1" in nested.content
    assert "  internal/agent/loop_test.go" in nested.content
    assert "(limited to 1)" in limited.content


@pytest.mark.asyncio
async def test_list_files_honours_extra_exclusions_and_reports_empty(tmp_path: Path):
    _tree(tmp_path)

    result = await ListFilesTool().execute(
        ListFilesParams(pattern="*_test.go", exclude_dirs=["internal"]), _ctx(tmp_path)
    )
    outside = await ListFilesTool().execute(ListFilesParams(pattern="*.go", path="../"), _ctx(tmp_path))

    assert "No files found matching the pattern." in result.content
    assert outside.success is False
    assert "outside the working directory" in outside.error
