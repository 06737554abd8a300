from pathlib import Path

import pytest
import yaml
from rich.console import Console
from typer.testing import CliRunner

from gitbuddy.cli import TerminalUI, set_ui
from gitbuddy.git import GitExecutor
from gitbuddy.main import _create_commit, app
from gitbuddy.results import CommitInfo

runner = CliRunner()


class CommitRecorder(GitExecutor):
    def __init__(self, work_dir: Path):
        super().__init__(work_dir)
        self.calls: list[tuple[str, ...]] = []

    async def run(self, *args: str) -> str:
        self.calls.append(args)
        return ""


@pytest.fixture
def ui():
    terminal = TerminalUI(Console(record=True, width=200, no_color=True))
    set_ui(terminal)
    yield terminal
    set_ui(None)


@pytest.mark.asyncio
async def test_create_commit_asks_before_committing(tmp_path: Path, ui, monkeypatch):
    questions = []
    monkeypatch.setattr(ui, "confirm", lambda message, default=False: questions.append(message) or True)
    git = CommitRecorder(tmp_path)
    commit = CommitInfo(type="fix", description="close rows", body="Avoids a leak.")

    assert await _create_commit(git, commit, yes=False) is True
    assert questions == ["Commit with this message?"]
    assert git.calls == [("commit", "-m", "fix: close rows\n\nAvoids a leak.")]
    assert "Commit created." in ui.console.export_text()


@pytest.mark.asyncio
async def test_create_commit_declined_leaves_repository_alone(tmp_path: Path, ui, monkeypatch):
    monkeypatch.setattr(ui, "confirm", lambda message, default=False: False)
    git = CommitRecorder(tmp_path)

    assert await _create_commit(git, CommitInfo(type="docs", description="update readme"), yes=False) is False
    assert git.calls == []
    assert "Commit cancelled." in ui.console.export_text()


@pytest.mark.asyncio
async def test_create_commit_with_yes_skips_the_question(tmp_path: Path, ui, monkeypatch):
    def refuse(message, default=False):
        raise AssertionError("should not ask")

    monkeypatch.setattr(ui, "confirm", refuse)
    git = CommitRecorder(tmp_path)

    assert await _create_commit(git, CommitInfo(type="chore", description="bump deps"), yes=True) is True
    assert git.calls == [("commit", "-m", "chore: bump deps")]


def test_init_writes_default_config_once(tmp_path: Path):
    set_ui(TerminalUI(Console(width=400, no_color=True)))
    target = tmp_path / "gitbuddy" / "config.yaml"
    try:
        created = runner.invoke(app, ["init", "--path", str(target)])
        assert created.exit_code == 0
        assert "Configuration file created" in created.output
        data = yaml.safe_load(target.read_text(encoding="utf-8"))
        assert data["agent"]["max_iterations"] == 50

        target.write_text("ui:\n  language: ko\n", encoding="utf-8")
        again = runner.invoke(app, ["init", "--path", str(target)])
        assert again.exit_code == 1
        assert "Use --force to overwrite" in again.output
        assert target.read_text(encoding="utf-8") == "ui:\n  language: ko\n"

        forced = runner.invoke(app, ["init", "--path", str(target), "--force"])
        assert forced.exit_code == 0
        assert yaml.safe_load(target.read_text(encoding="utf-8"))["ui"]["language"] == "en"
    finally:
        set_ui(None)
