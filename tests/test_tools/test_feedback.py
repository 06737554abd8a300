import json
from pathlib import Path

import pytest

from gitbuddy.tools.feedback import RequestFeedbackParams, RequestFeedbackTool
from gitbuddy.tools.registry import ToolContext


class DummyUser:
    def __init__(self, answer: str):
        self.answer = answer
        self.questions: list[tuple[str, list[str]]] = []

    async def __call__(self, question: str, options: list[str]) -> str:
        self.questions.append((question, options))
        return self.answer


def _params(**overrides) -> RequestFeedbackParams:
    data = {"question": "Which service?", "options": ["auth", "billing"]}
    data.update(overrides)
    return RequestFeedbackParams(**data)


@pytest.mark.asyncio
async def test_non_interactive_run_fails_softly(tmp_path: Path):
    user = DummyUser("1")
    ctx = ToolContext(work_dir=tmp_path, interactive=False, ask_user=user)

    result = await RequestFeedbackTool().execute(_params(), ctx)

    assert result.success is False
    assert "non-interactive mode" in result.error
    assert user.questions == []


@pytest.mark.asyncio
@pytest.mark.parametrize(("answer", "index"), [("2", 1), (" Billing ", 1), ("auth", 0)])
async def test_answer_by_number_or_text(tmp_path: Path, answer, index):
    user = DummyUser(answer)
    ctx = ToolContext(work_dir=tmp_path, interactive=True, ask_user=user)

    result = await RequestFeedbackTool().execute(_params(context="Two services log the error."), ctx)

    payload = json.loads(result.content)
    assert payload == {
        "question": "Which service?",
        "selected_option": ["auth", "billing"][index],
        "selected_index": index,
    }
    assert user.questions[0][0] == "Two services log the error.\n\nWhich service?"


@pytest.mark.asyncio
@pytest.mark.parametrize("answer", ["3", "0", "payments"])
async def test_unmatched_answer_fails(tmp_path: Path, answer):
    ctx = ToolContext(work_dir=tmp_path, interactive=True, ask_user=DummyUser(answer))

    result = await RequestFeedbackTool().execute(_params(), ctx)

    assert result.success is False
    assert "does not match any option" in result.error


def test_feedback_requires_two_options():
    with pytest.raises(ValueError):
        RequestFeedbackTool().decode('{"question": "q", "options": ["only"]}')


def test_feedback_has_no_timeout():
    assert RequestFeedbackTool.timeout_seconds is None
