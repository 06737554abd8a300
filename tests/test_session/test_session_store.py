import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from gitbuddy.exceptions import (
    SessionCorruptError,
    SessionNotFoundError,
    SessionTooLargeError,
    SessionValidationError,
)
from gitbuddy.llm import Message, TokenUsage, ToolCall
from gitbuddy.session import Session, SessionStore, generate_session_id


class StepClock:
    """Returns a later timestamp on every call."""

    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def _store(tmp_path: Path, max_size_bytes: int = 10_000_000) -> SessionStore:
    return SessionStore(tmp_path / "sessions", max_size_bytes=max_size_bytes, clock=StepClock())


def _session(kind: str = "debug") -> Session:
    session = Session.new(kind, {"problem": "crash on start"}, max_iterations=50)
    session.messages = [
        Message(role="system", content="sys"),
        Message(role="user", content="task"),
        Message(role="assistant", tool_calls=[ToolCall(id="c1", name="read_file", arguments='{"file_path": "a"}')]),
        Message(role="tool", content="body", tool_call_id="c1", tool_name="read_file"),
    ]
    session.plan = {"tasks": [], "current_phase": "execution", "phase_history": [], "last_updated": "x"}
    session.token_usage = TokenUsage(10, 5, 15)
    session.iteration_count = 3
    session.metadata["compressions"] = "1"
    return session


def test_session_id_format():
    session_id = generate_session_id("review", datetime(2024, 5, 1, 9, 30, 15, tzinfo=UTC))

    assert session_id.startswith("review-2024-05-01-093015-")
    assert len(session_id.rsplit("-", 1)[1]) == 4


def test_save_and_load_round_trip(tmp_path: Path):
    store = _store(tmp_path)
    session = _session()

    path = store.save(session)
    loaded = store.load(session.id)

    assert path == tmp_path / "sessions" / f"{session.id}.json"
    assert loaded.to_dict() == session.to_dict()
    assert loaded.messages[2].tool_calls[0].name == "read_file"
    assert loaded.messages[3].tool_call_id == "c1"
    assert not list((tmp_path / "sessions").glob("*.tmp"))


def test_save_stamps_updated_at(tmp_path: Path):
    store = _store(tmp_path)
    session = _session()

    store.save(session)
    first = session.updated_at
    store.save(session)

    assert session.updated_at > first


def test_oversized_session_is_rejected_and_file_kept(tmp_path: Path):
    store = _store(tmp_path)
    session = _session()
    store.save(session)
    original = (tmp_path / "sessions" / f"{session.id}.json").read_text(encoding="utf-8")

    small = SessionStore(tmp_path / "sessions", max_size_bytes=100)
    session.messages.append(Message(role="user", content="x" * 500))
    with pytest.raises(SessionTooLargeError):
        small.save(session)

    assert (tmp_path / "sessions" / f"{session.id}.json").read_text(encoding="utf-8") == original


def test_validation_errors(tmp_path: Path):
    store = _store(tmp_path)
    session = _session()

    session.agent_kind = "chat"
    with pytest.raises(SessionValidationError, match="unknown agent kind"):
        store.save(session)

    session.agent_kind = "debug"
    session.id = "../escape"
    with pytest.raises(SessionValidationError):
        store.save(session)


def test_load_missing_and_corrupt(tmp_path: Path):
    store = _store(tmp_path)
    with pytest.raises(SessionNotFoundError):
        store.load("debug-2024-01-01-000000-abcd")

    directory = tmp_path / "sessions"
    directory.mkdir(parents=True)
    (directory / "debug-broken.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(SessionCorruptError):
        store.load("debug-broken")

    (directory / "debug-nokind.json").write_text(json.dumps({"id": "debug-nokind"}), encoding="utf-8")
    with pytest.raises(SessionCorruptError):
        store.load("debug-nokind")


def test_exists_and_delete(tmp_path: Path):
    store = _store(tmp_path)
    session = _session()
    store.save(session)

    assert store.exists(session.id)
    assert not store.exists("../nope")
    store.delete(session.id)
    assert not store.exists(session.id)
    with pytest.raises(SessionNotFoundError):
        store.delete(session.id)


def test_list_orders_by_update_and_skips_unreadable(tmp_path: Path):
    store = _store(tmp_path)
    older = _session("commit")
    newer = _session("review")
    store.save(older)
    store.save(newer)
    (tmp_path / "sessions" / "garbage.json").write_text("[]", encoding="utf-8")

    infos = store.list()

    assert [info.id for info in infos] == [newer.id, older.id]
    assert infos[0].agent_kind == "review"
    assert infos[0].message_count == 4
    assert infos[0].iteration_count == 3
    assert infos[0].size_bytes > 0


def test_list_on_missing_directory_is_empty(tmp_path: Path):
    assert _store(tmp_path).list() == []


def test_cleanup_old_keeps_most_recent(tmp_path: Path):
    store = _store(tmp_path)
    sessions = [_session() for _ in range(4)]
    for session in sessions:
        store.save(session)

    deleted = store.cleanup_old(2)

    assert deleted == 2
    assert [info.id for info in store.list()] == [sessions[3].id, sessions[2].id]
    assert store.cleanup_old(5) == 0


def test_cleanup_old_skips_sessions_that_fail_to_delete(tmp_path: Path):
    sessions = [_session() for _ in range(4)]
    stuck = sessions[0].id

    class StickyStore(SessionStore):
        def delete(self, session_id: str) -> None:
            if session_id == stuck:
                raise OSError("permission denied")
            super().delete(session_id)

    store = StickyStore(tmp_path / "sessions", max_size_bytes=10_000_000, clock=StepClock())
    for session in sessions:
        store.save(session)

    deleted = store.cleanup_old(1)

    assert deleted == 2
    assert [info.id for info in store.list()] == [sessions[3].id, stuck]
