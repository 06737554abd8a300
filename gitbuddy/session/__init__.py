"""Session persistence as one JSON file per session id."""

import json
import os
import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable

from gitbuddy.config import get_config
from gitbuddy.exceptions import (
    SessionCorruptError,
    SessionNotFoundError,
    SessionTooLargeError,
    SessionValidationError,
)
from gitbuddy.llm import Message, TokenUsage
from gitbuddy.logging import get_logger

log = get_logger(__name__)

AGENT_KINDS = ("commit", "review", "debug", "report")
DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return _utcnow().isoformat()


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def generate_session_id(agent_kind: str, now: datetime | None = None) -> str:
    """Build ``<kind>-YYYY-MM-DD-HHMMSS-<4 hex>``."""
    stamp = (now or _utcnow()).strftime("%Y-%m-%d-%H%M%S")
    return f"{agent_kind}-{stamp}-{uuid.uuid4().hex[:4]}"


@dataclass
class Session:
    """Full resumable state of one agent run."""

    id: str
    agent_kind: str
    request: dict[str, Any] = field(default_factory=dict)
    messages: list[Message] = field(default_factory=list)
    plan: dict[str, Any] | None = None
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    iteration_count: int = 0
    max_iterations: int = 0
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)

    @classmethod
    def new(cls, agent_kind: str, request: dict[str, Any] | None = None, max_iterations: int = 0) -> "Session":
        """Create a fresh session with a generated id."""
        return cls(
            id=generate_session_id(agent_kind),
            agent_kind=agent_kind,
            request=dict(request or {}),
            max_iterations=max_iterations,
        )

    def validate(self) -> None:
        """Raise SessionValidationError if required fields are missing or invalid."""
        if not self.id:
            raise SessionValidationError("session id is required")
        if not _SESSION_ID_RE.match(self.id):
            raise SessionValidationError(f"invalid session id: {self.id!r}")
        if self.agent_kind not in AGENT_KINDS:
            raise SessionValidationError(
                f"unknown agent kind '{self.agent_kind}', must be one of: {', '.join(AGENT_KINDS)}"
            )
        if not self.created_at:
            raise SessionValidationError("session created_at is required")
        try:
            _parse_timestamp(self.created_at)
        except ValueError as e:
            raise SessionValidationError(f"invalid created_at: {self.created_at!r}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "agent_kind": self.agent_kind,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "request": self.request,
            "messages": [msg.to_dict() for msg in self.messages],
            "plan": self.plan,
            "token_usage": self.token_usage.to_dict(),
            "iteration_count": self.iteration_count,
            "max_iterations": self.max_iterations,
            "metadata": {str(k): str(v) for k, v in self.metadata.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create from dictionary."""
        return cls(
            id=str(data["id"]),
            agent_kind=str(data["agent_kind"]),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
            request=dict(data.get("request") or {}),
            messages=[Message.from_dict(item) for item in data.get("messages") or []],
            plan=data.get("plan"),
            token_usage=TokenUsage.from_dict(data.get("token_usage")),
            iteration_count=int(data.get("iteration_count", 0) or 0),
            max_iterations=int(data.get("max_iterations", 0) or 0),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
        )


@dataclass
class SessionInfo:
    """Lightweight listing entry."""

    id: str
    agent_kind: str
    created_at: str
    updated_at: str
    iteration_count: int
    message_count: int
    size_bytes: int


class SessionStore:
    """Stores sessions as ``<directory>/<id>.json``.

    Single writer per session id; callers must serialize concurrent runs that
    share an id.
    """

    def __init__(
        self,
        directory: Path | str | None = None,
        max_size_bytes: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize session store.

        Args:
            directory: Storage directory; defaults to ``config.session.path``
            max_size_bytes: Largest serialized session accepted by ``save``
            clock: Source of ``updated_at`` timestamps
        """
        if directory is None or max_size_bytes is None:
            config = get_config()
            if directory is None:
                directory = config.sessions_dir()
            if max_size_bytes is None:
                max_size_bytes = config.session.max_size_bytes
        self.directory = Path(directory).expanduser()
        self.max_size_bytes = max_size_bytes
        self._clock = clock

    def _path(self, session_id: str) -> Path:
        if not session_id or not _SESSION_ID_RE.match(session_id):
            raise SessionValidationError(f"invalid session id: {session_id!r}")
        return self.directory / f"{session_id}.json"

    def save(self, session: Session) -> Path:
        """Validate, stamp ``updated_at`` and write the session.

        Oversized sessions are rejected with SessionTooLargeError rather
        than truncated; the file on disk is left as it was.
        """
        session.validate()
        previous = session.updated_at
        session.updated_at = self._clock().isoformat()
        payload = json.dumps(session.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
        if len(payload) > self.max_size_bytes:
            session.updated_at = previous
            raise SessionTooLargeError(session.id, len(payload), self.max_size_bytes)

        path = self._path(session.id)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_bytes(payload)
        os.replace(tmp_path, path)
        log.debug("Session saved", session_id=session.id, size_bytes=len(payload))
        return path

    def load(self, session_id: str) -> Session:
        path = self._path(session_id)
        if not path.is_file():
            raise SessionNotFoundError(session_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            session = Session.from_dict(data)
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError, ValueError) as e:
            raise SessionCorruptError(session_id, str(e)) from e
        session.validate()
        return session

    def exists(self, session_id: str) -> bool:
        try:
            return self._path(session_id).is_file()
        except SessionValidationError:
            return False

    def delete(self, session_id: str) -> None:
        path = self._path(session_id)
        if not path.is_file():
            raise SessionNotFoundError(session_id)
        path.unlink()
        log.info("Session deleted", session_id=session_id)

    def list(self) -> list[SessionInfo]:
        """Summaries of all readable sessions, most recently updated first.

        Files that fail to load are skipped.
        """
        if not self.directory.is_dir():
            return []
        infos: list[SessionInfo] = []
        for path in self.directory.glob("*.json"):
            try:
                session = self.load(path.stem)
                size = path.stat().st_size
            except Exception as e:
                log.debug("Skipping unreadable session", path=str(path), error=str(e))
                continue
            infos.append(SessionInfo(
                id=session.id,
                agent_kind=session.agent_kind,
                created_at=session.created_at,
                updated_at=session.updated_at,
                iteration_count=session.iteration_count,
                message_count=len(session.messages),
                size_bytes=size,
            ))
        infos.sort(key=_sort_key, reverse=True)
        return infos

    def cleanup_old(self, max_keep: int) -> int:
        """Delete the oldest sessions beyond ``max_keep``.

        Returns:
            Number of sessions deleted. Per-session failures are logged and
            skipped.
        """
        max_keep = max(0, max_keep)
        deleted = 0
        for info in self.list()[max_keep:]:
            try:
                self.delete(info.id)
                deleted += 1
            except Exception as e:
                log.warning("Failed to delete old session", session_id=info.id, error=str(e))
        return deleted


def _sort_key(info: SessionInfo) -> datetime:
    try:
        return _parse_timestamp(info.updated_at)
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)


# Global session store instance
_session_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """Get the global session store instance."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
    return _session_store


def set_session_store(store: SessionStore) -> None:
    """Set the global session store instance."""
    global _session_store
    _session_store = store
