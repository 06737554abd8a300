"""Custom exceptions for gitbuddy."""


class GitBuddyError(Exception):
    """Base exception for gitbuddy."""

    pass


class ConfigurationError(GitBuddyError):
    """Configuration-related errors."""

    pass


class LLMError(GitBuddyError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMTransportError(LLMError):
    """Connection or stream failure while talking to the model."""

    pass


class ProtocolViolationError(LLMError):
    """Model answered without the tool call the agent requires."""

    def __init__(self, agent_kind: str, content: str = ""):
        super().__init__(f"Agent '{agent_kind}' expected a tool call but received none")
        self.agent_kind = agent_kind
        self.content = content


class ToolError(GitBuddyError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class GitError(GitBuddyError):
    """A git command exited with an error."""

    def __init__(self, args: list[str], returncode: int, stderr: str = ""):
        command = " ".join(["git", *args])
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"{command}: {detail}")
        self.returncode = returncode
        self.stderr = stderr


class NoStagedChangesError(GitBuddyError):
    """Nothing is staged for the command to work on."""

    def __init__(self) -> None:
        super().__init__("No staged changes found. Stage files with 'git add' first.")


class NoCommitsError(GitBuddyError):
    """The requested history range is empty."""

    def __init__(self) -> None:
        super().__init__("No commits found for the specified period.")


class BranchComparisonError(GitBuddyError):
    """Two branches cannot be compared for a pull request."""

    def __init__(self, base: str, head: str, reason: str) -> None:
        super().__init__(f"Cannot compare '{head}' with '{base}': {reason}")
        self.base = base
        self.head = head


class SessionError(GitBuddyError):
    """Session-related errors."""

    pass


class SessionNotFoundError(SessionError):
    """Session not found."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionValidationError(SessionError):
    """Session is missing required fields or has invalid values."""

    pass


class SessionTooLargeError(SessionError):
    """Serialized session exceeds the configured size cap."""

    def __init__(self, session_id: str, size: int, limit: int):
        super().__init__(
            f"Session {session_id} is too large: {size} bytes (limit {limit} bytes)"
        )
        self.session_id = session_id
        self.size = size
        self.limit = limit


class SessionCorruptError(SessionError):
    """Session file exists but cannot be decoded."""

    def __init__(self, session_id: str, message: str):
        super().__init__(f"Session {session_id} is corrupt: {message}")
        self.session_id = session_id
