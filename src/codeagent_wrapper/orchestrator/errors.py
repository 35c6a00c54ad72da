"""Error taxonomy and process exit codes for the orchestrator."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes reported by the CLI."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    INVALID_ARGUMENT = 2
    BACKEND_NOT_FOUND = 3
    BACKEND_FAILED = 4
    TIMEOUT = 5


class CodeagentError(Exception):
    """Base class for errors that end a run with a specific exit code."""

    exit_code: int = ExitCode.GENERAL_ERROR
    category: str = "unknown"


class ConfigurationError(CodeagentError):
    """Invalid user input detected before any process is spawned."""

    exit_code = ExitCode.INVALID_ARGUMENT
    category = "configuration"


class InvalidSessionIdError(ConfigurationError):
    """Session identifier does not match the allowed format."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Invalid session ID: {session_id!r}. "
            "Expected 1-128 characters from [A-Za-z0-9_-].",
        )
        self.session_id = session_id


class PromptFileError(ConfigurationError):
    """Referenced prompt file could not be read."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to load prompt file: {path} ({reason})")
        self.path = path


class UnknownAgentError(ConfigurationError):
    """Agent preset name is not defined."""

    def __init__(self, name: str, available: tuple[str, ...]) -> None:
        super().__init__(f"Unknown agent: {name}. Available: {', '.join(available)}")
        self.name = name


class BatchFormatError(ConfigurationError):
    """A batch input line could not be turned into a task spec."""

    def __init__(self, line_no: int, reason: str) -> None:
        super().__init__(f"Invalid task on line {line_no}: {reason}")
        self.line_no = line_no


class BackendError(CodeagentError):
    """Backend selection failed."""

    exit_code = ExitCode.BACKEND_NOT_FOUND
    category = "backend"


class UnknownBackendError(BackendError):
    """Backend name is not one of the supported backends."""

    def __init__(self, name: str, available: tuple[str, ...]) -> None:
        super().__init__(f"Unknown backend: {name}. Available: {', '.join(available)}")
        self.name = name


class BackendUnavailableError(BackendError):
    """No executable for the requested backend(s) is installed."""

    def __init__(self, name: str, install_hint: str) -> None:
        super().__init__(f"Backend '{name}' is not available. Please install: {install_hint}")
        self.name = name


class BackendSpawnError(CodeagentError):
    """Backend process could not be started."""

    exit_code = ExitCode.BACKEND_FAILED
    category = "execution"

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class DependencyError(CodeagentError):
    """Batch dependency graph cannot be scheduled."""

    exit_code = ExitCode.INVALID_ARGUMENT
    category = "dependency"

    def __init__(self, message: str, *, task_ids: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.task_ids = task_ids


class StreamParseError(CodeagentError):
    """Problem reading the backend event stream."""

    category = "parse"


class MessageTooLarge(StreamParseError):
    """One output line exceeded the maximum message size."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Message too large: {size} bytes (max: {limit})")
        self.size = size
        self.limit = limit


class StreamIOError(StreamParseError):
    """Underlying stream failed; no more events can be read."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"IO error: {reason}")
