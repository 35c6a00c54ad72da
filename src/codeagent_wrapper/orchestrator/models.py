"""Domain models for task configuration and execution results."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from codeagent_wrapper.orchestrator.errors import ConfigurationError, InvalidSessionIdError

DEFAULT_TIMEOUT_SECONDS = 7200
EXIT_CODE_SIGNALED = -1

_SESSION_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,128}")


class ExecutionMode(str, Enum):
    """How a backend conversation is started."""

    NEW = "new"
    RESUME = "resume"


class TaskState(str, Enum):
    """Scheduler lifecycle of one task spec."""

    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    DONE = "done"


def is_valid_session_id(value: object) -> bool:
    """Return True for 1-128 characters drawn from [A-Za-z0-9_-]."""

    return isinstance(value, str) and _SESSION_ID_RE.fullmatch(value) is not None


@dataclass(slots=True, frozen=True)
class RunConfig:
    """Settings for exactly one backend invocation."""

    task: str
    work_dir: Path
    mode: ExecutionMode = ExecutionMode.NEW
    session_id: str | None = None
    model: str | None = None
    backend: str | None = None
    agent: str | None = None
    prompt_file: Path | None = None
    reasoning_effort: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    skip_permissions: bool = False
    quiet: bool = False

    def __post_init__(self) -> None:
        if self.mode == ExecutionMode.RESUME:
            if self.session_id is None or not is_valid_session_id(self.session_id):
                raise InvalidSessionIdError(self.session_id or "")
        elif self.session_id is not None:
            raise ConfigurationError("Session ID is only accepted in resume mode.")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("Timeout must be positive.")
        if str(self.work_dir) in {"", "-"}:
            raise ConfigurationError('Working directory cannot be "-" or empty.')


@dataclass(slots=True, frozen=True)
class TaskSpec:
    """One schedulable unit of a batch."""

    id: str
    task: str
    dependencies: tuple[str, ...] = ()
    work_dir: Path | None = None
    session_id: str | None = None
    backend: str | None = None
    model: str | None = None
    agent: str | None = None
    prompt_file: Path | None = None
    skip_permissions: bool = False


@dataclass(slots=True, frozen=True)
class TaskResult:
    """Outcome of one task execution."""

    task_id: str
    success: bool
    exit_code: int
    duration_seconds: float
    session_id: str | None = None
    events: list[Any] = field(default_factory=list)
    message: str = ""
    stderr: str = ""
    files_changed: int | None = None
    coverage: float | None = None
    tests_passed: int | None = None
    tests_failed: int | None = None
    timed_out: bool = False
    cancelled: bool = False
    skipped: bool = False
    error: str | None = None

    @classmethod
    def failed(
        cls,
        *,
        task_id: str,
        exit_code: int,
        error: str,
        skipped: bool = False,
        cancelled: bool = False,
    ) -> TaskResult:
        """Build a result for a task that never produced a process outcome."""

        return cls(
            task_id=task_id,
            success=False,
            exit_code=exit_code,
            duration_seconds=0.0,
            skipped=skipped,
            cancelled=cancelled,
            error=error,
        )
