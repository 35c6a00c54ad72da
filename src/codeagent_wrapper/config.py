"""Runtime configuration for the code agent wrapper."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from codeagent_wrapper.orchestrator.errors import ConfigurationError
from codeagent_wrapper.orchestrator.models import DEFAULT_TIMEOUT_SECONDS

_TIMEOUT_MILLISECONDS_THRESHOLD = 10_000


@dataclass(slots=True)
class ExecutionSettings:
    """Per-task execution defaults."""

    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    skip_permissions: bool = False
    graceful_kill_seconds: float = 2.0


@dataclass(slots=True)
class RoutingSettings:
    """Backend/model/agent defaults applied when a task names none."""

    backend: str | None = None
    model: str | None = None
    agent: str | None = None


@dataclass(slots=True)
class OutputSettings:
    """Progress output on stderr."""

    quiet: bool = False
    ascii_mode: bool = False


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    home: Path = field(default_factory=lambda: Path("~/.codeagent").expanduser())
    max_parallel_workers: int | None = None
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    routing: RoutingSettings = field(default_factory=RoutingSettings)
    output: OutputSettings = field(default_factory=OutputSettings)

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    @classmethod
    def from_env(cls, home: Path | None = None) -> Settings:
        """Load settings from environment variables with local defaults."""

        return cls(
            home=home or Path(os.getenv("CODEAGENT_HOME", "~/.codeagent")).expanduser(),
            max_parallel_workers=_env_optional_int("CODEAGENT_MAX_PARALLEL_WORKERS"),
            execution=ExecutionSettings(
                timeout_seconds=_env_timeout("CODEX_TIMEOUT"),
                skip_permissions=_env_bool("CODEAGENT_SKIP_PERMISSIONS", default=False),
            ),
            routing=RoutingSettings(
                backend=_env_optional_str("CODEAGENT_BACKEND"),
                model=_env_optional_str("CODEAGENT_MODEL"),
                agent=_env_optional_str("CODEAGENT_AGENT"),
            ),
            output=OutputSettings(
                quiet=_env_bool("CODEAGENT_QUIET", default=False),
                ascii_mode=_env_bool("CODEAGENT_ASCII_MODE", default=False),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values no run can use."""

        if self.execution.timeout_seconds <= 0:
            raise ConfigurationError("CODEX_TIMEOUT must be > 0.")
        if self.max_parallel_workers is not None and self.max_parallel_workers <= 0:
            raise ConfigurationError("CODEAGENT_MAX_PARALLEL_WORKERS must be a positive integer.")
        if self.execution.graceful_kill_seconds < 0:
            raise ConfigurationError("Graceful kill period must be >= 0.")


def parse_timeout(raw: str) -> float:
    """Parse a timeout value; values above 10000 are taken as milliseconds."""

    try:
        value = int(raw.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid timeout value: {raw!r}") from error
    if value > _TIMEOUT_MILLISECONDS_THRESHOLD:
        return value / 1000
    return float(value)


def _env_timeout(name: str) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return DEFAULT_TIMEOUT_SECONDS
    return parse_timeout(value)


def _env_optional_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {value!r}") from error


def _env_optional_str(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"", "0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")
