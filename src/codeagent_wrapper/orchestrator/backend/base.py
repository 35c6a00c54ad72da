"""Descriptors for the supported external agent CLIs."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from enum import Enum

from codeagent_wrapper.orchestrator.errors import BackendUnavailableError, UnknownBackendError
from codeagent_wrapper.orchestrator.models import RunConfig


class BackendKind(str, Enum):
    """Closed set of backends the wrapper knows how to drive."""

    CODEX = "codex"
    CLAUDE = "claude"
    GEMINI = "gemini"
    OPENCODE = "opencode"


SUPPORTED_BACKENDS: tuple[str, ...] = tuple(kind.value for kind in BackendKind)
AUTO_DETECT_ORDER = (
    BackendKind.CLAUDE,
    BackendKind.CODEX,
    BackendKind.GEMINI,
    BackendKind.OPENCODE,
)


@dataclass(slots=True, frozen=True)
class BackendDescriptor:
    """Executable name plus argument layout for one backend."""

    kind: BackendKind
    executable: str

    @property
    def name(self) -> str:
        return self.kind.value

    def build_args(self, config: RunConfig, target: str) -> list[str]:
        """Return the argument list (without the executable) for one run."""

        if self.kind is BackendKind.CODEX:
            args = ["e", "-C", str(config.work_dir), "--json"]
            if config.session_id:
                args += ["-r", config.session_id]
            if config.model:
                args += ["-m", config.model]
            if config.reasoning_effort:
                args += ["--reasoning-effort", config.reasoning_effort]
            if config.skip_permissions:
                args.append("--full-auto")
        elif self.kind is BackendKind.CLAUDE:
            args = ["-p", "--output-format", "stream-json"]
            if config.skip_permissions:
                args.append("--dangerously-skip-permissions")
            if config.model:
                args += ["--model", config.model]
            if config.session_id:
                args += ["-r", config.session_id]
            # Keeps a nested claude from loading the settings that launched it.
            args.append("--disable-settings-source")
        elif self.kind is BackendKind.GEMINI:
            args = ["-o", "stream-json", "-y"]
            if config.model:
                args += ["-m", config.model]
            if config.session_id:
                args += ["-r", config.session_id]
        elif self.kind is BackendKind.OPENCODE:
            args = ["run", "--format", "json"]
            if config.model:
                args += ["-m", config.model]
            if config.session_id:
                args += ["-s", config.session_id]
        else:  # pragma: no cover - exhaustive over BackendKind
            raise AssertionError(f"Unhandled backend kind: {self.kind!r}")

        args.append(target)
        return args

    def is_available(self) -> bool:
        """Check whether the executable can be found on PATH."""

        return shutil.which(self.executable) is not None


BACKENDS: dict[BackendKind, BackendDescriptor] = {
    kind: BackendDescriptor(kind=kind, executable=kind.value) for kind in BackendKind
}


def select_backend(name: str | None) -> BackendDescriptor:
    """Resolve a backend by name, or auto-detect the first installed one."""

    if name is not None and name.strip():
        normalized = name.strip().lower()
        try:
            return BACKENDS[BackendKind(normalized)]
        except ValueError as error:
            raise UnknownBackendError(name, SUPPORTED_BACKENDS) from error

    for kind in AUTO_DETECT_ORDER:
        descriptor = BACKENDS[kind]
        if descriptor.is_available():
            return descriptor
    raise BackendUnavailableError("any", "codex, claude, gemini, or opencode")
