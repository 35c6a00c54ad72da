"""Controllers for the code agent wrapper CLI commands."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from codeagent_wrapper import logs
from codeagent_wrapper.config import Settings
from codeagent_wrapper.orchestrator.agents import (
    MODELS_FILE_NAME,
    load_agent_catalog,
    write_default_catalog,
)
from codeagent_wrapper.orchestrator.backend.base import AUTO_DETECT_ORDER, BACKENDS
from codeagent_wrapper.orchestrator.cancellation import CancellationToken, install_signal_handlers
from codeagent_wrapper.orchestrator.contracts import (
    batch_result_payload,
    dump_payload,
    format_progress_message,
    parse_batch,
    single_result_payload,
)
from codeagent_wrapper.orchestrator.errors import ConfigurationError, ExitCode
from codeagent_wrapper.orchestrator.models import TaskResult, TaskSpec
from codeagent_wrapper.orchestrator.services import OrchestratorService, RunDefaults

logger = logging.getLogger(__name__)

SINGLE_TASK_ID = "main"


@dataclass(slots=True)
class RunTaskCommand:
    """CLI input for a single new or resumed task."""

    task: str
    work_dir: Path | None = None
    session_id: str | None = None
    backend: str | None = None
    model: str | None = None
    agent: str | None = None
    prompt_file: Path | None = None
    reasoning_effort: str | None = None
    timeout_seconds: float | None = None
    skip_permissions: bool = False
    quiet: bool = False
    debug: bool = False


@dataclass(slots=True)
class ParallelCommand:
    """CLI input for a JSONL batch run."""

    batch_text: str
    work_dir: Path | None = None
    max_workers: int | None = None
    skip_failed_dependencies: bool = False
    full_output: bool = False
    backend: str | None = None
    model: str | None = None
    agent: str | None = None
    timeout_seconds: float | None = None
    skip_permissions: bool = False
    debug: bool = False


@dataclass(slots=True)
class InitCommand:
    """CLI input for writing the default agent presets file."""

    force: bool = False


@dataclass(slots=True)
class CleanupCommand:
    """CLI input for log cleanup."""

    max_age_days: float | None = None


@dataclass(slots=True)
class CommandResult:
    """Rendered output plus the process exit code."""

    lines: list[str]
    exit_code: int = ExitCode.SUCCESS


class CodeagentCliController:
    """Coordinates settings, presets, cancellation and the orchestrator service."""

    def run_task(self, command: RunTaskCommand) -> CommandResult:
        """Run one task (new or resumed) and render its JSON result."""

        settings = _load_settings(debug=command.debug)
        quiet = command.quiet or settings.output.quiet
        ascii_mode = settings.output.ascii_mode

        def _show_progress(event: Any) -> None:
            message = format_progress_message(event, ascii_mode=ascii_mode)
            if message is not None:
                print(message, file=sys.stderr, flush=True)  # noqa: T201

        token = CancellationToken()
        service = OrchestratorService(
            catalog=load_agent_catalog(settings.home),
            cancellation=token,
            graceful_kill_seconds=settings.execution.graceful_kill_seconds,
            on_event=_show_progress,
        )
        spec = TaskSpec(
            id=SINGLE_TASK_ID,
            task=command.task,
            work_dir=command.work_dir,
            session_id=command.session_id,
            backend=command.backend,
            model=command.model,
            agent=command.agent,
            prompt_file=command.prompt_file,
            skip_permissions=command.skip_permissions,
        )
        defaults = _run_defaults(
            settings,
            timeout_seconds=command.timeout_seconds,
            reasoning_effort=command.reasoning_effort,
            quiet=quiet,
        )
        with install_signal_handlers(token):
            result = service.run_task(spec, defaults)

        return CommandResult(
            lines=[dump_payload(single_result_payload(result))],
            exit_code=_result_exit_code(result),
        )

    def run_parallel(self, command: ParallelCommand) -> CommandResult:
        """Run a JSONL batch honoring dependencies and render the summary."""

        settings = _load_settings(debug=command.debug)
        specs = parse_batch(command.batch_text.splitlines())
        if not specs:
            raise ConfigurationError("No tasks found in batch input.")

        max_workers = command.max_workers or settings.max_parallel_workers
        token = CancellationToken()
        service = OrchestratorService(
            catalog=load_agent_catalog(settings.home),
            cancellation=token,
            graceful_kill_seconds=settings.execution.graceful_kill_seconds,
        )
        defaults = _run_defaults(
            settings,
            work_dir=command.work_dir,
            backend=command.backend,
            model=command.model,
            agent=command.agent,
            timeout_seconds=command.timeout_seconds,
            skip_permissions=command.skip_permissions,
            quiet=True,
        )
        with install_signal_handlers(token):
            results = service.run_batch(
                specs,
                defaults,
                max_workers=max_workers,
                skip_failed_dependencies=command.skip_failed_dependencies,
            )

        payload = batch_result_payload(results, full_output=command.full_output)
        return CommandResult(
            lines=[dump_payload(payload)],
            exit_code=ExitCode.SUCCESS if payload["success"] else ExitCode.GENERAL_ERROR,
        )

    def list_backends(self) -> list[str]:
        """Render one line per backend with its availability."""

        lines = ["Backends (auto-detect order):"]
        for kind in AUTO_DETECT_ORDER:
            descriptor = BACKENDS[kind]
            status = "available" if descriptor.is_available() else "not installed"
            lines.append(f"  {descriptor.name}: {status}")
        return lines

    def init(self, command: InitCommand) -> list[str]:
        """Write the default agent presets into the wrapper home directory."""

        settings = Settings.from_env()
        try:
            path = write_default_catalog(settings.home, force=command.force)
        except OSError as error:
            raise ConfigurationError(f"Failed to write agent presets: {error}") from error
        if path is None:
            return [
                f"Agent presets already exist: {settings.home / MODELS_FILE_NAME}",
                "Use --force to overwrite.",
            ]
        return [f"Wrote agent presets: {path}"]

    def cleanup(self, command: CleanupCommand) -> list[str]:
        """Delete stale log files."""

        settings = Settings.from_env()
        count = logs.cleanup_old_logs(settings.log_dir, max_age_days=command.max_age_days)
        return [f"Cleaned up {count} old log files"]


def _load_settings(*, debug: bool) -> Settings:
    settings = Settings.from_env()
    settings.validate()
    log_path = logs.configure_logging(debug=debug, log_dir=settings.log_dir)
    if log_path is not None:
        logger.debug("Logging to %s", log_path)
    return settings


def _run_defaults(  # noqa: PLR0913
    settings: Settings,
    *,
    work_dir: Path | None = None,
    backend: str | None = None,
    model: str | None = None,
    agent: str | None = None,
    reasoning_effort: str | None = None,
    timeout_seconds: float | None = None,
    skip_permissions: bool = False,
    quiet: bool = False,
) -> RunDefaults:
    timeout = timeout_seconds if timeout_seconds is not None else settings.execution.timeout_seconds
    if timeout <= 0:
        raise ConfigurationError("Timeout must be positive.")
    return RunDefaults(
        work_dir=work_dir or Path.cwd(),
        backend=backend or settings.routing.backend,
        model=model or settings.routing.model,
        agent=agent or settings.routing.agent,
        reasoning_effort=reasoning_effort,
        timeout_seconds=timeout,
        skip_permissions=skip_permissions or settings.execution.skip_permissions,
        quiet=quiet,
    )


def _result_exit_code(result: TaskResult) -> int:
    if result.success:
        return ExitCode.SUCCESS
    if result.timed_out:
        return ExitCode.TIMEOUT
    return ExitCode.GENERAL_ERROR
