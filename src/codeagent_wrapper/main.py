"""CLI entrypoint for codeagent-wrapper."""

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from codeagent_wrapper import __version__
from codeagent_wrapper.config import parse_timeout
from codeagent_wrapper.orchestrator.backend.base import SUPPORTED_BACKENDS
from codeagent_wrapper.orchestrator.controllers import (
    CleanupCommand,
    CodeagentCliController,
    CommandResult,
    InitCommand,
    ParallelCommand,
    RunTaskCommand,
)
from codeagent_wrapper.orchestrator.errors import CodeagentError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = CodeagentCliController()

C = TypeVar("C")
T = TypeVar("T")
_STDIN_MARKER = "-"


class CodeagentClickError(click.ClickException):
    """Click error that keeps the exit code of the underlying failure."""

    def __init__(self, error: CodeagentError) -> None:
        super().__init__(str(error))
        self.exit_code = int(error.exit_code)


class TimeoutParamType(click.ParamType):
    """Timeout in seconds; values above 10000 are read as milliseconds."""

    name = "timeout"

    def convert(
        self,
        value: str | float,
        param: click.Parameter | None,
        ctx: click.Context | None,
    ) -> float:
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return parse_timeout(value)
        except CodeagentError as error:
            self.fail(str(error), param, ctx)


def _routing_options(function: Callable[..., T]) -> Callable[..., T]:
    decorators = [
        click.option(
            "--backend",
            "-b",
            type=click.Choice(SUPPORTED_BACKENDS, case_sensitive=False),
            default=None,
            help="Backend CLI to run. Auto-detected when omitted (CODEAGENT_BACKEND).",
        ),
        click.option("--model", "-m", default=None, help="Model passed to the backend."),
        click.option("--agent", "-a", default=None, help="Agent preset name."),
        click.option(
            "--timeout",
            "-t",
            "timeout_seconds",
            type=TimeoutParamType(),
            default=None,
            help="Per-task timeout in seconds (CODEX_TIMEOUT). Defaults to 7200.",
        ),
        click.option(
            "--skip-permissions",
            "--yolo",
            "skip_permissions",
            is_flag=True,
            default=False,
            help="Ask the backend to skip permission prompts.",
        ),
        click.option("--debug", "-d", is_flag=True, default=False, help="Verbose logs on stderr."),
    ]
    for decorator in reversed(decorators):
        function = decorator(function)
    return function


def _task_options(function: Callable[..., T]) -> Callable[..., T]:
    decorators = [
        click.option(
            "--prompt-file",
            type=click.Path(path_type=Path),
            default=None,
            help="Read the task prompt from this file instead of TASK.",
        ),
        click.option("--reasoning-effort", default=None, help="Reasoning effort hint (codex)."),
        click.option("--quiet", "-q", is_flag=True, default=False, help="No progress on stderr."),
    ]
    for decorator in reversed(decorators):
        function = decorator(function)
    return function


@click.group()
@click.version_option(version=__version__, prog_name="codeagent-wrapper")
def codeagent_wrapper() -> None:
    """Run codex, claude, gemini or opencode agents and normalize their output to JSON."""


@codeagent_wrapper.command("run")
@click.argument("task")
@click.argument("workdir", required=False, type=click.Path(path_type=Path))
@_routing_options
@_task_options
def run(  # noqa: PLR0913
    task: str,
    workdir: Path | None,
    backend: str | None,
    model: str | None,
    agent: str | None,
    timeout_seconds: float | None,
    skip_permissions: bool,
    debug: bool,
    prompt_file: Path | None,
    reasoning_effort: str | None,
    quiet: bool,
) -> None:
    """Run TASK in a new agent session. Use `-` to read TASK from stdin."""

    _finish(
        _invoke(
            CONTROLLER.run_task,
            RunTaskCommand(
                task=_read_task(task),
                work_dir=_resolve_workdir(workdir),
                backend=backend,
                model=model,
                agent=agent,
                prompt_file=prompt_file,
                reasoning_effort=reasoning_effort,
                timeout_seconds=timeout_seconds,
                skip_permissions=skip_permissions,
                quiet=quiet,
                debug=debug,
            ),
        ),
    )


@codeagent_wrapper.command("resume")
@click.argument("session_id")
@click.argument("task")
@click.argument("workdir", required=False, type=click.Path(path_type=Path))
@_routing_options
@_task_options
def resume(  # noqa: PLR0913
    session_id: str,
    task: str,
    workdir: Path | None,
    backend: str | None,
    model: str | None,
    agent: str | None,
    timeout_seconds: float | None,
    skip_permissions: bool,
    debug: bool,
    prompt_file: Path | None,
    reasoning_effort: str | None,
    quiet: bool,
) -> None:
    """Continue agent session SESSION_ID with TASK."""

    _finish(
        _invoke(
            CONTROLLER.run_task,
            RunTaskCommand(
                task=_read_task(task),
                work_dir=_resolve_workdir(workdir),
                session_id=session_id,
                backend=backend,
                model=model,
                agent=agent,
                prompt_file=prompt_file,
                reasoning_effort=reasoning_effort,
                timeout_seconds=timeout_seconds,
                skip_permissions=skip_permissions,
                quiet=quiet,
                debug=debug,
            ),
        ),
    )


@codeagent_wrapper.command("parallel")
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum concurrent tasks (CODEAGENT_MAX_PARALLEL_WORKERS). Adaptive by default.",
)
@click.option(
    "--skip-failed-deps",
    is_flag=True,
    default=False,
    help="Skip tasks whose dependencies failed instead of running them.",
)
@click.option(
    "--full-output",
    is_flag=True,
    default=False,
    help="Include every task's full result (events, metrics) in the summary.",
)
@click.option(
    "--workdir",
    type=click.Path(path_type=Path),
    default=None,
    help="Working directory for tasks that do not set workDir.",
)
@_routing_options
def parallel(  # noqa: PLR0913
    max_workers: int | None,
    skip_failed_deps: bool,
    full_output: bool,
    workdir: Path | None,
    backend: str | None,
    model: str | None,
    agent: str | None,
    timeout_seconds: float | None,
    skip_permissions: bool,
    debug: bool,
) -> None:
    """Run a JSONL batch of tasks read from stdin, honoring `dependencies`.

    Each line is an object with `id`, `task` and optional `dependencies`,
    `workDir`, `sessionId`, `backend`, `model`, `agent`, `promptFile`,
    `skipPermissions`.
    """

    _finish(
        _invoke(
            CONTROLLER.run_parallel,
            ParallelCommand(
                batch_text=click.get_text_stream("stdin").read(),
                work_dir=_resolve_workdir(workdir),
                max_workers=max_workers,
                skip_failed_dependencies=skip_failed_deps,
                full_output=full_output,
                backend=backend,
                model=model,
                agent=agent,
                timeout_seconds=timeout_seconds,
                skip_permissions=skip_permissions,
                debug=debug,
            ),
        ),
    )


@codeagent_wrapper.command("backends")
def backends() -> None:
    """Show supported backends and whether each is installed."""

    _emit_lines(CONTROLLER.list_backends())


@codeagent_wrapper.command("init")
@click.option("--force", "-f", is_flag=True, default=False, help="Overwrite an existing file.")
def init(force: bool) -> None:
    """Write the default agent presets to `~/.codeagent/models.json`."""

    _emit_lines(_invoke(CONTROLLER.init, InitCommand(force=force)))


@codeagent_wrapper.command("cleanup")
@click.option(
    "--days",
    type=click.FloatRange(min=0),
    default=None,
    help="Also delete logs older than this many days.",
)
def cleanup(days: float | None) -> None:
    """Delete log files of finished wrapper processes."""

    _emit_lines(_invoke(CONTROLLER.cleanup, CleanupCommand(max_age_days=days)))


def _invoke(handler: Callable[[C], T], command: C) -> T:
    try:
        return handler(command)
    except CodeagentError as error:
        raise CodeagentClickError(error) from error


def _read_task(task: str) -> str:
    if task != _STDIN_MARKER:
        return task
    text = click.get_text_stream("stdin").read()
    if not text.strip():
        raise click.UsageError("Task read from stdin is empty.")
    return text


def _resolve_workdir(workdir: Path | None) -> Path | None:
    if workdir is None:
        return None
    if str(workdir) == _STDIN_MARKER:
        raise click.BadParameter('Working directory cannot be "-".', param_hint="WORKDIR")
    return workdir.expanduser().resolve()


def _finish(result: CommandResult) -> None:
    _emit_lines(result.lines)
    if result.exit_code:
        click.get_current_context().exit(int(result.exit_code))


def _emit_lines(lines: Iterable[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    codeagent_wrapper()
