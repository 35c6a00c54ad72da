"""Run one backend process to completion and collect its events."""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import IO, Any

from codeagent_wrapper.orchestrator.backend.base import BackendDescriptor
from codeagent_wrapper.orchestrator.cancellation import (
    CancellationToken,
    request_terminate,
    terminate_process,
)
from codeagent_wrapper.orchestrator.errors import BackendSpawnError, PromptFileError
from codeagent_wrapper.orchestrator.models import EXIT_CODE_SIGNALED, RunConfig, TaskResult
from codeagent_wrapper.orchestrator.parser import MAX_MESSAGE_SIZE, EventStreamParser

logger = logging.getLogger(__name__)

STDIN_THRESHOLD = 800
_STDIN_SPECIAL_CHARS = frozenset("'\"`$\\\n\r|&;<>")
_STDIN_TARGET = "-"


def should_use_stdin(text: str) -> bool:
    """Return True when the task text cannot travel safely as an argument."""

    if len(text) > STDIN_THRESHOLD:
        return True
    return any(char in _STDIN_SPECIAL_CHARS for char in text)


def resolve_task_input(config: RunConfig) -> str:
    """Return the prompt-file content when configured, otherwise the task text."""

    if config.prompt_file is None:
        return config.task
    path = Path(config.prompt_file).expanduser()
    try:
        return path.read_text("utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise PromptFileError(str(path), str(error)) from error


def extract_session_id(event: Any) -> str | None:
    """Pull a session identifier from a decoded event, if it carries one."""

    if not isinstance(event, dict):
        return None
    for key in ("session_id", "sessionId", "thread_id", "sessionID"):
        value = event.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class TaskExecutor:
    """Spawn a backend CLI, stream its events and enforce the timeout."""

    def __init__(
        self,
        backend: BackendDescriptor,
        *,
        cancellation: CancellationToken | None = None,
        graceful_kill_seconds: float = 2.0,
        max_message_size: int = MAX_MESSAGE_SIZE,
        on_event: Callable[[Any], None] | None = None,
    ) -> None:
        self._backend = backend
        self._cancellation = cancellation
        self._graceful_kill_seconds = graceful_kill_seconds
        self._max_message_size = max_message_size
        self._on_event = on_event

    def run(self, config: RunConfig, *, task_id: str = "main") -> TaskResult:
        """Execute exactly one backend process for `config`.

        Raises:
            PromptFileError: the prompt file could not be read.
            BackendSpawnError: the backend process could not be started.
        """

        task_input = resolve_task_input(config)
        use_stdin = should_use_stdin(task_input)
        target = _STDIN_TARGET if use_stdin else task_input
        args = self._backend.build_args(config, target)

        if self._cancellation is not None and self._cancellation.cancelled:
            return TaskResult.failed(
                task_id=task_id,
                exit_code=EXIT_CODE_SIGNALED,
                error=f"Cancelled before start: {self._cancellation.reason}",
                cancelled=True,
            )

        process = self._spawn(args, work_dir=config.work_dir)
        started = time.monotonic()
        logger.info(
            "Started %s for task %s (pid=%s, stdin=%s)",
            self._backend.name,
            task_id,
            process.pid,
            use_stdin,
        )

        timed_out = threading.Event()

        def _on_timeout() -> None:
            timed_out.set()
            logger.warning(
                "Task %s timed out after %s seconds; terminating pid=%s",
                task_id,
                config.timeout_seconds,
                process.pid,
            )
            terminate_process(process, grace_seconds=self._graceful_kill_seconds)

        watchdog = threading.Timer(config.timeout_seconds, _on_timeout)
        watchdog.daemon = True
        callback_handle: int | None = None
        stderr_chunks: list[bytes] = []
        writer = threading.Thread(
            target=_write_stdin,
            args=(process.stdin, task_input.encode("utf-8") if use_stdin else b""),
            name=f"codeagent-stdin-{task_id}",
            daemon=True,
        )
        reader = threading.Thread(
            target=_drain_stream,
            args=(process.stderr, stderr_chunks),
            name=f"codeagent-stderr-{task_id}",
            daemon=True,
        )

        events: list[Any] = []
        session_id: str | None = None
        try:
            watchdog.start()
            if self._cancellation is not None:
                callback_handle = self._cancellation.add_callback(
                    lambda: request_terminate(process),
                )
            writer.start()
            reader.start()

            assert process.stdout is not None
            parser = EventStreamParser(process.stdout, max_message_size=self._max_message_size)
            for event in parser.events():
                events.append(event)
                found = extract_session_id(event)
                if found is not None:
                    session_id = found
                if self._on_event is not None:
                    self._on_event(event)
            returncode = process.wait()
        finally:
            watchdog.cancel()
            if self._cancellation is not None and callback_handle is not None:
                self._cancellation.remove_callback(callback_handle)
            if process.poll() is None:
                terminate_process(process, grace_seconds=self._graceful_kill_seconds)

        writer.join(timeout=self._graceful_kill_seconds)
        reader.join(timeout=self._graceful_kill_seconds)
        if process.stdout is not None:
            process.stdout.close()
        duration = time.monotonic() - started

        cancelled = self._cancellation is not None and self._cancellation.cancelled
        exit_code = EXIT_CODE_SIGNALED if returncode < 0 else returncode
        success = returncode == 0 and not timed_out.is_set() and not cancelled

        error: str | None = None
        if timed_out.is_set():
            error = f"Timed out after {config.timeout_seconds} seconds"
        elif cancelled:
            error = f"Cancelled: {self._cancellation.reason}"  # type: ignore[union-attr]
        elif returncode != 0:
            error = f"{self._backend.name} exited with code {exit_code}"

        logger.info(
            "Task %s finished: exit_code=%s success=%s events=%d duration=%.2fs",
            task_id,
            exit_code,
            success,
            len(events),
            duration,
        )
        return TaskResult(
            task_id=task_id,
            success=success,
            exit_code=exit_code,
            duration_seconds=duration,
            session_id=session_id,
            events=events,
            stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace"),
            timed_out=timed_out.is_set(),
            cancelled=cancelled,
            error=error,
        )

    def _spawn(self, args: list[str], *, work_dir: Path) -> subprocess.Popen[bytes]:
        executable = shutil.which(self._backend.executable)
        if executable is None:
            raise BackendSpawnError(
                f"Backend command not found: {self._backend.executable}",
                transient=False,
            )
        logger.debug("Spawning %s %s in %s", executable, args, work_dir)
        try:
            return subprocess.Popen(  # noqa: S603
                [executable, *args],
                cwd=work_dir,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as error:
            raise BackendSpawnError(
                f"Backend command not found: {self._backend.executable} ({error})",
                transient=False,
            ) from error
        except OSError as error:
            raise BackendSpawnError(
                f"Backend failed to start: {error}",
                transient=True,
            ) from error


def _write_stdin(handle: IO[bytes] | None, payload: bytes) -> None:
    if handle is None:
        return
    try:
        if payload:
            handle.write(payload)
            handle.flush()
    except (OSError, ValueError) as error:
        logger.debug("Could not write task input to stdin: %s", error)
    finally:
        try:
            handle.close()
        except OSError:
            pass


def _drain_stream(handle: IO[bytes] | None, sink: list[bytes]) -> None:
    if handle is None:
        return
    try:
        for chunk in iter(lambda: handle.read(8192), b""):
            sink.append(chunk)
    except (OSError, ValueError) as error:
        logger.debug("Stopped reading stderr: %s", error)
    finally:
        handle.close()
