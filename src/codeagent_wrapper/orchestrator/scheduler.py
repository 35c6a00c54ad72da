"""Dependency-aware scheduling of a task batch over a bounded worker pool."""

from __future__ import annotations

import logging
import os
import queue
import threading
from collections import deque
from collections.abc import Callable, Sequence

from codeagent_wrapper.orchestrator.cancellation import CancellationToken
from codeagent_wrapper.orchestrator.errors import CodeagentError, DependencyError, ExitCode
from codeagent_wrapper.orchestrator.models import (
    EXIT_CODE_SIGNALED,
    TaskResult,
    TaskSpec,
    TaskState,
)

logger = logging.getLogger(__name__)

MAX_PARALLEL_WORKERS_CAP = 100

TaskRunner = Callable[[TaskSpec], TaskResult]


def default_max_parallel_workers(cpu_count: int | None = None) -> int:
    """Adaptive worker bound: four per CPU, clamped to [1, 100]."""

    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return min(MAX_PARALLEL_WORKERS_CAP, max(1, cpus * 4))


def validate_batch(specs: Sequence[TaskSpec]) -> None:
    """Reject duplicate ids, unknown dependencies and cycles.

    Raises:
        DependencyError: the batch cannot be scheduled as submitted.
    """

    seen: set[str] = set()
    duplicates: list[str] = []
    for spec in specs:
        if spec.id in seen:
            duplicates.append(spec.id)
        seen.add(spec.id)
    if duplicates:
        raise DependencyError(
            f"Duplicate task ids: {', '.join(sorted(set(duplicates)))}",
            task_ids=tuple(duplicates),
        )

    for spec in specs:
        unknown = [dep for dep in spec.dependencies if dep not in seen]
        if unknown:
            raise DependencyError(
                f"Task '{spec.id}' depends on unknown task(s): {', '.join(unknown)}",
                task_ids=(spec.id,),
            )

    in_degree = {spec.id: len(set(spec.dependencies)) for spec in specs}
    dependents: dict[str, list[str]] = {spec.id: [] for spec in specs}
    for spec in specs:
        for dep in set(spec.dependencies):
            dependents[dep].append(spec.id)

    ready = deque(task_id for task_id, degree in in_degree.items() if degree == 0)
    resolved = 0
    while ready:
        task_id = ready.popleft()
        resolved += 1
        for dependent in dependents[task_id]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                ready.append(dependent)

    if resolved != len(specs):
        blocked = tuple(spec.id for spec in specs if in_degree[spec.id] > 0)
        raise DependencyError(
            f"Circular dependency detected among tasks: {', '.join(blocked)}",
            task_ids=blocked,
        )


class DependencyScheduler:
    """Run a batch honoring dependencies; results come back in input order.

    Bookkeeping lives on the calling thread. Each dispatched spec runs on
    its own worker thread and reports through a single completion queue.
    """

    def __init__(
        self,
        runner: TaskRunner,
        *,
        max_workers: int | None = None,
        skip_failed_dependencies: bool = False,
        cancellation: CancellationToken | None = None,
    ) -> None:
        workers = max_workers if max_workers is not None else default_max_parallel_workers()
        if workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._runner = runner
        self._max_workers = workers
        self._skip_failed_dependencies = skip_failed_dependencies
        self._cancellation = cancellation

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def run(self, specs: Sequence[TaskSpec]) -> list[TaskResult]:
        """Execute every spec once and return one result per spec, in order.

        Raises:
            DependencyError: the batch is structurally invalid, or the
                remaining specs can never become ready.
        """

        try:
            validate_batch(specs)
        except DependencyError as error:
            logger.error("Batch rejected: %s", error)
            raise

        states = {spec.id: TaskState.PENDING for spec in specs}
        results: dict[str, TaskResult] = {}
        completions: queue.Queue[tuple[str, TaskResult | BaseException]] = queue.Queue()
        threads: list[threading.Thread] = []
        running = 0

        while True:
            while not self._is_cancelled() and running < self._max_workers:
                spec = self._next_ready(specs, states)
                if spec is None:
                    break
                skipped = self._skip_result(spec, results)
                if skipped is not None:
                    states[spec.id] = TaskState.DONE
                    results[spec.id] = skipped
                    continue
                states[spec.id] = TaskState.RUNNING
                running += 1
                threads.append(self._dispatch(spec, completions))

            if running == 0:
                if self._is_cancelled() or all(
                    state is TaskState.DONE for state in states.values()
                ):
                    break
                stuck = tuple(
                    task_id for task_id, state in states.items() if state is not TaskState.DONE
                )
                logger.error("No runnable tasks remain: %s", ", ".join(stuck))
                raise DependencyError(
                    f"Unsatisfiable dependencies for tasks: {', '.join(stuck)}",
                    task_ids=stuck,
                )

            task_id, outcome = completions.get()
            running -= 1
            if isinstance(outcome, BaseException):
                logger.error(
                    "Task %s raised %r; stopping %d running task(s)",
                    task_id,
                    outcome,
                    running,
                )
                if self._cancellation is not None:
                    self._cancellation.cancel(f"task {task_id} raised {type(outcome).__name__}")
                for _ in range(running):
                    completions.get()
                raise outcome
            states[task_id] = TaskState.DONE
            results[task_id] = outcome
            logger.info(
                "Task %s completed: success=%s exit_code=%s",
                task_id,
                outcome.success,
                outcome.exit_code,
            )

        for thread in threads:
            thread.join()

        ordered: list[TaskResult] = []
        for spec in specs:
            result = results.get(spec.id)
            if result is None:
                reason = self._cancellation.reason if self._cancellation is not None else None
                result = TaskResult.failed(
                    task_id=spec.id,
                    exit_code=EXIT_CODE_SIGNALED,
                    error=f"Cancelled before start: {reason or 'cancelled'}",
                    cancelled=True,
                )
            ordered.append(result)
        return ordered

    def _is_cancelled(self) -> bool:
        return self._cancellation is not None and self._cancellation.cancelled

    @staticmethod
    def _next_ready(specs: Sequence[TaskSpec], states: dict[str, TaskState]) -> TaskSpec | None:
        for spec in specs:
            if states[spec.id] is not TaskState.PENDING:
                continue
            if all(states[dep] is TaskState.DONE for dep in spec.dependencies):
                states[spec.id] = TaskState.READY
                return spec
        return None

    def _skip_result(self, spec: TaskSpec, results: dict[str, TaskResult]) -> TaskResult | None:
        if not self._skip_failed_dependencies:
            return None
        failed = [dep for dep in spec.dependencies if not results[dep].success]
        if not failed:
            return None
        logger.warning("Skipping task %s: failed dependencies %s", spec.id, ", ".join(failed))
        return TaskResult.failed(
            task_id=spec.id,
            exit_code=ExitCode.GENERAL_ERROR,
            error=f"Skipped due to failed dependencies: {', '.join(failed)}",
            skipped=True,
        )

    def _dispatch(
        self,
        spec: TaskSpec,
        completions: queue.Queue[tuple[str, TaskResult | BaseException]],
    ) -> threading.Thread:
        def _work() -> None:
            try:
                outcome: TaskResult | BaseException = self._runner(spec)
            except CodeagentError as error:
                logger.warning("Task %s failed: %s", spec.id, error)
                outcome = TaskResult.failed(
                    task_id=spec.id,
                    exit_code=int(error.exit_code),
                    error=str(error),
                )
            except Exception as exc:  # noqa: BLE001
                # Re-raised on the scheduling thread.
                outcome = exc
            completions.put((spec.id, outcome))

        logger.debug("Dispatching task %s", spec.id)
        thread = threading.Thread(target=_work, name=f"codeagent-task-{spec.id}", daemon=True)
        thread.start()
        return thread
