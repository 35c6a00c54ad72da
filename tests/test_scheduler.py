from __future__ import annotations

import threading
import time

import allure
import pytest

from codeagent_wrapper.orchestrator.cancellation import CancellationToken
from codeagent_wrapper.orchestrator.errors import BackendSpawnError, DependencyError
from codeagent_wrapper.orchestrator.models import TaskResult, TaskSpec
from codeagent_wrapper.orchestrator.scheduler import (
    DependencyScheduler,
    default_max_parallel_workers,
    validate_batch,
)

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("Dependency Scheduling"),
]


def _spec(task_id: str, *dependencies: str) -> TaskSpec:
    return TaskSpec(id=task_id, task=f"task {task_id}", dependencies=dependencies)


def _ok(spec: TaskSpec) -> TaskResult:
    return TaskResult(task_id=spec.id, success=True, exit_code=0, duration_seconds=0.01)


class _RecordingRunner:
    def __init__(self, *, delay: float = 0.0, failing: frozenset[str] = frozenset()) -> None:
        self.delay = delay
        self.failing = failing
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0
        self.timeline: list[tuple[str, str]] = []

    def __call__(self, spec: TaskSpec) -> TaskResult:
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.timeline.append(("start", spec.id))
        time.sleep(self.delay)
        with self.lock:
            self.active -= 1
            self.timeline.append(("end", spec.id))
        if spec.id in self.failing:
            return TaskResult(task_id=spec.id, success=False, exit_code=1, duration_seconds=0.0)
        return _ok(spec)

    def index(self, kind: str, task_id: str) -> int:
        return self.timeline.index((kind, task_id))


def test_default_worker_bound() -> None:
    assert default_max_parallel_workers(1) == 4
    assert default_max_parallel_workers(8) == 32
    assert default_max_parallel_workers(64) == 100
    assert default_max_parallel_workers(0) == 1
    assert 1 <= default_max_parallel_workers() <= 100


def test_worker_bound_is_never_exceeded() -> None:
    runner = _RecordingRunner(delay=0.05)
    specs = [_spec(f"t{index}") for index in range(12)]

    results = DependencyScheduler(runner, max_workers=3).run(specs)

    assert runner.peak <= 3
    assert [result.task_id for result in results] == [spec.id for spec in specs]
    assert all(result.success for result in results)


def test_dependency_runs_first_and_results_keep_input_order() -> None:
    runner = _RecordingRunner(delay=0.02)
    specs = [_spec("b", "a"), _spec("a")]

    results = DependencyScheduler(runner, max_workers=4).run(specs)

    assert [result.task_id for result in results] == ["b", "a"]
    assert runner.index("end", "a") < runner.index("start", "b")


def test_diamond_dependencies() -> None:
    runner = _RecordingRunner(delay=0.02)
    specs = [_spec("d", "b", "c"), _spec("c", "a"), _spec("b", "a"), _spec("a")]

    results = DependencyScheduler(runner, max_workers=4).run(specs)

    assert [result.task_id for result in results] == ["d", "c", "b", "a"]
    assert runner.index("end", "a") < runner.index("start", "b")
    assert runner.index("end", "a") < runner.index("start", "c")
    assert runner.index("end", "b") < runner.index("start", "d")
    assert runner.index("end", "c") < runner.index("start", "d")


def test_cycle_is_rejected_before_anything_runs() -> None:
    runner = _RecordingRunner()
    specs = [_spec("a", "b"), _spec("b", "a"), _spec("c")]

    with pytest.raises(DependencyError, match="Circular dependency") as error:
        DependencyScheduler(runner, max_workers=2).run(specs)

    assert set(error.value.task_ids) == {"a", "b"}
    assert runner.timeline == []


def test_self_dependency_is_a_cycle() -> None:
    with pytest.raises(DependencyError):
        validate_batch([_spec("a", "a")])


def test_unknown_dependency_is_rejected() -> None:
    with pytest.raises(DependencyError, match="unknown task"):
        validate_batch([_spec("a", "missing")])


def test_duplicate_ids_are_rejected() -> None:
    with pytest.raises(DependencyError, match="Duplicate task ids: a"):
        validate_batch([_spec("a"), _spec("b"), _spec("a")])


def test_empty_batch_returns_no_results() -> None:
    assert DependencyScheduler(_ok, max_workers=1).run([]) == []


def test_invalid_worker_bound() -> None:
    with pytest.raises(ValueError):
        DependencyScheduler(_ok, max_workers=0)


def test_task_error_becomes_failed_result_without_stopping_siblings() -> None:
    def runner(spec: TaskSpec) -> TaskResult:
        if spec.id == "broken":
            raise BackendSpawnError("Backend command not found: codex", transient=False)
        return _ok(spec)

    results = DependencyScheduler(runner, max_workers=2).run(
        [_spec("broken"), _spec("fine"), _spec("after", "broken")],
    )

    broken, fine, after = results
    assert broken.success is False
    assert broken.exit_code == 4
    assert "not found" in (broken.error or "")
    assert fine.success is True
    assert after.success is True


def test_unexpected_error_propagates() -> None:
    def runner(spec: TaskSpec) -> TaskResult:
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError, match="bug"):
        DependencyScheduler(runner, max_workers=1).run([_spec("a")])


def test_unexpected_error_stops_and_waits_for_running_siblings() -> None:
    token = CancellationToken()
    sibling_stopped: list[bool] = []

    def runner(spec: TaskSpec) -> TaskResult:
        if spec.id == "slow":
            sibling_stopped.append(token.wait(timeout=5))
            return _ok(spec)
        time.sleep(0.05)
        raise RuntimeError("bug")

    scheduler = DependencyScheduler(runner, max_workers=2, cancellation=token)
    with pytest.raises(RuntimeError, match="bug"):
        scheduler.run([_spec("slow"), _spec("broken"), _spec("later")])

    assert token.cancelled is True
    assert "RuntimeError" in (token.reason or "")
    assert sibling_stopped == [True]


def test_failed_dependency_still_runs_dependents_by_default() -> None:
    runner = _RecordingRunner(failing=frozenset({"a"}))

    results = DependencyScheduler(runner, max_workers=2).run([_spec("a"), _spec("b", "a")])

    assert results[0].success is False
    assert results[1].success is True
    assert ("start", "b") in runner.timeline


def test_skip_failed_dependencies_cascades() -> None:
    runner = _RecordingRunner(failing=frozenset({"a"}))
    specs = [_spec("a"), _spec("b", "a"), _spec("c", "b"), _spec("d")]

    results = DependencyScheduler(runner, max_workers=2, skip_failed_dependencies=True).run(specs)

    a, b, c, d = results
    assert a.success is False
    assert a.skipped is False
    assert b.skipped is True
    assert c.skipped is True
    assert "b" in (c.error or "")
    assert d.success is True
    assert ("start", "b") not in runner.timeline
    assert ("start", "c") not in runner.timeline


def test_cancellation_stops_dispatch_and_marks_remaining_tasks() -> None:
    token = CancellationToken()

    def runner(spec: TaskSpec) -> TaskResult:
        token.cancel("SIGINT")
        return _ok(spec)

    specs = [_spec("a"), _spec("b"), _spec("c", "a")]
    results = DependencyScheduler(runner, max_workers=1, cancellation=token).run(specs)

    assert [result.task_id for result in results] == ["a", "b", "c"]
    assert results[0].success is True
    assert results[1].cancelled is True
    assert results[2].cancelled is True
    assert "SIGINT" in (results[2].error or "")
