"""Use-case services: turn task specs into backend runs."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from codeagent_wrapper.orchestrator.agents import AgentCatalog
from codeagent_wrapper.orchestrator.backend.base import BackendDescriptor, select_backend
from codeagent_wrapper.orchestrator.cancellation import CancellationToken
from codeagent_wrapper.orchestrator.executor import TaskExecutor
from codeagent_wrapper.orchestrator.filtering import apply_output_metrics
from codeagent_wrapper.orchestrator.models import (
    DEFAULT_TIMEOUT_SECONDS,
    ExecutionMode,
    RunConfig,
    TaskResult,
    TaskSpec,
)
from codeagent_wrapper.orchestrator.scheduler import DependencyScheduler

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RunDefaults:
    """Values a task inherits from the command line and environment."""

    work_dir: Path
    backend: str | None = None
    model: str | None = None
    agent: str | None = None
    reasoning_effort: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    skip_permissions: bool = False
    quiet: bool = False


class OrchestratorService:
    """Resolves presets and backends, then runs one task or a batch."""

    def __init__(
        self,
        *,
        catalog: AgentCatalog,
        cancellation: CancellationToken | None = None,
        graceful_kill_seconds: float = 2.0,
        on_event: Callable[[Any], None] | None = None,
    ) -> None:
        self.catalog = catalog
        self.cancellation = cancellation
        self.graceful_kill_seconds = graceful_kill_seconds
        self.on_event = on_event

    def build_run_config(
        self,
        spec: TaskSpec,
        defaults: RunDefaults,
    ) -> tuple[RunConfig, BackendDescriptor]:
        """Merge spec, agent preset and defaults into a config plus backend.

        Explicit task fields win over the agent preset, which wins over
        command-line/environment defaults and the presets file defaults.
        """

        spec, preset_effort = self.catalog.apply(spec, agent=defaults.agent)

        backend_name = spec.backend or defaults.backend
        model = spec.model or defaults.model
        if backend_name is None and self.catalog.default_backend:
            backend_name = self.catalog.default_backend
            model = model or self.catalog.default_model
        descriptor = select_backend(backend_name)

        config = RunConfig(
            task=spec.task,
            work_dir=spec.work_dir or defaults.work_dir,
            mode=ExecutionMode.RESUME if spec.session_id is not None else ExecutionMode.NEW,
            session_id=spec.session_id,
            model=model,
            backend=descriptor.name,
            agent=spec.agent,
            prompt_file=spec.prompt_file,
            reasoning_effort=defaults.reasoning_effort or preset_effort,
            timeout_seconds=defaults.timeout_seconds,
            skip_permissions=spec.skip_permissions or defaults.skip_permissions,
            quiet=defaults.quiet,
        )
        return config, descriptor

    def run_task(self, spec: TaskSpec, defaults: RunDefaults) -> TaskResult:
        """Run one spec to completion and attach output metrics.

        Raises:
            CodeagentError: configuration, backend selection or spawn failure.
        """

        config, descriptor = self.build_run_config(spec, defaults)
        logger.info(
            "Running task %s with backend=%s model=%s mode=%s",
            spec.id,
            descriptor.name,
            config.model or "<default>",
            config.mode.value,
        )
        executor = TaskExecutor(
            descriptor,
            cancellation=self.cancellation,
            graceful_kill_seconds=self.graceful_kill_seconds,
            on_event=None if config.quiet else self.on_event,
        )
        result = executor.run(config, task_id=spec.id)
        return apply_output_metrics(result, backend=descriptor.name)

    def run_batch(
        self,
        specs: Sequence[TaskSpec],
        defaults: RunDefaults,
        *,
        max_workers: int | None = None,
        skip_failed_dependencies: bool = False,
    ) -> list[TaskResult]:
        """Run a batch through the dependency scheduler; results in input order."""

        scheduler = DependencyScheduler(
            lambda spec: self.run_task(spec, defaults),
            max_workers=max_workers,
            skip_failed_dependencies=skip_failed_dependencies,
            cancellation=self.cancellation,
        )
        logger.info("Running batch of %d tasks with %d workers", len(specs), scheduler.max_workers)
        return scheduler.run(specs)
