from __future__ import annotations

from pathlib import Path

import allure
import pytest

from codeagent_wrapper.orchestrator.errors import (
    ConfigurationError,
    ExitCode,
    InvalidSessionIdError,
)
from codeagent_wrapper.orchestrator.models import (
    ExecutionMode,
    RunConfig,
    TaskResult,
    is_valid_session_id,
)

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("Run Configuration"),
]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("abc123", True),
        ("session-id_123", True),
        ("a" * 128, True),
        ("a" * 129, False),
        ("", False),
        ("invalid space", False),
        ("invalid@char", False),
        ("../etc", False),
        (None, False),
    ],
)
def test_session_id_format(value, expected: bool) -> None:
    assert is_valid_session_id(value) is expected


def test_resume_requires_valid_session_id() -> None:
    with pytest.raises(InvalidSessionIdError) as error:
        RunConfig(
            task="continue",
            work_dir=Path("."),
            mode=ExecutionMode.RESUME,
            session_id="bad id!",
        )

    assert error.value.exit_code == ExitCode.INVALID_ARGUMENT
    assert "bad id!" in str(error.value)


def test_resume_without_session_id_is_rejected() -> None:
    with pytest.raises(InvalidSessionIdError):
        RunConfig(task="continue", work_dir=Path("."), mode=ExecutionMode.RESUME)


def test_session_id_outside_resume_mode_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        RunConfig(task="t", work_dir=Path("."), session_id="abc")


@pytest.mark.parametrize("timeout", [0, -5])
def test_timeout_must_be_positive(timeout: float) -> None:
    with pytest.raises(ConfigurationError, match="Timeout"):
        RunConfig(task="t", work_dir=Path("."), timeout_seconds=timeout)


def test_dash_work_dir_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        RunConfig(task="t", work_dir=Path("-"))


def test_run_config_is_immutable() -> None:
    config = RunConfig(task="t", work_dir=Path("."))

    with pytest.raises(AttributeError):
        config.task = "other"  # type: ignore[misc]


def test_failed_result_has_no_process_outcome() -> None:
    result = TaskResult.failed(task_id="a", exit_code=4, error="spawn failed")

    assert result.success is False
    assert result.duration_seconds == 0.0
    assert result.events == []
    assert result.error == "spawn failed"
