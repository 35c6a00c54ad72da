from __future__ import annotations

from pathlib import Path

import allure
import pytest

from codeagent_wrapper.config import Settings, parse_timeout
from codeagent_wrapper.orchestrator.errors import ConfigurationError
from codeagent_wrapper.orchestrator.models import DEFAULT_TIMEOUT_SECONDS

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]


def test_defaults(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("CODEAGENT_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))

    settings = Settings.from_env()

    assert settings.home == tmp_path / ".codeagent"
    assert settings.log_dir == tmp_path / ".codeagent" / "logs"
    assert settings.max_parallel_workers is None
    assert settings.execution.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
    assert settings.execution.skip_permissions is False
    assert settings.routing.backend is None
    assert settings.output.quiet is False
    assert settings.output.ascii_mode is False


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CODEAGENT_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("CODEAGENT_MAX_PARALLEL_WORKERS", "6")
    monkeypatch.setenv("CODEX_TIMEOUT", "300")
    monkeypatch.setenv("CODEAGENT_SKIP_PERMISSIONS", "true")
    monkeypatch.setenv("CODEAGENT_BACKEND", "gemini")
    monkeypatch.setenv("CODEAGENT_MODEL", "  ")
    monkeypatch.setenv("CODEAGENT_AGENT", "develop")
    monkeypatch.setenv("CODEAGENT_QUIET", "1")
    monkeypatch.setenv("CODEAGENT_ASCII_MODE", "yes")

    settings = Settings.from_env()

    assert settings.home == tmp_path / "home"
    assert settings.max_parallel_workers == 6
    assert settings.execution.timeout_seconds == 300
    assert settings.execution.skip_permissions is True
    assert settings.routing.backend == "gemini"
    assert settings.routing.model is None
    assert settings.routing.agent == "develop"
    assert settings.output.quiet is True
    assert settings.output.ascii_mode is True


def test_explicit_home_wins(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CODEAGENT_HOME", str(tmp_path / "ignored"))

    assert Settings.from_env(home=tmp_path).home == tmp_path


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("30", 30.0), ("10000", 10000.0), ("30000", 30.0), (" 7200 ", 7200.0)],
)
def test_parse_timeout(raw: str, expected: float) -> None:
    assert parse_timeout(raw) == expected


def test_parse_timeout_rejects_garbage() -> None:
    with pytest.raises(ConfigurationError, match="Invalid timeout"):
        parse_timeout("soon")


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("CODEAGENT_QUIET", "maybe"),
        ("CODEAGENT_MAX_PARALLEL_WORKERS", "many"),
        ("CODEX_TIMEOUT", "1.5h"),
    ],
)
def test_invalid_environment_values(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match=value):
        Settings.from_env()


@pytest.mark.parametrize(
    ("name", "value"),
    [("CODEX_TIMEOUT", "0"), ("CODEAGENT_MAX_PARALLEL_WORKERS", "0")],
)
def test_validate_rejects_non_positive_values(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    settings = Settings.from_env()

    with pytest.raises(ConfigurationError, match=name):
        settings.validate()
