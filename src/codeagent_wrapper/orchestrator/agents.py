"""Named agent presets: backend, model and prompt defaults per role."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from codeagent_wrapper.orchestrator.errors import ConfigurationError, UnknownAgentError
from codeagent_wrapper.orchestrator.models import TaskSpec

logger = logging.getLogger(__name__)

MODELS_FILE_NAME = "models.json"

_AGENT_NAME_RE = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(slots=True, frozen=True)
class AgentPreset:
    """Defaults applied to a task that names this agent."""

    backend: str | None = None
    model: str | None = None
    prompt_file: str | None = None
    reasoning_effort: str | None = None

    def to_json(self) -> dict[str, str]:
        return {
            "backend": self.backend or "",
            "model": self.model or "",
            "promptFile": self.prompt_file or "",
            "reasoningEffort": self.reasoning_effort or "",
        }


DEFAULT_AGENTS: dict[str, AgentPreset] = {
    "oracle": AgentPreset(backend="claude", model="claude-opus-4-5-20251101"),
    "librarian": AgentPreset(backend="claude", model="claude-sonnet-4-5-20250929"),
    "explore": AgentPreset(backend="opencode", model="opencode/grok-code"),
    "develop": AgentPreset(backend="codex"),
    "frontend-ui-ux-engineer": AgentPreset(backend="gemini"),
    "document-writer": AgentPreset(backend="gemini"),
}


@dataclass(slots=True, frozen=True)
class AgentCatalog:
    """Built-in presets merged with the user's models file."""

    agents: dict[str, AgentPreset] = field(default_factory=lambda: dict(DEFAULT_AGENTS))
    default_backend: str | None = None
    default_model: str | None = None

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.agents)

    def get(self, name: str) -> AgentPreset:
        """Look up a preset by name.

        Raises:
            UnknownAgentError: the name is malformed or not defined.
        """

        if not is_valid_agent_name(name) or name not in self.agents:
            raise UnknownAgentError(name, self.names)
        return self.agents[name]

    def apply(self, spec: TaskSpec, *, agent: str | None = None) -> tuple[TaskSpec, str | None]:
        """Fill unset backend/model/prompt-file fields from the task's agent preset.

        Returns the updated task and the preset's reasoning effort, if any.
        """

        name = spec.agent or agent
        if not name:
            return spec, None
        preset = self.get(name)
        updated = replace(
            spec,
            agent=name,
            backend=spec.backend or preset.backend,
            model=spec.model or preset.model,
            prompt_file=spec.prompt_file or (Path(preset.prompt_file) if preset.prompt_file else None),
        )
        return updated, preset.reasoning_effort


def is_valid_agent_name(name: object) -> bool:
    """Agent names are non-empty and limited to [A-Za-z0-9_-]."""

    return isinstance(name, str) and _AGENT_NAME_RE.fullmatch(name) is not None


def load_agent_catalog(home: Path) -> AgentCatalog:
    """Load `<home>/models.json` over the built-in presets.

    A missing file yields the defaults. A file that is not valid JSON, or
    whose entries have the wrong types, is a configuration error.
    """

    path = home / MODELS_FILE_NAME
    if not path.exists():
        return AgentCatalog()
    try:
        raw = json.loads(path.read_text("utf-8"))
    except (OSError, ValueError) as error:
        raise ConfigurationError(f"Failed to read agent presets from {path}: {error}") from error
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Expected JSON object in {path}")

    agents = dict(DEFAULT_AGENTS)
    raw_agents = raw.get("agents", {})
    if not isinstance(raw_agents, dict):
        raise ConfigurationError(f"'agents' must be an object in {path}")
    for name, entry in raw_agents.items():
        if not is_valid_agent_name(name):
            raise ConfigurationError(f"Invalid agent name {name!r} in {path}")
        agents[name] = _preset_from_json(entry, name=name, path=path)

    logger.debug("Loaded %d agent presets from %s", len(raw_agents), path)
    return AgentCatalog(
        agents=agents,
        default_backend=_optional_str(raw, "defaultBackend", path=path),
        default_model=_optional_str(raw, "defaultModel", path=path),
    )


def write_default_catalog(home: Path, *, force: bool = False) -> Path | None:
    """Write the built-in presets to `<home>/models.json`.

    Returns the written path, or None when the file exists and `force` is off.
    """

    path = home / MODELS_FILE_NAME
    if path.exists() and not force:
        return None
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "defaultBackend": "",
        "defaultModel": "",
        "agents": {name: preset.to_json() for name, preset in DEFAULT_AGENTS.items()},
    }
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", "utf-8")
    return path


def _preset_from_json(entry: Any, *, name: str, path: Path) -> AgentPreset:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Agent {name!r} must be an object in {path}")
    return AgentPreset(
        backend=_optional_str(entry, "backend", path=path),
        model=_optional_str(entry, "model", path=path),
        prompt_file=_optional_str(entry, "promptFile", path=path),
        reasoning_effort=_optional_str(entry, "reasoningEffort", path=path),
    )


def _optional_str(raw: dict[str, Any], key: str, *, path: Path) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"'{key}' must be a string in {path}")
    return value.strip() or None
