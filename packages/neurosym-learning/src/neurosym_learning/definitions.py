"""Task and agent definitions as seen by the learning pipeline.

The DSL layer that produces these is external; the pipeline only reads
them. ``load_agent_definition`` exists so operators can describe an
agent in a small YAML file::

    name: github-monitor
    description: Watches repositories
    tools: [fetch_issues, summarize]
    tasks:
      triage:
        instructions: Fetch open issues and summarize them
        inputs: {repo: string}
        outputs: {summary: string}
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from neurosym_core.errors import AgentDefinitionError


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """One task of an agent.

    A task is *neural* when it is driven by an instruction string and
    has no procedural implementation yet, and *symbolic* once ``code``
    is present.
    """

    name: str
    instructions: str | None = None
    inputs: dict[str, str] = field(default_factory=dict)
    outputs: dict[str, str] = field(default_factory=dict)
    code: str | None = None

    @property
    def symbolic(self) -> bool:
        return bool(self.code)

    @property
    def neural(self) -> bool:
        return bool(self.instructions) and not self.symbolic


@dataclass(frozen=True, slots=True)
class AgentDefinition:
    name: str
    description: str = ""
    tasks: dict[str, TaskDefinition] = field(default_factory=dict)
    tools: list[str] = field(default_factory=list)


def load_agent_definition(path: Path | str) -> AgentDefinition:
    """Parse a YAML agent file into an AgentDefinition.

    Raises:
        AgentDefinitionError: If the file is missing, is not valid YAML,
            or lacks a ``name``.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Agent definition not found: {path}"
        raise AgentDefinitionError(msg)

    try:
        meta = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        msg = f"Invalid YAML in {path}: {exc}"
        raise AgentDefinitionError(msg) from exc

    if not isinstance(meta, dict):
        msg = f"Agent definition must be a mapping, got {type(meta).__name__}: {path}"
        raise AgentDefinitionError(msg)
    if not meta.get("name"):
        msg = f"Agent definition missing required field 'name': {path}"
        raise AgentDefinitionError(msg)

    raw_tasks = meta.get("tasks") or {}
    if not isinstance(raw_tasks, dict):
        msg = f"'tasks' must be a mapping of task name to definition: {path}"
        raise AgentDefinitionError(msg)

    tasks = {
        str(name): _parse_task(str(name), body or {}, path)
        for name, body in raw_tasks.items()
    }

    return AgentDefinition(
        name=str(meta["name"]),
        description=str(meta.get("description", "")),
        tasks=tasks,
        tools=_as_str_list(meta.get("tools")),
    )


def _parse_task(name: str, body: Any, path: Path) -> TaskDefinition:
    if not isinstance(body, dict):
        msg = f"Task '{name}' must be a mapping: {path}"
        raise AgentDefinitionError(msg)
    return TaskDefinition(
        name=name,
        instructions=body.get("instructions"),
        inputs=_as_schema(body.get("inputs")),
        outputs=_as_schema(body.get("outputs")),
        code=body.get("code"),
    )


def _as_schema(value: Any) -> dict[str, str]:
    if not value:
        return {}
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    # Bare list of names: untyped fields
    return {str(item): "any" for item in _as_str_list(value)}


def _as_str_list(value: Any) -> list[str]:
    """Coerce a value to a list of strings, or return empty list."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value]
    return [str(value)]
