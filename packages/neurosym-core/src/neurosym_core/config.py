from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from neurosym_core.errors import ConfigError

SUPPORTED_BACKENDS = ("signoz", "jaeger", "tempo")

ENV_QUERY_ENDPOINT = "OTEL_QUERY_ENDPOINT"
ENV_QUERY_API_KEY = "OTEL_QUERY_API_KEY"
ENV_QUERY_BACKEND = "OTEL_QUERY_BACKEND"


def _load_toml(path: Path) -> dict:
    """Load a TOML file, returning empty dict if missing."""
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ConfigError(msg) from exc


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base (1 level deep for TOML sections)."""
    merged = dict(base)
    for key, val in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(val, dict)
        ):
            merged[key] = {**merged[key], **val}
        else:
            merged[key] = val
    return merged


def _pick(section: dict, dc: type) -> dict:
    fields = dc.__dataclass_fields__
    return {k: v for k, v in section.items() if k in fields}


def _check_backend(backend: str | None) -> str | None:
    if backend is None or backend == "":
        return None
    name = backend.strip().lower()
    if name not in SUPPORTED_BACKENDS:
        msg = (
            f"Unknown trace backend '{backend}'; "
            f"expected one of: {', '.join(SUPPORTED_BACKENDS)}"
        )
        raise ConfigError(msg)
    return name


@dataclass(frozen=True, slots=True)
class LLMConfig:
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-5"
    api_key_env: str = "ANTHROPIC_API_KEY"
    base_url: str | None = None
    temperature: float = 0.0
    max_tokens: int = 8_192


@dataclass(frozen=True, slots=True)
class LearningConfig:
    """Where traces live and how eager the optimizer is."""
    query_endpoint: str | None = None
    query_api_key: str | None = None
    query_backend: str | None = None  # signoz | jaeger | tempo | None (auto)
    query_timeout_seconds: float = 30.0
    min_executions: int = 10
    min_consistency: float = 0.85
    max_workers: int = 4

    def with_env(self, environ: dict[str, str] | None = None) -> LearningConfig:
        """Overlay ``OTEL_QUERY_*`` environment variables."""
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        if env.get(ENV_QUERY_ENDPOINT):
            overrides["query_endpoint"] = env[ENV_QUERY_ENDPOINT]
        if env.get(ENV_QUERY_API_KEY):
            overrides["query_api_key"] = env[ENV_QUERY_API_KEY]
        if env.get(ENV_QUERY_BACKEND):
            overrides["query_backend"] = _check_backend(env[ENV_QUERY_BACKEND])
        return replace(self, **overrides) if overrides else self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> LearningConfig:
        return cls().with_env(environ)


@dataclass(frozen=True, slots=True)
class NeurosymConfig:
    """Top-level configuration, parsed from neurosym.toml."""
    project_name: str = "neurosym-project"
    learning: LearningConfig = field(default_factory=LearningConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)

    @classmethod
    def from_toml(
        cls, path: Path | str = "neurosym.toml"
    ) -> NeurosymConfig:
        return cls._from_raw(_load_toml(Path(path)))

    @classmethod
    def load(
        cls,
        project_dir: Path | str | None = None,
        *,
        environ: dict[str, str] | None = None,
    ) -> NeurosymConfig:
        """Load config with global → project → environment layering.

        Resolution order (later wins):
        1. Built-in defaults
        2. ~/.neurosym/config.toml (global)
        3. .neurosym/config.toml or neurosym.toml (project)
        4. OTEL_QUERY_ENDPOINT / OTEL_QUERY_API_KEY / OTEL_QUERY_BACKEND
        """
        global_path = Path.home() / ".neurosym" / "config.toml"

        project_dir = (
            Path.cwd() if project_dir is None else Path(project_dir)
        )

        project_path = project_dir / ".neurosym" / "config.toml"
        if not project_path.exists():
            project_path = project_dir / "neurosym.toml"

        merged = _deep_merge(_load_toml(global_path), _load_toml(project_path))
        config = cls._from_raw(merged)
        return replace(config, learning=config.learning.with_env(environ))

    @classmethod
    def _from_raw(cls, raw: dict) -> NeurosymConfig:
        learning_raw = _pick(raw.get("learning", {}), LearningConfig)
        if "query_backend" in learning_raw:
            learning_raw["query_backend"] = _check_backend(
                learning_raw["query_backend"]
            )

        return cls(
            project_name=raw.get("project", {}).get(
                "name", "neurosym-project"
            ),
            learning=LearningConfig(**learning_raw),
            llm=LLMConfig(**_pick(raw.get("llm", {}), LLMConfig)),
        )
