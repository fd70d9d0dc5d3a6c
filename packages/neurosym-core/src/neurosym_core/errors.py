from __future__ import annotations


class NeurosymError(Exception):
    """Base exception for all neurosym errors."""


# ── Config Errors ────────────────────────────────────────────────────

class ConfigError(NeurosymError):
    """Invalid or missing configuration."""


# ── Trace Backend Errors ─────────────────────────────────────────────

class BackendError(NeurosymError):
    """Error from a trace backend adapter."""


# ── Agent Definition Errors ─────────────────────────────────────────

class AgentDefinitionError(NeurosymError):
    """Agent definition file is missing or malformed."""


# ── Learning Errors ──────────────────────────────────────────────────

class LearningError(NeurosymError):
    """Base for optimization-pipeline errors."""


class TaskNotFoundError(LearningError):
    """Task is not declared by the agent definition."""


class NoExecutionDataError(LearningError):
    """No execution traces were found for the task."""


class OptimizationNotPossibleError(LearningError):
    """Neither pattern detection nor synthesis produced usable code."""


# ── Safety Errors ────────────────────────────────────────────────────

class UnsafeCodeError(NeurosymError):
    """Generated code failed static safety validation."""
