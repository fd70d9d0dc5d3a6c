"""Neurosym Core: config, errors, and logging shared by every package."""
from __future__ import annotations

from neurosym_core._version import __version__
from neurosym_core.config import (
    SUPPORTED_BACKENDS,
    LearningConfig,
    LLMConfig,
    NeurosymConfig,
)
from neurosym_core.errors import (
    AgentDefinitionError,
    BackendError,
    ConfigError,
    LearningError,
    NeurosymError,
    NoExecutionDataError,
    OptimizationNotPossibleError,
    TaskNotFoundError,
    UnsafeCodeError,
)
from neurosym_core.logging import get_logger, setup_logging

__all__ = [
    # Config
    "SUPPORTED_BACKENDS",
    # Errors
    "AgentDefinitionError",
    "BackendError",
    "ConfigError",
    "LLMConfig",
    "LearningConfig",
    "LearningError",
    "NeurosymConfig",
    "NeurosymError",
    "NoExecutionDataError",
    "OptimizationNotPossibleError",
    "TaskNotFoundError",
    "UnsafeCodeError",
    # Version
    "__version__",
    # Logging
    "get_logger",
    "setup_logging",
]
