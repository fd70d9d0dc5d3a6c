"""LLM client seam for the TaskSynthesizer.

The synthesizer only needs ``chat(prompt) -> str``. ``DSPyChatClient``
provides that on top of a ``dspy.LM``, configured the same way the rest
of the stack configures DSPy: provider-prefixed model name, API key from
the environment variable named in ``LLMConfig``.
"""
from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import dspy
from neurosym_core.errors import ConfigError
from neurosym_core.logging import get_logger

if TYPE_CHECKING:
    from neurosym_core.config import LLMConfig

logger = get_logger("learning.llm")

_PROVIDER_PREFIXES = {
    "anthropic": "anthropic",
    "openai": "openai",
    "ollama": "ollama_chat",
}


@runtime_checkable
class LLMClient(Protocol):
    """Anything that can answer a single prompt synchronously."""

    def chat(self, prompt: str) -> str: ...


def lm_model_name(provider: str, model: str) -> str:
    prefix = _PROVIDER_PREFIXES.get(provider)
    return f"{prefix}/{model}" if prefix else model


class DSPyChatClient:
    """Single-turn chat over a ``dspy.LM``.

    No retries or backoff; callers that want them wrap ``chat``.
    """

    def __init__(self, lm: dspy.LM) -> None:
        self._lm = lm

    @classmethod
    def from_config(cls, config: LLMConfig) -> DSPyChatClient:
        """Build a client from LLM config.

        Raises:
            ConfigError: If the provider needs an API key and the
                configured environment variable is unset.
        """
        api_key = os.environ.get(config.api_key_env, "")
        if not api_key and config.provider != "ollama":
            msg = f"No API key for {config.provider} (set {config.api_key_env})"
            raise ConfigError(msg)
        if config.provider == "ollama":
            api_key = "ollama"

        kwargs: dict[str, Any] = {
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "api_key": api_key,
        }
        if config.base_url:
            kwargs["api_base"] = config.base_url

        model = lm_model_name(config.provider, config.model)
        logger.debug("Configuring synthesis LM %s", model)
        return cls(dspy.LM(model, **kwargs))

    def chat(self, prompt: str) -> str:
        outputs = self._lm(messages=[{"role": "user", "content": prompt}])
        if not outputs:
            return ""
        first = outputs[0]
        # Newer DSPy returns dicts when extra fields (logprobs, tool calls) are on
        if isinstance(first, dict):
            return str(first.get("text") or "")
        return str(first)
