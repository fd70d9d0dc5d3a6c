"""Tracing-backend adapters and backend auto-detection."""
from __future__ import annotations

from typing import TYPE_CHECKING

from neurosym_core.logging import get_logger

from neurosym_learning.adapters.base import BaseAdapter, TraceBackend
from neurosym_learning.adapters.jaeger import JaegerAdapter
from neurosym_learning.adapters.signoz import SignozAdapter
from neurosym_learning.adapters.tempo import TempoAdapter

if TYPE_CHECKING:
    import httpx

logger = get_logger("learning.adapters")

# Backend registry
ADAPTERS: dict[str, type[BaseAdapter]] = {
    "signoz": SignozAdapter,
    "jaeger": JaegerAdapter,
    "tempo": TempoAdapter,
}

DETECTION_ORDER = ("signoz", "jaeger", "tempo")


def detect_adapter(
    endpoint: str | None,
    api_key: str | None = None,
    backend: str | None = None,
    *,
    client: httpx.Client | None = None,
    timeout: float = 30.0,
) -> BaseAdapter | None:
    """Resolve the adapter for ``endpoint``, or None when nothing answers.

    An explicit ``backend`` is tried first; if it is unknown or does not
    answer, detection falls through to SigNoz, Jaeger, then Tempo.
    """
    if not endpoint:
        logger.info("No trace query endpoint configured; learning is disabled")
        return None

    if backend:
        adapter_cls = ADAPTERS.get(backend.lower())
        if adapter_cls is None:
            logger.warning(
                "Unknown trace backend '%s', falling back to auto-detection",
                backend,
            )
        elif adapter_cls.is_available(endpoint, api_key, client=client):
            logger.info("Using %s backend at %s", adapter_cls.name, endpoint)
            return adapter_cls(endpoint, api_key, client=client, timeout=timeout)
        else:
            logger.warning(
                "Requested backend '%s' not reachable at %s, falling back to auto-detection",
                backend,
                endpoint,
            )

    for name in DETECTION_ORDER:
        if backend and name == backend.lower():
            continue
        adapter_cls = ADAPTERS[name]
        if adapter_cls.is_available(endpoint, api_key, client=client):
            logger.info("Detected %s backend at %s", name, endpoint)
            return adapter_cls(endpoint, api_key, client=client, timeout=timeout)

    logger.warning("No trace backend answered at %s", endpoint)
    return None


__all__ = [
    "ADAPTERS",
    "DETECTION_ORDER",
    "BaseAdapter",
    "JaegerAdapter",
    "SignozAdapter",
    "TempoAdapter",
    "TraceBackend",
    "detect_adapter",
]
