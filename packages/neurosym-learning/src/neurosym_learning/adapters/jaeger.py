from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, ClassVar

from neurosym_learning.adapters.base import BaseAdapter, from_epoch
from neurosym_learning.types import Span, SpanFilter

if TYPE_CHECKING:
    from datetime import datetime

    import httpx

SEARCH_PATH = "/api/traces"
DEFAULT_SERVICE = "agent"


class JaegerAdapter(BaseAdapter):
    """Jaeger backend via the HTTP query API's tag-filtered trace search.

    Jaeger speaks microseconds for both timestamps and durations.
    """

    name: ClassVar[str] = "jaeger"

    @classmethod
    def _probe(
        cls, client: httpx.Client, endpoint: str, api_key: str | None
    ) -> httpx.Response:
        return client.get(
            f"{endpoint}{SEARCH_PATH}", params={"service": "test", "limit": 1}
        )

    def query_spans(
        self,
        *,
        filter: SpanFilter,
        time_range: tuple[datetime, datetime],
        limit: int,
    ) -> list[Span]:
        response = self._client.get(
            self._url(SEARCH_PATH),
            params=search_params(filter, time_range, limit),
            headers={"Accept": "application/json"},
        )
        self._raise_for_status(response)
        traces = (self._json(response) or {}).get("data") or []

        spans: list[Span] = []
        for trace in traces:
            services = {
                pid: (proc or {}).get("serviceName", "unknown")
                for pid, proc in (trace.get("processes") or {}).items()
            }
            spans.extend(
                _normalize_span(span, trace.get("traceID", ""), services)
                for span in trace.get("spans") or []
            )
        return spans


def service_name(task_name: str | None) -> str:
    """Service is the dotted prefix of the task name, ``agent`` otherwise."""
    if task_name and "." in task_name:
        return task_name.split(".", 1)[0]
    return DEFAULT_SERVICE


def search_params(
    filter: SpanFilter, time_range: tuple[datetime, datetime], limit: int
) -> dict[str, Any]:
    start, end = time_range
    # Tags must all match on one span, so agent scoping is not applied here.
    tags = {"task.name": filter.task_name, **filter.attributes}
    return {
        "service": service_name(filter.task_name),
        "limit": limit,
        "start": int(start.timestamp() * 1_000_000),
        "end": int(end.timestamp() * 1_000_000),
        "tags": json.dumps(tags),
    }


def _normalize_span(
    data: dict[str, Any], trace_id: str, services: dict[str, str]
) -> Span:
    service = services.get(data.get("processID") or "p1", "unknown")
    return Span(
        span_id=str(data.get("spanID", "")),
        trace_id=str(trace_id),
        name=data.get("operationName") or service,
        timestamp=from_epoch(data.get("startTime"), divisor=1e6),
        duration_ms=float(data.get("duration") or 0) / 1000,
        attributes=_flatten_tags(data.get("tags")),
    )


def _flatten_tags(tags: Any) -> dict[str, Any]:
    if not isinstance(tags, list):
        return {}
    attrs: dict[str, Any] = {}
    for tag in tags:
        value = tag.get("value")
        if isinstance(value, dict):
            value = next(
                (value[k] for k in ("stringValue", "intValue", "floatValue", "boolValue")
                 if value.get(k) is not None),
                None,
            )
        attrs[str(tag.get("key"))] = value
    return attrs
