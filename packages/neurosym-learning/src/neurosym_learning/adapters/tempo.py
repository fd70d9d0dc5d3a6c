from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from neurosym_learning.adapters.base import BaseAdapter, from_epoch
from neurosym_learning.types import Span, SpanFilter

if TYPE_CHECKING:
    from datetime import datetime

    import httpx

SEARCH_PATH = "/api/search"

# OTLP AnyValue variants, in lookup order
_VALUE_KINDS = ("stringValue", "intValue", "doubleValue", "boolValue", "bytesValue")


class TempoAdapter(BaseAdapter):
    """Grafana Tempo backend via TraceQL search."""

    name: ClassVar[str] = "tempo"

    @classmethod
    def _probe(
        cls, client: httpx.Client, endpoint: str, api_key: str | None
    ) -> httpx.Response:
        return client.get(f"{endpoint}{SEARCH_PATH}", params={"q": "{ }", "limit": 1})

    def query_spans(
        self,
        *,
        filter: SpanFilter,
        time_range: tuple[datetime, datetime],
        limit: int,
    ) -> list[Span]:
        start, end = time_range
        response = self._client.get(
            self._url(SEARCH_PATH),
            params={
                "q": traceql(filter),
                "limit": limit,
                "start": int(start.timestamp()),
                "end": int(end.timestamp()),
            },
            headers={"Accept": "application/json"},
        )
        self._raise_for_status(response)
        traces = (self._json(response) or {}).get("traces") or []

        return [
            _normalize_span(span, trace.get("traceID", ""))
            for trace in traces
            for span_set in trace.get("spanSets") or []
            for span in span_set.get("spans") or []
        ]


def traceql(filter: SpanFilter) -> str:
    """Render a SpanFilter as a TraceQL span selector.

    >>> traceql(SpanFilter(task_name="triage"))
    '{ span."task.name" = "triage" }'
    """
    conditions = [f'span."task.name" = "{_escape(filter.task_name)}"']
    conditions.extend(
        f'span."{_escape(key)}" = "{_escape(str(value))}"'
        for key, value in filter.attributes.items()
    )
    return "{ " + " && ".join(conditions) + " }"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _normalize_span(data: dict[str, Any], trace_id: str) -> Span:
    return Span(
        span_id=str(data.get("spanID", "")),
        trace_id=str(trace_id),
        name=data.get("name") or "unknown",
        timestamp=from_epoch(data.get("startTimeUnixNano"), divisor=1e9),
        duration_ms=float(data.get("durationNanos") or 0) / 1_000_000,
        attributes=_parse_attributes(data.get("attributes")),
    )


def _parse_attributes(attributes: Any) -> dict[str, Any]:
    if not isinstance(attributes, list):
        return {}
    attrs: dict[str, Any] = {}
    for attr in attributes:
        wrapped = attr.get("value") or {}
        for kind in _VALUE_KINDS:
            if wrapped.get(kind) is not None:
                attrs[str(attr.get("key"))] = wrapped[kind]
                break
    return attrs
