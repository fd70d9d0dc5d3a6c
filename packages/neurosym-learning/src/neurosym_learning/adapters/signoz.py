from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar

import httpx
from neurosym_core.errors import BackendError
from neurosym_core.logging import get_logger

from neurosym_learning.adapters.base import (
    ATTR_OPERATION,
    ATTR_TOOL_NAME,
    TOOL_OPERATION,
    BaseAdapter,
    from_epoch,
)
from neurosym_learning.types import Span, SpanFilter

logger = get_logger("learning.adapters.signoz")

QUERY_PATH = "/api/v5/query_range"

# Row columns that are span fields rather than attributes
_CORE_FIELDS = frozenset({
    "spanID", "span_id", "traceID", "trace_id", "timestamp",
    "durationNano", "duration_nano", "name", "serviceName",
})

_TASK_FIELDS = (
    "spanID", "traceID", "timestamp", "durationNano", "name", "serviceName",
    "task.name", "task.input.keys", "task.input.count",
    "task.output.keys", "task.output.count",
    "gen_ai.operation.name", "gen_ai.tool.name",
    "gen_ai.tool.call.arguments.size", "gen_ai.tool.call.result.size",
)

_TOOL_FIELDS = (
    "spanID", "traceID", "timestamp", "durationNano", "name", "serviceName",
    "gen_ai.operation.name", "gen_ai.tool.name",
    "gen_ai.tool.call.arguments", "gen_ai.tool.call.arguments.size",
    "gen_ai.tool.call.result", "gen_ai.tool.call.result.size",
)

# Tool spans fan out from task spans; fetch proportionally more
TOOL_SPAN_MULTIPLIER = 10


class SignozAdapter(BaseAdapter):
    """SigNoz backend via the v5 ``query_range`` builder API.

    Queries run in two phases: first the task spans matching the
    filter, then the tool spans belonging to those traces. A failure in
    the second phase degrades to "no tool calls" rather than losing the
    task spans.

    Usage::

        adapter = SignozAdapter("https://signoz.example.com", api_key)
        spans = adapter.query_spans(
            filter=SpanFilter(task_name="triage"),
            time_range=(start, end),
            limit=100,
        )
    """

    name: ClassVar[str] = "signoz"
    PROBE_TIMEOUT: ClassVar[float] = 30.0

    @classmethod
    def _probe(
        cls, client: httpx.Client, endpoint: str, api_key: str | None
    ) -> httpx.Response:
        return client.post(
            f"{endpoint}{QUERY_PATH}", json={}, headers=_headers(api_key)
        )

    @classmethod
    def _probe_accepts(cls, response: httpx.Response) -> bool:
        # An empty query is a 400 on a live SigNoz; the route existing is enough.
        return response.is_success or response.is_client_error

    def query_spans(
        self,
        *,
        filter: SpanFilter,
        time_range: tuple[datetime, datetime],
        limit: int,
    ) -> list[Span]:
        task_body = build_query(
            filter_expression(filter), time_range, limit,
            fields=_TASK_FIELDS, direction="desc",
        )
        task_spans = self._parse(self._execute(task_body))
        if not task_spans:
            return task_spans

        trace_ids = list(dict.fromkeys(s.trace_id for s in task_spans if s.trace_id))
        if not trace_ids:
            return task_spans

        return task_spans + self._query_tool_spans(
            trace_ids, time_range, limit * TOOL_SPAN_MULTIPLIER
        )

    # ── Internal Methods ─────────────────────────────────────────────

    def _query_tool_spans(
        self,
        trace_ids: list[str],
        time_range: tuple[datetime, datetime],
        limit: int,
    ) -> list[Span]:
        traces = " OR ".join(f"traceID = '{_quote(t)}'" for t in trace_ids)
        expression = f"({traces}) AND {ATTR_OPERATION} = '{TOOL_OPERATION}'"
        body = build_query(
            expression, time_range, limit, fields=_TOOL_FIELDS, direction="asc"
        )
        try:
            return self._parse(self._execute(body))
        except (BackendError, httpx.HTTPError) as exc:
            logger.warning("Failed to query tool spans: %s", exc)
            return []

    def _execute(self, body: dict[str, Any]) -> dict[str, Any]:
        logger.debug("SigNoz query: %s", body)
        response = self._client.post(
            self._url(QUERY_PATH), json=body, headers=_headers(self.api_key)
        )
        self._raise_for_status(response)
        return self._json(response)

    def _parse(self, payload: dict[str, Any]) -> list[Span]:
        outer = (payload or {}).get("data") or {}
        results = (outer.get("data") or {}).get("results") or []
        return [
            _normalize_span(row.get("data") or {})
            for result in results
            for row in (result.get("rows") or [])
        ]


def filter_expression(filter: SpanFilter) -> str:
    """Render a SpanFilter as a SigNoz filter expression."""
    clauses = [f"task.name = '{_quote(filter.task_name)}'"]
    if filter.agent_name:
        clauses.append(f"agent.name = '{_quote(filter.agent_name)}'")
    clauses.extend(
        f"{key} = '{_quote(str(value))}'" for key, value in filter.attributes.items()
    )
    return " AND ".join(clauses)


def build_query(
    expression: str,
    time_range: tuple[datetime, datetime],
    limit: int,
    *,
    fields: tuple[str, ...],
    direction: str,
) -> dict[str, Any]:
    start, end = time_range
    return {
        "start": int(start.timestamp() * 1000),
        "end": int(end.timestamp() * 1000),
        "requestType": "raw",
        "variables": {},
        "compositeQuery": {
            "queries": [{
                "type": "builder_query",
                "spec": {
                    "name": "A",
                    "signal": "traces",
                    "filter": {"expression": expression},
                    "selectFields": [{"name": f} for f in fields],
                    "order": [{"key": {"name": "timestamp"}, "direction": direction}],
                    "limit": limit,
                    "offset": 0,
                    "disabled": False,
                },
            }],
        },
    }


def _headers(api_key: str | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["SIGNOZ-API-KEY"] = api_key
    return headers


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _normalize_span(data: dict[str, Any]) -> Span:
    attributes = {
        k: v for k, v in data.items() if k not in _CORE_FIELDS and v is not None
    }
    name = data.get("name") or data.get("serviceName") or ""
    prefix = f"{TOOL_OPERATION}."
    if not attributes.get(ATTR_TOOL_NAME) and name.startswith(prefix):
        tool = name.removeprefix(prefix)
        if tool:
            attributes[ATTR_TOOL_NAME] = tool

    return Span(
        span_id=str(data.get("spanID") or data.get("span_id") or ""),
        trace_id=str(data.get("traceID") or data.get("trace_id") or ""),
        name=name,
        timestamp=_parse_timestamp(data.get("timestamp")),
        duration_ms=float(data.get("durationNano") or data.get("duration_nano") or 0) / 1_000_000,
        attributes=attributes,
    )


def _parse_timestamp(value: Any) -> datetime:
    """SigNoz returns RFC 3339 strings or integer nanoseconds."""
    if isinstance(value, str) and not value.isdigit():
        parsed = datetime.fromisoformat(value)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return from_epoch(value, divisor=1e9)
