"""Shared adapter plumbing: the backend protocol and span → record extraction."""
from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

import httpx
from neurosym_core.errors import BackendError
from neurosym_core.logging import get_logger

from neurosym_learning.types import ExecutionRecord, Span, SpanFilter, ToolCall

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger("learning.adapters")

TASK_SPAN_MARKER = "task_executor"
TOOL_OPERATION = "execute_tool"

# Span attribute keys written by the agent runtime's instrumentation
ATTR_TASK_NAME = "task.name"
ATTR_INPUT_KEYS = "task.input.keys"
ATTR_OUTPUT_KEYS = "task.output.keys"
ATTR_OPERATION = "gen_ai.operation.name"
ATTR_TOOL_NAME = "gen_ai.tool.name"
ATTR_TOOL_ARGS = "gen_ai.tool.call.arguments"
ATTR_TOOL_ARGS_SIZE = "gen_ai.tool.call.arguments.size"
ATTR_TOOL_RESULT = "gen_ai.tool.call.result"
ATTR_TOOL_RESULT_SIZE = "gen_ai.tool.call.result.size"


@runtime_checkable
class TraceBackend(Protocol):
    """What the trace analyzer needs from a backend."""

    @property
    def name(self) -> str: ...

    def query_spans(
        self,
        *,
        filter: SpanFilter,
        time_range: tuple[datetime, datetime],
        limit: int,
    ) -> list[Span]: ...

    def extract_task_data(self, spans: Iterable[Span]) -> list[ExecutionRecord]: ...

    def close(self) -> None: ...

class BaseAdapter:
    """Base class for tracing-backend query adapters.

    Subclasses translate a :class:`SpanFilter` into one backend's wire
    protocol and normalize the response into :class:`Span` objects.
    Grouping spans into executions is shared and lives here.

    An ``httpx.Client`` can be injected; tests pass one built on
    ``httpx.MockTransport``. When none is given the adapter owns its
    client and closes it in :meth:`close`.
    """

    name: ClassVar[str] = "base"
    PROBE_TIMEOUT: ClassVar[float] = 2.0

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        *,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.endpoint!r})"

    def __enter__(self) -> BaseAdapter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ── Backend-specific surface ─────────────────────────────────────

    @classmethod
    def is_available(
        cls,
        endpoint: str,
        api_key: str | None = None,
        *,
        client: httpx.Client | None = None,
    ) -> bool:
        """Cheap probe: is this kind of backend answering at ``endpoint``?

        Never raises; any transport failure means "no".
        """
        own = client is None
        probe = client or httpx.Client(timeout=cls.PROBE_TIMEOUT)
        try:
            response = cls._probe(probe, endpoint.rstrip("/"), api_key)
        except httpx.HTTPError as exc:
            logger.debug("%s probe failed at %s: %s", cls.name, endpoint, exc)
            return False
        finally:
            if own:
                probe.close()
        return cls._probe_accepts(response)

    @classmethod
    def _probe(
        cls, client: httpx.Client, endpoint: str, api_key: str | None
    ) -> httpx.Response:
        raise NotImplementedError

    @classmethod
    def _probe_accepts(cls, response: httpx.Response) -> bool:
        return response.is_success

    def query_spans(
        self,
        *,
        filter: SpanFilter,
        time_range: tuple[datetime, datetime],
        limit: int,
    ) -> list[Span]:
        raise NotImplementedError

    # ── Shared extraction ────────────────────────────────────────────

    def extract_task_data(self, spans: Iterable[Span]) -> list[ExecutionRecord]:
        """Group spans by trace and rebuild one record per task invocation.

        A trace without a ``task_executor`` span is not a task execution
        and is dropped.
        """
        by_trace: dict[str, list[Span]] = {}
        for span in spans:
            by_trace.setdefault(span.trace_id, []).append(span)

        records: list[ExecutionRecord] = []
        for trace_id, trace_spans in by_trace.items():
            task_span = next(
                (s for s in trace_spans if TASK_SPAN_MARKER in (s.name or "")),
                None,
            )
            if task_span is None:
                continue
            task_name = task_span.attributes.get(ATTR_TASK_NAME)
            records.append(ExecutionRecord(
                trace_id=trace_id,
                task_name=str(task_name) if task_name is not None else None,
                inputs=_keyed_values(task_span.attributes, "task.input"),
                outputs=_keyed_values(task_span.attributes, "task.output"),
                tool_calls=_tool_calls(trace_spans),
                duration_ms=task_span.duration_ms,
                timestamp=task_span.timestamp,
            ))
        return records

    # ── Internal Methods ─────────────────────────────────────────────

    def _url(self, path: str) -> str:
        return f"{self.endpoint}{path}"

    def _raise_for_status(self, response: httpx.Response) -> None:
        if not response.is_success:
            logger.error(
                "%s error response: %s", self.name, response.text[:500]
            )
            msg = (
                f"{self.name} query failed: "
                f"{response.status_code} {response.reason_phrase}"
            )
            raise BackendError(msg)

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            msg = f"{self.name} returned a non-JSON body"
            raise BackendError(msg) from exc


def _keyed_values(attributes: dict[str, Any], prefix: str) -> dict[str, Any]:
    """Read ``<prefix>.keys`` and pick up each ``<prefix>.<key>`` present."""
    raw_keys = attributes.get(f"{prefix}.keys")
    if not raw_keys:
        return {}
    values: dict[str, Any] = {}
    for raw_key in str(raw_keys).split(","):
        key = raw_key.strip()
        if not key:
            continue
        value = attributes.get(f"{prefix}.{key}")
        if value is not None:
            values[key] = value
    return values


def _tool_calls(trace_spans: list[Span]) -> list[ToolCall]:
    tool_spans = sorted(
        (s for s in trace_spans if s.attributes.get(ATTR_OPERATION) == TOOL_OPERATION),
        key=lambda s: s.timestamp,
    )
    calls = []
    for span in tool_spans:
        attrs = span.attributes
        calls.append(ToolCall(
            tool_name=str(attrs.get(ATTR_TOOL_NAME) or "unknown"),
            arguments=_opt_str(attrs.get(ATTR_TOOL_ARGS)),
            result=_opt_str(attrs.get(ATTR_TOOL_RESULT)),
            arguments_size=_opt_int(attrs.get(ATTR_TOOL_ARGS_SIZE)),
            result_size=_opt_int(attrs.get(ATTR_TOOL_RESULT_SIZE)),
        ))
    return calls


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _opt_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def from_epoch(value: float | int | str | None, *, divisor: float) -> datetime:
    """Convert an epoch value in backend units to an aware datetime.

    ``divisor`` converts to seconds (1e9 for ns, 1e6 for µs). Missing
    values map to "now", matching how the backends omit unset fields.
    """
    if value is None or value == "":
        return datetime.now(UTC)
    return datetime.fromtimestamp(float(value) / divisor, UTC)
