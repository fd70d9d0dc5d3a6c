"""Execution-trace queries and tool-sequence consistency analysis.

The TraceAnalyzer asks a tracing backend for a task's recent executions,
groups them by input signature, and measures how reliably each group
follows the same tool-call sequence. A high, size-weighted consistency
is the signal that a neural task behaves deterministically enough to
be replaced by generated code.
"""
from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from neurosym_core.logging import get_logger

from neurosym_learning.adapters import detect_adapter
from neurosym_learning.types import (
    ConsistencyResult,
    PatternAnalysis,
    SpanFilter,
    input_signature,
)

if TYPE_CHECKING:
    import httpx
    from neurosym_core.config import LearningConfig

    from neurosym_learning.adapters import TraceBackend
    from neurosym_learning.types import ExecutionRecord

logger = get_logger("learning.trace_analyzer")

DEFAULT_CONSISTENCY_THRESHOLD = 0.85
DEFAULT_MIN_EXECUTIONS = 10
DEFAULT_TIME_RANGE = timedelta(hours=24)
ANALYSIS_LIMIT = 1000

TimeRange = int | tuple[datetime, datetime] | None


def normalize_time_range(
    time_range: TimeRange, *, now: datetime | None = None
) -> tuple[datetime, datetime]:
    """Turn seconds, an explicit ``(start, end)`` or None into a window."""
    now = now or datetime.now(UTC)
    if isinstance(time_range, tuple):
        return time_range
    if isinstance(time_range, int) and not isinstance(time_range, bool):
        return now - timedelta(seconds=time_range), now
    return now - DEFAULT_TIME_RANGE, now


def calculate_consistency(executions: list[ExecutionRecord]) -> ConsistencyResult:
    """Size-weighted share of executions matching their group's modal sequence.

    Executions are grouped by input signature. Within a group the most
    frequent tool sequence is the mode and the group's consistency is
    ``mode_count / group_size``; the overall score weights each group by
    ``group_size / total``. The common pattern is the most frequent of the
    per-group modes.

    Ties resolve to the first-encountered value, both within a group and
    across groups, because ``Counter`` preserves insertion order.
    """
    total = len(executions)
    if total == 0:
        return ConsistencyResult(score=0.0, common_pattern=None, input_signature_count=0)

    groups: dict[str, list[str]] = {}
    for execution in executions:
        groups.setdefault(input_signature(execution.inputs), []).append(
            execution.tool_sequence
        )

    score = 0.0
    modes: list[str] = []
    for sequences in groups.values():
        mode, mode_count = Counter(sequences).most_common(1)[0]
        modes.append(mode)
        score += (len(sequences) / total) * (mode_count / len(sequences))

    common_pattern = Counter(modes).most_common(1)[0][0]
    return ConsistencyResult(
        score=round(score, 3),
        common_pattern=common_pattern or None,
        input_signature_count=len(groups),
    )


class TraceAnalyzer:
    """Query task executions from a tracing backend and score their consistency.

    The adapter is resolved before construction and pinned for the life
    of the instance. With no adapter the analyzer is permanently
    unavailable: queries return nothing and never raise.

    Usage::

        analyzer = TraceAnalyzer.from_config(LearningConfig.from_env())
        analysis = analyzer.analyze_patterns("triage", min_executions=10)
        if analysis and analysis.ready_for_learning:
            print(analysis.common_pattern)
    """

    def __init__(self, adapter: TraceBackend | None = None) -> None:
        self._adapter = adapter

    @classmethod
    def from_config(
        cls,
        config: LearningConfig,
        *,
        client: httpx.Client | None = None,
    ) -> TraceAnalyzer:
        """Detect the backend once and build an analyzer around it."""
        adapter = detect_adapter(
            config.query_endpoint,
            config.query_api_key,
            config.query_backend,
            client=client,
            timeout=config.query_timeout_seconds,
        )
        return cls(adapter)

    @property
    def available(self) -> bool:
        return self._adapter is not None

    @property
    def adapter(self) -> TraceBackend | None:
        return self._adapter

    def close(self) -> None:
        """Release the adapter's HTTP client, if it owns one."""
        if self._adapter is not None:
            self._adapter.close()

    def query_task_traces(
        self,
        task_name: str,
        *,
        limit: int = 100,
        time_range: TimeRange = None,
        agent_name: str | None = None,
    ) -> list[ExecutionRecord]:
        """Fetch recent executions of a task.

        Args:
            task_name: Task to look up.
            limit: Maximum number of task spans to request.
            time_range: Seconds back from now, an explicit ``(start, end)``,
                or None for the last 24 hours.
            agent_name: Restrict to one agent where the backend supports it.

        Returns:
            Execution records, or an empty list if the backend is
            unavailable or the query failed.
        """
        if self._adapter is None:
            logger.warning("No trace backend available, learning disabled")
            return []

        window = normalize_time_range(time_range)
        try:
            spans = self._adapter.query_spans(
                filter=SpanFilter(task_name=task_name, agent_name=agent_name),
                time_range=window,
                limit=limit,
            )
            return self._adapter.extract_task_data(spans)
        except Exception as exc:
            logger.error("Failed to query traces for task '%s': %s", task_name, exc)
            logger.debug("Trace query failure", exc_info=True)
            return []

    def analyze_patterns(
        self,
        task_name: str,
        *,
        min_executions: int = DEFAULT_MIN_EXECUTIONS,
        consistency_threshold: float = DEFAULT_CONSISTENCY_THRESHOLD,
        time_range: TimeRange = None,
        agent_name: str | None = None,
    ) -> PatternAnalysis | None:
        """Score how deterministically a task has been behaving.

        Returns None when there is no execution data at all, and a
        not-ready analysis with a ``reason`` when there is some but
        fewer than ``min_executions``.
        """
        executions = self.query_task_traces(
            task_name,
            limit=ANALYSIS_LIMIT,
            time_range=time_range,
            agent_name=agent_name,
        )
        count = len(executions)

        if count == 0:
            logger.info("No executions found for task '%s'", task_name)
            return None

        if count < min_executions:
            logger.info(
                "Insufficient executions for task '%s': %d/%d",
                task_name, count, min_executions,
            )
            return PatternAnalysis(
                task_name=task_name,
                execution_count=count,
                consistency_threshold=consistency_threshold,
                ready_for_learning=False,
                required_count=min_executions,
                reason=f"Need {min_executions - count} more executions",
            )

        consistency = calculate_consistency(executions)
        ready = consistency.score >= consistency_threshold
        reason = None
        if not ready:
            reason = (
                f"Consistency {consistency.score:.3f} below threshold "
                f"{consistency_threshold}"
            )

        logger.info(
            "Task '%s': %d executions, consistency %.3f (%s)",
            task_name, count, consistency.score,
            "ready" if ready else "not ready",
        )
        return PatternAnalysis(
            task_name=task_name,
            execution_count=count,
            consistency_score=consistency.score,
            consistency_threshold=consistency_threshold,
            ready_for_learning=ready,
            common_pattern=consistency.common_pattern,
            input_signature_count=consistency.input_signature_count,
            reason=reason,
        )
