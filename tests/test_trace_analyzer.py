"""Tests for consistency scoring and the TraceAnalyzer query/analysis flow."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from conftest import FakeBackend, make_record
from neurosym_core.config import LearningConfig
from neurosym_core.errors import BackendError
from neurosym_learning.trace_analyzer import (
    TraceAnalyzer,
    calculate_consistency,
    normalize_time_range,
)
from neurosym_learning.types import input_signature

# ── Helpers ───────────────────────────────────────────────────


def _records(sequence: list[str], count: int, *, inputs: dict | None = None, start: int = 0):
    return [
        make_record(sequence, inputs=inputs, offset=start + i) for i in range(count)
    ]


def _two_group_records():
    group_a = (
        _records(["x"], 12, inputs={"repo": "a"})
        + _records(["y"], 3, inputs={"repo": "a"}, start=100)
    )
    group_b = _records(["z"], 5, inputs={"repo": "b"}, start=200)
    return group_a + group_b


# ── 1. Consistency ────────────────────────────────────────────


class TestCalculateConsistency:
    """Size-weighted, signature-grouped consistency."""

    def test_identical_sequences(self) -> None:
        """Every execution follows one pattern: score 1.0."""
        result = calculate_consistency(_records(["fetch", "transform"], 12))
        assert result.score == 1.0
        assert result.common_pattern == "fetch → transform"
        assert result.input_signature_count == 1

    def test_weighted_groups(self) -> None:
        """0.75 * 0.8 + 0.25 * 1.0 lands exactly on 0.85."""
        result = calculate_consistency(_two_group_records())
        assert result.score == 0.85
        assert result.input_signature_count == 2
        # Group modes tie 1-1; the first group's mode wins
        assert result.common_pattern == "x"

    def test_empty(self) -> None:
        result = calculate_consistency([])
        assert result.score == 0.0
        assert result.common_pattern is None

    def test_no_tool_calls_has_no_pattern(self) -> None:
        result = calculate_consistency(_records([], 10))
        assert result.score == 1.0
        assert result.common_pattern is None

    def test_tie_within_group_is_first_seen(self) -> None:
        records = [make_record(["b"], offset=0), make_record(["a"], offset=1)]
        result = calculate_consistency(records)
        assert result.score == 0.5
        assert result.common_pattern == "b"

    def test_input_signature_is_key_order_independent(self) -> None:
        assert input_signature({"b": 1, "a": 2}) == input_signature({"a": 2, "b": 1})
        assert input_signature(None) == ""


class TestNormalizeTimeRange:
    def test_seconds(self) -> None:
        now = datetime(2026, 1, 15, tzinfo=UTC)
        assert normalize_time_range(3600, now=now) == (now - timedelta(hours=1), now)

    def test_default_is_24h(self) -> None:
        now = datetime(2026, 1, 15, tzinfo=UTC)
        assert normalize_time_range(None, now=now) == (now - timedelta(hours=24), now)

    def test_explicit_window_passes_through(self) -> None:
        window = (datetime(2026, 1, 1, tzinfo=UTC), datetime(2026, 1, 2, tzinfo=UTC))
        assert normalize_time_range(window) == window


# ── 2. TraceAnalyzer ──────────────────────────────────────────


class TestTraceAnalyzer:
    """Query and analysis behaviour over a fake backend."""

    def test_unavailable_without_endpoint(self) -> None:
        analyzer = TraceAnalyzer.from_config(LearningConfig())
        assert not analyzer.available
        assert analyzer.query_task_traces("triage") == []
        assert analyzer.analyze_patterns("triage") is None

    def test_ready_when_consistent(self) -> None:
        backend = FakeBackend({"triage": _records(["fetch", "transform"], 12)})
        analysis = TraceAnalyzer(backend).analyze_patterns("triage")

        assert analysis is not None
        assert analysis.execution_count == 12
        assert analysis.consistency_score == 1.0
        assert analysis.ready_for_learning
        assert analysis.common_pattern == "fetch → transform"
        assert analysis.reason is None

    def test_insufficient_executions(self) -> None:
        backend = FakeBackend({"triage": _records(["fetch"], 8)})
        analysis = TraceAnalyzer(backend).analyze_patterns("triage")

        assert analysis is not None
        assert not analysis.ready_for_learning
        assert analysis.reason == "Need 2 more executions"
        assert analysis.required_count == 10
        assert analysis.execution_count == 8

    def test_boundary_is_inclusive(self) -> None:
        backend = FakeBackend({"triage": _two_group_records()})
        analysis = TraceAnalyzer(backend).analyze_patterns(
            "triage", consistency_threshold=0.85
        )
        assert analysis.consistency_score == 0.85
        assert analysis.ready_for_learning

    def test_below_threshold_has_reason(self) -> None:
        backend = FakeBackend({"triage": _two_group_records()})
        analysis = TraceAnalyzer(backend).analyze_patterns(
            "triage", consistency_threshold=0.9
        )
        assert not analysis.ready_for_learning
        assert "below threshold" in analysis.reason

    def test_no_data_is_none(self) -> None:
        assert TraceAnalyzer(FakeBackend()).analyze_patterns("triage") is None

    def test_backend_error_is_swallowed(self) -> None:
        """Query failures degrade to "no executions"."""
        analyzer = TraceAnalyzer(FakeBackend(error=BackendError("signoz query failed: 500")))
        assert analyzer.query_task_traces("triage") == []
        assert analyzer.analyze_patterns("triage") is None

    def test_agent_name_is_forwarded(self) -> None:
        backend = FakeBackend({"triage": _records(["fetch"], 1)})
        TraceAnalyzer(backend).query_task_traces("triage", agent_name="github-monitor")
        assert backend.filters[0].agent_name == "github-monitor"
        assert backend.filters[0].task_name == "triage"

    def test_close_delegates_to_adapter(self) -> None:
        backend = FakeBackend()
        TraceAnalyzer(backend).close()
        assert backend.closed

    def test_close_without_adapter_is_noop(self) -> None:
        TraceAnalyzer().close()
