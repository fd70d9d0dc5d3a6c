"""Shared data types for the neural → symbolic learning pipeline.

These types flow through the pipeline in order:
- Spans: normalized backend output, one per traced operation
- Execution records: one task invocation rebuilt from its spans
- Pattern analyses: consistency statistics over many executions
- Detection / synthesis results: candidate symbolic code plus violations
- Proposals: the reviewable bundle handed to a presentation layer

Everything here is an immutable value object; nothing is cached or
persisted across ``analyze``/``propose`` calls.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from neurosym_learning.definitions import TaskDefinition

PATTERN_SEPARATOR = " → "


def _now() -> datetime:
    return datetime.now(UTC)


# ── Trace data ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Span:
    """One traced operation as normalized by a backend adapter."""

    span_id: str
    trace_id: str
    name: str
    timestamp: datetime
    duration_ms: float
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SpanFilter:
    """What to ask a backend for."""

    task_name: str
    agent_name: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolCall:
    tool_name: str
    arguments: str | None = None
    result: str | None = None
    arguments_size: int | None = None
    result_size: int | None = None


@dataclass(frozen=True, slots=True)
class ExecutionRecord:
    """One task invocation, rebuilt from the spans of a single trace."""

    trace_id: str
    task_name: str | None
    inputs: dict[str, Any]
    outputs: dict[str, Any]
    tool_calls: list[ToolCall]
    duration_ms: float
    timestamp: datetime

    @property
    def tool_sequence(self) -> str:
        """Ordered tool names joined by the pattern separator."""
        return PATTERN_SEPARATOR.join(tc.tool_name for tc in self.tool_calls)


def input_signature(inputs: Any) -> str:
    """Deterministic grouping key for an execution's inputs.

    Keys are sorted and non-JSON values are stringified, so two dicts
    with equal contents always map to the same signature.
    """
    if not isinstance(inputs, dict):
        return ""
    return json.dumps(inputs, sort_keys=True, default=str)


# ── Analysis ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ConsistencyResult:
    score: float
    common_pattern: str | None
    input_signature_count: int


@dataclass(frozen=True, slots=True)
class PatternAnalysis:
    """Consistency statistics for one task.

    ``ready_for_learning`` equals ``consistency_score >= consistency_threshold``
    whenever enough executions were seen; otherwise it is False and
    ``reason`` says why.
    """

    task_name: str
    execution_count: int
    consistency_threshold: float
    ready_for_learning: bool
    consistency_score: float = 0.0
    common_pattern: str | None = None
    input_signature_count: int = 0
    reason: str | None = None
    required_count: int | None = None
    analyzed_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class OptimizationOpportunity:
    task_name: str
    task_definition: TaskDefinition
    execution_count: int
    consistency_score: float
    ready_for_learning: bool
    common_pattern: str | None = None
    reason: str | None = None


# ── Validation ───────────────────────────────────────────────────────


class ViolationType(StrEnum):
    """Kinds of problems static validation can report."""

    SYNTAX_ERROR = "syntax_error"
    UNKNOWN_METHOD = "unknown_method"
    UNSAFE_TOOL_REFERENCE = "unsafe_tool_reference"
    SCHEMA_MISMATCH = "schema_mismatch"
    VALIDATION_ERROR = "validation_error"
    # Safety validator kinds
    DANGEROUS_CALL = "dangerous_call"
    DANGEROUS_IMPORT = "dangerous_import"
    DANGEROUS_NAME = "dangerous_name"
    DANGEROUS_ATTRIBUTE = "dangerous_attribute"


@dataclass(frozen=True, slots=True)
class Violation:
    type: ViolationType
    message: str
    name: str | None = None  # offending method/tool/module, when there is one
    line: int | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class ValidationReport:
    violations: list[Violation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations


# ── Generation results ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """Outcome of pattern-based code generation.

    ``success`` means the generated code passed safety validation;
    ``ready_to_deploy`` additionally requires consistency >= 0.90.
    """

    success: bool
    task_name: str | None = None
    generated_code: str | None = None
    validation_violations: list[Violation] = field(default_factory=list)
    consistency_score: float | None = None
    execution_count: int | None = None
    pattern: str | None = None
    ready_to_deploy: bool = False
    reason: str | None = None
    generated_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class SynthesisResult:
    is_deterministic: bool
    confidence: float
    explanation: str
    code: str | None = None
    validation_errors: list[Violation] = field(default_factory=list)


# ── Proposals ────────────────────────────────────────────────────────


class SynthesisMethod(StrEnum):
    PATTERN_DETECTION = "pattern_detection"
    LLM_SYNTHESIS = "llm_synthesis"


@dataclass(frozen=True, slots=True)
class PerformanceImpact:
    """Estimated effect of replacing a neural task with symbolic code.

    These numbers come from a fixed per-call cost model, not from
    measurement. Treat them as an order-of-magnitude placeholder.
    """

    current_avg_time: float  # seconds
    optimized_avg_time: float
    time_reduction_pct: float
    current_avg_cost: float  # dollars
    optimized_avg_cost: float
    cost_reduction_pct: float
    projected_monthly_savings: float


@dataclass(frozen=True, slots=True)
class Proposal:
    """A reviewable replacement for one neural task.

    ``ready_to_deploy`` is True only when ``validation_violations`` is
    empty and the producing strategy reported success.
    """

    task_name: str
    task_definition: TaskDefinition
    current_code: str
    proposed_code: str
    full_generated_code: str
    consistency_score: float
    execution_count: int
    pattern: str | None
    performance_impact: PerformanceImpact
    validation_violations: list[Violation]
    ready_to_deploy: bool
    synthesis_method: SynthesisMethod
    synthesis_confidence: float | None = None
    synthesis_explanation: str | None = None


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """Intent descriptor returned by ``Optimizer.apply``; nothing is persisted."""

    success: bool
    task_name: str
    updated_code: str
    action: str
    message: str
