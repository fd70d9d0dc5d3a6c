"""Orchestrate analyze → propose → apply for an agent's neural tasks.

The Optimizer is the entry point of the learning pipeline. It asks the
TraceAnalyzer which neural tasks behave consistently, generates a
replacement for one task on request (pattern detection first, LLM
synthesis as fallback), validates it, and packages the result as a
Proposal for a human or a deployment service to act on.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from neurosym_core.errors import (
    NoExecutionDataError,
    OptimizationNotPossibleError,
    TaskNotFoundError,
)
from neurosym_core.logging import get_logger

from neurosym_learning.codegen import extract_task_fragment, render_current_code
from neurosym_learning.pattern_detector import PatternDetector
from neurosym_learning.safety import SafetyValidator
from neurosym_learning.semantic_validator import SemanticValidator
from neurosym_learning.task_synthesizer import TaskSynthesizer
from neurosym_learning.trace_analyzer import (
    DEFAULT_CONSISTENCY_THRESHOLD,
    DEFAULT_MIN_EXECUTIONS,
    TraceAnalyzer,
)
from neurosym_learning.types import (
    ApplyResult,
    OptimizationOpportunity,
    PerformanceImpact,
    Proposal,
    SynthesisMethod,
)

if TYPE_CHECKING:
    import httpx
    from neurosym_core.config import NeurosymConfig

    from neurosym_learning.definitions import AgentDefinition, TaskDefinition
    from neurosym_learning.llm import LLMClient
    from neurosym_learning.trace_analyzer import TimeRange
    from neurosym_learning.types import (
        DetectionResult,
        ExecutionRecord,
        PatternAnalysis,
        SynthesisResult,
        Violation,
    )

logger = get_logger("learning.optimizer")

# Per-call cost model behind PerformanceImpact. Placeholder figures for
# a typical LLM-driven task versus plain code, not measurements.
NEURAL_AVG_TIME_S = 2.5
NEURAL_AVG_COST_USD = 0.003
SYMBOLIC_AVG_TIME_S = 0.1
SYMBOLIC_AVG_COST_USD = 0.0
DAYS_PER_MONTH = 30

SYNTHESIS_TRACE_LIMIT = 20
NO_DATA_REASON = "No execution data found"
APPLY_ACTION = "would_update_agent_definition"


def calculate_impact(execution_count: int) -> PerformanceImpact:
    """Estimate savings from replacing a neural task with symbolic code.

    Uses the fixed per-call cost model above. ``projected_monthly_savings``
    assumes the observed execution count repeats daily for 30 days.
    """
    time_saved = NEURAL_AVG_TIME_S - SYMBOLIC_AVG_TIME_S
    cost_saved = NEURAL_AVG_COST_USD - SYMBOLIC_AVG_COST_USD
    return PerformanceImpact(
        current_avg_time=NEURAL_AVG_TIME_S,
        optimized_avg_time=SYMBOLIC_AVG_TIME_S,
        time_reduction_pct=round(time_saved / NEURAL_AVG_TIME_S * 100, 1),
        current_avg_cost=NEURAL_AVG_COST_USD,
        optimized_avg_cost=SYMBOLIC_AVG_COST_USD,
        cost_reduction_pct=round(cost_saved / NEURAL_AVG_COST_USD * 100, 1),
        projected_monthly_savings=round(cost_saved * execution_count * DAYS_PER_MONTH, 2),
    )


class Optimizer:
    """Find and package neural → symbolic optimizations for one agent.

    ``analyze`` is read-only and safe to call repeatedly. ``propose``
    always re-queries traces. ``apply`` only describes what would change;
    applying it is up to an external deployment service.

    Usage::

        optimizer = Optimizer.from_config(agent_def, NeurosymConfig.load())
        for opp in optimizer.analyze():
            if opp.ready_for_learning:
                proposal = optimizer.propose(opp.task_name)
                if proposal.ready_to_deploy:
                    intent = optimizer.apply(proposal)
    """

    def __init__(
        self,
        agent_name: str,
        agent_definition: AgentDefinition,
        trace_analyzer: TraceAnalyzer,
        pattern_detector: PatternDetector,
        *,
        task_synthesizer: TaskSynthesizer | None = None,
        semantic_validator: SemanticValidator | None = None,
        max_workers: int = 4,
        min_consistency: float = DEFAULT_CONSISTENCY_THRESHOLD,
        min_executions: int = DEFAULT_MIN_EXECUTIONS,
    ) -> None:
        self.agent_name = agent_name
        self._agent = agent_definition
        self._analyzer = trace_analyzer
        self._detector = pattern_detector
        self._synthesizer = task_synthesizer
        self._semantic = semantic_validator
        self._max_workers = max(1, max_workers)
        self.min_consistency = min_consistency
        self.min_executions = min_executions

    @classmethod
    def from_config(
        cls,
        agent_definition: AgentDefinition,
        config: NeurosymConfig,
        *,
        llm_client: LLMClient | None = None,
        client: httpx.Client | None = None,
    ) -> Optimizer:
        """Wire the full pipeline from configuration.

        LLM synthesis is enabled only when ``llm_client`` is given.
        """
        validator = SafetyValidator()
        synthesizer = TaskSynthesizer(llm_client, validator) if llm_client else None
        return cls(
            agent_definition.name,
            agent_definition,
            TraceAnalyzer.from_config(config.learning, client=client),
            PatternDetector(validator),
            task_synthesizer=synthesizer,
            semantic_validator=SemanticValidator(agent_definition),
            max_workers=config.learning.max_workers,
            min_consistency=config.learning.min_consistency,
            min_executions=config.learning.min_executions,
        )

    @property
    def trace_analyzer(self) -> TraceAnalyzer:
        return self._analyzer

    def close(self) -> None:
        self._analyzer.close()

    # ── analyze ──────────────────────────────────────────────────────

    def neural_tasks(self) -> list[TaskDefinition]:
        """Tasks without a symbolic implementation, in declaration order."""
        return [t for t in self._agent.tasks.values() if not t.symbolic]

    def analyze(
        self,
        *,
        min_consistency: float | None = None,
        min_executions: int | None = None,
        time_range: TimeRange = None,
    ) -> list[OptimizationOpportunity]:
        """Score every neural task of the agent.

        Each task is analyzed independently on a bounded thread pool;
        results come back in declaration order. Tasks with no trace data
        are still listed, with ``reason`` set to say so.
        """
        if min_consistency is None:
            min_consistency = self.min_consistency
        if min_executions is None:
            min_executions = self.min_executions

        tasks = self.neural_tasks()
        if not tasks:
            logger.info("No neural tasks found in agent '%s'", self.agent_name)
            return []

        def _analyze(task: TaskDefinition) -> PatternAnalysis | None:
            return self._analyzer.analyze_patterns(
                task.name,
                min_executions=min_executions,
                consistency_threshold=min_consistency,
                time_range=time_range,
                agent_name=self.agent_name,
            )

        workers = min(self._max_workers, len(tasks))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="neurosym-analyze") as pool:
            analyses = list(pool.map(_analyze, tasks))

        return [
            _opportunity(task, analysis)
            for task, analysis in zip(tasks, analyses, strict=True)
        ]

    # ── propose ──────────────────────────────────────────────────────

    def propose(self, task_name: str, *, use_synthesis: bool = False) -> Proposal:
        """Build a reviewable replacement for one neural task.

        Pattern detection runs first unless ``use_synthesis`` forces the
        LLM path. Synthesis is used when forced or when detection fails,
        provided a synthesizer was configured.

        Raises:
            TaskNotFoundError: The agent has no task by that name.
            NoExecutionDataError: No traces exist for the task.
            OptimizationNotPossibleError: Neither strategy produced code.
        """
        task_def = self._agent.tasks.get(task_name)
        if task_def is None:
            msg = f"Task '{task_name}' not found in agent '{self.agent_name}'"
            raise TaskNotFoundError(msg)

        analysis = self._analyzer.analyze_patterns(task_name, agent_name=self.agent_name)
        if analysis is None:
            msg = f"No execution data found for task '{task_name}'"
            raise NoExecutionDataError(msg)

        detection = None
        if not use_synthesis:
            detection = self._detector.detect_pattern(analysis, task_definition=task_def)

        detection_ok = detection is not None and detection.success
        if (use_synthesis or not detection_ok) and self._synthesizer is not None:
            return self._propose_via_synthesis(task_def, analysis)

        if not detection_ok:
            if detection is None:
                reason = "LLM synthesis requested but no synthesizer is configured"
            else:
                reason = detection.reason or "No common pattern found"
            msg = f"Cannot optimize task '{task_name}': {reason}"
            raise OptimizationNotPossibleError(msg)

        return self._build_pattern_proposal(task_def, analysis, detection)

    # ── apply ────────────────────────────────────────────────────────

    def apply(self, proposal: Proposal) -> ApplyResult:
        """Describe the change a deployment service should make.

        Nothing is written or redeployed here.
        """
        return ApplyResult(
            success=True,
            task_name=proposal.task_name,
            updated_code=proposal.proposed_code,
            action=APPLY_ACTION,
            message=f"Optimization for '{proposal.task_name}' ready to apply",
        )

    # ── Internal Methods ─────────────────────────────────────────────

    def _propose_via_synthesis(
        self, task_def: TaskDefinition, analysis: PatternAnalysis
    ) -> Proposal:
        logger.info("Using LLM synthesis for task '%s'", task_def.name)
        traces = self._analyzer.query_task_traces(
            task_def.name, limit=SYNTHESIS_TRACE_LIMIT, agent_name=self.agent_name
        )
        result = self._synthesizer.synthesize(
            task_def,
            traces,
            available_tools=self._available_tools(traces),
            consistency_score=analysis.consistency_score,
            common_pattern=analysis.common_pattern,
        )

        # Unsafe code still yields a proposal so its violations reach a reviewer
        if not result.code or not (result.is_deterministic or result.validation_errors):
            msg = f"Cannot optimize task '{task_def.name}': {result.explanation}"
            raise OptimizationNotPossibleError(msg)

        return self._build_synthesis_proposal(task_def, analysis, result)

    def _build_pattern_proposal(
        self,
        task_def: TaskDefinition,
        analysis: PatternAnalysis,
        detection: DetectionResult,
    ) -> Proposal:
        full_code = detection.generated_code or ""
        proposed = extract_task_fragment(full_code, task_def.name)
        violations = [
            *detection.validation_violations,
            *self._semantic_violations(proposed, task_def),
        ]

        return Proposal(
            task_name=task_def.name,
            task_definition=task_def,
            current_code=render_current_code(task_def),
            proposed_code=proposed,
            full_generated_code=full_code,
            consistency_score=analysis.consistency_score,
            execution_count=analysis.execution_count,
            pattern=analysis.common_pattern,
            performance_impact=calculate_impact(analysis.execution_count),
            validation_violations=violations,
            ready_to_deploy=not violations and detection.ready_to_deploy,
            synthesis_method=SynthesisMethod.PATTERN_DETECTION,
        )

    def _build_synthesis_proposal(
        self,
        task_def: TaskDefinition,
        analysis: PatternAnalysis,
        result: SynthesisResult,
    ) -> Proposal:
        code = result.code or ""
        violations = [*result.validation_errors, *self._semantic_violations(code, task_def)]

        return Proposal(
            task_name=task_def.name,
            task_definition=task_def,
            current_code=render_current_code(task_def),
            proposed_code=extract_task_fragment(code, task_def.name),
            full_generated_code=code,
            consistency_score=analysis.consistency_score,
            execution_count=analysis.execution_count,
            pattern=analysis.common_pattern,
            performance_impact=calculate_impact(analysis.execution_count),
            validation_violations=violations,
            ready_to_deploy=not violations and result.is_deterministic,
            synthesis_method=SynthesisMethod.LLM_SYNTHESIS,
            synthesis_confidence=result.confidence,
            synthesis_explanation=result.explanation,
        )

    def _semantic_violations(self, code: str, task_def: TaskDefinition) -> list[Violation]:
        if self._semantic is None:
            return []
        report = self._semantic.validate(code, task_def)
        return list(report.violations)

    def _available_tools(self, traces: list[ExecutionRecord]) -> list[str]:
        """The agent's declared tools, or the tools seen in its traces."""
        if self._agent.tools:
            return list(self._agent.tools)
        tools = sorted({call.tool_name for t in traces for call in t.tool_calls})
        if tools:
            logger.debug("Detected tools from traces: %s", ", ".join(tools))
        return tools


def _opportunity(
    task: TaskDefinition, analysis: PatternAnalysis | None
) -> OptimizationOpportunity:
    if analysis is None:
        return OptimizationOpportunity(
            task_name=task.name,
            task_definition=task,
            execution_count=0,
            consistency_score=0.0,
            ready_for_learning=False,
            reason=NO_DATA_REASON,
        )
    return OptimizationOpportunity(
        task_name=task.name,
        task_definition=task,
        execution_count=analysis.execution_count,
        consistency_score=analysis.consistency_score,
        ready_for_learning=analysis.ready_for_learning,
        common_pattern=analysis.common_pattern,
        reason=analysis.reason,
    )
