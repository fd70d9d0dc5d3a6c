"""Tests for the Optimizer: analyze, propose (pattern and synthesis paths)
and apply.
"""
from __future__ import annotations

import json

import pytest
from conftest import FakeBackend, make_record
from neurosym_core.config import LearningConfig, NeurosymConfig
from neurosym_core.errors import (
    NoExecutionDataError,
    OptimizationNotPossibleError,
    TaskNotFoundError,
)
from neurosym_learning.definitions import AgentDefinition
from neurosym_learning.optimizer import (
    APPLY_ACTION,
    NO_DATA_REASON,
    Optimizer,
    calculate_impact,
)
from neurosym_learning.pattern_detector import PatternDetector
from neurosym_learning.safety import SafetyValidator
from neurosym_learning.semantic_validator import SemanticValidator
from neurosym_learning.task_synthesizer import TaskSynthesizer
from neurosym_learning.trace_analyzer import TraceAnalyzer
from neurosym_learning.types import SynthesisMethod, ViolationType

SYNTHESIZED = (
    "@task(inputs={'repo': 'string'}, outputs={'summary': 'string'})\n"
    "def triage(inputs):\n"
    "    issues = execute_tool('fetch_issues', inputs)\n"
    "    return {'summary': execute_tool('summarize', issues)}\n"
)

# ── Helpers ───────────────────────────────────────────────────


class _FakeLLM:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    def chat(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


def _llm_reply(code: str | None, *, deterministic: bool = True) -> str:
    return json.dumps({
        "is_deterministic": deterministic,
        "confidence": 0.9,
        "explanation": "Fetch then summarize",
        "code": code,
    })


def _consistent(count: int = 12, sequence: list[str] | None = None):
    seq = sequence or ["fetch_issues", "summarize"]
    return [make_record(seq, inputs={"repo": "acme/app"}, offset=i) for i in range(count)]


def _inconsistent():
    return [
        make_record(["fetch_issues"] if i % 2 else ["summarize"], offset=i)
        for i in range(10)
    ]


def _make_optimizer(
    agent: AgentDefinition,
    records: dict | None = None,
    *,
    llm: _FakeLLM | None = None,
    **kwargs,
) -> Optimizer:
    validator = SafetyValidator()
    return Optimizer(
        agent.name,
        agent,
        TraceAnalyzer(FakeBackend(records or {})),
        PatternDetector(validator),
        task_synthesizer=TaskSynthesizer(llm, validator) if llm else None,
        semantic_validator=SemanticValidator(agent),
        **kwargs,
    )


# ── 1. analyze ────────────────────────────────────────────────


class TestAnalyze:
    def test_only_neural_tasks_in_order(self, agent_definition) -> None:
        optimizer = _make_optimizer(agent_definition, {"triage": _consistent()})
        opportunities = optimizer.analyze()

        assert [o.task_name for o in opportunities] == ["triage", "label"]
        triage, label = opportunities
        assert triage.ready_for_learning
        assert triage.execution_count == 12
        assert triage.common_pattern == "fetch_issues → summarize"
        assert label.reason == NO_DATA_REASON
        assert label.execution_count == 0
        assert not label.ready_for_learning

    def test_thresholds_forwarded(self, agent_definition) -> None:
        optimizer = _make_optimizer(agent_definition, {"triage": _consistent(5)})
        triage = optimizer.analyze(min_executions=20)[0]
        assert triage.reason == "Need 15 more executions"

    def test_configured_thresholds_are_defaults(self, agent_definition) -> None:
        optimizer = _make_optimizer(
            agent_definition, {"triage": _consistent(6)},
            min_executions=5, min_consistency=0.5,
        )
        triage = optimizer.analyze()[0]
        assert triage.ready_for_learning
        assert triage.reason is None

        # Explicit arguments still win over the configured values
        assert optimizer.analyze(min_executions=8)[0].reason == "Need 2 more executions"

    def test_from_config_reads_thresholds(self, agent_definition) -> None:
        config = NeurosymConfig(
            learning=LearningConfig(min_executions=5, min_consistency=0.5)
        )
        optimizer = Optimizer.from_config(agent_definition, config)
        assert optimizer.min_executions == 5
        assert optimizer.min_consistency == 0.5

    def test_close_releases_backend(self, agent_definition) -> None:
        backend = FakeBackend()
        optimizer = Optimizer(
            agent_definition.name,
            agent_definition,
            TraceAnalyzer(backend),
            PatternDetector(SafetyValidator()),
        )
        optimizer.close()
        assert backend.closed

    def test_no_neural_tasks(self) -> None:
        agent = AgentDefinition(name="empty")
        assert _make_optimizer(agent).analyze() == []

    def test_without_backend_reports_missing_data(self, agent_definition) -> None:
        """No query endpoint: every task is listed with a no-data reason."""
        optimizer = Optimizer.from_config(agent_definition, NeurosymConfig())
        assert not optimizer.trace_analyzer.available

        opportunities = optimizer.analyze()
        assert len(opportunities) == 2
        assert all(o.reason == NO_DATA_REASON for o in opportunities)
        assert not any(o.ready_for_learning for o in opportunities)


# ── 2. propose: pattern detection ─────────────────────────────


class TestProposePattern:
    def test_ready_proposal(self, agent_definition) -> None:
        optimizer = _make_optimizer(agent_definition, {"triage": _consistent()})
        proposal = optimizer.propose("triage")

        assert proposal.synthesis_method == SynthesisMethod.PATTERN_DETECTION
        assert proposal.ready_to_deploy
        assert proposal.validation_violations == []
        assert proposal.consistency_score == 1.0
        assert proposal.execution_count == 12
        assert proposal.pattern == "fetch_issues → summarize"
        assert proposal.current_code.startswith("task('triage'")
        assert proposal.proposed_code.startswith("@task(")
        assert "define_agent" not in proposal.proposed_code
        assert "define_agent" in proposal.full_generated_code
        assert "return {'summary': final_result}" in proposal.proposed_code
        assert proposal.synthesis_confidence is None

    def test_undeclared_tool_blocks_deploy(self, agent_definition) -> None:
        records = {"triage": _consistent(sequence=["fetch_issues", "delete_repo"])}
        proposal = _make_optimizer(agent_definition, records).propose("triage")

        assert not proposal.ready_to_deploy
        assert [v.type for v in proposal.validation_violations] == [
            ViolationType.UNSAFE_TOOL_REFERENCE
        ]

    def test_unknown_task(self, agent_definition) -> None:
        with pytest.raises(TaskNotFoundError, match="nope"):
            _make_optimizer(agent_definition).propose("nope")

    def test_no_execution_data(self, agent_definition) -> None:
        with pytest.raises(NoExecutionDataError):
            _make_optimizer(agent_definition).propose("triage")

    def test_detection_failure_without_synthesizer(self, agent_definition) -> None:
        optimizer = _make_optimizer(agent_definition, {"triage": _inconsistent()})
        with pytest.raises(OptimizationNotPossibleError, match="Low consistency"):
            optimizer.propose("triage")

    def test_forced_synthesis_without_synthesizer(self, agent_definition) -> None:
        optimizer = _make_optimizer(agent_definition, {"triage": _consistent()})
        with pytest.raises(OptimizationNotPossibleError, match="no synthesizer"):
            optimizer.propose("triage", use_synthesis=True)


# ── 3. propose: LLM synthesis ─────────────────────────────────


class TestProposeSynthesis:
    def test_fallback_when_detection_fails(self, agent_definition) -> None:
        llm = _FakeLLM(_llm_reply(SYNTHESIZED))
        optimizer = _make_optimizer(agent_definition, {"triage": _inconsistent()}, llm=llm)
        proposal = optimizer.propose("triage")

        assert proposal.synthesis_method == SynthesisMethod.LLM_SYNTHESIS
        assert proposal.ready_to_deploy
        assert proposal.synthesis_confidence == 0.9
        assert proposal.synthesis_explanation == "Fetch then summarize"
        assert proposal.proposed_code == SYNTHESIZED
        assert proposal.consistency_score == 0.5
        # Declared agent tools are offered to the LLM
        assert "- fetch_issues\n- summarize\n- apply_labels" in llm.prompts[0]

    def test_forced_synthesis_skips_detection(self, agent_definition) -> None:
        llm = _FakeLLM(_llm_reply(SYNTHESIZED))
        optimizer = _make_optimizer(agent_definition, {"triage": _consistent()}, llm=llm)
        proposal = optimizer.propose("triage", use_synthesis=True)
        assert proposal.synthesis_method == SynthesisMethod.LLM_SYNTHESIS

    def test_unsafe_synthesis_yields_blocked_proposal(self, agent_definition) -> None:
        code = (
            "@task(outputs={'summary': 'string'})\n"
            "def triage(inputs):\n"
            "    return {'summary': eval(inputs['expr'])}\n"
        )
        optimizer = _make_optimizer(
            agent_definition, {"triage": _consistent()}, llm=_FakeLLM(_llm_reply(code))
        )
        proposal = optimizer.propose("triage", use_synthesis=True)

        assert not proposal.ready_to_deploy
        assert any("eval" in v.message for v in proposal.validation_violations)
        assert proposal.validation_violations[0].type == ViolationType.DANGEROUS_CALL

    def test_declined_synthesis(self, agent_definition) -> None:
        llm = _FakeLLM(_llm_reply(None, deterministic=False))
        optimizer = _make_optimizer(agent_definition, {"triage": _consistent()}, llm=llm)
        with pytest.raises(OptimizationNotPossibleError, match="Fetch then summarize"):
            optimizer.propose("triage", use_synthesis=True)

    def test_tools_from_traces_when_undeclared(self, triage_task) -> None:
        agent = AgentDefinition(name="bare", tasks={"triage": triage_task})
        llm = _FakeLLM(_llm_reply(SYNTHESIZED))
        optimizer = _make_optimizer(agent, {"triage": _consistent()}, llm=llm)
        optimizer.propose("triage", use_synthesis=True)
        assert "- fetch_issues\n- summarize\n" in llm.prompts[0]


# ── 4. apply and impact ───────────────────────────────────────


class TestApply:
    def test_apply_describes_intent(self, agent_definition) -> None:
        optimizer = _make_optimizer(agent_definition, {"triage": _consistent()})
        proposal = optimizer.propose("triage")
        result = optimizer.apply(proposal)

        assert result.success
        assert result.action == APPLY_ACTION
        assert result.task_name == "triage"
        assert result.updated_code == proposal.proposed_code
        assert "triage" in result.message

    def test_impact(self) -> None:
        impact = calculate_impact(100)
        assert impact.time_reduction_pct == 96.0
        assert impact.cost_reduction_pct == 100.0
        assert impact.projected_monthly_savings == pytest.approx(9.0)
        assert calculate_impact(0).projected_monthly_savings == 0.0
