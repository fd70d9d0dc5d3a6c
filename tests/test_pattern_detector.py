from __future__ import annotations

from neurosym_learning.pattern_detector import PatternDetector
from neurosym_learning.safety import SafetyValidator
from neurosym_learning.types import PatternAnalysis, ViolationType

# ── Helpers ───────────────────────────────────────────────────


def _make_analysis(
    *,
    execution_count: int = 12,
    consistency_score: float = 1.0,
    common_pattern: str | None = "fetch → transform",
    ready_for_learning: bool = True,
    consistency_threshold: float = 0.85,
    reason: str | None = None,
) -> PatternAnalysis:
    return PatternAnalysis(
        task_name="triage",
        execution_count=execution_count,
        consistency_threshold=consistency_threshold,
        ready_for_learning=ready_for_learning,
        consistency_score=consistency_score,
        common_pattern=common_pattern,
        reason=reason,
    )


class _BrokenValidator:
    def validate(self, code: str):
        raise RuntimeError("validator crashed")


class TestPatternDetector:
    """Eligibility, generation and validation of pattern-based code."""

    def test_consistent_pattern_generates_code(self) -> None:
        result = PatternDetector(SafetyValidator()).detect_pattern(_make_analysis())

        assert result.success
        assert result.ready_to_deploy
        assert result.validation_violations == []
        assert result.pattern == "fetch → transform"
        assert "step1_result = execute_tool('fetch', inputs)" in result.generated_code
        assert "final_result = execute_tool('transform', step1_result)" in result.generated_code
        assert "return {'result': final_result}" in result.generated_code

    def test_deploy_bar_is_stricter(self) -> None:
        """0.87 is enough to generate but not to deploy unreviewed."""
        result = PatternDetector(SafetyValidator()).detect_pattern(
            _make_analysis(consistency_score=0.87)
        )
        assert result.success
        assert not result.ready_to_deploy

    def test_none_analysis(self) -> None:
        detector = PatternDetector(SafetyValidator())
        result = detector.detect_pattern(None)
        assert not result.success
        assert result.reason == "Invalid analysis result"
        assert not detector.can_generate_code(None)

    def test_every_unmet_condition_listed(self) -> None:
        result = PatternDetector(SafetyValidator()).detect_pattern(_make_analysis(
            execution_count=5,
            consistency_score=0.5,
            common_pattern=None,
            ready_for_learning=False,
            reason="Need 5 more executions",
        ))
        assert not result.success
        assert result.reason == (
            "Insufficient executions (5/10); "
            "Low consistency (0.5/0.85); "
            "No common pattern found; "
            "Need 5 more executions"
        )
        assert result.generated_code is None

    def test_not_ready_reason_carried(self) -> None:
        """A stricter caller threshold still blocks generation."""
        result = PatternDetector(SafetyValidator()).detect_pattern(_make_analysis(
            consistency_score=0.9,
            consistency_threshold=0.95,
            ready_for_learning=False,
            reason="Consistency 0.900 below threshold 0.95",
        ))
        assert not result.success
        assert result.reason == "Consistency 0.900 below threshold 0.95"

    def test_not_ready_listed_with_other_reasons(self) -> None:
        result = PatternDetector(SafetyValidator()).detect_pattern(_make_analysis(
            execution_count=12,
            consistency_score=0.5,
            ready_for_learning=False,
        ))
        assert result.reason == (
            "Low consistency (0.5/0.85); Analysis is not ready for learning"
        )

    def test_validator_failure_becomes_violation(self) -> None:
        result = PatternDetector(_BrokenValidator()).detect_pattern(_make_analysis())
        assert not result.success
        assert not result.ready_to_deploy
        assert result.validation_violations[0].type == ViolationType.VALIDATION_ERROR
        assert "validator crashed" in result.validation_violations[0].message

    def test_generate_fragment(self) -> None:
        code = PatternDetector(SafetyValidator()).generate_symbolic_code(
            "a → b → c", "triage", fragment_only=True
        )
        assert code.startswith("@task(")
        assert "step2_result = execute_tool('b', step1_result)" in code
        assert "final_result = execute_tool('c', step2_result)" in code
