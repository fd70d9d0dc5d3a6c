"""Turn a consistent tool-call pattern into symbolic task code.

The PatternDetector takes a PatternAnalysis from the TraceAnalyzer and,
when the task's behaviour is consistent enough, generates code that
replays the observed tool chain directly. Generated code is always run
through the SafetyValidator before it is offered to anyone.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from neurosym_core.logging import get_logger

from neurosym_learning.codegen import extract_tool_sequence, generate_task
from neurosym_learning.types import DetectionResult, Violation, ViolationType

if TYPE_CHECKING:
    from neurosym_learning.definitions import TaskDefinition
    from neurosym_learning.safety import SafetyValidator
    from neurosym_learning.types import PatternAnalysis

logger = get_logger("learning.pattern_detector")

DEFAULT_CONSISTENCY_THRESHOLD = 0.85
DEFAULT_MIN_EXECUTIONS = 10
# Stricter bar separating "worth proposing" from "safe without review"
DEPLOY_CONSISTENCY = 0.90


class PatternDetector:
    """Generate and validate symbolic code from a PatternAnalysis.

    Usage::

        detector = PatternDetector(SafetyValidator())
        result = detector.detect_pattern(analysis, task_definition=task_def)
        if result.success:
            print(result.generated_code)
        else:
            print(result.reason)
    """

    def __init__(self, validator: SafetyValidator) -> None:
        self._validator = validator

    def can_generate_code(self, analysis: PatternAnalysis | None) -> bool:
        return not self.rejection_reasons(analysis)

    def rejection_reasons(self, analysis: PatternAnalysis | None) -> list[str]:
        """Every unmet eligibility condition, in a fixed order."""
        if analysis is None:
            return ["Invalid analysis result"]

        reasons: list[str] = []
        if analysis.execution_count < DEFAULT_MIN_EXECUTIONS:
            reasons.append(
                f"Insufficient executions ({analysis.execution_count}/{DEFAULT_MIN_EXECUTIONS})"
            )
        if analysis.consistency_score < DEFAULT_CONSISTENCY_THRESHOLD:
            reasons.append(
                f"Low consistency ({analysis.consistency_score}/{DEFAULT_CONSISTENCY_THRESHOLD})"
            )
        if not analysis.common_pattern:
            reasons.append("No common pattern found")
        if not analysis.ready_for_learning:
            reasons.append(analysis.reason or "Analysis is not ready for learning")
        return reasons

    def detect_pattern(
        self,
        analysis: PatternAnalysis | None,
        *,
        task_definition: TaskDefinition | None = None,
    ) -> DetectionResult:
        """Generate code for the analysis' common pattern, if it qualifies.

        Returns:
            A DetectionResult. On rejection ``success`` is False and
            ``reason`` joins every unmet condition with ``"; "``.
        """
        reasons = self.rejection_reasons(analysis)
        if reasons:
            reason = "; ".join(reasons)
            if analysis is None:
                return DetectionResult(success=False, reason=reason)
            logger.info("Pattern rejected for task '%s': %s", analysis.task_name, reason)
            return DetectionResult(
                success=False,
                task_name=analysis.task_name,
                consistency_score=analysis.consistency_score,
                execution_count=analysis.execution_count,
                pattern=analysis.common_pattern,
                reason=reason,
            )

        code = self.generate_symbolic_code(
            analysis.common_pattern,
            analysis.task_name,
            task_definition=task_definition,
        )
        violations = self.validate_generated_code(code)
        success = not violations
        if not success:
            logger.warning(
                "Generated code for task '%s' failed validation: %s",
                analysis.task_name,
                "; ".join(v.message for v in violations),
            )

        return DetectionResult(
            success=success,
            task_name=analysis.task_name,
            generated_code=code,
            validation_violations=violations,
            consistency_score=analysis.consistency_score,
            execution_count=analysis.execution_count,
            pattern=analysis.common_pattern,
            ready_to_deploy=success and analysis.consistency_score >= DEPLOY_CONSISTENCY,
        )

    def generate_symbolic_code(
        self,
        pattern: str,
        task_name: str,
        *,
        task_definition: TaskDefinition | None = None,
        fragment_only: bool = False,
    ) -> str:
        """Render a tool pattern like ``"fetch → transform"`` as task code.

        The first tool receives the task inputs and each later tool the
        previous step's result. With ``fragment_only`` only the task
        function is returned, otherwise a complete agent module.
        """
        return generate_task(
            task_name,
            extract_tool_sequence(pattern),
            task_definition,
            fragment_only=fragment_only,
        )

    def validate_generated_code(self, code: str) -> list[Violation]:
        try:
            return list(self._validator.validate(code))
        except Exception as exc:
            logger.error("Failed to validate generated code: %s", exc)
            return [Violation(type=ViolationType.VALIDATION_ERROR, message=str(exc))]
