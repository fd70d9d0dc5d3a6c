"""Neurosym Learning: replace consistent neural tasks with generated code.

Pipeline:
1. TraceAnalyzer queries a tracing backend and scores tool-sequence consistency
2. PatternDetector turns a consistent pattern into task code
3. TaskSynthesizer asks an LLM when the pattern alone is inconclusive
4. SafetyValidator and SemanticValidator check whatever was generated
5. Optimizer ties it together into reviewable Proposals
"""
from __future__ import annotations

from neurosym_learning.adapters import (
    ADAPTERS,
    BaseAdapter,
    JaegerAdapter,
    SignozAdapter,
    TempoAdapter,
    TraceBackend,
    detect_adapter,
)
from neurosym_learning.definitions import (
    AgentDefinition,
    TaskDefinition,
    load_agent_definition,
)
from neurosym_learning.llm import DSPyChatClient, LLMClient
from neurosym_learning.optimizer import Optimizer, calculate_impact
from neurosym_learning.pattern_detector import PatternDetector
from neurosym_learning.safety import SafetyValidator
from neurosym_learning.semantic_validator import (
    CallKind,
    ContextMethod,
    SemanticValidator,
)
from neurosym_learning.task_synthesizer import TaskSynthesizer
from neurosym_learning.trace_analyzer import TraceAnalyzer, calculate_consistency
from neurosym_learning.types import (
    ApplyResult,
    DetectionResult,
    ExecutionRecord,
    OptimizationOpportunity,
    PatternAnalysis,
    PerformanceImpact,
    Proposal,
    Span,
    SpanFilter,
    SynthesisMethod,
    SynthesisResult,
    ToolCall,
    ValidationReport,
    Violation,
    ViolationType,
)

__all__ = [
    "ADAPTERS",
    "AgentDefinition",
    "ApplyResult",
    "BaseAdapter",
    "CallKind",
    "ContextMethod",
    "DSPyChatClient",
    "DetectionResult",
    "ExecutionRecord",
    "JaegerAdapter",
    "LLMClient",
    "OptimizationOpportunity",
    "Optimizer",
    "PatternAnalysis",
    "PatternDetector",
    "PerformanceImpact",
    "Proposal",
    "SafetyValidator",
    "SemanticValidator",
    "SignozAdapter",
    "Span",
    "SpanFilter",
    "SynthesisMethod",
    "SynthesisResult",
    "TaskDefinition",
    "TaskSynthesizer",
    "TempoAdapter",
    "ToolCall",
    "TraceAnalyzer",
    "TraceBackend",
    "ValidationReport",
    "Violation",
    "ViolationType",
    "calculate_consistency",
    "calculate_impact",
    "detect_adapter",
    "load_agent_definition",
]
