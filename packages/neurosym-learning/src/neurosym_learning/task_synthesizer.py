"""LLM-assisted synthesis of symbolic code for neural tasks.

When pattern detection is inconclusive (traces vary, or the dominant
pattern is below threshold) an LLM can often still see the intent
behind the variation and write one deterministic implementation. The
TaskSynthesizer builds that prompt, parses the structured answer and
refuses any code that fails safety validation.
"""
from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from neurosym_core.logging import get_logger

from neurosym_learning.codegen import render_current_code
from neurosym_learning.types import SynthesisResult, Violation, ViolationType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from neurosym_learning.definitions import TaskDefinition
    from neurosym_learning.llm import LLMClient
    from neurosym_learning.safety import SafetyValidator
    from neurosym_learning.types import ExecutionRecord

logger = get_logger("learning.task_synthesizer")

MAX_PROMPT_TRACES = 10

_FENCED_JSON = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
_BARE_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

PROMPT_TEMPLATE = """\
You are optimizing a task in an autonomous agent. The task is currently
"neural": an LLM follows its instructions on every run. Decide whether it
can be replaced by deterministic Python code, and if so write that code.

## Task: {task_name}

**Instructions:** {instructions}

**Inputs:**
{inputs}

**Outputs:**
{outputs}

**Current definition:**
```python
{task_code}
```

## Execution history ({trace_count} traces, {shown_count} shown)

{traces}

## Pattern analysis

- **Most common tool sequence:** {common_pattern}
- **Consistency:** {consistency}%
- **Distinct tool sequences observed:** {unique_patterns}

## Available tools

{tools}

## Rules for generated code

Write a single function decorated with `@task(inputs=..., outputs=...)`
taking one argument, `inputs`. Inside it you may only call
`execute_tool('<tool name>', args)`, `execute_task(...)`, `execute_llm(...)`,
`execute_parallel(...)`, `logger` methods, and simple builtins such as
`len`, `dict` or `sorted`. No imports, no file or network access, no
`eval`/`exec`. The function must end by returning a dict containing every
declared output key.

## Response format

Respond with a single JSON object and nothing else:

```json
{{
  "is_deterministic": true,
  "confidence": 0.0,
  "explanation": "why this task is or is not deterministic",
  "code": "the Python task function, or null"
}}
```
"""


class TaskSynthesizer:
    """Ask an LLM for a deterministic implementation of a neural task.

    ``synthesize`` never raises: parse failures, LLM errors and unsafe
    code all come back as a negative SynthesisResult.

    Usage::

        synthesizer = TaskSynthesizer(DSPyChatClient.from_config(cfg.llm), SafetyValidator())
        result = synthesizer.synthesize(task_def, traces, available_tools=["fetch"])
        if result.is_deterministic:
            print(result.code)
    """

    def __init__(self, llm_client: LLMClient, validator: SafetyValidator) -> None:
        self._llm = llm_client
        self._validator = validator

    def synthesize(
        self,
        task_definition: TaskDefinition,
        traces: Sequence[ExecutionRecord],
        *,
        available_tools: Sequence[str] = (),
        consistency_score: float = 0.0,
        common_pattern: str | None = None,
    ) -> SynthesisResult:
        try:
            prompt = self.build_prompt(
                task_definition,
                traces,
                available_tools=available_tools,
                consistency_score=consistency_score,
                common_pattern=common_pattern,
            )
            logger.debug("Task synthesis prompt:\n%s", prompt)

            result = self.parse_response(self._llm.chat(prompt))
            if result.is_deterministic and result.code:
                result = self._check_safety(result)
            return result
        except Exception as exc:
            logger.error("Task synthesis failed: %s", exc)
            logger.debug("Task synthesis failure", exc_info=True)
            return SynthesisResult(
                is_deterministic=False,
                confidence=0.0,
                explanation=f"Synthesis error: {exc}",
            )

    def build_prompt(
        self,
        task_definition: TaskDefinition,
        traces: Sequence[ExecutionRecord],
        *,
        available_tools: Sequence[str] = (),
        consistency_score: float = 0.0,
        common_pattern: str | None = None,
    ) -> str:
        unique_patterns = len({t.tool_sequence for t in traces})
        tools = "\n".join(f"- {t}" for t in available_tools)
        shown = list(traces)[:MAX_PROMPT_TRACES]

        return PROMPT_TEMPLATE.format(
            task_name=task_definition.name,
            instructions=task_definition.instructions or "(none)",
            inputs=_format_schema(task_definition.inputs),
            outputs=_format_schema(task_definition.outputs),
            task_code=render_current_code(task_definition).rstrip(),
            trace_count=len(traces),
            shown_count=len(shown),
            traces=_format_traces(shown),
            common_pattern=common_pattern or "(none detected)",
            consistency=round(consistency_score * 100, 1),
            unique_patterns=unique_patterns,
            tools=tools or "(none available)",
        )

    def parse_response(self, text: str) -> SynthesisResult:
        """Extract the JSON verdict from an LLM reply.

        Accepts a fenced ```json block or the first bare ``{...}``
        object. Anything unparseable becomes a negative result.
        """
        try:
            fenced = _FENCED_JSON.search(text)
            if fenced:
                raw = fenced.group(1)
            else:
                bare = _BARE_OBJECT.search(text)
                raw = bare.group(0) if bare else text
            parsed = json.loads(raw)
            if not isinstance(parsed, dict):
                msg = f"expected a JSON object, got {type(parsed).__name__}"
                raise ValueError(msg)
            code = parsed.get("code")
            return SynthesisResult(
                is_deterministic=parsed.get("is_deterministic") is True,
                confidence=float(parsed.get("confidence") or 0.0),
                explanation=str(parsed.get("explanation") or "No explanation provided"),
                code=code if isinstance(code, str) and code.strip() else None,
            )
        except (ValueError, TypeError) as exc:
            logger.warning("Failed to parse LLM response as JSON: %s", exc)
            return SynthesisResult(
                is_deterministic=False,
                confidence=0.0,
                explanation=f"Failed to parse synthesis response: {exc}",
            )

    # ── Internal Methods ─────────────────────────────────────────────

    def _check_safety(self, result: SynthesisResult) -> SynthesisResult:
        try:
            violations = list(self._validator.validate(result.code or ""))
        except Exception as exc:
            violations = [Violation(
                type=ViolationType.VALIDATION_ERROR,
                message=f"Validation error: {exc}",
            )]
        if not violations:
            return result

        logger.warning(
            "Synthesized code failed validation: %s",
            ", ".join(v.message for v in violations),
        )
        return SynthesisResult(
            is_deterministic=False,
            confidence=result.confidence,
            explanation=f"Generated code failed safety validation: {violations[0].message}",
            code=result.code,
            validation_errors=violations,
        )


def _format_schema(schema: dict[str, str]) -> str:
    if not schema:
        return "(none)"
    return "\n".join(f"- {key}: {kind}" for key, kind in schema.items())


def _format_traces(traces: list[ExecutionRecord]) -> str:
    if not traces:
        return "(no traces available)"
    return "\n".join(_format_trace(t, i) for i, t in enumerate(traces, start=1))


def _format_trace(trace: ExecutionRecord, index: int) -> str:
    lines = [
        f"### Execution {index}",
        f"- **Tool Sequence:** {trace.tool_sequence or '(no tools)'}",
        f"- **Duration:** {round(trace.duration_ms, 1)}ms",
        f"- **Inputs:** {', '.join(trace.inputs) or 'none'}",
        "- **Tool Calls:**",
    ]
    if not trace.tool_calls:
        lines.append("  (no tool calls)")
    for call in trace.tool_calls:
        lines.append(f"  - {call.tool_name}")
        if call.arguments:
            lines.append(f"    Args: {_clip(call.arguments)}")
        if call.result:
            lines.append(f"    Result: {_clip(call.result)}")
    return "\n".join(lines) + "\n"


def _clip(value: Any, limit: int = 500) -> str:
    text = str(value)
    return text if len(text) <= limit else text[:limit] + "..."
