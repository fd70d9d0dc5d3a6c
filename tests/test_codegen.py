"""Tests for symbolic code generation from tool sequences."""
from __future__ import annotations

import ast

from neurosym_learning.codegen import (
    build_output_mapping,
    build_task_body,
    extract_task_fragment,
    extract_tool_sequence,
    generate_task,
    render,
    render_current_code,
    task_function_name,
)
from neurosym_learning.definitions import TaskDefinition
from neurosym_learning.safety import SafetyValidator
from neurosym_learning.semantic_validator import SemanticValidator


def _body_source(sequence: list[str], outputs: list[str] | None = None) -> list[str]:
    return [ast.unparse(ast.fix_missing_locations(s)) for s in build_task_body(sequence, outputs or ["result"])]


class TestToolSequence:
    def test_split(self) -> None:
        assert extract_tool_sequence("a → b → c") == ["a", "b", "c"]

    def test_empty(self) -> None:
        assert extract_tool_sequence(None) == []
        assert extract_tool_sequence("") == []

    def test_function_name(self) -> None:
        assert task_function_name("triage") == "triage"
        assert task_function_name("billing.invoice") == "billing_invoice"
        assert task_function_name("2fa-check") == "_2fa_check"
        assert task_function_name("class") == "_class"


class TestTaskBody:
    """Tool chaining: each step feeds the next."""

    def test_two_step_chain(self) -> None:
        assert _body_source(["fetch", "transform"]) == [
            "step1_result = execute_tool('fetch', inputs)",
            "final_result = execute_tool('transform', step1_result)",
            "return {'result': final_result}",
        ]

    def test_three_step_chain_keeps_intermediates(self) -> None:
        assert _body_source(["a", "b", "c"]) == [
            "step1_result = execute_tool('a', inputs)",
            "step2_result = execute_tool('b', step1_result)",
            "final_result = execute_tool('c', step2_result)",
            "return {'result': final_result}",
        ]

    def test_single_tool_passes_through(self) -> None:
        assert _body_source(["a"]) == [
            "step1_result = execute_tool('a', inputs)",
            "final_result = step1_result",
            "return {'result': final_result}",
        ]

    def test_no_tools_returns_empty_outputs(self) -> None:
        assert _body_source([], ["summary", "count"]) == [
            "return {'summary': {}, 'count': {}}",
        ]

    def test_multiple_outputs_look_up_keys(self) -> None:
        mapping = build_output_mapping(["summary", "count"], "final_result")
        assert [k.value for k in mapping.keys] == ["summary", "count"]
        first = mapping.values[0]
        assert isinstance(first, ast.IfExp)
        assert ast.unparse(first.body) == "final_result.get('summary', final_result)"
        assert ast.unparse(first.test) == "isinstance(final_result, dict)"


class TestGenerateTask:
    """Rendering whole modules and fragments."""

    def test_fragment(self) -> None:
        code = generate_task("triage", ["fetch", "transform"], fragment_only=True)
        assert code == (
            "@task(inputs={'data': 'hash'}, outputs={'result': 'hash'})\n"
            "def triage(inputs):\n"
            "    step1_result = execute_tool('fetch', inputs)\n"
            "    final_result = execute_tool('transform', step1_result)\n"
            "    return {'result': final_result}\n"
        )

    def test_full_module(self) -> None:
        code = generate_task("log_triage", ["fetch"])
        assert "from neurosym_dsl import define_agent, main, task" in code
        assert "define_agent('log-triage-symbolic'" in code
        assert "@main\ndef run(inputs):" in code
        assert "return execute_task('log_triage', inputs=inputs)" in code
        ast.parse(code)

    def test_uses_task_schema(self) -> None:
        task = TaskDefinition(
            name="triage",
            instructions="x",
            inputs={"repo": "string"},
            outputs={"summary": "string"},
        )
        code = generate_task("triage", ["fetch"], task, fragment_only=True)
        assert code.startswith(
            "@task(inputs={'repo': 'string'}, outputs={'summary': 'string'})"
        )
        assert "return {'summary': final_result}" in code

    def test_sanitized_name_is_kept_in_decorator(self) -> None:
        code = generate_task("billing.invoice", ["fetch"], fragment_only=True)
        assert code.startswith("@task(name='billing.invoice', ")
        assert "def billing_invoice(inputs):" in code

    def test_generated_module_validates(self) -> None:
        code = generate_task("triage", ["fetch", "transform"])
        assert SafetyValidator().validate(code) == []
        task = TaskDefinition(name="triage", instructions="x", outputs={"result": "hash"})
        assert SemanticValidator().validate(code, task).valid


class TestFragments:
    def test_extract_fragment_from_module(self) -> None:
        module = generate_task("triage", ["fetch"])
        fragment = extract_task_fragment(module, "triage")
        assert fragment.startswith("@task(")
        assert "define_agent" not in fragment
        assert "def run" not in fragment

    def test_extract_fragment_prefers_named_task(self) -> None:
        code = (
            "@task\ndef other(inputs):\n    return {}\n"
            "@task\ndef triage(inputs):\n    return {'x': 1}\n"
        )
        assert "def triage" in extract_task_fragment(code, "triage")

    def test_extract_fragment_passthrough(self) -> None:
        assert extract_task_fragment("x = (") == "x = ("
        assert extract_task_fragment("x = 1\n") == "x = 1\n"

    def test_render_current_code(self, triage_task) -> None:
        assert render_current_code(triage_task) == (
            "task('triage', instructions='Fetch open issues and summarize them', "
            "inputs={'repo': 'string'}, outputs={'summary': 'string'})\n"
        )

    def test_render_adds_locations(self) -> None:
        node = ast.Expr(value=ast.Constant(1))
        assert render(node) == "1\n"
