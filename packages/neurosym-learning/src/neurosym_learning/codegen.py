"""Build symbolic task code as Python syntax trees, then render it.

Generated code targets the agent DSL module ``neurosym_dsl``. A learned
task looks like this once rendered::

    @task(inputs={'repo': 'string'}, outputs={'summary': 'string'})
    def triage(inputs):
        step1_result = execute_tool('fetch_issues', inputs)
        final_result = execute_tool('summarize', step1_result)
        return {'summary': final_result}

Everything is assembled from ``ast`` nodes and rendered with
``ast.unparse``, so the output-mapping rules can be tested on trees
without caring about formatting.
"""
from __future__ import annotations

import ast
import keyword
import re
from typing import TYPE_CHECKING, Any

from neurosym_learning.types import PATTERN_SEPARATOR

if TYPE_CHECKING:
    from neurosym_learning.definitions import TaskDefinition

DSL_MODULE = "neurosym_dsl"
DSL_IMPORTS = ("define_agent", "main", "task")

DEFAULT_INPUTS = {"data": "hash"}
DEFAULT_OUTPUTS = {"result": "hash"}

INPUTS_PARAM = "inputs"
FINAL_RESULT = "final_result"


def extract_tool_sequence(pattern: str | None) -> list[str]:
    """``"a → b → c"`` → ``["a", "b", "c"]``."""
    if not pattern:
        return []
    return [part.strip() for part in pattern.split(PATTERN_SEPARATOR.strip()) if part.strip()]


def task_function_name(task_name: str) -> str:
    """A valid Python identifier for a task name."""
    name = re.sub(r"\W", "_", task_name) or "task"
    if name[0].isdigit() or keyword.iskeyword(name):
        name = f"_{name}"
    return name


# ── Node builders ────────────────────────────────────────────────────


def _load(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Load())


def _assign(name: str, value: ast.expr) -> ast.Assign:
    return ast.Assign(targets=[ast.Name(id=name, ctx=ast.Store())], value=value)


def _call(func: str, *args: ast.expr, **kwargs: ast.expr) -> ast.Call:
    return ast.Call(
        func=_load(func),
        args=list(args),
        keywords=[ast.keyword(arg=k, value=v) for k, v in kwargs.items()],
    )


def _literal(value: Any) -> ast.expr:
    """Node for a plain literal (str, number, dict of literals...)."""
    return ast.parse(repr(value), mode="eval").body


def _tool_call(tool: str, argument: str) -> ast.Call:
    return _call("execute_tool", ast.Constant(tool), _load(argument))


def build_output_mapping(output_keys: list[str], result: str) -> ast.Dict:
    """Map a step result onto the declared output keys.

    A single key wraps the result directly. With several keys each one
    is looked up in the result when it is a dict, falling back to the
    whole result. That fallback is a guess about the shape of the last
    tool's output, not a semantic guarantee.
    """
    if len(output_keys) == 1:
        return ast.Dict(keys=[ast.Constant(output_keys[0])], values=[_load(result)])

    values: list[ast.expr] = []
    for key in output_keys:
        lookup = ast.Call(
            func=ast.Attribute(value=_load(result), attr="get", ctx=ast.Load()),
            args=[ast.Constant(key), _load(result)],
            keywords=[],
        )
        values.append(ast.IfExp(
            test=_call("isinstance", _load(result), _load("dict")),
            body=lookup,
            orelse=_load(result),
        ))
    return ast.Dict(keys=[ast.Constant(k) for k in output_keys], values=values)


def build_task_body(sequence: list[str], output_keys: list[str]) -> list[ast.stmt]:
    """Chain ``execute_tool`` calls, each fed the previous step's result."""
    output_keys = output_keys or list(DEFAULT_OUTPUTS)
    if not sequence:
        empty = ast.Dict(
            keys=[ast.Constant(k) for k in output_keys],
            values=[ast.Dict(keys=[], values=[]) for _ in output_keys],
        )
        return [ast.Return(value=empty)]

    body: list[ast.stmt] = [_assign("step1_result", _tool_call(sequence[0], INPUTS_PARAM))]
    if len(sequence) == 1:
        body.append(_assign(FINAL_RESULT, _load("step1_result")))
    else:
        for step, tool in enumerate(sequence[1:-1], start=2):
            body.append(_assign(f"step{step}_result", _tool_call(tool, f"step{step - 1}_result")))
        last = f"step{len(sequence) - 1}_result"
        body.append(_assign(FINAL_RESULT, _tool_call(sequence[-1], last)))

    body.append(ast.Return(value=build_output_mapping(output_keys, FINAL_RESULT)))
    return body


def build_task_function(
    task_name: str,
    body: list[ast.stmt],
    inputs: dict[str, str],
    outputs: dict[str, str],
) -> ast.FunctionDef:
    fn_name = task_function_name(task_name)
    decorator_kwargs = {"inputs": _literal(inputs), "outputs": _literal(outputs)}
    if fn_name != task_name:
        decorator_kwargs = {"name": ast.Constant(task_name), **decorator_kwargs}

    return ast.FunctionDef(
        name=fn_name,
        args=ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg=INPUTS_PARAM)],
            kwonlyargs=[],
            kw_defaults=[],
            defaults=[],
        ),
        body=body,
        decorator_list=[_call("task", **decorator_kwargs)],
        returns=None,
        type_params=[],
    )


def build_agent_module(task_name: str, task_fn: ast.FunctionDef) -> ast.Module:
    """Wrap a task function in a runnable single-task agent module."""
    agent_name = f"{task_name.replace('_', '-')}-symbolic"
    description = f"Symbolic implementation of {task_name} (learned from execution patterns)"

    run = ast.FunctionDef(
        name="run",
        args=ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg=INPUTS_PARAM)],
            kwonlyargs=[],
            kw_defaults=[],
            defaults=[],
        ),
        body=[ast.Return(value=_call(
            "execute_task", ast.Constant(task_name), inputs=_load(INPUTS_PARAM)
        ))],
        decorator_list=[_load("main")],
        returns=None,
        type_params=[],
    )

    return ast.Module(
        body=[
            ast.Expr(value=ast.Constant(f"Learned symbolic agent for task '{task_name}'.")),
            ast.ImportFrom(
                module=DSL_MODULE,
                names=[ast.alias(name=n) for n in DSL_IMPORTS],
                level=0,
            ),
            ast.Expr(value=_call(
                "define_agent", ast.Constant(agent_name), description=ast.Constant(description)
            )),
            task_fn,
            run,
        ],
        type_ignores=[],
    )


def render(node: ast.AST) -> str:
    ast.fix_missing_locations(node)
    return ast.unparse(node) + "\n"


# ── Rendering entry points ──────────────────────────────────────────


def _schema(task_definition: TaskDefinition | None) -> tuple[dict[str, str], dict[str, str]]:
    if task_definition is None:
        return dict(DEFAULT_INPUTS), dict(DEFAULT_OUTPUTS)
    return (
        dict(task_definition.inputs) or dict(DEFAULT_INPUTS),
        dict(task_definition.outputs) or dict(DEFAULT_OUTPUTS),
    )


def generate_task(
    task_name: str,
    sequence: list[str],
    task_definition: TaskDefinition | None = None,
    *,
    fragment_only: bool = False,
) -> str:
    """Render a learned task, alone or wrapped in an agent module."""
    inputs, outputs = _schema(task_definition)
    body = build_task_body(sequence, list(outputs))
    task_fn = build_task_function(task_name, body, inputs, outputs)
    if fragment_only:
        return render(task_fn)
    return render(build_agent_module(task_name, task_fn))


def render_current_code(task_definition: TaskDefinition) -> str:
    """Normalized view of a neural task, rebuilt from its definition."""
    call = _call(
        "task",
        ast.Constant(task_definition.name),
        instructions=ast.Constant(task_definition.instructions or ""),
        inputs=_literal(dict(task_definition.inputs)),
        outputs=_literal(dict(task_definition.outputs)),
    )
    return render(ast.Expr(value=call))


def is_task_function(fn: ast.AST) -> bool:
    """True for a function decorated with ``@task`` or ``@task(...)``."""
    if not isinstance(fn, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return False
    for dec in fn.decorator_list:
        target = dec.func if isinstance(dec, ast.Call) else dec
        if isinstance(target, ast.Name) and target.id == "task":
            return True
    return False


def extract_task_fragment(code: str, task_name: str | None = None) -> str:
    """Pull the ``@task`` function out of a generated module.

    Prefers the function named after ``task_name``; returns ``code``
    unchanged when it does not parse or holds no task function.
    """
    try:
        tree = ast.parse(code)
    except (SyntaxError, ValueError):
        return code

    candidates = [node for node in tree.body if is_task_function(node)]
    if not candidates:
        return code
    if task_name is not None:
        wanted = task_function_name(task_name)
        candidates.sort(key=lambda fn: fn.name != wanted)
    return ast.unparse(candidates[0]) + "\n"
