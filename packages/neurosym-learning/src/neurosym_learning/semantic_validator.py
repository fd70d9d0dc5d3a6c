"""Semantic checks for generated task code.

Where the SafetyValidator asks "can this code hurt the host?", the
SemanticValidator asks "will this code run inside a task at all?":

- every receiver-less call must resolve to a local name, an
  execution-context method, a DSL declaration or a safe builtin
- every ``execute_tool`` call must name a tool the agent actually has
- every task function must end by returning its declared outputs
"""
from __future__ import annotations

import ast
from enum import Enum, StrEnum
from typing import TYPE_CHECKING

from neurosym_core.logging import get_logger

from neurosym_learning.codegen import is_task_function
from neurosym_learning.types import ValidationReport, Violation, ViolationType

if TYPE_CHECKING:
    from neurosym_learning.definitions import AgentDefinition, TaskDefinition

logger = get_logger("learning.semantic_validator")


class ContextMethod(StrEnum):
    """Methods the task runtime provides to every task body."""

    EXECUTE_TOOL = "execute_tool"
    EXECUTE_TASK = "execute_task"
    EXECUTE_LLM = "execute_llm"
    EXECUTE_PARALLEL = "execute_parallel"
    LOGGER = "logger"


class CallKind(Enum):
    """How a receiver-less call resolved."""

    LOCAL = "local"  # parameter, assignment, import or def in scope
    CONTEXT = "context"  # a ContextMethod
    DECLARATION = "declaration"  # DSL structure: task, main, define_agent
    BUILTIN = "builtin"  # side-effect-free builtin


DECLARATIONS = frozenset({"task", "main", "define_agent"})

SAFE_BUILTINS = frozenset({
    "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float",
    "int", "isinstance", "len", "list", "map", "max", "min", "print",
    "range", "reversed", "round", "set", "sorted", "str", "sum", "tuple",
    "zip",
})

_CONTEXT_METHODS = frozenset(m.value for m in ContextMethod)

TASK_INPUTS = "inputs"


def classify_call(name: str, scope: set[str]) -> CallKind | None:
    """Resolve a bare call name, or None if it is not allowed."""
    if name in scope:
        return CallKind.LOCAL
    if name in _CONTEXT_METHODS:
        return CallKind.CONTEXT
    if name in DECLARATIONS:
        return CallKind.DECLARATION
    if name in SAFE_BUILTINS:
        return CallKind.BUILTIN
    return None


class SemanticValidator:
    """Validate that generated code fits the task execution context.

    Parse failures are fatal: unparsable code gets exactly one
    ``syntax_error`` violation and no further analysis.

    Tool references are enforced only when the agent declares a
    non-empty tool set; otherwise they are logged at debug level.

    Usage::

        validator = SemanticValidator(agent_definition)
        report = validator.validate(code, task_definition)
        if not report.valid:
            for v in report.violations:
                print(v.type, v.message)
    """

    def __init__(self, agent_definition: AgentDefinition | None = None) -> None:
        self._agent = agent_definition

    def validate(
        self, code: str, task_definition: TaskDefinition | None = None
    ) -> ValidationReport:
        try:
            tree = ast.parse(code)
        except (SyntaxError, ValueError, RecursionError) as exc:
            return ValidationReport([Violation(
                type=ViolationType.SYNTAX_ERROR,
                message=f"Syntax error: {exc}",
                line=getattr(exc, "lineno", None),
            )])

        violations = check_method_calls(tree)
        violations.extend(self._check_tool_references(tree))
        if task_definition is not None:
            violations.extend(check_output_schema(tree, task_definition))
        return ValidationReport(violations)

    # ── Internal Methods ─────────────────────────────────────────────

    def _check_tool_references(self, tree: ast.Module) -> list[Violation]:
        tools = set(self._agent.tools) if self._agent else set()
        violations: list[Violation] = []

        for node in ast.walk(tree):
            if not _is_call_to(node, ContextMethod.EXECUTE_TOOL):
                continue
            tool = _literal_tool_name(node)

            if not tools:
                logger.debug("Found execute_tool call for %r", tool)
                continue
            if tool is None:
                violations.append(Violation(
                    type=ViolationType.UNSAFE_TOOL_REFERENCE,
                    message="execute_tool must name its tool with a string literal",
                    line=node.lineno,
                ))
            elif tool not in tools:
                violations.append(Violation(
                    type=ViolationType.UNSAFE_TOOL_REFERENCE,
                    message=(
                        f"Tool '{tool}' is not available to agent "
                        f"'{self._agent.name}'"
                    ),
                    name=tool,
                    line=node.lineno,
                ))
        return violations


# ── Method-call check ────────────────────────────────────────────────


def check_method_calls(tree: ast.Module) -> list[Violation]:
    walker = _ScopeWalker()
    walker.body(tree.body, {TASK_INPUTS})
    return walker.violations


class _ScopeWalker:
    """Walk statements in order, growing the set of names in scope.

    Assignments extend the scope for the statements that follow them;
    function and lambda parameters extend it only for their own body.
    Names of functions and classes are bound for the whole body they
    are defined in, since calls resolve them at run time.
    """

    def __init__(self) -> None:
        self.violations: list[Violation] = []

    def body(self, stmts: list[ast.stmt], scope: set[str]) -> None:
        scope.update(
            s.name for s in stmts
            if isinstance(s, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef))
        )
        for stmt in stmts:
            self.stmt(stmt, scope)

    def stmt(self, node: ast.stmt, scope: set[str]) -> None:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            for dec in node.decorator_list:
                self.expr(dec, scope)
            self._defaults(node.args, scope)
            scope.add(node.name)
            self.body(node.body, scope | _param_names(node.args))
        elif isinstance(node, ast.ClassDef):
            for expr in [*node.decorator_list, *node.bases]:
                self.expr(expr, scope)
            scope.add(node.name)
            self.body(node.body, set(scope))
        elif isinstance(node, ast.Assign):
            self.expr(node.value, scope)
            for target in node.targets:
                self.bind(target, scope)
        elif isinstance(node, (ast.AnnAssign, ast.AugAssign)):
            if node.value is not None:
                self.expr(node.value, scope)
            self.bind(node.target, scope)
        elif isinstance(node, (ast.For, ast.AsyncFor)):
            self.expr(node.iter, scope)
            self.bind(node.target, scope)
            self.body(node.body, scope)
            self.body(node.orelse, scope)
        elif isinstance(node, (ast.With, ast.AsyncWith)):
            for item in node.items:
                self.expr(item.context_expr, scope)
                if item.optional_vars is not None:
                    self.bind(item.optional_vars, scope)
            self.body(node.body, scope)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                scope.add(alias.asname or alias.name.split(".")[0])
        elif isinstance(node, ast.Try):
            self.body(node.body, scope)
            for handler in node.handlers:
                if handler.type is not None:
                    self.expr(handler.type, scope)
                if handler.name:
                    scope.add(handler.name)
                self.body(handler.body, scope)
            self.body(node.orelse, scope)
            self.body(node.finalbody, scope)
        else:
            self.generic(node, scope)

    def expr(self, node: ast.expr, scope: set[str]) -> None:
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            name = node.func.id
            if classify_call(name, scope) is None:
                self.violations.append(Violation(
                    type=ViolationType.UNKNOWN_METHOD,
                    message=(
                        f"Unknown method '{name}' - not available in "
                        "the task execution context"
                    ),
                    name=name,
                    line=node.lineno,
                ))
            for arg in [*node.args, *(kw.value for kw in node.keywords)]:
                self.expr(arg, scope)
        elif isinstance(node, ast.Lambda):
            self._defaults(node.args, scope)
            self.expr(node.body, scope | _param_names(node.args))
        elif isinstance(node, (ast.ListComp, ast.SetComp, ast.GeneratorExp)):
            inner = self.generators(node.generators, scope)
            self.expr(node.elt, inner)
        elif isinstance(node, ast.DictComp):
            inner = self.generators(node.generators, scope)
            self.expr(node.key, inner)
            self.expr(node.value, inner)
        elif isinstance(node, ast.NamedExpr):
            self.expr(node.value, scope)
            scope.add(node.target.id)
        else:
            self.generic(node, scope)

    def generators(
        self, generators: list[ast.comprehension], scope: set[str]
    ) -> set[str]:
        inner = set(scope)
        for gen in generators:
            self.expr(gen.iter, inner)
            self.bind(gen.target, inner)
            for cond in gen.ifs:
                self.expr(cond, inner)
        return inner

    def bind(self, target: ast.expr, scope: set[str]) -> None:
        if isinstance(target, ast.Name):
            scope.add(target.id)
        elif isinstance(target, (ast.Tuple, ast.List)):
            for elt in target.elts:
                self.bind(elt, scope)
        elif isinstance(target, ast.Starred):
            self.bind(target.value, scope)
        else:
            # Subscript / attribute targets bind nothing but may call
            self.expr(target, scope)

    def _defaults(self, args: ast.arguments, scope: set[str]) -> None:
        for default in [*args.defaults, *args.kw_defaults]:
            if default is not None:
                self.expr(default, scope)

    def generic(self, node: ast.AST, scope: set[str]) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.stmt):
                self.stmt(child, scope)
            elif isinstance(child, ast.expr):
                self.expr(child, scope)
            else:
                self.generic(child, scope)


def _param_names(args: ast.arguments) -> set[str]:
    params = [*args.posonlyargs, *args.args, *args.kwonlyargs]
    if args.vararg:
        params.append(args.vararg)
    if args.kwarg:
        params.append(args.kwarg)
    return {p.arg for p in params}


# ── Output-schema check ──────────────────────────────────────────────


def check_output_schema(
    tree: ast.Module, task_definition: TaskDefinition
) -> list[Violation]:
    """Each task function must end with ``return {<declared keys>...}``.

    Code without a ``@task`` function is treated as a bare task body and
    its last statement is checked instead.
    """
    expected = list(task_definition.outputs)
    if not expected:
        return []

    bodies = [
        (fn.name, fn.body) for fn in ast.walk(tree)
        if is_task_function(fn)
    ] or [(task_definition.name, tree.body)]

    violations: list[Violation] = []
    for name, body in bodies:
        result = _terminal_dict(body)
        if result is None:
            violations.append(Violation(
                type=ViolationType.SCHEMA_MISMATCH,
                message=(
                    f"Task '{name}' must end by returning a dict with keys: "
                    f"{', '.join(expected)}"
                ),
                name=name,
                line=body[-1].lineno if body else None,
            ))
            continue

        keys = {k.value for k in result.keys if isinstance(k, ast.Constant)}
        has_spread = any(k is None for k in result.keys)
        missing = [k for k in expected if k not in keys]
        if missing and not has_spread:
            violations.append(Violation(
                type=ViolationType.SCHEMA_MISMATCH,
                message=(
                    f"Task '{name}' output is missing declared keys: "
                    f"{', '.join(missing)}"
                ),
                name=name,
                line=result.lineno,
            ))
    return violations


def _terminal_dict(body: list[ast.stmt]) -> ast.Dict | None:
    if not body:
        return None
    last = body[-1]
    value = last.value if isinstance(last, (ast.Return, ast.Expr)) else None
    return value if isinstance(value, ast.Dict) else None


# ── Helpers ──────────────────────────────────────────────────────────


def _is_call_to(node: ast.AST, name: str) -> bool:
    if not isinstance(node, ast.Call):
        return False
    func = node.func
    return (isinstance(func, ast.Name) and func.id == name) or (
        isinstance(func, ast.Attribute) and func.attr == name
    )


def _literal_tool_name(call: ast.Call) -> str | None:
    first = call.args[0] if call.args else next(
        (kw.value for kw in call.keywords if kw.arg in ("name", "tool")), None
    )
    if isinstance(first, ast.Constant) and isinstance(first.value, str):
        return first.value
    return None
