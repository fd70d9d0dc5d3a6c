"""Static safety checks for generated task code.

Generated code only ever needs the agent DSL surface (``execute_tool``
and friends) plus plain data manipulation, so anything that reaches the
process, the filesystem, the import system or object internals is
rejected outright. This is a stdlib ``ast`` walk; the code is never
executed.
"""
from __future__ import annotations

import ast

from neurosym_core.errors import UnsafeCodeError

from neurosym_learning.types import Violation, ViolationType

# Importable modules; everything else is rejected
ALLOWED_IMPORTS = frozenset({"neurosym_dsl"})

DANGEROUS_CALLS = frozenset({
    "system", "popen", "spawn", "fork", "exec", "eval", "compile",
    "open", "__import__", "getattr", "setattr", "delattr",
    "globals", "locals", "vars", "input", "breakpoint", "exit", "quit",
})

DANGEROUS_NAMES = frozenset({
    "os", "sys", "subprocess", "shutil", "socket", "pathlib", "io",
    "builtins", "importlib", "ctypes", "pickle", "marshal", "shelve",
    "threading", "multiprocessing",
})


class SafetyValidator:
    """AST allow-list validator for generated code.

    ``validate`` never raises, whatever text it is given; unparsable
    input is reported as a single ``syntax_error`` violation.

    Usage::

        violations = SafetyValidator().validate(code)
        if violations:
            print(violations[0].message)
    """

    def __init__(self, *, allowed_imports: frozenset[str] = ALLOWED_IMPORTS) -> None:
        self._allowed_imports = allowed_imports

    def validate(self, code: str) -> list[Violation]:
        try:
            tree = ast.parse(code)
        except (SyntaxError, ValueError, RecursionError) as exc:
            return [Violation(
                type=ViolationType.SYNTAX_ERROR,
                message=f"Syntax error: {exc}",
                line=getattr(exc, "lineno", None),
            )]

        visitor = _SafetyVisitor(self._allowed_imports)
        try:
            visitor.visit(tree)
        except RecursionError:
            return [Violation(
                type=ViolationType.VALIDATION_ERROR,
                message="Code is nested too deeply to validate",
            )]
        return visitor.violations

    def validate_strict(self, code: str) -> None:
        """Raise UnsafeCodeError listing every violation, if any."""
        violations = self.validate(code)
        if violations:
            msg = "; ".join(v.message for v in violations)
            raise UnsafeCodeError(msg)


class _SafetyVisitor(ast.NodeVisitor):
    def __init__(self, allowed_imports: frozenset[str]) -> None:
        self.allowed_imports = allowed_imports
        self.violations: list[Violation] = []

    def _flag(self, kind: ViolationType, message: str, name: str, node: ast.AST) -> None:
        self.violations.append(Violation(
            type=kind, message=message, name=name, line=getattr(node, "lineno", None)
        ))

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        name = None
        if isinstance(func, ast.Name):
            name = func.id
        elif isinstance(func, ast.Attribute):
            name = func.attr
        if name in DANGEROUS_CALLS:
            self._flag(
                ViolationType.DANGEROUS_CALL,
                f"Dangerous method call '{name}' is not allowed",
                name,
                node,
            )
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self._check_import(alias.name, node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self._check_import(node.module or "." * node.level, node)

    def _check_import(self, module: str, node: ast.AST) -> None:
        if module.split(".")[0] not in self.allowed_imports:
            self._flag(
                ViolationType.DANGEROUS_IMPORT,
                f"Import of '{module}' is not allowed",
                module,
                node,
            )

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in DANGEROUS_NAMES:
            self._flag(
                ViolationType.DANGEROUS_NAME,
                f"Reference to module '{node.id}' is not allowed",
                node.id,
                node,
            )

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("__") and node.attr.endswith("__"):
            self._flag(
                ViolationType.DANGEROUS_ATTRIBUTE,
                f"Access to dunder attribute '{node.attr}' is not allowed",
                node.attr,
                node,
            )
        self.generic_visit(node)
