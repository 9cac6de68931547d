"""Function table: ``def``, ``async def`` and ``lambda``."""

from __future__ import annotations

import ast

from tracecov.analysis.models import FunctionInfo
from tracecov.analysis.parser import AnalysisBudget
from tracecov.config.constants import ANONYMOUS_FUNCTION_FORMAT


def _target_name(target: ast.expr) -> str | None:
    if isinstance(target, ast.Name):
        return target.id
    if isinstance(target, ast.Attribute):
        # self.handler = lambda ...: named by the attribute path
        base = _target_name(target.value)
        return f"{base}.{target.attr}" if base else target.attr
    return None


class FunctionCollector(ast.NodeVisitor):
    """Walk the module tracking the qualified-name scope."""

    def __init__(self, block_of: dict[ast.AST, int], budget: AnalysisBudget) -> None:
        self.block_of = block_of
        self.budget = budget
        self.scope: list[str] = []
        self.functions: list[FunctionInfo] = []
        self._lambda_names: dict[ast.Lambda, str] = {}

    def _qualify(self, name: str) -> str:
        return ".".join([*self.scope, name])

    def _add(self, name: str, node: ast.AST, code_line: int, is_lambda: bool) -> None:
        self.functions.append(
            FunctionInfo(
                function_id=len(self.functions),
                name=name,
                start_line=node.lineno,  # type: ignore[attr-defined]
                end_line=node.end_lineno or node.lineno,  # type: ignore[attr-defined]
                code_line=code_line,
                body_block_id=None if is_lambda else self.block_of.get(node),
                is_lambda=is_lambda,
            )
        )

    def generic_visit(self, node: ast.AST) -> None:
        self.budget.step()
        super().generic_visit(node)

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        code_line = min([d.lineno for d in node.decorator_list] + [node.lineno])
        self._add(self._qualify(node.name), node, code_line, is_lambda=False)
        for decorator in node.decorator_list:
            self.visit(decorator)
        self.visit(node.args)
        self.scope.append(node.name)
        try:
            for stmt in node.body:
                self.visit(stmt)
        finally:
            self.scope.pop()

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for decorator in node.decorator_list:
            self.visit(decorator)
        for base in node.bases:
            self.visit(base)
        self.scope.append(node.name)
        try:
            for stmt in node.body:
                self.visit(stmt)
        finally:
            self.scope.pop()

    def _name_assigned_lambda(self, targets: list[ast.expr], value: ast.expr | None) -> None:
        if isinstance(value, ast.Lambda) and len(targets) == 1:
            name = _target_name(targets[0])
            if name:
                self._lambda_names[value] = name

    def visit_Assign(self, node: ast.Assign) -> None:
        self._name_assigned_lambda(node.targets, node.value)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self._name_assigned_lambda([node.target], node.value)
        self.generic_visit(node)

    def visit_keyword(self, node: ast.keyword) -> None:
        # sorted(items, key=lambda item: ...) -> "key"
        if isinstance(node.value, ast.Lambda) and node.arg:
            self._lambda_names.setdefault(node.value, node.arg)
        self.generic_visit(node)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        name = self._lambda_names.get(node)
        if name is None:
            name = ANONYMOUS_FUNCTION_FORMAT.format(line=node.lineno)
        else:
            name = self._qualify(name)
        self._add(name, node, node.lineno, is_lambda=True)
        self.generic_visit(node)


def collect_functions(
    tree: ast.Module,
    block_of: dict[ast.AST, int],
    budget: AnalysisBudget,
) -> tuple[FunctionInfo, ...]:
    collector = FunctionCollector(block_of, budget)
    collector.visit(tree)
    return tuple(collector.functions)
