"""Arithmetic evaluation for settings that may reference the CPU count."""

from __future__ import annotations

import ast
import math
import operator
import os
from typing import Optional

CPUS_TOKEN = "[cpus]"
DEFAULT_CPUS = 2

_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}


def detect_cpus() -> int:
    return os.cpu_count() or DEFAULT_CPUS


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_eval_node(node.left), _eval_node(node.right))
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        value = _eval_node(node.operand)
        return -value if isinstance(node.op, ast.USub) else value
    raise ValueError(f"unsupported element in expression: {ast.dump(node)}")


def evaluate_expression(expr, cpus: Optional[int] = None) -> int:
    """Evaluate ``expr`` after replacing ``[cpus]`` with the core count.

    Only numbers, parentheses and ``+ - * /`` are accepted. The result is
    rounded half away from zero.
    """
    if isinstance(expr, (int, float)) and not isinstance(expr, bool):
        value = float(expr)
    else:
        text = str(expr).strip()
        if not text:
            raise ValueError("empty expression")
        count = cpus if cpus is not None else detect_cpus()
        text = text.replace(CPUS_TOKEN, str(count))
        try:
            tree = ast.parse(text, mode="eval")
        except SyntaxError as exc:
            raise ValueError(f"invalid expression {expr!r}") from exc
        try:
            value = float(_eval_node(tree))
        except ZeroDivisionError as exc:
            raise ValueError(f"division by zero in expression {expr!r}") from exc
    return int(math.copysign(math.floor(abs(value) + 0.5), value))
