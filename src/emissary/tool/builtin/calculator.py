"""Calculator tool — arithmetic over a restricted character set."""

from __future__ import annotations

import ast
import operator
import re
from typing import Any, Callable, ClassVar

from pydantic import BaseModel, Field

from emissary.tool.base import BaseTool, ToolError, ToolOk, ToolParams, ToolResult

ALLOWED_EXPRESSION = re.compile(r"^[\d+\-*/().\s]+$")

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class CalculatorParams(ToolParams):
    expression: str = Field(
        description='The mathematical expression to evaluate (e.g., "2 + 2", "10 * (5 - 3)")'
    )


class CalculatorTool(BaseTool[CalculatorParams]):
    """Evaluate +, -, *, / and parentheses over numbers.

    The expression is checked against a character whitelist before it is
    parsed, and only arithmetic nodes are evaluated.
    """

    name: ClassVar[str] = "calculator"
    description: ClassVar[str] = (
        "Perform basic mathematical calculations. Supports +, -, *, /, and parentheses."
    )
    param_model: ClassVar[type[BaseModel]] = CalculatorParams

    async def execute(self, params: CalculatorParams) -> ToolResult:
        if not ALLOWED_EXPRESSION.match(params.expression):
            return ToolError(
                error="Invalid expression. Only numbers and basic operators are allowed."
            )

        try:
            tree = ast.parse(params.expression.strip(), mode="eval")
            value = _evaluate(tree.body)
        except SyntaxError:
            return ToolError(error=f"Malformed expression: {params.expression}")
        except ZeroDivisionError:
            return ToolError(error="Division by zero")
        except ValueError as e:
            return ToolError(error=str(e))

        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return ToolOk(output=value)


def _evaluate(node: ast.expr) -> int | float:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        return _BINARY_OPS[type(node.op)](_evaluate(node.left), _evaluate(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")
