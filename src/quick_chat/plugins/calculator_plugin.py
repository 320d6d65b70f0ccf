import ast
import math
import operator

from ..tool_registry import tool

INVALID_EXPRESSION = "Invalid mathematical expression"

# Largest exponent accepted by ``**``; larger powers are rejected before evaluation.
MAX_EXPONENT = 1000
# Integer results (and intermediate values) are limited to this many bits.
MAX_RESULT_BITS = 4096
MAX_EXPRESSION_LENGTH = 500

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class InvalidExpression(ValueError):
    """Raised for anything that is not plain arithmetic."""


def _check_size(value):
    if isinstance(value, int) and value.bit_length() > MAX_RESULT_BITS:
        raise InvalidExpression("Result too large")
    return value


def _estimated_bits(op, left, right) -> int:
    """Lower bound on the bit length of an integer product or power."""
    if not (isinstance(left, int) and isinstance(right, int)):
        return 0
    if isinstance(op, ast.Mult):
        return left.bit_length() + right.bit_length() - 1
    if isinstance(op, ast.Pow) and right > 0:
        return max(abs(left).bit_length() - 1, 0) * right + 1
    return 0


def _evaluate(node):
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise InvalidExpression(f"Unsupported literal: {node.value!r}")
        return _check_size(node.value)

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand))

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise InvalidExpression(f"Exponent too large: {right}")
        if _estimated_bits(node.op, left, right) > MAX_RESULT_BITS:
            raise InvalidExpression("Result too large")
        return _check_size(_BINARY_OPERATORS[type(node.op)](left, right))

    raise InvalidExpression(f"Unsupported syntax: {type(node).__name__}")


def evaluate_expression(expression: str):
    """Evaluate an arithmetic expression.

    Only numbers, ``+ - * / // % **``, unary signs and parentheses are
    accepted. Integral results come back as ``int``.

    Raises:
        InvalidExpression: for anything else, including division by zero and
            non-finite results
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise InvalidExpression("Expression too long")
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise InvalidExpression(str(e)) from e

    try:
        value = _evaluate(tree)
    except (ZeroDivisionError, OverflowError) as e:
        raise InvalidExpression(str(e)) from e

    if isinstance(value, complex):
        raise InvalidExpression("Complex result")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidExpression("Non-finite result")
        if value.is_integer():
            return int(value)
    return value


class CalculatorPlugin:
    """Plugin that evaluates arithmetic for the model."""

    @tool(
        name="calculator",
        description="Perform mathematical calculations",
        expression="The mathematical expression to evaluate",
    )
    def calculate(self, expression: str) -> dict:
        try:
            return {"result": evaluate_expression(expression)}
        except InvalidExpression:
            return {"error": INVALID_EXPRESSION}

    def hook_provide_tools(self):
        return [self.calculate]
