"""
Math Plugin
===========
Extracts an arithmetic expression from a chat message and evaluates it.

Expressions are parsed with the ``ast`` module and walked against a
whitelist of operators, functions and constants; nothing is ever passed to
eval().

Author: Context Agent
"""

import re
import ast
import asyncio
import math
import logging
import operator
from typing import Optional, Union

from ..models import PluginContext, PluginResult
from ..plugin_router import BasePlugin

logger = logging.getLogger(__name__)

Number = Union[int, float]

MATH_KEYWORDS = re.compile(
    r"\b(calculate|compute|solve|math|addition|subtract|multiply|divide|percentage|square|root|power)\b",
    re.IGNORECASE,
)
MATH_OPERATORS = re.compile(r"[+\-*/^%=()]")
MATH_EXPRESSION = re.compile(r"\b\d+\s*[+\-*/^%]\s*\d+")

# A '.' followed by a digit is a decimal point, not the end of the sentence
EXPRESSION_PATTERNS = [
    re.compile(r"(?:calculate|compute|solve)\s+(.+?)(?:\?|\.(?!\d)|$)", re.IGNORECASE),
    re.compile(r"what\s+is\s+(.+?)(?:\?|\.(?!\d)|$)", re.IGNORECASE),
    re.compile(r"(\d+(?:\.\d+)?\s*[+\-*/^%]\s*\d+(?:\.\d+)?(?:\s*[+\-*/^%]\s*\d+(?:\.\d+)?)*)"),
]
NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")
OPERATOR_PATTERN = re.compile(r"[+\-*/^%]")
NON_EXPRESSION_CHARS = re.compile(r"[^\d+\-*/^%().\s]")

MAX_EXPONENT = 1000
MAX_INTEGER_BITS = 10000
MAX_ROUND_DIGITS = 308

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS = {
    "sqrt": math.sqrt,
    "abs": abs,
    "round": round,
    "pow": math.pow,
    "log": math.log,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}

_CONSTANTS = {
    "pi": math.pi,
    "e": math.e,
}


def _check_size(value: Number) -> Number:
    if isinstance(value, int) and value.bit_length() > MAX_INTEGER_BITS:
        raise ValueError("Number too large")
    return value


def _check_power(base: Number, exponent: Number):
    if abs(exponent) > MAX_EXPONENT:
        raise ValueError(f"Exponent too large: {exponent}")
    # int ** int grows to roughly bit_length * exponent bits before any result check
    if isinstance(base, int) and isinstance(exponent, int) and base.bit_length() * exponent > MAX_INTEGER_BITS:
        raise ValueError("Result too large")


def _check_call(name: str, args: list):
    for arg in args:
        _check_size(arg)
    if name == "round" and len(args) == 2:
        ndigits = args[1]
        if not isinstance(ndigits, int) or abs(ndigits) > MAX_ROUND_DIGITS:
            raise ValueError(f"round() digits out of range: {ndigits}")


def _evaluate_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Expression):
        return _evaluate_node(node.body)

    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return _check_size(node.value)

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate_node(node.left)
        right = _evaluate_node(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        return _check_size(_BINARY_OPERATORS[type(node.op)](left, right))

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate_node(node.operand))

    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]

    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        args = [_evaluate_node(arg) for arg in node.args]
        _check_call(node.func.id, args)
        return _check_size(_FUNCTIONS[node.func.id](*args))

    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def evaluate_expression(expression: str) -> Number:
    """
    Evaluate an arithmetic expression.

    '^' is treated as exponentiation.

    Raises:
        ValueError: Syntax error, unsupported element or math domain error
        ZeroDivisionError: Division or modulo by zero
    """
    normalized = expression.replace("^", "**").replace("×", "*").replace("÷", "/").strip().rstrip("=").strip()
    if not normalized:
        raise ValueError("Empty expression")

    try:
        tree = ast.parse(normalized, mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid mathematical expression: {expression}") from e

    result = _evaluate_node(tree)
    if isinstance(result, complex) or (isinstance(result, float) and not math.isfinite(result)):
        raise ValueError(f"Result is not a finite real number: {expression}")

    if isinstance(result, float) and result.is_integer():
        return int(result)
    return result


def format_number(value: Number) -> str:
    """Integers without decimals, floats with at most 6 decimals"""
    if isinstance(value, int):
        return str(value)
    return f"{value:.6f}".rstrip("0").rstrip(".")


def extract_expression(message: str) -> Optional[str]:
    for pattern in EXPRESSION_PATTERNS:
        match = pattern.search(message)
        if match and match.group(1).strip():
            return match.group(1).strip()

    numbers = NUMBER_PATTERN.findall(message)
    operators = OPERATOR_PATTERN.findall(message)
    if len(numbers) >= 2 and operators:
        return NON_EXPRESSION_CHARS.sub("", message).strip()

    return None


class MathPlugin(BasePlugin):
    """Perform mathematical calculations and solve expressions"""

    name = "math"
    description = "Perform mathematical calculations and solve expressions"

    def can_handle(self, message: str) -> bool:
        return bool(
            MATH_KEYWORDS.search(message)
            or MATH_OPERATORS.search(message)
            or MATH_EXPRESSION.search(message)
        )

    async def execute(self, context: PluginContext) -> PluginResult:
        expression = extract_expression(context.user_message)
        if not expression:
            return self.error_result(
                "No mathematical expression found",
                "Please provide a mathematical expression to calculate.",
            )

        try:
            result = await asyncio.to_thread(evaluate_expression, expression)
        except (ValueError, ZeroDivisionError, OverflowError, TypeError) as e:
            logger.warning(f"⚠️ Math plugin could not evaluate '{expression}' for session {context.session_id}: {e}")
            return self.error_result(
                f"Could not evaluate expression: {expression}",
                "Sorry, I couldn't process that mathematical expression.",
            )

        formatted = format_number(result)
        logger.info(f"🔢 Math plugin evaluated '{expression}' = {formatted} (session {context.session_id})")

        return PluginResult(
            matched=True,
            plugin_name=self.name,
            response_text=(
                "🔢 **Mathematical Calculation**\n\n"
                f"**Expression:** {expression}\n"
                f"**Result:** {formatted}"
            ),
            structured_data={"expression": expression, "result": result},
            context_info=f"Calculated {expression} = {formatted}",
        )
