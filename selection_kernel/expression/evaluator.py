"""
Expression Evaluator — the leaf of the selection kernel.

Recursively evaluates an Expression tree against an ExecutionContext and
returns a JSON-shaped value (None, bool, number, str, list, dict).

Behavioral Contract:
- Pure: never mutates the context or the proposals it reads
- Total for well-formed trees; missing paths yield None and non-numeric
  arithmetic operands count as 0
- Unknown operators and function names are definition errors (ExpressionError)
- Unsafe or invalid regular expressions in `matches` evaluate to False and log
"""

import json
import logging
import math
import re
from functools import reduce
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from selection_kernel.expression.regex_safety import (
    DEFAULT_REPETITION_LIMIT,
    is_safe_pattern,
)
from selection_kernel.models.context import ExecutionContext
from selection_kernel.models.expression import (
    ArithmeticExpression,
    ComparisonExpression,
    FieldAccessExpression,
    FunctionCallExpression,
    LiteralExpression,
    LogicalExpression,
    VariableExpression,
    parse_expression,
)

logger = logging.getLogger(__name__)


class ExpressionError(ValueError):
    """Raised for malformed expressions: unknown shapes, operators, or functions."""
    pass


# --- Value helpers ---

def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value: Any) -> bool:
    """Truthiness of the stored-pipeline value model: empty lists and dicts are truthy."""
    if isinstance(value, (list, dict, BaseModel)):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def type_name(value: Any) -> str:
    """Category name used for strict equality and cross-type ordering."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


def strict_equals(left: Any, right: Any) -> bool:
    if type_name(left) != type_name(right):
        return False
    return left == right


def to_display_string(value: Any) -> str:
    """String conversion used by concat and the string comparisons."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        if math.isnan(value):
            return "NaN"
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else to_display_string(v) for v in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def serialize_key(value: Any) -> str:
    """Deterministic, value-equality-preserving serialization (group keys, dedupe)."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    return json.dumps(value, sort_keys=True, default=str)


# --- Dot-path helpers ---

def _child(current: Any, key: str) -> Any:
    if isinstance(current, dict):
        return current.get(key)
    if isinstance(current, (list, tuple)):
        if key.isdigit() and int(key) < len(current):
            return current[int(key)]
        if key == "length":
            return len(current)
        return None
    if isinstance(current, str):
        if key.isdigit() and int(key) < len(current):
            return current[int(key)]
        if key == "length":
            return len(current)
        return None
    if isinstance(current, BaseModel):
        for name, info in type(current).model_fields.items():
            if key == name or key == info.alias:
                return getattr(current, name)
        return None
    return None


def get_value_by_path(obj: Any, path: str) -> Any:
    """Walk a dot-path; any missing intermediate short-circuits to None."""
    current = obj
    for part in path.split("."):
        if current is None:
            return None
        current = _child(current, part)
    return current


def set_value_by_path(obj: dict, path: str, value: Any) -> None:
    """Write value at a dot-path, creating (or replacing non-dict) intermediates."""
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        if not part:
            continue
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]

    last = parts[-1]
    if last:
        current[last] = value


# --- Comparison ---

def _ordered(left: Any, right: Any, check: Callable[[Any, Any], bool]) -> bool:
    if is_number(left) and is_number(right):
        return check(left, right)
    if isinstance(left, str) and isinstance(right, str):
        return check(left, right)
    return False


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, str):
        return to_display_string(right) in left
    if isinstance(left, list):
        return any(strict_equals(item, right) for item in left)
    return False


def _matches(left: Any, right: Any) -> bool:
    if not (isinstance(left, str) and isinstance(right, str)):
        return False
    if not is_safe_pattern(right, DEFAULT_REPETITION_LIMIT):
        logger.error("Unsafe regex pattern detected: %s", right)
        return False
    try:
        return re.search(right, left) is not None
    except re.error as e:
        logger.error("Invalid regex pattern: %s (%s)", right, e)
        return False


_COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": strict_equals,
    "notEquals": lambda l, r: not strict_equals(l, r),
    "greaterThan": lambda l, r: _ordered(l, r, lambda a, b: a > b),
    "lessThan": lambda l, r: _ordered(l, r, lambda a, b: a < b),
    "greaterThanOrEquals": lambda l, r: _ordered(l, r, lambda a, b: a >= b),
    "lessThanOrEquals": lambda l, r: _ordered(l, r, lambda a, b: a <= b),
    "in": lambda l, r: isinstance(r, list) and any(strict_equals(l, v) for v in r),
    "notIn": lambda l, r: isinstance(r, list) and not any(strict_equals(l, v) for v in r),
    "contains": _contains,
    "startsWith": lambda l, r: isinstance(l, str) and l.startswith(to_display_string(r)),
    "endsWith": lambda l, r: isinstance(l, str) and l.endswith(to_display_string(r)),
    "matches": _matches,
}


def _evaluate_comparison(expr: ComparisonExpression, context: ExecutionContext) -> bool:
    check = _COMPARISONS.get(expr.operator)
    if check is None:
        raise ExpressionError(f"Unknown comparison operator: {expr.operator}")
    left = evaluate_expression(expr.left, context)
    right = evaluate_expression(expr.right, context)
    return check(left, right)


# --- Logical ---

def _evaluate_logical(expr: LogicalExpression, context: ExecutionContext) -> bool:
    if expr.and_ is not None:
        return all(is_truthy(evaluate_expression(e, context)) for e in expr.and_)
    if expr.or_ is not None:
        return any(is_truthy(evaluate_expression(e, context)) for e in expr.or_)
    if expr.not_ is not None:
        return not is_truthy(evaluate_expression(expr.not_, context))
    raise ExpressionError("Invalid logical expression: one of and/or/not is required")


# --- Arithmetic ---

def _divide(a: float, b: float) -> float:
    return a / b if b != 0 else 0


def _modulo(a: float, b: float) -> float:
    if b == 0:
        return 0
    try:
        result = math.fmod(a, b)
    except ValueError:
        # Infinite dividend
        return math.nan
    return int(result) if isinstance(a, int) and isinstance(b, int) else result


def _power(a: float, b: float) -> float:
    try:
        result = math.pow(a, b)
    except ValueError:
        return math.nan
    except OverflowError:
        return math.inf
    return int(result) if isinstance(a, int) and isinstance(b, int) and b >= 0 else result


_ARITHMETIC: Dict[str, Callable[[List[float]], float]] = {
    "add": lambda values: sum(values),
    "subtract": lambda values: reduce(lambda a, b: a - b, values),
    "multiply": lambda values: reduce(lambda a, b: a * b, values, 1),
    "divide": lambda values: reduce(_divide, values),
    "modulo": lambda values: reduce(_modulo, values),
    "power": lambda values: reduce(_power, values),
}


def _evaluate_arithmetic(expr: ArithmeticExpression, context: ExecutionContext) -> float:
    fold = _ARITHMETIC.get(expr.operator)
    if fold is None:
        raise ExpressionError(f"Unknown arithmetic operator: {expr.operator}")
    values = []
    for operand in expr.operands:
        value = evaluate_expression(operand, context)
        values.append(value if is_number(value) else 0)
    if not values:
        return 0
    return fold(values)


# --- Function calls ---

def _numbers(args: List[Any]) -> List[float]:
    return [a for a in args if is_number(a)]


def _first_number(args: List[Any], fn: Callable[[float], float]) -> float:
    if args and is_number(args[0]):
        value = args[0]
        if isinstance(value, float) and not math.isfinite(value):
            return value
        return fn(value)
    return 0


def _first_string(args: List[Any], fn: Callable[[str], str]) -> str:
    if args and isinstance(args[0], str):
        return fn(args[0])
    return ""


def _fn_avg(args: List[Any]) -> float:
    if not args:
        return 0
    return sum(_numbers(args)) / len(args)


def _fn_if(args: List[Any]) -> Any:
    if len(args) != 3:
        raise ExpressionError("if function requires 3 arguments")
    return args[1] if is_truthy(args[0]) else args[2]


def _fn_length(args: List[Any]) -> int:
    if args and isinstance(args[0], (str, list)):
        return len(args[0])
    return 0


def _fn_round(value: float) -> float:
    # Half rounds up, toward positive infinity
    return math.floor(value + 0.5)


_FUNCTIONS: Dict[str, Callable[[List[Any]], Any]] = {
    "sum": lambda args: sum(_numbers(args)),
    "avg": _fn_avg,
    "count": lambda args: len(args),
    "min": lambda args: min(_numbers(args), default=None),
    "max": lambda args: max(_numbers(args), default=None),
    "if": _fn_if,
    "coalesce": lambda args: next((a for a in args if a is not None), None),
    "concat": lambda args: "".join(to_display_string(a) for a in args),
    "length": _fn_length,
    "abs": lambda args: _first_number(args, abs),
    "round": lambda args: _first_number(args, _fn_round),
    "floor": lambda args: _first_number(args, math.floor),
    "ceil": lambda args: _first_number(args, math.ceil),
    "toLowerCase": lambda args: _first_string(args, str.lower),
    "toUpperCase": lambda args: _first_string(args, str.upper),
    "trim": lambda args: _first_string(args, str.strip),
}


def _evaluate_function_call(expr: FunctionCallExpression, context: ExecutionContext) -> Any:
    fn = _FUNCTIONS.get(expr.function)
    if fn is None:
        raise ExpressionError(f"Unknown function: {expr.function}")
    args = [evaluate_expression(arg, context) for arg in expr.arguments]
    return fn(args)


# --- Field and variable access ---

def _evaluate_field_access(expr: FieldAccessExpression, context: ExecutionContext) -> Any:
    root = context.proposal if context.proposal is not None else context
    return get_value_by_path(root, expr.field)


def _evaluate_variable(expr: VariableExpression, context: ExecutionContext) -> Any:
    name = expr.variable[1:] if expr.variable.startswith("$") else expr.variable
    if name in context.variables:
        return context.variables[name]
    if name in context.outputs:
        return context.outputs[name]
    return None


_EVALUATORS: Dict[type, Callable[[Any, ExecutionContext], Any]] = {
    FieldAccessExpression: _evaluate_field_access,
    ComparisonExpression: _evaluate_comparison,
    LogicalExpression: _evaluate_logical,
    ArithmeticExpression: _evaluate_arithmetic,
    FunctionCallExpression: _evaluate_function_call,
    LiteralExpression: lambda expr, context: expr.value,
    VariableExpression: _evaluate_variable,
}


def evaluate_expression(expr: Any, context: ExecutionContext) -> Any:
    """
    Evaluate an expression against the context.

    Accepts a parsed Expression model or raw expression data; raw data is
    classified with the same priority order the models use.
    """
    if isinstance(expr, dict):
        try:
            expr = parse_expression(expr)
        except ValueError as e:
            raise ExpressionError(f"Unknown expression type: {json.dumps(expr, default=str)}") from e

    evaluator = _EVALUATORS.get(type(expr))
    if evaluator is None:
        raise ExpressionError(f"Unknown expression type: {expr!r}")
    return evaluator(expr, context)


def evaluate_for_proposal(
    expr: Any,
    proposal: dict,
    context: ExecutionContext,
) -> Any:
    """Evaluate with a single proposal in scope."""
    return evaluate_expression(expr, context.scoped_to(proposal))


def evaluate_path_or_expression(
    spec: Any,
    context: ExecutionContext,
) -> Any:
    """A bare string is a field path; anything else is an expression."""
    if isinstance(spec, str):
        return evaluate_expression(FieldAccessExpression(field=spec), context)
    return evaluate_expression(spec, context)


def coerce_number(value: Any, default: Optional[float] = 0) -> Optional[float]:
    return value if is_number(value) else default
