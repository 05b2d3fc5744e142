"""
Safe expression evaluation for condition and terminal nodes.

Expressions are parsed with ``ast`` and walked against a whitelist; anything
outside it (imports, lambdas, comprehensions, dunder access, arbitrary calls)
is rejected before evaluation. Attribute access on dicts falls back to key
lookup so ``output.confidence > 0.8`` works on plain JSON data.
"""

import ast
import operator
from collections.abc import Mapping
from typing import Any


class UnsafeExpressionError(ValueError):
    """Raised when an expression uses a construct outside the whitelist."""


_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

SAFE_FUNCTIONS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sum": sum,
    "sorted": sorted,
    "any": any,
    "all": all,
    "list": list,
    "dict": dict,
}

SAFE_METHODS = frozenset(
    {
        "lower",
        "upper",
        "strip",
        "lstrip",
        "rstrip",
        "startswith",
        "endswith",
        "split",
        "join",
        "replace",
        "find",
        "count",
        "get",
        "keys",
        "values",
        "items",
        "format",
    }
)

MAX_EXPONENT = 100
MAX_POWER_BITS = 4096
MAX_REPEAT_LENGTH = 100_000


def safe_eval(expression: str, context: Mapping[str, Any]) -> Any:
    """
    Evaluate *expression* against *context*.

    Args:
        expression: A single Python expression
        context: Names visible to the expression

    Raises:
        UnsafeExpressionError: disallowed syntax
        NameError: unknown name
        Exception: whatever the evaluated operation raises (TypeError, ...)
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise UnsafeExpressionError(f"Invalid expression {expression!r}: {e.msg}") from e
    return _Evaluator(context).visit(tree.body)


def _check_power(base: Any, exponent: Any) -> None:
    if not isinstance(exponent, int | float):
        return
    if abs(exponent) > MAX_EXPONENT:
        raise UnsafeExpressionError(f"Exponent too large: {exponent}")
    if isinstance(base, int) and abs(base).bit_length() * abs(exponent) > MAX_POWER_BITS:
        raise UnsafeExpressionError("Result of '**' would be too large")


def _check_repeat(left: Any, right: Any) -> None:
    for seq, times in ((left, right), (right, left)):
        if isinstance(seq, str | bytes | list | tuple) and isinstance(times, int):
            if len(seq) * times > MAX_REPEAT_LENGTH:
                raise UnsafeExpressionError(
                    f"Repetition longer than {MAX_REPEAT_LENGTH:,} items is not allowed"
                )


class _Evaluator(ast.NodeVisitor):
    def __init__(self, context: Mapping[str, Any]):
        self.context = context

    def generic_visit(self, node: ast.AST) -> Any:
        raise UnsafeExpressionError(f"Unsupported expression element: {type(node).__name__}")

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in self.context:
            return self.context[node.id]
        if node.id in SAFE_FUNCTIONS:
            return SAFE_FUNCTIONS[node.id]
        if node.id in ("true", "false", "null", "none"):
            return {"true": True, "false": False}.get(node.id)
        # Mappings with __missing__ supply their own default for unknown names
        try:
            return self.context[node.id]
        except KeyError:
            raise NameError(f"Name '{node.id}' is not defined") from None

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(e) for e in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(e) for e in node.elts)

    def visit_Set(self, node: ast.Set) -> Any:
        return {self.visit(e) for e in node.elts}

    def visit_Dict(self, node: ast.Dict) -> Any:
        if any(k is None for k in node.keys):
            raise UnsafeExpressionError("Dict unpacking is not allowed")
        return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values, strict=True)}

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            value: Any = True
            for operand in node.values:
                value = self.visit(operand)
                if not value:
                    return value
            return value
        value = False
        for operand in node.values:
            value = self.visit(operand)
            if value:
                return value
        return value

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise UnsafeExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        return op(self.visit(node.operand))

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise UnsafeExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        left = self.visit(node.left)
        right = self.visit(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        elif isinstance(node.op, ast.Mult):
            _check_repeat(left, right)
        return op(left, right)

    def visit_Compare(self, node: ast.Compare) -> Any:
        left = self.visit(node.left)
        for op_node, comparator in zip(node.ops, node.comparators, strict=True):
            op = _COMPARE_OPS.get(type(op_node))
            if op is None:
                raise UnsafeExpressionError(f"Unsupported comparison: {type(op_node).__name__}")
            right = self.visit(comparator)
            if not op(left, right):
                return False
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        value = self.visit(node.value)
        key = self.visit(node.slice)
        return value[key]

    def visit_Slice(self, node: ast.Slice) -> Any:
        lower = self.visit(node.lower) if node.lower else None
        upper = self.visit(node.upper) if node.upper else None
        step = self.visit(node.step) if node.step else None
        return slice(lower, upper, step)

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        if node.attr.startswith("_"):
            raise UnsafeExpressionError(f"Access to private attribute '{node.attr}' is not allowed")
        value = self.visit(node.value)
        if isinstance(value, Mapping) and node.attr in value:
            return value[node.attr]
        if node.attr in SAFE_METHODS and hasattr(value, node.attr):
            return getattr(value, node.attr)
        raise UnsafeExpressionError(f"Attribute '{node.attr}' is not accessible")

    def visit_Call(self, node: ast.Call) -> Any:
        func = self.visit(node.func)
        bound_to = getattr(func, "__self__", None)
        allowed = any(func is f for f in SAFE_FUNCTIONS.values()) or (
            isinstance(node.func, ast.Attribute)
            and node.func.attr in SAFE_METHODS
            and isinstance(bound_to, str | list | dict | tuple)
        )
        if not allowed:
            raise UnsafeExpressionError("Only whitelisted functions may be called")
        if any(isinstance(a, ast.Starred) for a in node.args):
            raise UnsafeExpressionError("Star arguments are not allowed")
        args = [self.visit(a) for a in node.args]
        kwargs = {}
        for kw in node.keywords:
            if kw.arg is None:
                raise UnsafeExpressionError("Keyword unpacking is not allowed")
            kwargs[kw.arg] = self.visit(kw.value)
        return func(*args, **kwargs)

    def visit_JoinedStr(self, node: ast.JoinedStr) -> Any:
        parts = []
        for value in node.values:
            if isinstance(value, ast.Constant):
                parts.append(str(value.value))
            elif isinstance(value, ast.FormattedValue):
                if value.format_spec is not None:
                    raise UnsafeExpressionError("Format specs are not allowed in f-strings")
                parts.append(str(self.visit(value.value)))
            else:
                raise UnsafeExpressionError("Unsupported f-string element")
        return "".join(parts)
