from __future__ import annotations

import ast
import operator
import sys
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from querypred.errs import EvaluationError, ExpressionError
from querypred.expr.nodes import And, Compare, Constant, Expr, FieldAccess, Not, Or, Param, QueryExpression

T_contra = TypeVar("T_contra", contravariant=True)

COMPILED_EXPRESSION = "_compiled_expression"
GET_FIELD = "_get"

# Literal types that can be embedded in generated code as `ast.Constant`.
_INLINE_TYPES = (bool, int, float, str, bytes, type(None))


def get_field(obj: Any, name: str) -> Any:  # noqa: ANN401
    """
    Resolve one step of a field path. Missing data resolves to None.
    """
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _ordered(fn: Callable[[Any, Any], bool], symbol: str) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:  # noqa: ANN401
        if left is None or right is None:
            return False
        try:
            return bool(fn(left, right))
        except TypeError as e:
            msg = f"Cannot compare {type(left).__name__} {symbol} {type(right).__name__}"
            raise EvaluationError(msg) from e

    return compare


def _eq(left: Any, right: Any) -> bool:  # noqa: ANN401
    return bool(left == right)


def _ne(left: Any, right: Any) -> bool:  # noqa: ANN401
    return not _eq(left, right)


def _in(left: Any, right: Any) -> bool:  # noqa: ANN401
    if left is None or right is None:
        return False
    try:
        return left in right
    except TypeError as e:
        msg = f"Cannot test membership of {type(left).__name__} in {type(right).__name__}"
        raise EvaluationError(msg) from e


# Null-safe, two-valued comparison semantics shared by in-memory evaluation and
# null-safe SQL translation.
COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": _eq,
    "ne": _ne,
    "lt": _ordered(operator.lt, "<"),
    "le": _ordered(operator.le, "<="),
    "gt": _ordered(operator.gt, ">"),
    "ge": _ordered(operator.ge, ">="),
    "in": _in,
}


class ExpressionCodegen:
    """
    Generate Python AST for query expression bodies and turn it into callables.

    The codegen owns the namespace the generated code is executed in; helpers and non-literal
    constants are registered there under private names.
    """

    def __init__(self, context: dict[str, Any] | None = None):
        self.context: dict[str, Any] = context if context is not None else {}
        self.context[GET_FIELD] = get_field
        for op, fn in COMPARATORS.items():
            self.context[f"_op_{op}"] = fn
        self._const_counter = 0

    def _register_constant(self, value: Any) -> ast.Name:  # noqa: ANN401
        name = f"_const_{self._const_counter}"
        self._const_counter += 1
        self.context[name] = value
        return ast.Name(id=name, ctx=ast.Load())

    def emit(self, node: Expr, arg: str = "ctx") -> ast.expr:
        """
        Emit the Python expression computing `node`, with the lambda parameter bound to `arg`.
        """
        match node:
            case Param():
                return ast.Name(id=arg, ctx=ast.Load())
            case FieldAccess(target=target, name=name):
                return ast.Call(
                    func=ast.Name(id=GET_FIELD, ctx=ast.Load()),
                    args=[self.emit(target, arg), ast.Constant(value=name)],
                    keywords=[],
                )
            case Constant(value=value):
                if type(value) in _INLINE_TYPES:
                    return ast.Constant(value=value)
                return self._register_constant(value)
            case Compare(op=op, left=left, right=right):
                return ast.Call(
                    func=ast.Name(id=f"_op_{op}", ctx=ast.Load()),
                    args=[self.emit(left, arg), self.emit(right, arg)],
                    keywords=[],
                )
            case And(operands=operands):
                return ast.BoolOp(op=ast.And(), values=[self.emit(o, arg) for o in operands])
            case Or(operands=operands):
                return ast.BoolOp(op=ast.Or(), values=[self.emit(o, arg) for o in operands])
            case Not(operand=operand):
                return ast.UnaryOp(op=ast.Not(), operand=self.emit(operand, arg))
            case _:
                msg = f"Unknown expression node: {type(node).__name__}"
                raise ExpressionError(msg)

    @staticmethod
    def _fix_locations_iterative(root: ast.AST) -> None:
        """
        Iterative implementation of ast.fix_missing_locations.
        """
        stack = [root]

        while stack:
            node = stack.pop()
            if not getattr(node, "lineno", None):
                node.lineno = 1  # ty:ignore[invalid-assignment]
                node.col_offset = 0  # ty:ignore[invalid-assignment]
                node.end_lineno = 1  # ty:ignore[invalid-assignment]
                node.end_col_offset = 0  # ty:ignore[invalid-assignment]

            stack.extend(ast.iter_child_nodes(node))

    def build_function(self, name: str, body_expr: ast.expr, arg: str = "ctx") -> Callable[..., Any]:
        """
        Wrap `body_expr` in a one-argument function, compile and return it.
        """
        func_def = ast.FunctionDef(
            name=name,
            args=ast.arguments(posonlyargs=[], args=[ast.arg(arg=arg)], kwonlyargs=[], defaults=[], kw_defaults=[]),
            body=[ast.Return(value=body_expr)],
            decorator_list=[],
            **({"type_params": []} if sys.version_info >= (3, 12) else {}),
        )
        module = ast.Module(body=[func_def], type_ignores=[])

        self._fix_locations_iterative(module)
        code_obj = compile(module, filename="<querypred>", mode="exec")
        exec(code_obj, self.context)  # noqa: S102

        return self.context[name]


def compile_expression(expression: QueryExpression[T_contra]) -> Callable[[T_contra], bool]:
    """
    Compile a query expression into a plain Python predicate function.
    """
    codegen = ExpressionCodegen()
    return codegen.build_function(COMPILED_EXPRESSION, codegen.emit(expression.body))
