from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from querypred.errs import ExpressionError
from querypred.expr.nodes import (
    BoolExpr,
    Compare,
    Constant,
    FieldAccess,
    Not,
    Param,
    QueryExpression,
    is_bool_expr,
)
from querypred.settings import get_settings
from querypred.types import CompareOp


class Var:
    """
    Proxy used to build expression nodes with plain Python operators.

    Attribute access yields a field proxy, comparison operators yield `Compare` nodes. Fields whose
    names clash with the proxy's own methods (`in_`, `is_none`, ...) are reachable with `var["in_"]`.

    Examples:
        >>> expr = where(lambda m: (m.rating > 4.0) & (m.review_count > 100))
        >>> str(expr)
        'e => (e.rating > 4.0 AND e.review_count > 100)'
    """

    __slots__ = ("_node",)

    def __init__(self, node: Param | FieldAccess):
        object.__setattr__(self, "_node", node)

    def __getattr__(self, name: str) -> Var:
        if name.startswith("__"):
            raise AttributeError(name)
        return Var(FieldAccess(self._node, name))

    def __getitem__(self, name: str) -> Var:
        return Var(FieldAccess(self._node, name))

    def __setattr__(self, name: str, value: Any) -> None:  # noqa: ANN401
        msg = "Expression proxies are read-only"
        raise ExpressionError(msg)

    def _compare(self, op: CompareOp, other: Any) -> Compare:  # noqa: ANN401
        return Compare(op, self._operand(), _operand(other))

    def _operand(self) -> FieldAccess:
        if not isinstance(self._node, FieldAccess):
            msg = f"Cannot compare the parameter '{self._node.name}' itself; compare one of its fields"
            raise ExpressionError(msg)
        return self._node

    def __eq__(self, other: object) -> Compare:  # type: ignore[override]
        return self._compare("eq", other)

    def __ne__(self, other: object) -> Compare:  # type: ignore[override]
        return self._compare("ne", other)

    def __lt__(self, other: Any) -> Compare:  # noqa: ANN401
        return self._compare("lt", other)

    def __le__(self, other: Any) -> Compare:  # noqa: ANN401
        return self._compare("le", other)

    def __gt__(self, other: Any) -> Compare:  # noqa: ANN401
        return self._compare("gt", other)

    def __ge__(self, other: Any) -> Compare:  # noqa: ANN401
        return self._compare("ge", other)

    __hash__ = None  # type: ignore[assignment]

    def in_(self, values: Iterable[Any]) -> Compare:
        return Compare("in", self._operand(), Constant(freeze(values)))

    def not_in(self, values: Iterable[Any]) -> Not:
        return Not(self.in_(values))

    def is_none(self) -> Compare:
        return Compare("eq", self._operand(), Constant(None))

    def is_not_none(self) -> Compare:
        return Compare("ne", self._operand(), Constant(None))

    def is_true(self) -> Compare:
        return Compare("eq", self._operand(), Constant(True))  # noqa: FBT003

    def __bool__(self) -> bool:
        msg = "Field proxies have no truth value; compare them or combine comparisons with '&', '|' and '~'."
        raise ExpressionError(msg)

    def __repr__(self) -> str:
        node = self._node
        return f"Var({node.name if isinstance(node, Param) else node.root.name + '.' + node.dotted})"


def _operand(value: Any) -> FieldAccess | Constant:  # noqa: ANN401
    if isinstance(value, Var):
        return value._operand()  # noqa: SLF001
    if isinstance(value, FieldAccess | Constant):
        return value
    return Constant(value)


def freeze(values: Iterable[Any]) -> tuple[Any, ...] | frozenset[Any]:
    """
    Turn a collection into an immutable, hashable constant value.
    """
    if isinstance(values, str | bytes):
        msg = "'in' expects a collection of values, not a string"
        raise ExpressionError(msg)
    if isinstance(values, set | frozenset):
        return frozenset(values)
    return tuple(values)


def as_bool_expr(result: Any) -> BoolExpr:  # noqa: ANN401
    """
    Normalise what an expression builder returned into a boolean node.

    A bare field proxy is read as "field is True"; a Python bool becomes a constant.
    """
    if isinstance(result, bool):
        return Constant(result)
    if isinstance(result, Var):
        return result.is_true()
    if is_bool_expr(result):
        return result
    msg = f"Expression builder must return a boolean expression, got {type(result).__name__}"
    raise ExpressionError(msg)


def where(builder: Callable[[Var], Any], *, param: str | None = None) -> QueryExpression[Any]:
    """
    Build a query expression from a function over a parameter proxy.

    Args:
        builder: receives the parameter proxy and returns a boolean expression.
        param: name of the lambda parameter. Defaults to `QueryPredSettings.default_param`.

    Examples:
        ```python
        recent = where(lambda m: m.release_date > cutoff)
        ```
    """
    symbol = Param(param or get_settings().default_param)
    return QueryExpression(symbol, as_bool_expr(builder(Var(symbol))))
