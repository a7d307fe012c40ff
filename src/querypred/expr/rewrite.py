"""
Structural rewriting of query expressions.

Combining two query expressions never evaluates either of them: each operand is rewritten onto
one shared parameter symbol and the bodies are joined node by node, so the result stays a single
translatable lambda.
"""

from __future__ import annotations

from typing import Any, TypeVar

from querypred.errs import ExpressionError
from querypred.expr.nodes import (
    And,
    BoolExpr,
    Compare,
    Constant,
    Expr,
    FieldAccess,
    Not,
    Or,
    Param,
    QueryExpression,
    conjoin,
    disjoin,
)

T = TypeVar("T")
N = TypeVar("N", bound=Expr)

_SYMBOLS = {"eq": "==", "ne": "!=", "lt": "<", "le": "<=", "gt": ">", "ge": ">=", "in": "in"}


class ExpressionTransformer:
    """
    Rebuild an expression tree bottom-up. Subclasses override the `visit_*` hooks they care about.
    """

    def visit(self, node: Expr) -> Expr:
        match node:
            case Param():
                return self.visit_param(node)
            case FieldAccess(target=target, name=name):
                new_target = self.visit(target)
                if not isinstance(new_target, Param | FieldAccess):
                    msg = f"Field '{name}' must be accessed on a parameter or field, got {type(new_target).__name__}"
                    raise ExpressionError(msg)
                return node if new_target is target else FieldAccess(new_target, name)
            case Constant():
                return self.visit_constant(node)
            case Compare(op=op, left=left, right=right):
                new_left, new_right = self.visit(left), self.visit(right)
                if new_left is left and new_right is right:
                    return node
                return Compare(op, new_left, new_right)  # ty:ignore[invalid-argument-type]
            case And(operands=operands):
                new_operands = tuple(self.visit(o) for o in operands)
                return node if new_operands == operands else And(new_operands)  # ty:ignore[invalid-argument-type]
            case Or(operands=operands):
                new_operands = tuple(self.visit(o) for o in operands)
                return node if new_operands == operands else Or(new_operands)  # ty:ignore[invalid-argument-type]
            case Not(operand=operand):
                new_operand = self.visit(operand)
                return node if new_operand is operand else Not(new_operand)  # ty:ignore[invalid-argument-type]
            case _:
                msg = f"Unknown expression node: {type(node).__name__}"
                raise ExpressionError(msg)

    def visit_param(self, node: Param) -> Expr:
        return node

    def visit_constant(self, node: Constant) -> Expr:
        return node


class ParameterRebinder(ExpressionTransformer):
    """
    Replace every occurrence of one parameter symbol with another.
    """

    def __init__(self, old: Param, new: Param):
        self.old = old
        self.new = new

    def visit_param(self, node: Param) -> Expr:
        return self.new if node == self.old else node


def rebind(node: N, old: Param, new: Param) -> N:
    """
    Rewrite `node` so that it refers to `new` wherever it referred to `old`.
    """
    return ParameterRebinder(old, new).visit(node)  # ty:ignore[invalid-return-type]


def _shared(expressions: tuple[QueryExpression[Any], ...]) -> tuple[Param, list[BoolExpr]]:
    if not expressions:
        msg = "At least one query expression is required"
        raise ExpressionError(msg)
    # Each query expression is closed over its own parameter only, so renaming onto the
    # first operand's symbol cannot capture anything.
    param = expressions[0].param
    return param, [expression.rebind(param).body for expression in expressions]


def combine_and(*expressions: QueryExpression[T]) -> QueryExpression[T]:
    """
    Join query expressions with a logical AND over one shared parameter.
    """
    param, bodies = _shared(expressions)
    return QueryExpression(param, conjoin(*bodies))


def combine_or(*expressions: QueryExpression[T]) -> QueryExpression[T]:
    """
    Join query expressions with a logical OR over one shared parameter.
    """
    param, bodies = _shared(expressions)
    return QueryExpression(param, disjoin(*bodies))


def negate(expression: QueryExpression[T]) -> QueryExpression[T]:
    """
    Wrap the body of a query expression in a logical NOT.
    """
    return QueryExpression(expression.param, Not(expression.body))


def render(node: Expr) -> str:
    """
    Human-readable rendering, for logs and reprs.
    """
    match node:
        case Param(name=name):
            return name
        case FieldAccess(target=target, name=name):
            return f"{render(target)}.{name}"
        case Constant(value=value):
            return repr(value)
        case Compare(op=op, left=left, right=right):
            return f"{render(left)} {_SYMBOLS[op]} {render(right)}"
        case And(operands=operands):
            return "(" + " AND ".join(render(o) for o in operands) + ")"
        case Or(operands=operands):
            return "(" + " OR ".join(render(o) for o in operands) + ")"
        case Not(operand=operand):
            return f"NOT {render(operand)}"
        case _:
            msg = f"Unknown expression node: {type(node).__name__}"
            raise ExpressionError(msg)
