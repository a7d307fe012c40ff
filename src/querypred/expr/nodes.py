from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeAlias, TypeVar, final, get_args

from querypred.errs import ExpressionError
from querypred.types import CompareOp

if TYPE_CHECKING:
    from querypred.expr.document import ExpressionDocument

T_contra = TypeVar("T_contra", contravariant=True)

COMPARE_OPS: frozenset[str] = frozenset(get_args(CompareOp))

# Mirrored operator for swapping operands: `1 < x` is `x > 1`.
MIRRORED_OPS: dict[str, str] = {"eq": "eq", "ne": "ne", "lt": "gt", "le": "ge", "gt": "lt", "ge": "le"}


class _BoolOps:
    """
    Logical operators shared by boolean-shaped nodes.
    """

    __slots__ = ()

    def __and__(self, other: BoolExpr) -> And:
        if not is_bool_expr(other):
            return NotImplemented
        return conjoin(self, other)  # ty:ignore[invalid-argument-type]

    def __or__(self, other: BoolExpr) -> Or:
        if not is_bool_expr(other):
            return NotImplemented
        return disjoin(self, other)  # ty:ignore[invalid-argument-type]

    def __invert__(self) -> Not:
        return Not(self)  # ty:ignore[invalid-argument-type]

    def __bool__(self) -> bool:
        msg = "Query expressions have no truth value; combine them with '&', '|' and '~' instead of and/or/not."
        raise ExpressionError(msg)


@dataclass(frozen=True, slots=True)
@final
class Param:
    """
    The parameter symbol of a single-parameter lambda.
    """

    name: str

    def __post_init__(self):
        if not self.name.isidentifier():
            msg = f"Parameter name must be an identifier, got {self.name!r}"
            raise ExpressionError(msg)


@dataclass(frozen=True, slots=True)
@final
class FieldAccess:
    """
    Attribute (or key) access on the parameter or on another field.
    """

    target: Param | FieldAccess
    name: str

    @property
    def root(self) -> Param:
        node: Param | FieldAccess = self
        while isinstance(node, FieldAccess):
            node = node.target
        return node

    @property
    def path(self) -> tuple[str, ...]:
        parts: list[str] = []
        node: Param | FieldAccess = self
        while isinstance(node, FieldAccess):
            parts.append(node.name)
            node = node.target
        return tuple(reversed(parts))

    @property
    def dotted(self) -> str:
        return ".".join(self.path)


@dataclass(frozen=True, slots=True)
@final
class Constant(_BoolOps):
    """
    A literal value closed over at construction time.
    """

    value: Any


@dataclass(frozen=True, slots=True)
@final
class Compare(_BoolOps):
    """
    Binary comparison between two operands.
    """

    op: CompareOp
    left: FieldAccess | Constant
    right: FieldAccess | Constant

    def __post_init__(self):
        if self.op not in COMPARE_OPS:
            msg = f"Unknown comparison operator {self.op!r}, expected one of: {', '.join(sorted(COMPARE_OPS))}"
            raise ExpressionError(msg)
        for side in (self.left, self.right):
            if not isinstance(side, FieldAccess | Constant):
                msg = f"Comparison operands must be fields or constants, got {type(side).__name__}"
                raise ExpressionError(msg)
        if self.op == "in" and not (
            isinstance(self.right, Constant) and isinstance(self.right.value, tuple | frozenset)
        ):
            msg = "The right operand of 'in' must be a constant tuple or frozenset"
            raise ExpressionError(msg)


@dataclass(frozen=True, slots=True)
@final
class And(_BoolOps):
    """
    Logical conjunction of two or more operands.
    """

    operands: tuple[BoolExpr, ...]

    def __post_init__(self):
        _check_operands("And", self.operands)


@dataclass(frozen=True, slots=True)
@final
class Or(_BoolOps):
    """
    Logical disjunction of two or more operands.
    """

    operands: tuple[BoolExpr, ...]

    def __post_init__(self):
        _check_operands("Or", self.operands)


@dataclass(frozen=True, slots=True)
@final
class Not(_BoolOps):
    """
    Logical negation.
    """

    operand: BoolExpr

    def __post_init__(self):
        if not is_bool_expr(self.operand):
            msg = f"Not requires a boolean operand, got {type(self.operand).__name__}"
            raise ExpressionError(msg)


Expr: TypeAlias = Param | FieldAccess | Constant | Compare | And | Or | Not
BoolExpr: TypeAlias = Constant | Compare | And | Or | Not


def is_bool_expr(node: Any) -> bool:  # noqa: ANN401
    """
    Check if the node can appear where a boolean is expected.
    """
    if isinstance(node, Constant):
        return isinstance(node.value, bool)
    return isinstance(node, Compare | And | Or | Not)


def _check_operands(kind: str, operands: tuple[Any, ...]) -> None:
    if len(operands) < 2:  # noqa: PLR2004
        msg = f"{kind} requires at least two operands, got {len(operands)}"
        raise ExpressionError(msg)
    for operand in operands:
        if not is_bool_expr(operand):
            msg = f"{kind} operands must be boolean expressions, got {type(operand).__name__}"
            raise ExpressionError(msg)


def conjoin(*operands: BoolExpr) -> BoolExpr:
    """
    Join operands with AND, flattening nested conjunctions.
    """
    flat: list[BoolExpr] = []
    for operand in operands:
        if isinstance(operand, And):
            flat.extend(operand.operands)
        else:
            flat.append(operand)
    if len(flat) == 1:
        return flat[0]
    return And(tuple(flat))


def disjoin(*operands: BoolExpr) -> BoolExpr:
    """
    Join operands with OR, flattening nested disjunctions.
    """
    flat: list[BoolExpr] = []
    for operand in operands:
        if isinstance(operand, Or):
            flat.extend(operand.operands)
        else:
            flat.append(operand)
    if len(flat) == 1:
        return flat[0]
    return Or(tuple(flat))


def children(node: Expr) -> tuple[Expr, ...]:
    match node:
        case Param() | Constant():
            return ()
        case FieldAccess(target=target):
            return (target,)
        case Compare(left=left, right=right):
            return (left, right)
        case And(operands=operands) | Or(operands=operands):
            return operands
        case Not(operand=operand):
            return (operand,)
        case _:
            msg = f"Unknown expression node: {type(node).__name__}"
            raise ExpressionError(msg)


def walk(node: Expr) -> Iterator[Expr]:
    """
    Yield every node of the tree, parents before children.
    """
    stack: list[Expr] = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(children(current)))


def free_params(node: Expr) -> frozenset[Param]:
    """
    Collect the parameter symbols referenced by the tree.
    """
    return frozenset(n for n in walk(node) if isinstance(n, Param))


@dataclass(frozen=True, slots=True)
class QueryExpression(Generic[T_contra]):
    """
    A single-parameter boolean lambda: the translatable form of a predicate.

    The body may only reference `param`, which makes every query expression closed and lets
    combinators rewrite parameters without capture.
    """

    param: Param
    body: BoolExpr

    def __post_init__(self):
        if not is_bool_expr(self.body):
            msg = f"Query expression body must be boolean, got {type(self.body).__name__}"
            raise ExpressionError(msg)
        if stray := free_params(self.body) - {self.param}:
            names = ", ".join(sorted(p.name for p in stray))
            msg = f"Query expression over '{self.param.name}' references unbound parameter(s): {names}"
            raise ExpressionError(msg)

    def rebind(self, param: Param) -> QueryExpression[T_contra]:
        """
        Return the same lambda expressed over another parameter symbol.
        """
        from querypred.expr.rewrite import rebind

        if param == self.param:
            return self
        return QueryExpression(param, rebind(self.body, self.param, param))

    def to_document(self) -> ExpressionDocument:
        from querypred.expr.document import to_document

        return to_document(self)

    def to_json(self, *, indent: int | None = None) -> str:
        return self.to_document().model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, data: str | bytes) -> QueryExpression[Any]:
        from querypred.expr.document import ExpressionDocument, from_document

        return from_document(ExpressionDocument.model_validate_json(data))

    def __str__(self) -> str:
        from querypred.expr.rewrite import render

        return f"{self.param.name} => {render(self.body)}"
