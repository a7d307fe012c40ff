"""
Translate query expressions into SQLAlchemy filter clauses.

Field paths map onto mapped attributes of a declarative model. A path that goes through a
scalar relationship becomes an ``EXISTS`` via ``relationship.has()``.

By default comparisons are emitted null-safe: every clause evaluates to TRUE or FALSE, never
NULL, with the same outcome in-memory evaluation gives for a missing value. With
``null_safe=False`` the plain SQL operators are emitted and NULL handling follows SQL's
three-valued logic.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar, cast

from sqlalchemy import ColumnElement, Select, and_, false, not_, or_, true
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import ColumnProperty, RelationshipProperty

from querypred.errs import EvaluationError, TranslationError
from querypred.expr import And, Compare, Constant, FieldAccess, Not, Or, QueryExpression
from querypred.expr.compiler import COMPARATORS
from querypred.expr.nodes import MIRRORED_OPS
from querypred.settings import get_settings

if TYPE_CHECKING:
    from querypred.expr import BoolExpr
    from querypred.predicate import Predicate

T = TypeVar("T")

TARGET = "sqlalchemy"

logger = logging.getLogger(__name__)

_SQL_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


def _literal(value: bool) -> ColumnElement[bool]:  # noqa: FBT001
    return true() if value else false()


class SQLAlchemyTranslator:
    """
    Turn a `QueryExpression` (or a predicate's expression form) into a boolean clause over `model`.

    Args:
        model: A mapped (declarative) class. Entity fields are matched to its mapped attributes by name.
        null_safe: Emit two-valued comparisons. Defaults to `QueryPredSettings.null_safe`.

    Examples:
        ```python
        translator = SQLAlchemyTranslator(MovieRecord)
        stmt = select(MovieRecord).where(translator.translate(great & recent))
        ```
    """

    def __init__(self, model: type[Any], *, null_safe: bool | None = None):
        try:
            self.mapper = sa_inspect(model)
        except NoInspectionAvailable as e:
            msg = f"{getattr(model, '__name__', model)!r} is not a mapped class"
            raise TranslationError(msg, target=TARGET) from e
        self.model = model
        self.null_safe = get_settings().null_safe if null_safe is None else null_safe

    def translate(self, query: QueryExpression[T] | Predicate[T]) -> ColumnElement[bool]:
        """
        Raises:
            TranslationError: If some part of the expression has no SQL counterpart on `model`.
        """
        expression = query if isinstance(query, QueryExpression) else query.to_query_expression()
        logger.debug("Translating %s for %s (null_safe=%s)", expression, self.model.__name__, self.null_safe)
        return self._bool(expression.body)

    def _bool(self, node: BoolExpr) -> ColumnElement[bool]:
        match node:
            case Constant(value=value):
                return _literal(value)
            case Compare():
                return self._compare(node)
            case And(operands=operands):
                return and_(*(self._bool(o) for o in operands))
            case Or(operands=operands):
                return or_(*(self._bool(o) for o in operands))
            case Not(operand=operand):
                return not_(self._bool(operand))
            case _:
                msg = f"Unsupported expression node {type(node).__name__}"
                raise TranslationError(msg, target=TARGET)

    def _compare(self, node: Compare) -> ColumnElement[bool]:
        op, left, right = node.op, node.left, node.right

        match left, right:
            case Constant(value=lv), Constant(value=rv):
                try:
                    return _literal(COMPARATORS[op](lv, rv))
                except EvaluationError as e:
                    raise TranslationError(str(e), target=TARGET) from e
            case Constant(), FieldAccess():
                return self._field_vs_value(right, MIRRORED_OPS[op], left.value)
            case FieldAccess(), Constant(value=value):
                return self._field_vs_value(left, op, value)
            case FieldAccess(), FieldAccess():
                return self._field_vs_field(op, left, right)
        msg = f"Unsupported comparison operands {type(left).__name__} and {type(right).__name__}"
        raise TranslationError(msg, target=TARGET)

    def _field_vs_value(self, field: FieldAccess, op: str, value: Any) -> ColumnElement[bool]:  # noqa: ANN401
        return self._path_vs_value(self.mapper, field.path, op, value, field.dotted)

    def _path_vs_value(self, mapper: Any, path: tuple[str, ...], op: str, value: Any, dotted: str) -> ColumnElement[bool]:  # noqa: ANN401, PLR0913
        head, rest = path[0], path[1:]
        prop = self._property(mapper, head, dotted)
        attr = getattr(mapper.class_, head)

        if isinstance(prop, ColumnProperty):
            if rest:
                msg = f"Cannot access '{rest[0]}' on column '{head}': only relationships can be traversed"
                raise TranslationError(msg, path=dotted, target=TARGET)
            return self._column_vs_value(attr, op, value)

        prop = cast("RelationshipProperty[Any]", prop)
        if prop.uselist:
            msg = f"Relationship '{head}' is a collection; field paths may only traverse scalar relationships"
            raise TranslationError(msg, path=dotted, target=TARGET)

        if not rest:
            return self._relationship_vs_value(attr, op, value, dotted)

        inner = self._path_vs_value(prop.mapper, rest, op, value, dotted)
        # Without a related row the field reads as None in memory.
        if self.null_safe and COMPARATORS[op](None, value):
            return or_(~attr.has(), attr.has(inner))
        return attr.has(inner)

    @staticmethod
    def _property(mapper: Any, name: str, dotted: str) -> ColumnProperty[Any] | RelationshipProperty[Any]:  # noqa: ANN401
        prop = mapper.attrs.get(name)
        if not isinstance(prop, ColumnProperty | RelationshipProperty):
            msg = f"{mapper.class_.__name__} has no mapped column or relationship '{name}'"
            raise TranslationError(msg, path=dotted, target=TARGET)
        return prop

    @staticmethod
    def _relationship_vs_value(attr: Any, op: str, value: Any, dotted: str) -> ColumnElement[bool]:  # noqa: ANN401
        if value is None and op in ("eq", "ne"):
            return ~attr.has() if op == "eq" else attr.has()
        msg = f"Relationship '{dotted}' can only be compared with None"
        raise TranslationError(msg, path=dotted, target=TARGET)

    def _column_vs_value(self, column: Any, op: str, value: Any) -> ColumnElement[bool]:  # noqa: ANN401
        if op == "in":
            values = list(value)
            if not self.null_safe:
                return column.in_(values)
            return and_(column.is_not(None), column.in_([v for v in values if v is not None]))

        if value is None:
            if op == "eq":
                return column.is_(None)
            if op == "ne":
                return column.is_not(None)
            if self.null_safe:
                return false()
            return _SQL_OPS[op](column, None)

        clause = _SQL_OPS[op](column, value)
        if not self.null_safe:
            return clause
        if op == "ne":
            return or_(column.is_(None), clause)
        return and_(column.is_not(None), clause)

    def _field_vs_field(self, op: str, left: FieldAccess, right: FieldAccess) -> ColumnElement[bool]:
        if op == "in":
            msg = "'in' needs a constant collection on the right"
            raise TranslationError(msg, path=left.dotted, target=TARGET)

        columns = []
        for side in (left, right):
            if len(side.path) != 1 or not isinstance(self._property(self.mapper, side.name, side.dotted), ColumnProperty):
                msg = "Field-to-field comparisons are limited to columns of the same model"
                raise TranslationError(msg, path=side.dotted, target=TARGET)
            columns.append(getattr(self.model, side.name))
        a, b = columns

        if not self.null_safe:
            return _SQL_OPS[op](a, b)
        if op == "eq":
            return a.is_not_distinct_from(b)
        if op == "ne":
            return a.is_distinct_from(b)
        return and_(a.is_not(None), b.is_not(None), _SQL_OPS[op](a, b))


def translate(
    query: QueryExpression[T] | Predicate[T],
    model: type[Any],
    *,
    null_safe: bool | None = None,
) -> ColumnElement[bool]:
    """
    Shortcut for `SQLAlchemyTranslator(model, null_safe=null_safe).translate(query)`.
    """
    return SQLAlchemyTranslator(model, null_safe=null_safe).translate(query)


def apply_predicate(
    stmt: Select[Any],
    model: type[Any],
    query: QueryExpression[T] | Predicate[T],
    *,
    null_safe: bool | None = None,
) -> Select[Any]:
    """
    Push `query` down into the WHERE clause of `stmt`.

    Examples:
        ```python
        stmt = apply_predicate(select(MovieRecord), MovieRecord, great & recent)
        movies = session.scalars(stmt).all()
        ```
    """
    return stmt.where(translate(query, model, null_safe=null_safe))
