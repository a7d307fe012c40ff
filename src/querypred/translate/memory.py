from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

from querypred.expr import QueryExpression, compile_expression

if TYPE_CHECKING:
    from querypred.predicate import Predicate

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _as_expression(query: QueryExpression[T] | Predicate[T]) -> QueryExpression[T]:
    if isinstance(query, QueryExpression):
        return query
    # Predicates go through their translated form, exactly as a remote engine would see them.
    return query.to_query_expression()


def run_query(query: QueryExpression[T] | Predicate[T], items: Iterable[T]) -> list[T]:
    """
    Filter `items` with the query expression form of `query`.

    Raises:
        TranslationError: If `query` is a predicate without an expression form.
    """
    return InMemoryQueryEngine().filter(query, items)


class InMemoryQueryEngine:
    """
    Query engine over in-memory collections.

    It only ever executes query expressions; a predicate is translated first, so an opaque
    predicate fails here the same way it would against a database.
    """

    def compile(self, query: QueryExpression[T] | Predicate[T]) -> Callable[[T], bool]:
        expression = _as_expression(query)
        logger.debug("Compiling in-memory query %s", expression)
        return compile_expression(expression)

    def filter(self, query: QueryExpression[T] | Predicate[T], items: Iterable[T]) -> list[T]:
        matches = self.compile(query)
        return [item for item in items if matches(item)]

    def first(self, query: QueryExpression[T] | Predicate[T], items: Iterable[T]) -> T | None:
        matches = self.compile(query)
        return next((item for item in items if matches(item)), None)

    def count(self, query: QueryExpression[T] | Predicate[T], items: Iterable[Any]) -> int:
        matches = self.compile(query)
        return sum(1 for item in items if matches(item))
