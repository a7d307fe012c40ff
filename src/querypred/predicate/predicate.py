from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Generic,
    Literal,
    TypeGuard,
    TypeVar,
    final,
    overload,
)

from querypred.errs import TranslationError
from querypred.expr import QueryExpression, Var, combine_and, combine_or, negate, where
from querypred.settings import get_settings
from querypred.types import PredicateNodeType

if TYPE_CHECKING:
    from querypred.trace import Trace

T_contra = TypeVar("T_contra", contravariant=True)

PredicateFn = Callable[[T_contra], bool]
Runner = Callable[[Any], "bool | Trace"]


class Predicate(Generic[T_contra], ABC):
    """
    An immutable boolean rule over entities of type `T_contra`.

    A predicate has two execution strategies that must agree for every entity:
    direct evaluation (`evaluate` / calling it) and translation into a `QueryExpression`
    that a query engine can push down to a data store.

    Concrete predicates expose `name` and `desc` metadata and keep compiled evaluators in a
    `_runners` mapping; neither takes part in equality.
    """

    node_type: ClassVar[PredicateNodeType] = "leaf"

    @abstractmethod
    def to_query_expression(self) -> QueryExpression[T_contra]:
        """
        Translate the predicate into its query expression form.

        Raises:
            TranslationError: If some part of the predicate has no expression form.
        """
        ...

    def evaluate(self, entity: T_contra) -> bool:
        """
        Apply the rule to an in-memory entity.
        """
        return self(entity)

    @overload
    def __call__(
        self,
        ctx: T_contra,
        /,
        *,
        trace: Literal[True],
        short_circuit: bool = True,
    ) -> Trace: ...

    @overload
    def __call__(
        self,
        ctx: T_contra,
        /,
        *,
        trace: Literal[False] = False,
        short_circuit: bool = True,
    ) -> bool: ...

    def __call__(
        self,
        ctx: T_contra,
        /,
        *,
        trace: bool = False,
        short_circuit: bool = True,
    ) -> bool | Trace:
        """
        Evaluate the predicate.

        Args:
            ctx: The entity to evaluate.
            trace: Return a `Trace` tree recording every rule's result instead of a bool.
            short_circuit: In trace mode, stop evaluating AND/OR children once the result is known.
        """
        from querypred.predicate.compiler import Compiler

        cache_key = (trace, short_circuit or not trace)
        runner = self._runners.get(cache_key)
        if runner is None:
            runner = Compiler(trace=trace, short_circuit=short_circuit).compile(self)
            if get_settings().memoize:
                self._runners[cache_key] = runner
        result = runner(ctx)
        return result if trace else bool(result)

    @property
    def label(self) -> str:
        """
        Name used in traces and error messages.
        """
        return self.name or self.desc or type(self).__name__

    def __and__(self, other: Predicate[T_contra]) -> Predicate[T_contra]:
        """
        Combine this predicate with another using logical AND.
        """
        if not is_predicate(other):
            return NotImplemented
        return and_(self, other)

    def __or__(self, other: Predicate[T_contra]) -> Predicate[T_contra]:
        if not is_predicate(other):
            return NotImplemented
        return or_(self, other)

    def __invert__(self) -> Predicate[T_contra]:
        return not_(self)


def _runner_cache() -> Any:  # noqa: ANN401
    return field(default_factory=dict, init=False, repr=False, hash=False, compare=False)


@dataclass(frozen=True, kw_only=True, slots=True)
@final
class _CallablePredicate(Predicate[T_contra]):
    """
    Leaf wrapping an opaque Python callable. Evaluable, but not translatable.
    """

    fn: PredicateFn[T_contra]
    name: str | None = None
    desc: str | None = None
    _runners: dict[tuple[bool, bool], Runner] = _runner_cache()

    def to_query_expression(self) -> QueryExpression[T_contra]:
        msg = f"Predicate '{self.label}' wraps a Python callable and has no query expression form"
        raise TranslationError(msg, path=self.label)


@dataclass(frozen=True, kw_only=True, slots=True)
@final
class _ExpressionPredicate(Predicate[T_contra]):
    """
    Leaf defined directly by a query expression.
    """

    expression: QueryExpression[T_contra]
    name: str | None = None
    desc: str | None = None
    _runners: dict[tuple[bool, bool], Runner] = _runner_cache()

    def to_query_expression(self) -> QueryExpression[T_contra]:
        return self.expression


@dataclass(frozen=True, kw_only=True, slots=True)
@final
class _PredicateAnd(Predicate[T_contra]):
    """
    All children must hold.
    """

    node_type: ClassVar[PredicateNodeType] = "and"
    children: tuple[Predicate[T_contra], ...]
    name: str | None = None
    desc: str | None = None
    _runners: dict[tuple[bool, bool], Runner] = _runner_cache()

    def to_query_expression(self) -> QueryExpression[T_contra]:
        return combine_and(*(child.to_query_expression() for child in self.children))


@dataclass(frozen=True, kw_only=True, slots=True)
@final
class _PredicateOr(Predicate[T_contra]):
    """
    At least one child must hold.
    """

    node_type: ClassVar[PredicateNodeType] = "or"
    children: tuple[Predicate[T_contra], ...]
    name: str | None = None
    desc: str | None = None
    _runners: dict[tuple[bool, bool], Runner] = _runner_cache()

    def to_query_expression(self) -> QueryExpression[T_contra]:
        return combine_or(*(child.to_query_expression() for child in self.children))


@dataclass(frozen=True, kw_only=True, slots=True)
@final
class _PredicateNot(Predicate[T_contra]):
    """
    The operand must not hold.
    """

    node_type: ClassVar[PredicateNodeType] = "not"
    op: Predicate[T_contra]
    name: str | None = None
    desc: str | None = None
    _runners: dict[tuple[bool, bool], Runner] = _runner_cache()

    def to_query_expression(self) -> QueryExpression[T_contra]:
        return negate(self.op.to_query_expression())


def is_predicate(p: Any) -> TypeGuard[Predicate]:  # noqa: ANN401
    """
    Check if the given object is a valid predicate.
    """

    return isinstance(p, Predicate)


def _ensure_predicate(p: Any) -> None:  # noqa: ANN401
    if not is_predicate(p):
        msg = f"Expected a Predicate, got {type(p).__name__}"
        raise TypeError(msg)


def _flatten(cls: type[_PredicateAnd | _PredicateOr], operands: Iterable[Predicate[T_contra]]) -> tuple[Predicate, ...]:
    flat: list[Predicate[T_contra]] = []
    for operand in operands:
        _ensure_predicate(operand)
        # Named composites are kept whole so they still show up in traces.
        if isinstance(operand, cls) and operand.name is None:
            flat.extend(operand.children)
        else:
            flat.append(operand)
    return tuple(flat)


def predicate(fn: PredicateFn[T_contra], *, name: str | None = None, desc: str | None = None) -> Predicate[T_contra]:
    """
    Create an opaque Predicate from a Python function.

    The result evaluates in memory only; translating it raises `TranslationError`.
    """
    fn_name = getattr(fn, "__name__", None)
    return _CallablePredicate(
        fn=fn,
        name=name or (fn_name if fn_name != "<lambda>" else None),
        desc=desc or fn.__doc__,
    )


def expression_predicate(
    expression: QueryExpression[T_contra],
    *,
    name: str | None = None,
    desc: str | None = None,
) -> Predicate[T_contra]:
    """
    Create a Predicate from a ready query expression.
    """
    if not isinstance(expression, QueryExpression):
        msg = f"Expected a QueryExpression, got {type(expression).__name__}"
        raise TypeError(msg)
    return _ExpressionPredicate(expression=expression, name=name, desc=desc)


def where_predicate(
    builder: Callable[[Var], Any],
    *,
    name: str | None = None,
    desc: str | None = None,
    param: str | None = None,
) -> Predicate[Any]:
    """
    Create a Predicate from an expression builder.

    Examples:
        ```python
        adult = where_predicate(lambda u: u.age >= 18, name="adult")
        assert adult({"age": 21})
        ```
    """
    return expression_predicate(where(builder, param=param), name=name, desc=desc)


def and_(a: Predicate[T_contra], b: Predicate[T_contra]) -> Predicate[T_contra]:
    """
    Both `a` and `b` must hold.
    """
    return _PredicateAnd(children=_flatten(_PredicateAnd, (a, b)))


def or_(a: Predicate[T_contra], b: Predicate[T_contra]) -> Predicate[T_contra]:
    """
    At least one of `a` and `b` must hold.
    """
    return _PredicateOr(children=_flatten(_PredicateOr, (a, b)))


def not_(a: Predicate[T_contra]) -> Predicate[T_contra]:
    """
    `a` must not hold.
    """
    _ensure_predicate(a)
    return _PredicateNot(op=a)


def all_of(
    predicates: Iterable[Predicate[T_contra]],
    *,
    name: str | None = None,
    desc: str | None = None,
) -> Predicate[T_contra]:
    """
    Every predicate must hold.

    Raises:
        ValueError: If no predicate is given.
    """
    children = _flatten(_PredicateAnd, predicates)
    if not children:
        msg = "all_of() requires at least one predicate"
        raise ValueError(msg)
    if len(children) == 1 and name is None and desc is None:
        return children[0]
    return _PredicateAnd(children=children, name=name, desc=desc)


def any_of(
    predicates: Iterable[Predicate[T_contra]],
    *,
    name: str | None = None,
    desc: str | None = None,
) -> Predicate[T_contra]:
    """
    At least one predicate must hold.

    Raises:
        ValueError: If no predicate is given.
    """
    children = _flatten(_PredicateOr, predicates)
    if not children:
        msg = "any_of() requires at least one predicate"
        raise ValueError(msg)
    if len(children) == 1 and name is None and desc is None:
        return children[0]
    return _PredicateOr(children=children, name=name, desc=desc)
