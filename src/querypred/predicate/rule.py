from __future__ import annotations

import inspect
import logging
from abc import abstractmethod
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, ClassVar, TypeVar

from caseconverter import snakecase
from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError, field_validator, model_validator

from querypred.errs import PredicateConstructionError
from querypred.expr import QueryExpression, Var, where
from querypred.predicate.predicate import Predicate, Runner
from querypred.settings import get_settings

T_contra = TypeVar("T_contra", contravariant=True)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """
    Current time, timezone-aware. Use as a field default factory so "now" is captured once per rule.
    """
    return datetime.now(timezone.utc)


def _frozen(value: Any) -> Any:  # noqa: ANN401
    match value:
        case set() | frozenset():
            return frozenset(_frozen(v) for v in value)
        case list() | tuple():
            return tuple(_frozen(v) for v in value)
        case dict():
            return MappingProxyType({k: _frozen(v) for k, v in value.items()})
        case _:
            return value


class Rule(BaseModel, Predicate[T_contra]):
    """
    Base class for named, parameterised rules.

    Rule parameters are declared as pydantic fields and validated when the rule is constructed,
    so an invalid rule can never be evaluated or translated. The rule body is written once, as
    an expression over a parameter proxy, and serves both in-memory evaluation and translation.

    Field names `name` and `desc` are reserved for rule metadata. Collection parameters are stored
    frozen: sets become frozensets, lists become tuples and dicts become read-only mappings.

    Examples:
        ```python
        class RecentMovie(Rule[Movie]):
            \"\"\"Released within the recency window.\"\"\"

            window: timedelta = Field(gt=timedelta(0))
            now: datetime = Field(default_factory=utcnow)

            def expression(self, m: Var):
                return m.release_date > self.now - self.window


        recent = RecentMovie(window=timedelta(days=730))
        recent(movie)  # evaluate in memory
        recent.to_query_expression()  # translate
        ```
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True, validate_default=True)

    rule_name: ClassVar[str | None] = None

    _runners: dict[tuple[bool, bool], Runner] = PrivateAttr(default_factory=dict)
    _param: str = PrivateAttr(default_factory=lambda: get_settings().default_param)

    def __init__(self, /, **data: Any):  # noqa: ANN401
        try:
            super().__init__(**data)
        except ValidationError as e:
            name = type(self).default_name()
            logger.debug("Rejected parameters for rule %s: %s", name, e)
            raise PredicateConstructionError(name, e.errors(include_url=False, include_context=False)) from e

    @field_validator("*", mode="after")
    @classmethod
    def _freeze_collections(cls, v: Any) -> Any:  # noqa: ANN401
        return _frozen(v)

    @model_validator(mode="after")
    def _validate_params(self) -> Rule[T_contra]:
        self.validate_params()
        return self

    def validate_params(self) -> None:
        """
        Hook for preconditions spanning several parameters. Raise `ValueError` to reject them.
        """
        return

    @abstractmethod
    def expression(self, e: Var) -> Any:  # noqa: ANN401
        """
        Build the rule body over the entity proxy `e`.

        Returns:
            A boolean expression node, a bare field proxy (read as "is True") or a Python bool.
        """
        ...

    def __eq__(self, other: object) -> bool:
        # Compiled runners live in private state and do not take part in equality.
        if not isinstance(other, Rule):
            return NotImplemented
        return type(self) is type(other) and self.__dict__ == other.__dict__

    @classmethod
    def default_name(cls) -> str:
        return cls.rule_name or snakecase(cls.__name__)

    @property
    def name(self) -> str:
        return type(self).default_name()

    @property
    def desc(self) -> str | None:
        doc = inspect.getdoc(type(self))
        return doc if doc and type(self).__doc__ is not None else None

    def to_query_expression(self) -> QueryExpression[T_contra]:
        return where(self.expression, param=self._param)
