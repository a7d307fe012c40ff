import logging

from .errs import (
    EvaluationError,
    ExpressionError,
    PredicateConstructionError,
    PredicateError,
    TranslationError,
)
from .expr import QueryExpression, Var, where
from .predicate import (
    Predicate,
    Rule,
    all_of,
    and_,
    any_of,
    expression_predicate,
    not_,
    or_,
    predicate,
    utcnow,
    where_predicate,
)
from .settings import QueryPredSettings, get_settings, override_settings
from .trace import Trace

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "EvaluationError",
    "ExpressionError",
    "Predicate",
    "PredicateConstructionError",
    "PredicateError",
    "QueryExpression",
    "QueryPredSettings",
    "Rule",
    "Trace",
    "TranslationError",
    "Var",
    "all_of",
    "and_",
    "any_of",
    "expression_predicate",
    "get_settings",
    "not_",
    "or_",
    "override_settings",
    "predicate",
    "utcnow",
    "where",
    "where_predicate",
]
