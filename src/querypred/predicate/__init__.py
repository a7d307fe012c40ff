from .predicate import (
    Predicate,
    all_of,
    and_,
    any_of,
    expression_predicate,
    is_predicate,
    not_,
    or_,
    predicate,
    where_predicate,
)
from .rule import Rule, utcnow

__all__ = [
    "Predicate",
    "Rule",
    "all_of",
    "and_",
    "any_of",
    "expression_predicate",
    "is_predicate",
    "not_",
    "or_",
    "predicate",
    "utcnow",
    "where_predicate",
]
