from __future__ import annotations

from typing import Any


class PredicateError(Exception):
    """Base querypred exception."""

    code: str = "PREDICATE_ERROR"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": str(self),
        }


class PredicateConstructionError(PredicateError):
    """
    Raised when a rule is constructed with parameters that violate its preconditions.
    """

    code = "CONSTRUCTION_ERROR"

    def __init__(self, rule_name: str, errors: list[dict[str, Any]]):
        """
        Args:
            rule_name: name of the rule that failed to construct.
            errors: validation errors, in the shape produced by pydantic's `ValidationError.errors()`.
        """
        self.rule_name = rule_name
        self.errors = errors

        details = "; ".join(f"{'.'.join(map(str, e.get('loc', ()))) or '<rule>'}: {e.get('msg')}" for e in errors)
        super().__init__(f"Invalid parameters for rule '{rule_name}': {details}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "rule": self.rule_name,
            "errors": self.errors,
        }


class ExpressionError(PredicateError):
    """
    Raised when a query expression tree is malformed.
    """

    code = "EXPRESSION_ERROR"


class TranslationError(PredicateError):
    """
    Raised when a predicate cannot be represented by the target query engine.

    Translation never degrades to in-memory evaluation; callers that want a fallback must
    catch this error and evaluate the predicate themselves.
    """

    code = "TRANSLATION_ERROR"

    def __init__(self, reason: str, *, path: str | None = None, target: str | None = None):
        self.reason = reason
        self.path = path
        self.target = target

        msg = reason
        if target:
            msg = f"[{target}] {msg}"
        if path:
            msg = f"{msg} (at '{path}')"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "reason": self.reason,
            "path": self.path,
            "target": self.target,
        }


class EvaluationError(PredicateError):
    """
    Error raised when a predicate evaluation fails.
    """

    code = "EVALUATION_ERROR"
