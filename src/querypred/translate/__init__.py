from .memory import InMemoryQueryEngine, run_query
from .sqla import SQLAlchemyTranslator, apply_predicate, translate

__all__ = [
    "InMemoryQueryEngine",
    "SQLAlchemyTranslator",
    "apply_predicate",
    "run_query",
    "translate",
]
