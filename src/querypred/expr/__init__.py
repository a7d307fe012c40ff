from .builder import Var, where
from .compiler import compile_expression
from .document import ExpressionDocument, from_document, to_document
from .nodes import (
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
    free_params,
    walk,
)
from .rewrite import ExpressionTransformer, ParameterRebinder, combine_and, combine_or, negate, rebind, render

__all__ = [
    "And",
    "BoolExpr",
    "Compare",
    "Constant",
    "Expr",
    "ExpressionDocument",
    "ExpressionTransformer",
    "FieldAccess",
    "Not",
    "Or",
    "Param",
    "ParameterRebinder",
    "QueryExpression",
    "Var",
    "combine_and",
    "combine_or",
    "compile_expression",
    "free_params",
    "from_document",
    "negate",
    "rebind",
    "render",
    "to_document",
    "walk",
    "where",
]
