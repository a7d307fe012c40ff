"""
Portable document form of query expressions.

The document mirrors the expression tree node for node as a discriminated union of pydantic
models, so it can be emitted as JSON Schema, stored, sent to another process and loaded back
into an equal `QueryExpression`.
"""

from __future__ import annotations

import math
from abc import ABC
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Literal, assert_never
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

from querypred.errs import ExpressionError, TranslationError
from querypred.expr.nodes import And, Compare, Constant, Expr, FieldAccess, Not, Or, Param, QueryExpression
from querypred.types import CompareOp

ValueType = Literal["null", "bool", "int", "float", "str", "decimal", "uuid", "datetime", "date", "time", "tuple", "set"]

# JSON has no inf or nan; non-finite floats travel as these strings.
_NON_FINITE = frozenset({"inf", "-inf", "nan"})

_SCALAR_TYPES: dict[str, tuple[type, ...]] = {
    "bool": (bool,),
    "int": (int,),
    "float": (int, float),
    "str": (str,),
    "decimal": (str,),
    "uuid": (str,),
    "datetime": (str,),
    "date": (str,),
    "time": (str,),
}


class BaseExprNode(BaseModel, ABC):
    """
    Base class for all nodes of the document tree.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)


class ParamNode(BaseExprNode):
    """
    The lambda parameter.
    """

    model_config = ConfigDict(title="ParamNode")
    node_type: Literal["param"] = Field("param", description="Reference to the lambda parameter")
    name: str = Field(..., description="Parameter name")


class FieldNode(BaseExprNode):
    """
    Attribute access on the parameter or on another field.
    """

    model_config = ConfigDict(title="FieldNode")
    node_type: Literal["field"] = Field("field", description="Field access")
    target: Annotated[ParamNode | FieldNode, Field(discriminator="node_type")]
    name: str = Field(..., description="Field name")


class ConstantNode(BaseExprNode):
    """
    A literal value, tagged with its type so it can be restored exactly.
    """

    model_config = ConfigDict(title="ConstantNode")
    node_type: Literal["constant"] = Field("constant", description="Literal value")
    value_type: ValueType = Field(..., description="Type tag used to restore the value")
    value: Any = Field(None, description="JSON-compatible value; collections hold nested constants")

    @field_validator("value", mode="after")
    @classmethod
    def _parse_items(cls, v: Any) -> Any:  # noqa: ANN401
        if isinstance(v, list):
            return [ConstantNode.model_validate(item) if isinstance(item, dict) else item for item in v]
        return v


class CompareNode(BaseExprNode):
    """
    Binary comparison.
    """

    model_config = ConfigDict(title="CompareNode")
    node_type: Literal["compare"] = Field("compare", description="Comparison")
    op: CompareOp = Field(..., description="Comparison operator")
    left: ExprNode
    right: ExprNode


class AndNode(BaseExprNode):
    """
    All operands must hold.
    """

    model_config = ConfigDict(title="AndNode")
    node_type: Literal["and"] = Field("and", description="Conjunction")
    operands: list[ExprNode] = Field(..., min_length=2, description="All operands must hold")


class OrNode(BaseExprNode):
    """
    Any operand must hold.
    """

    model_config = ConfigDict(title="OrNode")
    node_type: Literal["or"] = Field("or", description="Disjunction")
    operands: list[ExprNode] = Field(..., min_length=2, description="Any operand must hold")


class NotNode(BaseExprNode):
    """
    The operand must not hold.
    """

    model_config = ConfigDict(title="NotNode")
    node_type: Literal["not"] = Field("not", description="Negation")
    operand: ExprNode


class ExprNode(RootModel):
    """
    Any node of the document tree.
    """

    model_config = ConfigDict(title="ExprNode")

    root: Annotated[
        ParamNode | FieldNode | ConstantNode | CompareNode | AndNode | OrNode | NotNode,
        Field(discriminator="node_type"),
    ]


class ExpressionDocument(BaseModel):
    """
    A complete single-parameter query expression.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, title="QueryExpression")

    param: str = Field(..., description="Name of the lambda parameter")
    body: ExprNode


FieldNode.model_rebuild()
CompareNode.model_rebuild()
AndNode.model_rebuild()
OrNode.model_rebuild()
NotNode.model_rebuild()
ExprNode.model_rebuild()
ExpressionDocument.model_rebuild()


def _encode_constant(value: Any) -> ConstantNode:  # noqa: ANN401, C901, PLR0911
    # bool before int, datetime before date: both are subclasses.
    if value is None:
        return ConstantNode(value_type="null", value=None)
    if isinstance(value, bool):
        return ConstantNode(value_type="bool", value=value)
    if isinstance(value, int):
        return ConstantNode(value_type="int", value=int(value))
    if isinstance(value, float):
        return ConstantNode(value_type="float", value=value if math.isfinite(value) else str(value))
    if isinstance(value, str):
        return ConstantNode(value_type="str", value=str(value))
    if isinstance(value, Decimal):
        return ConstantNode(value_type="decimal", value=str(value))
    if isinstance(value, UUID):
        return ConstantNode(value_type="uuid", value=str(value))
    if isinstance(value, datetime):
        return ConstantNode(value_type="datetime", value=value.isoformat())
    if isinstance(value, date):
        return ConstantNode(value_type="date", value=value.isoformat())
    if isinstance(value, time):
        return ConstantNode(value_type="time", value=value.isoformat())
    if isinstance(value, tuple):
        return ConstantNode(value_type="tuple", value=[_encode_constant(v) for v in value])
    if isinstance(value, frozenset):
        items = [_encode_constant(v) for v in value]
        # Sets have no order; sort the encoded items so equal sets give equal documents.
        items.sort(key=lambda node: node.model_dump_json())
        return ConstantNode(value_type="set", value=items)
    msg = f"Constant of type {type(value).__name__} has no document form"
    raise TranslationError(msg, target="document")


def _decode_constant(node: ConstantNode) -> Any:  # noqa: ANN401
    try:
        return _decode_value(node)
    except (TypeError, ValueError, InvalidOperation) as e:
        msg = f"Constant {node.value!r} does not fit its value type '{node.value_type}'"
        raise ExpressionError(msg) from e


def _decode_value(node: ConstantNode) -> Any:  # noqa: ANN401, C901, PLR0911
    value = node.value
    if node.value_type == "float" and isinstance(value, str) and value in _NON_FINITE:
        return float(value)

    expected = _SCALAR_TYPES.get(node.value_type)
    if expected is not None and (
        not isinstance(value, expected) or (isinstance(value, bool) and bool not in expected)
    ):
        msg = f"expected {' or '.join(t.__name__ for t in expected)}, got {type(value).__name__}"
        raise TypeError(msg)
    if node.value_type in ("tuple", "set") and not (
        isinstance(value, list) and all(isinstance(item, ConstantNode) for item in value)
    ):
        msg = "collection constants hold a list of constant nodes"
        raise TypeError(msg)

    match node.value_type:
        case "null":
            if value is not None:
                msg = "null constants carry no value"
                raise ValueError(msg)
            return None
        case "float":
            return float(value)
        case "bool" | "int" | "str":
            return value
        case "decimal":
            return Decimal(value)
        case "uuid":
            return UUID(value)
        case "datetime":
            return datetime.fromisoformat(value)
        case "date":
            return date.fromisoformat(value)
        case "time":
            return time.fromisoformat(value)
        case "tuple":
            return tuple(_decode_constant(item) for item in value)
        case "set":
            return frozenset(_decode_constant(item) for item in value)
        case _:
            assert_never(node.value_type)


def _to_node(node: Expr) -> ExprNode:
    match node:
        case Param(name=name):
            return ExprNode(ParamNode(name=name))
        case FieldAccess():
            return ExprNode(_to_field(node))
        case Constant(value=value):
            return ExprNode(_encode_constant(value))
        case Compare(op=op, left=left, right=right):
            return ExprNode(CompareNode(op=op, left=_to_node(left), right=_to_node(right)))
        case And(operands=operands):
            return ExprNode(AndNode(operands=[_to_node(o) for o in operands]))
        case Or(operands=operands):
            return ExprNode(OrNode(operands=[_to_node(o) for o in operands]))
        case Not(operand=operand):
            return ExprNode(NotNode(operand=_to_node(operand)))
        case _:
            msg = f"Unknown expression node: {type(node).__name__}"
            raise ExpressionError(msg)


def _to_field(node: FieldAccess) -> FieldNode:
    target = ParamNode(name=node.target.name) if isinstance(node.target, Param) else _to_field(node.target)
    return FieldNode(target=target, name=node.name)


def _from_node(node: ExprNode | BaseExprNode) -> Any:  # noqa: ANN401
    inner = node.root if isinstance(node, ExprNode) else node

    match inner:
        case ParamNode(name=name):
            return Param(name)
        case FieldNode(target=target, name=name):
            return FieldAccess(_from_node(target), name)
        case ConstantNode():
            return Constant(_decode_constant(inner))
        case CompareNode(op=op, left=left, right=right):
            return Compare(op, _from_node(left), _from_node(right))
        case AndNode(operands=operands):
            return And(tuple(_from_node(o) for o in operands))
        case OrNode(operands=operands):
            return Or(tuple(_from_node(o) for o in operands))
        case NotNode(operand=operand):
            return Not(_from_node(operand))
        case _:
            msg = f"Unknown document node: {type(inner).__name__}"
            raise ExpressionError(msg)


def to_document(expression: QueryExpression[Any]) -> ExpressionDocument:
    """
    Convert a query expression into its document form.

    Raises:
        TranslationError: If a constant has no document form.
    """
    return ExpressionDocument(param=expression.param.name, body=_to_node(expression.body))


def from_document(document: ExpressionDocument) -> QueryExpression[Any]:
    """
    Load a query expression from its document form.

    Raises:
        ExpressionError: If the document describes a malformed expression.
    """
    return QueryExpression(Param(document.param), _from_node(document.body))
