from typing import Literal, TypeAlias

LogicBinOp: TypeAlias = Literal["and", "or"]
LogicOp: TypeAlias = Literal["and", "or", "not"]
PredicateNodeType: TypeAlias = Literal["leaf", "and", "or", "not"]
CompareOp: TypeAlias = Literal["eq", "ne", "lt", "le", "gt", "ge", "in"]
