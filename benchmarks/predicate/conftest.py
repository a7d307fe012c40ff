from typing import assert_never

import pytest

from .utils import ExpressionFactory, OpaqueFactory


@pytest.fixture(params=["opaque", "expression"], ids=["Opaque", "Expression"])
def factory(request):
    match request.param:
        case "opaque":
            return OpaqueFactory()
        case "expression":
            return ExpressionFactory()
        case _:
            assert_never(request.param)  # ty:ignore[type-assertion-failure]


@pytest.fixture
def ctx():
    return {"age": 25, "active": True, "role": "admin"}
