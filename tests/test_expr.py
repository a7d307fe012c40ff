from __future__ import annotations

import json
import math
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from querypred import ExpressionError, QueryExpression, TranslationError, where
from querypred.expr import (
    And,
    Compare,
    Constant,
    FieldAccess,
    Not,
    Or,
    Param,
    combine_and,
    combine_or,
    compile_expression,
    free_params,
    negate,
    rebind,
    walk,
)

E = Param("e")
M = Param("m")


def field(*path: str, param: Param = E) -> FieldAccess:
    node: Param | FieldAccess = param
    for name in path:
        node = FieldAccess(node, name)
    return node  # ty:ignore[invalid-return-type]


class TestNodes:
    def test_nodes_compare_structurally(self):
        a = Compare("gt", field("rating"), Constant(4.0))
        b = Compare("gt", field("rating"), Constant(4.0))
        assert a == b
        assert hash(a) == hash(b)

    def test_unknown_operator_rejected(self):
        with pytest.raises(ExpressionError, match="Unknown comparison operator"):
            Compare("like", field("title"), Constant("x"))  # ty:ignore[invalid-argument-type]

    def test_in_requires_constant_collection(self):
        with pytest.raises(ExpressionError, match="'in'"):
            Compare("in", field("title"), Constant("abc"))
        with pytest.raises(ExpressionError, match="'in'"):
            Compare("in", field("title"), field("tags"))

    def test_compare_operands_must_be_fields_or_constants(self):
        inner = Compare("eq", field("a"), Constant(1))
        with pytest.raises(ExpressionError, match="fields or constants"):
            Compare("eq", inner, Constant(True))  # ty:ignore[invalid-argument-type]

    def test_and_or_need_two_boolean_operands(self):
        c = Compare("eq", field("a"), Constant(1))
        with pytest.raises(ExpressionError, match="at least two"):
            And((c,))
        with pytest.raises(ExpressionError, match="boolean"):
            Or((c, field("a")))  # ty:ignore[invalid-argument-type]
        with pytest.raises(ExpressionError, match="boolean"):
            Not(Constant(1))

    def test_param_must_be_identifier(self):
        with pytest.raises(ExpressionError):
            Param("not an identifier")

    def test_operators_flatten(self):
        a = Compare("eq", field("a"), Constant(1))
        b = Compare("eq", field("b"), Constant(2))
        c = Compare("eq", field("c"), Constant(3))

        assert (a & b) & c == a & (b & c) == And((a, b, c))
        assert (a | b) | c == Or((a, b, c))
        assert ~a == Not(a)

    def test_nodes_have_no_truth_value(self):
        a = Compare("eq", field("a"), Constant(1))
        with pytest.raises(ExpressionError, match="no truth value"):
            bool(a)

    def test_field_path(self):
        node = field("director", "name")
        assert node.path == ("director", "name")
        assert node.dotted == "director.name"
        assert node.root == E

    def test_walk_and_free_params(self):
        body = Compare("eq", field("a"), Constant(1)) & ~Compare("lt", field("b", param=M), field("c"))
        assert free_params(body) == {E, M}
        assert sum(isinstance(n, Compare) for n in walk(body)) == 2


class TestQueryExpression:
    def test_body_must_be_boolean(self):
        with pytest.raises(ExpressionError, match="must be boolean"):
            QueryExpression(E, field("a"))  # ty:ignore[invalid-argument-type]
        with pytest.raises(ExpressionError, match="must be boolean"):
            QueryExpression(E, Constant(1))

    def test_body_may_not_reference_other_params(self):
        with pytest.raises(ExpressionError, match="unbound parameter"):
            QueryExpression(E, Compare("eq", field("a", param=M), Constant(1)))

    def test_constant_body(self):
        always = QueryExpression(E, Constant(True))
        assert compile_expression(always)(object())

    def test_rebind_returns_new_tree(self):
        expr = where(lambda e: (e.rating > 4.0) & (e.director.name == "Nolan"))
        moved = expr.rebind(M)

        assert moved.param == M
        assert free_params(moved.body) == {M}
        assert free_params(expr.body) == {E}
        assert moved.rebind(E) == expr

    def test_rebind_keeps_untouched_nodes(self):
        body = Compare("eq", field("a"), Constant(1))
        assert rebind(body, M, Param("x")) is body

    def test_str(self):
        expr = where(lambda e: (e.rating > 4.0) & ~e.title.in_(["x"]))
        assert str(expr) == "e => (e.rating > 4.0 AND NOT e.title in ('x',))"


class TestBuilder:
    def test_comparisons(self):
        expr = where(lambda e: e.rating >= 4.0)
        assert expr.body == Compare("ge", field("rating"), Constant(4.0))

    def test_reflected_comparison(self):
        # `4.0 < e.rating` is dispatched to `e.rating > 4.0`.
        expr = where(lambda e: 4.0 < e.rating)
        assert expr.body == Compare("gt", field("rating"), Constant(4.0))

    def test_field_to_field(self):
        expr = where(lambda e: e.rating == e.previous_rating)
        assert expr.body == Compare("eq", field("rating"), field("previous_rating"))

    def test_membership(self):
        assert where(lambda e: e.id.in_([1, 2])).body == Compare("in", field("id"), Constant((1, 2)))
        assert where(lambda e: e.id.in_({1})).body == Compare("in", field("id"), Constant(frozenset({1})))
        assert where(lambda e: e.id.not_in([1])).body == Not(Compare("in", field("id"), Constant((1,))))

    def test_membership_rejects_strings(self):
        with pytest.raises(ExpressionError, match="not a string"):
            where(lambda e: e.code.in_("abc"))

    def test_null_checks(self):
        assert where(lambda e: e.rating.is_none()).body == Compare("eq", field("rating"), Constant(None))
        assert where(lambda e: e.rating.is_not_none()).body == Compare("ne", field("rating"), Constant(None))

    def test_bare_field_means_is_true(self):
        assert where(lambda e: e.active).body == Compare("eq", field("active"), Constant(True))

    def test_bool_result_becomes_constant(self):
        assert where(lambda e: True).body == Constant(True)

    def test_item_access_escapes_method_names(self):
        assert where(lambda e: e["in_"] == 1).body == Compare("eq", field("in_"), Constant(1))

    def test_python_logic_operators_are_rejected(self):
        with pytest.raises(ExpressionError, match="no truth value"):
            where(lambda e: e.a > 1 and e.b > 2)

    def test_parameter_itself_is_not_comparable(self):
        with pytest.raises(ExpressionError, match="compare one of its fields"):
            where(lambda e: e == 1)

    def test_non_boolean_result_rejected(self):
        with pytest.raises(ExpressionError, match="must return a boolean"):
            where(lambda e: 1)

    def test_custom_param(self):
        assert where(lambda m: m.a == 1, param="m").param == M


class TestCombinators:
    def test_operands_are_rewritten_onto_one_parameter(self):
        a = where(lambda m: m.rating > 4.0, param="m")
        b = where(lambda x: x.review_count > 100, param="x")

        combined = combine_and(a, b)

        assert combined.param == M
        assert free_params(combined.body) == {M}
        assert combined.body == And(
            (
                Compare("gt", field("rating", param=M), Constant(4.0)),
                Compare("gt", field("review_count", param=M), Constant(100)),
            ),
        )

    def test_operands_are_not_mutated(self):
        a = where(lambda m: m.rating > 4.0, param="m")
        b = where(lambda x: x.review_count > 100, param="x")
        before = (a.body, b.body)

        combine_or(a, b)
        negate(a)

        assert (a.body, b.body) == before

    def test_associativity_is_structural(self):
        a = where(lambda e: e.a == 1)
        b = where(lambda e: e.b == 2)
        c = where(lambda e: e.c == 3)
        assert combine_and(combine_and(a, b), c) == combine_and(a, combine_and(b, c))
        assert combine_or(combine_or(a, b), c) == combine_or(a, combine_or(b, c))

    def test_negate(self):
        a = where(lambda e: e.a == 1)
        assert negate(a).body == Not(a.body)

    def test_requires_an_operand(self):
        with pytest.raises(ExpressionError):
            combine_and()


class TestCompiledEvaluation:
    def test_missing_data_is_none(self):
        rated = compile_expression(where(lambda e: e.rating > 4.0))
        assert rated({"rating": 4.5})
        assert not rated({})
        assert not rated({"rating": None})
        assert not rated(object())

    def test_nested_missing_data(self):
        nolan = compile_expression(where(lambda e: e.director.name == "Nolan"))
        assert nolan({"director": {"name": "Nolan"}})
        assert not nolan({"director": None})
        assert not nolan({})

    def test_two_valued_null_equality(self):
        unrated = compile_expression(where(lambda e: e.rating.is_none()))
        other = compile_expression(where(lambda e: e.rating != 3))
        assert unrated({"rating": None})
        assert other({"rating": None})
        assert not other({"rating": 3})

    def test_membership_with_none(self):
        tagged = compile_expression(where(lambda e: e.genre.in_(["noir", "drama"])))
        assert tagged({"genre": "noir"})
        assert not tagged({"genre": None})

    def test_incomparable_values(self):
        from querypred import EvaluationError

        rated = compile_expression(where(lambda e: e.rating > 4.0))
        with pytest.raises(EvaluationError, match="Cannot compare") as exc:
            rated({"rating": "high"})
        assert exc.value.to_dict() == {"error": "EVALUATION_ERROR", "message": str(exc.value)}

    def test_non_literal_constants(self):
        cutoff = datetime(2020, 1, 1, tzinfo=timezone.utc)
        after = compile_expression(where(lambda e: e.released > cutoff))
        assert after({"released": datetime(2021, 1, 1, tzinfo=timezone.utc)})
        assert not after({"released": cutoff})


class TestDocument:
    def test_json_round_trip(self):
        expr = where(
            lambda e: (e.rating > 4.0)
            & (e.released >= date(2020, 1, 1))
            & e.id.in_({UUID(int=1), UUID(int=2)})
            & ~(e.director.name == None)  # noqa: E711
            & (e.price <= Decimal("9.99"))
            & (e.tags.in_(["a", 1, None])),
        )
        assert QueryExpression.from_json(expr.to_json()) == expr

    def test_document_shape(self):
        expr = where(lambda e: e.director.name == "Nolan")
        doc = json.loads(expr.to_json())

        assert doc["param"] == "e"
        assert doc["body"]["node_type"] == "compare"
        assert doc["body"]["left"] == {
            "node_type": "field",
            "target": {"node_type": "field", "target": {"node_type": "param", "name": "e"}, "name": "director"},
            "name": "name",
        }
        assert doc["body"]["right"] == {"node_type": "constant", "value_type": "str", "value": "Nolan"}

    def test_equal_sets_give_equal_documents(self):
        a = where(lambda e: e.id.in_({3, 1, 2}))
        b = where(lambda e: e.id.in_({2, 3, 1}))
        assert a.to_json() == b.to_json()

    def test_unsupported_constant(self):
        expr = where(lambda e: e.payload == object())
        with pytest.raises(TranslationError, match="no document form") as exc:
            expr.to_json()
        assert exc.value.target == "document"

    def test_malformed_document(self):
        bad = {
            "param": "e",
            "body": {
                "node_type": "compare",
                "op": "eq",
                "left": {"node_type": "field", "target": {"node_type": "param", "name": "x"}, "name": "a"},
                "right": {"node_type": "constant", "value_type": "int", "value": 1},
            },
        }
        with pytest.raises(ExpressionError, match="unbound parameter"):
            QueryExpression.from_json(json.dumps(bad))

    def test_non_finite_floats_survive_the_round_trip(self):
        expr = where(lambda e: (e.rating < float("inf")) & (e.rating > float("-inf")))
        restored = QueryExpression.from_json(expr.to_json())

        assert restored == expr
        assert json.loads(expr.to_json())["body"]["operands"][0]["right"]["value"] == "inf"
        assert compile_expression(restored)({"rating": 3.0})

        nan = QueryExpression.from_json(where(lambda e: e.rating == float("nan")).to_json())
        assert math.isnan(nan.body.right.value)  # ty:ignore[unresolved-attribute]

    @pytest.mark.parametrize(
        ("value_type", "value"),
        [
            ("date", 5),
            ("uuid", "zz"),
            ("int", "abc"),
            ("int", True),
            ("float", "fast"),
            ("decimal", "ten"),
            ("datetime", "yesterday"),
            ("null", 1),
            ("tuple", [1, 2]),
        ],
    )
    def test_constant_that_does_not_fit_its_type(self, value_type, value):
        bad = {
            "param": "e",
            "body": {
                "node_type": "compare",
                "op": "eq",
                "left": {"node_type": "field", "target": {"node_type": "param", "name": "e"}, "name": "a"},
                "right": {"node_type": "constant", "value_type": value_type, "value": value},
            },
        }
        with pytest.raises(ExpressionError, match="does not fit its value type") as exc:
            QueryExpression.from_json(json.dumps(bad))
        assert exc.value.to_dict()["error"] == "EXPRESSION_ERROR"
