from __future__ import annotations

import pytest

from scipfa.exceptions import ExpressionShapeError, UnknownFunctionError
from scipfa.pfa import expressions as ex
from scipfa.pfa import types


def test_call_encoding() -> None:
    expr = ex.call("+", "input", 10)
    assert expr.to_json() == {"+": ["input", 10]}


def test_literal_encodings() -> None:
    assert ex.double(2).to_json() == 2.0
    assert ex.string("A").to_json() == {"string": "A"}
    assert ex.Literal(types.LONG, 5).to_json() == {"long": 5}
    record = types.avro_record("P", [("x", "double")])
    assert ex.Literal(record, {"x": 1.0}).to_json() == {
        "type": {
            "type": "record",
            "name": "P",
            "fields": [{"name": "x", "type": "double"}],
        },
        "value": {"x": 1.0},
    }


def test_literal_must_conform() -> None:
    with pytest.raises(ExpressionShapeError, match="does not conform"):
        ex.Literal(types.INT, "seven")


def test_unknown_function_is_rejected() -> None:
    with pytest.raises(UnknownFunctionError, match="m.tanhh"):
        ex.call("m.tanhh", 1.0)


def test_call_arity_is_checked() -> None:
    with pytest.raises(ExpressionShapeError, match="takes 2 argument"):
        ex.call("+", 1.0)
    with pytest.raises(ExpressionShapeError):
        ex.call("m.exp", 1.0, 2.0)


def test_statements_cannot_be_values() -> None:
    let = ex.Let({"x": 1.0})
    with pytest.raises(ExpressionShapeError, match="does not produce a value"):
        ex.call("+", let, 1.0)
    with pytest.raises(ExpressionShapeError):
        ex.call("m.exp", ex.If(ex.call(">", "input", 0.0), 1.0))
    with pytest.raises(ExpressionShapeError, match="at least one variable"):
        ex.Let({})


def test_if_and_let_encoding() -> None:
    expr = ex.If(ex.call(">", "p", 0.5), ex.string("yes"), ex.string("no"))
    assert expr.to_json() == {
        "if": {">": ["p", 0.5]},
        "then": [{"string": "yes"}],
        "else": [{"string": "no"}],
    }
    assert ex.Let({"p": 0.25}).to_json() == {"let": {"p": 0.25}}


def test_storage_references() -> None:
    assert ex.CellRef("model").to_json() == {"cell": "model"}
    assert ex.PoolRef("models", ["A"]).to_json() == {
        "pool": "models",
        "path": [{"string": "A"}],
    }
    with pytest.raises(ExpressionShapeError):
        ex.PoolRef("models", [])


def test_split_test_builds_tree_node() -> None:
    node = ex.split_test(ex.input_field("x"), 1.5, 10.0, 20.0, "<=")
    assert node.to_json() == {
        "if": {"<=": [{"attr": "input", "path": [{"string": "x"}]}, 1.5]},
        "then": [10.0],
        "else": [20.0],
    }
    with pytest.raises(ExpressionShapeError):
        ex.split_test(ex.input_field("x"), 1.5, 10.0, 20.0, ">")


def test_weighted_sum() -> None:
    expr = ex.weighted_sum(["a", "b"], [2.0, 3.0], offset=1.0)
    assert expr.to_json() == {
        "+": [{"+": [1.0, {"*": [2.0, "a"]}]}, {"*": [3.0, "b"]}]
    }
    with pytest.raises(ExpressionShapeError):
        ex.weighted_sum(["a"], [1.0, 2.0])


def test_expression_json_roundtrip() -> None:
    expr = ex.Cond(
        [(ex.call("<", "input", 0.0), ex.string("neg"))],
        ex.MapLit({"a": ex.double(1.0)}, types.DOUBLE),
    )
    blocks = [
        ex.Let({"v": ex.ArrayLit([1.0, 2.0], types.DOUBLE)}),
        ex.call("a.sum", "v"),
        expr,
    ]
    encoded = [el.to_json() for el in blocks]
    assert [el.to_json() for el in ex.expressions_from_json(encoded)] == encoded
