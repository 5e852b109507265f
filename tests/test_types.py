from __future__ import annotations

import pandas as pd
import pytest

from scipfa.exceptions import TypeDefinitionError
from scipfa.pfa import types


def test_record_equality_is_structural_and_ordered() -> None:
    first = types.avro_record("Input", [("x", "double"), ("y", types.STRING)])
    same = types.avro_record("Input", {"x": types.DOUBLE, "y": "string"})
    swapped = types.avro_record("Input", [("y", "string"), ("x", "double")])
    assert first == same
    assert hash(first) == hash(same)
    assert first != swapped


def test_record_rejects_duplicate_fields() -> None:
    with pytest.raises(TypeDefinitionError, match="Duplicate field name 'x'"):
        types.avro_record("Input", [("x", "double"), ("x", "int")])


@pytest.mark.parametrize("symbols", [[], ["A", "A"], ["not a symbol"]])
def test_enum_rejects_bad_symbols(symbols: list[str]) -> None:
    with pytest.raises(TypeDefinitionError):
        types.avro_enum("Color", symbols)


def test_union_rejects_repeated_tags() -> None:
    with pytest.raises(TypeDefinitionError, match="unique tags"):
        types.avro_union("double", "double")
    with pytest.raises(TypeDefinitionError):
        types.avro_union(types.avro_union("null", "int"))


def test_fixed_and_primitive_validation() -> None:
    with pytest.raises(TypeDefinitionError):
        types.avro_fixed("Hash", 0)
    with pytest.raises(TypeDefinitionError):
        types.avro_primitive("decimal")


def test_named_types_written_once() -> None:
    record = types.avro_record("Point", [("x", "double")])
    pair = types.avro_record("Pair", [("a", record), ("b", record)])
    written = pair.to_json(set())
    assert written["fields"][0]["type"]["type"] == "record"
    assert written["fields"][1]["type"] == "Point"

    # Names resolve back to the full definition on read
    assert types.avro_type_from_json(written) == pair


def test_recursive_record_uses_reference() -> None:
    node = types.avro_record(
        "Node",
        [
            ("value", "double"),
            ("next", types.avro_union("null", types.avro_reference("Node"))),
        ],
    )
    written = node.to_json()
    assert written["fields"][1]["type"] == ["null", "Node"]
    assert types.avro_type_from_json(written) == node
    assert node.conforms({"value": 1.0, "next": None})
    with pytest.raises(TypeDefinitionError):
        types.avro_reference("double")


def test_type_json_roundtrip_of_containers() -> None:
    schema = {
        "type": "map",
        "values": {"type": "array", "items": ["null", "double"]},
    }
    parsed = types.avro_type_from_json(schema)
    optional = types.avro_union("null", "double")
    assert parsed == types.avro_map(types.avro_array(optional))
    assert parsed.to_json() == schema


def test_undefined_name_is_rejected() -> None:
    with pytest.raises(TypeDefinitionError, match="undefined type name 'Missing'"):
        types.avro_type_from_json({"type": "array", "items": "Missing"})


def test_accepts_numeric_widening_and_unions() -> None:
    assert types.DOUBLE.accepts(types.INT)
    assert not types.INT.accepts(types.DOUBLE)
    assert types.avro_union("null", "string").accepts(types.STRING)
    assert types.unify(types.INT, types.DOUBLE) == types.DOUBLE
    assert types.unify(types.STRING, types.NULL) == types.avro_union("string", "null")


def test_conforms_checks_cell_payloads() -> None:
    record = types.avro_record(
        "Regression", [("coeff", types.avro_array("double")), ("const", "double")]
    )
    assert record.conforms({"coeff": [1.0, 2], "const": 0.5})
    assert not record.conforms({"coeff": [1.0, "2"], "const": 0.5})
    assert not record.conforms({"coeff": [1.0]})
    assert types.avro_union("null", "double").conforms({"double": 1.5})
    assert not types.INT.conforms(True)


def test_record_from_frame_maps_dtypes() -> None:
    frame = pd.DataFrame(
        {
            "count": [1, 2],
            "big": [1, 2**40],
            "value": [0.5, 1.5],
            "flag": [True, False],
            "group": ["a", "b"],
        }
    )
    record = types.avro_record_from_frame(frame, "Row")
    assert record.fields == (
        ("count", types.INT),
        ("big", types.LONG),
        ("value", types.DOUBLE),
        ("flag", types.BOOLEAN),
        ("group", types.STRING),
    )
