import pytest

from partscan.errors import SchemaViolationError
from partscan.schema import coerce_value, format_schema, parse_schema, validate_schema


def test_parse_schema_normalizes_types():
    schema = parse_schema("a:STRING, b:int64,c:Int32 ,d:timestamp")
    assert schema == {"a": "string", "b": "int64", "c": "int32", "d": "timestamp"}
    assert parse_schema(format_schema(schema)) == schema


def test_unknown_type_rejected():
    with pytest.raises(SchemaViolationError):
        validate_schema({"a": "float"})
    with pytest.raises(ValueError):
        parse_schema("a")


def test_coerce_values():
    assert coerce_value("", "string") == ""
    assert coerce_value("", "int64") is None
    assert coerce_value(" 42", "int32") == 42
    assert coerce_value("2020-01-02 03:04:05", "timestamp") == "2020-01-02 03:04:05"
    assert coerce_value("2020-01-02", "timestamp") == "2020-01-02"


def test_coerce_failures_carry_context():
    with pytest.raises(SchemaViolationError) as ei:
        coerce_value("abc", "int64", column="trip_time", unit="u.csv", line=7)
    assert ei.value.column == "trip_time"
    assert ei.value.unit == "u.csv"
    assert ei.value.line == 7

    with pytest.raises(SchemaViolationError):
        coerce_value(str(2**31), "int32")
    with pytest.raises(SchemaViolationError):
        coerce_value("yesterday", "timestamp")


@pytest.mark.parametrize("raw", ["1_000", "0x10", "1.0", "٣", "  ", "+ 5"])
def test_integers_are_plain_base10(raw):
    with pytest.raises(SchemaViolationError):
        coerce_value(raw, "int64")


def test_signed_integers():
    assert coerce_value("-7", "int64") == -7
    assert coerce_value("+5", "int32") == 5
