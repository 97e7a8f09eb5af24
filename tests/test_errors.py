import pickle

from partscan.errors import ColumnNotFoundError, CountMismatchError, SchemaViolationError


def test_errors_survive_pickling():
    e = SchemaViolationError("bad", unit="u.csv", column="c", value="x", line=3)
    back = pickle.loads(pickle.dumps(e))
    assert type(back) is SchemaViolationError
    assert (back.unit, back.column, back.value, back.line) == ("u.csv", "c", "x", 3)
    assert str(back) == "bad"

    e = ColumnNotFoundError("missing", column="c")
    assert pickle.loads(pickle.dumps(e)).column == "c"

    e = CountMismatchError("differ", counts={"a#0": 1, "b#0": 2})
    assert pickle.loads(pickle.dumps(e)).counts == {"a#0": 1, "b#0": 2}


def test_schema_violation_is_value_error():
    assert isinstance(SchemaViolationError("x"), ValueError)
