import pytest

from conftest import SCHEMA, write_csv
from partscan.errors import ColumnNotFoundError, SchemaViolationError
from partscan.locator import open_dataset
from partscan.scan import Query, bind_query, iter_unit_counts, prune_units, scan_unit


def test_per_unit_counts(row_dataset, column_dataset):
    q = Query(column="hvfhs_license_num", value="HV0005")
    for ds in (row_dataset, column_dataset):
        assert [n for _, n in iter_unit_counts(ds, q)] == [2, 2]
        assert scan_unit(ds, ds.units[1], q) == 2


def test_count_all_rows(row_dataset, column_dataset):
    for ds in (row_dataset, column_dataset):
        assert sum(n for _, n in iter_unit_counts(ds, Query())) == 6


def test_typed_predicate(row_dataset, column_dataset):
    q = Query(column="trip_time", value="300")
    for ds in (row_dataset, column_dataset):
        assert sum(n for _, n in iter_unit_counts(ds, q)) == 1

    with pytest.raises(SchemaViolationError):
        bind_query(row_dataset, Query(column="trip_time", value="five"))


def test_partition_predicate_prunes(row_dataset):
    pred = bind_query(row_dataset, Query(column="year", value="2021"))
    assert pred.partition
    pruned = prune_units(row_dataset, pred)
    assert [u.path.name for u, _ in pruned] == ["b.csv"]
    assert pruned[0][1] is None
    assert [n for _, n in iter_unit_counts(row_dataset, Query(column="year", value="2021"))] == [0, 3]


def test_unknown_column(row_dataset):
    with pytest.raises(ColumnNotFoundError):
        bind_query(row_dataset, Query(column="nope", value="x"))


def test_column_declared_but_absent_from_unit(tmp_path):
    write_csv(tmp_path / "a.csv", ["hvfhs_license_num"], [["HV0005"]])
    ds = open_dataset(tmp_path, SCHEMA)
    with pytest.raises(ColumnNotFoundError):
        list(iter_unit_counts(ds, Query(column="trip_time", value="1")))


def test_empty_unit_counts_zero(tmp_path):
    write_csv(tmp_path / "a.csv", ["hvfhs_license_num", "trip_time"], [])
    (tmp_path / "b.csv").write_bytes(b"")
    ds = open_dataset(tmp_path, SCHEMA)
    q = Query(column="hvfhs_license_num", value="HV0005")
    assert [n for _, n in iter_unit_counts(ds, q)] == [0, 0]


def test_malformed_unselected_field_is_not_read(tmp_path):
    write_csv(
        tmp_path / "a.csv",
        ["hvfhs_license_num", "trip_time"],
        [["HV0005", "not a number"], ["HV0005", "12"], ["X", "??"]],
    )
    ds = open_dataset(tmp_path, SCHEMA)
    q = Query(column="hvfhs_license_num", value="HV0005")
    assert sum(n for _, n in iter_unit_counts(ds, q)) == 2


def test_empty_value_is_null_and_never_matches(tmp_path):
    write_csv(
        tmp_path / "a.csv",
        ["hvfhs_license_num", "trip_time"],
        [["HV0005", ""], ["", "5"]],
    )
    ds = open_dataset(tmp_path, SCHEMA)
    assert sum(n for _, n in iter_unit_counts(ds, Query(column="trip_time", value=""))) == 0
    # strings keep the empty value
    assert sum(n for _, n in iter_unit_counts(ds, Query(column="hvfhs_license_num", value=""))) == 1
