from __future__ import annotations

import csv
from pathlib import Path

import pytest

from partscan.codec import convert_dataset
from partscan.locator import COLUMN, ROW, open_dataset

SCHEMA = {
    "hvfhs_license_num": "string",
    "trip_time": "int64",
    "year": "int64",
    "month": "int32",
}


def write_csv(path, header, rows, delimiter=","):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f, delimiter=delimiter)
        w.writerow(header)
        w.writerows(rows)
    return path


@pytest.fixture
def row_root(tmp_path):
    """Two units of three rows: 2 + 2 rows carry HV0005."""
    root = tmp_path / "csv"
    header = ["hvfhs_license_num", "trip_time"]
    write_csv(
        root / "year=2020" / "month=3" / "a.csv",
        header,
        [["HV0005", 100], ["X", 200], ["HV0005", 300]],
    )
    write_csv(
        root / "year=2021" / "month=1" / "b.csv",
        header,
        [["HV0005", 400], ["HV0005", 500], ["Y", 600]],
    )
    return root


@pytest.fixture
def column_root(row_root, tmp_path):
    root = tmp_path / "parquet"
    convert_dataset(row_root, root, SCHEMA)
    return root


@pytest.fixture
def row_dataset(row_root):
    return open_dataset(row_root, SCHEMA, encoding=ROW)


@pytest.fixture
def column_dataset(column_root):
    return open_dataset(column_root, SCHEMA, encoding=COLUMN)


@pytest.fixture
def datasets(row_dataset, column_dataset):
    return {ROW: row_dataset, COLUMN: column_dataset}
