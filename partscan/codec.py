"""Row-encoded (delimited text) and column-encoded (Parquet) units.

Row units are UTF-8 delimited text with a header line; fields may be quoted when they
contain the delimiter. Column units are Parquet files written by Polars: the footer lists
every column chunk's type, row count and byte range, so a reader can fetch one column
without touching the bytes of the others.

Encoding is the only pass that materializes every field of a unit, and it runs once, at
ingestion time. Encoding is deterministic: the same input, schema and settings produce
byte-identical output.
"""

from __future__ import annotations

import csv
import os
import tempfile
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

import polars as pl

from partscan.config import DEFAULT_COMPRESSION, DEFAULT_DELIMITER, DEFAULT_ROW_GROUP_SIZE
from partscan.errors import ColumnNotFoundError, SchemaViolationError
from partscan.locator import ROW, Dataset, Unit, open_dataset
from partscan.schema import coerce_value, dtype_conforms, polars_dtype, validate_schema


# -----------------------------
# Row encoding
# -----------------------------
def _open_text(path: Path):
    return open(path, newline="", encoding="utf-8")


def read_header(path: str | os.PathLike, delimiter: str = DEFAULT_DELIMITER) -> list[str]:
    with _open_text(Path(path)) as f:
        header = next(csv.reader(f, delimiter=delimiter), None)
    return header or []


def iter_field(
    path: str | os.PathLike, column: str, delimiter: str = DEFAULT_DELIMITER
) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, raw_field)`` for one column of a row unit.

    Each row is parsed but only the field at the column's position is kept.
    """
    path = Path(path)
    with _open_text(path) as f:
        reader = csv.reader(f, delimiter=delimiter)
        header = next(reader, None)
        if header is None:
            # zero-byte unit
            return
        if header.count(column) > 1:
            raise SchemaViolationError(
                f"Column {column!r} appears more than once in header of {path}",
                unit=str(path),
                column=column,
            )
        try:
            idx = header.index(column)
        except ValueError:
            raise ColumnNotFoundError(
                f"Column {column!r} not in header of {path}", unit=str(path), column=column
            ) from None
        for row in reader:
            if not row:
                continue
            if idx >= len(row):
                raise SchemaViolationError(
                    f"Row at line {reader.line_num} of {path} has {len(row)} fields, "
                    f"column {column!r} is field {idx + 1}",
                    unit=str(path),
                    column=column,
                    line=reader.line_num,
                )
            yield reader.line_num, row[idx]


def count_rows(path: str | os.PathLike, delimiter: str = DEFAULT_DELIMITER) -> int:
    """Number of records in a row unit (header excluded)."""
    with _open_text(Path(path)) as f:
        reader = csv.reader(f, delimiter=delimiter)
        next(reader, None)
        return sum(1 for row in reader if row)


def read_row_unit(
    path: str | os.PathLike,
    schema: Mapping[str, str],
    delimiter: str = DEFAULT_DELIMITER,
) -> dict[str, list[Any]]:
    """Parse a whole row unit into typed columns for every declared column.

    Declared columns missing from the header, short rows and values that do not coerce
    raise SchemaViolationError: the unit is rejected as a whole.
    """
    path = Path(path)
    unit = str(path)
    with _open_text(path) as f:
        reader = csv.reader(f, delimiter=delimiter)
        header = next(reader, None)
        if header is None:
            return {c: [] for c in schema}
        dupes = sorted({c for c in header if c in schema and header.count(c) > 1})
        if dupes:
            raise SchemaViolationError(
                f"{path} repeats column(s) in its header: {', '.join(dupes)}",
                unit=unit,
                column=dupes[0],
            )
        missing = [c for c in schema if c not in header]
        if missing:
            raise SchemaViolationError(
                f"{path} is missing declared column(s): {', '.join(missing)}",
                unit=unit,
                column=missing[0],
            )
        # header order, declared columns only
        wanted = [(header.index(c), c) for c in header if c in schema]
        columns: dict[str, list[Any]] = {c: [] for _, c in wanted}
        width = max(i for i, _ in wanted) + 1 if wanted else 0
        for row in reader:
            if not row:
                continue
            if len(row) < width:
                raise SchemaViolationError(
                    f"Row at line {reader.line_num} of {path} has {len(row)} fields, expected {len(header)}",
                    unit=unit,
                    line=reader.line_num,
                )
            for idx, name in wanted:
                columns[name].append(
                    coerce_value(
                        row[idx], schema[name], column=name, unit=unit, line=reader.line_num
                    )
                )
    return columns


# -----------------------------
# Column encoding
# -----------------------------
def encode(
    src: str | os.PathLike,
    dst: str | os.PathLike,
    schema: Mapping[str, str],
    *,
    delimiter: str = DEFAULT_DELIMITER,
    compression: str = DEFAULT_COMPRESSION,
    row_group_size: int = DEFAULT_ROW_GROUP_SIZE,
) -> dict[str, Any]:
    """Convert one row unit to a Parquet unit.

    ``schema`` lists the physical columns to encode (partition columns excluded). Any
    field that does not coerce aborts the conversion and nothing is written at ``dst``.
    """
    schema = validate_schema(schema)
    columns = read_row_unit(src, schema, delimiter=delimiter)
    df = pl.DataFrame(
        columns, schema={name: polars_dtype(schema[name]) for name in columns}
    )

    dst = Path(dst)
    dst.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=dst.parent, prefix=".", suffix=".parquet.tmp")
    os.close(fd)
    try:
        df.write_parquet(
            tmp,
            compression=compression,
            statistics=True,
            row_group_size=row_group_size,
        )
        os.replace(tmp, dst)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

    return {
        "src": str(src),
        "dst": str(dst),
        "rows": df.height,
        "columns": list(df.columns),
        "size_mb": os.path.getsize(dst) / (1024 * 1024),
    }


def _unreadable(path, e: Exception) -> OSError:
    return OSError(f"Cannot read Parquet unit {path}: {e}")


def read_unit_schema(path: str | os.PathLike) -> dict[str, pl.DataType]:
    """Column names and physical types from a Parquet footer (no data pages read)."""
    try:
        return dict(pl.read_parquet_schema(path))
    except pl.exceptions.ComputeError as e:
        raise _unreadable(path, e) from e


def unit_row_count(path: str | os.PathLike) -> int:
    try:
        lf = pl.scan_parquet(path, glob=False)
        return int(lf.select(pl.len()).collect().item())
    except pl.exceptions.ComputeError as e:
        raise _unreadable(path, e) from e


def decode(
    path: str | os.PathLike,
    columns: Iterable[str] | None = None,
    schema: Mapping[str, str] | None = None,
) -> pl.DataFrame:
    """Read only the named columns of a Parquet unit.

    ``columns=None`` reads every column. With ``schema``, the physical type of each wanted
    column is checked against its declared type; unselected columns are never checked.
    """
    path = Path(path)
    present = read_unit_schema(path)
    wanted = list(present) if columns is None else list(dict.fromkeys(columns))
    for name in wanted:
        if name not in present:
            raise ColumnNotFoundError(
                f"Column {name!r} not in {path}", unit=str(path), column=name
            )
        if schema is not None and name in schema and not dtype_conforms(present[name], schema[name]):
            raise SchemaViolationError(
                f"Column {name!r} of {path} is stored as {present[name]}, declared {schema[name]}",
                unit=str(path),
                column=name,
            )
    if not wanted:
        return pl.DataFrame()
    try:
        return pl.read_parquet(path, columns=wanted, glob=False)
    except pl.exceptions.ComputeError as e:
        raise _unreadable(path, e) from e


# -----------------------------
# Dataset conversion
# -----------------------------
def column_unit_path(src_root: Path, dst_root: Path, unit: Unit) -> Path:
    """Mirror a row unit's relative path (and so its key=value dirs) under ``dst_root``."""
    rel = unit.path.relative_to(src_root)
    return dst_root / rel.with_suffix(".parquet")


def convert_dataset(
    src_root: str | os.PathLike,
    dst_root: str | os.PathLike,
    schema: Mapping[str, str],
    *,
    delimiter: str = DEFAULT_DELIMITER,
    compression: str = DEFAULT_COMPRESSION,
    row_group_size: int = DEFAULT_ROW_GROUP_SIZE,
    verbose: bool = False,
) -> list[dict[str, Any]]:
    """Encode every row unit under ``src_root`` into ``dst_root``.

    Runs sequentially; it must complete before any strategy reads ``dst_root``.
    """
    dataset: Dataset = open_dataset(src_root, schema, encoding=ROW, delimiter=delimiter)
    dst_root = Path(dst_root)
    physical = {c: dataset.schema[c] for c in dataset.physical_columns}

    out = []
    for unit in dataset.units:
        dst = column_unit_path(dataset.root, dst_root, unit)
        res = encode(
            unit.path,
            dst,
            physical,
            delimiter=delimiter,
            compression=compression,
            row_group_size=row_group_size,
        )
        out.append(res)
        if verbose:
            print(f"[convert] {unit.path} -> {dst} rows={res['rows']}", flush=True)
    return out
