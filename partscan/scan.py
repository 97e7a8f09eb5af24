"""Projected scans: count the rows of a unit matching one equality predicate.

Only the predicate column is read. Row units are parsed line by line keeping a single
field; column units decode one Parquet column. When the predicate is on a partition
column the unit's data is not read at all beyond its row count, and units from other
partitions are pruned outright.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import polars as pl

from partscan.codec import count_rows, decode, iter_field, unit_row_count
from partscan.errors import ColumnNotFoundError
from partscan.locator import ROW, Dataset, Unit
from partscan.schema import STRING, coerce_value


@dataclass(frozen=True)
class Query:
    """Count rows where ``column == value``; no column means count every row."""

    column: str | None = None
    value: str | None = None
    # extra output columns; a count never needs them, but they are projected and checked
    columns: frozenset[str] = field(default_factory=frozenset)

    @property
    def predicate(self) -> tuple[str, str] | None:
        if self.column is None:
            return None
        return (self.column, "" if self.value is None else self.value)

    @property
    def wanted_columns(self) -> frozenset[str]:
        if self.column is None:
            return frozenset(self.columns)
        return frozenset(self.columns) | {self.column}


@dataclass(frozen=True)
class BoundPredicate:
    column: str
    value: Any
    type_name: str
    partition: bool


def bind_query(dataset: Dataset, query: Query) -> BoundPredicate | None:
    """Check the query's columns against the dataset schema and type the predicate value.

    Raises ColumnNotFoundError for unknown columns, SchemaViolationError when the
    predicate value cannot be coerced to the column's declared type.
    """
    for name in sorted(query.wanted_columns):
        if name not in dataset.schema:
            raise ColumnNotFoundError(
                f"Column {name!r} not in dataset schema ({', '.join(dataset.columns)})",
                unit=str(dataset.root),
                column=name,
            )
    if query.predicate is None:
        return None
    column, raw = query.predicate
    type_name = dataset.schema[column]
    value = coerce_value(raw, type_name, column=column)
    return BoundPredicate(
        column=column,
        value=value,
        type_name=type_name,
        partition=dataset.is_partition_column(column),
    )


def _partition_match(dataset: Dataset, unit: Unit, pred: BoundPredicate) -> bool:
    return pred.value is not None and dataset.partition_value(unit, pred.column) == pred.value


def scan_row_unit(
    unit: Unit, pred: BoundPredicate | None, delimiter: str
) -> int:
    """Full row-by-row pass over a row unit, keeping only the predicate field."""
    if pred is None:
        return count_rows(unit.path, delimiter)

    if pred.value is None:
        # null predicate matches nothing, but the column must still exist
        for _ in iter_field(unit.path, pred.column, delimiter):
            break
        return 0

    count = 0
    if pred.type_name == STRING:
        for _, raw in iter_field(unit.path, pred.column, delimiter):
            if raw == pred.value:
                count += 1
        return count

    for line, raw in iter_field(unit.path, pred.column, delimiter):
        if coerce_value(raw, pred.type_name, column=pred.column, unit=unit.name, line=line) == pred.value:
            count += 1
    return count


def scan_column_unit(
    unit: Unit, pred: BoundPredicate | None, schema: Mapping[str, str]
) -> int:
    """Decode only the predicate column of a Parquet unit and count matches."""
    if pred is None:
        return unit_row_count(unit.path)

    df = decode(unit.path, [pred.column], schema=schema)
    if pred.value is None:
        return 0
    return int(df.filter(pl.col(pred.column) == pred.value).height)


def prune_units(
    dataset: Dataset, pred: BoundPredicate | None
) -> list[tuple[Unit, BoundPredicate | None]]:
    """Units that must be read, each with the predicate left to apply to its data.

    A partition predicate is resolved from the path: non-matching units are dropped and
    matching units only need their row count.
    """
    if pred is None or not pred.partition:
        return [(unit, pred) for unit in dataset.units]
    return [(unit, None) for unit in dataset.units if _partition_match(dataset, unit, pred)]


def scan_pruned_unit(
    unit: Unit,
    pred: BoundPredicate | None,
    schema: Mapping[str, str],
    delimiter: str,
) -> int:
    if unit.encoding == ROW:
        return scan_row_unit(unit, pred, delimiter)
    return scan_column_unit(unit, pred, schema)


def scan_unit(dataset: Dataset, unit: Unit, query: Query) -> int:
    """Count of ``unit`` rows matching ``query`` (the per-unit projected scan)."""
    pred = bind_query(dataset, query)
    for pruned_unit, unit_pred in prune_units(dataset, pred):
        if pruned_unit == unit:
            return scan_pruned_unit(unit, unit_pred, dataset.schema, dataset.delimiter)
    return 0


def iter_unit_counts(dataset: Dataset, query: Query) -> Iterator[tuple[Unit, int]]:
    """Lazily scan units in dataset order, yielding ``(unit, count)`` for every unit."""
    pred = bind_query(dataset, query)
    to_read = dict(prune_units(dataset, pred))
    for unit in dataset.units:
        if unit not in to_read:
            yield unit, 0
            continue
        yield unit, scan_pruned_unit(unit, to_read[unit], dataset.schema, dataset.delimiter)
