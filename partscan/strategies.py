"""Execution strategies for one count query over a dataset.

- sequential-row: one process, units in dataset order, line-by-line scan.
- parallel-row: a fixed-size process pool, one unit per task, per-unit counts summed.
- polars-lazy: a deferred Polars plan over the Parquet units, executed on demand.
- duckdb: an in-process DuckDB query over the Parquet units.

Every strategy is a pure function of (dataset, query) and returns the same total.
"""

from __future__ import annotations

import multiprocessing as mp
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import duckdb
import polars as pl

from partscan.config import (
    DEFAULT_CHUNKSIZE,
    DEFAULT_POLARS_ENGINE,
    DEFAULT_START_METHOD,
    get_chunksize,
    get_duckdb_memory_limit,
    get_polars_engine,
    get_start_method,
    get_threads,
    get_workers,
)
from partscan.errors import ColumnNotFoundError
from partscan.locator import COLUMN, ROW, Dataset, Unit
from partscan.scan import (
    BoundPredicate,
    Query,
    bind_query,
    iter_unit_counts,
    prune_units,
    scan_pruned_unit,
)
from partscan.schema import duckdb_type, polars_dtype


@dataclass(frozen=True)
class ScanOptions:
    workers: int | None = None
    chunksize: int = DEFAULT_CHUNKSIZE
    start_method: str = DEFAULT_START_METHOD
    threads: int | None = None
    polars_engine: str = DEFAULT_POLARS_ENGINE
    duckdb_memory_limit: str | None = None

    @classmethod
    def from_env(cls) -> ScanOptions:
        return cls(
            workers=get_workers(),
            chunksize=get_chunksize(),
            start_method=get_start_method(),
            threads=get_threads(),
            polars_engine=get_polars_engine(),
            duckdb_memory_limit=get_duckdb_memory_limit(),
        )


def _require_encoding(dataset: Dataset, encoding: str, strategy: str) -> None:
    if dataset.units and dataset.encoding != encoding:
        raise ValueError(
            f"{strategy} needs a {encoding}-encoded dataset, got {dataset.encoding} ({dataset.root})"
        )


# -----------------------------
# Row strategies
# -----------------------------
def sequential_row_count(
    dataset: Dataset, query: Query, options: ScanOptions | None = None
) -> int:
    return sum(count for _, count in iter_unit_counts(dataset, query))


def _scan_task(task: tuple) -> int:
    # runs in a pool worker: one unit in, one integer out
    unit, pred, schema, delimiter = task
    return scan_pruned_unit(unit, pred, schema, delimiter)


def parallel_row_count(
    dataset: Dataset, query: Query, options: ScanOptions | None = None
) -> int:
    """Fan units out to a process pool and sum the per-unit counts.

    A failing unit terminates the pool and re-raises; no partial total is returned.
    """
    options = options or ScanOptions()
    pred = bind_query(dataset, query)
    tasks = [
        (unit, unit_pred, dataset.schema, dataset.delimiter)
        for unit, unit_pred in prune_units(dataset, pred)
    ]
    if not tasks:
        return 0

    workers = max(1, min(options.workers or get_workers(), len(tasks)))
    ctx = mp.get_context(options.start_method)
    with ctx.Pool(processes=workers) as pool:
        return sum(
            pool.imap_unordered(_scan_task, tasks, chunksize=max(1, options.chunksize))
        )


# -----------------------------
# Polars deferred plan
# -----------------------------
def _base_columns(dataset: Dataset, query: Query) -> tuple[list[str], list[str]]:
    """(wanted columns, physical columns to project from each unit)."""
    wanted = sorted(query.wanted_columns)
    physical = [c for c in wanted if not dataset.is_partition_column(c)]
    if not physical:
        # partition-only or count-all query: project one physical column for row count
        if not dataset.physical_columns:
            raise ValueError(f"Dataset {dataset.root} declares no physical columns")
        physical = dataset.physical_columns[:1]
    return wanted, physical


def polars_plan(dataset: Dataset, query: Query) -> pl.LazyFrame | None:
    """Build the lazy plan for ``query``; no unit is read until it is collected.

    Returns None for an empty dataset.
    """
    _require_encoding(dataset, COLUMN, "polars-lazy")
    pred = bind_query(dataset, query)
    if not dataset.units:
        return None
    wanted, physical = _base_columns(dataset, query)
    partition_wanted = [c for c in wanted if dataset.is_partition_column(c)]

    frames = []
    for unit in dataset.units:
        lf = pl.scan_parquet(unit.path, glob=False).select([pl.col(c) for c in physical])
        if partition_wanted:
            lf = lf.with_columns(
                [
                    pl.lit(
                        dataset.partition_value(unit, c),
                        dtype=polars_dtype(dataset.schema[c]),
                    ).alias(c)
                    for c in partition_wanted
                ]
            )
        frames.append(lf.select(wanted or physical))

    lf = pl.concat(frames, how="vertical")
    if pred is not None:
        lf = lf.filter(
            pl.col(pred.column) == pl.lit(pred.value, dtype=polars_dtype(pred.type_name))
        )
    return lf


def polars_lazy_count(
    dataset: Dataset, query: Query, options: ScanOptions | None = None
) -> int:
    """Execute the deferred plan.

    Projection and filter run inside the plan; the filtered predicate values are then
    materialized and counted.
    """
    options = options or ScanOptions()
    lf = polars_plan(dataset, query)
    if lf is None:
        return 0
    try:
        df = lf.collect(engine=options.polars_engine)
    except pl.exceptions.ColumnNotFoundError as e:
        raise ColumnNotFoundError(
            f"Column missing from a unit under {dataset.root}: {e}",
            unit=str(dataset.root),
            column=query.column,
        ) from e
    except pl.exceptions.ComputeError as e:
        raise OSError(f"Polars failed reading units under {dataset.root}: {e}") from e
    return df.height


# -----------------------------
# DuckDB in-process engine
# -----------------------------
def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _sql_str(s: str) -> str:
    return "'" + s.replace("'", "''") + "'"


# characters read_parquet expands as a glob pattern
_GLOB_CHARS = frozenset("*?[")


def _parquet_source(unit: Unit) -> str:
    path = str(unit.path)
    if _GLOB_CHARS.intersection(path):
        raise ValueError(
            f"duckdb cannot read {path}: read_parquet treats * ? [ in a path as a glob pattern"
        )
    return _sql_str(path)


def duckdb_set_threads(con: duckdb.DuckDBPyConnection, threads: int | None) -> None:
    if threads and threads > 0:
        con.execute(f"SET threads={int(threads)};")


def duckdb_set_memory_limit(con: duckdb.DuckDBPyConnection, limit: str | None) -> None:
    if limit:
        limit = limit.replace("'", "")
        con.execute(f"SET memory_limit='{limit}';")


def duckdb_sql(dataset: Dataset, query: Query) -> tuple[str, list[Any]] | None:
    """Build ``SELECT COUNT(*)`` over a UNION ALL of per-unit projections.

    Partition columns are injected per unit as typed parameters. Returns None for an
    empty dataset.
    """
    _require_encoding(dataset, COLUMN, "duckdb")
    pred: BoundPredicate | None = bind_query(dataset, query)
    if not dataset.units:
        return None
    wanted, physical = _base_columns(dataset, query)

    subs: list[str] = []
    params: list[Any] = []
    for unit in dataset.units:
        cols = []
        for c in wanted or physical:
            if dataset.is_partition_column(c):
                cols.append(f"CAST(? AS {duckdb_type(dataset.schema[c])}) AS {_quote_ident(c)}")
                params.append(dataset.partition_value(unit, c))
            else:
                cols.append(_quote_ident(c))
        subs.append(f"SELECT {', '.join(cols)} FROM read_parquet({_parquet_source(unit)})")

    union_sql = " UNION ALL ".join(subs)
    sql = f"SELECT COUNT(*) FROM ({union_sql}) t"
    if pred is not None:
        sql += f" WHERE t.{_quote_ident(pred.column)} = ?"
        params.append(pred.value)
    return sql, params


def duckdb_count(
    dataset: Dataset, query: Query, options: ScanOptions | None = None
) -> int:
    options = options or ScanOptions()
    built = duckdb_sql(dataset, query)
    if built is None:
        return 0
    sql, params = built

    con = duckdb.connect(database=":memory:")
    try:
        duckdb_set_threads(con, options.threads)
        duckdb_set_memory_limit(con, options.duckdb_memory_limit)
        row = con.execute(sql, params).fetchone()
    except duckdb.BinderException as e:
        raise ColumnNotFoundError(
            f"Column missing from a unit under {dataset.root}: {e}",
            unit=str(dataset.root),
            column=query.column,
        ) from e
    except (duckdb.IOException, duckdb.InvalidInputException) as e:
        raise OSError(f"DuckDB failed reading units under {dataset.root}: {e}") from e
    finally:
        con.close()
    return int(row[0])


# -----------------------------
# Registry
# -----------------------------
StrategyFn = Callable[[Dataset, Query, ScanOptions | None], int]

STRATEGIES: dict[str, StrategyFn] = {
    "sequential-row": sequential_row_count,
    "parallel-row": parallel_row_count,
    "polars-lazy": polars_lazy_count,
    "duckdb": duckdb_count,
}

# encoding each strategy is benchmarked against
STRATEGY_ENCODING = {
    "sequential-row": ROW,
    "parallel-row": ROW,
    "polars-lazy": COLUMN,
    "duckdb": COLUMN,
}


def get_strategy(name: str) -> StrategyFn:
    try:
        return STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown strategy: {name} (expected one of {', '.join(STRATEGIES)})"
        ) from None


def count_where(
    dataset: Dataset,
    column: str,
    value: str,
    strategy: str = "sequential-row",
    options: ScanOptions | None = None,
) -> int:
    """Number of rows of ``dataset`` where ``column`` equals ``value``.

    Raises ColumnNotFoundError if ``column`` is not part of the dataset; a failed call
    never returns a count.
    """
    return get_strategy(strategy)(dataset, Query(column=column, value=value), options)
