"""Synthetic hive-partitioned trip records (row encoding) built with DuckDB.

Layout: ``<out>/year=<y>/month=<m>/trips_<i>.csv``. Values are derived from
``hash(row, seed)`` so the same arguments always produce the same files.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import duckdb

from partscan.schema import INT32, INT64, STRING, TIMESTAMP

LICENSES = ("HV0002", "HV0003", "HV0004", "HV0005")

TRIPS_SCHEMA = {
    "hvfhs_license_num": STRING,
    "dispatching_base_num": STRING,
    "pickup_datetime": TIMESTAMP,
    "PULocationID": INT32,
    "DOLocationID": INT32,
    "trip_time": INT64,
    "year": INT64,
    "month": INT32,
}

DEFAULT_YEARS = [2020, 2021]
DEFAULT_MONTHS = [1, 2, 3]
DEFAULT_ROWS_PER_UNIT = 100_000
DEFAULT_UNITS_PER_PARTITION = 1


def _sql_str(s: str) -> str:
    return "'" + s.replace("'", "''") + "'"


def trips_sql(year: int, month: int, rows: int, seed: int) -> str:
    licenses = ", ".join(_sql_str(x) for x in LICENSES)
    return f"""
        SELECT
            [{licenses}][1 + CAST(hash(i, {seed}) % {len(LICENSES)} AS BIGINT)] AS hvfhs_license_num,
            printf('B%05d', CAST(hash(i, {seed + 1}) % 3000 AS BIGINT)) AS dispatching_base_num,
            strftime(
                make_timestamp({int(year)}, {int(month)}, 1, 0, 0, 0)
                + to_seconds(CAST(hash(i, {seed + 2}) % 2419200 AS BIGINT)),
                '%Y-%m-%d %H:%M:%S'
            ) AS pickup_datetime,
            1 + CAST(hash(i, {seed + 3}) % 265 AS INTEGER) AS PULocationID,
            1 + CAST(hash(i, {seed + 4}) % 265 AS INTEGER) AS DOLocationID,
            60 + CAST(hash(i, {seed + 5}) % 7200 AS BIGINT) AS trip_time
        FROM range({int(rows)}) r(i)
        ORDER BY i
    """.strip()


def generate_trips(
    out_root: str | os.PathLike,
    *,
    years: Sequence[int] = DEFAULT_YEARS,
    months: Sequence[int] = DEFAULT_MONTHS,
    rows_per_unit: int = DEFAULT_ROWS_PER_UNIT,
    units_per_partition: int = DEFAULT_UNITS_PER_PARTITION,
    seed: int = 0,
    threads: int | None = None,
    verbose: bool = False,
) -> list[dict[str, Any]]:
    out_root = Path(out_root)
    con = duckdb.connect(database=":memory:")
    if threads and threads > 0:
        con.execute(f"SET threads={int(threads)};")

    written = []
    try:
        for year in years:
            for month in months:
                part_dir = out_root / f"year={int(year)}" / f"month={int(month)}"
                part_dir.mkdir(parents=True, exist_ok=True)
                for i in range(units_per_partition):
                    path = part_dir / f"trips_{i:03d}.csv"
                    unit_seed = seed + (int(year) * 100 + int(month)) * 1000 + i * 10
                    sql = trips_sql(year, month, rows_per_unit, unit_seed)
                    con.execute(
                        f"COPY ({sql}) TO {_sql_str(str(path))} (FORMAT CSV, HEADER, DELIMITER ',');"
                    )
                    written.append(
                        {
                            "path": str(path),
                            "year": int(year),
                            "month": int(month),
                            "rows": int(rows_per_unit),
                        }
                    )
                    if verbose:
                        print(f"[generate] {path} rows={rows_per_unit}", flush=True)
    finally:
        con.close()
    return written
