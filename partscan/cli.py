"""Command line entry point: generate, convert, count, run, plot."""

from __future__ import annotations

import argparse
from pathlib import Path

from partscan.codec import convert_dataset
from partscan.config import (
    get_chunksize,
    get_compression,
    get_delimiter,
    get_duckdb_memory_limit,
    get_iterations,
    get_polars_engine,
    get_predicate_column,
    get_predicate_value,
    get_row_group_size,
    get_sample_interval_s,
    get_start_method,
    get_threads,
    get_workers,
    load_bench_env,
)
from partscan.errors import PartscanError
from partscan.generate import (
    DEFAULT_MONTHS,
    DEFAULT_ROWS_PER_UNIT,
    DEFAULT_UNITS_PER_PARTITION,
    DEFAULT_YEARS,
    TRIPS_SCHEMA,
    generate_trips,
)
from partscan.harness import (
    open_benchmark_datasets,
    run_benchmarks,
    verify_counts,
    write_results,
)
from partscan.locator import open_dataset
from partscan.plot import plot_summary
from partscan.scan import Query
from partscan.schema import format_schema, parse_schema
from partscan.strategies import STRATEGIES, ScanOptions, count_where


def die(msg: str) -> None:
    raise SystemExit(msg)


def _options_from_args(args: argparse.Namespace) -> ScanOptions:
    return ScanOptions(
        workers=args.workers,
        chunksize=args.chunksize,
        start_method=args.start_method,
        threads=args.threads,
        polars_engine=args.polars_engine,
        duckdb_memory_limit=args.duckdb_memory_limit,
    )


def _add_schema_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--schema",
        default=format_schema(TRIPS_SCHEMA),
        help="Declared columns as col:type,... (types: string,int64,int32,timestamp).",
    )
    p.add_argument("--delimiter", default=get_delimiter())


def _add_scan_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--workers", type=int, default=get_workers())
    p.add_argument("--chunksize", type=int, default=get_chunksize())
    p.add_argument(
        "--start-method",
        choices=["spawn", "fork", "forkserver"],
        default=get_start_method(),
    )
    p.add_argument("--threads", type=int, default=get_threads())
    p.add_argument(
        "--polars-engine",
        default=get_polars_engine(),
        help="Polars collect engine (auto/in-memory/streaming).",
    )
    p.add_argument("--duckdb-memory-limit", default=get_duckdb_memory_limit())


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="partscan-bench")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # generate
    apg = sub.add_parser(
        "generate", help="Write a hive-partitioned CSV trips dataset (DuckDB)."
    )
    apg.add_argument("--out", required=True)
    apg.add_argument("--years", type=int, nargs="+", default=DEFAULT_YEARS)
    apg.add_argument("--months", type=int, nargs="+", default=DEFAULT_MONTHS)
    apg.add_argument("--rows-per-unit", type=int, default=DEFAULT_ROWS_PER_UNIT)
    apg.add_argument(
        "--units-per-partition", type=int, default=DEFAULT_UNITS_PER_PARTITION
    )
    apg.add_argument("--seed", type=int, default=0)
    apg.add_argument("--threads", type=int, default=get_threads())

    # convert
    apc = sub.add_parser("convert", help="Encode row units (CSV) to Parquet units.")
    apc.add_argument("--src", required=True)
    apc.add_argument("--dst", required=True)
    apc.add_argument("--compression", default=get_compression())
    apc.add_argument("--row-group-size", type=int, default=get_row_group_size())
    _add_schema_args(apc)

    # count
    apq = sub.add_parser("count", help="Run one count_where query.")
    apq.add_argument("--root", required=True)
    apq.add_argument("--column", default=get_predicate_column())
    apq.add_argument("--value", default=get_predicate_value())
    apq.add_argument("--strategy", choices=list(STRATEGIES), default="sequential-row")
    _add_schema_args(apq)
    _add_scan_args(apq)

    # run
    apr = sub.add_parser("run", help="Benchmark every strategy and write CSV results.")
    apr.add_argument("--row-root", default=None, help="Root of the CSV dataset.")
    apr.add_argument("--column-root", default=None, help="Root of the Parquet dataset.")
    apr.add_argument("--strategy", choices=[*STRATEGIES, "all"], default="all")
    apr.add_argument("--column", default=get_predicate_column())
    apr.add_argument("--value", default=get_predicate_value())
    apr.add_argument("--iterations", type=int, default=get_iterations())
    apr.add_argument("--out-dir", default="results", help="Directory for CSV outputs.")
    apr.add_argument(
        "--no-fresh-process",
        action="store_true",
        help="Run measurements in this process instead of a fresh one per run.",
    )
    _add_schema_args(apr)
    _add_scan_args(apr)

    # plot
    app = sub.add_parser("plot", help="Generate plots from summary.csv.")
    app.add_argument("--out-dir", default="results")

    return ap


def main(argv: list[str] | None = None) -> None:
    load_bench_env()
    args = build_parser().parse_args(argv)

    try:
        if args.cmd == "generate":
            generate_trips(
                args.out,
                years=args.years,
                months=args.months,
                rows_per_unit=args.rows_per_unit,
                units_per_partition=args.units_per_partition,
                seed=args.seed,
                threads=args.threads,
                verbose=True,
            )
            print("Done.")

        elif args.cmd == "convert":
            res = convert_dataset(
                args.src,
                args.dst,
                parse_schema(args.schema),
                delimiter=args.delimiter,
                compression=args.compression,
                row_group_size=args.row_group_size,
                verbose=True,
            )
            print(f"Converted {len(res)} units to: {args.dst}")

        elif args.cmd == "count":
            dataset = open_dataset(
                args.root, parse_schema(args.schema), delimiter=args.delimiter
            )
            n = count_where(
                dataset,
                args.column,
                args.value,
                strategy=args.strategy,
                options=_options_from_args(args),
            )
            print(n)

        elif args.cmd == "run":
            if not args.row_root and not args.column_root:
                die("run needs --row-root and/or --column-root")
            strategies = list(STRATEGIES) if args.strategy == "all" else [args.strategy]
            datasets = open_benchmark_datasets(
                args.row_root, args.column_root, parse_schema(args.schema), args.delimiter
            )
            results = run_benchmarks(
                strategies,
                datasets,
                Query(column=args.column, value=args.value),
                iterations=args.iterations,
                options=_options_from_args(args),
                fresh_process=not args.no_fresh_process,
                sample_interval_s=get_sample_interval_s(),
                verbose=True,
            )
            out_dir = write_results(results, Path(args.out_dir))
            print(f"\nWrote CSVs to: {out_dir}")
            failed = sorted({r.strategy for r in results if not r.ok})
            if failed:
                print(f"Failed strategies: {', '.join(failed)}")
            total = verify_counts(results)
            if total is None:
                die("No strategy succeeded")
            print(f"All strategies agree: count={total}")

        elif args.cmd == "plot":
            written = plot_summary(Path(args.out_dir))
            print(f"Wrote {len(written)} PNG files to: {args.out_dir}")

        else:
            die("Unknown command")
    except (PartscanError, OSError, ValueError) as e:
        die(f"{type(e).__name__}: {e}")


if __name__ == "__main__":
    main()
