"""Projected, partition-aware count queries over row and column encoded datasets,
with a harness comparing sequential, parallel, Polars and DuckDB execution."""

from partscan.codec import convert_dataset, decode, encode
from partscan.errors import (
    ColumnNotFoundError,
    CountMismatchError,
    NotFoundError,
    PartscanError,
    SchemaViolationError,
)
from partscan.harness import BenchmarkResult, run_benchmarks, verify_counts
from partscan.locator import COLUMN, ROW, Dataset, Unit, open_dataset
from partscan.scan import Query, iter_unit_counts, scan_unit
from partscan.strategies import STRATEGIES, ScanOptions, count_where

__version__ = "0.1.0"

__all__ = [
    "BenchmarkResult",
    "COLUMN",
    "ColumnNotFoundError",
    "CountMismatchError",
    "Dataset",
    "NotFoundError",
    "PartscanError",
    "Query",
    "ROW",
    "STRATEGIES",
    "ScanOptions",
    "SchemaViolationError",
    "Unit",
    "convert_dataset",
    "count_where",
    "decode",
    "encode",
    "iter_unit_counts",
    "open_dataset",
    "run_benchmarks",
    "scan_unit",
    "verify_counts",
]
