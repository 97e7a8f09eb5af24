"""Benchmark configuration.

Configuration is loaded from bench.env (if it exists, in the current directory or the
repository root) and can be overridden by environment variables. CLI flags override both.
"""

from __future__ import annotations

import os
from pathlib import Path


def load_bench_env(path: Path | None = None) -> None:
    """Load KEY=value lines from bench.env.

    Values are only set if not already present in environment, allowing environment
    variables to override bench.env.
    """
    candidates = (
        [path]
        if path is not None
        else [Path.cwd() / "bench.env", Path(__file__).resolve().parent.parent / "bench.env"]
    )
    for bench_env_path in candidates:
        if bench_env_path.exists():
            break
    else:
        return

    with open(bench_env_path) as f:
        for line in f:
            line = line.strip()
            # Skip comments and empty lines
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()
            if value and value[0] in ('"', "'") and value[-1] == value[0]:
                value = value[1:-1]
            if key and value and key not in os.environ:
                os.environ[key] = value


def _parse_env_int(key: str, default: int | None) -> int | None:
    """Parse int from env var, or return default."""
    val = os.environ.get(key)
    if not val:
        return default
    return int(val)


def _parse_env_float(key: str, default: float) -> float:
    """Parse float from env var, or return default."""
    val = os.environ.get(key)
    if not val:
        return default
    return float(val)


def _parse_env_str(key: str, default: str | None) -> str | None:
    val = os.environ.get(key)
    if val is None or val == "":
        return default
    return val


# -----------------------------
# Defaults
# -----------------------------
DEFAULT_ITERATIONS = 3
DEFAULT_SAMPLE_INTERVAL_S = 0.05
DEFAULT_CHUNKSIZE = 1
DEFAULT_START_METHOD = "spawn"
DEFAULT_COMPRESSION = "zstd"
DEFAULT_ROW_GROUP_SIZE = 300_000
DEFAULT_POLARS_ENGINE = "auto"
DEFAULT_DELIMITER = ","
DEFAULT_PREDICATE_COLUMN = "hvfhs_license_num"
DEFAULT_PREDICATE_VALUE = "HV0005"


def get_workers() -> int:
    return _parse_env_int("BENCH_WORKERS", None) or os.cpu_count() or 1


def get_chunksize() -> int:
    return _parse_env_int("BENCH_CHUNKSIZE", DEFAULT_CHUNKSIZE)


def get_start_method() -> str:
    return _parse_env_str("BENCH_MP_START_METHOD", DEFAULT_START_METHOD)


def get_threads() -> int | None:
    return _parse_env_int("BENCH_THREADS", None)


def get_iterations() -> int:
    return _parse_env_int("BENCH_ITERATIONS", DEFAULT_ITERATIONS)


def get_sample_interval_s() -> float:
    return _parse_env_float("BENCH_SAMPLE_INTERVAL_S", DEFAULT_SAMPLE_INTERVAL_S)


def get_compression() -> str:
    return _parse_env_str("BENCH_COMPRESSION", DEFAULT_COMPRESSION)


def get_row_group_size() -> int:
    return _parse_env_int("BENCH_ROW_GROUP_SIZE", DEFAULT_ROW_GROUP_SIZE)


def get_polars_engine() -> str:
    return _parse_env_str("BENCH_POLARS_ENGINE", DEFAULT_POLARS_ENGINE).lower()


def get_duckdb_memory_limit() -> str | None:
    """DuckDB memory_limit setting (e.g. '2GB'); unset means DuckDB's default."""
    return _parse_env_str("BENCH_DUCKDB_MEMORY_LIMIT", None)


def get_delimiter() -> str:
    return _parse_env_str("BENCH_DELIMITER", DEFAULT_DELIMITER)


def get_predicate_column() -> str:
    return _parse_env_str("BENCH_PREDICATE_COLUMN", DEFAULT_PREDICATE_COLUMN)


def get_predicate_value() -> str:
    return _parse_env_str("BENCH_PREDICATE_VALUE", DEFAULT_PREDICATE_VALUE)
