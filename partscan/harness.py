"""Benchmark harness: time every strategy on the same query and check they agree.

Each measurement can run in a fresh spawned process so that one strategy's memory
high-water mark does not leak into the next. Setup (opening datasets, building options)
happens outside the timed section.
"""

from __future__ import annotations

import multiprocessing as mp
import os
import threading
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import pandas as pd
import psutil

from partscan.config import DEFAULT_SAMPLE_INTERVAL_S
from partscan.errors import CountMismatchError
from partscan.locator import COLUMN, ROW, Dataset, open_dataset
from partscan.scan import Query
from partscan.strategies import STRATEGY_ENCODING, ScanOptions, get_strategy


@dataclass(frozen=True)
class BenchmarkResult:
    strategy: str
    elapsed_s: float
    row_count: int | None
    memory_mb: float
    iteration: int = 0
    encoding: str = ""
    units: int = 0
    dataset_size_mb: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_report(self) -> tuple[str, float, int | None]:
        return (self.strategy, self.elapsed_s, self.row_count)


class PeakRssSampler:
    """Sample this process's RSS on a daemon thread; ``delta_mb`` is peak minus baseline."""

    def __init__(self, interval_s: float = DEFAULT_SAMPLE_INTERVAL_S) -> None:
        self.interval_s = interval_s
        self._proc = psutil.Process(os.getpid())
        self.baseline_rss = 0
        self.peak_rss = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _sample(self) -> None:
        while not self._stop.is_set():
            try:
                rss = self._proc.memory_info().rss
                if rss > self.peak_rss:
                    self.peak_rss = rss
            except psutil.Error:
                pass
            time.sleep(self.interval_s)

    def __enter__(self) -> PeakRssSampler:
        self.baseline_rss = self._proc.memory_info().rss
        self.peak_rss = self.baseline_rss
        self._thread = threading.Thread(target=self._sample, daemon=True)
        self._thread.start()
        return self

    def __exit__(self, *exc) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        try:
            rss = self._proc.memory_info().rss
            if rss > self.peak_rss:
                self.peak_rss = rss
        except psutil.Error:
            pass

    @property
    def delta_mb(self) -> float:
        return (self.peak_rss - self.baseline_rss) / (1024 * 1024)


def measure(
    strategy: str,
    dataset: Dataset,
    query: Query,
    options: ScanOptions | None = None,
    sample_interval_s: float = DEFAULT_SAMPLE_INTERVAL_S,
) -> dict[str, Any]:
    """Run one strategy once and return ``{row_count, time_s, memory_mb}``."""
    fn = get_strategy(strategy)
    with PeakRssSampler(sample_interval_s) as sampler:
        t0 = time.perf_counter()
        row_count = fn(dataset, query, options)
        t1 = time.perf_counter()
    return {"row_count": row_count, "time_s": t1 - t0, "memory_mb": sampler.delta_mb}


# -----------------------------
# Child-process worker (fresh process per run)
# -----------------------------
@contextmanager
def polars_threads(threads: int | None) -> Iterator[None]:
    """Set POLARS_MAX_THREADS for children spawned inside the block, then restore it.

    Polars sizes its global thread pool at import, so only fresh processes pick this up.
    """
    if not threads or threads <= 0:
        yield
        return
    previous = os.environ.get("POLARS_MAX_THREADS")
    os.environ["POLARS_MAX_THREADS"] = str(int(threads))
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop("POLARS_MAX_THREADS", None)
        else:
            os.environ["POLARS_MAX_THREADS"] = previous


def worker_entry(conn, payload: dict[str, Any]) -> None:
    try:
        dataset = open_dataset(
            payload["root"],
            payload["schema"],
            encoding=payload["encoding"],
            delimiter=payload["delimiter"],
            allow_empty=True,
        )
        res = measure(
            payload["strategy"],
            dataset,
            payload["query"],
            payload["options"],
            payload["sample_interval_s"],
        )
        conn.send({"ok": True, "result": res})
    except Exception as e:
        conn.send({"ok": False, "error": repr(e)})
    finally:
        conn.close()


def run_in_fresh_process(payload: dict[str, Any]) -> dict[str, Any]:
    ctx = mp.get_context("spawn")
    parent_conn, child_conn = ctx.Pipe()
    p = ctx.Process(target=worker_entry, args=(child_conn, payload))
    p.start()
    child_conn.close()
    try:
        msg = parent_conn.recv()
    except EOFError:
        msg = {"ok": False, "error": f"child exited with code {p.exitcode} without a result"}
    p.join()

    if not msg.get("ok"):
        raise RuntimeError(f"Child failed: {msg.get('error')}")
    return msg["result"]


# -----------------------------
# Benchmark runner
# -----------------------------
def run_benchmarks(
    strategies: Sequence[str],
    datasets: Mapping[str, Dataset],
    query: Query,
    *,
    iterations: int = 1,
    options: ScanOptions | None = None,
    fresh_process: bool = False,
    sample_interval_s: float = DEFAULT_SAMPLE_INTERVAL_S,
    verbose: bool = False,
) -> list[BenchmarkResult]:
    """Run each strategy ``iterations`` times against the dataset of its encoding.

    ``datasets`` maps encoding (``"row"`` / ``"column"``) to an opened dataset. A failing
    strategy is recorded with its error and the remaining strategies still run.

    ``options.threads`` reaches Polars only with ``fresh_process``; in-process runs use the
    thread pool Polars sized when it was first imported.
    """
    options = options or ScanOptions()
    with polars_threads(options.threads if fresh_process else None):
        return _run_all(
            strategies, datasets, query, iterations, options, fresh_process, sample_interval_s, verbose
        )


def _run_all(
    strategies: Sequence[str],
    datasets: Mapping[str, Dataset],
    query: Query,
    iterations: int,
    options: ScanOptions,
    fresh_process: bool,
    sample_interval_s: float,
    verbose: bool,
) -> list[BenchmarkResult]:
    results: list[BenchmarkResult] = []
    for strategy in strategies:
        get_strategy(strategy)
        encoding = STRATEGY_ENCODING[strategy]
        dataset = datasets.get(encoding)
        for it in range(iterations):
            if dataset is None:
                res = None
                error = f"no {encoding} dataset given"
            else:
                try:
                    if fresh_process:
                        res = run_in_fresh_process(
                            {
                                "strategy": strategy,
                                "root": str(dataset.root),
                                "schema": dataset.schema,
                                "encoding": dataset.encoding,
                                "delimiter": dataset.delimiter,
                                "query": query,
                                "options": options,
                                "sample_interval_s": sample_interval_s,
                            }
                        )
                    else:
                        res = measure(strategy, dataset, query, options, sample_interval_s)
                    error = None
                except Exception as e:
                    res = None
                    error = repr(e)

            result = BenchmarkResult(
                strategy=strategy,
                elapsed_s=res["time_s"] if res else 0.0,
                row_count=res["row_count"] if res else None,
                memory_mb=res["memory_mb"] if res else 0.0,
                iteration=it,
                encoding=encoding,
                units=len(dataset) if dataset is not None else 0,
                dataset_size_mb=dataset.size_mb if dataset is not None else 0.0,
                error=error,
            )
            results.append(result)
            if verbose:
                if result.ok:
                    print(
                        f"[{strategy:14s} it={it:02d}] time={result.elapsed_s:.3f}s "
                        f"mem={result.memory_mb:.1f}MB count={result.row_count}",
                        flush=True,
                    )
                else:
                    print(f"[{strategy:14s} it={it:02d}] FAILED {result.error}", flush=True)
    return results


def verify_counts(results: Sequence[BenchmarkResult]) -> int | None:
    """Return the common count of all successful runs.

    Raises CountMismatchError when they disagree; returns None when nothing succeeded.
    """
    counts: dict[str, int] = {}
    for r in results:
        if r.ok:
            counts.setdefault(f"{r.strategy}#{r.iteration}", r.row_count)
    distinct = set(counts.values())
    if len(distinct) > 1:
        raise CountMismatchError(
            "Strategies disagree on the count: "
            + ", ".join(f"{k}={v}" for k, v in sorted(counts.items())),
            counts=counts,
        )
    return distinct.pop() if distinct else None


def results_frame(results: Sequence[BenchmarkResult]) -> pd.DataFrame:
    return pd.DataFrame([asdict(r) for r in results])


def summarize(results: Sequence[BenchmarkResult]) -> pd.DataFrame:
    """Mean time and memory per strategy over its successful iterations."""
    df = results_frame(results)
    if df.empty:
        return df
    ok = df[df["error"].isna()]
    return (
        ok.groupby(["strategy", "encoding", "units", "dataset_size_mb"], as_index=False)
        .agg(
            time_s=("elapsed_s", "mean"),
            memory_mb=("memory_mb", "mean"),
            row_count=("row_count", "first"),
            runs=("iteration", "count"),
        )
        .sort_values("time_s")
    )


def write_results(results: Sequence[BenchmarkResult], out_dir: str | os.PathLike) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    results_frame(results).to_csv(out_dir / "results_raw.csv", index=False)
    summarize(results).to_csv(out_dir / "summary.csv", index=False)
    return out_dir


def open_benchmark_datasets(
    row_root: str | os.PathLike | None,
    column_root: str | os.PathLike | None,
    schema: Mapping[str, str],
    delimiter: str,
) -> dict[str, Dataset]:
    datasets: dict[str, Dataset] = {}
    if row_root is not None:
        datasets[ROW] = open_dataset(row_root, schema, encoding=ROW, delimiter=delimiter)
    if column_root is not None:
        datasets[COLUMN] = open_dataset(column_root, schema, encoding=COLUMN)
    return datasets
