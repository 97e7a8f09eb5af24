import os

import pandas as pd
import pytest

from partscan import strategies
from partscan.errors import CountMismatchError
from partscan.harness import (
    BenchmarkResult,
    PeakRssSampler,
    polars_threads,
    run_benchmarks,
    summarize,
    verify_counts,
    write_results,
)
from partscan.scan import Query
from partscan.strategies import STRATEGIES, ScanOptions

QUERY = Query(column="hvfhs_license_num", value="HV0005")


def test_all_strategies_agree(datasets):
    results = run_benchmarks(
        list(STRATEGIES), datasets, QUERY, iterations=2, options=ScanOptions(workers=2)
    )
    assert len(results) == 8
    assert all(r.ok for r in results)
    assert verify_counts(results) == 4
    assert {r.as_report()[0] for r in results} == set(STRATEGIES)
    assert all(r.as_report()[2] == 4 for r in results)


def test_failing_strategy_is_recorded(datasets, monkeypatch):
    def broken(dataset, query, options=None):
        raise RuntimeError("boom")

    monkeypatch.setitem(strategies.STRATEGIES, "duckdb", broken)
    results = run_benchmarks(["duckdb", "sequential-row"], datasets, QUERY)
    by_name = {r.strategy: r for r in results}
    assert not by_name["duckdb"].ok
    assert "boom" in by_name["duckdb"].error
    assert by_name["duckdb"].row_count is None
    assert by_name["sequential-row"].row_count == 4
    assert verify_counts(results) == 4


def test_missing_dataset_is_recorded(row_dataset):
    results = run_benchmarks(["polars-lazy"], {"row": row_dataset}, QUERY)
    assert not results[0].ok
    assert verify_counts(results) is None


def test_mismatch_raises():
    results = [
        BenchmarkResult("sequential-row", 0.1, 4, 1.0),
        BenchmarkResult("duckdb", 0.1, 5, 1.0),
    ]
    with pytest.raises(CountMismatchError) as ei:
        verify_counts(results)
    assert ei.value.counts == {"duckdb#0": 5, "sequential-row#0": 4}


def test_fresh_process(datasets):
    results = run_benchmarks(["sequential-row", "duckdb"], datasets, QUERY, fresh_process=True)
    assert [r.error for r in results] == [None, None]
    assert verify_counts(results) == 4
    assert all(r.memory_mb >= 0 for r in results)


def test_write_results(datasets, tmp_path):
    results = run_benchmarks(["sequential-row", "polars-lazy"], datasets, QUERY, iterations=2)
    out = write_results(results, tmp_path / "results")

    raw = pd.read_csv(out / "results_raw.csv")
    assert len(raw) == 4
    summary = pd.read_csv(out / "summary.csv")
    assert sorted(summary["strategy"]) == ["polars-lazy", "sequential-row"]
    assert set(summary["runs"]) == {2}
    assert set(summary["row_count"]) == {4}
    assert list(summary["time_s"]) == sorted(summary["time_s"])


def test_summarize_skips_failures():
    results = [
        BenchmarkResult("duckdb", 0.2, 4, 1.0, iteration=0, encoding="column", units=2),
        BenchmarkResult("duckdb", 0.0, None, 0.0, iteration=1, encoding="column", units=2, error="x"),
    ]
    summary = summarize(results)
    assert len(summary) == 1
    assert summary.iloc[0]["runs"] == 1


def test_rss_sampler():
    with PeakRssSampler(0.01) as s:
        buf = bytearray(20 * 1024 * 1024)
    assert s.peak_rss >= s.baseline_rss
    assert s.delta_mb >= 0
    del buf


def test_polars_threads_restores_environment(monkeypatch):
    monkeypatch.setenv("POLARS_MAX_THREADS", "3")
    with polars_threads(1):
        assert os.environ["POLARS_MAX_THREADS"] == "1"
    assert os.environ["POLARS_MAX_THREADS"] == "3"

    monkeypatch.delenv("POLARS_MAX_THREADS")
    with polars_threads(2):
        assert os.environ["POLARS_MAX_THREADS"] == "2"
    assert "POLARS_MAX_THREADS" not in os.environ

    with polars_threads(None):
        assert "POLARS_MAX_THREADS" not in os.environ


def test_fresh_run_restores_polars_threads(datasets, monkeypatch):
    monkeypatch.setenv("POLARS_MAX_THREADS", "3")
    run_benchmarks(
        ["sequential-row"], datasets, QUERY, options=ScanOptions(threads=1), fresh_process=True
    )
    assert os.environ["POLARS_MAX_THREADS"] == "3"
