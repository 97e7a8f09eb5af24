"""Bar charts of a benchmark summary (time and peak RSS delta per strategy)."""

from __future__ import annotations

import os
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd


def plot_summary(out_dir: str | os.PathLike) -> list[Path]:
    """Render plots from ``summary.csv`` in ``out_dir``.

    Returns the written PNG paths (empty if the summary is missing or empty).
    """
    out_dir = Path(out_dir)
    summary = out_dir / "summary.csv"
    if not summary.exists():
        print(f"Skipping plots: missing {summary}")
        return []

    try:
        df = pd.read_csv(summary)
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()
    if df.empty:
        print("Skipping plots: no successful runs")
        return []
    df = df.sort_values("time_s")

    written = []
    for metric, ylabel, name in (
        ("time_s", "Time (s)", "strategies_time.png"),
        ("memory_mb", "Peak RSS delta (MB)", "strategies_memory.png"),
    ):
        plt.figure(figsize=(8, 5))
        plt.bar(df["strategy"], df[metric])
        plt.xlabel("Strategy")
        plt.ylabel(ylabel)
        units = int(df["units"].max())
        plt.title(f"count_where - {metric} ({units} units)")
        plt.grid(True, axis="y", alpha=0.3)
        plt.tight_layout()
        path = out_dir / name
        plt.savefig(path)
        plt.close()
        written.append(path)
    return written
