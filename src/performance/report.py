"""
report.py - Benchmark Reporting

Human-readable progress lines go to two independent sinks: the primary
output (stdout by default) and a secondary diagnostic stream (stderr by
default), so a run that is piped or redirected still leaves a trace of every
trial and every configuration average.

Besides the text lines this module turns a list of runs into a pandas
DataFrame (one row per configuration) and can draw a thread-scaling figure
with matplotlib.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, TextIO, Union

import numpy as np
import pandas as pd
import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for batch runs
import matplotlib.pyplot as plt

from core.constants import RATE_SCALE

if TYPE_CHECKING:
    from performance.executor import BenchmarkRun, TrialMeasurement
    from performance.oracle import ValidationResult
    from performance.selector import BestResult
    from performance.sweep import Configuration


def rate(edge_count: int, seconds: float) -> float:
    """Throughput in millions of stored edges per second."""
    if seconds <= 0.0:
        return float("inf")
    return RATE_SCALE * edge_count / seconds


class BenchmarkReporter:
    """
    Writes report lines to a primary and a secondary stream.

    Parameters
    ----------
    kernel : str
        Short kernel tag used in average lines (``"TC"``, ``"LCC"``).
    matrix_name : str
        Graph label appended to average lines.
    edge_count : int
        Stored entries of the graph, for rate computation.
    primary, secondary : text streams, optional
        Default to ``sys.stdout`` and ``sys.stderr`` at call time.
    """

    def __init__(
        self,
        kernel: str,
        matrix_name: str,
        edge_count: int,
        primary: Optional[TextIO] = None,
        secondary: Optional[TextIO] = None,
    ) -> None:
        self.kernel = kernel
        self.matrix_name = matrix_name
        self.edge_count = edge_count
        self._primary = primary
        self._secondary = secondary

    @property
    def primary(self) -> TextIO:
        return self._primary if self._primary is not None else sys.stdout

    @property
    def secondary(self) -> TextIO:
        return self._secondary if self._secondary is not None else sys.stderr

    def _both(self, line: str) -> None:
        for stream in (self.primary, self.secondary):
            stream.write(line + "\n")
            stream.flush()

    def _out(self, line: str) -> None:
        self.primary.write(line + "\n")
        self.primary.flush()

    # ------------------------------------------------------------------ #
    #  Session lines
    # ------------------------------------------------------------------ #

    def trials(self, count: int) -> None:
        self._out(f"# of trials: {count}")

    def schedule(self, entries: Sequence[object], max_threads: int) -> None:
        shown = []
        for entry in entries:
            if isinstance(entry, int):
                if entry > max_threads:
                    continue
                shown.append(str(entry))
            else:
                shown.append(getattr(entry, "value", str(entry)))
        self._out("threads to test: " + " ".join(shown))

    def reference(self, summary: str, seconds: float) -> None:
        self._out(f"{summary} check time: {seconds:g} sec")

    def warmup(self, label: str, threads: int, seconds: float) -> None:
        self._out(f"warmup method: {label}")
        self._out(
            f"nthreads: {threads:3d} time: {seconds:12.6f} "
            f"rate: {rate(self.edge_count, seconds):6.2f} (warmup, one trial)"
        )

    def validation(self, result: "ValidationResult") -> None:
        self._both(result.describe())

    def configuration(self, label: str) -> None:
        self._out(f"\nMethod: {label}")

    def skipped(self, configuration: "Configuration", max_threads: int) -> None:
        self._out(
            f"skipped: {configuration.thread_count} threads exceeds maximum of {max_threads}"
        )

    # ------------------------------------------------------------------ #
    #  Executor lines
    # ------------------------------------------------------------------ #

    def trial(self, measurement: "TrialMeasurement") -> None:
        cfg = measurement.configuration
        self._both(
            f"threads {cfg.thread_count:2d} trial {measurement.trial_index:2d}: "
            f"{measurement.elapsed_seconds:12.6f} sec "
            f"rate {rate(self.edge_count, measurement.elapsed_seconds):6.2f}"
        )

    def run(self, run: "BenchmarkRun") -> None:
        cfg = run.configuration
        self._both(
            f"Avg: {self.kernel} {cfg.engine_mode.value} "
            f"nthreads: {cfg.thread_count:3d} time: {run.average_seconds:12.6f} "
            f"rate: {rate(self.edge_count, run.average_seconds):6.2f} "
            f"matrix: {self.matrix_name}"
        )

    def nothing_evaluated(self, message: str) -> None:
        self._out("\nBest method: none")
        self._both(message)

    def best(self, best: "BestResult", label: str) -> None:
        self._out(f"\nBest method: {label}")
        self._both(
            f"nthreads: {best.configuration.thread_count:3d} "
            f"time: {best.average_seconds:12.6f} "
            f"rate: {rate(self.edge_count, best.average_seconds):6.2f}"
        )


# ---------------------------------------------------------------------------
# Tabulation and plotting
# ---------------------------------------------------------------------------

def runs_to_dataframe(runs: Iterable["BenchmarkRun"], edge_count: int) -> pd.DataFrame:
    """
    One row per run with columns: engine, threads, variant, sort, trials,
    mean, min, max, std (seconds) and rate (M edges/s).
    """
    rows = []
    for run in runs:
        cfg = run.configuration
        times = np.array(run.elapsed, dtype=np.float64)
        rows.append({
            "engine": cfg.engine_mode.value,
            "threads": cfg.thread_count,
            "variant": getattr(cfg.variant, "name", str(cfg.variant)),
            "sort": getattr(cfg.sort_policy, "name", str(cfg.sort_policy)),
            "trials": len(times),
            "mean": run.average_seconds,
            "min": float(times.min()) if times.size else np.nan,
            "max": float(times.max()) if times.size else np.nan,
            "std": float(times.std(ddof=1)) if times.size > 1 else 0.0,
            "rate": rate(edge_count, run.average_seconds),
        })
    columns = ["engine", "threads", "variant", "sort", "trials",
               "mean", "min", "max", "std", "rate"]
    return pd.DataFrame(rows, columns=columns)


def plot_thread_scaling(
    summary: pd.DataFrame,
    output_path: Union[str, Path],
    title: str = "Thread scaling",
) -> str:
    """
    Average time vs. thread count, one line per (engine, variant, sort).

    Returns the path of the saved PNG.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(8, 5))
    for (engine, variant, sort), group in summary.groupby(["engine", "variant", "sort"]):
        group = group.sort_values("threads")
        ax.plot(group["threads"], group["mean"], marker="o",
                label=f"{variant} / {sort} ({engine})")
    ax.set_xlabel("Threads")
    ax.set_ylabel("Average time [s]")
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    if len(summary):
        ax.legend(fontsize=8)
    fig.tight_layout()
    fig.savefig(str(output_path), dpi=120)
    plt.close(fig)
    return str(output_path)
