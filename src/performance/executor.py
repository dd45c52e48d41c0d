"""
executor.py - Benchmark Executor

Runs one configuration at a time: apply its thread count and engine mode to
the execution environment, time ``trial_count`` calls of the candidate
kernel, and aggregate the trial times into a :class:`BenchmarkRun`.

Timing discipline
-----------------
    - Configurations and trials run strictly one after another; the
      environment lock is held for the whole apply / run / measure sequence.
    - Each trial is bracketed by two reads of a monotonic clock
      (``time.perf_counter`` unless a clock is injected) around the kernel
      call only.  The kernel's result is dropped right after the second read.
    - Nothing is validated here; the session validates once, before the
      sweep, so comparisons never land inside a timed region.

Failures
--------
Any exception raised by the candidate or by the environment while applying a
configuration is re-raised as :class:`EngineFailure`, which ends the sweep.
Host configurations asking for more threads than the engine offers are
skipped by :meth:`BenchmarkExecutor.run_sweep`, not treated as errors.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional

import numpy as np

from analytics.environment import EngineMode, ExecutionEnvironment
from analytics.graph import Graph
from core.allocation import Allocator, allocate_array
from core.errors import BenchmarkError, ConfigurationError, EngineFailure
from performance.report import BenchmarkReporter
from performance.sweep import Configuration

logger = logging.getLogger(__name__)

Candidate = Callable[[Graph, Any, Any], Any]


@dataclass(frozen=True)
class TrialMeasurement:
    configuration: Configuration
    trial_index: int
    elapsed_seconds: float


@dataclass
class BenchmarkRun:
    """All trial measurements of one configuration."""
    configuration: Configuration
    measurements: List[TrialMeasurement] = field(default_factory=list)

    @property
    def elapsed(self) -> List[float]:
        return [m.elapsed_seconds for m in self.measurements]

    @property
    def average_seconds(self) -> float:
        if not self.measurements:
            return float("nan")
        return sum(self.elapsed) / len(self.measurements)

    def throughput(self, edge_count: int) -> float:
        """Stored edges processed per second at the average trial time."""
        avg = self.average_seconds
        return edge_count / avg if avg > 0.0 else float("inf")


class BenchmarkExecutor:
    """
    Times a candidate kernel under successive configurations.

    Parameters
    ----------
    graph : Graph
        Input shared by every trial; never modified.
    candidate : callable(graph, variant, sort_policy) -> result
        Kernel under test.  It reads thread count and engine mode from the
        environment it was built with.
    environment : ExecutionEnvironment
    reporter : BenchmarkReporter, optional
        Receives one line per trial and per configuration.
    clock : callable() -> float, optional
        Monotonic clock in seconds.
    allocator : Allocator, optional
        Backing allocator for the trial-time buffer.
    """

    def __init__(
        self,
        graph: Graph,
        candidate: Candidate,
        environment: ExecutionEnvironment,
        reporter: Optional[BenchmarkReporter] = None,
        clock: Callable[[], float] = time.perf_counter,
        allocator: Optional[Allocator] = None,
    ) -> None:
        self.graph = graph
        self.candidate = candidate
        self.environment = environment
        self.reporter = reporter
        self.clock = clock
        self.allocator = allocator

    def is_runnable(self, configuration: Configuration) -> bool:
        if configuration.engine_mode == EngineMode.ACCELERATOR:
            return True
        return configuration.thread_count <= self.environment.get_capacity().max_threads

    def run(self, configuration: Configuration, trial_count: int) -> BenchmarkRun:
        """Run ``trial_count`` timed trials of ``configuration``."""
        if trial_count < 1:
            raise ConfigurationError(f"trial_count must be at least 1, got {trial_count}")

        timings = allocate_array(trial_count, np.float64, self.allocator)
        run = BenchmarkRun(configuration)

        with ExitStack() as stack:
            try:
                stack.enter_context(
                    self.environment.configured(configuration.thread_count, configuration.engine_mode)
                )
            except ValueError as exc:
                raise EngineFailure("apply configuration", str(exc)) from exc

            for trial in range(trial_count):
                t0 = self.clock()
                try:
                    result = self.candidate(self.graph, configuration.variant, configuration.sort_policy)
                except BenchmarkError:
                    raise
                except Exception as exc:
                    raise EngineFailure("candidate", f"{configuration.label()}: {exc}") from exc
                t1 = self.clock()
                del result

                timings[trial] = t1 - t0
                measurement = TrialMeasurement(configuration, trial, float(timings[trial]))
                run.measurements.append(measurement)
                if self.reporter is not None:
                    self.reporter.trial(measurement)

        logger.debug("%s: average %.6f s over %d trials",
                     configuration.label(), run.average_seconds, trial_count)
        if self.reporter is not None:
            self.reporter.run(run)
        return run

    def run_sweep(
        self,
        configurations: Iterable[Configuration],
        trial_count: int,
        on_run: Optional[Callable[[BenchmarkRun], None]] = None,
    ) -> List[BenchmarkRun]:
        """Run every runnable configuration in order; stop at the first failure."""
        max_threads = self.environment.get_capacity().max_threads
        runs: List[BenchmarkRun] = []
        for configuration in configurations:
            if not self.is_runnable(configuration):
                logger.info("Skipping %s: more than %d threads", configuration.label(), max_threads)
                if self.reporter is not None:
                    self.reporter.skipped(configuration, max_threads)
                continue
            run = self.run(configuration, trial_count)
            runs.append(run)
            if on_run is not None:
                on_run(run)
        return runs
