"""
session.py - Benchmark Session Driver

Ties the pieces together for one graph and one kernel:

    1. build the thread schedule and report it
    2. compute the reference result with the slow independent check
    3. warm up: one candidate run on the host at full parallelism
    4. validate the warm-up result against the reference (once per session)
    5. sweep every configuration through the executor, feeding each run to
       the best-configuration selector
    6. report the best configuration and return a summary

A validation mismatch is reported and, unless strict validation is on, the
sweep continues; mismatches never influence which configuration is selected.
Any other error aborts the session.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from analytics.clustering import (
    ClusteringMethod, LocalClusteringCoefficient, check_lcc, clustering_method_name,
)
from analytics.environment import EngineMode, ExecutionEnvironment
from analytics.graph import Graph
from analytics.triangle_count import (
    SortPolicy, TriangleCounter, TriangleCountMethod, check_triangles, method_name,
)
from core.allocation import Allocator, allocator_from_config
from core.constants import (
    ACCELERATOR_THREADS, DEFAULT_SCHEDULE_LENGTH, DEFAULT_TOLERANCE, DEFAULT_TRIALS,
)
from core.errors import (
    BenchmarkError, ConfigurationError, EngineFailure, NoConfigurationEvaluated,
)
from performance.executor import BenchmarkExecutor, BenchmarkRun
from performance.oracle import ValidationPolicy, ValidationResult, validate
from performance.report import BenchmarkReporter, runs_to_dataframe
from performance.selector import BestConfigurationSelector, BestResult
from performance.sweep import (
    ThreadEntry, ThreadSelection, build_thread_schedule, generate_configurations,
    parse_thread_list,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Settings
# =============================================================================

@dataclass
class BenchmarkSettings:
    """
    Session settings, normally built from the ``benchmark`` section of the
    YAML configuration (see ``config/benchmark_config.yaml``).

    ``threads`` of None means "auto-generate ``schedule_length`` entries by
    halving"; ``variants`` / ``sort_policies`` of None mean the kernel's
    defaults.
    """
    kernel: str = "tc"
    trials: int = DEFAULT_TRIALS
    threads: Optional[List[ThreadEntry]] = None
    schedule_length: int = DEFAULT_SCHEDULE_LENGTH
    variants: Optional[List[str]] = None
    sort_policies: Optional[List[str]] = None
    tolerance: float = DEFAULT_TOLERANCE
    strict_validation: bool = False
    accelerator_threads: int = ACCELERATOR_THREADS
    zero_fill: str = "calloc"

    def __post_init__(self) -> None:
        if self.kernel not in KERNELS:
            raise ConfigurationError(f"Unknown kernel: {self.kernel!r}. Valid: {sorted(KERNELS)}")
        if self.trials < 1:
            raise ConfigurationError(f"trials must be at least 1, got {self.trials}")
        if self.schedule_length < 1:
            raise ConfigurationError(f"schedule_length must be at least 1, got {self.schedule_length}")
        if self.tolerance <= 0.0:
            raise ConfigurationError(f"tolerance must be positive, got {self.tolerance}")
        if self.accelerator_threads < 1:
            raise ConfigurationError("accelerator_threads must be positive")
        if self.zero_fill not in ("calloc", "memset"):
            raise ConfigurationError(f"zero_fill must be 'calloc' or 'memset', got {self.zero_fill!r}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "BenchmarkSettings":
        try:
            return cls._from_sections(
                dict(config.get("benchmark", {}) or {}),
                dict(config.get("allocation", {}) or {}),
            )
        except ConfigurationError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid benchmark configuration: {exc}") from exc

    @classmethod
    def _from_sections(cls, section: Dict[str, Any], allocation: Dict[str, Any]) -> "BenchmarkSettings":
        threads = section.get("threads", "auto")
        if threads is None or (isinstance(threads, str) and threads.strip().lower() == "auto"):
            parsed_threads = None
        elif isinstance(threads, (list, tuple)):
            parsed_threads = parse_thread_list(threads)
        else:
            parsed_threads = parse_thread_list([threads])
        if (parsed_threads and parsed_threads[0] is ThreadSelection.AUTO_DETECT
                and len(parsed_threads) == 1 and "schedule_length" in section):
            # a lone "auto" defers to the configured schedule length
            parsed_threads = None

        return cls(
            kernel=str(section.get("kernel", "tc")).lower(),
            trials=int(section.get("trials", DEFAULT_TRIALS)),
            threads=parsed_threads,
            schedule_length=int(section.get("schedule_length", DEFAULT_SCHEDULE_LENGTH)),
            variants=section.get("variants"),
            sort_policies=section.get("sort_policies"),
            tolerance=float(section.get("tolerance", DEFAULT_TOLERANCE)),
            strict_validation=bool(section.get("strict_validation", False)),
            accelerator_threads=int(section.get("accelerator_threads", ACCELERATOR_THREADS)),
            zero_fill=str(allocation.get("zero_fill", "calloc")),
        )

    @property
    def allocator(self) -> Allocator:
        return allocator_from_config(self.zero_fill)


# =============================================================================
# Kernel descriptions
# =============================================================================

@dataclass(frozen=True)
class KernelSpec:
    """
    Everything the session needs to know about one kernel.

    candidate : callable(graph, variant, sort_policy) -> result
    reference : callable(graph) -> result
        Independent implementation used as ground truth.
    """
    tag: str
    candidate: Callable[[Graph, Any, Any], Any]
    reference: Callable[[Graph], Any]
    variants: Sequence[Any]
    sort_policies: Sequence[Any]
    warmup_variant: Any
    warmup_sort: Any
    no_sort: Any
    method_name: Callable[[Any, Any], str]
    describe_result: Callable[[Any], str]
    parse_variant: Callable[[str], Any]


def _parse_sort(name: Any) -> SortPolicy:
    if isinstance(name, SortPolicy):
        return name
    try:
        return SortPolicy[str(name).strip().upper()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown sort policy: {name!r}. Valid: {[p.name.lower() for p in SortPolicy]}"
        ) from None


def _parse_tc_method(name: Any) -> TriangleCountMethod:
    if isinstance(name, TriangleCountMethod):
        return name
    try:
        return TriangleCountMethod[str(name).strip().upper()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown triangle count method: {name!r}. "
            f"Valid: {[m.name.lower() for m in TriangleCountMethod]}"
        ) from None


def _parse_lcc_method(name: Any) -> ClusteringMethod:
    if isinstance(name, ClusteringMethod):
        return name
    try:
        return ClusteringMethod[str(name).strip().upper()]
    except KeyError:
        raise ConfigurationError(f"Unknown clustering method: {name!r}") from None


def _describe_count(count: Any) -> str:
    return f"# of triangles: {int(count)}"


def _describe_vector(vector: Any) -> str:
    values = np.asarray(vector, dtype=np.float64)
    mean = float(values.mean()) if values.size else 0.0
    return f"LCC of {values.size} vertices (mean {mean:.6f})"


def triangle_count_kernel(
    environment: ExecutionEnvironment,
    allocator: Optional[Allocator] = None,
) -> KernelSpec:
    return KernelSpec(
        tag="TC",
        candidate=TriangleCounter(environment, allocator),
        reference=check_triangles,
        variants=(TriangleCountMethod.SANDIA_DOT, TriangleCountMethod.SANDIA_DOT2),
        sort_policies=(SortPolicy.AUTO,),
        warmup_variant=TriangleCountMethod.SANDIA_DOT2,
        warmup_sort=SortPolicy.NONE,
        no_sort=SortPolicy.NONE,
        method_name=method_name,
        describe_result=_describe_count,
        parse_variant=_parse_tc_method,
    )


def clustering_kernel(
    environment: ExecutionEnvironment,
    allocator: Optional[Allocator] = None,
) -> KernelSpec:
    return KernelSpec(
        tag="LCC",
        candidate=LocalClusteringCoefficient(environment, allocator),
        reference=check_lcc,
        variants=(ClusteringMethod.DEFAULT,),
        sort_policies=(SortPolicy.NONE,),
        warmup_variant=ClusteringMethod.DEFAULT,
        warmup_sort=SortPolicy.NONE,
        no_sort=SortPolicy.NONE,
        method_name=clustering_method_name,
        describe_result=_describe_vector,
        parse_variant=_parse_lcc_method,
    )


KERNELS: Dict[str, Callable[..., KernelSpec]] = {
    "tc": triangle_count_kernel,
    "lcc": clustering_kernel,
}


# =============================================================================
# Session
# =============================================================================

@dataclass
class SessionResult:
    runs: List[BenchmarkRun]
    best: Optional[BestResult]
    validation: ValidationResult
    reference_seconds: float
    warmup_seconds: float
    summary: pd.DataFrame = field(repr=False)


class BenchmarkSession:
    """
    One sweep-and-validate benchmark of one kernel on one graph.

    Parameters
    ----------
    graph : Graph
    kernel : KernelSpec
    environment : ExecutionEnvironment
        The environment the kernel's candidate was built with.
    settings : BenchmarkSettings
    reporter : BenchmarkReporter, optional
        Defaults to stdout / stderr.
    results_db : ResultsDatabase, optional
        When given, the session, its validation and every run are stored.
    clock : callable, optional
        Monotonic clock shared with the executor.
    """

    def __init__(
        self,
        graph: Graph,
        kernel: KernelSpec,
        environment: ExecutionEnvironment,
        settings: BenchmarkSettings,
        reporter: Optional[BenchmarkReporter] = None,
        results_db=None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.graph = graph
        self.kernel = kernel
        self.environment = environment
        self.settings = settings
        self.reporter = reporter or BenchmarkReporter(kernel.tag, graph.name, graph.n_edges)
        self.results_db = results_db
        self.clock = clock
        self.policy = ValidationPolicy(settings.tolerance, settings.strict_validation)

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #

    def _variants(self) -> List[Any]:
        if self.settings.variants:
            return [self.kernel.parse_variant(v) for v in self.settings.variants]
        return list(self.kernel.variants)

    def _sort_policies(self) -> List[Any]:
        if self.settings.sort_policies:
            return [_parse_sort(s) for s in self.settings.sort_policies]
        return list(self.kernel.sort_policies)

    def _timed(self, operation: str, fn: Callable[..., Any], *args: Any):
        t0 = self.clock()
        try:
            result = fn(*args)
        except BenchmarkError:
            raise
        except Exception as exc:
            raise EngineFailure(operation, str(exc)) from exc
        return result, self.clock() - t0

    # ------------------------------------------------------------------ #
    #  Driver
    # ------------------------------------------------------------------ #

    def run(self) -> SessionResult:
        settings = self.settings
        capacity = self.environment.get_capacity()
        max_threads = capacity.max_threads

        self.reporter.trials(settings.trials)
        schedule = build_thread_schedule(capacity, settings.schedule_length, settings.threads)
        if not schedule:
            raise ConfigurationError("Thread schedule is empty")
        self.reporter.schedule(schedule, max_threads)
        logger.info("Benchmarking %s on %s (%d trials, schedule %s)",
                    self.kernel.tag, self.graph.describe(), settings.trials, schedule)

        session_id = None
        if self.results_db is not None:
            session_id = self.results_db.insert_session(
                kernel=self.kernel.tag, graph=self.graph, max_threads=max_threads,
                trials=settings.trials,
            )

        # reference result, computed before any timed trial
        reference, reference_seconds = self._timed("reference", self.kernel.reference, self.graph)
        self.reporter.reference(self.kernel.describe_result(reference), reference_seconds)

        # warm-up run on the host, validated once
        warmup_label = self.kernel.method_name(self.kernel.warmup_variant, self.kernel.warmup_sort)
        with ExitStack() as stack:
            try:
                stack.enter_context(self.environment.configured(max_threads, EngineMode.HOST))
            except ValueError as exc:
                raise EngineFailure("apply configuration", str(exc)) from exc
            candidate, warmup_seconds = self._timed(
                "warmup", self.kernel.candidate, self.graph,
                self.kernel.warmup_variant, self.kernel.warmup_sort,
            )
        self.reporter.warmup(warmup_label, max_threads, warmup_seconds)

        validation = validate(reference, candidate, settings.tolerance)
        del reference, candidate
        self.reporter.validation(validation)
        if self.results_db is not None:
            self.results_db.insert_validation(session_id, validation)
        self.policy.enforce(validation)

        # sweep
        executor = BenchmarkExecutor(
            self.graph, self.kernel.candidate, self.environment,
            reporter=self.reporter, clock=self.clock, allocator=settings.allocator,
        )
        selector = BestConfigurationSelector()

        def record(run: BenchmarkRun) -> None:
            selector.consider(run)
            if self.results_db is not None:
                self.results_db.insert_run(session_id, run)

        runs: List[BenchmarkRun] = []
        for variant in self._variants():
            for sort_policy in self._sort_policies():
                self.reporter.configuration(self.kernel.method_name(variant, sort_policy))
                configurations = generate_configurations(
                    schedule, [variant], [sort_policy],
                    accelerator_threads=settings.accelerator_threads,
                    accelerator_sort=self.kernel.no_sort,
                )
                runs.extend(executor.run_sweep(configurations, settings.trials, on_run=record))

        best: Optional[BestResult] = None
        try:
            best = selector.best()
        except NoConfigurationEvaluated as exc:
            # every configuration was skipped; not fatal
            logger.warning("%s", exc)
            self.reporter.nothing_evaluated(str(exc))
        else:
            self.reporter.best(best, self.kernel.method_name(best.configuration.variant,
                                                              best.configuration.sort_policy))
            if self.results_db is not None:
                self.results_db.mark_best(session_id, best)

        return SessionResult(
            runs=runs,
            best=best,
            validation=validation,
            reference_seconds=reference_seconds,
            warmup_seconds=warmup_seconds,
            summary=runs_to_dataframe(runs, self.graph.n_edges),
        )


def build_session(
    graph: Graph,
    settings: BenchmarkSettings,
    environment: Optional[ExecutionEnvironment] = None,
    reporter: Optional[BenchmarkReporter] = None,
    results_db=None,
    clock: Callable[[], float] = time.perf_counter,
) -> BenchmarkSession:
    """Session for ``settings.kernel`` with the allocator chosen by ``settings``."""
    environment = environment or ExecutionEnvironment()
    kernel = KERNELS[settings.kernel](environment, settings.allocator)
    return BenchmarkSession(graph, kernel, environment, settings,
                            reporter=reporter, results_db=results_db, clock=clock)
