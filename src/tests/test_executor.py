"""
===============================================================================
GRAPH KERNEL BENCHMARK - Benchmark Executor & Selector Test Suite
===============================================================================
Timing aggregation with a deterministic clock, environment application and
restore, failure propagation, thread-limit skipping, two-sink reporting and
best-configuration selection.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import io

import pytest

from analytics.environment import EngineCapacity, EngineMode, ExecutionEnvironment
from analytics.graph import from_edges
from analytics.triangle_count import SortPolicy, TriangleCountMethod
from core.errors import ConfigurationError, EngineFailure, NoConfigurationEvaluated
from performance.executor import BenchmarkExecutor, BenchmarkRun, TrialMeasurement
from performance.report import BenchmarkReporter
from performance.selector import BestConfigurationSelector
from performance.sweep import Configuration, ThreadSelection


# =============================================================================
# Helpers
# =============================================================================

class FakeClock:
    """Alternates start/end readings so trial ``i`` lasts ``durations[i]``."""

    def __init__(self, durations):
        self.durations = list(durations)
        self.now = 0.0
        self._in_trial = False

    def __call__(self):
        if self._in_trial:
            self.now += self.durations.pop(0)
        else:
            self.now += 1.0
        self._in_trial = not self._in_trial
        return self.now


def host_config(threads, variant=TriangleCountMethod.COHEN):
    return Configuration(threads, threads, EngineMode.HOST, variant, SortPolicy.NONE)


def accelerator_config(threads=40):
    return Configuration(ThreadSelection.ACCELERATOR_MANAGED, threads,
                         EngineMode.ACCELERATOR, TriangleCountMethod.COHEN, SortPolicy.NONE)


@pytest.fixture
def graph():
    return from_edges([(0, 1), (1, 2), (2, 0), (2, 3)], name="tiny")


@pytest.fixture
def environment():
    return ExecutionEnvironment(EngineCapacity(outer_threads=1, inner_threads=4))


# =============================================================================
# Executor
# =============================================================================

class TestRunAggregation:

    def test_four_trial_average(self, graph, environment):
        executor = BenchmarkExecutor(graph, lambda g, v, s: 1, environment,
                                     clock=FakeClock([0.10, 0.12, 0.09, 0.11]))
        run = executor.run(host_config(2), trial_count=4)
        assert len(run.measurements) == 4
        assert run.elapsed == pytest.approx([0.10, 0.12, 0.09, 0.11])
        assert run.average_seconds == pytest.approx(0.105)
        assert [m.trial_index for m in run.measurements] == [0, 1, 2, 3]

    def test_throughput(self, graph, environment):
        executor = BenchmarkExecutor(graph, lambda g, v, s: 1, environment,
                                     clock=FakeClock([0.5, 0.5]))
        run = executor.run(host_config(1), trial_count=2)
        assert run.throughput(graph.n_edges) == pytest.approx(graph.n_edges / 0.5)

    def test_zero_trials_rejected(self, graph, environment):
        executor = BenchmarkExecutor(graph, lambda g, v, s: 1, environment)
        with pytest.raises(ConfigurationError):
            executor.run(host_config(1), trial_count=0)

    def test_empty_run_average_is_nan(self):
        run = BenchmarkRun(host_config(1))
        assert run.average_seconds != run.average_seconds


class TestEnvironmentApplication:

    def test_candidate_sees_configuration(self, graph, environment):
        seen = []

        def candidate(g, variant, sort_policy):
            seen.append((environment.threads, environment.engine_mode, variant, sort_policy))
            return 0

        executor = BenchmarkExecutor(graph, candidate, environment)
        executor.run(host_config(2), trial_count=2)
        executor.run(accelerator_config(), trial_count=1)

        assert seen[0] == (2, EngineMode.HOST, TriangleCountMethod.COHEN, SortPolicy.NONE)
        assert seen[1] == seen[0]
        assert seen[2][:2] == (40, EngineMode.ACCELERATOR)

    def test_environment_restored_after_run(self, graph, environment):
        executor = BenchmarkExecutor(graph, lambda g, v, s: 0, environment)
        executor.run(accelerator_config(8), trial_count=1)
        assert environment.threads == 4
        assert environment.engine_mode == EngineMode.HOST


class TestFailures:

    def test_candidate_error_becomes_engine_failure(self, graph, environment):
        def broken(g, v, s):
            raise RuntimeError("kernel exploded")

        executor = BenchmarkExecutor(graph, broken, environment)
        with pytest.raises(EngineFailure) as info:
            executor.run(host_config(1), trial_count=3)
        assert isinstance(info.value.__cause__, RuntimeError)
        # environment restored even on failure
        assert environment.threads == 4

    def test_failure_stops_sweep(self, graph, environment):
        calls = []

        def flaky(g, v, s):
            calls.append(environment.threads)
            if environment.threads == 2:
                raise ValueError("bad state")
            return 0

        executor = BenchmarkExecutor(graph, flaky, environment)
        with pytest.raises(EngineFailure):
            executor.run_sweep([host_config(4), host_config(2), host_config(1)], trial_count=1)
        assert calls == [4, 2]

    def test_invalid_thread_count_is_engine_failure(self, graph, environment):
        executor = BenchmarkExecutor(graph, lambda g, v, s: 0, environment)
        with pytest.raises(EngineFailure):
            executor.run(host_config(0), trial_count=1)


class TestSweep:

    def test_skips_host_configurations_above_maximum(self, graph, environment):
        executor = BenchmarkExecutor(graph, lambda g, v, s: 0, environment)
        seen = []
        runs = executor.run_sweep(
            [host_config(8), host_config(4), accelerator_config(), host_config(2)],
            trial_count=1, on_run=seen.append,
        )
        assert [r.configuration.thread_count for r in runs] == [4, 40, 2]
        assert seen == runs

    def test_two_sink_report(self, graph, environment):
        primary, secondary = io.StringIO(), io.StringIO()
        reporter = BenchmarkReporter("TC", "tiny", graph.n_edges, primary, secondary)
        executor = BenchmarkExecutor(graph, lambda g, v, s: 0, environment,
                                     reporter=reporter, clock=FakeClock([0.2, 0.2]))
        executor.run_sweep([host_config(8), host_config(2)], trial_count=2)

        for stream in (primary, secondary):
            text = stream.getvalue()
            assert text.count("trial") == 2
            assert "Avg: TC host nthreads:   2" in text
        assert "skipped: 8 threads" in primary.getvalue()


# =============================================================================
# Selector
# =============================================================================

def run_with_average(configuration, seconds):
    return BenchmarkRun(configuration, [TrialMeasurement(configuration, 0, seconds)])


class TestBestConfigurationSelector:

    def test_first_of_tied_minima_wins(self):
        configs = [host_config(t) for t in (8, 4, 2, 1)]
        selector = BestConfigurationSelector()
        for config, seconds in zip(configs, [3.2, 1.1, 4.0, 1.1]):
            selector.consider(run_with_average(config, seconds))
        best = selector.best()
        assert best.configuration is configs[1]
        assert best.average_seconds == pytest.approx(1.1)
        assert selector.considered == 4

    def test_nothing_evaluated(self):
        with pytest.raises(NoConfigurationEvaluated) as info:
            BestConfigurationSelector().best()
        assert "no configuration evaluated" in str(info.value)

    def test_single_run(self):
        selector = BestConfigurationSelector()
        selector.consider(run_with_average(host_config(1), 0.5))
        assert selector.best().average_seconds == 0.5
