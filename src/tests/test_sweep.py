"""
===============================================================================
GRAPH KERNEL BENCHMARK - Sweep Generator Test Suite
===============================================================================
Thread schedules from the halving rule, explicit thread lists with the two
named selections, and expansion into configurations.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest

from analytics.environment import EngineCapacity, EngineMode
from analytics.triangle_count import SortPolicy, TriangleCountMethod
from core.errors import ConfigurationError
from performance.sweep import (
    ThreadSelection, build_thread_schedule, generate_configurations,
    halving_schedule, parse_thread_list,
)

AUTO = ThreadSelection.AUTO_DETECT
ACC = ThreadSelection.ACCELERATOR_MANAGED


class TestHalvingSchedule:

    def test_sixteen_threads_length_five(self):
        assert halving_schedule(16, 5) == [16, 8, 4, 2, 1]

    def test_single_thread_truncates(self):
        assert halving_schedule(1, 5) == [1]

    def test_length_limits_schedule(self):
        assert halving_schedule(64, 3) == [64, 32, 16]

    def test_non_power_of_two(self):
        assert halving_schedule(12, 10) == [12, 6, 3, 1]

    def test_schedule_is_positive_and_non_increasing(self):
        schedule = halving_schedule(40, 19)
        assert all(t > 0 for t in schedule)
        assert all(a >= b for a, b in zip(schedule, schedule[1:]))

    def test_capacity_product_is_starting_point(self):
        capacity = EngineCapacity(outer_threads=2, inner_threads=8)
        assert build_thread_schedule(capacity, 5) == [16, 8, 4, 2, 1]


class TestExplicitThreadLists:

    def test_explicit_list_used_verbatim(self):
        capacity = EngineCapacity(1, 8)
        assert build_thread_schedule(capacity, 5, [40, ACC]) == [40, ACC]

    def test_leading_auto_uses_list_length(self):
        capacity = EngineCapacity(1, 16)
        assert build_thread_schedule(capacity, 1, [AUTO, ACC, ACC]) == [16, 8, 4]

    def test_parse_legacy_zero_sentinels(self):
        assert parse_thread_list([40, 0]) == [40, ACC]
        assert parse_thread_list([0, 0]) == [AUTO, ACC]
        assert parse_thread_list([0]) == [AUTO]

    def test_parse_named_entries(self):
        assert parse_thread_list(["auto"]) == [AUTO]
        assert parse_thread_list(["8", "accelerator"]) == [8, ACC]

    def test_zero_zero_generates_two_entries(self):
        capacity = EngineCapacity(1, 16)
        schedule = build_thread_schedule(capacity, 1, parse_thread_list([0, 0]))
        assert schedule == [16, 8]

    def test_auto_only_first(self):
        with pytest.raises(ConfigurationError):
            parse_thread_list([8, "auto"])

    def test_invalid_entries(self):
        with pytest.raises(ConfigurationError):
            parse_thread_list(["many"])
        with pytest.raises(ConfigurationError):
            parse_thread_list([-2])
        with pytest.raises(ConfigurationError):
            parse_thread_list([1] * 20)

    def test_entries_above_maximum_are_kept(self):
        capacity = EngineCapacity(1, 4)
        assert build_thread_schedule(capacity, 5, [64, 2]) == [64, 2]


class TestGenerateConfigurations:

    def test_order_variant_sort_threads(self):
        configs = list(generate_configurations(
            [8, 4],
            [TriangleCountMethod.COHEN, TriangleCountMethod.SANDIA],
            [SortPolicy.NONE, SortPolicy.AUTO],
        ))
        assert len(configs) == 8
        keys = [(c.variant, c.sort_policy, c.thread_count) for c in configs]
        assert keys[:4] == [
            (TriangleCountMethod.COHEN, SortPolicy.NONE, 8),
            (TriangleCountMethod.COHEN, SortPolicy.NONE, 4),
            (TriangleCountMethod.COHEN, SortPolicy.AUTO, 8),
            (TriangleCountMethod.COHEN, SortPolicy.AUTO, 4),
        ]
        assert all(c.engine_mode == EngineMode.HOST for c in configs)

    def test_accelerator_entry(self):
        (host, acc) = generate_configurations(
            [4, ACC], [TriangleCountMethod.SANDIA_DOT], [SortPolicy.AUTO],
            accelerator_threads=40, accelerator_sort=SortPolicy.NONE,
        )
        assert host.engine_mode == EngineMode.HOST
        assert host.sort_policy == SortPolicy.AUTO
        assert acc.engine_mode == EngineMode.ACCELERATOR
        assert acc.thread_count == 40
        assert acc.sort_policy == SortPolicy.NONE
        assert acc.accelerator_managed
        assert not host.accelerator_managed

    def test_unresolved_auto_rejected(self):
        with pytest.raises(ConfigurationError):
            list(generate_configurations([AUTO], [TriangleCountMethod.COHEN], [SortPolicy.NONE]))

    def test_configuration_is_immutable(self):
        (config,) = generate_configurations([2], [TriangleCountMethod.COHEN], [SortPolicy.NONE])
        with pytest.raises(Exception):
            config.thread_count = 3
        assert "threads=2" in config.label()
