"""
===============================================================================
GRAPH KERNEL BENCHMARK - Allocation Primitive Test Suite
===============================================================================
Overflow detection, minimum sizes, the zero-fill fallback and null backing
results of the overflow-safe allocator.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest

from core.allocation import (
    DEFAULT_ALLOCATOR, MALLOC_ONLY_ALLOCATOR, Allocator, allocate, allocate_array,
    allocate_uninitialized, allocator_from_config, multiply_size,
)
from core.constants import INDEX_MAX, SIZE_MAX
from core.errors import BenchmarkError, OutOfMemory


# =============================================================================
# Fixtures
# =============================================================================

def recording_allocator(with_calloc=True, garbage=0xAB):
    """Allocator whose backing functions log every call; malloc returns garbage."""
    calls = []

    def malloc(nbytes):
        calls.append(("malloc", nbytes))
        return np.full(nbytes, garbage, dtype=np.uint8)

    def calloc(nitems, item_size):
        calls.append(("calloc", nitems, item_size))
        return np.zeros(nitems * item_size, dtype=np.uint8)

    return Allocator(malloc=malloc, calloc=calloc if with_calloc else None), calls


# =============================================================================
# Overflow
# =============================================================================

class TestOverflow:
    """Oversized requests fail before any backing call."""

    @pytest.mark.parametrize("with_calloc", [True, False])
    @pytest.mark.parametrize("count, size", [
        (2 ** 33, 2 ** 33),          # product exceeds SIZE_MAX
        (SIZE_MAX, 2),
        (INDEX_MAX + 1, 1),          # operand exceeds INDEX_MAX
        (1, INDEX_MAX + 1),
    ])
    def test_overflow_raises_without_backing_call(self, with_calloc, count, size):
        allocator, calls = recording_allocator(with_calloc)
        with pytest.raises(OutOfMemory):
            allocate(count, size, allocator)
        assert calls == []

    def test_uninitialized_overflow_raises_without_backing_call(self):
        allocator, calls = recording_allocator()
        with pytest.raises(OutOfMemory):
            allocate_uninitialized(2 ** 40, 2 ** 40, allocator)
        assert calls == []

    def test_out_of_memory_is_a_memory_error(self):
        with pytest.raises(MemoryError):
            allocate(2 ** 40, 2 ** 40)
        with pytest.raises(BenchmarkError):
            allocate(2 ** 40, 2 ** 40)

    def test_multiply_size_limits(self):
        assert multiply_size(0, 5) == (True, 0)
        assert multiply_size(5, 8) == (True, 40)
        assert multiply_size(SIZE_MAX, 1) == (True, SIZE_MAX)
        assert multiply_size(2 ** 32, 2 ** 32) == (False, 0)
        assert multiply_size(-1, 4) == (False, 0)


# =============================================================================
# Sizes and zero fill
# =============================================================================

class TestSizes:
    """Clamping and block contents."""

    def test_zero_by_zero_yields_one_byte(self):
        block = allocate(0, 0)
        assert block.nbytes >= 1
        assert not block.any()

    def test_clamps_each_operand(self):
        allocator, calls = recording_allocator()
        allocate(0, 8, allocator)
        allocate(3, 0, allocator)
        assert calls == [("calloc", 1, 8), ("calloc", 3, 1)]

    @pytest.mark.parametrize("allocator", [DEFAULT_ALLOCATOR, MALLOC_ONLY_ALLOCATOR])
    def test_five_by_eight_is_forty_zero_bytes(self, allocator):
        block = allocate(5, 8, allocator)
        assert block.dtype == np.uint8
        assert block.nbytes == 40
        assert not block.any()

    def test_fallback_zeroes_garbage_from_malloc(self):
        allocator, calls = recording_allocator(with_calloc=False)
        block = allocate(5, 8, allocator)
        assert calls == [("malloc", 40)]
        assert block.nbytes == 40
        assert not block.any()

    def test_calloc_path_used_when_available(self):
        allocator, calls = recording_allocator(with_calloc=True)
        allocate(5, 8, allocator)
        assert calls == [("calloc", 5, 8)]

    def test_uninitialized_does_not_zero(self):
        allocator, _ = recording_allocator(with_calloc=False, garbage=7)
        block = allocate_uninitialized(4, 2, allocator)
        assert block.nbytes == 8
        assert (block == 7).all()


class TestNullBackingResult:
    """A backing function returning None is an allocation failure."""

    def test_calloc_none_raises(self):
        allocator = Allocator(calloc=lambda n, s: None)
        with pytest.raises(OutOfMemory):
            allocate(5, 8, allocator)

    def test_malloc_none_raises_on_fallback(self):
        allocator = Allocator(malloc=lambda n: None, calloc=None)
        with pytest.raises(OutOfMemory):
            allocate(5, 8, allocator)


# =============================================================================
# Typed arrays and configuration
# =============================================================================

class TestAllocateArray:

    def test_typed_zero_array(self):
        arr = allocate_array(3, np.int64)
        assert arr.dtype == np.int64
        assert arr.shape == (3,)
        np.testing.assert_array_equal(arr, [0, 0, 0])

    def test_empty_array_still_allocates(self):
        allocator, calls = recording_allocator()
        arr = allocate_array(0, np.float64, allocator)
        assert arr.shape == (0,)
        assert calls == [("calloc", 1, 8)]

    def test_array_is_writable(self):
        arr = allocate_array(4, np.float64, MALLOC_ONLY_ALLOCATOR)
        arr[:] = [1.0, 2.0, 3.0, 4.0]
        assert arr.sum() == pytest.approx(10.0)


class TestAllocatorFromConfig:

    def test_modes(self):
        assert allocator_from_config("calloc").zeroes_natively
        assert not allocator_from_config("memset").zeroes_natively

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            allocator_from_config("mmap")
