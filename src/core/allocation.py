"""
allocation.py - Overflow-Safe Block Allocation

Every buffer the kernels and the executor create is sized as
``item_count * item_size``.  On the engine side those are unsigned 64-bit
quantities, so an unchecked product can silently wrap and hand back a block
far smaller than the caller believes it owns.  The functions here compute the
size with an explicit overflow check first and only then touch the backing
allocator.

Rules shared by both entry points
---------------------------------
    - ``item_count`` and ``item_size`` are clamped to at least 1, so at least
      one byte is always requested (``allocate(0, 0)`` is legal).
    - If the product exceeds ``SIZE_MAX``, or either clamped operand exceeds
      ``INDEX_MAX``, :class:`OutOfMemory` is raised and the backing allocator
      is never called.
    - A backing function returning ``None`` is a failed allocation and also
      raises :class:`OutOfMemory`.  There are no retries.

Backing allocators
------------------
An :class:`Allocator` bundles a raw ``malloc`` and an optional zeroing
``calloc``.  :func:`allocate` delegates to ``calloc`` when one is present and
otherwise falls back to ``malloc`` followed by an explicit zero fill, so the
caller sees the same zero-filled block either way.  The allocator is chosen
once at start-up and passed down explicitly; nothing here keeps global state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from core.constants import INDEX_MAX, SIZE_MAX
from core.errors import OutOfMemory


MallocFunction = Callable[[int], Optional[np.ndarray]]
CallocFunction = Callable[[int, int], Optional[np.ndarray]]


# ---------------------------------------------------------------------------
# Backing allocators
# ---------------------------------------------------------------------------

def _numpy_malloc(nbytes: int) -> Optional[np.ndarray]:
    """Uninitialised byte block, or None if numpy cannot provide it."""
    try:
        return np.empty(nbytes, dtype=np.uint8)
    except MemoryError:
        return None


def _numpy_calloc(nitems: int, item_size: int) -> Optional[np.ndarray]:
    """Zero-filled byte block, or None if numpy cannot provide it."""
    try:
        return np.zeros(nitems * item_size, dtype=np.uint8)
    except MemoryError:
        return None


@dataclass(frozen=True)
class Allocator:
    """
    Pair of backing allocation functions.

    Attributes
    ----------
    malloc : callable(nbytes) -> ndarray or None
        Raw allocation; contents are undefined.
    calloc : callable(nitems, item_size) -> ndarray or None, optional
        Zeroing allocation.  When absent, zeroed blocks are produced by
        ``malloc`` plus an explicit fill.
    """
    malloc: MallocFunction = _numpy_malloc
    calloc: Optional[CallocFunction] = _numpy_calloc

    @property
    def zeroes_natively(self) -> bool:
        return self.calloc is not None


DEFAULT_ALLOCATOR = Allocator()
MALLOC_ONLY_ALLOCATOR = Allocator(calloc=None)


def allocator_from_config(zero_fill: str) -> Allocator:
    """
    Map the ``allocation.zero_fill`` config value to an allocator.

    ``"calloc"`` uses the zeroing backend; ``"memset"`` forces the
    malloc-then-zero path.
    """
    if zero_fill == "calloc":
        return DEFAULT_ALLOCATOR
    if zero_fill == "memset":
        return MALLOC_ONLY_ALLOCATOR
    raise ValueError(f"Unknown zero_fill mode: {zero_fill!r}. Use 'calloc' or 'memset'.")


# ---------------------------------------------------------------------------
# Size arithmetic
# ---------------------------------------------------------------------------

def multiply_size(a: int, b: int) -> Tuple[bool, int]:
    """
    Overflow-checked ``a * b`` in the unsigned 64-bit range.

    Returns
    -------
    (ok, size)
        ``ok`` is False when the product does not fit in ``SIZE_MAX``, in which
        case ``size`` is 0.
    """
    if a < 0 or b < 0:
        return False, 0
    if a == 0 or b == 0:
        return True, 0
    if a > SIZE_MAX // b:
        return False, 0
    return True, a * b


def _checked_size(item_count: int, item_size: int) -> Tuple[int, int, int]:
    item_count = max(1, int(item_count))
    item_size = max(1, int(item_size))
    ok, size = multiply_size(item_count, item_size)
    if not ok or item_count > INDEX_MAX or item_size > INDEX_MAX:
        raise OutOfMemory(item_count, item_size, "size overflow")
    return item_count, item_size, size


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def allocate_uninitialized(
    item_count: int,
    item_size: int,
    allocator: Optional[Allocator] = None,
) -> np.ndarray:
    """Allocate ``max(1,item_count) * max(1,item_size)`` bytes, contents undefined."""
    allocator = allocator or DEFAULT_ALLOCATOR
    item_count, item_size, size = _checked_size(item_count, item_size)

    block = allocator.malloc(size)
    if block is None:
        raise OutOfMemory(item_count, item_size, "malloc returned no memory")
    return block


def allocate(
    item_count: int,
    item_size: int,
    allocator: Optional[Allocator] = None,
) -> np.ndarray:
    """
    Allocate a zero-filled block of ``max(1,item_count) * max(1,item_size)`` bytes.

    Parameters
    ----------
    item_count : int
        Number of items.
    item_size : int
        Size of one item in bytes.
    allocator : Allocator, optional
        Backing functions; defaults to :data:`DEFAULT_ALLOCATOR`.

    Returns
    -------
    ndarray of uint8
        Owned by the caller.

    Raises
    ------
    OutOfMemory
        On size overflow (no backing call is made) or a null backing result.
    """
    allocator = allocator or DEFAULT_ALLOCATOR

    if allocator.calloc is None:
        # no zeroing backend: malloc, then clear the whole block
        block = allocate_uninitialized(item_count, item_size, allocator)
        block.fill(0)
        return block

    item_count, item_size, _ = _checked_size(item_count, item_size)
    block = allocator.calloc(item_count, item_size)
    if block is None:
        raise OutOfMemory(item_count, item_size, "calloc returned no memory")
    return block


def allocate_array(
    count: int,
    dtype=np.float64,
    allocator: Optional[Allocator] = None,
) -> np.ndarray:
    """Zero-filled typed array of exactly ``count`` elements backed by :func:`allocate`."""
    dtype = np.dtype(dtype)
    block = allocate(count, dtype.itemsize, allocator)
    return block.view(dtype)[:count]
