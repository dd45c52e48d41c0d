"""
environment.py - Execution Environment of the Sparse Engine

The engine exposes its parallelism and its host/accelerator selection only as
settings that apply to every subsequent call, not as per-call parameters.
:class:`ExecutionEnvironment` holds that state as an explicit object that is
passed to the kernels and the executor instead of living in module globals.

``configured()`` applies a thread count and engine mode for the duration of a
``with`` block and restores the previous values afterwards.  It holds a single
lock for the whole block, so the apply / run / measure sequence of one
configuration can never interleave with another caller's.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


class EngineMode(Enum):
    """Where the analytic kernel executes."""
    HOST = "host"
    ACCELERATOR = "accelerator"


@dataclass(frozen=True)
class EngineCapacity:
    """
    Maximum usable parallelism, probed once at start-up.

    outer_threads : int
        Threads available to independent outer tasks.
    inner_threads : int
        Threads available inside each engine call.
    """
    outer_threads: int
    inner_threads: int

    @property
    def max_threads(self) -> int:
        return self.outer_threads * self.inner_threads


def probe_capacity() -> EngineCapacity:
    """Capacity of this process: one outer task, one inner thread per usable CPU."""
    if hasattr(os, "sched_getaffinity"):
        ncpu = len(os.sched_getaffinity(0))
    else:
        ncpu = os.cpu_count() or 1
    return EngineCapacity(outer_threads=1, inner_threads=max(1, ncpu))


class ExecutionEnvironment:
    """
    Thread count and engine mode shared by every kernel call.

    Parameters
    ----------
    capacity : EngineCapacity, optional
        Defaults to :func:`probe_capacity`.  Immutable for the session.
    """

    def __init__(self, capacity: Optional[EngineCapacity] = None) -> None:
        self._capacity = capacity or probe_capacity()
        self._outer = self._capacity.outer_threads
        self._inner = self._capacity.inner_threads
        self._mode = EngineMode.HOST
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    #  Engine control
    # ------------------------------------------------------------------ #

    def get_capacity(self) -> EngineCapacity:
        return self._capacity

    def set_threads(self, outer: int, inner: int) -> None:
        if outer < 1 or inner < 1:
            raise ValueError(f"Thread counts must be positive, got ({outer}, {inner})")
        self._outer = int(outer)
        self._inner = int(inner)

    def set_engine_mode(self, mode: EngineMode) -> None:
        if not isinstance(mode, EngineMode):
            raise ValueError(f"Unknown engine mode: {mode!r}")
        self._mode = mode

    @property
    def threads(self) -> int:
        return self._outer * self._inner

    @property
    def engine_mode(self) -> EngineMode:
        return self._mode

    # ------------------------------------------------------------------ #
    #  Scoped configuration
    # ------------------------------------------------------------------ #

    @contextmanager
    def configured(self, threads: int, mode: EngineMode) -> Iterator["ExecutionEnvironment"]:
        """Apply ``(1, threads)`` and ``mode`` inside the block, restore on exit."""
        with self._lock:
            saved = (self._outer, self._inner, self._mode)
            self.set_threads(1, threads)
            self.set_engine_mode(mode)
            logger.debug("environment: %d threads, %s", threads, mode.value)
            try:
                yield self
            finally:
                self._outer, self._inner, self._mode = saved

    def __repr__(self) -> str:
        return (
            f"ExecutionEnvironment(threads={self.threads}, mode={self._mode.value}, "
            f"max_threads={self._capacity.max_threads})"
        )
