"""
sweep.py - Configuration Sweep Generation

Builds the ordered list of configurations a benchmark session evaluates:

    thread schedule  x  algorithm variants  x  sort policies

The thread schedule starts at the engine's maximum parallelism and halves
(integer division) until it would reach zero or the requested length is
filled, e.g. 16 threads and length 5 give ``[16, 8, 4, 2, 1]``.

Thread selections
-----------------
Configuration files carry thread lists in the legacy form where ``0`` has two
meanings depending on its position.  :func:`parse_thread_list` turns them
into explicit :class:`ThreadSelection` values:

    AUTO_DETECT          first entry: generate the schedule by halving
    ACCELERATOR_MANAGED  any later entry: run on the accelerator with a fixed
                         thread count chosen by the harness

Entries larger than the engine's maximum stay in the schedule; the executor
skips them when it gets there.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, List, Optional, Sequence, Union

from analytics.environment import EngineCapacity, EngineMode
from core.constants import ACCELERATOR_THREADS, MAX_SCHEDULE_LENGTH
from core.errors import ConfigurationError


class ThreadSelection(Enum):
    AUTO_DETECT = "auto"
    ACCELERATOR_MANAGED = "accelerator"


ThreadEntry = Union[int, ThreadSelection]


@dataclass(frozen=True)
class Configuration:
    """
    One point of the sweep.  Created here, never mutated by the executor.

    Attributes
    ----------
    thread_selection : int or ThreadSelection
        Entry of the schedule this configuration came from.
    thread_count : int
        Threads actually applied to the environment.
    engine_mode : EngineMode
    variant : enum member of the kernel's method enumeration
    sort_policy : SortPolicy
    """
    thread_selection: ThreadEntry
    thread_count: int
    engine_mode: EngineMode
    variant: Any
    sort_policy: Any

    @property
    def accelerator_managed(self) -> bool:
        return self.thread_selection is ThreadSelection.ACCELERATOR_MANAGED

    def label(self) -> str:
        return (
            f"{self.engine_mode.value} threads={self.thread_count} "
            f"variant={getattr(self.variant, 'name', self.variant)} "
            f"sort={getattr(self.sort_policy, 'name', self.sort_policy)}"
        )


def halving_schedule(max_threads: int, length: int) -> List[int]:
    """``[max, max//2, ...]`` with at most ``length`` entries, stopping before 0."""
    if length < 1 or max_threads < 1:
        return []
    schedule = [max_threads]
    for _ in range(1, length):
        nxt = schedule[-1] // 2
        if nxt == 0:
            break
        schedule.append(nxt)
    return schedule


def parse_thread_list(values: Sequence[Any]) -> List[ThreadEntry]:
    """
    Convert a config/CLI thread list into explicit entries.

    ``0`` or ``"auto"`` in first position becomes AUTO_DETECT; ``0`` or
    ``"accelerator"`` anywhere else becomes ACCELERATOR_MANAGED.
    """
    if len(values) > MAX_SCHEDULE_LENGTH:
        raise ConfigurationError(
            f"Thread list has {len(values)} entries; at most {MAX_SCHEDULE_LENGTH} allowed"
        )
    entries: List[ThreadEntry] = []
    for position, value in enumerate(values):
        if isinstance(value, ThreadSelection):
            entries.append(value)
            continue
        text = str(value).strip().lower()
        if text == "auto" or (position == 0 and text == "0"):
            if position != 0:
                raise ConfigurationError("'auto' is only valid as the first thread entry")
            entries.append(ThreadSelection.AUTO_DETECT)
        elif text in ("0", "accelerator", "gpu"):
            entries.append(ThreadSelection.ACCELERATOR_MANAGED)
        else:
            try:
                count = int(text)
            except ValueError:
                raise ConfigurationError(f"Invalid thread entry: {value!r}") from None
            if count < 0:
                raise ConfigurationError(f"Thread count must not be negative, got {count}")
            entries.append(count)
    return entries


def build_thread_schedule(
    capacity: EngineCapacity,
    length: int,
    explicit: Optional[Sequence[ThreadEntry]] = None,
) -> List[ThreadEntry]:
    """
    Thread schedule for a session.

    Parameters
    ----------
    capacity : EngineCapacity
        Provides ``max_threads`` for the halving rule.
    length : int
        Maximum schedule length when auto-generating.
    explicit : sequence, optional
        Caller-supplied entries.  Used verbatim unless the first entry is
        AUTO_DETECT, in which case the halving rule runs with
        ``length = len(explicit)``.
    """
    if explicit:
        if explicit[0] is ThreadSelection.AUTO_DETECT:
            return list(halving_schedule(capacity.max_threads, len(explicit)))
        return list(explicit)
    return list(halving_schedule(capacity.max_threads, length))


def generate_configurations(
    schedule: Sequence[ThreadEntry],
    variants: Sequence[Any],
    sort_policies: Sequence[Any],
    accelerator_threads: int = ACCELERATOR_THREADS,
    accelerator_sort: Any = None,
) -> Iterator[Configuration]:
    """
    Expand the sweep in order variant -> sort policy -> thread entry.

    Accelerator-managed entries always run with ``accelerator_threads`` and
    ``accelerator_sort`` (sorting is not done on the accelerator); pass the
    kernel's "no sort" member for it.
    """
    for variant in variants:
        for sort_policy in sort_policies:
            for entry in schedule:
                if entry is ThreadSelection.ACCELERATOR_MANAGED:
                    yield Configuration(
                        thread_selection=entry,
                        thread_count=accelerator_threads,
                        engine_mode=EngineMode.ACCELERATOR,
                        variant=variant,
                        sort_policy=accelerator_sort if accelerator_sort is not None else sort_policy,
                    )
                elif entry is ThreadSelection.AUTO_DETECT:
                    raise ConfigurationError("AUTO_DETECT must be resolved by build_thread_schedule first")
                else:
                    yield Configuration(
                        thread_selection=entry,
                        thread_count=int(entry),
                        engine_mode=EngineMode.HOST,
                        variant=variant,
                        sort_policy=sort_policy,
                    )
