"""
selector.py - Best-Configuration Selection

Keeps the run with the smallest average trial time seen so far.  Comparison
is strict, so among runs that tie on the minimum the first one considered is
kept.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from core.errors import NoConfigurationEvaluated
from performance.executor import BenchmarkRun
from performance.sweep import Configuration


@dataclass(frozen=True)
class BestResult:
    configuration: Configuration
    average_seconds: float


class BestConfigurationSelector:
    """Running minimum over :class:`BenchmarkRun` average times."""

    def __init__(self) -> None:
        self.best_average = math.inf
        self.best_configuration: Optional[Configuration] = None
        self.considered = 0

    def consider(self, run: BenchmarkRun) -> None:
        self.considered += 1
        if run.average_seconds < self.best_average:
            self.best_average = run.average_seconds
            self.best_configuration = run.configuration

    def best(self) -> BestResult:
        if self.best_configuration is None:
            raise NoConfigurationEvaluated()
        return BestResult(self.best_configuration, self.best_average)
