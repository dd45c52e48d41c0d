"""
Exception hierarchy for the benchmark harness.

Everything the harness raises on purpose derives from :class:`BenchmarkError`
so the command-line driver can unwind through a single cleanup point. The
subclasses also inherit from the closest built-in exception, so callers that
only know about ``MemoryError`` or ``RuntimeError`` still catch them.

    OutOfMemory               allocation overflow or null backing allocation
    EngineFailure             candidate/reference kernel or environment error
    ValidationMismatch        result outside tolerance (strict validation only)
    NoConfigurationEvaluated  best() asked for before any run was considered
    GraphLoadError            graph file missing or unreadable
    ConfigurationError        invalid benchmark settings
"""

from __future__ import annotations

from typing import Optional


class BenchmarkError(Exception):
    """Base class for all harness errors."""


class OutOfMemory(BenchmarkError, MemoryError):
    """Requested block overflows the addressable range or cannot be obtained."""

    def __init__(self, item_count: int, item_size: int, reason: str = "") -> None:
        self.item_count = item_count
        self.item_size = item_size
        message = f"out of memory: {item_count} items of {item_size} bytes"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class EngineFailure(BenchmarkError, RuntimeError):
    """A kernel or an environment-control call failed."""

    def __init__(self, operation: str, detail: Optional[str] = None) -> None:
        self.operation = operation
        message = f"{operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ValidationMismatch(BenchmarkError):
    """Candidate result differs from the reference beyond the tolerance."""

    def __init__(self, max_abs_error: float, tolerance: float) -> None:
        self.max_abs_error = max_abs_error
        self.tolerance = tolerance
        super().__init__(
            f"result mismatch: max abs error {max_abs_error:g} "
            f">= tolerance {tolerance:g}"
        )


class NoConfigurationEvaluated(BenchmarkError, LookupError):
    """Raised by the selector when no run has been considered yet."""

    def __init__(self) -> None:
        super().__init__("no configuration evaluated")


class GraphLoadError(BenchmarkError, OSError):
    """Graph source could not be read."""


class ConfigurationError(BenchmarkError, ValueError):
    """Benchmark settings are inconsistent or out of range."""
