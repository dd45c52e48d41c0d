"""
oracle.py - Correctness Oracle

Compares a candidate result with a trusted reference under an absolute-error
tolerance.  Scalars (triangle counts) and per-vertex vectors (clustering
coefficients) go through the same path: element-wise absolute difference,
reduced with max.

The session validates once, on the warm-up run, so timed trials are never
slowed down by comparisons.  What happens on a mismatch is a policy decision
left to :class:`ValidationPolicy`: by default it is reported and the sweep
continues; with ``strict=True`` it raises :class:`ValidationMismatch`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from core.constants import DEFAULT_TOLERANCE
from core.errors import ValidationMismatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one comparison; ``max_abs_error`` is kept for diagnostics."""
    passed: bool
    max_abs_error: float
    tolerance: float

    def describe(self) -> str:
        status = "pass" if self.passed else "FAIL"
        return f"validation {status}: err: {self.max_abs_error:g} (tolerance {self.tolerance:g})"


def _is_integral(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return False
    if isinstance(value, (int, np.integer)):
        return True
    return isinstance(value, np.ndarray) and np.issubdtype(value.dtype, np.integer)


def _integer_max_abs_error(reference: Any, candidate: Any) -> float:
    ref = np.asarray(reference)
    cand = np.asarray(candidate)
    if ref.shape != cand.shape:
        return math.inf
    if ref.size == 0:
        return 0.0
    # python ints: no wrap-around and no rounding
    diff = max(abs(int(r) - int(c)) for r, c in zip(ref.ravel().tolist(), cand.ravel().tolist()))
    return float(diff)


def max_abs_error(reference: Any, candidate: Any) -> float:
    """
    Largest absolute element-wise difference; ``inf`` on a shape mismatch.

    Integral inputs (triangle counts) are compared exactly in integer
    arithmetic, so counts beyond 2**53 that differ by one still fail.
    """
    if _is_integral(reference) and _is_integral(candidate):
        return _integer_max_abs_error(reference, candidate)
    ref = np.asarray(reference, dtype=np.float64)
    cand = np.asarray(candidate, dtype=np.float64)
    if ref.shape != cand.shape:
        return math.inf
    if ref.size == 0:
        return 0.0
    return float(np.max(np.abs(ref - cand)))


def validate(reference: Any, candidate: Any, tolerance: float = DEFAULT_TOLERANCE) -> ValidationResult:
    """
    Pass iff the maximum absolute difference is strictly below ``tolerance``.

    A NaN anywhere in the difference fails, since ``nan < tolerance`` is false.
    """
    err = max_abs_error(reference, candidate)
    return ValidationResult(passed=bool(err < tolerance), max_abs_error=err, tolerance=tolerance)


@dataclass(frozen=True)
class ValidationPolicy:
    """
    What a failed validation does to the session.

    tolerance : float
        Passed to :func:`validate`.
    strict : bool
        Raise on mismatch instead of logging and continuing.
    """
    tolerance: float = DEFAULT_TOLERANCE
    strict: bool = False

    def check(self, reference: Any, candidate: Any) -> ValidationResult:
        result = validate(reference, candidate, self.tolerance)
        self.enforce(result)
        return result

    def enforce(self, result: ValidationResult) -> None:
        if result.passed:
            return
        if self.strict:
            raise ValidationMismatch(result.max_abs_error, result.tolerance)
        logger.warning("Result mismatch ignored (strict validation off): %s", result.describe())
