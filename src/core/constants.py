"""
===============================================================================
GRAPH KERNEL BENCHMARK - Engine and Harness Constants
===============================================================================
Central repository for the limits and defaults shared by the allocation
primitive, the sweep generator and the benchmark session.

Index limits follow the sparse engine: an index fits in 60 bits, a byte count
in an unsigned 64-bit word.
===============================================================================
"""

# =============================================================================
# ENGINE LIMITS
# =============================================================================
INDEX_MAX = (1 << 60) - 1              # largest valid row/column index
SIZE_MAX = (1 << 64) - 1               # largest representable byte count

# =============================================================================
# BENCHMARK DEFAULTS
# =============================================================================
DEFAULT_TRIALS = 3                     # timed trials per configuration
DEFAULT_TOLERANCE = 1e-6               # max absolute error accepted by the oracle
DEFAULT_SCHEDULE_LENGTH = 1            # halving schedule length when auto-generated
MAX_SCHEDULE_LENGTH = 19               # longest thread list accepted from config
ACCELERATOR_THREADS = 40               # thread count used when the accelerator manages threads

# Throughput is reported in millions of stored edges per second.
RATE_SCALE = 1e-6

# =============================================================================
# AUTO-SORT HEURISTIC
# =============================================================================
AUTOSORT_SAMPLES = 1000                # degrees sampled for mean / median
AUTOSORT_SKEW = 4.0                    # sort if mean > AUTOSORT_SKEW * median

