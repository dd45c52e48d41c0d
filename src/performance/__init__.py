"""
performance - Sweep-and-validate benchmarking of graph kernels

The modules follow the path a benchmark session takes through the harness:

    sweep     - Thread schedule (maximum parallelism, halved until zero) and
                its expansion into configurations over engine mode, algorithm
                variant and sort policy.

    oracle    - Correctness check of a candidate result against an
                independently computed reference under an absolute-error
                tolerance, with a strict / lenient mismatch policy.

    executor  - Applies one configuration to the execution environment, times
                repeated trials of the candidate kernel and aggregates them.

    selector  - Keeps the configuration with the smallest average trial time.

    report    - Two-sink progress lines, pandas summary table and the
                thread-scaling plot.

    session   - The driver: reference, warm-up and single validation, sweep,
                best-configuration summary.

Timing is only meaningful when nothing else competes for the machine, so the
harness runs configurations and trials strictly one after another; the
parallelism being measured lives entirely inside the kernel under test.
"""
