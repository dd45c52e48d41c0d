"""
core - Shared limits, errors and the overflow-safe allocation primitive.

    constants   - engine index/size limits and harness defaults
    errors      - BenchmarkError hierarchy used across the harness
    allocation  - overflow-checked zero-filled block allocation with a
                  pluggable backing allocator
"""
