"""
analytics - Graph handle, execution environment and the analytic kernels
benchmarked by the harness.

    environment     - thread count / engine mode state with scoped apply
    graph           - immutable symmetric adjacency and its loaders
    triangle_count  - seven triangle-count formulations plus a slow check
    clustering      - local clustering coefficient plus a slow check
"""
