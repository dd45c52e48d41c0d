"""
clustering.py - Local Clustering Coefficient Kernels

For an undirected graph the local clustering coefficient of vertex i is the
fraction of pairs of its neighbours that are themselves adjacent:

    c_i = 2 t_i / (d_i (d_i - 1)),   t_i = triangles through i

With A the adjacency matrix, ``((A*A) .* A)`` summed along row i equals
``2 t_i``, so the candidate kernel is one masked product followed by a
row-wise scale.  Vertices of degree 0 or 1 get coefficient 0.

The reference (:func:`check_lcc`) walks neighbour lists directly and shares
no code with the candidate.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from analytics.environment import EngineMode, ExecutionEnvironment
from analytics.graph import Graph
from analytics.triangle_count import SortPolicy
from core.allocation import Allocator, allocate_array

logger = logging.getLogger(__name__)


class ClusteringMethod(Enum):
    DEFAULT = 0


def clustering_method_name(method: ClusteringMethod, sort_policy: SortPolicy) -> str:
    return "LCC: ((A*A) .* A) / (d (d-1))"


class LocalClusteringCoefficient:
    """
    Candidate LCC kernel bound to an execution environment.

    Returns a float64 vector of length ``graph.n_vertices``.  Sorting does not
    apply to this kernel; the ``sort_policy`` argument is accepted so the
    kernel fits the common candidate signature.
    """

    def __init__(self, environment: ExecutionEnvironment, allocator: Optional[Allocator] = None) -> None:
        self.environment = environment
        self.allocator = allocator

    def _row_blocks(self, n: int) -> List[Tuple[int, int]]:
        if self.environment.engine_mode == EngineMode.ACCELERATOR or n == 0:
            return [(0, n)]
        nblocks = max(1, min(self.environment.threads, n))
        edges = np.linspace(0, n, nblocks + 1).astype(np.int64)
        return [(int(edges[i]), int(edges[i + 1])) for i in range(nblocks)]

    def __call__(self, graph: Graph, method: ClusteringMethod = ClusteringMethod.DEFAULT,
                 sort_policy: SortPolicy = SortPolicy.NONE) -> np.ndarray:
        a = graph.adjacency
        n = graph.n_vertices
        degree = graph.out_degree.astype(np.float64)
        coefficients = allocate_array(n, np.float64, self.allocator)

        def fill(start: int, stop: int) -> None:
            rows = a[start:stop]
            closed = np.asarray((rows @ a).multiply(rows).sum(axis=1), dtype=np.float64).ravel()
            d = degree[start:stop]
            pairs = d * (d - 1.0)
            np.divide(closed, pairs, out=coefficients[start:stop], where=pairs > 0)

        blocks = self._row_blocks(n)
        if len(blocks) == 1:
            fill(*blocks[0])
        else:
            with ThreadPoolExecutor(max_workers=len(blocks)) as pool:
                for future in [pool.submit(fill, start, stop) for start, stop in blocks]:
                    future.result()
        return coefficients


def check_lcc(graph: Graph) -> np.ndarray:
    """Reference LCC from explicit neighbour-set intersections."""
    indptr = graph.adjacency.indptr
    indices = graph.adjacency.indices
    n = graph.n_vertices
    result = np.zeros(n, dtype=np.float64)
    neighbour_sets = [set(indices[indptr[u]:indptr[u + 1]].tolist()) for u in range(n)]
    for u in range(n):
        nbrs = neighbour_sets[u]
        d = len(nbrs)
        if d < 2:
            continue
        # every edge among the neighbours is seen from both of its ends
        links = sum(len(nbrs & neighbour_sets[v]) for v in nbrs)
        result[u] = links / (d * (d - 1))
    return result
