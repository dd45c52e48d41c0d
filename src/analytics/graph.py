"""
graph.py - Undirected Graph Handle and Loaders

A :class:`Graph` wraps a symmetric, pattern-only ``scipy.sparse`` CSR
adjacency matrix without self-loops.  Both directions of every undirected
edge are stored, so ``n_edges`` equals the number of stored entries (the
engine's ``nvals``), which is what throughput rates are computed from.

Loaders
-------
    load_graph(path)   - Matrix Market (.mtx / .mtx.gz) or scipy .npz
    from_edges(...)    - build from (u, v) pairs
    random_graph(...)  - seeded Erdos-Renyi style graph for quick runs

Whatever the source, the structure is symmetrised, the diagonal dropped and
all values set to 1 before the handle is built.  The handle is read-only for
the lifetime of a benchmark session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

import numpy as np
import scipy.io
import scipy.sparse as sp

from core.errors import GraphLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Graph:
    """
    Immutable undirected graph.

    Attributes
    ----------
    adjacency : scipy.sparse.csr_matrix
        n x n symmetric 0/1 matrix, int64 values, sorted indices.
    name : str
        Source label used in report lines.
    """
    adjacency: sp.csr_matrix
    name: str = "graph"
    _out_degree: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        # cached out-degree, computed once per handle
        degree = np.diff(self.adjacency.indptr).astype(np.int64)
        degree.setflags(write=False)
        object.__setattr__(self, "_out_degree", degree)

    @property
    def n_vertices(self) -> int:
        return self.adjacency.shape[0]

    @property
    def n_edges(self) -> int:
        return int(self.adjacency.nnz)

    @property
    def out_degree(self) -> np.ndarray:
        return self._out_degree

    def describe(self) -> str:
        return f"{self.name}: nodes: {self.n_vertices} entries: {self.n_edges}"


def _normalise(matrix: sp.spmatrix) -> sp.csr_matrix:
    """Symmetric pattern, no diagonal, int64 ones, canonical CSR."""
    if matrix.shape[0] != matrix.shape[1]:
        raise GraphLoadError(f"Adjacency matrix must be square, got shape {matrix.shape}")
    coo = sp.coo_matrix(matrix)
    off_diagonal = coo.row != coo.col
    rows = coo.row[off_diagonal].astype(np.int64)
    cols = coo.col[off_diagonal].astype(np.int64)

    both_ways = (np.concatenate([rows, cols]), np.concatenate([cols, rows]))
    ones = np.ones(2 * len(rows), dtype=np.int64)
    a = sp.csr_matrix((ones, both_ways), shape=matrix.shape)
    a.sum_duplicates()
    a.data[:] = 1
    a.sort_indices()
    return a


def from_matrix(matrix: sp.spmatrix, name: str = "graph") -> Graph:
    return Graph(adjacency=_normalise(matrix), name=name)


def from_edges(
    edges: Iterable[Tuple[int, int]],
    n_vertices: Optional[int] = None,
    name: str = "edges",
) -> Graph:
    """Build a graph from ``(u, v)`` pairs; duplicates and loops are dropped."""
    pairs = np.asarray(list(edges), dtype=np.int64).reshape(-1, 2)
    if n_vertices is None:
        n_vertices = int(pairs.max()) + 1 if pairs.size else 0
    ones = np.ones(len(pairs), dtype=np.float64)
    coo = sp.coo_matrix((ones, (pairs[:, 0], pairs[:, 1])), shape=(n_vertices, n_vertices))
    return from_matrix(coo, name=name)


def random_graph(n_vertices: int, avg_degree: float, seed: int = 42) -> Graph:
    """
    Seeded random undirected graph with roughly ``avg_degree`` neighbours per vertex.
    """
    if n_vertices < 1:
        raise ValueError(f"n_vertices must be positive, got {n_vertices}")
    density = min(1.0, avg_degree / max(1, n_vertices - 1) / 2.0)
    rng = np.random.default_rng(seed)
    upper = sp.random(n_vertices, n_vertices, density=density, format="coo", random_state=rng)
    return from_matrix(upper, name=f"random_{n_vertices}_{avg_degree:g}")


def load_graph(source: Union[str, Path]) -> Graph:
    """
    Read a graph from a Matrix Market or scipy ``.npz`` file.

    Raises
    ------
    GraphLoadError
        If the file does not exist, has an unsupported suffix, or cannot be
        parsed.
    """
    path = Path(source)
    if not path.exists():
        raise GraphLoadError(f"Graph file not found: {path}")

    suffixes = "".join(path.suffixes[-2:]).lower()
    try:
        if suffixes.endswith(".npz"):
            matrix = sp.load_npz(str(path))
        elif suffixes.endswith(".mtx") or suffixes.endswith(".mtx.gz"):
            matrix = scipy.io.mmread(str(path))
        else:
            raise GraphLoadError(f"Unsupported graph format: {path.name}")
    except GraphLoadError:
        raise
    except (OSError, ValueError) as exc:
        raise GraphLoadError(f"Could not read {path}: {exc}") from exc

    graph = from_matrix(sp.csr_matrix(matrix), name=path.name)
    logger.info("Loaded %s", graph.describe())
    return graph
