"""Symmetric sparse matrix in lower-triangular CSR ("portrait") storage.

Storage
-------
di : (n,) diagonal
ig : (n + 1,) row pointers into ``jg``/``gg``
jg : (nnz,) column indices, strictly increasing per row, all ``< row``
gg : (nnz,) values of the strict lower triangle; the upper triangle is implied
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numba import njit
from numpy.typing import NDArray
from scipy.sparse import coo_matrix, csr_matrix

if TYPE_CHECKING:
    from .datastructures import QuadMesh


def build_portrait(
    element_nodes: NDArray[np.int64], n_nodes: int
) -> tuple[NDArray[np.int64], NDArray[np.int64]]:
    """
    Sparsity pattern of the strict lower triangle from element connectivity.

    Every pair of nodes sharing an element gets one slot. Pairs are
    deduplicated by sorting, so the cost is O(k log k) with
    ``k = n_elements * n_local**2``.

    Returns
    -------
    ig : (n_nodes + 1,) row pointers, ``ig[0] = 0`` and ``ig[-1] = nnz``
    jg : (nnz,) column indices
    """
    nodes = np.asarray(element_nodes, dtype=np.int64)
    n = nodes.shape[1]

    # Build (row, col) pairs for all element matrix entries
    rows = np.repeat(nodes, n, axis=1).ravel()
    cols = np.tile(nodes, n).ravel()
    lower = cols < rows
    rows, cols = rows[lower], cols[lower]

    # Sort by (row, col) to group duplicates
    sort_order = np.lexsort((cols, rows))
    sorted_rows = rows[sort_order]
    sorted_cols = cols[sort_order]

    # Find boundaries between unique (row, col) pairs
    row_diff = np.diff(sorted_rows, prepend=-1)
    col_diff = np.diff(sorted_cols, prepend=-1)
    is_new_pair = (row_diff != 0) | (col_diff != 0)

    unique_rows = sorted_rows[is_new_pair]
    jg = sorted_cols[is_new_pair].copy()

    # ig: cumulative count of entries per row
    ig = np.zeros(n_nodes + 1, dtype=np.int64)
    np.add.at(ig, unique_rows + 1, 1)
    np.cumsum(ig, out=ig)

    return ig, jg


@njit
def _matvec(di, ig, jg, gg, x):
    """Symmetric product, each stored entry used for both triangles."""
    n = len(di)
    y = np.zeros(n)
    for i in range(n):
        y[i] += di[i] * x[i]
        for k in range(ig[i], ig[i + 1]):
            j = jg[k]
            y[i] += gg[k] * x[j]
            y[j] += gg[k] * x[i]
    return y


@njit
def _find_slot(ig, jg, i, j):
    for k in range(ig[i], ig[i + 1]):
        if jg[k] == j:
            return k
    return -1


@njit
def _add_local(di, ig, jg, gg, nodes, local):
    """
    Scatter a full local matrix into the global one.

    Returns the number of lower-triangle entries without a slot (0 when the
    portrait was built from the same connectivity).
    """
    n = len(nodes)
    missing = 0
    for a in range(n):
        i = nodes[a]
        for b in range(n):
            j = nodes[b]
            if i == j:
                di[i] += local[a, b]
            elif i > j:
                k = _find_slot(ig, jg, i, j)
                if k < 0:
                    missing += 1
                else:
                    gg[k] += local[a, b]
    return missing


class SparseMatrix:
    """Symmetric sparse matrix storing the diagonal and the strict lower triangle."""

    def __init__(self, ig: NDArray[np.int64], jg: NDArray[np.int64]):
        self.ig = np.asarray(ig, dtype=np.int64)
        self.jg = np.asarray(jg, dtype=np.int64)
        if self.ig[0] != 0 or self.ig[-1] != len(self.jg):
            raise ValueError("Inconsistent portrait: ig must start at 0 and end at len(jg)")
        self.di = np.zeros(len(self.ig) - 1)
        self.gg = np.zeros(len(self.jg))

    @classmethod
    def from_mesh(cls, mesh: QuadMesh) -> SparseMatrix:
        """Allocate a zero matrix with the portrait of ``mesh``."""
        return cls(*build_portrait(mesh.element_nodes, mesh.n_nodes))

    @property
    def size(self) -> int:
        return len(self.di)

    @property
    def nnz(self) -> int:
        """Number of stored off-diagonal entries."""
        return len(self.jg)

    def matvec(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (self.size,):
            raise ValueError(f"Vector of shape {x.shape} does not match matrix size {self.size}")
        return _matvec(self.di, self.ig, self.jg, self.gg, x)

    def __matmul__(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.matvec(x)

    def add(self, i: int, j: int, value: float) -> None:
        """Add ``value`` at (i, j).

        Contributions with ``i < j`` are ignored: the upper triangle is implied
        by symmetry, so callers may scatter both (i, j) and (j, i).
        """
        if i == j:
            self.di[i] += value
            return
        if i < j:
            return
        k = _find_slot(self.ig, self.jg, i, j)
        if k < 0:
            raise KeyError(f"No slot ({i}, {j}) in the matrix portrait")
        self.gg[k] += value

    def add_local(self, nodes: NDArray[np.int64], local: NDArray[np.float64]) -> None:
        """Scatter a local element matrix with the same rules as :meth:`add`."""
        missing = _add_local(
            self.di, self.ig, self.jg, self.gg,
            np.asarray(nodes, dtype=np.int64), np.asarray(local, dtype=np.float64),
        )
        if missing:
            raise KeyError(f"{missing} local entries have no slot in the matrix portrait")

    def clear(self) -> None:
        self.di[:] = 0.0
        self.gg[:] = 0.0

    def copy(self) -> SparseMatrix:
        other = SparseMatrix(self.ig.copy(), self.jg.copy())
        other.di[:] = self.di
        other.gg[:] = self.gg
        return other

    def row_indices(self) -> NDArray[np.int64]:
        """Row index of every stored off-diagonal entry."""
        return np.repeat(np.arange(self.size), np.diff(self.ig))

    def to_scipy(self) -> csr_matrix:
        """Full symmetric matrix as ``scipy.sparse.csr_matrix``."""
        n = self.size
        rows = self.row_indices()
        diag = np.arange(n)
        data = np.concatenate([self.di, self.gg, self.gg])
        r = np.concatenate([diag, rows, self.jg])
        c = np.concatenate([diag, self.jg, rows])
        return coo_matrix((data, (r, c)), shape=(n, n)).tocsr()

    def toarray(self) -> NDArray[np.float64]:
        return self.to_scipy().toarray()

    def __repr__(self) -> str:
        return f"SparseMatrix(size={self.size}, nnz={self.nnz})"
