"""Dirichlet boundary conditions: boundary node selection and symmetric elimination."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

import numpy as np
from numba import njit
from numpy.typing import NDArray

from .datastructures import QuadMesh
from .sparse import SparseMatrix

log = logging.getLogger(__name__)


@dataclass
class DirichletBoundary:
    """Prescribed value at one global node.

    ``value`` is usually filled in from the exact solution right before
    elimination, not when the boundary is created.
    """

    node: int
    value: float = 0.0


@dataclass(frozen=True)
class BoundaryParameters:
    """Border switches of a rectangular domain (True = Dirichlet)."""

    left: bool = True
    right: bool = True
    bottom: bool = True
    top: bool = True

    def sides(self) -> list[str]:
        return [name for name in ("left", "right", "bottom", "top") if getattr(self, name)]


def dirichlet_boundaries(mesh: QuadMesh, sides: Iterable[str]) -> list[DirichletBoundary]:
    """One boundary entry per node of each named side.

    Nodes shared by two sides (corners) appear once per side; see
    :func:`unique_boundaries`.
    """
    return [
        DirichletBoundary(int(node))
        for side in sides
        for node in mesh.boundary_nodes(side)
    ]


def unique_boundaries(boundaries: Iterable[DirichletBoundary]) -> list[DirichletBoundary]:
    """Drop repeated nodes; the first occurrence wins."""
    seen: dict[int, DirichletBoundary] = {}
    for boundary in boundaries:
        seen.setdefault(boundary.node, boundary)
    return list(seen.values())


@njit
def _eliminate(di, ig, jg, gg, rhs, check_bc, values):
    """Single pass of symmetric static condensation over all rows."""
    n = len(di)
    for i in range(n):
        if check_bc[i] != -1:
            di[i] = 1.0
            rhs[i] = values[check_bc[i]]
            for k in range(ig[i], ig[i + 1]):
                j = jg[k]
                if check_bc[j] == -1:
                    rhs[j] -= gg[k] * rhs[i]
                gg[k] = 0.0
        else:
            for k in range(ig[i], ig[i + 1]):
                j = jg[k]
                if check_bc[j] == -1:
                    continue
                rhs[i] -= gg[k] * rhs[j]
                gg[k] = 0.0


def apply_dirichlet(
    matrix: SparseMatrix,
    rhs: NDArray[np.float64],
    bc_nodes: NDArray[np.int64],
    bc_values: NDArray[np.float64],
) -> None:
    """Impose Dirichlet values by static condensation, in place.

    Dirichlet rows become identity rows with the prescribed value on the
    right-hand side. Their coupling to free unknowns is moved to the free
    right-hand sides and zeroed, so the matrix stays symmetric. Applying the
    same boundaries twice leaves the system unchanged.

    Rows are visited in increasing order and every stored entry (i, j) has
    ``j < i``, so a Dirichlet column ``j`` already holds its prescribed value
    in ``rhs`` whenever a free row ``i`` reads it.
    """
    bc_nodes = np.asarray(bc_nodes, dtype=np.int64)
    bc_values = np.asarray(bc_values, dtype=np.float64)
    if bc_nodes.shape != bc_values.shape:
        raise ValueError("bc_nodes and bc_values must have the same shape")
    if len(np.unique(bc_nodes)) != len(bc_nodes):
        raise ValueError("Dirichlet nodes must be unique (see unique_boundaries)")
    if len(bc_nodes) and (bc_nodes.min() < 0 or bc_nodes.max() >= matrix.size):
        raise ValueError("Dirichlet node outside the matrix")

    # Resolve all boundary values into a lookup table first
    check_bc = np.full(matrix.size, -1, dtype=np.int64)
    check_bc[bc_nodes] = np.arange(len(bc_nodes))

    _eliminate(matrix.di, matrix.ig, matrix.jg, matrix.gg, rhs, check_bc, bc_values)
    log.debug(f"Eliminated {len(bc_nodes)} Dirichlet nodes")
