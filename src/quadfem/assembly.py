"""Local stiffness/mass matrices and their scatter into the global matrix.

Two assemblers share one interface:

- ``StraightMatrixAssembler`` for axis-aligned rectangles. The reference
  matrices are integrated once on the unit square at construction; each
  element then only rescales them by its width and height.
- ``CurvilinearMatrixAssembler`` for general (curved) quadrilaterals. The
  isoparametric Jacobian is evaluated at every quadrature point of every
  element.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import numpy as np
from numpy.typing import NDArray

from .basis import Basis, LinearBasis
from .datastructures import QuadMesh
from .geometry import UNIT_SQUARE, Point2D
from .linalg import inverse_transpose_2x2, jacobian_2x2
from .quadrature import Integration
from .sparse import SparseMatrix

log = logging.getLogger(__name__)


class MatrixAssembler(ABC):
    """Builds local matrices of one element at a time.

    ``global_matrix`` stays ``None`` until :meth:`allocate` (or the caller)
    provides a matrix built from the mesh portrait.
    """

    def __init__(self, basis: Basis, integrator: Integration, mesh: QuadMesh):
        if basis.size != mesh.element_size:
            raise ValueError(
                f"Basis size {basis.size} does not match element size {mesh.element_size}"
            )
        self.basis = basis
        self.integrator = integrator
        self.mesh = mesh
        self.global_matrix: SparseMatrix | None = None
        self.stiffness_matrix = np.zeros((basis.size, basis.size))
        self.mass_matrix = np.zeros((basis.size, basis.size))

    @property
    def basis_size(self) -> int:
        return self.basis.size

    def allocate(self) -> SparseMatrix:
        """Create a zero global matrix with the portrait of the mesh."""
        self.global_matrix = SparseMatrix.from_mesh(self.mesh)
        return self.global_matrix

    @abstractmethod
    def build_local_matrices(self, ielem: int) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Compute ``stiffness_matrix`` and ``mass_matrix`` of element ``ielem``.

        Returns
        -------
        stiffness, mass : (size, size) symmetric arrays (the same objects as
            the ``stiffness_matrix``/``mass_matrix`` attributes)
        """

    def _require_matrix(self) -> SparseMatrix:
        if self.global_matrix is None:
            raise RuntimeError("Initialize the global matrix (use portrait builder)!")
        return self.global_matrix

    def fill_global_matrix(self, i: int, j: int, value: float) -> None:
        """Add one contribution to the global matrix (upper triangle ignored)."""
        self._require_matrix().add(i, j, value)

    def fill_local(self, ielem: int) -> None:
        """Scatter the current stiffness matrix of ``ielem`` into the global matrix."""
        self._require_matrix().add_local(self.mesh.element_nodes[ielem], self.stiffness_matrix)


class StraightMatrixAssembler(MatrixAssembler):
    """Assembler for axis-aligned rectangular elements.

    Element width and height are taken from the first and last node of the
    element (the (0, 0) and (1, 1) reference corners).
    """

    def __init__(self, basis: Basis, integrator: Integration, mesh: QuadMesh):
        super().__init__(basis, integrator, mesh)

        def stiffness_x(p: Point2D):
            g = basis.gradients(p)
            return np.outer(g[0], g[0])

        def stiffness_y(p: Point2D):
            g = basis.gradients(p)
            return np.outer(g[1], g[1])

        def mass(p: Point2D):
            v = basis.values(p)
            return np.outer(v, v)

        self.base_stiffness_matrices = (
            integrator.gauss_2d(stiffness_x, UNIT_SQUARE),
            integrator.gauss_2d(stiffness_y, UNIT_SQUARE),
        )
        self.base_mass_matrix = integrator.gauss_2d(mass, UNIT_SQUARE)

    def element_steps(self, ielem: int) -> tuple[float, float]:
        nodes = self.mesh.element_nodes[ielem]
        b_point = self.mesh.points[nodes[0]]
        e_point = self.mesh.points[nodes[-1]]
        return e_point[0] - b_point[0], e_point[1] - b_point[1]

    def build_local_matrices(self, ielem: int):
        hx, hy = self.element_steps(ielem)
        lam = self.mesh.elements[ielem].coefficient
        kx, ky = self.base_stiffness_matrices

        self.stiffness_matrix[:] = lam * (hy / hx * kx + hx / hy * ky)
        self.mass_matrix[:] = hx * hy * self.base_mass_matrix
        return self.stiffness_matrix, self.mass_matrix


class CurvilinearMatrixAssembler(MatrixAssembler):
    """Isoparametric assembler for curved quadrilaterals.

    Parameters
    ----------
    linear_jacobian : bool
        Compute the geometric Jacobian from the four corner nodes with a
        bilinear map even when ``basis`` is quadratic. The interpolation
        still uses ``basis``. This treats every element as a straight-sided
        quadrilateral for the geometry, so it is only consistent when the
        mid-edge nodes lie on the straight edges; for strongly curved
        elements it changes the discretised domain.
    """

    def __init__(
        self,
        basis: Basis,
        integrator: Integration,
        mesh: QuadMesh,
        linear_jacobian: bool = False,
    ):
        super().__init__(basis, integrator, mesh)
        self.linear_jacobian = linear_jacobian and not isinstance(basis, LinearBasis)
        self.geometry_basis = LinearBasis() if self.linear_jacobian else basis
        self._geometry_nodes = (
            list(basis.corners) if self.linear_jacobian else list(range(basis.size))
        )

    def geometry_coords(self, ielem: int) -> NDArray[np.float64]:
        """Node coordinates that define the geometric map of ``ielem``."""
        return self.mesh.element_coords(ielem)[self._geometry_nodes]

    def calculate_jacobian(self, ielem: int, point: Point2D) -> tuple[NDArray[np.float64], float]:
        """Jacobian matrix and determinant of element ``ielem`` at a reference point."""
        return jacobian_2x2(self.geometry_basis.gradients(point), self.geometry_coords(ielem))

    def build_local_matrices(self, ielem: int):
        basis = self.basis
        coords = self.geometry_coords(ielem)
        lam = self.mesh.elements[ielem].coefficient

        def local_integrand(p: Point2D):
            jac, det = jacobian_2x2(self.geometry_basis.gradients(p), coords)
            grads = inverse_transpose_2x2(jac, det) @ basis.gradients(p)
            values = basis.values(p)
            weight = abs(det)
            return np.stack([grads.T @ grads * weight, np.outer(values, values) * weight])

        stiffness, mass = self.integrator.gauss_2d(local_integrand, UNIT_SQUARE)
        self.stiffness_matrix[:] = lam * stiffness
        self.mass_matrix[:] = mass
        return self.stiffness_matrix, self.mass_matrix


ASSEMBLERS = {
    "straight": StraightMatrixAssembler,
    "curvilinear": CurvilinearMatrixAssembler,
}


def make_assembler(
    name: str, basis: Basis, integrator: Integration, mesh: QuadMesh, **options
) -> MatrixAssembler:
    """Create an assembler by name (``straight`` or ``curvilinear``)."""
    if name not in ASSEMBLERS:
        raise ValueError(f"Unknown assembler: {name}. Use one of {sorted(ASSEMBLERS)}.")
    log.info(f"Using {name} assembler with {basis!r}")
    return ASSEMBLERS[name](basis, integrator, mesh, **options)
