"""Lagrange shape functions on the reference square [0, 1]^2.

Both bases are tensor products of 1D Lagrange polynomials. Local node ``i``
sits at the 1D node indices ``(i % n, i // n)`` where ``n`` is the number of
1D nodes, i.e. nodes are numbered row by row starting at the (0, 0) corner:

    linear (n=2)      quadratic (n=3)

    2 --- 3           6 -- 7 -- 8
    |     |           |         |
    |     |           3    4    5
    0 --- 1           0 -- 1 -- 2

The first node is always the (0, 0) corner and the last one the (1, 1)
corner; mesh builders number element nodes the same way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np


class Basis(ABC):
    """Tensor-product Lagrange basis on the unit square."""

    #: 1D reference nodes on [0, 1]
    line_nodes: tuple[float, ...] = ()

    @property
    def n_line(self) -> int:
        return len(self.line_nodes)

    @property
    def size(self) -> int:
        """Number of local degrees of freedom per element."""
        return self.n_line**2

    @abstractmethod
    def _shape(self, k: int, t: float) -> float:
        """1D shape function ``k`` at ``t``."""

    @abstractmethod
    def _dshape(self, k: int, t: float) -> float:
        """Derivative of 1D shape function ``k`` at ``t``."""

    def _check(self, number: int) -> tuple[int, int]:
        if not 0 <= number < self.size:
            raise IndexError(f"Basis function number {number} out of range [0, {self.size})")
        return number % self.n_line, number // self.n_line

    def psi(self, number: int, point) -> float:
        """Value of local shape function ``number`` at ``point``."""
        ix, iy = self._check(number)
        x, y = point
        return self._shape(ix, x) * self._shape(iy, y)

    def dpsi(self, number: int, axis: int, point) -> float:
        """Partial derivative of shape function ``number`` along ``axis`` (0 = x, 1 = y)."""
        ix, iy = self._check(number)
        x, y = point
        if axis == 0:
            return self._dshape(ix, x) * self._shape(iy, y)
        if axis == 1:
            return self._shape(ix, x) * self._dshape(iy, y)
        raise IndexError(f"Axis {axis} out of range, expected 0 or 1")

    def values(self, point) -> np.ndarray:
        """All shape functions at ``point``, shape (size,)."""
        x, y = point
        n = self.n_line
        sx = np.array([self._shape(k, x) for k in range(n)])
        sy = np.array([self._shape(k, y) for k in range(n)])
        return np.outer(sy, sx).ravel()

    def gradients(self, point) -> np.ndarray:
        """Reference gradients at ``point``, shape (2, size)."""
        x, y = point
        n = self.n_line
        sx = np.array([self._shape(k, x) for k in range(n)])
        sy = np.array([self._shape(k, y) for k in range(n)])
        dx = np.array([self._dshape(k, x) for k in range(n)])
        dy = np.array([self._dshape(k, y) for k in range(n)])
        return np.stack([np.outer(sy, dx).ravel(), np.outer(dy, sx).ravel()])

    @property
    def nodes(self) -> np.ndarray:
        """Reference coordinates of the local nodes, shape (size, 2)."""
        t = np.asarray(self.line_nodes)
        xx, yy = np.meshgrid(t, t)
        return np.column_stack([xx.ravel(), yy.ravel()])

    @property
    def corners(self) -> tuple[int, int, int, int]:
        """Local indices of the corners in lexicographic order (SW, SE, NW, NE)."""
        n = self.n_line
        return (0, n - 1, n * (n - 1), n * n - 1)

    @property
    def boundary_loop(self) -> list[int]:
        """Local nodes walking the element boundary counter-clockwise."""
        n = self.n_line
        bottom = list(range(0, n))
        right = [i * n + n - 1 for i in range(1, n)]
        top = [(n - 1) * n + i for i in range(n - 2, -1, -1)]
        left = [i * n for i in range(n - 2, 0, -1)]
        return bottom + right + top + left

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={self.size})"


class LinearBasis(Basis):
    """Bilinear basis, 4 nodes at the corners."""

    line_nodes = (0.0, 1.0)

    def _shape(self, k: int, t: float) -> float:
        return 1.0 - t if k == 0 else t

    def _dshape(self, k: int, t: float) -> float:
        return -1.0 if k == 0 else 1.0


class QuadraticBasis(Basis):
    """Biquadratic basis, 9 nodes: corners, edge midpoints and centre."""

    line_nodes = (0.0, 0.5, 1.0)

    def _shape(self, k: int, t: float) -> float:
        if k == 0:
            return 2.0 * (t - 0.5) * (t - 1.0)
        if k == 1:
            return -4.0 * t * (t - 1.0)
        return 2.0 * t * (t - 0.5)

    def _dshape(self, k: int, t: float) -> float:
        if k == 0:
            return 4.0 * t - 3.0
        if k == 1:
            return 4.0 - 8.0 * t
        return 4.0 * t - 1.0


BASES = {
    "linear": LinearBasis,
    "quadratic": QuadraticBasis,
}


def make_basis(name: str) -> Basis:
    """Create a basis by name (``linear`` or ``quadratic``)."""
    try:
        return BASES[name]()
    except KeyError:
        raise ValueError(f"Unknown basis: {name}. Use one of {sorted(BASES)}.") from None


def basis_for_element(element_size: int) -> Basis:
    """Basis whose local node count is ``element_size`` (4 or 9)."""
    for cls in BASES.values():
        basis = cls()
        if basis.size == element_size:
            return basis
    raise ValueError(f"No basis with {element_size} local nodes")
