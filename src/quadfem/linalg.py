"""Small dense kernels: Gaussian elimination and isoparametric Jacobians."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

PIVOT_EPS = 1e-14


def gauss_solve(
    a: NDArray[np.float64],
    b: NDArray[np.float64],
    eps: float = PIVOT_EPS,
) -> NDArray[np.float64]:
    """Solve ``a x = b`` by Gaussian elimination with partial pivoting.

    ``a`` and ``b`` are not modified. Raises ``numpy.linalg.LinAlgError`` when
    the pivot left after row exchange is below ``eps`` in magnitude.
    """
    a = np.array(a, dtype=np.float64)
    b = np.array(b, dtype=np.float64)
    n = len(b)

    for k in range(n):
        index = k + int(np.argmax(np.abs(a[k:, k])))
        if index != k:
            a[[k, index]] = a[[index, k]]
            b[[k, index]] = b[[index, k]]

        pivot = a[k, k]
        if abs(pivot) < eps:
            raise np.linalg.LinAlgError(f"Singular Jacobian: zero pivot in column {k}")

        for i in range(k + 1, n):
            factor = a[i, k] / pivot
            a[i, k:] -= factor * a[k, k:]
            b[i] -= factor * b[k]

    x = np.zeros(n)
    for k in range(n - 1, -1, -1):
        x[k] = (b[k] - a[k, k + 1:] @ x[k + 1:]) / a[k, k]
    return x


def jacobian_2x2(
    gradients: NDArray[np.float64],
    coords: NDArray[np.float64],
) -> tuple[NDArray[np.float64], float]:
    """Jacobian of the map ``xi -> sum_i psi_i(xi) * coords_i``.

    Parameters
    ----------
    gradients : (2, n) reference gradients of the basis at one point
    coords : (n, 2) physical node coordinates

    Returns
    -------
    J : (2, 2) with ``J[a, b] = d x_a / d xi_b``
    det : determinant of ``J``
    """
    jac = coords.T @ gradients.T
    det = jac[0, 0] * jac[1, 1] - jac[0, 1] * jac[1, 0]
    return jac, det


def inverse_transpose_2x2(jac: NDArray[np.float64], det: float) -> NDArray[np.float64]:
    """``J^{-T}``, which maps reference gradients to physical gradients."""
    if det == 0.0:
        raise np.linalg.LinAlgError("Degenerate element: zero Jacobian determinant")
    return np.array([
        [jac[1, 1], -jac[1, 0]],
        [-jac[0, 1], jac[0, 0]],
    ]) / det
