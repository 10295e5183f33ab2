"""Inverse isoparametric mapping: physical point -> reference coordinates."""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from .basis import Basis
from .datastructures import QuadMesh
from .geometry import Point2D
from .linalg import gauss_solve, jacobian_2x2

log = logging.getLogger(__name__)


def forward_map(basis: Basis, coords: NDArray[np.float64], local) -> NDArray[np.float64]:
    """Physical point ``sum_i psi_i(local) * coords_i``."""
    return basis.values(local) @ coords


class Newton:
    """Damped Newton iteration for the local coordinates of ``point`` in ``ielem``.

    Solves ``F(xi) = sum_i psi_i(xi) x_i - point = 0``. Each step solves
    ``J d = -F`` and backtracks ``xi + beta d`` (halving ``beta``) while the
    residual norm grows, accepting the step once ``beta`` drops to ``eps``.
    Iteration stops when ``||F|| / ||F0|| < eps`` or after ``max_iters``
    steps; in the latter case the last iterate is kept and ``converged`` is
    False. ``residual_norms`` records the residual norm of every accepted
    iterate and ``halvings`` counts the step reductions.
    """

    def __init__(
        self,
        basis: Basis,
        mesh: QuadMesh,
        point,
        ielem: int,
        max_iters: int = 1000,
        eps: float = 1e-12,
        initial=(0.5, 0.5),
    ):
        self.basis = basis
        self.mesh = mesh
        self.point = Point2D.of(point)
        self.ielem = ielem
        self.max_iters = max_iters
        self.eps = eps

        self.coords = mesh.element_coords(ielem)
        # residuals at round-off level of the coordinates count as converged
        self.abs_tol = 16.0 * np.finfo(np.float64).eps * (1.0 + np.abs(self.coords).max())
        self._target = self.point.as_array()
        self._result = np.array(initial, dtype=np.float64)
        self.iterations = 0
        self.converged = False
        self.halvings = 0
        self.residual_norms: list[float] = []

    @property
    def result(self) -> Point2D:
        return Point2D(float(self._result[0]), float(self._result[1]))

    def residual(self, local: NDArray[np.float64]) -> NDArray[np.float64]:
        return forward_map(self.basis, self.coords, local) - self._target

    def jacobian(self, local: NDArray[np.float64]) -> NDArray[np.float64]:
        jac, _ = jacobian_2x2(self.basis.gradients(local), self.coords)
        return jac

    def compute(self) -> Point2D:
        vector = self.residual(self._result)
        primary_norm = np.linalg.norm(vector)
        current_norm = primary_norm
        self.iterations = 0
        self.halvings = 0
        self.residual_norms = [float(primary_norm)]

        if primary_norm <= self.abs_tol:
            self.converged = True
            return self.result

        while (
            self.iterations < self.max_iters
            and current_norm / primary_norm >= self.eps
            and current_norm > self.abs_tol
        ):
            self.iterations += 1
            previous_norm = current_norm
            delta = gauss_solve(self.jacobian(self._result), -vector)

            start = self._result.copy()
            beta = 1.0
            while True:
                self._result = start + beta * delta
                vector = self.residual(self._result)
                current_norm = np.linalg.norm(vector)
                if current_norm <= previous_norm or beta <= self.eps:
                    break
                beta /= 2.0
                self.halvings += 1
            self.residual_norms.append(float(current_norm))

        self.converged = current_norm / primary_norm < self.eps or current_norm <= self.abs_tol
        if not self.converged:
            log.warning(
                f"Newton did not converge for point {self.point} in element {self.ielem}: "
                f"relative residual {current_norm / primary_norm:.3e} after {self.iterations} iterations"
            )
        return self.result
