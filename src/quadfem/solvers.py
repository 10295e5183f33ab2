"""Iterative solvers for the assembled symmetric system."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

import numpy as np
from numba import njit
from numpy.typing import NDArray

from .datastructures import SolverMetrics
from .sparse import SparseMatrix

log = logging.getLogger(__name__)

IterationObserver = Callable[[int, float], None]


@njit
def _incomplete_cholesky(di, ig, jg, gg):
    """
    IC(0) factorisation ``A ~ L L^T`` restricted to the portrait of ``A``.

    Returns (ld, lg, bad_row) with the diagonal and strict lower values of
    ``L``; ``bad_row`` is -1 on success, otherwise the row whose pivot is not
    positive.
    """
    n = len(di)
    ld = np.zeros(n)
    lg = np.zeros(len(gg))
    for i in range(n):
        sum_d = 0.0
        for k in range(ig[i], ig[i + 1]):
            j = jg[k]
            s = gg[k]
            # dot product of rows i and j of L over common columns < j
            ki = ig[i]
            kj = ig[j]
            while ki < k and kj < ig[j + 1]:
                ci = jg[ki]
                cj = jg[kj]
                if ci == cj:
                    s -= lg[ki] * lg[kj]
                    ki += 1
                    kj += 1
                elif ci < cj:
                    ki += 1
                else:
                    kj += 1
            lg[k] = s / ld[j]
            sum_d += lg[k] * lg[k]
        pivot = di[i] - sum_d
        if pivot <= 0.0:
            return ld, lg, i
        ld[i] = np.sqrt(pivot)
    return ld, lg, -1


@njit
def _cholesky_solve(ld, lg, ig, jg, r):
    """Solve ``L L^T z = r``."""
    n = len(ld)
    y = r.copy()
    for i in range(n):
        s = y[i]
        for k in range(ig[i], ig[i + 1]):
            s -= lg[k] * y[jg[k]]
        y[i] = s / ld[i]
    for i in range(n - 1, -1, -1):
        y[i] /= ld[i]
        for k in range(ig[i], ig[i + 1]):
            y[jg[k]] -= lg[k] * y[i]
    return y


class IterativeSolver(ABC):
    """Base class: holds the system, the stopping rule and the results.

    Parameters
    ----------
    max_iters : int
        Hard iteration bound. Reaching it is reported, not raised.
    eps : float
        Relative residual ``||r|| / ||b||`` at which iteration stops.
    on_iteration : callable, optional
        Observer called as ``on_iteration(iteration, relative_residual)``.
    """

    def __init__(
        self,
        max_iters: int = 1000,
        eps: float = 1e-14,
        on_iteration: IterationObserver | None = None,
    ):
        if max_iters < 1:
            raise ValueError("max_iters must be >= 1")
        if eps <= 0.0:
            raise ValueError("eps must be positive")
        self.max_iters = max_iters
        self.eps = eps
        self.on_iteration = on_iteration
        self.matrix: SparseMatrix | None = None
        self.vector: NDArray[np.float64] | None = None
        self.metrics = SolverMetrics()
        self._solution: NDArray[np.float64] | None = None

    def set_matrix(self, matrix: SparseMatrix) -> None:
        self.matrix = matrix
        self._solution = None

    def set_vector(self, vector: NDArray[np.float64]) -> None:
        self.vector = np.asarray(vector, dtype=np.float64)
        self._solution = None

    @property
    def solution(self) -> NDArray[np.float64]:
        if self._solution is None:
            raise RuntimeError("Solution is not available, call compute() first")
        return self._solution

    def _report(self, iteration: int, residual: float) -> None:
        log.debug(f"Iteration {iteration}: relative residual={residual:.6e}")
        if self.on_iteration is not None:
            self.on_iteration(iteration, residual)

    def compute(self) -> NDArray[np.float64]:
        """Solve the system; returns the (possibly partial) solution."""
        if self.matrix is None or self.vector is None:
            raise RuntimeError("Set the matrix and the right-hand side before compute()")
        if self.vector.shape != (self.matrix.size,):
            raise ValueError(
                f"Right-hand side of shape {self.vector.shape} does not match matrix size {self.matrix.size}"
            )

        time_start = time.time()
        x, iterations, residual = self._iterate(self.matrix, self.vector)
        wall_time = time.time() - time_start

        converged = residual < self.eps
        self.metrics = SolverMetrics(
            iterations=iterations,
            converged=converged,
            final_residual=residual,
            wall_time_seconds=wall_time,
        )
        if converged:
            log.info(f"{type(self).__name__} converged in {iterations} iterations, residual={residual:.3e}")
        else:
            log.warning(
                f"{type(self).__name__} reached max_iters={self.max_iters}, residual={residual:.3e}"
            )

        self._solution = x
        return x

    @abstractmethod
    def _iterate(
        self, matrix: SparseMatrix, b: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], int, float]:
        """Return (solution, iterations, final relative residual)."""


class CGMCholesky(IterativeSolver):
    """Conjugate gradients preconditioned with an incomplete Cholesky factor."""

    def factorize(self, matrix: SparseMatrix) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        ld, lg, bad_row = _incomplete_cholesky(matrix.di, matrix.ig, matrix.jg, matrix.gg)
        if bad_row >= 0:
            raise np.linalg.LinAlgError(
                f"Incomplete Cholesky breakdown: non-positive pivot in row {bad_row}"
            )
        return ld, lg

    def _iterate(self, matrix, b):
        n = matrix.size
        x = np.zeros(n)
        b_norm = np.linalg.norm(b)
        if b_norm == 0.0:
            return x, 0, 0.0

        ld, lg = self.factorize(matrix)
        ig, jg = matrix.ig, matrix.jg

        r = b.copy()
        z = _cholesky_solve(ld, lg, ig, jg, r)
        p = z.copy()
        rz = r @ z
        residual = 1.0

        iteration = 0
        while iteration < self.max_iters:
            iteration += 1
            ap = matrix @ p
            alpha = rz / (ap @ p)
            x += alpha * p
            r -= alpha * ap

            residual = np.linalg.norm(r) / b_norm
            self._report(iteration, residual)
            if residual < self.eps:
                break

            z = _cholesky_solve(ld, lg, ig, jg, r)
            rz_new = r @ z
            beta = rz_new / rz
            rz = rz_new
            p = z + beta * p

        return x, iteration, residual


SOLVERS = {
    "cgm_cholesky": CGMCholesky,
}


def make_solver(name: str, **options) -> IterativeSolver:
    """Create an iterative solver by name."""
    if name not in SOLVERS:
        raise ValueError(f"Unknown solver: {name}. Use one of {sorted(SOLVERS)}.")
    return SOLVERS[name](**options)
