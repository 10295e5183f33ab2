"""Gauss-Legendre quadrature on segments and tensor-product rectangles."""

from __future__ import annotations

from typing import Callable

import numpy as np

from .geometry import Point2D, Rectangle

# Pre-computed Gauss quadrature points and weights on [-1, 1] (cached at module level)
_GAUSS_QUAD = {
    1: (np.array([0.0]), np.array([2.0])),
    2: (np.array([-1.0 / np.sqrt(3), 1.0 / np.sqrt(3)]), np.array([1.0, 1.0])),
    3: (np.array([-np.sqrt(3 / 5), 0.0, np.sqrt(3 / 5)]), np.array([5 / 9, 8 / 9, 5 / 9])),
    4: (
        np.array([
            -np.sqrt(3 / 7 + 2 / 7 * np.sqrt(6 / 5)),
            -np.sqrt(3 / 7 - 2 / 7 * np.sqrt(6 / 5)),
            np.sqrt(3 / 7 - 2 / 7 * np.sqrt(6 / 5)),
            np.sqrt(3 / 7 + 2 / 7 * np.sqrt(6 / 5)),
        ]),
        np.array([
            (18 - np.sqrt(30)) / 36,
            (18 + np.sqrt(30)) / 36,
            (18 + np.sqrt(30)) / 36,
            (18 - np.sqrt(30)) / 36,
        ]),
    ),
    5: (
        np.array([
            -np.sqrt(5 + 2 * np.sqrt(10 / 7)) / 3,
            -np.sqrt(5 - 2 * np.sqrt(10 / 7)) / 3,
            0.0,
            np.sqrt(5 - 2 * np.sqrt(10 / 7)) / 3,
            np.sqrt(5 + 2 * np.sqrt(10 / 7)) / 3,
        ]),
        np.array([
            (322 - 13 * np.sqrt(70)) / 900,
            (322 + 13 * np.sqrt(70)) / 900,
            128 / 225,
            (322 + 13 * np.sqrt(70)) / 900,
            (322 - 13 * np.sqrt(70)) / 900,
        ]),
    ),
}


def segment_gauss(n_points: int) -> tuple[np.ndarray, np.ndarray]:
    """Return (nodes, weights) of the n-point Gauss-Legendre rule on [-1, 1].

    An n-point rule integrates polynomials up to degree ``2n - 1`` exactly.
    """
    if n_points not in _GAUSS_QUAD:
        raise ValueError(
            f"Unsupported n_points={n_points}. Use one of {sorted(_GAUSS_QUAD)}."
        )
    nodes, weights = _GAUSS_QUAD[n_points]
    return nodes.copy(), weights.copy()


class Integration:
    """Tensor-product Gauss integration over rectangles.

    Parameters
    ----------
    n_points : int
        Points per axis. The default 3-point rule is exact up to degree 5,
        which covers biquadratic x biquadratic bilinear forms on straight
        elements.
    """

    def __init__(self, n_points: int = 3):
        self.n_points = n_points
        self.nodes, self.weights = segment_gauss(n_points)

    @property
    def order(self) -> int:
        """Highest polynomial degree integrated exactly per axis."""
        return 2 * self.n_points - 1

    def nodes_2d(self, rectangle: Rectangle) -> tuple[list[Point2D], np.ndarray]:
        """Quadrature points mapped into ``rectangle`` and their scaled weights."""
        hx, hy = rectangle.hx, rectangle.hy
        x0, y0 = rectangle.left_bottom.x, rectangle.left_bottom.y
        x1, y1 = rectangle.right_top.x, rectangle.right_top.y

        points = []
        weights = []
        for qi, wi in zip(self.nodes, self.weights):
            for qj, wj in zip(self.nodes, self.weights):
                points.append(Point2D((qi * hx + x0 + x1) / 2.0, (qj * hy + y0 + y1) / 2.0))
                weights.append(wi * wj)
        return points, np.asarray(weights) * hx * hy / 4.0

    def gauss_2d(self, f: Callable[[Point2D], float | np.ndarray], rectangle: Rectangle):
        """Integrate ``f`` over ``rectangle``.

        ``f`` may return an ndarray; the weighted sum is then taken
        elementwise, which lets callers integrate a whole local matrix in one
        pass.
        """
        points, weights = self.nodes_2d(rectangle)
        result = 0.0
        for point, weight in zip(points, weights):
            result = result + weight * f(point)
        return result
