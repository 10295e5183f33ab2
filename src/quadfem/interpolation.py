"""Post-processing of a nodal solution: point location, evaluation, integration."""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np
from numpy.typing import NDArray

from .basis import Basis
from .datastructures import QuadMesh
from .geometry import Point2D, Rectangle
from .linalg import jacobian_2x2
from .newton import Newton, forward_map
from .quadrature import Integration

log = logging.getLogger(__name__)

ON_EDGE_TOL = 1e-12
# slack on the reference square when accepting an inverse-mapped point
LOCAL_TOL = 1e-8
# bounding boxes are widened by this fraction of their size, curved edges bulge past the nodes
BOX_PAD = 0.05


class PointOutsideMeshError(ValueError):
    """No element of the mesh contains the query point (no extrapolation)."""


def _on_segment(px, py, ax, ay, bx, by, tol=ON_EDGE_TOL) -> bool:
    length = np.hypot(bx - ax, by - ay)
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > tol * max(length, 1.0):
        return False
    dot = (px - ax) * (bx - ax) + (py - ay) * (by - ay)
    return -tol <= dot <= length**2 + tol


def point_in_element(mesh: QuadMesh, basis: Basis, ielem: int, point) -> bool:
    """Edge-crossing test against the polygon through the element's boundary nodes.

    Points lying on an edge count as inside.
    """
    px, py = Point2D.of(point)
    polygon = mesh.element_coords(ielem)[basis.boundary_loop]
    inside = False
    n = len(polygon)
    for k in range(n):
        ax, ay = polygon[k]
        bx, by = polygon[(k + 1) % n]
        if _on_segment(px, py, ax, ay, bx, by):
            return True
        if (ay > py) != (by > py):
            x_cross = ax + (py - ay) * (bx - ax) / (by - ay)
            if px < x_cross:
                inside = not inside
    return inside


def nearby_elements(mesh: QuadMesh, point, pad: float = BOX_PAD) -> list[int]:
    """Elements whose node bounding box, widened by ``pad`` of its size, contains ``point``."""
    coords = mesh.points[mesh.element_nodes]
    px, py = Point2D.of(point)
    lo, hi = coords.min(axis=1), coords.max(axis=1)
    margin = pad * (hi - lo) + ON_EDGE_TOL
    lo, hi = lo - margin, hi + margin
    near = np.where(
        (lo[:, 0] <= px) & (px <= hi[:, 0]) & (lo[:, 1] <= py) & (py <= hi[:, 1])
    )[0]
    return [int(e) for e in near]


def candidate_elements(mesh: QuadMesh, basis: Basis, point) -> list[int]:
    """All elements whose boundary polygon contains ``point``."""
    return [e for e in nearby_elements(mesh, point) if point_in_element(mesh, basis, e, point)]


def inside_reference(local, tol: float = LOCAL_TOL) -> bool:
    return all(-tol <= c <= 1.0 + tol for c in local)


def _inverse_map(mesh: QuadMesh, basis: Basis, ielem: int, point) -> Point2D | None:
    newton = Newton(basis, mesh, point, ielem)
    try:
        local = newton.compute()
    except np.linalg.LinAlgError as exc:
        log.debug(f"Element {ielem} rejected for point {point}: {exc}")
        return None
    if newton.converged and inside_reference(local):
        return local
    return None


def locate_point(mesh: QuadMesh, basis: Basis, point) -> tuple[int, Point2D]:
    """Containing element and local coordinates of ``point``.

    Elements whose boundary polygon contains the point are tried first. On
    curved elements the polygon cuts off the strip between each chord and
    the true edge, so the remaining nearby elements are tried next. An
    element is accepted when Newton converges to local coordinates inside
    the reference square; singular Jacobians reject the element.
    """
    nearby = nearby_elements(mesh, point)
    inside = [e for e in nearby if point_in_element(mesh, basis, e, point)]
    for ielem in inside + [e for e in nearby if e not in inside]:
        local = _inverse_map(mesh, basis, ielem, point)
        if local is not None:
            return ielem, local
    raise PointOutsideMeshError(f"Point {Point2D.of(point)} is outside the mesh")


def evaluate_at_point(
    mesh: QuadMesh, basis: Basis, solution: NDArray[np.float64], point
) -> float:
    """Value of the finite element interpolant of ``solution`` at a physical point."""
    ielem, local = locate_point(mesh, basis, point)
    return float(basis.values(local) @ solution[mesh.element_nodes[ielem]])


def _sub_squares(k: int):
    h = 1.0 / k
    for i in range(k):
        for j in range(k):
            yield Rectangle(Point2D(i * h, j * h), Point2D((i + 1) * h, (j + 1) * h))


def integrate_element_abs_error(
    mesh: QuadMesh,
    basis: Basis,
    integrator: Integration,
    solution: NDArray[np.float64],
    exact: Callable[[Point2D], float],
    ielem: int,
    k: int,
) -> float:
    """Integral of |u_h - U| over one element with a k x k reference sub-grid."""
    coords = mesh.element_coords(ielem)
    u_local = solution[mesh.element_nodes[ielem]]

    def integrand(p: Point2D) -> float:
        _, det = jacobian_2x2(basis.gradients(p), coords)
        x, y = forward_map(basis, coords, p)
        return abs(basis.values(p) @ u_local - exact(Point2D(x, y))) * abs(det)

    return sum(integrator.gauss_2d(integrand, square) for square in _sub_squares(k))


def integrate_abs_error(
    mesh: QuadMesh,
    basis: Basis,
    integrator: Integration,
    solution: NDArray[np.float64],
    exact: Callable[[Point2D], float],
    tol: float = 1e-10,
    max_splits: int = 32,
) -> float:
    """
    Integral of |u_h - U| over the mesh.

    Each element is integrated on a k x k sub-grid of its reference square
    with k = 1, 2, 4, ... until the relative change drops below ``tol`` or
    k reaches ``max_splits``.
    """
    total = 0.0
    for ielem in range(mesh.n_elements):
        k = 1
        previous = integrate_element_abs_error(mesh, basis, integrator, solution, exact, ielem, k)
        while k < max_splits:
            k *= 2
            current = integrate_element_abs_error(mesh, basis, integrator, solution, exact, ielem, k)
            change = abs(current - previous)
            previous = current
            if change <= tol * abs(current):
                break
        total += previous
    return total
