"""Structured quadrilateral mesh builders.

Element nodes are numbered in the lexicographic local order of
:mod:`quadfem.basis` (first node at the element's (0, 0) reference corner).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .datastructures import FiniteElement, QuadMesh
from .geometry import Interval, Point2D

log = logging.getLogger(__name__)

# Tolerance for boundary node detection (floating-point comparison)
BOUNDARY_TOL = 1e-10


@dataclass(frozen=True)
class MeshParameters:
    """Rectangle ``interval_x x interval_y`` split into ``splits_x x splits_y`` cells."""

    interval_x: Interval
    splits_x: int
    interval_y: Interval
    splits_y: int

    def __post_init__(self):
        if self.splits_x < 1 or self.splits_y < 1:
            raise ValueError("The number of splits must be greater than or equal to 1")
        if self.interval_x.right <= self.interval_x.left or self.interval_y.right <= self.interval_y.left:
            raise ValueError("Mesh intervals must have right border > left border")


@dataclass(frozen=True)
class CurveMeshParameters:
    """Annulus around ``center`` between ``inner_radius`` and ``outer_radius``."""

    center: Point2D
    inner_radius: float
    outer_radius: float
    splits_radius: int
    splits_angle: int

    def __post_init__(self):
        if not 0.0 < self.inner_radius < self.outer_radius:
            raise ValueError("Radii must satisfy 0 < inner_radius < outer_radius")
        if self.splits_radius < 1:
            raise ValueError("splits_radius must be >= 1")
        if self.splits_angle < 3:
            raise ValueError("splits_angle must be >= 3")


def _check_order(order: int) -> None:
    if order not in (1, 2):
        raise ValueError(f"Unsupported element order {order}, expected 1 or 2")


def _element_connectivity(nx_nodes: int, splits_x: int, splits_y: int, order: int) -> np.ndarray:
    """Lexicographic element nodes for a structured grid stored row by row."""
    p = order
    col, row = np.meshgrid(np.arange(splits_x), np.arange(splits_y))
    col, row = col.ravel(), row.ravel()

    local = np.arange(p + 1)
    # local node (a, b) -> global (p*col + a, p*row + b)
    a = np.tile(local, p + 1)
    b = np.repeat(local, p + 1)
    gx = p * col[:, None] + a[None, :]
    gy = p * row[:, None] + b[None, :]
    return gy * nx_nodes + gx


def rectangle_mesh(params: MeshParameters, order: int = 1, coefficient: float = 1.0) -> QuadMesh:
    """
    Structured mesh of axis-aligned rectangles.

    Parameters
    ----------
    params : MeshParameters
    order : int
        1 for 4-node elements, 2 for 9-node elements (edge midpoints and centre).
    coefficient : float
        Element coefficient (lambda) assigned to every element.

    Returns
    -------
    QuadMesh
        Nodes are numbered row by row from the bottom left corner. Boundaries
        ``left``, ``right``, ``bottom``, ``top`` and ``all`` are attached.
    """
    _check_order(order)
    nx_nodes = order * params.splits_x + 1
    ny_nodes = order * params.splits_y + 1

    xs = np.linspace(params.interval_x.left, params.interval_x.right, nx_nodes)
    ys = np.linspace(params.interval_y.left, params.interval_y.right, ny_nodes)
    XX, YY = np.meshgrid(xs, ys)
    points = np.column_stack([XX.ravel(), YY.ravel()])

    connectivity = _element_connectivity(nx_nodes, params.splits_x, params.splits_y, order)
    elements = [FiniteElement(tuple(nodes), coefficient=coefficient) for nodes in connectivity]

    VX, VY = points[:, 0], points[:, 1]
    boundaries = {
        "left": np.where(np.abs(VX - params.interval_x.left) < BOUNDARY_TOL)[0],
        "right": np.where(np.abs(VX - params.interval_x.right) < BOUNDARY_TOL)[0],
        "bottom": np.where(np.abs(VY - params.interval_y.left) < BOUNDARY_TOL)[0],
        "top": np.where(np.abs(VY - params.interval_y.right) < BOUNDARY_TOL)[0],
    }

    mesh = QuadMesh(points=points, elements=elements, boundaries=boundaries)
    log.info(f"Rectangle mesh: {mesh.n_nodes} nodes, {mesh.n_elements} elements (order {order})")
    return mesh


def annulus_mesh(params: CurveMeshParameters, order: int = 1, coefficient: float = 1.0) -> QuadMesh:
    """
    Curvilinear mesh of an annulus.

    Reference ``xi`` runs along the radius and ``eta`` along the angle, so every
    element has a positive Jacobian. Nodes are placed on true circles, which
    makes 9-node elements genuinely curved.

    Returns
    -------
    QuadMesh
        Boundaries ``inner``, ``outer`` and ``all`` are attached.
    """
    _check_order(order)
    p = order
    nr_nodes = p * params.splits_radius + 1
    ntheta_nodes = p * params.splits_angle  # periodic, no duplicate at 2*pi

    radii = np.linspace(params.inner_radius, params.outer_radius, nr_nodes)
    angles = np.linspace(0.0, 2.0 * np.pi, ntheta_nodes, endpoint=False)
    RR, TT = np.meshgrid(radii, angles)
    points = np.column_stack([
        params.center.x + (RR * np.cos(TT)).ravel(),
        params.center.y + (RR * np.sin(TT)).ravel(),
    ])

    col, row = np.meshgrid(np.arange(params.splits_radius), np.arange(params.splits_angle))
    col, row = col.ravel(), row.ravel()
    local = np.arange(p + 1)
    a = np.tile(local, p + 1)
    b = np.repeat(local, p + 1)
    gr = p * col[:, None] + a[None, :]
    gt = (p * row[:, None] + b[None, :]) % ntheta_nodes
    connectivity = gt * nr_nodes + gr

    elements = [FiniteElement(tuple(nodes), coefficient=coefficient) for nodes in connectivity]
    node_ids = np.arange(len(points)).reshape(ntheta_nodes, nr_nodes)
    boundaries = {
        "inner": node_ids[:, 0],
        "outer": node_ids[:, -1],
    }

    mesh = QuadMesh(points=points, elements=elements, boundaries=boundaries)
    log.info(f"Annulus mesh: {mesh.n_nodes} nodes, {mesh.n_elements} elements (order {order})")
    return mesh


def mesh_step(params: MeshParameters) -> float:
    """Largest cell size of a rectangle mesh."""
    return max(
        params.interval_x.length / params.splits_x,
        params.interval_y.length / params.splits_y,
    )
