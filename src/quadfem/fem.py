"""FEM driver: assemble, impose Dirichlet values, solve and post-process."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from .assembly import MatrixAssembler, make_assembler
from .basis import make_basis
from .boundary import (
    BoundaryParameters,
    DirichletBoundary,
    apply_dirichlet,
    dirichlet_boundaries,
    unique_boundaries,
)
from .datastructures import QuadMesh
from .geometry import Interval
from .interpolation import evaluate_at_point, integrate_abs_error
from .mesh import MeshParameters, mesh_step, rectangle_mesh
from .problems import ManufacturedProblem
from .quadrature import Integration
from .solvers import IterativeSolver, make_solver

log = logging.getLogger(__name__)


@dataclass
class FemConfig:
    """Everything one solve needs; checked by :meth:`validate` before assembly."""

    mesh: QuadMesh | None = None
    problem: ManufacturedProblem | None = None
    assembler: MatrixAssembler | None = None
    solver: IterativeSolver | None = None
    boundaries: Sequence[DirichletBoundary] = field(default_factory=list)

    def validate(self) -> None:
        missing = [name for name in ("mesh", "problem", "assembler", "solver") if getattr(self, name) is None]
        if missing:
            raise ValueError(f"FEM configuration is missing: {', '.join(missing)}")
        if self.assembler.mesh is not self.mesh:
            raise ValueError("The assembler was built for a different mesh")
        if self.assembler.basis_size != self.mesh.element_size:
            raise ValueError(
                f"Basis size {self.assembler.basis_size} does not match element size {self.mesh.element_size}"
            )
        for boundary in self.boundaries:
            if not 0 <= boundary.node < self.mesh.n_nodes:
                raise ValueError(f"Boundary node {boundary.node} outside [0, {self.mesh.n_nodes})")


class SolverFem:
    """Finite element solver for ``-div(lambda grad u) = f`` with Dirichlet values from ``u``.

    Example
    -------
    >>> config = FemConfig(mesh, problem, assembler, CGMCholesky(1000, 1e-14),
    ...                    dirichlet_boundaries(mesh, ["left", "right", "bottom", "top"]))
    >>> fem = SolverFem(config)
    >>> u = fem.compute()
    >>> fem.calculate_at_point((0.25, 0.5))
    """

    def __init__(self, config: FemConfig):
        self.config = config
        self.global_vector: NDArray[np.float64] | None = None
        self._solution: NDArray[np.float64] | None = None

    @property
    def mesh(self) -> QuadMesh:
        return self.config.mesh

    @property
    def assembler(self) -> MatrixAssembler:
        return self.config.assembler

    @property
    def solution(self) -> NDArray[np.float64]:
        if self._solution is None:
            raise RuntimeError("Solution is not available, call compute() first")
        return self._solution

    def compute(self) -> NDArray[np.float64]:
        """Run the whole pipeline and return the nodal solution."""
        self.config.validate()
        log.info(f"Solving on mesh with {self.mesh.n_nodes} nodes, {self.mesh.n_elements} elements")

        self.initialize()
        self.assemble_system()
        self.apply_boundaries()

        solver = self.config.solver
        solver.set_matrix(self.assembler.global_matrix)
        solver.set_vector(self.global_vector)
        self._solution = solver.compute()

        log.info(f"Max nodal error: {self.max_error():.6e}")
        return self._solution

    def initialize(self) -> None:
        matrix = self.assembler.allocate()
        self.global_vector = np.zeros(matrix.size)
        log.debug(f"Portrait: {matrix.size} rows, {matrix.nnz} off-diagonal entries")

    def assemble_system(self) -> None:
        mesh = self.mesh
        f = self.config.problem.f
        f_nodes = np.array([f(mesh.point(i)) for i in range(mesh.n_nodes)], dtype=np.float64)

        for ielem in range(mesh.n_elements):
            nodes = mesh.element_nodes[ielem]
            _, mass = self.assembler.build_local_matrices(ielem)
            self.global_vector[nodes] += mass @ f_nodes[nodes]
            self.assembler.fill_local(ielem)

    def apply_boundaries(self) -> None:
        boundaries = unique_boundaries(self.config.boundaries)
        u = self.config.problem.u
        for boundary in boundaries:
            boundary.value = u(self.mesh.point(boundary.node))

        nodes = np.array([b.node for b in boundaries], dtype=np.int64)
        values = np.array([b.value for b in boundaries], dtype=np.float64)
        apply_dirichlet(self.assembler.global_matrix, self.global_vector, nodes, values)

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    def exact_values(self) -> NDArray[np.float64]:
        u = self.config.problem.u
        return np.array([u(self.mesh.point(i)) for i in range(self.mesh.n_nodes)])

    def nodal_error(self) -> NDArray[np.float64]:
        """|u_h - U| at every node."""
        return np.abs(self.solution - self.exact_values())

    def max_error(self) -> float:
        return float(self.nodal_error().max())

    def relative_error(self) -> float:
        """||u_h - U||_2 / ||U||_2 over the nodal values."""
        exact = self.exact_values()
        norm = np.linalg.norm(exact)
        diff = np.linalg.norm(self.solution - exact)
        return float(diff / norm) if norm > 0.0 else float(diff)

    def calculate_at_point(self, point) -> float:
        """Interpolated solution at a physical point inside the mesh."""
        return evaluate_at_point(self.mesh, self.assembler.basis, self.solution, point)

    def integrate(self, tol: float = 1e-10, max_splits: int = 32) -> float:
        """Integral of |u_h - U| over the domain."""
        return integrate_abs_error(
            self.mesh,
            self.assembler.basis,
            self.assembler.integrator,
            self.solution,
            self.config.problem.u,
            tol=tol,
            max_splits=max_splits,
        )

    def results(self) -> pd.DataFrame:
        """Nodal table: coordinates, exact and numerical values, error."""
        exact = self.exact_values()
        return pd.DataFrame({
            "x": self.mesh.points[:, 0],
            "y": self.mesh.points[:, 1],
            "exact": exact,
            "numeric": self.solution,
            "error": np.abs(self.solution - exact),
        })


def convergence_study(
    problem: ManufacturedProblem,
    splits: Sequence[int],
    order: int = 1,
    interval_x: Interval = Interval(0.0, 1.0),
    interval_y: Interval = Interval(0.0, 1.0),
    assembler: str = "straight",
    n_quad: int = 3,
    max_iters: int = 1000,
    eps: float = 1e-14,
) -> pd.DataFrame:
    """
    Solve ``problem`` on a sequence of refined rectangle meshes.

    Returns
    -------
    DataFrame
        One row per mesh with ``splits``, ``h``, ``n_nodes``, ``iterations``,
        ``max_error`` and the observed ``rate`` between consecutive meshes.
    """
    basis = make_basis("linear" if order == 1 else "quadratic")
    integration = Integration(n_quad)
    rows = []
    for n in splits:
        params = MeshParameters(interval_x, n, interval_y, n)
        mesh = rectangle_mesh(params, order=order)
        config = FemConfig(
            mesh=mesh,
            problem=problem,
            assembler=make_assembler(assembler, basis, integration, mesh),
            solver=make_solver("cgm_cholesky", max_iters=max_iters, eps=eps),
            boundaries=dirichlet_boundaries(mesh, BoundaryParameters().sides()),
        )
        fem = SolverFem(config)
        fem.compute()
        rows.append({
            "splits": n,
            "h": mesh_step(params),
            "n_nodes": mesh.n_nodes,
            "iterations": config.solver.metrics.iterations,
            "max_error": fem.max_error(),
        })

    df = pd.DataFrame(rows)
    df["rate"] = np.log(df["max_error"].shift(1) / df["max_error"]) / np.log(df["h"].shift(1) / df["h"])
    return df
