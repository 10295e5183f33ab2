"""Finite element solver for 2D Poisson problems on quadrilateral meshes.

This package implements bilinear (4-node) and biquadratic (9-node)
quadrilateral elements for ``-div(lambda grad u) = f`` with Dirichlet
boundary conditions, on straight rectangular and curvilinear meshes.

Main components:
- QuadMesh, rectangle_mesh, annulus_mesh: mesh data and generation
- LinearBasis, QuadraticBasis, Integration: reference element tools
- StraightMatrixAssembler, CurvilinearMatrixAssembler: local matrices
- SparseMatrix, apply_dirichlet, CGMCholesky: global system and solver
- SolverFem: assembly, solution and post-processing driver
"""

from .geometry import Interval, Point2D, Rectangle, UNIT_SQUARE
from .quadrature import Integration, segment_gauss
from .basis import Basis, LinearBasis, QuadraticBasis, basis_for_element, make_basis
from .datastructures import FiniteElement, QuadMesh, SolverMetrics, element_from_points
from .mesh import (
    MeshParameters,
    CurveMeshParameters,
    rectangle_mesh,
    annulus_mesh,
    mesh_step,
)
from .sparse import SparseMatrix, build_portrait
from .assembly import (
    MatrixAssembler,
    StraightMatrixAssembler,
    CurvilinearMatrixAssembler,
    make_assembler,
)
from .boundary import (
    DirichletBoundary,
    BoundaryParameters,
    dirichlet_boundaries,
    unique_boundaries,
    apply_dirichlet,
)
from .solvers import IterativeSolver, CGMCholesky, make_solver
from .newton import Newton
from .interpolation import PointOutsideMeshError, locate_point, evaluate_at_point
from .problems import ManufacturedProblem, PROBLEMS, get_problem
from .fem import FemConfig, SolverFem, convergence_study

__all__ = [
    # Geometry
    "Interval",
    "Point2D",
    "Rectangle",
    "UNIT_SQUARE",
    # Reference element
    "Integration",
    "segment_gauss",
    "Basis",
    "LinearBasis",
    "QuadraticBasis",
    "make_basis",
    "basis_for_element",
    # Mesh
    "FiniteElement",
    "QuadMesh",
    "element_from_points",
    "MeshParameters",
    "CurveMeshParameters",
    "rectangle_mesh",
    "annulus_mesh",
    "mesh_step",
    # Assembly
    "SparseMatrix",
    "build_portrait",
    "MatrixAssembler",
    "StraightMatrixAssembler",
    "CurvilinearMatrixAssembler",
    "make_assembler",
    # Boundary conditions
    "DirichletBoundary",
    "BoundaryParameters",
    "dirichlet_boundaries",
    "unique_boundaries",
    "apply_dirichlet",
    # Solvers
    "IterativeSolver",
    "CGMCholesky",
    "make_solver",
    "SolverMetrics",
    "Newton",
    # Post-processing
    "PointOutsideMeshError",
    "locate_point",
    "evaluate_at_point",
    # Problems and driver
    "ManufacturedProblem",
    "PROBLEMS",
    "get_problem",
    "FemConfig",
    "SolverFem",
    "convergence_study",
]
