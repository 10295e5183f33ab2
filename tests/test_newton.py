"""Tests for the inverse isoparametric mapping and point location.

Run with: uv run pytest tests/test_newton.py -v
"""

import logging

import numpy as np
import pytest

from quadfem.basis import LinearBasis, QuadraticBasis
from quadfem.datastructures import element_from_points
from quadfem.geometry import Interval, Point2D
from quadfem.interpolation import (
    PointOutsideMeshError,
    candidate_elements,
    evaluate_at_point,
    inside_reference,
    locate_point,
    nearby_elements,
    point_in_element,
)
from quadfem.linalg import gauss_solve, jacobian_2x2
from quadfem.mesh import CurveMeshParameters, MeshParameters, annulus_mesh, rectangle_mesh
from quadfem.newton import Newton, forward_map


@pytest.fixture
def curved_mesh():
    return annulus_mesh(CurveMeshParameters(Point2D(0.0, 0.0), 1.0, 2.0, 2, 6), order=2)


@pytest.fixture
def stretched_element():
    """9-node element with x = 2.6 xi - 1.6 xi^2 and y = eta."""
    xs, ys = [0.0, 0.9, 1.0], [0.0, 0.5, 1.0]
    return element_from_points([[x, y] for y in ys for x in xs], range(9))


@pytest.fixture
def fine_annulus():
    return annulus_mesh(CurveMeshParameters(Point2D(0.0, 0.0), 0.5, 1.0, 4, 16), order=2)


class TestDenseKernels:
    """Test the 2x2 helpers used by Newton."""

    def test_gauss_solve_pivoting(self):
        """Zero leading entry needs a row exchange."""
        a = np.array([[0.0, 2.0], [3.0, 1.0]])
        b = np.array([4.0, 5.0])
        x = gauss_solve(a, b)
        assert np.allclose(a @ x, b)
        assert a[0, 0] == 0.0  # inputs untouched

    def test_gauss_solve_singular(self):
        """Singular systems raise LinAlgError."""
        with pytest.raises(np.linalg.LinAlgError):
            gauss_solve(np.array([[1.0, 2.0], [2.0, 4.0]]), np.array([1.0, 1.0]))

    def test_jacobian_of_rectangle(self):
        """Axis-aligned rectangle has a diagonal Jacobian."""
        coords = np.array([[1.0, 2.0], [3.0, 2.0], [1.0, 3.0], [3.0, 3.0]])
        jac, det = jacobian_2x2(LinearBasis().gradients((0.3, 0.8)), coords)
        assert np.allclose(jac, [[2.0, 0.0], [0.0, 1.0]])
        assert np.isclose(det, 2.0)


class TestNewton:
    """Test the damped Newton inverse mapping."""

    def test_rectangle(self):
        """Inverse of an affine map."""
        mesh = element_from_points([[1, 2], [3, 2], [1, 3], [3, 3]], [0, 1, 2, 3])
        newton = Newton(LinearBasis(), mesh, (1.5, 2.75), 0)
        local = newton.compute()
        assert newton.converged
        assert np.isclose(local.x, 0.25)
        assert np.isclose(local.y, 0.75)

    def test_initial_guess_exact(self):
        """Element centre converges without any iteration."""
        mesh = element_from_points([[0, 0], [2, 0], [0, 2], [2, 2]], [0, 1, 2, 3])
        newton = Newton(LinearBasis(), mesh, (1.0, 1.0), 0)
        newton.compute()
        assert newton.iterations == 0
        assert newton.converged

    @pytest.mark.parametrize("local", [(0.3, 0.7), (0.05, 0.9), (1.0, 0.0), (0.61, 0.42)])
    def test_round_trip_curved(self, curved_mesh, local):
        """forward_map followed by Newton recovers the local point."""
        basis = QuadraticBasis()
        ielem = 4
        physical = forward_map(basis, curved_mesh.element_coords(ielem), local)
        result = Newton(basis, curved_mesh, physical, ielem).compute()
        assert np.allclose([result.x, result.y], local, atol=1e-8)

    def test_skewed_bilinear(self):
        """Non-affine bilinear element."""
        mesh = element_from_points([[0, 0], [2, 0.2], [0.3, 1], [2.5, 1.8]], [0, 1, 2, 3])
        basis = LinearBasis()
        physical = forward_map(basis, mesh.element_coords(0), (0.8, 0.1))
        newton = Newton(basis, mesh, physical, 0)
        result = newton.compute()
        assert newton.converged
        assert np.allclose([result.x, result.y], [0.8, 0.1], atol=1e-10)

    def test_degenerate_element(self):
        """Collapsed element has a singular Jacobian."""
        mesh = element_from_points([[0, 0], [0, 0], [0, 0], [0, 0]], [0, 1, 2, 3])
        with pytest.raises(np.linalg.LinAlgError):
            Newton(LinearBasis(), mesh, (1.0, 1.0), 0).compute()

    def test_iteration_limit(self, stretched_element, caplog):
        """Hitting max_iters keeps the last iterate and logs a warning."""
        newton = Newton(QuadraticBasis(), stretched_element, (0.1, 0.5), 0, max_iters=1)
        with caplog.at_level(logging.WARNING, logger="quadfem.newton"):
            result = newton.compute()
        assert newton.converged is False
        assert newton.iterations == 1
        assert isinstance(result, Point2D)
        assert np.isclose(result.y, 0.5)
        assert "did not converge" in caplog.text

    def test_step_halving(self, stretched_element):
        """Full first step overshoots to xi = -0.3 and is halved back to xi = 0.1."""
        basis = QuadraticBasis()
        newton = Newton(basis, stretched_element, (0.1, 0.5), 0)
        result = newton.compute()
        assert newton.halvings >= 1
        assert newton.converged
        assert len(newton.residual_norms) == newton.iterations + 1
        assert np.all(np.diff(newton.residual_norms) <= 0.0)
        xi = (2.6 - np.sqrt(2.6**2 - 4 * 1.6 * 0.1)) / (2 * 1.6)
        assert np.allclose([result.x, result.y], [xi, 0.5], atol=1e-10)

    def test_initial_point(self):
        """Starting at the solution needs no iteration."""
        mesh = element_from_points([[0, 0], [1, 0], [0, 1], [3, 3]], [0, 1, 2, 3])
        newton = Newton(LinearBasis(), mesh, (3.0, 3.0), 0, initial=(1.0, 1.0))
        newton.compute()
        assert newton.iterations == 0
        assert newton.converged


class TestPointLocation:
    """Test containment tests and evaluation at physical points."""

    @pytest.fixture
    def mesh_2x2(self):
        return rectangle_mesh(MeshParameters(Interval(0.0, 2.0), 2, Interval(0.0, 2.0), 2))

    def test_point_in_element(self, mesh_2x2):
        """Interior, edge and outside points of element 0."""
        basis = LinearBasis()
        assert point_in_element(mesh_2x2, basis, 0, (0.5, 0.5))
        assert point_in_element(mesh_2x2, basis, 0, (1.0, 0.3))
        assert not point_in_element(mesh_2x2, basis, 0, (1.5, 0.5))

    def test_shared_vertex_candidates(self, mesh_2x2):
        """The centre node touches all four elements."""
        assert candidate_elements(mesh_2x2, LinearBasis(), (1.0, 1.0)) == [0, 1, 2, 3]

    def test_locate(self, mesh_2x2):
        """Element index and local coordinates."""
        ielem, local = locate_point(mesh_2x2, LinearBasis(), (1.5, 0.25))
        assert ielem == 1
        assert np.allclose([local.x, local.y], [0.5, 0.25])

    def test_outside(self, mesh_2x2):
        """No extrapolation outside the mesh."""
        with pytest.raises(PointOutsideMeshError):
            locate_point(mesh_2x2, LinearBasis(), (2.5, 1.0))
        assert issubclass(PointOutsideMeshError, ValueError)

    def test_evaluate_linear_field(self, mesh_2x2):
        """Bilinear interpolation reproduces linear fields."""
        values = 3.0 * mesh_2x2.points[:, 0] - mesh_2x2.points[:, 1]
        value = evaluate_at_point(mesh_2x2, LinearBasis(), values, (0.7, 1.3))
        assert np.isclose(value, 3.0 * 0.7 - 1.3)

    def test_evaluate_on_curved_mesh(self, curved_mesh):
        """Quadratic field on curved elements, away from nodes."""
        values = curved_mesh.points[:, 0] ** 2 + curved_mesh.points[:, 1] ** 2
        value = evaluate_at_point(curved_mesh, QuadraticBasis(), values, (0.9, 0.8))
        assert np.isclose(value, 0.9**2 + 0.8**2, rtol=1e-2)

    def test_hole_is_outside(self, curved_mesh):
        """The annulus hole contains no element."""
        with pytest.raises(PointOutsideMeshError):
            locate_point(curved_mesh, QuadraticBasis(), (0.1, 0.1))

    def test_inside_reference(self):
        """Reference square with round-off slack."""
        assert inside_reference((0.0, 1.0))
        assert inside_reference((-1e-12, 0.5))
        assert not inside_reference((1.001, 0.5))

    def test_nearby_elements_padded(self, mesh_2x2):
        """Boxes are widened so points just past an edge still see the element."""
        assert nearby_elements(mesh_2x2, (1.02, 0.5)) == [0, 1]
        assert nearby_elements(mesh_2x2, (2.5, 0.5)) == []

    def test_curved_edge_strip(self, fine_annulus):
        """Point between an outer chord and the curved edge is found by inverse mapping."""
        basis = QuadraticBasis()
        angle = np.pi / 64
        point = (0.999 * np.cos(angle), 0.999 * np.sin(angle))
        assert candidate_elements(fine_annulus, basis, point) == []
        ielem, local = locate_point(fine_annulus, basis, point)
        assert inside_reference(local)
        assert np.allclose(forward_map(basis, fine_annulus.element_coords(ielem), local), point, atol=1e-10)
        values = fine_annulus.points[:, 0] ** 2 + fine_annulus.points[:, 1] ** 2
        assert np.isclose(evaluate_at_point(fine_annulus, basis, values, point), 0.999**2, atol=1e-3)

    def test_hole_side_strip_is_outside(self, fine_annulus):
        """Inside an inner chord polygon but in the hole: local xi < 0, so rejected."""
        basis = QuadraticBasis()
        angle = np.pi / 64
        point = (0.4995 * np.cos(angle), 0.4995 * np.sin(angle))
        assert candidate_elements(fine_annulus, basis, point) != []
        with pytest.raises(PointOutsideMeshError):
            locate_point(fine_annulus, basis, point)

    def test_beyond_outer_circle(self, fine_annulus):
        """Just outside the outer radius."""
        angle = np.pi / 64
        with pytest.raises(PointOutsideMeshError):
            locate_point(fine_annulus, QuadraticBasis(), (1.001 * np.cos(angle), 1.001 * np.sin(angle)))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
