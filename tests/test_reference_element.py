"""Tests for quadrature rules and reference shape functions.

Run with: uv run pytest tests/test_reference_element.py -v
"""

import numpy as np
import pytest

from quadfem.basis import LinearBasis, QuadraticBasis, basis_for_element, make_basis
from quadfem.geometry import Point2D, Rectangle, UNIT_SQUARE
from quadfem.quadrature import Integration, segment_gauss

SAMPLE_POINTS = [(0.0, 0.0), (0.3, 0.7), (0.5, 0.5), (0.91, 0.12), (1.0, 0.25)]


class TestGaussQuadrature:
    """Test 1D and tensor-product Gauss rules."""

    @pytest.mark.parametrize("n", [1, 2, 3, 4, 5])
    def test_weights_sum(self, n):
        """Weights should sum to 2 (length of [-1,1])."""
        _, weights = segment_gauss(n)
        assert np.isclose(weights.sum(), 2.0)

    @pytest.mark.parametrize("n", [1, 2, 3, 4, 5])
    def test_exactness(self, n):
        """An n-point rule is exact for polynomials up to degree 2n-1."""
        nodes, weights = segment_gauss(n)
        for k in range(2 * n):
            exact = 2.0 / (k + 1) if k % 2 == 0 else 0.0
            assert np.isclose(np.sum(weights * nodes**k), exact, atol=1e-13), f"Failed for k={k}"

    def test_unsupported_points(self):
        """Rules outside the table are rejected."""
        with pytest.raises(ValueError):
            segment_gauss(7)

    def test_default_order(self):
        """Default rule is the 3-point one, exact up to degree 5."""
        assert Integration().order == 5

    def test_rectangle_integral(self):
        """Integral of x*y over [1,3]x[0,2] is 4*2 = 8."""
        rect = Rectangle(Point2D(1.0, 0.0), Point2D(3.0, 2.0))
        value = Integration(2).gauss_2d(lambda p: p.x * p.y, rect)
        assert np.isclose(value, 8.0)

    def test_weights_scaled_to_area(self):
        """Mapped weights should sum to the rectangle area."""
        rect = Rectangle(Point2D(-1.0, 2.0), Point2D(0.5, 2.25))
        points, weights = Integration(4).nodes_2d(rect)
        assert len(points) == 16
        assert np.isclose(weights.sum(), 1.5 * 0.25)
        assert all(-1.0 < p.x < 0.5 and 2.0 < p.y < 2.25 for p in points)

    def test_matrix_valued_integrand(self):
        """Array-valued integrands are summed elementwise."""
        value = Integration().gauss_2d(lambda p: np.array([[1.0, p.x], [p.y, p.x * p.y]]), UNIT_SQUARE)
        assert np.allclose(value, [[1.0, 0.5], [0.5, 0.25]])


class TestBasis:
    """Test linear and quadratic tensor-product bases."""

    @pytest.fixture(params=[LinearBasis, QuadraticBasis])
    def basis(self, request):
        return request.param()

    def test_sizes(self):
        """4 and 9 local functions."""
        assert LinearBasis().size == 4
        assert QuadraticBasis().size == 9

    @pytest.mark.parametrize("point", SAMPLE_POINTS)
    def test_partition_of_unity(self, basis, point):
        """Shape functions sum to 1 and their gradients to 0."""
        assert np.isclose(basis.values(point).sum(), 1.0)
        assert np.allclose(basis.gradients(point).sum(axis=1), 0.0, atol=1e-12)

    def test_kronecker_delta(self, basis):
        """psi_i(node_j) = delta_ij."""
        table = np.array([[basis.psi(i, node) for node in basis.nodes] for i in range(basis.size)])
        assert np.allclose(table, np.eye(basis.size), atol=1e-14)

    def test_first_and_last_nodes(self, basis):
        """First local node is the (0,0) corner and the last one (1,1)."""
        assert np.allclose(basis.nodes[0], [0.0, 0.0])
        assert np.allclose(basis.nodes[-1], [1.0, 1.0])

    @pytest.mark.parametrize("point", SAMPLE_POINTS[1:4])
    def test_derivatives_finite_difference(self, basis, point):
        """dpsi agrees with central differences of psi."""
        h = 1e-6
        x, y = point
        for i in range(basis.size):
            dx = (basis.psi(i, (x + h, y)) - basis.psi(i, (x - h, y))) / (2 * h)
            dy = (basis.psi(i, (x, y + h)) - basis.psi(i, (x, y - h))) / (2 * h)
            assert np.isclose(basis.dpsi(i, 0, point), dx, atol=1e-6)
            assert np.isclose(basis.dpsi(i, 1, point), dy, atol=1e-6)

    def test_derivatives_exact_polynomials(self, basis):
        """1D derivatives equal the derivative of the interpolating polynomial."""
        degree = basis.n_line - 1
        samples = np.linspace(0.0, 1.0, degree + 3)
        for k in range(basis.n_line):
            coeffs = np.polyfit(samples, [basis._shape(k, t) for t in samples], degree)
            derivative = np.polyder(coeffs)
            for t in samples:
                assert np.isclose(basis._dshape(k, t), np.polyval(derivative, t), atol=1e-12)

    def test_vectorised_matches_scalar(self, basis):
        """values()/gradients() match psi()/dpsi()."""
        point = Point2D(0.2, 0.65)
        values = basis.values(point)
        grads = basis.gradients(point)
        for i in range(basis.size):
            assert np.isclose(values[i], basis.psi(i, point))
            assert np.isclose(grads[0, i], basis.dpsi(i, 0, point))
            assert np.isclose(grads[1, i], basis.dpsi(i, 1, point))

    def test_quadratic_closed_form(self):
        """Spot values of the quadratic 1D factors."""
        basis = QuadraticBasis()
        # node 4 is the bubble -4t(t-1) in both directions
        assert np.isclose(basis.psi(4, (0.5, 0.5)), 1.0)
        assert np.isclose(basis.psi(4, (0.25, 0.5)), 0.75)
        assert np.isclose(basis.dpsi(0, 0, (0.0, 0.0)), -3.0)
        assert np.isclose(basis.dpsi(2, 0, (1.0, 0.0)), 3.0)

    def test_index_errors(self, basis):
        """Out-of-range numbers and axes raise IndexError."""
        with pytest.raises(IndexError):
            basis.psi(basis.size, (0.5, 0.5))
        with pytest.raises(IndexError):
            basis.dpsi(-1, 0, (0.5, 0.5))
        with pytest.raises(IndexError):
            basis.dpsi(0, 2, (0.5, 0.5))

    def test_corners_and_boundary_loop(self):
        """Quadratic corners and the counter-clockwise boundary walk."""
        basis = QuadraticBasis()
        assert basis.corners == (0, 2, 6, 8)
        assert basis.boundary_loop == [0, 1, 2, 5, 8, 7, 6, 3]
        assert LinearBasis().boundary_loop == [0, 1, 3, 2]

    def test_make_basis(self):
        """Lookup by name."""
        assert isinstance(make_basis("linear"), LinearBasis)
        assert isinstance(make_basis("quadratic"), QuadraticBasis)
        with pytest.raises(ValueError):
            make_basis("cubic")

    def test_basis_for_element(self):
        """Lookup by local node count."""
        assert isinstance(basis_for_element(4), LinearBasis)
        assert basis_for_element(9).corners == (0, 2, 6, 8)
        with pytest.raises(ValueError):
            basis_for_element(16)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
