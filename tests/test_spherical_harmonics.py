"""
Unit tests for mesh_analysis.descriptors.spherical_harmonics.

Tests:
- Normalised Legendre functions and closed-form low degrees
- Orthonormality of both bases under Gauss-Legendre quadrature
- Forward transform (quadrature and least squares) and its invariants
- Coefficient container access and errors
"""

import numpy as np
import pytest

from mesh_analysis.descriptors import (
    HarmonicCoefficients,
    SphericalGrid,
    associated_legendre,
    complex_spherical_harmonics,
    real_spherical_harmonics,
    spherical_transform,
)
from mesh_analysis.descriptors.spherical_harmonics import coefficient_count, coefficient_index, real_to_complex
from mesh_analysis.errors import InvalidInput, OutOfRange, ShapeMismatch
from mesh_analysis.geometry.transform import AffineTransformation

FOUR_PI = 4.0 * np.pi


class TestIndexing:
    """Tests for the flat (l, m) layout."""

    def test_layout(self):
        assert coefficient_count(0) == 1
        assert coefficient_count(3) == 16
        assert coefficient_index(0, 0) == 0
        assert coefficient_index(1, -1) == 1
        assert coefficient_index(1, 1) == 3
        assert coefficient_index(3, 3) == 15


class TestLegendre:
    """Tests for associated_legendre."""

    def test_shape_and_constant_term(self):
        p = associated_legendre(3, [0.0, 0.5, 1.0])
        assert p.shape == (4, 4, 3)
        np.testing.assert_allclose(p[0, 0], 1.0 / np.sqrt(FOUR_PI))

    def test_degree_one(self):
        x = np.array([-0.3, 0.2, 0.9])
        p = associated_legendre(1, x)
        np.testing.assert_allclose(p[1, 0], np.sqrt(3.0 / FOUR_PI) * x)
        np.testing.assert_allclose(p[1, 1], -np.sqrt(3.0 / (2.0 * FOUR_PI)) * np.sqrt(1 - x * x))

    def test_upper_triangle_is_zero(self):
        p = associated_legendre(4, np.linspace(-1, 1, 7))
        for l in range(5):
            for m in range(l + 1, 5):
                assert np.all(p[l, m] == 0.0)

    def test_negative_degree(self):
        with pytest.raises(InvalidInput):
            associated_legendre(-1, [0.0])


class TestBases:
    """Tests for the complex and real harmonic bases."""

    def test_closed_forms(self):
        theta = np.array([0.4, 1.3, 2.5])
        phi = np.array([0.1, 2.0, 4.0])
        y = complex_spherical_harmonics(1, theta, phi)
        np.testing.assert_allclose(y[:, coefficient_index(1, 0)], np.sqrt(3.0 / FOUR_PI) * np.cos(theta))
        np.testing.assert_allclose(y[:, coefficient_index(1, 1)],
                                   -np.sqrt(3.0 / (2.0 * FOUR_PI)) * np.sin(theta) * np.exp(1j * phi))

    def test_negative_orders(self):
        theta = np.array([0.7, 1.9])
        phi = np.array([0.3, 5.1])
        y = complex_spherical_harmonics(3, theta, phi)
        for l in range(4):
            for m in range(1, l + 1):
                np.testing.assert_allclose(y[:, coefficient_index(l, -m)],
                                           (-1) ** m * np.conj(y[:, coefficient_index(l, m)]))

    @pytest.mark.parametrize("l_max", [2, 5])
    def test_complex_orthonormal(self, l_max):
        grid = SphericalGrid.gauss_legendre(l_max)
        y = complex_spherical_harmonics(l_max, grid.theta, grid.phi)
        gram = y.conj().T @ (grid.weights[:, None] * y)
        np.testing.assert_allclose(gram, np.eye(coefficient_count(l_max)), atol=1e-12)

    def test_real_orthonormal(self):
        grid = SphericalGrid.gauss_legendre(4)
        y = real_spherical_harmonics(4, grid.theta, grid.phi)
        gram = y.T @ (grid.weights[:, None] * y)
        np.testing.assert_allclose(gram, np.eye(25), atol=1e-12)

    def test_real_to_complex_matches_bases(self):
        theta = np.array([0.2, 1.1, 2.9])
        phi = np.array([0.5, 3.0, 6.0])
        a = np.linspace(-1.0, 1.0, 9)
        complex_values = complex_spherical_harmonics(2, theta, phi) @ real_to_complex(a, 2)
        np.testing.assert_allclose(complex_values.imag, 0.0, atol=1e-12)
        np.testing.assert_allclose(complex_values.real, real_spherical_harmonics(2, theta, phi) @ a)

    def test_angle_mismatch(self):
        with pytest.raises(ShapeMismatch):
            complex_spherical_harmonics(2, [0.1, 0.2], [0.3])
        with pytest.raises(ShapeMismatch):
            real_spherical_harmonics(2, [0.1], [0.3, 0.4])


class TestSphericalGrid:
    """Tests for sampling grids."""

    def test_gauss_legendre_size(self):
        grid = SphericalGrid.gauss_legendre(3, oversampling=2)
        assert grid.size == 8 * 16
        assert grid.weights.sum() == pytest.approx(FOUR_PI)
        np.testing.assert_allclose(np.linalg.norm(grid.directions(), axis=1), 1.0)

    def test_gauss_legendre_errors(self):
        with pytest.raises(InvalidInput):
            SphericalGrid.gauss_legendre(3, oversampling=0)
        with pytest.raises(InvalidInput):
            SphericalGrid.gauss_legendre(-2)

    def test_from_directions(self):
        grid = SphericalGrid.from_directions([[2.0, 0.0, 0.0], [0.0, 0.0, -1.0], [0.0, -3.0, 0.0]])
        assert grid.weights is None
        np.testing.assert_allclose(grid.theta, [np.pi / 2, np.pi, np.pi / 2])
        assert grid.phi[0] == pytest.approx(0.0)
        assert grid.phi[2] == pytest.approx(1.5 * np.pi)
        np.testing.assert_allclose(grid.directions()[0], [1.0, 0.0, 0.0], atol=1e-12)

    def test_from_directions_errors(self):
        with pytest.raises(ShapeMismatch):
            SphericalGrid.from_directions(np.ones((4, 2)))
        with pytest.raises(InvalidInput):
            SphericalGrid.from_directions([[1.0, 0.0, 0.0], [0.0, 0.0, 0.0]])


class TestTransform:
    """Tests for spherical_transform."""

    def test_constant(self):
        grid = SphericalGrid.gauss_legendre(4)
        coefficients = spherical_transform(np.ones(grid.size), grid, 4)
        assert coefficients.coefficient(0, 0) == pytest.approx(np.sqrt(FOUR_PI))
        energies = coefficients.energies()
        assert energies[0] == pytest.approx(FOUR_PI)
        np.testing.assert_allclose(energies[1:], 0.0, atol=1e-20)

    def test_single_basis_function(self):
        grid = SphericalGrid.gauss_legendre(3)
        basis = real_spherical_harmonics(3, grid.theta, grid.phi)
        coefficients = spherical_transform(basis[:, coefficient_index(2, 1)], grid, 3)
        assert coefficients.coefficient(2, 1) == pytest.approx(-1.0 / np.sqrt(2.0))
        assert coefficients.coefficient(2, -1) == pytest.approx(1.0 / np.sqrt(2.0))
        np.testing.assert_allclose(coefficients.energies(), [0.0, 0.0, 1.0, 0.0], atol=1e-12)

    def test_evaluate_reconstructs_signal(self):
        grid = SphericalGrid.gauss_legendre(3)
        d = grid.directions()
        values = d[:, 0] * d[:, 1] + 0.5 * d[:, 2] - 1.0
        coefficients = spherical_transform(values, grid, 3)
        np.testing.assert_allclose(coefficients.evaluate(grid.theta, grid.phi), values, atol=1e-12)

    def test_energies_rotation_invariant(self):
        grid = SphericalGrid.gauss_legendre(4)
        d = grid.directions()
        rotation = AffineTransformation.from_axis_angle((1.0, 2.0, 3.0), 0.7).matrix

        def signal(v):
            return v[:, 0] ** 2 + 2.0 * v[:, 1] * v[:, 2] + v[:, 2]

        original = spherical_transform(signal(d), grid, 4)
        rotated = spherical_transform(signal(d @ rotation), grid, 4)
        assert not np.allclose(original.coefficients, rotated.coefficients)
        np.testing.assert_allclose(original.energies(), rotated.energies(), atol=1e-12)

    def test_least_squares_path(self):
        quadrature = SphericalGrid.gauss_legendre(3)
        scattered = SphericalGrid.from_directions(quadrature.directions())
        d = quadrature.directions()
        values = d[:, 2] ** 3 - d[:, 0]
        expected = spherical_transform(values, quadrature, 3)
        fitted = spherical_transform(values, scattered, 3)
        np.testing.assert_allclose(fitted.coefficients, expected.coefficients, atol=1e-10)

    def test_least_squares_needs_enough_samples(self):
        grid = SphericalGrid.from_directions(np.eye(3))
        with pytest.raises(InvalidInput):
            spherical_transform(np.ones(3), grid, 2)

    def test_sample_count_mismatch(self):
        grid = SphericalGrid.gauss_legendre(2)
        with pytest.raises(ShapeMismatch):
            spherical_transform(np.ones(grid.size - 1), grid, 2)


class TestHarmonicCoefficients:
    """Tests for the coefficient container."""

    def test_access(self):
        c = HarmonicCoefficients(1, [1.0, 2.0, 3.0j, 4.0])
        np.testing.assert_allclose(c.degree(1), [2.0, 3.0j, 4.0])
        assert c.coefficient(1, 0) == 3.0j
        np.testing.assert_allclose(c.energies(), [1.0, 29.0])
        np.testing.assert_allclose(c.magnitudes(), [1.0, 2.0, 3.0, 4.0])

    def test_wrong_count(self):
        with pytest.raises(ShapeMismatch):
            HarmonicCoefficients(2, np.zeros(8))

    def test_out_of_range(self):
        c = HarmonicCoefficients(2, np.zeros(9))
        with pytest.raises(OutOfRange):
            c.degree(3)
        with pytest.raises(OutOfRange):
            c.coefficient(1, 2)

    def test_to_dict(self):
        data = HarmonicCoefficients(1, [1.0, 0.0, 1j, 0.0]).to_dict()
        assert data['l_max'] == 1
        assert data['imag'] == [0.0, 0.0, 1.0, 0.0]
        assert data['energies'] == [1.0, 1.0]
