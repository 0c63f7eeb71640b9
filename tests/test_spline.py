"""
Unit tests for mesh_analysis.interpolation.

Tests:
- Natural and clamped cubic splines
- Range checks, extrapolation and derivatives
- Polyline resampling
"""

import numpy as np
import pytest
import scipy.interpolate

from mesh_analysis.errors import InvalidInput, OutOfRange, ShapeMismatch
from mesh_analysis.interpolation import CubicSpline, SplineBoundary, resample_polyline


@pytest.fixture
def peak() -> CubicSpline:
    """Natural spline through (0, 0), (1, 1), (2, 0)."""
    return CubicSpline([0.0, 1.0, 2.0], [0.0, 1.0, 0.0])


class TestSplineConstruction:
    """Tests for sample validation."""

    def test_length_mismatch(self):
        with pytest.raises(ShapeMismatch):
            CubicSpline([0, 1, 2], [0, 1])

    @pytest.mark.parametrize("x, y", [
        ([0.0], [1.0]),
        ([0.0, 0.0, 1.0], [1.0, 2.0, 3.0]),
        ([1.0, 0.0], [1.0, 2.0]),
        ([0.0, np.nan], [1.0, 2.0]),
    ])
    def test_invalid_samples(self, x, y):
        with pytest.raises(InvalidInput):
            CubicSpline(x, y)

    def test_clamped_needs_slopes(self):
        with pytest.raises(InvalidInput):
            CubicSpline([0, 1], [0, 1], boundary=SplineBoundary.CLAMPED)


class TestNaturalSpline:
    """Tests for the natural boundary condition."""

    def test_second_derivatives(self, peak):
        np.testing.assert_allclose(peak.second_derivatives, [0.0, -3.0, 0.0])

    def test_passes_through_samples(self, peak):
        np.testing.assert_allclose(peak.interpolate([0.0, 1.0, 2.0]), [0.0, 1.0, 0.0], atol=1e-12)

    def test_midpoint_value(self, peak):
        assert peak(0.5) == pytest.approx(0.6875)
        assert peak(1.5) == pytest.approx(0.6875)

    def test_linear_data_is_reproduced(self):
        x = np.array([0.0, 0.5, 2.0, 3.0])
        spline = CubicSpline(x, 2 * x + 1)
        np.testing.assert_allclose(spline.second_derivatives, 0.0, atol=1e-12)
        assert spline(1.25) == pytest.approx(3.5)

    def test_scalar_and_array_results(self, peak):
        assert isinstance(peak(0.5), float)
        assert peak.interpolate(np.array([[0.5, 1.5]])).shape == (1, 2)


class TestClampedSpline:
    """Tests for the clamped boundary condition."""

    def test_reproduces_cubic(self):
        x = np.array([0.0, 1.0, 2.0, 3.0])
        spline = CubicSpline(x, x ** 3, boundary=SplineBoundary.CLAMPED, end_slopes=(0.0, 27.0))
        assert spline(1.5) == pytest.approx(3.375)
        assert spline.derivative(0.0) == pytest.approx(0.0, abs=1e-12)
        assert spline.derivative(3.0) == pytest.approx(27.0)


class TestRangeAndDerivatives:
    """Tests for extrapolation and derivative evaluation."""

    def test_interpolate_outside_range(self, peak):
        with pytest.raises(OutOfRange):
            peak.interpolate(2.5)
        with pytest.raises(OutOfRange):
            peak([0.5, -0.1])

    def test_extrapolate_continues_end_cubic(self):
        x = np.array([0.0, 1.0, 2.0])
        spline = CubicSpline(x, 2 * x + 1)
        assert spline.extrapolate(5.0) == pytest.approx(11.0)
        assert spline.extrapolate(-1.0) == pytest.approx(-1.0)

    def test_evaluate_flags_extrapolation(self, peak):
        values, extrapolated = peak.evaluate([-1.0, 1.0, 3.0])
        np.testing.assert_array_equal(extrapolated, [True, False, True])
        assert values[1] == pytest.approx(1.0)
        assert peak.evaluate(1.0)[1] is False

    def test_contains(self, peak):
        assert peak.contains(2.0)
        assert not peak.contains(2.01)
        assert peak.x_range == (0.0, 2.0)

    def test_derivatives_at_peak(self, peak):
        assert peak.derivative(1.0) == pytest.approx(0.0, abs=1e-12)
        assert peak.derivative(1.0, order=2) == pytest.approx(-3.0)
        with pytest.raises(InvalidInput):
            peak.derivative(1.0, order=3)


class TestResamplePolyline:
    """Tests for resample_polyline."""

    def test_straight_line(self):
        points = resample_polyline([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]], 5)
        np.testing.assert_allclose(points[:, 0], [0.0, 0.5, 1.0, 1.5, 2.0], atol=1e-12)
        np.testing.assert_allclose(points[:, 1], 0.0, atol=1e-12)

    def test_duplicates_dropped(self):
        points = resample_polyline([[0.0, 0.0], [0.0, 0.0], [1.0, 0.0]], 3)
        np.testing.assert_allclose(points[:, 0], [0.0, 0.5, 1.0], atol=1e-12)

    def test_closed_loop(self):
        square = [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]
        points = resample_polyline(square, 8, closed=True)
        assert points.shape == (8, 2)
        np.testing.assert_allclose(points[0], [0.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(points[2], [1.0, 0.0], atol=1e-12)

    def test_invalid(self):
        with pytest.raises(InvalidInput):
            resample_polyline([[1.0, 1.0], [1.0, 1.0]], 4)
        with pytest.raises(InvalidInput):
            resample_polyline([[0.0, 0.0], [1.0, 0.0]], 1)
        with pytest.raises(ShapeMismatch):
            resample_polyline([0.0, 1.0, 2.0], 4)


class TestAgreementWithScipy:
    """The wrapper evaluates exactly like scipy.interpolate.CubicSpline."""

    @pytest.mark.parametrize("boundary, bc_type, slopes", [
        (SplineBoundary.NATURAL, 'natural', None),
        (SplineBoundary.CLAMPED, ((1, -2.0), (1, 0.5)), (-2.0, 0.5)),
    ])
    def test_values_and_derivatives(self, boundary, bc_type, slopes):
        rng = np.random.default_rng(3)
        x = np.cumsum(rng.uniform(0.1, 1.0, 9))
        y = rng.normal(size=9)
        spline = CubicSpline(x, y, boundary=boundary, end_slopes=slopes)
        reference = scipy.interpolate.CubicSpline(x, y, bc_type=bc_type)

        xs = np.linspace(x[0] - 0.5, x[-1] + 0.5, 41)
        np.testing.assert_allclose(spline.extrapolate(xs), reference(xs), rtol=1e-12, atol=1e-12)
        np.testing.assert_allclose(spline.derivative(xs), reference(xs, 1), rtol=1e-12, atol=1e-12)
        np.testing.assert_allclose(spline.derivative(xs, order=2), reference(xs, 2), rtol=1e-12, atol=1e-12)

    def test_two_samples_are_linear(self):
        spline = CubicSpline([1.0, 3.0], [2.0, 6.0])
        assert spline(2.0) == pytest.approx(4.0)
        assert spline.derivative(2.0) == pytest.approx(2.0)
        np.testing.assert_allclose(spline.second_derivatives, 0.0, atol=1e-12)
