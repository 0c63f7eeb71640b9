"""
Cubic spline interpolation on top of scipy.interpolate.CubicSpline.

Outside the sampled range the end cubics are continued, and callers must ask
for that explicitly (extrapolate / evaluate) since interpolate() refuses it.
"""

import logging
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np
import scipy.interpolate
from numpy.typing import ArrayLike, NDArray

from mesh_analysis.errors import InvalidInput, OutOfRange, ShapeMismatch

logger = logging.getLogger(__name__)

Scalar = Union[float, NDArray[np.float64]]


class SplineBoundary(Enum):
    NATURAL = "natural"  # zero second derivative at both ends
    CLAMPED = "clamped"  # prescribed first derivative at both ends


def _scalar_or_array(values: NDArray[np.float64], like) -> Scalar:
    return float(values[0]) if np.ndim(like) == 0 else values.reshape(np.shape(like))


class CubicSpline:
    """Cubic spline through (x, y) samples with strictly increasing x.

    Args:
        x: sample abscissae, strictly increasing, at least two
        y: sample values
        boundary: NATURAL or CLAMPED
        end_slopes: (left, right) first derivatives, required for CLAMPED

    Raises:
        InvalidInput: fewer than two samples, non-increasing or non-finite x,
            or CLAMPED without end_slopes
        ShapeMismatch: x and y differ in length
    """

    def __init__(self, x: ArrayLike, y: ArrayLike,
                 boundary: SplineBoundary = SplineBoundary.NATURAL,
                 end_slopes: Optional[Tuple[float, float]] = None):
        x = np.asarray(x, dtype=np.float64).ravel()
        y = np.asarray(y, dtype=np.float64).ravel()
        if x.size != y.size:
            raise ShapeMismatch(f"spline has {x.size} abscissae and {y.size} values")
        if x.size < 2:
            raise InvalidInput("a spline needs at least two samples")
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
            raise InvalidInput("spline samples must be finite")
        if np.any(np.diff(x) <= 0):
            raise InvalidInput("spline abscissae must be strictly increasing")
        if boundary is SplineBoundary.CLAMPED and end_slopes is None:
            raise InvalidInput("a clamped spline needs end slopes")

        self.x = x
        self.y = y
        self.boundary = boundary
        self.end_slopes = None if end_slopes is None else (float(end_slopes[0]), float(end_slopes[1]))
        if boundary is SplineBoundary.CLAMPED:
            bc_type = ((1, self.end_slopes[0]), (1, self.end_slopes[1]))
        else:
            bc_type = 'natural'
        self._spline = scipy.interpolate.CubicSpline(x, y, bc_type=bc_type, extrapolate=True)

    @property
    def second_derivatives(self) -> NDArray[np.float64]:
        """Second derivative at every knot."""
        return self._spline(self.x, 2)

    # ------------------------------------------------------------------
    # Range
    # ------------------------------------------------------------------

    @property
    def x_range(self) -> Tuple[float, float]:
        return float(self.x[0]), float(self.x[-1])

    def contains(self, x: ArrayLike) -> Union[bool, NDArray[np.bool_]]:
        """Whether x lies inside the sampled range (interpolation, not extrapolation)."""
        arr = np.asarray(x, dtype=np.float64)
        inside = (arr >= self.x[0]) & (arr <= self.x[-1])
        return bool(inside) if inside.ndim == 0 else inside

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def interpolate(self, x: ArrayLike) -> Scalar:
        """Spline value inside the sampled range.

        Raises:
            OutOfRange: any x lies outside [x[0], x[-1]]
        """
        arr = np.asarray(x, dtype=np.float64)
        flat = arr.ravel()
        outside = (flat < self.x[0]) | (flat > self.x[-1])
        if np.any(outside):
            raise OutOfRange(
                f"{int(outside.sum())} abscissae outside the spline range "
                f"[{self.x[0]:g}, {self.x[-1]:g}]; use extrapolate()"
            )
        return _scalar_or_array(self._spline(flat), arr)

    def extrapolate(self, x: ArrayLike) -> Scalar:
        """Spline value anywhere; the end cubics continue past the sampled range."""
        arr = np.asarray(x, dtype=np.float64)
        return _scalar_or_array(self._spline(arr.ravel()), arr)

    def evaluate(self, x: ArrayLike) -> Tuple[Scalar, Union[bool, NDArray[np.bool_]]]:
        """(values, extrapolated) where the mask flags abscissae outside the range."""
        inside = self.contains(x)
        extrapolated = (not inside) if isinstance(inside, bool) else ~inside
        return self.extrapolate(x), extrapolated

    def __call__(self, x: ArrayLike) -> Scalar:
        return self.interpolate(x)

    def derivative(self, x: ArrayLike, order: int = 1) -> Scalar:
        """First or second derivative; extrapolates like extrapolate()."""
        if order not in (1, 2):
            raise InvalidInput(f"derivative order must be 1 or 2, got {order}")
        arr = np.asarray(x, dtype=np.float64)
        return _scalar_or_array(self._spline(arr.ravel(), order), arr)

    def __repr__(self) -> str:
        return f"CubicSpline(n={self.x.size}, range={self.x_range}, boundary={self.boundary.value})"


def resample_polyline(points: ArrayLike, n: int, closed: bool = False) -> NDArray[np.float64]:
    """Densify a polyline with one natural spline per coordinate.

    The curve is parameterised by cumulative chord length; consecutive
    duplicate points are dropped first.

    Args:
        points: (m, d) polyline vertices
        n: number of output points (>= 2)
        closed: treat the polyline as a loop; the output does not repeat
            its first point

    Returns:
        (n, d) points evenly spaced in the chord-length parameter
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2:
        raise ShapeMismatch(f"polyline must be an (m, d) array, got shape {pts.shape}")
    if n < 2:
        raise InvalidInput("resampling needs at least two output points")
    keep = np.concatenate([[True], np.any(np.diff(pts, axis=0) != 0, axis=1)])
    pts = pts[keep]
    if closed and len(pts) > 1 and np.any(pts[0] != pts[-1]):
        pts = np.vstack([pts, pts[:1]])
    if len(pts) < 2:
        raise InvalidInput("polyline needs at least two distinct points")

    t = np.concatenate([[0.0], np.cumsum(np.linalg.norm(np.diff(pts, axis=0), axis=1))])
    samples = np.linspace(0.0, t[-1], n + 1 if closed else n)
    if closed:
        samples = samples[:-1]
    columns = [CubicSpline(t, pts[:, k]).interpolate(samples) for k in range(pts.shape[1])]
    return np.stack(columns, axis=1)
