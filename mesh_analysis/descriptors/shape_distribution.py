"""
Shape distributions: histograms of simple geometric measures over random
surface samples.

- A3: angle at the first of three random points
- D1: distance from the centroid to a random point
- D2: distance between two random points
- D3: square root of the area of the triangle of three random points
- D4: cube root of the volume of the tetrahedron of four random points
"""

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np
from numpy.typing import NDArray

from mesh_analysis.errors import InvalidInput, ShapeMismatch
from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.interpolation.cubic_spline import CubicSpline
from mesh_analysis.rng import RandomSource
from mesh_analysis.statistics.distance_metrics import DistanceMetric, MetricLike, distance

logger = logging.getLogger(__name__)

DEFAULT_SAMPLES = 16384
DEFAULT_BINS = 256


class DistributionKind(Enum):
    A3 = "a3"
    D1 = "d1"
    D2 = "d2"
    D3 = "d3"
    D4 = "d4"

    @property
    def points_per_sample(self) -> int:
        return {'a3': 3, 'd1': 1, 'd2': 2, 'd3': 3, 'd4': 4}[self.value]


@dataclass
class ShapeDistribution:
    """Normalised histogram (sums to 1) of one measure."""
    kind: DistributionKind
    histogram: NDArray[np.float64]
    bin_centers: NDArray[np.float64]
    n_samples: int

    @property
    def n_bins(self) -> int:
        return int(self.histogram.size)

    def cumulative(self) -> NDArray[np.float64]:
        return np.cumsum(self.histogram)

    def mean(self) -> float:
        return float(self.histogram @ self.bin_centers)

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'n_samples': self.n_samples,
            'histogram': self.histogram.tolist(),
            'bin_centers': self.bin_centers.tolist(),
        }


def _angles(p: NDArray[np.float64]) -> NDArray[np.float64]:
    u = p[:, 1] - p[:, 0]
    v = p[:, 2] - p[:, 0]
    norms = np.linalg.norm(u, axis=1) * np.linalg.norm(v, axis=1)
    cos = np.divide(np.einsum('ij,ij->i', u, v), norms, out=np.ones(len(p)), where=norms > 0)
    return np.arccos(np.clip(cos, -1.0, 1.0))


def _measure(kind: DistributionKind, points: NDArray[np.float64], centroid: NDArray[np.float64]) -> NDArray[np.float64]:
    if kind is DistributionKind.A3:
        return _angles(points)
    if kind is DistributionKind.D1:
        return np.linalg.norm(points[:, 0] - centroid, axis=1)
    if kind is DistributionKind.D2:
        return np.linalg.norm(points[:, 1] - points[:, 0], axis=1)
    if kind is DistributionKind.D3:
        cross = np.cross(points[:, 1] - points[:, 0], points[:, 2] - points[:, 0])
        return np.sqrt(0.5 * np.linalg.norm(cross, axis=1))
    edges = points[:, 1:] - points[:, :1]
    return np.cbrt(np.abs(np.linalg.det(edges)) / 6.0)


def shape_distribution(mesh: Mesh, kind: DistributionKind, rng: RandomSource,
                       n_samples: int = DEFAULT_SAMPLES, n_bins: int = DEFAULT_BINS) -> ShapeDistribution:
    """Histogram of a random geometric measure over the mesh surface.

    A3 is binned over [0, pi]; the other measures over [0, largest sample].

    Raises:
        InvalidInput: n_samples or n_bins < 1, or the mesh has no area
    """
    if n_samples < 1 or n_bins < 1:
        raise InvalidInput("shape distributions need at least one sample and one bin")
    k = kind.points_per_sample
    points = mesh.sample_points(n_samples * k, rng).reshape(n_samples, k, 3)
    samples = _measure(kind, points, mesh.centroid())

    upper = np.pi if kind is DistributionKind.A3 else float(samples.max())
    if upper <= 0:
        upper = 1.0
    counts, edges = np.histogram(samples, bins=n_bins, range=(0.0, upper))
    logger.debug("Shape distribution %s: %d samples, %d bins", kind.name, n_samples, n_bins)
    return ShapeDistribution(kind, counts / float(n_samples), (edges[:-1] + edges[1:]) / 2.0, n_samples)


def compare_shape_distributions(a: ShapeDistribution, b: ShapeDistribution,
                                metric: MetricLike = DistanceMetric.CITY_BLOCK,
                                cumulative: bool = False) -> float:
    """Bin-by-bin distance between two histograms of the same length."""
    if a.n_bins != b.n_bins:
        raise ShapeMismatch(f"histograms have {a.n_bins} and {b.n_bins} bins")
    h1 = a.cumulative() if cumulative else a.histogram
    h2 = b.cumulative() if cumulative else b.histogram
    return distance(h1, h2, metric)


def _resampled(dist: ShapeDistribution, scale: float, xs: NDArray[np.float64]) -> NDArray[np.float64]:
    """Histogram of dist on the abscissae xs after scaling its support by scale."""
    if dist.n_bins < 2:
        return np.full(xs.size, 1.0 / xs.size)
    values, outside = CubicSpline(dist.bin_centers, dist.histogram).evaluate(xs / scale)
    values = np.where(outside, 0.0, np.maximum(values, 0.0))
    total = values.sum()
    return values / total if total > 0 else values


def compare_scaled_distributions(a: ShapeDistribution, b: ShapeDistribution,
                                 metric: MetricLike = DistanceMetric.CITY_BLOCK,
                                 cumulative: bool = False, n_points: int = 256, n_scales: int = 64,
                                 min_log_scale: float = -2.0, max_log_scale: float = 2.0) -> float:
    """Smallest distance over relative scalings of the second distribution.

    Both histograms are first normalised to unit mean, then the second one
    is stretched by exp(s) for n_scales values of s in
    [min_log_scale, max_log_scale]; each pair is re-binned on a common
    support with natural splines.
    """
    if n_points < 2 or n_scales < 1:
        raise InvalidInput("scaled comparison needs n_points >= 2 and n_scales >= 1")
    if min_log_scale > max_log_scale:
        raise InvalidInput("min_log_scale must not exceed max_log_scale")

    m1, m2 = a.mean(), b.mean()
    s1 = 1.0 / m1 if m1 > 0 else 1.0
    s2_base = 1.0 / m2 if m2 > 0 else 1.0

    best = np.inf
    for log_scale in np.linspace(min_log_scale, max_log_scale, n_scales):
        s2 = s2_base * np.exp(log_scale)
        lo = min(s1 * a.bin_centers.min(), s2 * b.bin_centers.min())
        hi = max(s1 * a.bin_centers.max(), s2 * b.bin_centers.max())
        xs = np.linspace(lo, hi, n_points)
        h1 = _resampled(a, s1, xs)
        h2 = _resampled(b, s2, xs)
        if cumulative:
            h1, h2 = np.cumsum(h1), np.cumsum(h2)
        best = min(best, distance(h1, h2, metric))
    return float(best)
