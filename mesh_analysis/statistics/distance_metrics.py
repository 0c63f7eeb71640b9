"""
Pluggable distance functions.

Every metric is symmetric and non-negative. Built-in metrics are evaluated
with scipy.spatial.distance.cdist where scipy provides them; the few that
scipy lacks are vectorised here. Custom metrics may be passed as any
callable f(a, b) -> float on two 1D vectors.
"""

import logging
from enum import Enum
from typing import Callable, Optional, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.spatial.distance import cdist
from scipy.stats import rankdata

from mesh_analysis.errors import InvalidInput, ShapeMismatch

logger = logging.getLogger(__name__)


class DistanceMetric(Enum):
    SQUARED_EUCLIDEAN = "sqeuclidean"
    EUCLIDEAN = "euclidean"
    MINKOWSKI = "minkowski"
    CITY_BLOCK = "cityblock"
    CHEBYSHEV = "chebyshev"
    MIN = "min"                        # smallest per-coordinate difference
    BHATTACHARYYA = "bhattacharyya"    # between discrete distributions
    COSINE = "cosine"
    CORRELATION = "correlation"
    SPEARMAN = "spearman"
    JACCARD = "jaccard"
    HAMMING = "hamming"
    STANDARDIZED_EUCLIDEAN = "seuclidean"
    MAHALANOBIS = "mahalanobis"

    @classmethod
    def parse(cls, value: Union[str, 'DistanceMetric']) -> 'DistanceMetric':
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace('-', '_')
        for metric in cls:
            if key in (metric.value, metric.name.lower()):
                return metric
        raise InvalidInput(f"unknown distance metric {value!r}")


MetricLike = Union[DistanceMetric, str, Callable[[NDArray[np.float64], NDArray[np.float64]], float]]

_SCIPY_METRICS = {
    DistanceMetric.SQUARED_EUCLIDEAN,
    DistanceMetric.EUCLIDEAN,
    DistanceMetric.MINKOWSKI,
    DistanceMetric.CITY_BLOCK,
    DistanceMetric.CHEBYSHEV,
    DistanceMetric.COSINE,
    DistanceMetric.CORRELATION,
    DistanceMetric.JACCARD,
    DistanceMetric.HAMMING,
    DistanceMetric.STANDARDIZED_EUCLIDEAN,
    DistanceMetric.MAHALANOBIS,
}


def _as_rows(x: ArrayLike, name: str) -> NDArray[np.float64]:
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr[np.newaxis, :]
    if arr.ndim != 2:
        raise ShapeMismatch(f"{name} must be a vector or an (n, d) matrix, got shape {arr.shape}")
    if arr.shape[1] == 0:
        raise InvalidInput(f"{name} has no coordinates")
    return arr


def _min_distance(x: NDArray[np.float64], y: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.abs(x[:, np.newaxis, :] - y[np.newaxis, :, :]).min(axis=2)


def _bhattacharyya(x: NDArray[np.float64], y: NDArray[np.float64]) -> NDArray[np.float64]:
    """-log(sum(sqrt(p * q))) for probability vectors with entries in [0, 1]."""
    if np.any((x < 0) | (x > 1)) or np.any((y < 0) | (y > 1)):
        raise InvalidInput("Bhattacharyya distance needs probabilities in [0, 1]")
    coefficient = np.sqrt(x) @ np.sqrt(y).T
    with np.errstate(divide='ignore'):
        return np.maximum(-np.log(coefficient), 0.0)


def _spearman(x: NDArray[np.float64], y: NDArray[np.float64]) -> NDArray[np.float64]:
    rx = rankdata(x, axis=1)
    ry = rankdata(y, axis=1)
    return cdist(rx, ry, metric='correlation')


def pairwise_distances(x: ArrayLike, y: Optional[ArrayLike] = None,
                       metric: MetricLike = DistanceMetric.EUCLIDEAN, **params) -> NDArray[np.float64]:
    """Distance matrix between the rows of x and the rows of y.

    Args:
        x: (n, d) points
        y: (m, d) points; x itself when None
        metric: DistanceMetric, its name, or a callable on two vectors
        **params: metric parameters passed to cdist (p for Minkowski,
            V for standardized Euclidean, VI for Mahalanobis)

    Returns:
        (n, m) matrix of distances

    Raises:
        ShapeMismatch: x and y have a different number of coordinates
    """
    xs = _as_rows(x, "x")
    ys = xs if y is None else _as_rows(y, "y")
    if xs.shape[1] != ys.shape[1]:
        raise ShapeMismatch(f"points have {xs.shape[1]} and {ys.shape[1]} coordinates")

    if callable(metric) and not isinstance(metric, DistanceMetric):
        return cdist(xs, ys, metric=metric)

    metric = DistanceMetric.parse(metric)
    if metric in _SCIPY_METRICS:
        if metric is DistanceMetric.MINKOWSKI:
            params.setdefault('p', 2.0)
        return cdist(xs, ys, metric=metric.value, **params)
    if metric is DistanceMetric.MIN:
        return _min_distance(xs, ys)
    if metric is DistanceMetric.BHATTACHARYYA:
        return _bhattacharyya(xs, ys)
    return _spearman(xs, ys)


def distance(a: ArrayLike, b: ArrayLike, metric: MetricLike = DistanceMetric.EUCLIDEAN, **params) -> float:
    """Distance between two vectors."""
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise ShapeMismatch(f"vectors have lengths {a.size} and {b.size}")
    return float(pairwise_distances(a, b, metric, **params)[0, 0])


def distances_to(point: ArrayLike, points: ArrayLike,
                 metric: MetricLike = DistanceMetric.EUCLIDEAN, **params) -> NDArray[np.float64]:
    """Distances from one point to each row of a point set."""
    return pairwise_distances(np.asarray(point, dtype=np.float64).ravel(), points, metric, **params)[0]
