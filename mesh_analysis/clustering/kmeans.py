"""
K-Means clustering (Lloyd iterations).

Each iteration:
1. assign every point to its nearest centroid (ties go to the lowest
   cluster index)
2. reseed empty clusters with the point farthest from its centroid, taken
   from a cluster that keeps at least one member
3. record the inertia (sum of squared distances to assigned centroids)
4. stop if no assignment changed; otherwise move each centroid to the mean
   of its points and stop if no centroid moved more than the tolerance

Assignment and the per-cluster sums of the update step are computed per
shard of points; with workers > 1 the shards run on a thread pool and the
partial sums are combined afterwards. Not converging within max_iterations
is reported in the result, not raised.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from mesh_analysis.errors import InvalidInput, OperationCancelled, ShapeMismatch
from mesh_analysis.rng import RandomSource
from mesh_analysis.statistics.distance_metrics import DistanceMetric, MetricLike, pairwise_distances

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 300
DEFAULT_TOLERANCE = 1e-8
MIN_SHARD_SIZE = 1024


class KMeansInit(Enum):
    RANDOM_POINTS = "random_points"            # k distinct input points
    RANDOM_CENTERS = "random_centers"          # uniform inside the data bounding box
    RANDOM_PARTITION = "random_partition"      # means of a random partition
    ORTHOGONAL_CENTERS = "orthogonal_centers"  # greedily least-aligned input points
    FIXED = "fixed"                            # caller-supplied centroids


@dataclass
class KMeansResult:
    """Final assignment of a K-Means run.

    Attributes:
        labels: cluster index per point
        centroids: (k, d) cluster centers
        iterations: number of assign steps performed
        converged: False when max_iterations was reached first
        inertia_history: inertia after each assign step
    """
    labels: NDArray[np.int64]
    centroids: NDArray[np.float64]
    iterations: int
    converged: bool
    inertia_history: List[float] = field(default_factory=list)

    @property
    def k(self) -> int:
        return int(self.centroids.shape[0])

    @property
    def inertia(self) -> float:
        return self.inertia_history[-1] if self.inertia_history else 0.0

    def cluster_sizes(self) -> NDArray[np.int64]:
        return np.bincount(self.labels, minlength=self.k)

    def to_dict(self) -> dict:
        return {
            'k': self.k,
            'iterations': self.iterations,
            'converged': self.converged,
            'inertia': self.inertia,
            'cluster_sizes': self.cluster_sizes().tolist(),
            'centroids': self.centroids.tolist(),
        }


# ---------------------------------------------------------------------------
# Initialisation
# ---------------------------------------------------------------------------

def _orthogonal_centers(points: NDArray[np.float64], k: int, rng: RandomSource) -> NDArray[np.float64]:
    """First center at random, then repeatedly the point whose accumulated
    |dot product| with the chosen centers is smallest."""
    n = len(points)
    remaining = np.ones(n, dtype=bool)
    accumulated = np.zeros(n)
    chosen = [int(rng.integers(0, n))]
    remaining[chosen[0]] = False
    for _ in range(1, k):
        accumulated += np.abs(points @ points[chosen[-1]])
        candidate = int(np.argmin(np.where(remaining, accumulated, np.inf)))
        chosen.append(candidate)
        remaining[candidate] = False
    return points[chosen].copy()


def initial_centroids(points: NDArray[np.float64], k: int, init: KMeansInit,
                      rng: Optional[RandomSource]) -> NDArray[np.float64]:
    if rng is None:
        raise InvalidInput(f"{init.value} initialisation needs a RandomSource")
    n, d = points.shape
    if init is KMeansInit.RANDOM_POINTS:
        return points[rng.choice(n, k, replace=False)].copy()
    if init is KMeansInit.RANDOM_CENTERS:
        return rng.points_in_box(points.min(axis=0), points.max(axis=0), k)
    if init is KMeansInit.RANDOM_PARTITION:
        labels = np.asarray(rng.integers(0, k, n))
        # every cluster gets at least one point
        labels[rng.permutation(n)[:k]] = np.arange(k)
        return _cluster_means(points, labels, k, np.zeros((k, d)))
    if init is KMeansInit.ORTHOGONAL_CENTERS:
        return _orthogonal_centers(points, k, rng)
    raise InvalidInput(f"unsupported initialisation {init!r}")


# ---------------------------------------------------------------------------
# Sharded steps
# ---------------------------------------------------------------------------

def _assign_shard(points: NDArray[np.float64], centroids: NDArray[np.float64],
                  metric: MetricLike) -> Tuple[NDArray[np.int64], NDArray[np.float64]]:
    d = pairwise_distances(points, centroids, metric)
    labels = np.argmin(d, axis=1)
    return labels, d[np.arange(len(points)), labels]


def _partial_sums(points: NDArray[np.float64], labels: NDArray[np.int64],
                  k: int) -> Tuple[NDArray[np.float64], NDArray[np.int64]]:
    sums = np.zeros((k, points.shape[1]))
    np.add.at(sums, labels, points)
    return sums, np.bincount(labels, minlength=k)


def _cluster_means(points: NDArray[np.float64], labels: NDArray[np.int64], k: int,
                   previous: NDArray[np.float64]) -> NDArray[np.float64]:
    sums, counts = _partial_sums(points, labels, k)
    means = previous.copy()
    filled = counts > 0
    means[filled] = sums[filled] / counts[filled, np.newaxis]
    return means


def _repair_empty_clusters(points: NDArray[np.float64], labels: NDArray[np.int64],
                           own_distance: NDArray[np.float64], centroids: NDArray[np.float64]) -> int:
    """Move the farthest points into empty clusters, in place. Returns the number repaired."""
    k = len(centroids)
    counts = np.bincount(labels, minlength=k)
    repaired = 0
    for cluster in np.flatnonzero(counts == 0):
        donors = counts[labels] > 1
        idx = int(np.argmax(np.where(donors, own_distance, -np.inf)))
        counts[labels[idx]] -= 1
        labels[idx] = cluster
        counts[cluster] = 1
        centroids[cluster] = points[idx]
        own_distance[idx] = 0.0
        repaired += 1
    return repaired


def _shards(n: int, workers: int) -> List[slice]:
    count = max(1, min(workers, n // MIN_SHARD_SIZE or 1))
    bounds = np.linspace(0, n, count + 1).astype(int)
    return [slice(bounds[i], bounds[i + 1]) for i in range(count)]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def kmeans(
    points: ArrayLike,
    k: int,
    rng: Optional[RandomSource] = None,
    init: KMeansInit = KMeansInit.RANDOM_POINTS,
    initial: Optional[ArrayLike] = None,
    metric: MetricLike = DistanceMetric.EUCLIDEAN,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    workers: int = 1,
    cancel_event: Optional[threading.Event] = None,
) -> KMeansResult:
    """Cluster points into k groups.

    Args:
        points: (n, d) data
        k: number of clusters, 1 <= k <= n
        rng: random source, required unless init is FIXED
        init: initialisation policy
        initial: (k, d) starting centroids for init=FIXED (passing them
            with any other init selects FIXED)
        metric: distance used by the assign step
        max_iterations: assign steps before giving up
        tolerance: largest centroid move still counted as converged
        workers: thread count for the sharded steps
        cancel_event: checked before every iteration

    Raises:
        InvalidInput: bad k, iterations, workers or missing rng
        ShapeMismatch: initial centroids of the wrong shape
        OperationCancelled: cancel_event was set
    """
    x = np.asarray(points, dtype=np.float64)
    if x.ndim == 1:
        x = x[:, np.newaxis]
    if x.ndim != 2:
        raise ShapeMismatch(f"points must be an (n, d) array, got shape {x.shape}")
    n, d = x.shape
    if not 1 <= k <= n:
        raise InvalidInput(f"k must satisfy 1 <= k <= {n}, got {k}")
    if max_iterations < 1:
        raise InvalidInput("max_iterations must be at least 1")
    if workers < 1:
        raise InvalidInput("workers must be at least 1")

    if initial is not None:
        init = KMeansInit.FIXED
    if init is KMeansInit.FIXED:
        if initial is None:
            raise InvalidInput("fixed initialisation needs initial centroids")
        centroids = np.array(initial, dtype=np.float64)
        if centroids.shape != (k, d):
            raise ShapeMismatch(f"initial centroids must have shape {(k, d)}, got {centroids.shape}")
    else:
        centroids = initial_centroids(x, k, init, rng)

    shards = _shards(n, workers)
    history: List[float] = []
    labels = np.full(n, -1, dtype=np.int64)
    converged = False
    iterations = 0

    with ThreadPoolExecutor(max_workers=len(shards)) as pool:
        while iterations < max_iterations:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelled(f"k-means cancelled after {iterations} iterations")
            iterations += 1

            parts = list(pool.map(lambda s: _assign_shard(x[s], centroids, metric), shards))
            new_labels = np.concatenate([p[0] for p in parts])
            own_distance = np.concatenate([p[1] for p in parts])
            repaired = _repair_empty_clusters(x, new_labels, own_distance, centroids)
            if repaired:
                logger.debug("Reseeded %d empty clusters at iteration %d", repaired, iterations)
            history.append(float(np.sum(own_distance ** 2)))

            if np.array_equal(new_labels, labels):
                converged = True
                break
            labels = new_labels

            partials = list(pool.map(lambda s: _partial_sums(x[s], labels[s], k), shards))
            sums = sum(p[0] for p in partials)
            counts = sum(p[1] for p in partials)
            updated = sums / counts[:, np.newaxis]
            shift = float(np.max(np.linalg.norm(updated - centroids, axis=1)))
            centroids = updated
            if shift <= tolerance:
                converged = True
                break

    logger.debug("k-means: k=%d, n=%d, %d iterations, converged=%s", k, n, iterations, converged,
                 extra={'inertia': history[-1]})
    return KMeansResult(labels, centroids, iterations, converged, history)
