"""
Spectral clustering with the symmetric normalised Laplacian.

    L = I - D^-1/2 W D^-1/2

The eigenvectors of the k smallest eigenvalues of L form an (n, k)
embedding; its rows are scaled to unit length and clustered with K-Means
started from orthogonal centers.

Dense affinities are solved with LAPACK (scipy.linalg.eigh); sparse ones
with ARPACK on D^-1/2 W D^-1/2, whose largest eigenvalues are 1 minus the
smallest of L. The eigen-solve is a single step and cannot be cancelled;
the cancel event is checked before it and between K-Means iterations.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import scipy.sparse
from numpy.typing import ArrayLike, NDArray

from mesh_analysis.clustering.kmeans import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TOLERANCE,
    KMeansInit,
    KMeansResult,
    kmeans,
)
from mesh_analysis.errors import InvalidInput, OperationCancelled, ShapeMismatch
from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.numerics.linear_algebra import is_symmetric, sparse_symmetric_eigen, symmetric_eigen
from mesh_analysis.rng import RandomSource
from mesh_analysis.statistics.distance_metrics import DistanceMetric, MetricLike, pairwise_distances

logger = logging.getLogger(__name__)

Affinity = Union[NDArray[np.float64], scipy.sparse.spmatrix]

DEFAULT_NEIGHBORS = 7


@dataclass
class SpectralResult:
    """Spectral clustering output.

    Attributes:
        labels: cluster index per point
        eigenvalues: k smallest Laplacian eigenvalues, ascending
        embedding: (n, k) row-normalised spectral embedding
        kmeans: K-Means run on the embedding
    """
    labels: NDArray[np.int64]
    eigenvalues: NDArray[np.float64]
    embedding: NDArray[np.float64]
    kmeans: KMeansResult

    @property
    def converged(self) -> bool:
        return self.kmeans.converged

    @property
    def iterations(self) -> int:
        return self.kmeans.iterations

    def to_dict(self) -> dict:
        return {
            'eigenvalues': self.eigenvalues.tolist(),
            'cluster_sizes': self.kmeans.cluster_sizes().tolist(),
            'iterations': self.iterations,
            'converged': self.converged,
        }


# ---------------------------------------------------------------------------
# Affinities
# ---------------------------------------------------------------------------

def gaussian_affinity(points: ArrayLike, sigma: Optional[float] = None,
                      n_neighbors: int = DEFAULT_NEIGHBORS,
                      metric: MetricLike = DistanceMetric.EUCLIDEAN) -> NDArray[np.float64]:
    """Dense Gaussian affinity with a zero diagonal.

    With a fixed sigma, W_ij = exp(-d_ij^2 / (2 sigma^2)). Without one the
    scale is self-tuned per point: sigma_i is the distance to its
    n_neighbors-th nearest neighbour and W_ij = exp(-d_ij^2 / (sigma_i sigma_j)).
    """
    x = np.asarray(points, dtype=np.float64)
    d = pairwise_distances(x, None, metric)
    n = d.shape[0]
    if sigma is not None:
        if sigma <= 0:
            raise InvalidInput(f"sigma must be positive, got {sigma}")
        w = np.exp(-d ** 2 / (2.0 * sigma ** 2))
    else:
        if n < 2:
            w = np.ones((n, n))
        else:
            neighbor = min(max(n_neighbors, 1), n - 1)
            local = np.sort(d, axis=1)[:, neighbor]
            local = np.where(local > 0, local, max(float(local.max()), 1.0))
            w = np.exp(-d ** 2 / np.outer(local, local))
    np.fill_diagonal(w, 0.0)
    return w


def mesh_affinity(mesh: Mesh, sigma: Optional[float] = None) -> scipy.sparse.csr_matrix:
    """Sparse vertex affinity over mesh edges, exp(-length^2 / (2 sigma^2)).

    sigma defaults to the mean edge length.
    """
    edges = mesh.edges()
    n = mesh.n_vertices
    if len(edges) == 0:
        return scipy.sparse.csr_matrix((n, n))
    lengths = np.linalg.norm(mesh.vertices[edges[:, 0]] - mesh.vertices[edges[:, 1]], axis=1)
    if sigma is None:
        sigma = float(lengths.mean()) or 1.0
    weights = np.exp(-lengths ** 2 / (2.0 * sigma ** 2))
    rows = np.concatenate([edges[:, 0], edges[:, 1]])
    cols = np.concatenate([edges[:, 1], edges[:, 0]])
    return scipy.sparse.csr_matrix((np.concatenate([weights, weights]), (rows, cols)), shape=(n, n))


def _check_affinity(affinity: Affinity) -> Affinity:
    if scipy.sparse.issparse(affinity):
        w = scipy.sparse.csr_matrix(affinity, dtype=np.float64)
        if w.shape[0] != w.shape[1]:
            raise ShapeMismatch(f"affinity must be square, got {w.shape}")
        asymmetry = abs(w - w.T)
        if asymmetry.nnz and asymmetry.max() > 1e-8 * max(abs(w).max(), 1.0):
            raise InvalidInput("affinity matrix must be symmetric")
        if w.nnz and w.min() < 0:
            raise InvalidInput("affinities must be non-negative")
        return w
    try:
        w = np.asarray(affinity, dtype=np.float64)
    except ValueError as exc:
        raise ShapeMismatch(f"affinity must be a square matrix: {exc}") from exc
    if w.ndim != 2 or w.shape[0] != w.shape[1]:
        raise ShapeMismatch(f"affinity must be square, got {w.shape}")
    if not is_symmetric(w):
        raise InvalidInput("affinity matrix must be symmetric")
    if np.any(w < 0):
        raise InvalidInput("affinities must be non-negative")
    return w


def _inverse_sqrt_degree(w: Affinity) -> NDArray[np.float64]:
    degree = np.asarray(w.sum(axis=1)).ravel()
    out = np.zeros_like(degree)
    connected = degree > 0
    out[connected] = 1.0 / np.sqrt(degree[connected])
    isolated = int((~connected).sum())
    if isolated:
        logger.warning("%d points have no affinity to any other point", isolated)
    return out


def spectral_embedding(affinity: Affinity, k: int, eigen_max_iterations: Optional[int] = None):
    """(eigenvalues, embedding) from the k smallest eigenpairs of the normalised Laplacian.

    Raises:
        NumericalFailure: the eigen-solver did not converge
    """
    w = _check_affinity(affinity)
    n = w.shape[0]
    scale = _inverse_sqrt_degree(w)

    if scipy.sparse.issparse(w) and k < n - 1:
        d_half = scipy.sparse.diags(scale)
        normalized = d_half @ w @ d_half
        mu, vectors = sparse_symmetric_eigen(normalized, k, largest=True, max_iterations=eigen_max_iterations)
        values = 1.0 - mu[::-1]
        vectors = vectors[:, ::-1]
    else:
        dense = w.toarray() if scipy.sparse.issparse(w) else w
        laplacian = np.eye(n) - scale[:, np.newaxis] * dense * scale[np.newaxis, :]
        values, vectors = symmetric_eigen(laplacian, k)

    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    embedding = np.divide(vectors, norms, out=np.zeros_like(vectors), where=norms > 0)
    return values, embedding


def spectral_clustering(
    k: int,
    points: Optional[ArrayLike] = None,
    affinity: Optional[Affinity] = None,
    rng: Optional[RandomSource] = None,
    sigma: Optional[float] = None,
    n_neighbors: int = DEFAULT_NEIGHBORS,
    metric: MetricLike = DistanceMetric.EUCLIDEAN,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    eigen_max_iterations: Optional[int] = None,
    workers: int = 1,
    cancel_event: Optional[threading.Event] = None,
) -> SpectralResult:
    """Cluster points, or the nodes of an affinity graph, into k groups.

    Exactly one of points (Gaussian affinity is built from them) or
    affinity (dense array or scipy sparse matrix) must be given.

    Raises:
        InvalidInput: both or neither input given, bad k, missing rng
        NumericalFailure: the eigen-solve did not converge
        OperationCancelled: cancel_event was set
    """
    if (points is None) == (affinity is None):
        raise InvalidInput("pass either points or an affinity matrix")
    if rng is None:
        raise InvalidInput("spectral clustering needs a RandomSource")
    if affinity is None:
        affinity = gaussian_affinity(points, sigma, n_neighbors, metric)
    affinity = _check_affinity(affinity)

    n = affinity.shape[0]
    if not 1 <= k <= n:
        raise InvalidInput(f"k must satisfy 1 <= k <= {n}, got {k}")
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("spectral clustering cancelled before the eigen-solve")

    eigenvalues, embedding = spectral_embedding(affinity, k, eigen_max_iterations)
    logger.debug("Spectral embedding: n=%d, k=%d, eigenvalues=%s", n, k, np.round(eigenvalues, 6).tolist())

    result = kmeans(embedding, k, rng, init=KMeansInit.ORTHOGONAL_CENTERS,
                    max_iterations=max_iterations, tolerance=tolerance,
                    workers=workers, cancel_event=cancel_event)
    return SpectralResult(result.labels, eigenvalues, embedding, result)
