"""
Engine boundary.

The small synchronous API consumed by presentation layers (the CLI here):
mesh load/save, transformation, rasterization, descriptor computation and
clustering. Every call returns a result or raises a MeshAnalysisError
subclass; all parameters are explicit and no configuration is read from
files or globals. Stochastic calls take the RandomSource to draw from.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from mesh_analysis import io as mesh_io
from mesh_analysis.clustering.kmeans import DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE, KMeansInit, kmeans
from mesh_analysis.clustering.spectral import DEFAULT_NEIGHBORS, Affinity, spectral_clustering
from mesh_analysis.descriptors.harmonic_descriptor import (
    DEFAULT_MAX_DEGREE,
    DEFAULT_OVERSAMPLING,
    DEFAULT_SHELLS,
    ShapeDescriptor,
    describe_grid,
    describe_mesh,
)
from mesh_analysis.errors import InvalidInput
from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.geometry.transform import AffineTransformation
from mesh_analysis.io.ply_codec import PLYFormat
from mesh_analysis.io.stl_codec import DEFAULT_MERGE_DECIMALS
from mesh_analysis.logging_config import log_timing
from mesh_analysis.rasterization.grid import GridMapping, VoxelGrid
from mesh_analysis.rasterization.voxelizer import VoxelMode, voxelize
from mesh_analysis.rng import RandomSource
from mesh_analysis.statistics.distance_metrics import DistanceMetric, MetricLike

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Mesh I/O and transformation
# ---------------------------------------------------------------------------

def load_mesh(path, decimals: Optional[int] = DEFAULT_MERGE_DECIMALS) -> Mesh:
    """Read a PLY or STL file (format sniffed from the content)."""
    return mesh_io.load_mesh(path, decimals)


def save_mesh(mesh: Mesh, path, fmt: Optional[mesh_io.MeshFormat] = None, binary: bool = True,
              ply_format: Optional[PLYFormat] = None) -> None:
    """Write a mesh as PLY or STL (format from fmt or the file extension)."""
    mesh_io.save_mesh(mesh, path, fmt=fmt, binary=binary, ply_format=ply_format)


def apply_transform(mesh: Mesh, transform: AffineTransformation, in_place: bool = False) -> Mesh:
    """Transform positions and normals; returns the (new or same) mesh."""
    if in_place:
        mesh.apply_transform(transform)
        return mesh
    return mesh.transformed(transform)


# ---------------------------------------------------------------------------
# Rasterization and descriptors
# ---------------------------------------------------------------------------

def rasterize(mesh: Mesh, resolution: int, mode: VoxelMode = VoxelMode.SOLID,
              mapping: GridMapping = GridMapping.FITTED, workers: int = 1) -> VoxelGrid:
    with log_timing(logger, "Voxelizing", resolution=resolution, mode=mode.value):
        return voxelize(mesh, resolution, mode=mode, mapping=mapping, workers=workers)


def compute_descriptor(source: Union[Mesh, VoxelGrid], max_degree: int = DEFAULT_MAX_DEGREE,
                       oversampling: int = DEFAULT_OVERSAMPLING,
                       n_shells: int = DEFAULT_SHELLS) -> ShapeDescriptor:
    """Spherical-harmonic descriptor of a mesh (radial function) or a voxel grid (shells)."""
    if isinstance(source, Mesh):
        with log_timing(logger, "Mesh descriptor", max_degree=max_degree):
            return describe_mesh(source, max_degree, oversampling)
    if isinstance(source, VoxelGrid):
        with log_timing(logger, "Grid descriptor", max_degree=max_degree, n_shells=n_shells):
            return describe_grid(source, max_degree, n_shells, oversampling)
    raise InvalidInput(f"descriptors need a Mesh or a VoxelGrid, got {type(source).__name__}")


# ---------------------------------------------------------------------------
# Clustering
# ---------------------------------------------------------------------------

class ClusterAlgorithm(Enum):
    KMEANS = "kmeans"
    SPECTRAL = "spectral"


@dataclass
class ClusterParameters:
    """Tuning shared by both algorithms; fields irrelevant to one are ignored."""
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    tolerance: float = DEFAULT_TOLERANCE
    init: KMeansInit = KMeansInit.RANDOM_POINTS
    initial_centroids: Optional[ArrayLike] = None
    metric: MetricLike = DistanceMetric.EUCLIDEAN
    sigma: Optional[float] = None
    n_neighbors: int = DEFAULT_NEIGHBORS
    eigen_max_iterations: Optional[int] = None
    workers: int = 1


@dataclass
class ClusterAssignment:
    """Labels and centroids from either algorithm.

    Centroids live in the input point space when points were given; for a
    bare affinity they are the K-Means centroids in the spectral embedding.
    """
    labels: NDArray[np.int64]
    centroids: NDArray[np.float64]
    algorithm: ClusterAlgorithm
    iterations: int
    converged: bool
    inertia_history: List[float] = field(default_factory=list)
    eigenvalues: Optional[NDArray[np.float64]] = None

    @property
    def k(self) -> int:
        return int(self.centroids.shape[0])

    def cluster_sizes(self) -> NDArray[np.int64]:
        return np.bincount(self.labels, minlength=self.k)

    def to_dict(self) -> dict:
        result = {
            'algorithm': self.algorithm.value,
            'k': self.k,
            'iterations': self.iterations,
            'converged': self.converged,
            'cluster_sizes': self.cluster_sizes().tolist(),
            'centroids': self.centroids.tolist(),
        }
        if self.eigenvalues is not None:
            result['eigenvalues'] = self.eigenvalues.tolist()
        return result


def _means(points: NDArray[np.float64], labels: NDArray[np.int64], k: int) -> NDArray[np.float64]:
    sums = np.zeros((k, points.shape[1]))
    np.add.at(sums, labels, points)
    counts = np.bincount(labels, minlength=k)
    return sums / np.maximum(counts, 1)[:, np.newaxis]


def cluster(
    k: int,
    points: Optional[ArrayLike] = None,
    affinity: Optional[Affinity] = None,
    algorithm: ClusterAlgorithm = ClusterAlgorithm.KMEANS,
    params: Optional[ClusterParameters] = None,
    rng: Optional[RandomSource] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ClusterAssignment:
    """Cluster points (K-Means or spectral) or an affinity graph (spectral).

    Raises:
        InvalidInput: K-Means without points, bad k, missing rng
        NumericalFailure: spectral eigen-solve did not converge
        OperationCancelled: cancel_event was set
    """
    params = params or ClusterParameters()

    if algorithm is ClusterAlgorithm.KMEANS:
        if points is None:
            raise InvalidInput("k-means needs points; use spectral clustering for an affinity")
        with log_timing(logger, "K-Means", k=k):
            result = kmeans(points, k, rng, init=params.init, initial=params.initial_centroids,
                            metric=params.metric, max_iterations=params.max_iterations,
                            tolerance=params.tolerance, workers=params.workers, cancel_event=cancel_event)
        if not result.converged:
            logger.warning("K-Means did not converge in %d iterations", result.iterations)
        return ClusterAssignment(result.labels, result.centroids, algorithm, result.iterations,
                                 result.converged, list(result.inertia_history))

    with log_timing(logger, "Spectral clustering", k=k):
        result = spectral_clustering(k, points=points, affinity=affinity, rng=rng, sigma=params.sigma,
                                     n_neighbors=params.n_neighbors, metric=params.metric,
                                     max_iterations=params.max_iterations, tolerance=params.tolerance,
                                     eigen_max_iterations=params.eigen_max_iterations,
                                     workers=params.workers, cancel_event=cancel_event)
    if points is not None:
        x = np.asarray(points, dtype=np.float64)
        centroids = _means(x.reshape(len(x), -1), result.labels, k)
    else:
        centroids = result.kmeans.centroids
    return ClusterAssignment(result.labels, centroids, algorithm, result.iterations, result.converged,
                             list(result.kmeans.inertia_history), result.eigenvalues)
