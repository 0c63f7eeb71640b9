"""
Spherical-harmonic shape descriptors.

Mesh descriptor: the radial function r(theta, phi), the distance from the
area-weighted centroid to the farthest surface hit along each direction,
is sampled on a Gauss-Legendre grid and expanded in harmonics.

Grid descriptor: the voxel occupancy is sampled on concentric spheres
around the occupied-cell centroid and every shell is expanded separately.

Both descriptors compare shapes by per-degree energies, which do not change
when the input is rotated. The raw coefficients are kept for callers that
need them but depend on the orientation of the input.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from numpy.typing import ArrayLike, NDArray

from mesh_analysis.descriptors.spherical_harmonics import (
    HarmonicCoefficients,
    SphericalGrid,
    spherical_transform,
)
from mesh_analysis.errors import InvalidGeometry, InvalidInput, ShapeMismatch
from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.geometry.primitives import ray_triangle_distances
from mesh_analysis.numerics.constants import GEOMETRY_TOLERANCE
from mesh_analysis.rasterization.grid import VoxelGrid
from mesh_analysis.statistics.distance_metrics import DistanceMetric, MetricLike, distance

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEGREE = 16
DEFAULT_OVERSAMPLING = 2
DEFAULT_SHELLS = 8


@dataclass
class ShapeDescriptor:
    """Harmonic expansion of a shape, one HarmonicCoefficients per shell.

    Attributes:
        max_degree: maximum harmonic degree
        shells: coefficients per shell (a single shell for mesh descriptors)
        source: "mesh" or "grid"
        radius: radius used to normalise the signal
    """
    max_degree: int
    shells: List[HarmonicCoefficients]
    source: str = "mesh"
    radius: float = 1.0
    metadata: dict = field(default_factory=dict)

    @property
    def n_shells(self) -> int:
        return len(self.shells)

    @property
    def energies(self) -> NDArray[np.float64]:
        """(n_shells, max_degree + 1) per-degree energies."""
        return np.stack([s.energies() for s in self.shells])

    def feature_vector(self) -> NDArray[np.float64]:
        """Flattened square roots of the energies, the vector used for comparison."""
        return np.sqrt(self.energies).ravel()

    def to_dict(self) -> dict:
        return {
            'max_degree': self.max_degree,
            'source': self.source,
            'radius': self.radius,
            'n_shells': self.n_shells,
            'energies': self.energies.tolist(),
            'metadata': dict(self.metadata),
        }


def radial_function(mesh: Mesh, directions: ArrayLike,
                    center: Optional[ArrayLike] = None) -> NDArray[np.float64]:
    """Farthest surface distance from center along each direction.

    Directions that miss the surface give 0.

    Raises:
        InvalidGeometry: the mesh has no faces
    """
    if mesh.n_faces == 0:
        raise InvalidGeometry("cannot cast rays against a mesh without faces")
    center = mesh.centroid() if center is None else np.asarray(center, dtype=np.float64)
    d = np.asarray(directions, dtype=np.float64)
    d = d / np.linalg.norm(d, axis=1, keepdims=True)
    return ray_triangle_distances(center, d, mesh.triangles())


def describe_mesh(mesh: Mesh, max_degree: int = DEFAULT_MAX_DEGREE,
                  oversampling: int = DEFAULT_OVERSAMPLING, normalize: bool = True) -> ShapeDescriptor:
    """Harmonic descriptor of the radial function of a mesh.

    Args:
        mesh: input mesh, any orientation
        max_degree: maximum harmonic degree
        oversampling: polar nodes per degree of the sampling grid
        normalize: divide radii by their maximum so the descriptor is
            scale invariant

    Raises:
        InvalidGeometry: empty mesh, or no ray hits the surface
    """
    grid = SphericalGrid.gauss_legendre(max_degree, oversampling)
    radii = radial_function(mesh, grid.directions())
    radius = float(radii.max())
    if radius < GEOMETRY_TOLERANCE:
        raise InvalidGeometry("no ray from the centroid hits the mesh surface")
    misses = int((radii == 0).sum())
    if misses:
        logger.debug("%d of %d rays missed the surface", misses, grid.size)
    if normalize:
        radii = radii / radius

    coefficients = spherical_transform(radii, grid, max_degree)
    logger.debug("Mesh descriptor: degree %d, %d samples, radius %.4g", max_degree, grid.size, radius,
                 extra={'faces': mesh.n_faces})
    return ShapeDescriptor(max_degree, [coefficients], source="mesh", radius=radius,
                           metadata={'samples': grid.size, 'missed_rays': misses})


def describe_grid(grid: VoxelGrid, max_degree: int = DEFAULT_MAX_DEGREE,
                  n_shells: int = DEFAULT_SHELLS, oversampling: int = DEFAULT_OVERSAMPLING) -> ShapeDescriptor:
    """Harmonic descriptor of a voxel grid sampled on concentric shells.

    Shell k has radius (k + 0.5) / n_shells times the distance from the
    centroid to the farthest occupied cell corner.

    Raises:
        InvalidGeometry: the grid is empty
        InvalidInput: n_shells < 1
    """
    if n_shells < 1:
        raise InvalidInput(f"need at least one shell, got {n_shells}")
    if grid.is_empty:
        raise InvalidGeometry("cannot describe an empty voxel grid")

    center = grid.centroid()
    centers = grid.occupied_centers()
    radius = float(np.linalg.norm(centers - center, axis=1).max()) + grid.cell_size * np.sqrt(3.0) / 2

    sphere = SphericalGrid.gauss_legendre(max_degree, oversampling)
    shells = []
    for k in range(n_shells):
        r = (k + 0.5) / n_shells * radius
        occupancy = grid.evaluate_spherical(r, sphere.theta, sphere.phi, center).astype(np.float64)
        shells.append(spherical_transform(occupancy, sphere, max_degree))

    logger.debug("Grid descriptor: degree %d, %d shells, radius %.4g", max_degree, n_shells, radius)
    return ShapeDescriptor(max_degree, shells, source="grid", radius=radius,
                           metadata={'samples': sphere.size, 'grid_shape': list(grid.shape)})


def compare_descriptors(a: ShapeDescriptor, b: ShapeDescriptor,
                        metric: MetricLike = DistanceMetric.EUCLIDEAN) -> float:
    """Distance between the rotation-invariant feature vectors of two descriptors.

    Raises:
        ShapeMismatch: different degree or shell count
    """
    if a.max_degree != b.max_degree or a.n_shells != b.n_shells:
        raise ShapeMismatch(
            f"descriptors differ: degree {a.max_degree} vs {b.max_degree}, "
            f"shells {a.n_shells} vs {b.n_shells}"
        )
    return distance(a.feature_vector(), b.feature_vector(), metric)
