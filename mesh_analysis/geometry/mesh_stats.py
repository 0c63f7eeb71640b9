"""
Mesh statistics calculation module.

Provides:
- Axis-aligned bounding box
- Mesh statistics (vertices, faces, edges, area, volume)
- Principal axes (oriented bounding box) via PCA
- Side-by-side comparison of two meshes
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from mesh_analysis.geometry.mesh import Mesh

logger = logging.getLogger(__name__)


@dataclass
class BoundingBox:
    """Axis-Aligned Bounding Box (AABB).

    Attributes:
        min_point: Minimum corner (x_min, y_min, z_min)
        max_point: Maximum corner (x_max, y_max, z_max)
    """
    min_point: NDArray[np.float64]
    max_point: NDArray[np.float64]

    @classmethod
    def from_points(cls, points: NDArray[np.float64]) -> 'BoundingBox':
        points = np.asarray(points, dtype=np.float64)
        if len(points) == 0:
            return cls(min_point=np.zeros(3), max_point=np.zeros(3))
        return cls(min_point=points.min(axis=0), max_point=points.max(axis=0))

    @property
    def dimensions(self) -> NDArray[np.float64]:
        """Box extents along each axis."""
        return self.max_point - self.min_point

    @property
    def center(self) -> NDArray[np.float64]:
        return (self.min_point + self.max_point) / 2

    @property
    def volume(self) -> float:
        return float(np.prod(self.dimensions))

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(self.dimensions))

    @property
    def max_dimension(self) -> float:
        return float(np.max(self.dimensions))

    @property
    def min_dimension(self) -> float:
        return float(np.min(self.dimensions))

    @property
    def aspect_ratio(self) -> float:
        """Largest over smallest extent (inf for flat boxes)."""
        min_dim = self.min_dimension
        if min_dim < 1e-10:
            return float('inf')
        return self.max_dimension / min_dim

    def is_degenerate(self, tol: float = 1e-12) -> bool:
        """True when at least one extent vanishes relative to the largest one."""
        largest = self.max_dimension
        return largest <= 0.0 or self.min_dimension <= tol * largest

    def contains_point(self, point: NDArray[np.float64]) -> bool:
        return bool(np.all(point >= self.min_point) and np.all(point <= self.max_point))

    def intersects(self, other: 'BoundingBox') -> bool:
        return bool(np.all(self.min_point <= other.max_point) and np.all(self.max_point >= other.min_point))

    def expand(self, margin: float) -> 'BoundingBox':
        """Box grown by margin on all sides."""
        return BoundingBox(min_point=self.min_point - margin, max_point=self.max_point + margin)

    def cube(self) -> 'BoundingBox':
        """Smallest cube sharing this box's center that contains it."""
        half = self.max_dimension / 2
        return BoundingBox(min_point=self.center - half, max_point=self.center + half)

    def to_dict(self) -> dict:
        return {
            'min': self.min_point.tolist(),
            'max': self.max_point.tolist(),
            'dimensions': self.dimensions.tolist(),
            'center': self.center.tolist(),
            'volume': self.volume,
            'diagonal': self.diagonal,
        }


@dataclass
class MeshStatistics:
    """Summary of mesh size, extent and topology.

    Attributes:
        n_vertices: Number of vertices
        n_faces: Number of triangular faces
        n_edges: Number of unique edges
        bbox: Axis-aligned bounding box
        surface_area: Total surface area
        volume: Signed enclosed volume (negative if inverted)
        centroid: Area-weighted surface centroid
        is_watertight: Every edge is shared by exactly two faces
        euler_characteristic: V - E + F
    """
    n_vertices: int
    n_faces: int
    n_edges: int
    bbox: BoundingBox
    surface_area: float
    volume: float
    centroid: NDArray[np.float64]
    is_watertight: bool = False
    euler_characteristic: int = 0
    face_areas: Optional[NDArray[np.float64]] = field(default=None, repr=False)

    @property
    def avg_face_area(self) -> float:
        if self.n_faces == 0:
            return 0.0
        return self.surface_area / self.n_faces

    @property
    def compactness(self) -> float:
        """Sphericity 36*pi*V^2 / A^3, equal to 1 for a sphere."""
        if self.surface_area < 1e-10:
            return 0.0
        return (36 * np.pi * self.volume ** 2) / (self.surface_area ** 3)

    def summary(self) -> str:
        """Human-readable summary for CLI output."""
        dims = self.bbox.dimensions
        lines = [
            "Mesh Statistics",
            "=" * 40,
            f"Vertices:     {self.n_vertices:,}",
            f"Faces:        {self.n_faces:,}",
            f"Edges:        {self.n_edges:,}",
            "",
            f"Dimensions:   {dims[0]:.4g} x {dims[1]:.4g} x {dims[2]:.4g}",
            f"Diagonal:     {self.bbox.diagonal:.4g}",
            "",
            f"Surface Area: {self.surface_area:.4g}",
            f"Volume:       {self.volume:.4g}",
            f"Compactness:  {self.compactness:.3f}",
            f"Watertight:   {'Yes' if self.is_watertight else 'No'}",
            "",
            f"Centroid:     ({self.centroid[0]:.4g}, {self.centroid[1]:.4g}, {self.centroid[2]:.4g})",
            f"Euler char:   {self.euler_characteristic}",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            'n_vertices': self.n_vertices,
            'n_faces': self.n_faces,
            'n_edges': self.n_edges,
            'bbox': self.bbox.to_dict(),
            'surface_area': self.surface_area,
            'volume': self.volume,
            'centroid': self.centroid.tolist(),
            'is_watertight': self.is_watertight,
            'euler_characteristic': self.euler_characteristic,
        }


def edge_face_counts(faces: NDArray[np.int64]) -> Counter:
    """Number of faces incident to every undirected edge."""
    counts: Counter = Counter()
    for face in faces:
        for i in range(3):
            j = (i + 1) % 3
            a, b = int(face[i]), int(face[j])
            counts[(min(a, b), max(a, b))] += 1
    return counts


def calculate_mesh_statistics(mesh: 'Mesh', check_watertight: bool = True) -> MeshStatistics:
    """Calculate size, extent and topology statistics of a mesh.

    Example:
        >>> stats = calculate_mesh_statistics(mesh)
        >>> print(f"Mesh has {stats.n_faces} faces")
    """
    n_edges = len(mesh.edges())
    face_areas = mesh.face_areas()
    surface_area = float(face_areas.sum())

    is_watertight = False
    if check_watertight and mesh.n_faces > 0:
        is_watertight = all(count == 2 for count in edge_face_counts(mesh.faces).values())

    stats = MeshStatistics(
        n_vertices=mesh.n_vertices,
        n_faces=mesh.n_faces,
        n_edges=n_edges,
        bbox=mesh.bounding_box(),
        surface_area=surface_area,
        volume=mesh.volume(),
        centroid=mesh.centroid(),
        is_watertight=is_watertight,
        euler_characteristic=mesh.n_vertices - n_edges + mesh.n_faces,
        face_areas=face_areas,
    )

    logger.debug(
        "Mesh statistics calculated",
        extra={
            'vertices': mesh.n_vertices,
            'faces': mesh.n_faces,
            'surface_area': surface_area,
            'volume': stats.volume,
        }
    )
    return stats


def principal_axes(
    points: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Oriented bounding box axes by PCA.

    Returns:
        (center, axes, half_extents) where rows of axes are principal
        directions sorted by decreasing variance
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) == 0:
        return np.zeros(3), np.eye(3), np.zeros(3)

    center = points.mean(axis=0)
    centered = points - center
    eigenvalues, eigenvectors = np.linalg.eigh(np.cov(centered.T))
    order = np.argsort(eigenvalues)[::-1]
    axes = eigenvectors[:, order].T

    projected = centered @ axes.T
    half_extents = (projected.max(axis=0) - projected.min(axis=0)) / 2
    return center, axes, half_extents


def compare_mesh_statistics(
    stats1: MeshStatistics,
    stats2: MeshStatistics,
    name1: str = "Mesh 1",
    name2: str = "Mesh 2",
) -> str:
    """Formatted side-by-side comparison of two meshes."""
    def fmt_diff(v1: float, v2: float) -> str:
        if v1 == 0:
            return "N/A"
        diff_pct = ((v2 - v1) / v1) * 100
        sign = "+" if diff_pct > 0 else ""
        return f"{sign}{diff_pct:.1f}%"

    rows = [
        ("Vertices", stats1.n_vertices, stats2.n_vertices),
        ("Faces", stats1.n_faces, stats2.n_faces),
        ("Surface Area", stats1.surface_area, stats2.surface_area),
        ("Volume", stats1.volume, stats2.volume),
    ]
    lines = [
        f"Mesh Comparison: {name1} vs {name2}",
        "=" * 50,
        f"{'Property':<20} {name1:>12} {name2:>12} {'Diff':>10}",
        "-" * 50,
    ]
    for label, v1, v2 in rows:
        lines.append(f"{label:<20} {v1:>12.4g} {v2:>12.4g} {fmt_diff(v1, v2):>10}")
    return "\n".join(lines)
