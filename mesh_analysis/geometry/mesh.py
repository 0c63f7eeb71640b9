"""
Triangular mesh model.

A Mesh owns an (N, 3) float64 vertex array and an (M, 3) integer face
array. Optional per-vertex normals and attributes always have N rows; every
operation that changes the vertex count rebuilds them together.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
from numpy.typing import NDArray

from mesh_analysis.errors import InvalidInput, OutOfRange, ShapeMismatch
from mesh_analysis.geometry.mesh_stats import BoundingBox
from mesh_analysis.geometry.primitives import Triangle
from mesh_analysis.geometry.transform import AffineTransformation
from mesh_analysis.geometry.vectors import Vector3D
from mesh_analysis.numerics.constants import GEOMETRY_TOLERANCE
from mesh_analysis.rng import RandomSource

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Mesh:
    """Triangle mesh with optional per-vertex data.

    Attributes:
        vertices: (N, 3) float64 positions
        faces: (M, 3) int64 vertex indices
        vertex_normals: optional (N, 3) unit normals
        vertex_attributes: named (N,) or (N, k) arrays
    """
    vertices: NDArray[np.float64]
    faces: NDArray[np.int64]
    vertex_normals: Optional[NDArray[np.float64]] = None
    vertex_attributes: Dict[str, NDArray] = field(default_factory=dict)

    def __post_init__(self):
        """Normalise dtypes and check the face and lockstep invariants."""
        self.vertices = np.array(self.vertices, dtype=np.float64)
        if self.vertices.size == 0:
            self.vertices = self.vertices.reshape(0, 3)
        self.faces = np.array(self.faces, dtype=np.int64)
        if self.faces.size == 0:
            self.faces = self.faces.reshape(0, 3)

        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3:
            raise ShapeMismatch(f"vertices must have shape (N, 3), got {self.vertices.shape}")
        if self.faces.ndim != 2 or self.faces.shape[1] != 3:
            raise ShapeMismatch(f"faces must have shape (M, 3), got {self.faces.shape}")
        if len(self.faces) and (self.faces.min() < 0 or self.faces.max() >= len(self.vertices)):
            bad = int(np.argmax((self.faces < 0).any(axis=1) | (self.faces >= len(self.vertices)).any(axis=1)))
            raise OutOfRange(
                f"face {bad} references vertex outside [0, {len(self.vertices)}): {self.faces[bad].tolist()}"
            )

        if self.vertex_normals is not None:
            self.vertex_normals = np.array(self.vertex_normals, dtype=np.float64)
            if self.vertex_normals.shape != self.vertices.shape:
                raise ShapeMismatch(
                    f"vertex normals shape {self.vertex_normals.shape} does not match vertices {self.vertices.shape}"
                )
        for name, values in list(self.vertex_attributes.items()):
            values = np.asarray(values)
            if len(values) != len(self.vertices):
                raise ShapeMismatch(
                    f"attribute {name!r} has {len(values)} rows, mesh has {len(self.vertices)} vertices"
                )
            self.vertex_attributes[name] = values

    # ------------------------------------------------------------------
    # Basic queries
    # ------------------------------------------------------------------

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    @property
    def is_empty(self) -> bool:
        return self.n_faces == 0

    def vertex(self, i: int) -> Vector3D:
        if not 0 <= i < self.n_vertices:
            raise OutOfRange(f"vertex {i} out of range [0, {self.n_vertices})")
        return Vector3D(self.vertices[i])

    def triangle(self, i: int) -> Triangle:
        if not 0 <= i < self.n_faces:
            raise OutOfRange(f"face {i} out of range [0, {self.n_faces})")
        return Triangle.from_array(self.vertices[self.faces[i]])

    def triangles(self) -> NDArray[np.float64]:
        """(M, 3, 3) corner coordinates of every face."""
        return self.vertices[self.faces]

    def edges(self) -> NDArray[np.int64]:
        """Unique undirected edges as sorted (E, 2) index pairs."""
        if self.n_faces == 0:
            return np.zeros((0, 2), dtype=np.int64)
        pairs = np.concatenate([self.faces[:, [0, 1]], self.faces[:, [1, 2]], self.faces[:, [2, 0]]])
        return np.unique(np.sort(pairs, axis=1), axis=0)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _face_cross(self) -> NDArray[np.float64]:
        tri = self.triangles()
        return np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])

    def face_areas(self) -> NDArray[np.float64]:
        if self.n_faces == 0:
            return np.zeros(0)
        return 0.5 * np.linalg.norm(self._face_cross(), axis=1)

    def face_normals(self) -> NDArray[np.float64]:
        """Unit face normals; zero vectors for degenerate faces."""
        if self.n_faces == 0:
            return np.zeros((0, 3))
        cross = self._face_cross()
        norms = np.linalg.norm(cross, axis=1, keepdims=True)
        return np.where(norms < GEOMETRY_TOLERANCE, 0.0, cross / np.where(norms < GEOMETRY_TOLERANCE, 1.0, norms))

    def compute_vertex_normals(self) -> NDArray[np.float64]:
        """Area-weighted vertex normals, stored on the mesh and returned."""
        normals = np.zeros_like(self.vertices)
        if self.n_faces:
            cross = self._face_cross()  # length is twice the area
            for corner in range(3):
                np.add.at(normals, self.faces[:, corner], cross)
        lengths = np.linalg.norm(normals, axis=1, keepdims=True)
        normals = normals / np.where(lengths < GEOMETRY_TOLERANCE, 1.0, lengths)
        self.vertex_normals = normals
        return normals

    def surface_area(self) -> float:
        return float(self.face_areas().sum())

    def volume(self) -> float:
        """Signed enclosed volume (divergence theorem); negative if inverted."""
        if self.n_faces == 0:
            return 0.0
        tri = self.triangles()
        return float(np.sum(np.einsum('ij,ij->i', tri[:, 0], np.cross(tri[:, 1], tri[:, 2]))) / 6.0)

    def centroid(self) -> NDArray[np.float64]:
        """Area-weighted surface centroid (vertex mean when there is no area)."""
        if self.n_vertices == 0:
            return np.zeros(3)
        if self.n_faces == 0:
            return self.vertices.mean(axis=0)
        areas = self.face_areas()
        centers = self.triangles().mean(axis=1)
        total = areas.sum()
        if total < GEOMETRY_TOLERANCE:
            return centers.mean(axis=0)
        return (centers * areas[:, np.newaxis]).sum(axis=0) / total

    def bounds(self):
        """(min_corner, max_corner); zeros for an empty mesh."""
        if self.n_vertices == 0:
            return np.zeros(3), np.zeros(3)
        used = self.vertices[np.unique(self.faces)] if self.n_faces else self.vertices
        return used.min(axis=0), used.max(axis=0)

    def bounding_box(self) -> BoundingBox:
        lo, hi = self.bounds()
        return BoundingBox(min_point=lo, max_point=hi)

    # ------------------------------------------------------------------
    # Transformation
    # ------------------------------------------------------------------

    def transformed(self, transform: AffineTransformation) -> 'Mesh':
        """New mesh with the transformation applied to positions and normals."""
        if transform.dimension != 3:
            raise ShapeMismatch("meshes need a 3D transformation")
        normals = None
        if self.vertex_normals is not None:
            normals = transform.apply_to_normals(self.vertex_normals)
        return Mesh(
            vertices=transform.apply(self.vertices) if self.n_vertices else self.vertices.copy(),
            faces=self.faces.copy(),
            vertex_normals=normals,
            vertex_attributes={k: v.copy() for k, v in self.vertex_attributes.items()},
        )

    def apply_transform(self, transform: AffineTransformation) -> None:
        """Apply a transformation in place."""
        moved = self.transformed(transform)
        self.vertices = moved.vertices
        self.faces = moved.faces
        self.vertex_normals = moved.vertex_normals

    def normalizing_transform(self) -> AffineTransformation:
        """Transformation moving the centroid to the origin and scaling the
        farthest vertex to distance 1."""
        center = self.centroid()
        if self.n_vertices == 0:
            return AffineTransformation.identity(3)
        radius = float(np.max(np.linalg.norm(self.vertices - center, axis=1)))
        if radius < GEOMETRY_TOLERANCE:
            return AffineTransformation.from_translation(-center)
        return AffineTransformation.scaling(1.0 / radius).then(AffineTransformation.from_translation(-center))

    def centered_and_scaled(self) -> 'Mesh':
        return self.transformed(self.normalizing_transform())

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample_points(self, n: int, rng: RandomSource) -> NDArray[np.float64]:
        """n points uniformly distributed over the surface (area weighted).

        Raises:
            InvalidInput: mesh has no area or n < 1
        """
        if n < 1:
            raise InvalidInput("number of samples must be positive")
        areas = self.face_areas()
        total = areas.sum() if len(areas) else 0.0
        if total < GEOMETRY_TOLERANCE:
            raise InvalidInput("cannot sample a mesh without surface area")
        face_ids = rng.choice(self.n_faces, n, replace=True, p=areas / total)
        r1 = np.sqrt(rng.random(n))
        r2 = rng.random(n)
        tri = self.triangles()[face_ids]
        return ((1 - r1)[:, None] * tri[:, 0]
                + (r1 * (1 - r2))[:, None] * tri[:, 1]
                + (r1 * r2)[:, None] * tri[:, 2])

    def copy(self) -> 'Mesh':
        return Mesh(
            vertices=self.vertices.copy(),
            faces=self.faces.copy(),
            vertex_normals=None if self.vertex_normals is None else self.vertex_normals.copy(),
            vertex_attributes={k: v.copy() for k, v in self.vertex_attributes.items()},
        )

    def __repr__(self) -> str:
        return f"Mesh(n_vertices={self.n_vertices}, n_faces={self.n_faces})"
