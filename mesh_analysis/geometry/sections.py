"""
Planar cross sections of triangle meshes.

The plane cuts every straddling triangle in a segment; segments are
chained into polylines through the mesh edges they share, so the result
does not depend on floating-point matching of endpoints.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, List, Tuple

import numpy as np
from numpy.typing import NDArray

from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.geometry.primitives import Plane, _tolerance

logger = logging.getLogger(__name__)


@dataclass
class SectionPolyline:
    """Chain of cut points.

    Attributes:
        points: (k, 3) ordered points; a closed polyline does not repeat
            its first point
        closed: the chain returns to its start
    """
    points: NDArray[np.float64]
    closed: bool

    @property
    def length(self) -> float:
        pts = np.vstack([self.points, self.points[:1]]) if self.closed else self.points
        if len(pts) < 2:
            return 0.0
        return float(np.linalg.norm(np.diff(pts, axis=0), axis=1).sum())

    def __len__(self) -> int:
        return len(self.points)


def _face_cut(face: NDArray[np.int64], side: NDArray[np.int64], distances: NDArray[np.float64],
              vertices: NDArray[np.float64]) -> List[Tuple[Hashable, NDArray[np.float64]]]:
    """Keyed cut points of one face: on-plane vertices and crossed edges."""
    cut: List[Tuple[Hashable, NDArray[np.float64]]] = []
    for corner in range(3):
        v = int(face[corner])
        if side[v] == 0:
            cut.append((('v', v), vertices[v]))
    for corner in range(3):
        a, b = int(face[corner]), int(face[(corner + 1) % 3])
        if side[a] * side[b] < 0:
            t = distances[a] / (distances[a] - distances[b])
            cut.append((('e', min(a, b), max(a, b)), vertices[a] + t * (vertices[b] - vertices[a])))
    return cut


def cross_section(mesh: Mesh, plane: Plane) -> List[SectionPolyline]:
    """Intersect a mesh with a plane.

    Triangles lying in the plane contribute nothing; their boundary is
    still reported through the neighbouring triangles that cross it.

    Returns:
        Polylines, open chains first, each in traversal order
    """
    if mesh.is_empty:
        return []

    distances = plane.signed_distances(mesh.vertices)
    tol = _tolerance(plane.point, *mesh.bounds())
    side = np.where(np.abs(distances) <= tol, 0, np.sign(distances)).astype(np.int64)

    points: Dict[Hashable, NDArray[np.float64]] = {}
    segments: List[Tuple[Hashable, Hashable]] = []
    seen = set()
    for face in mesh.faces:
        if np.all(side[face] == 0):
            continue
        cut = _face_cut(face, side, distances, mesh.vertices)
        if len(cut) != 2:
            continue
        (ka, pa), (kb, pb) = cut
        if ka == kb or frozenset((ka, kb)) in seen:
            continue
        seen.add(frozenset((ka, kb)))
        points[ka] = pa
        points[kb] = pb
        segments.append((ka, kb))

    adjacency: Dict[Hashable, List[int]] = {}
    for i, (ka, kb) in enumerate(segments):
        adjacency.setdefault(ka, []).append(i)
        adjacency.setdefault(kb, []).append(i)

    used = [False] * len(segments)

    def walk(start: Hashable) -> List[Hashable]:
        chain = [start]
        current = start
        while True:
            nxt = next((i for i in adjacency[current] if not used[i]), None)
            if nxt is None:
                return chain
            used[nxt] = True
            ka, kb = segments[nxt]
            current = kb if ka == current else ka
            chain.append(current)

    polylines: List[SectionPolyline] = []
    endpoints = [k for k, segs in adjacency.items() if len(segs) == 1]
    for key in endpoints:
        if all(used[i] for i in adjacency[key]):
            continue
        chain = walk(key)
        polylines.append(SectionPolyline(points=np.array([points[k] for k in chain]), closed=False))

    for i, (ka, _) in enumerate(segments):
        if used[i]:
            continue
        chain = walk(ka)
        closed = len(chain) > 2 and chain[-1] == chain[0]
        if closed:
            chain = chain[:-1]
        polylines.append(SectionPolyline(points=np.array([points[k] for k in chain]), closed=closed))

    logger.debug("Cross section: %d segments, %d polylines", len(segments), len(polylines))
    return polylines
