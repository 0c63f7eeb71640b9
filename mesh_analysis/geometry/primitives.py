"""
Geometric primitives: lines, planes, rectangles and triangles.

Intersection tests return an Intersection whose kind separates
"do not meet" (NONE), "parallel and disjoint" (PARALLEL) and
"meet everywhere" (COINCIDENT) from proper POINT / SEGMENT / LINE results.
All primitives work on plain float arrays; Vector instances are accepted
anywhere a point is expected.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from mesh_analysis.errors import InvalidGeometry, ShapeMismatch
from mesh_analysis.numerics.constants import GEOMETRY_TOLERANCE

logger = logging.getLogger(__name__)


class IntersectionKind(Enum):
    """Outcome of an intersection test."""
    NONE = "none"              # the primitives do not meet
    PARALLEL = "parallel"      # parallel and disjoint
    COINCIDENT = "coincident"  # one lies within the other, they meet everywhere
    POINT = "point"
    SEGMENT = "segment"
    LINE = "line"


@dataclass(frozen=True)
class Intersection:
    """Result of an intersection test.

    Attributes:
        kind: outcome category
        point: intersection point (POINT)
        segment: (start, end) pair (SEGMENT, or the overlap of collinear segments)
        line: intersection line (LINE)
        parameter: line parameter t of the point, when the test involves a line
    """
    kind: IntersectionKind
    point: Optional[NDArray[np.float64]] = None
    segment: Optional[Tuple[NDArray[np.float64], NDArray[np.float64]]] = None
    line: Optional['Line'] = None
    parameter: Optional[float] = None

    @property
    def meets(self) -> bool:
        return self.kind not in (IntersectionKind.NONE, IntersectionKind.PARALLEL)

    @property
    def is_degenerate(self) -> bool:
        """Parallel or coincident configurations."""
        return self.kind in (IntersectionKind.PARALLEL, IntersectionKind.COINCIDENT)


NO_INTERSECTION = Intersection(IntersectionKind.NONE)
PARALLEL = Intersection(IntersectionKind.PARALLEL)


def _point(p: ArrayLike) -> NDArray[np.float64]:
    data = np.asarray(p, dtype=np.float64).reshape(-1)
    if data.size not in (2, 3):
        raise ShapeMismatch(f"points must be 2D or 3D, got {data.size} components")
    return data


def _tolerance(*points: NDArray[np.float64]) -> float:
    scale = max(1.0, max(float(np.max(np.abs(p), initial=0.0)) for p in points))
    return GEOMETRY_TOLERANCE * scale


# ---------------------------------------------------------------------------
# Line
# ---------------------------------------------------------------------------

class LineExtent(Enum):
    """Parameter range of a line through start (t=0) and end (t=1)."""
    INFINITE = "infinite"
    RAY = "ray"          # t >= 0
    SEGMENT = "segment"  # 0 <= t <= 1


class Line:
    """Line, ray or segment through two points in 2D or 3D."""

    def __init__(self, start: ArrayLike, end: ArrayLike, extent: LineExtent = LineExtent.INFINITE):
        self.start = _point(start)
        self.end = _point(end)
        if self.start.shape != self.end.shape:
            raise ShapeMismatch("line end points have different dimensions")
        self.direction = self.end - self.start
        if np.linalg.norm(self.direction) < _tolerance(self.start, self.end):
            raise InvalidGeometry("line end points coincide")
        self.extent = extent

    @classmethod
    def segment(cls, start: ArrayLike, end: ArrayLike) -> 'Line':
        return cls(start, end, LineExtent.SEGMENT)

    @classmethod
    def ray(cls, origin: ArrayLike, direction: ArrayLike) -> 'Line':
        origin = _point(origin)
        return cls(origin, origin + _point(direction), LineExtent.RAY)

    @property
    def dimension(self) -> int:
        return self.start.size

    @property
    def length(self) -> float:
        """Length between the two defining points."""
        return float(np.linalg.norm(self.direction))

    @property
    def unit_direction(self) -> NDArray[np.float64]:
        return self.direction / np.linalg.norm(self.direction)

    def point_at(self, t: float) -> NDArray[np.float64]:
        return self.start + t * self.direction

    def accepts(self, t: float, tol: float = GEOMETRY_TOLERANCE) -> bool:
        """Whether parameter t lies within this line's extent."""
        if self.extent == LineExtent.INFINITE:
            return True
        if self.extent == LineExtent.RAY:
            return t >= -tol
        return -tol <= t <= 1.0 + tol

    def _clamp(self, t: float) -> float:
        if self.extent == LineExtent.RAY:
            return max(t, 0.0)
        if self.extent == LineExtent.SEGMENT:
            return min(max(t, 0.0), 1.0)
        return t

    def closest_parameter(self, p: ArrayLike) -> float:
        """Parameter of the closest point, clamped to the extent."""
        p = _point(p)
        t = float(np.dot(p - self.start, self.direction) / np.dot(self.direction, self.direction))
        return self._clamp(t)

    def closest_point(self, p: ArrayLike) -> NDArray[np.float64]:
        return self.point_at(self.closest_parameter(p))

    def distance_to_point(self, p: ArrayLike) -> float:
        return float(np.linalg.norm(_point(p) - self.closest_point(p)))

    def contains_point(self, p: ArrayLike) -> bool:
        p = _point(p)
        return self.distance_to_point(p) <= _tolerance(p, self.start, self.end)

    def is_parallel_to(self, other: 'Line') -> bool:
        u = self.unit_direction
        v = other.unit_direction
        return float(np.linalg.norm(v - np.dot(u, v) * u)) < GEOMETRY_TOLERANCE

    def intersect(self, other: 'Line') -> Intersection:
        """Intersection with another line, ray or segment of the same dimension."""
        if other.dimension != self.dimension:
            raise ShapeMismatch("cannot intersect lines of different dimensions")
        tol = _tolerance(self.start, self.end, other.start, other.end)

        if self.is_parallel_to(other):
            if other.distance_to_point_infinite(self.start) > tol:
                return PARALLEL
            return self._collinear_overlap(other, tol)

        d1, d2 = self.direction, other.direction
        r = other.start - self.start
        a = np.array([[np.dot(d1, d1), -np.dot(d1, d2)],
                      [np.dot(d1, d2), -np.dot(d2, d2)]])
        b = np.array([np.dot(r, d1), np.dot(r, d2)])
        t, u = np.linalg.solve(a, b)
        p1 = self.point_at(t)
        p2 = other.point_at(u)
        if np.linalg.norm(p1 - p2) > tol:
            return NO_INTERSECTION  # skew lines
        if not (self.accepts(t) and other.accepts(u)):
            return NO_INTERSECTION
        return Intersection(IntersectionKind.POINT, point=p1, parameter=float(t))

    def distance_to_point_infinite(self, p: ArrayLike) -> float:
        p = _point(p)
        t = np.dot(p - self.start, self.direction) / np.dot(self.direction, self.direction)
        return float(np.linalg.norm(p - self.point_at(t)))

    def _collinear_overlap(self, other: 'Line', tol: float) -> Intersection:
        if self.extent == LineExtent.INFINITE and other.extent == LineExtent.INFINITE:
            return Intersection(IntersectionKind.COINCIDENT, line=self)

        dd = np.dot(self.direction, self.direction)

        def param(p):
            return float(np.dot(p - self.start, self.direction) / dd)

        lo_self, hi_self = _extent_range(self.extent)
        ta, tb = param(other.start), param(other.end)
        lo_other, hi_other = _projected_range(other.extent, ta, tb)

        lo = max(lo_self, lo_other)
        hi = min(hi_self, hi_other)
        eps = tol / np.sqrt(dd)
        if lo > hi + eps:
            return NO_INTERSECTION
        if hi - lo <= eps:
            return Intersection(IntersectionKind.POINT, point=self.point_at(lo), parameter=lo)
        if np.isinf(lo) or np.isinf(hi):
            return Intersection(IntersectionKind.COINCIDENT, line=self)
        return Intersection(IntersectionKind.COINCIDENT,
                            segment=(self.point_at(lo), self.point_at(hi)))

    def distance_to_line(self, other: 'Line') -> float:
        """Shortest distance between the infinite carrier lines (3D or 2D)."""
        if self.is_parallel_to(other):
            return other.distance_to_point_infinite(self.start)
        if self.dimension == 2:
            return 0.0
        n = np.cross(self.direction, other.direction)
        return float(abs(np.dot(other.start - self.start, n)) / np.linalg.norm(n))

    def __repr__(self) -> str:
        return f"Line({self.start.tolist()} -> {self.end.tolist()}, {self.extent.value})"


def _extent_range(extent: LineExtent) -> Tuple[float, float]:
    if extent == LineExtent.SEGMENT:
        return 0.0, 1.0
    if extent == LineExtent.RAY:
        return 0.0, np.inf
    return -np.inf, np.inf


def _projected_range(extent: LineExtent, ta: float, tb: float) -> Tuple[float, float]:
    """Range covered by another collinear line, in this line's parameter."""
    if extent == LineExtent.SEGMENT:
        return min(ta, tb), max(ta, tb)
    if extent == LineExtent.RAY:
        return (ta, np.inf) if tb >= ta else (-np.inf, ta)
    return -np.inf, np.inf


# ---------------------------------------------------------------------------
# Plane
# ---------------------------------------------------------------------------

class Plane:
    """Plane through a point with a unit normal (3D)."""

    def __init__(self, point: ArrayLike, normal: ArrayLike):
        self.point = _point(point)
        normal = _point(normal)
        if self.point.size != 3 or normal.size != 3:
            raise ShapeMismatch("planes are defined in 3D only")
        length = np.linalg.norm(normal)
        if length < GEOMETRY_TOLERANCE:
            raise InvalidGeometry("plane normal has zero length")
        self.normal = normal / length
        self.offset = float(np.dot(self.normal, self.point))

    @classmethod
    def from_points(cls, a: ArrayLike, b: ArrayLike, c: ArrayLike) -> 'Plane':
        """Plane through three points.

        Raises:
            InvalidGeometry: the points are collinear
        """
        a, b, c = _point(a), _point(b), _point(c)
        normal = np.cross(b - a, c - a)
        if np.linalg.norm(normal) < _tolerance(a, b, c) ** 2:
            raise InvalidGeometry("plane points are collinear")
        return cls(a, normal)

    def signed_distance(self, p: ArrayLike) -> float:
        return float(np.dot(self.normal, _point(p)) - self.offset)

    def signed_distances(self, points: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.asarray(points, dtype=np.float64) @ self.normal - self.offset

    def distance(self, p: ArrayLike) -> float:
        return abs(self.signed_distance(p))

    def project(self, p: ArrayLike) -> NDArray[np.float64]:
        p = _point(p)
        return p - self.signed_distance(p) * self.normal

    def contains_point(self, p: ArrayLike) -> bool:
        p = _point(p)
        return self.distance(p) <= _tolerance(p, self.point)

    def intersect_line(self, line: Line) -> Intersection:
        """POINT, PARALLEL, COINCIDENT (line in plane) or NONE (outside extent)."""
        tol = _tolerance(line.start, line.end, self.point)
        denom = float(np.dot(self.normal, line.direction))
        start_distance = self.signed_distance(line.start)
        if abs(denom) < GEOMETRY_TOLERANCE * np.linalg.norm(line.direction):
            if abs(start_distance) <= tol:
                return Intersection(IntersectionKind.COINCIDENT, line=line)
            return PARALLEL
        t = -start_distance / denom
        if not line.accepts(t):
            return NO_INTERSECTION
        return Intersection(IntersectionKind.POINT, point=line.point_at(t), parameter=t)

    def intersect_plane(self, other: 'Plane') -> Intersection:
        """LINE, PARALLEL or COINCIDENT."""
        direction = np.cross(self.normal, other.normal)
        denom = float(np.dot(direction, direction))
        if np.sqrt(denom) < GEOMETRY_TOLERANCE:
            if other.distance(self.point) <= _tolerance(self.point, other.point):
                return Intersection(IntersectionKind.COINCIDENT)
            return PARALLEL
        n1, n2 = self.normal, other.normal
        d1, d2 = self.offset, other.offset
        dot = float(np.dot(n1, n2))
        point = ((d1 - d2 * dot) * n1 + (d2 - d1 * dot) * n2) / denom
        return Intersection(IntersectionKind.LINE, line=Line(point, point + direction))

    def intersect_triangle(self, triangle: 'Triangle') -> Intersection:
        """Cut of a triangle by the plane: SEGMENT, POINT, COINCIDENT or NONE."""
        verts = triangle.vertices
        if verts.shape[1] != 3:
            raise ShapeMismatch("plane/triangle intersection needs a 3D triangle")
        tol = _tolerance(self.point, *verts)
        distances = self.signed_distances(verts)
        on_plane = np.abs(distances) <= tol
        if np.all(on_plane):
            return Intersection(IntersectionKind.COINCIDENT)
        if np.all(distances > tol) or np.all(distances < -tol):
            return NO_INTERSECTION

        points: List[NDArray[np.float64]] = [verts[i] for i in range(3) if on_plane[i]]
        for i in range(3):
            j = (i + 1) % 3
            if on_plane[i] or on_plane[j]:
                continue
            if distances[i] * distances[j] < 0:
                t = distances[i] / (distances[i] - distances[j])
                points.append(verts[i] + t * (verts[j] - verts[i]))

        unique: List[NDArray[np.float64]] = []
        for p in points:
            if all(np.linalg.norm(p - q) > tol for q in unique):
                unique.append(p)
        if len(unique) == 1:
            return Intersection(IntersectionKind.POINT, point=unique[0])
        return Intersection(IntersectionKind.SEGMENT, segment=(unique[0], unique[1]))

    def __repr__(self) -> str:
        return f"Plane(point={self.point.tolist()}, normal={self.normal.tolist()})"


# ---------------------------------------------------------------------------
# Rectangle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned rectangle in 2D.

    Attributes:
        x, y: minimum corner
        width, height: non-negative extents
    """
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise InvalidGeometry(f"rectangle extents must be non-negative, got {self.width} x {self.height}")

    @classmethod
    def from_corners(cls, a: ArrayLike, b: ArrayLike) -> 'Rectangle':
        a, b = _point(a), _point(b)
        lo = np.minimum(a, b)
        hi = np.maximum(a, b)
        return cls(float(lo[0]), float(lo[1]), float(hi[0] - lo[0]), float(hi[1] - lo[1]))

    @classmethod
    def bounding(cls, points: NDArray[np.float64]) -> 'Rectangle':
        points = np.asarray(points, dtype=np.float64)
        return cls.from_corners(points[:, :2].min(axis=0), points[:, :2].max(axis=0))

    @property
    def min_corner(self) -> NDArray[np.float64]:
        return np.array([self.x, self.y])

    @property
    def max_corner(self) -> NDArray[np.float64]:
        return np.array([self.x + self.width, self.y + self.height])

    @property
    def center(self) -> NDArray[np.float64]:
        return np.array([self.x + self.width / 2, self.y + self.height / 2])

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def perimeter(self) -> float:
        return 2 * (self.width + self.height)

    def contains_point(self, p: ArrayLike) -> bool:
        p = _point(p)
        return bool(self.x <= p[0] <= self.x + self.width and self.y <= p[1] <= self.y + self.height)

    def intersects(self, other: 'Rectangle') -> bool:
        return bool(self.x <= other.x + other.width and other.x <= self.x + self.width
                    and self.y <= other.y + other.height and other.y <= self.y + self.height)

    def intersection(self, other: 'Rectangle') -> Optional['Rectangle']:
        """Overlap rectangle, or None when disjoint."""
        if not self.intersects(other):
            return None
        lo = np.maximum(self.min_corner, other.min_corner)
        hi = np.minimum(self.max_corner, other.max_corner)
        return Rectangle.from_corners(lo, hi)

    def union(self, other: 'Rectangle') -> 'Rectangle':
        """Smallest rectangle containing both."""
        lo = np.minimum(self.min_corner, other.min_corner)
        hi = np.maximum(self.max_corner, other.max_corner)
        return Rectangle.from_corners(lo, hi)


# ---------------------------------------------------------------------------
# Triangle
# ---------------------------------------------------------------------------

class Triangle:
    """Triangle in 2D or 3D."""

    def __init__(self, a: ArrayLike, b: ArrayLike, c: ArrayLike):
        self.vertices = np.array([_point(a), _point(b), _point(c)])
        if self.vertices.ndim != 2:
            raise ShapeMismatch("triangle vertices have different dimensions")

    @classmethod
    def from_array(cls, vertices: NDArray[np.float64]) -> 'Triangle':
        return cls(vertices[0], vertices[1], vertices[2])

    @property
    def dimension(self) -> int:
        return self.vertices.shape[1]

    def _cross(self) -> NDArray[np.float64]:
        a, b, c = self.vertices
        if self.dimension == 2:
            e1, e2 = b - a, c - a
            return np.array([0.0, 0.0, e1[0] * e2[1] - e1[1] * e2[0]])
        return np.cross(b - a, c - a)

    @property
    def area(self) -> float:
        return 0.5 * float(np.linalg.norm(self._cross()))

    @property
    def perimeter(self) -> float:
        a, b, c = self.vertices
        return float(np.linalg.norm(b - a) + np.linalg.norm(c - b) + np.linalg.norm(a - c))

    @property
    def centroid(self) -> NDArray[np.float64]:
        return self.vertices.mean(axis=0)

    def is_degenerate(self, tol: float = GEOMETRY_TOLERANCE) -> bool:
        return self.area <= tol * max(1.0, self.perimeter ** 2)

    @property
    def normal(self) -> NDArray[np.float64]:
        """Unit normal following the right-hand rule on (a, b, c).

        Raises:
            InvalidGeometry: degenerate triangle
        """
        cross = self._cross()
        length = np.linalg.norm(cross)
        if self.is_degenerate():
            raise InvalidGeometry("degenerate triangle has no normal")
        return cross / length

    def plane(self) -> Plane:
        if self.dimension != 3:
            raise ShapeMismatch("only 3D triangles define a plane")
        return Plane(self.vertices[0], self.normal)

    def edges(self) -> List[Line]:
        a, b, c = self.vertices
        return [Line.segment(a, b), Line.segment(b, c), Line.segment(c, a)]

    def barycentric(self, p: ArrayLike) -> Optional[NDArray[np.float64]]:
        """Barycentric weights (w_a, w_b, w_c) of p projected onto the triangle plane.

        Returns None for degenerate triangles.
        """
        p = _point(p)
        a, b, c = self.vertices
        v0 = c - a
        v1 = b - a
        v2 = p - a

        dot00 = np.dot(v0, v0)
        dot01 = np.dot(v0, v1)
        dot02 = np.dot(v0, v2)
        dot11 = np.dot(v1, v1)
        dot12 = np.dot(v1, v2)

        denom = dot00 * dot11 - dot01 * dot01
        if abs(denom) < GEOMETRY_TOLERANCE * max(1.0, dot00 * dot11):
            return None

        inv_denom = 1.0 / denom
        u = (dot11 * dot02 - dot01 * dot12) * inv_denom
        v = (dot00 * dot12 - dot01 * dot02) * inv_denom
        return np.array([1.0 - u - v, v, u])

    def contains_point(self, p: ArrayLike) -> bool:
        """Point inside or on the boundary (and on the plane, for 3D)."""
        p = _point(p)
        if self.dimension == 3 and not self.is_degenerate() and not self.plane().contains_point(p):
            return False
        weights = self.barycentric(p)
        if weights is None:
            return False
        return bool(np.all(weights >= -GEOMETRY_TOLERANCE))

    def interpolate(self, p: ArrayLike, values: ArrayLike) -> float:
        """Interpolate per-vertex values at p with barycentric weights."""
        weights = self.barycentric(p)
        if weights is None:
            raise InvalidGeometry("cannot interpolate over a degenerate triangle")
        return float(np.dot(weights, np.asarray(values, dtype=np.float64)))

    def intersect_line(self, line: Line) -> Intersection:
        """Moller-Trumbore test against a line, ray or segment (3D)."""
        if self.dimension != 3 or line.dimension != 3:
            raise ShapeMismatch("line/triangle intersection needs 3D primitives")
        v0, v1, v2 = self.vertices
        e1 = v1 - v0
        e2 = v2 - v0
        h = np.cross(line.direction, e2)
        a = float(np.dot(e1, h))
        scale = np.linalg.norm(e1) * np.linalg.norm(e2) * np.linalg.norm(line.direction)
        if abs(a) <= GEOMETRY_TOLERANCE * max(scale, GEOMETRY_TOLERANCE):
            return self._parallel_case(line)

        f = 1.0 / a
        s = line.start - v0
        u = f * float(np.dot(s, h))
        if u < -GEOMETRY_TOLERANCE or u > 1.0 + GEOMETRY_TOLERANCE:
            return NO_INTERSECTION
        q = np.cross(s, e1)
        v = f * float(np.dot(line.direction, q))
        if v < -GEOMETRY_TOLERANCE or u + v > 1.0 + GEOMETRY_TOLERANCE:
            return NO_INTERSECTION
        t = f * float(np.dot(e2, q))
        if not line.accepts(t):
            return NO_INTERSECTION
        return Intersection(IntersectionKind.POINT, point=line.point_at(t), parameter=t)

    def _parallel_case(self, line: Line) -> Intersection:
        if self.is_degenerate():
            return NO_INTERSECTION
        if not self.plane().contains_point(line.start):
            return PARALLEL
        if self.contains_point(line.start) or self.contains_point(line.end):
            return Intersection(IntersectionKind.COINCIDENT, line=line)
        for edge in self.edges():
            if line.intersect(edge).meets:
                return Intersection(IntersectionKind.COINCIDENT, line=line)
        return NO_INTERSECTION

    def __repr__(self) -> str:
        return f"Triangle({self.vertices.tolist()})"


def ray_triangle_distances(
    origin: NDArray[np.float64],
    directions: NDArray[np.float64],
    triangles: NDArray[np.float64],
    chunk_size: int = 256,
) -> NDArray[np.float64]:
    """Farthest hit distance of each ray against a triangle soup.

    Vectorised Moller-Trumbore over all (ray, triangle) pairs.

    Args:
        origin: ray origin (3,)
        directions: unit ray directions (n, 3)
        triangles: (m, 3, 3) triangle corners

    Returns:
        (n,) farthest positive hit parameter per ray, 0 where a ray hits nothing
    """
    origin = np.asarray(origin, dtype=np.float64)
    directions = np.asarray(directions, dtype=np.float64)
    result = np.zeros(len(directions))
    if len(triangles) == 0:
        return result

    v0 = triangles[:, 0]
    e1 = triangles[:, 1] - v0
    e2 = triangles[:, 2] - v0
    s = origin - v0                      # (m, 3)
    q = np.cross(s, e1)                  # (m, 3)
    t_num = np.einsum('ij,ij->i', e2, q)  # (m,)

    for start in range(0, len(directions), chunk_size):
        d = directions[start:start + chunk_size]                   # (c, 3)
        h = np.cross(d[:, np.newaxis, :], e2[np.newaxis, :, :])     # (c, m, 3)
        a = np.einsum('mk,cmk->cm', e1, h)
        valid = np.abs(a) > GEOMETRY_TOLERANCE
        f = np.where(valid, 1.0 / np.where(valid, a, 1.0), 0.0)
        u = f * np.einsum('mk,cmk->cm', s, h)
        v = f * (d @ q.T)
        t = f * t_num[np.newaxis, :]
        hit = (valid & (u >= -GEOMETRY_TOLERANCE) & (v >= -GEOMETRY_TOLERANCE)
               & (u + v <= 1.0 + GEOMETRY_TOLERANCE) & (t > 0.0))
        result[start:start + chunk_size] = np.max(np.where(hit, t, 0.0), axis=1)
    return result
