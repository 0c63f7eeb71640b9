"""
Immutable geometric vectors with a dimension parameter.

Vector holds any dimension; Vector2D and Vector3D only pin the dimension
and share every algorithm with the base class.
"""

import math
from typing import Iterator, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from mesh_analysis.errors import InvalidGeometry, ShapeMismatch
from mesh_analysis.numerics.constants import GEOMETRY_TOLERANCE

Number = Union[int, float]


class Vector:
    """Immutable vector of fixed dimension backed by a read-only numpy array."""

    __slots__ = ("_data",)

    DIMENSION: int = 0  # 0 means "any dimension"

    def __init__(self, *components: Union[Number, Sequence[Number], NDArray]):
        if len(components) == 1 and np.ndim(components[0]) == 1:
            data = np.array(components[0], dtype=np.float64)
        else:
            data = np.array(components, dtype=np.float64)
        if data.ndim != 1 or data.size == 0:
            raise ShapeMismatch(f"vector components must be a non-empty 1D sequence, got shape {data.shape}")
        if self.DIMENSION and data.size != self.DIMENSION:
            raise ShapeMismatch(f"{type(self).__name__} needs {self.DIMENSION} components, got {data.size}")
        data.flags.writeable = False
        object.__setattr__(self, "_data", data)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return self._data.size

    @property
    def x(self) -> float:
        return float(self._data[0])

    @property
    def y(self) -> float:
        return float(self._data[1])

    @property
    def z(self) -> float:
        return float(self._data[2])

    def as_array(self) -> NDArray[np.float64]:
        """Writable copy of the components."""
        return self._data.copy()

    def __array__(self, dtype=None, copy=None):
        return self._data.astype(dtype or np.float64)

    def __getitem__(self, i: int) -> float:
        return float(self._data[i])

    def __len__(self) -> int:
        return self._data.size

    def __iter__(self) -> Iterator[float]:
        return (float(c) for c in self._data)

    def to_tuple(self) -> Tuple[float, ...]:
        return tuple(float(c) for c in self._data)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _new(self, data: NDArray[np.float64]) -> 'Vector':
        return type(self)(data)

    def _other(self, other: Union['Vector', Sequence[Number]]) -> NDArray[np.float64]:
        data = other._data if isinstance(other, Vector) else np.asarray(other, dtype=np.float64)
        if data.shape != self._data.shape:
            raise ShapeMismatch(f"vector dimensions {self.dimension} and {data.size} differ")
        return data

    def __add__(self, other):
        return self._new(self._data + self._other(other))

    def __radd__(self, other):
        return self.__add__(other)

    def __sub__(self, other):
        return self._new(self._data - self._other(other))

    def __rsub__(self, other):
        return self._new(self._other(other) - self._data)

    def __mul__(self, factor: Number):
        return self._new(self._data * float(factor))

    __rmul__ = __mul__

    def __truediv__(self, factor: Number):
        return self._new(self._data / float(factor))

    def __neg__(self):
        return self._new(-self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vector):
            return NotImplemented
        return self._data.shape == other._data.shape and bool(np.array_equal(self._data, other._data))

    def __hash__(self) -> int:
        return hash(self.to_tuple())

    def is_close(self, other: 'Vector', tol: float = GEOMETRY_TOLERANCE) -> bool:
        return bool(np.allclose(self._data, self._other(other), atol=tol, rtol=0.0))

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def dot(self, other) -> float:
        return float(np.dot(self._data, self._other(other)))

    def cross(self, other):
        """Cross product; in 2D returns the scalar z component."""
        b = self._other(other)
        if self.dimension == 3:
            return self._new(np.cross(self._data, b))
        if self.dimension == 2:
            return float(self._data[0] * b[1] - self._data[1] * b[0])
        raise ShapeMismatch(f"cross product is defined for 2D and 3D vectors, not {self.dimension}D")

    def norm(self) -> float:
        return float(np.linalg.norm(self._data))

    def squared_norm(self) -> float:
        return float(np.dot(self._data, self._data))

    def normalized(self) -> 'Vector':
        length = self.norm()
        if length < GEOMETRY_TOLERANCE:
            raise InvalidGeometry("cannot normalise a zero-length vector")
        return self._new(self._data / length)

    def distance_to(self, other) -> float:
        return float(np.linalg.norm(self._data - self._other(other)))

    def angle_to(self, other) -> float:
        """Angle in radians in [0, pi]."""
        b = self._other(other)
        denom = np.linalg.norm(self._data) * np.linalg.norm(b)
        if denom < GEOMETRY_TOLERANCE:
            raise InvalidGeometry("angle with a zero-length vector is undefined")
        return float(np.arccos(np.clip(np.dot(self._data, b) / denom, -1.0, 1.0)))

    def __repr__(self) -> str:
        comps = ", ".join(f"{c:g}" for c in self._data)
        return f"{type(self).__name__}({comps})"


class Vector2D(Vector):
    __slots__ = ()
    DIMENSION = 2

    def perpendicular(self) -> 'Vector2D':
        """Counter-clockwise perpendicular."""
        return Vector2D(-self._data[1], self._data[0])

    def polar(self) -> Tuple[float, float]:
        """(radius, angle) with angle in (-pi, pi]."""
        return self.norm(), math.atan2(self._data[1], self._data[0])


class Vector3D(Vector):
    __slots__ = ()
    DIMENSION = 3

    @classmethod
    def from_spherical(cls, radius: float, theta: float, phi: float) -> 'Vector3D':
        """Build from polar angle theta (from +z) and azimuth phi (from +x)."""
        sin_t = math.sin(theta)
        return cls(radius * sin_t * math.cos(phi), radius * sin_t * math.sin(phi), radius * math.cos(theta))

    def spherical(self) -> Tuple[float, float, float]:
        """(radius, theta, phi) using the same convention as from_spherical."""
        r = self.norm()
        if r < GEOMETRY_TOLERANCE:
            return 0.0, 0.0, 0.0
        theta = math.acos(max(-1.0, min(1.0, self._data[2] / r)))
        phi = math.atan2(self._data[1], self._data[0]) % (2 * math.pi)
        return r, theta, phi


def as_points(points: Union[Vector, Sequence, NDArray], dimension: int = 0) -> NDArray[np.float64]:
    """Convert a vector, list of vectors or array to an (n, d) float array."""
    if isinstance(points, Vector):
        data = points.as_array()[np.newaxis, :]
    elif isinstance(points, (list, tuple)) and points and isinstance(points[0], Vector):
        data = np.array([p.as_array() for p in points], dtype=np.float64)
    else:
        data = np.atleast_2d(np.asarray(points, dtype=np.float64))
    if dimension and data.shape[1] != dimension:
        raise ShapeMismatch(f"expected {dimension}D points, got shape {data.shape}")
    return data
