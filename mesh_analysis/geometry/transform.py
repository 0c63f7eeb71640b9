"""
Affine transformations (linear map + translation) in 2D and 3D.

Provides:
- AffineTransformation with rotation, scaling, shear, reflection and
  translation constructors
- Composition via then() / @, matching matrix multiplication order
- Inversion guarded by SINGULAR_TOLERANCE

Composition convention: ``t2.then(t1)`` applies t1 first, then t2, and its
linear part is ``M2 @ M1``.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from mesh_analysis.errors import InvalidGeometry, ShapeMismatch, SingularTransform
from mesh_analysis.numerics.constants import GEOMETRY_TOLERANCE, SINGULAR_TOLERANCE
from mesh_analysis.numerics.linear_algebra import hadamard_ratio

logger = logging.getLogger(__name__)

SUPPORTED_DIMENSIONS = (2, 3)


@dataclass(frozen=True)
class AffineTransformation:
    """x -> matrix @ x + translation.

    Attributes:
        matrix: d x d linear part
        translation: d-vector
    """
    matrix: NDArray[np.float64]
    translation: NDArray[np.float64] = field(default=None)  # type: ignore[assignment]

    def __post_init__(self):
        """Validate and freeze the arrays."""
        matrix = np.array(self.matrix, dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ShapeMismatch(f"linear part must be square, got {matrix.shape}")
        dim = matrix.shape[0]
        if dim not in SUPPORTED_DIMENSIONS:
            raise ShapeMismatch(f"affine transformations support dimensions {SUPPORTED_DIMENSIONS}, got {dim}")
        if self.translation is None:
            translation = np.zeros(dim)
        else:
            translation = np.array(self.translation, dtype=np.float64).reshape(-1)
        if translation.shape != (dim,):
            raise ShapeMismatch(f"translation must have {dim} components, got {translation.shape}")
        matrix.flags.writeable = False
        translation.flags.writeable = False
        object.__setattr__(self, "matrix", matrix)
        object.__setattr__(self, "translation", translation)

    @property
    def dimension(self) -> int:
        return self.matrix.shape[0]

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def identity(cls, dimension: int = 3) -> 'AffineTransformation':
        return cls(np.eye(dimension))

    @classmethod
    def from_translation(cls, offset: Sequence[float]) -> 'AffineTransformation':
        offset = np.asarray(offset, dtype=np.float64)
        return cls(np.eye(len(offset)), offset)

    @classmethod
    def scaling(cls, factors: Union[float, Sequence[float]], dimension: int = 3) -> 'AffineTransformation':
        """Axis-aligned scaling; a scalar scales uniformly."""
        factors = np.broadcast_to(np.asarray(factors, dtype=np.float64), (dimension,)) \
            if np.ndim(factors) == 0 else np.asarray(factors, dtype=np.float64)
        return cls(np.diag(factors))

    @classmethod
    def rotation_2d(cls, angle_rad: float) -> 'AffineTransformation':
        """Counter-clockwise rotation in the plane."""
        c, s = np.cos(angle_rad), np.sin(angle_rad)
        return cls(np.array([[c, -s], [s, c]]))

    @classmethod
    def from_axis_angle(cls, axis: Sequence[float], angle_rad: float) -> 'AffineTransformation':
        """3D rotation from axis and angle (Rodrigues' formula).

        Raises:
            InvalidGeometry: zero-length axis
        """
        axis = np.asarray(axis, dtype=np.float64)
        length = np.linalg.norm(axis)
        if length < GEOMETRY_TOLERANCE:
            raise InvalidGeometry("rotation axis has zero length")
        x, y, z = axis / length

        c = np.cos(angle_rad)
        s = np.sin(angle_rad)
        t = 1 - c

        matrix = np.array([
            [t*x*x + c,   t*x*y - s*z, t*x*z + s*y],
            [t*x*y + s*z, t*y*y + c,   t*y*z - s*x],
            [t*x*z - s*y, t*y*z + s*x, t*z*z + c],
        ])
        return cls(matrix)

    @classmethod
    def from_euler_xyz(cls, angles_rad: Tuple[float, float, float]) -> 'AffineTransformation':
        """Rotation Rz @ Ry @ Rx from (roll, pitch, yaw)."""
        roll, pitch, yaw = angles_rad
        return cls.around_z(yaw).then(cls.around_y(pitch)).then(cls.around_x(roll))

    @classmethod
    def from_two_vectors(cls, vec_from: Sequence[float], vec_to: Sequence[float]) -> 'AffineTransformation':
        """Rotation taking the direction of vec_from onto the direction of vec_to."""
        a = np.asarray(vec_from, dtype=np.float64)
        b = np.asarray(vec_to, dtype=np.float64)
        if np.linalg.norm(a) < GEOMETRY_TOLERANCE or np.linalg.norm(b) < GEOMETRY_TOLERANCE:
            raise InvalidGeometry("cannot align zero-length vectors")
        a = a / np.linalg.norm(a)
        b = b / np.linalg.norm(b)

        dot = float(np.dot(a, b))
        if dot > 1.0 - GEOMETRY_TOLERANCE:
            return cls.identity(3)
        if dot < -1.0 + GEOMETRY_TOLERANCE:
            # Half turn around any axis perpendicular to a
            perp = np.array([1.0, 0.0, 0.0]) if abs(a[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
            return cls.from_axis_angle(np.cross(a, perp), np.pi)

        axis = np.cross(a, b)
        angle = np.arccos(np.clip(dot, -1.0, 1.0))
        return cls.from_axis_angle(axis, angle)

    @classmethod
    def around_x(cls, angle_rad: float) -> 'AffineTransformation':
        return cls.from_axis_angle([1.0, 0.0, 0.0], angle_rad)

    @classmethod
    def around_y(cls, angle_rad: float) -> 'AffineTransformation':
        return cls.from_axis_angle([0.0, 1.0, 0.0], angle_rad)

    @classmethod
    def around_z(cls, angle_rad: float) -> 'AffineTransformation':
        return cls.from_axis_angle([0.0, 0.0, 1.0], angle_rad)

    @classmethod
    def reflection(cls, normal: Sequence[float]) -> 'AffineTransformation':
        """Mirror through the hyperplane through the origin with the given normal."""
        n = np.asarray(normal, dtype=np.float64)
        length = np.linalg.norm(n)
        if length < GEOMETRY_TOLERANCE:
            raise InvalidGeometry("reflection normal has zero length")
        n = n / length
        return cls(np.eye(len(n)) - 2.0 * np.outer(n, n))

    @classmethod
    def shear(cls, axis: int, along: int, factor: float, dimension: int = 3) -> 'AffineTransformation':
        """Shear adding factor * x[along] to coordinate x[axis]."""
        if axis == along:
            raise InvalidGeometry("shear axis and direction must differ")
        matrix = np.eye(dimension)
        matrix[axis, along] = factor
        return cls(matrix)

    @classmethod
    def from_homogeneous(cls, matrix: NDArray[np.float64]) -> 'AffineTransformation':
        """Build from a (d+1) x (d+1) homogeneous matrix with last row (0, ..., 0, 1)."""
        matrix = np.asarray(matrix, dtype=np.float64)
        d = matrix.shape[0] - 1
        if matrix.shape != (d + 1, d + 1):
            raise ShapeMismatch(f"homogeneous matrix must be square, got {matrix.shape}")
        expected_row = np.zeros(d + 1)
        expected_row[-1] = 1.0
        if not np.allclose(matrix[-1], expected_row):
            raise InvalidGeometry("homogeneous matrix is projective, not affine")
        return cls(matrix[:d, :d], matrix[:d, d])

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def then(self, other: 'AffineTransformation') -> 'AffineTransformation':
        """Composition applying `other` first, then `self` (matrix self @ other)."""
        if other.dimension != self.dimension:
            raise ShapeMismatch(f"cannot compose {self.dimension}D and {other.dimension}D transformations")
        return AffineTransformation(
            self.matrix @ other.matrix,
            self.matrix @ other.translation + self.translation,
        )

    def __matmul__(self, other: 'AffineTransformation') -> 'AffineTransformation':
        return self.then(other)

    def determinant(self) -> float:
        return float(np.linalg.det(self.matrix))

    def is_singular(self) -> bool:
        return hadamard_ratio(self.matrix) < SINGULAR_TOLERANCE

    def inverse(self) -> 'AffineTransformation':
        """Inverse map.

        Raises:
            SingularTransform: linear part is numerically singular
        """
        if self.is_singular():
            raise SingularTransform(
                f"linear part is singular (hadamard ratio {hadamard_ratio(self.matrix):.3e} "
                f"< {SINGULAR_TOLERANCE:g})"
            )
        inv = np.linalg.inv(self.matrix)
        return AffineTransformation(inv, -inv @ self.translation)

    def homogeneous(self) -> NDArray[np.float64]:
        d = self.dimension
        out = np.eye(d + 1)
        out[:d, :d] = self.matrix
        out[:d, d] = self.translation
        return out

    def is_identity(self, tol: float = 1e-9) -> bool:
        return bool(np.allclose(self.matrix, np.eye(self.dimension), atol=tol)
                    and np.allclose(self.translation, 0.0, atol=tol))

    def is_close(self, other: 'AffineTransformation', tol: float = 1e-9) -> bool:
        return bool(other.dimension == self.dimension
                    and np.allclose(self.matrix, other.matrix, atol=tol)
                    and np.allclose(self.translation, other.translation, atol=tol))

    def preserves_orientation(self) -> bool:
        return self.determinant() > 0

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def _points(self, points) -> Tuple[NDArray[np.float64], bool]:
        data = np.asarray(points, dtype=np.float64)
        single = data.ndim == 1
        data = np.atleast_2d(data)
        if data.shape[-1] != self.dimension:
            raise ShapeMismatch(f"expected {self.dimension}D points, got shape {data.shape}")
        return data, single

    def apply(self, points) -> NDArray[np.float64]:
        """Transform a point (d,) or points (n, d)."""
        data, single = self._points(points)
        out = data @ self.matrix.T + self.translation
        return out[0] if single else out

    def apply_to_vectors(self, vectors) -> NDArray[np.float64]:
        """Transform direction vectors (translation ignored)."""
        data, single = self._points(vectors)
        out = data @ self.matrix.T
        return out[0] if single else out

    def apply_to_normals(self, normals, normalize: bool = True) -> NDArray[np.float64]:
        """Transform surface normals with the inverse transpose of the linear part."""
        data, single = self._points(normals)
        if self.is_singular():
            raise SingularTransform("normals cannot be transformed by a singular map")
        out = data @ np.linalg.inv(self.matrix)
        if normalize:
            lengths = np.linalg.norm(out, axis=1, keepdims=True)
            out = out / np.where(lengths < GEOMETRY_TOLERANCE, 1.0, lengths)
        return out[0] if single else out

    def __call__(self, points) -> NDArray[np.float64]:
        return self.apply(points)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AffineTransformation):
            return NotImplemented
        return (self.dimension == other.dimension
                and bool(np.array_equal(self.matrix, other.matrix))
                and bool(np.array_equal(self.translation, other.translation)))

    def __hash__(self) -> int:
        return hash((self.matrix.tobytes(), self.translation.tobytes()))

    def __repr__(self) -> str:
        return (f"AffineTransformation(matrix={self.matrix.tolist()}, "
                f"translation={self.translation.tolist()})")
