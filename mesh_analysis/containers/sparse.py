"""
Sparse 2D/3D arrays stored as a coordinate -> value mapping.

Absent coordinates read as an explicit default value. Writing the default
keeps the entry stored; compact() is the only operation that evicts
default-valued entries, and it never changes what reads return.
"""

import logging
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import DTypeLike

from mesh_analysis.containers.dense import DenseArray
from mesh_analysis.errors import OutOfRange, ShapeMismatch

logger = logging.getLogger(__name__)

Coordinate = Tuple[int, ...]

SUPPORTED_RANKS = (2, 3)


class StoredItems:
    """Lazy, restartable view over stored entries in row-major order."""

    def __init__(self, array: 'SparseArray'):
        self._array = array

    def __iter__(self) -> Iterator[Tuple[Coordinate, Any]]:
        entries = self._array._entries
        for key in sorted(entries):
            yield key, entries[key]

    def __len__(self) -> int:
        return len(self._array._entries)


class SparseArray:
    """Sparse array of rank 2 or 3 with an explicit default value.

    Attributes:
        shape: per-axis extents
        default: value returned for coordinates that are not stored
    """

    def __init__(self, shape: Sequence[int], default: Any = 0, dtype: Optional[DTypeLike] = None):
        shape = tuple(int(s) for s in shape)
        if len(shape) not in SUPPORTED_RANKS:
            raise ShapeMismatch(f"sparse arrays support ranks {SUPPORTED_RANKS}, got {len(shape)}")
        if any(s < 0 for s in shape):
            raise ShapeMismatch(f"negative extent in shape {shape}")
        self._shape: Coordinate = shape
        self.default = default
        self._dtype = np.dtype(dtype) if dtype is not None else None
        self._entries: Dict[Coordinate, Any] = {}

    @property
    def shape(self) -> Coordinate:
        return self._shape

    @property
    def rank(self) -> int:
        return len(self._shape)

    @property
    def size(self) -> int:
        return int(np.prod(self._shape))

    @property
    def stored_count(self) -> int:
        return len(self._entries)

    def density(self) -> float:
        """Fraction of cells with a stored entry."""
        if self.size == 0:
            return 0.0
        return len(self._entries) / self.size

    def sparsity(self) -> float:
        """Fraction of cells without a stored entry."""
        if self.size == 0:
            return 1.0
        return 1.0 - self.density()

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def _check(self, coordinate: Sequence[int]) -> Coordinate:
        if len(coordinate) != self.rank:
            raise OutOfRange(f"coordinate {tuple(coordinate)} does not match rank {self.rank}")
        checked = []
        for axis, (i, extent) in enumerate(zip(coordinate, self._shape)):
            if isinstance(i, (bool, np.bool_)) or not isinstance(i, (int, np.integer)):
                raise OutOfRange(f"coordinate component {i!r} on axis {axis} is not an integer")
            if i < 0 or i >= extent:
                raise OutOfRange(f"coordinate {i} out of range [0, {extent}) on axis {axis}")
            checked.append(int(i))
        return tuple(checked)

    def __getitem__(self, coordinate: Sequence[int]) -> Any:
        return self._entries.get(self._check(coordinate), self.default)

    def __setitem__(self, coordinate: Sequence[int], value: Any) -> None:
        self._entries[self._check(coordinate)] = value

    def __delitem__(self, coordinate: Sequence[int]) -> None:
        self._entries.pop(self._check(coordinate), None)

    def __contains__(self, coordinate: Sequence[int]) -> bool:
        return tuple(coordinate) in self._entries

    def get(self, coordinate: Sequence[int]) -> Any:
        return self[coordinate]

    def clear(self) -> None:
        self._entries.clear()

    def compact(self) -> int:
        """Drop stored entries equal to the default value.

        Returns:
            Number of evicted entries
        """
        stale = [key for key, value in self._entries.items() if value == self.default]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Compacted sparse array: %d entries dropped", len(stale))
        return len(stale)

    def items(self) -> StoredItems:
        """Stored (coordinate, value) pairs in row-major order."""
        return StoredItems(self)

    def coordinates(self) -> np.ndarray:
        """Stored coordinates as an (n, rank) integer array, row-major sorted."""
        if not self._entries:
            return np.zeros((0, self.rank), dtype=np.int64)
        return np.array(sorted(self._entries), dtype=np.int64)

    def resize(self, new_shape: Sequence[int]) -> None:
        """Change the shape, dropping entries that fall outside it."""
        new_shape = tuple(int(s) for s in new_shape)
        if len(new_shape) != self.rank:
            raise ShapeMismatch(f"cannot resize rank {self.rank} sparse array to {new_shape}")
        self._entries = {
            key: value for key, value in self._entries.items()
            if all(k < s for k, s in zip(key, new_shape))
        }
        self._shape = new_shape

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @property
    def dtype(self) -> np.dtype:
        """Declared element type, or the type inferred from default and stored values."""
        if self._dtype is not None:
            return self._dtype
        if not self._entries:
            return np.asarray(self.default).dtype
        return np.result_type(np.asarray(self.default), np.array(list(self._entries.values())))

    def to_dense(self) -> DenseArray:
        dense = DenseArray(self._shape, dtype=self.dtype, fill=self.default)
        data = dense._data
        for key, value in self._entries.items():
            data[key] = value
        return dense

    @classmethod
    def from_dense(cls, dense: DenseArray, default: Any = 0) -> 'SparseArray':
        """Store every cell of a dense array that differs from default."""
        data = np.asarray(dense)
        sparse = cls(data.shape, default=default, dtype=data.dtype)
        for index in zip(*np.nonzero(data != default)):
            sparse._entries[tuple(int(i) for i in index)] = data[index].item()
        return sparse

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _require_same_shape(self, other: 'SparseArray') -> None:
        if not isinstance(other, SparseArray):
            raise ShapeMismatch(f"expected SparseArray operand, got {type(other).__name__}")
        if other.shape != self.shape:
            raise ShapeMismatch(f"shapes {self.shape} and {other.shape} differ")

    def _combine(self, other: 'SparseArray', op) -> 'SparseArray':
        self._require_same_shape(other)
        result = SparseArray(self._shape, default=op(self.default, other.default), dtype=self._dtype)
        for key in set(self._entries) | set(other._entries):
            result._entries[key] = op(self[key], other[key])
        return result

    def __add__(self, other: 'SparseArray') -> 'SparseArray':
        return self._combine(other, lambda a, b: a + b)

    def __sub__(self, other: 'SparseArray') -> 'SparseArray':
        return self._combine(other, lambda a, b: a - b)

    def __mul__(self, factor: float) -> 'SparseArray':
        result = SparseArray(self._shape, default=self.default * factor, dtype=self._dtype)
        result._entries = {key: value * factor for key, value in self._entries.items()}
        return result

    __rmul__ = __mul__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SparseArray):
            return NotImplemented
        if self.shape != other.shape or self.default != other.default:
            return False
        keys = set(self._entries) | set(other._entries)
        return all(self[key] == other[key] for key in keys)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"SparseArray(shape={self._shape}, stored={len(self._entries)}, default={self.default!r})"


def SparseArray2D(shape: Sequence[int], default: Any = 0, dtype: Optional[DTypeLike] = None) -> SparseArray:
    """Rank-2 sparse array."""
    if len(shape) != 2:
        raise ShapeMismatch(f"SparseArray2D needs a 2D shape, got {tuple(shape)}")
    return SparseArray(shape, default=default, dtype=dtype)


def SparseArray3D(shape: Sequence[int], default: Any = 0, dtype: Optional[DTypeLike] = None) -> SparseArray:
    """Rank-3 sparse array."""
    if len(shape) != 3:
        raise ShapeMismatch(f"SparseArray3D needs a 3D shape, got {tuple(shape)}")
    return SparseArray(shape, default=default, dtype=dtype)
