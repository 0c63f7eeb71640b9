"""
Rank-parameterised dense array (ranks 1 to 4) over contiguous numpy storage.

One class covers every rank: bounds checking, element-wise arithmetic and
row-major iteration are shared instead of being repeated per rank.
"""

import logging
from typing import Any, Iterator, Sequence, Tuple, Union

import numpy as np
from numpy.typing import DTypeLike, NDArray

from mesh_analysis.errors import OutOfRange, ShapeMismatch

logger = logging.getLogger(__name__)

MIN_RANK = 1
MAX_RANK = 4

Index = Tuple[int, ...]


class ArrayItems:
    """Lazy, restartable (index, value) sequence in row-major order.

    Each call to iter() starts a fresh pass over the owning array.
    """

    def __init__(self, array: 'DenseArray', with_index: bool = True):
        self._array = array
        self._with_index = with_index

    def __iter__(self) -> Iterator[Any]:
        data = self._array.view()
        if self._with_index:
            for index in np.ndindex(*data.shape):
                yield index, data[index].item()
        else:
            for value in data.reshape(-1):
                yield value.item()

    def __len__(self) -> int:
        return self._array.size


class DenseArray:
    """Dense N-dimensional array with bounds-checked access.

    Attributes:
        shape: per-axis extents
        strides: per-axis strides counted in elements (row-major)
        dtype: element type
    """

    def __init__(
        self,
        shape: Union[int, Sequence[int]],
        dtype: DTypeLike = np.float64,
        fill: Any = 0,
    ):
        shape = _normalize_shape(shape)
        self._fill = fill
        self._data: NDArray = np.full(shape, fill, dtype=dtype)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_numpy(cls, data: NDArray, fill: Any = 0) -> 'DenseArray':
        """Create an array owning a copy of a numpy array."""
        data = np.asarray(data)
        array = cls(data.shape, dtype=data.dtype, fill=fill)
        array._data[...] = data
        return array

    @classmethod
    def zeros(cls, shape: Union[int, Sequence[int]], dtype: DTypeLike = np.float64) -> 'DenseArray':
        return cls(shape, dtype=dtype, fill=0)

    @classmethod
    def full(cls, shape: Union[int, Sequence[int]], value: Any,
             dtype: DTypeLike = np.float64) -> 'DenseArray':
        return cls(shape, dtype=dtype, fill=value)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Index:
        return tuple(self._data.shape)

    @property
    def rank(self) -> int:
        return self._data.ndim

    @property
    def size(self) -> int:
        return int(self._data.size)

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def strides(self) -> Index:
        """Row-major strides in elements, not bytes."""
        return tuple(s // self._data.itemsize for s in self._data.strides)

    @property
    def fill_value(self) -> Any:
        return self._fill

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def check_index(self, index: Sequence[int]) -> Index:
        """Validate an index tuple and return it as plain ints.

        Raises:
            OutOfRange: wrong arity, non-integer or out-of-bounds component
        """
        if len(index) != self.rank:
            raise OutOfRange(f"index {tuple(index)} has {len(index)} components, array rank is {self.rank}")
        checked = []
        for axis, (i, extent) in enumerate(zip(index, self._data.shape)):
            if isinstance(i, (bool, np.bool_)) or not isinstance(i, (int, np.integer)):
                raise OutOfRange(f"index component {i!r} on axis {axis} is not an integer")
            if i < 0 or i >= extent:
                raise OutOfRange(f"index {i} out of range [0, {extent}) on axis {axis}")
            checked.append(int(i))
        return tuple(checked)

    def at(self, *index: int) -> Any:
        """Bounds-checked element read."""
        return self._data[self.check_index(index)].item()

    def set(self, index: Sequence[int], value: Any) -> None:
        """Bounds-checked element write."""
        self._data[self.check_index(tuple(index))] = value

    def __getitem__(self, index: Union[int, Sequence[int]]) -> Any:
        if not isinstance(index, tuple):
            index = (index,)
        return self.at(*index)

    def __setitem__(self, index: Union[int, Sequence[int]], value: Any) -> None:
        if not isinstance(index, tuple):
            index = (index,)
        self.set(index, value)

    def fill(self, value: Any) -> None:
        self._data.fill(value)

    # ------------------------------------------------------------------
    # Reallocation
    # ------------------------------------------------------------------

    def resize(self, new_shape: Union[int, Sequence[int]]) -> None:
        """Reallocate storage with a new shape of the same rank.

        Values inside the overlapping index range are preserved; cells that
        did not exist before take the array's fill value.

        Raises:
            ShapeMismatch: new shape has a different rank
        """
        new_shape = _normalize_shape(new_shape)
        if len(new_shape) != self.rank:
            raise ShapeMismatch(f"cannot resize rank {self.rank} array to shape {new_shape}")
        new_data = np.full(new_shape, self._fill, dtype=self._data.dtype)
        overlap = tuple(slice(0, min(a, b)) for a, b in zip(self._data.shape, new_shape))
        new_data[overlap] = self._data[overlap]
        logger.debug("Resized array %s -> %s", self.shape, new_shape)
        self._data = new_data

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _require_same_shape(self, other: 'DenseArray') -> None:
        if not isinstance(other, DenseArray):
            raise ShapeMismatch(f"expected DenseArray operand, got {type(other).__name__}")
        if other.shape != self.shape:
            raise ShapeMismatch(f"shapes {self.shape} and {other.shape} differ")

    def add(self, other: 'DenseArray') -> 'DenseArray':
        self._require_same_shape(other)
        return DenseArray.from_numpy(self._data + other._data, fill=self._fill)

    def subtract(self, other: 'DenseArray') -> 'DenseArray':
        self._require_same_shape(other)
        return DenseArray.from_numpy(self._data - other._data, fill=self._fill)

    def scale(self, factor: float) -> 'DenseArray':
        return DenseArray.from_numpy(self._data * factor, fill=self._fill)

    def __add__(self, other: 'DenseArray') -> 'DenseArray':
        return self.add(other)

    def __sub__(self, other: 'DenseArray') -> 'DenseArray':
        return self.subtract(other)

    def __mul__(self, factor: float) -> 'DenseArray':
        return self.scale(factor)

    __rmul__ = __mul__

    def __neg__(self) -> 'DenseArray':
        return self.scale(-1)

    def __iadd__(self, other: 'DenseArray') -> 'DenseArray':
        self._require_same_shape(other)
        self._data += other._data
        return self

    def __isub__(self, other: 'DenseArray') -> 'DenseArray':
        self._require_same_shape(other)
        self._data -= other._data
        return self

    def __imul__(self, factor: float) -> 'DenseArray':
        self._data *= factor
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DenseArray):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    __hash__ = None  # type: ignore[assignment]

    # ------------------------------------------------------------------
    # Iteration and export
    # ------------------------------------------------------------------

    def items(self) -> ArrayItems:
        """(index, value) pairs in row-major order."""
        return ArrayItems(self, with_index=True)

    def values(self) -> ArrayItems:
        """Values in row-major order."""
        return ArrayItems(self, with_index=False)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values())

    def __len__(self) -> int:
        return self._data.shape[0]

    def view(self) -> NDArray:
        """Read-only numpy view; the DenseArray keeps ownership."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    def to_numpy(self) -> NDArray:
        return self._data.copy()

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self._data.copy()
        return self._data.astype(dtype)

    def copy(self) -> 'DenseArray':
        return DenseArray.from_numpy(self._data, fill=self._fill)

    def __repr__(self) -> str:
        return f"DenseArray(shape={self.shape}, dtype={self.dtype})"


def _normalize_shape(shape: Union[int, Sequence[int]]) -> Index:
    if isinstance(shape, (int, np.integer)):
        shape = (int(shape),)
    shape = tuple(int(s) for s in shape)
    if not MIN_RANK <= len(shape) <= MAX_RANK:
        raise ShapeMismatch(f"rank must be between {MIN_RANK} and {MAX_RANK}, got {len(shape)}")
    if any(s < 0 for s in shape):
        raise ShapeMismatch(f"negative extent in shape {shape}")
    return shape
