"""
Seedable Mersenne Twister random source.

Every stochastic routine in the engine (K-Means initialisation, surface
sampling, shape distributions) takes a RandomSource argument. There is no
module-level generator: the same seed reproduces the same results end to
end only because callers thread one instance through explicitly.
"""

import logging
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from numpy.random import Generator, MT19937
from numpy.typing import ArrayLike, NDArray

from mesh_analysis.errors import InvalidInput

logger = logging.getLogger(__name__)

Size = Optional[Union[int, Tuple[int, ...]]]


class RandomSource:
    """Mersenne Twister (MT19937) generator owned by the caller.

    Args:
        seed: integer seed; None draws fresh OS entropy
    """

    def __init__(self, seed: Optional[int] = None):
        self._seed = seed
        self._generator = Generator(MT19937(seed))

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    @property
    def generator(self) -> Generator:
        """Underlying numpy Generator, for APIs that accept one directly."""
        return self._generator

    def reseed(self, seed: Optional[int]) -> None:
        """Restart the stream from a new seed."""
        self._seed = seed
        self._generator = Generator(MT19937(seed))

    def spawn(self) -> 'RandomSource':
        """Independent child stream derived deterministically from this one."""
        child_seed = int(self._generator.integers(0, 2**63 - 1))
        return RandomSource(child_seed)

    # ------------------------------------------------------------------
    # Draws
    # ------------------------------------------------------------------

    def random(self, size: Size = None) -> Union[float, NDArray[np.float64]]:
        """Uniform samples in [0, 1)."""
        return self._generator.random(size)

    def uniform(self, low: ArrayLike = 0.0, high: ArrayLike = 1.0,
                size: Size = None) -> Union[float, NDArray[np.float64]]:
        return self._generator.uniform(low, high, size)

    def normal(self, mean: ArrayLike = 0.0, std: ArrayLike = 1.0,
               size: Size = None) -> Union[float, NDArray[np.float64]]:
        return self._generator.normal(mean, std, size)

    def integers(self, low: int, high: Optional[int] = None,
                 size: Size = None) -> Union[int, NDArray[np.int64]]:
        """Integers in [low, high)."""
        return self._generator.integers(low, high, size)

    def choice(self, n: int, size: int, replace: bool = False,
               p: Optional[NDArray[np.float64]] = None) -> NDArray[np.int64]:
        """Indices drawn from range(n)."""
        if not replace and size > n:
            raise InvalidInput(f"cannot draw {size} distinct indices from {n}")
        return self._generator.choice(n, size=size, replace=replace, p=p)

    def permutation(self, n: int) -> NDArray[np.int64]:
        return self._generator.permutation(n)

    def shuffle(self, values: NDArray) -> None:
        """Shuffle an array in place along its first axis."""
        self._generator.shuffle(values)

    def resample(self, n: int, size: Optional[int] = None) -> NDArray[np.int64]:
        """Bootstrap resampling: size indices drawn with replacement from range(n)."""
        if n < 1:
            raise InvalidInput("cannot resample an empty set")
        return self._generator.integers(0, n, size if size is not None else n)

    def balanced_resample(self, n: int, repetitions: int) -> NDArray[np.int64]:
        """Balanced bootstrap: every index appears exactly `repetitions` times.

        Returns:
            (repetitions, n) array, one resample per row
        """
        if n < 1 or repetitions < 1:
            raise InvalidInput("balanced resampling needs n >= 1 and repetitions >= 1")
        pool = np.tile(np.arange(n), repetitions)
        self._generator.shuffle(pool)
        return pool.reshape(repetitions, n)

    def points_in_box(self, low: Sequence[float], high: Sequence[float], n: int) -> NDArray[np.float64]:
        """n points uniformly distributed in an axis-aligned box."""
        low = np.asarray(low, dtype=np.float64)
        high = np.asarray(high, dtype=np.float64)
        return self._generator.uniform(low, high, size=(n, len(low)))

    def __repr__(self) -> str:
        return f"RandomSource(seed={self._seed!r})"
