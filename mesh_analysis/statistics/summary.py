"""
Summary statistics over numpy arrays and the numeric containers.

All functions flatten their input; DenseArray and SparseArray are read
through their dense values, so a sparse array's absent cells contribute
its default value.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import stats

from mesh_analysis.containers.dense import DenseArray
from mesh_analysis.containers.sparse import SparseArray
from mesh_analysis.errors import InvalidInput, ShapeMismatch

logger = logging.getLogger(__name__)

Data = Union[ArrayLike, DenseArray, SparseArray]


def as_values(data: Data) -> NDArray[np.float64]:
    """Flattened float values of an array or container.

    Raises:
        InvalidInput: no values
    """
    if isinstance(data, SparseArray):
        data = data.to_dense()
    if isinstance(data, DenseArray):
        values = data.to_numpy().astype(np.float64).ravel()
    else:
        values = np.asarray(data, dtype=np.float64).ravel()
    if values.size == 0:
        raise InvalidInput("statistics need at least one value")
    return values


def _weights(weights: Optional[ArrayLike], n: int) -> Optional[NDArray[np.float64]]:
    if weights is None:
        return None
    w = np.asarray(weights, dtype=np.float64).ravel()
    if w.size != n:
        raise ShapeMismatch(f"{w.size} weights for {n} values")
    if np.any(w < 0) or w.sum() <= 0:
        raise InvalidInput("weights must be non-negative with a positive sum")
    return w


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

def mean(data: Data, weights: Optional[ArrayLike] = None) -> float:
    values = as_values(data)
    return float(np.average(values, weights=_weights(weights, values.size)))


def power_mean(data: Data, p: float, weights: Optional[ArrayLike] = None) -> float:
    """Generalised mean (sum w x^p / sum w)^(1/p); p = 0 is the geometric mean.

    Raises:
        InvalidInput: negative values, or zeros with p <= 0
    """
    values = as_values(data)
    w = _weights(weights, values.size)
    if np.any(values < 0):
        raise InvalidInput("power means need non-negative values")
    if p <= 0 and np.any(values == 0):
        raise InvalidInput(f"power mean with p={p} is undefined for zero values")
    if p == 0:
        return float(np.exp(np.average(np.log(values), weights=w)))
    return float(np.average(values ** p, weights=w) ** (1.0 / p))


def geometric_mean(data: Data, weights: Optional[ArrayLike] = None) -> float:
    return power_mean(data, 0.0, weights)


def harmonic_mean(data: Data, weights: Optional[ArrayLike] = None) -> float:
    return power_mean(data, -1.0, weights)


def quadratic_mean(data: Data, weights: Optional[ArrayLike] = None) -> float:
    return power_mean(np.abs(as_values(data)), 2.0, weights)


def median(data: Data, weights: Optional[ArrayLike] = None) -> float:
    """Median; with weights, the smallest value whose cumulative weight reaches half."""
    values = as_values(data)
    if weights is None:
        return float(np.median(values))
    w = _weights(weights, values.size)
    order = np.argsort(values, kind='stable')
    cumulative = np.cumsum(w[order])
    return float(values[order][np.searchsorted(cumulative, cumulative[-1] / 2.0)])


def quantile(data: Data, p: ArrayLike) -> Union[float, NDArray[np.float64]]:
    p_arr = np.asarray(p, dtype=np.float64)
    if np.any((p_arr < 0) | (p_arr > 1)):
        raise InvalidInput("quantile probabilities must lie in [0, 1]")
    result = np.quantile(as_values(data), p_arr)
    return float(result) if np.ndim(result) == 0 else result


# ---------------------------------------------------------------------------
# Spread and shape
# ---------------------------------------------------------------------------

def variance(data: Data, weights: Optional[ArrayLike] = None, sample: bool = False) -> float:
    """Population variance, or the unbiased sample variance when sample=True.

    Raises:
        InvalidInput: sample variance of fewer than two values
    """
    values = as_values(data)
    w = _weights(weights, values.size)
    if w is None:
        if sample and values.size < 2:
            raise InvalidInput("sample variance needs at least two values")
        return float(np.var(values, ddof=1 if sample else 0))
    mu = np.average(values, weights=w)
    population = float(np.average((values - mu) ** 2, weights=w))
    if not sample:
        return population
    # reliability weights correction
    v1, v2 = w.sum(), (w ** 2).sum()
    if v1 ** 2 - v2 <= 0:
        raise InvalidInput("sample variance needs at least two weighted values")
    return population * v1 ** 2 / (v1 ** 2 - v2)


def standard_deviation(data: Data, weights: Optional[ArrayLike] = None, sample: bool = False) -> float:
    return float(np.sqrt(variance(data, weights, sample)))


def median_absolute_deviation(data: Data) -> float:
    values = as_values(data)
    return float(np.median(np.abs(values - np.median(values))))


def robust_standard_deviation(data: Data) -> float:
    """MAD scaled to match the standard deviation of normal data."""
    return 1.4826 * median_absolute_deviation(data)


def interquartile_range(data: Data) -> float:
    q1, q3 = np.quantile(as_values(data), [0.25, 0.75])
    return float(q3 - q1)


def skewness(data: Data, sample: bool = False) -> float:
    return float(stats.skew(as_values(data), bias=not sample))


def kurtosis(data: Data, sample: bool = False) -> float:
    """Excess kurtosis (0 for normal data)."""
    return float(stats.kurtosis(as_values(data), bias=not sample))


def central_moment(data: Data, k: int) -> float:
    if k < 0:
        raise InvalidInput("moment order must be non-negative")
    values = as_values(data)
    return float(np.mean((values - values.mean()) ** k))


# ---------------------------------------------------------------------------
# Association
# ---------------------------------------------------------------------------

def _pair(x: Data, y: Data) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    xv, yv = as_values(x), as_values(y)
    if xv.size != yv.size:
        raise ShapeMismatch(f"paired data have {xv.size} and {yv.size} values")
    return xv, yv


def covariance(x: Data, y: Data, sample: bool = False) -> float:
    xv, yv = _pair(x, y)
    if sample and xv.size < 2:
        raise InvalidInput("sample covariance needs at least two pairs")
    return float(np.cov(xv, yv, ddof=1 if sample else 0)[0, 1])


def pearson_correlation(x: Data, y: Data) -> float:
    xv, yv = _pair(x, y)
    if np.ptp(xv) == 0 or np.ptp(yv) == 0:
        raise InvalidInput("correlation is undefined for constant data")
    return float(np.corrcoef(xv, yv)[0, 1])


def spearman_correlation(x: Data, y: Data) -> float:
    xv, yv = _pair(x, y)
    return pearson_correlation(stats.rankdata(xv), stats.rankdata(yv))


# ---------------------------------------------------------------------------
# Distributions
# ---------------------------------------------------------------------------

def histogram(data: Data, bins: int = 10, value_range: Optional[Tuple[float, float]] = None,
              density: bool = False) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Counts (or a density) over equal-width bins.

    Values outside value_range are dropped, as numpy does.

    Returns:
        (counts, bin_edges) with len(bin_edges) == bins + 1
    """
    if bins < 1:
        raise InvalidInput(f"histogram needs at least one bin, got {bins}")
    counts, edges = np.histogram(as_values(data), bins=bins, range=value_range, density=density)
    return counts.astype(np.float64), edges


def cumulative_sum(data: Data) -> NDArray[np.float64]:
    return np.cumsum(as_values(data))


def empirical_cdf(data: Data, x: ArrayLike) -> Union[float, NDArray[np.float64]]:
    """Fraction of values <= x."""
    values = np.sort(as_values(data))
    result = np.searchsorted(values, np.asarray(x, dtype=np.float64), side='right') / values.size
    return float(result) if np.ndim(result) == 0 else result


@dataclass
class SummaryStatistics:
    count: int
    mean: float
    variance: float
    standard_deviation: float
    minimum: float
    maximum: float
    median: float
    interquartile_range: float

    def summary(self) -> str:
        return (f"n={self.count}, mean={self.mean:.6g}, std={self.standard_deviation:.6g}, "
                f"min={self.minimum:.6g}, median={self.median:.6g}, max={self.maximum:.6g}")

    def to_dict(self) -> dict:
        return {
            'count': self.count,
            'mean': self.mean,
            'variance': self.variance,
            'standard_deviation': self.standard_deviation,
            'min': self.minimum,
            'max': self.maximum,
            'median': self.median,
            'interquartile_range': self.interquartile_range,
        }


def describe(data: Data) -> SummaryStatistics:
    values = as_values(data)
    var = float(np.var(values))
    q1, med, q3 = np.quantile(values, [0.25, 0.5, 0.75])
    return SummaryStatistics(
        count=int(values.size),
        mean=float(values.mean()),
        variance=var,
        standard_deviation=float(np.sqrt(var)),
        minimum=float(values.min()),
        maximum=float(values.max()),
        median=float(med),
        interquartile_range=float(q3 - q1),
    )
