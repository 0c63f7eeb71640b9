"""Distance metrics and summary statistics."""

from mesh_analysis.statistics.distance_metrics import (
    DistanceMetric,
    distance,
    distances_to,
    pairwise_distances,
)
from mesh_analysis.statistics.summary import (
    SummaryStatistics,
    cumulative_sum,
    describe,
    histogram,
    mean,
    median,
    standard_deviation,
    variance,
)

__all__ = [
    "DistanceMetric",
    "SummaryStatistics",
    "cumulative_sum",
    "describe",
    "distance",
    "distances_to",
    "histogram",
    "mean",
    "median",
    "pairwise_distances",
    "standard_deviation",
    "variance",
]
