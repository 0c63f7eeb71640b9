"""
Rasterization of points and line segments into sparse grids.

The grid spans [minimum, maximum] on every axis with `divisions` cells per
axis; cells are half-open except the last one, as in the voxelizer.
Points outside the range are ignored.
"""

import logging
from enum import Enum
from typing import Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from mesh_analysis.containers.sparse import SparseArray
from mesh_analysis.errors import InvalidInput, ShapeMismatch

logger = logging.getLogger(__name__)

DEFAULT_DIVISIONS = 64


class Connectivity(Enum):
    """Neighbourhood used to join consecutive cells of a rasterized segment."""
    FACE = "face"      # 4-connected in 2D, 6-connected in 3D
    VERTEX = "vertex"  # 8-connected in 2D, 26-connected in 3D


def _check_range(minimum: float, maximum: float, divisions: int) -> float:
    if divisions < 1:
        raise InvalidInput(f"divisions must be at least 1, got {divisions}")
    if not maximum > minimum:
        raise InvalidInput(f"grid range [{minimum}, {maximum}] is empty")
    return (maximum - minimum) / divisions


def _cells(points: NDArray[np.float64], minimum: float, maximum: float,
           divisions: int, cell: float) -> Tuple[NDArray[np.int64], NDArray[np.bool_]]:
    inside = np.all((points >= minimum) & (points <= maximum), axis=1)
    idx = np.clip(np.floor((points - minimum) / cell).astype(np.int64), 0, divisions - 1)
    return idx, inside


def _empty_grid(dimension: int, divisions: int) -> SparseArray:
    if dimension not in (2, 3):
        raise ShapeMismatch(f"rasterization supports 2D and 3D data, got {dimension}D")
    return SparseArray((divisions,) * dimension, default=False, dtype=bool)


def rasterize_points(points: ArrayLike, minimum: float, maximum: float,
                     divisions: int = DEFAULT_DIVISIONS) -> SparseArray:
    """Mark the cells containing at least one point.

    Args:
        points: (n, 2) or (n, 3) coordinates

    Returns:
        Boolean SparseArray of shape (divisions,) * dimension
    """
    points = np.atleast_2d(np.asarray(points, dtype=np.float64))
    grid = _empty_grid(points.shape[1], divisions)
    cell = _check_range(minimum, maximum, divisions)
    if len(points) == 0:
        return grid

    idx, inside = _cells(points, minimum, maximum, divisions, cell)
    for index in np.unique(idx[inside], axis=0):
        grid[tuple(int(i) for i in index)] = True

    outside = int((~inside).sum())
    if outside:
        logger.debug("Ignored %d points outside [%g, %g]", outside, minimum, maximum)
    return grid


def _segment_cells_vertex(start: NDArray[np.float64], end: NDArray[np.float64],
                          minimum: float, cell: float) -> NDArray[np.float64]:
    """Sample points of a segment, one per step along its dominant axis."""
    span = np.abs(end - start) / cell
    steps = int(np.ceil(span.max())) + 1
    t = np.linspace(0.0, 1.0, max(steps, 2))
    return start + t[:, np.newaxis] * (end - start)


def _segment_cells_face(start: NDArray[np.float64], end: NDArray[np.float64],
                        minimum: float, cell: float) -> NDArray[np.float64]:
    """Points inside every cell crossed by the segment (grid traversal).

    Returns the midpoints between consecutive cell-boundary crossings, so
    consecutive cells always share a face.
    """
    direction = end - start
    crossings = [0.0, 1.0]
    for axis in range(len(start)):
        if direction[axis] == 0:
            continue
        a = (start[axis] - minimum) / cell
        b = (end[axis] - minimum) / cell
        lo, hi = sorted((a, b))
        planes = np.arange(np.floor(lo) + 1, np.ceil(hi))
        crossings.extend(((planes - a) / (b - a)).tolist())
    t = np.unique(np.clip(crossings, 0.0, 1.0))
    mids = (t[:-1] + t[1:]) / 2 if len(t) > 1 else t
    samples = np.concatenate([[0.0], mids, [1.0]])
    return start + samples[:, np.newaxis] * direction


def rasterize_segments(segments: ArrayLike, minimum: float, maximum: float,
                       divisions: int = DEFAULT_DIVISIONS,
                       connectivity: Connectivity = Connectivity.VERTEX) -> SparseArray:
    """Mark the cells along line segments.

    Args:
        segments: (m, 2, d) start/end points, d = 2 or 3
        connectivity: FACE marks every cell the segment passes through;
            VERTEX marks one cell per step along the dominant axis

    Returns:
        Boolean SparseArray of shape (divisions,) * d
    """
    segments = np.asarray(segments, dtype=np.float64)
    if segments.ndim != 3 or segments.shape[1] != 2:
        raise ShapeMismatch(f"segments must have shape (m, 2, d), got {segments.shape}")
    grid = _empty_grid(segments.shape[2], divisions)
    cell = _check_range(minimum, maximum, divisions)

    sampler = _segment_cells_face if connectivity is Connectivity.FACE else _segment_cells_vertex
    for start, end in segments:
        samples = sampler(start, end, minimum, cell)
        idx, inside = _cells(samples, minimum, maximum, divisions, cell)
        for index in np.unique(idx[inside], axis=0):
            grid[tuple(int(i) for i in index)] = True
    return grid
