"""
Voxel grid model.

A VoxelGrid couples a boolean occupancy array with the world placement of
its cells. Placement is fixed at construction: the origin (world position
of the lower corner of cell (0, 0, 0)) and the cubic cell size together
define the grid-to-world affine map, so the two can never drift apart.

Cell (i, j, k) covers the half-open box origin + [i, i+1) x [j, j+1) x
[k, k+1) times cell_size. The last cell along each axis is closed so the
grid covers its full extent.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np
from numpy.typing import NDArray
from scipy import ndimage

from mesh_analysis.containers.dense import DenseArray
from mesh_analysis.containers.sparse import SparseArray, SparseArray3D
from mesh_analysis.errors import InvalidGeometry, InvalidInput, ShapeMismatch
from mesh_analysis.geometry.mesh_stats import BoundingBox
from mesh_analysis.geometry.transform import AffineTransformation

logger = logging.getLogger(__name__)


class GridMapping(Enum):
    """How a mesh bounding box is mapped onto grid cells."""
    FITTED = "fitted"    # cubic cells from the longest axis, counts fitted per axis
    UNIFORM = "uniform"  # R x R x R cells over the bounding cube


def grid_placement(bbox: BoundingBox, resolution: int,
                   mapping: GridMapping = GridMapping.FITTED) -> Tuple[NDArray[np.float64], float, Tuple[int, int, int]]:
    """Origin, cell size and shape of the grid covering a bounding box.

    Raises:
        InvalidInput: resolution < 1
        InvalidGeometry: the box has zero volume
    """
    if resolution < 1:
        raise InvalidInput(f"grid resolution must be at least 1, got {resolution}")
    if bbox.is_degenerate():
        raise InvalidGeometry(
            f"bounding box {bbox.dimensions.tolist()} has zero volume and cannot be voxelized"
        )
    extent = bbox.max_dimension
    cell_size = extent / resolution
    if mapping is GridMapping.UNIFORM:
        origin = bbox.center - extent / 2
        shape = (resolution, resolution, resolution)
    else:
        origin = bbox.min_point.copy()
        counts = np.ceil(bbox.dimensions / cell_size - 1e-9).astype(int)
        shape = tuple(int(max(1, min(resolution, c))) for c in counts)
    return np.asarray(origin, dtype=np.float64), float(cell_size), shape


@dataclass(frozen=True)
class VoxelGrid:
    """Occupancy grid with its world placement.

    Attributes:
        occupancy: (nx, ny, nz) boolean cells, read-only
        origin: world position of the lower corner of cell (0, 0, 0)
        cell_size: edge length of the cubic cells
    """
    occupancy: NDArray[np.bool_]
    origin: NDArray[np.float64]
    cell_size: float

    def __post_init__(self):
        occupancy = np.array(self.occupancy, dtype=bool)
        if occupancy.ndim != 3:
            raise ShapeMismatch(f"voxel occupancy must be 3D, got shape {occupancy.shape}")
        origin = np.array(self.origin, dtype=np.float64).reshape(-1)
        if origin.shape != (3,):
            raise ShapeMismatch(f"grid origin must be a 3D point, got {origin.shape}")
        if not self.cell_size > 0:
            raise InvalidGeometry(f"cell size must be positive, got {self.cell_size}")
        occupancy.flags.writeable = False
        origin.flags.writeable = False
        object.__setattr__(self, "occupancy", occupancy)
        object.__setattr__(self, "origin", origin)
        object.__setattr__(self, "cell_size", float(self.cell_size))

    @classmethod
    def empty(cls, shape: Tuple[int, int, int], origin=(0.0, 0.0, 0.0), cell_size: float = 1.0) -> 'VoxelGrid':
        return cls(np.zeros(shape, dtype=bool), np.asarray(origin, dtype=np.float64), cell_size)

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int, int]:
        return tuple(self.occupancy.shape)

    @property
    def world_from_grid(self) -> AffineTransformation:
        """Maps continuous grid coordinates (cell corners at integers) to world space."""
        return AffineTransformation(np.eye(3) * self.cell_size, self.origin)

    @property
    def grid_from_world(self) -> AffineTransformation:
        return self.world_from_grid.inverse()

    def bounds(self) -> BoundingBox:
        return BoundingBox(min_point=self.origin.copy(),
                           max_point=self.origin + np.array(self.shape) * self.cell_size)

    def cell_bounds(self, axis: int, index: NDArray[np.int64]) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        """World (lo, hi) of cells along one axis."""
        index = np.asarray(index)
        return (self.origin[axis] + index * self.cell_size,
                self.origin[axis] + (index + 1) * self.cell_size)

    def world_to_index(self, points) -> Tuple[NDArray[np.int64], NDArray[np.bool_]]:
        """Cell index of each point.

        Returns:
            (indices, inside): (n, 3) indices and a mask of points inside the
            grid; indices of outside points are clipped and meaningless
        """
        pts = np.atleast_2d(np.asarray(points, dtype=np.float64))
        shape = np.array(self.shape)
        upper = self.origin + shape * self.cell_size
        inside = np.all((pts >= self.origin) & (pts <= upper), axis=1)
        idx = np.floor((pts - self.origin) / self.cell_size).astype(np.int64)
        # points on the upper face belong to the closed last cell
        return np.clip(idx, 0, shape - 1), inside

    def index_to_world(self, indices) -> NDArray[np.float64]:
        """World coordinates of cell centers."""
        idx = np.asarray(indices, dtype=np.float64)
        return self.origin + (idx + 0.5) * self.cell_size

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def occupied_count(self) -> int:
        return int(self.occupancy.sum())

    @property
    def cell_volume(self) -> float:
        return self.cell_size ** 3

    @property
    def volume(self) -> float:
        """Total world volume of the occupied cells."""
        return self.occupied_count * self.cell_volume

    @property
    def is_empty(self) -> bool:
        return self.occupied_count == 0

    def occupied_indices(self) -> NDArray[np.int64]:
        return np.argwhere(self.occupancy)

    def occupied_centers(self) -> NDArray[np.float64]:
        return self.index_to_world(self.occupied_indices())

    def contains(self, points) -> NDArray[np.bool_]:
        """Occupancy at world points; points outside the grid are empty."""
        idx, inside = self.world_to_index(points)
        return inside & self.occupancy[idx[:, 0], idx[:, 1], idx[:, 2]]

    def centroid(self) -> NDArray[np.float64]:
        """Mean of the occupied cell centers (grid center when empty)."""
        if self.is_empty:
            return self.bounds().center
        return self.occupied_centers().mean(axis=0)

    def mean_distance(self) -> float:
        """Mean distance of occupied cell centers to their centroid."""
        if self.is_empty:
            return 0.0
        centers = self.occupied_centers()
        return float(np.linalg.norm(centers - centers.mean(axis=0), axis=1).mean())

    def evaluate_spherical(self, radius, theta, phi, center=None) -> NDArray[np.bool_]:
        """Occupancy at points given in spherical coordinates about center.

        theta is the polar angle from +z, phi the azimuth from +x.
        """
        center = self.centroid() if center is None else np.asarray(center, dtype=np.float64)
        radius, theta, phi = np.broadcast_arrays(np.asarray(radius, dtype=np.float64),
                                                 np.asarray(theta, dtype=np.float64),
                                                 np.asarray(phi, dtype=np.float64))
        sin_t = np.sin(theta)
        points = np.stack([radius * sin_t * np.cos(phi), radius * sin_t * np.sin(phi), radius * np.cos(theta)],
                          axis=-1).reshape(-1, 3) + center
        return self.contains(points).reshape(radius.shape)

    # ------------------------------------------------------------------
    # Derived grids
    # ------------------------------------------------------------------

    def surface_cells(self) -> 'VoxelGrid':
        """Occupied cells with at least one empty (or out-of-grid) face neighbour."""
        interior = ndimage.binary_erosion(self.occupancy, border_value=0)
        return VoxelGrid(self.occupancy & ~interior, self.origin, self.cell_size)

    def coarsen(self, factor: int) -> 'VoxelGrid':
        """Grid with cells factor times larger; a coarse cell is occupied when
        any of its sub-cells is. Trailing partial blocks are padded empty."""
        if factor < 1:
            raise InvalidInput(f"coarsening factor must be positive, got {factor}")
        shape = np.array(self.shape)
        target = -(-shape // factor)
        padded = np.zeros(target * factor, dtype=bool)
        padded[:shape[0], :shape[1], :shape[2]] = self.occupancy
        blocks = padded.reshape(target[0], factor, target[1], factor, target[2], factor)
        return VoxelGrid(blocks.any(axis=(1, 3, 5)), self.origin, self.cell_size * factor)

    def distance_transform(self) -> NDArray[np.float64]:
        """World distance from every cell center to the nearest occupied cell center."""
        if self.is_empty:
            return np.full(self.shape, np.inf)
        return ndimage.distance_transform_edt(~self.occupancy) * self.cell_size

    def signed_distance(self) -> NDArray[np.float64]:
        """Distance outside the object, negative distance to the outside inside it."""
        outside = self.distance_transform()
        inside = ndimage.distance_transform_edt(self.occupancy) * self.cell_size
        return np.where(self.occupancy, -inside, outside)

    def exponential_distance_transform(self, decay: float = 1.0) -> NDArray[np.float64]:
        """exp(-(d / cell_size)^2 / decay) of the distance transform: 1 on the
        object, decaying smoothly away from it."""
        if decay <= 0:
            raise InvalidInput("decay must be positive")
        d = self.distance_transform() / self.cell_size
        return np.exp(-(d ** 2) / decay)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_sparse(self) -> SparseArray:
        sparse = SparseArray3D(self.shape, default=False, dtype=bool)
        for idx in self.occupied_indices():
            sparse[tuple(int(i) for i in idx)] = True
        return sparse

    def to_dense(self) -> DenseArray:
        return DenseArray.from_numpy(self.occupancy.copy(), fill=False)

    def summary(self) -> str:
        return (f"VoxelGrid {self.shape[0]}x{self.shape[1]}x{self.shape[2]}, "
                f"cell {self.cell_size:.4g}, {self.occupied_count} occupied, volume {self.volume:.4g}")

    def to_dict(self) -> dict:
        return {
            'shape': list(self.shape),
            'origin': self.origin.tolist(),
            'cell_size': self.cell_size,
            'occupied_count': self.occupied_count,
            'volume': self.volume,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VoxelGrid):
            return NotImplemented
        return (self.cell_size == other.cell_size
                and bool(np.array_equal(self.origin, other.origin))
                and bool(np.array_equal(self.occupancy, other.occupancy)))

    def __hash__(self) -> int:
        return hash((self.occupancy.tobytes(), self.origin.tobytes(), self.cell_size))

    def __repr__(self) -> str:
        return f"VoxelGrid(shape={self.shape}, cell_size={self.cell_size:g}, occupied={self.occupied_count})"
