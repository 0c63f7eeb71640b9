"""
Mesh voxelization.

Two fill rules:
- SURFACE: a cell is occupied when a triangle intersects it (separating
  axis test between triangle and cell box).
- SOLID: SURFACE cells plus every cell whose center lies inside the mesh,
  decided by odd-even parity of the surface crossings along the +z column
  through the center.

Boundary rule: cell k along an axis covers [lo_k, hi_k); the last cell is
closed. A triangle that only touches the upper face of a cell belongs to
the neighbouring cell. A surface crossing at the height of a cell center
counts as below the center.

Work is partitioned by x-slabs of the grid; each worker writes only the
cells of its own slab.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from mesh_analysis.errors import InvalidInput
from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.geometry.mesh_stats import BoundingBox
from mesh_analysis.geometry.spatial_index import build_rtree_index, query_point
from mesh_analysis.numerics.constants import GEOMETRY_TOLERANCE
from mesh_analysis.rasterization.grid import GridMapping, VoxelGrid, grid_placement

logger = logging.getLogger(__name__)

# Relative tolerance of the separating axis tests
SAT_TOLERANCE = 1e-12

_BOX_AXES = np.eye(3)


class VoxelMode(Enum):
    SURFACE = "surface"
    SOLID = "solid"


# ---------------------------------------------------------------------------
# Surface rasterization
# ---------------------------------------------------------------------------

def _triangle_box_overlap(tri: NDArray[np.float64], centers: NDArray[np.float64], half: float) -> NDArray[np.bool_]:
    """Separating axis test of one triangle against many cubic boxes.

    Only the nine edge-cross-axis axes and the triangle normal are tested;
    the three box face axes are handled by the caller with exact bounds.

    Args:
        tri: (3, 3) triangle corners
        centers: (c, 3) box centers
        half: half edge length of the boxes

    Returns:
        (c,) True where the closed box and the triangle overlap
    """
    v = tri[np.newaxis, :, :] - centers[:, np.newaxis, :]   # (c, 3, 3)
    edges = np.array([tri[1] - tri[0], tri[2] - tri[1], tri[0] - tri[2]])
    tol = SAT_TOLERANCE * half
    overlap = np.ones(len(centers), dtype=bool)

    for edge in edges:
        for box_axis in _BOX_AXES:
            axis = np.cross(edge, box_axis)
            if np.dot(axis, axis) < GEOMETRY_TOLERANCE ** 2:
                continue
            p = v @ axis                                     # (c, 3)
            r = half * np.abs(axis).sum()
            overlap &= ~((p.min(axis=1) > r + tol) | (p.max(axis=1) < -r - tol))

    normal = np.cross(edges[0], -edges[2])
    if np.dot(normal, normal) >= GEOMETRY_TOLERANCE ** 2:
        d = v[:, 0, :] @ normal
        r = half * np.abs(normal).sum()
        overlap &= np.abs(d) <= r + tol
    return overlap


def _surface_slab(grid_shape: Tuple[int, int, int], origin: NDArray[np.float64], cell_size: float,
                  triangles: NDArray[np.float64], x_range: Tuple[int, int]) -> NDArray[np.bool_]:
    """Surface cells of one x-slab [x0, x1)."""
    x0, x1 = x_range
    shape = np.array(grid_shape)
    slab = np.zeros((x1 - x0, grid_shape[1], grid_shape[2]), dtype=bool)
    half = cell_size / 2

    tri_min = triangles.min(axis=1)
    tri_max = triangles.max(axis=1)
    # candidate ranges, widened by one cell; exact bounds decide below
    first = np.floor((tri_min - origin) / cell_size).astype(np.int64) - 1
    last = np.floor((tri_max - origin) / cell_size).astype(np.int64) + 1
    first = np.maximum(first, 0)
    last = np.minimum(last, shape - 1)
    first[:, 0] = np.maximum(first[:, 0], x0)
    last[:, 0] = np.minimum(last[:, 0], x1 - 1)

    for t in np.nonzero(np.all(first <= last, axis=1))[0]:
        ranges = [np.arange(first[t, a], last[t, a] + 1) for a in range(3)]
        keep = []
        for a in range(3):
            idx = ranges[a]
            lo = origin[a] + idx * cell_size
            hi = origin[a] + (idx + 1) * cell_size
            ok = (tri_max[t, a] >= lo) & (tri_min[t, a] <= hi)
            # half-open cells: touching only the upper face does not count
            ok &= ~((tri_min[t, a] >= hi) & (idx < shape[a] - 1))
            keep.append(idx[ok])
        if any(len(k) == 0 for k in keep):
            continue
        ii, jj, kk = np.meshgrid(*keep, indexing='ij')
        cells = np.column_stack([ii.ravel(), jj.ravel(), kk.ravel()])
        centers = origin + (cells + 0.5) * cell_size
        hit = _triangle_box_overlap(triangles[t], centers, half)
        hit_cells = cells[hit]
        slab[hit_cells[:, 0] - x0, hit_cells[:, 1], hit_cells[:, 2]] = True
    return slab


# ---------------------------------------------------------------------------
# Solid fill
# ---------------------------------------------------------------------------

def _column_crossings(triangles: NDArray[np.float64], face_ids: List[int], x: float, y: float,
                      merge_tol: float, area_tol: float) -> NDArray[np.float64]:
    """Sorted z of the surface crossings of the vertical line through (x, y).

    Hits closer than merge_tol form one group. A group whose triangles all
    face the same way is one crossing (the line passes through a shared
    edge or vertex); a group with both orientations is a graze and does not
    change parity.
    """
    if not face_ids:
        return np.zeros(0)
    tri = triangles[face_ids]
    a, b, c = tri[:, 0], tri[:, 1], tri[:, 2]
    det = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (c[:, 0] - a[:, 0]) * (b[:, 1] - a[:, 1])
    usable = np.abs(det) > area_tol
    safe = np.where(usable, det, 1.0)
    u = ((x - a[:, 0]) * (c[:, 1] - a[:, 1]) - (c[:, 0] - a[:, 0]) * (y - a[:, 1])) / safe
    v = ((b[:, 0] - a[:, 0]) * (y - a[:, 1]) - (x - a[:, 0]) * (b[:, 1] - a[:, 1])) / safe
    eps = 1e-12
    hit = usable & (u >= -eps) & (v >= -eps) & (u + v <= 1 + eps)
    if not np.any(hit):
        return np.zeros(0)
    z = (a[:, 2] + u * (b[:, 2] - a[:, 2]) + v * (c[:, 2] - a[:, 2]))[hit]
    facing = np.sign(det[hit]).astype(np.int64)
    order = np.argsort(z, kind='stable')
    z, facing = z[order], facing[order]

    starts = np.nonzero(np.concatenate([[True], np.diff(z) > merge_tol]))[0]
    group_sum = np.add.reduceat(facing, starts)
    group_len = np.diff(np.append(starts, len(z)))
    crossing = np.abs(group_sum) == group_len
    return z[starts[crossing]]


def _solid_slab(grid_shape: Tuple[int, int, int], origin: NDArray[np.float64], cell_size: float,
                triangles: NDArray[np.float64], spatial_idx, x_range: Tuple[int, int]) -> NDArray[np.bool_]:
    """Parity-filled interior cells of one x-slab [x0, x1)."""
    x0, x1 = x_range
    slab = np.zeros((x1 - x0, grid_shape[1], grid_shape[2]), dtype=bool)
    z_centers = origin[2] + (np.arange(grid_shape[2]) + 0.5) * cell_size
    merge_tol = 1e-9 * cell_size
    area_tol = 1e-14 * cell_size ** 2

    for i in range(x0, x1):
        x = origin[0] + (i + 0.5) * cell_size
        for j in range(grid_shape[1]):
            y = origin[1] + (j + 0.5) * cell_size
            crossings = _column_crossings(triangles, query_point(spatial_idx, x, y), x, y, merge_tol, area_tol)
            if len(crossings) == 0:
                continue
            below = np.searchsorted(crossings, z_centers + merge_tol, side='right')
            slab[i - x0, j] = (below % 2) == 1
    return slab


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _slabs(nx: int, workers: int) -> List[Tuple[int, int]]:
    n = max(1, min(workers, nx))
    bounds = np.linspace(0, nx, n + 1).round().astype(int)
    return [(int(bounds[k]), int(bounds[k + 1])) for k in range(n) if bounds[k] < bounds[k + 1]]


def voxelize(
    mesh: Mesh,
    resolution: int,
    mode: VoxelMode = VoxelMode.SOLID,
    mapping: GridMapping = GridMapping.FITTED,
    workers: int = 1,
) -> VoxelGrid:
    """Discretize a mesh onto a voxel grid.

    Args:
        mesh: triangle mesh; open meshes are fine for SURFACE mode, SOLID
            mode expects a closed surface
        resolution: cells along the longest bounding-box axis
        mode: SURFACE or SOLID fill rule
        mapping: FITTED or UNIFORM placement of the grid
        workers: number of threads; the grid is split into x-slabs

    Returns:
        VoxelGrid; a mesh without faces gives an empty resolution^3 grid

    Raises:
        InvalidInput: resolution < 1 or workers < 1
        InvalidGeometry: the bounding box of the mesh has zero volume
    """
    if workers < 1:
        raise InvalidInput(f"workers must be at least 1, got {workers}")
    if mesh.is_empty:
        if resolution < 1:
            raise InvalidInput(f"grid resolution must be at least 1, got {resolution}")
        logger.info("Mesh has no faces; returning an empty grid")
        return VoxelGrid.empty((resolution, resolution, resolution), cell_size=1.0 / resolution)

    start = time.perf_counter()
    origin, cell_size, shape = grid_placement(mesh.bounding_box(), resolution, mapping)
    triangles = mesh.triangles()
    slabs = _slabs(shape[0], workers)
    spatial_idx = build_rtree_index(mesh.vertices, mesh.faces) if mode is VoxelMode.SOLID else None

    def run(x_range: Tuple[int, int]) -> NDArray[np.bool_]:
        cells = _surface_slab(shape, origin, cell_size, triangles, x_range)
        if mode is VoxelMode.SOLID:
            cells |= _solid_slab(shape, origin, cell_size, triangles, spatial_idx, x_range)
        return cells

    occupancy = np.zeros(shape, dtype=bool)
    if len(slabs) == 1:
        occupancy[:] = run(slabs[0])
    else:
        with ThreadPoolExecutor(max_workers=len(slabs)) as executor:
            for (x0, x1), cells in zip(slabs, executor.map(run, slabs)):
                occupancy[x0:x1] = cells

    grid = VoxelGrid(occupancy, origin, cell_size)
    logger.debug(
        "Voxelized %d triangles in %.3fs",
        mesh.n_faces, time.perf_counter() - start,
        extra={'mode': mode.value, 'mapping': mapping.value, 'shape': list(shape),
               'occupied': grid.occupied_count, 'workers': len(slabs)},
    )
    return grid


def voxelize_points(points: NDArray[np.float64], resolution: int,
                    mapping: GridMapping = GridMapping.FITTED,
                    bbox: Optional[BoundingBox] = None) -> VoxelGrid:
    """Occupancy grid of a point cloud (cells containing at least one point)."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(points) == 0:
        raise InvalidInput("cannot voxelize an empty point cloud")
    if bbox is None:
        bbox = BoundingBox.from_points(points)
    origin, cell_size, shape = grid_placement(bbox, resolution, mapping)
    grid = VoxelGrid.empty(shape, origin, cell_size)
    idx, inside = grid.world_to_index(points)
    occupancy = np.zeros(shape, dtype=bool)
    idx = idx[inside]
    occupancy[idx[:, 0], idx[:, 1], idx[:, 2]] = True
    return VoxelGrid(occupancy, origin, cell_size)


def resolution_for_cell_size(mesh: Mesh, cell_size: float) -> Optional[int]:
    """Resolution whose cells are at most cell_size (None for an empty mesh)."""
    if cell_size <= 0:
        raise InvalidInput("cell size must be positive")
    if mesh.is_empty:
        return None
    return max(1, int(np.ceil(mesh.bounding_box().max_dimension / cell_size)))
