"""Voxel grids, mesh voxelization and point/segment rasterization."""

from mesh_analysis.rasterization.grid import GridMapping, VoxelGrid, grid_placement
from mesh_analysis.rasterization.points import Connectivity, rasterize_points, rasterize_segments
from mesh_analysis.rasterization.voxelizer import (
    VoxelMode,
    resolution_for_cell_size,
    voxelize,
    voxelize_points,
)

__all__ = [
    "Connectivity",
    "GridMapping",
    "VoxelGrid",
    "VoxelMode",
    "grid_placement",
    "rasterize_points",
    "rasterize_segments",
    "resolution_for_cell_size",
    "voxelize",
    "voxelize_points",
]
