"""
Unit tests for mesh_analysis.rasterization.

Tests:
- Grid placement (fitted and uniform mappings)
- VoxelGrid coordinate conversion, queries and derived grids
- Surface and solid voxelization, slab parallelism
- Point and segment rasterization into sparse grids
"""

import math

import numpy as np
import pytest

from mesh_analysis.errors import InvalidGeometry, InvalidInput, ShapeMismatch
from mesh_analysis.geometry.mesh import Mesh
from mesh_analysis.geometry.mesh_stats import BoundingBox
from mesh_analysis.rasterization import (
    Connectivity,
    GridMapping,
    VoxelGrid,
    VoxelMode,
    grid_placement,
    rasterize_points,
    rasterize_segments,
    resolution_for_cell_size,
    voxelize,
    voxelize_points,
)


def _row_grid(occupied, length=5, cell_size=1.0) -> VoxelGrid:
    occupancy = np.zeros((length, 1, 1), dtype=bool)
    occupancy[list(occupied), 0, 0] = True
    return VoxelGrid(occupancy, np.zeros(3), cell_size)


# ============================================================================
# Placement
# ============================================================================

class TestGridPlacement:
    """Tests for grid_placement."""

    def test_fitted(self, box):
        origin, cell_size, shape = grid_placement(box.bounding_box(), 8, GridMapping.FITTED)
        np.testing.assert_allclose(origin, [0.0, 0.0, 0.0])
        assert cell_size == pytest.approx(0.25)
        assert shape == (8, 4, 2)

    def test_uniform(self, box):
        origin, cell_size, shape = grid_placement(box.bounding_box(), 8, GridMapping.UNIFORM)
        np.testing.assert_allclose(origin, [0.0, -0.5, -0.75])
        assert cell_size == pytest.approx(0.25)
        assert shape == (8, 8, 8)

    def test_invalid_resolution(self, box):
        with pytest.raises(InvalidInput):
            grid_placement(box.bounding_box(), 0)

    def test_flat_box(self):
        bbox = BoundingBox(min_point=np.zeros(3), max_point=np.array([1.0, 1.0, 0.0]))
        with pytest.raises(InvalidGeometry):
            grid_placement(bbox, 4)


# ============================================================================
# VoxelGrid
# ============================================================================

class TestVoxelGridModel:
    """Tests for VoxelGrid construction and coordinate conversion."""

    def test_rejects_non_3d(self):
        with pytest.raises(ShapeMismatch):
            VoxelGrid(np.zeros((4, 4), dtype=bool), np.zeros(3), 1.0)

    def test_rejects_bad_cell_size(self):
        with pytest.raises(InvalidGeometry):
            VoxelGrid(np.zeros((2, 2, 2), dtype=bool), np.zeros(3), 0.0)

    def test_occupancy_is_read_only(self):
        grid = VoxelGrid.empty((2, 2, 2))
        with pytest.raises(ValueError):
            grid.occupancy[0, 0, 0] = True

    def test_world_to_index(self):
        grid = VoxelGrid.empty((4, 4, 4), origin=(1.0, 1.0, 1.0), cell_size=0.5)
        idx, inside = grid.world_to_index([[1.1, 1.6, 2.9], [3.0, 3.0, 3.0], [0.9, 1.0, 1.0]])
        np.testing.assert_array_equal(idx[0], [0, 1, 3])
        np.testing.assert_array_equal(idx[1], [3, 3, 3])
        np.testing.assert_array_equal(inside, [True, True, False])

    def test_index_to_world_and_transforms(self):
        grid = VoxelGrid.empty((4, 4, 4), origin=(1.0, 1.0, 1.0), cell_size=0.5)
        np.testing.assert_allclose(grid.index_to_world([0, 0, 0]), [1.25, 1.25, 1.25])
        np.testing.assert_allclose(grid.world_from_grid.apply([2.0, 0.0, 4.0]), [2.0, 1.0, 3.0])
        np.testing.assert_allclose(grid.grid_from_world.apply([2.0, 1.0, 3.0]), [2.0, 0.0, 4.0])
        np.testing.assert_allclose(grid.bounds().max_point, [3.0, 3.0, 3.0])

    def test_equality(self):
        a = _row_grid([0, 2])
        assert a == _row_grid([0, 2])
        assert a != _row_grid([0, 3])
        assert hash(a) == hash(_row_grid([0, 2]))


class TestVoxelGridQueries:
    """Tests for occupancy queries."""

    def test_counts(self):
        grid = _row_grid([0, 2], cell_size=0.5)
        assert grid.occupied_count == 2
        assert grid.volume == pytest.approx(0.25)
        assert not grid.is_empty
        np.testing.assert_array_equal(grid.occupied_indices(), [[0, 0, 0], [2, 0, 0]])

    def test_centroid_and_mean_distance(self):
        grid = _row_grid([0, 2])
        np.testing.assert_allclose(grid.centroid(), [1.5, 0.5, 0.5])
        assert grid.mean_distance() == pytest.approx(1.0)

    def test_empty_grid_centroid(self):
        grid = VoxelGrid.empty((2, 2, 2))
        np.testing.assert_allclose(grid.centroid(), [1.0, 1.0, 1.0])
        assert grid.mean_distance() == 0.0

    def test_contains(self):
        grid = _row_grid([0, 2])
        np.testing.assert_array_equal(
            grid.contains([[0.5, 0.5, 0.5], [1.5, 0.5, 0.5], [-1.0, 0.5, 0.5]]),
            [True, False, False],
        )

    def test_evaluate_spherical(self):
        grid = _row_grid([0, 2])
        values = grid.evaluate_spherical([0.0, 1.0, 1.0], math.pi / 2, [0.0, 0.0, math.pi],
                                         center=[1.5, 0.5, 0.5])
        np.testing.assert_array_equal(values, [False, True, True])


class TestDerivedGrids:
    """Tests for surface extraction, coarsening and distance fields."""

    def test_surface_cells(self):
        grid = VoxelGrid(np.ones((3, 3, 3), dtype=bool), np.zeros(3), 1.0)
        surface = grid.surface_cells()
        assert surface.occupied_count == 26
        assert not surface.occupancy[1, 1, 1]

    def test_coarsen(self):
        occupancy = np.zeros((4, 4, 4), dtype=bool)
        occupancy[3, 3, 3] = True
        coarse = VoxelGrid(occupancy, np.zeros(3), 1.0).coarsen(2)
        assert coarse.shape == (2, 2, 2)
        assert coarse.cell_size == 2.0
        np.testing.assert_array_equal(coarse.occupied_indices(), [[1, 1, 1]])

    def test_coarsen_pads_partial_blocks(self):
        coarse = VoxelGrid(np.ones((4, 4, 4), dtype=bool), np.zeros(3), 1.0).coarsen(3)
        assert coarse.shape == (2, 2, 2)
        assert coarse.occupied_count == 8
        with pytest.raises(InvalidInput):
            coarse.coarsen(0)

    def test_distance_transform(self):
        grid = _row_grid([0], cell_size=0.5)
        np.testing.assert_allclose(grid.distance_transform()[:, 0, 0], [0.0, 0.5, 1.0, 1.5, 2.0])

    def test_distance_transform_empty(self):
        assert np.all(np.isinf(VoxelGrid.empty((2, 2, 2)).distance_transform()))

    def test_signed_distance(self):
        grid = _row_grid([0, 1])
        np.testing.assert_allclose(grid.signed_distance()[:, 0, 0], [-2.0, -1.0, 1.0, 2.0, 3.0])

    def test_exponential_distance_transform(self):
        values = _row_grid([0]).exponential_distance_transform()[:, 0, 0]
        assert values[0] == pytest.approx(1.0)
        assert values[1] == pytest.approx(math.exp(-1.0))
        with pytest.raises(InvalidInput):
            _row_grid([0]).exponential_distance_transform(decay=0.0)

    def test_conversions(self):
        grid = _row_grid([0, 2])
        sparse = grid.to_sparse()
        assert sparse.stored_count == 2
        assert sparse[2, 0, 0]
        np.testing.assert_array_equal(grid.to_dense().to_numpy(), grid.occupancy)
        assert grid.to_dict()['occupied_count'] == 2
        assert "5x1x1" in grid.summary()


# ============================================================================
# Voxelization
# ============================================================================

class TestVoxelize:
    """Tests for mesh voxelization."""

    def test_cube_surface_shell(self, cube):
        grid = voxelize(cube, 8, VoxelMode.SURFACE)
        assert grid.shape == (8, 8, 8)
        assert grid.occupied_count == 8 ** 3 - 6 ** 3

    def test_cube_solid(self, cube):
        grid = voxelize(cube, 8, VoxelMode.SOLID)
        assert grid.occupied_count == 8 ** 3
        assert grid.volume == pytest.approx(1.0)

    def test_sphere_solid_covers_interior(self, sphere):
        grid = voxelize(sphere, 16, VoxelMode.SOLID)
        assert grid.contains([[0.0, 0.0, 0.0]])[0]
        assert sphere.volume() < grid.volume < 1.5 * sphere.volume()

    def test_sphere_surface_is_hollow(self, sphere):
        grid = voxelize(sphere, 16, VoxelMode.SURFACE)
        assert not grid.contains([[0.0, 0.0, 0.0]])[0]
        assert grid.occupied_count < voxelize(sphere, 16, VoxelMode.SOLID).occupied_count

    def test_cylinder_solid_volume(self, cylinder):
        grid = voxelize(cylinder, 20, VoxelMode.SOLID)
        assert cylinder.volume() < grid.volume < 1.5 * cylinder.volume()

    def test_fitted_box_fills_grid(self, box):
        grid = voxelize(box, 8, VoxelMode.SOLID, GridMapping.FITTED)
        assert grid.shape == (8, 4, 2)
        assert grid.occupied_count == 64

    def test_uniform_mapping(self, box):
        grid = voxelize(box, 8, VoxelMode.SOLID, GridMapping.UNIFORM)
        assert grid.shape == (8, 8, 8)
        # the y=1 and z=0.5 faces lie on cell boundaries and land in the cells above
        assert grid.occupied_count == 8 * 5 * 3
        assert grid.contains([[1.0, 0.5, 0.25]])[0]

    @pytest.mark.parametrize("mode", list(VoxelMode))
    @pytest.mark.parametrize("coarse", [4, 5, 6, 8])
    def test_finer_grid_stays_inside_coarser(self, sphere, mode, coarse):
        """Every cell at resolution 2R lies in a cell occupied at R."""
        low = voxelize(sphere, coarse, mode, GridMapping.UNIFORM)
        high = voxelize(sphere, 2 * coarse, mode, GridMapping.UNIFORM)
        upsampled = low.occupancy.repeat(2, axis=0).repeat(2, axis=1).repeat(2, axis=2)

        assert high.shape == upsampled.shape
        assert not np.any(high.occupancy & ~upsampled)
        assert high.volume <= low.volume + 1e-12

    @pytest.mark.parametrize("mapping", list(GridMapping))
    def test_unit_cube_volume_at_resolution_10(self, cube, mapping):
        grid = voxelize(cube, 10, VoxelMode.SOLID, mapping)
        assert grid.volume == pytest.approx(1.0, rel=0.05)

    def test_parallel_matches_serial(self, sphere):
        assert voxelize(sphere, 12, workers=3) == voxelize(sphere, 12, workers=1)

    def test_empty_mesh(self):
        grid = voxelize(Mesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3))), 4)
        assert grid.shape == (4, 4, 4)
        assert grid.is_empty

    def test_flat_mesh(self, open_grid):
        with pytest.raises(InvalidGeometry):
            voxelize(open_grid, 4)

    def test_invalid_arguments(self, cube):
        with pytest.raises(InvalidInput):
            voxelize(cube, 0)
        with pytest.raises(InvalidInput):
            voxelize(cube, 4, workers=0)

    def test_resolution_for_cell_size(self, box):
        assert resolution_for_cell_size(box, 0.3) == 7
        assert resolution_for_cell_size(Mesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3))), 0.3) is None
        with pytest.raises(InvalidInput):
            resolution_for_cell_size(box, 0.0)


class TestVoxelizePoints:
    """Tests for point cloud occupancy."""

    def test_corners(self):
        grid = voxelize_points(np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]), 2)
        assert grid.shape == (2, 2, 2)
        np.testing.assert_array_equal(grid.occupied_indices(), [[0, 0, 0], [1, 1, 1]])

    def test_empty_cloud(self):
        with pytest.raises(InvalidInput):
            voxelize_points(np.zeros((0, 3)), 4)


# ============================================================================
# Points and segments
# ============================================================================

class TestRasterizePoints:
    """Tests for rasterize_points."""

    def test_marks_cells_and_ignores_outside(self):
        grid = rasterize_points([[0.1, 0.1], [0.9, 0.9], [1.0, 1.0], [1.5, 0.0]], 0.0, 1.0, divisions=2)
        assert grid.shape == (2, 2)
        assert sorted(c for c, _ in grid.items()) == [(0, 0), (1, 1)]

    def test_three_dimensional(self):
        grid = rasterize_points([[0.1, 0.6, 0.9]], 0.0, 1.0, divisions=4)
        assert grid[0, 2, 3]
        assert grid.stored_count == 1

    def test_invalid_range(self):
        with pytest.raises(InvalidInput):
            rasterize_points([[0.0, 0.0]], 1.0, 1.0)
        with pytest.raises(InvalidInput):
            rasterize_points([[0.0, 0.0]], 0.0, 1.0, divisions=0)

    def test_unsupported_dimension(self):
        with pytest.raises(ShapeMismatch):
            rasterize_points([[0.0, 0.0, 0.0, 0.0]], 0.0, 1.0)


class TestRasterizeSegments:
    """Tests for rasterize_segments."""

    SEGMENT = [[[0.05, 0.05], [0.9, 0.55]]]

    def test_vertex_connectivity(self):
        grid = rasterize_segments(self.SEGMENT, 0.0, 1.0, divisions=4, connectivity=Connectivity.VERTEX)
        assert sorted(c for c, _ in grid.items()) == [(0, 0), (1, 0), (1, 1), (2, 1), (3, 2)]

    def test_face_connectivity(self):
        grid = rasterize_segments(self.SEGMENT, 0.0, 1.0, divisions=4, connectivity=Connectivity.FACE)
        cells = sorted(c for c, _ in grid.items())
        assert cells == [(0, 0), (1, 0), (1, 1), (2, 1), (3, 1), (3, 2)]

    def test_bad_shape(self):
        with pytest.raises(ShapeMismatch):
            rasterize_segments([[0.0, 0.0], [1.0, 1.0]], 0.0, 1.0)
