"""
Unit tests for mesh_analysis.descriptors (harmonic descriptors and shape distributions).

Tests:
- Radial function ray casting
- Mesh descriptors: sphere energy, rotation and scale invariance
- Voxel grid descriptors on concentric shells
- Shape distributions and their comparisons
"""

import numpy as np
import pytest

from mesh_analysis.descriptors import (
    DistributionKind,
    compare_descriptors,
    compare_scaled_distributions,
    compare_shape_distributions,
    describe_grid,
    describe_mesh,
    radial_function,
    shape_distribution,
)
from mesh_analysis.errors import InvalidGeometry, InvalidInput, ShapeMismatch
from mesh_analysis.geometry import Mesh
from mesh_analysis.geometry.shapes import sphere_mesh
from mesh_analysis.geometry.transform import AffineTransformation
from mesh_analysis.rasterization import VoxelGrid
from mesh_analysis.rng import RandomSource

FOUR_PI = 4.0 * np.pi


def _ellipsoid() -> Mesh:
    return sphere_mesh(1.0, n_theta=32, n_phi=64).transformed(AffineTransformation.scaling([1.0, 0.7, 0.5]))


def _l_shape() -> VoxelGrid:
    occupancy = np.zeros((6, 6, 6), dtype=bool)
    occupancy[:, 0:2, 0:2] = True
    occupancy[0:2, 2:, 0:2] = True
    return VoxelGrid(occupancy, np.zeros(3), 1.0)


# ============================================================================
# Harmonic descriptors
# ============================================================================

class TestRadialFunction:
    """Tests for radial_function."""

    def test_cube_from_center(self, cube):
        radii = radial_function(cube, [[1.0, 0.0, 0.0], [0.0, 0.0, 2.0]])
        np.testing.assert_allclose(radii, [0.5, 0.5])

    def test_cube_corner_direction(self, cube):
        radii = radial_function(cube, [[1.0, 1.0, 1.0]])
        assert radii[0] == pytest.approx(np.sqrt(3.0) / 2.0)

    def test_miss_is_zero(self, cube):
        radii = radial_function(cube, [[1.0, 0.0, 0.0], [-1.0, -1.0, -1.0]], center=[5.0, 5.0, 5.0])
        assert radii[0] == 0.0
        assert radii[1] > 0.0

    def test_empty_mesh(self):
        with pytest.raises(InvalidGeometry):
            radial_function(Mesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3))), [[1.0, 0.0, 0.0]])


class TestMeshDescriptor:
    """Tests for describe_mesh."""

    def test_sphere_energy_is_constant_term(self, sphere):
        descriptor = describe_mesh(sphere, max_degree=6)
        energies = descriptor.energies
        assert energies.shape == (1, 7)
        assert energies[0, 0] == pytest.approx(FOUR_PI, rel=0.03)
        assert energies[0, 1:].sum() < 1e-3 * energies[0, 0]
        assert descriptor.radius == pytest.approx(1.0, rel=0.01)
        assert descriptor.metadata['missed_rays'] == 0
        assert descriptor.metadata['samples'] == 14 * 28

    def test_rotation_invariance(self):
        ellipsoid = _ellipsoid()
        rotated = ellipsoid.transformed(AffineTransformation.from_axis_angle((1.0, 2.0, 3.0), 0.7))
        a = describe_mesh(ellipsoid, max_degree=4)
        b = describe_mesh(rotated, max_degree=4)
        sphere = describe_mesh(sphere_mesh(1.0, n_theta=32, n_phi=64), max_degree=4)
        assert compare_descriptors(a, b) < 0.05
        assert compare_descriptors(a, sphere) > 0.5

    def test_scale_and_translation_invariance(self, sphere):
        moved = sphere.transformed(AffineTransformation.scaling(3.0)).transformed(
            AffineTransformation.from_translation([4.0, -2.0, 1.0]))
        a = describe_mesh(sphere, max_degree=4)
        b = describe_mesh(moved, max_degree=4)
        np.testing.assert_allclose(a.feature_vector(), b.feature_vector(), atol=1e-6)
        assert b.radius == pytest.approx(3.0 * a.radius)

    def test_unnormalized_scales_energy(self, sphere):
        a = describe_mesh(sphere, max_degree=2, normalize=False)
        b = describe_mesh(sphere.transformed(AffineTransformation.scaling(2.0)), max_degree=2, normalize=False)
        assert b.energies[0, 0] == pytest.approx(4.0 * a.energies[0, 0])

    def test_to_dict(self, sphere):
        data = describe_mesh(sphere, max_degree=2).to_dict()
        assert data['source'] == "mesh"
        assert data['n_shells'] == 1
        assert len(data['energies'][0]) == 3


class TestGridDescriptor:
    """Tests for describe_grid."""

    def test_solid_block_inner_shells(self):
        grid = VoxelGrid(np.ones((6, 6, 6), dtype=bool), np.zeros(3), 1.0)
        descriptor = describe_grid(grid, max_degree=4, n_shells=4)
        assert descriptor.source == "grid"
        assert descriptor.n_shells == 4
        assert descriptor.radius == pytest.approx(3.0 * np.sqrt(3.0))
        energies = descriptor.energies
        assert energies.shape == (4, 5)
        for shell in (0, 1):
            assert energies[shell, 0] == pytest.approx(FOUR_PI)
            np.testing.assert_allclose(energies[shell, 1:], 0.0, atol=1e-20)
        assert energies[3, 0] < FOUR_PI

    def test_quarter_turn_invariance(self):
        grid = _l_shape()
        turned = VoxelGrid(np.rot90(grid.occupancy, axes=(0, 1)).copy(), np.zeros(3), 1.0)
        a = describe_grid(grid, max_degree=4, n_shells=3)
        b = describe_grid(turned, max_degree=4, n_shells=3)
        np.testing.assert_allclose(a.energies, b.energies, atol=1e-6)

    def test_differs_from_block(self):
        block = VoxelGrid(np.ones((6, 6, 6), dtype=bool), np.zeros(3), 1.0)
        a = describe_grid(_l_shape(), max_degree=4, n_shells=3)
        b = describe_grid(block, max_degree=4, n_shells=3)
        assert compare_descriptors(a, b) > 0.1

    def test_errors(self):
        with pytest.raises(InvalidGeometry):
            describe_grid(VoxelGrid(np.zeros((4, 4, 4), dtype=bool), np.zeros(3), 1.0))
        with pytest.raises(InvalidInput):
            describe_grid(_l_shape(), n_shells=0)

    def test_compare_needs_matching_layout(self, sphere):
        grid_descriptor = describe_grid(_l_shape(), max_degree=4, n_shells=3)
        with pytest.raises(ShapeMismatch):
            compare_descriptors(grid_descriptor, describe_mesh(sphere, max_degree=4))
        with pytest.raises(ShapeMismatch):
            compare_descriptors(grid_descriptor, describe_grid(_l_shape(), max_degree=3, n_shells=3))


# ============================================================================
# Shape distributions
# ============================================================================

class TestShapeDistribution:
    """Tests for shape_distribution."""

    @pytest.mark.parametrize("kind", list(DistributionKind))
    def test_normalised(self, cube, kind):
        dist = shape_distribution(cube, kind, RandomSource(3), n_samples=500, n_bins=32)
        assert dist.kind is kind
        assert dist.n_bins == 32
        assert dist.bin_centers.shape == (32,)
        assert dist.histogram.sum() == pytest.approx(1.0)
        assert dist.cumulative()[-1] == pytest.approx(1.0)

    def test_points_per_sample(self):
        assert [k.points_per_sample for k in DistributionKind] == [3, 1, 2, 3, 4]

    def test_sphere_d1_concentrated_at_radius(self, sphere, rng):
        dist = shape_distribution(sphere, DistributionKind.D1, rng, n_samples=2000, n_bins=256)
        assert dist.histogram[:-8].sum() == 0.0
        assert dist.mean() == pytest.approx(1.0, rel=0.01)

    def test_a3_range(self, cube, rng):
        dist = shape_distribution(cube, DistributionKind.A3, rng, n_samples=200, n_bins=10)
        assert dist.bin_centers[0] == pytest.approx(np.pi / 20)
        assert dist.bin_centers[-1] == pytest.approx(np.pi - np.pi / 20)

    def test_flat_mesh_volumes(self, open_grid, rng):
        dist = shape_distribution(open_grid, DistributionKind.D4, rng, n_samples=100, n_bins=8)
        assert dist.histogram[0] == pytest.approx(1.0)

    def test_reproducible(self, cube):
        a = shape_distribution(cube, DistributionKind.D2, RandomSource(9), n_samples=300)
        b = shape_distribution(cube, DistributionKind.D2, RandomSource(9), n_samples=300)
        np.testing.assert_array_equal(a.histogram, b.histogram)
        assert compare_shape_distributions(a, b) == 0.0

    def test_invalid(self, cube, rng):
        with pytest.raises(InvalidInput):
            shape_distribution(cube, DistributionKind.D2, rng, n_samples=0)
        with pytest.raises(InvalidInput):
            shape_distribution(cube, DistributionKind.D2, rng, n_bins=0)
        with pytest.raises(InvalidInput):
            shape_distribution(Mesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3))), DistributionKind.D2, rng)

    def test_to_dict(self, cube, rng):
        data = shape_distribution(cube, DistributionKind.D3, rng, n_samples=50, n_bins=4).to_dict()
        assert data['kind'] == "d3"
        assert data['n_samples'] == 50
        assert len(data['histogram']) == 4


class TestDistributionComparison:
    """Tests for plain and scale-searching comparisons."""

    def test_bin_mismatch(self, cube, rng):
        a = shape_distribution(cube, DistributionKind.D2, rng, n_samples=100, n_bins=16)
        b = shape_distribution(cube, DistributionKind.D2, rng, n_samples=100, n_bins=32)
        with pytest.raises(ShapeMismatch):
            compare_shape_distributions(a, b)

    def test_cumulative(self, cube, sphere):
        a = shape_distribution(cube, DistributionKind.D2, RandomSource(1), n_samples=1000, n_bins=32)
        b = shape_distribution(sphere, DistributionKind.D2, RandomSource(2), n_samples=1000, n_bins=32)
        assert compare_shape_distributions(a, b, cumulative=True) > 0.0

    def test_scaled_self_distance(self, cube, rng):
        a = shape_distribution(cube, DistributionKind.D2, rng, n_samples=500, n_bins=32)
        assert compare_scaled_distributions(a, a, n_scales=65) == pytest.approx(0.0, abs=1e-12)

    def test_scaled_copy_matches(self, sphere):
        big = sphere.transformed(AffineTransformation.scaling(2.0))
        a = shape_distribution(sphere, DistributionKind.D2, RandomSource(4), n_samples=2000, n_bins=32)
        b = shape_distribution(big, DistributionKind.D2, RandomSource(4), n_samples=2000, n_bins=32)
        assert compare_scaled_distributions(a, b, n_scales=65) < 5e-3

    def test_scaled_invalid(self, cube, rng):
        a = shape_distribution(cube, DistributionKind.D2, rng, n_samples=100, n_bins=8)
        with pytest.raises(InvalidInput):
            compare_scaled_distributions(a, a, n_points=1)
        with pytest.raises(InvalidInput):
            compare_scaled_distributions(a, a, n_scales=0)
        with pytest.raises(InvalidInput):
            compare_scaled_distributions(a, a, min_log_scale=1.0, max_log_scale=0.0)
